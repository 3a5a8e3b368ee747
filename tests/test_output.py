"""Tests for deep_research/output.py."""

from pathlib import Path

import pytest

from deep_research.models import AgentPersona, Citation, FinalResearchData, ResearchUpdate, UpdateType
from deep_research.output import _slug, print_report, print_update, save_to_file


def test_slug_basic():
    assert _slug("Should we buy EVs in 2026?") == "should-we-buy-evs-in-2026"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result


@pytest.fixture
def sample_final() -> FinalResearchData:
    return FinalResearchData(
        report="# Battery Report\nPrices keep falling [1].",
        citations=[Citation("https://a.com/x", "Source A"), Citation("https://b.com", "Source B")],
        research_time_ms=12_345,
    )


@pytest.fixture
def sample_updates() -> list[ResearchUpdate]:
    return [
        ResearchUpdate(id=0, type=UpdateType.THOUGHT, content="Start with prices.", persona=AgentPersona.ALPHA),
        ResearchUpdate(id=1, type=UpdateType.SEARCH, content="battery prices 2026"),
        ResearchUpdate(id=2, type=UpdateType.READ, content='Summary for "battery prices 2026": Down.'),
        ResearchUpdate(id=3, type=UpdateType.FINISH, content="Covered."),
    ]


def test_save_to_file_creates_file(tmp_path: Path, sample_final, sample_updates):
    saved = save_to_file("EV battery prices", sample_final, sample_updates, tmp_path / "output")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert saved.name.endswith("_ev-battery-prices.md")


def test_save_to_file_creates_output_dir(tmp_path: Path, sample_final):
    output_dir = tmp_path / "nested" / "output"
    save_to_file("q", sample_final, [], output_dir)
    assert output_dir.exists()


def test_save_to_file_content(tmp_path: Path, sample_final, sample_updates):
    saved = save_to_file(
        "EV battery prices", sample_final, sample_updates, tmp_path,
        clarified_context="Cost outlook to 2030", mode="Fast", provider="gemini",
    )
    content = saved.read_text(encoding="utf-8")
    assert content.startswith("# Deep Research: EV battery prices")
    assert "**Provider:** gemini" in content
    assert "**Mode:** Fast" in content
    assert "**Search cycles:** 1" in content
    assert "**Duration:** 12.3s" in content
    assert "## Research Brief\n\nCost outlook to 2030" in content
    assert "Prices keep falling [1]." in content
    assert "1. [Source A](https://a.com/x)" in content
    assert "- **thought Alpha:** Start with prices." in content
    assert "- **finish:** Covered." in content


def test_save_to_file_without_citations(tmp_path: Path, sample_updates):
    final = FinalResearchData(report="# R", citations=[], research_time_ms=0)
    content = save_to_file("q", final, sample_updates, tmp_path).read_text(encoding="utf-8")
    assert "## Sources" not in content
    assert "## Research Brief" not in content


def test_save_to_file_slug_override(tmp_path: Path, sample_final):
    saved = save_to_file("q", sample_final, [], tmp_path, slug_override="request-1")
    assert saved.name.endswith("_request-1.md")


def test_print_functions_render(sample_final, sample_updates, capsys):
    for update in sample_updates:
        print_update(update)
    print_update(ResearchUpdate(id=4, type=UpdateType.THOUGHT, content="Rule violation: no."))
    print_report(sample_final)
    out = capsys.readouterr().out
    assert "Agent Alpha" in out
    assert "battery prices 2026" in out
    assert "Source B" in out


@pytest.mark.parametrize("update", [
    ResearchUpdate(id=0, type=UpdateType.THOUGHT, content="Compare [/] and [see above].", persona=AgentPersona.BETA),
    ResearchUpdate(id=1, type=UpdateType.THOUGHT, content="Compare [/] and [see above]."),
    ResearchUpdate(id=2, type=UpdateType.SEARCH, content=["Compare [/]", "[see above]."]),
    ResearchUpdate(id=3, type=UpdateType.FINISH, content="Compare [/] and [see above]."),
    ResearchUpdate(id=4, type=UpdateType.ERROR, content="Compare [/] and [see above]."),
])
def test_print_update_renders_brackets_literally(update, capsys):
    print_update(update)
    out = capsys.readouterr().out
    assert "[/]" in out
    assert "[see above]" in out


def test_print_report_renders_bracketed_titles(capsys):
    final = FinalResearchData(
        report="# R",
        citations=[Citation("https://a.com", "[bold] Pricing [/] notes")],
        research_time_ms=0,
    )
    print_report(final)
    assert "[bold] Pricing [/] notes" in capsys.readouterr().out
