"""Rich console output and markdown file save for research results."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from deep_research.models import AgentPersona, FinalResearchData, ResearchUpdate, UpdateType

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_PERSONA_STYLE = {AgentPersona.ALPHA: "magenta", AgentPersona.BETA: "cyan"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 60) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _content_text(update: ResearchUpdate) -> str:
    return ", ".join(update.content) if isinstance(update.content, list) else update.content


def print_update(update: ResearchUpdate) -> None:
    """Render one progress update as it is emitted."""
    text = _content_text(update)
    if update.type is UpdateType.THOUGHT:
        if update.persona is None:
            console.print(Text(text, style="yellow"))
            return
        console.print(
            Panel(
                Text(_preview(text)),
                title=f"[bold]Agent {update.persona.value}[/bold] ({update.persona.title})",
                border_style=_PERSONA_STYLE[update.persona],
            )
        )
    elif update.type is UpdateType.SEARCH:
        console.print(f"[bold blue]Searching:[/bold blue] {escape(text)}")
    elif update.type is UpdateType.READ:
        console.print(Text(f"Read: {_preview(text, 25)}", style="dim"))
    elif update.type is UpdateType.FINISH:
        console.print(Rule(Text(text, style="bold green")))
    else:
        console.print(Text(text, style="red"))


def print_report(final: FinalResearchData) -> None:
    """Print the final report and its sources to the console."""
    console.print(Rule("[bold green]Research Report[/bold green]"))
    console.print(
        Text(
            f"Duration: {final.research_time_ms / 1000:.1f}s | Sources: {len(final.citations)}",
            style="dim",
        )
    )
    console.print(Markdown(final.report))
    if final.citations:
        console.print(Rule("[bold]Sources[/bold]"))
        for i, citation in enumerate(final.citations, start=1):
            console.print(f"[{i}] {escape(citation.title)} [dim]{escape(citation.url)}[/dim]")


def save_to_file(
    query: str,
    final: FinalResearchData,
    updates: Sequence[ResearchUpdate],
    output_dir: Path,
    *,
    clarified_context: str = "",
    mode: str = "",
    provider: str = "",
    slug_override: str | None = None,
) -> Path:
    """Save the report, research trail and sources as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(query)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    searches = [u for u in updates if u.type is UpdateType.SEARCH]

    lines: list[str] = [
        f"# Deep Research: {query[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Provider:** {provider or 'unknown'}",
        f"**Mode:** {mode or 'unknown'}",
        f"**Search cycles:** {len(searches)}",
        f"**Duration:** {final.research_time_ms / 1000:.1f}s",
        "",
    ]
    if clarified_context:
        lines += ["## Research Brief", "", clarified_context, ""]

    lines += ["---", "", "## Report", "", final.report, ""]

    if final.citations:
        lines += ["## Sources", ""]
        lines += [f"{i}. [{c.title}]({c.url})" for i, c in enumerate(final.citations, start=1)]
        lines.append("")

    if updates:
        lines += ["## Research Trail", ""]
        for update in updates:
            who = f" {update.persona.value}" if update.persona else ""
            lines.append(f"- **{update.type.value}{who}:** {_preview(_content_text(update), 40)}")
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
