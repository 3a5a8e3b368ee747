"""Tests for deep_research/parsing.py."""

import pytest

from deep_research.parsing import parse_json_object


def test_plain_object():
    assert parse_json_object('{"type": "summary", "content": "x"}') == {"type": "summary", "content": "x"}


def test_fenced_object():
    text = 'Here you go:\n```json\n{"thought": "a", "action": "search"}\n```\nGood luck.'
    assert parse_json_object(text) == {"thought": "a", "action": "search"}


def test_bare_fence_without_language():
    assert parse_json_object('```\n{"a": 1}\n```') == {"a": 1}


def test_object_surrounded_by_prose():
    text = 'Sure! {"type": "question", "content": "Which year?"} Hope this helps.'
    assert parse_json_object(text)["content"] == "Which year?"


@pytest.mark.parametrize("text", [
    None,
    "",
    "   ",
    "no json here",
    "[1, 2, 3]",
    '"just a string"',
    "{broken: json}",
])
def test_unparsable_returns_none(text):
    assert parse_json_object(text) is None
