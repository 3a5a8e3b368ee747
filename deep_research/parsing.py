"""Extract a single JSON object from free-form model output."""

import json
import logging
import re

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _candidates(text: str) -> list[str]:
    """Strings worth trying, most specific first."""
    stripped = text.strip()
    found = [stripped]
    for match in _FENCE_RE.finditer(stripped):
        found.append(match.group(1).strip())
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        found.append(stripped[start:end + 1])
    return found


def parse_json_object(text: str | None) -> dict | None:
    """Parse the JSON object embedded in model output.

    Tolerates code fences and prose around the object. Returns None when no
    valid JSON object is found; never raises.
    """
    if not text or not isinstance(text, str):
        return None

    for candidate in _candidates(text):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.debug("No JSON object found in model output: %.200s", text)
    return None
