"""Text helpers shared by the evaluation and review modules."""

from __future__ import annotations

import json
from typing import Any

# Leading characters that spreadsheet apps interpret as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Pull the first balanced JSON object out of free text.

    Model replies often wrap the requested JSON in prose or code fences. The
    scan tracks string literals so braces inside strings do not confuse the
    depth count.

    Args:
        text: The raw model reply.

    Returns:
        The parsed object, or ``None`` if no balanced object parses.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def _balanced_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def truncate(text: str | None, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters, ending with ``...`` if cut."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."


def sanitize_for_spreadsheet(text: str | None) -> str:
    """Neutralise spreadsheet formula injection by quoting risky leading chars."""
    if not text:
        return ""
    if text.startswith(_FORMULA_PREFIXES):
        return "'" + text
    return text
