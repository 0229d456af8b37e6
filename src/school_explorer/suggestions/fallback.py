"""Deterministic, entity-aware follow-up suggestions.

Used when the LLM generator is unavailable, times out, or produces nothing
that survives validation. Makes no external calls and always returns between
one and three suggestions.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from school_explorer.guardrails import classify
from school_explorer.logging import get_logger
from school_explorer.suggestions.models import (
    MAX_SUGGESTIONS,
    ExtractedEntities,
    SuggestedQuery,
    SuggestionCategory,
)

log = get_logger("school_explorer.suggestions.fallback")

BOROUGHS = ("Manhattan", "Brooklyn", "Queens", "Bronx", "Staten Island")

_BOROUGH_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(b) for b in BOROUGHS) + r")\b", re.IGNORECASE
)

# Keeps interpolated names short enough for the 80 character limit
_MAX_NAME_LENGTH = 40
_MAX_PAIR_NAME_LENGTH = 33

DEFAULT_SUGGESTIONS: tuple[SuggestedQuery, ...] = (
    SuggestedQuery(
        "Which schools show high student growth despite high economic need?",
        SuggestionCategory.EXPLORE,
    ),
    SuggestedQuery(
        "How does economic need relate to Performance and Impact Scores?",
        SuggestionCategory.EXPLAIN,
    ),
)


def extract_entities(
    tool_results: Iterable[str | Mapping[str, Any]],
    assistant_response: str = "",
) -> ExtractedEntities:
    """Collect schools, boroughs, metrics and analysis types from tool output.

    Args:
        tool_results: Serialised (JSON) or already decoded tool results.
            Items that cannot be decoded are skipped.
        assistant_response: The answer text, scanned for borough names.

    Returns:
        The :class:`ExtractedEntities` found, in first-seen order.
    """
    entities = ExtractedEntities()

    for raw in tool_results:
        result = _decode(raw)
        if result is None:
            continue

        if isinstance(result.get("profile"), Mapping):
            entities.analysis_types.add("profile")
            school = result["profile"].get("school")
            if isinstance(school, Mapping):
                _add_school(entities, school)

        if isinstance(result.get("comparison"), Mapping):
            entities.analysis_types.add("comparison")
            for school in _school_list(result["comparison"].get("schools")):
                _add_school(entities, school)

        if "correlation" in result:
            entities.analysis_types.add("correlation")
            for key in ("metric1", "metric2"):
                metric = result.get(key)
                name = metric.get("name") if isinstance(metric, Mapping) else metric
                if isinstance(name, str) and name and name not in entities.metrics:
                    entities.metrics.append(name)

        if isinstance(result.get("chart"), Mapping):
            entities.analysis_types.add("chart")

        if isinstance(result.get("target_school"), Mapping):
            entities.analysis_types.add("profile")
            _add_school(entities, result["target_school"])

        schools = _school_list(result.get("schools"))
        if schools:
            entities.analysis_types.add("search")
            for school in schools:
                _add_school(entities, school)

    for match in _BOROUGH_PATTERN.finditer(assistant_response or ""):
        _add_borough(entities, match.group(1))

    return entities


def generate_fallback(
    tool_results: Iterable[str | Mapping[str, Any]],
    assistant_response: str = "",
) -> list[SuggestedQuery]:
    """Build up to three suggestions from the entities in this turn."""
    entities = extract_entities(tool_results, assistant_response)
    candidates = _from_decision_table(entities)

    suggestions: list[SuggestedQuery] = []
    seen: set[str] = set()
    for candidate in candidates:
        key = candidate.text.lower()
        if key in seen or classify(candidate.text).blocked:
            continue
        seen.add(key)
        suggestions.append(candidate)
        if len(suggestions) == MAX_SUGGESTIONS:
            break

    if not suggestions:
        return list(DEFAULT_SUGGESTIONS)
    return suggestions


def _from_decision_table(entities: ExtractedEntities) -> list[SuggestedQuery]:
    if entities.empty:
        return []

    types = entities.analysis_types
    school = _short(entities.schools[0]) if entities.schools else None
    borough = entities.boroughs[0] if entities.boroughs else None
    out: list[SuggestedQuery] = []

    if "profile" in types and school:
        out.append(
            SuggestedQuery(f"Compare {school} to similar schools", SuggestionCategory.COMPARE)
        )
        out.append(
            SuggestedQuery(
                f"Show the year-over-year trend for {school}", SuggestionCategory.VISUALIZE
            )
        )

    if "correlation" in types:
        metric = _short(entities.metrics[0]) if entities.metrics else "economic need"
        out.append(
            SuggestedQuery(f"What else correlates with {metric}?", SuggestionCategory.EXPLORE)
        )
        out.append(
            SuggestedQuery(
                "Visualize this relationship as a scatter plot", SuggestionCategory.VISUALIZE
            )
        )

    if "comparison" in types:
        out.append(
            SuggestedQuery(
                "What factors might explain the differences between these schools?",
                SuggestionCategory.EXPLAIN,
            )
        )
        if "chart" not in types:
            out.append(
                SuggestedQuery(
                    "Chart these schools' Impact Scores side by side", SuggestionCategory.VISUALIZE
                )
            )

    if "chart" in types:
        out.append(
            SuggestedQuery(
                "How is the Impact Score different from the Performance Score?",
                SuggestionCategory.EXPLAIN,
            )
        )

    if "search" in types and school and len(entities.schools) > 1:
        first, second = (_short(name, _MAX_PAIR_NAME_LENGTH) for name in entities.schools[:2])
        out.append(SuggestedQuery(f"Compare {first} and {second}", SuggestionCategory.COMPARE))
    elif "search" in types and school:
        out.append(SuggestedQuery(f"Tell me more about {school}", SuggestionCategory.EXPLORE))

    if borough:
        out.append(
            SuggestedQuery(
                f"How does {borough} compare to citywide averages?", SuggestionCategory.COMPARE
            )
        )
        out.append(
            SuggestedQuery(
                f"Show high student growth schools in {borough}", SuggestionCategory.EXPLORE
            )
        )

    return out


def _decode(raw: str | Mapping[str, Any]) -> Mapping[str, Any] | None:
    if isinstance(raw, Mapping):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        log.debug("tool_result_skipped", reason=str(e))
        return None
    return decoded if isinstance(decoded, Mapping) else None


def _school_list(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _add_school(entities: ExtractedEntities, school: Mapping[str, Any]) -> None:
    name = school.get("name")
    if isinstance(name, str) and name.strip() and name.strip() not in entities.schools:
        entities.schools.append(name.strip())
    borough = school.get("borough")
    if isinstance(borough, str):
        _add_borough(entities, borough)


def _add_borough(entities: ExtractedEntities, borough: str) -> None:
    for known in BOROUGHS:
        if borough.strip().lower() == known.lower():
            if known not in entities.boroughs:
                entities.boroughs.append(known)
            return


def _short(name: str, limit: int = _MAX_NAME_LENGTH) -> str:
    if len(name) <= limit:
        return name
    return name[: limit - 3].rstrip() + "..."
