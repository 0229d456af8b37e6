"""Deterministic scoring rules applied to judge output."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from school_explorer.evaluation.models import ConfidenceLevel, DimensionScores, EvaluationResult

DIMENSION_WEIGHTS: dict[str, int] = {
    "factual_accuracy": 25,
    "context_inclusion": 20,
    "limitation_acknowledgment": 20,
    "responsible_framing": 20,
    "query_relevance": 15,
}

# factual_accuracy score -> ceiling on the weighted score
CRITICAL_FAILURE_CAPS: dict[int, int] = {1: 35, 2: 55}

FLAG_SCORE_THRESHOLD = 60
AUTO_LOG_THRESHOLD = 75


@dataclass(frozen=True)
class ConfidenceBadge:
    """Display badge for a weighted score."""

    level: ConfidenceLevel
    label: str
    color: str


_BADGES: dict[ConfidenceLevel, ConfidenceBadge] = {
    ConfidenceLevel.HIGH: ConfidenceBadge(ConfidenceLevel.HIGH, "High confidence", "green"),
    ConfidenceLevel.VERIFIED: ConfidenceBadge(ConfidenceLevel.VERIFIED, "Verified", "blue"),
    ConfidenceLevel.REVIEW_SUGGESTED: ConfidenceBadge(
        ConfidenceLevel.REVIEW_SUGGESTED, "Review suggested", "yellow"
    ),
    ConfidenceLevel.LOW: ConfidenceBadge(ConfidenceLevel.LOW, "Low confidence", "red"),
}


def calculate_weighted_score(scores: DimensionScores | dict[str, Any]) -> int:
    """Combine the five dimension scores into a 0-100 score.

    ``raw = sum(score * weight)`` ranges from 100 (all 1s) to 500 (all 5s)
    and is normalised with ``(raw - 100) / 4``, rounding halves up. A low
    factual accuracy caps the result no matter how good the other
    dimensions are.

    Args:
        scores: Dimension scores; missing dimensions count as 1.

    Returns:
        Integer score in [0, 100].
    """
    if not isinstance(scores, DimensionScores):
        scores = DimensionScores.model_validate(scores)

    raw = sum(getattr(scores, name) * weight for name, weight in DIMENSION_WEIGHTS.items())
    normalized = int(math.floor((raw - 100) / 4 + 0.5))

    cap = CRITICAL_FAILURE_CAPS.get(scores.factual_accuracy)
    if cap is not None:
        normalized = min(normalized, cap)

    return max(0, min(100, normalized))


def should_flag_response(evaluation: EvaluationResult) -> bool:
    """Whether a response needs human review."""
    if evaluation.weighted_score < FLAG_SCORE_THRESHOLD:
        return True

    scores = evaluation.scores
    if scores.factual_accuracy <= 2 or scores.responsible_framing <= 2:
        return True

    return bool(evaluation.flags)


def should_auto_log(evaluation: EvaluationResult) -> bool:
    """Whether a response scores low enough to be logged without a user flag."""
    return evaluation.weighted_score < AUTO_LOG_THRESHOLD


def get_confidence_level(score: int) -> ConfidenceLevel:
    if score >= 90:
        return ConfidenceLevel.HIGH
    if score >= 75:
        return ConfidenceLevel.VERIFIED
    if score >= 60:
        return ConfidenceLevel.REVIEW_SUGGESTED
    return ConfidenceLevel.LOW


def get_confidence_badge(score: int) -> ConfidenceBadge:
    """Badge for a weighted score (each band includes its lower bound)."""
    return _BADGES[get_confidence_level(score)]
