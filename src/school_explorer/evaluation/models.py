"""Data models for response quality evaluation."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_SCORE = 1
MAX_SCORE = 5


class ConfidenceLevel(StrEnum):
    """Confidence bands derived from the weighted score."""

    HIGH = "high"
    VERIFIED = "verified"
    REVIEW_SUGGESTED = "review_suggested"
    LOW = "low"


class DimensionScores(BaseModel):
    """The five rubric dimensions, each an integer from 1 to 5.

    Missing or unusable values fall back to 1 (the worst case) rather than
    failing validation; out-of-range numbers are clamped.
    """

    model_config = ConfigDict(frozen=True)

    factual_accuracy: int = MIN_SCORE
    context_inclusion: int = MIN_SCORE
    limitation_acknowledgment: int = MIN_SCORE
    responsible_framing: int = MIN_SCORE
    query_relevance: int = MIN_SCORE

    @field_validator(
        "factual_accuracy",
        "context_inclusion",
        "limitation_acknowledgment",
        "responsible_framing",
        "query_relevance",
        mode="before",
    )
    @classmethod
    def coerce_score(cls, v: Any) -> int:
        if isinstance(v, bool) or v is None:
            return MIN_SCORE
        try:
            number = float(v)
        except (TypeError, ValueError):
            return MIN_SCORE
        if not math.isfinite(number):
            return MIN_SCORE
        return max(MIN_SCORE, min(MAX_SCORE, int(math.floor(number + 0.5))))


class EvaluationResult(BaseModel):
    """Judge verdict for one assistant turn.

    ``weighted_score`` is always computed locally from ``scores``; the number
    the judge itself reported is kept in ``judge_weighted_score`` for reference.
    """

    model_config = ConfigDict(frozen=True)

    scores: DimensionScores
    weighted_score: int = Field(ge=0, le=100)
    flags: list[str] = Field(default_factory=list)
    summary: str = ""
    auto_logged: bool | None = None
    judge_weighted_score: int | None = None

    @field_validator("flags", mode="before")
    @classmethod
    def coerce_flags(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [str(flag) for flag in v if str(flag).strip()]

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str:
        return "" if v is None else str(v)
