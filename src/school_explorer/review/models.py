"""Data models for logged evaluations."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from school_explorer.evaluation.models import ConfidenceLevel, DimensionScores


class LogType(StrEnum):
    """Why an evaluation was logged."""

    AUTO = "auto"
    USER_FLAGGED = "user_flagged"


class ToolCall(BaseModel):
    """A tool invocation made while producing a response."""

    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class LoggedEvaluation(BaseModel):
    """Evaluation block stored with each log entry."""

    scores: DimensionScores
    weighted_score: int
    confidence_level: ConfidenceLevel
    flags: list[str] = Field(default_factory=list)
    summary: str = ""


class EvaluationLogEntry(BaseModel):
    """One line of the JSONL review log."""

    id: str
    timestamp: str
    log_type: LogType
    user_query: str
    assistant_response: str
    tool_calls: list[ToolCall] = Field(default_factory=list)
    evaluation: LoggedEvaluation
    user_feedback: str | None = None
