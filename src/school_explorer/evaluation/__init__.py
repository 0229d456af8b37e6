"""Response quality evaluation (LLM-as-judge plus deterministic scoring)."""

from school_explorer.evaluation.judge import QualityEvaluator, parse_judge_reply
from school_explorer.evaluation.models import ConfidenceLevel, DimensionScores, EvaluationResult
from school_explorer.evaluation.scoring import (
    AUTO_LOG_THRESHOLD,
    DIMENSION_WEIGHTS,
    ConfidenceBadge,
    calculate_weighted_score,
    get_confidence_badge,
    get_confidence_level,
    should_auto_log,
    should_flag_response,
)

__all__ = [
    "AUTO_LOG_THRESHOLD",
    "DIMENSION_WEIGHTS",
    "ConfidenceBadge",
    "ConfidenceLevel",
    "DimensionScores",
    "EvaluationResult",
    "QualityEvaluator",
    "calculate_weighted_score",
    "get_confidence_badge",
    "get_confidence_level",
    "parse_judge_reply",
    "should_auto_log",
    "should_flag_response",
]
