"""Review logging for low-scoring and user-flagged responses."""

from school_explorer.review.analysis import LogSummary, format_summary, load_entries, summarize
from school_explorer.review.evaluation_logger import (
    JSONL_CONTENT_LIMIT,
    WEBHOOK_PREVIEW_LIMIT,
    EvaluationLogger,
    build_webhook_payload,
    generate_log_id,
)
from school_explorer.review.models import (
    EvaluationLogEntry,
    LoggedEvaluation,
    LogType,
    ToolCall,
)

__all__ = [
    "JSONL_CONTENT_LIMIT",
    "WEBHOOK_PREVIEW_LIMIT",
    "EvaluationLogEntry",
    "EvaluationLogger",
    "LogSummary",
    "LogType",
    "LoggedEvaluation",
    "ToolCall",
    "build_webhook_payload",
    "format_summary",
    "generate_log_id",
    "load_entries",
    "summarize",
]
