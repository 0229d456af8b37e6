"""Summary statistics over the JSONL review log."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from school_explorer.evaluation.scoring import DIMENSION_WEIGHTS
from school_explorer.logging import get_logger
from school_explorer.review.models import EvaluationLogEntry, LogType

log = get_logger("school_explorer.review.analysis")


@dataclass
class LogSummary:
    """Aggregates over a set of log entries."""

    total: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    average_score: float | None = None
    min_score: int | None = None
    max_score: int | None = None
    confidence_levels: dict[str, int] = field(default_factory=dict)
    dimension_averages: dict[str, float] = field(default_factory=dict)
    common_flags: list[tuple[str, int]] = field(default_factory=list)
    tool_usage: list[tuple[str, int]] = field(default_factory=list)
    lowest: list[EvaluationLogEntry] = field(default_factory=list)
    feedback: list[EvaluationLogEntry] = field(default_factory=list)


def load_entries(path: str | Path) -> tuple[list[EvaluationLogEntry], int]:
    """Read a JSONL log, skipping blank, undecodable and malformed lines.

    Returns:
        The parsed entries and the number of lines skipped.
    """
    entries: list[EvaluationLogEntry] = []
    skipped = 0
    with Path(path).open("rb") as f:
        for lineno, raw in enumerate(f, start=1):
            if not raw.strip():
                continue
            try:
                entries.append(EvaluationLogEntry.model_validate_json(raw.decode("utf-8")))
            except (UnicodeDecodeError, ValidationError):
                skipped += 1
                log.warning("log_line_skipped", line=lineno)
    return entries, skipped


def summarize(
    entries: list[EvaluationLogEntry], *, top_flags: int = 10, lowest: int = 5
) -> LogSummary:
    summary = LogSummary(total=len(entries))
    if not entries:
        return summary

    scores = [e.evaluation.weighted_score for e in entries]
    summary.by_type = {t.value: sum(1 for e in entries if e.log_type == t) for t in LogType}
    summary.average_score = sum(scores) / len(scores)
    summary.min_score = min(scores)
    summary.max_score = max(scores)
    summary.confidence_levels = dict(
        Counter(e.evaluation.confidence_level.value for e in entries).most_common()
    )
    summary.dimension_averages = {
        name: sum(getattr(e.evaluation.scores, name) for e in entries) / len(entries)
        for name in DIMENSION_WEIGHTS
    }
    summary.common_flags = Counter(
        flag for e in entries for flag in e.evaluation.flags
    ).most_common(top_flags)
    summary.tool_usage = Counter(tc.name for e in entries for tc in e.tool_calls).most_common()
    summary.lowest = sorted(entries, key=lambda e: e.evaluation.weighted_score)[:lowest]
    summary.feedback = [e for e in entries if e.user_feedback]
    return summary


def format_summary(summary: LogSummary) -> str:
    """Render a summary as the plain-text report printed by the CLI script."""
    if summary.total == 0:
        return "No entries in the evaluation log."

    lines = ["=== Evaluation Log Analysis ===", "", f"Total entries: {summary.total}"]
    lines.append(f"  Auto-logged (score < 75): {summary.by_type.get(LogType.AUTO.value, 0)}")
    lines.append(f"  User-flagged: {summary.by_type.get(LogType.USER_FLAGGED.value, 0)}")

    lines += [
        "",
        "Score statistics:",
        f"  Average: {summary.average_score:.1f}",
        f"  Min: {summary.min_score}",
        f"  Max: {summary.max_score}",
        "",
        "Confidence levels:",
    ]
    lines += [f"  {level}: {count}" for level, count in summary.confidence_levels.items()]

    lines += ["", "Dimension averages (1-5):"]
    for name, avg in summary.dimension_averages.items():
        lines.append(f"  {name.replace('_', ' ').title()}: {avg:.2f}")

    if summary.common_flags:
        lines += ["", "Common flags:"]
        lines += [f"  {count}x: {flag}" for flag, count in summary.common_flags]

    if summary.tool_usage:
        lines += ["", "Tools used in logged responses:"]
        lines += [f"  {name}: {count}" for name, count in summary.tool_usage]

    lines += ["", "=== Lowest scoring responses ===", ""]
    for entry in summary.lowest:
        lines.append(f"Score: {entry.evaluation.weighted_score} | {entry.log_type.value}")
        lines.append(f"Time: {entry.timestamp}")
        lines.append(f"Query: {_preview(entry.user_query, 100)}")
        lines.append(f"Summary: {entry.evaluation.summary}")
        if entry.user_feedback:
            lines.append(f"User feedback: {entry.user_feedback}")
        lines.append(f"Flags: {', '.join(entry.evaluation.flags) or 'None'}")
        lines.append("---")

    if summary.feedback:
        lines += ["", "=== User feedback ===", ""]
        lines.append(f"{len(summary.feedback)} responses have user feedback:")
        for entry in summary.feedback:
            lines.append(f"Score: {entry.evaluation.weighted_score}")
            lines.append(f"Query: {_preview(entry.user_query, 80)}")
            lines.append(f"Feedback: {entry.user_feedback}")
            lines.append("---")

    return "\n".join(lines)


def _preview(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
