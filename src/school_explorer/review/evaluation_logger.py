"""Evaluation logging for human review.

Low-scoring and user-flagged responses are sent to a webhook (typically a
Zapier hook feeding a spreadsheet) and always appended to a local JSONL
file. Logging runs off the request path and never raises to the caller.
"""

from __future__ import annotations

import asyncio
import json
import secrets
import string
import time
from collections.abc import Coroutine, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx

from school_explorer.config import get_settings
from school_explorer.evaluation.models import EvaluationResult
from school_explorer.evaluation.scoring import get_confidence_level
from school_explorer.logging import get_logger
from school_explorer.review.models import (
    EvaluationLogEntry,
    LoggedEvaluation,
    LogType,
    ToolCall,
)
from school_explorer.utils.text import sanitize_for_spreadsheet, truncate

log = get_logger("school_explorer.review.evaluation_logger")

WEBHOOK_PREVIEW_LIMIT = 500
JSONL_CONTENT_LIMIT = 10 * 1024

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_log_id() -> str:
    """Return an id of the form ``log-<epoch_ms>-<6 base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"log-{int(time.time() * 1000)}-{suffix}"


def build_webhook_payload(entry: EvaluationLogEntry, assistant_response: str) -> dict[str, Any]:
    """Flatten a log entry into one spreadsheet row.

    Free-text fields are truncated for preview and escaped so a spreadsheet
    never evaluates them as formulas.
    """
    evaluation = entry.evaluation
    scores = evaluation.scores
    return {
        "id": entry.id,
        "timestamp": entry.timestamp,
        "log_type": entry.log_type.value,
        "user_query": sanitize_for_spreadsheet(truncate(entry.user_query, WEBHOOK_PREVIEW_LIMIT)),
        "assistant_response_preview": sanitize_for_spreadsheet(
            truncate(assistant_response, WEBHOOK_PREVIEW_LIMIT)
        ),
        "assistant_response_length": len(assistant_response),
        "tool_names": ", ".join(tc.name for tc in entry.tool_calls),
        "tool_count": len(entry.tool_calls),
        "score_factual": scores.factual_accuracy,
        "score_context": scores.context_inclusion,
        "score_limitations": scores.limitation_acknowledgment,
        "score_framing": scores.responsible_framing,
        "score_relevance": scores.query_relevance,
        "weighted_score": evaluation.weighted_score,
        "confidence_level": evaluation.confidence_level.value,
        "flags": sanitize_for_spreadsheet("; ".join(evaluation.flags)),
        "summary": sanitize_for_spreadsheet(truncate(evaluation.summary, WEBHOOK_PREVIEW_LIMIT)),
        "user_feedback": sanitize_for_spreadsheet(entry.user_feedback or ""),
    }


class EvaluationLogger:
    """Delivers evaluation log entries to the webhook and the JSONL backup."""

    def __init__(
        self,
        log_path: str | Path | None = None,
        webhook_url: str | None = None,
        timeout: float | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the logger.

        Args:
            log_path: JSONL file to append to; read from settings when omitted.
            webhook_url: Webhook endpoint; read from settings when omitted.
                An empty value disables webhook delivery.
            timeout: Webhook POST timeout in seconds.
            client: Pre-built HTTP client (mainly for tests).
        """
        settings = get_settings()
        self._log_path = Path(log_path or settings.evaluation_log_path)
        self._webhook_url = (
            webhook_url if webhook_url is not None else settings.evaluation_webhook_url
        )
        self._timeout = timeout if timeout is not None else settings.webhook_timeout
        self._client = client
        self._write_lock = asyncio.Lock()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def log_path(self) -> Path:
        return self._log_path

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and wait for pending background writes."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def log(
        self,
        user_query: str,
        assistant_response: str,
        tool_calls: Sequence[ToolCall | dict[str, Any]],
        evaluation: EvaluationResult,
        log_type: LogType | str,
        user_feedback: str | None = None,
    ) -> EvaluationLogEntry | None:
        """Log one evaluation.

        The webhook is tried first; the JSONL append runs whether or not the
        webhook succeeded.

        Returns:
            The entry that was built, or ``None`` if it could not be built.
        """
        try:
            entry = EvaluationLogEntry(
                id=generate_log_id(),
                timestamp=datetime.now(UTC).isoformat(timespec="milliseconds"),
                log_type=LogType(log_type),
                user_query=truncate(user_query, JSONL_CONTENT_LIMIT),
                assistant_response=truncate(assistant_response, JSONL_CONTENT_LIMIT),
                tool_calls=[
                    tc if isinstance(tc, ToolCall) else ToolCall.model_validate(tc)
                    for tc in tool_calls
                ],
                evaluation=LoggedEvaluation(
                    scores=evaluation.scores,
                    weighted_score=evaluation.weighted_score,
                    confidence_level=get_confidence_level(evaluation.weighted_score),
                    flags=list(evaluation.flags),
                    summary=evaluation.summary,
                ),
                user_feedback=user_feedback,
            )
        except ValueError as e:
            log.error("evaluation_log_invalid", error=str(e))
            return None

        webhook_ok = False
        if self._webhook_url:
            webhook_ok = await self._send_webhook(build_webhook_payload(entry, assistant_response))

        file_ok = await self._append(entry)

        log.info(
            "evaluation_logged",
            log_id=entry.id,
            log_type=entry.log_type.value,
            weighted_score=entry.evaluation.weighted_score,
            webhook=webhook_ok,
            jsonl=file_ok,
        )
        return entry

    def log_background(
        self,
        user_query: str,
        assistant_response: str,
        tool_calls: Sequence[ToolCall | dict[str, Any]],
        evaluation: EvaluationResult,
        log_type: LogType | str,
        user_feedback: str | None = None,
    ) -> asyncio.Task[EvaluationLogEntry | None]:
        """Schedule :meth:`log` without waiting for it."""
        coro: Coroutine[Any, Any, EvaluationLogEntry | None] = self.log(
            user_query,
            assistant_response,
            tool_calls,
            evaluation,
            log_type,
            user_feedback,
        )
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _send_webhook(self, payload: dict[str, Any]) -> bool:
        try:
            client = await self._get_client()
            response = await client.post(
                self._webhook_url,  # type: ignore[arg-type]
                json=payload,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(
                "webhook_delivery_failed",
                status_code=e.response.status_code,
                log_id=payload["id"],
            )
            return False
        except Exception as e:
            log.error("webhook_delivery_failed", error=str(e), log_id=payload["id"])
            return False
        return True

    async def _append(self, entry: EvaluationLogEntry) -> bool:
        async with self._write_lock:
            try:
                line = _serialize(entry) + "\n"
                await asyncio.to_thread(self._write_line, line)
            except (OSError, ValueError) as e:
                log.error("evaluation_log_write_failed", error=str(e), path=str(self._log_path))
                return False
        return True

    def _write_line(self, line: str) -> None:
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with self._log_path.open("a", encoding="utf-8") as f:
            f.write(line)


def _serialize(entry: EvaluationLogEntry) -> str:
    """Render an entry as one JSON line.

    Text that is not valid UTF-8 (lone surrogates from a client body) makes
    the strict encoder fail; the fallback escapes it to ASCII instead.
    """
    try:
        return entry.model_dump_json(exclude_none=True)
    except ValueError:
        log.warning("evaluation_log_escaped", log_id=entry.id)
        return json.dumps(entry.model_dump(exclude_none=True), ensure_ascii=True)
