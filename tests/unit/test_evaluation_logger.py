"""Unit tests for the evaluation logger (webhook delivery and JSONL backup)."""

from __future__ import annotations

import asyncio
import json
import re

import httpx
import pytest

from school_explorer.evaluation import DimensionScores, EvaluationResult
from school_explorer.review import (
    JSONL_CONTENT_LIMIT,
    EvaluationLogEntry,
    EvaluationLogger,
    LogType,
    ToolCall,
    build_webhook_payload,
    generate_log_id,
)


def _evaluation(weighted: int = 62) -> EvaluationResult:
    return EvaluationResult(
        scores=DimensionScores(
            factual_accuracy=4,
            context_inclusion=3,
            limitation_acknowledgment=2,
            responsible_framing=4,
            query_relevance=4,
        ),
        weighted_score=weighted,
        flags=["missing poverty context", "=cmd"],
        summary="Accurate but thin on context.",
    )


def _read_lines(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class _Recorder:
    """MockTransport handler that records posted payloads."""

    def __init__(self, status_code: int = 200, error: Exception | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.payloads: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": True})


def _logger(tmp_path, handler=None) -> EvaluationLogger:
    if handler is None:
        return EvaluationLogger(log_path=tmp_path / "evals.jsonl", webhook_url="")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EvaluationLogger(
        log_path=tmp_path / "evals.jsonl",
        webhook_url="https://hooks.example.com/catch/1",
        client=client,
    )


# ---------------------------------------------------------------------------
# Ids and payloads
# ---------------------------------------------------------------------------


class TestGenerateLogId:
    def test_format(self):
        assert re.fullmatch(r"log-\d{13}-[0-9a-z]{6}", generate_log_id())

    def test_unique(self):
        assert len({generate_log_id() for _ in range(200)}) == 200


class TestWebhookPayload:
    """Flattened spreadsheet rows."""

    def _entry(self, **overrides) -> EvaluationLogEntry:
        data = {
            "id": "log-1-abcdef",
            "timestamp": "2026-03-01T12:00:00.000+00:00",
            "log_type": "auto",
            "user_query": "How is PS 123 doing?",
            "assistant_response": "It is doing fine.",
            "tool_calls": [
                {"name": "search_schools", "parameters": {"q": "PS 123"}},
                {"name": "get_school_profile", "parameters": {}},
            ],
            "evaluation": {
                "scores": _evaluation().scores.model_dump(),
                "weighted_score": 62,
                "confidence_level": "review_suggested",
                "flags": ["a", "b"],
                "summary": "ok",
            },
        }
        data.update(overrides)
        return EvaluationLogEntry.model_validate(data)

    def test_flat_fields(self):
        payload = build_webhook_payload(self._entry(), "It is doing fine.")
        assert payload["tool_names"] == "search_schools, get_school_profile"
        assert payload["tool_count"] == 2
        assert payload["score_factual"] == 4
        assert payload["score_limitations"] == 2
        assert payload["flags"] == "a; b"
        assert payload["log_type"] == "auto"
        assert payload["user_feedback"] == ""

    def test_preview_truncated_and_length_kept(self):
        response = "x" * 2000
        payload = build_webhook_payload(self._entry(), response)
        assert len(payload["assistant_response_preview"]) == 500
        assert payload["assistant_response_preview"].endswith("...")
        assert payload["assistant_response_length"] == 2000

    def test_formula_text_escaped(self):
        entry = self._entry(user_query="=HYPERLINK(evil)", user_feedback="+1 wrong")
        payload = build_webhook_payload(entry, "-5 schools")
        assert payload["user_query"] == "'=HYPERLINK(evil)"
        assert payload["user_feedback"] == "'+1 wrong"
        assert payload["assistant_response_preview"] == "'-5 schools"


# ---------------------------------------------------------------------------
# EvaluationLogger
# ---------------------------------------------------------------------------


class TestEvaluationLoggerJsonl:
    """The JSONL file is always written."""

    @pytest.mark.asyncio
    async def test_without_webhook_writes_one_line(self, tmp_path):
        logger = _logger(tmp_path)
        entry = await logger.log(
            "Show schools in Queens",
            "Here are some schools.",
            [ToolCall(name="search_schools", parameters={"borough": "Queens"})],
            _evaluation(),
            LogType.AUTO,
        )

        assert entry is not None
        lines = _read_lines(logger.log_path)
        assert len(lines) == 1
        line = lines[0]
        assert line["id"] == entry.id
        assert line["log_type"] == "auto"
        assert line["user_query"] == "Show schools in Queens"
        assert line["assistant_response"] == "Here are some schools."
        assert line["tool_calls"] == [
            {"name": "search_schools", "parameters": {"borough": "Queens"}}
        ]
        assert line["evaluation"]["confidence_level"] == "review_suggested"
        assert "user_feedback" not in line

    @pytest.mark.asyncio
    async def test_creates_parent_directories(self, tmp_path):
        logger = EvaluationLogger(log_path=tmp_path / "nested" / "dir" / "e.jsonl", webhook_url="")
        await logger.log("q", "a", [], _evaluation(), "auto")
        assert logger.log_path.exists()

    @pytest.mark.asyncio
    async def test_long_content_truncated(self, tmp_path):
        logger = _logger(tmp_path)
        await logger.log("q" * 20_000, "a" * 30_000, [], _evaluation(), LogType.AUTO)
        line = _read_lines(logger.log_path)[0]
        assert len(line["user_query"]) == JSONL_CONTENT_LIMIT
        assert len(line["assistant_response"]) == JSONL_CONTENT_LIMIT

    @pytest.mark.asyncio
    async def test_user_feedback_recorded(self, tmp_path):
        logger = _logger(tmp_path)
        await logger.log(
            "q", "a", [], _evaluation(), LogType.USER_FLAGGED, user_feedback="Wrong year"
        )
        line = _read_lines(logger.log_path)[0]
        assert line["log_type"] == "user_flagged"
        assert line["user_feedback"] == "Wrong year"

    @pytest.mark.asyncio
    async def test_tool_calls_accept_dicts(self, tmp_path):
        logger = _logger(tmp_path)
        entry = await logger.log("q", "a", [{"name": "compare_schools"}], _evaluation(), "auto")
        assert entry.tool_calls == [ToolCall(name="compare_schools")]

    @pytest.mark.asyncio
    async def test_invalid_log_type_returns_none(self, tmp_path):
        logger = _logger(tmp_path)
        assert await logger.log("q", "a", [], _evaluation(), "bogus") is None
        assert not logger.log_path.exists()

    @pytest.mark.asyncio
    async def test_write_failure_does_not_raise(self, tmp_path):
        target = tmp_path / "is_a_directory"
        target.mkdir()
        logger = EvaluationLogger(log_path=target, webhook_url="")
        entry = await logger.log("q", "a", [], _evaluation(), LogType.AUTO)
        assert entry is not None

    @pytest.mark.asyncio
    async def test_lone_surrogate_still_written(self, tmp_path):
        """Text that cannot be encoded as UTF-8 is escaped, not dropped."""
        logger = _logger(tmp_path)
        entry = await logger.log(
            "bad \ud800 text",
            "answer",
            [],
            _evaluation(),
            LogType.USER_FLAGGED,
            user_feedback="also \udc00 bad",
        )

        assert entry is not None
        raw = logger.log_path.read_text(encoding="utf-8")
        assert raw.isascii()
        line = _read_lines(logger.log_path)[0]
        assert line["user_query"] == "bad \ud800 text"
        assert line["user_feedback"] == "also \udc00 bad"

    @pytest.mark.asyncio
    async def test_lone_surrogate_with_webhook_does_not_raise(self, tmp_path):
        logger = _logger(tmp_path, _Recorder())
        entry = await logger.log("bad \ud800 text", "answer", [], _evaluation(), LogType.AUTO)
        await logger.close()

        assert entry is not None
        assert len(_read_lines(logger.log_path)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_writes_produce_whole_lines(self, tmp_path):
        logger = _logger(tmp_path)
        await asyncio.gather(
            *(logger.log(f"q{i}", "a" * 500, [], _evaluation(), "auto") for i in range(20))
        )
        lines = _read_lines(logger.log_path)
        assert sorted(line["user_query"] for line in lines) == sorted(f"q{i}" for i in range(20))


class TestEvaluationLoggerWebhook:
    """Webhook delivery is attempted first and never blocks the backup."""

    @pytest.mark.asyncio
    async def test_webhook_receives_flat_payload(self, tmp_path):
        recorder = _Recorder()
        logger = _logger(tmp_path, recorder)
        entry = await logger.log("q", "a" * 900, [], _evaluation(), LogType.AUTO)
        await logger.close()

        assert len(recorder.payloads) == 1
        payload = recorder.payloads[0]
        assert payload["id"] == entry.id
        assert payload["assistant_response_length"] == 900
        assert len(payload["assistant_response_preview"]) == 500
        assert payload["flags"] == "missing poverty context; =cmd"
        assert len(_read_lines(logger.log_path)) == 1

    @pytest.mark.asyncio
    async def test_webhook_error_status_still_writes_jsonl(self, tmp_path):
        recorder = _Recorder(status_code=500)
        logger = _logger(tmp_path, recorder)
        entry = await logger.log("q", "a", [], _evaluation(), LogType.AUTO)
        await logger.close()

        assert entry is not None
        assert len(recorder.payloads) == 1
        assert len(_read_lines(logger.log_path)) == 1

    @pytest.mark.asyncio
    async def test_webhook_transport_error_still_writes_jsonl(self, tmp_path):
        recorder = _Recorder(error=httpx.ConnectError("connection refused"))
        logger = _logger(tmp_path, recorder)
        entry = await logger.log("q", "a", [], _evaluation(), LogType.AUTO)
        await logger.close()

        assert entry is not None
        assert len(_read_lines(logger.log_path)) == 1


class TestLogBackground:
    @pytest.mark.asyncio
    async def test_background_task_completes_on_close(self, tmp_path):
        logger = _logger(tmp_path)
        task = logger.log_background("q", "a", [], _evaluation(), LogType.AUTO)
        await logger.close()

        assert task.done()
        assert task.result() is not None
        assert len(_read_lines(logger.log_path)) == 1

    @pytest.mark.asyncio
    async def test_close_without_activity(self, tmp_path):
        await _logger(tmp_path).close()
