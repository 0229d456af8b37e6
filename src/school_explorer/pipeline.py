"""Trust pipeline for a single chat turn.

Order of checks for every user query:

1. Prefilter: blocked queries get a reframe and never reach a model.
2. Rate limit and daily budget: exhaustion raises a :class:`GovernorRejection`.
3. Responder: the assistant answer is streamed to the caller.
4. Post-response: quality evaluation (with auto-logging of low scores) and
   follow-up suggestions run concurrently, each under its own timeout.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from school_explorer.config import get_settings
from school_explorer.evaluation import QualityEvaluator, should_auto_log
from school_explorer.guardrails import ClassificationResult, classify
from school_explorer.limits import BudgetStatus, DailyBudget, RateLimiter, RateLimitResult
from school_explorer.logging import get_logger
from school_explorer.responder import ChatMessage, Responder, ResponderChunk
from school_explorer.review import EvaluationLogger, LogType
from school_explorer.suggestions import SuggestionGenerator, generate_fallback

log = get_logger("school_explorer.pipeline")

# Tool output passed to the judge is capped to keep the prompt small
_EVALUATION_TOOL_CONTEXT_LIMIT = 10_000


class GovernorRejection(Exception):
    """A request refused because a usage ceiling was reached."""

    status_code = 429
    code = "RATE_LIMIT"

    def __init__(self, message: str, *, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or {}


class RateLimitExceeded(GovernorRejection):
    """The identity used up its minute or hour window."""

    def __init__(self, result: RateLimitResult, headers: dict[str, str] | None = None):
        super().__init__(
            result.error or "Too many requests. Please wait a moment before trying again.",
            headers=headers,
        )
        self.result = result

    @property
    def retry_after(self) -> int:
        return self.result.reset_in


class BudgetExceeded(GovernorRejection):
    """The process-wide daily spend ceiling was reached."""

    status_code = 503
    code = "BUDGET_EXCEEDED"

    def __init__(self, status: BudgetStatus):
        super().__init__("Daily API budget exceeded. Please try again tomorrow.")
        self.status = status


@dataclass(frozen=True)
class Admission:
    """Outcome of the pre-response checks for one query."""

    identity: str
    query: str
    classification: ClassificationResult

    @property
    def blocked(self) -> bool:
        return self.classification.blocked


@dataclass
class PipelineEvent:
    """One server-sent event of a chat turn."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> bytes:
        return f"event: {self.type}\ndata: {json.dumps(self.data)}\n\n".encode()


def latest_user_message(messages: Sequence[ChatMessage]) -> str | None:
    """Return the content of the most recent user message."""
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return None


class TrustPipeline:
    """Runs chat turns through the guardrails, governors and post-response checks."""

    def __init__(
        self,
        responder: Responder,
        *,
        rate_limiter: RateLimiter | None = None,
        budget: DailyBudget | None = None,
        evaluator: QualityEvaluator | None = None,
        suggester: SuggestionGenerator | None = None,
        evaluation_logger: EvaluationLogger | None = None,
        rate_limit_enabled: bool | None = None,
        enable_evaluation: bool | None = None,
        evaluation_timeout: float | None = None,
        suggestion_timeout: float | None = None,
    ) -> None:
        """Initialize the pipeline.

        Components that are not supplied are built from settings. Model
        clients built here report their token usage to the daily budget.
        """
        settings = get_settings()
        self._responder = responder
        if rate_limiter is None:
            rate_limiter = RateLimiter(
                per_minute=settings.rate_limit_per_minute,
                per_hour=settings.rate_limit_per_hour,
            )
        if budget is None:
            budget = DailyBudget(
                daily_budget_usd=settings.daily_budget_usd,
                cost_per_million_tokens=settings.cost_per_million_tokens,
            )
        self.rate_limiter = rate_limiter
        self.budget = budget
        self.evaluator = evaluator or QualityEvaluator(on_usage=budget.record_token_usage)
        self.suggester = suggester or SuggestionGenerator(on_usage=budget.record_token_usage)
        self.evaluation_logger = evaluation_logger or EvaluationLogger()

        self._rate_limit_enabled = (
            settings.rate_limit_enabled if rate_limit_enabled is None else rate_limit_enabled
        )
        self._enable_evaluation = (
            settings.enable_evaluation if enable_evaluation is None else enable_evaluation
        )
        self._evaluation_timeout = evaluation_timeout or settings.evaluation_timeout
        self._suggestion_timeout = suggestion_timeout or settings.suggestion_timeout

    def admit(self, identity: str, messages: Sequence[ChatMessage]) -> Admission:
        """Run the prefilter and the usage governors for the latest query.

        Blocked queries count against the identity's rate windows but skip the
        budget check.

        Raises:
            ValueError: If the conversation has no user message.
            RateLimitExceeded: If the identity is over its minute or hour limit.
            BudgetExceeded: If today's spend reached the ceiling.
        """
        query = latest_user_message(messages)
        if query is None:
            raise ValueError("No user message found")

        classification = classify(query)
        if self._rate_limit_enabled:
            result = self.rate_limiter.acquire(identity)
            if not result.allowed:
                raise RateLimitExceeded(result, self.rate_limiter.get_headers(identity))

        if classification.blocked:
            return Admission(identity, query, classification)

        if self._rate_limit_enabled:
            status = self.budget.check_daily_budget()
            if not status.allowed:
                log.warning(
                    "budget_rejected",
                    identity=identity,
                    tokens_used=status.tokens_used,
                    estimated_cost=round(status.estimated_cost, 4),
                )
                raise BudgetExceeded(status)

        if classification.flag:
            log.debug("query_flagged", identity=identity)
        return Admission(identity, query, classification)

    def headers(self, identity: str) -> dict[str, str]:
        """Rate-limit headers to attach to the response."""
        return self.rate_limiter.get_headers(identity)

    async def stream(
        self,
        admission: Admission,
        messages: Sequence[ChatMessage],
    ) -> AsyncIterator[PipelineEvent]:
        """Produce the events of an admitted turn.

        Yields ``text_delta`` events while the answer streams, a ``done``
        event, then ``suggested_queries`` and ``evaluation`` in whichever
        order they finish. A responder failure ends the turn with a single
        ``error`` event.
        """
        if admission.blocked:
            yield PipelineEvent("text_delta", {"text": admission.classification.reframe})
            yield PipelineEvent(
                "done", {"usage": {}, "evaluating": False, "suggestionsLoading": False}
            )
            return

        parts: list[str] = []
        final: ResponderChunk | None = None
        try:
            async for chunk in self._responder.stream(
                messages, system_prefix=admission.classification.flag
            ):
                if chunk.done:
                    final = chunk
                    continue
                if chunk.text:
                    parts.append(chunk.text)
                    yield PipelineEvent("text_delta", {"text": chunk.text})
        except Exception:
            log.exception("responder_failed", identity=admission.identity)
            yield PipelineEvent("error", {"error": "An unexpected error occurred"})
            return

        final = final or ResponderChunk(done=True)
        self.budget.record_token_usage(final.input_tokens, final.output_tokens)

        answer = "".join(parts)
        evaluating = self._enable_evaluation and self.evaluator.available
        yield PipelineEvent(
            "done",
            {
                "usage": {
                    "inputTokens": final.input_tokens,
                    "outputTokens": final.output_tokens,
                },
                "evaluating": evaluating,
                "suggestionsLoading": True,
            },
        )

        tasks = [asyncio.create_task(self._suggest(admission.query, answer, final))]
        if evaluating:
            tasks.append(asyncio.create_task(self._evaluate(admission.query, answer, final)))

        try:
            for next_done in asyncio.as_completed(tasks):
                event = await next_done
                if event is not None:
                    yield event
        finally:
            for task in tasks:
                task.cancel()

    async def _suggest(self, query: str, answer: str, final: ResponderChunk) -> PipelineEvent:
        tool_names = [tc.name for tc in final.tool_calls]
        suggestions = None
        try:
            suggestions = await asyncio.wait_for(
                self.suggester.generate(query, answer, tool_names),
                timeout=self._suggestion_timeout,
            )
        except TimeoutError:
            log.warning("suggestions_timed_out", timeout=self._suggestion_timeout)
        except Exception as e:
            log.warning("suggestions_failed", error=str(e))

        if not suggestions:
            suggestions = generate_fallback(final.tool_results, answer)
        return PipelineEvent(
            "suggested_queries", {"suggestions": [s.to_dict() for s in suggestions]}
        )

    async def _evaluate(
        self, query: str, answer: str, final: ResponderChunk
    ) -> PipelineEvent | None:
        tool_context = "\n".join(final.tool_results)[:_EVALUATION_TOOL_CONTEXT_LIMIT]
        try:
            evaluation = await asyncio.wait_for(
                self.evaluator.evaluate(query, answer, tool_context or None),
                timeout=self._evaluation_timeout,
            )
        except TimeoutError:
            log.warning("evaluation_timed_out", timeout=self._evaluation_timeout)
            return None
        except Exception as e:
            log.warning("evaluation_failed", error=str(e))
            return None

        if evaluation is None:
            return None

        auto_logged = should_auto_log(evaluation)
        if auto_logged:
            self.evaluation_logger.log_background(
                query, answer, final.tool_calls, evaluation, LogType.AUTO
            )

        evaluation = evaluation.model_copy(update={"auto_logged": auto_logged})
        return PipelineEvent("evaluation", evaluation.model_dump(mode="json"))
