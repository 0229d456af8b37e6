"""User flag endpoint: lets a reader send a response to human review."""

from __future__ import annotations

from aiohttp import web
from pydantic import ValidationError

from school_explorer.evaluation import (
    DimensionScores,
    EvaluationResult,
    calculate_weighted_score,
)
from school_explorer.logging import get_logger
from school_explorer.pipeline import TrustPipeline
from school_explorer.review import LogType, ToolCall

log = get_logger("school_explorer.api.routes.flag")

MAX_FEEDBACK_LENGTH = 1000


def placeholder_evaluation() -> EvaluationResult:
    """Evaluation logged for a flag that arrives without one."""
    return EvaluationResult(
        scores=DimensionScores(),
        weighted_score=0,
        flags=["User flagged - no evaluation available"],
        summary="Response flagged by user without evaluation scores",
    )


def rescore(evaluation: EvaluationResult) -> EvaluationResult:
    """Recompute a client-supplied evaluation's weighted score from its scores.

    The number the client sent is kept as ``judge_weighted_score``.
    """
    weighted = calculate_weighted_score(evaluation.scores)
    if weighted == evaluation.weighted_score:
        return evaluation
    log.info(
        "flag_score_recomputed",
        client_score=evaluation.weighted_score,
        weighted_score=weighted,
    )
    return evaluation.model_copy(
        update={"weighted_score": weighted, "judge_weighted_score": evaluation.weighted_score}
    )


async def handle_flag(request: web.Request) -> web.Response:
    """POST /api/v1/flag

    Body: ``{user_query, assistant_response, feedback, tool_calls?, evaluation?}``.
    The entry is logged in the background; the caller only learns whether
    the request was accepted.
    """
    pipeline: TrustPipeline = request.app["pipeline"]

    try:
        data = await request.json()
    except Exception:
        return web.json_response({"error": "Invalid JSON body"}, status=400)
    if not isinstance(data, dict):
        return web.json_response({"error": "Invalid JSON body"}, status=400)

    feedback = data.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        return web.json_response({"error": "Feedback is required"}, status=400)

    user_query = data.get("user_query")
    assistant_response = data.get("assistant_response")
    if not isinstance(user_query, str) or not user_query:
        return web.json_response(
            {"error": "user_query and assistant_response are required"}, status=400
        )
    if not isinstance(assistant_response, str) or not assistant_response:
        return web.json_response(
            {"error": "user_query and assistant_response are required"}, status=400
        )

    try:
        tool_calls = [ToolCall.model_validate(tc) for tc in data.get("tool_calls") or []]
        raw_evaluation = data.get("evaluation")
        evaluation = (
            rescore(EvaluationResult.model_validate(raw_evaluation))
            if raw_evaluation
            else placeholder_evaluation()
        )
    except (ValidationError, TypeError) as e:
        log.info("flag_rejected", error=str(e))
        return web.json_response({"error": "Invalid tool_calls or evaluation"}, status=400)

    pipeline.evaluation_logger.log_background(
        user_query,
        assistant_response,
        tool_calls,
        evaluation,
        LogType.USER_FLAGGED,
        user_feedback=feedback.strip()[:MAX_FEEDBACK_LENGTH],
    )
    log.info("response_flagged", weighted_score=evaluation.weighted_score)

    return web.json_response({"success": True})
