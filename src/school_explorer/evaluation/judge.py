"""LLM-as-judge quality evaluation.

Scores a completed assistant turn on five weighted rubric dimensions with a
single Claude call. Runs after the response has been delivered, so every
failure degrades to ``None`` instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import anthropic

from school_explorer.config import get_settings
from school_explorer.evaluation.models import DimensionScores, EvaluationResult
from school_explorer.evaluation.scoring import calculate_weighted_score
from school_explorer.logging import get_logger
from school_explorer.utils.text import extract_json_object

log = get_logger("school_explorer.evaluation.judge")

UsageCallback = Callable[[int, int], None]

_EVALUATION_PROMPT = """\
You are grading an AI assistant's answer about NYC school quality data. Score \
the answer on five dimensions.

## Context

The assistant helps people explore NYC School Quality Report data responsibly. \
It should give context, acknowledge limitations, and avoid harmful patterns such \
as rankings or deficit framing.

## The Interaction

**User Query**: {user_query}

**Assistant Response**: {assistant_response}

**Tool Results Used** (if any): {tool_results}

## Scoring Dimensions

Rate each dimension from 1 to 5.

### 1. Factual Accuracy (weight 25%)
- 5: Every number matches the tool results, nothing invented
- 4: Minor rounding differences only
- 3: Some numbers slightly off, conclusions still valid
- 2: Notable errors that could mislead
- 1: Major errors or fabricated data

### 2. Context Inclusion (weight 20%)
- 5: Economic need, both Impact and Performance scores, sample size, data year
- 4: Most required context, small omissions
- 3: Some context, key elements missing
- 2: Minimal context, metrics shown in isolation
- 1: Raw numbers only

### 3. Limitation Acknowledgment (weight 20%)
- 5: Caveats specific to this finding, correlation vs causation noted
- 4: Sound but generic limitations
- 3: Brief mention of limitations
- 2: Overclaims or causal statements
- 1: Findings presented as definitive proof

### 4. Responsible Framing (weight 20%)
- 5: Asset-based language, several hypotheses where appropriate
- 4: Responsible with minor issues
- 3: Mixed framing
- 2: Deficit language or rankings without pushback
- 1: Harmful framing such as "failing schools" or demographic filtering

### 5. Query Relevance (weight 15%)
- 5: Answers the question directly with appropriate depth
- 4: Answers the question with minor tangents
- 3: Partially answers
- 2: Mostly off-topic or too brief
- 1: Does not address the query

## Output Format

Respond with JSON only:

{{"scores": {{"factual_accuracy": 1, "context_inclusion": 1, \
"limitation_acknowledgment": 1, "responsible_framing": 1, "query_relevance": 1}}, \
"weighted_score": 0, "flags": ["specific concern"], "summary": "one sentence assessment"}}

Compute weighted_score as (factual*25 + context*20 + limitations*20 + framing*20 \
+ relevance*15 - 100) / 4.
"""


class QualityEvaluator:
    """Claude-based judge for completed assistant turns."""

    def __init__(
        self,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 500,
        on_usage: UsageCallback | None = None,
    ) -> None:
        """Initialize the evaluator.

        Args:
            client: Pre-built Anthropic client (takes precedence).
            api_key: Anthropic API key; read from settings when omitted.
            model: Judge model name; read from settings when omitted.
            max_tokens: Completion budget for the judge reply.
            on_usage: Called with (input_tokens, output_tokens) after each call.
        """
        settings = get_settings()
        self._model = model or settings.judge_model
        self._max_tokens = max_tokens
        self._on_usage = on_usage

        if client is None:
            if api_key is None and settings.anthropic_api_key is not None:
                api_key = settings.anthropic_api_key.get_secret_value()
            if api_key:
                client = anthropic.AsyncAnthropic(api_key=api_key)
        self._client = client

    @property
    def available(self) -> bool:
        """Whether a judge client is configured."""
        return self._client is not None

    async def evaluate(
        self,
        user_query: str,
        assistant_response: str,
        tool_results: str | None = None,
    ) -> EvaluationResult | None:
        """Score an assistant turn.

        Args:
            user_query: The user's question.
            assistant_response: The full assistant answer.
            tool_results: Serialised tool output the answer was based on.

        Returns:
            An :class:`EvaluationResult`, or ``None`` when the judge is
            unavailable or its reply cannot be used.
        """
        if self._client is None:
            log.debug("evaluation_skipped", reason="no judge credentials")
            return None

        prompt = _EVALUATION_PROMPT.format(
            user_query=user_query,
            assistant_response=assistant_response,
            tool_results=tool_results or "None",
        )

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            log.warning("evaluation_failed", error=str(e), model=self._model)
            return None

        self._report_usage(response)

        text = _first_text_block(response)
        if text is None:
            log.warning("evaluation_unparseable", reason="no text content")
            return None

        return parse_judge_reply(text)

    def _report_usage(self, response: Any) -> None:
        usage = getattr(response, "usage", None)
        if self._on_usage is None or usage is None:
            return
        try:
            self._on_usage(
                int(getattr(usage, "input_tokens", 0) or 0),
                int(getattr(usage, "output_tokens", 0) or 0),
            )
        except Exception as e:
            log.warning("evaluation_usage_record_failed", error=str(e))


def parse_judge_reply(text: str) -> EvaluationResult | None:
    """Turn a judge reply into an :class:`EvaluationResult`.

    The weighted score is recomputed from the dimension scores; the judge's
    own arithmetic is kept only as ``judge_weighted_score``.
    """
    data = extract_json_object(text)
    if data is None:
        log.warning("evaluation_unparseable", reason="no JSON object in reply")
        return None

    raw_scores = data.get("scores")
    if not isinstance(raw_scores, dict):
        log.warning("evaluation_unparseable", reason="missing scores")
        return None

    try:
        scores = DimensionScores.model_validate(raw_scores)
        weighted = calculate_weighted_score(scores)
        judge_score = _as_int(data.get("weighted_score"))
        result = EvaluationResult(
            scores=scores,
            weighted_score=weighted,
            flags=data.get("flags"),
            summary=data.get("summary"),
            judge_weighted_score=judge_score,
        )
    except (ValueError, TypeError) as e:
        log.warning("evaluation_unparseable", reason=str(e))
        return None

    if judge_score is not None and judge_score != weighted:
        log.info("judge_score_recomputed", judge_score=judge_score, weighted_score=weighted)

    return result


def _first_text_block(response: Any) -> str | None:
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return str(getattr(block, "text", ""))
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None
