"""Gemini-powered contextual follow-up suggestions.

Generates three follow-up queries from the finished turn, then re-runs every
candidate through the query prefilter so nothing the assistant would refuse
to answer is ever offered as a suggestion.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from typing import Any

from google import genai  # type: ignore[attr-defined]

from school_explorer.config import get_settings
from school_explorer.guardrails import classify
from school_explorer.logging import get_logger
from school_explorer.suggestions.models import (
    MAX_SUGGESTION_LENGTH,
    MAX_SUGGESTIONS,
    SuggestedQuery,
    SuggestionCategory,
)
from school_explorer.utils.text import extract_json_object

log = get_logger("school_explorer.suggestions.generator")

# Suggestions need far less context than evaluation
_RESPONSE_CONTEXT_LIMIT = 2000

_SUGGESTIONS_PROMPT = """\
You are writing follow-up query suggestions for an NYC school data explorer. \
Based on the conversation, suggest 3 follow-ups that encourage deeper investigation.

## The Interaction

**User Query**: {user_query}

**Assistant Response**: {assistant_response}

**Tools Used**: {tools_used}

## Requirements

Write exactly 3 follow-up suggestions that:
1. Build on the specific content discussed (actual schools, boroughs, metrics or patterns)
2. Go deeper instead of repeating the question
3. Spread across categories: explore (discover patterns), compare (contrast schools or \
areas), explain (understand methodology), visualize (request charts)
4. Stay under {max_length} characters each

## Never suggest
- Rankings: "best schools", "worst schools", "top 10", "schools to avoid"
- Demographic filtering: anything about race or ethnicity percentages
- Deficit framing: "failing schools", "bad schools", "low-performing"
- Neighborhood bias: "good neighborhood schools", "safe area schools"
- Causal claims the data cannot support: "which schools have the best teachers"

## Frame responsibly
- Say "high student growth" rather than "best"
- Reference the Impact Score, not only the Performance Score
- Suggest exploring patterns, not rankings
- Encourage comparisons with citywide figures or similar schools

## Output

Return a JSON object with a "suggestions" array of exactly 3 items, each with \
"text" and "category".
"""

_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "suggestions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING"},
                    "category": {
                        "type": "STRING",
                        "enum": [c.value for c in SuggestionCategory],
                    },
                },
                "required": ["text", "category"],
            },
        },
    },
    "required": ["suggestions"],
}

UsageCallback = Callable[[int, int], None]


def validate_suggestions(suggestions: Sequence[SuggestedQuery]) -> list[SuggestedQuery]:
    """Drop every suggestion the prefilter would block as a user query."""
    valid: list[SuggestedQuery] = []
    for suggestion in suggestions:
        if classify(suggestion.text).blocked:
            log.warning("suggestion_filtered", text=suggestion.text)
            continue
        valid.append(suggestion)
    return valid


def parse_suggestions(payload: Any) -> list[SuggestedQuery] | None:
    """Convert a decoded ``{"suggestions": [...]}`` payload into suggestions.

    Items without text or with an unknown category are dropped. Returns
    ``None`` when the payload does not have the expected shape.
    """
    if not isinstance(payload, dict):
        return None
    items = payload.get("suggestions")
    if not isinstance(items, list):
        return None

    suggestions: list[SuggestedQuery] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        try:
            category = SuggestionCategory(item.get("category"))
        except ValueError:
            continue
        suggestions.append(SuggestedQuery(text.strip()[:MAX_SUGGESTION_LENGTH], category))
    return suggestions


class SuggestionGenerator:
    """Follow-up suggestion generator backed by Gemini."""

    def __init__(
        self,
        *,
        client: genai.Client | None = None,
        api_key: str | None = None,
        model: str | None = None,
        on_usage: UsageCallback | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            client: Pre-built Gemini client (takes precedence).
            api_key: Gemini API key; read from settings when omitted.
            model: Gemini model name; read from settings when omitted.
            on_usage: Called with (input_tokens, output_tokens) after each call.
        """
        settings = get_settings()
        self._model = model or settings.suggestion_model
        self._on_usage = on_usage

        if client is None:
            if api_key is None and settings.gemini_api_key is not None:
                api_key = settings.gemini_api_key.get_secret_value()
            if api_key:
                client = genai.Client(api_key=api_key)
        self._client = client

    @property
    def available(self) -> bool:
        """Whether a Gemini client is configured."""
        return self._client is not None

    async def generate(
        self,
        user_query: str,
        assistant_response: str,
        tool_context: Sequence[str] = (),
    ) -> list[SuggestedQuery] | None:
        """Generate validated follow-up suggestions.

        Args:
            user_query: The user's question.
            assistant_response: The assistant answer (truncated for the prompt).
            tool_context: Tool names or short summaries of what was looked up.

        Returns:
            Up to three suggestions, or ``None`` when nothing usable was
            produced (the caller should fall back to :func:`generate_fallback`).
        """
        if self._client is None:
            log.debug("suggestions_skipped", reason="no Gemini credentials")
            return None

        prompt = _SUGGESTIONS_PROMPT.format(
            user_query=user_query,
            assistant_response=assistant_response[:_RESPONSE_CONTEXT_LIMIT],
            tools_used=", ".join(tool_context) if tool_context else "None",
            max_length=MAX_SUGGESTION_LENGTH,
        )

        def _sync_generate() -> Any:
            return self._client.models.generate_content(  # type: ignore[union-attr]
                model=self._model,
                contents=prompt,
                config={
                    "response_mime_type": "application/json",
                    "response_schema": _RESPONSE_SCHEMA,
                },
            )

        try:
            response = await asyncio.to_thread(_sync_generate)
        except Exception as e:
            log.warning("suggestion_generation_failed", error=str(e), model=self._model)
            return None

        self._report_usage(response)

        text = getattr(response, "text", None)
        if not text:
            log.warning("suggestion_generation_empty")
            return None

        try:
            payload: Any = json.loads(text)
        except ValueError:
            payload = extract_json_object(text)

        suggestions = parse_suggestions(payload)
        if suggestions is None:
            log.warning("suggestion_generation_unparseable")
            return None

        validated = validate_suggestions(suggestions)
        if not validated:
            log.warning("suggestions_all_filtered", generated=len(suggestions))
            return None

        return validated[:MAX_SUGGESTIONS]

    def _report_usage(self, response: Any) -> None:
        usage = getattr(response, "usage_metadata", None)
        if self._on_usage is None or usage is None:
            return
        try:
            self._on_usage(
                int(getattr(usage, "prompt_token_count", 0) or 0),
                int(getattr(usage, "candidates_token_count", 0) or 0),
            )
        except Exception as e:
            log.warning("suggestion_usage_record_failed", error=str(e))
