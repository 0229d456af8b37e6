"""Chat responders that produce the assistant's answer for a turn."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import anthropic

from school_explorer.config import get_settings
from school_explorer.logging import get_logger
from school_explorer.review.models import ToolCall

log = get_logger("school_explorer.responder")

DEFAULT_SYSTEM_PROMPT = """\
You help people explore NYC School Quality Report data. Always give context: \
economic need, both the Impact Score and the Performance Score, and the data \
year. Acknowledge the limits of the data and never present correlation as \
causation. Do not rank schools or use deficit language such as "failing \
schools"; describe patterns and encourage comparisons with similar schools.
"""


@dataclass
class ChatMessage:
    """One message of the conversation sent by the client."""

    role: str
    content: str


@dataclass
class ResponderChunk:
    """A piece of a streamed answer.

    Text chunks carry ``text``; the final chunk has ``done=True`` and carries
    the tool activity and token usage of the whole turn.
    """

    text: str = ""
    done: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class Responder(Protocol):
    """Anything that can stream an answer for a conversation."""

    def stream(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_prefix: str | None = None,
    ) -> AsyncIterator[ResponderChunk]: ...


class AnthropicResponder:
    """Streams answers from the Claude Messages API."""

    def __init__(
        self,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        api_key: str | None = None,
        model: str | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 4096,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.chat_model
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens

        if client is None:
            if api_key is None and settings.anthropic_api_key is not None:
                api_key = settings.anthropic_api_key.get_secret_value()
            client = anthropic.AsyncAnthropic(api_key=api_key)
        self._client = client

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_prefix: str | None = None,
    ) -> AsyncIterator[ResponderChunk]:
        """Stream the answer, ending with a ``done`` chunk that carries usage.

        Args:
            messages: The conversation so far, oldest first.
            system_prefix: Guidance prepended to the system prompt (used for
                queries the prefilter flagged).
        """
        system = self._system_prompt
        if system_prefix:
            system = f"{system_prefix}\n\n{system}"

        async with self._client.messages.stream(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system,
            messages=[
                {"role": m.role, "content": m.content}  # type: ignore[misc]
                for m in messages
            ],
        ) as stream:
            async for text in stream.text_stream:
                yield ResponderChunk(text=text)

            final = await stream.get_final_message()

        log.debug(
            "responder_finished",
            model=self._model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
        )
        yield ResponderChunk(
            done=True,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
        )
