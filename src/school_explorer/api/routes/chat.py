"""Chat endpoint.

The answer is streamed as server-sent events::

    event: text_delta
    data: {"text": "..."}

    event: done
    data: {"usage": {...}, "evaluating": true, "suggestionsLoading": true}

followed by ``suggested_queries`` and ``evaluation`` events once the
post-response checks finish.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import Any

from aiohttp import web

from school_explorer.logging import get_logger
from school_explorer.pipeline import GovernorRejection, RateLimitExceeded, TrustPipeline
from school_explorer.responder import ChatMessage

log = get_logger("school_explorer.api.routes.chat")

_ROLES = frozenset({"user", "assistant"})
_MAX_MESSAGE_LENGTH = 10_000

_SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_client_identity(request: web.Request) -> str:
    """Identify the caller by the first forwarded hop, the real IP header, or ``unknown``."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.headers.get("X-Real-IP") or "unknown"


def parse_messages(data: Any) -> list[ChatMessage]:
    """Validate a ``{"messages": [{role, content}]}`` body.

    Raises:
        ValueError: With a client-facing message when the body is unusable.
    """
    if not isinstance(data, dict):
        raise ValueError("Invalid JSON body")
    raw = data.get("messages")
    if not isinstance(raw, list) or not raw:
        raise ValueError("Messages are required")

    messages: list[ChatMessage] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError("Each message must be an object")
        role = item.get("role")
        content = item.get("content")
        if role not in _ROLES or not isinstance(content, str):
            raise ValueError("Each message needs a role of user or assistant and text content")
        if len(content) > _MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message too long (max {_MAX_MESSAGE_LENGTH} chars)")
        messages.append(ChatMessage(role=role, content=content))
    return messages


async def handle_chat(request: web.Request) -> web.StreamResponse:
    """POST /api/v1/chat: run a chat turn and stream it back as SSE."""
    pipeline: TrustPipeline = request.app["pipeline"]
    identity = get_client_identity(request)

    try:
        data = await request.json()
    except Exception:
        return web.json_response({"error": "Invalid JSON body"}, status=400)

    try:
        messages = parse_messages(data)
        admission = pipeline.admit(identity, messages)
    except RateLimitExceeded as e:
        return web.json_response(
            {"error": e.message, "code": e.code, "retryAfter": e.retry_after},
            status=e.status_code,
            headers=e.headers,
        )
    except GovernorRejection as e:
        return web.json_response({"error": e.message, "code": e.code}, status=e.status_code)
    except ValueError as e:
        return web.json_response({"error": str(e)}, status=400)

    response = web.StreamResponse(
        status=200,
        headers={**_SSE_HEADERS, **pipeline.headers(identity)},
    )
    await response.prepare(request)

    try:
        async with aclosing(pipeline.stream(admission, messages)) as events:
            async for event in events:
                await response.write(event.encode())
    except ConnectionResetError:
        log.info("chat_client_disconnected", identity=identity)
        return response

    await response.write_eof()
    return response
