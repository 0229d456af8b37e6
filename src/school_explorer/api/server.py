"""aiohttp server for the school explorer chat API."""

from __future__ import annotations

import asyncio
import contextlib

from aiohttp import web

from school_explorer.api.routes.chat import handle_chat
from school_explorer.api.routes.flag import handle_flag
from school_explorer.api.routes.health import handle_health
from school_explorer.config import get_settings
from school_explorer.logging import get_logger, setup_logging
from school_explorer.pipeline import TrustPipeline

log = get_logger("school_explorer.api.server")


def create_app(pipeline: TrustPipeline, *, sweep_interval: float | None = None) -> web.Application:
    """Create and configure the aiohttp application.

    Args:
        pipeline: The trust pipeline that handles chat turns.
        sweep_interval: Seconds between sweeps of expired rate windows.
            Defaults to ``rate_limit_sweep_interval`` from settings.
    """
    app = web.Application()

    app["pipeline"] = pipeline
    app["sweep_interval"] = sweep_interval or get_settings().rate_limit_sweep_interval

    app.on_startup.append(_start_background)
    app.on_cleanup.append(_stop_background)

    app.router.add_get("/api/v1/health", handle_health)
    app.router.add_post("/api/v1/chat", handle_chat)
    app.router.add_post("/api/v1/flag", handle_flag)

    return app


async def _start_background(app: web.Application) -> None:
    pipeline: TrustPipeline = app["pipeline"]
    app["rate_limit_sweeper"] = asyncio.create_task(
        pipeline.rate_limiter.run_sweeper(app["sweep_interval"])
    )
    log.debug("rate_limit_sweeper_started", interval=app["sweep_interval"])


async def _stop_background(app: web.Application) -> None:
    sweeper: asyncio.Task[None] | None = app.get("rate_limit_sweeper")
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await app["pipeline"].evaluation_logger.close()


async def run_server(pipeline: TrustPipeline, host: str, port: int) -> None:
    """Serve the API until cancelled."""
    runner = web.AppRunner(create_app(pipeline))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("api_started", host=host, port=port)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()
        log.info("api_stopped")


def main(host: str | None = None, port: int | None = None) -> None:
    """Main entry point for the chat API service."""
    from school_explorer.responder import AnthropicResponder

    setup_logging()
    settings = get_settings()

    if settings.anthropic_api_key is None:
        log.error("missing_anthropic_api_key", hint="set ANTHROPIC_API_KEY")
        raise SystemExit(1)

    pipeline = TrustPipeline(AnthropicResponder())

    try:
        asyncio.run(run_server(pipeline, host or settings.api_host, port or settings.api_port))
    except KeyboardInterrupt:
        log.info("api_shutdown")


if __name__ == "__main__":
    main()
