"""Health check endpoint."""

from aiohttp import web

from school_explorer import __version__


async def handle_health(request: web.Request) -> web.Response:
    """GET /api/v1/health"""
    pipeline = request.app["pipeline"]
    return web.json_response(
        {
            "status": "healthy",
            "version": __version__,
            "evaluation": pipeline.evaluator.available,
            "suggestions": pipeline.suggester.available,
        }
    )
