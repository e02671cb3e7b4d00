"""Health check endpoint."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint, reporting the agent state."""
    agent = request.app.state.agent
    manifest = agent.core.manifest
    return JSONResponse(
        {
            "status": "ok",
            "agent": manifest.name,
            "version": manifest.version,
            "state": agent.state.value,
        }
    )


health_routes = [
    Route("/health", health_check, methods=["GET"]),
]
