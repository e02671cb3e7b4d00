"""HTTP host application.

Creates the Starlette ASGI application around one MailAgent:
- /health - Agent identity and lifecycle state
- /command - Dispatch a command (POST)
- /state - Transport state notification (POST)
- /event - SSE stream of published events

The application reports ``connecting``/``connected`` on startup and
shuts the agent down with the server.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.routing import Route

from .agent import create_agent
from .bus import EventBroadcaster
from .config import AgentConfig
from .core import Resources
from .mail import MailTransport
from .routes import command_routes, event_routes, health_routes
from .state import AgentState


def create_app(
    config: AgentConfig | None = None,
    transport: MailTransport | None = None,
    resources: Resources | None = None,
) -> Starlette:
    """Create the agent application.

    Raises:
        StartupError: If the agent cannot be built
    """
    broadcaster = EventBroadcaster()
    agent = create_agent(
        publish=broadcaster.publish,
        config=config,
        transport=transport,
        resources=resources,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        agent.notify(AgentState.CONNECTING)
        agent.notify(AgentState.CONNECTED)
        try:
            yield
        finally:
            agent.shutdown()

    routes: list[Route] = []
    routes.extend(health_routes)
    routes.extend(command_routes)
    routes.extend(event_routes)

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.agent = agent
    app.state.broadcaster = broadcaster
    return app
