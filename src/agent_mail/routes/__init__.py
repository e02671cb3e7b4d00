"""HTTP routes."""

from .commands import command_routes
from .events import event_routes
from .health import health_routes

__all__ = [
    "command_routes",
    "event_routes",
    "health_routes",
]
