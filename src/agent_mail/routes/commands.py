"""Command and state endpoints.

POST /command dispatches one command and returns the event it produced.
POST /state forwards a transport state notification.

Per-command failures are returned as JSON error bodies with a status
code chosen by error kind. A 500 with code PUBLISH_ERROR means the mail
may have been sent although its completion event was not published.
"""

import json
import logging
from typing import Any

import pydantic
from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..errors import (
    AgentMailError,
    InvalidTransitionError,
    ProtocolStepError,
    TransportError,
    UnknownTypeError,
    UnroutableCommandError,
    UnsupportedAuthenticationError,
    ValidationError,
)
from ..protocol import RawCommand
from ..state import AgentState

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: list[tuple[type[AgentMailError], int]] = [
    (ValidationError, 422),
    (UnknownTypeError, 404),
    (UnroutableCommandError, 503),
    (UnsupportedAuthenticationError, 501),
    (TransportError, 502),
    (ProtocolStepError, 502),
    (InvalidTransitionError, 409),
]


class StateRequest(BaseModel):
    state: AgentState


def _error_response(code: str, error: str, status: int, correlation_id: Any = None) -> JSONResponse:
    return JSONResponse(
        {"error": error, "code": code, "correlation_id": correlation_id},
        status_code=status,
    )


def _status_for(error: AgentMailError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid JSON: {e}") from e


async def dispatch_command(request: Request) -> JSONResponse:
    """Dispatch a command and return its event."""
    try:
        raw = RawCommand.model_validate(await _read_json(request))
    except (ValueError, pydantic.ValidationError) as e:
        return _error_response("PARSE_ERROR", f"Invalid command: {e}", 400)

    correlation_id = raw.id or raw.payload.get("id")
    agent = request.app.state.agent
    try:
        event = await agent.dispatch(raw)
    except AgentMailError as e:
        logger.warning(f"Command {raw.name} (id={correlation_id}) failed: {e}")
        return _error_response(e.code, str(e), _status_for(e), correlation_id)
    except Exception as e:
        logger.exception(f"Error handling command {correlation_id}: {e}")
        return _error_response("HANDLER_ERROR", str(e), 500, correlation_id)

    return JSONResponse({"event": event.model_dump() if event is not None else None})


async def notify_state(request: Request) -> JSONResponse:
    """Forward a state notification to the agent."""
    try:
        body = StateRequest.model_validate(await _read_json(request))
    except (ValueError, pydantic.ValidationError) as e:
        return _error_response("PARSE_ERROR", f"Invalid state notification: {e}", 400)

    agent = request.app.state.agent
    try:
        agent.notify(body.state)
    except AgentMailError as e:
        return _error_response(e.code, str(e), _status_for(e))

    return JSONResponse({"state": agent.state.value})


command_routes = [
    Route("/command", dispatch_command, methods=["POST"]),
    Route("/state", notify_state, methods=["POST"]),
]
