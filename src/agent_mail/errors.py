"""Error hierarchy for the agent.

Every error carries a stable ``code`` so hosts can report per-command
failures (error frames on stdio, JSON bodies over HTTP) without
depending on exception class names.
"""

from __future__ import annotations

from typing import Any


class AgentMailError(Exception):
    """Base class for all agent errors."""

    code = "AGENT_ERROR"


# =============================================================================
# Registry
# =============================================================================


class RegistryError(AgentMailError):
    """Schema/type registry error."""

    code = "REGISTRY_ERROR"


class DuplicateNameError(RegistryError):
    """A schema or type with the same name is already registered."""

    code = "DUPLICATE_NAME"


class UnknownSchemaError(RegistryError):
    """A type refers to a schema that was never registered."""

    code = "UNKNOWN_SCHEMA"


class UnknownTypeError(RegistryError):
    """No type is registered under the given message name."""

    code = "UNKNOWN_TYPE"


class RegistryFrozenError(RegistryError):
    """Registration attempted after startup completed."""

    code = "REGISTRY_FROZEN"


class SchemaDefinitionError(RegistryError):
    """A schema definition could not be parsed."""

    code = "SCHEMA_DEFINITION"


class ValidationError(RegistryError):
    """A payload does not match the schema of its message type."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


# =============================================================================
# State
# =============================================================================


class StateError(AgentMailError):
    code = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """The transport reported a transition the lifecycle does not allow."""

    code = "INVALID_TRANSITION"


class TransitionCallbackError(StateError):
    """State callbacks raised, or a deferred notification was rejected, during delivery."""

    code = "TRANSITION_CALLBACK"

    def __init__(self, state: Any, errors: list[BaseException]) -> None:
        super().__init__(f"{len(errors)} callback(s) failed on transition to {state}: {errors[0]}")
        self.state = state
        self.errors = errors


# =============================================================================
# Dispatch
# =============================================================================


class DispatchError(AgentMailError):
    code = "DISPATCH_ERROR"


class UnroutableCommandError(DispatchError):
    """No handler is registered for the command name."""

    code = "UNROUTABLE_COMMAND"


class AlreadyRegisteredError(DispatchError):
    """A handler is already registered for the command name."""

    code = "ALREADY_REGISTERED"


class DispatcherInactiveError(DispatchError):
    """Handler registration attempted while dispatch is not active."""

    code = "DISPATCHER_INACTIVE"


class CorrelationError(DispatchError):
    """An event does not carry the id of the command that produced it."""

    code = "CORRELATION_ERROR"


# =============================================================================
# Handlers
# =============================================================================


class HandlerError(AgentMailError):
    code = "HANDLER_ERROR"


class UnsupportedAuthenticationError(HandlerError):
    """The mail server URI carries credentials, which are not supported."""

    code = "UNSUPPORTED_AUTHENTICATION"


class TransportError(HandlerError):
    """The mail server could not be reached or timed out."""

    code = "TRANSPORT_ERROR"


class ProtocolStepError(HandlerError):
    """A step of the mail protocol exchange failed.

    The underlying error is chained as ``__cause__`` and its message is
    kept verbatim.
    """

    code = "PROTOCOL_STEP_ERROR"

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"{step} failed: {cause}")
        self.step = step


# =============================================================================
# Events, startup, configuration
# =============================================================================


class PublishError(AgentMailError):
    """The publish capability rejected an event.

    Raised after the handler's side effect happened: the mail may have been
    sent even though its completion event was not delivered.
    """

    code = "PUBLISH_ERROR"


class StartupError(AgentMailError):
    """The agent core could not be built."""

    code = "STARTUP_ERROR"


class ConfigError(AgentMailError):
    """Invalid or unknown configuration option."""

    code = "CONFIG_ERROR"
