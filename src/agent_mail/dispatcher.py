"""Command dispatcher - routes decoded commands to handlers by name.

Dispatch is gated by the agent state: handlers can only be registered
while the activating state (``connected``) holds, and every registration
is dropped as soon as the state changes. Handlers already running when
that happens finish normally; they do not re-check the state.

Usage:
    dispatcher = CommandDispatcher(registry, state_machine, emitter)

    def on_state(state):
        if state is AgentState.CONNECTED:
            dispatcher.register_handler("send-mail", handle_send_mail)

    state_machine.on_transition(on_state)
    event = await dispatcher.dispatch(raw_command)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .emitter import EventEmitter
from .errors import (
    AlreadyRegisteredError,
    CorrelationError,
    DispatcherInactiveError,
    UnroutableCommandError,
    ValidationError,
)
from .protocol import Ack, CommandMessage, EventMessage, RawCommand
from .registry import TypeRegistry
from .state import AgentState, StateMachine

logger = logging.getLogger(__name__)


class CommandContext:
    """What a handler sees: the decoded command and a way to publish events."""

    def __init__(self, command: CommandMessage, emitter: EventEmitter) -> None:
        self.command = command
        self._emitter = emitter

    def event(self, name: str, **fields: Any) -> EventMessage:
        """Build an event correlated to this command."""
        return EventMessage.create(name, fields, correlation_id=self.command.id)

    async def send_event(self, event: EventMessage) -> Ack:
        """Publish an event produced for this command."""
        if event.correlation_id != self.command.id:
            raise CorrelationError(
                f"Event {event.name} carries correlation_id={event.correlation_id!r}, "
                f"expected {self.command.id!r}"
            )
        return await self._emitter.publish(event)


Handler = Callable[[CommandContext], Awaitable[EventMessage | None]]


@dataclass(frozen=True)
class HandlerRegistration:
    name: str
    handler: Handler


class CommandDispatcher:
    """Maps command names to handlers while dispatch is active."""

    def __init__(
        self,
        registry: TypeRegistry,
        state_machine: StateMachine,
        emitter: EventEmitter,
        activate_on: AgentState = AgentState.CONNECTED,
    ) -> None:
        self._registry = registry
        self._emitter = emitter
        self._activate_on = activate_on
        self._handlers: dict[str, HandlerRegistration] = {}
        self._lock = threading.Lock()
        self._state_machine = state_machine
        self._active = state_machine.state is activate_on
        state_machine.on_transition(self._on_state_change)

    @property
    def active(self) -> bool:
        return self._active

    def activate_on(self, state: AgentState) -> None:
        """Select the state that enables dispatch.

        Takes effect immediately against the current state; handlers are
        dropped if dispatch becomes inactive.
        """
        with self._lock:
            self._activate_on = state
            self._active = self._state_machine.state is state
            if not self._active:
                self._handlers.clear()

    def registered_names(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    def _on_state_change(self, state: AgentState) -> None:
        with self._lock:
            if state is self._activate_on:
                self._active = True
                return
            dropped = len(self._handlers)
            self._handlers.clear()
            self._active = False
        if dropped:
            logger.info(f"Dispatch deactivated on {state.value}, cleared {dropped} handler(s)")

    def register_handler(self, name: str, handler: Handler) -> HandlerRegistration:
        """Register the handler for a command name.

        Raises:
            DispatcherInactiveError: If dispatch is not active
            UnknownTypeError: If ``name`` is not a registered message type
            AlreadyRegisteredError: If a handler exists for ``name``
        """
        self._registry.get_type(name)
        with self._lock:
            if not self._active:
                raise DispatcherInactiveError(
                    f"Cannot register handler for '{name}': dispatch is not active"
                )
            if name in self._handlers:
                raise AlreadyRegisteredError(f"Handler already registered for '{name}'")
            registration = HandlerRegistration(name=name, handler=handler)
            self._handlers[name] = registration
        logger.debug(f"Registered handler for {name}")
        return registration

    def _decode(self, raw: RawCommand) -> CommandMessage:
        fields = self._registry.decode(raw.name, raw.payload)
        payload_id = raw.payload.get("id")
        if not isinstance(payload_id, str):
            payload_id = None

        if raw.id is not None and payload_id is not None and raw.id != payload_id:
            raise ValidationError(
                f"Command id mismatch: envelope id {raw.id!r} != payload id {payload_id!r}"
            )
        command_id = raw.id if raw.id is not None else payload_id
        if command_id is None:
            return CommandMessage(name=raw.name, fields=fields)
        return CommandMessage(name=raw.name, id=command_id, fields=fields)

    async def dispatch(self, raw: RawCommand) -> EventMessage | None:
        """Decode a command and run its handler.

        The event returned by the handler, if any, is published before
        returning it.

        Raises:
            UnknownTypeError, ValidationError: If the command cannot be decoded
            UnroutableCommandError: If no handler is registered for it
            Any error raised by the handler or by publishing its event
        """
        command = self._decode(raw)

        with self._lock:
            registration = self._handlers.get(command.name)
        if registration is None:
            raise UnroutableCommandError(f"No handler registered for '{command.name}'")

        logger.debug(f"Dispatching {command.name} (id={command.id})")
        ctx = CommandContext(command, self._emitter)
        event = await registration.handler(ctx)

        if event is not None:
            await ctx.send_event(event)
        return event
