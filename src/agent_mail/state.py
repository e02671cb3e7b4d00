"""Agent lifecycle state machine.

The transport layer reports its state; the machine validates the
transition and delivers it to subscribers, synchronously and in
registration order.

    disconnected -> connecting -> connected -> closing -> closed
         ^              |             |           |
         +--------------+-------------+-----------+   (transport failure)

Only ``closing -> closed`` is driven by the agent itself, through
``complete_shutdown()``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from enum import Enum

from .errors import InvalidTransitionError, TransitionCallbackError

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    """Lifecycle states reported by the transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.DISCONNECTED: frozenset({AgentState.CONNECTING, AgentState.CLOSING}),
    AgentState.CONNECTING: frozenset(
        {AgentState.CONNECTED, AgentState.DISCONNECTED, AgentState.CLOSING}
    ),
    AgentState.CONNECTED: frozenset({AgentState.CLOSING, AgentState.DISCONNECTED}),
    AgentState.CLOSING: frozenset({AgentState.CLOSED, AgentState.DISCONNECTED}),
    AgentState.CLOSED: frozenset(),
}

StateCallback = Callable[[AgentState], None]


class StateMachine:
    """Holds the current AgentState and notifies subscribers on change.

    Notifications are serialized. A notification issued while another one
    is being delivered (from a callback, or from another thread) is queued
    and processed once the current delivery finishes.
    """

    def __init__(self, initial: AgentState = AgentState.DISCONNECTED) -> None:
        self._state = initial
        self._callbacks: list[StateCallback] = []
        self._pending: deque[AgentState] = deque()
        self._lock = threading.Lock()
        self._delivering = False

    @property
    def state(self) -> AgentState:
        return self._state

    def on_transition(self, callback: StateCallback) -> Callable[[], None]:
        """Register a callback invoked with the new state on every transition.

        Returns:
            Unsubscribe function
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, state: AgentState | str) -> None:
        """Process a state notification from the transport.

        Raises:
            InvalidTransitionError: If the transition is not allowed
            TransitionCallbackError: If subscribers raised during delivery, or
                a deferred notification was rejected (the remaining deferred
                notifications are still processed)
        """
        state = AgentState(state)

        with self._lock:
            self._pending.append(state)
            if self._delivering:
                logger.debug(f"Deferring notification {state.value}")
                return
            self._delivering = True

        failures: list[BaseException] = []
        failed_state: AgentState | None = None
        rejected: InvalidTransitionError | None = None
        first = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._delivering = False
                        break
                    next_state = self._pending.popleft()
                errors: list[BaseException] = []
                try:
                    errors = self._apply(next_state)
                except InvalidTransitionError as e:
                    if first:
                        rejected = e
                    else:
                        # Deferred notification: report it, keep draining
                        logger.warning(f"Dropping deferred notification: {e}")
                        errors = [e]
                first = False
                if errors and not failures:
                    failed_state = next_state
                failures.extend(errors)
        except BaseException:
            with self._lock:
                self._pending.clear()
                self._delivering = False
            raise

        if rejected is not None:
            raise rejected
        if failures:
            raise TransitionCallbackError(failed_state, failures)

    def complete_shutdown(self) -> None:
        """Finish a shutdown: ``closing -> closed``."""
        if self._state is not AgentState.CLOSING:
            raise InvalidTransitionError(
                f"Shutdown can only complete from closing, current state is {self._state.value}"
            )
        self.notify(AgentState.CLOSED)

    def _apply(self, state: AgentState) -> list[BaseException]:
        previous = self._state
        if state is previous:
            logger.debug(f"Ignoring repeated state notification: {state.value}")
            return []
        if state not in TRANSITIONS[previous]:
            raise InvalidTransitionError(f"Invalid transition: {previous.value} -> {state.value}")

        self._state = state
        logger.info(f"Agent state: {previous.value} -> {state.value}")

        errors: list[BaseException] = []
        for callback in list(self._callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.exception(f"State callback failed on {state.value}: {e}")
                errors.append(e)
        return errors
