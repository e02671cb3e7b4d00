"""Event emitter.

Validates outgoing events against the registry, then hands them to the
host's publish capability.

Delivery is at-least-once at this boundary: a PublishError raised here
does not undo whatever the handler already did. A mail may have been
sent even though its completion event never left the agent.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .errors import PublishError
from .protocol import Ack, EventMessage
from .registry import TypeRegistry

logger = logging.getLogger(__name__)

# Publish capability supplied by the host
PublishFn = Callable[[EventMessage], Awaitable[None]]


class EventEmitter:
    """Publishes registry-validated events."""

    def __init__(self, registry: TypeRegistry, publish: PublishFn) -> None:
        self._registry = registry
        self._publish = publish

    async def publish(self, event: EventMessage) -> Ack:
        """Validate and publish an event.

        Raises:
            UnknownTypeError: If the event name is not a registered type
            ValidationError: If the event fields do not match the schema
            PublishError: If the publish capability failed
        """
        fields = self._registry.validate(event.name, event.fields)
        canonical = event.model_copy(update={"fields": fields})

        try:
            await self._publish(canonical)
        except Exception as e:
            logger.error(f"Failed to publish {event.name} (correlation_id={event.correlation_id}): {e}")
            raise PublishError(f"Failed to publish {event.name}: {e}") from e

        logger.debug(f"Published {event.name} (correlation_id={event.correlation_id})")
        return Ack(event=event.name, correlation_id=event.correlation_id)
