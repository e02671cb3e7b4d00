"""Event definitions.

Events are produced by handlers in response to a command. A correlated
event carries the originating command id in ``correlation_id``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventMessage(BaseModel):
    """An outgoing event, published once then discarded.

    Example:
        {
            "name": "mail-sent",
            "fields": {"id": "42"},
            "correlation_id": "42"
        }
    """

    model_config = ConfigDict(frozen=True)

    name: str
    fields: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None

    def is_correlated(self) -> bool:
        return self.correlation_id is not None

    @classmethod
    def create(
        cls,
        name: str,
        fields: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> EventMessage:
        return cls(name=name, fields=fields or {}, correlation_id=correlation_id)


class Ack(BaseModel):
    """Acknowledgment returned once an event was handed to the publisher."""

    model_config = ConfigDict(frozen=True)

    event: str
    correlation_id: str | None = None
    published_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
