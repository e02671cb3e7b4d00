"""Command definitions.

A RawCommand is what a host delivers: a message name, an optional
envelope id and an undecoded payload. The dispatcher turns it into a
CommandMessage once the payload has been decoded by the registry.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawCommand(BaseModel):
    """An inbound command as received from the transport.

    Example:
        {
            "id": "42",
            "name": "send-mail",
            "payload": {"id": "42", "from": "a@x.com", "to": "b@x.com", ...}
        }
    """

    model_config = ConfigDict(frozen=True)

    name: str
    id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class CommandMessage(BaseModel):
    """A decoded command, consumed exactly once by one handler."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    id: str = Field(default_factory=lambda: f"cmd_{uuid.uuid4().hex[:12]}")
    fields: BaseModel

    @property
    def data(self) -> dict[str, Any]:
        """Decoded fields keyed by their schema names."""
        return self.fields.model_dump(by_alias=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)
