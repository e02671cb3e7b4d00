"""Command/event message types.

Key concepts:
- RawCommand: what a host delivers (name, optional id, undecoded payload)
- CommandMessage: a decoded command, handled exactly once
- EventMessage: a handler's result, correlated by the command id
"""

from .commands import CommandMessage, RawCommand
from .events import Ack, EventMessage

__all__ = [
    "Ack",
    "CommandMessage",
    "EventMessage",
    "RawCommand",
]
