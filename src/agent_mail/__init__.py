"""agent-mail: a state-gated command/event agent that sends emails.

Receives ``send-mail`` commands, sends them over SMTP and reports each
delivery with a ``mail-sent`` event correlated to the command id.
"""

from .agent import MailAgent, create_agent
from .config import AgentConfig
from .core import AgentCore, InMemoryResources, Manifest, PackageResources, load_core
from .dispatcher import CommandContext, CommandDispatcher, HandlerRegistration
from .emitter import EventEmitter
from .protocol import Ack, CommandMessage, EventMessage, RawCommand
from .registry import MessageSchema, TypeRegistry, load_avro_schema
from .state import AgentState, StateMachine

__version__ = "0.1.0"

__all__ = [
    "Ack",
    "AgentConfig",
    "AgentCore",
    "AgentState",
    "CommandContext",
    "CommandDispatcher",
    "CommandMessage",
    "EventEmitter",
    "EventMessage",
    "HandlerRegistration",
    "InMemoryResources",
    "MailAgent",
    "Manifest",
    "MessageSchema",
    "PackageResources",
    "RawCommand",
    "StateMachine",
    "TypeRegistry",
    "create_agent",
    "load_core",
]
