"""Host transports.

The stdio adapter is the default way to run the agent as a subprocess;
the HTTP host lives in ``agent_mail.app``.
"""

from .stdio_adapter import StdioProtocolAdapter, run_stdio_adapter

__all__ = [
    "StdioProtocolAdapter",
    "run_stdio_adapter",
]
