"""Mail agent: binds the send-mail handler to an AgentCore.

Usage:
    agent = create_agent(publish=transport.publish)
    agent.notify(AgentState.CONNECTING)
    agent.notify(AgentState.CONNECTED)   # send-mail handler is registered here
    event = await agent.dispatch(RawCommand(name="send-mail", payload={...}))
"""

from __future__ import annotations

import logging

from .config import OPTION_MAIL_TIMEOUT, AgentConfig
from .core import AgentCore, PackageResources, Resources, load_core
from .emitter import PublishFn
from .errors import StartupError
from .mail import MAIL_SENT_EVENT, SEND_MAIL_COMMAND, MailSendHandler, MailTransport, SmtpTransport
from .protocol import EventMessage, RawCommand
from .state import AgentState

logger = logging.getLogger(__name__)


class MailAgent:
    """Registers the send-mail handler each time the transport is connected."""

    def __init__(self, core: AgentCore, config: AgentConfig, transport: MailTransport) -> None:
        self.core = core
        self.config = config
        self.handler = MailSendHandler(config, transport)
        core.state.on_transition(self._on_state_change)

    @property
    def state(self) -> AgentState:
        return self.core.current_state

    def _on_state_change(self, state: AgentState) -> None:
        if state is AgentState.CONNECTED:
            self.core.dispatcher.register_handler(SEND_MAIL_COMMAND, self.handler)

    def notify(self, state: AgentState | str) -> None:
        self.core.notify(state)

    async def dispatch(self, raw: RawCommand) -> EventMessage | None:
        return await self.core.dispatch(raw)

    def shutdown(self) -> None:
        """Move to ``closing`` if needed, then to ``closed``."""
        if self.state is AgentState.CLOSED:
            return
        self.core.notify(AgentState.CLOSING)
        self.core.state.complete_shutdown()


def create_agent(
    publish: PublishFn,
    config: AgentConfig | None = None,
    transport: MailTransport | None = None,
    resources: Resources | None = None,
) -> MailAgent:
    """Build a MailAgent from bundled resources.

    Raises:
        StartupError: If the core cannot be loaded or lacks the mail types
    """
    config = config or AgentConfig()
    core = load_core(resources or PackageResources(), publish)

    for name in (SEND_MAIL_COMMAND, MAIL_SENT_EVENT):
        if not core.registry.has_type(name):
            raise StartupError(f"Manifest does not declare required type '{name}'")

    if transport is None:
        transport = SmtpTransport(timeout=config.get_float(OPTION_MAIL_TIMEOUT))

    return MailAgent(core, config, transport)
