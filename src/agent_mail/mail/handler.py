"""send-mail command handler."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import OPTION_MAILSERVER, AgentConfig
from ..dispatcher import CommandContext
from ..errors import ProtocolStepError, TransportError, UnsupportedAuthenticationError
from ..protocol import EventMessage
from .endpoint import MailServerEndpoint
from .transport import MailSession, MailTransport

logger = logging.getLogger(__name__)

SEND_MAIL_COMMAND = "send-mail"
MAIL_SENT_EVENT = "mail-sent"


class MailSendHandler:
    """Sends the mail described by a send-mail command.

    One SMTP session per invocation. The handler is not idempotent: a
    redelivered command sends the mail again.
    """

    def __init__(self, config: AgentConfig, transport: MailTransport) -> None:
        self._config = config
        self._transport = transport

    def resolve_endpoint(self) -> MailServerEndpoint:
        """Read the mail server from configuration.

        Raises:
            ConfigError: If the URI is invalid
            UnsupportedAuthenticationError: If the URI carries a username
        """
        endpoint = MailServerEndpoint.parse(self._config.get_string(OPTION_MAILSERVER))
        if endpoint.has_credentials:
            raise UnsupportedAuthenticationError(
                f"Authentication is not supported yet (credentials given for {endpoint.address})"
            )
        return endpoint

    async def __call__(self, ctx: CommandContext) -> EventMessage:
        command = ctx.command
        data = command.data

        logger.info(
            f"Received {command.name}: From: '{data['from']}' To: '{data['to']}' "
            f"Subject: '{data['subject']}'"
        )

        endpoint = self.resolve_endpoint()
        session = await self._connect(endpoint)

        try:
            await _step("mail", session.mail, data["from"])
            await _step("rcpt", session.rcpt, data["to"])
            await _step("data", session.data, data["content"])
            await _step("quit", session.quit)
        finally:
            await _release(session)

        logger.info(f"Mail {command.id} sent to '{data['to']}' via {endpoint.address}")
        return ctx.event(MAIL_SENT_EVENT, id=command.id)

    async def _connect(self, endpoint: MailServerEndpoint) -> MailSession:
        try:
            return await self._transport.connect(endpoint.host, endpoint.port)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Cannot connect to mail server at {endpoint.address}: {e}") from e


async def _step(name: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
    try:
        await fn(*args)
    except TransportError:
        raise
    except Exception as e:
        logger.warning(f"Mail protocol step '{name}' failed: {e}")
        raise ProtocolStepError(name, e) from e


async def _release(session: MailSession) -> None:
    try:
        await session.close()
    except Exception as e:
        logger.warning(f"Failed to close mail session: {e}")
