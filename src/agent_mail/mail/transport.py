"""Mail transport abstraction and its SMTP implementation.

The handler only depends on MailTransport/MailSession, so tests and
other hosts can swap in their own transport without touching sockets.

SmtpTransport wraps the blocking ``smtplib`` client; every call runs in
a worker thread and is bounded by the socket timeout.
"""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
from abc import ABC, abstractmethod
from typing import Any

from ..errors import TransportError

logger = logging.getLogger(__name__)

LINE_ENDING = re.compile(r"\r\n|\r|\n")


class MailSession(ABC):
    """One open session with a mail server."""

    @abstractmethod
    async def mail(self, sender: str) -> None:
        """Declare the sender (MAIL FROM)."""
        ...

    @abstractmethod
    async def rcpt(self, recipient: str) -> None:
        """Declare a recipient (RCPT TO)."""
        ...

    @abstractmethod
    async def data(self, content: str) -> None:
        """Stream the message body and finalize it (DATA ... .)."""
        ...

    @abstractmethod
    async def quit(self) -> None:
        """Terminate the session cleanly (QUIT)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call after quit or on failure."""
        ...


class MailTransport(ABC):
    """Opens sessions with a mail server."""

    @abstractmethod
    async def connect(self, host: str, port: int) -> MailSession:
        """Open a session.

        Raises:
            TransportError: If the server cannot be reached
        """
        ...


class SmtpSession(MailSession):
    """MailSession over an ``smtplib.SMTP`` client."""

    def __init__(self, client: smtplib.SMTP) -> None:
        self._client = client

    async def _call(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except TimeoutError as e:
            raise TransportError(f"Mail server timed out: {e}") from e

    async def mail(self, sender: str) -> None:
        code, resp = await self._call(self._client.mail, sender)
        if code != 250:
            raise smtplib.SMTPSenderRefused(code, resp, sender)

    async def rcpt(self, recipient: str) -> None:
        code, resp = await self._call(self._client.rcpt, recipient)
        if code not in (250, 251):
            raise smtplib.SMTPRecipientsRefused({recipient: (code, resp)})

    async def data(self, content: str) -> None:
        # smtplib sends bytes bodies as-is; the wire format requires CRLF
        body = LINE_ENDING.sub("\r\n", content).encode("utf-8")
        await self._call(self._client.data, body)

    async def quit(self) -> None:
        await self._call(self._client.quit)

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)


class SmtpTransport(MailTransport):
    """Plain, unauthenticated SMTP."""

    def __init__(self, timeout: float = 30.0, local_hostname: str | None = None) -> None:
        self.timeout = timeout
        self.local_hostname = local_hostname

    async def connect(self, host: str, port: int) -> MailSession:
        def _open() -> smtplib.SMTP:
            client = smtplib.SMTP(
                host, port, local_hostname=self.local_hostname, timeout=self.timeout
            )
            try:
                client.ehlo_or_helo_if_needed()
            except BaseException:
                client.close()
                raise
            return client

        try:
            client = await asyncio.to_thread(_open)
        except (OSError, smtplib.SMTPException) as e:
            raise TransportError(f"Cannot connect to mail server at {host}:{port}: {e}") from e

        logger.debug(f"Connected to mail server at {host}:{port}")
        return SmtpSession(client)
