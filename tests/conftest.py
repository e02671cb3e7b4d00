"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from agent_mail.config import AgentConfig
from agent_mail.core import PackageResources, load_core
from agent_mail.errors import TransportError
from agent_mail.mail import MailSession, MailTransport
from agent_mail.protocol import EventMessage


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


class RecordingSession(MailSession):
    """MailSession that records every step and can fail on one of them."""

    def __init__(self, transport: RecordingTransport) -> None:
        self._transport = transport

    async def _record(self, step: str, *args: Any) -> None:
        self._transport.calls.append((step, *args))
        if self._transport.fail_on == step:
            raise self._transport.step_error

    async def mail(self, sender: str) -> None:
        await self._record("mail", sender)

    async def rcpt(self, recipient: str) -> None:
        await self._record("rcpt", recipient)

    async def data(self, content: str) -> None:
        await self._record("data", content)

    async def quit(self) -> None:
        await self._record("quit")

    async def close(self) -> None:
        self._transport.calls.append(("close",))


class RecordingTransport(MailTransport):
    """In-memory MailTransport used instead of a real SMTP server."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.connections: list[tuple[str, int]] = []
        self.connect_error: Exception | None = None
        self.fail_on: str | None = None
        self.step_error: Exception = RuntimeError("550 mailbox unavailable")

    async def connect(self, host: str, port: int) -> MailSession:
        self.connections.append((host, port))
        if self.connect_error is not None:
            raise self.connect_error
        return RecordingSession(self)

    @property
    def steps(self) -> list[str]:
        return [call[0] for call in self.calls]


class EventCollector:
    """Publish capability that keeps published events."""

    def __init__(self) -> None:
        self.events: list[EventMessage] = []
        self.error: Exception | None = None

    async def __call__(self, event: EventMessage) -> None:
        if self.error is not None:
            raise self.error
        self.events.append(event)


@pytest.fixture
def mail_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def unreachable_transport() -> RecordingTransport:
    transport = RecordingTransport()
    transport.connect_error = TransportError("Cannot connect to mail server at localhost:25")
    return transport


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def config() -> AgentConfig:
    """Configuration isolated from the process environment."""
    return AgentConfig(environ={})


@pytest.fixture
def core(collector: EventCollector):
    """AgentCore loaded from the bundled resources."""
    return load_core(PackageResources(), collector)


@pytest.fixture
def send_mail_payload() -> dict[str, str]:
    return {
        "id": "42",
        "from": "a@x.com",
        "to": "b@x.com",
        "toname": "Bob",
        "subject": "hi",
        "content": "hello",
    }
