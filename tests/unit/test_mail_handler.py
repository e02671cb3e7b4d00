"""Unit tests for the send-mail handler and the mail agent wiring."""

import logging

import pytest

from agent_mail.agent import create_agent
from agent_mail.config import OPTION_MAILSERVER
from agent_mail.errors import (
    ConfigError,
    ProtocolStepError,
    PublishError,
    TransportError,
    UnroutableCommandError,
    UnsupportedAuthenticationError,
)
from agent_mail.protocol import RawCommand
from agent_mail.state import AgentState


@pytest.fixture
def agent(collector, config, mail_transport):
    agent = create_agent(publish=collector, config=config, transport=mail_transport)
    agent.notify(AgentState.CONNECTING)
    agent.notify(AgentState.CONNECTED)
    return agent


def send_mail(payload: dict) -> RawCommand:
    return RawCommand(name="send-mail", payload=payload)


class TestSendMail:
    """Test the full send sequence."""

    @pytest.mark.asyncio
    async def test_sends_and_emits_correlated_event(
        self, agent, collector, mail_transport, send_mail_payload
    ):
        event = await agent.dispatch(send_mail(send_mail_payload))

        assert event is not None
        assert event.name == "mail-sent"
        assert event.fields == {"id": "42"}
        assert event.correlation_id == "42"
        assert [e.fields["id"] for e in collector.events] == ["42"]
        assert mail_transport.connections == [("localhost", 25)]
        assert mail_transport.calls == [
            ("mail", "a@x.com"),
            ("rcpt", "b@x.com"),
            ("data", "hello"),
            ("quit",),
            ("close",),
        ]

    @pytest.mark.asyncio
    async def test_uses_configured_server(self, agent, config, mail_transport, send_mail_payload):
        config.set(OPTION_MAILSERVER, "smtp://mx.example.org:2525/")

        await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.connections == [("mx.example.org", 2525)]

    @pytest.mark.asyncio
    async def test_logs_receipt(self, agent, send_mail_payload, caplog):
        with caplog.at_level(logging.INFO, logger="agent_mail.mail.handler"):
            await agent.dispatch(send_mail(send_mail_payload))

        assert "From: 'a@x.com' To: 'b@x.com' Subject: 'hi'" in caplog.text

    @pytest.mark.asyncio
    async def test_redelivery_sends_again(self, agent, mail_transport, send_mail_payload):
        await agent.dispatch(send_mail(send_mail_payload))
        await agent.dispatch(send_mail(send_mail_payload))

        assert len(mail_transport.connections) == 2


class TestFailures:
    """Test the handler's failure policy."""

    @pytest.mark.asyncio
    async def test_credentials_fail_before_connecting(
        self, agent, config, collector, mail_transport, send_mail_payload
    ):
        config.set(OPTION_MAILSERVER, "smtp://user@mx.example.org:25/?password=secret")

        with pytest.raises(UnsupportedAuthenticationError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.connections == []
        assert collector.events == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "uri", ["smtp://:secret@mx.example.org/", "smtp://mx.example.org/?password=secret"]
    )
    async def test_password_without_user_fails_before_connecting(
        self, agent, config, collector, mail_transport, send_mail_payload, uri
    ):
        config.set(OPTION_MAILSERVER, uri)

        with pytest.raises(UnsupportedAuthenticationError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.connections == []
        assert collector.events == []

    @pytest.mark.asyncio
    async def test_invalid_server_uri(self, agent, config, mail_transport, send_mail_payload):
        config.set(OPTION_MAILSERVER, "http://mx.example.org/")

        with pytest.raises(ConfigError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.connections == []

    @pytest.mark.asyncio
    async def test_connection_failure_is_reported(
        self, collector, config, unreachable_transport, send_mail_payload
    ):
        agent = create_agent(publish=collector, config=config, transport=unreachable_transport)
        agent.notify(AgentState.CONNECTING)
        agent.notify(AgentState.CONNECTED)

        with pytest.raises(TransportError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert collector.events == []

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_becomes_transport_error(
        self, agent, mail_transport, send_mail_payload
    ):
        mail_transport.connect_error = ConnectionRefusedError("refused")

        with pytest.raises(TransportError) as exc_info:
            await agent.dispatch(send_mail(send_mail_payload))

        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)

    @pytest.mark.asyncio
    async def test_recipient_failure_stops_the_sequence(
        self, agent, collector, mail_transport, send_mail_payload
    ):
        mail_transport.fail_on = "rcpt"

        with pytest.raises(ProtocolStepError) as exc_info:
            await agent.dispatch(send_mail(send_mail_payload))

        assert exc_info.value.step == "rcpt"
        assert exc_info.value.__cause__ is mail_transport.step_error
        assert "550 mailbox unavailable" in str(exc_info.value)
        assert mail_transport.steps == ["mail", "rcpt", "close"]
        assert collector.events == []

    @pytest.mark.asyncio
    async def test_data_failure_releases_session(self, agent, mail_transport, send_mail_payload):
        mail_transport.fail_on = "data"

        with pytest.raises(ProtocolStepError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.steps == ["mail", "rcpt", "data", "close"]

    @pytest.mark.asyncio
    async def test_step_timeout_stays_transport_error(self, agent, mail_transport, send_mail_payload):
        mail_transport.fail_on = "mail"
        mail_transport.step_error = TransportError("Mail server timed out")

        with pytest.raises(TransportError):
            await agent.dispatch(send_mail(send_mail_payload))

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_undo_send(
        self, agent, collector, mail_transport, send_mail_payload
    ):
        collector.error = RuntimeError("event bus down")

        with pytest.raises(PublishError):
            await agent.dispatch(send_mail(send_mail_payload))

        # The mail went out even though its completion event did not
        assert "quit" in mail_transport.steps


class TestAgentLifecycle:
    """Test handler registration driven by the transport state."""

    @pytest.mark.asyncio
    async def test_unroutable_after_disconnect(self, agent, mail_transport, send_mail_payload):
        agent.notify(AgentState.DISCONNECTED)

        with pytest.raises(UnroutableCommandError):
            await agent.dispatch(send_mail(send_mail_payload))

        assert mail_transport.connections == []

    @pytest.mark.asyncio
    async def test_handler_restored_after_reconnect(self, agent, collector, send_mail_payload):
        agent.notify(AgentState.DISCONNECTED)
        agent.notify(AgentState.CONNECTING)
        agent.notify(AgentState.CONNECTED)

        event = await agent.dispatch(send_mail(send_mail_payload))

        assert event is not None
        assert agent.core.dispatcher.registered_names() == ["send-mail"]

    def test_shutdown(self, agent):
        agent.shutdown()

        assert agent.state is AgentState.CLOSED
        assert agent.core.dispatcher.registered_names() == []

    def test_shutdown_is_idempotent(self, agent):
        agent.shutdown()
        agent.shutdown()

        assert agent.state is AgentState.CLOSED
