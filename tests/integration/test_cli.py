"""Tests for the agent-mail CLI."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from agent_mail.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in ("AGENT_MAIL_MAILSERVER", "AGENT_MAIL_MAIL_TIMEOUT", "AGENT_MAIL_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


class TestConfigCommand:
    def test_defaults(self, runner: CliRunner):
        result = runner.invoke(main, ["config", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["mailserver"] == "smtp://localhost:25/"

    def test_flag_overrides(self, runner: CliRunner):
        result = runner.invoke(
            main, ["--mailserver", "smtp://mx.example.org:2525/", "config", "--json"]
        )

        assert json.loads(result.output)["mailserver"] == "smtp://mx.example.org:2525/"

    def test_environment(self, runner: CliRunner, monkeypatch):
        monkeypatch.setenv("AGENT_MAIL_MAIL_TIMEOUT", "7")

        result = runner.invoke(main, ["config", "--json"])

        assert json.loads(result.output)["mail_timeout"] == 7.0

    def test_table_output(self, runner: CliRunner):
        result = runner.invoke(main, ["config"])

        assert "mailserver" in result.output
        assert "smtp://localhost:25/" in result.output


class TestManifestCommand:
    def test_prints_manifest(self, runner: CliRunner):
        result = runner.invoke(main, ["manifest"])

        assert result.exit_code == 0
        assert json.loads(result.output)["name"] == "agent-mail"


class TestMainOptions:
    def test_port_requires_http(self, runner: CliRunner):
        result = runner.invoke(main, ["--port", "9000"])

        assert result.exit_code != 0
        assert "--http" in result.output

    def test_stdio_is_default(self, runner: CliRunner):
        with patch("agent_mail.cli._run_stdio_server") as run_stdio:
            result = runner.invoke(main, ["--mailserver", "smtp://mx.example.org/"])

        assert result.exit_code == 0
        config = run_stdio.call_args.args[0]
        assert config.get("mailserver") == "smtp://mx.example.org/"

    def test_http_mode(self, runner: CliRunner):
        with patch("agent_mail.cli._run_http_server") as run_http:
            result = runner.invoke(main, ["--http", "--port", "9000"])

        assert result.exit_code == 0
        assert run_http.call_args.args[1:] == ("127.0.0.1", 9000)

    def test_health_unreachable(self, runner: CliRunner):
        result = runner.invoke(main, ["--health", "--health-url", "http://127.0.0.1:1"])

        assert result.exit_code == 1
        assert "Cannot connect" in result.output

    @pytest.mark.parametrize("mode", [[], ["--http"]])
    def test_invalid_log_level_exits_cleanly(self, runner: CliRunner, mode):
        with (
            patch("agent_mail.cli._run_stdio_server") as run_stdio,
            patch("agent_mail.cli._run_http_server") as run_http,
        ):
            result = runner.invoke(main, [*mode, "--log-level", "loud"])

        assert result.exit_code == 1
        assert "Invalid log level" in result.output
        run_stdio.assert_not_called()
        run_http.assert_not_called()

    def test_invalid_log_level_from_environment(self, runner: CliRunner, monkeypatch):
        monkeypatch.setenv("AGENT_MAIL_LOG_LEVEL", "loud")

        with patch("agent_mail.cli._run_stdio_server") as run_stdio:
            result = runner.invoke(main, [])

        assert result.exit_code == 1
        run_stdio.assert_not_called()
