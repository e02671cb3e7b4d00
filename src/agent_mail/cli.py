"""agent-mail CLI.

Default mode is stdio (for subprocess integration).
Use --http to run as HTTP server.

Usage:
    agent-mail                                   # Stdio mode (default)
    agent-mail --mailserver smtp://mx.local:2525 # Custom mail server
    agent-mail --http --port 8080                # HTTP server mode
    agent-mail --health                          # Check HTTP server health
    agent-mail config                            # Show effective options
    agent-mail manifest                          # Show the bundled manifest
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click
import httpx

from .config import (
    ENV_PREFIX,
    OPTION_LOG_LEVEL,
    OPTION_MAIL_TIMEOUT,
    OPTION_MAILSERVER,
    OPTION_MAILSERVER_USAGE,
    AgentConfig,
)
from .core import MANIFEST_PATH, Manifest, PackageResources
from .errors import AgentMailError


@click.group(invoke_without_command=True)
@click.option("--mailserver", default=None, help=OPTION_MAILSERVER_USAGE)
@click.option(
    "--mail-timeout", type=float, default=None, help="Per-step mail server timeout in seconds"
)
@click.option("--log-level", default=None, help="Logging level (default: WARNING)")
@click.option("--http", "http_mode", is_flag=True, help="Run as HTTP server instead of stdio")
@click.option("--host", default="127.0.0.1", help="Host to bind to (HTTP mode)")
@click.option("--port", default=4097, help="Port to bind to (HTTP mode)")
@click.option("--health", "health_check", is_flag=True, help="Check HTTP server health and exit")
@click.option("--health-url", default="http://localhost:4097", help="Server URL for health check")
@click.pass_context
def main(
    ctx: click.Context,
    mailserver: str | None,
    mail_timeout: float | None,
    log_level: str | None,
    http_mode: bool,
    host: str,
    port: int,
    health_check: bool,
    health_url: str,
) -> None:
    """agent-mail - sends emails on send-mail commands.

    By default, runs in stdio mode for subprocess/IPC communication.
    Use --http to run as an HTTP server.
    """
    config = AgentConfig()
    config.set(OPTION_MAILSERVER, mailserver)
    config.set(OPTION_MAIL_TIMEOUT, mail_timeout)
    config.set(OPTION_LOG_LEVEL, log_level)
    ctx.obj = config

    if ctx.invoked_subcommand is not None:
        return

    if (host != "127.0.0.1" or port != 4097) and not http_mode and not health_check:
        raise click.UsageError(
            "--host and --port require --http mode. "
            "These options are only available when running as an HTTP server."
        )

    if health_check:
        _do_health_check(health_url)
        return

    try:
        config.get_log_level()
        if http_mode:
            _run_http_server(config, host, port)
        else:
            _run_stdio_server(config)
    except AgentMailError as e:
        click.echo(f"Failed to start agent: {e}", err=True)
        sys.exit(1)


@main.command("config")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def show_config(config: AgentConfig, as_json: bool) -> None:
    """Show the effective configuration."""
    try:
        values = config.as_dict()
    except AgentMailError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(values, indent=2))
        return
    for key, value in values.items():
        click.echo(f"{key:<14} {value}")


@main.command("manifest")
def show_manifest() -> None:
    """Show the bundled agent manifest."""
    manifest = Manifest.model_validate_json(PackageResources().read(MANIFEST_PATH))
    click.echo(manifest.model_dump_json(indent=2))


def _do_health_check(url: str) -> None:
    """Check server health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url}/health")
                if response.status_code == 200:
                    data = response.json()
                    click.echo(f"Server is healthy: {data}")
                else:
                    click.echo(f"Server returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


def _export_config(config: AgentConfig) -> None:
    """Pass explicit options to the app factory through the environment."""
    for key, value in config.values.items():
        if value is not None:
            os.environ[f"{ENV_PREFIX}{key.upper()}"] = str(value)


def _run_http_server(config: AgentConfig, host: str, port: int) -> None:
    """Run HTTP server mode."""
    import uvicorn

    _export_config(config)
    click.echo(f"Starting agent-mail on http://{host}:{port}", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    uvicorn.run(
        "agent_mail.app:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=config.get_log_level().lower(),
    )


def _run_stdio_server(config: AgentConfig) -> None:
    """Run stdio server mode (default)."""
    from .transport import run_stdio_adapter

    click.echo("Starting agent-mail in stdio mode", err=True)

    try:
        asyncio.run(run_stdio_adapter(config))
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


if __name__ == "__main__":
    main()
