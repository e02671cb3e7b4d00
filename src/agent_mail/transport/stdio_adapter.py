"""stdio host adapter.

Runs a MailAgent over newline-delimited JSON on stdin/stdout. The adapter
plays the external runtime: it reports connection state, delivers
commands and publishes events. All decisions are left to the agent.

Wire format (UTF-8, one JSON object per line):
- Input command: {"name": "send-mail", "id": "42", "payload": {...}}
- Input state:   {"state": "disconnected"}
- Output event:  {"type": "event", "name": "mail-sent", "fields": {"id": "42"}, "correlation_id": "42"}
- Output error:  {"type": "error", "correlation_id": "42", "code": "TRANSPORT_ERROR", "error": "..."}

The adapter announces ``connecting`` and ``connected`` on start, and
``closing``/``closed`` once stdin is exhausted and in-flight commands
have completed.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import sys
from typing import Any, BinaryIO

import pydantic

from ..agent import MailAgent, create_agent
from ..config import AgentConfig
from ..core import Resources
from ..errors import AgentMailError
from ..mail import MailTransport
from ..protocol import EventMessage, RawCommand
from ..state import AgentState

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
NEWLINE = "\n"


class StdioProtocolAdapter:
    """Bidirectional stdio adapter around a MailAgent.

    Commands run as concurrent tasks; their events and errors are written
    as soon as they are produced, so output order follows completion, not
    input order.

    Usage:
        adapter = StdioProtocolAdapter()
        await adapter.run()  # Blocks until stdin closes
    """

    def __init__(
        self,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        config: AgentConfig | None = None,
        transport: MailTransport | None = None,
        resources: Resources | None = None,
    ):
        self._reader = io.TextIOWrapper(
            stdin if stdin is not None else sys.stdin.buffer,
            encoding=ENCODING,
            errors="replace",
            newline="",
        )
        self._writer = io.TextIOWrapper(
            stdout if stdout is not None else sys.stdout.buffer,
            encoding=ENCODING,
            errors="replace",
            newline=NEWLINE,
            write_through=True,
        )
        self._error_writer = io.TextIOWrapper(
            stderr if stderr is not None else sys.stderr.buffer,
            encoding=ENCODING,
            errors="replace",
            newline=NEWLINE,
            write_through=True,
        )
        self.agent: MailAgent = create_agent(
            publish=self._publish_event,
            config=config,
            transport=transport,
            resources=resources,
        )
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = False

    async def run(self) -> None:
        """Run the adapter until stdin closes."""
        self._running = True
        self.agent.notify(AgentState.CONNECTING)
        self.agent.notify(AgentState.CONNECTED)

        try:
            while self._running:
                line = await self._read_line()
                if line is None:
                    break

                line = line.strip()
                if line.startswith("\ufeff"):
                    line = line[1:]
                if not line:
                    continue

                self._process_line(line)

            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("stdio adapter cancelled")
        finally:
            self._running = False
            self.agent.shutdown()

    async def stop(self) -> None:
        self._running = False

    async def _read_line(self) -> str | None:
        loop = asyncio.get_running_loop()
        line = await loop.run_in_executor(None, self._reader.readline)
        return line if line else None

    def _process_line(self, line: str) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            self._send_error(None, "PARSE_ERROR", f"Invalid JSON: {e}")
            return

        if isinstance(message, dict) and "state" in message:
            self._process_state(message["state"])
            return

        try:
            raw = RawCommand.model_validate(message)
        except pydantic.ValidationError as e:
            self._send_error(None, "PARSE_ERROR", f"Invalid command: {e}")
            return

        task = asyncio.create_task(self._run_command(raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _process_state(self, state: Any) -> None:
        try:
            self.agent.notify(state)
        except ValueError:
            self._send_error(None, "PARSE_ERROR", f"Unknown state: {state!r}")
        except AgentMailError as e:
            self._send_error(None, e.code, str(e))

    async def _run_command(self, raw: RawCommand) -> None:
        correlation_id = raw.id or raw.payload.get("id")
        try:
            await self.agent.dispatch(raw)
        except AgentMailError as e:
            logger.warning(f"Command {raw.name} (id={correlation_id}) failed: {e}")
            self._send_error(correlation_id, e.code, str(e))
        except Exception as e:
            logger.exception(f"Error handling command {correlation_id}: {e}")
            self._send_error(correlation_id, "HANDLER_ERROR", str(e))

    async def _publish_event(self, event: EventMessage) -> None:
        self._write({"type": "event", **event.model_dump()})

    def _send_error(self, correlation_id: Any, code: str, error: str) -> None:
        self._write({"type": "error", "correlation_id": correlation_id, "code": code, "error": error})

    def _write(self, frame: dict[str, Any]) -> None:
        try:
            self._writer.write(json.dumps(frame, ensure_ascii=False) + NEWLINE)
            self._writer.flush()
        except (OSError, ValueError) as e:
            self._error_writer.write(f"ERROR: Failed to write frame: {e}{NEWLINE}")
            self._error_writer.flush()
            raise


async def run_stdio_adapter(config: AgentConfig | None = None) -> None:
    """Run the stdio adapter as main entry point."""
    logging.basicConfig(
        level=(config or AgentConfig()).get_log_level(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    adapter = StdioProtocolAdapter(config=config)
    await adapter.run()
