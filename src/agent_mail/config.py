"""Agent configuration.

Options are resolved in order: explicit value (CLI flag, test) >
environment variable (``AGENT_MAIL_<KEY>``) > registered default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigError

ENV_PREFIX = "AGENT_MAIL_"

# Option for the mail server
OPTION_MAILSERVER = "mailserver"
OPTION_MAILSERVER_DEFAULT = "smtp://localhost:25/"
OPTION_MAILSERVER_USAGE = (
    "URI of the mail server to use, of the form "
    "smtp://[username@]host[:port][?password=somepwd]. "
    "Defaults to the local SMTP server on port 25 without authentication; "
    "credentials are not supported yet."
)

# Per-step network timeout of the mail exchange, in seconds
OPTION_MAIL_TIMEOUT = "mail_timeout"
OPTION_MAIL_TIMEOUT_DEFAULT = 30.0

OPTION_LOG_LEVEL = "log_level"
OPTION_LOG_LEVEL_DEFAULT = "WARNING"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass
class AgentConfig:
    """Key/value option store with defaults and environment overrides."""

    values: dict[str, Any] = field(default_factory=dict)
    defaults: dict[str, Any] = field(
        default_factory=lambda: {
            OPTION_MAILSERVER: OPTION_MAILSERVER_DEFAULT,
            OPTION_MAIL_TIMEOUT: OPTION_MAIL_TIMEOUT_DEFAULT,
            OPTION_LOG_LEVEL: OPTION_LOG_LEVEL_DEFAULT,
        }
    )
    environ: dict[str, str] | None = None

    def set_default(self, key: str, value: Any) -> None:
        """Register an option and its default value."""
        self.defaults[key] = value

    def set(self, key: str, value: Any) -> None:
        self._check_key(key)
        self.values[key] = value

    def get(self, key: str) -> Any:
        """Return the effective value of an option.

        Environment values are converted to the type of the default.
        """
        self._check_key(key)
        if key in self.values and self.values[key] is not None:
            return self.values[key]

        env = self.environ if self.environ is not None else os.environ
        raw = env.get(f"{ENV_PREFIX}{key.upper()}")
        default = self.defaults[key]
        if raw is None:
            return default
        if isinstance(default, bool):
            return raw.lower() in ("1", "true", "yes")
        if isinstance(default, (int, float)):
            try:
                return type(default)(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {key}: {raw!r}") from e
        return raw

    def get_string(self, key: str) -> str:
        return str(self.get(key))

    def get_float(self, key: str) -> float:
        try:
            return float(self.get(key))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Option {key} is not a number: {self.get(key)!r}") from e

    def get_log_level(self) -> str:
        """Return the log level name, upper-cased.

        Raises:
            ConfigError: If the name is not a logging level
        """
        level = self.get_string(OPTION_LOG_LEVEL).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level: {level!r}")
        return level

    def as_dict(self) -> dict[str, Any]:
        return {key: self.get(key) for key in self.defaults}

    def _check_key(self, key: str) -> None:
        if key not in self.defaults:
            raise ConfigError(f"Unknown configuration option: {key}")
