"""Mail server endpoint parsed from the ``mailserver`` URI."""

from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlsplit

from pydantic import BaseModel, ConfigDict

from ..errors import ConfigError

SUPPORTED_SCHEMES = ("smtp",)
DEFAULT_PORT = 25


class MailServerEndpoint(BaseModel):
    """Where to send mail: ``scheme://[user@]host[:port][?password=...]``."""

    model_config = ConfigDict(frozen=True)

    scheme: str = "smtp"
    host: str = "localhost"
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.password)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, uri: str) -> MailServerEndpoint:
        """Parse a mail server URI.

        Raises:
            ConfigError: If the URI is malformed or uses an unknown scheme
        """
        parts = urlsplit(uri)
        if parts.scheme not in SUPPORTED_SCHEMES:
            raise ConfigError(f"Unsupported mail server scheme in {uri!r}")
        if not parts.hostname:
            raise ConfigError(f"Mail server URI has no host: {uri!r}")
        try:
            port = parts.port or DEFAULT_PORT
        except ValueError as e:
            raise ConfigError(f"Invalid port in mail server URI {uri!r}") from e

        password = parts.password
        if password is None:
            query_password = parse_qs(parts.query).get("password")
            password = query_password[0] if query_password else None

        return cls(
            scheme=parts.scheme,
            host=parts.hostname,
            port=port,
            username=unquote(parts.username) if parts.username else None,
            password=unquote(password) if password else None,
        )
