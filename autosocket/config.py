"""Client configuration: URL parsing and tunable options.

Options are plain data. They can be built in code or loaded from a YAML file:

    autosocket:
      retry_interval: 10
      connect_timeout: 5.0
      mask_frames: true
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from websockets.exceptions import InvalidURI
from websockets.uri import parse_uri

from .errors import ConfigError, InvalidURLError

DEFAULT_RETRY_INTERVAL = 5
DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_MAX_HANDSHAKE_SIZE = 1024

_YAML_SECTION = "autosocket"


@dataclass(frozen=True)
class ClientOptions:
    """Tunable client behaviour.

    Attributes:
        retry_interval: Seconds to wait before each reconnect attempt.
        connect_timeout: Seconds allowed for the TCP connect and, separately,
            for the upgrade handshake.
        max_handshake_size: Upper bound for the handshake response in bytes.
        mask_frames: Mask outbound frames as RFC 6455 requires of clients.
        verify_accept: Check the server's Sec-WebSocket-Accept header.
    """

    retry_interval: int = DEFAULT_RETRY_INTERVAL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_handshake_size: int = DEFAULT_MAX_HANDSHAKE_SIZE
    mask_frames: bool = True
    verify_accept: bool = True

    def __post_init__(self) -> None:
        if not _is_positive_int(self.retry_interval):
            raise ConfigError(
                f"retry_interval must be a positive integer, got {self.retry_interval!r}"
            )
        if isinstance(self.connect_timeout, bool) or not isinstance(
            self.connect_timeout, (int, float)
        ):
            raise ConfigError(
                f"connect_timeout must be a number, got {self.connect_timeout!r}"
            )
        if self.connect_timeout <= 0:
            raise ConfigError(
                f"connect_timeout must be positive, got {self.connect_timeout!r}"
            )
        if not _is_positive_int(self.max_handshake_size):
            raise ConfigError(
                "max_handshake_size must be a positive integer, "
                f"got {self.max_handshake_size!r}"
            )
        for name in ("mask_frames", "verify_accept"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be a boolean")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ClientOptions:
        """Build options from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown client options: {', '.join(unknown)}")
        return cls(**data)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def load_options(path: Path) -> ClientOptions:
    """Load client options from a YAML file.

    The file may hold the options at top level or under an ``autosocket`` key.
    An empty file yields the defaults.

    Raises:
        ConfigError: If the file is missing, unparsable or not a mapping.
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in {path}: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}")
    if _YAML_SECTION in data:
        data = data[_YAML_SECTION] or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping under '{_YAML_SECTION}' in {path}")

    return ClientOptions.from_mapping(data)


@dataclass(frozen=True)
class ClientConfig:
    """Connection target parsed from a ws:// or wss:// URL."""

    scheme: str
    host: str
    port: int
    path: str = "/"
    query: str = ""
    options: ClientOptions = field(default_factory=ClientOptions)

    @classmethod
    def from_url(cls, url: str, options: ClientOptions | None = None) -> ClientConfig:
        """Parse a WebSocket URL.

        Args:
            url: URL such as ``ws://localhost:5010/ws``.
            options: Client options, defaults when omitted.

        Raises:
            InvalidURLError: If the URL is not ws/wss, has no host, carries
                credentials or names a port outside 1-65535.
        """
        try:
            parsed = parse_uri(url)
        except InvalidURI as err:
            raise InvalidURLError(url, str(err)) from err
        except ValueError as err:
            # urllib rejects out-of-range or non-numeric ports
            raise InvalidURLError(url, str(err)) from err

        # parse_uri maps an explicit port 0 to the scheme default
        split = urlsplit(url)
        if split.port == 0:
            raise InvalidURLError(url, "port 0 out of range")
        if split.username is not None or split.password is not None:
            raise InvalidURLError(url, "credentials in the URL are not supported")

        return cls(
            scheme="wss" if parsed.secure else "ws",
            host=parsed.host,
            port=parsed.port,
            path=parsed.path or "/",
            query=parsed.query or "",
            options=options or ClientOptions(),
        )

    @property
    def secure(self) -> bool:
        return self.scheme == "wss"

    @property
    def retry_interval(self) -> int:
        return self.options.retry_interval

    @property
    def resource_name(self) -> str:
        """Request target for the upgrade request line."""
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}{self.resource_name}"
