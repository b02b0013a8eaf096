"""Domain model: connection state, server config, channels, users, log messages."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from parlor.core.constants import CHANNEL_SIGIL, DEFAULT_NICKSERV_COMMAND
from parlor.core.errors import ConfigError

# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class Connecting:
    pass


@dataclass(frozen=True)
class Connected:
    server_name: str


@dataclass(frozen=True)
class Error:
    message: str


@dataclass(frozen=True)
class Reconnecting:
    attempt: int


ConnectionState = Union[Disconnected, Connecting, Connected, Error, Reconnecting]

# States in which outbound traffic may be written to the transport
LIVE_STATES: tuple[type, ...] = (Connecting, Connected, Reconnecting)


# ---------------------------------------------------------------------------
# Server config
# ---------------------------------------------------------------------------


class ProxyType(Enum):
    NONE = "none"
    HTTP = "http"
    SOCKS = "socks"


class ServerType(Enum):
    IRC = "irc"
    MATRIX = "matrix"


@dataclass(frozen=True)
class ProxyConfig:
    type: ProxyType = ProxyType.NONE
    host: str = ""
    port: int = 1080
    username: str | None = None
    password: str | None = None

    @property
    def enabled(self) -> bool:
        return self.type is not ProxyType.NONE and bool(self.host.strip())


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _join_lines(value: Any, sep: str) -> str:
    """Accept either a list or a pre-joined string from YAML."""
    if isinstance(value, list):
        return sep.join(str(v) for v in value)
    return str(value or "")


@dataclass(frozen=True)
class ServerConfig:
    """Immutable snapshot of one server's settings. Replace, never patch."""

    server_name: str
    hostname: str
    nickname: str
    id: int = 0
    port: int = 6697
    use_ssl: bool = True
    accept_self_signed_certs: bool = False
    pinned_cert_fingerprint: str | None = None
    trust_on_first_use: bool = False
    server_password: str | None = None
    alt_nickname: str = ""
    username: str = ""
    real_name: str = ""
    use_sasl: bool = False
    sasl_username: str | None = None
    sasl_password: str | None = None
    nickserv_password: str | None = None
    nickserv_command: str = DEFAULT_NICKSERV_COMMAND
    auto_connect: bool = False
    auto_join_channels: str = ""
    on_connect_commands: str = ""
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    type: ServerType = ServerType.IRC
    matrix_homeserver: str | None = None
    matrix_access_token: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        """Build from a YAML mapping; unknown keys are ignored."""
        if not isinstance(data, dict):
            raise ConfigError(
                "server entry must be a mapping",
                code="invalid_server",
                details={"type": type(data).__name__},
            )
        proxy_data = data.get("proxy") or {}
        try:
            proxy = ProxyConfig(
                type=ProxyType(str(proxy_data.get("type", "none")).lower()),
                host=str(proxy_data.get("host", "")),
                port=int(proxy_data.get("port", 1080)),
                username=_opt_str(proxy_data.get("username")),
                password=_opt_str(proxy_data.get("password")),
            )
            server_type = ServerType(str(data.get("type", "irc")).lower())
            port = int(data.get("port", 6697))
        except (ValueError, TypeError, AttributeError) as exc:
            raise ConfigError(
                f"invalid server entry {data.get('name', '?')!r}: {exc}",
                code="invalid_server",
                original_error=exc,
            ) from exc
        hostname = str(data.get("hostname", "") or "")
        return cls(
            id=int(data.get("id", 0) or 0),
            server_name=str(data.get("name") or hostname),
            hostname=hostname,
            port=port,
            use_ssl=bool(data.get("tls", True)),
            accept_self_signed_certs=bool(data.get("accept_self_signed_certs", False)),
            pinned_cert_fingerprint=_opt_str(data.get("pinned_cert_fingerprint")),
            trust_on_first_use=bool(data.get("trust_on_first_use", False)),
            server_password=_opt_str(data.get("password")),
            nickname=str(data.get("nickname", "") or ""),
            alt_nickname=str(data.get("alt_nickname", "") or ""),
            username=str(data.get("username", "") or ""),
            real_name=str(data.get("real_name", "") or ""),
            use_sasl=bool(data.get("sasl", False)),
            sasl_username=_opt_str(data.get("sasl_username")),
            sasl_password=_opt_str(data.get("sasl_password")),
            nickserv_password=_opt_str(data.get("nickserv_password")),
            nickserv_command=str(data.get("nickserv_command") or DEFAULT_NICKSERV_COMMAND),
            auto_connect=bool(data.get("auto_connect", False)),
            auto_join_channels=_join_lines(data.get("auto_join"), ","),
            on_connect_commands=_join_lines(data.get("on_connect"), "\n"),
            proxy=proxy,
            type=server_type,
            matrix_homeserver=_opt_str(data.get("matrix_homeserver")),
            matrix_access_token=_opt_str(data.get("matrix_access_token")),
        )

    def validate(self) -> None:
        """Raise ConfigError if a field required for connecting is missing."""
        if self.type is ServerType.MATRIX:
            if not self.matrix_homeserver:
                raise ConfigError("no homeserver configured", code="missing_homeserver")
            if not self.matrix_access_token:
                raise ConfigError("no access token configured", code="missing_access_token")
            return
        if not self.hostname.strip():
            raise ConfigError("no hostname configured", code="missing_hostname")
        if not self.nickname.strip():
            raise ConfigError("no nickname configured", code="missing_nickname")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}", code="invalid_port")
        if self.use_sasl and not (self.sasl_username and self.sasl_password):
            raise ConfigError(
                "SASL enabled but username or password missing",
                code="missing_sasl_credentials",
            )

    def auto_join_list(self) -> list[str]:
        """Auto-join entries, trimmed, sigil-prefixed, in configured order."""
        channels = []
        for entry in self.auto_join_channels.split(","):
            name = entry.strip()
            if not name:
                continue
            channels.append(name if name.startswith(CHANNEL_SIGIL) else f"{CHANNEL_SIGIL}{name}")
        return channels

    def on_connect_lines(self) -> list[str]:
        return [line.strip() for line in self.on_connect_commands.split("\n") if line.strip()]

    @property
    def effective_username(self) -> str:
        return self.username or self.nickname

    @property
    def effective_real_name(self) -> str:
        return self.real_name or self.nickname


# ---------------------------------------------------------------------------
# Channels and rosters
# ---------------------------------------------------------------------------


class ChannelType(Enum):
    CHANNEL = "channel"
    QUERY = "query"
    SERVER = "server"


class UserMode(Enum):
    OWNER = "q"
    ADMIN = "a"
    OP = "o"
    HALFOP = "h"
    VOICE = "v"


_MODE_PREFIX = {
    UserMode.OWNER: "~",
    UserMode.ADMIN: "&",
    UserMode.OP: "@",
    UserMode.HALFOP: "%",
    UserMode.VOICE: "+",
}


@dataclass(frozen=True)
class ChannelUser:
    nickname: str
    modes: frozenset[UserMode] = frozenset()
    is_away: bool = False
    away_message: str | None = None

    @property
    def is_op(self) -> bool:
        return bool(self.modes & {UserMode.OP, UserMode.OWNER, UserMode.ADMIN})

    @property
    def is_voiced(self) -> bool:
        return UserMode.VOICE in self.modes

    @property
    def prefix(self) -> str:
        """Display prefix of the highest mode held, or empty string."""
        for mode in UserMode:
            if mode in self.modes:
                return _MODE_PREFIX[mode]
        return ""


@dataclass(frozen=True)
class ChannelStats:
    total_users: int
    ops_count: int
    voiced_count: int
    away_count: int

    @property
    def active_users(self) -> int:
        return self.total_users - self.away_count


@dataclass(frozen=True)
class Channel:
    name: str
    type: ChannelType
    display_name: str | None = None
    topic: str | None = None
    users: tuple[ChannelUser, ...] = ()
    unread_count: int = 0
    last_activity: int = 0

    def user(self, nickname: str) -> ChannelUser | None:
        for member in self.users:
            if member.nickname == nickname:
                return member
        return None

    def has_user(self, nickname: str) -> bool:
        return self.user(nickname) is not None

    @property
    def nicknames(self) -> list[str]:
        return [u.nickname for u in self.users]

    @property
    def stats(self) -> ChannelStats:
        return ChannelStats(
            total_users=len(self.users),
            ops_count=sum(1 for u in self.users if u.is_op),
            voiced_count=sum(1 for u in self.users if u.is_voiced),
            away_count=sum(1 for u in self.users if u.is_away),
        )


# ---------------------------------------------------------------------------
# Log messages
# ---------------------------------------------------------------------------


class MessageType(Enum):
    NORMAL = "normal"
    ACTION = "action"
    NOTICE = "notice"
    JOIN = "join"
    PART = "part"
    QUIT = "quit"
    KICK = "kick"
    NICK = "nick"
    TOPIC = "topic"
    MODE = "mode"
    ERROR = "error"
    SERVER = "server"
    SYSTEM = "system"
    CTCP = "ctcp"


@dataclass(frozen=True)
class Message:
    """Append-only chat log entry; identity is its id."""

    target: str
    sender: str
    content: str
    type: MessageType = MessageType.NORMAL
    is_self: bool = False
    timestamp: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def now_ms() -> int:
    return int(time.time() * 1000)


class MessageFactory:
    """Creates log messages with per-target non-decreasing timestamps."""

    def __init__(self, clock=now_ms) -> None:
        self._clock = clock
        self._last: dict[str, int] = {}

    def create(
        self,
        target: str,
        sender: str,
        content: str,
        type: MessageType = MessageType.NORMAL,
        *,
        is_self: bool = False,
    ) -> Message:
        stamp = max(self._clock(), self._last.get(target, 0))
        self._last[target] = stamp
        return Message(
            target=target,
            sender=sender,
            content=content,
            type=type,
            is_self=is_self,
            timestamp=stamp,
        )


# ---------------------------------------------------------------------------
# Bus notices (published alongside messages)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionStateChanged:
    previous: ConnectionState
    current: ConnectionState
    # False when the server side ended the connection
    expected: bool = True


@dataclass(frozen=True)
class HistoryCleared:
    target: str
