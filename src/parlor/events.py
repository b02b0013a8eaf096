"""Event types: decoded inbound protocol events, lifecycle inputs and outbound actions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

# A roster snapshot entry: nickname plus the raw mode characters the transport
# reports for it. Characters may be mode letters ("o", "v") or display prefixes
# ("@", "+") depending on the server dialect.
RosterEntry = tuple[str, str]


# ---------------------------------------------------------------------------
# Inbound (transport -> session)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionEstablished:
    """Socket connected; registration pending."""


@dataclass(frozen=True)
class ConnectionEnded:
    """Transport lost or closed the connection."""

    reason: str | None = None


@dataclass(frozen=True)
class Join:
    """User joined a channel. `users` is the roster after the join, when known."""

    channel: str
    user: str
    users: tuple[RosterEntry, ...] | None = None


@dataclass(frozen=True)
class Part:
    """User left a channel."""

    channel: str
    user: str
    message: str | None = None
    users: tuple[RosterEntry, ...] | None = None


@dataclass(frozen=True)
class ChannelMessage:
    channel: str
    actor: str
    text: str


@dataclass(frozen=True)
class PrivateMessage:
    actor: str
    text: str


@dataclass(frozen=True)
class Topic:
    channel: str
    topic: str | None
    setter: str | None = None


@dataclass(frozen=True)
class UsersUpdated:
    """Authoritative, complete roster snapshot for one channel."""

    channel: str
    users: tuple[RosterEntry, ...]


@dataclass(frozen=True)
class Kick:
    channel: str
    actor: str
    target: str
    message: str = ""


@dataclass(frozen=True)
class Notice:
    """NOTICE; `channel` is the protocol target (a channel or our own nick)."""

    channel: str
    actor: str
    text: str


@dataclass(frozen=True)
class NickChange:
    old: str
    new: str


@dataclass(frozen=True)
class Quit:
    user: str
    message: str | None = None


@dataclass(frozen=True)
class ModeChange:
    channel: str
    users: tuple[RosterEntry, ...] | None = None


@dataclass(frozen=True)
class Numeric:
    code: int
    params: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Lifecycle inputs (session -> reducer)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectRequested:
    attempt: int = 0


@dataclass(frozen=True)
class ConnectFailed:
    message: str


@dataclass(frozen=True)
class DisconnectRequested:
    pass


InboundEvent = Union[
    ConnectionEstablished,
    ConnectionEnded,
    Join,
    Part,
    ChannelMessage,
    PrivateMessage,
    Topic,
    UsersUpdated,
    Kick,
    Notice,
    NickChange,
    Quit,
    ModeChange,
    Numeric,
]

LifecycleEvent = Union[ConnectRequested, ConnectFailed, DisconnectRequested]


# ---------------------------------------------------------------------------
# Outbound (session -> transport)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SendMessage:
    """PRIVMSG to a target; the session also logs it as a self message."""

    target: str
    text: str


@dataclass(frozen=True)
class SendRaw:
    line: str


@dataclass(frozen=True)
class AddChannel:
    channel: str


@dataclass(frozen=True)
class RemoveChannel:
    channel: str
    message: str | None = None


OutboundAction = Union[SendMessage, SendRaw, AddChannel, RemoveChannel]
