"""Typed command intents produced by the slash-command parser.

Each variant carries exactly the arguments its command needs. Optional
arguments are ``None`` when omitted. Parse failures are values too:
``NotACommand`` for plain text and ``Unknown`` for unrecognised or
under-specified commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# Channel


@dataclass(frozen=True)
class Join:
    channel: str


@dataclass(frozen=True)
class Part:
    channel: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class Cycle:
    channel: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class Invite:
    nickname: str
    channel: str | None = None


@dataclass(frozen=True)
class Topic:
    topic: str | None = None


@dataclass(frozen=True)
class ListChannels:
    filter: str | None = None


@dataclass(frozen=True)
class Names:
    channel: str | None = None


# Messaging


@dataclass(frozen=True)
class Message:
    target: str
    message: str


@dataclass(frozen=True)
class Action:
    action: str


@dataclass(frozen=True)
class Notice:
    target: str
    message: str


@dataclass(frozen=True)
class Query:
    nickname: str
    message: str | None = None


@dataclass(frozen=True)
class Ctcp:
    target: str
    message: str


# User


@dataclass(frozen=True)
class Whois:
    nickname: str


@dataclass(frozen=True)
class Who:
    mask: str


@dataclass(frozen=True)
class Nick:
    new_nick: str


@dataclass(frozen=True)
class Away:
    message: str | None = None


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Ignore:
    nickname: str


@dataclass(frozen=True)
class Unignore:
    nickname: str


# Moderation


@dataclass(frozen=True)
class Kick:
    nickname: str
    reason: str | None = None


@dataclass(frozen=True)
class Ban:
    nickname: str


@dataclass(frozen=True)
class Unban:
    nickname: str


@dataclass(frozen=True)
class KickBan:
    nickname: str
    reason: str | None = None


@dataclass(frozen=True)
class Voice:
    nickname: str


@dataclass(frozen=True)
class Devoice:
    nickname: str


@dataclass(frozen=True)
class Op:
    nickname: str


@dataclass(frozen=True)
class Deop:
    nickname: str


@dataclass(frozen=True)
class Quiet:
    nickname: str


@dataclass(frozen=True)
class Unquiet:
    nickname: str


@dataclass(frozen=True)
class Mode:
    mode_string: str


# Services


@dataclass(frozen=True)
class Identify:
    args: str


@dataclass(frozen=True)
class NickServ:
    args: str = ""


@dataclass(frozen=True)
class ChanServ:
    args: str = ""


@dataclass(frozen=True)
class MemoServ:
    args: str = ""


@dataclass(frozen=True)
class Znc:
    args: str = ""


# Server


@dataclass(frozen=True)
class Quit:
    message: str | None = None


@dataclass(frozen=True)
class Raw:
    command: str


@dataclass(frozen=True)
class Connect:
    server: str | None = None


@dataclass(frozen=True)
class Ping:
    target: str | None = None


@dataclass(frozen=True)
class Time:
    server: str | None = None


@dataclass(frozen=True)
class Version:
    server: str | None = None


@dataclass(frozen=True)
class Motd:
    server: str | None = None


@dataclass(frozen=True)
class Info:
    server: str | None = None


@dataclass(frozen=True)
class Links:
    server: str | None = None


@dataclass(frozen=True)
class Map:
    server: str | None = None


@dataclass(frozen=True)
class Lusers:
    mask: str | None = None


@dataclass(frozen=True)
class Admin:
    server: str | None = None


# Operator


@dataclass(frozen=True)
class Oper:
    args: str


@dataclass(frozen=True)
class Kill:
    nickname: str
    reason: str


@dataclass(frozen=True)
class KLine:
    target: str
    reason: str


@dataclass(frozen=True)
class GLine:
    target: str
    reason: str


@dataclass(frozen=True)
class ZLine:
    target: str
    reason: str


@dataclass(frozen=True)
class Rehash:
    args: str | None = None


@dataclass(frozen=True)
class Restart:
    args: str | None = None


@dataclass(frozen=True)
class Die:
    args: str | None = None


@dataclass(frozen=True)
class Wallops:
    message: str


@dataclass(frozen=True)
class Saje:
    nickname: str
    channel: str


# Client-local


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class SysInfo:
    args: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Help:
    pass


# Parse results that are not commands


@dataclass(frozen=True)
class NotACommand:
    pass


@dataclass(frozen=True)
class Unknown:
    command: str
    args: str


CommandIntent = Union[
    Join,
    Part,
    Cycle,
    Invite,
    Topic,
    ListChannels,
    Names,
    Message,
    Action,
    Notice,
    Query,
    Ctcp,
    Whois,
    Who,
    Nick,
    Away,
    Back,
    Ignore,
    Unignore,
    Kick,
    Ban,
    Unban,
    KickBan,
    Voice,
    Devoice,
    Op,
    Deop,
    Quiet,
    Unquiet,
    Mode,
    Identify,
    NickServ,
    ChanServ,
    MemoServ,
    Znc,
    Quit,
    Raw,
    Connect,
    Ping,
    Time,
    Version,
    Motd,
    Info,
    Links,
    Map,
    Lusers,
    Admin,
    Oper,
    Kill,
    KLine,
    GLine,
    ZLine,
    Rehash,
    Restart,
    Die,
    Wallops,
    Saje,
    Clear,
    SysInfo,
    Help,
    NotACommand,
    Unknown,
]
