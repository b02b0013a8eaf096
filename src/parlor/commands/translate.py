"""Map server-bound intents onto outbound transport actions.

``to_actions`` is pure. It returns ``None`` when the intent is handled by the
session itself (queries, ignore list, help, quit...) or when it needs a
current target and none was given; callers decide the fallback.
"""

from __future__ import annotations

from collections.abc import Callable

from parlor.commands import intents
from parlor.core.constants import (
    CHANSERV,
    CTCP_DELIM,
    DEFAULT_KICKBAN_REASON,
    DEFAULT_NICKSERV_COMMAND,
    DEFAULT_PART_MESSAGE,
    MEMOSERV,
    NICKSERV,
    ZNC_STATUS,
)
from parlor.events import AddChannel, OutboundAction, RemoveChannel, SendMessage, SendRaw
from parlor.formatting import wrap_action

# Intents the session executes itself rather than translating to wire actions
SESSION_HANDLED: tuple[type, ...] = (
    intents.Query,
    intents.Ignore,
    intents.Unignore,
    intents.Clear,
    intents.SysInfo,
    intents.Help,
    intents.Connect,
    intents.Quit,
    intents.Cycle,
    intents.NotACommand,
    intents.Unknown,
)


def _with_optional(verb: str, arg: str | None) -> SendRaw:
    return SendRaw(f"{verb} {arg}" if arg else verb)


def _mode(target: str, flag: str, who: str) -> SendRaw:
    return SendRaw(f"MODE {target} {flag} {who}")


def _ban_mask(nickname: str) -> str:
    return f"{nickname}!*@*"


# Intents that do not depend on the current target
_UNTARGETED: dict[type, Callable[..., list[OutboundAction]]] = {
    intents.Join: lambda i: [AddChannel(i.channel)],
    intents.Message: lambda i: [SendMessage(i.target, i.message)],
    intents.Notice: lambda i: [SendRaw(f"NOTICE {i.target} :{i.message}")],
    intents.Ctcp: lambda i: [SendMessage(i.target, f"{CTCP_DELIM}{i.message}{CTCP_DELIM}")],
    intents.Raw: lambda i: [SendRaw(i.command)],
    intents.Nick: lambda i: [SendRaw(f"NICK {i.new_nick}")],
    intents.Whois: lambda i: [SendRaw(f"WHOIS {i.nickname}")],
    intents.Who: lambda i: [SendRaw(f"WHO {i.mask}")],
    intents.Away: lambda i: [SendRaw(f"AWAY :{i.message}" if i.message else "AWAY")],
    intents.Back: lambda i: [SendRaw("AWAY")],
    intents.ListChannels: lambda i: [_with_optional("LIST", i.filter)],
    intents.Identify: lambda i: [SendMessage(NICKSERV, f"{DEFAULT_NICKSERV_COMMAND} {i.args}")],
    intents.NickServ: lambda i: [SendMessage(NICKSERV, i.args or "HELP")],
    intents.ChanServ: lambda i: [SendMessage(CHANSERV, i.args or "HELP")],
    intents.MemoServ: lambda i: [SendMessage(MEMOSERV, i.args or "HELP")],
    intents.Znc: lambda i: [SendMessage(ZNC_STATUS, i.args or "help")],
    intents.Ping: lambda i: [_with_optional("PING", i.target)],
    intents.Time: lambda i: [_with_optional("TIME", i.server)],
    intents.Version: lambda i: [_with_optional("VERSION", i.server)],
    intents.Motd: lambda i: [_with_optional("MOTD", i.server)],
    intents.Info: lambda i: [_with_optional("INFO", i.server)],
    intents.Links: lambda i: [_with_optional("LINKS", i.server)],
    intents.Map: lambda i: [_with_optional("MAP", i.server)],
    intents.Lusers: lambda i: [_with_optional("LUSERS", i.mask)],
    intents.Admin: lambda i: [_with_optional("ADMIN", i.server)],
    intents.Oper: lambda i: [SendRaw(f"OPER {i.args}")],
    intents.Kill: lambda i: [SendRaw(f"KILL {i.nickname} :{i.reason}")],
    intents.KLine: lambda i: [SendRaw(f"KLINE {i.target} :{i.reason}")],
    intents.GLine: lambda i: [SendRaw(f"GLINE {i.target} :{i.reason}")],
    intents.ZLine: lambda i: [SendRaw(f"ZLINE {i.target} :{i.reason}")],
    intents.Rehash: lambda i: [_with_optional("REHASH", i.args)],
    intents.Restart: lambda i: [_with_optional("RESTART", i.args)],
    intents.Die: lambda i: [_with_optional("DIE", i.args)],
    intents.Wallops: lambda i: [SendRaw(f"WALLOPS :{i.message}")],
    intents.Saje: lambda i: [SendRaw(f"SAJE {i.nickname} {i.channel}")],
}

# Intents acting on the current target (channel being viewed)
_TARGETED: dict[type, Callable[..., list[OutboundAction]]] = {
    intents.Action: lambda i, t: [SendMessage(t, wrap_action(i.action))],
    intents.Kick: lambda i, t: [
        SendRaw(f"KICK {t} {i.nickname} :{i.reason}" if i.reason else f"KICK {t} {i.nickname}")
    ],
    intents.Ban: lambda i, t: [_mode(t, "+b", _ban_mask(i.nickname))],
    intents.Unban: lambda i, t: [_mode(t, "-b", _ban_mask(i.nickname))],
    intents.KickBan: lambda i, t: [
        _mode(t, "+b", _ban_mask(i.nickname)),
        SendRaw(f"KICK {t} {i.nickname} :{i.reason or DEFAULT_KICKBAN_REASON}"),
    ],
    intents.Voice: lambda i, t: [_mode(t, "+v", i.nickname)],
    intents.Devoice: lambda i, t: [_mode(t, "-v", i.nickname)],
    intents.Op: lambda i, t: [_mode(t, "+o", i.nickname)],
    intents.Deop: lambda i, t: [_mode(t, "-o", i.nickname)],
    intents.Quiet: lambda i, t: [_mode(t, "+q", _ban_mask(i.nickname))],
    intents.Unquiet: lambda i, t: [_mode(t, "-q", _ban_mask(i.nickname))],
    intents.Topic: lambda i, t: [SendRaw(f"TOPIC {t} :{i.topic}" if i.topic is not None else f"TOPIC {t}")],
}


def to_actions(intent: intents.CommandIntent, target: str | None = None) -> list[OutboundAction] | None:
    """Translate `intent` issued while viewing `target` into outbound actions."""
    if isinstance(intent, SESSION_HANDLED):
        return None

    untargeted = _UNTARGETED.get(type(intent))
    if untargeted is not None:
        return untargeted(intent)

    # Intents whose explicit argument can stand in for the current target
    if isinstance(intent, intents.Part):
        channel = intent.channel or target
        if not channel:
            return None
        return [RemoveChannel(channel, intent.message or DEFAULT_PART_MESSAGE)]
    if isinstance(intent, intents.Invite):
        channel = intent.channel or target
        if not channel:
            return None
        return [SendRaw(f"INVITE {intent.nickname} {channel}")]
    if isinstance(intent, intents.Names):
        channel = intent.channel or target
        return [SendRaw(f"NAMES {channel}" if channel else "NAMES")]
    if isinstance(intent, intents.Mode):
        return [SendRaw(f"MODE {target} {intent.mode_string}" if target else f"MODE {intent.mode_string}")]

    targeted = _TARGETED.get(type(intent))
    if targeted is None or not target:
        return None
    return targeted(intent, target)
