"""Slash-command parser: typed text -> CommandIntent. Pure and total."""

from __future__ import annotations

from collections.abc import Callable

from parlor.commands import intents
from parlor.core.constants import CHANNEL_SIGIL, COMMAND_PREFIX

_Handler = Callable[[str, str], intents.CommandIntent]


def _split(args: str, limit: int = 2) -> list[str]:
    """Split on single spaces into at most `limit` parts (the last keeps the rest)."""
    return args.split(" ", limit - 1)


def _blank(args: str) -> bool:
    return not args.strip()


def _first_word(args: str) -> str:
    return args.strip().split(" ")[0]


def _optional(args: str) -> str | None:
    return args.strip() or None


def _nick_command(factory: Callable[[str], intents.CommandIntent]) -> _Handler:
    """Commands taking one required nickname; extra words are ignored."""

    def handler(command: str, args: str) -> intents.CommandIntent:
        if _blank(args):
            return intents.Unknown(command, args)
        return factory(_first_word(args))

    return handler


def _required_text(factory: Callable[[str], intents.CommandIntent], *, strip: bool = True) -> _Handler:
    def handler(command: str, args: str) -> intents.CommandIntent:
        if _blank(args):
            return intents.Unknown(command, args)
        return factory(args.strip() if strip else args)

    return handler


def _optional_text(factory: Callable[[str | None], intents.CommandIntent]) -> _Handler:
    return lambda command, args: factory(_optional(args))


def _two_required(factory: Callable[[str, str], intents.CommandIntent]) -> _Handler:
    """`<first> <rest-of-line>`; both parts required."""

    def handler(command: str, args: str) -> intents.CommandIntent:
        parts = _split(args)
        if len(parts) < 2:
            return intents.Unknown(command, args)
        return factory(parts[0], parts[1])

    return handler


def _first_required_rest_optional(factory: Callable[[str, str | None], intents.CommandIntent]) -> _Handler:
    def handler(command: str, args: str) -> intents.CommandIntent:
        parts = _split(args)
        if not parts[0].strip():
            return intents.Unknown(command, args)
        return factory(parts[0], parts[1] if len(parts) > 1 else None)

    return handler


def _both_optional(factory: Callable[[str | None, str | None], intents.CommandIntent]) -> _Handler:
    def handler(command: str, args: str) -> intents.CommandIntent:
        parts = _split(args)
        return factory(parts[0].strip() or None, parts[1] if len(parts) > 1 else None)

    return handler


def _join(command: str, args: str) -> intents.CommandIntent:
    if _blank(args):
        return intents.Unknown(command, args)
    channel = _first_word(args)
    if not channel.startswith(CHANNEL_SIGIL):
        channel = f"{CHANNEL_SIGIL}{channel}"
    return intents.Join(channel)


def _invite(command: str, args: str) -> intents.CommandIntent:
    if _blank(args):
        return intents.Unknown(command, args)
    parts = _split(args)
    channel = parts[1].strip() if len(parts) > 1 else None
    return intents.Invite(parts[0], channel or None)


def _sysinfo(command: str, args: str) -> intents.CommandIntent:
    return intents.SysInfo(tuple(args.split()))


_COMMANDS: dict[tuple[str, ...], _Handler] = {
    ("join", "j"): _join,
    ("part", "leave"): _both_optional(intents.Part),
    ("cycle", "rejoin"): _both_optional(intents.Cycle),
    ("invite",): _invite,
    ("topic", "t"): _optional_text(intents.Topic),
    ("list",): _optional_text(intents.ListChannels),
    ("names",): _optional_text(intents.Names),
    ("msg", "privmsg"): _two_required(intents.Message),
    ("query", "q"): _first_required_rest_optional(intents.Query),
    ("me",): _required_text(intents.Action, strip=False),
    ("notice",): _two_required(intents.Notice),
    ("ctcp",): _two_required(intents.Ctcp),
    ("whois", "wii"): _nick_command(intents.Whois),
    ("who",): _required_text(intents.Who),
    ("nick",): _nick_command(intents.Nick),
    ("away",): _optional_text(intents.Away),
    ("back",): lambda command, args: intents.Back(),
    ("ignore",): _nick_command(intents.Ignore),
    ("unignore",): _nick_command(intents.Unignore),
    ("kick", "k"): _first_required_rest_optional(intents.Kick),
    ("ban", "b"): _nick_command(intents.Ban),
    ("unban",): _nick_command(intents.Unban),
    ("kb",): _first_required_rest_optional(intents.KickBan),
    ("voice", "v"): _nick_command(intents.Voice),
    ("devoice",): _nick_command(intents.Devoice),
    ("op",): _nick_command(intents.Op),
    ("deop",): _nick_command(intents.Deop),
    ("quiet", "mute"): _nick_command(intents.Quiet),
    ("unquiet", "unmute"): _nick_command(intents.Unquiet),
    ("mode",): _required_text(intents.Mode, strip=False),
    ("identify",): _required_text(intents.Identify),
    ("ns", "nickserv"): lambda command, args: intents.NickServ(args.strip()),
    ("cs", "chanserv"): lambda command, args: intents.ChanServ(args.strip()),
    ("ms", "memoserv"): lambda command, args: intents.MemoServ(args.strip()),
    ("znc",): lambda command, args: intents.Znc(args.strip()),
    ("quit", "disconnect", "exit"): _optional_text(intents.Quit),
    ("raw", "quote"): _required_text(intents.Raw, strip=False),
    ("connect", "server"): _optional_text(intents.Connect),
    ("ping",): _optional_text(intents.Ping),
    ("time",): _optional_text(intents.Time),
    ("version",): _optional_text(intents.Version),
    ("motd",): _optional_text(intents.Motd),
    ("info",): _optional_text(intents.Info),
    ("links",): _optional_text(intents.Links),
    ("map",): _optional_text(intents.Map),
    ("lusers",): _optional_text(intents.Lusers),
    ("admin",): _optional_text(intents.Admin),
    ("oper",): _required_text(intents.Oper),
    ("kill",): _two_required(intents.Kill),
    ("kline",): _two_required(intents.KLine),
    ("gline",): _two_required(intents.GLine),
    ("zline",): _two_required(intents.ZLine),
    ("rehash",): _optional_text(intents.Rehash),
    ("restart",): _optional_text(intents.Restart),
    ("die",): _optional_text(intents.Die),
    ("wallops",): _required_text(intents.Wallops),
    ("saje",): _two_required(intents.Saje),
    ("clear", "cls"): lambda command, args: intents.Clear(),
    ("sysinfo",): _sysinfo,
    ("help", "commands", "?"): lambda command, args: intents.Help(),
}

# Alias -> handler
_HANDLERS: dict[str, _Handler] = {alias: handler for names, handler in _COMMANDS.items() for alias in names}


def parse(text: str) -> intents.CommandIntent:
    """Parse one line of user input. Never raises."""
    if not text.startswith(COMMAND_PREFIX):
        return intents.NotACommand()
    if text.startswith(COMMAND_PREFIX * 2):
        return intents.NotACommand()

    parts = text[len(COMMAND_PREFIX) :].split(" ", 1)
    command = parts[0].lower()
    args = parts[1] if len(parts) > 1 else ""

    handler = _HANDLERS.get(command)
    if handler is None:
        return intents.Unknown(command, args)
    return handler(command, args)


def is_escaped(text: str) -> bool:
    """True for `//text`; callers strip one prefix before sending it literally."""
    return text.startswith(COMMAND_PREFIX * 2)


def unescape(text: str) -> str:
    return text[len(COMMAND_PREFIX) :] if is_escaped(text) else text


def help_text() -> str:
    return "\n".join(
        [
            "=== IRC Commands ===",
            "",
            "CHANNEL: /join /part /cycle /topic /invite /list /names",
            "MESSAGING: /msg /query /me /notice /ctcp",
            "USER: /nick /whois /who /away /back /ignore /unignore",
            "MODERATION: /kick /ban /unban /kb /voice /devoice /op /deop /quiet /unquiet /mode",
            "SERVICES: /identify /ns /cs /ms",
            "SERVER: /quit /raw /ping /time /version /motd /info /links /map /lusers /admin",
            "IRCOP: /oper /kill /kline /gline /zline /rehash /restart /die /wallops /saje",
            "CLIENT: /clear /sysinfo /help /znc",
            "",
            "TIP: Use // to send a message starting with /",
        ]
    )
