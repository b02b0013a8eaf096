"""Session state machine.

`EventReducer.reduce` folds one event into `SessionState` and returns the log
messages and outbound actions it produced. Reduction is synchronous and never
performs I/O; the session worker is its only caller.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from cachetools import TTLCache
from loguru import logger

from parlor import events
from parlor.core import constants as c
from parlor.core.errors import EventReductionFault
from parlor.formatting import is_ctcp, unwrap_action, unwrap_ctcp
from parlor.models import (
    ChannelType,
    Connected,
    Connecting,
    ConnectionState,
    Disconnected,
    Error,
    Message,
    MessageFactory,
    MessageType,
    Reconnecting,
    ServerConfig,
)
from parlor.session.roster import ChannelRoster

_LIFECYCLE: tuple[type, ...] = (
    events.ConnectRequested,
    events.ConnectFailed,
    events.DisconnectRequested,
    events.ConnectionEstablished,
    events.ConnectionEnded,
)

_CHAT_TYPES = frozenset({MessageType.NORMAL, MessageType.ACTION, MessageType.NOTICE, MessageType.CTCP})


@dataclass
class SessionState:
    """Everything the reducer owns. Copied before each event for rollback."""

    nickname: str
    connection: ConnectionState = field(default_factory=Disconnected)
    roster: ChannelRoster = field(default_factory=ChannelRoster)
    # Last topic seen per channel; survives channel entity replacement
    previous_topics: dict[str, str | None] = field(default_factory=dict)
    has_connected_before: bool = False
    # Set at ConnectionEstablished; MOTD is shown only when False
    is_reconnect: bool = False
    registered: bool = False
    ignored: set[str] = field(default_factory=set)
    pending_whois: dict[str, list[str]] = field(default_factory=dict)
    silent_whois: set[str] = field(default_factory=set)

    def copy(self) -> SessionState:
        return SessionState(
            nickname=self.nickname,
            connection=self.connection,
            roster=self.roster.copy(),
            previous_topics=dict(self.previous_topics),
            has_connected_before=self.has_connected_before,
            is_reconnect=self.is_reconnect,
            registered=self.registered,
            ignored=set(self.ignored),
            pending_whois={nick: list(lines) for nick, lines in self.pending_whois.items()},
            silent_whois=set(self.silent_whois),
        )


@dataclass
class Reduction:
    """Outputs of one reduced event."""

    messages: list[Message] = field(default_factory=list)
    actions: list[events.OutboundAction] = field(default_factory=list)
    # RPL_WELCOME seen for the first time on this connection
    registered: bool = False
    fault: EventReductionFault | None = None


class EventReducer:
    def __init__(
        self,
        config: ServerConfig,
        *,
        factory: MessageFactory | None = None,
        whois_ttl: float = c.WHOIS_CACHE_TTL_SECONDS,
    ) -> None:
        self.config = config
        self.factory = factory or MessageFactory()
        self.state = SessionState(nickname=config.nickname)
        self.whois_cache: TTLCache = TTLCache(maxsize=c.WHOIS_CACHE_MAXSIZE, ttl=whois_ttl)
        self._out = Reduction()
        self._handlers: dict[type, Callable[..., None]] = {
            events.ConnectRequested: self._on_connect_requested,
            events.ConnectFailed: self._on_connect_failed,
            events.DisconnectRequested: self._on_disconnect_requested,
            events.ConnectionEstablished: self._on_connection_established,
            events.ConnectionEnded: self._on_connection_ended,
            events.Join: self._on_join,
            events.Part: self._on_part,
            events.ChannelMessage: self._on_channel_message,
            events.PrivateMessage: self._on_private_message,
            events.Topic: self._on_topic,
            events.UsersUpdated: self._on_users_updated,
            events.Kick: self._on_kick,
            events.Notice: self._on_notice,
            events.NickChange: self._on_nick_change,
            events.Quit: self._on_quit,
            events.ModeChange: self._on_mode_change,
            events.Numeric: self._on_numeric,
        }
        self._numeric_handlers: dict[int, Callable[[int, tuple[str, ...]], None]] = {
            c.RPL_WELCOME: self._on_welcome,
            c.RPL_ENDOFWHOIS: self._on_end_of_whois,
            c.ERR_NICKNAMEINUSE: self._on_nickname_in_use,
        }
        for code in c.WELCOME_NUMERICS | c.LUSERS_NUMERICS:
            self._numeric_handlers[code] = self._on_server_info
        for code in c.MOTD_NUMERICS:
            self._numeric_handlers[code] = self._on_motd
        for code in c.WHOIS_LINE_NUMERICS:
            self._numeric_handlers[code] = self._on_whois_line
        for code in c.WHOIS_EXTRA_NUMERICS:
            self._numeric_handlers[code] = self._on_whois_extra

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    @property
    def server_buffer(self) -> str:
        return c.server_buffer_name(self.config.server_name)

    def reduce(self, event: object) -> Reduction:
        """Apply one event. On failure the state is left as it was before it."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("No reducer handler for {}", type(event).__name__)
            return Reduction()
        if not isinstance(event, _LIFECYCLE) and not isinstance(self.state.connection, Connected):
            logger.debug("Dropping {} while {}", type(event).__name__, type(self.state.connection).__name__)
            return Reduction()

        saved = self.state.copy()
        self._out = Reduction()
        try:
            handler(event)
        except Exception as exc:
            self.state = saved
            logger.exception("Failed to reduce {}: {}", type(event).__name__, exc)
            return Reduction(
                fault=EventReductionFault(
                    f"failed to reduce {type(event).__name__}",
                    code="reduction_failed",
                    details={"event": repr(event)},
                    original_error=exc,
                )
            )
        out, self._out = self._out, Reduction()
        return out

    # ------------------------------------------------------------------
    # Local mutations requested by the session (worker only)
    # ------------------------------------------------------------------

    def record_outgoing(self, target: str, text: str) -> Message:
        """Synthesize the self message for a PRIVMSG we sent."""
        payload = unwrap_action(text)
        if payload is not None:
            message = self.factory.create(
                target, self.state.nickname, payload, MessageType.ACTION, is_self=True
            )
        else:
            message = self.factory.create(target, self.state.nickname, text, is_self=True)
        self.state.roster.touch(target, message.timestamp, unread=False)
        return message

    def system_message(
        self,
        target: str | None,
        content: str,
        type: MessageType = MessageType.SYSTEM,
        *,
        is_self: bool = False,
    ) -> Message:
        """Client-originated line; `target=None` means the server buffer."""
        return self.factory.create(target or self.server_buffer, c.CLIENT_SENDER, content, type, is_self=is_self)

    def open_query(self, nickname: str) -> None:
        self.state.roster.ensure(nickname, ChannelType.QUERY)

    def close_query(self, nickname: str) -> bool:
        channel = self.state.roster.get(nickname)
        if channel is None or channel.type is not ChannelType.QUERY:
            return False
        return self.state.roster.remove(nickname)

    def ignore(self, nickname: str) -> bool:
        if nickname in self.state.ignored:
            return False
        self.state.ignored.add(nickname)
        return True

    def unignore(self, nickname: str) -> bool:
        if nickname not in self.state.ignored:
            return False
        self.state.ignored.discard(nickname)
        return True

    def mark_read(self, target: str) -> None:
        self.state.roster.mark_read(target)

    def expect_whois(self, nickname: str, *, silent: bool = False) -> None:
        """Open a WHOIS collection for `nickname`; replies are gathered until 318."""
        key = nickname.lower()
        self.state.pending_whois.setdefault(key, [])
        if silent:
            self.state.silent_whois.add(key)

    def expect_silent_whois(self, nickname: str) -> None:
        self.expect_whois(nickname, silent=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(
        self,
        target: str,
        sender: str,
        content: str,
        type: MessageType = MessageType.NORMAL,
    ) -> Message:
        message = self.factory.create(target, sender, content, type)
        if type in _CHAT_TYPES:
            self.state.roster.touch(target, message.timestamp, unread=True)
        self._out.messages.append(message)
        return message

    def _set_connection(self, new: ConnectionState) -> None:
        logger.debug("Connection state {} -> {}", self.state.connection, new)
        self.state.connection = new

    def _is_me(self, nickname: str) -> bool:
        return nickname == self.state.nickname

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_connect_requested(self, event: events.ConnectRequested) -> None:
        self._set_connection(Reconnecting(event.attempt) if event.attempt > 0 else Connecting())
        self.state.registered = False
        self.state.nickname = self.config.nickname

    def _on_connect_failed(self, event: events.ConnectFailed) -> None:
        self._set_connection(Error(event.message))
        self.state.roster.ensure(self.server_buffer, ChannelType.SERVER)
        self._emit(self.server_buffer, c.SERVER_SENDER, f"Connection failed: {event.message}", MessageType.SERVER)

    def _on_disconnect_requested(self, event: events.DisconnectRequested) -> None:
        self._set_connection(Disconnected())
        self.state.registered = False
        self.state.pending_whois.clear()

    def _on_connection_established(self, event: events.ConnectionEstablished) -> None:
        if not isinstance(self.state.connection, (Connecting, Reconnecting)):
            logger.warning("ConnectionEstablished while {}; ignored", self.state.connection)
            return
        self._set_connection(Connected(self.config.server_name))
        self.state.registered = False
        self.state.is_reconnect = self.state.has_connected_before
        self.state.roster.ensure(self.server_buffer, ChannelType.SERVER)
        verb = "Reconnected" if self.state.has_connected_before else "Connected"
        self._emit(
            self.server_buffer,
            c.SERVER_SENDER,
            f"{verb} to {self.config.server_name}. Waiting for registration...",
            MessageType.SERVER,
        )

    def _on_connection_ended(self, event: events.ConnectionEnded) -> None:
        if isinstance(self.state.connection, (Disconnected, Error)):
            return
        self._set_connection(Disconnected())
        self.state.registered = False
        self.state.pending_whois.clear()
        content = "Disconnected from server"
        if event.reason:
            content = f"{content}: {event.reason}"
        self._emit(self.server_buffer, c.SERVER_SENDER, content, MessageType.SERVER)

    # ------------------------------------------------------------------
    # Channel membership
    # ------------------------------------------------------------------

    def _sync_or(self, channel: str, users, fallback: Callable[[], object]) -> None:
        if users is not None:
            self.state.roster.sync_users(channel, users)
        else:
            fallback()

    def _on_join(self, event: events.Join) -> None:
        roster = self.state.roster
        if self._is_me(event.user):
            roster.create_or_replace(event.channel)
            if event.users is not None:
                roster.sync_users(event.channel, event.users)
            logger.info("Joined {}", event.channel)
            return
        self._emit(event.channel, event.user, "has joined", MessageType.JOIN)
        self._sync_or(event.channel, event.users, lambda: roster.upsert_user(event.channel, event.user))

    def _on_part(self, event: events.Part) -> None:
        roster = self.state.roster
        if self._is_me(event.user):
            roster.remove(event.channel)
            logger.info("Left {}", event.channel)
            return
        self._emit(event.channel, event.user, event.message or "", MessageType.PART)
        self._sync_or(event.channel, event.users, lambda: roster.remove_user(event.channel, event.user))

    def _on_users_updated(self, event: events.UsersUpdated) -> None:
        self.state.roster.sync_users(event.channel, event.users)

    def _on_mode_change(self, event: events.ModeChange) -> None:
        if event.users is not None:
            self.state.roster.sync_users(event.channel, event.users)

    def _on_kick(self, event: events.Kick) -> None:
        self._emit(event.channel, event.actor, f"{event.target} was kicked: {event.message}", MessageType.KICK)
        if self._is_me(event.target):
            self.state.roster.remove(event.channel)
            logger.info("Kicked from {} by {}", event.channel, event.actor)
        else:
            self.state.roster.remove_user(event.channel, event.target)

    def _on_nick_change(self, event: events.NickChange) -> None:
        for name in self.state.roster.rename_everywhere(event.old, event.new):
            self._emit(name, event.old, f"is now known as {event.new}", MessageType.NICK)
        if self._is_me(event.old):
            self.state.nickname = event.new

    def _on_quit(self, event: events.Quit) -> None:
        for name in self.state.roster.remove_everywhere(event.user):
            self._emit(name, event.user, event.message or "", MessageType.QUIT)

    def _on_topic(self, event: events.Topic) -> None:
        previous = self.state.previous_topics.get(event.channel)
        self.state.previous_topics[event.channel] = event.topic
        self.state.roster.set_topic(event.channel, event.topic)
        if previous == event.topic:
            return
        self._emit(
            event.channel,
            event.setter or c.SERVER_SENDER,
            f"Topic: {event.topic or '(no topic)'}",
            MessageType.TOPIC,
        )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    @staticmethod
    def _classify(text: str) -> tuple[str, MessageType]:
        payload = unwrap_action(text)
        if payload is not None:
            return payload, MessageType.ACTION
        if is_ctcp(text):
            return unwrap_ctcp(text), MessageType.CTCP
        return text, MessageType.NORMAL

    def _on_channel_message(self, event: events.ChannelMessage) -> None:
        if event.actor in self.state.ignored:
            return
        content, kind = self._classify(event.text)
        self._emit(event.channel, event.actor, content, kind)

    def _on_private_message(self, event: events.PrivateMessage) -> None:
        if event.actor in self.state.ignored:
            return
        self.state.roster.ensure(event.actor, ChannelType.QUERY)
        content, kind = self._classify(event.text)
        self._emit(event.actor, event.actor, content, kind)

    def _on_notice(self, event: events.Notice) -> None:
        if event.actor in self.state.ignored:
            return
        roster = self.state.roster
        if event.channel in roster:
            target = event.channel
        elif event.actor in roster:
            target = event.actor
        else:
            target = self.server_buffer
        self._emit(target, event.actor, event.text, MessageType.NOTICE)

    # ------------------------------------------------------------------
    # Numerics
    # ------------------------------------------------------------------

    def _on_numeric(self, event: events.Numeric) -> None:
        handler = self._numeric_handlers.get(event.code)
        if handler is not None:
            handler(event.code, event.params)
        elif event.code in c.ERROR_NUMERIC_RANGE:
            self._on_error_numeric(event.code, event.params)

    def _on_welcome(self, code: int, params: tuple[str, ...]) -> None:
        if self.state.registered:
            return
        if params:
            self.state.nickname = params[0]
        self.state.registered = True
        self.state.has_connected_before = True
        self._out.registered = True
        logger.info("Registered on {} as {}", self.config.server_name, self.state.nickname)

    def _on_server_info(self, code: int, params: tuple[str, ...]) -> None:
        text = " ".join(params[1:])
        if text:
            self._emit(self.server_buffer, c.SERVER_SENDER, text, MessageType.SERVER)

    def _on_motd(self, code: int, params: tuple[str, ...]) -> None:
        if self.state.is_reconnect or len(params) < 2:
            return
        self._emit(self.server_buffer, c.MOTD_SENDER, params[-1], MessageType.SERVER)

    def _whois_target(self, nick: str) -> str:
        return self.server_buffer if self._is_me(nick) else nick

    def _on_whois_line(self, code: int, params: tuple[str, ...]) -> None:
        if len(params) < 2:
            return
        nick = params[1]
        key = nick.lower()
        line = _format_whois(code, params)
        if line is None:
            return
        if code == c.RPL_AWAY:
            self.state.roster.set_away(nick, True, params[-1])
        if code == c.RPL_WHOISUSER:
            self.state.pending_whois.setdefault(key, [])
        # 301 also answers a PRIVMSG to an away user; only replies inside a WHOIS are kept
        pending = self.state.pending_whois.get(key)
        if pending is not None:
            if line in pending:
                return
            pending.append(line)
        if key in self.state.silent_whois:
            return
        target = self._whois_target(nick)
        if target != self.server_buffer:
            self.state.roster.ensure(target, ChannelType.QUERY)
        self._emit(target, c.WHOIS_SENDER, line, MessageType.SERVER)

    def _on_end_of_whois(self, code: int, params: tuple[str, ...]) -> None:
        if len(params) < 2:
            return
        nick = params[1]
        key = nick.lower()
        lines = self.state.pending_whois.pop(key, None)
        silent = key in self.state.silent_whois
        self.state.silent_whois.discard(key)
        if not silent:
            target = self._whois_target(nick)
            self._emit(
                target if target in self.state.roster else self.server_buffer,
                c.WHOIS_SENDER,
                f"End of WHOIS for {nick}",
                MessageType.SERVER,
            )
        # Last: the cache sits outside the rolled-back state
        if lines:
            self.whois_cache[key] = "\n".join(lines)

    def _on_whois_extra(self, code: int, params: tuple[str, ...]) -> None:
        target = params[1] if len(params) > 1 else self.server_buffer
        if target.lower() in self.state.silent_whois:
            return
        if target not in self.state.roster:
            target = self.server_buffer
        self._emit(target, c.SERVER_SENDER, " ".join(params[1:]), MessageType.SYSTEM)

    def _on_nickname_in_use(self, code: int, params: tuple[str, ...]) -> None:
        rejected = params[1] if len(params) > 1 else self.state.nickname
        alternative = self._next_nickname(rejected)
        self.state.nickname = alternative
        self._out.actions.append(events.SendRaw(f"NICK {alternative}"))
        self._emit(
            self.server_buffer,
            c.CLIENT_SENDER,
            f"Nickname '{rejected}' is unavailable. Retrying with '{alternative}'...",
            MessageType.SYSTEM,
        )

    def _next_nickname(self, rejected: str) -> str:
        alt = self.config.alt_nickname.strip()
        if rejected == self.config.nickname and alt and alt != rejected:
            return alt
        sanitized = rejected.replace("`", "_")
        if sanitized != rejected:
            return sanitized
        return f"{rejected}_"

    def _on_error_numeric(self, code: int, params: tuple[str, ...]) -> None:
        subject = params[1] if len(params) > 2 else "*"
        text = " ".join(params[2:]) if len(params) > 2 else " ".join(params[1:])
        self._emit(self.server_buffer, c.ERROR_SENDER, f"{subject}: {text} (Code: {code})", MessageType.ERROR)


def _format_whois(code: int, params: tuple[str, ...]) -> str | None:
    """Human-readable line for one WHOIS reply; params[0] is our nick."""
    nick = params[1]
    if code == c.RPL_WHOISUSER and len(params) >= 6:
        return f"{nick} is {params[2]}@{params[3]} ({params[-1]})"
    if code == c.RPL_WHOISSERVER and len(params) >= 4:
        return f"{nick} is connected to {params[2]} ({params[3]})"
    if code == c.RPL_WHOISCHANNELS and len(params) >= 3:
        return f"{nick} is on {params[-1]}"
    if code == c.RPL_WHOISIDLE and len(params) >= 3:
        try:
            idle = int(params[2])
        except ValueError:
            return f"{nick} idle: {params[2]}"
        return f"{nick} has been idle {idle // 60}m {idle % 60}s"
    if code == c.RPL_WHOISACCOUNT and len(params) >= 3:
        return f"{nick} is logged in as {params[2]}"
    if code == c.RPL_WHOISSECURE:
        return f"{nick} is using a secure connection"
    if code == c.RPL_WHOISOPERATOR:
        return f"{nick} is an IRC operator"
    if code == c.RPL_AWAY and len(params) >= 3:
        return f"{nick} is away: {params[-1]}"
    return None
