"""IRC transport: pydle client translating callbacks into session events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable

import pydle
from pydle.features.rfc1459.client import AlreadyInChannel, NotInChannel
from loguru import logger

from parlor import events
from parlor.core.errors import ConfigError, TransportError
from parlor.events import RosterEntry
from parlor.formatting import wrap_action
from parlor.models import ProxyConfig, ServerConfig, ServerType
from parlor.transport.base import EventSink

# Prefix modes that belong in a roster snapshot
_ROSTER_MODES = "qaohv"


class IRCClient(pydle.Client):
    """Pydle client that forwards everything it sees to an event sink."""

    # Reconnects are decided by the session's owner, not the library
    RECONNECT_ON_ERROR = False

    def __init__(self, nickname: str, sink: EventSink | None = None, **kwargs):
        super().__init__(nickname, **kwargs)
        self.sink = sink

    async def _emit(self, evt: events.InboundEvent) -> None:
        sink = self.sink
        if sink is None:
            logger.debug("IRC: dropping {} (no subscriber)", type(evt).__name__)
            return
        await sink(evt)

    def roster_snapshot(self, channel: str) -> tuple[RosterEntry, ...]:
        """Members of `channel` with their prefix-mode letters, from pydle's channel state."""
        info = self.channels.get(channel)
        if not info:
            return ()
        modes = info.get("modes", {})
        entries = []
        for nick in sorted(info.get("users", ())):
            letters = "".join(
                letter
                for letter in _ROSTER_MODES
                if isinstance(modes.get(letter), (set, list, tuple)) and nick in modes[letter]
            )
            entries.append((nick, letters))
        return tuple(entries)

    async def on_raw(self, message) -> None:
        await super().on_raw(message)
        code = message.command
        if isinstance(code, str) and code.isdigit():
            code = int(code)
        if isinstance(code, int):
            await self._emit(events.Numeric(code, tuple(str(p) for p in message.params)))

    async def on_raw_332(self, message) -> None:
        """RPL_TOPIC: topic on join, no setter reported."""
        await super().on_raw_332(message)
        params = message.params
        if len(params) >= 3:
            await self._emit(events.Topic(params[1], params[2] or None))

    async def on_raw_366(self, message) -> None:
        """RPL_ENDOFNAMES: pydle's NAMES bookkeeping is complete; publish the full roster."""
        await super().on_raw_366(message)
        params = message.params
        if len(params) >= 2:
            channel = params[1]
            await self._emit(events.UsersUpdated(channel, self.roster_snapshot(channel)))

    async def on_raw_433(self, message) -> None:
        """ERR_NICKNAMEINUSE: the session picks the fallback nick."""
        logger.debug("IRC: nickname in use; leaving fallback to the session")

    async def on_join(self, channel: str, user: str) -> None:
        await super().on_join(channel, user)
        await self._emit(events.Join(channel, user))

    async def on_part(self, channel: str, user: str, message: str | None = None) -> None:
        await super().on_part(channel, user, message)
        await self._emit(events.Part(channel, user, message))

    async def on_kick(self, channel: str, target: str, by: str, reason: str | None = None) -> None:
        await super().on_kick(channel, target, by, reason)
        await self._emit(events.Kick(channel, by, target, reason or ""))

    async def on_quit(self, user: str, message: str | None = None) -> None:
        await super().on_quit(user, message)
        await self._emit(events.Quit(user, message))

    async def on_nick_change(self, old: str, new: str) -> None:
        await super().on_nick_change(old, new)
        await self._emit(events.NickChange(old, new))

    async def on_topic_change(self, channel: str, message: str, by: str) -> None:
        await super().on_topic_change(channel, message, by)
        await self._emit(events.Topic(channel, message or None, by or None))

    async def on_mode_change(self, channel: str, modes, by: str) -> None:
        await super().on_mode_change(channel, modes, by)
        await self._emit(events.ModeChange(channel, self.roster_snapshot(channel)))

    async def on_channel_message(self, target: str, by: str, message: str) -> None:
        await super().on_channel_message(target, by, message)
        await self._emit(events.ChannelMessage(target, by, message))

    async def on_private_message(self, target: str, by: str, message: str) -> None:
        await super().on_private_message(target, by, message)
        await self._emit(events.PrivateMessage(by, message))

    async def on_ctcp_action(self, by: str, target: str, contents: str) -> None:
        """pydle strips CTCP framing; restore it so ACTIONs reach the session as chat text.

        pydle has no base handler for this callback, so there is no super() call.
        """
        text = wrap_action(contents or "")
        if self.is_channel(target):
            await self._emit(events.ChannelMessage(target, by, text))
        else:
            await self._emit(events.PrivateMessage(by, text))

    async def on_notice(self, target: str, by: str, message: str) -> None:
        await super().on_notice(target, by, message)
        await self._emit(events.Notice(target, by, message))

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        logger.info("IRC disconnected (expected={})", expected)
        await self._emit(events.ConnectionEnded(None if expected else "Connection lost"))


class PydleTransport:
    """Transport backed by one IRCClient per connect()."""

    def __init__(self, config: ServerConfig, proxy: ProxyConfig | None = None, *, client_class=IRCClient) -> None:
        if config.type is not ServerType.IRC:
            raise ConfigError(
                f"no transport for server type {config.type.value}",
                code="unsupported_server_type",
                details={"server": config.server_name},
            )
        if proxy is not None and proxy.enabled:
            raise ConfigError(
                "proxy connections are not supported by the IRC transport",
                code="proxy_unsupported",
                details={"server": config.server_name, "proxy": proxy.type.value},
            )
        self.config = config
        self.proxy = proxy
        self._client_class = client_class
        self._client: IRCClient | None = None
        self._sink: EventSink | None = None

    @property
    def client(self) -> IRCClient | None:
        return self._client

    def subscribe(self, sink: EventSink) -> None:
        self._sink = sink
        if self._client is not None:
            self._client.sink = sink

    def unsubscribe(self) -> None:
        self._sink = None
        if self._client is not None:
            self._client.sink = None

    def _client_kwargs(self) -> dict:
        cfg = self.config
        kwargs: dict = {
            "username": cfg.effective_username,
            "realname": cfg.effective_real_name,
        }
        if cfg.use_sasl and cfg.sasl_username and cfg.sasl_password:
            kwargs["sasl_username"] = cfg.sasl_username
            kwargs["sasl_password"] = cfg.sasl_password
        return kwargs

    async def connect(self) -> None:
        cfg = self.config
        if cfg.pinned_cert_fingerprint or cfg.trust_on_first_use:
            logger.warning("IRC: certificate pinning is not enforced by this transport ({})", cfg.server_name)
        client = self._client_class(cfg.nickname, sink=self._sink, **self._client_kwargs())
        self._client = client
        logger.info("IRC connecting to {}:{} (tls={})", cfg.hostname, cfg.port, cfg.use_ssl)
        try:
            await client.connect(
                hostname=cfg.hostname,
                port=cfg.port,
                tls=cfg.use_ssl,
                tls_verify=cfg.use_ssl and not cfg.accept_self_signed_certs,
                password=cfg.server_password,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            self._client = None
            raise TransportError(
                f"could not connect to {cfg.hostname}:{cfg.port}: {exc}",
                code="connect_failed",
                details={"hostname": cfg.hostname, "port": cfg.port},
                original_error=exc,
            ) from exc
        # pydle.connect() returns after spawning its read loop; registration is still pending
        logger.info("IRC connected to {}, registering as {}", cfg.hostname, cfg.nickname)

    async def disconnect(self, reason: str | None = None) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        if client.connected:
            try:
                await client.quit(reason)
            except Exception as exc:
                logger.warning("IRC QUIT failed: {}", exc)
                await client.disconnect(expected=True)
        logger.info("IRC transport closed for {}", self.config.server_name)

    def _require_client(self) -> IRCClient:
        if self._client is None or not self._client.connected:
            raise TransportError("IRC transport is not connected", code="not_connected")
        return self._client

    async def _send(self, operation: str, call: Awaitable[object], target: str | None = None) -> None:
        """Await one pydle call, re-raising its failures as TransportError."""
        details = {"operation": operation, "target": target}
        try:
            await call
        except AlreadyInChannel as exc:
            raise TransportError(f"Already in {target}", code="already_in_channel", details=details) from exc
        except NotInChannel as exc:
            raise TransportError(f"Not in {target}", code="not_in_channel", details=details) from exc
        except (pydle.Error, OSError) as exc:
            logger.warning("IRC {} failed on {}: {}", operation, self.config.server_name, exc)
            raise TransportError(
                f"{operation} failed: {exc}",
                code="send_failed",
                details=details,
                original_error=exc,
            ) from exc

    async def send_message(self, target: str, text: str) -> None:
        await self._send("PRIVMSG", self._require_client().message(target, text), target)

    async def send_raw_line(self, line: str) -> None:
        await self._send("raw", self._require_client().raw(f"{line}\r\n"))

    async def add_channel(self, name: str) -> None:
        await self._send("JOIN", self._require_client().join(name), name)

    async def remove_channel(self, name: str, message: str | None = None) -> None:
        await self._send("PART", self._require_client().part(name, message), name)


def create_transport(config: ServerConfig, proxy: ProxyConfig) -> PydleTransport:
    """Default TransportFactory."""
    return PydleTransport(config, proxy)
