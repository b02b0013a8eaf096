"""ConnectionSession: one server connection, one serialized writer.

Every state change (inbound events, user commands, connect/disconnect and
sequencer steps) is a queue item consumed by a single worker task, so the
reducer never sees two things at once. Reads go through snapshot accessors.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import inspect
import platform
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from parlor import __version__
from parlor.commands import help_text, intents, parse, to_actions
from parlor.commands.parser import unescape
from parlor.core.constants import (
    CHANNEL_PREFIXES,
    CHANSERV,
    CYCLE_DELAY,
    DEFAULT_PART_MESSAGE,
    DEFAULT_QUIT_MESSAGE,
    DEFAULT_SCRIPT_DELAY,
    MEMOSERV,
    NICKSERV,
    WHOIS_CACHE_TTL_SECONDS,
)
from parlor.core.errors import NotConnectedError, ParlorError, TransportError
from parlor.events import (
    AddChannel,
    ConnectFailed,
    ConnectionEnded,
    ConnectionEstablished,
    ConnectRequested,
    DisconnectRequested,
    OutboundAction,
    RemoveChannel,
    SendMessage,
    SendRaw,
)
from parlor.gateway import MessageBus
from parlor.models import (
    LIVE_STATES,
    Channel,
    ConnectionState,
    ConnectionStateChanged,
    Disconnected,
    Error,
    HistoryCleared,
    MessageFactory,
    MessageType,
    ServerConfig,
    now_ms,
)
from parlor.session.reducer import EventReducer, Reduction
from parlor.session.sequencer import ConnectSequencer
from parlor.transport import TransportFactory, create_transport
from parlor.transport.base import Transport

DEFAULT_QUEUE_SIZE = 256

_SERVICE_BOTS = {
    intents.Identify: NICKSERV,
    intents.NickServ: NICKSERV,
    intents.ChanServ: CHANSERV,
    intents.MemoServ: MEMOSERV,
}


@dataclass
class _Inbound:
    generation: int
    event: object


@dataclass
class _Request:
    fn: Callable[[], Any]
    future: asyncio.Future


class ConnectionSession:
    """Session engine for one server."""

    def __init__(
        self,
        config: ServerConfig,
        transport_factory: TransportFactory = create_transport,
        *,
        bus: MessageBus | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        script_delay: float = DEFAULT_SCRIPT_DELAY,
        whois_ttl: float = WHOIS_CACHE_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config
        self._factory = transport_factory
        self.bus = bus or MessageBus()
        self.script_delay = script_delay
        self._reducer = EventReducer(config, factory=MessageFactory(clock), whois_ttl=whois_ttl)
        self._queue: asyncio.Queue[_Inbound | _Request] = asyncio.Queue(maxsize=queue_size)
        self._transport: Transport | None = None
        self._generation = 0
        self._worker: asyncio.Task | None = None
        self._sequencer_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle of the session object
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConnectionSession:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def start(self) -> None:
        """Start the worker on the running loop. Idempotent."""
        if self._closed:
            raise ParlorError("session is closed", code="session_closed")
        if self._worker is None or self._worker.done():
            self._loop = asyncio.get_running_loop()
            self._worker = asyncio.create_task(self._run(), name=f"session:{self._config.server_name}")

    async def close(self) -> None:
        """Disconnect if needed and stop the worker. Pending requests are cancelled."""
        if self._closed:
            return
        if self._transport is not None and self._worker is not None:
            with contextlib.suppress(ParlorError):
                await self.disconnect()
        self._closed = True
        self._cancel_sequencer()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, _Request):
                item.future.cancel()
        logger.debug("Session {} closed", self._config.server_name)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def source(self) -> str:
        return self._config.server_name

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def connection_state(self) -> ConnectionState:
        return self._reducer.state.connection

    @property
    def server_buffer(self) -> str:
        return self._reducer.server_buffer

    @property
    def whois_cache(self):
        return self._reducer.whois_cache

    def cached_whois(self, nickname: str) -> str | None:
        return self._reducer.whois_cache.get(nickname.lower())

    def current_nickname(self) -> str:
        return self._reducer.state.nickname

    def channels(self) -> dict[str, Channel]:
        return self._reducer.state.roster.snapshot()

    def channel(self, name: str) -> Channel | None:
        return self._reducer.state.roster.get(name)

    def ignored(self) -> frozenset[str]:
        return frozenset(self._reducer.state.ignored)

    # ------------------------------------------------------------------
    # Queue plumbing
    # ------------------------------------------------------------------

    async def _call(self, fn: Callable[[], Any]) -> Any:
        """Run `fn` on the worker and return its result. Never call from the worker itself."""
        self.start()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Request(fn, future))
        return await future

    async def _deliver(self, generation: int, event: object) -> None:
        """EventSink bound to one connection generation."""
        if generation != self._generation or self._closed:
            logger.debug("Discarding {} from stale connection", type(event).__name__)
            return
        self.start()
        await self._queue.put(_Inbound(generation, event))

    def submit_threadsafe(self, event: object, generation: int | None = None) -> None:
        """Enqueue an inbound event from a transport running on another thread."""
        if self._loop is None:
            raise ParlorError("session worker not started", code="not_started")
        gen = self._generation if generation is None else generation
        asyncio.run_coroutine_threadsafe(self._queue.put(_Inbound(gen, event)), self._loop)

    async def _run(self) -> None:
        while True:
            try:
                item = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                if isinstance(item, _Inbound):
                    if item.generation != self._generation:
                        logger.debug("Discarding {} from stale connection", type(item.event).__name__)
                        continue
                    await self._apply(item.event)
                else:
                    await self._execute_request(item)
            except asyncio.CancelledError:
                if isinstance(item, _Request):
                    item.future.cancel()
                break
            except Exception as exc:
                logger.exception("Session worker error: {}", exc)
            finally:
                self._queue.task_done()

    async def _execute_request(self, request: _Request) -> None:
        if request.future.cancelled():
            return
        try:
            result = request.fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            if not request.future.done():
                request.future.set_exception(exc)
        else:
            if not request.future.done():
                request.future.set_result(result)

    # ------------------------------------------------------------------
    # Worker-side operations
    # ------------------------------------------------------------------

    def _publish(self, evt: object) -> None:
        self.bus.publish(self.source, evt)

    async def _apply(self, event: object) -> Reduction:
        previous = self._reducer.state.connection
        reduction = self._reducer.reduce(event)
        current = self._reducer.state.connection
        if current != previous:
            self._publish(ConnectionStateChanged(previous, current, expected=not isinstance(event, ConnectionEnded)))
        for message in reduction.messages:
            self._publish(message)
        for action in reduction.actions:
            try:
                await self._perform(action)
            except ParlorError as exc:
                logger.warning("Dropped {} from {}: {}", type(action).__name__, type(event).__name__, exc)
        if reduction.registered:
            self._start_sequencer()
        if isinstance(event, ConnectionEnded) and isinstance(current, (Disconnected, Error)):
            self._cancel_sequencer()
            await self._teardown_transport(None)
        return reduction

    async def _perform(self, action: OutboundAction) -> None:
        transport = self._transport
        if transport is None or not isinstance(self._reducer.state.connection, LIVE_STATES):
            raise NotConnectedError(
                "not connected",
                code="not_connected",
                details={"action": type(action).__name__},
            )
        if isinstance(action, SendMessage):
            await transport.send_message(action.target, action.text)
            self._publish(self._reducer.record_outgoing(action.target, action.text))
        elif isinstance(action, SendRaw):
            await transport.send_raw_line(action.line)
        elif isinstance(action, AddChannel):
            await transport.add_channel(action.channel)
        elif isinstance(action, RemoveChannel):
            await transport.remove_channel(action.channel, action.message)
        else:
            raise TypeError(f"unknown outbound action {action!r}")

    def _local(self, content: str, target: str | None = None, type: MessageType = MessageType.SYSTEM) -> None:
        self._publish(self._reducer.system_message(target, content, type))

    async def _teardown_transport(self, reason: str | None) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        transport.unsubscribe()
        self._generation += 1
        try:
            await transport.disconnect(reason)
        except Exception as exc:
            logger.warning("Transport teardown for {} failed: {}", self.source, exc)

    async def _do_connect(self, attempt: int) -> None:
        if self._transport is not None:
            logger.info("Tearing down existing connection to {} before reconnecting", self.source)
            self._cancel_sequencer()
            await self._apply(DisconnectRequested())
            await self._teardown_transport(None)

        await self._apply(ConnectRequested(attempt))
        try:
            self._config.validate()
            transport = self._factory(self._config, self._config.proxy)
        except ParlorError as exc:
            await self._apply(ConnectFailed(str(exc)))
            raise

        self._generation += 1
        transport.subscribe(functools.partial(self._deliver, self._generation))
        self._transport = transport
        try:
            await transport.connect()
        except Exception as exc:
            transport.unsubscribe()
            self._transport = None
            self._generation += 1
            await self._apply(ConnectFailed(str(exc)))
            if isinstance(exc, ParlorError):
                raise
            raise TransportError(str(exc), code="connect_failed", original_error=exc) from exc
        await self._apply(ConnectionEstablished())

    async def _do_disconnect(self, reason: str | None) -> None:
        await self._apply(DisconnectRequested())
        await self._teardown_transport(reason)

    # ------------------------------------------------------------------
    # Sequencer
    # ------------------------------------------------------------------

    def _start_sequencer(self) -> None:
        self._cancel_sequencer()
        sequencer = ConnectSequencer(
            self._config,
            self._reducer.state.nickname,
            perform=self._sequenced,
            announce=self._announce,
            delay=self.script_delay,
        )
        self._sequencer_task = asyncio.create_task(sequencer.run(), name=f"sequencer:{self.source}")

    def _cancel_sequencer(self) -> None:
        task, self._sequencer_task = self._sequencer_task, None
        if task is not None and not task.done():
            logger.debug("Cancelling connect sequence for {}", self.source)
            task.cancel()

    async def _sequenced(self, action: OutboundAction) -> None:
        await self._call(lambda: self._perform(action))

    async def _announce(self, content: str) -> None:
        await self._call(
            lambda: self._publish(self._reducer.system_message(None, content, MessageType.NOTICE, is_self=True))
        )

    @property
    def sequencer_running(self) -> bool:
        return self._sequencer_task is not None and not self._sequencer_task.done()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(self, attempt: int = 0) -> None:
        """Open a connection, tearing down any live one first.

        Raises ConfigError or TransportError after moving to the Error state.
        """
        await self._call(lambda: self._do_connect(attempt))

    async def disconnect(self, reason: str | None = None) -> None:
        # Stop automation and inbound delivery before the teardown is queued
        self._cancel_sequencer()
        if self._transport is not None:
            self._transport.unsubscribe()
            self._generation += 1
        await self._call(lambda: self._do_disconnect(reason))

    async def send_message(self, target: str, text: str) -> None:
        await self._call(lambda: self._perform(SendMessage(target, text)))

    async def send_raw(self, line: str) -> None:
        await self._call(lambda: self._perform(SendRaw(line)))

    async def join(self, channel: str) -> None:
        await self._call(lambda: self._perform(AddChannel(channel)))

    async def part(self, channel: str, message: str | None = None) -> None:
        await self._call(lambda: self._perform(RemoveChannel(channel, message or DEFAULT_PART_MESSAGE)))

    async def update_config(self, config: ServerConfig) -> None:
        """Swap in a new config; connection settings apply on the next connect."""

        def swap() -> None:
            self._config = config
            self._reducer.config = config
            logger.info("Config updated for {}", config.server_name)

        await self._call(swap)

    async def start_query(self, nickname: str) -> None:
        await self._call(lambda: self._reducer.open_query(nickname))

    async def close_query(self, nickname: str) -> bool:
        return await self._call(lambda: self._reducer.close_query(nickname))

    async def mark_read(self, target: str) -> None:
        await self._call(lambda: self._reducer.mark_read(target))

    async def request_silent_whois(self, nickname: str) -> None:
        """WHOIS whose replies only fill the cache."""

        async def run() -> None:
            await self._perform(SendRaw(f"WHOIS {nickname}"))
            self._reducer.expect_silent_whois(nickname)

        await self._call(run)

    async def system_message(self, content: str, target: str | None = None) -> None:
        await self._call(lambda: self._local(content, target))

    # ------------------------------------------------------------------
    # Typed input
    # ------------------------------------------------------------------

    async def execute(self, text: str, target: str | None = None) -> None:
        """Handle one line typed while viewing `target`."""
        intent = parse(text)
        try:
            await self._dispatch(intent, text, target)
        except NotConnectedError:
            await self.system_message("Not connected to a server", target)
        except ParlorError as exc:
            logger.info("Command {!r} failed on {}: {}", text, self.source, exc)
            await self.system_message(str(exc), target)

    async def _dispatch(self, intent: intents.CommandIntent, text: str, target: str | None) -> None:
        if isinstance(intent, intents.NotACommand):
            if not target:
                await self.system_message("No channel or query selected")
                return
            await self.send_message(target, unescape(text))
        elif isinstance(intent, intents.Unknown):
            await self.system_message(f"Unknown command: /{intent.command}", target)
        elif isinstance(intent, intents.Help):
            await self.system_message(help_text(), target)
        elif isinstance(intent, intents.SysInfo):
            await self.system_message(_sysinfo(), target)
        elif isinstance(intent, intents.Clear):
            if target:
                await self._call(lambda: self._publish(HistoryCleared(target)))
                await self.mark_read(target)
        elif isinstance(intent, intents.Query):
            await self.start_query(intent.nickname)
            if intent.message:
                await self.send_message(intent.nickname, intent.message)
        elif isinstance(intent, intents.Ignore):
            added = await self._call(lambda: self._reducer.ignore(intent.nickname))
            note = f"Ignoring {intent.nickname}" if added else f"{intent.nickname} is already ignored"
            await self.system_message(note, target)
        elif isinstance(intent, intents.Unignore):
            removed = await self._call(lambda: self._reducer.unignore(intent.nickname))
            note = f"No longer ignoring {intent.nickname}" if removed else f"{intent.nickname} was not ignored"
            await self.system_message(note, target)
        elif isinstance(intent, intents.Connect):
            if intent.server and intent.server not in (self._config.server_name, self._config.hostname):
                await self.system_message(f"This session is bound to {self._config.server_name}; reconnecting")
            with contextlib.suppress(ParlorError):
                await self.connect()
        elif isinstance(intent, intents.Quit):
            await self.disconnect(intent.message or DEFAULT_QUIT_MESSAGE)
        elif isinstance(intent, intents.Cycle):
            channel = intent.channel or target
            if not channel:
                await self.system_message("No channel to cycle")
                return
            await self.part(channel, intent.message)
            await asyncio.sleep(CYCLE_DELAY)
            await self.join(channel)
        elif isinstance(intent, intents.Part) and not _is_channel(intent.channel or target):
            name = intent.channel or target
            if not name:
                await self.system_message("No channel to leave")
            elif not await self.close_query(name):
                await self.system_message(f"No open query with {name}", target)
        else:
            await self._send_intent(intent, target)

    async def _send_intent(self, intent: intents.CommandIntent, target: str | None) -> None:
        actions = to_actions(intent, target)
        if actions is None:
            await self.system_message("That command needs a channel; select one first", target)
            return
        bot = _SERVICE_BOTS.get(type(intent))
        if bot is not None:
            await self.start_query(bot)
        if isinstance(intent, intents.Whois):
            await self._call(functools.partial(self._reducer.expect_whois, intent.nickname))
        for action in actions:
            await self._call(functools.partial(self._perform, action))
        if isinstance(intent, intents.Identify):
            await self.system_message("Sent identification to NickServ", bot)


def _is_channel(name: str | None) -> bool:
    return bool(name) and name.startswith(CHANNEL_PREFIXES)


def _sysinfo() -> str:
    return (
        f"parlor {__version__} | Python {platform.python_version()} "
        f"({platform.python_implementation()}) | {platform.system()} {platform.release()}"
    )
