"""Line-oriented console front end for one ConnectionSession."""

from __future__ import annotations

import asyncio
import contextlib
import sys
import time
from typing import TextIO

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from parlor.core.errors import ParlorError, TransportError
from parlor.gateway import BusSubscription
from parlor.models import (
    ConnectionStateChanged,
    Disconnected,
    HistoryCleared,
    Message,
    MessageType,
)
from parlor.session import ConnectionSession

# Console-only commands; everything else goes to ConnectionSession.execute
_SWITCH_COMMANDS = ("/go", "/window", "/w")
_LIST_COMMANDS = ("/windows", "/channels")

_TEMPLATES = {
    MessageType.NORMAL: "<{sender}> {content}",
    MessageType.ACTION: "* {sender} {content}",
    MessageType.NOTICE: "-{sender}- {content}",
    MessageType.JOIN: "--> {sender} {content}",
    MessageType.PART: "<-- {sender} has left ({content})",
    MessageType.QUIT: "<-- {sender} has quit ({content})",
    MessageType.KICK: "<-- {content} (by {sender})",
    MessageType.NICK: "--- {sender} {content}",
    MessageType.TOPIC: "--- {sender}: {content}",
    MessageType.CTCP: "[CTCP {sender}] {content}",
}


def _clock(timestamp_ms: int) -> str:
    return time.strftime("%H:%M", time.localtime(timestamp_ms / 1000))


def render(evt: object) -> str | None:
    """One printable line for a bus item, or None if it has no console form."""
    if isinstance(evt, Message):
        template = _TEMPLATES.get(evt.type, "[{sender}] {content}")
        text = template.format(sender=evt.sender, content=evt.content)
        return f"{_clock(evt.timestamp)} {evt.target} {text}"
    if isinstance(evt, ConnectionStateChanged):
        return f"-- {type(evt.previous).__name__} -> {type(evt.current).__name__}"
    if isinstance(evt, HistoryCleared):
        return f"-- history cleared for {evt.target}"
    return None


class Console:
    """Prints session output and feeds typed lines back into the session.

    Unexpected disconnects trigger a reconnect with exponential backoff.
    """

    def __init__(
        self,
        session: ConnectionSession,
        *,
        max_attempts: int = 5,
        backoff_min: float = 2,
        backoff_max: float = 60,
        buffer_size: int = 1000,
        out: TextIO | None = None,
    ) -> None:
        self.session = session
        self.target: str | None = None
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.buffer_size = buffer_size
        self._out = out or sys.stdout
        self._quitting = False
        self._reconnect_task: asyncio.Task | None = None

    def write(self, line: str) -> None:
        print(line, file=self._out, flush=True)

    async def connect(self, *, reconnect: bool = False) -> None:
        """Connect, retrying TransportError with exponential backoff."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                # Attempt 0 means a fresh connect; reconnects count from 1
                await self.session.connect(number if reconnect else number - 1)

    def _on_state_change(self, evt: ConnectionStateChanged) -> None:
        if self._quitting:
            return
        lost = not evt.expected and isinstance(evt.current, Disconnected)
        if lost and (self._reconnect_task is None or self._reconnect_task.done()):
            logger.info("Connection lost; reconnecting")
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect(reconnect=True)
        except ParlorError as exc:
            logger.error("Giving up reconnecting: {}", exc)
            self.write(f"-- could not reconnect: {exc}")

    async def print_events(self, subscription: BusSubscription) -> None:
        async for _, evt in subscription:
            if isinstance(evt, ConnectionStateChanged):
                self._on_state_change(evt)
            line = render(evt)
            if line is not None:
                self.write(line)

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the console should exit."""
        line = line.rstrip("\r\n")
        if not line.strip():
            return True
        command, _, rest = line.partition(" ")
        if command.lower() in _SWITCH_COMMANDS:
            self.target = rest.strip() or None
            self.write(f"-- now talking in {self.target or '(nowhere)'}")
            if self.target:
                await self.session.mark_read(self.target)
            return True
        if command.lower() in _LIST_COMMANDS:
            for name, channel in self.session.channels().items():
                stats = channel.stats
                self.write(f"-- {name} [{channel.type.value}] {stats.total_users} users, {channel.unread_count} unread")
            return True
        if command.lower() in ("/quit", "/exit", "/disconnect"):
            self._quitting = True
        await self.session.execute(line, self.target)
        return not self._quitting

    async def read_input(self) -> None:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                self._quitting = True
                await self.session.disconnect()
                return
            if not await self.handle_line(line):
                return

    async def run(self) -> None:
        subscription = self.session.bus.subscribe(self.buffer_size)
        printer = asyncio.create_task(self.print_events(subscription))
        try:
            try:
                await self.connect()
            except ParlorError as exc:
                logger.error("Could not connect to {}: {}", self.session.source, exc)
                return
            await self.read_input()
        finally:
            subscription.close()
            printer.cancel()
            if self._reconnect_task is not None:
                self._reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await printer
