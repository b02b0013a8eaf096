"""Message bus: ordered multicast of log messages and session notices."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Protocol

from loguru import logger

DEFAULT_SUBSCRIPTION_SIZE = 1000


class EventTarget(Protocol):
    """Consumer interface: accept_event + push_event."""

    def accept_event(self, source: str, evt: object) -> bool:
        """Return True if this target wants the event."""
        ...

    def push_event(self, source: str, evt: object) -> None:
        """Handle the event. Must not block."""
        ...


class MessageBus:
    """Delivers each published item to every registered target, in publish order."""

    def __init__(self) -> None:
        self._targets: list[EventTarget] = []

    def register(self, target: EventTarget) -> None:
        self._targets.append(target)

    def unregister(self, target: EventTarget) -> None:
        if target in self._targets:
            self._targets.remove(target)

    @property
    def targets(self) -> list[EventTarget]:
        return list(self._targets)

    def publish(self, source: str, evt: object) -> None:
        """Publish to all targets that accept it. A failing target is logged and skipped."""
        for target in list(self._targets):
            try:
                if target.accept_event(source, evt):
                    target.push_event(source, evt)
            except Exception as exc:
                logger.exception("Failed to pass event to target {}: {}", target, exc)

    def subscribe(self, maxsize: int = DEFAULT_SUBSCRIPTION_SIZE, *, types: tuple[type, ...] = ()) -> BusSubscription:
        """Register a buffered async-iterable consumer. `types` filters by event class."""
        subscription = BusSubscription(self, maxsize, types)
        self.register(subscription)
        return subscription


class BusSubscription:
    """Bounded buffer fed by the bus; on overflow the oldest entry is dropped.

    Iterate with ``async for source, evt in subscription``. Iteration ends
    after `close()` once the buffer drains.
    """

    def __init__(self, bus: MessageBus, maxsize: int, types: tuple[type, ...] = ()) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be positive")
        self._bus = bus
        self._types = types
        self._buffer: deque[tuple[str, object]] = deque(maxlen=maxsize)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    def accept_event(self, source: str, evt: object) -> bool:
        if self._closed:
            return False
        return not self._types or isinstance(evt, self._types)

    def push_event(self, source: str, evt: object) -> None:
        if len(self._buffer) == self._buffer.maxlen:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning("Bus subscriber is lagging; {} events dropped", self.dropped)
        self._buffer.append((source, evt))
        self._ready.set()

    def pending(self) -> int:
        return len(self._buffer)

    def close(self) -> None:
        self._closed = True
        self._bus.unregister(self)
        self._ready.set()

    def __aiter__(self) -> BusSubscription:
        return self

    async def __anext__(self) -> tuple[str, object]:
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()
        return self._buffer.popleft()
