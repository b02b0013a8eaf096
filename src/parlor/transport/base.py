"""Transport contract consumed by ConnectionSession."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from parlor.events import InboundEvent
from parlor.models import ProxyConfig, ServerConfig

# Receives decoded events; awaiting it applies the session's queue backpressure
EventSink = Callable[[InboundEvent], Awaitable[None]]


class Transport(Protocol):
    """One network connection. Built per connect attempt by a TransportFactory."""

    def subscribe(self, sink: EventSink) -> None:
        """Route inbound events to `sink` until unsubscribed."""
        ...

    def unsubscribe(self) -> None:
        """Stop delivering events. Anything arriving afterwards is dropped."""
        ...

    async def connect(self) -> None:
        """Open the socket and start registration; raises TransportError on failure.

        Returning means the connection is established. The session records
        that itself, so transports need not emit ConnectionEstablished.
        """
        ...

    async def disconnect(self, reason: str | None = None) -> None: ...

    async def send_message(self, target: str, text: str) -> None: ...

    async def send_raw_line(self, line: str) -> None: ...

    async def add_channel(self, name: str) -> None: ...

    async def remove_channel(self, name: str, message: str | None = None) -> None: ...


TransportFactory = Callable[[ServerConfig, ProxyConfig], Transport]
