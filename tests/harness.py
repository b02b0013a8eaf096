"""Test harness for session testing - drives a ConnectionSession over a mock transport."""

from __future__ import annotations

from typing import Any

from parlor import events
from parlor.models import Message
from parlor.session import ConnectionSession
from tests.mocks import MockTarget, MockTransport, TransportRecorder, make_config, settle


class SessionTestHarness:
    """One session, its transport factory and a bus target capturing everything published."""

    def __init__(self, *, script_delay: float = 0, fail_with=None, **config: Any) -> None:
        self.factory = TransportRecorder(fail_with=fail_with)
        self.session = ConnectionSession(make_config(**config), self.factory, script_delay=script_delay)
        self.target = MockTarget()
        self.session.bus.register(self.target)

    @property
    def transport(self) -> MockTransport:
        return self.factory.last

    @property
    def messages(self) -> list[Message]:
        return self.target.messages

    async def start(self) -> None:
        """Connect; the session is Connected and waiting for registration afterwards."""
        await self.session.connect()

    async def register(self, nickname: str = "me") -> None:
        """Simulate RPL_WELCOME and let the connect sequence finish."""
        await self.emit(events.Numeric(1, (nickname, f"Welcome to testnet {nickname}")))

    async def emit(self, *evts: events.InboundEvent) -> None:
        for evt in evts:
            await self.transport.emit(evt)
        await settle(self.session)

    async def join(self, channel: str, *members: str) -> None:
        """Simulate our own JOIN followed by the NAMES roster."""
        users = (("me", ""),) + tuple((nick, "") for nick in members)
        await self.emit(events.Join(channel, "me"), events.UsersUpdated(channel, users))

    def contents(self, target: str | None = None) -> list[str]:
        return [m.content for m in self.messages if target is None or m.target == target]

    async def stop(self) -> None:
        await self.session.close()
