"""Channel map and per-channel rosters.

Channels are immutable snapshots; every operation swaps in a replaced copy,
so readers holding an earlier snapshot never observe a partial update.
Names are compared exactly, without case folding.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from loguru import logger

from parlor.events import RosterEntry
from parlor.models import Channel, ChannelType, ChannelUser, UserMode

_MODE_LETTERS = {
    "q": UserMode.OWNER,
    "a": UserMode.ADMIN,
    "o": UserMode.OP,
    "h": UserMode.HALFOP,
    "v": UserMode.VOICE,
}
_MODE_PREFIXES = {
    "~": UserMode.OWNER,
    "&": UserMode.ADMIN,
    "@": UserMode.OP,
    "%": UserMode.HALFOP,
    "+": UserMode.VOICE,
}


def parse_modes(chars: str) -> frozenset[UserMode]:
    """Interpret mode characters as letters first, display prefixes second."""
    modes: set[UserMode] = set()
    for char in chars:
        mode = _MODE_LETTERS.get(char) or _MODE_PREFIXES.get(char)
        if mode is None:
            logger.debug("Unknown mode character {!r}", char)
            continue
        modes.add(mode)
    return frozenset(modes)


class ChannelRoster:
    """Owns the session's channel map. Mutated only by the reducer."""

    def __init__(self, channels: dict[str, Channel] | None = None) -> None:
        self._channels: dict[str, Channel] = dict(channels or {})

    def copy(self) -> ChannelRoster:
        return ChannelRoster(self._channels)

    def snapshot(self) -> dict[str, Channel]:
        return dict(self._channels)

    def get(self, name: str) -> Channel | None:
        return self._channels.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def create_or_replace(self, name: str, type: ChannelType = ChannelType.CHANNEL) -> Channel:
        channel = Channel(name=name, type=type)
        self._channels[name] = channel
        return channel

    def ensure(self, name: str, type: ChannelType) -> Channel:
        """Create the channel only if it is absent."""
        existing = self._channels.get(name)
        if existing is not None:
            return existing
        return self.create_or_replace(name, type)

    def remove(self, name: str) -> bool:
        return self._channels.pop(name, None) is not None

    def _update(self, name: str, **changes) -> Channel | None:
        channel = self._channels.get(name)
        if channel is None:
            return None
        updated = replace(channel, **changes)
        self._channels[name] = updated
        return updated

    def set_topic(self, name: str, topic: str | None) -> Channel | None:
        return self._update(name, topic=topic)

    def upsert_user(self, name: str, nickname: str, modes: Iterable[UserMode] | None = None) -> Channel | None:
        """Add or refresh one member. `modes=None` keeps an existing member's modes."""
        channel = self._channels.get(name)
        if channel is None:
            return None
        existing = channel.user(nickname)
        if existing is None:
            member = ChannelUser(nickname=nickname, modes=frozenset(modes or ()))
            return self._update(name, users=(*channel.users, member))
        if modes is None:
            return channel
        member = replace(existing, modes=frozenset(modes))
        users = tuple(member if u.nickname == nickname else u for u in channel.users)
        return self._update(name, users=users)

    def remove_user(self, name: str, nickname: str) -> Channel | None:
        channel = self._channels.get(name)
        if channel is None or not channel.has_user(nickname):
            return channel
        return self._update(name, users=tuple(u for u in channel.users if u.nickname != nickname))

    def rename_user(self, name: str, old: str, new: str) -> Channel | None:
        channel = self._channels.get(name)
        if channel is None or not channel.has_user(old):
            return channel
        users = tuple(replace(u, nickname=new) if u.nickname == old else u for u in channel.users)
        return self._update(name, users=users)

    def sync_users(self, name: str, entries: Iterable[RosterEntry]) -> Channel | None:
        """Replace the member list with an authoritative snapshot.

        Away state of members present before and after is preserved; modes come
        from the snapshot only.
        """
        channel = self._channels.get(name)
        if channel is None:
            logger.debug("Roster sync for unknown channel {}; ignored", name)
            return None
        users: list[ChannelUser] = []
        seen: set[str] = set()
        for nickname, mode_chars in entries:
            if nickname in seen:
                continue
            seen.add(nickname)
            previous = channel.user(nickname)
            modes = parse_modes(mode_chars)
            if previous is None:
                users.append(ChannelUser(nickname=nickname, modes=modes))
            else:
                users.append(replace(previous, modes=modes))
        return self._update(name, users=tuple(users))

    def set_away(self, nickname: str, away: bool, message: str | None = None) -> None:
        for name, channel in list(self._channels.items()):
            member = channel.user(nickname)
            if member is None:
                continue
            updated = replace(member, is_away=away, away_message=message if away else None)
            self._update(name, users=tuple(updated if u.nickname == nickname else u for u in channel.users))

    def channels_with(self, nickname: str) -> list[str]:
        """Names of CHANNEL-type entries where `nickname` is a member, in map order."""
        return [
            name
            for name, channel in self._channels.items()
            if channel.type is ChannelType.CHANNEL and channel.has_user(nickname)
        ]

    def touch(self, name: str, timestamp: int, *, unread: bool) -> None:
        channel = self._channels.get(name)
        if channel is None:
            return
        self._update(
            name,
            last_activity=max(channel.last_activity, timestamp),
            unread_count=channel.unread_count + (1 if unread else 0),
        )

    def mark_read(self, name: str) -> None:
        self._update(name, unread_count=0)

    def rename_everywhere(self, old: str, new: str) -> list[str]:
        """Rename `old` in every channel it is in; returns the affected channel names."""
        affected = self.channels_with(old)
        for name in affected:
            self.rename_user(name, old, new)
        return affected

    def remove_everywhere(self, nickname: str) -> list[str]:
        affected = self.channels_with(nickname)
        for name in affected:
            self.remove_user(name, nickname)
        return affected
