"""Post-registration automation: NickServ identify, on-connect script, auto-join."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from parlor.commands import intents, parse, to_actions
from parlor.core.constants import COMMAND_PREFIX, DEFAULT_SCRIPT_DELAY, NICKSERV
from parlor.core.errors import SequencerStepError
from parlor.events import AddChannel, OutboundAction, SendRaw
from parlor.models import ServerConfig

Perform = Callable[[OutboundAction], Awaitable[None]]
Announce = Callable[[str], Awaitable[None]]


def format_identify(template: str, password: str, nickname: str) -> str:
    """Fill `{password}`/`{nick}` in the template, or append the password."""
    if "{password}" in template or "{nick}" in template:
        return template.replace("{password}", password).replace("{nick}", nickname)
    return f"{template} {password}"


def script_actions(line: str) -> list[OutboundAction]:
    """Actions for one on-connect script line, falling back to a raw line."""
    text = line if line.startswith(COMMAND_PREFIX) else f"{COMMAND_PREFIX}{line}"
    intent = parse(text)
    actions = None
    if not isinstance(intent, (intents.Unknown, intents.NotACommand)):
        actions = to_actions(intent, None)
    if actions is None:
        return [SendRaw(text[len(COMMAND_PREFIX) :])]
    return actions


class ConnectSequencer:
    """One run per registration. Cancel the task running `run()` to stop it.

    Every outbound action goes through `perform`, which hands it to the
    session's serialized queue; cancellation is observed there and at each
    flood delay.
    """

    def __init__(
        self,
        config: ServerConfig,
        nickname: str,
        perform: Perform,
        announce: Announce,
        *,
        delay: float = DEFAULT_SCRIPT_DELAY,
    ) -> None:
        self.config = config
        self.nickname = nickname
        self._perform = perform
        self._announce = announce
        self.delay = delay

    async def run(self) -> None:
        logger.info("Starting connect sequence for {}", self.config.server_name)
        await self._step("identify", self.identify)
        for line in self.config.on_connect_lines():
            await self._step(f"script line {line!r}", lambda line=line: self.run_script_line(line))
            await asyncio.sleep(self.delay)
        for channel in self.config.auto_join_list():
            await self._step(f"auto-join {channel}", lambda channel=channel: self._perform(AddChannel(channel)))
            await asyncio.sleep(self.delay)
        logger.info("Connect sequence finished for {}", self.config.server_name)

    async def _step(self, name: str, step: Callable[[], Awaitable[None]]) -> None:
        try:
            await step()
        except Exception as exc:
            error = SequencerStepError(f"{name} failed: {exc}", code="sequencer_step", original_error=exc)
            logger.exception("Connect sequence step skipped: {}", error)

    async def identify(self) -> None:
        password = self.config.nickserv_password
        if not password:
            return
        command = format_identify(self.config.nickserv_command, password, self.nickname)
        await self._perform(SendRaw(f"PRIVMSG {NICKSERV} :{command}"))
        await self._announce("Sent identification to NickServ")

    async def run_script_line(self, line: str) -> None:
        logger.debug("Running on-connect line {!r}", line)
        for action in script_actions(line):
            await self._perform(action)
