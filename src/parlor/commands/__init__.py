"""Slash-command grammar: parser, typed intents, and outbound translation."""

from parlor.commands.parser import help_text, parse
from parlor.commands.translate import to_actions

__all__ = ["help_text", "parse", "to_actions"]
