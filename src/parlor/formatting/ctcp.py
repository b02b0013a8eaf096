"""CTCP framing: \x01ACTION text\x01 and friends."""

from __future__ import annotations

from parlor.core.constants import ACTION_PREFIX, CTCP_DELIM


def is_ctcp(text: str) -> bool:
    return len(text) >= 2 and text.startswith(CTCP_DELIM) and text.endswith(CTCP_DELIM)


def unwrap_ctcp(text: str) -> str:
    """Strip the CTCP delimiters; text that is not framed is returned unchanged."""
    if not is_ctcp(text):
        return text
    return text[len(CTCP_DELIM) : -len(CTCP_DELIM)]


def unwrap_action(text: str) -> str | None:
    """Payload of a CTCP ACTION, or None if `text` is not one."""
    if not (text.startswith(ACTION_PREFIX) and text.endswith(CTCP_DELIM)):
        return None
    body = text[len(ACTION_PREFIX) : -len(CTCP_DELIM)]
    if body and not body.startswith(" "):
        # e.g. \x01ACTIONS\x01 is a different CTCP verb
        return None
    return body[1:] if body.startswith(" ") else body


def wrap_action(payload: str) -> str:
    return f"{ACTION_PREFIX} {payload}{CTCP_DELIM}"
