"""Message text transforms."""

from parlor.formatting.ctcp import is_ctcp, unwrap_action, unwrap_ctcp, wrap_action

__all__ = ["is_ctcp", "unwrap_action", "unwrap_ctcp", "wrap_action"]
