"""Protocol constants."""

from __future__ import annotations

COMMAND_PREFIX = "/"
CHANNEL_SIGIL = "#"
# Channel name prefixes recognised when deciding between PART and closing a query
CHANNEL_PREFIXES: tuple[str, ...] = ("#", "&", "+", "!")

CTCP_DELIM = "\x01"
ACTION_PREFIX = f"{CTCP_DELIM}ACTION"

SERVER_SENDER = "Server"
CLIENT_SENDER = "Client"
WHOIS_SENDER = "WHOIS"
MOTD_SENDER = "MOTD"
ERROR_SENDER = "Error"

NICKSERV = "NickServ"
CHANSERV = "ChanServ"
MEMOSERV = "MemoServ"
ZNC_STATUS = "*status"

DEFAULT_PART_MESSAGE = "Leaving"
DEFAULT_QUIT_MESSAGE = "Leaving"
DEFAULT_KICKBAN_REASON = "Requested"
DEFAULT_NICKSERV_COMMAND = "IDENTIFY"

# Flood protection between automated commands (seconds)
DEFAULT_SCRIPT_DELAY = 0.5
# Pause between PART and JOIN for /cycle (seconds)
CYCLE_DELAY = 0.2

RPL_WELCOME = 1
RPL_AWAY = 301
RPL_WHOISUSER = 311
RPL_WHOISSERVER = 312
RPL_WHOISOPERATOR = 313
RPL_WHOISIDLE = 317
RPL_ENDOFWHOIS = 318
RPL_WHOISCHANNELS = 319
RPL_WHOISACCOUNT = 330
RPL_WHOISSECURE = 671
RPL_MOTD = 372
RPL_MOTDSTART = 375
RPL_ENDOFMOTD = 376
ERR_NICKNAMEINUSE = 433

WELCOME_NUMERICS = frozenset({2, 3, 4, 5})
LUSERS_NUMERICS = frozenset({251, 252, 253, 254, 255, 265, 266})
MOTD_NUMERICS = frozenset({RPL_MOTD, RPL_MOTDSTART, RPL_ENDOFMOTD})
WHOIS_LINE_NUMERICS = frozenset(
    {
        RPL_WHOISUSER,
        RPL_WHOISSERVER,
        RPL_WHOISOPERATOR,
        RPL_WHOISIDLE,
        RPL_WHOISCHANNELS,
        RPL_WHOISACCOUNT,
        RPL_WHOISSECURE,
        RPL_AWAY,
    }
)
# WHOIS-class replies without dedicated formatting (276 is the cert fingerprint)
WHOIS_EXTRA_NUMERICS = frozenset({276, 307, 314, 369, 378, 379})
ERROR_NUMERIC_RANGE = range(400, 600)

WHOIS_CACHE_TTL_SECONDS = 3600
WHOIS_CACHE_MAXSIZE = 256


def server_buffer_name(server_name: str) -> str:
    """Name of the per-server status buffer."""
    return f"* {server_name}"
