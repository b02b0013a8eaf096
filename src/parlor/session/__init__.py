"""Session engine: roster, reducer, connect sequencer and the serialized session."""

from parlor.session.reducer import EventReducer, Reduction, SessionState
from parlor.session.roster import ChannelRoster, parse_modes
from parlor.session.sequencer import ConnectSequencer
from parlor.session.session import ConnectionSession

__all__ = [
    "ChannelRoster",
    "ConnectSequencer",
    "ConnectionSession",
    "EventReducer",
    "Reduction",
    "SessionState",
    "parse_modes",
]
