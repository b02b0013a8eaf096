"""Test the session state machine: lifecycle, membership and chat events."""

from unittest.mock import patch

from parlor import events
from parlor.core.errors import EventReductionFault
from parlor.models import (
    ChannelType,
    Connected,
    Connecting,
    Disconnected,
    Error,
    MessageFactory,
    MessageType,
    Reconnecting,
)
from parlor.session import ChannelRoster, EventReducer
from tests.mocks import make_config


def _make_reducer(**overrides):
    ticks = iter(range(1000, 100000))
    return EventReducer(make_config(**overrides), factory=MessageFactory(lambda: next(ticks)))


def _connected(**overrides):
    reducer = _make_reducer(**overrides)
    reducer.reduce(events.ConnectRequested())
    reducer.reduce(events.ConnectionEstablished())
    reducer.reduce(events.Numeric(1, ("me", "Welcome to testnet")))
    return reducer


def _in_channel(reducer, channel="#foo", users=(("me", ""), ("alice", ""), ("bob", ""))):
    reducer.reduce(events.Join(channel, "me"))
    reducer.reduce(events.UsersUpdated(channel, tuple(users)))
    return reducer


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_connect_requested_fresh(self):
        reducer = _make_reducer()
        out = reducer.reduce(events.ConnectRequested())
        assert reducer.state.connection == Connecting()
        assert out.messages == []

    def test_connect_requested_retry_is_reconnecting(self):
        reducer = _make_reducer()
        reducer.reduce(events.ConnectRequested(attempt=2))
        assert reducer.state.connection == Reconnecting(2)

    def test_established_announces_connection(self):
        reducer = _make_reducer()
        reducer.reduce(events.ConnectRequested())
        out = reducer.reduce(events.ConnectionEstablished())
        assert reducer.state.connection == Connected("testnet")
        assert [m.content for m in out.messages] == ["Connected to testnet. Waiting for registration..."]
        assert out.messages[0].target == "* testnet"
        assert out.messages[0].type is MessageType.SERVER
        assert reducer.state.roster.get("* testnet").type is ChannelType.SERVER

    def test_established_ignored_when_not_connecting(self):
        reducer = _make_reducer()
        out = reducer.reduce(events.ConnectionEstablished())
        assert reducer.state.connection == Disconnected()
        assert out.messages == []

    def test_second_connection_says_reconnected(self):
        reducer = _connected()
        reducer.reduce(events.ConnectionEnded("Ping timeout"))
        reducer.reduce(events.ConnectRequested(attempt=1))
        out = reducer.reduce(events.ConnectionEstablished())
        assert out.messages[0].content == "Reconnected to testnet. Waiting for registration..."
        assert reducer.state.is_reconnect

    def test_connect_failed_is_error(self):
        reducer = _make_reducer()
        reducer.reduce(events.ConnectRequested())
        out = reducer.reduce(events.ConnectFailed("refused"))
        assert reducer.state.connection == Error("refused")
        assert out.messages[0].content == "Connection failed: refused"

    def test_disconnect_requested_is_silent(self):
        reducer = _connected()
        out = reducer.reduce(events.DisconnectRequested())
        assert reducer.state.connection == Disconnected()
        assert out.messages == []

    def test_connection_ended_with_reason(self):
        reducer = _connected()
        out = reducer.reduce(events.ConnectionEnded("Ping timeout"))
        assert reducer.state.connection == Disconnected()
        assert out.messages[0].content == "Disconnected from server: Ping timeout"

    def test_connection_ended_after_disconnect_is_ignored(self):
        reducer = _connected()
        reducer.reduce(events.DisconnectRequested())
        out = reducer.reduce(events.ConnectionEnded(None))
        assert out.messages == []

    def test_protocol_events_dropped_while_disconnected(self):
        reducer = _make_reducer()
        out = reducer.reduce(events.Join("#foo", "me"))
        assert "#foo" not in reducer.state.roster
        assert out.messages == []

    def test_reconnect_resets_nickname(self):
        reducer = _connected()
        reducer.reduce(events.NickChange("me", "me_away"))
        reducer.reduce(events.ConnectRequested(attempt=1))
        assert reducer.state.nickname == "me"


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


class TestJoinPart:
    def test_local_join_creates_single_entry(self):
        reducer = _connected()
        reducer.reduce(events.Join("#foo", "me"))
        out = reducer.reduce(events.Join("#foo", "me"))
        assert list(reducer.state.roster.snapshot()).count("#foo") == 1
        assert reducer.state.roster.get("#foo").type is ChannelType.CHANNEL
        assert out.messages == []

    def test_local_join_with_roster(self):
        reducer = _connected()
        reducer.reduce(events.Join("#foo", "me", users=(("me", "o"), ("alice", ""))))
        channel = reducer.state.roster.get("#foo")
        assert channel.nicknames == ["me", "alice"]
        assert channel.user("me").is_op

    def test_remote_join_emits_and_adds(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.Join("#foo", "carol"))
        assert [(m.sender, m.content, m.type) for m in out.messages] == [
            ("carol", "has joined", MessageType.JOIN)
        ]
        assert reducer.state.roster.get("#foo").has_user("carol")

    def test_local_part_removes_channel(self):
        reducer = _in_channel(_connected())
        reducer.reduce(events.Part("#foo", "me"))
        assert "#foo" not in reducer.state.roster

    def test_remote_part(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.Part("#foo", "alice", "bye"))
        assert out.messages[0].type is MessageType.PART
        assert out.messages[0].content == "bye"
        assert not reducer.state.roster.get("#foo").has_user("alice")

    def test_kick_other(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.Kick("#foo", "alice", "bob", "spam"))
        message = out.messages[0]
        assert (message.sender, message.content, message.type) == ("alice", "bob was kicked: spam", MessageType.KICK)
        assert not reducer.state.roster.get("#foo").has_user("bob")

    def test_kick_me_removes_channel(self):
        reducer = _in_channel(_connected())
        reducer.reduce(events.Kick("#foo", "alice", "me", "bye"))
        assert "#foo" not in reducer.state.roster

    def test_mode_change_with_snapshot(self):
        reducer = _in_channel(_connected())
        reducer.reduce(events.ModeChange("#foo", (("me", ""), ("alice", "@"), ("bob", ""))))
        assert reducer.state.roster.get("#foo").user("alice").is_op

    def test_mode_change_without_snapshot_keeps_roster(self):
        reducer = _in_channel(_connected())
        before = reducer.state.roster.get("#foo")
        reducer.reduce(events.ModeChange("#foo"))
        assert reducer.state.roster.get("#foo") == before


class TestNickAndQuitFanOut:
    def _reducer(self):
        reducer = _connected()
        _in_channel(reducer, "#a", (("me", ""), ("alice", "")))
        _in_channel(reducer, "#b", (("me", ""), ("alice", "")))
        _in_channel(reducer, "#c", (("me", ""), ("bob", "")))
        return reducer

    def test_nick_change_in_shared_channels_only(self):
        reducer = self._reducer()
        out = reducer.reduce(events.NickChange("alice", "alicia"))
        assert sorted(m.target for m in out.messages) == ["#a", "#b"]
        assert all(m.content == "is now known as alicia" for m in out.messages)
        assert all(m.sender == "alice" for m in out.messages)
        assert reducer.state.roster.get("#a").has_user("alicia")

    def test_own_nick_change_updates_nickname(self):
        reducer = self._reducer()
        reducer.reduce(events.NickChange("me", "me2"))
        assert reducer.state.nickname == "me2"
        assert reducer.state.roster.get("#c").has_user("me2")

    def test_quit_in_shared_channels_only(self):
        reducer = self._reducer()
        out = reducer.reduce(events.Quit("alice", "gone"))
        assert sorted(m.target for m in out.messages) == ["#a", "#b"]
        assert all(m.type is MessageType.QUIT for m in out.messages)
        assert reducer.state.roster.channels_with("alice") == []


class TestTopic:
    def test_topic_emitted_once(self):
        reducer = _in_channel(_connected())
        first = reducer.reduce(events.Topic("#foo", "hello", "alice"))
        second = reducer.reduce(events.Topic("#foo", "hello", "alice"))
        assert [m.content for m in first.messages] == ["Topic: hello"]
        assert first.messages[0].sender == "alice"
        assert second.messages == []
        assert reducer.state.roster.get("#foo").topic == "hello"

    def test_topic_without_setter(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.Topic("#foo", "hello"))
        assert out.messages[0].sender == "Server"

    def test_cleared_topic(self):
        reducer = _in_channel(_connected())
        reducer.reduce(events.Topic("#foo", "hello"))
        out = reducer.reduce(events.Topic("#foo", None, "alice"))
        assert out.messages[0].content == "Topic: (no topic)"

    def test_rejoin_does_not_repeat_topic(self):
        reducer = _in_channel(_connected())
        reducer.reduce(events.Topic("#foo", "hello"))
        reducer.reduce(events.Part("#foo", "me"))
        reducer.reduce(events.Join("#foo", "me"))
        out = reducer.reduce(events.Topic("#foo", "hello"))
        assert out.messages == []
        assert reducer.state.roster.get("#foo").topic == "hello"


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChat:
    def test_channel_message(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.ChannelMessage("#foo", "alice", "hi"))
        message = out.messages[0]
        assert (message.target, message.sender, message.content) == ("#foo", "alice", "hi")
        assert message.type is MessageType.NORMAL
        assert not message.is_self
        assert reducer.state.roster.get("#foo").unread_count == 1

    def test_channel_action(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.ChannelMessage("#foo", "alice", "\x01ACTION waves\x01"))
        assert (out.messages[0].content, out.messages[0].type) == ("waves", MessageType.ACTION)

    def test_other_ctcp(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.ChannelMessage("#foo", "alice", "\x01VERSION\x01"))
        assert (out.messages[0].content, out.messages[0].type) == ("VERSION", MessageType.CTCP)

    def test_private_message_opens_query(self):
        reducer = _connected()
        out = reducer.reduce(events.PrivateMessage("alice", "psst"))
        assert reducer.state.roster.get("alice").type is ChannelType.QUERY
        assert out.messages[0].target == "alice"

    def test_private_action(self):
        reducer = _connected()
        out = reducer.reduce(events.PrivateMessage("alice", "\x01ACTION hugs\x01"))
        assert (out.messages[0].content, out.messages[0].type) == ("hugs", MessageType.ACTION)

    def test_ignored_sender_suppressed(self):
        reducer = _in_channel(_connected())
        reducer.ignore("alice")
        assert reducer.reduce(events.ChannelMessage("#foo", "alice", "spam")).messages == []
        assert reducer.reduce(events.PrivateMessage("alice", "spam")).messages == []
        assert "alice" not in reducer.state.roster
        reducer.unignore("alice")
        assert len(reducer.reduce(events.ChannelMessage("#foo", "alice", "hi")).messages) == 1


class TestNoticeRouting:
    def test_to_known_channel(self):
        reducer = _in_channel(_connected())
        out = reducer.reduce(events.Notice("#foo", "alice", "hey all"))
        assert out.messages[0].target == "#foo"
        assert out.messages[0].type is MessageType.NOTICE

    def test_to_existing_query(self):
        reducer = _connected()
        reducer.open_query("alice")
        out = reducer.reduce(events.Notice("me", "alice", "psst"))
        assert out.messages[0].target == "alice"

    def test_otherwise_server_buffer(self):
        reducer = _connected()
        out = reducer.reduce(events.Notice("me", "NickServ", "This nickname is registered"))
        assert out.messages[0].target == "* testnet"
        assert "NickServ" not in reducer.state.roster


# ---------------------------------------------------------------------------
# Fault isolation
# ---------------------------------------------------------------------------


class TestRollback:
    def test_failed_event_leaves_state_untouched(self):
        reducer = _in_channel(_connected())
        before = reducer.state.roster.snapshot()
        with patch.object(ChannelRoster, "upsert_user", side_effect=RuntimeError("boom")):
            out = reducer.reduce(events.Join("#foo", "carol"))
        assert isinstance(out.fault, EventReductionFault)
        assert out.fault.code == "reduction_failed"
        assert isinstance(out.fault.original_error, RuntimeError)
        assert out.messages == []
        assert reducer.state.roster.snapshot() == before

    def test_next_event_reduces_normally(self):
        reducer = _in_channel(_connected())
        with patch.object(ChannelRoster, "upsert_user", side_effect=RuntimeError("boom")):
            reducer.reduce(events.Join("#foo", "carol"))
        out = reducer.reduce(events.Join("#foo", "carol"))
        assert out.fault is None
        assert reducer.state.roster.get("#foo").has_user("carol")


class TestLocalHelpers:
    def test_record_outgoing_action(self):
        reducer = _in_channel(_connected())
        message = reducer.record_outgoing("#foo", "\x01ACTION dances\x01")
        assert (message.content, message.type, message.is_self) == ("dances", MessageType.ACTION, True)
        assert message.sender == "me"
        assert reducer.state.roster.get("#foo").unread_count == 0

    def test_system_message_defaults_to_server_buffer(self):
        reducer = _make_reducer()
        message = reducer.system_message(None, "hello")
        assert (message.target, message.sender, message.type) == ("* testnet", "Client", MessageType.SYSTEM)

    def test_close_query_only_closes_queries(self):
        reducer = _in_channel(_connected())
        reducer.open_query("alice")
        assert reducer.close_query("alice")
        assert not reducer.close_query("#foo")
        assert "#foo" in reducer.state.roster

    def test_timestamps_non_decreasing_per_target(self):
        stamps = iter([50, 40, 60])
        reducer = EventReducer(make_config(), factory=MessageFactory(lambda: next(stamps)))
        a = reducer.system_message("x", "1")
        b = reducer.system_message("x", "2")
        c = reducer.system_message("x", "3")
        assert a.timestamp <= b.timestamp <= c.timestamp
