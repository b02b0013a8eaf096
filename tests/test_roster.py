"""Test the channel map and roster sync."""

from parlor.models import ChannelType, UserMode
from parlor.session import ChannelRoster, parse_modes


class TestParseModes:
    def test_letters(self):
        assert parse_modes("ov") == frozenset({UserMode.OP, UserMode.VOICE})

    def test_prefixes(self):
        assert parse_modes("@+") == frozenset({UserMode.OP, UserMode.VOICE})

    def test_owner_and_admin_prefixes(self):
        assert parse_modes("~&%") == frozenset({UserMode.OWNER, UserMode.ADMIN, UserMode.HALFOP})

    def test_unknown_characters_ignored(self):
        assert parse_modes("xz!") == frozenset()


class TestChannelMap:
    def test_create_or_replace_resets_channel(self):
        roster = ChannelRoster()
        roster.create_or_replace("#foo")
        roster.upsert_user("#foo", "alice")
        roster.create_or_replace("#foo")
        assert len(roster) == 1
        assert roster.get("#foo").users == ()

    def test_ensure_keeps_existing(self):
        roster = ChannelRoster()
        roster.create_or_replace("#foo")
        roster.upsert_user("#foo", "alice")
        roster.ensure("#foo", ChannelType.CHANNEL)
        assert roster.get("#foo").nicknames == ["alice"]

    def test_names_are_exact(self):
        roster = ChannelRoster()
        roster.create_or_replace("#Foo")
        assert "#foo" not in roster
        assert "#Foo" in roster

    def test_copy_is_independent(self):
        roster = ChannelRoster()
        roster.create_or_replace("#foo")
        clone = roster.copy()
        clone.upsert_user("#foo", "alice")
        clone.remove("#foo")
        assert roster.get("#foo").users == ()

    def test_snapshot_is_not_live(self):
        roster = ChannelRoster()
        roster.create_or_replace("#foo")
        snap = roster.snapshot()
        roster.upsert_user("#foo", "alice")
        assert snap["#foo"].users == ()


class TestMembership:
    def _roster(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.create_or_replace("#b")
        roster.create_or_replace("#c")
        roster.ensure("alice", ChannelType.QUERY)
        for ch in ("#a", "#b"):
            roster.upsert_user(ch, "alice")
        roster.upsert_user("#c", "bob")
        return roster

    def test_upsert_without_modes_keeps_modes(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.upsert_user("#a", "alice", {UserMode.OP})
        roster.upsert_user("#a", "alice")
        assert roster.get("#a").user("alice").modes == frozenset({UserMode.OP})

    def test_upsert_into_missing_channel(self):
        assert ChannelRoster().upsert_user("#nowhere", "alice") is None

    def test_channels_with_skips_queries(self):
        assert self._roster().channels_with("alice") == ["#a", "#b"]

    def test_rename_everywhere(self):
        roster = self._roster()
        assert roster.rename_everywhere("alice", "alicia") == ["#a", "#b"]
        assert roster.get("#a").has_user("alicia")
        assert not roster.get("#b").has_user("alice")
        assert roster.get("#c").nicknames == ["bob"]

    def test_remove_everywhere(self):
        roster = self._roster()
        assert roster.remove_everywhere("alice") == ["#a", "#b"]
        assert roster.channels_with("alice") == []

    def test_remove_absent_user_is_noop(self):
        roster = self._roster()
        before = roster.get("#c")
        assert roster.remove_user("#c", "nobody") is before


class TestSyncUsers:
    def test_letters_and_prefixes_agree(self):
        by_letter = ChannelRoster()
        by_prefix = ChannelRoster()
        for roster in (by_letter, by_prefix):
            roster.create_or_replace("#a")
        by_letter.sync_users("#a", [("alice", "o"), ("bob", "v"), ("carol", "")])
        by_prefix.sync_users("#a", [("alice", "@"), ("bob", "+"), ("carol", "")])
        assert by_letter.get("#a").users == by_prefix.get("#a").users

    def test_replaces_member_list(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.sync_users("#a", [("alice", ""), ("bob", "")])
        roster.sync_users("#a", [("bob", "o")])
        channel = roster.get("#a")
        assert channel.nicknames == ["bob"]
        assert channel.user("bob").is_op

    def test_preserves_away_state(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.sync_users("#a", [("alice", "")])
        roster.set_away("alice", True, "lunch")
        roster.sync_users("#a", [("alice", "v")])
        member = roster.get("#a").user("alice")
        assert member.is_away
        assert member.away_message == "lunch"
        assert member.is_voiced

    def test_duplicates_collapse(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.sync_users("#a", [("alice", "o"), ("alice", "v")])
        assert roster.get("#a").nicknames == ["alice"]

    def test_unknown_channel_ignored(self):
        roster = ChannelRoster()
        assert roster.sync_users("#a", [("alice", "")]) is None
        assert "#a" not in roster


class TestActivity:
    def test_touch_counts_unread(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.touch("#a", 10, unread=True)
        roster.touch("#a", 5, unread=True)
        channel = roster.get("#a")
        assert channel.unread_count == 2
        assert channel.last_activity == 10

    def test_mark_read(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.touch("#a", 10, unread=True)
        roster.mark_read("#a")
        assert roster.get("#a").unread_count == 0

    def test_stats(self):
        roster = ChannelRoster()
        roster.create_or_replace("#a")
        roster.sync_users("#a", [("alice", "@"), ("bob", "+"), ("carol", "")])
        roster.set_away("carol", True, "gone")
        stats = roster.get("#a").stats
        assert (stats.total_users, stats.ops_count, stats.voiced_count, stats.away_count) == (3, 1, 1, 1)
        assert stats.active_users == 2
