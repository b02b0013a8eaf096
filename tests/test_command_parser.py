"""Test slash-command parsing."""

import pytest

from parlor.commands import intents, parse
from parlor.commands.parser import help_text, is_escaped, unescape


class TestPlainText:
    """Lines that are not commands."""

    def test_plain_text_is_not_a_command(self):
        assert parse("hello there") == intents.NotACommand()

    def test_empty_line_is_not_a_command(self):
        assert parse("") == intents.NotACommand()

    def test_double_slash_escapes_command(self):
        assert parse("//join #foo") == intents.NotACommand()
        assert is_escaped("//join #foo")
        assert unescape("//join #foo") == "/join #foo"

    def test_unescape_leaves_plain_text_alone(self):
        assert unescape("hello") == "hello"
        assert unescape("/hello") == "/hello"


class TestChannelCommands:
    def test_join_adds_sigil(self):
        assert parse("/join foo") == intents.Join("#foo")

    def test_join_keeps_sigil(self):
        assert parse("/join #foo") == intents.Join("#foo")

    def test_join_alias_and_case(self):
        assert parse("/J #foo") == intents.Join("#foo")

    def test_join_ignores_key_argument(self):
        assert parse("/join #foo secret") == intents.Join("#foo")

    def test_join_without_channel_is_unknown(self):
        assert parse("/join") == intents.Unknown("join", "")
        assert parse("/join   ") == intents.Unknown("join", "  ")

    def test_part_variants(self):
        assert parse("/part") == intents.Part(None, None)
        assert parse("/part #foo") == intents.Part("#foo", None)
        assert parse("/leave #foo see you all") == intents.Part("#foo", "see you all")

    def test_cycle(self):
        assert parse("/rejoin #foo") == intents.Cycle("#foo", None)

    def test_invite(self):
        assert parse("/invite bob") == intents.Invite("bob", None)
        assert parse("/invite bob #foo") == intents.Invite("bob", "#foo")

    def test_topic_optional(self):
        assert parse("/topic") == intents.Topic(None)
        assert parse("/t new topic here") == intents.Topic("new topic here")


class TestMessagingCommands:
    def test_msg_keeps_rest_of_line(self):
        assert parse("/msg bob hi there  friend") == intents.Message("bob", "hi there  friend")

    def test_msg_without_text_is_unknown(self):
        assert parse("/msg bob") == intents.Unknown("msg", "bob")

    def test_query_with_and_without_message(self):
        assert parse("/query bob") == intents.Query("bob", None)
        assert parse("/q bob hello") == intents.Query("bob", "hello")

    def test_me_preserves_text(self):
        assert parse("/me dances  wildly") == intents.Action("dances  wildly")

    def test_me_without_text_is_unknown(self):
        assert isinstance(parse("/me"), intents.Unknown)

    def test_ctcp(self):
        assert parse("/ctcp bob VERSION") == intents.Ctcp("bob", "VERSION")


class TestUserAndModerationCommands:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ("/whois bob", intents.Whois("bob")),
            ("/wii bob", intents.Whois("bob")),
            ("/nick newme", intents.Nick("newme")),
            ("/away lunch", intents.Away("lunch")),
            ("/away", intents.Away(None)),
            ("/back", intents.Back()),
            ("/ignore troll", intents.Ignore("troll")),
            ("/k bob spamming", intents.Kick("bob", "spamming")),
            ("/kick bob", intents.Kick("bob", None)),
            ("/b bob", intents.Ban("bob")),
            ("/kb bob bye", intents.KickBan("bob", "bye")),
            ("/v bob", intents.Voice("bob")),
            ("/mute bob", intents.Quiet("bob")),
            ("/unmute bob", intents.Unquiet("bob")),
            ("/mode +m", intents.Mode("+m")),
        ],
    )
    def test_parses(self, line, expected):
        assert parse(line) == expected

    @pytest.mark.parametrize("line", ["/whois", "/nick", "/kick", "/op", "/ban  "])
    def test_missing_nickname_is_unknown(self, line):
        assert isinstance(parse(line), intents.Unknown)


class TestServiceAndServerCommands:
    def test_identify_requires_args(self):
        assert parse("/identify hunter2") == intents.Identify("hunter2")
        assert isinstance(parse("/identify"), intents.Unknown)

    def test_service_aliases(self):
        assert parse("/ns info bob") == intents.NickServ("info bob")
        assert parse("/chanserv op #foo") == intents.ChanServ("op #foo")
        assert parse("/ms") == intents.MemoServ("")
        assert parse("/znc jump") == intents.Znc("jump")

    def test_quit_aliases(self):
        assert parse("/quit") == intents.Quit(None)
        assert parse("/exit bye all") == intents.Quit("bye all")
        assert parse("/disconnect") == intents.Quit(None)

    def test_raw_keeps_line(self):
        assert parse("/quote PRIVMSG #a :x") == intents.Raw("PRIVMSG #a :x")

    def test_connect_optional_server(self):
        assert parse("/connect") == intents.Connect(None)
        assert parse("/server irc.example.org") == intents.Connect("irc.example.org")

    def test_operator_commands_need_reason(self):
        assert parse("/kill bob flooding") == intents.Kill("bob", "flooding")
        assert isinstance(parse("/kill bob"), intents.Unknown)
        assert parse("/saje bob #foo") == intents.Saje("bob", "#foo")


class TestClientCommands:
    def test_clear_aliases(self):
        assert parse("/clear") == intents.Clear()
        assert parse("/cls") == intents.Clear()

    def test_sysinfo_collects_args(self):
        assert parse("/sysinfo a b") == intents.SysInfo(("a", "b"))

    def test_help_aliases(self):
        assert parse("/help") == intents.Help()
        assert parse("/?") == intents.Help()

    def test_unknown_command_keeps_args(self):
        assert parse("/frobnicate a b") == intents.Unknown("frobnicate", "a b")

    def test_help_text_mentions_escape(self):
        text = help_text()
        assert "/join" in text
        assert "//" in text
