"""
Tests for display name checks and the channel moderation policy.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from strikeguard.automod.bad_words import load_bad_words
from strikeguard.automod.matcher import BadWordMatcher
from strikeguard.automod.names import (
    ModerationPolicy,
    bad_words_allowed,
    check_display_name,
    is_pingable,
)
from strikeguard.gateway import ChannelInfo, ChannelKind
from strikeguard.utils.database import MemoryDatasetStore


@pytest.fixture
def matcher() -> BadWordMatcher:
    return BadWordMatcher(load_bad_words(MemoryDatasetStore(), include_test_word=True), 0.25)


class TestPingable:
    """Tests for is_pingable."""

    def test_simple_names(self) -> None:
        assert is_pingable("foo") is True
        assert is_pingable("x") is True

    def test_fancy_fonts_are_blocked(self) -> None:
        assert is_pingable("⒜⒰⒯⒪⒨⒪⒟⒨⒰⒯⒠") is False

    def test_non_english_is_blocked(self) -> None:
        assert is_pingable("대니") is False

    def test_long_s_is_blocked(self) -> None:
        assert is_pingable("ſ") is False

    def test_accents_are_ignored(self) -> None:
        """Test that accented letters count as their base letter."""
        assert is_pingable("Zoë") is True
        assert is_pingable("é") is True

    def test_sparse_typeable_characters(self) -> None:
        """Test that typeable characters may alternate with one other character."""
        assert is_pingable("a★b") is True
        assert is_pingable("a★★b") is False


class TestDisplayNames:
    """Tests for check_display_name."""

    def test_clean_name(self, matcher: BadWordMatcher) -> None:
        verdict = check_display_name("CoolViewer", matcher, "coolviewer")

        assert verdict.acceptable
        assert verdict.suggestion == "CoolViewer"

    def test_accented_name_is_clean(self, matcher: BadWordMatcher) -> None:
        verdict = check_display_name("José", matcher, "jose")

        assert verdict.acceptable
        assert verdict.censored == "José"

    def test_bad_name_is_censored(self, matcher: BadWordMatcher) -> None:
        verdict = check_display_name("xautomodmutex", matcher, "login")

        assert not verdict.acceptable
        assert verdict.pingable
        assert verdict.censored == "xa##########x"
        assert verdict.suggestion == "xa##########x"

    def test_unpingable_name_falls_back(self, matcher: BadWordMatcher) -> None:
        verdict = check_display_name("대니", matcher, "danny")

        assert not verdict.acceptable
        assert not verdict.pingable
        assert verdict.suggestion == "danny"


class TestModerationPolicy:
    """Tests for where banned words are allowed."""

    POLICY = ModerationPolicy(
        guilds=frozenset({"home"}),
        exempt_channels=frozenset({"offtopic"}),
        exempt_categories=frozenset({"staff"}),
        ticket_channels=frozenset({"tickets"}),
    )

    def test_regular_channel_is_moderated(self) -> None:
        assert not bad_words_allowed(ChannelInfo(name="home", guild="home"), self.POLICY)

    def test_direct_messages(self) -> None:
        assert bad_words_allowed(ChannelInfo(name="", kind=ChannelKind.DM), self.POLICY)

    def test_other_communities(self) -> None:
        assert bad_words_allowed(ChannelInfo(name="home", guild="elsewhere"), self.POLICY)

    def test_exempt_channels_and_their_threads(self) -> None:
        assert bad_words_allowed(ChannelInfo(name="offtopic", guild="home"), self.POLICY)
        thread = ChannelInfo(name="thread", parent="offtopic", guild="home")
        assert bad_words_allowed(thread, self.POLICY)

    def test_exempt_categories(self) -> None:
        channel = ChannelInfo(name="mods", category="staff", guild="home")
        assert bad_words_allowed(channel, self.POLICY)

    def test_private_ticket_threads(self) -> None:
        private = ChannelInfo(
            name="ticket-1", kind=ChannelKind.PRIVATE_THREAD, parent="tickets", guild="home"
        )
        public = ChannelInfo(name="ticket-2", parent="tickets", guild="home")

        assert bad_words_allowed(private, self.POLICY)
        assert not bad_words_allowed(public, self.POLICY)

    def test_hidden_channels(self) -> None:
        channel = ChannelInfo(name="secret", guild="home", everyone_can_view=False)
        assert bad_words_allowed(channel, self.POLICY)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
