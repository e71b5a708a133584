"""
Display name checks and channel moderation policy.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from strikeguard.gateway import ChannelInfo, ChannelKind
from strikeguard.utils.text import is_diacritic

if TYPE_CHECKING:
    from strikeguard.automod.matcher import BadWordMatcher

# Characters anyone can type on a US keyboard (ASCII only, unlike \w)
TYPEABLE = r"[A-Za-z0-9_`~!@#$%^&*()=+\[\]\\{}|;':\",./<>?-]"
PINGABLE_PATTERN = re.compile(rf"^{TYPEABLE}$|(?:{TYPEABLE}.?){{2,}}")


def is_pingable(name: str) -> bool:
    """
    Check whether other members can type enough of a name to mention it.

    Diacritics are ignored. The name must be a single typeable character
    or contain a run of at least two typeable characters, each optionally
    followed by any one character.

    Args:
        name: Display name to check

    Returns:
        bool: True if the name can be typed
    """
    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(char for char in decomposed if not is_diacritic(char))
    return bool(PINGABLE_PATTERN.search(stripped))


@dataclass(frozen=True)
class ModerationPolicy:
    """
    Where banned words are tolerated.

    Attributes:
        guilds: Communities the bot moderates
        exempt_channels: Channels where anything goes
        exempt_categories: Categories where anything goes
        ticket_channels: Channels whose private threads are exempt
    """
    guilds: frozenset[str] = field(default_factory=frozenset)
    exempt_channels: frozenset[str] = field(default_factory=frozenset)
    exempt_categories: frozenset[str] = field(default_factory=frozenset)
    ticket_channels: frozenset[str] = field(default_factory=frozenset)


def bad_words_allowed(channel: ChannelInfo, policy: ModerationPolicy) -> bool:
    """Whether banned words go unpunished in a channel."""
    if channel.kind == ChannelKind.DM:
        return True
    if channel.guild not in policy.guilds:
        return True
    if channel.base in policy.exempt_channels:
        return True
    if channel.category is not None and channel.category in policy.exempt_categories:
        return True
    if channel.kind == ChannelKind.PRIVATE_THREAD and channel.base in policy.ticket_channels:
        return True
    return not channel.everyone_can_view


@dataclass
class NameVerdict:
    """
    Result of checking a display name.

    Attributes:
        acceptable: The name is pingable and clean
        pingable: The name can be typed
        censored: The name with banned words redacted
        suggestion: What to rename the user to when not acceptable
    """
    acceptable: bool
    pingable: bool
    censored: str
    suggestion: str


def check_display_name(name: str, matcher: BadWordMatcher, fallback: str = "") -> NameVerdict:
    """
    Check a display name for banned words and pingability.

    Args:
        name: Display name to check
        matcher: Matcher used to censor the name
        fallback: Name to suggest when the censored name is not typeable,
            usually the account login

    Returns:
        NameVerdict: Whether the name is acceptable and what to use instead
    """
    result = matcher.scan(name)
    clean = not result
    censored = name if clean else result.censored
    pingable = is_pingable(name)

    if pingable and clean:
        suggestion = name
    elif is_pingable(censored):
        suggestion = censored
    else:
        suggestion = fallback or censored

    return NameVerdict(
        acceptable=pingable and clean,
        pingable=pingable,
        censored=censored,
        suggestion=suggestion,
    )
