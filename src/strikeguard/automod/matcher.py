"""
Bad word matcher.

Compiles one look-alike pattern per dictionary tier and censors text with
them. Matches that look like noise (mostly digits and symbols, or wrapped in
dashes and asterisks) are left alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Union

from strikeguard.automod.bad_words import BannedWordEntry
from strikeguard.automod.decoder import decode_regexps
from strikeguard.utils.logging import get_logger
from strikeguard.utils.text import normalize

logger = get_logger(__name__)

PATTERN_FLAGS = re.IGNORECASE | re.UNICODE
NEVER_MATCH = r"(?!x)x"
NOISE_PATTERN = re.compile(r"[0-9!#*@|-]")
EDGE_NOISE = "-#*"
MIN_MATCH_LENGTH = 3


@dataclass
class CensorResult:
    """
    Outcome of a scan that found something.

    Attributes:
        censored: Normalized text with every counted match redacted
        strikes: Strike weight earned by the matches
        words: Matched text per tier, words[i] for tier i
    """
    censored: str
    strikes: float
    words: list[list[str]] = field(default_factory=list)

    @property
    def matched(self) -> list[str]:
        return [word for tier in self.words for word in tier]


ScanResult = Union[CensorResult, bool]


def build_tier_pattern(entry: BannedWordEntry) -> re.Pattern[str]:
    """
    Compile the pattern for one tier.

    Strings match anywhere, words need a boundary on both sides and prefixes
    need one at the start. A tier with no sources never matches.

    Raises:
        re.error: If a source is not a valid pattern
    """
    parts = []
    if entry.strings:
        parts.append(f"(?:{decode_regexps(entry.strings)})")

    bounded = []
    if entry.words:
        bounded.append(f"(?:{decode_regexps(entry.words)})\\b")
    if entry.prefixes:
        bounded.append(f"(?:{decode_regexps(entry.prefixes)})")
    if bounded:
        parts.append(r"\b(?:" + "|".join(bounded) + ")")

    return re.compile("|".join(parts) or NEVER_MATCH, PATTERN_FLAGS)


def is_false_positive(word: str) -> bool:
    """Whether a match should be left alone instead of counted."""
    if len(word) < MIN_MATCH_LENGTH:
        return True
    if len(NOISE_PATTERN.findall(word)) > len(word) / 2:
        return True
    return word[0] in EDGE_NOISE or word[-1] in EDGE_NOISE


def redact(word: str) -> str:
    """Mask a word, keeping its first character when it is long enough."""
    if len(word) < 4:
        return "#" * len(word)
    return word[0] + "#" * (len(word) - 1)


class BadWordMatcher:
    """
    Censors banned words out of text.

    The matcher is built once from the dictionary and shared by everything
    that scans text.
    """

    def __init__(self, entries: list[BannedWordEntry], partial_strike_count: float) -> None:
        """
        Compile the dictionary.

        Args:
            entries: One entry per tier, ascending
            partial_strike_count: Minimum weight of a single match

        Raises:
            re.error: If a source is not a valid pattern
        """
        self.partial_strike_count = partial_strike_count
        self.patterns = [build_tier_pattern(entry) for entry in entries]
        logger.debug("Compiled %d banned word tiers", len(self.patterns))

    @property
    def tiers(self) -> int:
        return len(self.patterns)

    def scan(self, text: str, strike_shift: int = 0) -> ScanResult:
        """
        Find and redact banned words.

        Args:
            text: Text to scan
            strike_shift: Tiers to subtract from every match's weight, used
                for text the author did not type directly

        Returns:
            CensorResult when anything matched, otherwise False
        """
        words: list[list[str]] = [[] for _ in self.patterns]
        censored = normalize(text)

        # A mask is a word boundary, so a redaction can expose a bounded word
        # glued to it. Repeat until a pass redacts nothing.
        while True:
            counted = sum(map(len, words))
            censored = self._censor_pass(censored, words)
            if sum(map(len, words)) == counted:
                break

        if not any(words):
            return False

        strikes = sum(
            len(found) * max(tier - strike_shift, self.partial_strike_count)
            for tier, found in enumerate(words)
        )
        return CensorResult(censored=censored, strikes=strikes, words=words)

    def _censor_pass(self, text: str, words: list[list[str]]) -> str:
        """Run every tier over text once, recording counted matches in words."""
        for tier, pattern in enumerate(self.patterns):
            found = words[tier]

            def replace(match: re.Match[str], found: list[str] = found) -> str:
                word = match.group()
                if is_false_positive(word):
                    return word
                found.append(word)
                return redact(word)

            text = pattern.sub(replace, text)
        return text

    def censor(self, text: str) -> str:
        """Return text with banned words redacted, or unchanged when clean."""
        result = self.scan(text)
        return result.censored if result else text

    def merge(self, results: Iterable[ScanResult]) -> CensorResult | bool:
        """Combine several scans of one message into a single result."""
        return merge(results, self.tiers)


def merge(results: Iterable[ScanResult], tiers: int) -> CensorResult | bool:
    """
    Combine scans of the separate parts of one message.

    Strikes add up and matched words are concatenated per tier. The censored
    texts are joined by newlines.

    Returns:
        CensorResult, or False when none of the scans matched
    """
    found = [result for result in results if result]
    if not found:
        return False

    words: list[list[str]] = [[] for _ in range(tiers)]
    for result in found:
        for tier, matched in enumerate(result.words):
            words[tier].extend(matched)

    return CensorResult(
        censored="\n".join(result.censored for result in found),
        strikes=sum(result.strikes for result in found),
        words=words,
    )
