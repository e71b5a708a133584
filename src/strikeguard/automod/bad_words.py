"""
Banned word dictionary.

Each tier's index is its severity: tier 0 words are mild and only earn a
partial strike, higher tiers earn one strike per tier step. Sources are
stored ROT13-rotated and decoded when the matcher is built.

The dictionary lives in the "bad_words" dataset. When the dataset is empty
the built-in dictionary below is used.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from strikeguard.utils.database import DatasetStore
from strikeguard.utils.logging import get_logger

logger = get_logger(__name__)

DATASET = "bad_words"

# Matches nowhere except in development, so the whole pipeline can be
# exercised without typing a real slur.
TEST_WORD = "nhgbzbqzhgr"
TEST_WORD_TIER = 1


@dataclass
class BannedWordEntry:
    """
    Pattern sources of one severity tier.

    Attributes:
        tier: Severity, 0 is mildest
        strings: Sources that match anywhere in the text
        words: Sources that must be bounded on both sides
        prefixes: Sources that must start at a word boundary
    """
    tier: int
    strings: list[str] = field(default_factory=list)
    words: list[str] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "strings": list(self.strings),
            "words": list(self.words),
            "prefixes": list(self.prefixes),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> BannedWordEntry:
        """
        Build an entry from a dataset record.

        Raises:
            ValueError: If the record is not a valid entry
        """
        tier = record.get("tier")
        if not isinstance(tier, int) or isinstance(tier, bool) or tier < 0:
            raise ValueError(f"Invalid banned word tier: {tier!r}")

        lists: dict[str, list[str]] = {}
        for key in ("strings", "words", "prefixes"):
            value = record.get(key, [])
            if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
                raise ValueError(f"Banned word tier {tier} has an invalid {key} list")
            lists[key] = list(value)

        return cls(tier=tier, **lists)


DEFAULT_BAD_WORDS: list[BannedWordEntry] = [
    BannedWordEntry(
        tier=0,
        strings=[
            "cbea",
            "grfgvpyr",
            "fpuzhpx",
            "erpghz",
            "ihyin",
            "🖕",
            "卐",
            "fjnfgvxn",
            "卍",
            "lvss",
            "ahg ?fnpx",
        ],
        words=[
            "intva(?:n|r|y|f|l)+",
            "(?:urzv ?)?cravf(?:rf)?",
            "nahf(?:rf)?",
            "frzra",
            "(?:c(?:er|bfg) ?)?phz",
            "pyvg",
            "gvg(?:(?:gvr)?f)?",
            "chff(?:l|vrf)",
            "fpebghz",
            "ynovn",
            "xlf",
            "preivk",
            "ubeal",
            "obaref?",
            "fcrez",
        ],
    ),
    BannedWordEntry(
        tier=1,
        strings=[
            "fuv+r*g(?!nx(?:v|r))",
            "rwnphyngr",
            "fcyb+tr",
            "oybj ?wbo",
            "shpx",
            "wvmm",
            "wvfz",
            "znfg(?:h|r)eong",
            "ohgg(?: ?cvengr)",
            "qvyqb",
            "xhxfhtre",
            "dhrrs",
            "wnpx ?bss",
            "wrex ?bss",
            "ovg?pu",
        ],
        words=[
            "(?:ovt ?)?qvp?xr?(?: ?(?:q|l|evat|ef?|urnqf?|vre?|vrfg?|vat|f|jnqf?|loveqf?))?",
            "(?:8|o)=+Q",
            "fzhg+(?:vr|e|fg?|l)?",
            "pbpx(?: ?svtug|fhpx|(?:svtug|fhpx)(?:re|vat)|znafuvc|hc)?f?",
            "onfgneq(?:vfz|(y|e)?l|evrf|f)?",
            "phagf?",
            "shx",
            "ovg?fu",
            "jnax(?:v?ref?|v(?:rfg|at)|yr|f|l)?",
        ],
    ),
    BannedWordEntry(
        tier=2,
        strings=[
            "puvat ?(punat ?)?puba",
            "xvxr",
            "pnecrg ?zhapure",
            "fyhg",
            "fur ?znyr",
            "shqtr ?cnpxr",
            "ergneq",
        ],
        words=[
            "tbbx(?:f|l)?",
            "yrfobf?",
            "fcvpf?",
            "j?uber",
            "av+t{2,}(?:(r|h)?e|n)(?: ?rq|qbz|urnq|vat|vf(u|z)|yvat|l)?f?",
            "snv?t+(?:rq|vr(?:e|fg)|va|vg|bgf?|bge?l|l)?f?",
            "wnc(?:rq?|revrf|re?f|rel?|r?f|vatf?|crq|cvat|cn)?",
        ],
    ),
]


def _copy_entries(entries: list[BannedWordEntry]) -> list[BannedWordEntry]:
    return [BannedWordEntry.from_record(entry.to_record()) for entry in entries]


def with_test_word(entries: list[BannedWordEntry]) -> list[BannedWordEntry]:
    """Return a copy of the dictionary with the development test word added."""
    entries = _copy_entries(entries)
    while len(entries) <= TEST_WORD_TIER:
        entries.append(BannedWordEntry(tier=len(entries)))
    if TEST_WORD not in entries[TEST_WORD_TIER].strings:
        entries[TEST_WORD_TIER].strings.append(TEST_WORD)
    return entries


def normalize_tiers(entries: list[BannedWordEntry]) -> list[BannedWordEntry]:
    """
    Sort entries by tier and fill gaps with empty tiers.

    Several entries for the same tier are merged.

    Returns:
        list[BannedWordEntry]: One entry per tier, where index == tier
    """
    if not entries:
        return []
    tiers = [BannedWordEntry(tier=index) for index in range(max(entry.tier for entry in entries) + 1)]
    for entry in entries:
        target = tiers[entry.tier]
        target.strings.extend(entry.strings)
        target.words.extend(entry.words)
        target.prefixes.extend(entry.prefixes)
    return tiers


def load_bad_words(store: DatasetStore, include_test_word: bool = False) -> list[BannedWordEntry]:
    """
    Load the banned word dictionary.

    Args:
        store: Dataset store to read from
        include_test_word: Add the development test word to tier 1

    Returns:
        list[BannedWordEntry]: One entry per tier, ascending

    Raises:
        ValueError: If a stored record is malformed
    """
    records = store.read(DATASET)
    if records:
        entries = normalize_tiers([BannedWordEntry.from_record(record) for record in records])
        logger.info("Loaded %d banned word tiers from the database", len(entries))
    else:
        entries = _copy_entries(DEFAULT_BAD_WORDS)
        logger.info("Using the built-in banned word dictionary")

    if include_test_word:
        entries = with_test_word(entries)
    return entries


def save_bad_words(store: DatasetStore, entries: list[BannedWordEntry]) -> None:
    """Replace the stored dictionary."""
    store.write(DATASET, [entry.to_record() for entry in normalize_tiers(entries)])
