"""
Text helpers shared by the automod and punishment modules.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

# Invisible formatting characters that survive NFD and can be stuffed between
# letters: soft hyphen, Arabic letter mark, Syriac abbreviation mark, Khmer
# inherent vowels, Mongolian vowel separator, directional marks, word joiners
# and deprecated format controls.
INVISIBLE_PATTERN = re.compile(
    "[\u00ad\u061c\u070f\u17b4\u17b5\u180e\u200a-\u200f\u2060-\u2064\u206a-\u206f]"
)

MARKDOWN_PATTERN = re.compile(
    r"(?<!\\)\\"
    r"|```\S*\s+(.+?)\s*```"
    r"|(?<!\\)\*\*(.+?)(?<!\\)\*\*"
    r"|(?<!\\)__(.+?)(?<!\\)__"
    r"|(?<![\\*])\*(.+?)(?<![\\*])\*"
    r"|(?<![\\_])_(.+?)(?<![\\_])_"
    r"|~~(.+?)(?<!\\)~~"
    r"|`(.+?)(?<![\\`])`"
    r"|^> (.+?)",
    re.MULTILINE | re.DOTALL,
)


def caesar(text: str, rot: int = 13) -> str:
    """
    Rotate the ASCII letters of a string, keeping their case.

    Args:
        text: Text to rotate
        rot: Shift amount (13 is its own inverse)

    Returns:
        str: Rotated text
    """

    def shift(match: re.Match[str]) -> str:
        char = match.group()
        start = ord("A") if char <= "Z" else ord("a")
        return chr(start + (ord(char) - start + rot) % 26)

    return re.sub(r"[a-zA-Z]", shift, text)


def is_diacritic(char: str) -> bool:
    """Whether a character only decorates its neighbour (accents, carets, macrons)."""
    return unicodedata.category(char) in ("Mn", "Me", "Sk")


def normalize(text: str) -> str:
    """
    Normalize text before matching.

    Decomposes to NFD and drops diacritic marks, modifier symbols and
    invisible formatting characters, so "ḟůçķ" and "f­u" read as plain
    letters.
    """
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(char for char in decomposed if not is_diacritic(char))
    return INVISIBLE_PATTERN.sub("", stripped)


def strip_markdown(text: str) -> str:
    """Remove markdown emphasis, code spans and quotes, keeping their content."""
    return MARKDOWN_PATTERN.sub(lambda match: "".join(group or "" for group in match.groups()), text)


def join_with_and(items: Iterable[T], callback: Callable[[T], str] = str) -> str:
    """
    Join items using Oxford comma rules.

    >>> join_with_and(["a", "b", "c"])
    'a, b, and c'
    """
    parts = [callback(item) for item in items]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return f"{parts[0]} and {parts[1]}"
    return ", ".join(parts[:-1]) + f", and {parts[-1]}"


def truncate_text(text: str, max_length: int) -> str:
    """Collapse whitespace and cut text to max_length, ending with an ellipsis when cut."""
    collapsed = re.sub(r"\s+", " ", text)
    if len(collapsed) > max_length or "\n" in text:
        return collapsed[: max(0, max_length - 1)] + "…"
    return collapsed
