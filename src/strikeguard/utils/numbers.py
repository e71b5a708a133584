"""
Number formatting and base conversion.

Strike IDs are audit entry snowflakes written in a compact base so they are
short enough to type in chat.
"""

from __future__ import annotations

DEFAULT_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-/=[];',."
MAX_BASE = len(DEFAULT_CHARS)


def convert_base(value: str, source_base: int, out_base: int, chars: str = DEFAULT_CHARS) -> str:
    """
    Convert a number written as a string between bases.

    Python integers are unbounded, so 64-bit snowflakes and larger convert
    losslessly in both directions.

    Args:
        value: Digits of the number in source_base (empty string means 0)
        source_base: Base of value
        out_base: Base of the result
        chars: Digit alphabet shared by both bases

    Returns:
        str: Digits of the number in out_base

    Raises:
        ValueError: If a base is out of range or value has an invalid digit
    """
    if not 2 <= source_base <= len(chars):
        raise ValueError(f"source_base must be between 2 and {len(chars)}")
    if not 2 <= out_base <= len(chars):
        raise ValueError(f"out_base must be between 2 and {len(chars)}")

    number = 0
    for digit in value:
        index = chars.find(digit)
        if index == -1 or index >= source_base:
            raise ValueError(f"Invalid digit {digit!r} for base {source_base}")
        number = number * source_base + index

    output = []
    while number > 0:
        number, remainder = divmod(number, out_base)
        output.append(chars[remainder])
    return "".join(reversed(output)) or chars[0]

