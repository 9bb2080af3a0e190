"""Fractional order keys for sibling pages.

Keys are strings over ``a``..``z`` compared lexicographically. A new key can
always be produced between two neighbours, so inserting a page never
renumbers its siblings.
"""

from __future__ import annotations

import string


ALPHABET = string.ascii_lowercase
_LOW = ALPHABET[0]
_HIGH = ALPHABET[-1]


def midpoint(prev: str = "", next: str = "") -> str:  # noqa: A002
    """Return a key sorting between ``prev`` and ``next``.

    Positions past the end of ``prev`` read as ``a`` and past the end of
    ``next`` as ``z``; an empty ``next`` therefore means "end of sequence".
    At the first position where the two keys are more than one letter apart
    the shared prefix plus the middle letter (half rounds up) is returned.
    When no such gap exists the result is ``prev + "m"``.

    >>> midpoint("", "")
    'm'
    >>> midpoint("m", "")
    't'
    """
    for position in range(max(len(prev), len(next))):
        prev_char = prev[position] if position < len(prev) else _LOW
        next_char = next[position] if position < len(next) else _HIGH
        if prev_char == next_char:
            continue
        low, high = ALPHABET.index(prev_char), ALPHABET.index(next_char)
        if high - low > 1:
            return prev[:position] + ALPHABET[(low + high + 1) // 2]
    return prev + "m"


def next_order_after(last: str | None) -> str:
    """Key for appending after the current last sibling."""
    return midpoint(last or "", "")
