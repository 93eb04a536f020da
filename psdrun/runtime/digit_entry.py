"""Shift-register digit entry for display elements.

New digits enter on the right and existing characters move left:
``-- -> -1 -> 12``. Full registers saturate instead of wrapping.
"""

from __future__ import annotations

from collections.abc import Sequence

EMPTY_DIGIT = "-"
EMPTY_PAIR = EMPTY_DIGIT * 2


def shift_pair(current: str, digit: str) -> str:
    """Insert ``digit`` into a two-character single-display buffer."""
    left = current[0:1]
    right = current[1:2]
    if left == EMPTY_DIGIT and right == EMPTY_DIGIT:
        return EMPTY_DIGIT + digit
    if left == EMPTY_DIGIT:
        return right + digit
    return current


def shift_positions(current: Sequence[str], digit: str) -> tuple[str, ...] | None:
    """Shift one-character-per-display values left and append ``digit``.

    Returns None when every position is already filled.
    """
    if not current:
        return None
    if all(value != EMPTY_DIGIT for value in current):
        return None
    return (*current[1:], digit)
