"""Helpers for the fixed 26-letter slot structure."""

from __future__ import annotations

import string

from .errors import ValidationError

ALPHABET = string.ascii_uppercase
LETTER_COUNT = len(ALPHABET)


def normalize_letter(value: object) -> str:
    """Return ``value`` as an upper-case letter in A-Z.

    Raises:
        ValidationError: If ``value`` is not a single ASCII letter.
    """
    if not isinstance(value, str) or len(value.strip()) != 1:
        raise ValidationError(f"letter must be a single character A-Z, got {value!r}")
    letter = value.strip().upper()
    if letter not in ALPHABET:
        raise ValidationError(f"letter must be a single character A-Z, got {value!r}")
    return letter


def letter_index(value: object) -> int:
    """Return the 0-25 ordinal of a letter."""
    return ALPHABET.index(normalize_letter(value))


def letter_for_index(index: int) -> str:
    """Return the letter stored at slot ``index``."""
    if not 0 <= index < LETTER_COUNT:
        raise ValidationError(f"letter slot index out of range: {index}")
    return ALPHABET[index]


__all__ = ["ALPHABET", "LETTER_COUNT", "normalize_letter", "letter_index", "letter_for_index"]
