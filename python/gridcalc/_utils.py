"""A1 address codec: column letters + 1-based row <-> zero-based (row, col)."""

from __future__ import annotations

import re

_A1_RE = re.compile(r"^([A-Z]+)([0-9]+)$")
_COLUMN_RE = re.compile(r"^[A-Z]+$")


class InvalidAddress(ValueError):
    """Raised when a cell label or coordinate pair cannot be mapped."""

    def __init__(self, address: object, reason: str = "") -> None:
        self.address = address
        message = f"Invalid cell address: {address!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def column_letter(index: int) -> str:
    """0 -> 'A', 25 -> 'Z', 26 -> 'AA' (bijective base-26, no zero digit)."""
    if index < 0:
        raise InvalidAddress(index, "negative column index")
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def column_index(letters: str) -> int:
    """'A' -> 0, 'Z' -> 25, 'AA' -> 26."""
    if not _COLUMN_RE.match(letters):
        raise InvalidAddress(letters, "column must be upper-case letters")
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def a1_to_rowcol(label: str) -> tuple[int, int]:
    """'A1' -> (0, 0). Raises InvalidAddress on anything but LETTERS+DIGITS."""
    if not isinstance(label, str):
        raise InvalidAddress(label, "label must be a string")
    m = _A1_RE.match(label)
    if not m:
        raise InvalidAddress(label)
    row = int(m.group(2)) - 1
    if row < 0:
        raise InvalidAddress(label, "row numbers start at 1")
    return row, column_index(m.group(1))


def rowcol_to_a1(row: int, col: int) -> str:
    """(0, 0) -> 'A1'."""
    if row < 0:
        raise InvalidAddress((row, col), "negative row index")
    return f"{column_letter(col)}{row + 1}"


# Public names used by the UI collaborator.
encode_address = rowcol_to_a1
decode_address = a1_to_rowcol
