"""Cell and CellStyle value objects."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from gridcalc.calc._functions import format_value

_TEXT_ALIGNMENTS = ("left", "center", "right")


@dataclass(frozen=True)
class CellStyle:
    """Presentational attributes owned by the UI. Never read by the evaluator."""

    bold: bool = False
    italic: bool = False
    font_size: int = 12
    color: str = "#000000"
    background_color: str = "#ffffff"
    text_align: str = "left"

    def __post_init__(self) -> None:
        if self.text_align not in _TEXT_ALIGNMENTS:
            raise ValueError(
                f"text_align must be one of {_TEXT_ALIGNMENTS}, got {self.text_align!r}"
            )

    def merged(self, **changes: Any) -> CellStyle:
        """Return a copy with *changes* applied (unknown fields raise TypeError)."""
        return replace(self, **changes)


@dataclass
class Cell:
    """A single cell in the store.

    ``raw_text`` is what the user typed, ``formula`` mirrors it when it starts
    with ``=``, and ``computed`` holds the last evaluated value: a number,
    text, ``None``, or a :class:`~gridcalc.calc.CellError`.
    """

    raw_text: str = ""
    formula: str = ""
    computed: Any = None
    style: CellStyle = field(default_factory=CellStyle)

    @property
    def is_formula(self) -> bool:
        return bool(self.formula)

    @property
    def display(self) -> str:
        """Text the grid shows for this cell."""
        return format_value(self.computed)

    def copy(self) -> Cell:
        # CellStyle is frozen, so a shallow copy is a full value copy.
        return replace(self)
