"""CalcEngine protocol and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from gridcalc._cell import Cell


@dataclass(frozen=True)
class CellDelta:
    """A single cell's value change from recalculation."""

    cell_ref: str  # "A1"
    old_value: Any
    new_value: Any
    formula: str | None = None  # the formula that produced new_value


@dataclass(frozen=True)
class RecalcResult:
    """Result of a full-sheet recalculation."""

    deltas: tuple[CellDelta, ...]  # cells that changed
    total_formula_cells: int = 0
    circular_cells: tuple[str, ...] = ()

    @property
    def changed_cells(self) -> int:
        return len(self.deltas)

    @property
    def change_ratio(self) -> float:
        if self.total_formula_cells == 0:
            return 0.0
        return len(self.deltas) / self.total_formula_cells


@runtime_checkable
class CalcEngine(Protocol):
    """What the UI collaborator calls into."""

    def set_cell_text(self, address: str, text: str) -> None:
        """Store raw text, evaluate it, and refresh every dependent cell."""
        ...

    def get_cell(self, address: str) -> Cell:
        """Return the cell at *address*, or a default empty cell."""
        ...

    def recalculate(self) -> RecalcResult:
        """Re-derive every formula cell and report what changed."""
        ...
