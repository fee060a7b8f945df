"""Sheet: the cell store and every entry point the UI calls into."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from gridcalc._cell import Cell
from gridcalc._utils import a1_to_rowcol, rowcol_to_a1
from gridcalc.calc._evaluator import FormulaEvaluator, values_differ
from gridcalc.calc._functions import CellError, FunctionRegistry, format_value
from gridcalc.calc._graph import DependencyGraph, has_cycle
from gridcalc.calc._parser import coerce_literal, expand_range, in_bounds, range_bounds
from gridcalc.calc._protocol import CellDelta, RecalcResult

logger = logging.getLogger(__name__)

DEFAULT_NUM_ROWS = 100
DEFAULT_NUM_COLS = 26  # A to Z
DEFAULT_ROW_HEIGHT = 25
DEFAULT_COLUMN_WIDTH = 100

_ROW = 0
_COL = 1


@dataclass
class Clipboard:
    """Value copies of cells keyed by their original (row, col), plus the anchor."""

    cells: dict[tuple[int, int], Cell] = field(default_factory=dict)
    anchor: tuple[int, int] | None = None

    @property
    def is_empty(self) -> bool:
        return self.anchor is None or not self.cells


class Sheet:
    """A single grid of cells with formula evaluation and recomputation.

    Usage::

        sheet = Sheet()
        sheet.set_cell_text("A1", "5")
        sheet.set_cell_text("B1", "=A1+3")
        sheet.get_cell("B1").computed  # 8

    Addresses are "A1" labels. Writes, clears, paste, cut, duplicate removal
    and find/replace refresh every dependent before they return. Row and
    column insertion and deletion only move cells: formula text is not
    rewritten and nothing is re-evaluated, so call :meth:`recalculate` after
    them to bring computed values in line with the new layout.
    """

    __slots__ = (
        "_cells", "_n_rows", "_n_cols", "_row_heights", "_column_widths",
        "_evaluator", "_selection", "_selected_cell", "_active_formula", "_clipboard",
    )

    def __init__(
        self,
        n_rows: int = DEFAULT_NUM_ROWS,
        n_cols: int = DEFAULT_NUM_COLS,
        registry: FunctionRegistry | None = None,
    ) -> None:
        if n_rows < 1 or n_cols < 1:
            raise ValueError(f"Grid must be at least 1x1, got {n_rows}x{n_cols}")
        self._cells: dict[tuple[int, int], Cell] = {}
        self._n_rows = n_rows
        self._n_cols = n_cols
        self._row_heights: list[int] = [DEFAULT_ROW_HEIGHT] * n_rows
        self._column_widths: list[int] = [DEFAULT_COLUMN_WIDTH] * n_cols
        self._evaluator = FormulaEvaluator(registry)
        self._selection: list[str] = []
        self._selected_cell: str | None = None
        self._active_formula = ""
        self._clipboard = Clipboard()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def n_rows(self) -> int:
        return self._n_rows

    @property
    def n_cols(self) -> int:
        return self._n_cols

    @property
    def row_heights(self) -> tuple[int, ...]:
        return tuple(self._row_heights)

    @property
    def column_widths(self) -> tuple[int, ...]:
        return tuple(self._column_widths)

    @property
    def functions(self) -> FunctionRegistry:
        return self._evaluator.functions

    @property
    def selection(self) -> list[str]:
        return list(self._selection)

    @property
    def selected_cell(self) -> str | None:
        return self._selected_cell

    @property
    def active_formula(self) -> str:
        return self._active_formula

    @property
    def clipboard(self) -> Clipboard:
        return self._clipboard

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Cell:
        """``sheet['A1']`` -> Cell (default cell if absent)."""
        return self.get_cell(key)

    def __setitem__(self, key: str, value: str) -> None:
        """``sheet['A1'] = '=B1*2'`` - shorthand for :meth:`set_cell_text`."""
        self.set_cell_text(key, value)

    def __contains__(self, key: str) -> bool:
        return a1_to_rowcol(key) in self._cells

    def get_cell(self, address: str) -> Cell:
        """Stored cell at *address*, or a fresh empty cell that is not stored."""
        cell = self._cells.get(a1_to_rowcol(address))
        return cell if cell is not None else Cell()

    def iter_cells(self) -> Iterator[tuple[str, Cell]]:
        """Stored cells as ``(label, cell)``, row-major."""
        for row, col in sorted(self._cells):
            yield rowcol_to_a1(row, col), self._cells[(row, col)]

    def _get_or_create_cell(self, key: tuple[int, int]) -> Cell:
        if key not in self._cells:
            self._cells[key] = Cell()
        return self._cells[key]

    def _evaluate(self, text: str) -> Any:
        return self._evaluator.evaluate(text, self._cells, (self._n_rows, self._n_cols))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_cell_text(self, address: str, text: str) -> None:
        """Store *text* at *address*, evaluate it and refresh its dependents."""
        if not isinstance(text, str):
            raise TypeError(f"Cell text must be str, got {type(text).__name__}")
        key = a1_to_rowcol(address)
        label = rowcol_to_a1(*key)
        cell = self._get_or_create_cell(key)

        is_formula = text.startswith("=")
        cell.raw_text = text
        cell.formula = text if is_formula else ""

        if is_formula and has_cycle(label, text, self._cells):
            logger.debug("Circular reference in %s: %r", label, text)
            cell.computed = CellError.CIRCULAR
        else:
            cell.computed = self._evaluate(text)

        self._propagate({label})

    def set_cell_style(
        self,
        address: str,
        style: Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> None:
        """Merge style attributes into the cell at *address*. No evaluation."""
        merged = dict(style or {})
        merged.update(changes)
        cell = self._get_or_create_cell(a1_to_rowcol(address))
        cell.style = cell.style.merged(**merged)

    def clear_cell(self, address: str) -> None:
        """Remove the cell at *address* from the store and refresh its dependents."""
        key = a1_to_rowcol(address)
        if self._cells.pop(key, None) is not None:
            self._propagate({rowcol_to_a1(*key)})

    # ------------------------------------------------------------------
    # Recomputation
    # ------------------------------------------------------------------

    def _propagate(self, changed: set[str]) -> None:
        """Refresh every cell that transitively reads from *changed*.

        Each affected cell is refreshed once. Cells caught in (or reading
        from) a cycle become ``#CIRCULAR!``; the rest are re-evaluated in
        dependency order. The changed cells keep their values.
        """
        graph = DependencyGraph.from_cells(self._cells)
        affected = graph.affected_cells(changed)
        if not affected:
            return

        circular = {
            ref for ref in affected if has_cycle(ref, graph.formulas[ref], self._cells)
        }
        for ref in circular:
            self._cells[a1_to_rowcol(ref)].computed = CellError.CIRCULAR

        for ref in graph.topological_order(affected - circular):
            cell = self._cells[a1_to_rowcol(ref)]
            cell.computed = self._evaluate(cell.formula)

    def recalculate(self, tolerance: float = 1e-10) -> RecalcResult:
        """Re-derive every formula cell and report the ones whose value changed."""
        graph = DependencyGraph.from_cells(self._cells)

        old_values: dict[str, Any] = {}
        for ref in graph.formulas:
            old_values[ref] = self._cells[a1_to_rowcol(ref)].computed

        circular = {
            ref for ref, formula in graph.formulas.items()
            if has_cycle(ref, formula, self._cells)
        }
        for ref in circular:
            self._cells[a1_to_rowcol(ref)].computed = CellError.CIRCULAR

        for ref in graph.topological_order(set(graph.formulas) - circular):
            cell = self._cells[a1_to_rowcol(ref)]
            cell.computed = self._evaluate(cell.formula)

        deltas: list[CellDelta] = []
        for ref in sorted(graph.formulas, key=a1_to_rowcol):
            old_val = old_values[ref]
            new_val = self._cells[a1_to_rowcol(ref)].computed
            if values_differ(old_val, new_val, tolerance):
                deltas.append(CellDelta(
                    cell_ref=ref,
                    old_value=old_val,
                    new_value=new_val,
                    formula=graph.formulas[ref],
                ))

        return RecalcResult(
            deltas=tuple(deltas),
            total_formula_cells=len(graph.formulas),
            circular_cells=tuple(sorted(circular, key=a1_to_rowcol)),
        )

    # ------------------------------------------------------------------
    # Grid dimensions
    # ------------------------------------------------------------------

    def _check_index(self, index: int, axis: int) -> None:
        limit = self._n_rows if axis == _ROW else self._n_cols
        if not 0 <= index < limit:
            name = "row" if axis == _ROW else "column"
            raise ValueError(f"{name} index {index} outside 0..{limit - 1}")

    def set_row_height(self, index: int, height: int) -> None:
        self._check_index(index, _ROW)
        self._row_heights[index] = height

    def set_column_width(self, index: int, width: int) -> None:
        self._check_index(index, _COL)
        self._column_widths[index] = width

    def _remap(self, axis: int, index: int, inserting: bool) -> None:
        """Move every cell at or past *index* along *axis* by one slot."""
        cells: dict[tuple[int, int], Cell] = {}
        for key, cell in self._cells.items():
            pos = key[axis]
            if inserting:
                if pos >= index:
                    pos += 1
            elif pos == index:
                continue
            elif pos > index:
                pos -= 1
            new_key = (pos, key[_COL]) if axis == _ROW else (key[_ROW], pos)
            cells[new_key] = cell
        self._cells = cells

    @staticmethod
    def _shift_sizes(sizes: list[int], index: int, inserting: bool, default: int) -> None:
        """Shift per-index sizes, keeping the list length fixed."""
        n = len(sizes)
        if inserting:
            sizes.insert(index, default)
            del sizes[n:]
        else:
            del sizes[index]
            sizes.append(default)

    def insert_row(self, index: int) -> None:
        """Push every row at or below *index* down by one. Formulas are not rewritten."""
        self._check_index(index, _ROW)
        self._remap(_ROW, index, inserting=True)
        self._shift_sizes(self._row_heights, index, True, DEFAULT_ROW_HEIGHT)

    def delete_row(self, index: int) -> None:
        """Drop row *index* and pull the rows below it up by one."""
        self._check_index(index, _ROW)
        self._remap(_ROW, index, inserting=False)
        self._shift_sizes(self._row_heights, index, False, DEFAULT_ROW_HEIGHT)

    def insert_column(self, index: int) -> None:
        """Push every column at or right of *index* right by one."""
        self._check_index(index, _COL)
        self._remap(_COL, index, inserting=True)
        self._shift_sizes(self._column_widths, index, True, DEFAULT_COLUMN_WIDTH)

    def delete_column(self, index: int) -> None:
        """Drop column *index* and pull the columns right of it left by one."""
        self._check_index(index, _COL)
        self._remap(_COL, index, inserting=False)
        self._shift_sizes(self._column_widths, index, False, DEFAULT_COLUMN_WIDTH)

    # ------------------------------------------------------------------
    # Selection and formula bar
    # ------------------------------------------------------------------

    def select_cell(self, address: str) -> None:
        label = rowcol_to_a1(*a1_to_rowcol(address))
        self._selected_cell = label
        self._selection = [label]
        self._active_formula = self.get_cell(label).formula

    def select_range(self, start: str, end: str) -> list[str]:
        """Select the rectangle between *start* and *end*; *start* is the anchor."""
        anchor = rowcol_to_a1(*a1_to_rowcol(start))
        self._selection = expand_range(f"{start}:{end}")
        self._selected_cell = anchor
        return list(self._selection)

    def set_active_formula(self, text: str) -> None:
        self._active_formula = text

    def apply_active_formula(self) -> None:
        """Commit the formula bar text to the selected cell."""
        if self._selected_cell is None:
            return
        self.set_cell_text(self._selected_cell, self._active_formula)

    def _resolve_keys(
        self, range_ref: str | None
    ) -> tuple[list[tuple[int, int]], tuple[int, int] | None]:
        """Stored keys (row-major) and anchor for "A1:B2", "A1", or the selection.

        Only stored cells are visited, so the size of a range costs nothing.
        """
        if range_ref is None:
            if self._selected_cell is None:
                return [], None
            keys = {a1_to_rowcol(label) for label in self._selection}
            return sorted(keys & self._cells.keys()), a1_to_rowcol(self._selected_cell)
        if ":" in range_ref:
            bounds = range_bounds(range_ref)
            anchor = a1_to_rowcol(range_ref.split(":", 1)[0].strip())
        else:
            anchor = a1_to_rowcol(range_ref.strip())
            bounds = (anchor[_ROW], anchor[_COL], anchor[_ROW], anchor[_COL])
        return sorted(k for k in self._cells if in_bounds(k, bounds)), anchor

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    def _snapshot(self, range_ref: str | None, remove: bool) -> None:
        keys, anchor = self._resolve_keys(range_ref)
        if anchor is None:
            return
        cells = {key: self._cells[key].copy() for key in keys}
        self._clipboard = Clipboard(cells=cells, anchor=anchor)
        if remove and cells:
            for key in cells:
                del self._cells[key]
            self._propagate({rowcol_to_a1(*key) for key in cells})

    def copy(self, range_ref: str | None = None) -> None:
        """Snapshot the cells in *range_ref* (default: current selection)."""
        self._snapshot(range_ref, remove=False)

    def cut(self, range_ref: str | None = None) -> None:
        """Like :meth:`copy`, then remove the originals."""
        self._snapshot(range_ref, remove=True)

    def paste(self, target: str) -> None:
        """Write the clipboard so its anchor lands on *target*.

        Each cell is copied whole, computed value included; formulas keep
        their literal references and are not re-evaluated.
        """
        t_row, t_col = a1_to_rowcol(target)
        clipboard = self._clipboard
        if clipboard.is_empty or clipboard.anchor is None:
            return
        d_row = t_row - clipboard.anchor[_ROW]
        d_col = t_col - clipboard.anchor[_COL]

        written: set[str] = set()
        for (row, col), cell in sorted(clipboard.cells.items()):
            new_row, new_col = row + d_row, col + d_col
            if new_row < 0 or new_col < 0:
                logger.debug("Paste skips %s: shifted off the grid", rowcol_to_a1(row, col))
                continue
            self._cells[(new_row, new_col)] = cell.copy()
            written.add(rowcol_to_a1(new_row, new_col))

        self._propagate(written)

    # ------------------------------------------------------------------
    # Data quality
    # ------------------------------------------------------------------

    def remove_duplicates(self, range_ref: str | None = None) -> int:
        """Delete every row whose raw values in *range_ref* repeat an earlier row.

        Duplicate rows lose all their cells across the whole grid; rows are
        not shifted. Rows with nothing but empty cells inside the range never
        count as duplicates, so blank rows between records are left alone.
        Returns the number of rows removed.
        """
        keys, _ = self._resolve_keys(range_ref)
        # (column, raw) of the non-empty cells; empty and absent compare equal
        rows: dict[int, list[tuple[int, str]]] = {}
        for key in keys:
            raw = self._cells[key].raw_text
            if raw:
                rows.setdefault(key[_ROW], []).append((key[_COL], raw))

        seen: set[tuple[tuple[int, str], ...]] = set()
        duplicate_rows: set[int] = set()
        for row in sorted(rows):
            signature = tuple(rows[row])
            if signature in seen:
                duplicate_rows.add(row)
            else:
                seen.add(signature)

        removed = [key for key in self._cells if key[_ROW] in duplicate_rows]
        for key in removed:
            del self._cells[key]
        if removed:
            self._propagate({rowcol_to_a1(*key) for key in removed})
        return len(duplicate_rows)

    def find_and_replace(self, range_ref: str | None, find: str, replace: str) -> int:
        """Replace every literal occurrence of *find* in the range's raw text.

        The computed value's text is replaced the same way; nothing is
        re-evaluated. Returns the number of cells changed.
        """
        if not find:
            return 0
        keys, _ = self._resolve_keys(range_ref)
        changed: set[str] = set()
        for key in keys:
            cell = self._cells[key]
            if find not in cell.raw_text:
                continue
            cell.raw_text = cell.raw_text.replace(find, replace)
            cell.formula = cell.raw_text if cell.raw_text.startswith("=") else ""
            if cell.computed is not None:
                old_text = format_value(cell.computed)
                new_text = old_text.replace(find, replace)
                if new_text != old_text:
                    cell.computed = coerce_literal(new_text)
            changed.add(rowcol_to_a1(*key))

        if changed:
            self._propagate(changed)
        return len(changed)
