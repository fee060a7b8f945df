"""Dependency graph for formula cells, cycle detection and evaluation ordering."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING

from gridcalc._utils import a1_to_rowcol, rowcol_to_a1
from gridcalc.calc._parser import dependencies, in_bounds, range_dependencies

if TYPE_CHECKING:
    from gridcalc._cell import Cell


def _formula_at(ref: str, cells: Mapping[tuple[int, int], Cell]) -> str:
    cell = cells.get(a1_to_rowcol(ref))
    return cell.formula if cell is not None else ""


def _reads(
    formula: str,
    origin: tuple[int, int],
    cells: Mapping[tuple[int, int], Cell],
) -> Iterator[str]:
    """Cells *formula* reads that could lead anywhere: its single references,
    plus the origin and the stored formula cells inside each of its ranges."""
    refs = dependencies(formula)
    for bounds in range_dependencies(formula):
        if in_bounds(origin, bounds):
            refs.add(rowcol_to_a1(*origin))
        for key, cell in cells.items():
            if cell.formula and in_bounds(key, bounds):
                refs.add(rowcol_to_a1(*key))
    return iter(sorted(refs))


def has_cycle(origin: str, formula: str, cells: Mapping[tuple[int, int], Cell]) -> bool:
    """True if *formula*, placed at *origin*, would take part in or read from a cycle.

    Depth-first walk over formula text. *origin* counts as visited from the
    start; reaching it again, or reaching any cell already on the current
    path, is a cycle. Cells whose whole closure was explored without finding
    one are not walked twice. Ranges are intersected with the stored cells,
    never expanded.
    """
    origin_key = a1_to_rowcol(origin)
    origin = rowcol_to_a1(*origin_key)
    path: set[str] = {origin}
    clean: set[str] = set()
    stack: list[tuple[str, Iterator[str]]] = [(origin, _reads(formula, origin_key, cells))]

    while stack:
        node, deps = stack[-1]
        for dep in deps:
            if dep in path:
                return True
            if dep in clean:
                continue
            dep_formula = _formula_at(dep, cells)
            if not dep_formula:
                clean.add(dep)
                continue
            path.add(dep)
            stack.append((dep, _reads(dep_formula, origin_key, cells)))
            break
        else:
            stack.pop()
            path.discard(node)
            clean.add(node)

    return False


class DependencyGraph:
    """Tracks formula cell dependencies for evaluation ordering.

    Cell references are plain "A1" labels. Single references are kept as
    edges; ranges are kept as rectangles and matched by containment, so a
    formula over ``A1:XFD1048576`` costs one entry. The graph is derived from
    formula text; build a fresh one with :meth:`from_cells` whenever the store
    changes.
    """

    __slots__ = ("dependencies", "dependents", "ranges", "formulas")

    def __init__(self) -> None:
        # cell -> set of single cells it reads from
        self.dependencies: dict[str, set[str]] = {}
        # cell -> set of cells that read from it (reverse edges)
        self.dependents: dict[str, set[str]] = {}
        # cell -> rectangles it reads, as (min_row, min_col, max_row, max_col)
        self.ranges: dict[str, list[tuple[int, int, int, int]]] = {}
        # cell -> formula string
        self.formulas: dict[str, str] = {}

    def add_formula(self, cell_ref: str, formula: str) -> None:
        """Register a formula cell and its dependencies."""
        self.formulas[cell_ref] = formula
        refs = dependencies(formula)

        self.dependencies[cell_ref] = refs

        for ref in refs:
            if ref not in self.dependents:
                self.dependents[ref] = set()
            self.dependents[ref].add(cell_ref)

        rects = range_dependencies(formula)
        if rects:
            self.ranges[cell_ref] = rects

    def readers(self, cell_ref: str) -> set[str]:
        """Formula cells that read *cell_ref* directly or through a range."""
        found = set(self.dependents.get(cell_ref, ()))
        if self.ranges:
            key = a1_to_rowcol(cell_ref)
            for reader, rects in self.ranges.items():
                if any(in_bounds(key, bounds) for bounds in rects):
                    found.add(reader)
        return found

    def topological_order(self, cells: set[str] | None = None) -> list[str]:
        """Return formula cells in evaluation order (Kahn's algorithm).

        When *cells* is given, only those formula cells (and the edges between
        them) are ordered. Raises ValueError if a circular reference is detected.
        """
        formula_cells = set(self.formulas) if cells is None else cells & set(self.formulas)
        if not formula_cells:
            return []

        in_degree: dict[str, int] = dict.fromkeys(formula_cells, 0)
        successors: dict[str, set[str]] = {cell: set() for cell in formula_cells}
        for cell in formula_cells:
            for reader in self.readers(cell):
                if reader in formula_cells:
                    successors[cell].add(reader)
                    in_degree[reader] += 1

        # Sorted start so the order is stable between runs
        queue: deque[str] = deque(sorted(c for c in formula_cells if in_degree[c] == 0))

        order: list[str] = []
        while queue:
            cell = queue.popleft()
            order.append(cell)
            for dep in sorted(successors[cell]):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if len(order) != len(formula_cells):
            missing = formula_cells - set(order)
            raise ValueError(f"Circular reference detected involving: {sorted(missing)}")

        return order

    def affected_cells(self, changed_cells: set[str]) -> set[str]:
        """All formula cells transitively reading from *changed_cells*.

        BFS on the reader relation; the changed cells themselves are not
        included. Terminates on cyclic graphs.
        """
        affected: set[str] = set()
        queue: deque[str] = deque(changed_cells)
        visited: set[str] = set(changed_cells)

        while queue:
            cell = queue.popleft()
            for dep in self.readers(cell):
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)
                    if dep in self.formulas:
                        affected.add(dep)

        return affected

    @classmethod
    def from_cells(cls, cells: Mapping[tuple[int, int], Cell]) -> DependencyGraph:
        """Build a dependency graph by scanning the store for formula cells."""
        graph = cls()
        for (row, col), cell in cells.items():
            if cell.formula:
                graph.add_formula(rowcol_to_a1(row, col), cell.formula)
        return graph
