"""Formula parser: classification, argument splitting and reference extraction."""

from __future__ import annotations

import enum
import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any

from gridcalc._utils import a1_to_rowcol, rowcol_to_a1

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------

_CELL_REF = r"[A-Z]+[0-9]+"
_CELL_REF_RE = re.compile(_CELL_REF)
_REF_ONLY_RE = re.compile(rf"^{_CELL_REF}$")
_RANGE_ONLY_RE = re.compile(rf"^{_CELL_REF}:{_CELL_REF}$")
_RANGE_RE = re.compile(rf"({_CELL_REF}):({_CELL_REF})")

# Function head: SUM( ... name must start with a letter
_FUNC_HEAD_RE = re.compile(r"^([A-Z][A-Z0-9_.]*)\s*\(", re.IGNORECASE)

# Strings in formulas (to skip refs inside string literals)
_STRING_RE = re.compile(r'"[^"]*"')

# Decimal number literal: 5, -2.5, .5, 1e3 (no inf/nan, no underscores)
_NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$")
_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")


def _strip_strings(formula: str) -> str:
    """Remove string literals so refs inside quotes aren't matched."""
    return _STRING_RE.sub('""', formula)


def is_cell_ref(token: str) -> bool:
    return bool(_REF_ONLY_RE.match(token))


def is_range_ref(token: str) -> bool:
    return bool(_RANGE_ONLY_RE.match(token))


def parse_number(token: str) -> int | float | None:
    """Return the number spelled by *token*, or None if it isn't one.

    Numbers past the float range (including huge integers) are not numbers.
    """
    if not _NUMBER_RE.match(token):
        return None
    if _INT_RE.match(token):
        try:
            value = int(token)
        except ValueError:
            # more digits than int() will convert
            return None
        if abs(value) > sys.float_info.max:
            return None
        return value
    value = float(token)
    if not math.isfinite(value):
        return None
    return value


def coerce_literal(text: str) -> Any:
    """Computed value of non-formula text: number if numeric, else text.

    Empty text is an empty cell (None).
    """
    if text == "":
        return None
    num = parse_number(text)
    if num is not None:
        return num
    return text


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class FormulaKind(enum.Enum):
    LITERAL = "literal"
    REFERENCE = "reference"
    RANGE = "range"
    FUNCTION = "function"
    EXPRESSION = "expression"


@dataclass(frozen=True)
class ParsedFormula:
    """Result of :func:`parse_formula`.

    ``body`` is the text after ``=`` (or the literal text); ``name`` and
    ``args`` are only set for ``FUNCTION``.
    """

    kind: FormulaKind
    body: str
    name: str = ""
    args: tuple[str, ...] = field(default=())


def find_matching_paren(expr: str, start: int) -> int:
    """Index of the ``')'`` matching the ``'('`` at *expr[start]*, or -1."""
    depth = 1
    i = start + 1
    in_string = False
    while i < len(expr):
        ch = expr[i]
        if ch == '"':
            in_string = not in_string
        elif not in_string:
            if ch == '(':
                depth += 1
            elif ch == ')':
                depth -= 1
                if depth == 0:
                    return i
        i += 1
    return -1


def match_function_call(expr: str) -> tuple[str, str] | None:
    """If *expr* is exactly ``FUNC(balanced_args)``, return ``(NAME, args_str)``.

    Uses balanced parenthesis matching so ``SUM(A1:A5)*2`` is NOT matched
    (there's trailing content after the close-paren).
    """
    stripped = expr.strip()
    m = _FUNC_HEAD_RE.match(stripped)
    if not m:
        return None
    open_idx = m.end() - 1
    close_idx = find_matching_paren(stripped, open_idx)
    if close_idx >= 0 and close_idx == len(stripped) - 1:
        return (m.group(1).upper(), stripped[open_idx + 1 : close_idx])
    return None


def split_args(args_str: str) -> list[str]:
    """Split on commas at depth 0 (respecting strings); each arg trimmed."""
    args: list[str] = []
    depth = 0
    in_string = False
    current = ""
    for ch in args_str:
        if ch == '"':
            in_string = not in_string
            current += ch
        elif not in_string:
            if ch == '(':
                depth += 1
                current += ch
            elif ch == ')':
                depth -= 1
                current += ch
            elif ch == ',' and depth == 0:
                args.append(current.strip())
                current = ""
            else:
                current += ch
        else:
            current += ch
    if current.strip() or args:
        args.append(current.strip())
    return args


def parse_formula(text: str) -> ParsedFormula:
    """Classify cell text. Never raises; unrecognised formulas are EXPRESSION."""
    if not text.startswith("="):
        return ParsedFormula(FormulaKind.LITERAL, text)
    body = text[1:]
    token = body.strip()
    if is_cell_ref(token):
        return ParsedFormula(FormulaKind.REFERENCE, token)
    if is_range_ref(token):
        return ParsedFormula(FormulaKind.RANGE, token)
    func = match_function_call(token)
    if func:
        name, args_str = func
        return ParsedFormula(
            FormulaKind.FUNCTION, token, name=name, args=tuple(split_args(args_str))
        )
    return ParsedFormula(FormulaKind.EXPRESSION, body)


# ---------------------------------------------------------------------------
# Range expansion
# ---------------------------------------------------------------------------


def range_bounds(range_ref: str) -> tuple[int, int, int, int]:
    """``"B3:A1"`` -> ``(min_row, min_col, max_row, max_col)``, zero-based."""
    parts = range_ref.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid range: {range_ref!r}")
    start_row, start_col = a1_to_rowcol(parts[0].strip())
    end_row, end_col = a1_to_rowcol(parts[1].strip())
    return (
        min(start_row, end_row),
        min(start_col, end_col),
        max(start_row, end_row),
        max(start_col, end_col),
    )


def expand_range(range_ref: str) -> list[str]:
    """Expand ``"A1:B2"`` into ``["A1", "B1", "A2", "B2"]`` (row-major).

    Corners may be given in any order. Multi-letter columns are handled by
    the full column codec, so ``"Z1:AB1"`` is ``["Z1", "AA1", "AB1"]``.
    """
    r_min, c_min, r_max, c_max = range_bounds(range_ref)
    return [
        rowcol_to_a1(r, c)
        for r in range(r_min, r_max + 1)
        for c in range(c_min, c_max + 1)
    ]


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


def parse_references(formula: str) -> list[str]:
    """Every cell-reference token in *formula*, in order, without duplicates.

    Range corners are returned as plain references; string literals skipped.
    """
    refs: list[str] = []
    seen: set[str] = set()
    for m in _CELL_REF_RE.finditer(_strip_strings(formula)):
        ref = m.group(0)
        if ref not in seen:
            refs.append(ref)
            seen.add(ref)
    return refs


def parse_range_references(formula: str) -> list[str]:
    """All ``A1:B5`` range tokens in *formula*."""
    ranges: list[str] = []
    for m in _RANGE_RE.finditer(_strip_strings(formula)):
        rng = f"{m.group(1)}:{m.group(2)}"
        if rng not in ranges:
            ranges.append(rng)
    return ranges


def in_bounds(key: tuple[int, int], bounds: tuple[int, int, int, int]) -> bool:
    """True if zero-based *key* lies inside the :func:`range_bounds` rectangle."""
    r_min, c_min, r_max, c_max = bounds
    return r_min <= key[0] <= r_max and c_min <= key[1] <= c_max


def dependencies(formula: str) -> set[str]:
    """Canonical labels of the single cells *formula* reads.

    ``A01`` and ``A1`` both come back as ``"A1"``; labels that do not map to a
    cell (``A0``) are dropped. Range tokens contribute their corners only;
    the cells in between are described by :func:`range_dependencies`.
    """
    labels: set[str] = set()
    for ref in parse_references(formula):
        try:
            labels.add(rowcol_to_a1(*a1_to_rowcol(ref)))
        except ValueError:
            continue
    return labels


def range_dependencies(formula: str) -> list[tuple[int, int, int, int]]:
    """Rectangles (see :func:`range_bounds`) of every range *formula* reads.

    Ranges are never expanded here, so a huge range costs nothing until a
    caller intersects it with the cells that actually exist.
    """
    rects: list[tuple[int, int, int, int]] = []
    for rng in parse_range_references(formula):
        try:
            bounds = range_bounds(rng)
        except ValueError:
            # e.g. A0:A3
            continue
        if bounds not in rects:
            rects.append(bounds)
    return rects
