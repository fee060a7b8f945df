"""FormulaEvaluator: turns formula text plus a cell store into a computed value.

Function calls dispatch through a :class:`FunctionRegistry`. Anything that is
not a reference, a range or a single function call goes through the generic
fallback: referenced values are substituted into the text and the result is
evaluated by a small closed-grammar arithmetic evaluator (numbers, quoted
strings, ``+ - * /``, unary sign, parentheses). Formula text is never handed
to a general-purpose code evaluator.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from gridcalc._utils import a1_to_rowcol
from gridcalc.calc._functions import (
    CellError,
    FunctionRegistry,
    first_error,
    is_number,
    out_of_range,
)
from gridcalc.calc._parser import (
    FormulaKind,
    coerce_literal,
    find_matching_paren,
    is_cell_ref,
    is_range_ref,
    parse_formula,
    parse_number,
    parse_references,
    range_bounds,
)

if TYPE_CHECKING:
    from gridcalc._cell import Cell

    CellStore = Mapping[tuple[int, int], Cell]

logger = logging.getLogger(__name__)

# A quoted string (with "" escapes) or a cell reference, for one-pass substitution
_SUBST_RE = re.compile(r'"(?:[^"]|"")*"|[A-Z]+[0-9]+')
_STRING_LITERAL_RE = re.compile(r'^"((?:[^"]|"")*)"$')


# ---------------------------------------------------------------------------
# Closed-grammar arithmetic
# ---------------------------------------------------------------------------


def _find_top_level_split(expr: str) -> tuple[str, str, str] | None:
    """Find the rightmost lowest-precedence binary operator at paren depth 0.

    Precedence (lowest to highest)::

        1. additive       (+, -)
        2. multiplicative (*, /)

    Right-to-left scan produces correct left-to-right associativity.
    Returns ``(left, op, right)`` or ``None``.
    """
    length = len(expr)

    for ops in (('+', '-'), ('*', '/')):
        depth = 0
        in_string = False
        i = length - 1
        while i > 0:
            ch = expr[i]

            if ch == '"':
                in_string = not in_string
                i -= 1
                continue
            if in_string:
                i -= 1
                continue

            # Track parentheses (inverted for right-to-left)
            if ch == ')':
                depth += 1
                i -= 1
                continue
            if ch == '(':
                depth -= 1
                i -= 1
                continue

            if depth != 0 or ch not in ops:
                i -= 1
                continue

            # Binary only if preceded by an operand, not another operator
            j = i - 1
            while j >= 0 and expr[j] == ' ':
                j -= 1
            if j < 0 or expr[j] in ('(', '+', '-', '*', '/'):
                i -= 1
                continue
            # Skip +/- that are part of scientific notation (e.g. 2.5e-1)
            if ch in ('+', '-') and expr[j] in ('e', 'E') and j >= 1 and expr[j - 1].isdigit():
                i -= 1
                continue

            left = expr[:i].strip()
            right = expr[i + 1 :].strip()
            if left and right:
                return (left, ch, right)

            i -= 1

    return None


def _binary_op(left: Any, op: str, right: Any) -> Any:
    """Evaluate an arithmetic or string binary operation."""
    if op == '+' and isinstance(left, str) and isinstance(right, str):
        return left + right
    if not is_number(left) or not is_number(right):
        raise TypeError(f"unsupported operands for {op}: {left!r}, {right!r}")
    if op == '+':
        result = left + right
    elif op == '-':
        result = left - right
    elif op == '*':
        result = left * right
    else:
        # ZeroDivisionError propagates to the caller
        result = left / right
    if out_of_range(result):
        raise ArithmeticError(f"result out of range: {result}")
    return result


def eval_arithmetic(expr: str) -> Any:
    """Evaluate a literal-only expression. Raises on anything outside the grammar."""
    expr = expr.strip()
    if not expr:
        raise ValueError("empty expression")

    split = _find_top_level_split(expr)
    if split:
        left_str, op, right_str = split
        return _binary_op(eval_arithmetic(left_str), op, eval_arithmetic(right_str))

    if expr.startswith('('):
        close = find_matching_paren(expr, 0)
        if close == len(expr) - 1:
            return eval_arithmetic(expr[1:close])
        raise ValueError(f"unbalanced parentheses: {expr!r}")

    if expr.startswith('-'):
        val = eval_arithmetic(expr[1:])
        if not is_number(val):
            raise TypeError(f"bad operand for unary -: {val!r}")
        return -val
    if expr.startswith('+'):
        val = eval_arithmetic(expr[1:])
        if not is_number(val):
            raise TypeError(f"bad operand for unary +: {val!r}")
        return val

    num = parse_number(expr)
    if num is not None:
        return num

    m = _STRING_LITERAL_RE.match(expr)
    if m:
        return m.group(1).replace('""', '"')

    raise ValueError(f"unexpected token: {expr!r}")


def _literal(value: Any) -> str:
    """Spell a computed value as an expression literal."""
    if is_number(value):
        return repr(value)
    text = str(value).replace('"', '""')
    return f'"{text}"'


def values_differ(a: Any, b: Any, tolerance: float = 1e-10) -> bool:
    """Check if two computed values differ beyond tolerance."""
    if a is None and b is None:
        return False
    if a is None or b is None:
        return True
    if is_number(a) and is_number(b):
        return abs(float(a) - float(b)) > tolerance
    if type(a) is not type(b):
        return True
    return a != b


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Evaluates cell text against a cell store.

    Usage::

        evaluator = FormulaEvaluator()
        value = evaluator.evaluate("=SUM(A1:A3)", sheet_cells)

    ``evaluate`` never raises: failures come back as :class:`CellError`.
    """

    def __init__(self, registry: FunctionRegistry | None = None) -> None:
        self._functions = registry if registry is not None else FunctionRegistry()

    @property
    def functions(self) -> FunctionRegistry:
        return self._functions

    def evaluate(
        self,
        text: str,
        cells: CellStore,
        grid: tuple[int, int] | None = None,
    ) -> Any:
        """Computed value of *text*. Never raises.

        *grid* is ``(n_rows, n_cols)``; when given, range arguments stop at its
        edge instead of walking every address in the rectangle.
        """
        parsed = parse_formula(text)
        kind = parsed.kind

        if kind is FormulaKind.LITERAL:
            return coerce_literal(text)
        if kind is FormulaKind.REFERENCE:
            try:
                return self._resolve_cell_ref(parsed.body, cells)
            except ValueError:
                # row 0, e.g. "=A0"
                return CellError.REF
        if kind is FormulaKind.RANGE:
            # Ranges only mean something as function arguments
            return text
        if kind is FormulaKind.FUNCTION:
            return self._eval_function(parsed.name, list(parsed.args), cells, grid)
        return self._eval_expression(parsed.body, cells)

    # ------------------------------------------------------------------
    # Atom / argument resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_cell_ref(ref: str, cells: CellStore) -> Any:
        cell = cells.get(a1_to_rowcol(ref))
        return cell.computed if cell is not None else None

    @staticmethod
    def _resolve_range(
        range_ref: str, cells: CellStore, grid: tuple[int, int] | None
    ) -> list[Any]:
        """Row-major computed values of the rectangle, None for empty cells."""
        r_min, c_min, r_max, c_max = range_bounds(range_ref)
        if grid is not None:
            r_max = min(r_max, grid[0] - 1)
            c_max = min(c_max, grid[1] - 1)
        values: list[Any] = []
        for r in range(r_min, r_max + 1):
            for c in range(c_min, c_max + 1):
                cell = cells.get((r, c))
                values.append(cell.computed if cell is not None else None)
        return values

    def _resolve_arg(self, arg: str, cells: CellStore, grid: tuple[int, int] | None) -> Any:
        """Resolve one raw argument: range, reference, number, string, or raw text."""
        if is_range_ref(arg):
            return self._resolve_range(arg, cells, grid)
        if is_cell_ref(arg):
            return self._resolve_cell_ref(arg, cells)
        num = parse_number(arg)
        if num is not None:
            return num
        if len(arg) >= 2 and arg[0] == '"' and arg[-1] == '"':
            return arg[1:-1]
        return arg

    # ------------------------------------------------------------------
    # Function dispatch
    # ------------------------------------------------------------------

    def _eval_function(
        self,
        func_name: str,
        raw_args: list[str],
        cells: CellStore,
        grid: tuple[int, int] | None,
    ) -> Any:
        func = self._functions.get(func_name)
        if func is None:
            logger.debug("Unsupported function: %s", func_name)
            return CellError.unknown_function(func_name)
        try:
            args: list[Any] = []
            for raw in raw_args:
                value = self._resolve_arg(raw, cells, grid)
                if isinstance(value, list):
                    args.extend(value)
                else:
                    args.append(value)
            result = func(args)
        except Exception as e:
            logger.debug("Error evaluating %s: %s", func_name, e)
            return CellError.ERROR
        if out_of_range(result):
            return CellError.ERROR
        return result

    # ------------------------------------------------------------------
    # Generic fallback
    # ------------------------------------------------------------------

    def _eval_expression(self, body: str, cells: CellStore) -> Any:
        values: dict[str, Any] = {}
        for ref in parse_references(body):
            try:
                value = self._resolve_cell_ref(ref, cells)
            except ValueError:
                return CellError.REF
            if value is None:
                return CellError.REF
            values[ref] = value

        err = first_error(*values.values())
        if err is not None:
            return err

        def _substitute(m: re.Match[str]) -> str:
            token = m.group(0)
            if token.startswith('"'):
                return token
            return _literal(values[token])

        try:
            return eval_arithmetic(_SUBST_RE.sub(_substitute, body))
        except Exception as e:
            logger.debug("Cannot evaluate expression %r: %s", body, e)
            return CellError.ERROR
