"""Error values, function catalog and builtin implementations."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from typing import Any, Callable


# ---------------------------------------------------------------------------
# CellError: in-band error values stored as a cell's computed value
# ---------------------------------------------------------------------------


class CellError:
    """Error value that a formula evaluates to instead of raising.

    Use ``CellError.of(code)`` to get a cached singleton for each code.
    Errors compare equal to their string code, so
    ``cell.computed == "#REF!"`` holds for a ``#REF!`` result.
    """

    __slots__ = ("code",)
    _cache: dict[str, CellError] = {}

    CIRCULAR: CellError
    REF: CellError
    ERROR: CellError

    def __init__(self, code: str) -> None:
        self.code = code

    @classmethod
    def of(cls, code: str) -> CellError:
        if code not in cls._cache:
            cls._cache[code] = cls(code)
        return cls._cache[code]

    @classmethod
    def unknown_function(cls, name: str) -> CellError:
        # names come from formula text, so these are not cached
        return cls(f"#ERROR: Unknown function {name}")

    def __repr__(self) -> str:
        return self.code

    def __str__(self) -> str:
        return self.code

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CellError):
            return self.code == other.code
        if isinstance(other, str):
            return self.code == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.code)


# Singletons
CellError.CIRCULAR = CellError.of("#CIRCULAR!")
CellError.REF = CellError.of("#REF!")
CellError.ERROR = CellError.of("#ERROR")


def is_error(val: Any) -> bool:
    """Return True if *val* is a CellError instance."""
    return isinstance(val, CellError)


def first_error(*values: Any) -> CellError | None:
    """Return the first CellError found in *values*, or None."""
    for v in values:
        if isinstance(v, CellError):
            return v
    return None


def is_number(val: Any) -> bool:
    # bool is an int subclass but never a spreadsheet number here
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def out_of_range(val: Any) -> bool:
    """True for a number no float can hold: inf, nan, or an int past the float range."""
    if isinstance(val, float):
        return not math.isfinite(val)
    if is_number(val):
        return abs(val) > sys.float_info.max
    return False


def format_value(val: Any) -> str:
    """Render a computed value as display text."""
    if val is None:
        return ""
    if isinstance(val, float) and val.is_integer() and abs(val) < 1e15:
        return str(int(val))
    return str(val)


# ---------------------------------------------------------------------------
# Catalog: what each builtin does, for the function help panel.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionInfo:
    category: str
    syntax: str
    description: str
    example: str


FUNCTION_CATALOG: dict[str, FunctionInfo] = {
    "SUM": FunctionInfo(
        "math",
        "=SUM(number1, [number2], ...)",
        "Adds all the numbers in a range of cells.",
        "=SUM(A1:A5) or =SUM(A1, B1, C1)",
    ),
    "AVERAGE": FunctionInfo(
        "statistical",
        "=AVERAGE(number1, [number2], ...)",
        "Returns the average (arithmetic mean) of the arguments.",
        "=AVERAGE(A1:A5) or =AVERAGE(A1, B1, C1)",
    ),
    "MAX": FunctionInfo(
        "statistical",
        "=MAX(number1, [number2], ...)",
        "Returns the maximum value in a list of arguments.",
        "=MAX(A1:A5) or =MAX(A1, B1, C1)",
    ),
    "MIN": FunctionInfo(
        "statistical",
        "=MIN(number1, [number2], ...)",
        "Returns the minimum value in a list of arguments.",
        "=MIN(A1:A5) or =MIN(A1, B1, C1)",
    ),
    "COUNT": FunctionInfo(
        "statistical",
        "=COUNT(value1, [value2], ...)",
        "Counts the number of cells that contain numbers.",
        "=COUNT(A1:A5) or =COUNT(A1, B1, C1)",
    ),
    "TRIM": FunctionInfo(
        "text",
        "=TRIM(text)",
        "Removes leading and trailing spaces from text.",
        "=TRIM(A1)",
    ),
    "UPPER": FunctionInfo(
        "text",
        "=UPPER(text)",
        "Converts text to uppercase.",
        "=UPPER(A1)",
    ),
    "LOWER": FunctionInfo(
        "text",
        "=LOWER(text)",
        "Converts text to lowercase.",
        "=LOWER(A1)",
    ),
}


def is_supported(func_name: str) -> bool:
    """Check if a function name is one of the builtins."""
    return func_name.upper() in FUNCTION_CATALOG


# ---------------------------------------------------------------------------
# Builtin implementations - pure Python, no external deps.
# Each takes the flattened list of resolved argument values.
# ---------------------------------------------------------------------------


def _coerce_numeric(values: list[Any]) -> list[int | float]:
    """Keep only numbers. None, text and CellError values are dropped."""
    return [v for v in values if is_number(v)]


def _coerce_string(val: Any) -> str:
    if val is None:
        return ""
    return format_value(val)


def _first_text(args: list[Any]) -> str:
    if not args:
        return ""
    return _coerce_string(args[0])


def _builtin_sum(args: list[Any]) -> int | float:
    return sum(_coerce_numeric(args))


def _builtin_average(args: list[Any]) -> int | float:
    nums = _coerce_numeric(args)
    if not nums:
        return 0
    return sum(nums) / len(nums)


def _builtin_max(args: list[Any]) -> int | float | None:
    nums = _coerce_numeric(args)
    if not nums:
        return None
    return max(nums)


def _builtin_min(args: list[Any]) -> int | float | None:
    nums = _coerce_numeric(args)
    if not nums:
        return None
    return min(nums)


def _builtin_count(args: list[Any]) -> int:
    """COUNT - counts numeric values only."""
    return len(_coerce_numeric(args))


def _builtin_trim(args: list[Any]) -> str:
    return _first_text(args).strip()


def _builtin_upper(args: list[Any]) -> str:
    return _first_text(args).upper()


def _builtin_lower(args: list[Any]) -> str:
    return _first_text(args).lower()


_BUILTINS: dict[str, Callable[[list[Any]], Any]] = {
    "SUM": _builtin_sum,
    "AVERAGE": _builtin_average,
    "MAX": _builtin_max,
    "MIN": _builtin_min,
    "COUNT": _builtin_count,
    "TRIM": _builtin_trim,
    "UPPER": _builtin_upper,
    "LOWER": _builtin_lower,
}


class FunctionRegistry:
    """Registry of callable function implementations.

    Starts with builtins and can be extended with custom functions. A
    function receives the flattened list of resolved arguments and returns
    a number, text, ``None`` or a :class:`CellError`.
    """

    def __init__(self) -> None:
        self._functions: dict[str, Callable[[list[Any]], Any]] = dict(_BUILTINS)

    def register(self, name: str, func: Callable[[list[Any]], Any]) -> None:
        self._functions[name.upper()] = func

    def unregister(self, name: str) -> None:
        self._functions.pop(name.upper(), None)

    def get(self, name: str) -> Callable[[list[Any]], Any] | None:
        return self._functions.get(name.upper())

    def has(self, name: str) -> bool:
        return name.upper() in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions.keys())
