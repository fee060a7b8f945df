"""gridcalc.calc - Formula evaluation engine for gridcalc sheets."""

from gridcalc.calc._evaluator import FormulaEvaluator, eval_arithmetic
from gridcalc.calc._functions import (
    FUNCTION_CATALOG,
    CellError,
    FunctionInfo,
    FunctionRegistry,
    is_error,
    is_supported,
)
from gridcalc.calc._graph import DependencyGraph, has_cycle
from gridcalc.calc._parser import (
    FormulaKind,
    ParsedFormula,
    dependencies,
    expand_range,
    parse_formula,
    range_dependencies,
    split_args,
)
from gridcalc.calc._protocol import CalcEngine, CellDelta, RecalcResult

__all__ = [
    "CalcEngine",
    "CellDelta",
    "CellError",
    "DependencyGraph",
    "FUNCTION_CATALOG",
    "FormulaEvaluator",
    "FormulaKind",
    "FunctionInfo",
    "FunctionRegistry",
    "ParsedFormula",
    "RecalcResult",
    "dependencies",
    "eval_arithmetic",
    "expand_range",
    "has_cycle",
    "is_error",
    "is_supported",
    "parse_formula",
    "range_dependencies",
    "split_args",
]
