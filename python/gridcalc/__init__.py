"""gridcalc - the formula engine behind a spreadsheet grid.

Usage::

    from gridcalc import Sheet

    sheet = Sheet()
    sheet["A1"] = "5"
    sheet["B1"] = "=A1+3"
    print(sheet["B1"].computed)  # 8

    sheet["A1"] = "10"
    print(sheet["B1"].computed)  # 13

The UI owns rendering and input; it calls the ``Sheet`` entry points and
reads back ``Cell.computed`` (or ``Cell.display``) for every visible cell.
"""

from gridcalc._cell import Cell, CellStyle
from gridcalc._sheet import (
    DEFAULT_COLUMN_WIDTH,
    DEFAULT_NUM_COLS,
    DEFAULT_NUM_ROWS,
    DEFAULT_ROW_HEIGHT,
    Clipboard,
    Sheet,
)
from gridcalc._utils import InvalidAddress, decode_address, encode_address
from gridcalc.calc import (
    CellDelta,
    CellError,
    DependencyGraph,
    FormulaEvaluator,
    FunctionRegistry,
    RecalcResult,
    dependencies,
    has_cycle,
    parse_formula,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Cell",
    "CellDelta",
    "CellError",
    "CellStyle",
    "Clipboard",
    "DEFAULT_COLUMN_WIDTH",
    "DEFAULT_NUM_COLS",
    "DEFAULT_NUM_ROWS",
    "DEFAULT_ROW_HEIGHT",
    "DependencyGraph",
    "FormulaEvaluator",
    "FunctionRegistry",
    "InvalidAddress",
    "RecalcResult",
    "Sheet",
    "decode_address",
    "dependencies",
    "encode_address",
    "has_cycle",
    "parse_formula",
]
