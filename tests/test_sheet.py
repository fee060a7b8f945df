"""Tests for Sheet cell writes, propagation and recalculation."""

from __future__ import annotations

import time
from typing import Any

import pytest

from gridcalc import CellStyle, FunctionRegistry, InvalidAddress, Sheet
from gridcalc.calc import CalcEngine, RecalcResult


@pytest.fixture
def sheet() -> Sheet:
    return Sheet()


class TestSetCellText:
    def test_number_literal(self, sheet: Sheet) -> None:
        sheet.set_cell_text("A1", "5")
        cell = sheet.get_cell("A1")
        assert cell.raw_text == "5"
        assert cell.formula == ""
        assert cell.computed == 5

    def test_text_literal(self, sheet: Sheet) -> None:
        sheet.set_cell_text("A1", "hello")
        assert sheet.get_cell("A1").computed == "hello"

    def test_empty_text(self, sheet: Sheet) -> None:
        sheet.set_cell_text("A1", "")
        assert sheet.get_cell("A1").computed is None

    def test_formula_stored(self, sheet: Sheet) -> None:
        sheet.set_cell_text("A1", "5")
        sheet.set_cell_text("B1", "=A1+3")
        cell = sheet.get_cell("B1")
        assert cell.formula == "=A1+3"
        assert cell.is_formula
        assert cell.computed == 8

    def test_non_str_rejected(self, sheet: Sheet) -> None:
        with pytest.raises(TypeError):
            sheet.set_cell_text("A1", 5)  # type: ignore[arg-type]

    @pytest.mark.parametrize("address", ["a1", "1A", "A0", ""])
    def test_invalid_address(self, sheet: Sheet, address: str) -> None:
        with pytest.raises(InvalidAddress):
            sheet.set_cell_text(address, "x")

    def test_default_cell_not_stored(self, sheet: Sheet) -> None:
        cell = sheet.get_cell("Z9")
        assert cell.raw_text == ""
        assert cell.computed is None
        assert cell.style == CellStyle()
        assert "Z9" not in sheet
        assert sheet.cell_count == 0

    def test_item_access(self, sheet: Sheet) -> None:
        sheet["A1"] = "2"
        sheet["A2"] = "=A1*3"
        assert sheet["A2"].computed == 6

    def test_display(self, sheet: Sheet) -> None:
        sheet["A1"] = "=4/2"
        assert sheet["A1"].computed == 2.0
        assert sheet["A1"].display == "2"

    def test_iter_cells_row_major(self, sheet: Sheet) -> None:
        sheet["B2"] = "4"
        sheet["A2"] = "3"
        sheet["B1"] = "2"
        assert [label for label, _ in sheet.iter_cells()] == ["B1", "A2", "B2"]


class TestPropagation:
    def test_direct_dependent(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A1+3"
        sheet["A1"] = "10"
        assert sheet["B1"].computed == 13

    def test_chain(self, sheet: Sheet) -> None:
        sheet["A1"] = "1"
        sheet["B1"] = "=A1+1"
        sheet["C1"] = "=B1*2"
        assert sheet["C1"].computed == 4
        sheet["A1"] = "5"
        assert sheet["B1"].computed == 6
        assert sheet["C1"].computed == 12

    def test_diamond(self, sheet: Sheet) -> None:
        sheet["A1"] = "2"
        sheet["B1"] = "=A1*2"
        sheet["C1"] = "=A1+1"
        sheet["D1"] = "=B1+C1"
        assert sheet["D1"].computed == 7
        sheet["A1"] = "3"
        assert sheet["D1"].computed == 10

    def test_each_affected_cell_evaluated_once(self) -> None:
        calls: list[Any] = []

        def tally(args: list[Any]) -> Any:
            calls.append(args)
            return sum(args)

        reg = FunctionRegistry()
        reg.register("TALLY", tally)
        sheet = Sheet(registry=reg)
        sheet["A1"] = "1"
        sheet["B1"] = "=A1+1"
        sheet["C1"] = "=A1+2"
        sheet["D1"] = "=TALLY(B1, C1)"
        calls.clear()

        sheet["A1"] = "5"
        assert len(calls) == 1
        assert sheet["D1"].computed == 13

    def test_sum_range_follows_member_edit(self, sheet: Sheet) -> None:
        sheet["A1"] = "1"
        sheet["A2"] = "2"
        sheet["A3"] = "3"
        sheet["B1"] = "=SUM(A1:A3)"
        assert sheet["B1"].computed == 6
        sheet["A2"] = "10"
        assert sheet["B1"].computed == 14

    def test_zero_padded_reference_follows_edit(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A01+1"
        assert sheet["B1"].computed == 6
        sheet["A1"] = "10"
        assert sheet["B1"].computed == 11

    def test_zero_padded_range_corner_follows_edit(self, sheet: Sheet) -> None:
        sheet["B1"] = "=SUM(A01:A03)"
        sheet["A2"] = "4"
        assert sheet["B1"].computed == 4

    def test_formula_written_before_inputs(self, sheet: Sheet) -> None:
        sheet["B1"] = "=A1+3"
        assert sheet["B1"].computed == "#REF!"
        sheet["A1"] = "5"
        assert sheet["B1"].computed == 8

    def test_direct_reference_to_empty(self, sheet: Sheet) -> None:
        sheet["B1"] = "=A1"
        assert sheet["B1"].computed is None

    def test_unknown_function(self, sheet: Sheet) -> None:
        sheet["A1"] = "1"
        sheet["B1"] = "=FOO(A1)"
        assert sheet["B1"].computed == "#ERROR: Unknown function FOO"

    def test_error_flows_downstream(self, sheet: Sheet) -> None:
        sheet["A1"] = "=1/0"
        sheet["B1"] = "=A1+1"
        assert sheet["A1"].computed == "#ERROR"
        assert sheet["B1"].computed == "#ERROR"

    def test_clear_cell_refreshes_dependents(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A1+1"
        sheet.clear_cell("A1")
        assert "A1" not in sheet
        assert sheet["B1"].computed == "#REF!"

    def test_custom_function(self) -> None:
        reg = FunctionRegistry()
        reg.register("DOUBLE", lambda args: args[0] * 2)
        sheet = Sheet(registry=reg)
        sheet["A1"] = "4"
        sheet["B1"] = "=DOUBLE(A1)"
        assert sheet["B1"].computed == 8
        assert sheet.functions is reg

    def test_raising_function(self) -> None:
        def boom(args: list[Any]) -> Any:
            raise RuntimeError("boom")

        reg = FunctionRegistry()
        reg.register("BOOM", boom)
        sheet = Sheet(registry=reg)
        sheet["A1"] = "=BOOM(1)"
        assert sheet["A1"].computed == "#ERROR"


class TestCircularReferences:
    def test_self_reference(self, sheet: Sheet) -> None:
        sheet["A1"] = "=A1+1"
        assert sheet["A1"].computed == "#CIRCULAR!"

    def test_two_cell_cycle(self, sheet: Sheet) -> None:
        sheet["A1"] = "=B1"
        sheet["B1"] = "=A1"
        assert sheet["A1"].computed == "#CIRCULAR!"
        assert sheet["B1"].computed == "#CIRCULAR!"

    def test_breaking_cycle_restores_values(self, sheet: Sheet) -> None:
        sheet["A1"] = "=B1"
        sheet["B1"] = "=A1"
        sheet["B1"] = "7"
        assert sheet["B1"].computed == 7
        assert sheet["A1"].computed == 7

    def test_reader_of_cycle(self, sheet: Sheet) -> None:
        sheet["A1"] = "=B1"
        sheet["C1"] = "=A1*2"
        sheet["B1"] = "=A1"
        assert sheet["C1"].computed == "#CIRCULAR!"

    def test_cycle_through_range(self, sheet: Sheet) -> None:
        sheet["A1"] = "1"
        sheet["A3"] = "=SUM(A1:A2)"
        sheet["A2"] = "=A3"
        assert sheet["A2"].computed == "#CIRCULAR!"
        assert sheet["A3"].computed == "#CIRCULAR!"


class TestLargeNumbers:
    def test_long_digit_literal_stays_text(self, sheet: Sheet) -> None:
        digits = "1" + "0" * 5000
        sheet["A1"] = digits
        assert sheet["A1"].computed == digits
        sheet["B1"] = "=A1+1"
        assert sheet["B1"].computed == "#ERROR"

    def test_product_past_float_range(self, sheet: Sheet) -> None:
        sheet["A1"] = "9" * 300
        sheet["B1"] = "=A1*A1"
        sheet["C1"] = "=B1+1"
        assert sheet["A1"].computed == int("9" * 300)
        assert sheet["B1"].computed == "#ERROR"
        assert sheet["C1"].computed == "#ERROR"

    def test_product_of_long_literals(self, sheet: Sheet) -> None:
        sheet["A1"] = "9" * 2200
        sheet["B1"] = "=A1*A1"
        sheet["C1"] = "=B1+1"
        assert sheet["C1"].computed == "#ERROR"
        assert sheet.recalculate().changed_cells == 0


class TestLargeRanges:
    def test_range_past_grid_is_quick(self, sheet: Sheet) -> None:
        start = time.perf_counter()
        sheet["A1"] = "=COUNT(A2:ZZ5000)"
        sheet["A3"] = "5"
        sheet["Z99"] = "7"
        sheet.recalculate()
        assert time.perf_counter() - start < 2.0
        assert sheet["A1"].computed == 2

    def test_whole_sheet_range_follows_edits(self, sheet: Sheet) -> None:
        sheet["A1"] = "=SUM(B1:XFD1048576)"
        sheet["C50"] = "4"
        sheet["B2"] = "=C50*2"
        assert sheet["A1"].computed == 12
        sheet["C50"] = "1"
        assert sheet["A1"].computed == 3

    def test_cycle_inside_whole_sheet_range(self, sheet: Sheet) -> None:
        sheet["A1"] = "=SUM(A2:XFD1048576)"
        sheet["D9"] = "=A1"
        assert sheet["D9"].computed == "#CIRCULAR!"
        assert sheet["A1"].computed == "#CIRCULAR!"


class TestRecalculate:
    def test_settled_sheet_has_no_deltas(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A1+3"
        result = sheet.recalculate()
        assert isinstance(result, RecalcResult)
        assert result.changed_cells == 0
        assert result.total_formula_cells == 1
        assert result.change_ratio == 0.0

    def test_stale_values_after_insert_row(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A1+3"
        sheet.insert_row(0)
        assert sheet["B2"].computed == 8

        result = sheet.recalculate()
        assert result.changed_cells == 1
        delta = result.deltas[0]
        assert delta.cell_ref == "B2"
        assert delta.old_value == 8
        assert delta.new_value == "#REF!"
        assert delta.formula == "=A1+3"
        assert sheet["B2"].computed == "#REF!"

    def test_circular_cells_reported(self, sheet: Sheet) -> None:
        sheet["A1"] = "=B1"
        sheet["B1"] = "=A1"
        result = sheet.recalculate()
        assert result.circular_cells == ("A1", "B1")
        assert result.changed_cells == 0

    def test_sheet_is_calc_engine(self, sheet: Sheet) -> None:
        assert isinstance(sheet, CalcEngine)


class TestStyle:
    def test_merge(self, sheet: Sheet) -> None:
        sheet.set_cell_style("A1", bold=True)
        sheet.set_cell_style("A1", {"italic": True, "font_size": 14})
        style = sheet["A1"].style
        assert style.bold
        assert style.italic
        assert style.font_size == 14
        assert style.color == "#000000"

    def test_style_does_not_touch_value(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet.set_cell_style("A1", background_color="#ffff00")
        assert sheet["A1"].computed == 5
        assert sheet["A1"].raw_text == "5"

    def test_invalid_alignment(self, sheet: Sheet) -> None:
        with pytest.raises(ValueError):
            sheet.set_cell_style("A1", text_align="justify")

    def test_unknown_attribute(self, sheet: Sheet) -> None:
        with pytest.raises(TypeError):
            sheet.set_cell_style("A1", underline=True)


class TestFormulaBar:
    def test_select_cell_loads_formula(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet["B1"] = "=A1+3"
        sheet.select_cell("B1")
        assert sheet.selected_cell == "B1"
        assert sheet.selection == ["B1"]
        assert sheet.active_formula == "=A1+3"

    def test_literal_cell_has_empty_formula(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet.select_cell("A1")
        assert sheet.active_formula == ""

    def test_apply_active_formula(self, sheet: Sheet) -> None:
        sheet["A1"] = "5"
        sheet.select_cell("B1")
        sheet.set_active_formula("=A1*2")
        sheet.apply_active_formula()
        assert sheet["B1"].computed == 10

    def test_apply_without_selection(self, sheet: Sheet) -> None:
        sheet.set_active_formula("=1+1")
        sheet.apply_active_formula()
        assert sheet.cell_count == 0
