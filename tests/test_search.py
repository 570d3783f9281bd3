"""Tests for find and replace."""

from __future__ import annotations

from gamesheet.engine import DocumentEngine
from gamesheet.model import Cell
from gamesheet.search import (
    SearchOptions,
    build_pattern,
    cell_matches,
    cell_text,
    count_matches,
    replace_in_cell,
    search_in_sheet,
    search_in_sheets,
)


def _sheet(values: dict[tuple[str, str], object]):
    engine = DocumentEngine(config={"default_rows": 5, "default_columns": 3})
    sid = engine.sheets[0].id
    for (row_id, column_id), value in values.items():
        engine.update_cell(sid, row_id, column_id, value)
    return engine.get_sheet(sid)


def _cell(value, cell_type: str = "text") -> Cell:
    return Cell(row_id="r", column_id="c", value=value, type=cell_type)


# ────────────────────────────────────────────────────────────────
# Patterns
# ────────────────────────────────────────────────────────────────


class TestBuildPattern:
    def test_literal_text_is_escaped(self) -> None:
        pattern = build_pattern("1.5")
        assert pattern.search("1.5")
        assert not pattern.search("105")

    def test_case_folding(self) -> None:
        assert build_pattern("fire").search("FIRE")
        assert not build_pattern("fire", SearchOptions(match_case=True)).search("FIRE")

    def test_whole_cell(self) -> None:
        pattern = build_pattern("sword", SearchOptions(match_whole_cell=True))
        assert pattern.search("Sword")
        assert not pattern.search("Fire Sword")

    def test_regex(self) -> None:
        pattern = build_pattern(r"lv\d+", SearchOptions(use_regex=True))
        assert pattern.search("Goblin lv12")

    def test_invalid_regex_matches_literally(self) -> None:
        pattern = build_pattern("[boss", SearchOptions(use_regex=True))
        assert pattern.search("the [boss] room")


class TestCellText:
    def test_rendering(self) -> None:
        assert cell_text(None) == ""
        assert cell_text(True) == "true"
        assert cell_text(2.0) == "2"
        assert cell_text(2.5) == "2.5"
        assert cell_text("x") == "x"


# ────────────────────────────────────────────────────────────────
# Search
# ────────────────────────────────────────────────────────────────


class TestSearchInSheet:
    def test_row_major_order(self) -> None:
        sheet = _sheet({
            ("row-2", "col-A"): "Goblin",
            ("row-1", "col-C"): "goblin archer",
            ("row-1", "col-A"): "Hobgoblin",
        })
        results = search_in_sheet(sheet, "goblin")
        assert [r.cell_id for r in results] == ["row-1:col-A", "row-1:col-C", "row-2:col-A"]
        assert [(r.row_index, r.column_index) for r in results] == [(0, 0), (0, 2), (1, 0)]
        assert results[0].sheet_name == sheet.name

    def test_matched_text_is_the_substring(self) -> None:
        sheet = _sheet({("row-1", "col-A"): "Goblin King"})
        results = search_in_sheet(sheet, "gob")
        assert results[0].matched_text == "Gob"
        assert results[0].value == "Goblin King"

    def test_match_case(self) -> None:
        sheet = _sheet({("row-1", "col-A"): "Goblin"})
        assert search_in_sheet(sheet, "goblin", SearchOptions(match_case=True)) == []

    def test_numbers_are_searchable(self) -> None:
        sheet = _sheet({("row-3", "col-B"): 250})
        results = search_in_sheet(sheet, "25")
        assert [r.cell_id for r in results] == ["row-3:col-B"]

    def test_formulas_only_on_request(self) -> None:
        sheet = _sheet({("row-1", "col-A"): 2, ("row-1", "col-B"): "=A1*3"})
        assert search_in_sheet(sheet, "A1") == []

        results = search_in_sheet(sheet, "A1", SearchOptions(search_formulas=True))
        assert len(results) == 1
        assert results[0].source == "formula"
        assert results[0].formula == "=A1*3"

    def test_value_match_wins_over_formula(self) -> None:
        sheet = _sheet({("row-1", "col-A"): 6, ("row-1", "col-B"): "=A1"})
        results = search_in_sheet(sheet, "6", SearchOptions(search_formulas=True))
        sources = {r.cell_id: r.source for r in results}
        assert sources == {"row-1:col-A": "value", "row-1:col-B": "value"}

    def test_empty_query(self) -> None:
        sheet = _sheet({("row-1", "col-A"): "x"})
        assert search_in_sheet(sheet, "") == []

    def test_search_in_sheets(self) -> None:
        a = _sheet({("row-1", "col-A"): "slime"})
        b = _sheet({("row-2", "col-B"): "Slime King"})
        results = search_in_sheets([a, b], "slime")
        assert [r.sheet_id for r in results] == [a.id, b.id]


# ────────────────────────────────────────────────────────────────
# Replace
# ────────────────────────────────────────────────────────────────


class TestReplaceInCell:
    def test_literal_replace_all_occurrences(self) -> None:
        assert replace_in_cell(_cell("fire and FIRE"), "fire", "ice") == "ice and ice"

    def test_cell_is_not_modified(self) -> None:
        cell = _cell("fire")
        replace_in_cell(cell, "fire", "ice")
        assert cell.value == "fire"

    def test_whole_cell_only(self) -> None:
        opts = SearchOptions(match_whole_cell=True)
        assert replace_in_cell(_cell("fire sword"), "fire", "ice", opts) == "fire sword"
        assert replace_in_cell(_cell("fire"), "fire", "ice", opts) == "ice"

    def test_regex_groups(self) -> None:
        opts = SearchOptions(use_regex=True)
        assert replace_in_cell(_cell("lv12"), r"lv(\d+)", r"Level \1", opts) == "Level 12"

    def test_bad_template_inserted_literally(self) -> None:
        opts = SearchOptions(use_regex=True)
        assert replace_in_cell(_cell("abc"), "b", r"\9", opts) == r"a\9c"

    def test_literal_mode_ignores_backslashes(self) -> None:
        assert replace_in_cell(_cell("abc"), "b", r"\1") == r"a\1c"

    def test_number_cells_coerce_back(self) -> None:
        assert replace_in_cell(_cell(150, "number"), "5", "7") == 170
        assert replace_in_cell(_cell(1.5, "number"), "5", "25") == 1.25
        assert replace_in_cell(_cell(15, "number"), "5", "x") == "1x"

    def test_large_integers_keep_precision(self) -> None:
        result = replace_in_cell(_cell("id 12345678901234567891", "number"), "id ", "")
        assert result == 12345678901234567891
        assert isinstance(result, int)

    def test_boolean_cells_coerce_back(self) -> None:
        assert replace_in_cell(_cell(True, "boolean"), "true", "false") is False

    def test_empty_search_returns_value(self) -> None:
        assert replace_in_cell(_cell("x"), "", "y") == "x"


class TestMatchHelpers:
    def test_cell_matches(self) -> None:
        assert cell_matches(_cell("Dragon"), "drag")
        assert not cell_matches(_cell(None), "drag")
        assert not cell_matches(_cell("Dragon"), "")

    def test_count_matches_ignores_whole_cell(self) -> None:
        opts = SearchOptions(match_whole_cell=True)
        assert count_matches("aXbXc", "x", opts) == 2
        assert count_matches("abc", "") == 0
