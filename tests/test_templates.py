"""Tests for the game-data template system."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from gamesheet.engine import DocumentEngine
from gamesheet.template_engine import (
    DEFAULT_TEMPLATE_COLUMN_WIDTH,
    create_sheet_from_template,
    get_template,
    list_templates,
    load_template_file,
)
from gamesheet.validation import validate_sheet

BUNDLED = {
    "character", "dialogue", "enemy", "item", "level",
    "localization", "quest", "skill", "statProgression",
}


def _write_template(directory: Path, filename: str, data: Any) -> Path:
    path = directory / filename
    path.write_text(yaml.safe_dump(data))
    return path


def _minimal(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "type": "pet",
        "name": "Pet Data",
        "columns": [
            {"id": "id", "name": "ID", "validation": {"type": "required"}},
            {"id": "speed", "name": "Speed", "type": "number", "width": 80},
        ],
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestTemplateList:
    def test_bundled_templates(self) -> None:
        types = [t.type for t in list_templates()]
        assert set(types) == BUNDLED
        assert types == sorted(types)

    def test_summary(self) -> None:
        summary = get_template("enemy").summary()
        assert summary["name"] == "Enemy Data"
        assert summary["columns"] == 11
        assert summary["sample_rows"] == 1

    def test_custom_dir_skips_broken_files(self, tmp_path: Path) -> None:
        _write_template(tmp_path, "pet.yaml", _minimal())
        _write_template(tmp_path, "bad.yaml", {"type": "Bad Type", "columns": []})
        (tmp_path / "broken.yml").write_text("columns: [unclosed\n")
        (tmp_path / "notes.txt").write_text("not a template")
        assert [t.type for t in list_templates(tmp_path)] == ["pet"]

    def test_unknown_template(self) -> None:
        with pytest.raises(FileNotFoundError, match="not found"):
            get_template("spaceship")


class TestLoadTemplateFile:
    def test_loads(self, tmp_path: Path) -> None:
        tpl = load_template_file(_write_template(tmp_path, "pet.yaml", _minimal()))
        assert tpl.name == "Pet Data"
        assert tpl.columns[0].type == "text"
        assert tpl.columns[0].validation.type == "required"

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"type": "Pet"}, "'type' is required"),
            ({"type": None}, "'type' is required"),
            ({"columns": []}, "non-empty"),
            ({"columns": [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]}, "duplicate column"),
            ({"sample_data": [{"id": "p1", "colour": "red"}]}, "unknown column"),
            ({"columns": [{"id": "a", "name": "A", "type": "vector"}]}, "pet.yaml"),
        ],
    )
    def test_rejects(self, tmp_path: Path, overrides: dict, message: str) -> None:
        path = _write_template(tmp_path, "pet.yaml", _minimal(**overrides))
        with pytest.raises(ValueError, match=message):
            load_template_file(path)

    def test_rejects_non_mapping(self, tmp_path: Path) -> None:
        path = _write_template(tmp_path, "pet.yaml", ["a", "b"])
        with pytest.raises(ValueError, match="mapping"):
            load_template_file(path)


# ---------------------------------------------------------------------------
# Sheet creation
# ---------------------------------------------------------------------------


class TestCreateSheet:
    def test_sample_rows_then_blank_rows(self) -> None:
        sheet = create_sheet_from_template(get_template("enemy"), blank_rows=3)
        assert sheet.name == "Enemy Data"
        assert len(sheet.rows) == 4
        assert [r.id for r in sheet.rows] == ["row-0", "row-1", "row-2", "row-3"]
        assert sheet.get_cell("row-0", "name").value == "Goblin Scout"
        assert sheet.get_cell("row-0", "hp").value == 150
        assert sheet.get_cell("row-1", "name").value is None

    def test_no_sample_data_doubles_blank_rows(self) -> None:
        sheet = create_sheet_from_template(get_template("item"), blank_rows=3)
        assert len(sheet.rows) == 6

    def test_columns_carry_template_settings(self) -> None:
        sheet = create_sheet_from_template(get_template("item"), name="Loot", row_height=40)
        assert sheet.name == "Loot"
        first = sheet.columns[0]
        assert (first.id, first.name, first.width) == ("id", "ID", 120)
        assert first.validation.message == "ID is required"
        rarity = sheet.find_column("rarity")
        assert rarity.type == "select"
        assert "legendary" in rarity.options
        assert [c.index for c in sheet.columns] == list(range(len(sheet.columns)))
        assert all(r.height == 40 for r in sheet.rows)

    def test_default_column_width(self, tmp_path: Path) -> None:
        tpl = load_template_file(_write_template(tmp_path, "pet.yaml", _minimal()))
        sheet = create_sheet_from_template(tpl, blank_rows=1)
        assert sheet.columns[0].width == DEFAULT_TEMPLATE_COLUMN_WIDTH
        assert sheet.columns[1].width == 80

    def test_cells_take_column_type(self) -> None:
        sheet = create_sheet_from_template(get_template("enemy"), blank_rows=1)
        assert sheet.get_cell("row-1", "hp").type == "number"

    @pytest.mark.parametrize("template_type", sorted(BUNDLED))
    def test_sample_data_is_valid(self, template_type: str) -> None:
        sheet = create_sheet_from_template(get_template(template_type), blank_rows=0)
        assert validate_sheet(sheet).valid


class TestEngineTemplateSheets:
    def test_add_sheet_from_template(self) -> None:
        engine = DocumentEngine(config={"template_blank_rows": 2})
        sheet = engine.add_sheet(template="quest")
        assert sheet.name == "Quest Data"
        assert len(sheet.rows) == 4
        assert engine.active_sheet_id == sheet.id
        assert engine.undo()
        assert len(engine.sheets) == 1
