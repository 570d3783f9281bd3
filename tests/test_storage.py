"""Tests for document persistence."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
import yaml

from gamesheet.engine import DocumentEngine
from gamesheet.logging import set_project_dir
from gamesheet.storage import (
    DOCUMENT_FORMAT_VERSION,
    DocumentLoadError,
    document_to_dict,
    load_document,
    save_document,
)


@pytest.fixture
def engine() -> DocumentEngine:
    eng = DocumentEngine("Monsters", config={"default_rows": 3, "default_columns": 2})
    sid = eng.sheets[0].id
    eng.update_cell(sid, "row-1", "col-A", "Goblin")
    eng.update_cell(sid, "row-1", "col-B", 12)
    eng.update_cell(sid, "row-2", "col-A", True)
    eng.update_cell(sid, "row-2", "col-B", date(2024, 1, 2))
    eng.update_cell(sid, "row-3", "col-B", "=B1*2")
    eng.update_cell_style(sid, "row-1", "col-A", {"font_weight": "bold"})
    return eng


def _events(project_dir: Path) -> list[dict]:
    path = project_dir / "logs" / "events.ndjson"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestSave:
    def test_document_dict(self, engine: DocumentEngine) -> None:
        data = document_to_dict(engine)
        assert data["version"] == DOCUMENT_FORMAT_VERSION
        assert data["name"] == "Monsters"
        assert data["activeSheetId"] == engine.sheets[0].id
        sheet = data["sheets"][0]
        assert "createdAt" in sheet
        assert sheet["columns"][0]["id"] == "col-A"

    def test_save_clears_unsaved_flag(self, engine: DocumentEngine, tmp_path: Path) -> None:
        assert engine.has_unsaved_changes
        path = save_document(engine, tmp_path / "document.yaml")
        assert path.exists()
        assert not engine.has_unsaved_changes
        assert not (tmp_path / "document.yaml.tmp").exists()

    def test_save_creates_parent_dirs(self, engine: DocumentEngine, tmp_path: Path) -> None:
        path = save_document(engine, tmp_path / "nested" / "doc.yaml")
        assert yaml.safe_load(path.read_text())["name"] == "Monsters"

    def test_save_emits_event(self, engine: DocumentEngine, tmp_path: Path) -> None:
        set_project_dir(tmp_path)
        save_document(engine, tmp_path / "document.yaml")
        events = _events(tmp_path)
        assert events[-1]["event_type"] == "document_saved"
        assert events[-1]["context"]["sheets"] == 1


class TestLoad:
    def test_round_trip(self, engine: DocumentEngine, tmp_path: Path) -> None:
        engine.add_sheet("Items")
        engine.set_active_sheet(engine.sheets[0].id)
        path = save_document(engine, tmp_path / "document.yaml")

        loaded = load_document(path)
        assert loaded.name == "Monsters"
        assert [s.name for s in loaded.sheets] == ["Sheet1", "Items"]
        assert loaded.active_sheet_id == engine.sheets[0].id
        assert not loaded.has_unsaved_changes
        assert not loaded.can_undo()

        original, restored = engine.sheets[0], loaded.sheets[0]
        assert [c.id for c in restored.columns] == [c.id for c in original.columns]
        assert restored.get_cell("row-1", "col-A").value == "Goblin"
        assert restored.get_cell("row-1", "col-A").style.font_weight == "bold"
        assert restored.get_cell("row-1", "col-B").value == 12
        assert restored.get_cell("row-2", "col-A").value is True
        assert restored.get_cell("row-2", "col-B").value == date(2024, 1, 2)
        formula_cell = restored.get_cell("row-3", "col-B")
        assert formula_cell.formula == "=B1*2"
        assert formula_cell.value == 24

    def test_config_is_applied(self, engine: DocumentEngine, tmp_path: Path) -> None:
        path = save_document(engine, tmp_path / "document.yaml")
        loaded = load_document(path, {"history_limit": 5})
        assert loaded.history.limit == 5

    def test_unknown_active_sheet_falls_back(self, engine: DocumentEngine, tmp_path: Path) -> None:
        data = document_to_dict(engine)
        data["activeSheetId"] = "sheet-gone"
        path = tmp_path / "document.yaml"
        path.write_text(yaml.safe_dump(data))
        loaded = load_document(path)
        assert loaded.active_sheet_id == loaded.sheets[0].id

    def test_no_sheets_gives_default_sheet(self, tmp_path: Path) -> None:
        path = tmp_path / "document.yaml"
        path.write_text("version: 1\nname: Empty\nsheets: []\n")
        loaded = load_document(path)
        assert [s.name for s in loaded.sheets] == ["Sheet1"]


class TestLoadErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(DocumentLoadError):
            load_document(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "document.yaml"
        path.write_text("sheets: [unclosed\n")
        with pytest.raises(DocumentLoadError):
            load_document(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "document.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(DocumentLoadError, match="expected a mapping"):
            load_document(path)

    def test_wrong_version(self, tmp_path: Path) -> None:
        path = tmp_path / "document.yaml"
        path.write_text("version: 99\nsheets: []\n")
        with pytest.raises(DocumentLoadError, match="unsupported document version"):
            load_document(path)

    def test_invalid_sheet(self, tmp_path: Path) -> None:
        path = tmp_path / "document.yaml"
        path.write_text("version: 1\nsheets:\n  - name: NoId\n")
        with pytest.raises(DocumentLoadError):
            load_document(path)

    def test_failure_is_logged(self, tmp_path: Path) -> None:
        set_project_dir(tmp_path)
        with pytest.raises(DocumentLoadError):
            load_document(tmp_path / "nope.yaml")
        events = _events(tmp_path)
        assert events[-1]["level"] == "error"
        assert events[-1]["error_code"] == "document_load_failed"
