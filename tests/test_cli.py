"""Tests for the gamesheet command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import openpyxl
import pytest
from click.testing import CliRunner

from gamesheet.cli import main
from gamesheet.project import CONFIG_FILENAME, DOCUMENT_FILENAME
from gamesheet.storage import load_document, save_document


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path, runner: CliRunner) -> Path:
    root = tmp_path / "proj"
    root.mkdir()
    (root / CONFIG_FILENAME).write_text("default_rows: 3\ndefault_columns: 2\n")
    result = runner.invoke(main, ["new", str(root), "--name", "Bestiary"])
    assert result.exit_code == 0, result.output
    return root


def _set_cell(project: Path, row_id: str, column_id: str, value) -> None:
    path = project / DOCUMENT_FILENAME
    engine = load_document(path)
    engine.update_cell(engine.sheets[0].id, row_id, column_id, value)
    save_document(engine, path)


# ---------------------------------------------------------------------------
# new / templates
# ---------------------------------------------------------------------------


class TestNew:
    def test_creates_project(self, project: Path) -> None:
        engine = load_document(project / DOCUMENT_FILENAME)
        assert engine.name == "Bestiary"
        assert len(engine.sheets[0].rows) == 3

    def test_output(self, tmp_path: Path, runner: CliRunner) -> None:
        result = runner.invoke(main, ["new", str(tmp_path / "p")])
        assert result.exit_code == 0
        assert "Created project at" in result.output

    def test_refuses_existing(self, project: Path, runner: CliRunner) -> None:
        result = runner.invoke(main, ["new", str(project)])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_template(self, tmp_path: Path, runner: CliRunner) -> None:
        root = tmp_path / "quests"
        result = runner.invoke(main, ["new", str(root), "--name", "Quests", "--template", "quest"])
        assert result.exit_code == 0, result.output
        sheet = load_document(root / DOCUMENT_FILENAME).sheets[0]
        assert sheet.name == "Quests"
        assert sheet.columns[0].id == "id"

    def test_unknown_template(self, tmp_path: Path, runner: CliRunner) -> None:
        result = runner.invoke(main, ["new", str(tmp_path / "p"), "--template", "spaceship"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestTemplates:
    def test_list(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["templates", "list"])
        assert result.exit_code == 0
        assert "Enemy Data (11 columns)" in result.output

    def test_list_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["templates", "list", "--json"])
        data = json.loads(result.output)
        assert len(data) == 9
        assert {"type", "name", "description", "columns", "sample_rows"} <= set(data[0])

    def test_show(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["templates", "show", "item"])
        assert result.exit_code == 0
        assert "Template: Item Data (item)" in result.output
        assert "required" in result.output
        assert "options: weapon, armor" in result.output

    def test_show_unknown(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["templates", "show", "spaceship"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# import / export
# ---------------------------------------------------------------------------


class TestImport:
    def test_csv(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        src = tmp_path / "enemies.csv"
        src.write_text("name,hp\nGoblin,12\nOrc,30\n")
        result = runner.invoke(main, ["import", str(project), str(src)])
        assert result.exit_code == 0, result.output
        assert "Imported 'enemies': 2 rows, 2 columns" in result.output

        engine = load_document(project / DOCUMENT_FILENAME)
        assert [s.name for s in engine.sheets] == ["Bestiary", "enemies"]
        assert engine.active_sheet.name == "enemies"

    def test_csv_options(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        src = tmp_path / "raw.csv"
        src.write_text("a;1\nb;2\n")
        result = runner.invoke(main, ["import", str(project), str(src), "--no-header", "--delimiter", ";"])
        assert "2 rows, 2 columns" in result.output

    def test_xlsx_sheet(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        wb = openpyxl.Workbook()
        wb.active.title = "Skip"
        ws = wb.create_sheet("Loot")
        ws["A1"], ws["B1"], ws["A2"], ws["B2"] = "Item", "Price", "Potion", 10
        src = tmp_path / "loot.xlsx"
        wb.save(str(src))

        result = runner.invoke(main, ["import", str(project), str(src), "--sheet", "Loot"])
        assert result.exit_code == 0, result.output
        assert "Imported 'Loot': 1 rows, 2 columns" in result.output

    def test_failures(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        result = runner.invoke(main, ["import", str(project), str(notes)])
        assert result.exit_code == 1
        assert "Unsupported import format" in result.output

        empty = tmp_path / "empty.csv"
        empty.write_text("")
        result = runner.invoke(main, ["import", str(project), str(empty)])
        assert result.exit_code == 1
        assert "Import failed: CSV file is empty" in result.output

    def test_requires_project(self, runner: CliRunner, tmp_path: Path) -> None:
        src = tmp_path / "a.csv"
        src.write_text("a\n1\n")
        result = runner.invoke(main, ["import", str(tmp_path), str(src)])
        assert result.exit_code == 1
        assert "No document.yaml" in result.output


class TestExport:
    def test_csv(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        _set_cell(project, "row-1", "col-A", "Goblin")
        out = tmp_path / "out.csv"
        result = runner.invoke(main, ["export", str(project), str(out)])
        assert result.exit_code == 0, result.output
        assert "Exported 1 sheet(s)" in result.output
        assert out.read_text().splitlines()[:2] == ["A,B", "Goblin,"]

    def test_json_by_format_option(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        out = tmp_path / "out"
        result = runner.invoke(main, ["export", str(project), str(out), "--format", "json"])
        assert result.exit_code == 0, result.output
        assert len(json.loads(out.read_text())) == 3

    def test_xlsx_writes_every_sheet(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        src = tmp_path / "items.csv"
        src.write_text("name\nSword\n")
        runner.invoke(main, ["import", str(project), str(src)])

        out = tmp_path / "all.xlsx"
        result = runner.invoke(main, ["export", str(project), str(out)])
        assert "Exported 2 sheet(s)" in result.output
        assert openpyxl.load_workbook(out).sheetnames == ["Bestiary", "items"]

        one = tmp_path / "one.xlsx"
        runner.invoke(main, ["export", str(project), str(one), "--sheet", "Bestiary"])
        assert openpyxl.load_workbook(one).sheetnames == ["Bestiary"]

    def test_unknown_sheet(self, project: Path, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["export", str(project), str(tmp_path / "o.csv"), "--sheet", "Nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


# ---------------------------------------------------------------------------
# validate / search / events
# ---------------------------------------------------------------------------


class TestValidate:
    def test_ok(self, project: Path, runner: CliRunner) -> None:
        result = runner.invoke(main, ["validate", str(project)])
        assert result.exit_code == 0
        assert "Bestiary: OK (0 error(s), 0 warning(s))" in result.output

    def test_failures_exit_nonzero(self, tmp_path: Path, runner: CliRunner) -> None:
        root = tmp_path / "items"
        runner.invoke(main, ["new", str(root), "--template", "item"])
        result = runner.invoke(main, ["validate", str(root)])
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "ID is required" in result.output

    def test_json(self, project: Path, runner: CliRunner) -> None:
        result = runner.invoke(main, ["validate", str(project), "--json"])
        data = json.loads(result.output)
        assert data[0]["sheet"] == "Bestiary"
        assert data[0]["valid"] is True


class TestSearch:
    def test_matches(self, project: Path, runner: CliRunner) -> None:
        _set_cell(project, "row-2", "col-B", "Goblin King")
        result = runner.invoke(main, ["search", str(project), "goblin"])
        assert result.exit_code == 0
        assert "Bestiary!B2  Goblin King" in result.output
        assert "1 match(es)" in result.output

    def test_options(self, project: Path, runner: CliRunner) -> None:
        _set_cell(project, "row-1", "col-A", "Goblin")
        assert "No matches." in runner.invoke(main, ["search", str(project), "goblin", "--match-case"]).output
        assert "No matches." in runner.invoke(main, ["search", str(project), "gob", "--whole-cell"]).output
        regex = runner.invoke(main, ["search", str(project), "^G.*n$", "--regex", "--json"])
        assert [r["cell_id"] for r in json.loads(regex.output)] == ["row-1:col-A"]

    def test_formulas(self, project: Path, runner: CliRunner) -> None:
        _set_cell(project, "row-1", "col-A", 2)
        _set_cell(project, "row-1", "col-B", "=A1*10")
        result = runner.invoke(main, ["search", str(project), "A1", "--formulas"])
        assert "Bestiary!B1  =A1*10" in result.output


class TestEvents:
    def test_events(self, project: Path, runner: CliRunner) -> None:
        assert "No events found." in runner.invoke(main, ["events", str(project)]).output

        runner.invoke(main, ["validate", str(project)])
        result = runner.invoke(main, ["events", str(project), "--type", "validation_run"])
        assert "validation_run" in result.output
        assert "INFO" in result.output

        errors = runner.invoke(main, ["events", str(project), "--level", "error"])
        assert "No events found." in errors.output
