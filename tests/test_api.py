"""Tests for the FastAPI routes."""

from __future__ import annotations

import io
from pathlib import Path

import openpyxl
import pytest
from fastapi.testclient import TestClient

from gamesheet.api.server import create_app
from gamesheet.project import CONFIG_FILENAME, DOCUMENT_FILENAME, scaffold_project
from gamesheet.storage import load_document


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    root.mkdir()
    (root / CONFIG_FILENAME).write_text("default_rows: 3\ndefault_columns: 2\n")
    return scaffold_project(root, name="Bestiary")


@pytest.fixture
def client(project: Path) -> TestClient:
    return TestClient(create_app(project))


@pytest.fixture
def sheet_id(client: TestClient) -> str:
    return client.get("/api/sheets").json()[0]["id"]


def _set(client: TestClient, sheet_id: str, row_id: str, column_id: str, value) -> dict:
    resp = client.post(
        f"/api/sheets/{sheet_id}/cells",
        json={"row_id": row_id, "column_id": column_id, "value": value},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _cell_value(client: TestClient, sheet_id: str, row: int, column_id: str):
    sheet = client.get(f"/api/sheets/{sheet_id}").json()
    return sheet["rows"][row]["cells"][column_id].get("value")


# ────────────────────────────────────────────────────────────────
# Document
# ────────────────────────────────────────────────────────────────


class TestDocument:
    def test_status(self, client: TestClient, sheet_id: str) -> None:
        status = client.get("/api/status").json()
        assert status == {
            "name": "Bestiary",
            "sheets": 1,
            "activeSheetId": sheet_id,
            "canUndo": False,
            "canRedo": False,
            "unsaved": False,
        }

    def test_undo_redo(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Goblin")
        assert client.get("/api/status").json()["canUndo"]

        undone = client.post("/api/undo").json()
        assert undone["applied"] is True
        assert undone["canRedo"] is True
        assert _cell_value(client, sheet_id, 0, "col-A") is None

        assert client.post("/api/redo").json()["applied"] is True
        assert _cell_value(client, sheet_id, 0, "col-A") == "Goblin"
        assert client.post("/api/redo").json()["applied"] is False

    def test_save(self, client: TestClient, sheet_id: str, project: Path) -> None:
        _set(client, sheet_id, "row-2", "col-B", 42)
        assert client.get("/api/status").json()["unsaved"]
        resp = client.post("/api/save")
        assert resp.status_code == 200
        assert resp.json()["unsaved"] is False

        engine = load_document(project / DOCUMENT_FILENAME)
        assert engine.sheets[0].get_cell("row-2", "col-B").value == 42

    def test_save_without_project(self) -> None:
        client = TestClient(create_app(None))
        assert client.post("/api/save").status_code == 400

    def test_templates(self, client: TestClient) -> None:
        templates = client.get("/api/templates").json()
        enemy = next(t for t in templates if t["type"] == "enemy")
        assert enemy["name"] == "Enemy Data"
        assert enemy["sample_rows"] == 1


# ────────────────────────────────────────────────────────────────
# Sheets
# ────────────────────────────────────────────────────────────────


class TestSheets:
    def test_get_sheet(self, client: TestClient, sheet_id: str) -> None:
        sheet = client.get(f"/api/sheets/{sheet_id}").json()
        assert sheet["name"] == "Bestiary"
        assert [c["id"] for c in sheet["columns"]] == ["col-A", "col-B"]
        assert "createdAt" in sheet
        assert client.get("/api/sheets/sheet-missing").status_code == 404

    def test_add_sheet(self, client: TestClient) -> None:
        resp = client.post("/api/sheets", json={"name": "Items"})
        assert resp.json()["name"] == "Items"
        assert resp.json()["rows"] == 3

        tpl = client.post("/api/sheets", json={"template": "enemy"}).json()
        assert tpl["name"] == "Enemy Data"
        assert client.get("/api/status").json()["activeSheetId"] == tpl["id"]

        assert client.post("/api/sheets", json={"template": "spaceship"}).status_code == 400

    def test_rename(self, client: TestClient, sheet_id: str) -> None:
        resp = client.patch(f"/api/sheets/{sheet_id}", json={"name": "Monsters"})
        assert resp.json()["name"] == "Monsters"
        assert client.patch(f"/api/sheets/{sheet_id}", json={"name": "  "}).status_code == 400

    def test_duplicate_and_delete(self, client: TestClient, sheet_id: str) -> None:
        assert client.delete(f"/api/sheets/{sheet_id}").status_code == 400

        copy = client.post(f"/api/sheets/{sheet_id}/duplicate").json()
        assert copy["name"] == "Bestiary (Copy)"
        resp = client.delete(f"/api/sheets/{copy['id']}")
        assert resp.status_code == 200
        assert resp.json()["sheets"] == 1

    def test_activate(self, client: TestClient, sheet_id: str) -> None:
        client.post("/api/sheets", json={"name": "Items"})
        status = client.post(f"/api/sheets/{sheet_id}/activate").json()
        assert status["activeSheetId"] == sheet_id

    def test_sort(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Orc")
        _set(client, sheet_id, "row-2", "col-A", "Goblin")
        sheet = client.post(
            f"/api/sheets/{sheet_id}/sort", json={"column_id": "col-A", "direction": "asc"}
        ).json()
        assert [r["id"] for r in sheet["rows"]] == ["row-2", "row-1", "row-3"]

        bad = client.post(f"/api/sheets/{sheet_id}/sort", json={"column_id": "col-A", "direction": "up"})
        assert bad.status_code == 422
        missing = client.post(f"/api/sheets/{sheet_id}/sort", json={"column_id": "col-Z"})
        assert missing.status_code == 404


# ────────────────────────────────────────────────────────────────
# Cells, rows, columns
# ────────────────────────────────────────────────────────────────


class TestCells:
    def test_update_cell(self, client: TestClient, sheet_id: str) -> None:
        cell = _set(client, sheet_id, "row-1", "col-A", "Goblin")
        assert cell["id"] == "row-1:col-A"
        assert cell["rowId"] == "row-1"
        assert cell["value"] == "Goblin"

    def test_formula(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", 4)
        cell = _set(client, sheet_id, "row-1", "col-B", "=A1*3")
        assert cell["formula"] == "=A1*3"
        assert cell["value"] == 12

    def test_unknown_targets(self, client: TestClient, sheet_id: str) -> None:
        body = {"row_id": "row-99", "column_id": "col-A", "value": 1}
        assert client.post(f"/api/sheets/{sheet_id}/cells", json=body).status_code == 404
        body = {"row_id": "row-1", "column_id": "col-A", "value": 1}
        assert client.post("/api/sheets/sheet-missing/cells", json=body).status_code == 404

    def test_style(self, client: TestClient, sheet_id: str) -> None:
        resp = client.post(
            f"/api/sheets/{sheet_id}/cells/style",
            json={"row_id": "row-1", "column_id": "col-A", "style": {"fontWeight": "bold"}},
        )
        assert resp.json()["style"] == {"fontWeight": "bold"}
        cleared = client.post(
            f"/api/sheets/{sheet_id}/cells/style",
            json={"row_id": "row-1", "column_id": "col-A", "style": None},
        )
        assert "style" not in cleared.json()


class TestRowsAndColumns:
    def test_rows(self, client: TestClient, sheet_id: str) -> None:
        row = client.post(f"/api/sheets/{sheet_id}/rows", json={"after_row_id": "row-1"}).json()
        assert row["index"] == 1
        appended = client.post(f"/api/sheets/{sheet_id}/rows").json()
        assert appended["index"] == 4

        _set(client, sheet_id, "row-1", "col-A", "Slime")
        dup = client.post(f"/api/sheets/{sheet_id}/rows/row-1/duplicate").json()
        assert dup["cells"]["col-A"]["value"] == "Slime"
        assert dup["id"] != "row-1"

        deleted = client.delete(f"/api/sheets/{sheet_id}/rows/{row['id']}")
        assert deleted.json()["id"] == row["id"]
        assert client.delete(f"/api/sheets/{sheet_id}/rows/row-99").status_code == 404
        assert len(client.get(f"/api/sheets/{sheet_id}").json()["rows"]) == 5

    def test_columns(self, client: TestClient, sheet_id: str) -> None:
        column = client.post(f"/api/sheets/{sheet_id}/columns").json()
        assert column["name"] == "Column 3"

        patched = client.patch(
            f"/api/sheets/{sheet_id}/columns/{column['id']}",
            json={"patch": {"name": "HP", "type": "number"}},
        ).json()
        assert (patched["name"], patched["type"]) == ("HP", "number")

        bad = client.patch(
            f"/api/sheets/{sheet_id}/columns/{column['id']}", json={"patch": {"bogus": 1}}
        )
        assert bad.status_code == 400

        assert client.delete(f"/api/sheets/{sheet_id}/columns/{column['id']}").status_code == 200
        assert client.delete(f"/api/sheets/{sheet_id}/columns/col-Z").status_code == 404


# ────────────────────────────────────────────────────────────────
# Filter, search, replace, validate
# ────────────────────────────────────────────────────────────────


class TestQueries:
    def test_filter(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Goblin")
        _set(client, sheet_id, "row-2", "col-A", "Orc")
        client.post("/api/save")

        resp = client.post(
            f"/api/sheets/{sheet_id}/filter",
            json={"filters": [{"columnId": "col-A", "operator": "contains", "value": "gob"}]},
        )
        assert resp.json() == {"visible": 1, "hidden": 2}
        summary = client.get("/api/sheets").json()[0]
        assert summary["filtered"] is True
        assert summary["hiddenRows"] == 2
        assert client.get("/api/status").json()["unsaved"] is False

        assert client.delete(f"/api/sheets/{sheet_id}/filter").json() == {"visible": 3, "hidden": 0}

    def test_search(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Goblin")
        results = client.post("/api/search", json={"text": "gob"}).json()
        assert [r["cell_id"] for r in results] == ["row-1:col-A"]

        strict = client.post(
            "/api/search", json={"text": "gob", "sheet_id": sheet_id, "options": {"match_case": True}}
        )
        assert strict.json() == []
        assert client.post("/api/search", json={"text": "x", "sheet_id": "nope"}).status_code == 404

    def test_replace(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Goblin")
        _set(client, sheet_id, "row-3", "col-B", "goblin king")
        resp = client.post(f"/api/sheets/{sheet_id}/replace", json={"search": "goblin", "replace": "Orc"})
        assert resp.json() == {"replaced": 2}
        assert _cell_value(client, sheet_id, 2, "col-B") == "Orc king"

    def test_validate(self, client: TestClient, sheet_id: str) -> None:
        client.patch(
            f"/api/sheets/{sheet_id}/columns/col-A",
            json={"patch": {"validation": {"type": "required"}}},
        )
        _set(client, sheet_id, "row-1", "col-A", "Goblin")
        result = client.get(f"/api/sheets/{sheet_id}/validate").json()
        assert result["valid"] is False
        assert [e["row_id"] for e in result["errors"]] == ["row-2", "row-3"]


# ────────────────────────────────────────────────────────────────
# Import / export / events
# ────────────────────────────────────────────────────────────────


class TestImportExport:
    def test_import_csv(self, client: TestClient) -> None:
        resp = client.post(
            "/api/import",
            files={"file": ("enemies.csv", b"name,hp\nGoblin,12\nOrc,30\n", "text/csv")},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["sheets"] == 2
        imported = body["imported"][0]
        assert (imported["name"], imported["rows"], imported["columns"]) == ("enemies", 2, 2)
        assert body["activeSheetId"] == imported["id"]

    def test_import_csv_without_header(self, client: TestClient) -> None:
        resp = client.post(
            "/api/import",
            files={"file": ("raw.csv", b"a,1\nb,2\n", "text/csv")},
            data={"has_header": "false"},
        )
        assert resp.json()["imported"][0]["rows"] == 2

    def test_import_xlsx_sheet(self, client: TestClient, tmp_path: Path) -> None:
        wb = openpyxl.Workbook()
        wb.active.title = "Skip"
        ws = wb.create_sheet("Loot")
        ws["A1"], ws["A2"] = "Item", "Potion"
        path = tmp_path / "loot.xlsx"
        wb.save(str(path))

        resp = client.post(
            "/api/import",
            files={"file": ("loot.xlsx", path.read_bytes(), "application/octet-stream")},
            data={"sheet_name": "Loot"},
        )
        assert [s["name"] for s in resp.json()["imported"]] == ["Loot"]

    def test_import_errors(self, client: TestClient) -> None:
        empty = client.post("/api/import", files={"file": ("a.csv", b"", "text/csv")})
        assert empty.status_code == 400
        blank = client.post("/api/import", files={"file": ("a.csv", b"\n\n", "text/csv")})
        assert blank.status_code == 400
        assert "empty" in blank.json()["detail"]
        pdf = client.post("/api/import", files={"file": ("a.pdf", b"%PDF", "application/pdf")})
        assert pdf.status_code == 400

    def test_export(self, client: TestClient, sheet_id: str) -> None:
        _set(client, sheet_id, "row-1", "col-A", "Goblin")

        csv_resp = client.get("/api/export", params={"format": "csv"})
        assert csv_resp.status_code == 200
        assert csv_resp.text.splitlines()[:2] == ["A,B", "Goblin,"]
        assert 'filename="Bestiary.csv"' in csv_resp.headers["content-disposition"]

        json_resp = client.get("/api/export", params={"format": "json", "sheet_id": sheet_id})
        assert json_resp.json()[0] == {"A": "Goblin", "B": None}

        xlsx_resp = client.get("/api/export")
        wb = openpyxl.load_workbook(io.BytesIO(xlsx_resp.content))
        assert wb.sheetnames == ["Bestiary"]
        assert wb.active["A2"].value == "Goblin"

        assert client.get("/api/export", params={"format": "pdf"}).status_code == 400
        assert client.get("/api/export", params={"sheet_id": "nope"}).status_code == 404

    def test_events(self, client: TestClient, sheet_id: str) -> None:
        client.get(f"/api/sheets/{sheet_id}/validate")
        events = client.get("/api/events", params={"event_type": "validation_run"}).json()
        assert len(events) == 1
        assert events[0]["context"]["sheet_id"] == sheet_id
