"""FastAPI server: the JSON seam between the grid front-end and the engine.

Routes are thin wrappers over the shared :class:`DocumentService`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from gamesheet.api.service import DocumentService, NotFoundError
from gamesheet.model import CellValue, FilterConfig
from gamesheet.search import SearchOptions

# The singleton service is set at startup by ``create_app()``.
_service: DocumentService | None = None

_MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MB


def create_app(project_dir: Path | None = None) -> FastAPI:
    """Create the FastAPI application for a project.

    Args:
        project_dir: Root of the gamesheet project, or None for an
            in-memory document.

    Returns:
        Configured FastAPI instance.
    """
    global _service
    _service = DocumentService(project_dir=project_dir)

    from gamesheet import __version__

    app = FastAPI(title="gamesheet", version=__version__)
    app.include_router(_api_router())
    return app


def _svc() -> DocumentService:
    """Get the singleton service, raising if not initialised."""
    if _service is None:
        raise HTTPException(500, "Service not initialised")
    return _service


def _call(fn: Any, *args: Any, **kwargs: Any) -> Any:
    """Run a service call, mapping lookup and input errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except NotFoundError as exc:
        raise HTTPException(404, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AddSheetRequest(BaseModel):
    name: str | None = None
    template: str | None = None


class RenameSheetRequest(BaseModel):
    name: str


class SortRequest(BaseModel):
    column_id: str
    direction: Literal["asc", "desc"] = "asc"


class CellUpdateRequest(BaseModel):
    row_id: str
    column_id: str
    value: CellValue = None


class CellStyleRequest(BaseModel):
    row_id: str
    column_id: str
    style: dict[str, Any] | None = None


class AddRowRequest(BaseModel):
    after_row_id: str | None = None


class AddColumnRequest(BaseModel):
    after_column_id: str | None = None


class ColumnPatchRequest(BaseModel):
    patch: dict[str, Any]


class FilterRequest(BaseModel):
    filters: list[FilterConfig] = Field(default_factory=list)


class SearchRequest(BaseModel):
    text: str
    sheet_id: str | None = None
    options: SearchOptions = Field(default_factory=SearchOptions)


class ReplaceRequest(BaseModel):
    search: str
    replace: str = ""
    options: SearchOptions = Field(default_factory=SearchOptions)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def _api_router() -> APIRouter:
    router = APIRouter(prefix="/api")

    # -- Document --

    @router.get("/status")
    async def get_status() -> dict[str, Any]:
        return _svc().get_status()

    @router.post("/save")
    async def save() -> dict[str, Any]:
        return _call(_svc().save)

    @router.post("/undo")
    async def undo() -> dict[str, Any]:
        return _svc().undo()

    @router.post("/redo")
    async def redo() -> dict[str, Any]:
        return _svc().redo()

    @router.get("/templates")
    async def list_templates() -> list[dict[str, Any]]:
        from gamesheet.template_engine import list_templates as _list

        return [t.summary() for t in _list()]

    # -- Sheets --

    @router.get("/sheets")
    async def list_sheets() -> list[dict[str, Any]]:
        return _svc().list_sheets()

    @router.post("/sheets")
    async def add_sheet(req: AddSheetRequest) -> dict[str, Any]:
        return _call(_svc().add_sheet, req.name, req.template)

    @router.get("/sheets/{sheet_id}")
    async def get_sheet(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().get_sheet, sheet_id)

    @router.patch("/sheets/{sheet_id}")
    async def rename_sheet(sheet_id: str, req: RenameSheetRequest) -> dict[str, Any]:
        return _call(_svc().rename_sheet, sheet_id, req.name)

    @router.delete("/sheets/{sheet_id}")
    async def delete_sheet(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().delete_sheet, sheet_id)

    @router.post("/sheets/{sheet_id}/duplicate")
    async def duplicate_sheet(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().duplicate_sheet, sheet_id)

    @router.post("/sheets/{sheet_id}/activate")
    async def activate_sheet(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().activate_sheet, sheet_id)

    @router.post("/sheets/{sheet_id}/sort")
    async def sort_sheet(sheet_id: str, req: SortRequest) -> dict[str, Any]:
        return _call(_svc().sort_sheet, sheet_id, req.column_id, req.direction)

    # -- Cells --

    @router.post("/sheets/{sheet_id}/cells")
    async def update_cell(sheet_id: str, req: CellUpdateRequest) -> dict[str, Any]:
        return _call(_svc().update_cell, sheet_id, req.row_id, req.column_id, req.value)

    @router.post("/sheets/{sheet_id}/cells/style")
    async def update_cell_style(sheet_id: str, req: CellStyleRequest) -> dict[str, Any]:
        return _call(_svc().update_cell_style, sheet_id, req.row_id, req.column_id, req.style)

    # -- Rows --

    @router.post("/sheets/{sheet_id}/rows")
    async def add_row(sheet_id: str, req: AddRowRequest | None = None) -> dict[str, Any]:
        return _call(_svc().add_row, sheet_id, req.after_row_id if req else None)

    @router.post("/sheets/{sheet_id}/rows/{row_id}/duplicate")
    async def duplicate_row(sheet_id: str, row_id: str) -> dict[str, Any]:
        return _call(_svc().duplicate_row, sheet_id, row_id)

    @router.delete("/sheets/{sheet_id}/rows/{row_id}")
    async def delete_row(sheet_id: str, row_id: str) -> dict[str, Any]:
        return _call(_svc().delete_row, sheet_id, row_id)

    # -- Columns --

    @router.post("/sheets/{sheet_id}/columns")
    async def add_column(sheet_id: str, req: AddColumnRequest | None = None) -> dict[str, Any]:
        return _call(_svc().add_column, sheet_id, req.after_column_id if req else None)

    @router.patch("/sheets/{sheet_id}/columns/{column_id}")
    async def update_column(sheet_id: str, column_id: str, req: ColumnPatchRequest) -> dict[str, Any]:
        return _call(_svc().update_column, sheet_id, column_id, req.patch)

    @router.delete("/sheets/{sheet_id}/columns/{column_id}")
    async def delete_column(sheet_id: str, column_id: str) -> dict[str, Any]:
        return _call(_svc().delete_column, sheet_id, column_id)

    # -- Filter / search / validate --

    @router.post("/sheets/{sheet_id}/filter")
    async def apply_filters(sheet_id: str, req: FilterRequest) -> dict[str, Any]:
        return _call(_svc().apply_filters, sheet_id, req.filters)

    @router.delete("/sheets/{sheet_id}/filter")
    async def clear_filters(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().clear_filters, sheet_id)

    @router.post("/search")
    async def search(req: SearchRequest) -> list[dict[str, Any]]:
        return _call(_svc().search, req.text, req.options, req.sheet_id)

    @router.post("/sheets/{sheet_id}/replace")
    async def replace_all(sheet_id: str, req: ReplaceRequest) -> dict[str, Any]:
        return _call(_svc().replace_all, sheet_id, req.search, req.replace, req.options)

    @router.get("/sheets/{sheet_id}/validate")
    async def validate(sheet_id: str) -> dict[str, Any]:
        return _call(_svc().validate, sheet_id)

    # -- Import / export --

    @router.post("/import")
    async def upload_import(
        file: UploadFile = File(...),
        has_header: bool = Form(True),
        sheet_name: str | None = Form(None),
    ) -> dict[str, Any]:
        fname = file.filename or ""
        data = await file.read()
        if len(data) == 0:
            raise HTTPException(400, "Uploaded file is empty")
        if len(data) > _MAX_UPLOAD_BYTES:
            raise HTTPException(400, f"File too large (max {_MAX_UPLOAD_BYTES // (1024*1024)} MB)")

        options: dict[str, Any] = {}
        if fname.lower().endswith(".csv"):
            options = {"has_header": has_header, "delimiter": _svc().config["csv_delimiter"]}
        elif sheet_name:
            options = {"sheet_name": sheet_name}

        try:
            result = await run_in_threadpool(_svc().read_upload, data, fname, options)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return _call(_svc().accept_import, result)

    @router.get("/export")
    async def download_export(
        format: str = Query("xlsx"),
        sheet_id: str | None = Query(None),
    ) -> Response:
        try:
            data, filename, media_type = await run_in_threadpool(
                _svc().export_bytes, format, sheet_id
            )
        except NotFoundError as exc:
            raise HTTPException(404, str(exc))
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return Response(
            content=data,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # -- Event logs --

    @router.get("/events")
    async def get_events(
        level: str | None = Query(None),
        event_type: str | None = Query(None),
        sheet_id: str | None = Query(None),
        limit: int = Query(200, ge=1, le=2000),
    ) -> list[dict[str, Any]]:
        return _svc().read_events(level=level, event_type=event_type, sheet_id=sheet_id, limit=limit)

    return router
