"""Result objects returned by the import/export adapters."""

from __future__ import annotations

from pydantic import BaseModel, Field

from gamesheet.model import Sheet


class UnsupportedFormatError(ValueError):
    """Raised when a file format has no import or export adapter."""


class ImportResult(BaseModel):
    """Outcome of an import.  ``sheets`` is empty when ``success`` is False."""

    success: bool
    sheets: list[Sheet] = Field(default_factory=list)
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> ImportResult:
        return cls(success=False, error=error)


class ExportResult(BaseModel):
    success: bool
    path: str | None = None
    sheets: int = 0
    error: str | None = None

    @classmethod
    def failed(cls, error: str, path: str | None = None) -> ExportResult:
        return cls(success=False, path=path, error=error)
