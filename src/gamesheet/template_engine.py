"""Game-data template loading and sheet creation.

Templates are YAML files bundled in the ``gamesheet.templates`` package.
Each file declares a fixed column set (types, widths, validation rules and
select options) and optional sample rows.  A sheet built from a template
holds the sample rows followed by blank rows for data entry.
"""

from __future__ import annotations

import importlib.resources
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from gamesheet.model import (
    Cell,
    CellType,
    Column,
    Row,
    Sheet,
    ValidationRule,
    blank_row,
    new_id,
)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_TEMPLATE_TYPE_RE = re.compile(r"^[a-z][A-Za-z0-9]{0,39}$")
_YAML_EXTENSIONS = {".yaml", ".yml"}

DEFAULT_TEMPLATE_COLUMN_WIDTH = 150


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TemplateColumn(BaseModel):
    id: str
    name: str
    type: CellType = "text"
    width: int | None = None
    validation: ValidationRule | None = None
    options: list[str] | None = None


class GameDataTemplate(BaseModel):
    type: str
    name: str
    description: str = ""
    columns: list[TemplateColumn]
    sample_data: list[dict[str, Any]] = Field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "columns": len(self.columns),
            "sample_rows": len(self.sample_data),
        }


# ---------------------------------------------------------------------------
# Template discovery
# ---------------------------------------------------------------------------


def _bundled_templates_root() -> Path:
    """Return the filesystem path to the bundled templates package directory."""
    ref = importlib.resources.files("gamesheet.templates")
    root = Path(str(ref))
    if not root.is_dir():
        raise RuntimeError(f"Bundled templates directory not found: {root}")
    return root


def _template_files(root: Path) -> list[Path]:
    return [
        p for p in sorted(root.iterdir())
        if p.is_file() and p.suffix.lower() in _YAML_EXTENSIONS
    ]


def list_templates(template_dir: Path | None = None) -> list[GameDataTemplate]:
    """List available templates, sorted by type.

    Args:
        template_dir: If provided, list templates from this directory instead
            of the bundled package templates.  Files that fail to load are
            skipped.
    """
    root = template_dir or _bundled_templates_root()
    templates: list[GameDataTemplate] = []
    for path in _template_files(root):
        try:
            templates.append(load_template_file(path))
        except (ValueError, yaml.YAMLError):
            continue
    return sorted(templates, key=lambda t: t.type)


def get_template(template_type: str, template_dir: Path | None = None) -> GameDataTemplate:
    """Return the template whose ``type`` is *template_type*.

    Raises:
        FileNotFoundError: If no such template exists.
    """
    templates = list_templates(template_dir)
    for tpl in templates:
        if tpl.type == template_type:
            return tpl
    available = ", ".join(t.type for t in templates) or "(none)"
    raise FileNotFoundError(
        f"Template {template_type!r} not found. Available: {available}"
    )


def load_template_file(path: Path) -> GameDataTemplate:
    """Load and validate one template file.

    Raises:
        ValueError: On schema violations.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: template must be a YAML mapping")

    tpl_type = raw.get("type")
    if not tpl_type or not _TEMPLATE_TYPE_RE.match(str(tpl_type)):
        raise ValueError(
            f"{path}: 'type' is required and must match ^[a-z][A-Za-z0-9]{{0,39}}$"
        )

    try:
        template = GameDataTemplate.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"{path}: {exc}") from exc

    if not template.columns:
        raise ValueError(f"{path}: 'columns' must be a non-empty list")
    ids = [c.id for c in template.columns]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"{path}: duplicate column id(s): {', '.join(dupes)}")
    unknown = sorted({k for row in template.sample_data for k in row} - set(ids))
    if unknown:
        raise ValueError(f"{path}: sample_data uses unknown column(s): {', '.join(unknown)}")

    return template


# ---------------------------------------------------------------------------
# Sheet creation
# ---------------------------------------------------------------------------


def create_sheet_from_template(
    template: GameDataTemplate,
    *,
    name: str | None = None,
    blank_rows: int = 50,
    row_height: int | None = None,
) -> Sheet:
    """Build a new sheet from *template*.

    Sample rows come first.  They are followed by *blank_rows* empty rows,
    or twice as many when the template has no sample data.
    """
    columns = [
        Column(
            id=tc.id,
            name=tc.name,
            type=tc.type,
            width=tc.width or DEFAULT_TEMPLATE_COLUMN_WIDTH,
            index=i,
            validation=tc.validation,
            options=tc.options,
        )
        for i, tc in enumerate(template.columns)
    ]

    rows: list[Row] = []
    for i, sample in enumerate(template.sample_data):
        row_id = f"row-{i}"
        cells = {
            col.id: Cell(
                row_id=row_id,
                column_id=col.id,
                value=sample.get(col.id),
                type=col.type,
            )
            for col in columns
        }
        rows.append(Row(id=row_id, index=i, cells=cells, height=row_height))

    start = len(rows)
    extra = blank_rows if template.sample_data else blank_rows * 2
    for i in range(start, start + extra):
        rows.append(blank_row(f"row-{i}", columns, index=i, height=row_height))

    return Sheet(
        id=new_id("sheet"),
        name=name or template.name,
        columns=columns,
        rows=rows,
    )
