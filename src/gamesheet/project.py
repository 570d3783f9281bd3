"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "gamesheet.yaml"
DOCUMENT_FILENAME = "document.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "history_limit": 100,
    "default_rows": 100,
    "default_columns": 10,
    "column_width": 120,
    "row_height": 32,
    "template_blank_rows": 50,
    "csv_delimiter": ",",
    "csv_has_header": True,
    "json_indent": 2,
    "xlsx_preserve_formatting": True,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEFAULT_PROJECT_CONFIG = """\
# gamesheet project configuration
history_limit: 100
default_rows: 100
default_columns: 10
column_width: 120
row_height: 32
template_blank_rows: 50
csv_delimiter: ","
csv_has_header: true
json_indent: 2
xlsx_preserve_formatting: true
# logging_fsync: false
"""


class ProjectConfigError(ValueError):
    """Raised when ``gamesheet.yaml`` exists but cannot be used."""


def load_project_config(project_dir: Path | None) -> dict[str, Any]:
    """Load project configuration from ``gamesheet.yaml``, with defaults.

    Args:
        project_dir: Root of the gamesheet project, or None for defaults only.

    Returns:
        Merged configuration dict.

    Raises:
        ProjectConfigError: If the file is not valid YAML or not a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    if project_dir is None:
        return config

    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ProjectConfigError(f"{config_path}: {exc}") from exc
        if not isinstance(user_config, dict):
            raise ProjectConfigError(f"{config_path}: expected a mapping at top level")
        config.update(user_config)

    if int(config["history_limit"]) < 1:
        raise ProjectConfigError("history_limit must be at least 1")

    return config


def scaffold_project(
    target_dir: Path,
    *,
    name: str = "Untitled",
    template: str | None = None,
) -> Path:
    """Create a new gamesheet project at the target directory.

    Writes ``gamesheet.yaml`` and a ``document.yaml`` holding one sheet,
    built from *template* when given or from the default blank layout.

    Args:
        target_dir: Directory to create (must not already contain a document).
        name: Document name, also used for the first sheet.
        template: Optional template id (see ``gamesheet templates``).

    Returns:
        Path to the created project directory.
    """
    from gamesheet.engine import DocumentEngine
    from gamesheet.storage import save_document

    target_dir = target_dir.resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    if (target_dir / DOCUMENT_FILENAME).exists():
        raise FileExistsError(f"{DOCUMENT_FILENAME} already exists in {target_dir}")

    if not (target_dir / CONFIG_FILENAME).exists():
        (target_dir / CONFIG_FILENAME).write_text(DEFAULT_PROJECT_CONFIG)

    config = load_project_config(target_dir)
    engine = DocumentEngine(name=name, config=config, sheets=())
    engine.add_sheet(name, template=template)
    engine.history.clear()
    save_document(engine, target_dir / DOCUMENT_FILENAME)
    (target_dir / "logs").mkdir(exist_ok=True)
    return target_dir
