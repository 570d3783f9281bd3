"""Command-line interface for gamesheet."""

from __future__ import annotations

import json
from pathlib import Path

import click

from gamesheet import __version__


@click.group()
@click.version_option(version=__version__, prog_name="gamesheet")
def main() -> None:
    """gamesheet -- typed spreadsheet documents for game-design data."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _open_project(directory: str):
    """Load the project at *directory* into a DocumentService."""
    from gamesheet.api.service import DocumentService
    from gamesheet.project import DOCUMENT_FILENAME, ProjectConfigError
    from gamesheet.storage import DocumentLoadError

    project_dir = Path(directory)
    if not (project_dir / DOCUMENT_FILENAME).exists():
        raise click.ClickException(
            f"No {DOCUMENT_FILENAME} in {project_dir}. Run 'gamesheet new' first."
        )
    try:
        return DocumentService(project_dir)
    except (ProjectConfigError, DocumentLoadError) as e:
        raise click.ClickException(str(e))


def _find_sheet(engine, ref: str | None):
    """Resolve a sheet by id or name; the active sheet when *ref* is None."""
    if ref is None:
        sheet = engine.active_sheet
        if sheet is None:
            raise click.ClickException("Document has no sheets")
        return sheet
    for sheet in engine.sheets:
        if ref in (sheet.id, sheet.name):
            return sheet
    names = ", ".join(s.name for s in engine.sheets)
    raise click.ClickException(f"Sheet {ref!r} not found. Available: {names}")


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
@click.option("--name", default="Untitled", help="Document (and first sheet) name.")
@click.option("--template", "template_name", default=None, help="Start from a game-data template.")
def new(directory: str, name: str, template_name: str | None) -> None:
    """Scaffold a new project at DIRECTORY."""
    from gamesheet.project import scaffold_project

    try:
        result = scaffold_project(Path(directory), name=name, template=template_name)
    except (FileExistsError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@main.group()
def templates() -> None:
    """Game-data template commands."""


@templates.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def templates_list(as_json: bool) -> None:
    """List available game-data templates."""
    from gamesheet.template_engine import list_templates

    found = list_templates()
    if as_json:
        click.echo(json.dumps([t.summary() for t in found], indent=2))
        return
    if not found:
        click.echo("No templates found.")
        return
    for t in found:
        click.echo(f"  {t.type:20s} {t.name} ({len(t.columns)} columns)")


@templates.command("show")
@click.argument("template_type")
def templates_show(template_type: str) -> None:
    """Show a template's columns."""
    from gamesheet.template_engine import get_template

    try:
        tpl = get_template(template_type)
    except FileNotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"Template: {tpl.name} ({tpl.type})")
    if tpl.description:
        click.echo(f"Description: {tpl.description}")
    click.echo("Columns:")
    for col in tpl.columns:
        extra = []
        if col.validation is not None:
            extra.append(col.validation.type)
        if col.options:
            extra.append("options: " + ", ".join(col.options))
        suffix = f"  [{'; '.join(extra)}]" if extra else ""
        click.echo(f"  {col.id:20s} {col.type:12s} {col.name}{suffix}")
    if tpl.sample_data:
        click.echo(f"Sample rows: {len(tpl.sample_data)}")


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


@main.command("import")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--sheet", "sheet_name", default=None, help="XLSX: import only this worksheet.")
@click.option("--no-header", is_flag=True, help="CSV: first row is data, not column names.")
@click.option("--delimiter", default=None, help="CSV: field separator (default from config).")
def import_cmd(
    directory: str,
    source: str,
    sheet_name: str | None,
    no_header: bool,
    delimiter: str | None,
) -> None:
    """Import SOURCE (.csv or .xlsx) into the project at DIRECTORY."""
    from gamesheet.io import UnsupportedFormatError, import_file
    from gamesheet.io.formats import detect_format
    from gamesheet.storage import save_document

    svc = _open_project(directory)
    path = Path(source)
    try:
        fmt = detect_format(path)
        options: dict = {}
        if fmt == "csv":
            options["has_header"] = not no_header and bool(svc.config["csv_has_header"])
            options["delimiter"] = delimiter or svc.config["csv_delimiter"]
        elif fmt == "xlsx":
            options["preserve_formatting"] = bool(svc.config["xlsx_preserve_formatting"])
            if sheet_name:
                options["sheet_name"] = sheet_name
        result = import_file(path, fmt, **options)
    except UnsupportedFormatError as e:
        raise click.ClickException(str(e))

    if not result.success:
        raise click.ClickException(f"Import failed: {result.error}")
    if not result.sheets:
        raise click.ClickException("Import produced no sheets")

    added = svc.engine.add_sheets(result.sheets)
    save_document(svc.engine, svc.document_path)
    for sheet in added:
        click.echo(f"Imported {sheet.name!r}: {len(sheet.rows)} rows, {len(sheet.columns)} columns")


@main.command("export")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("output", type=click.Path())
@click.option("--sheet", "sheet_ref", default=None, help="Sheet name or id (default: active; XLSX: all).")
@click.option("--format", "fmt", default=None, type=click.Choice(["csv", "json", "xlsx"]),
              help="Output format (default: from OUTPUT suffix).")
def export_cmd(directory: str, output: str, sheet_ref: str | None, fmt: str | None) -> None:
    """Export the project at DIRECTORY to OUTPUT."""
    from gamesheet.io import UnsupportedFormatError, export_file
    from gamesheet.io.formats import detect_format

    svc = _open_project(directory)
    out = Path(output)
    try:
        fmt = detect_format(out, fmt)
    except UnsupportedFormatError as e:
        raise click.ClickException(str(e))

    if fmt == "xlsx" and sheet_ref is None:
        sheets = list(svc.engine.sheets)
    else:
        sheets = [_find_sheet(svc.engine, sheet_ref)]

    options: dict = {}
    if fmt == "csv":
        options["delimiter"] = svc.config["csv_delimiter"]
    elif fmt == "json":
        options["indent"] = int(svc.config["json_indent"])

    try:
        result = export_file(sheets, out, fmt, **options)
    except UnsupportedFormatError as e:
        raise click.ClickException(str(e))
    if not result.success:
        raise click.ClickException(f"Export failed: {result.error}")
    click.echo(f"Exported {result.sheets} sheet(s) to {out}")


# ---------------------------------------------------------------------------
# Validate / search
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_ref", default=None, help="Sheet name or id (default: all sheets).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def validate(directory: str, sheet_ref: str | None, as_json: bool) -> None:
    """Validate sheets in DIRECTORY.  Exits 1 when any error is found."""
    svc = _open_project(directory)
    sheets = [_find_sheet(svc.engine, sheet_ref)] if sheet_ref else list(svc.engine.sheets)

    report = []
    failed = False
    for sheet in sheets:
        result = svc.engine.validate_sheet(sheet.id)
        failed = failed or not result.valid
        report.append((sheet, result))

    if as_json:
        out = [
            {"sheet": s.name, **r.model_dump(mode="json")}
            for s, r in report
        ]
        click.echo(json.dumps(out, indent=2))
    else:
        for sheet, result in report:
            status = "OK" if result.valid else "FAILED"
            click.echo(
                f"{sheet.name}: {status} "
                f"({len(result.errors)} error(s), {len(result.warnings)} warning(s))"
            )
            for issue in result.errors:
                click.echo(f"  ERROR   {issue.cell_id}: {issue.message}")
            for issue in result.warnings:
                click.echo(f"  WARNING {issue.cell_id}: {issue.message}")

    if failed:
        raise SystemExit(1)


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("text")
@click.option("--sheet", "sheet_ref", default=None, help="Search one sheet (default: all).")
@click.option("--match-case", is_flag=True, help="Case-sensitive matching.")
@click.option("--whole-cell", is_flag=True, help="Match the entire cell content.")
@click.option("--formulas", is_flag=True, help="Also search formula text.")
@click.option("--regex", "use_regex", is_flag=True, help="Treat TEXT as a regular expression.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def search(
    directory: str,
    text: str,
    sheet_ref: str | None,
    match_case: bool,
    whole_cell: bool,
    formulas: bool,
    use_regex: bool,
    as_json: bool,
) -> None:
    """Find TEXT in the project at DIRECTORY."""
    from gamesheet.addressing import make_addr
    from gamesheet.search import SearchOptions

    svc = _open_project(directory)
    options = SearchOptions(
        match_case=match_case,
        match_whole_cell=whole_cell,
        search_formulas=formulas,
        use_regex=use_regex,
    )
    if sheet_ref:
        sheet = _find_sheet(svc.engine, sheet_ref)
        results = svc.engine.search(sheet.id, text, options)
    else:
        results = svc.engine.search_all(text, options)

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
        return
    if not results:
        click.echo("No matches.")
        return
    for r in results:
        addr = make_addr(r.row_index, r.column_index)
        shown = r.formula if r.source == "formula" else r.value
        click.echo(f"  {r.sheet_name}!{addr}  {shown}")
    click.echo(f"{len(results)} match(es)")


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", type=int, default=8765, help="Port to listen on.")
def serve(directory: str, host: str, port: int) -> None:
    """Serve the JSON API for DIRECTORY."""
    import uvicorn

    from gamesheet.api.server import create_app

    app = create_app(Path(directory))
    click.echo(f"Serving API at http://{host}:{port}/api")
    click.echo("Press Ctrl+C to stop")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--sheet-id", default=None, help="Filter by sheet id.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    sheet_id: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from gamesheet.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.query(level=level, event_type=event_type, sheet_id=sheet_id, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)
