"""Import/export adapters.  Each produces or consumes complete Sheet snapshots."""

from gamesheet.io.csv_io import export_csv, import_csv, write_csv
from gamesheet.io.formats import detect_format, export_file, import_file
from gamesheet.io.json_io import export_json, write_json
from gamesheet.io.results import ExportResult, ImportResult, UnsupportedFormatError
from gamesheet.io.xlsx import export_xlsx, import_xlsx, xlsx_sheet_names

__all__ = [
    "ExportResult",
    "ImportResult",
    "UnsupportedFormatError",
    "detect_format",
    "export_csv",
    "export_file",
    "export_json",
    "export_xlsx",
    "import_csv",
    "import_file",
    "import_xlsx",
    "write_csv",
    "write_json",
    "xlsx_sheet_names",
]
