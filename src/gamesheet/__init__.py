"""gamesheet: typed spreadsheet documents for game-design data."""

__version__ = "0.4.0"
