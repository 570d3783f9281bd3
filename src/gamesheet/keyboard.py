"""Keyboard shortcut registry and dispatcher.

A :class:`Shortcut` binds a key plus modifier combination to a named
command.  The grid front-end forwards key presses as :class:`KeyEvent`
values; :class:`ShortcutDispatcher` resolves them to a shortcut and calls
the handler registered for its command.

Modifiers left as ``None`` on a shortcut match either state.  When several
shortcuts match, the one that pins down more modifiers wins, so Ctrl+Shift+V
reaches the validation panel rather than paste.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from gamesheet.clipboard import CellRange
from gamesheet.search import SearchOptions, SearchResult

logger = logging.getLogger(__name__)

ShortcutCategory = Literal["file", "edit", "navigation", "selection", "view", "help"]

CATEGORIES: tuple[str, ...] = ("file", "edit", "navigation", "selection", "view", "help")

# Keys that still reach the dispatcher while a text input has focus.
TEXT_INPUT_ALLOWED_KEYS = frozenset({"F2", "Escape", "Enter"})


class KeyEvent(BaseModel):
    """A key press as reported by the front-end."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False
    in_text_input: bool = False


class Shortcut(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    ctrl: bool | None = None
    shift: bool | None = None
    alt: bool | None = None
    meta: bool | None = None
    description: str
    category: ShortcutCategory
    command: str

    @property
    def specificity(self) -> int:
        return sum(m is not None for m in (self.ctrl, self.shift, self.alt, self.meta))


DEFAULT_SHORTCUTS: tuple[Shortcut, ...] = (
    # File
    Shortcut(key="s", ctrl=True, description="Save spreadsheet", category="file", command="save"),
    Shortcut(key="o", ctrl=True, description="Open file", category="file", command="open"),
    # Edit
    Shortcut(key="z", ctrl=True, description="Undo", category="edit", command="undo"),
    Shortcut(key="y", ctrl=True, description="Redo", category="edit", command="redo"),
    Shortcut(key="c", ctrl=True, description="Copy", category="edit", command="copy"),
    Shortcut(key="x", ctrl=True, description="Cut", category="edit", command="cut"),
    Shortcut(key="v", ctrl=True, description="Paste", category="edit", command="paste"),
    Shortcut(key="d", ctrl=True, description="Duplicate current row", category="edit", command="duplicate_row"),
    Shortcut(key="Delete", ctrl=True, description="Delete current row", category="edit", command="delete_row"),
    Shortcut(key="f", ctrl=True, description="Find", category="edit", command="find"),
    Shortcut(key="h", ctrl=True, description="Replace", category="edit", command="replace"),
    # Navigation
    Shortcut(key="Home", ctrl=True, description="Go to first cell", category="navigation", command="go_first_cell"),
    Shortcut(key="End", ctrl=True, description="Go to last cell", category="navigation", command="go_last_cell"),
    # Selection
    Shortcut(key="a", ctrl=True, description="Select all", category="selection", command="select_all"),
    Shortcut(key="ArrowUp", ctrl=True, shift=True, description="Extend selection up",
             category="selection", command="extend_selection_up"),
    Shortcut(key="ArrowDown", ctrl=True, shift=True, description="Extend selection down",
             category="selection", command="extend_selection_down"),
    Shortcut(key="ArrowLeft", ctrl=True, shift=True, description="Extend selection left",
             category="selection", command="extend_selection_left"),
    Shortcut(key="ArrowRight", ctrl=True, shift=True, description="Extend selection right",
             category="selection", command="extend_selection_right"),
    # Cell editing
    Shortcut(key="F2", description="Edit cell", category="edit", command="edit_cell"),
    Shortcut(key="Escape", description="Cancel editing", category="edit", command="cancel_edit"),
    Shortcut(key="Enter", ctrl=True, description="Commit edit and move down", category="edit",
             command="commit_edit"),
    # View
    Shortcut(key="v", ctrl=True, shift=True, description="Data validation panel", category="view",
             command="toggle_validation_panel"),
    # Help
    Shortcut(key="/", ctrl=True, description="Keyboard shortcut help", category="help",
             command="show_shortcuts"),
)


def is_mac_platform(platform: str | None = None) -> bool:
    platform = (platform if platform is not None else sys.platform).lower()
    return platform.startswith("darwin") or "mac" in platform


def _modifier_matches(expected: bool | None, pressed: bool) -> bool:
    return expected is None or expected == pressed


class ShortcutDispatcher:
    """Resolve key events against a shortcut list.

    Args:
        shortcuts: Registered shortcuts, in priority order for ties.
        platform: Platform string (``sys.platform`` style).  On macOS the
            Command key plays the role of Ctrl and vice versa.
        enabled: A disabled dispatcher matches nothing.
    """

    def __init__(
        self,
        shortcuts: Iterable[Shortcut] = DEFAULT_SHORTCUTS,
        *,
        platform: str | None = None,
        enabled: bool = True,
    ) -> None:
        self.shortcuts = list(shortcuts)
        self.is_mac = is_mac_platform(platform)
        self.enabled = enabled

    def match(self, event: KeyEvent) -> Shortcut | None:
        """Return the shortcut *event* triggers, or None."""
        if not self.enabled:
            return None
        if (
            event.in_text_input
            and event.key not in TEXT_INPUT_ALLOWED_KEYS
            and not (event.ctrl or event.meta)
        ):
            return None

        ctrl = event.meta if self.is_mac else event.ctrl
        meta = event.ctrl if self.is_mac else event.meta
        key = event.key.lower()

        best: Shortcut | None = None
        for shortcut in self.shortcuts:
            if (
                shortcut.key.lower() == key
                and _modifier_matches(shortcut.ctrl, ctrl)
                and _modifier_matches(shortcut.shift, event.shift)
                and _modifier_matches(shortcut.alt, event.alt)
                and _modifier_matches(shortcut.meta, meta)
            ):
                if best is None or shortcut.specificity > best.specificity:
                    best = shortcut
        return best

    def dispatch(
        self,
        event: KeyEvent,
        handlers: Mapping[str, Callable[[], Any]],
    ) -> str | None:
        """Run the handler for the shortcut *event* triggers.

        Returns:
            The command name when a handler ran, else None.
        """
        shortcut = self.match(event)
        if shortcut is None:
            return None
        handler = handlers.get(shortcut.command)
        if handler is None:
            logger.debug("No handler for shortcut command %s", shortcut.command)
            return None
        handler()
        return shortcut.command


def format_shortcut(shortcut: Shortcut, *, mac: bool = False) -> str:
    """Render a shortcut for display, e.g. ``Ctrl+Shift+V`` or ``⌘⇧V``."""
    parts: list[str] = []
    if shortcut.ctrl:
        parts.append("⌘" if mac else "Ctrl")
    if shortcut.shift:
        parts.append("⇧" if mac else "Shift")
    if shortcut.alt:
        parts.append("⌥" if mac else "Alt")
    if shortcut.meta and not mac:
        parts.append("Meta")
    parts.append(shortcut.key.upper() if len(shortcut.key) == 1 else shortcut.key)
    return ("" if mac else "+").join(parts)


def group_by_category(shortcuts: Iterable[Shortcut] = DEFAULT_SHORTCUTS) -> dict[str, list[Shortcut]]:
    """Group shortcuts by category.  Every category is present."""
    grouped: dict[str, list[Shortcut]] = {c: [] for c in CATEGORIES}
    for shortcut in shortcuts:
        grouped[shortcut.category].append(shortcut)
    return grouped


class GridState(BaseModel):
    """What the grid front-end holds between key presses.

    ``clipboard`` is the TSV of the last copy or cut.  ``find_text``,
    ``replace_text`` and ``search_options`` come from the search dialog;
    ``results`` receives the matches of the last find.
    """

    sheet_id: str
    selection: CellRange | None = None
    clipboard: str = ""
    find_text: str = ""
    replace_text: str = ""
    search_options: SearchOptions = Field(default_factory=SearchOptions)
    results: list[SearchResult] = Field(default_factory=list)


def engine_handlers(engine: Any, grid: GridState | None = None) -> dict[str, Callable[[], Any]]:
    """Handlers for the commands the engine can run.

    Undo and redo need nothing else.  Copy, cut, paste, find and replace
    work on *grid* and are only registered when one is given.  Paste puts
    the clipboard's top-left value at the selection's top-left cell; replace
    covers the selection, or the whole sheet when nothing is selected.
    """
    handlers: dict[str, Callable[[], Any]] = {
        "undo": engine.undo,
        "redo": engine.redo,
    }
    if grid is None:
        return handlers

    def copy() -> bool:
        if grid.selection is None:
            return False
        text = engine.copy_range(grid.sheet_id, grid.selection)
        if text is None:
            return False
        grid.clipboard = text
        return True

    def cut() -> bool:
        if grid.selection is None:
            return False
        text = engine.cut_range(grid.sheet_id, grid.selection)
        if text is None:
            return False
        grid.clipboard = text
        return True

    def paste() -> int:
        if grid.selection is None or not grid.clipboard:
            return 0
        return engine.paste_tsv(
            grid.sheet_id,
            grid.selection.rows.start,
            grid.selection.columns.start,
            grid.clipboard,
        )

    def find() -> int:
        grid.results = engine.search(grid.sheet_id, grid.find_text, grid.search_options)
        return len(grid.results)

    def replace() -> int:
        if grid.selection is None:
            return engine.replace_all(
                grid.sheet_id, grid.find_text, grid.replace_text, grid.search_options
            )
        return engine.replace_in_range(
            grid.sheet_id, grid.selection, grid.find_text, grid.replace_text, grid.search_options
        )

    handlers.update(copy=copy, cut=cut, paste=paste, find=find, replace=replace)
    return handlers
