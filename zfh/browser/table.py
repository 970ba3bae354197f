# Copyright Red Hat
#
# zfh/browser/table.py - ZFS file history sortable selection table
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
A generic sortable table with a cursor row, a header pseudo-row and an
id-keyed multi-selection.

Row 0 is the header. Entry ``i`` of the sorted entry list is shown on
row ``i + 1``. A cursor on the header means "no selection".
"""
from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key
from typing import Callable, Generic, List, Optional, Sequence, TypeVar, Union
import logging

from .._zfh import ZfhArgumentError, ZFH_SUBSYSTEM_TABLE, coerce

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_table(msg, *args, **kwargs):
    """A wrapper for table subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_TABLE}, **kwargs)


T = TypeVar("T")

#: Sort direction indicator for ascending order
SORT_ASCENDING_INDICATOR = "↑"

#: Sort direction indicator for descending (inverted) order
SORT_DESCENDING_INDICATOR = "↓"


class Key(Enum):
    """
    Navigation keys understood by tables and browsers.
    """

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    ENTER = "enter"
    SPACE = "space"


#: A key is either a navigation ``Key`` or a single printable character.
KeyInput = Union[Key, str]


class Alignment(Enum):
    """
    Horizontal alignment of a column.
    """

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@dataclass(frozen=True)
class Column:
    """
    A table column: a tagged column kind, a title and an alignment.
    """

    kind: Enum
    title: str
    alignment: Alignment = Alignment.LEFT


@dataclass(frozen=True)
class RenderedRow:
    """
    One rendered table row. ``entry_id`` is ``None`` for the header.
    """

    cells: List[str]
    cursor: bool = False
    multi_selected: bool = False
    entry_id: Optional[str] = None

    @property
    def is_header(self) -> bool:
        """True for the header row."""
        return self.entry_id is None


class StableTable(Generic[T]):
    """
    Sortable, cursor-addressable list of entries with an id-keyed
    multi-selection.

    Entries are identified by ``id_func``: the cursor and the
    multi-selection follow ids, never object identity or position, so
    they survive replacement of the entry list through ``set_data()``.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        id_func: Callable[[T], str],
        cell_func: Callable[[Column, T], str],
        compare_func: Callable[[Column, T, T], int],
        tie_break: Optional[Callable[[T, T], int]] = None,
        multi_select: bool = False,
        name: str = "table",
    ):
        """
        Initialise a new, empty ``StableTable``.

        :param id_func: Returns the stable id of an entry.
        :param cell_func: Renders the cell of an entry for a column.
        :param compare_func: Compares two entries on a column. Returns a
                             negative, zero or positive integer.
        :param tie_break: Orders entries that compare equal on the sort
                          column. Not affected by the sort direction.
        :param multi_select: Enable multi-selection.
        :param name: A name used in log messages.
        """
        self._id_func = id_func
        self._cell_func = cell_func
        self._compare_func = compare_func
        self._tie_break = tie_break
        self._multi_select_enabled = multi_select
        self.name = name

        self._columns: List[Column] = []
        self._entries: List[T] = []
        self._cursor = 0
        self._sort_column: Optional[Column] = None
        self._sort_inverted = False
        self._multi_selection: List[str] = []
        self._selection_callbacks: List[Callable[[Optional[T]], None]] = []

    def __repr__(self):
        return (
            f"StableTable(name={self.name!r}, entries={len(self._entries)}, "
            f"cursor={self._cursor}, sort_column={self.sort_column_title!r}, "
            f"sort_inverted={self._sort_inverted})"
        )

    #
    # Columns and sorting
    #

    @property
    def columns(self) -> List[Column]:
        """The declared columns."""
        return list(self._columns)

    @property
    def sort_column(self) -> Optional[Column]:
        """The active sort column."""
        return self._sort_column

    @property
    def sort_column_title(self) -> Optional[str]:
        """The title of the active sort column."""
        return self._sort_column.title if self._sort_column else None

    @property
    def sort_inverted(self) -> bool:
        """``True`` if the active sort order is descending."""
        return self._sort_inverted

    def set_columns(
        self,
        columns: Sequence[Column],
        default_sort_column: Column,
        default_inverted: bool = False,
    ):
        """
        Declare the column set and the initial sort order, and re-sort.

        :param columns: The columns in display order.
        :param default_sort_column: The initial sort column. Must be one
                                    of ``columns``.
        :param default_inverted: ``True`` to start in descending order.
        :raises: ``ZfhArgumentError`` if ``default_sort_column`` is not in
                 ``columns``.
        """
        if not columns:
            raise ZfhArgumentError("A table needs at least one column")
        if default_sort_column not in columns:
            raise ZfhArgumentError(
                f"Sort column '{default_sort_column.title}' is not a table column"
            )
        self._columns = list(columns)
        self.sort_by(default_sort_column, default_inverted)

    def sort_by(self, column: Column, inverted: bool):
        """
        Sort the table by ``column`` in the given direction, keeping the
        cursor on the selected entry.
        """
        self._sort_column = column
        self._sort_inverted = inverted
        _log_debug_table(
            "Sorting %s by %s (%s)",
            self.name,
            column.title,
            "descending" if inverted else "ascending",
        )
        self._replace_entries(self._entries)

    def _compare(self, a: T, b: T) -> int:
        result = 0
        if self._sort_column is not None:
            result = self._compare_func(self._sort_column, a, b)
            if self._sort_inverted:
                result = -result
        if result == 0 and self._tie_break is not None:
            result = self._tie_break(a, b)
        return result

    def _sorted(self, entries: Sequence[T]) -> List[T]:
        return sorted(entries, key=cmp_to_key(self._compare))

    def _cycle_sort_column(self, step: int):
        if not self._columns:
            return
        index = self._columns.index(self._sort_column) if self._sort_column else 0
        column = self._columns[(index + step) % len(self._columns)]
        self.sort_by(column, self._sort_inverted)

    def next_sort_column(self):
        """Sort by the next declared column, wrapping around."""
        self._cycle_sort_column(1)

    def previous_sort_column(self):
        """Sort by the previous declared column, wrapping around."""
        self._cycle_sort_column(-1)

    def toggle_sort_direction(self):
        """Toggle between ascending and descending order."""
        if self._sort_column is None:
            return
        self.sort_by(self._sort_column, not self._sort_inverted)

    #
    # Data
    #

    def set_data(self, entries: Sequence[T]):
        """
        Replace the entry list.

        The current sort is applied, multi-selection ids that are no longer
        present are dropped, and the cursor stays on the selected id if it
        survives. Otherwise the cursor row is clamped to the new rows.

        :param entries: The new entries, in any order.
        """
        self._replace_entries(entries)
        ids = {self._id_func(entry) for entry in self._entries}
        dropped = [i for i in self._multi_selection if i not in ids]
        if dropped:
            _log_debug_table(
                "Dropping %d stale ids from %s multi-selection", len(dropped), self.name
            )
            self._multi_selection = [i for i in self._multi_selection if i in ids]

    def _replace_entries(self, entries):
        prev_row = self._cursor
        prev_entry = self.get_selected()
        prev_id = self._id_func(prev_entry) if prev_entry is not None else None

        self._entries = self._sorted(entries)

        row = None
        if prev_id is not None:
            row = self._row_of_id(prev_id)
        if row is None:
            row = coerce(prev_row, 0, len(self._entries))
        self._cursor = row
        self._notify_if_changed(prev_row, prev_entry)

    def get_entries(self) -> List[T]:
        """The entries in display order."""
        return list(self._entries)

    def is_empty(self) -> bool:
        """``True`` if the table holds no entries."""
        return not self._entries

    def __len__(self):
        return len(self._entries)

    def _row_of_id(self, entry_id: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if self._id_func(entry) == entry_id:
                return index + 1
        return None

    def find(self, entry_id: str) -> Optional[T]:
        """Return the entry with id ``entry_id``, or ``None``."""
        row = self._row_of_id(entry_id)
        return self._entries[row - 1] if row is not None else None

    #
    # Cursor
    #

    def get_selected(self) -> Optional[T]:
        """
        Return the entry under the cursor, or ``None`` if the cursor is on
        the header row.
        """
        if 1 <= self._cursor <= len(self._entries):
            return self._entries[self._cursor - 1]
        return None

    def selected_index(self) -> Optional[int]:
        """
        Return the index of the selected entry in display order, or
        ``None`` if the cursor is on the header row.
        """
        return self._cursor - 1 if self._cursor > 0 else None

    @property
    def cursor_row(self) -> int:
        """The cursor row. Row 0 is the header."""
        return self._cursor

    def on_header(self) -> bool:
        """``True`` if the cursor is on the header row."""
        return self._cursor == 0

    def _set_cursor(self, row: int):
        prev_row = self._cursor
        prev_entry = self.get_selected()
        self._cursor = coerce(row, 0, len(self._entries))
        self._notify_if_changed(prev_row, prev_entry)

    def select(self, entry: Optional[T]):
        """
        Move the cursor to ``entry``, located by id. If ``entry`` is
        ``None`` or not present the cursor moves to the header row.
        """
        row = 0
        if entry is not None:
            row = self._row_of_id(self._id_func(entry)) or 0
        self._set_cursor(row)

    def select_id(self, entry_id: Optional[str]):
        """Move the cursor to the entry with id ``entry_id``."""
        row = self._row_of_id(entry_id) if entry_id is not None else None
        self._set_cursor(row or 0)

    def select_header(self):
        """Move the cursor to the header row."""
        self._set_cursor(0)

    def select_first_if_exists(self):
        """Move the cursor to the first entry, if there is one."""
        if self._entries:
            self._set_cursor(1)

    def move_cursor(self, delta: int):
        """Move the cursor by ``delta`` rows, clamped to the table."""
        self._set_cursor(self._cursor + delta)

    def on_selection_changed(self, callback: Callable[[Optional[T]], None]):
        """
        Register ``callback`` to be called with the entry under the cursor
        whenever the cursor row or the selected entry changes.
        """
        self._selection_callbacks.append(callback)

    def _notify_if_changed(self, prev_row, prev_entry):
        entry = self.get_selected()
        if prev_row == self._cursor and prev_entry == entry:
            return
        _log_debug_table("%s cursor moved from row %d to %d", self.name, prev_row, self._cursor)
        for callback in list(self._selection_callbacks):
            callback(entry)

    #
    # Multi-selection
    #

    @property
    def multi_select_enabled(self) -> bool:
        """``True`` if multi-selection is enabled for this table."""
        return self._multi_select_enabled

    def set_multi_select(self, enabled: bool):
        """Enable or disable multi-selection, clearing the selection."""
        self._multi_select_enabled = enabled
        self.clear_multi_selection()

    def toggle_multi_select(self, entry: Optional[T]):
        """
        Add ``entry`` to the multi-selection, or remove it if already
        present. A no-op if multi-selection is disabled or ``entry`` is
        ``None``.
        """
        if not self._multi_select_enabled or entry is None:
            return
        entry_id = self._id_func(entry)
        if entry_id in self._multi_selection:
            self._multi_selection.remove(entry_id)
        else:
            self._multi_selection.append(entry_id)

    def is_multi_selected(self, entry: Optional[T]) -> bool:
        """``True`` if ``entry`` is part of the multi-selection."""
        return entry is not None and self._id_func(entry) in self._multi_selection

    def get_multi_selection(self) -> List[T]:
        """Return the multi-selected entries in selection order."""
        selection = []
        for entry_id in self._multi_selection:
            entry = self.find(entry_id)
            if entry is not None:
                selection.append(entry)
        return selection

    def get_multi_selection_ids(self) -> List[str]:
        """Return the multi-selected ids in selection order."""
        return list(self._multi_selection)

    def clear_multi_selection(self):
        """Empty the multi-selection."""
        self._multi_selection = []

    def has_multi_selection(self) -> bool:
        """``True`` if at least one entry is multi-selected."""
        return len(self._multi_selection) > 0

    #
    # Input and output
    #

    def handle_key(self, key: KeyInput) -> bool:
        """
        Handle a navigation key.

        On the header row RIGHT and LEFT cycle the sort column and ENTER
        toggles the sort direction. SPACE toggles multi-selection of the
        entry under the cursor. UP and DOWN move the cursor.

        :param key: The key pressed.
        :returns: ``True`` if the key was consumed.
        :rtype: ``bool``
        """
        if self.on_header():
            if key == Key.RIGHT:
                self.next_sort_column()
                return True
            if key == Key.LEFT:
                self.previous_sort_column()
                return True
            if key == Key.ENTER:
                self.toggle_sort_direction()
                return True

        if key in (Key.SPACE, " "):
            entry = self.get_selected()
            if self._multi_select_enabled and entry is not None:
                self.toggle_multi_select(entry)
                return True
            return False
        if key == Key.UP:
            self.move_cursor(-1)
            return True
        if key == Key.DOWN:
            self.move_cursor(1)
            return True
        return False

    def header_cells(self) -> List[str]:
        """Return the header row titles with the sort indicator."""
        cells = []
        for column in self._columns:
            title = column.title
            if column == self._sort_column:
                indicator = (
                    SORT_DESCENDING_INDICATOR
                    if self._sort_inverted
                    else SORT_ASCENDING_INDICATOR
                )
                title = f"{title} {indicator}"
            cells.append(title)
        return cells

    def render(self) -> List[RenderedRow]:
        """
        Render the table as plain text rows, header first.

        :returns: The header row followed by one row per entry.
        :rtype: ``list`` of ``RenderedRow``
        """
        rows = [RenderedRow(self.header_cells(), cursor=self._cursor == 0)]
        for index, entry in enumerate(self._entries):
            rows.append(
                RenderedRow(
                    [self._cell_func(column, entry) for column in self._columns],
                    cursor=self._cursor == index + 1,
                    multi_selected=self.is_multi_selected(entry),
                    entry_id=self._id_func(entry),
                )
            )
        return rows


__all__ = [
    "Key",
    "KeyInput",
    "Alignment",
    "Column",
    "RenderedRow",
    "StableTable",
    "SORT_ASCENDING_INDICATOR",
    "SORT_DESCENDING_INDICATOR",
]
