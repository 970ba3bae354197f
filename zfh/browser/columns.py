# Copyright Red Hat
#
# zfh/browser/columns.py - ZFS file history browser columns
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Column definitions, cell renderers and comparisons for the file and
snapshot browser tables.
"""
from enum import Enum

from .._zfh import (
    ZfhArgumentError,
    DATETIME_FORMAT,
    format_timestamp_ns,
    size_fmt,
)
from .entries import BrowserEntry, DiffState, EntryKind, SnapshotBrowserEntry
from .table import Alignment, Column


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


#
# File browser
#


class FileColumn(Enum):
    """
    Columns of the file browser table.
    """

    SIZE = "size"
    DATE_TIME = "date_time"
    TYPE = "type"
    DIFF = "diff"
    NAME = "name"

    @classmethod
    def from_name(cls, name: str) -> "FileColumn":
        """
        Look up a column by its configuration name.

        :raises: ``ZfhArgumentError`` for unknown names.
        """
        try:
            return cls(name.lower())
        except ValueError as err:
            raise ZfhArgumentError(f"Unknown file column: '{name}'") from err


COLUMN_SIZE = Column(FileColumn.SIZE, "Size", Alignment.RIGHT)
COLUMN_DATE_TIME = Column(FileColumn.DATE_TIME, "Date/Time")
COLUMN_TYPE = Column(FileColumn.TYPE, "Type", Alignment.CENTER)
COLUMN_DIFF = Column(FileColumn.DIFF, "Diff", Alignment.CENTER)
COLUMN_NAME = Column(FileColumn.NAME, "Name")

#: File browser columns in display order
FILE_COLUMNS = [COLUMN_SIZE, COLUMN_DATE_TIME, COLUMN_TYPE, COLUMN_DIFF, COLUMN_NAME]


def file_column(kind: FileColumn) -> Column:
    """Return the file browser ``Column`` for ``kind``."""
    for column in FILE_COLUMNS:
        if column.kind == kind:
            return column
    raise ZfhArgumentError(f"Unknown file column: {kind}")


_TYPE_SYMBOLS = {
    EntryKind.DIRECTORY: "D",
    EntryKind.FILE: "F",
    EntryKind.LINK: "L",
}

_FILE_DIFF_SYMBOLS = {
    DiffState.ADDED: "+",
    DiffState.DELETED: "-",
    DiffState.MODIFIED: "≠",
    DiffState.EQUAL: "=",
    DiffState.UNKNOWN: "N/A",
}


def file_diff_symbol(state: DiffState) -> str:
    """Return the file browser symbol for ``state``."""
    return _FILE_DIFF_SYMBOLS[state]


def file_type_symbol(kind: EntryKind) -> str:
    """Return the file browser symbol for ``kind``."""
    return _TYPE_SYMBOLS.get(kind, "?")


def file_cell(column: Column, entry: BrowserEntry) -> str:
    """
    Render the cell of ``entry`` for ``column``.

    :param column: A file browser column.
    :param entry: The entry to render.
    :returns: The cell text.
    :rtype: ``str``
    """
    kind = column.kind
    if kind == FileColumn.SIZE:
        return size_fmt(entry.stat.size)
    elif kind == FileColumn.DATE_TIME:
        return format_timestamp_ns(entry.stat.mtime)
    elif kind == FileColumn.TYPE:
        return file_type_symbol(entry.kind)
    elif kind == FileColumn.DIFF:
        return file_diff_symbol(entry.diff_state)
    elif kind == FileColumn.NAME:
        if entry.stat.is_dir:
            return f"/{entry.name}"
        return entry.name
    raise ZfhArgumentError(f"Unknown file column: {kind}")


def file_compare(column: Column, a: BrowserEntry, b: BrowserEntry) -> int:
    """
    Compare two file browser entries on ``column``.
    """
    kind = column.kind
    if kind == FileColumn.SIZE:
        return _cmp(a.stat.size, b.stat.size)
    elif kind == FileColumn.DATE_TIME:
        return _cmp(a.stat.mtime, b.stat.mtime)
    elif kind == FileColumn.TYPE:
        return _cmp(b.kind, a.kind)
    elif kind == FileColumn.DIFF:
        return _cmp(b.diff_state, a.diff_state)
    elif kind == FileColumn.NAME:
        return _cmp(a.name.casefold(), b.name.casefold())
    raise ZfhArgumentError(f"Unknown file column: {kind}")


def file_tie_break(a: BrowserEntry, b: BrowserEntry) -> int:
    """
    Order file browser entries by kind (directories, files, links), then
    by case-insensitive name.
    """
    return _cmp(b.kind, a.kind) or _cmp(a.name.casefold(), b.name.casefold())


#
# Snapshot browser
#


class SnapshotColumn(Enum):
    """
    Columns of the snapshot browser table.
    """

    NAME = "name"
    CREATION = "creation"
    DIFF = "diff"
    USED = "used"
    REFER = "refer"
    RATIO = "ratio"


SNAPSHOT_COLUMN_NAME = Column(SnapshotColumn.NAME, "Name")
SNAPSHOT_COLUMN_CREATION = Column(SnapshotColumn.CREATION, "Creation")
SNAPSHOT_COLUMN_DIFF = Column(SnapshotColumn.DIFF, "Diff", Alignment.CENTER)
SNAPSHOT_COLUMN_USED = Column(SnapshotColumn.USED, "Used", Alignment.RIGHT)
SNAPSHOT_COLUMN_REFER = Column(SnapshotColumn.REFER, "Refer", Alignment.RIGHT)
SNAPSHOT_COLUMN_RATIO = Column(SnapshotColumn.RATIO, "Ratio", Alignment.RIGHT)

#: Snapshot browser columns in display order
SNAPSHOT_COLUMNS = [
    SNAPSHOT_COLUMN_NAME,
    SNAPSHOT_COLUMN_CREATION,
    SNAPSHOT_COLUMN_DIFF,
    SNAPSHOT_COLUMN_USED,
    SNAPSHOT_COLUMN_REFER,
    SNAPSHOT_COLUMN_RATIO,
]

# Seen from the snapshot: a file deleted from the live tree is still
# present in the snapshot.
_SNAPSHOT_DIFF_SYMBOLS = {
    DiffState.ADDED: "-",
    DiffState.DELETED: "+",
    DiffState.MODIFIED: "≠",
    DiffState.EQUAL: "=",
    DiffState.UNKNOWN: "N/A",
}


def snapshot_diff_symbol(state: DiffState) -> str:
    """Return the snapshot browser symbol for ``state``."""
    return _SNAPSHOT_DIFF_SYMBOLS[state]


def snapshot_cell(column: Column, entry: SnapshotBrowserEntry) -> str:
    """
    Render the cell of ``entry`` for ``column``.
    """
    kind = column.kind
    snapshot = entry.snapshot
    if kind == SnapshotColumn.NAME:
        return snapshot.name
    elif kind == SnapshotColumn.CREATION:
        if snapshot.creation is None:
            return "N/A"
        return snapshot.creation.strftime(DATETIME_FORMAT)
    elif kind == SnapshotColumn.DIFF:
        return snapshot_diff_symbol(entry.diff_state)
    elif kind == SnapshotColumn.USED:
        return size_fmt(snapshot.used)
    elif kind == SnapshotColumn.REFER:
        return size_fmt(snapshot.referenced)
    elif kind == SnapshotColumn.RATIO:
        return f"{snapshot.compressratio:.2f}x"
    raise ZfhArgumentError(f"Unknown snapshot column: {kind}")


def snapshot_compare(
    column: Column, a: SnapshotBrowserEntry, b: SnapshotBrowserEntry
) -> int:
    """
    Compare two snapshot browser entries on ``column``.
    """
    kind = column.kind
    snap_a = a.snapshot
    snap_b = b.snapshot
    if kind == SnapshotColumn.NAME:
        return _cmp(snap_a.name.casefold(), snap_b.name.casefold())
    elif kind == SnapshotColumn.CREATION:
        return _cmp(snap_a.creation_timestamp, snap_b.creation_timestamp)
    elif kind == SnapshotColumn.DIFF:
        return _cmp(b.diff_state, a.diff_state)
    elif kind == SnapshotColumn.USED:
        return _cmp(snap_b.used, snap_a.used)
    elif kind == SnapshotColumn.REFER:
        return _cmp(snap_b.referenced, snap_a.referenced)
    elif kind == SnapshotColumn.RATIO:
        return _cmp(snap_a.compressratio, snap_b.compressratio)
    raise ZfhArgumentError(f"Unknown snapshot column: {kind}")


def snapshot_tie_break(a: SnapshotBrowserEntry, b: SnapshotBrowserEntry) -> int:
    """Order snapshot browser entries by creation date, then name."""
    return _cmp(a.snapshot.creation_timestamp, b.snapshot.creation_timestamp) or _cmp(
        a.snapshot.name, b.snapshot.name
    )


__all__ = [
    "FileColumn",
    "COLUMN_SIZE",
    "COLUMN_DATE_TIME",
    "COLUMN_TYPE",
    "COLUMN_DIFF",
    "COLUMN_NAME",
    "FILE_COLUMNS",
    "file_column",
    "file_cell",
    "file_compare",
    "file_tie_break",
    "file_diff_symbol",
    "file_type_symbol",
    "SnapshotColumn",
    "SNAPSHOT_COLUMN_NAME",
    "SNAPSHOT_COLUMN_CREATION",
    "SNAPSHOT_COLUMN_DIFF",
    "SNAPSHOT_COLUMN_USED",
    "SNAPSHOT_COLUMN_REFER",
    "SNAPSHOT_COLUMN_RATIO",
    "SNAPSHOT_COLUMNS",
    "snapshot_cell",
    "snapshot_compare",
    "snapshot_tie_break",
    "snapshot_diff_symbol",
]
