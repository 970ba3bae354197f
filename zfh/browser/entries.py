# Copyright Red Hat
#
# zfh/browser/entries.py - ZFS file history browser data model
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Entry types shared by the file and snapshot browsers.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, TYPE_CHECKING
import stat as stat_module
import os

from .._zfh import ZfhArgumentError

if TYPE_CHECKING:
    from ..zfs import Snapshot


class EntryKind(IntEnum):
    """
    Kind of a browser entry. Sorting by kind in descending order yields
    directories, then files, then links.
    """

    LINK = 1
    FILE = 2
    DIRECTORY = 3


class DiffState(IntEnum):
    """
    Classification of a live entry relative to its snapshot copy.
    """

    ADDED = 0
    DELETED = 1
    MODIFIED = 2
    EQUAL = 3
    UNKNOWN = 4


def kind_from_mode(mode: int) -> EntryKind:
    """
    Map an ``lstat()`` mode to an ``EntryKind``. Links take precedence
    over directories, and everything that is neither is a file.

    :param mode: The ``st_mode`` value returned by ``os.lstat()``.
    :returns: The corresponding ``EntryKind``.
    :rtype: ``EntryKind``
    """
    if stat_module.S_ISLNK(mode):
        return EntryKind.LINK
    if stat_module.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    return EntryKind.FILE


@dataclass(frozen=True)
class EntryStat:
    """
    The subset of file status used to display and compare entries.
    """

    name: str
    kind: EntryKind
    size: int
    mtime: int
    mode: int

    @classmethod
    def from_stat(
        cls, name: str, st: os.stat_result, lst: os.stat_result
    ) -> "EntryStat":
        """
        Build an ``EntryStat`` from a followed ``stat()`` result and the
        ``lstat()`` result of the same path.

        :param name: The entry base name.
        :param st: The result of ``os.stat()`` (links followed).
        :param lst: The result of ``os.lstat()`` (links not followed).
        :returns: A new ``EntryStat``.
        """
        return cls(
            name=name,
            kind=kind_from_mode(lst.st_mode),
            size=st.st_size,
            mtime=st.st_mtime_ns,
            mode=st.st_mode,
        )

    @property
    def is_dir(self) -> bool:
        """True if the followed stat describes a directory."""
        return stat_module.S_ISDIR(self.mode)

    def differs_from(self, other: "EntryStat") -> bool:
        """
        Return ``True`` if any compared attribute differs between the two
        stats: kind, permission mode, modification time, size or name.
        """
        return (
            self.kind != other.kind
            or self.mode != other.mode
            or self.mtime != other.mtime
            or self.size != other.size
            or self.name != other.name
        )


@dataclass(frozen=True)
class RealFile:
    """
    An entry that exists in the live tree.
    """

    name: str
    path: str
    stat: EntryStat


@dataclass(frozen=True)
class SnapshotFile:
    """
    An entry captured in a snapshot.

    ``path`` is the location inside the snapshot directory and
    ``original_path`` the corresponding location in the live tree.
    """

    path: str
    original_path: str
    stat: EntryStat
    snapshot: "Snapshot" = field(compare=False)


class BrowserEntry:
    """
    One row of the file browser: a live entry, its snapshot copy or both.
    """

    def __init__(
        self,
        name: str,
        real_file: Optional[RealFile] = None,
        snapshot_files: Optional[List[SnapshotFile]] = None,
        kind: Optional[EntryKind] = None,
        diff_state: DiffState = DiffState.UNKNOWN,
    ):
        """
        Initialise a new ``BrowserEntry``.

        :param name: The display name of the entry.
        :param real_file: The live side of the entry, if present.
        :param snapshot_files: The snapshot side of the entry, if present.
        :param kind: The entry kind. Defaults to the kind of the preferred
                     stat.
        :param diff_state: The classification of this entry.
        :raises: ``ZfhArgumentError`` if neither side is given.
        """
        snapshot_files = list(snapshot_files or [])
        if real_file is None and not snapshot_files:
            raise ZfhArgumentError(
                f"BrowserEntry '{name}' needs a real file or a snapshot file"
            )
        self.name = name
        self.real_file = real_file
        self.snapshot_files = snapshot_files
        self.kind = kind if kind is not None else self.stat.kind
        self.diff_state = diff_state

    def __repr__(self):
        return (
            f"BrowserEntry(name={self.name!r}, entry_id={self.entry_id!r}, "
            f"kind={self.kind.name}, diff_state={self.diff_state.name})"
        )

    def __eq__(self, other):
        if not isinstance(other, BrowserEntry):
            return NotImplemented
        return (
            self.name == other.name
            and self.real_file == other.real_file
            and self.snapshot_files == other.snapshot_files
            and self.kind == other.kind
            and self.diff_state == other.diff_state
        )

    __hash__ = None

    @property
    def entry_id(self) -> str:
        """
        The stable identifier of this entry: the live path, or the live
        path a snapshot-only entry maps to.
        """
        return self.real_path

    @property
    def has_real(self) -> bool:
        """True if the entry exists in the live tree."""
        return self.real_file is not None

    @property
    def has_snapshot(self) -> bool:
        """True if the entry exists in the selected snapshot."""
        return len(self.snapshot_files) > 0

    @property
    def real_path(self) -> str:
        """The live path of this entry, whether or not it exists."""
        if self.has_real:
            return self.real_file.path
        return self.snapshot_files[0].original_path

    @property
    def stat(self) -> EntryStat:
        """The live stat if available, else the snapshot stat."""
        if self.has_real:
            return self.real_file.stat
        return self.snapshot_files[0].stat

    @property
    def snapshot_file(self) -> Optional[SnapshotFile]:
        """The populated ``SnapshotFile``, or ``None``."""
        return self.snapshot_files[0] if self.snapshot_files else None


def entry_id(entry: BrowserEntry) -> str:
    """Identity function used to key file browser tables."""
    return entry.entry_id


@dataclass(frozen=True)
class SnapshotBrowserEntry:
    """
    One row of the snapshot browser.
    """

    snapshot: "Snapshot"
    diff_state: DiffState = DiffState.UNKNOWN

    @property
    def entry_id(self) -> str:
        """The snapshot directory path."""
        return self.snapshot.path

    @property
    def contains_file(self) -> bool:
        """True if the tracked file exists in this snapshot."""
        return self.diff_state in (
            DiffState.DELETED,
            DiffState.MODIFIED,
            DiffState.EQUAL,
        )


def snapshot_entry_id(entry: SnapshotBrowserEntry) -> str:
    """Identity function used to key snapshot browser tables."""
    return entry.entry_id


__all__ = [
    "EntryKind",
    "DiffState",
    "kind_from_mode",
    "EntryStat",
    "RealFile",
    "SnapshotFile",
    "BrowserEntry",
    "entry_id",
    "SnapshotBrowserEntry",
    "snapshot_entry_id",
]
