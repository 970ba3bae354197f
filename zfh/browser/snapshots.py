# Copyright Red Hat
#
# zfh/browser/snapshots.py - ZFS file history snapshot browser
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The snapshot browser: the snapshots of the dataset hosting the current
path, with the state of the tracked file in each snapshot.
"""
from typing import Callable, List, Optional, TYPE_CHECKING
import logging

from .._zfh import ZfhArgumentError, ZfhError, ZFH_SUBSYSTEM_NAVIGATION
from .columns import (
    SNAPSHOT_COLUMNS,
    SNAPSHOT_COLUMN_CREATION,
    snapshot_cell,
    snapshot_compare,
    snapshot_tie_break,
)
from .dialog import (
    ActionDialog,
    delete_snapshot_dialog,
    multi_snapshot_action_dialog,
    snapshot_action_dialog,
)
from .entries import BrowserEntry, DiffState, SnapshotBrowserEntry, snapshot_entry_id
from .events import StatusLog
from .fs import LiveFileSystem
from .memory import SelectionMemory
from .reconcile import classify
from .table import Column, Key, KeyInput, StableTable
from ..zfs import SnapshotStore

if TYPE_CHECKING:
    from ..zfs import Dataset, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_navigation(msg, *args, **kwargs):
    """A wrapper for navigation subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_NAVIGATION}, **kwargs)


#: Key that opens the destroy dialog for the selected snapshot
DELETE_KEY = "d"


def _snapshot_name(entry: SnapshotBrowserEntry) -> str:
    return entry.snapshot.name


def _try_stat(fs, path):
    try:
        return fs.stat_entry(path)
    except OSError:
        return None


def snapshot_diff_state(
    snapshot: "Snapshot", path: str, fs: Optional[LiveFileSystem] = None
) -> DiffState:
    """
    Classify the live file at ``path`` against its copy in ``snapshot``.

    :param snapshot: The snapshot to compare with.
    :param path: A live path inside the snapshot's dataset.
    :param fs: The filesystem accessor.
    :returns: ``ADDED``, ``DELETED``, ``MODIFIED`` or ``EQUAL``, or
              ``UNKNOWN`` if the path exists on neither side or lies
              outside the dataset.
    :rtype: ``DiffState``
    """
    fs = fs or LiveFileSystem()
    try:
        snapshot_path = snapshot.get_snapshot_path(path)
    except ZfhArgumentError:
        return DiffState.UNKNOWN
    return classify(_try_stat(fs, path), _try_stat(fs, snapshot_path), True)


class SnapshotBrowser:
    """
    List the snapshots of the dataset hosting a path.

    The cursor is remembered per dataset and matched by snapshot name
    when the list is rebuilt.
    """

    # pylint: disable=too-many-arguments,too-many-instance-attributes
    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        fs: Optional[LiveFileSystem] = None,
        status: Optional[StatusLog] = None,
        sort_column: Column = SNAPSHOT_COLUMN_CREATION,
        sort_inverted: bool = True,
    ):
        """
        Initialise a new ``SnapshotBrowser``.

        :param store: The snapshot store.
        :param fs: The filesystem accessor used to examine the tracked file.
        :param status: The status sink.
        :param sort_column: The initial sort column.
        :param sort_inverted: ``True`` to start in descending order.
        """
        self._store = store or SnapshotStore()
        self._fs = fs or LiveFileSystem()
        self.status = status or StatusLog()

        self.path: Optional[str] = None
        self.dataset: Optional["Dataset"] = None
        self.file_entry: Optional[BrowserEntry] = None
        # The dataset whose snapshots the table currently shows.
        self._table_key: Optional[str] = None
        self._memory: SelectionMemory[SnapshotBrowserEntry] = SelectionMemory()
        self._updating = False

        self._selection_callbacks: List[Callable[[Optional["Snapshot"]], None]] = []
        self._dialog_handler: Optional[Callable[[ActionDialog], None]] = None

        self.table: StableTable[SnapshotBrowserEntry] = StableTable(
            snapshot_entry_id,
            snapshot_cell,
            snapshot_compare,
            tie_break=snapshot_tie_break,
            multi_select=True,
            name="snapshots",
        )
        self.table.set_columns(SNAPSHOT_COLUMNS, sort_column, sort_inverted)
        self.table.on_selection_changed(self._table_selection_changed)

    def __repr__(self):
        return f"SnapshotBrowser(path={self.path!r}, entries={len(self.table)})"

    @property
    def memory(self) -> SelectionMemory:
        """The per-dataset selection memory."""
        return self._memory

    @property
    def store(self) -> SnapshotStore:
        """The snapshot store."""
        return self._store

    #
    # Callbacks
    #

    def on_selection_changed(self, callback: Callable[[Optional["Snapshot"]], None]):
        """Register ``callback`` to receive the selected ``Snapshot`` or ``None``."""
        self._selection_callbacks.append(callback)

    def set_dialog_handler(self, handler: Optional[Callable[[ActionDialog], None]]):
        """Install the handler that presents action dialogs."""
        self._dialog_handler = handler

    def _table_selection_changed(self, entry):
        if self._updating:
            return
        self._notify_selection(entry)

    def _notify_selection(self, entry):
        snapshot = entry.snapshot if entry is not None else None
        for callback in list(self._selection_callbacks):
            callback(snapshot)

    #
    # Queries
    #

    def get_selection(self) -> Optional[SnapshotBrowserEntry]:
        """The entry under the cursor, or ``None`` on the header row."""
        return self.table.get_selected()

    def get_selected_snapshot(self) -> Optional["Snapshot"]:
        """The ``Snapshot`` under the cursor, or ``None``."""
        entry = self.get_selection()
        return entry.snapshot if entry is not None else None

    def get_entries(self) -> List[SnapshotBrowserEntry]:
        """The entries in display order."""
        return self.table.get_entries()

    def get_multi_selection(self) -> List[SnapshotBrowserEntry]:
        """The multi-selected entries."""
        return self.table.get_multi_selection()

    #
    # Updates
    #

    def set_path(self, path: Optional[str], force: bool = False):
        """
        Show the snapshots of the dataset hosting ``path``.

        :param path: The current file browser path, or ``None`` to clear.
        :param force: Rebuild the list even if ``path`` is unchanged.
        """
        if not force and path == self.path:
            return
        self.path = path
        self._update()

    def refresh(self, force: bool = True):
        """Re-read the snapshot list from the store."""
        self._store.refresh()
        self.set_path(self.path, force=force)

    def set_file_entry(self, entry: Optional[BrowserEntry]):
        """
        Track ``entry`` and recompute its diff state in every snapshot. A
        no-op if the same entry is already tracked with the same state.
        """
        current = self.file_entry
        if (
            entry is not None
            and current is not None
            and entry.entry_id == current.entry_id
            and entry.diff_state == current.diff_state
        ):
            return
        self.file_entry = entry
        self._update()

    def _compute_entries(self) -> List[SnapshotBrowserEntry]:
        self.dataset = None
        if not self.path:
            return []
        try:
            self.dataset = self._store.find_host_dataset(self.path)
            snapshots = self.dataset.snapshots
        except ZfhError as err:
            _log_error("%s", err)
            return []

        entries = []
        for snapshot in snapshots:
            state = DiffState.UNKNOWN
            if self.file_entry is not None:
                state = snapshot_diff_state(
                    snapshot, self.file_entry.real_path, self._fs
                )
            entries.append(SnapshotBrowserEntry(snapshot, state))
        return entries

    def _remember_selection(self):
        if self._table_key is None:
            return
        if self.table.is_empty():
            self._memory.forget(self._table_key)
            return
        selected = self.table.get_selected()
        index = self.table.selected_index()
        self._memory.record_selection(
            self._table_key,
            selected.snapshot.name if selected is not None else None,
            index if index is not None else -1,
        )

    def _update(self):
        self._remember_selection()
        entries = self._compute_entries()

        self._updating = True
        try:
            self.table.set_data(entries)
            self._table_key = self.dataset.path if self.dataset is not None else None
            target = None
            if self._table_key is not None:
                target = self._memory.restore_selection(
                    self._table_key, self.table.get_entries(), _snapshot_name
                )
            self.table.select(target)
        finally:
            self._updating = False
        _log_debug_navigation(
            "Snapshot browser shows %d snapshots for '%s'", len(entries), self.path
        )
        self._notify_selection(self.table.get_selected())

    def select_latest(self):
        """Move the cursor to the most recently created snapshot."""
        entries = self.table.get_entries()
        if not entries:
            return
        latest = max(entries, key=lambda e: e.snapshot.creation_timestamp)
        self.table.select(latest)

    def select_snapshot(self, name: str) -> bool:
        """
        Move the cursor to the snapshot called ``name``.

        :returns: ``True`` if the snapshot was found.
        """
        for entry in self.table.get_entries():
            if entry.snapshot.name == name:
                self.table.select(entry)
                return True
        return False

    #
    # Input
    #

    def _show_dialog(self, dialog):
        if self._dialog_handler is not None:
            self._dialog_handler(dialog)
        return dialog

    def open_action_dialog(self) -> Optional[ActionDialog]:
        """
        Open the multi-snapshot dialog if there is a multi-selection, else
        the action dialog for the selected snapshot.
        """
        if self.table.has_multi_selection():
            return self._show_dialog(
                multi_snapshot_action_dialog(self.table.get_multi_selection())
            )
        selection = self.get_selection()
        if selection is None:
            return None
        return self._show_dialog(snapshot_action_dialog(selection))

    def open_delete_dialog(self) -> Optional[ActionDialog]:
        """Open the destroy dialog for the selected snapshot."""
        selection = self.get_selection()
        if selection is None:
            return None
        return self._show_dialog(delete_snapshot_dialog(selection))

    def handle_key(self, key: KeyInput) -> bool:
        """
        Handle a navigation key. With a snapshot selected ENTER opens the
        action dialog and ``d`` opens the destroy dialog.

        :returns: ``True`` if the key was consumed.
        """
        if self.get_selection() is not None:
            if key == Key.ENTER:
                self.open_action_dialog()
                return True
            if key == DELETE_KEY:
                self.open_delete_dialog()
                return True
        return self.table.handle_key(key)


__all__ = ["SnapshotBrowser", "DELETE_KEY", "snapshot_diff_state"]
