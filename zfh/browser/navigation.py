# Copyright Red Hat
#
# zfh/browser/navigation.py - ZFS file history file browser
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The file browser: directory navigation over reconciled live and snapshot
entries with per-directory cursor memory.
"""
from os.path import abspath, dirname, normpath
from typing import Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
import logging

from .._zfh import (
    ZfhInvalidTargetError,
    ZfhPermissionError,
    ZfhSystemError,
    ZFH_SUBSYSTEM_NAVIGATION,
)
from .columns import (
    FILE_COLUMNS,
    COLUMN_TYPE,
    file_cell,
    file_compare,
    file_tie_break,
)
from .dialog import ActionDialog, file_action_dialog
from .entries import BrowserEntry, EntryKind, entry_id
from .events import EventQueue, StatusLog
from .fs import LiveFileSystem
from .memory import SelectionMemory
from .reconcile import Reconciler
from .table import Column, Key, KeyInput, StableTable
from .watch import FileWatcher

if TYPE_CHECKING:
    from ..zfs import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_navigation(msg, *args, **kwargs):
    """A wrapper for navigation subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_NAVIGATION}, **kwargs)


#: Status message shown while a directory is reconciled
REFRESHING_MSG = "Refreshing..."


def _snapshot_id(snapshot: Optional["Snapshot"]) -> Optional[str]:
    return snapshot.path if snapshot is not None else None


class FileBrowser:
    """
    Navigate a directory tree overlaid with an optional snapshot.

    The browser owns a ``StableTable`` of ``BrowserEntry`` values for the
    current path. Entering a directory, going up, switching snapshots and
    change notifications all reconcile the current path again and restore
    the cursor from the per-path ``SelectionMemory``.
    """

    # pylint: disable=too-many-arguments,too-many-instance-attributes
    def __init__(
        self,
        path: Optional[str] = None,
        fs: Optional[LiveFileSystem] = None,
        reconciler: Optional[Reconciler] = None,
        status: Optional[StatusLog] = None,
        queue: Optional[EventQueue] = None,
        watch: bool = True,
        watcher_factory: Callable = FileWatcher,
        sort_column: Column = COLUMN_TYPE,
        sort_inverted: bool = False,
    ):
        """
        Initialise a new ``FileBrowser``.

        :param path: The initial path. If given the browser reconciles it
                     immediately.
        :param fs: The filesystem accessor.
        :param reconciler: The reconciler. Defaults to one using ``fs``.
        :param status: The status sink.
        :param queue: The owner thread's event queue, used by the watcher.
        :param watch: Watch the current directory for changes.
        :param watcher_factory: Creates a watcher for a path and a queue.
        :param sort_column: The initial sort column.
        :param sort_inverted: ``True`` to start in descending order.
        """
        self._fs = fs or LiveFileSystem()
        self._reconciler = reconciler or Reconciler(self._fs)
        self.status = status or StatusLog()
        self._queue = queue or EventQueue()
        self._watch_enabled = watch
        self._watcher_factory = watcher_factory
        self._watcher = None

        self.path: Optional[str] = None
        self.snapshot: Optional["Snapshot"] = None
        # The path whose entries the table currently shows.
        self._table_path: Optional[str] = None
        # Entry to select once the pending path change completes.
        self._pending_select: Optional[Tuple[str, str]] = None
        # The path each directory was last left for.
        self._left_for: Dict[str, str] = {}
        self._memory: SelectionMemory[BrowserEntry] = SelectionMemory()
        self._updating = False

        self._selection_callbacks: List[Callable[[Optional[BrowserEntry]], None]] = []
        self._path_callbacks: List[Callable[[str], None]] = []
        self._dialog_handler: Optional[Callable[[ActionDialog], None]] = None

        self.table: StableTable[BrowserEntry] = StableTable(
            entry_id, file_cell, file_compare, tie_break=file_tie_break, name="files"
        )
        self.table.set_columns(FILE_COLUMNS, sort_column, sort_inverted)
        self.table.on_selection_changed(self._table_selection_changed)

        if path is not None:
            self.set_path(path)

    def __repr__(self):
        return (
            f"FileBrowser(path={self.path!r}, "
            f"snapshot={self.snapshot.name if self.snapshot else None!r})"
        )

    @property
    def memory(self) -> SelectionMemory:
        """The per-path selection memory."""
        return self._memory

    #
    # Callbacks
    #

    def on_selection_changed(self, callback: Callable[[Optional[BrowserEntry]], None]):
        """Register ``callback`` to receive the selected entry or ``None``."""
        self._selection_callbacks.append(callback)

    def on_path_changed(self, callback: Callable[[str], None]):
        """Register ``callback`` to receive the new current path."""
        self._path_callbacks.append(callback)

    def set_dialog_handler(self, handler: Optional[Callable[[ActionDialog], None]]):
        """Install the handler that presents action dialogs."""
        self._dialog_handler = handler

    def _table_selection_changed(self, entry):
        if self._updating:
            return
        self._notify_selection(entry)

    def _notify_selection(self, entry):
        for callback in list(self._selection_callbacks):
            callback(entry)

    def _notify_path(self, path):
        for callback in list(self._path_callbacks):
            callback(path)

    #
    # Queries
    #

    def get_selection(self) -> Optional[BrowserEntry]:
        """The entry under the cursor, or ``None`` on the header row."""
        return self.table.get_selected()

    def get_entries(self) -> List[BrowserEntry]:
        """The entries of the current path in display order."""
        return self.table.get_entries()

    #
    # Navigation
    #

    def _check_target(self, path: str):
        """
        Raise ``ZfhInvalidTargetError`` if ``path`` is not a directory.
        Errors examining ``path`` propagate as ``OSError``.
        """
        if not self._fs.stat_entry(path).is_dir:
            raise ZfhInvalidTargetError(
                f"Tried to enter path which is not a directory: {path}"
            )

    def set_path(self, path: str, check_exists: bool = False) -> bool:
        """
        Make ``path`` the current path.

        With ``check_exists`` a path that cannot be examined or listed is
        reported on the status sink and the current path is kept, and a
        path that is not a directory redirects to its parent.

        :param path: The new path.
        :param check_exists: Validate ``path`` before entering it.
        :returns: ``True`` if the current path changed or was already
                  ``path``.
        :rtype: ``bool``
        """
        path = normpath(abspath(path))
        if check_exists:
            try:
                self._check_target(path)
            except OSError as err:
                self.status.error(f"Cannot enter '{path}': {err.strerror or err}")
                return False
            except ZfhInvalidTargetError as err:
                _log_warn("%s", err)
                return self.set_path(dirname(path), check_exists=False)
            try:
                self._fs.list_entries(path)
            except OSError as err:
                self.status.error(f"Cannot list '{path}': {err.strerror or err}")
                return False

        if path == self.path:
            return True
        self._change_path(path)
        return True

    def _change_path(self, path: str, select_id: Optional[str] = None):
        _log_debug_navigation("Changing path from '%s' to '%s'", self.path, path)
        self.path = path
        if select_id is not None:
            self._pending_select = (path, select_id)
        try:
            self._notify_path(path)
            self.refresh()
        finally:
            self._pending_select = None
            self._left_for.pop(path, None)

    def enter(self, entry: Optional[BrowserEntry]) -> bool:
        """
        Enter the directory or link ``entry``. Files are not entered.
        Entries that exist only in the snapshot are entered without
        checking the live path.

        :returns: ``True`` if the current path changed.
        """
        if entry is None or entry.kind == EntryKind.FILE:
            return False
        if not entry.has_real and entry.has_snapshot:
            return self.set_path(entry.real_path, check_exists=False)
        return self.set_path(entry.real_path, check_exists=True)

    def go_up(self) -> bool:
        """
        Change to the parent of the current path and select the directory
        just left, unless the parent was last left for that directory and
        remembers its own selection. A no-op at the root.

        :returns: ``True`` if the current path changed.
        """
        if self.path is None:
            return False
        parent = dirname(self.path)
        if parent == self.path:
            return False
        self._change_path(parent, select_id=self.path)
        return True

    def set_selected_snapshot(self, snapshot: Optional["Snapshot"]):
        """
        Overlay the current path with ``snapshot``, or remove the overlay
        with ``None``. Selecting the same snapshot again is a no-op.
        """
        if _snapshot_id(snapshot) == _snapshot_id(self.snapshot):
            return
        _log_debug_navigation(
            "Selected snapshot changed to '%s'", snapshot.name if snapshot else None
        )
        self.snapshot = snapshot
        if self.path is not None:
            self.refresh()

    #
    # Refresh
    #

    def _remember_selection(self):
        if self._table_path is None:
            return
        if self._table_path != self.path:
            self._left_for[self._table_path] = self.path
        if self.table.is_empty():
            # Nothing was selectable, so there is nothing to restore.
            self._memory.forget(self._table_path)
            return
        selected = self.table.get_selected()
        index = self.table.selected_index()
        self._memory.record_selection(
            self._table_path,
            selected.entry_id if selected is not None else None,
            index if index is not None else -1,
        )

    def _select_after_update(self, select_id):
        if select_id is not None:
            selected = self.table.find(select_id)
            if selected is not None:
                return selected
        if self._pending_select is not None and self._pending_select[0] == self.path:
            exited = self._pending_select[1]
            # The parent's memory only applies if it was recorded when
            # leaving the parent for the directory just exited.
            if self._left_for.get(self.path) != exited or not self._memory.has_memory(
                self.path
            ):
                selected = self.table.find(exited)
                if selected is not None:
                    return selected
        return self._memory.restore_selection(
            self.path, self.table.get_entries(), entry_id
        )

    def _update_table(self, select_id: Optional[str] = None):
        self._remember_selection()
        try:
            entries = self._reconciler.reconcile(self.path, self.snapshot)
        except ZfhPermissionError as err:
            self.status.error(f"Permission Error: {err}")
            entries = []
        except ZfhSystemError as err:
            self.status.error(f"Cannot list path: {err}")
            entries = []
        for stat_err in self._reconciler.errors:
            self.status.warning(str(stat_err))

        self._updating = True
        try:
            self.table.set_data(entries)
            self._table_path = self.path
            self.table.select(self._select_after_update(select_id))
        finally:
            self._updating = False
        self._notify_selection(self.table.get_selected())

    def _update_watcher(self):
        self._stop_watcher()
        if not self._watch_enabled or not self._fs.is_dir(self.path):
            return
        watcher = self._watcher_factory(self.path, self._queue)
        try:
            watcher.watch(self._on_change)
        except ZfhSystemError as err:
            self.status.error(str(err))
            return
        self._watcher = watcher

    def _stop_watcher(self):
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _on_change(self, changed_path: str):
        _log_debug_navigation("Refreshing '%s' after change of '%s'", self.path, changed_path)
        self.refresh()

    def refresh(self, select_id: Optional[str] = None):
        """
        Reconcile the current path again, restore the cursor and re-arm
        the watcher.

        :param select_id: Select the entry with this id in preference to
                          the remembered selection, if it is present.
        """
        if self.path is None:
            return
        refreshing = self.status.info(REFRESHING_MSG)
        self._update_table(select_id=select_id)
        self._update_watcher()
        # Errors reported during the update stay on the status line.
        if self.status.current is refreshing:
            self.status.clear()

    #
    # Input
    #

    def open_action_dialog(self) -> Optional[ActionDialog]:
        """
        Build the action dialog for the selected entry and pass it to the
        dialog handler.

        :returns: The dialog, or ``None`` if nothing is selected.
        """
        selection = self.get_selection()
        if selection is None:
            return None
        dialog = file_action_dialog(selection)
        if self._dialog_handler is not None:
            self._dialog_handler(dialog)
        return dialog

    def handle_key(self, key: KeyInput) -> bool:
        """
        Handle a navigation key.

        RIGHT enters the selected entry and ENTER opens its action dialog.
        LEFT goes up when an entry is selected or the listing is empty, and
        ENTER on an empty listing goes up. Everything else is handled by
        the table.

        :returns: ``True`` if the key was consumed.
        """
        selection = self.get_selection()
        if selection is not None:
            if key == Key.RIGHT:
                self.enter(selection)
                return True
            if key == Key.ENTER:
                self.open_action_dialog()
                return True
        empty = self.table.is_empty()
        if key == Key.LEFT and (selection is not None or empty):
            self.go_up()
            return True
        if key == Key.ENTER and empty:
            self.go_up()
            return True
        return self.table.handle_key(key)

    def close(self):
        """Stop watching the current path."""
        self._stop_watcher()


__all__ = ["FileBrowser", "REFRESHING_MSG"]
