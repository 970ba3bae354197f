# Copyright Red Hat
#
# zfh/browser/session.py - ZFS file history browser session
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
A browser session: the file browser and the snapshot browser wired
together around a single event queue and status sink.
"""
from enum import Enum
from typing import Callable, List, Optional
import logging
import os
import shutil

from .._zfh import ZfhError, ZFH_SUBSYSTEM_NAVIGATION
from ..config import ZfhConfig
from ..diff import ContentDiff, diff_entry
from ..zfs import SnapshotStore
from .columns import FileColumn, file_column
from .dialog import ActionDialog, DialogAction
from .entries import BrowserEntry, EntryKind
from .events import EventQueue, StatusLog
from .fs import LiveFileSystem
from .navigation import FileBrowser
from .snapshots import SnapshotBrowser
from .table import KeyInput
from .watch import FileWatcher

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_navigation(msg, *args, **kwargs):
    """A wrapper for navigation subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_NAVIGATION}, **kwargs)


class Pane(Enum):
    """
    The panes of a session that can hold the input focus.
    """

    FILES = "files"
    SNAPSHOTS = "snapshots"


class BrowserSession:
    """
    Owns the panes of a browser and executes the actions chosen in their
    dialogs.

    All methods must be called on the owner thread. Work arriving from
    other threads is run by ``process_events()``.
    """

    # pylint: disable=too-many-arguments,too-many-instance-attributes
    def __init__(
        self,
        path: str,
        config: Optional[ZfhConfig] = None,
        store: Optional[SnapshotStore] = None,
        fs: Optional[LiveFileSystem] = None,
        watch: Optional[bool] = None,
        watcher_factory: Callable = FileWatcher,
    ):
        """
        Initialise a new ``BrowserSession`` showing ``path``.

        :param path: The initial path.
        :param config: The configuration. Defaults are used if omitted.
        :param store: The snapshot store.
        :param fs: The filesystem accessor.
        :param watch: Override the ``watch`` configuration value.
        :param watcher_factory: Creates directory watchers.
        """
        self.config = config or ZfhConfig()
        self.queue = EventQueue()
        self.status = StatusLog()
        self.store = store or SnapshotStore()
        self.fs = fs or LiveFileSystem()
        self.focus = Pane.FILES
        self.dialog: Optional[ActionDialog] = None
        self.last_diff: Optional[ContentDiff] = None
        self._dialog_listeners: List[Callable[[ActionDialog], None]] = []
        self._diff_listeners: List[Callable[[ContentDiff], None]] = []

        self.snapshot_browser = SnapshotBrowser(
            store=self.store, fs=self.fs, status=self.status
        )
        self.file_browser = FileBrowser(
            fs=self.fs,
            status=self.status,
            queue=self.queue,
            watch=self.config.watch if watch is None else watch,
            watcher_factory=watcher_factory,
            sort_column=file_column(FileColumn.from_name(self.config.sort_column)),
            sort_inverted=self.config.sort_inverted,
        )

        self.file_browser.on_path_changed(self.snapshot_browser.set_path)
        self.file_browser.on_selection_changed(self.snapshot_browser.set_file_entry)
        self.snapshot_browser.on_selection_changed(
            self.file_browser.set_selected_snapshot
        )
        self.file_browser.set_dialog_handler(self._open_file_dialog)
        self.snapshot_browser.set_dialog_handler(self._open_snapshot_dialog)

        self.file_browser.set_path(path, check_exists=True)

    def __repr__(self):
        return f"BrowserSession(path={self.file_browser.path!r})"

    @property
    def path(self) -> Optional[str]:
        """The current path of the file browser."""
        return self.file_browser.path

    def on_dialog(self, listener: Callable[[ActionDialog], None]):
        """Register ``listener`` to be called with each dialog opened."""
        self._dialog_listeners.append(listener)

    def on_diff(self, listener: Callable[[ContentDiff], None]):
        """Register ``listener`` to be called with each content diff shown."""
        self._diff_listeners.append(listener)

    #
    # Event loop
    #

    def process_events(self, timeout: Optional[float] = None) -> int:
        """
        Run work posted by watchers and dialogs on the calling thread.

        :param timeout: Wait up to ``timeout`` seconds for the first event.
        :returns: The number of events run.
        """
        return self.queue.process_pending(timeout=timeout)

    def toggle_focus(self) -> Pane:
        """Move the input focus to the other pane."""
        self.focus = Pane.SNAPSHOTS if self.focus == Pane.FILES else Pane.FILES
        return self.focus

    def handle_key(self, key: KeyInput) -> bool:
        """Pass ``key`` to the focused pane."""
        if self.focus == Pane.FILES:
            return self.file_browser.handle_key(key)
        return self.snapshot_browser.handle_key(key)

    def refresh(self):
        """Re-read both panes."""
        self.snapshot_browser.refresh()
        self.file_browser.refresh()

    def close(self):
        """Dismiss any open dialog and stop watching."""
        if self.dialog is not None:
            self.dialog.dismiss()
            self.dialog = None
        self.file_browser.close()

    #
    # Dialogs
    #

    def _show(self, dialog: ActionDialog, callback):
        if self.dialog is not None and not self.dialog.done():
            self.dialog.dismiss()
        self.dialog = dialog
        dialog.on_result(callback, self.queue)
        for listener in list(self._dialog_listeners):
            listener(dialog)

    def _open_file_dialog(self, dialog: ActionDialog):
        self._show(dialog, self._file_action)

    def _open_snapshot_dialog(self, dialog: ActionDialog):
        self._show(dialog, self._snapshot_action)

    def _dialog_closed(self, dialog):
        if self.dialog is dialog:
            self.dialog = None

    def _file_action(self, dialog: ActionDialog, action: DialogAction):
        self._dialog_closed(dialog)
        entry: BrowserEntry = dialog.subject
        _log_debug_navigation("File action %s on '%s'", action.value, entry.real_path)
        if action == DialogAction.CLOSE:
            return
        if action == DialogAction.RESTORE:
            self.restore_entry(entry)
        elif action == DialogAction.RESTORE_RECURSIVE:
            self.restore_entry(entry, recursive=True)
        elif action == DialogAction.DELETE_FILE:
            self.delete_entry(entry)
        elif action == DialogAction.SHOW_DIFF:
            self.show_diff(entry)

    def _snapshot_action(self, dialog: ActionDialog, action: DialogAction):
        self._dialog_closed(dialog)
        _log_debug_navigation("Snapshot action %s", action.value)
        if action == DialogAction.CLOSE:
            return
        if action == DialogAction.CREATE_SNAPSHOT:
            self.create_snapshot()
        elif action in (
            DialogAction.DESTROY_SNAPSHOT,
            DialogAction.DESTROY_SNAPSHOT_RECURSIVE,
        ):
            recursive = action == DialogAction.DESTROY_SNAPSHOT_RECURSIVE
            self.destroy_snapshots([dialog.subject.snapshot], recursive=recursive)
        elif action in (DialogAction.DESTROY_ALL, DialogAction.DESTROY_ALL_RECURSIVE):
            recursive = action == DialogAction.DESTROY_ALL_RECURSIVE
            self.destroy_snapshots(
                [entry.snapshot for entry in dialog.subject], recursive=recursive
            )
            self.snapshot_browser.table.clear_multi_selection()
        elif action == DialogAction.CLEAR_SELECTION:
            self.snapshot_browser.table.clear_multi_selection()

    #
    # Actions
    #

    def _refresh_after_change(self):
        self.snapshot_browser.refresh()
        self.file_browser.refresh()

    def restore_entry(self, entry: BrowserEntry, recursive: bool = False) -> bool:
        """
        Restore ``entry`` from the snapshot it was reconciled against.

        :returns: ``True`` on success.
        """
        snapshot_file = entry.snapshot_file
        if snapshot_file is None:
            self.status.warning(f"'{entry.name}' has no snapshot copy to restore")
            return False
        snapshot = snapshot_file.snapshot
        try:
            if recursive:
                snapshot.restore_dir_recursive(snapshot_file.path)
            else:
                snapshot.restore_file(snapshot_file.path)
        except ZfhError as err:
            self.status.error(f"Failed to restore '{entry.name}': {err}")
            return False
        self._refresh_after_change()
        self.status.success(f"Restored '{entry.name}' from '{snapshot.name}'.")
        return True

    def delete_entry(self, entry: BrowserEntry) -> bool:
        """
        Delete the live side of ``entry``. Directories are removed with
        their contents.

        :returns: ``True`` on success.
        """
        if not entry.has_real:
            self.status.warning(f"'{entry.name}' does not exist")
            return False
        path = entry.real_path
        try:
            if entry.real_file.stat.kind == EntryKind.DIRECTORY:
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as err:
            self.status.error(f"Failed to delete '{entry.name}': {err}")
            return False
        self._refresh_after_change()
        self.status.success(f"Deleted '{entry.name}'.")
        return True

    def show_diff(self, entry: BrowserEntry) -> Optional[ContentDiff]:
        """
        Compute the content diff of ``entry`` against its snapshot copy and
        pass it to the diff listeners.

        :returns: The diff, or ``None`` if it could not be computed.
        """
        try:
            content_diff = diff_entry(
                entry,
                use_magic=self.config.use_magic,
                max_size=self.config.max_content_diff_size,
            )
        except (ZfhError, OSError) as err:
            self.status.error(f"Cannot diff '{entry.name}': {err}")
            return None
        self.last_diff = content_diff
        self.status.info(f"{entry.name}: {content_diff.summary}")
        for listener in list(self._diff_listeners):
            listener(content_diff)
        return content_diff

    def create_snapshot(self, name: Optional[str] = None):
        """
        Snapshot the dataset hosting the current path and select the new
        snapshot.

        :returns: The new ``Snapshot`` or ``None`` on failure.
        """
        dataset = self.snapshot_browser.dataset
        if dataset is None:
            self.status.error("Failed to create snapshot: no dataset")
            return None
        try:
            snapshot = dataset.create_snapshot(name)
        except ZfhError as err:
            self.status.error(f"Failed to create snapshot: {err}")
            return None
        self.snapshot_browser.refresh()
        self.snapshot_browser.select_latest()
        self.status.success(f"Snapshot '{snapshot.name}' created.")
        return snapshot

    def destroy_snapshots(self, snapshots, recursive: bool = False) -> int:
        """
        Destroy each of ``snapshots``. A failure is reported and the
        remaining snapshots are still destroyed.

        :returns: The number of snapshots destroyed.
        """
        destroyed = []
        failed = []
        for snapshot in snapshots:
            try:
                snapshot.destroy(recursive=recursive)
            except ZfhError as err:
                failed.append(err)
                continue
            destroyed.append(snapshot.name)
        self._refresh_after_change()
        for name in destroyed:
            self.status.success(f"Snapshot '{name}' destroyed.")
        for err in failed:
            self.status.error(f"Failed to destroy snapshot: {err}")
        return len(destroyed)


__all__ = ["BrowserSession", "Pane"]
