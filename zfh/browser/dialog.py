# Copyright Red Hat
#
# zfh/browser/dialog.py - ZFS file history action dialogs
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Action dialogs. Each dialog offers a list of options and delivers the
chosen ``DialogAction`` exactly once through a
``concurrent.futures.Future``. Dismissing a dialog cancels the future.
"""
from concurrent.futures import Future, CancelledError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, TYPE_CHECKING

from .._zfh import ZfhArgumentError, ZfhStateError
from .entries import BrowserEntry, EntryKind, SnapshotBrowserEntry

if TYPE_CHECKING:
    from .events import EventQueue


class DialogAction(Enum):
    """
    Actions offered by dialogs.
    """

    CLOSE = "close"
    RESTORE = "restore"
    RESTORE_RECURSIVE = "restore_recursive"
    DELETE_FILE = "delete_file"
    SHOW_DIFF = "show_diff"
    CREATE_SNAPSHOT = "create_snapshot"
    DESTROY_SNAPSHOT = "destroy_snapshot"
    DESTROY_SNAPSHOT_RECURSIVE = "destroy_snapshot_recursive"
    DESTROY_ALL = "destroy_all"
    DESTROY_ALL_RECURSIVE = "destroy_all_recursive"
    CLEAR_SELECTION = "clear_selection"


@dataclass(frozen=True)
class DialogOption:
    """
    A labelled dialog option.
    """

    action: DialogAction
    label: str


class ActionDialog:
    """
    A dialog with a single, cancellable result.
    """

    def __init__(
        self,
        title: str,
        description: str,
        options: Sequence[DialogOption],
        subject: Any = None,
    ):
        """
        Initialise a new ``ActionDialog``.

        :param title: The dialog title.
        :param description: The question asked by the dialog.
        :param options: The options in display order.
        :param subject: The entry or entries the dialog acts upon.
        """
        if not options:
            raise ZfhArgumentError("A dialog needs at least one option")
        self.title = title
        self.description = description
        self.options = list(options)
        self.subject = subject
        self._future: Future = Future()

    def __repr__(self):
        return (
            f"ActionDialog(title={self.title!r}, "
            f"options={[o.action.value for o in self.options]})"
        )

    @property
    def actions(self) -> List[DialogAction]:
        """The actions offered, in display order."""
        return [option.action for option in self.options]

    @property
    def future(self) -> Future:
        """The future that receives the chosen action."""
        return self._future

    def done(self) -> bool:
        """``True`` once an action was chosen or the dialog dismissed."""
        return self._future.done()

    def choose(self, action: DialogAction):
        """
        Choose ``action`` and complete the dialog.

        :raises: ``ZfhArgumentError`` if ``action`` is not offered, or
                 ``ZfhStateError`` if the dialog already completed.
        """
        if action not in self.actions:
            raise ZfhArgumentError(f"Action '{action.value}' is not offered")
        if self._future.done():
            raise ZfhStateError(f"Dialog '{self.title}' already completed")
        self._future.set_result(action)

    def choose_index(self, index: int):
        """Choose the option at ``index``."""
        if not 0 <= index < len(self.options):
            raise ZfhArgumentError(f"Invalid dialog option index: {index}")
        self.choose(self.options[index].action)

    def dismiss(self):
        """
        Dismiss the dialog without a choice. Waiters on the result see a
        cancelled future. A no-op once the dialog completed.
        """
        self._future.cancel()

    def result(self, timeout: Optional[float] = None) -> DialogAction:
        """
        Wait for and return the chosen action. A dismissed dialog returns
        ``DialogAction.CLOSE``.
        """
        try:
            return self._future.result(timeout=timeout)
        except CancelledError:
            return DialogAction.CLOSE

    def on_result(
        self,
        callback: Callable[["ActionDialog", DialogAction], None],
        queue: Optional["EventQueue"] = None,
    ):
        """
        Call ``callback(dialog, action)`` once the dialog completes. With
        ``queue`` the call is posted to the owner thread. Dismissal
        delivers ``DialogAction.CLOSE``.
        """

        def _done(future):
            action = DialogAction.CLOSE if future.cancelled() else future.result()
            if queue is not None:
                queue.post(callback, self, action)
            else:
                callback(self, action)

        self._future.add_done_callback(_done)

    def render(self) -> List[str]:
        """Render the dialog as plain text lines."""
        lines = [f" {self.title} ", self.description]
        lines += [f"{index + 1}. {option.label}" for index, option in enumerate(self.options)]
        return lines


_CLOSE_OPTION = DialogOption(DialogAction.CLOSE, "Close")


def file_action_dialog(entry: BrowserEntry) -> ActionDialog:
    """
    Build the action dialog for a file browser entry.

    The dialog offers restoring the entry from its snapshot when it has a
    snapshot side, deleting the live entry when it has a live side, and
    showing a content diff when both sides are regular files.
    """
    options = []
    snapshot_file = entry.snapshot_file
    if snapshot_file is not None:
        snapshot_name = snapshot_file.snapshot.name
        options.append(
            DialogOption(DialogAction.RESTORE, f"Restore from '{snapshot_name}'")
        )
        if entry.kind == EntryKind.DIRECTORY:
            options.append(
                DialogOption(
                    DialogAction.RESTORE_RECURSIVE,
                    f"Restore (recursive) from '{snapshot_name}'",
                )
            )
    if entry.has_real:
        options.append(
            DialogOption(DialogAction.DELETE_FILE, f"Delete '{entry.real_file.name}'")
        )
    if entry.has_real and entry.has_snapshot and entry.kind == EntryKind.FILE:
        options.append(DialogOption(DialogAction.SHOW_DIFF, "Show diff"))
    options.append(_CLOSE_OPTION)
    return ActionDialog(
        "Select Action",
        f"What do you want to do with '{entry.name}'?",
        options,
        subject=entry,
    )


def snapshot_action_dialog(entry: SnapshotBrowserEntry) -> ActionDialog:
    """
    Build the action dialog for a single snapshot.
    """
    name = entry.snapshot.name
    options = [
        DialogOption(
            DialogAction.DESTROY_SNAPSHOT_RECURSIVE, f"Destroy (recursive) '{name}'"
        ),
        DialogOption(DialogAction.DESTROY_SNAPSHOT, f"Destroy '{name}'"),
        DialogOption(DialogAction.CREATE_SNAPSHOT, "Create Snapshot"),
        _CLOSE_OPTION,
    ]
    return ActionDialog(
        "Select Action",
        f"What do you want to do with '{name}'?",
        options,
        subject=entry,
    )


def multi_snapshot_action_dialog(
    entries: Sequence[SnapshotBrowserEntry],
) -> ActionDialog:
    """
    Build the action dialog for a multi-selection of snapshots.
    """
    names = ", ".join(entry.snapshot.name for entry in entries)
    options = [
        DialogOption(DialogAction.DESTROY_ALL, "Destroy all"),
        DialogOption(DialogAction.DESTROY_ALL_RECURSIVE, "Destroy all (recursive)"),
        DialogOption(DialogAction.CLEAR_SELECTION, "Clear selection"),
        _CLOSE_OPTION,
    ]
    return ActionDialog(
        "Select Action",
        f"What do you want to do with '{names}'?",
        options,
        subject=list(entries),
    )


def delete_snapshot_dialog(entry: SnapshotBrowserEntry) -> ActionDialog:
    """
    Build the confirmation dialog for destroying a snapshot.
    """
    name = entry.snapshot.name
    options = [
        DialogOption(DialogAction.DESTROY_SNAPSHOT, f"Destroy '{name}'"),
        _CLOSE_OPTION,
    ]
    return ActionDialog(
        "Destroy Snapshot", f"Destroy '{name}'?", options, subject=entry
    )


__all__ = [
    "DialogAction",
    "DialogOption",
    "ActionDialog",
    "file_action_dialog",
    "snapshot_action_dialog",
    "multi_snapshot_action_dialog",
    "delete_snapshot_dialog",
]
