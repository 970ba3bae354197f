# Copyright Red Hat
#
# zfh/browser/reconcile.py - ZFS file history live/snapshot reconciliation
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Merge the live listing of a directory with the listing of the same
directory in a snapshot and classify each resulting entry.
"""
from os.path import basename
from typing import List, Optional, TYPE_CHECKING
import logging

from .._zfh import (
    ZfhArgumentError,
    ZfhPermissionError,
    ZfhStatError,
    ZfhSystemError,
    ZFH_SUBSYSTEM_RECONCILE,
)
from .entries import (
    BrowserEntry,
    DiffState,
    EntryStat,
    RealFile,
    SnapshotFile,
)
from .fs import LiveFileSystem

if TYPE_CHECKING:
    from ..zfs import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_reconcile(msg, *args, **kwargs):
    """A wrapper for reconcile subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_RECONCILE}, **kwargs)


def classify(
    real_stat: Optional[EntryStat],
    snapshot_stat: Optional[EntryStat],
    snapshot_selected: bool,
) -> DiffState:
    """
    Determine the ``DiffState`` of an entry from the stats of its live and
    snapshot sides.

    :param real_stat: The live stat, or ``None`` if there is no live side.
    :param snapshot_stat: The snapshot stat, or ``None`` if there is no
                          snapshot side.
    :param snapshot_selected: ``True`` if a snapshot is selected.
    :returns: The classification of the entry.
    :rtype: ``DiffState``
    """
    if not snapshot_selected:
        return DiffState.UNKNOWN
    if real_stat is None and snapshot_stat is None:
        return DiffState.UNKNOWN
    if real_stat is None:
        return DiffState.DELETED
    if snapshot_stat is None:
        return DiffState.ADDED
    if real_stat.differs_from(snapshot_stat):
        return DiffState.MODIFIED
    return DiffState.EQUAL


class Reconciler:
    """
    Produce classified ``BrowserEntry`` lists for a directory, optionally
    overlaid with a snapshot.
    """

    def __init__(self, fs: Optional[LiveFileSystem] = None):
        """
        Initialise a new ``Reconciler``.

        :param fs: The filesystem accessor to use. Defaults to a new
                   ``LiveFileSystem``.
        """
        self._fs = fs or LiveFileSystem()
        #: ``ZfhStatError`` instances for entries skipped by the last pass.
        self.errors: List[ZfhStatError] = []

    def _list_live(self, path):
        try:
            return self._fs.list_entries(path)
        except PermissionError as err:
            raise ZfhPermissionError(f"Permission denied listing '{path}'") from err
        except FileNotFoundError:
            _log_debug_reconcile("Live directory '%s' does not exist", path)
            return []
        except OSError as err:
            raise ZfhSystemError(f"Error listing '{path}': {err}") from err

    def _list_snapshot(self, path, snapshot):
        try:
            snapshot_dir = snapshot.get_snapshot_path(path)
        except ZfhArgumentError as err:
            _log_warn("Cannot map '%s' into snapshot '%s': %s", path, snapshot.name, err)
            return []
        try:
            return self._fs.list_entries(snapshot_dir)
        except FileNotFoundError:
            _log_debug_reconcile(
                "Directory '%s' does not exist in snapshot '%s'", path, snapshot.name
            )
        except OSError as err:
            _log_warn("Error listing snapshot directory '%s': %s", snapshot_dir, err)
        return []

    def _stat(self, path):
        try:
            return self._fs.stat_entry(path)
        except OSError as err:
            stat_err = ZfhStatError(f"Cannot stat '{path}': {err}")
            _log_warn("Skipping entry: %s", stat_err)
            self.errors.append(stat_err)
            return None

    def reconcile(
        self, path: str, snapshot: Optional["Snapshot"] = None
    ) -> List[BrowserEntry]:
        """
        Merge the live entries of ``path`` with the entries of the same
        directory in ``snapshot``.

        Live entries come first in name order, followed by the entries
        that exist only in the snapshot, also in name order.

        :param path: The live directory to reconcile.
        :param snapshot: The selected snapshot, or ``None``.
        :returns: The classified entries.
        :rtype: ``list`` of ``BrowserEntry``
        :raises: ``ZfhPermissionError`` if listing ``path`` is denied, or
                 ``ZfhSystemError`` for other listing failures.
        """
        self.errors = []
        live_paths = self._list_live(path)
        remaining = {}
        if snapshot is not None:
            remaining = dict.fromkeys(self._list_snapshot(path, snapshot))

        _log_debug_reconcile(
            "Reconciling '%s' (%d live, %d snapshot entries, snapshot=%s)",
            path,
            len(live_paths),
            len(remaining),
            snapshot.name if snapshot is not None else None,
        )

        entries = []
        for live_path in live_paths:
            real_stat = self._stat(live_path)
            if real_stat is None:
                continue

            snapshot_files = []
            if snapshot is not None and remaining:
                snapshot_path = snapshot.get_snapshot_path(live_path)
                if snapshot_path in remaining:
                    del remaining[snapshot_path]
                    snapshot_stat = self._stat(snapshot_path)
                    if snapshot_stat is not None:
                        snapshot_files.append(
                            SnapshotFile(snapshot_path, live_path, snapshot_stat, snapshot)
                        )

            name = basename(live_path)
            entries.append(
                BrowserEntry(
                    name,
                    real_file=RealFile(name, live_path, real_stat),
                    snapshot_files=snapshot_files,
                    kind=real_stat.kind,
                    diff_state=classify(
                        real_stat,
                        snapshot_files[0].stat if snapshot_files else None,
                        snapshot is not None,
                    ),
                )
            )

        for snapshot_path in remaining:
            snapshot_stat = self._stat(snapshot_path)
            if snapshot_stat is None:
                continue
            real_path = snapshot.get_real_path(snapshot_path)
            entries.append(
                BrowserEntry(
                    basename(snapshot_path),
                    snapshot_files=[
                        SnapshotFile(snapshot_path, real_path, snapshot_stat, snapshot)
                    ],
                    kind=snapshot_stat.kind,
                    diff_state=DiffState.DELETED,
                )
            )

        return entries


__all__ = ["classify", "Reconciler"]
