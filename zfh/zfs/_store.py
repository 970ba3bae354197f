# Copyright Red Hat
#
# zfh/zfs/_store.py - ZFS file history snapshot store
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Host dataset discovery and snapshot lookup.
"""
from os.path import join, dirname, normpath
from typing import Dict, List
import stat
import os

from .._zfh import (
    ZfhArgumentError,
    ZfhDatasetError,
    ZfhNotFoundError,
    ZfhPermissionError,
    ZfhSystemError,
)
from ._zfs import _log_debug_zfs, ZFS_CONTROL_DIR
from ._dataset import Dataset
from ._snapshot import Snapshot


class SnapshotStore:
    """
    Discovers datasets by walking up from a path to the nearest directory
    containing a ``.zfs`` control directory, and caches them by mount
    point.
    """

    def __init__(self):
        self._datasets: Dict[str, Dataset] = {}

    def find_host_dataset(self, path: str) -> Dataset:
        """
        Return the dataset whose mount point contains ``path``.

        :param path: An absolute path.
        :returns: The host ``Dataset``.
        :rtype: ``Dataset``
        :raises: ``ZfhDatasetError`` if no ancestor of ``path`` holds a
                 ``.zfs`` directory, ``ZfhPermissionError`` if an ancestor
                 cannot be examined.
        """
        if not path:
            raise ZfhArgumentError("Cannot find host dataset for empty path")

        current = normpath(path)
        while True:
            hidden_zfs_path = join(current, ZFS_CONTROL_DIR)
            try:
                zfs_stat = os.lstat(hidden_zfs_path)
            except (FileNotFoundError, NotADirectoryError):
                zfs_stat = None
            except PermissionError as err:
                raise ZfhPermissionError(
                    f"Permission denied examining '{hidden_zfs_path}'"
                ) from err
            except OSError as err:
                raise ZfhSystemError(
                    f"Error examining '{hidden_zfs_path}': {err}"
                ) from err

            if zfs_stat is not None and stat.S_ISDIR(zfs_stat.st_mode):
                return self._dataset_for(current, hidden_zfs_path)

            parent = dirname(current)
            if parent == current:
                raise ZfhDatasetError(f"Could not find dataset for path: {path}")
            current = parent

    def _dataset_for(self, path, hidden_zfs_path):
        if path not in self._datasets:
            _log_debug_zfs("Found dataset mounted at '%s'", path)
            self._datasets[path] = Dataset(path, hidden_zfs_path, self)
        return self._datasets[path]

    def get_dataset(self, key: str) -> Dataset:
        """
        Return a previously discovered dataset by mount point.

        :param key: The dataset mount point.
        :raises: ``ZfhNotFoundError`` if the dataset is unknown.
        """
        try:
            return self._datasets[key]
        except KeyError as err:
            raise ZfhNotFoundError(f"Unknown dataset: {key}") from err

    def list_snapshots(self, path: str) -> List[Snapshot]:
        """
        Return the snapshots of the dataset hosting ``path``.
        """
        return self.find_host_dataset(path).snapshots

    def find_snapshot(self, path: str, name: str) -> Snapshot:
        """
        Return the snapshot called ``name`` of the dataset hosting ``path``.
        """
        return self.find_host_dataset(path).get_snapshot(name)

    def refresh(self):
        """Discard cached snapshot lists of all known datasets."""
        for dataset in self._datasets.values():
            dataset.refresh_snapshots()


__all__ = ["SnapshotStore"]
