# Copyright Red Hat
#
# zfh/zfs/_dataset.py - ZFS file history dataset
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
ZFS dataset representation and snapshot discovery.
"""
from datetime import datetime
from os.path import join, isdir
from typing import Dict, List, Optional, TYPE_CHECKING
import os

from .._zfh import (
    ZfhCalloutError,
    ZfhNotFoundError,
    ZfhSystemError,
    SNAPSHOT_NAME_PREFIX,
    SNAPSHOT_TIME_FORMAT,
)
from ._zfs import (
    _log_debug_zfs,
    _log_info,
    _log_warn,
    zfs_present,
    get_dataset_name,
    get_properties,
    create_snapshot,
    check_snapshot_name,
    parse_int,
    parse_ratio,
    SNAPSHOT_PROPERTIES,
    DATASET_PROPERTIES,
    ZFS_TYPE_SNAPSHOT,
)
from ._snapshot import Snapshot, snapshots_dir_for

if TYPE_CHECKING:
    from ._store import SnapshotStore


def default_snapshot_name(now: Optional[datetime] = None) -> str:
    """
    Return the default name for a snapshot created by zfh at ``now``.
    """
    now = now or datetime.now()
    return SNAPSHOT_NAME_PREFIX + now.strftime(SNAPSHOT_TIME_FORMAT)


class Dataset:
    """
    A mounted ZFS dataset, identified by its mount point and the
    ``.zfs`` control directory below it.

    The dataset owns the list of its snapshots.
    """

    def __init__(self, path: str, hidden_zfs_path: str, store: "SnapshotStore"):
        """
        Initialise a new ``Dataset`` object.

        :param path: The dataset mount point.
        :param hidden_zfs_path: The path of the ``.zfs`` control directory.
        :param store: The ``SnapshotStore`` that created this dataset.
        """
        self.path = path
        self.hidden_zfs_path = hidden_zfs_path
        self._store = store
        self._name = None
        self._snapshots = None

    def __repr__(self):
        return f"Dataset(path={self.path!r}, hidden_zfs_path={self.hidden_zfs_path!r})"

    @property
    def snapshots_dir(self) -> str:
        """The directory holding this dataset's snapshot directories."""
        return snapshots_dir_for(self.path)

    @property
    def name(self) -> str:
        """
        The ZFS dataset name. Falls back to the mount point if ``zfs`` is
        unavailable or fails.
        """
        if self._name is None:
            self._name = self.path
            if zfs_present():
                try:
                    self._name = get_dataset_name(self.path)
                except (ZfhCalloutError, IndexError) as err:
                    _log_warn(
                        "Could not determine dataset name for '%s': %s", self.path, err
                    )
        return self._name

    @property
    def snapshots(self) -> List[Snapshot]:
        """The snapshots of this dataset in name order."""
        if self._snapshots is None:
            self._snapshots = self._load_snapshots()
        return list(self._snapshots)

    def refresh_snapshots(self):
        """Discard the cached snapshot list."""
        self._snapshots = None

    def get_snapshot(self, name: str) -> Snapshot:
        """
        Return the snapshot of this dataset called ``name``.

        :raises: ``ZfhNotFoundError`` if no such snapshot exists.
        """
        for snapshot in self.snapshots:
            if snapshot.name == name:
                return snapshot
        raise ZfhNotFoundError(f"Snapshot '{name}' not found on dataset '{self.path}'")

    def _snapshot_properties(self) -> Dict[str, Dict[str, str]]:
        if not zfs_present():
            _log_debug_zfs("zfs command not found: using default properties")
            return {}
        try:
            props = get_properties(
                self.name, SNAPSHOT_PROPERTIES, depth=1, types=ZFS_TYPE_SNAPSHOT
            )
        except ZfhCalloutError as err:
            _log_warn(
                "Could not read snapshot properties for '%s': %s", self.path, err
            )
            return {}
        return {name.split("@", 1)[-1]: value for name, value in props.items()}

    def _load_snapshots(self) -> List[Snapshot]:
        snapshots_dir = self.snapshots_dir
        try:
            names = sorted(os.listdir(snapshots_dir))
        except OSError as err:
            raise ZfhSystemError(
                f"Could not list snapshots in '{snapshots_dir}': {err}"
            ) from err

        all_props = self._snapshot_properties()
        snapshots = []
        for name in names:
            path = join(snapshots_dir, name)
            props = all_props.get(name)
            if props is None:
                if all_props:
                    _log_warn(
                        "Could not find snapshot %s on dataset %s", name, self.name
                    )
                props = {}
            creation = None
            if "creation" in props:
                timestamp = parse_int(props["creation"], default=-1)
                if timestamp >= 0:
                    creation = datetime.fromtimestamp(timestamp)
            if creation is None:
                try:
                    creation = datetime.fromtimestamp(os.stat(path).st_mtime)
                except OSError as err:
                    _log_warn("Could not stat snapshot directory '%s': %s", path, err)
            snapshots.append(
                Snapshot(
                    name,
                    path,
                    self.path,
                    self._store,
                    creation=creation,
                    used=parse_int(props.get("used")),
                    referenced=parse_int(props.get("referenced")),
                    compressratio=parse_ratio(props.get("compressratio")),
                )
            )
        _log_debug_zfs("Found %d snapshots on dataset '%s'", len(snapshots), self.path)
        return snapshots

    def create_snapshot(self, name: Optional[str] = None) -> Snapshot:
        """
        Create a new snapshot of this dataset.

        :param name: The snapshot name. Defaults to ``zfh-`` followed by
                     the current time.
        :returns: The new ``Snapshot``.
        :rtype: ``Snapshot``
        :raises: ``ZfhArgumentError`` for invalid names or
                 ``ZfhCalloutError`` if ``zfs snapshot`` fails.
        """
        name = name or default_snapshot_name()
        check_snapshot_name(name)
        full_name = f"{self.name}@{name}"
        create_snapshot(full_name)
        _log_info("Created snapshot '%s'", full_name)
        self.refresh_snapshots()
        if not isdir(join(self.snapshots_dir, name)):
            return Snapshot(
                name,
                join(self.snapshots_dir, name),
                self.path,
                self._store,
                creation=datetime.now(),
            )
        return self.get_snapshot(name)

    def properties(self) -> Dict[str, str]:
        """
        Return the ``zfs get`` properties of this dataset, or an empty
        dictionary if they cannot be read.
        """
        if not zfs_present():
            return {}
        try:
            props = get_properties(self.name, DATASET_PROPERTIES)
        except ZfhCalloutError as err:
            _log_warn(
                "Could not read dataset properties for '%s': %s", self.path, err
            )
            return {}
        return props.get(self.name, {})

    def to_dict(self):
        """
        Return a dictionary representation of this dataset.
        """
        ds_dict = {
            "name": self.name,
            "path": self.path,
            "hidden_zfs_path": self.hidden_zfs_path,
            "snapshots_dir": self.snapshots_dir,
        }
        ds_dict.update(self.properties())
        try:
            ds_dict["snapshots"] = len(self.snapshots)
        except ZfhSystemError as err:
            _log_warn("%s", err)
            ds_dict["snapshots"] = 0
        return ds_dict

    def __str__(self):
        return "\n".join(
            f"{key.capitalize() + ':':<16}{value}"
            for key, value in self.to_dict().items()
        )


__all__ = ["Dataset", "default_snapshot_name"]
