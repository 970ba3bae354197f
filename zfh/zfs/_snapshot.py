# Copyright Red Hat
#
# zfh/zfs/_snapshot.py - ZFS file history snapshot
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
ZFS snapshot representation and file restore.
"""
from datetime import datetime
from os.path import join, basename
from typing import Optional, TYPE_CHECKING
import shutil
import stat
import os

from .._zfh import (
    ZfhArgumentError,
    ZfhSystemError,
    ZfhNotFoundError,
    DATETIME_FORMAT,
)
from ._zfs import (
    _log_debug_zfs,
    _log_info,
    destroy_snapshot,
    ZFS_CONTROL_DIR,
    ZFS_SNAPSHOT_DIR,
)

if TYPE_CHECKING:
    from ._dataset import Dataset
    from ._store import SnapshotStore


def _strip_prefix(path: str, prefix: str) -> Optional[str]:
    """
    Return ``path`` relative to ``prefix`` or ``None`` if ``path`` is not
    ``prefix`` or one of its descendants.
    """
    path = os.path.normpath(path)
    prefix = os.path.normpath(prefix)
    if path == prefix:
        return ""
    if prefix == os.sep:
        return path.lstrip(os.sep)
    if path.startswith(prefix + os.sep):
        return path[len(prefix) + 1:]
    return None


def snapshots_dir_for(dataset_path: str) -> str:
    """
    Return the snapshot directory of the dataset mounted at
    ``dataset_path``.
    """
    return join(dataset_path, ZFS_CONTROL_DIR, ZFS_SNAPSHOT_DIR)


class Snapshot:
    """
    A ZFS snapshot of a dataset, visible as a directory below the dataset's
    ``.zfs/snapshot`` directory.

    A ``Snapshot`` refers to its dataset by mount point only; the
    ``Dataset`` object is looked up through the owning ``SnapshotStore``.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        name: str,
        path: str,
        dataset_path: str,
        store: "SnapshotStore",
        creation: Optional[datetime] = None,
        used: int = 0,
        referenced: int = 0,
        compressratio: float = 1.0,
    ):
        """
        Initialise a new ``Snapshot`` object.

        :param name: The snapshot name (the part following ``@``).
        :param path: The snapshot directory below ``.zfs/snapshot``.
        :param dataset_path: The mount point of the parent dataset.
        :param store: The ``SnapshotStore`` used to resolve the dataset.
        :param creation: The snapshot creation time.
        :param used: Space used by the snapshot in bytes.
        :param referenced: Space referenced by the snapshot in bytes.
        :param compressratio: The snapshot compression ratio.
        """
        self.name = name
        self.path = path
        self.dataset_path = dataset_path
        self._store = store
        self.creation = creation
        self.used = used
        self.referenced = referenced
        self.compressratio = compressratio

    def __repr__(self):
        return (
            f"Snapshot(name={self.name!r}, path={self.path!r}, "
            f"dataset_path={self.dataset_path!r})"
        )

    def __str__(self):
        creation = self.creation.strftime(DATETIME_FORMAT) if self.creation else ""
        return (
            f"Name:          {self.name}\n"
            f"Path:          {self.path}\n"
            f"Dataset:       {self.dataset_path}\n"
            f"Creation:      {creation}\n"
            f"Used:          {self.used}\n"
            f"Referenced:    {self.referenced}\n"
            f"CompressRatio: {self.compressratio:.2f}x"
        )

    def __eq__(self, other):
        if not isinstance(other, Snapshot):
            return NotImplemented
        return self.name == other.name and self.path == other.path

    def __hash__(self):
        return hash((self.name, self.path))

    @property
    def dataset(self) -> "Dataset":
        """The ``Dataset`` this snapshot belongs to."""
        return self._store.get_dataset(self.dataset_path)

    @property
    def full_name(self) -> str:
        """The ZFS name of this snapshot: ``dataset@name``."""
        return f"{self.dataset.name}@{self.name}"

    @property
    def creation_timestamp(self) -> float:
        """The creation time as a POSIX timestamp, or 0 if unknown."""
        return self.creation.timestamp() if self.creation else 0

    def to_dict(self):
        """
        Return a dictionary representation of this snapshot.
        """
        return {
            "name": self.name,
            "path": self.path,
            "dataset": self.dataset_path,
            "creation": (
                self.creation.strftime(DATETIME_FORMAT) if self.creation else None
            ),
            "used": self.used,
            "referenced": self.referenced,
            "compressratio": self.compressratio,
        }

    def get_snapshot_path(self, path: str) -> str:
        """
        Map a live path on the dataset to its location in this snapshot.

        :param path: A path at or below the dataset mount point.
        :returns: The corresponding path below this snapshot's directory.
        :rtype: ``str``
        :raises: ``ZfhArgumentError`` if ``path`` is outside the dataset.
        """
        relpath = _strip_prefix(path, self.dataset_path)
        if relpath is None:
            raise ZfhArgumentError(
                f"Path '{path}' is not on dataset '{self.dataset_path}'"
            )
        return os.path.normpath(
            join(snapshots_dir_for(self.dataset_path), self.name, relpath)
        )

    def get_real_path(self, path: str) -> str:
        """
        Map a path inside this snapshot back to the live dataset.

        :param path: A path at or below this snapshot's directory.
        :returns: The corresponding live path.
        :rtype: ``str``
        :raises: ``ZfhArgumentError`` if ``path`` is outside the snapshot.
        """
        relpath = _strip_prefix(path, self.path)
        if relpath is None:
            raise ZfhArgumentError(f"Path '{path}' is not in snapshot '{self.name}'")
        return os.path.normpath(join(self.dataset_path, relpath))

    def is_snapshot_path(self, path: str) -> bool:
        """Return ``True`` if ``path`` lies inside this snapshot."""
        return _strip_prefix(path, self.path) is not None

    def _path_pair(self, path):
        """Return ``(real_path, snapshot_path)`` for a live or snapshot path."""
        if self.is_snapshot_path(path):
            return (self.get_real_path(path), path)
        return (path, self.get_snapshot_path(path))

    def has_file_changed(self, path: str) -> bool:
        """
        Return ``True`` if the live file and its copy in this snapshot both
        exist and differ in type, mode, modification time, size or name.

        :param path: A live path or a path inside this snapshot.
        """
        (real_path, snapshot_path) = self._path_pair(path)
        try:
            real_stat = os.stat(real_path)
            snap_stat = os.stat(snapshot_path)
        except OSError:
            return False
        return (
            stat.S_ISDIR(real_stat.st_mode) != stat.S_ISDIR(snap_stat.st_mode)
            or real_stat.st_mode != snap_stat.st_mode
            or real_stat.st_mtime_ns != snap_stat.st_mtime_ns
            or real_stat.st_size != snap_stat.st_size
            or basename(real_path) != basename(snapshot_path)
        )

    def contains(self, path: str) -> bool:
        """Return ``True`` if this snapshot holds a copy of ``path``."""
        (_, snapshot_path) = self._path_pair(path)
        return os.path.lexists(snapshot_path)

    def _source_path(self, path):
        (_, snapshot_path) = self._path_pair(path)
        if not os.path.lexists(snapshot_path):
            raise ZfhNotFoundError(
                f"Path '{path}' does not exist in snapshot '{self.name}'"
            )
        return snapshot_path

    def restore_file(self, path: str) -> str:
        """
        Restore a single file from this snapshot to the live dataset.

        File content is copied, then mode, ownership and timestamps are
        applied to the restored file.

        :param path: A live path or a path inside this snapshot.
        :returns: The restored live path.
        :rtype: ``str``
        :raises: ``ZfhNotFoundError`` if the file is absent from the
                 snapshot or ``ZfhSystemError`` if the copy fails.
        """
        src_path = self._source_path(path)
        dst_path = self.get_real_path(src_path)
        _log_debug_zfs("Restoring '%s' to '%s'", src_path, dst_path)
        try:
            src_stat = os.lstat(src_path)
            if stat.S_ISLNK(src_stat.st_mode):
                if os.path.lexists(dst_path):
                    os.unlink(dst_path)
                os.symlink(os.readlink(src_path), dst_path)
            else:
                shutil.copyfile(src_path, dst_path)
            _sync_attributes(dst_path, src_stat)
        except OSError as err:
            raise ZfhSystemError(
                f"Error restoring '{dst_path}' from snapshot '{self.name}': {err}"
            ) from err
        _log_info("Restored '%s' from snapshot '%s'", dst_path, self.name)
        return dst_path

    def restore_dir_recursive(self, path: str) -> str:
        """
        Restore a directory and all of its contents from this snapshot.

        :param path: A live path or a path inside this snapshot.
        :returns: The restored live path.
        :rtype: ``str``
        :raises: ``ZfhNotFoundError`` if the directory is absent from the
                 snapshot or ``ZfhSystemError`` if the copy fails.
        """
        src_path = self._source_path(path)
        if not os.path.isdir(src_path) or os.path.islink(src_path):
            return self.restore_file(src_path)

        dst_path = self.get_real_path(src_path)
        _log_debug_zfs("Restoring directory '%s' to '%s'", src_path, dst_path)
        try:
            src_stat = os.lstat(src_path)
            os.makedirs(dst_path, mode=stat.S_IMODE(src_stat.st_mode), exist_ok=True)
            children = sorted(os.listdir(src_path))
        except OSError as err:
            raise ZfhSystemError(
                f"Error restoring '{dst_path}' from snapshot '{self.name}': {err}"
            ) from err

        for child in children:
            child_path = join(src_path, child)
            if os.path.isdir(child_path) and not os.path.islink(child_path):
                self.restore_dir_recursive(child_path)
            else:
                self.restore_file(child_path)

        # Apply directory attributes last: restoring children updates mtime.
        try:
            _sync_attributes(dst_path, src_stat)
        except OSError as err:
            raise ZfhSystemError(
                f"Error restoring '{dst_path}' from snapshot '{self.name}': {err}"
            ) from err
        return dst_path

    def destroy(self, recursive: bool = False):
        """
        Destroy this snapshot with ``zfs destroy``.

        :param recursive: Destroy same-named snapshots of descendant
                          datasets as well.
        :raises: ``ZfhCalloutError`` if the ``zfs`` command fails.
        """
        destroy_snapshot(self.full_name, recursive=recursive)
        _log_info("Destroyed snapshot '%s'", self.full_name)
        self.dataset.refresh_snapshots()


def _sync_attributes(dst_path: str, src_stat: os.stat_result):
    """
    Apply mode, ownership and access/modification times from ``src_stat``
    to ``dst_path``.
    """
    if stat.S_ISLNK(src_stat.st_mode):
        os.lchown(dst_path, src_stat.st_uid, src_stat.st_gid)
        if os.utime in os.supports_follow_symlinks:
            os.utime(
                dst_path,
                ns=(src_stat.st_atime_ns, src_stat.st_mtime_ns),
                follow_symlinks=False,
            )
        return
    os.chmod(dst_path, stat.S_IMODE(src_stat.st_mode))
    os.chown(dst_path, src_stat.st_uid, src_stat.st_gid)
    os.utime(dst_path, ns=(src_stat.st_atime_ns, src_stat.st_mtime_ns))


__all__ = ["Snapshot", "snapshots_dir_for"]
