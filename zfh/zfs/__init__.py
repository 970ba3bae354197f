# Copyright Red Hat
#
# zfh/zfs/__init__.py - ZFS file history ZFS interface
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Access to ZFS datasets and their snapshots.
"""
from ._store import SnapshotStore
from ._dataset import Dataset, default_snapshot_name
from ._snapshot import Snapshot, snapshots_dir_for

__all__ = [
    "SnapshotStore",
    "Dataset",
    "Snapshot",
    "default_snapshot_name",
    "snapshots_dir_for",
]
