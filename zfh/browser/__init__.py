# Copyright Red Hat
#
# zfh/browser/__init__.py - ZFS file history browser package
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot-aware file browser package.

Reconciles live directories with snapshot copies and keeps the cursor
stable across refreshes. The main entry point is ``BrowserSession``.
"""
from .entries import (
    BrowserEntry,
    DiffState,
    EntryKind,
    EntryStat,
    RealFile,
    SnapshotBrowserEntry,
    SnapshotFile,
)
from .events import EventQueue, StatusLog
from .fs import LiveFileSystem
from .navigation import FileBrowser
from .reconcile import Reconciler
from .session import BrowserSession, Pane
from .snapshots import SnapshotBrowser
from .table import Key, StableTable

__all__ = [
    "BrowserEntry",
    "BrowserSession",
    "DiffState",
    "EntryKind",
    "EntryStat",
    "EventQueue",
    "FileBrowser",
    "Key",
    "LiveFileSystem",
    "Pane",
    "RealFile",
    "Reconciler",
    "SnapshotBrowser",
    "SnapshotBrowserEntry",
    "SnapshotFile",
    "StableTable",
    "StatusLog",
]
