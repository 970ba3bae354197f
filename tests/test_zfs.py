# Copyright Red Hat
#
# tests/test_zfs.py - ZFS dataset and snapshot tests
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
from datetime import datetime
from os.path import exists, islink, join
from subprocess import CalledProcessError
from types import SimpleNamespace
from unittest.mock import patch
import unittest
import logging
import os
import stat

from zfh import (
    ZfhArgumentError,
    ZfhCalloutError,
    ZfhDatasetError,
    ZfhNotFoundError,
)
from zfh.zfs import SnapshotStore, default_snapshot_name
import zfh.zfs._zfs as _zfs

from ._util import ZfsLayout, make_snapshot, snapshot_time

log = logging.getLogger()

RUN = "zfh.zfs._zfs.run"
WHICH = "zfh.zfs._zfs.which"


def _completed(stdout):
    return SimpleNamespace(stdout=stdout.encode("utf8"), stderr=b"", returncode=0)


class ZfsCalloutTests(unittest.TestCase):
    """
    Test the zfs command helpers with ``run`` mocked
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def test_zfs_present(self):
        with patch(WHICH, return_value="/usr/sbin/zfs"):
            self.assertTrue(_zfs.zfs_present())
        with patch(WHICH, return_value=None):
            self.assertFalse(_zfs.zfs_present())

    def test_run_zfs(self):
        with patch(RUN, return_value=_completed("tank/home\n")) as run:
            self.assertEqual(_zfs.run_zfs(["list", "-H"]), "tank/home\n")
        run.assert_called_once_with(["zfs", "list", "-H"], capture_output=True, check=True)

    def test_run_zfs_failure(self):
        err = CalledProcessError(1, ["zfs", "destroy"], stderr=b"dataset is busy\n")
        with patch(RUN, side_effect=err):
            with self.assertRaises(ZfhCalloutError) as cm:
                _zfs.run_zfs(["destroy", "tank@s1"])
        self.assertEqual(str(cm.exception), "Error calling zfs destroy: dataset is busy")

    def test_run_zfs_not_executable(self):
        with patch(RUN, side_effect=FileNotFoundError(2, "No such file or directory")):
            with self.assertRaises(ZfhCalloutError):
                _zfs.run_zfs(["list"])

    def test_get_properties(self):
        output = (
            "tank/home@s1\tcreation\t1704110400\n"
            "tank/home@s1\tused\t4096\n"
            "garbage line\n"
            "\n"
            "tank/home@s2\tcompressratio\t1.52x\n"
        )
        with patch(RUN, return_value=_completed(output)) as run:
            props = _zfs.get_properties(
                "tank/home", ["creation", "used"], depth=1, types="snapshot"
            )
        run.assert_called_once_with(
            [
                "zfs", "get", "-H", "-p", "-o", "name,property,value",
                "-d", "1", "-t", "snapshot", "creation,used", "tank/home",
            ],
            capture_output=True,
            check=True,
        )
        self.assertEqual(
            props,
            {
                "tank/home@s1": {"creation": "1704110400", "used": "4096"},
                "tank/home@s2": {"compressratio": "1.52x"},
            },
        )

    def test_get_dataset_name(self):
        with patch(RUN, return_value=_completed("tank/home\n")) as run:
            self.assertEqual(_zfs.get_dataset_name("/home"), "tank/home")
        self.assertEqual(run.call_args[0][0], ["zfs", "list", "-H", "-o", "name", "/home"])

    def test_create_snapshot(self):
        with patch(RUN, return_value=_completed("")) as run:
            _zfs.create_snapshot("tank/home@s1")
        self.assertEqual(run.call_args[0][0], ["zfs", "snapshot", "tank/home@s1"])

    def test_destroy_snapshot(self):
        with patch(RUN, return_value=_completed("")) as run:
            _zfs.destroy_snapshot("tank/home@s1")
            _zfs.destroy_snapshot("tank/home@s1", recursive=True)
        self.assertEqual(run.call_args_list[0][0][0], ["zfs", "destroy", "tank/home@s1"])
        self.assertEqual(
            run.call_args_list[1][0][0], ["zfs", "destroy", "-r", "tank/home@s1"]
        )

    def test_check_snapshot_name(self):
        for name in ("s1", "zfh-2024-01-01-120000", "daily_1.2:3"):
            _zfs.check_snapshot_name(name)
        for name in ("", "bad name", "a@b", "a/b"):
            with self.assertRaises(ZfhArgumentError):
                _zfs.check_snapshot_name(name)

    def test_parse_int(self):
        self.assertEqual(_zfs.parse_int("4096"), 4096)
        self.assertEqual(_zfs.parse_int("-"), 0)
        self.assertEqual(_zfs.parse_int(None, default=-1), -1)

    def test_parse_ratio(self):
        self.assertAlmostEqual(_zfs.parse_ratio("1.52x"), 1.52)
        self.assertAlmostEqual(_zfs.parse_ratio("2.00"), 2.0)
        self.assertEqual(_zfs.parse_ratio("-"), 1.0)
        self.assertEqual(_zfs.parse_ratio(None), 1.0)

    def test_default_snapshot_name(self):
        now = datetime(2024, 3, 4, 5, 6, 7)
        self.assertEqual(default_snapshot_name(now), "zfh-2024-03-04-050607")


class SnapshotPathTests(unittest.TestCase):
    """
    Test mapping between live and snapshot paths
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.snapshot = make_snapshot("s1", dataset_path="/pool/data")

    def test_get_snapshot_path(self):
        self.assertEqual(
            self.snapshot.get_snapshot_path("/pool/data/a/b.txt"),
            "/pool/data/.zfs/snapshot/s1/a/b.txt",
        )
        self.assertEqual(
            self.snapshot.get_snapshot_path("/pool/data"), "/pool/data/.zfs/snapshot/s1"
        )

    def test_get_snapshot_path_outside(self):
        for path in ("/pool/database/x", "/pool", "/other"):
            with self.assertRaises(ZfhArgumentError):
                self.snapshot.get_snapshot_path(path)

    def test_get_real_path(self):
        self.assertEqual(
            self.snapshot.get_real_path("/pool/data/.zfs/snapshot/s1/a/b.txt"),
            "/pool/data/a/b.txt",
        )
        self.assertEqual(
            self.snapshot.get_real_path("/pool/data/.zfs/snapshot/s1"), "/pool/data"
        )
        with self.assertRaises(ZfhArgumentError):
            self.snapshot.get_real_path("/pool/data/.zfs/snapshot/s10/a")

    def test_is_snapshot_path(self):
        self.assertTrue(self.snapshot.is_snapshot_path("/pool/data/.zfs/snapshot/s1/a"))
        self.assertFalse(self.snapshot.is_snapshot_path("/pool/data/a"))

    def test_root_dataset(self):
        snapshot = make_snapshot("s1", dataset_path="/")
        self.assertEqual(snapshot.get_snapshot_path("/etc/hosts"), "/.zfs/snapshot/s1/etc/hosts")
        self.assertEqual(snapshot.get_real_path("/.zfs/snapshot/s1/etc/hosts"), "/etc/hosts")

    def test_equality(self):
        self.assertEqual(self.snapshot, make_snapshot("s1", dataset_path="/pool/data"))
        self.assertNotEqual(self.snapshot, make_snapshot("s2", dataset_path="/pool/data"))
        self.assertEqual(len({self.snapshot, make_snapshot("s1", dataset_path="/pool/data")}), 1)

    def test_to_dict_and_str(self):
        snapshot = make_snapshot(
            "s1",
            dataset_path="/pool/data",
            creation=datetime(2024, 1, 1, 12, 0, 0),
            used=1024,
            compressratio=1.5,
        )
        snap_dict = snapshot.to_dict()
        self.assertEqual(snap_dict["creation"], "2024-01-01 12:00:00")
        self.assertEqual(snap_dict["used"], 1024)
        self.assertIn("CompressRatio: 1.50x", str(snapshot))
        self.assertEqual(make_snapshot("s2").creation_timestamp, 0)


class SnapshotStoreTests(unittest.TestCase):
    """
    Test dataset discovery and snapshot listing on a directory laid out
    like a dataset
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        patcher = patch(WHICH, return_value=None)
        self.which = patcher.start()
        self.addCleanup(patcher.stop)
        self.layout = ZfsLayout()
        self.layout.mkdir("a/b")
        self.layout.add_snapshot("s2", creation=snapshot_time(2))
        self.layout.add_snapshot("s1", creation=snapshot_time(1))
        self.store = SnapshotStore()

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.layout.cleanup()

    def test_find_host_dataset(self):
        dataset = self.store.find_host_dataset(self.layout.path("a", "b"))
        self.assertEqual(dataset.path, self.layout.root)
        self.assertEqual(dataset.hidden_zfs_path, join(self.layout.root, ".zfs"))
        self.assertEqual(dataset.name, self.layout.root)
        self.assertIs(self.store.find_host_dataset(self.layout.root), dataset)
        self.assertIs(self.store.get_dataset(self.layout.root), dataset)

    def test_find_host_dataset_missing_path(self):
        dataset = self.store.find_host_dataset(self.layout.path("not", "there"))
        self.assertEqual(dataset.path, self.layout.root)

    def test_find_host_dataset_empty_path(self):
        with self.assertRaises(ZfhArgumentError):
            self.store.find_host_dataset("")

    def test_no_dataset(self):
        with patch("zfh.zfs._store.os.lstat", side_effect=FileNotFoundError(2, "nope")):
            with self.assertRaises(ZfhDatasetError):
                self.store.find_host_dataset(self.layout.root)

    def test_get_unknown_dataset(self):
        with self.assertRaises(ZfhNotFoundError):
            self.store.get_dataset("/nowhere")

    def test_snapshots_from_directory(self):
        snapshots = self.store.list_snapshots(self.layout.root)
        self.assertEqual([s.name for s in snapshots], ["s1", "s2"])
        self.assertEqual(snapshots[0].creation, snapshot_time(1))
        self.assertEqual(snapshots[0].dataset_path, self.layout.root)
        self.assertEqual(snapshots[0].path, self.layout.path(snapshot="s1"))
        self.assertEqual(snapshots[0].used, 0)
        self.assertIs(snapshots[0].dataset, self.store.get_dataset(self.layout.root))

    def test_find_snapshot(self):
        snapshot = self.store.find_snapshot(self.layout.path("a"), "s2")
        self.assertEqual(snapshot.name, "s2")
        self.assertEqual(snapshot.full_name, f"{self.layout.root}@s2")
        with self.assertRaises(ZfhNotFoundError):
            self.store.find_snapshot(self.layout.root, "nosuch")

    def test_refresh(self):
        self.assertEqual(len(self.store.list_snapshots(self.layout.root)), 2)
        self.layout.add_snapshot("s3")
        self.assertEqual(len(self.store.list_snapshots(self.layout.root)), 2)
        self.store.refresh()
        self.assertEqual(len(self.store.list_snapshots(self.layout.root)), 3)

    def test_snapshot_properties_from_zfs(self):
        output = (
            "tank/data@s1\tcreation\t1704110400\n"
            "tank/data@s1\tused\t8192\n"
            "tank/data@s1\treferenced\t65536\n"
            "tank/data@s1\tcompressratio\t1.25x\n"
        )

        def fake_run(args, **_kwargs):
            if args[1] == "list":
                return _completed("tank/data\n")
            return _completed(output)

        self.which.return_value = "/usr/sbin/zfs"
        with patch(RUN, side_effect=fake_run):
            snapshots = self.store.list_snapshots(self.layout.root)
            dataset = self.store.get_dataset(self.layout.root)
            self.assertEqual(dataset.name, "tank/data")
            self.assertEqual(snapshots[0].full_name, "tank/data@s1")

        (s1, s2) = snapshots
        self.assertEqual(s1.creation, datetime.fromtimestamp(1704110400))
        self.assertEqual(s1.used, 8192)
        self.assertEqual(s1.referenced, 65536)
        self.assertAlmostEqual(s1.compressratio, 1.25)
        # Snapshots missing from the zfs output fall back to defaults.
        self.assertEqual(s2.creation, snapshot_time(2))
        self.assertEqual(s2.used, 0)

    def test_zfs_failure_falls_back(self):
        self.which.return_value = "/usr/sbin/zfs"
        err = CalledProcessError(1, ["zfs"], stderr=b"permission denied")
        with patch(RUN, side_effect=err):
            snapshots = self.store.list_snapshots(self.layout.root)
            dataset = self.store.get_dataset(self.layout.root)
            self.assertEqual(dataset.name, self.layout.root)
            self.assertEqual(dataset.properties(), {})
        self.assertEqual([s.name for s in snapshots], ["s1", "s2"])

    def test_dataset_to_dict(self):
        dataset = self.store.find_host_dataset(self.layout.root)
        ds_dict = dataset.to_dict()
        self.assertEqual(ds_dict["snapshots"], 2)
        self.assertEqual(ds_dict["snapshots_dir"], self.layout.snapshots_dir)
        self.assertIn("Snapshots:", str(dataset))

    def test_create_snapshot(self):
        def fake_run(args, **_kwargs):
            if args[1] == "snapshot":
                os.makedirs(join(self.layout.snapshots_dir, args[2].rsplit("@", 1)[1]))
            return _completed("")

        dataset = self.store.find_host_dataset(self.layout.root)
        with patch(RUN, side_effect=fake_run) as run:
            snapshot = dataset.create_snapshot("new")
        run.assert_called_once()
        self.assertEqual(run.call_args[0][0], ["zfs", "snapshot", f"{self.layout.root}@new"])
        self.assertEqual(snapshot.name, "new")
        self.assertEqual([s.name for s in dataset.snapshots], ["new", "s1", "s2"])

    def test_create_snapshot_default_name(self):
        dataset = self.store.find_host_dataset(self.layout.root)
        with patch(RUN, return_value=_completed("")):
            snapshot = dataset.create_snapshot()
        # The snapshot directory did not appear: a placeholder is returned.
        self.assertTrue(snapshot.name.startswith("zfh-"))
        self.assertIsNotNone(snapshot.creation)

    def test_create_snapshot_bad_name(self):
        dataset = self.store.find_host_dataset(self.layout.root)
        with patch(RUN) as run:
            with self.assertRaises(ZfhArgumentError):
                dataset.create_snapshot("bad/name")
        run.assert_not_called()

    def test_destroy(self):
        snapshot = self.store.find_snapshot(self.layout.root, "s1")
        with patch(RUN, return_value=_completed("")) as run:
            snapshot.destroy(recursive=True)
        self.assertEqual(
            run.call_args[0][0], ["zfs", "destroy", "-r", f"{self.layout.root}@s1"]
        )

    def test_destroy_failure(self):
        snapshot = self.store.find_snapshot(self.layout.root, "s1")
        err = CalledProcessError(1, ["zfs"], stderr=b"snapshot has dependent clones")
        with patch(RUN, side_effect=err):
            with self.assertRaises(ZfhCalloutError):
                snapshot.destroy()


class SnapshotFileTests(unittest.TestCase):
    """
    Test restoring and comparing files from a snapshot
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        patcher = patch(WHICH, return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.layout = ZfsLayout()
        self.layout.write("same.txt", "same", mtime=100)
        self.layout.write("same.txt", "same", snapshot="s1", mtime=100)
        self.layout.write("changed.txt", "new content", mtime=200)
        self.layout.write("changed.txt", "old", snapshot="s1", mtime=100)
        self.layout.write("tree/a.txt", "a", snapshot="s1", mtime=100)
        self.layout.write("tree/sub/b.txt", "b", snapshot="s1", mtime=100)
        os.symlink("a.txt", self.layout.path("tree", "link", snapshot="s1"))
        os.chmod(self.layout.path("tree/a.txt", snapshot="s1"), 0o600)
        self.layout.add_snapshot("s1", creation=snapshot_time(1))
        self.snapshot = SnapshotStore().find_snapshot(self.layout.root, "s1")

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.layout.cleanup()

    def test_has_file_changed(self):
        self.assertFalse(self.snapshot.has_file_changed(self.layout.path("same.txt")))
        self.assertTrue(self.snapshot.has_file_changed(self.layout.path("changed.txt")))
        self.assertTrue(
            self.snapshot.has_file_changed(self.layout.path("changed.txt", snapshot="s1"))
        )
        # Missing on one side is not a change.
        self.assertFalse(self.snapshot.has_file_changed(self.layout.path("tree")))

    def test_contains(self):
        self.assertTrue(self.snapshot.contains(self.layout.path("tree/a.txt")))
        self.assertTrue(self.snapshot.contains(self.layout.path("tree/link")))
        self.assertFalse(self.snapshot.contains(self.layout.path("nothing")))

    def test_restore_file(self):
        restored = self.snapshot.restore_file(self.layout.path("changed.txt"))
        self.assertEqual(restored, self.layout.path("changed.txt"))
        self.assertEqual(self.layout.read("changed.txt"), "old")
        self.assertEqual(int(os.stat(restored).st_mtime), 100)
        self.assertFalse(self.snapshot.has_file_changed(restored))

    def test_restore_file_from_snapshot_path(self):
        restored = self.snapshot.restore_file(self.layout.path("changed.txt", snapshot="s1"))
        self.assertEqual(restored, self.layout.path("changed.txt"))

    def test_restore_missing(self):
        with self.assertRaises(ZfhNotFoundError):
            self.snapshot.restore_file(self.layout.path("nothing"))
        with self.assertRaises(ZfhNotFoundError):
            self.snapshot.restore_dir_recursive(self.layout.path("nothing"))

    def test_restore_dir_recursive(self):
        restored = self.snapshot.restore_dir_recursive(self.layout.path("tree"))
        self.assertEqual(restored, self.layout.path("tree"))
        self.assertEqual(self.layout.read("tree/a.txt"), "a")
        self.assertEqual(self.layout.read("tree/sub/b.txt"), "b")
        self.assertTrue(islink(self.layout.path("tree/link")))
        self.assertEqual(os.readlink(self.layout.path("tree/link")), "a.txt")
        mode = stat.S_IMODE(os.stat(self.layout.path("tree/a.txt")).st_mode)
        self.assertEqual(mode, 0o600)

    def test_restore_dir_recursive_file(self):
        self.snapshot.restore_dir_recursive(self.layout.path("same.txt"))
        self.assertTrue(exists(self.layout.path("same.txt")))
