# Copyright Red Hat
#
# tests/test_command.py - CLI layer tests
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
from contextlib import redirect_stdout
from io import StringIO
from os.path import join
from unittest.mock import patch
import unittest
import logging
import json
import os
import shutil

log = logging.getLogger()

import zfh
import zfh.command as command
from zfh.browser.entries import DiffState

from tests import MockArgs

from ._util import ZfsLayout, snapshot_time


class CommandTestsBase(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        patcher = patch("zfh.zfs._zfs.which", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.layout = ZfsLayout()
        self.layout.write("file.txt", "one\ntwo\nthree\n", mtime=300)
        self.layout.write("new.txt", "new\n", mtime=300)
        self.layout.mkdir("dir")
        self.layout.write("file.txt", "one\nthree\n", snapshot="s1", mtime=100)
        self.layout.write("gone.txt", "gone\n", snapshot="s1", mtime=100)
        self.layout.write("olddir/x.txt", "x\n", snapshot="s1", mtime=100)
        self.layout.add_snapshot("s1", creation=snapshot_time(1))
        self.layout.add_snapshot("s2", creation=snapshot_time(2))

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.layout.cleanup()
        zfh.set_debug_mask(0)

    def get_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``zfh`` command, reading a configuration file that does not exist.

        :returns: A list of command arguments.
        """
        return ["zfh", "-c", "/nonexistent/zfh.conf"]

    def get_debug_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``zfh`` command, with verbose logging and debug enabled.

        :returns: A list of command arguments.
        """
        return self.get_main_args() + ["-vv", "--debug=all"]

    def run_main(self, args):
        """
        Run ``command.main()`` and return its status and standard output.
        """
        out = StringIO()
        with redirect_stdout(out):
            status = command.main(args)
        return (status, out.getvalue())


class CommandTestsSimple(CommandTestsBase):
    """
    Test command line parsing and the procedural interface
    """

    def test_set_debug_none(self):
        args = MockArgs()
        command.set_debug(args.debug)
        self.assertEqual(zfh.get_debug_mask(), 0)

    def test_set_debug_single(self):
        args = MockArgs()
        args.debug = "command"
        command.set_debug(args.debug)
        self.assertEqual(zfh.get_debug_mask(), zfh.ZFH_DEBUG_COMMAND)

    def test_set_debug_all(self):
        args = MockArgs()
        args.debug = "all"
        command.set_debug(args.debug)
        self.assertEqual(zfh.get_debug_mask(), zfh.ZFH_DEBUG_ALL)

    def test_set_debug_single_bad(self):
        args = MockArgs()
        args.debug = "nosuch"
        with self.assertRaises(ValueError):
            command.set_debug(args.debug)

    def test_main_version(self):
        args = self.get_debug_main_args()
        args += ["--version"]
        with self.assertRaises(SystemExit):
            command.main(args)

    def test_main_too_few_args(self):
        args = self.get_debug_main_args()
        (status, _) = self.run_main(args)
        self.assertEqual(status, 1)

    def test_main_type_without_command(self):
        args = self.get_debug_main_args()
        args += ["entry"]
        (status, _) = self.run_main(args)
        self.assertEqual(status, 1)

    def test_main_bad_command_type(self):
        args = self.get_debug_main_args()
        args += ["nosuch", "command"]
        with self.assertRaises(SystemExit):
            command.main(args)

    def test_main_bad_debug(self):
        args = self.get_main_args() + ["--debug=quux", "entry", "list", self.layout.root]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 1)
        self.assertIn("quux", output)

    def test_main_diff_requires_snapshot(self):
        args = self.get_main_args() + ["entry", "diff", self.layout.path("file.txt")]
        with self.assertRaises(SystemExit) as cm:
            command.main(args)
        self.assertEqual(cm.exception.code, 2)

    def test_main_failure_returns_one(self):
        args = self.get_main_args()
        args += ["entry", "list", self.layout.root, "-s", "nosuch"]
        (status, _) = self.run_main(args)
        self.assertEqual(status, 1)

    def test_main_failure_raises_with_debug(self):
        args = self.get_debug_main_args()
        args += ["entry", "list", self.layout.root, "-s", "nosuch"]
        with self.assertRaises(zfh.ZfhNotFoundError):
            self.run_main(args)

    def test_list_entries(self):
        snapshot = command.find_snapshot(self.layout.root, "s1")
        table = command.list_entries(self.layout.root, snapshot=snapshot)
        states = {entry.name: entry.diff_state for entry in table.get_entries()}
        self.assertEqual(states["file.txt"], DiffState.MODIFIED)
        self.assertEqual(states["new.txt"], DiffState.ADDED)
        self.assertEqual(states["gone.txt"], DiffState.DELETED)
        self.assertEqual(states["olddir"], DiffState.DELETED)

    def test_list_entries_sorted(self):
        table = command.list_entries(self.layout.root, sort_column="name", inverted=True)
        names = [entry.name for entry in table.get_entries()]
        self.assertEqual(names, ["new.txt", "file.txt", "dir", ".zfs"])

    def test_find_entry(self):
        snapshot = command.find_snapshot(self.layout.root, "s1")
        entry = command.find_entry(self.layout.path("gone.txt"), snapshot)
        self.assertFalse(entry.has_real)
        with self.assertRaises(zfh.ZfhNotFoundError):
            command.find_entry(self.layout.path("gone.txt"))

    def test_diff_path(self):
        snapshot = command.find_snapshot(self.layout.root, "s1")
        content_diff = command.diff_path(self.layout.path("file.txt"), snapshot)
        self.assertEqual(content_diff.summary, "0 deletions, 1 additions")
        self.assertIn("+two\n", content_diff.diff_data)

    def test_restore_path(self):
        snapshot = command.find_snapshot(self.layout.root, "s1")
        restored = command.restore_path(self.layout.path("file.txt"), snapshot)
        self.assertEqual(restored, self.layout.path("file.txt"))
        self.assertEqual(self.layout.read("file.txt"), "one\nthree\n")

    def test_restore_path_recursive(self):
        snapshot = command.find_snapshot(self.layout.root, "s1")
        command.restore_path(self.layout.path("olddir"), snapshot, recursive=True)
        self.assertEqual(self.layout.read("olddir/x.txt"), "x\n")

    def test_list_snapshots(self):
        table = command.list_snapshots(
            self.layout.root, file_path=self.layout.path("file.txt")
        )
        entries = table.get_entries()
        self.assertEqual([e.snapshot.name for e in entries], ["s2", "s1"])
        self.assertEqual(
            [e.diff_state for e in entries], [DiffState.ADDED, DiffState.MODIFIED]
        )

    def test_list_snapshots_no_dataset(self):
        with patch(
            "zfh.zfs._store.SnapshotStore.find_host_dataset",
            side_effect=zfh.ZfhDatasetError("Could not find dataset"),
        ):
            with self.assertRaises(zfh.ZfhDatasetError):
                command.list_snapshots(self.layout.root)

    def test_create_snapshot(self):
        def fake_create(full_name):
            os.makedirs(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        with patch("zfh.zfs._dataset.create_snapshot", side_effect=fake_create) as create:
            snapshot = command.create_snapshot(self.layout.root, name="manual")
        create.assert_called_once_with(f"{self.layout.root}@manual")
        self.assertEqual(snapshot.name, "manual")
        self.assertEqual(snapshot.path, join(self.layout.snapshots_dir, "manual"))

    def test_destroy_snapshot(self):
        def fake_destroy(full_name, recursive=False):
            shutil.rmtree(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        with patch("zfh.zfs._snapshot.destroy_snapshot", side_effect=fake_destroy) as destroy:
            command.destroy_snapshot(self.layout.root, "s2", recursive=True)
        destroy.assert_called_once_with(f"{self.layout.root}@s2", recursive=True)
        self.assertEqual(
            [s.name for s in command.SnapshotStore().list_snapshots(self.layout.root)],
            ["s1"],
        )


class CommandTestsMain(CommandTestsBase):
    """
    Test the ``zfh`` subcommands end to end
    """

    def test_main_entry_list(self):
        args = self.get_debug_main_args()
        args += ["entry", "list", self.layout.root, "-s", "s1"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        lines = output.splitlines()
        self.assertIn("Name", lines[0])
        self.assertTrue(any(line.endswith("gone.txt") for line in lines))

    def test_main_entry_list_json(self):
        args = self.get_main_args()
        args += ["entry", "list", self.layout.root, "-s", "s1", "--json"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        entries = {entry["name"]: entry for entry in json.loads(output)}
        self.assertEqual(entries["file.txt"]["diff"], "modified")
        self.assertEqual(entries["gone.txt"]["diff"], "deleted")
        self.assertFalse(entries["gone.txt"]["live"])
        self.assertEqual(entries["dir"]["kind"], "directory")

    def test_main_entry_list_sort(self):
        args = self.get_main_args()
        args += ["entry", "list", self.layout.root, "--sort", "name", "--json"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        names = [entry["name"] for entry in json.loads(output)]
        self.assertEqual(names, [".zfs", "dir", "file.txt", "new.txt"])

    def test_main_entry_diff(self):
        args = self.get_main_args()
        args += ["entry", "diff", self.layout.path("file.txt"), "-s", "s1"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertIn("+two", output)

    def test_main_entry_diff_json(self):
        args = self.get_main_args()
        args += ["entry", "diff", self.layout.path("file.txt"), "-s", "s1", "-j"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertTrue(json.loads(output)["has_changes"])

    def test_main_entry_restore(self):
        args = self.get_main_args()
        args += ["entry", "restore", self.layout.path("gone.txt"), "-s", "s1"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertIn("Restored", output)
        self.assertEqual(self.layout.read("gone.txt"), "gone\n")

    def test_main_snapshot_list(self):
        args = self.get_debug_main_args()
        args += ["snapshot", "list", self.layout.root]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        lines = output.splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[1].startswith("s2"))

    def test_main_snapshot_list_json(self):
        args = self.get_main_args()
        args += ["snapshot", "list", self.layout.root]
        args += ["-f", self.layout.path("gone.txt"), "--json"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        snapshots = json.loads(output)
        self.assertEqual([s["name"] for s in snapshots], ["s2", "s1"])
        self.assertEqual([s["diff"] for s in snapshots], ["unknown", "deleted"])

    def test_main_snapshot_create(self):
        def fake_create(full_name):
            os.makedirs(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        args = self.get_main_args()
        args += ["snapshot", "create", self.layout.root, "-n", "cli", "--json"]
        with patch("zfh.zfs._dataset.create_snapshot", side_effect=fake_create):
            (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertEqual(json.loads(output)["name"], "cli")

    def test_main_snapshot_create_bad_name(self):
        args = self.get_main_args()
        args += ["snapshot", "create", self.layout.root, "-n", "bad name"]
        (status, _) = self.run_main(args)
        self.assertEqual(status, 1)

    def test_main_snapshot_destroy(self):
        args = self.get_main_args()
        args += ["snapshot", "destroy", self.layout.root, "s1"]
        with patch("zfh.zfs._snapshot.destroy_snapshot") as destroy:
            (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        destroy.assert_called_once_with(f"{self.layout.root}@s1", recursive=False)
        self.assertIn("Snapshot 's1' destroyed.", output)

    def test_main_dataset_show(self):
        args = self.get_main_args()
        args += ["dataset", "show", self.layout.path("dir")]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertIn(self.layout.root, output)

    def test_main_dataset_show_json(self):
        args = self.get_main_args()
        args += ["dataset", "show", self.layout.root, "--json"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        dataset = json.loads(output)
        self.assertEqual(dataset["path"], self.layout.root)
        self.assertEqual(dataset["snapshots"], 2)

    def test_main_config_file(self):
        config_path = join(self.layout.root, "zfh.conf")
        with open(config_path, "w", encoding="utf8") as fp:
            fp.write("[browser]\nsort_column = name\nsort_inverted = yes\n")
        args = ["zfh", "-c", config_path, "entry", "list", self.layout.root, "-j"]
        (status, output) = self.run_main(args)
        self.assertEqual(status, 0)
        names = [entry["name"] for entry in json.loads(output)]
        self.assertEqual(names, ["zfh.conf", "new.txt", "file.txt", "dir", ".zfs"])
