# Copyright Red Hat
#
# tests/test_session.py - browser session tests
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
from os.path import exists, join
from unittest.mock import patch
import unittest
import logging
import os
import shutil

from zfh import ZfhCalloutError
from zfh.browser.dialog import DialogAction
from zfh.browser.entries import DiffState
from zfh.browser.events import StatusLevel
from zfh.browser.session import BrowserSession, Pane
from zfh.browser.table import Key
from zfh.config import ZfhConfig
from zfh.zfs import SnapshotStore

from ._util import ZfsLayout, make_entry, snapshot_time

log = logging.getLogger()


class BrowserSessionTests(unittest.TestCase):
    """
    Test the actions of a browser session on a directory laid out like a
    dataset
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        patcher = patch("zfh.zfs._zfs.which", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.layout = ZfsLayout()
        self.layout.write("file.txt", "current content\n", mtime=300)
        self.layout.write("dir/inner.txt", "inner\n", mtime=300)
        self.layout.write("file.txt", "old\n", snapshot="s2", mtime=100)
        self.layout.write("file.txt", "current content\n", snapshot="s3", mtime=300)
        self.layout.write("deleted.txt", "gone\n", snapshot="s3", mtime=200)
        self.layout.write("olddir/a.txt", "a\n", snapshot="s3", mtime=200)
        self.layout.write("olddir/b/c.txt", "c\n", snapshot="s3", mtime=200)
        for day, name in ((2, "s2"), (3, "s3")):
            self.layout.add_snapshot(name, creation=snapshot_time(day))

        self.dialogs = []
        self.diffs = []
        self.session = BrowserSession(
            self.layout.root, store=SnapshotStore(), watch=False
        )
        self.session.on_dialog(self.dialogs.append)
        self.session.on_diff(self.diffs.append)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.session.close()
        self.layout.cleanup()

    def _entry(self, name):
        return self.session.file_browser.table.find(self.layout.path(name))

    def _open_file_dialog(self, name):
        self.session.file_browser.table.select_id(self.layout.path(name))
        return self.session.file_browser.open_action_dialog()

    def _status_texts(self):
        return [message.text for message in self.session.status.history]

    def test_initial_state(self):
        self.assertEqual(self.session.path, self.layout.root)
        self.assertEqual(self.session.focus, Pane.FILES)
        self.assertEqual(self.session.file_browser.snapshot.name, "s3")
        self.assertEqual(self._entry("deleted.txt").diff_state, DiffState.DELETED)
        self.assertEqual(self._entry("file.txt").diff_state, DiffState.EQUAL)

    def test_snapshot_selection_updates_overlay(self):
        self.session.snapshot_browser.select_snapshot("s2")
        self.assertEqual(self.session.file_browser.snapshot.name, "s2")
        self.assertEqual(self._entry("file.txt").diff_state, DiffState.MODIFIED)
        self.assertIsNone(self._entry("deleted.txt"))

    def test_file_selection_tracks_snapshot_pane(self):
        self.session.file_browser.table.select_id(self.layout.path("deleted.txt"))
        states = {
            entry.snapshot.name: entry.diff_state
            for entry in self.session.snapshot_browser.get_entries()
        }
        self.assertEqual(states, {"s3": DiffState.DELETED, "s2": DiffState.UNKNOWN})

    def test_restore_from_dialog(self):
        dialog = self._open_file_dialog("deleted.txt")
        self.assertEqual(self.dialogs, [dialog])
        self.assertIs(self.session.dialog, dialog)
        self.assertEqual(dialog.actions, [DialogAction.RESTORE, DialogAction.CLOSE])

        dialog.choose(DialogAction.RESTORE)
        self.assertFalse(exists(self.layout.path("deleted.txt")))
        self.assertEqual(self.session.process_events(), 1)

        self.assertIsNone(self.session.dialog)
        self.assertEqual(self.layout.read("deleted.txt"), "gone\n")
        self.assertEqual(int(os.stat(self.layout.path("deleted.txt")).st_mtime), 200)
        self.assertEqual(self._entry("deleted.txt").diff_state, DiffState.EQUAL)
        current = self.session.status.current
        self.assertEqual(current.level, StatusLevel.SUCCESS)
        self.assertEqual(current.text, "Restored 'deleted.txt' from 's3'.")

    def test_restore_directory_recursive(self):
        dialog = self._open_file_dialog("olddir")
        self.assertIn(DialogAction.RESTORE_RECURSIVE, dialog.actions)
        dialog.choose(DialogAction.RESTORE_RECURSIVE)
        self.session.process_events()
        self.assertEqual(self.layout.read("olddir/a.txt"), "a\n")
        self.assertEqual(self.layout.read("olddir/b/c.txt"), "c\n")

    def test_restore_without_snapshot_copy(self):
        entry = make_entry(self.layout.path("file.txt"))
        self.assertFalse(self.session.restore_entry(entry))
        self.assertEqual(self.session.status.current.level, StatusLevel.WARNING)

    def test_delete_from_dialog(self):
        dialog = self._open_file_dialog("file.txt")
        dialog.choose(DialogAction.DELETE_FILE)
        self.session.process_events()
        self.assertFalse(exists(self.layout.path("file.txt")))
        # The snapshot copy is still listed.
        self.assertEqual(self._entry("file.txt").diff_state, DiffState.DELETED)
        self.assertEqual(self.session.status.current.text, "Deleted 'file.txt'.")

    def test_delete_directory(self):
        self.assertTrue(self.session.delete_entry(self._entry("dir")))
        self.assertFalse(exists(self.layout.path("dir")))

    def test_delete_snapshot_only_entry(self):
        self.assertFalse(self.session.delete_entry(self._entry("deleted.txt")))
        self.assertEqual(self.session.status.current.level, StatusLevel.WARNING)

    def test_show_diff(self):
        self.session.snapshot_browser.select_snapshot("s2")
        dialog = self._open_file_dialog("file.txt")
        self.assertIn(DialogAction.SHOW_DIFF, dialog.actions)
        dialog.choose(DialogAction.SHOW_DIFF)
        self.session.process_events()
        self.assertEqual(len(self.diffs), 1)
        self.assertIs(self.session.last_diff, self.diffs[0])
        self.assertTrue(self.diffs[0].has_changes)
        self.assertEqual(
            self.session.status.current.text, "file.txt: 1 deletions, 1 additions"
        )

    def test_show_diff_directory(self):
        self.assertIsNone(self.session.show_diff(self._entry("dir")))
        self.assertEqual(self.session.status.current.level, StatusLevel.ERROR)
        self.assertEqual(self.diffs, [])

    def test_close_dialog(self):
        dialog = self._open_file_dialog("file.txt")
        dialog.dismiss()
        self.session.process_events()
        self.assertIsNone(self.session.dialog)
        self.assertTrue(exists(self.layout.path("file.txt")))

    def test_new_dialog_dismisses_previous(self):
        first = self._open_file_dialog("file.txt")
        second = self._open_file_dialog("deleted.txt")
        self.assertTrue(first.done())
        self.assertEqual(first.result(timeout=0), DialogAction.CLOSE)
        self.session.process_events()
        self.assertIs(self.session.dialog, second)

    def test_close_dismisses_dialog(self):
        dialog = self._open_file_dialog("file.txt")
        self.session.close()
        self.assertTrue(dialog.done())
        self.assertIsNone(self.session.dialog)

    def test_toggle_focus_routes_keys(self):
        self.assertEqual(self.session.toggle_focus(), Pane.SNAPSHOTS)
        self.assertTrue(self.session.handle_key(Key.DOWN))
        self.assertEqual(self.session.snapshot_browser.get_selected_snapshot().name, "s2")
        self.assertEqual(self.session.file_browser.snapshot.name, "s2")
        self.assertEqual(self.session.toggle_focus(), Pane.FILES)

    def test_create_snapshot_from_dialog(self):
        def fake_create(full_name):
            os.makedirs(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        self.session.toggle_focus()
        with patch("zfh.zfs._dataset.create_snapshot", side_effect=fake_create) as create:
            self.session.handle_key(Key.ENTER)
            self.dialogs[-1].choose(DialogAction.CREATE_SNAPSHOT)
            self.session.process_events()

        create.assert_called_once()
        (full_name,) = create.call_args[0]
        self.assertTrue(full_name.startswith(f"{self.layout.root}@zfh-"))
        selected = self.session.snapshot_browser.get_selected_snapshot()
        self.assertTrue(selected.name.startswith("zfh-"))
        self.assertEqual(self.session.file_browser.snapshot, selected)
        self.assertEqual(len(self.session.snapshot_browser.get_entries()), 3)
        self.assertEqual(self.session.status.current.level, StatusLevel.SUCCESS)

    def test_create_snapshot_failure(self):
        with patch(
            "zfh.zfs._dataset.create_snapshot",
            side_effect=ZfhCalloutError("Error calling zfs snapshot: denied"),
        ):
            self.assertIsNone(self.session.create_snapshot("manual"))
        self.assertEqual(self.session.status.current.level, StatusLevel.ERROR)
        self.assertIn("denied", self.session.status.current.text)

    def test_create_snapshot_invalid_name(self):
        self.assertIsNone(self.session.create_snapshot("bad name"))
        self.assertEqual(self.session.status.current.level, StatusLevel.ERROR)

    def test_destroy_snapshot_from_dialog(self):
        def fake_destroy(full_name, recursive=False):
            shutil.rmtree(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        self.session.toggle_focus()
        with patch("zfh.zfs._snapshot.destroy_snapshot", side_effect=fake_destroy) as destroy:
            self.session.handle_key("d")
            self.dialogs[-1].choose(DialogAction.DESTROY_SNAPSHOT)
            self.session.process_events()

        destroy.assert_called_once_with(f"{self.layout.root}@s3", recursive=False)
        names = [e.snapshot.name for e in self.session.snapshot_browser.get_entries()]
        self.assertEqual(names, ["s2"])
        self.assertEqual(self.session.file_browser.snapshot.name, "s2")
        self.assertEqual(self.session.status.current.text, "Snapshot 's3' destroyed.")

    def test_destroy_multi_selection(self):
        def fake_destroy(full_name, recursive=False):
            shutil.rmtree(join(self.layout.snapshots_dir, full_name.rsplit("@", 1)[1]))

        self.session.toggle_focus()
        with patch("zfh.zfs._snapshot.destroy_snapshot", side_effect=fake_destroy) as destroy:
            for key in (Key.SPACE, Key.DOWN, Key.SPACE, Key.ENTER):
                self.session.handle_key(key)
            self.dialogs[-1].choose(DialogAction.DESTROY_ALL_RECURSIVE)
            self.session.process_events()

        self.assertEqual(destroy.call_count, 2)
        self.assertEqual(self.session.snapshot_browser.get_entries(), [])
        self.assertFalse(self.session.snapshot_browser.table.has_multi_selection())
        self.assertIsNone(self.session.file_browser.snapshot)
        self.assertIn("Snapshot 's2' destroyed.", self._status_texts())

    def test_destroy_failure_reported(self):
        snapshot = self.session.snapshot_browser.get_selected_snapshot()
        with patch(
            "zfh.zfs._snapshot.destroy_snapshot",
            side_effect=ZfhCalloutError("Error calling zfs destroy: busy"),
        ):
            self.assertEqual(self.session.destroy_snapshots([snapshot]), 0)
        self.assertEqual(self.session.status.current.level, StatusLevel.ERROR)

    def test_clear_selection(self):
        self.session.toggle_focus()
        self.session.handle_key(Key.SPACE)
        self.session.handle_key(Key.ENTER)
        self.dialogs[-1].choose(DialogAction.CLEAR_SELECTION)
        self.session.process_events()
        self.assertFalse(self.session.snapshot_browser.table.has_multi_selection())

    def test_refresh(self):
        self.layout.write("late.txt", "late\n")
        self.layout.add_snapshot("s4", creation=snapshot_time(4))
        self.session.refresh()
        self.assertIsNotNone(self._entry("late.txt"))
        self.assertEqual(len(self.session.snapshot_browser.get_entries()), 3)


class BrowserSessionConfigTests(unittest.TestCase):
    """
    Test that a session applies its configuration
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        patcher = patch("zfh.zfs._zfs.which", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.layout = ZfsLayout()
        self.layout.write("b.txt", "b")
        self.layout.write("a.txt", "a")
        self.layout.mkdir("c")

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.layout.cleanup()

    def test_sort_configuration(self):
        config = ZfhConfig(sort_column="name", sort_inverted=True, watch=False)
        session = BrowserSession(self.layout.root, config=config, store=SnapshotStore())
        names = [entry.name for entry in session.file_browser.get_entries()]
        self.assertEqual(names, ["c", "b.txt", "a.txt", ".zfs"])
        session.close()

    def test_missing_path(self):
        session = BrowserSession(
            self.layout.path("missing"), store=SnapshotStore(), watch=False
        )
        self.assertIsNone(session.path)
        self.assertEqual(session.status.current.level, StatusLevel.ERROR)
        session.close()
