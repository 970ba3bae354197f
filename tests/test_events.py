# Copyright Red Hat
#
# tests/test_events.py - event queue and status sink tests
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
from threading import Thread
import unittest
import logging

from zfh.browser.events import EventQueue, StatusLevel, StatusLog

log = logging.getLogger()


class EventQueueTests(unittest.TestCase):
    """
    Test the owner-thread event queue
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.queue = EventQueue()

    def test_process_pending_runs_in_order(self):
        calls = []
        self.queue.post(calls.append, 1)
        self.queue.post(calls.append, 2)
        self.assertEqual(self.queue.pending(), 2)
        self.assertEqual(self.queue.process_pending(), 2)
        self.assertEqual(calls, [1, 2])
        self.assertEqual(self.queue.process_pending(), 0)

    def test_post_kwargs(self):
        calls = []
        self.queue.post(lambda a, b=None: calls.append((a, b)), "x", b="y")
        self.queue.process_pending()
        self.assertEqual(calls, [("x", "y")])

    def test_post_from_other_thread(self):
        calls = []
        thread = Thread(target=self.queue.post, args=(calls.append, "from-thread"))
        thread.start()
        thread.join()
        self.assertEqual(self.queue.process_pending(timeout=1.0), 1)
        self.assertEqual(calls, ["from-thread"])

    def test_process_pending_timeout_empty(self):
        self.assertEqual(self.queue.process_pending(timeout=0.01), 0)


class StatusLogTests(unittest.TestCase):
    """
    Test the status message sink
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.status = StatusLog(history=3)

    def test_levels(self):
        self.assertEqual(self.status.info("i").level, StatusLevel.INFO)
        self.assertEqual(self.status.success("s").level, StatusLevel.SUCCESS)
        self.assertEqual(self.status.warning("w").level, StatusLevel.WARNING)
        message = self.status.error("e")
        self.assertEqual(message.level, StatusLevel.ERROR)
        self.assertIs(self.status.current, message)
        self.assertEqual(str(message), "ERROR: e")

    def test_history_bounded(self):
        for text in ("a", "b", "c", "d"):
            self.status.info(text)
        self.assertEqual([m.text for m in self.status.history], ["b", "c", "d"])

    def test_listeners_and_clear(self):
        seen = []
        self.status.add_listener(seen.append)
        self.status.warning("careful")
        self.status.clear()
        self.assertIsNone(self.status.current)
        self.assertEqual(seen[0].text, "careful")
        self.assertIsNone(seen[1])

    def test_messages_are_logged(self):
        with self.assertLogs("zfh.browser.events", level="ERROR") as logs:
            self.status.error("broken")
        self.assertIn("broken", logs.output[0])
