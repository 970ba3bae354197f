# Copyright Red Hat
#
# zfh/browser/watch.py - ZFS file history directory change watcher
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory change notifications built on ``watchdog``.

Notifications arrive on the observer thread. They are coalesced and
marshaled onto the owner thread through an ``EventQueue``: at most one
call of the watch action is pending at any time.
"""
from threading import Lock
from typing import Callable, Optional
import logging

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .._zfh import ZfhSystemError, ZFH_SUBSYSTEM_WATCH
from .events import EventQueue

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_watch(msg, *args, **kwargs):
    """A wrapper for watch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_WATCH}, **kwargs)


# Access-only events: listing the watched directory must not trigger
# another refresh.
_IGNORED_EVENT_TYPES = ("opened", "closed_no_write")

#: Seconds to wait for the observer thread to exit on stop().
_STOP_TIMEOUT = 5.0


class _ChangeHandler(FileSystemEventHandler):
    """
    Forwards watchdog events to a ``FileWatcher``.
    """

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event):
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        self._watcher.notify(event.src_path)


class FileWatcher:
    """
    Watch a single directory (not recursively) for changes.
    """

    def __init__(
        self,
        root_path: str,
        queue: EventQueue,
        observer_factory: Callable = Observer,
    ):
        """
        Initialise a new ``FileWatcher``.

        :param root_path: The directory to watch.
        :param queue: The owner thread's event queue.
        :param observer_factory: Creates the watchdog observer.
        """
        self.root_path = root_path
        self._queue = queue
        self._observer_factory = observer_factory
        self._observer = None
        self._action: Optional[Callable[[str], None]] = None
        self._lock = Lock()
        self._pending = False
        self._latest = root_path
        self._stopped = False

    def __repr__(self):
        return f"FileWatcher(root_path={self.root_path!r}, watching={self.watching})"

    @property
    def watching(self) -> bool:
        """``True`` while the watcher is active."""
        return self._observer is not None and not self._stopped

    def watch(self, action: Callable[[str], None]):
        """
        Start watching ``root_path``. ``action`` is called on the owner
        thread with the path of the most recent change.

        :param action: Called with the path of the latest changed entry.
        :raises: ``ZfhSystemError`` if the directory cannot be watched.
        """
        self._action = action
        self._stopped = False
        observer = self._observer_factory()
        try:
            observer.schedule(_ChangeHandler(self), self.root_path, recursive=False)
            observer.start()
        except OSError as err:
            raise ZfhSystemError(f"Cannot watch '{self.root_path}': {err}") from err
        self._observer = observer
        _log_debug_watch("Watching '%s'", self.root_path)

    def notify(self, path: str):
        """
        Record a change of ``path``. Called on the observer thread.
        """
        with self._lock:
            if self._stopped:
                return
            self._latest = path
            if self._pending:
                return
            self._pending = True
        _log_debug_watch("Change detected at '%s'", path)
        self._queue.post(self._dispatch)

    def _dispatch(self):
        with self._lock:
            self._pending = False
            path = self._latest
            if self._stopped:
                return
        if self._action is not None:
            self._action(path)

    def stop(self):
        """
        Stop watching. Pending notifications are discarded.
        """
        with self._lock:
            self._stopped = True
        if self._observer is None:
            return
        observer = self._observer
        self._observer = None
        observer.stop()
        observer.join(timeout=_STOP_TIMEOUT)
        _log_debug_watch("Stopped watching '%s'", self.root_path)


__all__ = ["FileWatcher"]
