# Copyright Red Hat
#
# zfh/browser/events.py - ZFS file history event queue and status sink
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The owner-thread event queue and the status message sink.

All browser state is mutated on a single owner thread. Other threads
(the file watcher, dialog result callbacks) hand work to the owner by
posting callables on an ``EventQueue``, which the owner drains with
``process_pending()``.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from queue import SimpleQueue, Empty
from typing import Callable, List, Optional
import logging

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class EventQueue:
    """
    A thread-safe queue of callables executed on the owner thread.
    """

    def __init__(self):
        self._queue = SimpleQueue()

    def post(self, func: Callable, *args, **kwargs):
        """
        Queue ``func(*args, **kwargs)`` for execution on the owner thread.
        Safe to call from any thread.
        """
        self._queue.put((func, args, kwargs))

    def pending(self) -> int:
        """Return the approximate number of queued events."""
        return self._queue.qsize()

    def process_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued events on the calling (owner) thread.

        :param timeout: If given, wait up to ``timeout`` seconds for the
                        first event when the queue is empty.
        :returns: The number of events run.
        :rtype: ``int``
        """
        count = 0
        block = timeout is not None
        while True:
            try:
                (func, args, kwargs) = self._queue.get(block=block, timeout=timeout)
            except Empty:
                return count
            block = False
            func(*args, **kwargs)
            count += 1


class StatusLevel(Enum):
    """
    Severity of a status message.
    """

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LEVEL_TO_LOGGING = {
    StatusLevel.INFO: logging.INFO,
    StatusLevel.SUCCESS: logging.INFO,
    StatusLevel.WARNING: logging.WARNING,
    StatusLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class StatusMessage:
    """
    A message shown on the status line.
    """

    level: StatusLevel
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self):
        return f"{self.level.value.upper()}: {self.text}"


class StatusLog:
    """
    Status and error sink. Messages are logged and forwarded to
    listeners; the sink never affects the control flow of its callers.
    """

    def __init__(self, history: int = 100):
        self._listeners: List[Callable[[Optional[StatusMessage]], None]] = []
        self._history = deque(maxlen=history)
        self._current: Optional[StatusMessage] = None

    @property
    def current(self) -> Optional[StatusMessage]:
        """The message currently shown, or ``None``."""
        return self._current

    @property
    def history(self) -> List[StatusMessage]:
        """Recent messages, oldest first."""
        return list(self._history)

    def add_listener(self, listener: Callable[[Optional[StatusMessage]], None]):
        """
        Register ``listener`` to be called with each new message, or with
        ``None`` when the status is cleared.
        """
        self._listeners.append(listener)

    def _show(self, level: StatusLevel, text: str):
        message = StatusMessage(level, text)
        _log.log(_LEVEL_TO_LOGGING[level], "%s", text)
        self._history.append(message)
        self._current = message
        for listener in list(self._listeners):
            listener(message)
        return message

    def info(self, text: str) -> StatusMessage:
        """Show an informational message."""
        return self._show(StatusLevel.INFO, text)

    def success(self, text: str) -> StatusMessage:
        """Show a success message."""
        return self._show(StatusLevel.SUCCESS, text)

    def warning(self, text: str) -> StatusMessage:
        """Show a warning message."""
        return self._show(StatusLevel.WARNING, text)

    def error(self, text: str) -> StatusMessage:
        """Show an error message."""
        return self._show(StatusLevel.ERROR, text)

    def clear(self):
        """Clear the current message."""
        self._current = None
        for listener in list(self._listeners):
            listener(None)


__all__ = [
    "EventQueue",
    "StatusLevel",
    "StatusMessage",
    "StatusLog",
]
