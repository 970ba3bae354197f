# Copyright Red Hat
#
# zfh/browser/memory.py - ZFS file history per-path selection memory
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Remember the cursor position of a table per key (a directory path or a
dataset mount point) and restore it when the key is shown again.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, Sequence, TypeVar

from .._zfh import coerce

T = TypeVar("T")


@dataclass(frozen=True)
class SelectionInfo:
    """
    A remembered selection: the selected id, or ``None`` for the header
    row, and the index the selection had when it was recorded.
    """

    entry_id: Optional[str]
    index: int


class SelectionMemory(Generic[T]):
    """
    Per-key cursor memory. Not persisted across runs.
    """

    def __init__(self):
        self._memory: Dict[str, SelectionInfo] = {}

    def __len__(self):
        return len(self._memory)

    def record_selection(self, path: str, entry_id: Optional[str], index: int):
        """
        Remember the selection for ``path``.

        :param path: The key to remember the selection under.
        :param entry_id: The selected id, or ``None`` if the cursor is on
                         the header row.
        :param index: The index of the selected entry, or ``-1`` for the
                      header row.
        """
        self._memory[path] = SelectionInfo(entry_id, index)

    def get(self, path: str) -> Optional[SelectionInfo]:
        """Return the remembered ``SelectionInfo`` for ``path``, or ``None``."""
        return self._memory.get(path)

    def restore_selection(
        self,
        path: str,
        new_entries: Sequence[T],
        id_func: Callable[[T], str],
    ) -> Optional[T]:
        """
        Return the entry of ``new_entries`` to select for ``path``.

        Without memory for ``path`` the first entry is chosen. A
        remembered header selection restores the header. A remembered id
        that is still present is chosen; otherwise the entry at the
        remembered index, clamped to ``new_entries``, is chosen.

        :param path: The key to restore.
        :param new_entries: The entries now shown, in display order.
        :param id_func: Returns the stable id of an entry.
        :returns: The entry to select, or ``None`` for the header row.
        """
        if not new_entries:
            return None

        info = self._memory.get(path)
        if info is None:
            return new_entries[0]

        if info.entry_id is None:
            return None

        for entry in new_entries:
            if id_func(entry) == info.entry_id:
                return entry

        return new_entries[coerce(info.index, 0, len(new_entries) - 1)]

    def forget(self, path: str):
        """Discard the memory for ``path``."""
        self._memory.pop(path, None)

    def has_memory(self, path: str) -> bool:
        """``True`` if a selection is remembered for ``path``."""
        return path in self._memory

    def clear(self):
        """Discard all remembered selections."""
        self._memory.clear()


__all__ = ["SelectionInfo", "SelectionMemory"]
