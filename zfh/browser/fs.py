# Copyright Red Hat
#
# zfh/browser/fs.py - ZFS file history live filesystem access
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory listing and stat access for the browser.
"""
from os.path import basename, join
from typing import List
import os

from .entries import EntryStat


class LiveFileSystem:
    """
    Access to directory listings and file status on the host.

    Errors are raised as ``OSError`` subclasses and are translated by the
    caller.
    """

    def list_entries(self, path: str) -> List[str]:
        """
        List the entries of the directory at ``path``.

        :param path: An absolute directory path.
        :returns: Absolute paths of the directory entries in name order.
        :rtype: ``list`` of ``str``
        """
        return sorted(join(path, name) for name in os.listdir(path))

    def stat_entry(self, path: str) -> EntryStat:
        """
        Return the ``EntryStat`` for ``path``. Size, time and mode follow
        symbolic links, the kind does not.

        :param path: The path to examine.
        :returns: The status of ``path``.
        :rtype: ``EntryStat``
        """
        st = os.stat(path)
        lst = os.lstat(path)
        return EntryStat.from_stat(basename(path), st, lst)

    def is_dir(self, path: str) -> bool:
        """Return ``True`` if ``path`` is a directory (links followed)."""
        return os.path.isdir(path)


__all__ = ["LiveFileSystem"]
