# Copyright Red Hat
#
# zfh/diff/__init__.py - ZFS file history content diff package
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content diff package.

Compares the copy of a file held by a snapshot with the live file. The
main entry points are ``diff_entry`` and ``diff_files``.
"""
from .contentdiff import ContentDiff, ContentDifferManager, diff_entry, diff_files
from .filetypes import FileTypeCategory, FileTypeDetector, FileTypeInfo

__all__ = [
    "ContentDiff",
    "ContentDifferManager",
    "FileTypeCategory",
    "FileTypeDetector",
    "FileTypeInfo",
    "diff_entry",
    "diff_files",
]
