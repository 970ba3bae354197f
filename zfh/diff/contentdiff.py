# Copyright Red Hat
#
# zfh/diff/contentdiff.py - ZFS file history content diffs
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content-aware diffs between a snapshot copy of a file and its live
version.
"""
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from abc import ABC, abstractmethod
from pathlib import Path
import difflib
import hashlib
import json
import logging
import os

from .._zfh import ZfhArgumentError, ZFH_SUBSYSTEM_DIFF
from ..config import DEFAULT_MAX_CONTENT_DIFF_SIZE
from .filetypes import FileTypeCategory, FileTypeDetector, FileTypeInfo

if TYPE_CHECKING:
    from ..browser.entries import BrowserEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_DIFF}, **kwargs)


_HASH_CHUNK_SIZE = 65536

_DEV_NULL = "/dev/null"


def _file_size(path: Optional[Path]) -> Optional[int]:
    if path is None:
        return None
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


def _file_hash(path: Optional[Path]) -> Optional[str]:
    if path is None or not path.exists():
        return None
    digest = hashlib.sha256()
    with open(path, "rb") as fp:
        for chunk in iter(lambda: fp.read(_HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _read_lines(path: Optional[Path], encoding: str) -> List[str]:
    if path is None or not path.exists():
        return []
    with open(path, "r", encoding=encoding, errors="replace") as fp:
        return fp.readlines()


def _encoding_for(file_type_info: Optional[FileTypeInfo]) -> str:
    if file_type_info is None or file_type_info.mime_type == "inode/x-empty":
        return "utf8"
    encoding = file_type_info.encoding
    if not encoding or encoding == "binary":
        return "utf8"
    return encoding


class ContentDiff:
    """
    Represents a content-aware diff between two files.
    """

    def __init__(
        self,
        diff_type: str,
        old_path: Optional[Path] = None,
        new_path: Optional[Path] = None,
        summary: str = "",
    ):
        """
        Initialise a new ``ContentDiff`` object.

        :param diff_type: The kind of diff: 'unified', 'json' or 'binary'.
        :param old_path: The snapshot copy of the file.
        :param new_path: The live file.
        :param summary: A summary of the difference.
        """
        self.diff_type = diff_type
        self.old_path = old_path
        self.new_path = new_path
        self.diff_data: List[str] = []
        self.summary = summary
        self.has_changes = False
        self.error_message: Optional[str] = None
        self.file_type_info: Optional[FileTypeInfo] = None

    def __str__(self):
        """
        Return the diff as text: the unified diff lines, or the summary
        when there are no lines to show.
        """
        if self.error_message:
            return f"Error: {self.error_message}"
        if self.diff_data:
            return "".join(
                line if line.endswith("\n") else line + "\n" for line in self.diff_data
            )
        return self.summary

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``ContentDiff`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "diff_type": self.diff_type,
            "old_path": str(self.old_path) if self.old_path else None,
            "new_path": str(self.new_path) if self.new_path else None,
            "diff_data": self.diff_data,
            "summary": self.summary,
            "has_changes": self.has_changes,
            "error_message": self.error_message,
            "file_type": self.file_type_info.to_dict() if self.file_type_info else None,
        }


class ContentDifferBase(ABC):
    """
    Base class for content-aware diff implementations.
    """

    @abstractmethod
    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        """
        Return True if this differ can handle the given file type.
        """

    @abstractmethod
    def generate_diff(
        self,
        old_path: Optional[Path],
        new_path: Optional[Path],
        file_type_info: Optional[FileTypeInfo],
    ) -> ContentDiff:
        """
        Generate a content diff between two files.

        :param old_path: The original (snapshot) path, or ``None``.
        :param new_path: The updated (live) path, or ``None``.
        :param file_type_info: Type information for the files.
        :returns: A diff of the two files.
        :rtype: ``ContentDiff``
        """

    @property
    @abstractmethod
    def priority(self) -> int:
        """
        Priority for selection when multiple differs match (higher = preferred)
        """


def _unified(old_lines, new_lines, old_path, new_path, lineterm="\n"):
    return list(
        difflib.unified_diff(
            old_lines,
            new_lines,
            fromfile=str(old_path) if old_path else _DEV_NULL,
            tofile=str(new_path) if new_path else _DEV_NULL,
            lineterm=lineterm,
        )
    )


def _count_changes(lines, prefix):
    return len(
        [ln for ln in lines if ln.startswith(prefix) and not ln.startswith(3 * prefix)]
    )


class TextContentDiffer(ContentDifferBase):
    """
    Default text-based content differ.
    """

    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        return file_type_info.is_text_like

    def generate_diff(self, old_path, new_path, file_type_info):
        """
        Generate a unified diff for text files.
        """
        encoding = _encoding_for(file_type_info)
        try:
            old_lines = _read_lines(old_path, encoding)
            new_lines = _read_lines(new_path, encoding)
        except (OSError, LookupError) as err:
            _log_debug_diff(
                "TextContentDiffer error reading %s / %s: %s", old_path, new_path, err
            )
            content_diff = ContentDiff("unified", old_path, new_path)
            content_diff.error_message = str(err)
            content_diff.summary = "Error reading text content"
            return content_diff

        diff_lines = _unified(old_lines, new_lines, old_path, new_path)
        content_diff = ContentDiff("unified", old_path, new_path)
        content_diff.diff_data = diff_lines
        content_diff.has_changes = len(diff_lines) > 0
        content_diff.summary = (
            f"{_count_changes(diff_lines, '-')} deletions, "
            f"{_count_changes(diff_lines, '+')} additions"
        )
        return content_diff

    @property
    def priority(self) -> int:
        return 10


class JsonContentDiffer(ContentDifferBase):
    """
    JSON-aware content differ: compares normalised documents.
    """

    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        return file_type_info.mime_type.startswith("application/json")

    def generate_diff(self, old_path, new_path, file_type_info):
        """
        Generate a unified diff of the pretty-printed JSON documents. Falls
        back to a text diff for one-sided or malformed input.
        """
        if not old_path or not new_path:
            return TextContentDiffer().generate_diff(old_path, new_path, file_type_info)

        encoding = _encoding_for(file_type_info)
        try:
            with open(old_path, "r", encoding=encoding, errors="replace") as fp:
                old_data = json.load(fp)
            with open(new_path, "r", encoding=encoding, errors="replace") as fp:
                new_data = json.load(fp)
        except (OSError, ValueError) as err:
            _log_debug_diff(
                "JsonContentDiffer error reading %s / %s as JSON (%s), "
                "falling back to TextContentDiffer",
                old_path,
                new_path,
                err,
            )
            return TextContentDiffer().generate_diff(old_path, new_path, file_type_info)

        old_pretty = json.dumps(old_data, indent=2, sort_keys=True)
        new_pretty = json.dumps(new_data, indent=2, sort_keys=True)
        diff_lines = _unified(
            old_pretty.splitlines(keepends=True),
            new_pretty.splitlines(keepends=True),
            old_path,
            new_path,
        )
        content_diff = ContentDiff("json", old_path, new_path)
        content_diff.diff_data = diff_lines
        content_diff.has_changes = len(diff_lines) > 0
        content_diff.summary = (
            "JSON structure changes detected" if content_diff.has_changes else "No changes"
        )
        return content_diff

    @property
    def priority(self) -> int:
        return 50


class BinaryContentDiffer(ContentDifferBase):
    """
    Binary file content differ: reports size and hash changes.
    """

    binary_types = (
        FileTypeCategory.BINARY,
        FileTypeCategory.IMAGE,
        FileTypeCategory.AUDIO,
        FileTypeCategory.VIDEO,
        FileTypeCategory.ARCHIVE,
        FileTypeCategory.EXECUTABLE,
        FileTypeCategory.DATABASE,
        FileTypeCategory.DOCUMENT,
        FileTypeCategory.UNKNOWN,
    )

    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        return file_type_info.category in self.binary_types

    def generate_diff(self, old_path, new_path, file_type_info):
        """
        Generate a binary diff summary.
        """
        content_diff = ContentDiff("binary", old_path, new_path)
        try:
            old_size = _file_size(old_path)
            new_size = _file_size(new_path)
            size_diff = (new_size or 0) - (old_size or 0)
            if old_size is not None and new_size is not None and size_diff == 0:
                hash_changed = _file_hash(old_path) != _file_hash(new_path)
            else:
                hash_changed = True
        except OSError as err:
            content_diff.error_message = str(err)
            content_diff.summary = "Error reading binary content"
            return content_diff

        content_diff.has_changes = size_diff != 0 or hash_changed
        if size_diff != 0:
            content_diff.summary = f"Binary file size changed by {size_diff:+d} bytes"
        elif hash_changed:
            content_diff.summary = "Binary file content changed (same size)"
        else:
            content_diff.summary = "Binary file unchanged"
        return content_diff

    @property
    def priority(self) -> int:
        return 5


class ContentDifferManager:
    """
    Manager for content-aware diff implementations.
    """

    def __init__(
        self,
        use_magic: bool = False,
        max_size: int = DEFAULT_MAX_CONTENT_DIFF_SIZE,
    ):
        """
        Initialise a new ``ContentDifferManager`` instance.

        :param use_magic: Detect file types with libmagic.
        :param max_size: Files larger than this are compared by hash only.
        """
        self.use_magic = use_magic
        self.max_size = max_size
        self.detector = FileTypeDetector()
        self.differs: List[ContentDifferBase] = []
        self.register_differ(JsonContentDiffer())
        self.register_differ(TextContentDiffer())
        self.register_differ(BinaryContentDiffer())

    def register_differ(self, differ: ContentDifferBase):
        """
        Register a new content differ.
        """
        self.differs.append(differ)
        self.differs.sort(key=lambda d: d.priority, reverse=True)

    def get_differ_for_file(self, file_type_info: FileTypeInfo) -> ContentDifferBase:
        """
        Get the best content differ for a file type.
        """
        for differ in self.differs:
            if differ.can_handle(file_type_info):
                return differ
        return BinaryContentDiffer()

    def _too_large(self, *paths) -> bool:
        return any((_file_size(path) or 0) > self.max_size for path in paths)

    def generate_content_diff(
        self, old_path: Optional[Path], new_path: Optional[Path]
    ) -> ContentDiff:
        """
        Generate a content diff using the appropriate differ. The file type
        is taken from the live file when it exists.

        :param old_path: The snapshot copy, or ``None``.
        :param new_path: The live file, or ``None``.
        :returns: The content diff.
        :rtype: ``ContentDiff``
        """
        if old_path is None and new_path is None:
            raise ZfhArgumentError("Content diff needs at least one path")
        old_path = Path(old_path) if old_path is not None else None
        new_path = Path(new_path) if new_path is not None else None
        typed_path = new_path if new_path is not None and new_path.exists() else old_path

        file_type_info = self.detector.detect_file_type(typed_path, self.use_magic)
        if self._too_large(old_path, new_path):
            _log_debug_diff(
                "Content of %s exceeds %d bytes: comparing by hash",
                typed_path,
                self.max_size,
            )
            differ = BinaryContentDiffer()
        else:
            differ = self.get_differ_for_file(file_type_info)

        _log_debug_diff(
            "Diffing %s -> %s with %s (%s)",
            old_path,
            new_path,
            differ.__class__.__name__,
            file_type_info.mime_type,
        )
        content_diff = differ.generate_diff(old_path, new_path, file_type_info)
        content_diff.file_type_info = file_type_info
        return content_diff


def diff_files(
    old_path: Optional[str],
    new_path: Optional[str],
    use_magic: bool = False,
    max_size: int = DEFAULT_MAX_CONTENT_DIFF_SIZE,
) -> ContentDiff:
    """
    Diff two files.

    :param old_path: The original file, or ``None`` if it did not exist.
    :param new_path: The updated file, or ``None`` if it does not exist.
    :param use_magic: Detect file types with libmagic.
    :param max_size: Files larger than this are compared by hash only.
    :returns: The content diff.
    :rtype: ``ContentDiff``
    """
    manager = ContentDifferManager(use_magic=use_magic, max_size=max_size)
    return manager.generate_content_diff(old_path, new_path)


def diff_entry(
    entry: "BrowserEntry",
    use_magic: bool = False,
    max_size: int = DEFAULT_MAX_CONTENT_DIFF_SIZE,
) -> ContentDiff:
    """
    Diff the snapshot copy of a browser entry (old) against its live
    version (new).

    :param entry: A file browser entry.
    :param use_magic: Detect file types with libmagic.
    :param max_size: Files larger than this are compared by hash only.
    :returns: The content diff.
    :rtype: ``ContentDiff``
    :raises: ``ZfhArgumentError`` if ``entry`` is a directory.
    """
    if entry.stat.is_dir:
        raise ZfhArgumentError(f"Cannot diff directory '{entry.real_path}'")
    snapshot_file = entry.snapshot_file
    old_path = snapshot_file.path if snapshot_file is not None else None
    new_path = entry.real_path if entry.has_real else None
    if new_path is not None and not os.path.exists(new_path):
        new_path = None
    return diff_files(old_path, new_path, use_magic=use_magic, max_size=max_size)


__all__ = [
    "ContentDiff",
    "ContentDifferBase",
    "TextContentDiffer",
    "JsonContentDiffer",
    "BinaryContentDiffer",
    "ContentDifferManager",
    "DEFAULT_MAX_CONTENT_DIFF_SIZE",
    "diff_files",
    "diff_entry",
]
