# Copyright Red Hat
#
# zfh/diff/filetypes.py - ZFS file history file type detection
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File type information support.
"""
from typing import ClassVar, Dict, Optional, Tuple
from pathlib import Path
from enum import Enum
import logging
import magic

from .._zfh import ZFH_SUBSYSTEM_DIFF

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_DIFF}, **kwargs)


#: Number of leading bytes examined when sniffing unnamed file types.
SNIFF_SIZE = 8192

# Format: ".ext": ("mime/type", "description starting with lowercase")
TEXT_EXTENSION_MAP = {
    ".txt": ("text/plain", "plain text document"),
    ".md": ("text/markdown", "markdown documentation"),
    ".rst": ("text/x-rst", "reStructuredText document"),
    ".tex": ("text/x-tex", "latex source document"),
    ".json": ("application/json", "json data file"),
    ".xml": ("application/xml", "xml document"),
    ".yaml": ("application/yaml", "yaml configuration file"),
    ".yml": ("application/yaml", "yaml configuration file"),
    ".toml": ("application/toml", "toml configuration file"),
    ".ini": ("text/x-ini", "ini configuration file"),
    ".cfg": ("text/x-config", "configuration file"),
    ".conf": ("text/x-config", "configuration file"),
    ".env": ("text/x-env", "environment variable file"),
    ".csv": ("text/csv", "comma-separated values"),
    ".tsv": ("text/tab-separated-values", "tab-separated values"),
    ".log": ("text/x-log", "log file"),
    ".html": ("text/html", "html document"),
    ".htm": ("text/html", "html document"),
    ".css": ("text/css", "cascading style sheet"),
    ".svg": ("image/svg+xml", "scalable vector graphics"),
    ".js": ("text/javascript", "javascript source code"),
    ".ts": ("application/typescript", "typescript source code"),
    ".sh": ("application/x-sh", "shell script"),
    ".bash": ("application/x-sh", "bash script"),
    ".zsh": ("application/x-zsh", "zsh script"),
    ".pl": ("text/x-perl", "perl script"),
    ".lua": ("text/x-lua", "lua script"),
    ".py": ("text/x-python", "python source code"),
    ".rb": ("text/x-ruby", "ruby source code"),
    ".java": ("text/x-java-source", "java source code"),
    ".c": ("text/x-c", "c source code"),
    ".h": ("text/x-c", "c header file"),
    ".cpp": ("text/x-c++", "c++ source code"),
    ".hpp": ("text/x-c++", "c++ header file"),
    ".go": ("text/x-go", "go source code"),
    ".rs": ("text/rust", "rust source code"),
    ".sql": ("application/x-sql", "sql database script"),
    ".diff": ("text/x-diff", "unified diff"),
    ".patch": ("text/x-diff", "unified diff"),
}

# Format: "pattern": ("mime/type", "description starting with lowercase")
TEXT_FILENAME_MAP = {
    "*makefile": ("text/x-makefile", "makefile build script"),
    "*dockerfile": ("text/x-dockerfile", "docker build script"),
    "*license": ("text/plain", "license text"),
    "*readme": ("text/plain", "readme text"),
    "*changelog": ("text/plain", "changelog text"),
    "*fstab": ("text/plain", "static file system information"),
    ".*rc": ("text/x-config", "run commands file"),
    ".*profile": ("text/x-shellscript", "shell profile"),
}

BINARY_EXTENSION_MAP = {
    ".zip": ("application/zip", "zip archive"),
    ".tar": ("application/x-tar", "tar archive"),
    ".gz": ("application/gzip", "gzip compressed data"),
    ".bz2": ("application/x-bzip2", "bzip2 compressed data"),
    ".xz": ("application/x-xz", "xz compressed data"),
    ".zst": ("application/zstd", "zstandard compressed data"),
    ".7z": ("application/x-7z-compressed", "7-zip archive"),
    ".png": ("image/png", "png image"),
    ".jpg": ("image/jpeg", "jpeg image"),
    ".jpeg": ("image/jpeg", "jpeg image"),
    ".gif": ("image/gif", "gif image"),
    ".webp": ("image/webp", "webp image"),
    ".mp3": ("audio/mpeg", "mp3 audio"),
    ".ogg": ("audio/ogg", "ogg audio"),
    ".wav": ("audio/wav", "wave audio"),
    ".mp4": ("video/mp4", "mp4 video"),
    ".mkv": ("video/x-matroska", "matroska video"),
    ".pdf": ("application/pdf", "pdf document"),
    ".docx": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "word document",
    ),
    ".odt": ("application/vnd.oasis.opendocument.text", "opendocument text"),
    ".so": ("application/x-sharedlib", "shared library"),
    ".o": ("application/x-object", "object file"),
    ".db": ("application/x-sqlite3", "database file"),
    ".sqlite": ("application/x-sqlite3", "sqlite database"),
    ".iso": ("application/x-iso9660-image", "iso disk image"),
}

BINARY_FILENAME_MAP = {
    "*.so.*": ("application/x-sharedlib", "versioned shared library"),
    "*core.*": ("application/x-coredump", "system core dump"),
}

_UNKNOWN_GUESS = ("application/octet-stream", "unknown file type", "binary")


def _generic_guess_file(
    file_path: Path,
    extension_map: Dict[str, Tuple[str, str]],
    filename_map: Dict[str, Tuple[str, str]],
    encoding: str,
) -> Optional[Tuple[str, str, str]]:
    """
    Attempt to guess a file's MIME type and description based on the file
    name and extension.

    :param file_path: The file path to check.
    :param extension_map: A map of ".extension": (mime_type, description).
    :param filename_map: A map of "pattern": (mime_type, description).
    :param encoding: The encoding to report for a match.
    :returns: A 3-tuple containing (mime_type, description, encoding) if the
              type could be guessed or ``None`` otherwise.
    :rtype: ``Optional[Tuple[str, str, str]]``
    """
    name = Path(file_path.name.lower())
    for pattern, guess in filename_map.items():
        if name.match(pattern):
            return (*guess, encoding)

    extension = file_path.suffix.lower()
    if extension and extension in extension_map:
        return (*extension_map[extension], encoding)
    return None


def _sniff_file(file_path: Path) -> Optional[Tuple[str, str, str]]:
    """
    Classify a file with an unrecognised name from its leading bytes: data
    without NUL bytes that decodes as UTF-8 is plain text.
    """
    try:
        with open(file_path, "rb") as fp:
            head = fp.read(SNIFF_SIZE)
    except OSError as err:
        _log_debug_diff("Cannot sniff %s: %s", file_path, err)
        return None
    if not head:
        return ("inode/x-empty", "empty", "utf-8")
    if b"\0" in head:
        return None
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as err:
        # A multi-byte sequence cut at the end of the sample is still text.
        if err.start < len(head) - 3:
            return None
    return ("text/plain", "plain text document", "utf-8")


def _guess_file(file_path: Path) -> Tuple[str, str, str]:
    """
    Attempt to guess a file's MIME type and description based on the file
    name and extension, falling back to the file content.

    :param file_path: The file path to check.
    :returns: A 3-tuple containing (mime_type, description, encoding).
    :rtype: ``Tuple[str, str, str]``
    """
    guess = _generic_guess_file(
        file_path, BINARY_EXTENSION_MAP, BINARY_FILENAME_MAP, "binary"
    )
    if guess is not None:
        return guess

    guess = _generic_guess_file(
        file_path, TEXT_EXTENSION_MAP, TEXT_FILENAME_MAP, "utf-8"
    )
    if guess is not None:
        return guess

    return _sniff_file(file_path) or _UNKNOWN_GUESS


class FileTypeCategory(Enum):
    """
    Enum for file type categories.
    """

    TEXT = "text"
    BINARY = "binary"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ARCHIVE = "archive"
    EXECUTABLE = "executable"
    CONFIG = "config"
    LOG = "log"
    DATABASE = "database"
    DOCUMENT = "document"
    SOURCE_CODE = "source_code"
    EMPTY = "empty"
    UNKNOWN = "unknown"


class FileTypeInfo:
    """
    File type information and encoding.
    """

    def __init__(
        self,
        mime_type: str,
        description: str,
        category: FileTypeCategory,
        encoding: Optional[str] = None,
    ):
        """
        Initialise a new ``FileTypeInfo`` object.

        :param mime_type: The detected MIME type.
        :param description: Type description.
        :param category: File type category.
        :param encoding: Optional file encoding.
        """
        self.mime_type = mime_type
        self.description = description
        self.category = category
        self.encoding = encoding
        self.is_text_like = category in (
            FileTypeCategory.TEXT,
            FileTypeCategory.CONFIG,
            FileTypeCategory.LOG,
            FileTypeCategory.SOURCE_CODE,
            FileTypeCategory.EMPTY,
        ) or (category == FileTypeCategory.DOCUMENT and mime_type.startswith("text/"))

    def __str__(self):
        return (
            f"MIME type: {self.mime_type}, "
            f"Category: {self.category.value}, "
            f"Encoding: {self.encoding if self.encoding else 'unknown'}, "
            f"Description: {self.description}"
        )

    def to_dict(self):
        """Return a dictionary representation suitable for JSON."""
        return {
            "mime_type": self.mime_type,
            "description": self.description,
            "category": self.category.value,
            "encoding": self.encoding,
            "is_text_like": self.is_text_like,
        }


class FileTypeDetector:
    """
    Detect file types by name, or using ``magic`` from python3-file-magic.
    """

    # fmt: off
    category_rules: ClassVar[Dict[str, FileTypeCategory]] = {
        "inode/x-empty": FileTypeCategory.EMPTY,
        "application/zip": FileTypeCategory.ARCHIVE,
        "application/x-tar": FileTypeCategory.ARCHIVE,
        "application/gzip": FileTypeCategory.ARCHIVE,
        "application/x-gzip": FileTypeCategory.ARCHIVE,
        "application/x-bzip2": FileTypeCategory.ARCHIVE,
        "application/x-xz": FileTypeCategory.ARCHIVE,
        "application/zstd": FileTypeCategory.ARCHIVE,
        "application/x-7z-compressed": FileTypeCategory.ARCHIVE,
        "application/x-iso9660-image": FileTypeCategory.ARCHIVE,
        "application/x-executable": FileTypeCategory.EXECUTABLE,
        "application/x-sharedlib": FileTypeCategory.EXECUTABLE,
        "application/x-pie-executable": FileTypeCategory.EXECUTABLE,
        "application/x-object": FileTypeCategory.EXECUTABLE,
        "application/x-coredump": FileTypeCategory.EXECUTABLE,
        "application/pdf": FileTypeCategory.DOCUMENT,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document":
            FileTypeCategory.DOCUMENT,
        "application/vnd.oasis.opendocument.text": FileTypeCategory.DOCUMENT,
        "text/markdown": FileTypeCategory.DOCUMENT,
        "text/x-rst": FileTypeCategory.DOCUMENT,
        "text/x-tex": FileTypeCategory.DOCUMENT,
        "application/json": FileTypeCategory.CONFIG,
        "application/xml": FileTypeCategory.CONFIG,
        "text/xml": FileTypeCategory.CONFIG,
        "application/yaml": FileTypeCategory.CONFIG,
        "application/toml": FileTypeCategory.CONFIG,
        "text/x-ini": FileTypeCategory.CONFIG,
        "text/x-config": FileTypeCategory.CONFIG,
        "text/x-env": FileTypeCategory.CONFIG,
        "application/x-sqlite3": FileTypeCategory.DATABASE,
        "application/vnd.sqlite3": FileTypeCategory.DATABASE,
        "application/javascript": FileTypeCategory.SOURCE_CODE,
        "application/typescript": FileTypeCategory.SOURCE_CODE,
        "application/x-sh": FileTypeCategory.SOURCE_CODE,
        "application/x-zsh": FileTypeCategory.SOURCE_CODE,
        "application/x-sql": FileTypeCategory.SOURCE_CODE,
        "text/javascript": FileTypeCategory.SOURCE_CODE,
        "text/x-python": FileTypeCategory.SOURCE_CODE,
        "text/x-shellscript": FileTypeCategory.SOURCE_CODE,
        "text/x-c": FileTypeCategory.SOURCE_CODE,
        "text/x-c++": FileTypeCategory.SOURCE_CODE,
        "text/x-java-source": FileTypeCategory.SOURCE_CODE,
        "text/x-go": FileTypeCategory.SOURCE_CODE,
        "text/rust": FileTypeCategory.SOURCE_CODE,
        "text/html": FileTypeCategory.SOURCE_CODE,
        "text/css": FileTypeCategory.SOURCE_CODE,
        "text/x-diff": FileTypeCategory.SOURCE_CODE,
        "text/x-makefile": FileTypeCategory.SOURCE_CODE,
        "text/x-log": FileTypeCategory.LOG,
        "text/": FileTypeCategory.TEXT,
        "image/svg+xml": FileTypeCategory.TEXT,
        "image/": FileTypeCategory.IMAGE,
        "audio/": FileTypeCategory.AUDIO,
        "video/": FileTypeCategory.VIDEO,
    }
    # fmt: on

    def detect_file_type(self, file_path: Path, use_magic=False) -> FileTypeInfo:
        """
        Detect file type information, optionally using libmagic for MIME
        type detection.

        :param file_path: The path to the file to inspect.
        :param use_magic: Use libmagic instead of name based guessing.
        :returns: File type information for ``file_path``.
        :rtype: ``FileTypeInfo``
        """
        file_path = Path(file_path)
        if not use_magic:
            return self._guess_file_type(file_path)

        # c9s magic does not have magic.error
        if hasattr(magic, "error"):
            magic_errors = (magic.error, OSError, ValueError)
        else:
            magic_errors = (OSError, ValueError)

        try:
            fm = magic.detect_from_filename(str(file_path))
        except magic_errors as err:
            _log_warn("Error detecting file type for %s: %s", str(file_path), err)
            return FileTypeInfo(
                "application/octet-stream", "unknown", FileTypeCategory.UNKNOWN
            )
        category = self._categorize_file(fm.mime_type, file_path)
        _log_debug_diff("Detected %s as %s (%s)", file_path, fm.mime_type, category)
        return FileTypeInfo(fm.mime_type, fm.name, category, fm.encoding)

    def _categorize_file(self, mime_type: str, file_path: Path) -> FileTypeCategory:
        """
        Categorize file based on MIME type and path patterns.

        :param mime_type: Detected file MIME type.
        :param file_path: Path to the file to categorize.
        :returns: File type categorization.
        :rtype: ``FileTypeCategory``
        """
        mime_type = mime_type.lower()
        if file_path.suffix.lower() == ".log":
            return FileTypeCategory.LOG

        # Exact matches win over prefix rules.
        if mime_type in self.category_rules:
            return self.category_rules[mime_type]
        for pattern, category in self.category_rules.items():
            if pattern.endswith("/") and mime_type.startswith(pattern):
                return category
        return FileTypeCategory.BINARY

    def _guess_file_type(self, file_path: Path) -> FileTypeInfo:
        """
        Guess the file type from its name and leading content without
        using libmagic.
        """
        mime_type, description, encoding = _guess_file(file_path)
        category = self._categorize_file(mime_type, file_path)
        return FileTypeInfo(mime_type, description, category, encoding)


__all__ = [
    "FileTypeCategory",
    "FileTypeInfo",
    "FileTypeDetector",
]
