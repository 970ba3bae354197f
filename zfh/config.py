# Copyright Red Hat
#
# zfh/config.py - ZFS file history configuration
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Configuration file handling for zfh.
"""
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass
from os.path import exists, join
import logging

from ._zfh import ZfhArgumentError, parse_debug_options

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Path to the zfh configuration directory
ZFH_CFG_DIR = "/etc/zfh"

#: Path to the default zfh configuration file
ZFH_CFG_FILE = join(ZFH_CFG_DIR, "zfh.conf")

_ZFH_CFG_GLOBAL = "global"
_ZFH_CFG_DEBUG = "debug"

_ZFH_CFG_BROWSER = "browser"
_ZFH_CFG_SORT_COLUMN = "sort_column"
_ZFH_CFG_SORT_INVERTED = "sort_inverted"
_ZFH_CFG_WATCH = "watch"

_ZFH_CFG_DIFF = "diff"
_ZFH_CFG_USE_MAGIC = "use_magic"
_ZFH_CFG_MAX_DIFF_SIZE = "max_content_diff_size"

#: File browser columns that may be named by ``sort_column``.
SORT_COLUMN_NAMES = ("size", "date_time", "type", "diff", "name")

#: Default upper bound on file size for content diffs (1MiB).
DEFAULT_MAX_CONTENT_DIFF_SIZE = 2**20


@dataclass(frozen=True)
class ZfhConfig:
    """
    zfh configuration.
    """

    debug: str = ""
    sort_column: str = "type"
    sort_inverted: bool = False
    watch: bool = True
    use_magic: bool = False
    max_content_diff_size: int = DEFAULT_MAX_CONTENT_DIFF_SIZE

    def __post_init__(self):
        if self.sort_column not in SORT_COLUMN_NAMES:
            raise ZfhArgumentError(
                f"Invalid sort column '{self.sort_column}': "
                f"expected one of {', '.join(SORT_COLUMN_NAMES)}"
            )
        if self.max_content_diff_size < 0:
            raise ZfhArgumentError(
                f"Invalid max_content_diff_size: {self.max_content_diff_size}"
            )
        if self.debug:
            try:
                parse_debug_options(self.debug)
            except ValueError as err:
                raise ZfhArgumentError(str(err)) from err

    @classmethod
    def from_file(cls, config_file: str = ZFH_CFG_FILE) -> "ZfhConfig":
        """
        Load ``ZfhConfig`` from an INI-style configuration file located at
        ``config_file``.

        :param config_file: path to zfh.conf
        :type config_file: ``str``.
        :returns: A ``ZfhConfig`` instance initialised from ``config_file``.
        :rtype: ``ZfhConfig``
        :raises: ``ZfhArgumentError`` if the file contains malformed values.
        """
        if not exists(config_file):
            return ZfhConfig()

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file])
        except ConfigParserError as err:
            raise ZfhArgumentError(
                f"Error parsing configuration file '{config_file}': {err}"
            ) from err

        kwargs = {}
        try:
            if cfg.has_option(_ZFH_CFG_GLOBAL, _ZFH_CFG_DEBUG):
                kwargs["debug"] = cfg.get(_ZFH_CFG_GLOBAL, _ZFH_CFG_DEBUG).strip()
            if cfg.has_option(_ZFH_CFG_BROWSER, _ZFH_CFG_SORT_COLUMN):
                kwargs["sort_column"] = (
                    cfg.get(_ZFH_CFG_BROWSER, _ZFH_CFG_SORT_COLUMN).strip().lower()
                )
            if cfg.has_option(_ZFH_CFG_BROWSER, _ZFH_CFG_SORT_INVERTED):
                kwargs["sort_inverted"] = cfg.getboolean(
                    _ZFH_CFG_BROWSER, _ZFH_CFG_SORT_INVERTED
                )
            if cfg.has_option(_ZFH_CFG_BROWSER, _ZFH_CFG_WATCH):
                kwargs["watch"] = cfg.getboolean(_ZFH_CFG_BROWSER, _ZFH_CFG_WATCH)
            if cfg.has_option(_ZFH_CFG_DIFF, _ZFH_CFG_USE_MAGIC):
                kwargs["use_magic"] = cfg.getboolean(_ZFH_CFG_DIFF, _ZFH_CFG_USE_MAGIC)
            if cfg.has_option(_ZFH_CFG_DIFF, _ZFH_CFG_MAX_DIFF_SIZE):
                kwargs["max_content_diff_size"] = cfg.getint(
                    _ZFH_CFG_DIFF, _ZFH_CFG_MAX_DIFF_SIZE
                )
        except ValueError as err:
            raise ZfhArgumentError(
                f"Invalid value in configuration file '{config_file}': {err}"
            ) from err

        return ZfhConfig(**kwargs)


__all__ = [
    "ZFH_CFG_DIR",
    "ZFH_CFG_FILE",
    "SORT_COLUMN_NAMES",
    "DEFAULT_MAX_CONTENT_DIFF_SIZE",
    "ZfhConfig",
]
