# Copyright Red Hat
#
# zfh/_zfh.py - ZFS file history global definitions
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level zfh package.
"""
from datetime import datetime
import logging
import math

_log = logging.getLogger("zfh")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# zfh debugging subsystem mask
ZFH_DEBUG_RECONCILE = 1
ZFH_DEBUG_TABLE = 2
ZFH_DEBUG_NAVIGATION = 4
ZFH_DEBUG_WATCH = 8
ZFH_DEBUG_ZFS = 16
ZFH_DEBUG_COMMAND = 32
ZFH_DEBUG_DIFF = 64
ZFH_DEBUG_ALL = (
    ZFH_DEBUG_RECONCILE
    | ZFH_DEBUG_TABLE
    | ZFH_DEBUG_NAVIGATION
    | ZFH_DEBUG_WATCH
    | ZFH_DEBUG_ZFS
    | ZFH_DEBUG_COMMAND
    | ZFH_DEBUG_DIFF
)

# zfh debugging subsystem names
ZFH_SUBSYSTEM_RECONCILE = "zfh.reconcile"
ZFH_SUBSYSTEM_TABLE = "zfh.table"
ZFH_SUBSYSTEM_NAVIGATION = "zfh.navigation"
ZFH_SUBSYSTEM_WATCH = "zfh.watch"
ZFH_SUBSYSTEM_ZFS = "zfh.zfs"
ZFH_SUBSYSTEM_COMMAND = "zfh.command"
ZFH_SUBSYSTEM_DIFF = "zfh.diff"

_DEBUG_MASK_TO_SUBSYSTEM = {
    ZFH_DEBUG_RECONCILE: ZFH_SUBSYSTEM_RECONCILE,
    ZFH_DEBUG_TABLE: ZFH_SUBSYSTEM_TABLE,
    ZFH_DEBUG_NAVIGATION: ZFH_SUBSYSTEM_NAVIGATION,
    ZFH_DEBUG_WATCH: ZFH_SUBSYSTEM_WATCH,
    ZFH_DEBUG_ZFS: ZFH_SUBSYSTEM_ZFS,
    ZFH_DEBUG_COMMAND: ZFH_SUBSYSTEM_COMMAND,
    ZFH_DEBUG_DIFF: ZFH_SUBSYSTEM_DIFF,
}

#: Map of debug option names accepted on the command line and in zfh.conf
DEBUG_OPTION_NAMES = {
    "reconcile": ZFH_DEBUG_RECONCILE,
    "table": ZFH_DEBUG_TABLE,
    "navigation": ZFH_DEBUG_NAVIGATION,
    "watch": ZFH_DEBUG_WATCH,
    "zfs": ZFH_DEBUG_ZFS,
    "command": ZFH_DEBUG_COMMAND,
    "diff": ZFH_DEBUG_DIFF,
    "all": ZFH_DEBUG_ALL,
}

_debug_subsystems = set()

#: Display format for timestamps in browser tables.
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

#: strftime format used to name snapshots created by zfh.
SNAPSHOT_TIME_FORMAT = "%Y-%m-%d-%H%M%S"

#: Prefix for snapshots created by zfh.
SNAPSHOT_NAME_PREFIX = "zfh-"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        # Always pass non-DEBUG messages.
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``zfh`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    zfh_log = logging.getLogger("zfh")

    for handler in zfh_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``zfh`` package.

    :param mask: the logical OR of the ``ZFH_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > ZFH_DEBUG_ALL:
        raise ValueError(f"Invalid zfh debug mask: {mask}")

    enabled_subsystems = []
    for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items():
        if mask & flag:
            enabled_subsystems.append(subsystem_name)

    zfh_log = logging.getLogger("zfh")
    for handler in zfh_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def parse_debug_options(debug_arg):
    """
    Convert a comma separated list of debug option names into a mask.

    :param debug_arg: A string such as ``"reconcile,table"``.
    :returns: The logical OR of the corresponding ``ZFH_DEBUG_*`` values.
    :rtype: ``int``
    :raises: ``ValueError`` if an unknown option name is present.
    """
    mask = 0
    for name in debug_arg.split(","):
        name = name.strip()
        if not name:
            continue
        if name not in DEBUG_OPTION_NAMES:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= DEBUG_OPTION_NAMES[name]
    return mask


#
# zfh exception types
#


class ZfhError(Exception):
    """
    Base class for zfh errors.
    """


class ZfhSystemError(ZfhError):
    """
    An error when calling the operating system.
    """


class ZfhPermissionError(ZfhError):
    """
    Permission to list or read a path was denied.
    """


class ZfhNotFoundError(ZfhError):
    """
    The requested object does not exist.
    """


class ZfhStatError(ZfhError):
    """
    A single directory entry could not be examined.
    """


class ZfhInvalidTargetError(ZfhError):
    """
    A navigation target is not a directory.
    """


class ZfhCalloutError(ZfhError):
    """
    An error calling out to an external program.
    """


class ZfhDatasetError(ZfhError):
    """
    No ZFS dataset could be found for a path.
    """


class ZfhArgumentError(ZfhError):
    """
    An invalid argument was passed to a zfh API call.
    """


class ZfhStateError(ZfhError):
    """
    The state of an object does not allow an operation to proceed.
    """


def size_fmt(value):
    """
    Format a size in bytes as a human readable string.

    :param value: The integer value to format.
    :returns: A human readable string reflecting value.
    """
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB"]
    if value == 0:
        return "0B"
    magnitude = math.floor(math.log(abs(value), 1024))
    val = value / math.pow(1024, magnitude)
    if magnitude > 7:
        return f"{val:.1f}YiB"
    return f"{val:3.1f}{suffixes[magnitude]}"


def format_timestamp_ns(mtime_ns):
    """
    Format a nanosecond POSIX timestamp for display.

    :param mtime_ns: Nanoseconds since the epoch.
    :returns: The local time formatted with ``DATETIME_FORMAT``.
    :rtype: ``str``
    """
    return datetime.fromtimestamp(mtime_ns / 1e9).strftime(DATETIME_FORMAT)


def coerce(value, minimum, maximum):
    """
    Clamp ``value`` into the closed interval ``[minimum, maximum]``.

    If ``maximum`` is less than ``minimum`` the result is ``maximum``.
    """
    if value > maximum:
        return maximum
    if value < minimum:
        return minimum
    return value


__all__ = [
    "ZFH_DEBUG_RECONCILE",
    "ZFH_DEBUG_TABLE",
    "ZFH_DEBUG_NAVIGATION",
    "ZFH_DEBUG_WATCH",
    "ZFH_DEBUG_ZFS",
    "ZFH_DEBUG_COMMAND",
    "ZFH_DEBUG_DIFF",
    "ZFH_DEBUG_ALL",
    "ZFH_SUBSYSTEM_RECONCILE",
    "ZFH_SUBSYSTEM_TABLE",
    "ZFH_SUBSYSTEM_NAVIGATION",
    "ZFH_SUBSYSTEM_WATCH",
    "ZFH_SUBSYSTEM_ZFS",
    "ZFH_SUBSYSTEM_COMMAND",
    "ZFH_SUBSYSTEM_DIFF",
    "DEBUG_OPTION_NAMES",
    "DATETIME_FORMAT",
    "SNAPSHOT_TIME_FORMAT",
    "SNAPSHOT_NAME_PREFIX",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "parse_debug_options",
    "ZfhError",
    "ZfhSystemError",
    "ZfhPermissionError",
    "ZfhNotFoundError",
    "ZfhStatError",
    "ZfhInvalidTargetError",
    "ZfhCalloutError",
    "ZfhDatasetError",
    "ZfhArgumentError",
    "ZfhStateError",
    "size_fmt",
    "format_timestamp_ns",
    "coerce",
]

# vim: set et ts=4 sw=4 :
