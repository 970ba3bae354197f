# Copyright Red Hat
#
# zfh/zfs/_zfs.py - ZFS file history zfs(8) callouts
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Helpers for calling the ``zfs`` command and parsing its output.
"""
from subprocess import run, CalledProcessError
from shutil import which
from typing import Dict, List, Optional
import logging
import re

from .._zfh import ZfhCalloutError, ZfhArgumentError, ZFH_SUBSYSTEM_ZFS

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_zfs(msg, *args, **kwargs):
    """A wrapper for zfs subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_ZFS}, **kwargs)


ZFS_CMD = "zfs"
ZFS_GET = "get"
ZFS_LIST = "list"
ZFS_SNAPSHOT = "snapshot"
ZFS_DESTROY = "destroy"

ZFS_SCRIPTED = "-H"
ZFS_PARSABLE = "-p"
ZFS_RECURSIVE = "-r"
ZFS_DEPTH = "-d"
ZFS_TYPE = "-t"
ZFS_OUTPUT = "-o"

ZFS_TYPE_SNAPSHOT = "snapshot"

#: Name of the hidden per-dataset control directory
ZFS_CONTROL_DIR = ".zfs"

#: Name of the snapshot directory below the control directory
ZFS_SNAPSHOT_DIR = "snapshot"

#: Snapshot properties shown by the snapshot browser
SNAPSHOT_PROPERTIES = ["creation", "used", "referenced", "compressratio"]

#: Dataset properties shown by ``dataset show``
DATASET_PROPERTIES = [
    "type",
    "used",
    "available",
    "referenced",
    "compression",
    "compressratio",
    "mountpoint",
    "origin",
]

#: Characters permitted in a ZFS snapshot name component
_SNAPSHOT_NAME_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")


def _decode_stderr(err):
    """
    Decode and strip the stderr member of a ``CalledProcessError`` and
    return the result as a string.

    :param err: A ``CalledProcessError`` like exception.
    :returns: A stripped string representation of the exception's stderr
              member.
    """
    if not err.stderr:
        return ""
    return err.stderr.decode("utf8").strip()


def zfs_present() -> bool:
    """
    Return ``True`` if the ``zfs`` command is available.
    """
    return which(ZFS_CMD) is not None


def run_zfs(args: List[str]) -> str:
    """
    Run ``zfs`` with ``args`` and return its decoded standard output.

    :param args: Arguments to pass to the ``zfs`` command.
    :returns: The command output.
    :rtype: ``str``
    :raises: ``ZfhCalloutError`` if the command fails or cannot be run.
    """
    zfs_cmd_args = [ZFS_CMD] + args
    _log_debug_zfs("Calling '%s'", " ".join(zfs_cmd_args))
    try:
        zfs_cmd = run(zfs_cmd_args, capture_output=True, check=True)
    except CalledProcessError as err:
        raise ZfhCalloutError(
            f"Error calling {ZFS_CMD} {args[0]}: {_decode_stderr(err)}"
        ) from err
    except OSError as err:
        raise ZfhCalloutError(f"Could not execute {ZFS_CMD}: {err}") from err
    return zfs_cmd.stdout.decode("utf8")


def get_properties(
    name: str,
    properties: List[str],
    depth: Optional[int] = None,
    types: Optional[str] = None,
) -> Dict[str, Dict[str, str]]:
    """
    Query ZFS properties with ``zfs get -Hp``.

    :param name: The dataset, snapshot or mount point path to query.
    :param properties: The list of property names to return.
    :param depth: Optional recursion depth (``-d``).
    :param types: Optional comma separated list of dataset types (``-t``).
    :returns: A dictionary mapping dataset names to dictionaries of
              property values.
    :rtype: ``dict``
    """
    get_args = [ZFS_GET, ZFS_SCRIPTED, ZFS_PARSABLE, ZFS_OUTPUT, "name,property,value"]
    if depth is not None:
        get_args += [ZFS_DEPTH, str(depth)]
    if types:
        get_args += [ZFS_TYPE, types]
    get_args += [",".join(properties), name]

    result = {}
    for line in run_zfs(get_args).splitlines():
        if not line.strip():
            continue
        fields = line.split("\t")
        if len(fields) != 3:
            _log_warn("Ignoring malformed zfs get output: %s", line)
            continue
        (ds_name, prop, value) = fields
        result.setdefault(ds_name, {})[prop] = value
    return result


def get_dataset_name(path: str) -> str:
    """
    Return the name of the dataset mounted at ``path``.

    :param path: The mount point of a ZFS file system.
    :returns: The dataset name, for example ``tank/home``.
    :rtype: ``str``
    """
    output = run_zfs([ZFS_LIST, ZFS_SCRIPTED, ZFS_OUTPUT, "name", path])
    return output.strip().splitlines()[0]


def create_snapshot(full_name: str):
    """
    Create the ZFS snapshot ``full_name`` (``dataset@snapshot``).
    """
    run_zfs([ZFS_SNAPSHOT, full_name])


def destroy_snapshot(full_name: str, recursive: bool = False):
    """
    Destroy the ZFS snapshot ``full_name`` (``dataset@snapshot``).

    :param full_name: The full snapshot name.
    :param recursive: Also destroy same-named snapshots of descendant
                      datasets.
    """
    destroy_args = [ZFS_DESTROY]
    if recursive:
        destroy_args.append(ZFS_RECURSIVE)
    destroy_args.append(full_name)
    run_zfs(destroy_args)


def check_snapshot_name(name: str):
    """
    Validate a snapshot name component.

    :param name: The name to check (without the ``dataset@`` part).
    :raises: ``ZfhArgumentError`` if the name is empty or contains
             characters that ZFS does not accept.
    """
    if not name or not _SNAPSHOT_NAME_RE.match(name):
        raise ZfhArgumentError(f"Invalid snapshot name: '{name}'")


def parse_int(value: str, default: int = 0) -> int:
    """
    Parse an integer property value, returning ``default`` for ``-`` or
    unparsable values.
    """
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_ratio(value: str, default: float = 1.0) -> float:
    """
    Parse a ``compressratio`` value such as ``1.52`` or ``1.52x``.
    """
    try:
        return float(value.rstrip("x"))
    except (AttributeError, ValueError):
        return default
