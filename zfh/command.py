# Copyright Red Hat
#
# zfh/command.py - ZFS file history command interface
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``zfh.command`` module provides both the zfh command line
interface infrastructure, and a simple procedural interface to the
``zfh`` library modules.

The procedural interface is used by the ``zfh`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require the browser object API.
"""
from argparse import ArgumentParser
from os.path import abspath, basename, dirname, normpath
from json import dumps
from typing import Optional
import logging
import sys

from zfh import (
    ZfhNotFoundError,
    ZFH_SUBSYSTEM_COMMAND,
    SubsystemFilter,
    format_timestamp_ns,
    parse_debug_options,
    set_debug_mask,
    __version__,
)
from zfh.browser.columns import (
    FileColumn,
    FILE_COLUMNS,
    SNAPSHOT_COLUMNS,
    SNAPSHOT_COLUMN_CREATION,
    file_cell,
    file_column,
    file_compare,
    file_tie_break,
    snapshot_cell,
    snapshot_compare,
    snapshot_tie_break,
)
from zfh.browser.entries import (
    BrowserEntry,
    DiffState,
    SnapshotBrowserEntry,
    entry_id,
    snapshot_entry_id,
)
from zfh.browser.reconcile import Reconciler
from zfh.browser.snapshots import snapshot_diff_state
from zfh.browser.table import Alignment, StableTable
from zfh.config import (
    DEFAULT_MAX_CONTENT_DIFF_SIZE,
    SORT_COLUMN_NAMES,
    ZFH_CFG_FILE,
    ZfhConfig,
)
from zfh.diff import ContentDiff, diff_entry
from zfh.zfs import SnapshotStore, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": ZFH_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None
_FILE_HANDLER = None

ENTRY_TYPE = "entry"
SNAPSHOT_TYPE = "snapshot"
DATASET_TYPE = "dataset"

LIST_CMD = "list"
DIFF_CMD = "diff"
RESTORE_CMD = "restore"
CREATE_CMD = "create"
DESTROY_CMD = "destroy"
SHOW_CMD = "show"


def _norm(path: str) -> str:
    return normpath(abspath(path))


def _entry_to_dict(entry: BrowserEntry):
    snapshot_file = entry.snapshot_file
    return {
        "name": entry.name,
        "path": entry.real_path,
        "kind": entry.kind.name.lower(),
        "diff": entry.diff_state.name.lower(),
        "size": entry.stat.size,
        "mtime": format_timestamp_ns(entry.stat.mtime),
        "live": entry.has_real,
        "snapshot_path": snapshot_file.path if snapshot_file else None,
    }


def _snapshot_entry_to_dict(entry: SnapshotBrowserEntry):
    snap_dict = entry.snapshot.to_dict()
    snap_dict["diff"] = entry.diff_state.name.lower()
    return snap_dict


def _align(text, width, alignment):
    if alignment == Alignment.RIGHT:
        return text.rjust(width)
    if alignment == Alignment.CENTER:
        return text.center(width)
    return text.ljust(width)


def _print_table(table: StableTable):
    """
    Print the rows of ``table`` with aligned columns.
    """
    rows = table.render()
    columns = table.columns
    widths = [
        max(len(row.cells[index]) for row in rows) for index in range(len(columns))
    ]
    for row in rows:
        cells = [
            _align(cell, widths[index], columns[index].alignment)
            for index, cell in enumerate(row.cells)
        ]
        print("  ".join(cells).rstrip())


#
# Procedural interface
#


def find_snapshot(path: str, name: str, store: Optional[SnapshotStore] = None):
    """
    Find the snapshot called ``name`` of the dataset hosting ``path``.

    :param path: A path inside the dataset.
    :param name: The snapshot name.
    :param store: An optional ``SnapshotStore`` to use.
    :returns: The matching ``Snapshot``.
    :rtype: ``Snapshot``
    """
    store = store or SnapshotStore()
    return store.find_snapshot(_norm(path), name)


def list_entries(
    path: str,
    snapshot: Optional[Snapshot] = None,
    sort_column: str = "type",
    inverted: bool = False,
) -> StableTable:
    """
    Reconcile the directory ``path`` with ``snapshot`` and return a
    sorted table of its entries.

    :param path: The directory to list.
    :param snapshot: The snapshot to compare with, or ``None``.
    :param sort_column: The name of the column to sort by.
    :param inverted: Sort in descending order.
    :returns: A table of ``BrowserEntry`` objects.
    :rtype: ``StableTable``
    """
    reconciler = Reconciler()
    entries = reconciler.reconcile(_norm(path), snapshot)
    for err in reconciler.errors:
        _log_warn("%s", err)
    table = StableTable(
        entry_id, file_cell, file_compare, tie_break=file_tie_break, name="files"
    )
    table.set_columns(
        FILE_COLUMNS, file_column(FileColumn.from_name(sort_column)), inverted
    )
    table.set_data(entries)
    return table


def find_entry(path: str, snapshot: Optional[Snapshot] = None) -> BrowserEntry:
    """
    Return the reconciled entry for ``path``.

    :param path: A live path, which may exist only in ``snapshot``.
    :param snapshot: The snapshot to compare with, or ``None``.
    :returns: The ``BrowserEntry`` for ``path``.
    :rtype: ``BrowserEntry``
    :raises: ``ZfhNotFoundError`` if ``path`` exists on neither side.
    """
    path = _norm(path)
    for entry in Reconciler().reconcile(dirname(path), snapshot):
        if entry.real_path == path:
            return entry
    where = f" or in snapshot '{snapshot.name}'" if snapshot else ""
    raise ZfhNotFoundError(f"Path '{path}' does not exist{where}")


def diff_path(
    path: str,
    snapshot: Snapshot,
    use_magic: bool = False,
    max_size: int = DEFAULT_MAX_CONTENT_DIFF_SIZE,
) -> ContentDiff:
    """
    Diff the copy of ``path`` in ``snapshot`` against the live file.
    """
    entry = find_entry(path, snapshot)
    return diff_entry(entry, use_magic=use_magic, max_size=max_size)


def restore_path(path: str, snapshot: Snapshot, recursive: bool = False) -> str:
    """
    Restore ``path`` from ``snapshot``.

    :param path: The live path to restore.
    :param snapshot: The snapshot holding the copy.
    :param recursive: Restore directories with their contents.
    :returns: The restored path.
    :rtype: ``str``
    """
    path = _norm(path)
    if recursive:
        return snapshot.restore_dir_recursive(path)
    return snapshot.restore_file(path)


def list_snapshots(
    path: str, file_path: Optional[str] = None, store: Optional[SnapshotStore] = None
) -> StableTable:
    """
    Return a table of the snapshots of the dataset hosting ``path``,
    newest first. With ``file_path`` each snapshot carries the diff state
    of that file.
    """
    store = store or SnapshotStore()
    snapshots = store.list_snapshots(_norm(path))
    entries = []
    for snapshot in snapshots:
        state = DiffState.UNKNOWN
        if file_path is not None:
            state = snapshot_diff_state(snapshot, _norm(file_path))
        entries.append(SnapshotBrowserEntry(snapshot, state))
    table = StableTable(
        snapshot_entry_id,
        snapshot_cell,
        snapshot_compare,
        tie_break=snapshot_tie_break,
        name="snapshots",
    )
    table.set_columns(SNAPSHOT_COLUMNS, SNAPSHOT_COLUMN_CREATION, True)
    table.set_data(entries)
    return table


def create_snapshot(
    path: str, name: Optional[str] = None, store: Optional[SnapshotStore] = None
) -> Snapshot:
    """
    Snapshot the dataset hosting ``path``.
    """
    store = store or SnapshotStore()
    return store.find_host_dataset(_norm(path)).create_snapshot(name)


def destroy_snapshot(
    path: str,
    name: str,
    recursive: bool = False,
    store: Optional[SnapshotStore] = None,
):
    """
    Destroy snapshot ``name`` of the dataset hosting ``path``.
    """
    snapshot = find_snapshot(path, name, store=store)
    snapshot.destroy(recursive=recursive)
    return snapshot


def show_dataset(path: str, json: bool = False, store: Optional[SnapshotStore] = None):
    """
    Show the dataset hosting ``path``.
    """
    store = store or SnapshotStore()
    dataset = store.find_host_dataset(_norm(path))
    if json:
        print(dumps(dataset.to_dict(), indent=4))
    else:
        print(dataset)


#
# Command handlers
#


def _load_config(cmd_args) -> ZfhConfig:
    config = ZfhConfig.from_file(cmd_args.config)
    if config.debug and not cmd_args.debug:
        set_debug(config.debug)
    return config


def _entry_list_cmd(cmd_args):
    """
    List entries command handler.

    List the entries of a directory, compared with a snapshot if one
    is given, as a table with one entry per row.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = _load_config(cmd_args)
    snapshot = None
    if cmd_args.snapshot:
        snapshot = find_snapshot(cmd_args.path, cmd_args.snapshot)
    table = list_entries(
        cmd_args.path,
        snapshot=snapshot,
        sort_column=cmd_args.sort or config.sort_column,
        inverted=cmd_args.reverse or config.sort_inverted,
    )
    if cmd_args.json:
        print(dumps([_entry_to_dict(e) for e in table.get_entries()], indent=4))
    else:
        _print_table(table)
    return 0


def _entry_diff_cmd(cmd_args):
    """
    Diff entry command handler.

    Show the content changes of a file since a snapshot.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = _load_config(cmd_args)
    snapshot = find_snapshot(cmd_args.path, cmd_args.snapshot)
    content_diff = diff_path(
        cmd_args.path,
        snapshot,
        use_magic=config.use_magic,
        max_size=config.max_content_diff_size,
    )
    if cmd_args.json:
        print(dumps(content_diff.to_dict(), indent=4))
    else:
        print(str(content_diff), end="" if content_diff.diff_data else "\n")
    return 0


def _entry_restore_cmd(cmd_args):
    """
    Restore entry command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    snapshot = find_snapshot(cmd_args.path, cmd_args.snapshot)
    restored = restore_path(cmd_args.path, snapshot, recursive=cmd_args.recursive)
    print(f"Restored '{restored}' from '{snapshot.name}'")
    return 0


def _snapshot_list_cmd(cmd_args):
    """
    List snapshots command handler.

    List the snapshots of the dataset hosting a path, newest first, with
    the state of a file in each snapshot if one is given.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    file_path = cmd_args.file
    path = cmd_args.path
    table = list_snapshots(path, file_path=file_path)
    if cmd_args.json:
        entries = table.get_entries()
        print(dumps([_snapshot_entry_to_dict(e) for e in entries], indent=4))
    else:
        _print_table(table)
    return 0


def _snapshot_create_cmd(cmd_args):
    """
    Create snapshot command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    snapshot = create_snapshot(cmd_args.path, name=cmd_args.name)
    if cmd_args.json:
        print(dumps(snapshot.to_dict(), indent=4))
    else:
        print(snapshot)
    return 0


def _snapshot_destroy_cmd(cmd_args):
    """
    Destroy snapshot command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    snapshot = destroy_snapshot(
        cmd_args.path, cmd_args.snapshot_name, recursive=cmd_args.recursive
    )
    print(f"Snapshot '{snapshot.name}' destroyed.")
    return 0


def _dataset_show_cmd(cmd_args):
    """
    Show dataset command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    show_dataset(cmd_args.path, json=cmd_args.json)
    return 0


#
# Logging and debugging
#


def setup_logging(cmd_args):
    """
    Set up zfh logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER, _FILE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    zfh_log = logging.getLogger("zfh")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    zfh_log.setLevel(level)
    if zfh_log.hasHandlers():
        zfh_log.handlers.clear()

    # Subsystem log filtering
    _zfh_subsystem_filter = SubsystemFilter("zfh")

    # Main console handler
    _CONSOLE_HANDLER = logging.StreamHandler()
    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_zfh_subsystem_filter)
    zfh_log.addHandler(_CONSOLE_HANDLER)

    _FILE_HANDLER = None
    if getattr(cmd_args, "log_file", None):
        _FILE_HANDLER = logging.FileHandler(cmd_args.log_file)
        _FILE_HANDLER.setLevel(level)
        _FILE_HANDLER.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s - %(message)s")
        )
        _FILE_HANDLER.addFilter(SubsystemFilter("zfh"))
        zfh_log.addHandler(_FILE_HANDLER)


def shutdown_logging():
    """
    Shut down zfh logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return
    set_debug_mask(parse_debug_options(debug_arg))


#
# Argument parsing
#


def _add_json_arg(parser):
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Display output in JSON notation",
    )


def _add_path_arg(parser, help_text="A path inside the dataset"):
    parser.add_argument(
        "path",
        metavar="PATH",
        type=str,
        action="store",
        help=help_text,
    )


def _add_snapshot_arg(parser, required=False):
    parser.add_argument(
        "-s",
        "--snapshot",
        metavar="SNAPSHOT",
        type=str,
        required=required,
        help="The name of the snapshot to compare with",
    )


def _add_recursive_arg(parser, help_text):
    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        help=help_text,
    )


def _add_entry_subparser(type_subparser):
    """
    Add subparser for 'entry' commands.

    :param type_subparser: Command type subparser
    """
    entry_parser = type_subparser.add_parser(ENTRY_TYPE, help="File entry commands")
    entry_subparser = entry_parser.add_subparsers(dest="command")

    # entry list subcommand
    entry_list_parser = entry_subparser.add_parser(
        LIST_CMD, help="List directory entries"
    )
    _add_path_arg(entry_list_parser, "The directory to list")
    _add_snapshot_arg(entry_list_parser)
    entry_list_parser.add_argument(
        "--sort",
        choices=SORT_COLUMN_NAMES,
        default=None,
        help="The column to sort by",
    )
    entry_list_parser.add_argument(
        "--reverse",
        action="store_true",
        help="Sort in descending order",
    )
    _add_json_arg(entry_list_parser)
    entry_list_parser.set_defaults(func=_entry_list_cmd)

    # entry diff subcommand
    entry_diff_parser = entry_subparser.add_parser(
        DIFF_CMD, help="Show changes of a file since a snapshot"
    )
    _add_path_arg(entry_diff_parser, "The file to diff")
    _add_snapshot_arg(entry_diff_parser, required=True)
    _add_json_arg(entry_diff_parser)
    entry_diff_parser.set_defaults(func=_entry_diff_cmd)

    # entry restore subcommand
    entry_restore_parser = entry_subparser.add_parser(
        RESTORE_CMD, help="Restore a file or directory from a snapshot"
    )
    _add_path_arg(entry_restore_parser, "The path to restore")
    _add_snapshot_arg(entry_restore_parser, required=True)
    _add_recursive_arg(entry_restore_parser, "Restore directory contents")
    entry_restore_parser.set_defaults(func=_entry_restore_cmd)


def _add_snapshot_subparser(type_subparser):
    """
    Add subparser for 'snapshot' commands.

    :param type_subparser: Command type subparser
    """
    snapshot_parser = type_subparser.add_parser(SNAPSHOT_TYPE, help="Snapshot commands")
    snapshot_subparser = snapshot_parser.add_subparsers(dest="command")

    # snapshot list subcommand
    snapshot_list_parser = snapshot_subparser.add_parser(
        LIST_CMD, help="List snapshots"
    )
    _add_path_arg(snapshot_list_parser)
    snapshot_list_parser.add_argument(
        "-f",
        "--file",
        metavar="FILE",
        type=str,
        help="Show the state of FILE in each snapshot",
    )
    _add_json_arg(snapshot_list_parser)
    snapshot_list_parser.set_defaults(func=_snapshot_list_cmd)

    # snapshot create subcommand
    snapshot_create_parser = snapshot_subparser.add_parser(
        CREATE_CMD, help="Create a snapshot"
    )
    _add_path_arg(snapshot_create_parser)
    snapshot_create_parser.add_argument(
        "-n",
        "--name",
        metavar="NAME",
        type=str,
        help="The snapshot name (default: zfh-<timestamp>)",
    )
    _add_json_arg(snapshot_create_parser)
    snapshot_create_parser.set_defaults(func=_snapshot_create_cmd)

    # snapshot destroy subcommand
    snapshot_destroy_parser = snapshot_subparser.add_parser(
        DESTROY_CMD, help="Destroy a snapshot"
    )
    _add_path_arg(snapshot_destroy_parser)
    snapshot_destroy_parser.add_argument(
        "snapshot_name",
        metavar="SNAPSHOT",
        type=str,
        action="store",
        help="The name of the snapshot to destroy",
    )
    _add_recursive_arg(
        snapshot_destroy_parser, "Destroy snapshots of descendant datasets"
    )
    snapshot_destroy_parser.set_defaults(func=_snapshot_destroy_cmd)


def _add_dataset_subparser(type_subparser):
    """
    Add subparser for 'dataset' commands.

    :param type_subparser: Command type subparser
    """
    dataset_parser = type_subparser.add_parser(DATASET_TYPE, help="Dataset commands")
    dataset_subparser = dataset_parser.add_subparsers(dest="command")

    # dataset show subcommand
    dataset_show_parser = dataset_subparser.add_parser(
        SHOW_CMD, help="Display the dataset hosting a path"
    )
    _add_path_arg(dataset_show_parser)
    _add_json_arg(dataset_show_parser)
    dataset_show_parser.set_defaults(func=_dataset_show_cmd)


def main(args):
    """
    Main entry point for zfh.
    """
    parser = ArgumentParser(description="ZFS File History", prog=basename(args[0]))

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of zfh",
        version=__version__,
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        default=ZFH_CFG_FILE,
        help="Path to the configuration file",
    )
    parser.add_argument(
        "--log-file",
        metavar="LOGFILE",
        type=str,
        help="Also write log messages to LOGFILE",
    )
    # Subparser for command type
    type_subparser = parser.add_subparsers(dest="type", help="Command type")

    _add_entry_subparser(type_subparser)

    _add_snapshot_subparser(type_subparser)

    _add_dataset_subparser(type_subparser)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        shutdown_logging()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def console_main():
    """
    Console script entry point.
    """
    sys.exit(main(sys.argv))


__all__ = [
    "find_snapshot",
    "list_entries",
    "find_entry",
    "diff_path",
    "restore_path",
    "list_snapshots",
    "create_snapshot",
    "destroy_snapshot",
    "show_dataset",
    "setup_logging",
    "shutdown_logging",
    "set_debug",
    "main",
    "console_main",
]

# vim: set et ts=4 sw=4 :
