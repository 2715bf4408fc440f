"""
CLI entry point for mdkanban.

Usage:
    python -m mdkanban [--home DIR] [-v] <command> [arguments]

Commands:
    where                          Print the active boards directory
    set-dir <path>                 Use a custom boards directory
    reset-dir                      Go back to the default boards directory
    list-boards [dir]              List boards in a directory
    migrate-dir <old> <new>        Copy all boards to another directory
    upgrade-layout [dir]           Move flat task files into task folders
    cleanup <board> <column> --keep ID [ID ...]
                                   Delete task folders not in the keep list
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .board_persistence import BoardPersistence
from .config_manager import StorageConfig
from .errors import StorageError
from .migration import TaskStorageMigration
from .utils import setup_logging

logger = logging.getLogger("mdkanban.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m mdkanban",
        description="Markdown board storage",
    )
    parser.add_argument("--home", default=None, help="Document directory holding .mkanban/ (default: ~/Documents)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    sub.add_parser("where", help="Print the active boards directory")

    p_set = sub.add_parser("set-dir", help="Use a custom boards directory")
    p_set.add_argument("path", help="Directory to store boards in")

    sub.add_parser("reset-dir", help="Go back to the default boards directory")

    p_list = sub.add_parser("list-boards", help="List boards")
    p_list.add_argument("directory", nargs="?", default=None, help="Boards directory (default: active)")

    p_mig = sub.add_parser("migrate-dir", help="Copy all boards to another directory")
    p_mig.add_argument("old", help="Current boards directory")
    p_mig.add_argument("new", help="Destination boards directory")

    p_up = sub.add_parser("upgrade-layout", help="Move flat task files into task folders")
    p_up.add_argument("directory", nargs="?", default=None, help="Boards directory (default: active)")

    p_clean = sub.add_parser("cleanup", help="Delete orphaned task folders from a column")
    p_clean.add_argument("board", help="Board name")
    p_clean.add_argument("column", help="Column name")
    p_clean.add_argument("--keep", nargs="+", required=True, metavar="ID", help="Task IDs to keep")
    p_clean.add_argument("--dir", default=None, help="Boards directory (default: active)")

    return parser


async def _run(args: argparse.Namespace) -> int:
    config = StorageConfig(base_directory=args.home)

    if args.command == "where":
        print(await config.get_boards_directory())

    elif args.command == "set-dir":
        path = await config.set_boards_directory(args.path)
        print(f"Boards directory set to: {path}")

    elif args.command == "reset-dir":
        await config.reset_to_default()
        print(f"Boards directory reset to: {config.get_default_boards_directory()}")

    elif args.command == "list-boards":
        boards = await config.list_boards(args.directory)
        if not boards:
            print("No boards found.")
        for name in boards:
            print(f"  {name}")

    elif args.command == "migrate-dir":
        def progress(current: int, total: int) -> None:
            print(f"  {current}/{total}", file=sys.stderr)

        result = await config.migrate_boards(args.old, args.new, progress)
        print(result.message)
        for error in result.errors or []:
            print(f"  ! {error}", file=sys.stderr)
        if not result.success:
            return 1

    elif args.command == "upgrade-layout":
        root = args.directory or await config.get_boards_directory()
        migrated = await TaskStorageMigration(config.file_system).migrate_root_if_needed(root)
        print(f"Upgraded {migrated} board(s).")

    elif args.command == "cleanup":
        root = args.dir or await config.get_boards_directory()
        persistence = BoardPersistence(config.file_system)
        removed = await persistence.cleanup_column(root, args.board, args.column, set(args.keep))
        for folder in removed:
            print(f"  removed {folder.name}")
        print(f"Removed {len(removed)} task folder(s).")

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(_run(args))
    except StorageError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
