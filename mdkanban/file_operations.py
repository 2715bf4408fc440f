"""
Path resolution and collision-safe naming for board, column and task folders.

Layout::

    {root}/{board-slug}/columns/{column-slug}/tasks/{task-slug[-n]}/task.md

A task is identified by the ``id`` in its ``task.md`` frontmatter, never
by its folder name.  Lookups are linear scans over ``tasks/``; there is
no index.  Listings are sorted, so when two folders carry the same ID
the first one by name wins.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .errors import FrontmatterParseError, StorageIOError
from .frontmatter import MarkdownParser
from .utils import get_safe_filename

logger = logging.getLogger("mdkanban.files")

PathLike = Union[str, Path]

COLUMNS_FOLDER_NAME = "columns"
TASKS_FOLDER_NAME = "tasks"
TASK_FILENAME = "task.md"
COLUMN_METADATA_FILENAME = "column.md"
DEFAULT_MAX_RETRIES = 100


# ── Path helpers ───────────────────────────────────────────────────

def get_board_directory_path(boards_dir: PathLike, board_name: str) -> Path:
    return Path(boards_dir) / get_safe_filename(board_name)


def get_column_directory_path(board_dir: PathLike, column_name: str) -> Path:
    return Path(board_dir) / COLUMNS_FOLDER_NAME / get_safe_filename(column_name)


def get_tasks_directory_path(column_dir: PathLike) -> Path:
    return Path(column_dir) / TASKS_FOLDER_NAME


def same_id(stored: Any, task_id: Any) -> bool:
    """Compare IDs as text; YAML may have loaded a numeric ID as ``int``."""
    return stored is not None and str(stored) == str(task_id)


# ── Lookup ─────────────────────────────────────────────────────────

async def _task_folders(parser: MarkdownParser, tasks_dir: Path) -> list[Path]:
    """Subfolders of *tasks_dir* that hold a ``task.md``, in name order."""
    fs = parser.file_system
    folders = await fs.list_directories(tasks_dir)
    present = await asyncio.gather(*(fs.file_exists(f / TASK_FILENAME) for f in folders))
    return [folder for folder, ok in zip(folders, present) if ok]


async def _stored_id(parser: MarkdownParser, task_file: Path) -> Any:
    doc = await parser.read_document(task_file)
    return doc.metadata.get("id")


async def find_task_folder_by_id(
    parser: MarkdownParser,
    column_dir: PathLike,
    task_id: Any,
) -> Optional[Path]:
    """
    Find the folder under ``column_dir/tasks/`` whose ``task.md`` has *task_id*.

    Unreadable task files are skipped.

    Returns:
        The task folder, or None if no folder carries that ID.
    """
    tasks_dir = get_tasks_directory_path(column_dir)
    for folder in await _task_folders(parser, tasks_dir):
        try:
            stored = await _stored_id(parser, folder / TASK_FILENAME)
        except (FrontmatterParseError, StorageIOError) as e:
            logger.debug("Skipping unreadable task folder %s: %s", folder, e)
            continue
        if same_id(stored, task_id):
            return folder
    return None


async def _name_is_available(parser: MarkdownParser, folder: Path, task_id: Any) -> bool:
    """True if *folder* is free, or already belongs to *task_id*."""
    fs = parser.file_system
    if not await fs.directory_exists(folder):
        return True

    task_file = folder / TASK_FILENAME
    if not await fs.file_exists(task_file):
        return False
    try:
        return same_id(await _stored_id(parser, task_file), task_id)
    except (FrontmatterParseError, StorageIOError):
        # unreadable: treat as taken
        return False


async def get_unique_folder_name(
    parser: MarkdownParser,
    column_dir: PathLike,
    title: str,
    task_id: Any,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> str:
    """
    Pick the folder name a task should live in.

    Tries ``slug``, then ``slug-2`` … ``slug-{max_retries}``, accepting the
    first name that is unused or already holds this task.  When every
    numbered name is taken, falls back to ``slug-{task_id lowercased}``.

    Example:
        With folders ``fix-bug``, ``fix-bug-2`` and ``fix-bug-3`` owned by
        other tasks, a new task titled "Fix Bug" gets ``fix-bug-4``.

    Returns:
        The folder name (not a path).
    """
    base = get_safe_filename(title)
    tasks_dir = get_tasks_directory_path(column_dir)

    if await _name_is_available(parser, tasks_dir / base, task_id):
        return base

    for counter in range(2, max_retries + 1):
        candidate = f"{base}-{counter}"
        if await _name_is_available(parser, tasks_dir / candidate, task_id):
            return candidate

    return f"{base}-{str(task_id).lower()}"


# ── Cleanup ────────────────────────────────────────────────────────

async def cleanup_task_folders(
    parser: MarkdownParser,
    column_dir: PathLike,
    live_task_ids: Iterable[Any],
) -> list[Path]:
    """
    Delete task folders whose ID is not in *live_task_ids*.

    Folders that cannot be parsed, or carry no ID, are left in place with
    a warning.

    Returns:
        The folders that were deleted.
    """
    live = {str(i) for i in live_task_ids}
    tasks_dir = get_tasks_directory_path(column_dir)
    fs = parser.file_system
    seen: set[str] = set()
    removed: list[Path] = []

    for folder in await _task_folders(parser, tasks_dir):
        try:
            stored = await _stored_id(parser, folder / TASK_FILENAME)
        except (FrontmatterParseError, StorageIOError) as e:
            logger.warning("Skipping corrupted task folder %s: %s", folder, e)
            continue

        if stored is None:
            logger.warning("Skipping task folder without an id: %s", folder)
            continue

        key = str(stored)
        if key in seen:
            logger.warning("Task id %s appears in more than one folder; found again in %s", key, folder)
        seen.add(key)

        if key not in live:
            await fs.delete(folder)
            removed.append(folder)
            logger.debug("Removed orphaned task folder %s", folder)

    return removed
