"""
One-time upgrade of boards from flat task files to folder-per-task.

Before::

    columns/todo/fix-bug.md
    columns/todo/tasks/write-docs.md
    columns/todo/old-task/task.md

After::

    columns/todo/tasks/fix-bug/task.md
    columns/todo/tasks/write-docs/task.md
    columns/todo/tasks/old-task/task.md

A board is upgraded once; the ``.migrated-task-storage`` marker in the
board directory records that.  An interrupted run leaves no marker, and
re-running only picks up whatever is still outside ``tasks/``.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .errors import StorageError
from .file_operations import (
    COLUMN_METADATA_FILENAME,
    COLUMNS_FOLDER_NAME,
    TASK_FILENAME,
    TASKS_FOLDER_NAME,
    find_task_folder_by_id,
    get_tasks_directory_path,
    get_unique_folder_name,
)
from .filesystem import FileSystemManager
from .frontmatter import MarkdownParser, serialize_frontmatter
from .utils import generate_id_from_name, now

logger = logging.getLogger("mdkanban.migration")

PathLike = Union[str, Path]

MIGRATION_MARKER = ".migrated-task-storage"


class TaskStorageMigration:
    """Upgrades board directories to the folder-per-task layout."""

    def __init__(self, file_system: FileSystemManager, parser: Optional[MarkdownParser] = None):
        self.file_system = file_system
        self.parser = parser or MarkdownParser(file_system)

    async def migrate_project_if_needed(self, project_slug: str) -> int:
        """Upgrade every board of a project.  Returns how many boards were migrated."""
        boards_dir = self.file_system.get_project_boards_directory(project_slug)
        return await self.migrate_root_if_needed(boards_dir)

    async def migrate_root_if_needed(self, boards_dir: PathLike) -> int:
        """Upgrade every board directly under *boards_dir*."""
        migrated = 0
        for board_dir in await self.file_system.list_directories(boards_dir):
            if await self.migrate_board_if_needed(board_dir):
                migrated += 1
        return migrated

    async def is_migrated(self, board_dir: PathLike) -> bool:
        return await self.file_system.file_exists(Path(board_dir) / MIGRATION_MARKER)

    async def migrate_board_if_needed(self, board_dir: PathLike) -> bool:
        """
        Upgrade one board unless its marker file says it already was.

        Failures on individual tasks are logged and skipped; the marker is
        written once every column has been visited.

        Returns:
            True if a migration pass ran, False if there was nothing to do.
        """
        board_dir = Path(board_dir)
        if await self.is_migrated(board_dir):
            return False

        columns_dir = board_dir / COLUMNS_FOLDER_NAME
        if not await self.file_system.directory_exists(columns_dir):
            return False

        for column_dir in await self.file_system.list_directories(columns_dir):
            try:
                await self._migrate_column(column_dir)
            except StorageError as e:
                logger.error("Failed to migrate column %s: %s", column_dir, e)

        await self.file_system.write_text(
            board_dir / MIGRATION_MARKER, f"Migrated at {now().isoformat()}"
        )
        logger.info("Migration complete for board: %s", board_dir)
        return True

    async def _migrate_column(self, column_dir: Path) -> None:
        tasks_dir = get_tasks_directory_path(column_dir)
        await self.file_system.ensure_directory(tasks_dir)

        legacy_files = [
            f
            for f in await self.file_system.list_files(column_dir, "*.md")
            if f.name != COLUMN_METADATA_FILENAME
        ]
        legacy_files += await self.file_system.list_files(tasks_dir, "*.md")

        for task_file in legacy_files:
            try:
                await self._migrate_task_file(column_dir, task_file)
            except (StorageError, OSError) as e:
                logger.error("Failed to migrate task %s: %s", task_file, e)

        for folder in await self.file_system.list_directories(column_dir):
            if folder.name == TASKS_FOLDER_NAME:
                continue
            if not await self.file_system.file_exists(folder / TASK_FILENAME):
                continue
            try:
                await self._relocate_task_folder(column_dir, folder)
            except (StorageError, OSError) as e:
                logger.error("Failed to relocate task folder %s: %s", folder, e)

        if await self.file_system.is_empty_directory(tasks_dir):
            await self.file_system.delete(tasks_dir)

    async def _migrate_task_file(self, column_dir: Path, task_file: Path) -> None:
        parsed = await self.parser.parse_task_metadata(task_file)
        stored_id = parsed.metadata.get("id")
        if stored_id is not None:
            task_id = str(stored_id)
        else:
            task_id = await self._unused_task_id(column_dir, generate_id_from_name(parsed.title))
        title = str(parsed.metadata.get("title") or parsed.title)

        folder_name = await get_unique_folder_name(self.parser, column_dir, title, task_id)
        target = get_tasks_directory_path(column_dir) / folder_name / TASK_FILENAME

        if stored_id is None:
            # persist the synthesized id so later lookups can find the task
            metadata = dict(parsed.metadata, id=task_id)
            await self.file_system.write_text(target, serialize_frontmatter(metadata, parsed.content))
            await self.file_system.delete(task_file)
        else:
            await self.file_system.ensure_directory(target.parent)
            await self.file_system.rename(task_file, target)

        logger.info("Migrated task %s: %s -> %s", task_id, task_file, target)

    async def _unused_task_id(self, column_dir: Path, base: str) -> str:
        """*base*, or *base* with a numeric suffix if another task in the column already has it."""
        candidate, counter = base, 1
        while await find_task_folder_by_id(self.parser, column_dir, candidate) is not None:
            counter += 1
            candidate = f"{base}-{counter}"
        return candidate

    async def _relocate_task_folder(self, column_dir: Path, folder: Path) -> None:
        tasks_dir = get_tasks_directory_path(column_dir)
        target = tasks_dir / folder.name

        if await self.file_system.exists(target):
            parsed = await self.parser.parse_task_metadata(folder / TASK_FILENAME)
            task_id = parsed.metadata.get("id") or generate_id_from_name(parsed.title)
            target = tasks_dir / await get_unique_folder_name(self.parser, column_dir, parsed.title, task_id)

        await self.file_system.rename(folder, target)
        logger.info("Moved task folder %s -> %s", folder, target)
