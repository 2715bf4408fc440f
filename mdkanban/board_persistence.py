"""
Board persistence: saving, moving, deleting and cleaning up tasks, plus
column and board metadata, on top of the folder-per-task layout.

Every operation takes the boards root explicitly; nothing here knows
where the root comes from (see ``config_manager``).
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .errors import ColumnSaveError, FrontmatterParseError, StorageError, StorageIOError, TaskSaveError
from .file_operations import (
    COLUMN_METADATA_FILENAME,
    TASK_FILENAME,
    cleanup_task_folders,
    find_task_folder_by_id,
    get_board_directory_path,
    get_column_directory_path,
    get_tasks_directory_path,
    get_unique_folder_name,
)
from .filesystem import BOARD_FILENAME, FileSystemManager
from .frontmatter import MarkdownParser, Metadata, ParsedTask
from .utils import now

logger = logging.getLogger("mdkanban.persistence")

PathLike = Union[str, Path]


# ── Records ────────────────────────────────────────────────────────

@dataclass
class TaskData:
    """
    A task as stored in ``task.md``.

    Known keys are attributes; anything else found in (or destined for)
    the frontmatter lives in ``extra``.  ``title`` becomes the body
    heading and ``description`` the body text, so neither is written as a
    frontmatter key.
    """

    id: str
    title: str
    description: str = ""
    parent_id: Optional[str] = None
    project_id: Optional[str] = None
    scheduled_date: Any = None
    scheduled_time: Optional[str] = None
    time_block_minutes: Optional[int] = None
    task_type: Optional[str] = None
    calendar_event_id: Optional[str] = None
    recurrence: Any = None
    meeting_data: Any = None
    moved_in_progress_at: Any = None
    moved_in_done_at: Any = None
    worked_on_for: Optional[str] = None
    created_at: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    _BODY_FIELDS = ("title", "description")

    def to_metadata(self) -> Metadata:
        metadata: Metadata = dict(self.extra)
        for f in fields(self):
            if f.name == "extra" or f.name in self._BODY_FIELDS:
                continue
            metadata[f.name] = getattr(self, f.name)
        return metadata

    @classmethod
    def from_parsed(cls, parsed: ParsedTask) -> "TaskData":
        known = {f.name for f in fields(cls)} - {"extra", *cls._BODY_FIELDS}
        values = {k: v for k, v in parsed.metadata.items() if k in known}
        extra = {k: v for k, v in parsed.metadata.items() if k not in known and k not in cls._BODY_FIELDS}
        stored_id = values.pop("id", None)
        return cls(
            id=str(stored_id) if stored_id is not None else "",
            title=parsed.title,
            description=_strip_title_header(parsed.content),
            extra=extra,
            **values,
        )


@dataclass
class ColumnData:
    name: str
    position: int = 0
    limit: Optional[int] = None
    created_at: Any = None
    id: Optional[str] = None


@dataclass
class ParentTag:
    id: str
    name: str
    color: Optional[str] = None
    created_at: Any = None

    def to_metadata(self) -> Metadata:
        return {k: v for k, v in vars(self).items() if v is not None}


@dataclass
class BoardData:
    name: str
    id: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Any = None
    parents: list[ParentTag] = field(default_factory=list)


def _strip_title_header(content: str) -> str:
    lines = content.split("\n")
    if lines and lines[0].strip().startswith("# "):
        lines = lines[1:]
        while lines and not lines[0].strip():
            lines = lines[1:]
    return "\n".join(lines)


# ── Persistence ────────────────────────────────────────────────────

class BoardPersistence:
    """Low-level reads and writes of board data under a boards root."""

    def __init__(self, file_system: FileSystemManager, parser: Optional[MarkdownParser] = None):
        self.file_system = file_system
        self.parser = parser or MarkdownParser(file_system)

    def _column_dir(self, boards_dir: PathLike, board_name: str, column_name: str) -> Path:
        board_dir = get_board_directory_path(boards_dir, board_name)
        return get_column_directory_path(board_dir, column_name)

    def get_board_file_path(self, boards_dir: PathLike, board_name: str) -> Path:
        return get_board_directory_path(boards_dir, board_name) / BOARD_FILENAME

    async def save_task(
        self,
        boards_dir: PathLike,
        board_name: str,
        column_name: str,
        task: TaskData,
    ) -> Path:
        """
        Write a task into its column, renaming its folder if the title changed.

        Files other than ``task.md`` inside an existing task folder are
        carried along by the rename.  A missing ``created_at`` is written as
        now; *task* itself is left unchanged.

        Returns:
            The task folder the task now lives in.

        Raises:
            TaskSaveError: any failure, naming the task and column.
        """
        try:
            column_dir = self._column_dir(boards_dir, board_name, column_name)
            tasks_dir = get_tasks_directory_path(column_dir)
            await self.file_system.ensure_directory(tasks_dir)

            old_folder = await find_task_folder_by_id(self.parser, column_dir, task.id)
            folder_name = await get_unique_folder_name(self.parser, column_dir, task.title, task.id)
            task_folder = tasks_dir / folder_name

            if old_folder is not None and old_folder != task_folder:
                logger.debug("Renaming task folder %s -> %s", old_folder.name, folder_name)
                await self.file_system.rename(old_folder, task_folder)
            elif old_folder is None:
                await self.file_system.ensure_directory(task_folder)

            metadata = task.to_metadata()
            if metadata.get("created_at") is None:
                metadata["created_at"] = now()

            await self.parser.save_task_with_metadata(
                task_folder / TASK_FILENAME, task.title, task.description, metadata
            )
            return task_folder
        except (StorageError, OSError) as e:
            raise TaskSaveError(
                f'Failed to save task "{task.title}" to column "{column_name}": {e}'
            ) from e

    async def delete_task(
        self,
        boards_dir: PathLike,
        board_name: str,
        column_name: str,
        task_id: Any,
    ) -> bool:
        """
        Delete the folder of *task_id* in a column.

        Returns:
            True if a folder was found and removed, False if there was none.
        """
        column_dir = self._column_dir(boards_dir, board_name, column_name)
        folder = await find_task_folder_by_id(self.parser, column_dir, task_id)
        if folder is None:
            logger.debug("Task %s not found in column '%s'", task_id, column_name)
            return False
        return await self.file_system.delete(folder)

    async def move_task(
        self,
        boards_dir: PathLike,
        board_name: str,
        from_column: str,
        to_column: str,
        task: TaskData,
    ) -> bool:
        """
        Move a task folder from one column to another and re-save it there.

        Returns:
            False if the task is not in *from_column*.
        """
        source_dir = self._column_dir(boards_dir, board_name, from_column)
        target_dir = self._column_dir(boards_dir, board_name, to_column)

        try:
            old_folder = await find_task_folder_by_id(self.parser, source_dir, task.id)
            if old_folder is None:
                logger.warning("Task %s not found in column '%s'; nothing to move", task.id, from_column)
                return False

            target_tasks = get_tasks_directory_path(target_dir)
            await self.file_system.ensure_directory(target_tasks)
            folder_name = await get_unique_folder_name(self.parser, target_dir, task.title, task.id)
            if target_tasks / folder_name != old_folder:
                await self.file_system.rename(old_folder, target_tasks / folder_name)
        except StorageError as e:
            raise TaskSaveError(
                f'Failed to move task "{task.title}" from "{from_column}" to "{to_column}": {e}'
            ) from e

        await self.save_task(boards_dir, board_name, to_column, task)
        logger.info("Moved task %s from '%s' to '%s'", task.id, from_column, to_column)
        return True

    async def save_column_metadata(
        self,
        boards_dir: PathLike,
        board_name: str,
        column_name: str,
        column: ColumnData,
    ) -> None:
        """Write ``column.md`` with position, optional WIP limit and created_at."""
        try:
            column_dir = self._column_dir(boards_dir, board_name, column_name)
            await self.file_system.ensure_directory(column_dir)

            metadata: Metadata = {
                "position": column.position,
                "created_at": column.created_at or now(),
            }
            if column.limit is not None:
                metadata["limit"] = column.limit

            await self.parser.save_column_metadata(
                column_dir / COLUMN_METADATA_FILENAME, column_name, metadata
            )
        except (StorageError, OSError) as e:
            raise ColumnSaveError(f'Failed to save column metadata for "{column_name}": {e}') from e

    async def save_board_metadata(self, boards_dir: PathLike, board: BoardData) -> Path:
        """Write ``board.md`` for *board* and return its path."""
        board_file = self.get_board_file_path(boards_dir, board.name)
        metadata: Metadata = {
            "id": board.id,
            "name": board.name,
            "project_id": board.project_id,
            "description": board.description,
            "created_at": board.created_at or now(),
            "parents": [p.to_metadata() for p in board.parents],
        }
        try:
            await self.parser.save_board_metadata(board_file, board.name, metadata)
        except (StorageError, OSError) as e:
            raise ColumnSaveError(f'Failed to save board "{board.name}": {e}') from e
        return board_file

    async def cleanup_column(
        self,
        boards_dir: PathLike,
        board_name: str,
        column_name: str,
        live_task_ids: Iterable[Any],
    ) -> list[Path]:
        """
        Remove task folders in a column whose IDs are not in *live_task_ids*.

        Returns:
            The removed folders.
        """
        column_dir = self._column_dir(boards_dir, board_name, column_name)
        removed = await cleanup_task_folders(self.parser, column_dir, live_task_ids)
        if removed:
            logger.info("Removed %d orphaned task folder(s) from column '%s'", len(removed), column_name)
        return removed

    async def load_column_tasks(
        self,
        boards_dir: PathLike,
        board_name: str,
        column_name: str,
    ) -> list[TaskData]:
        """Read every task of a column in folder-name order, skipping unreadable ones."""
        tasks_dir = get_tasks_directory_path(self._column_dir(boards_dir, board_name, column_name))
        tasks: list[TaskData] = []
        for folder in await self.file_system.list_directories(tasks_dir):
            task_file = folder / TASK_FILENAME
            if not await self.file_system.file_exists(task_file):
                continue
            try:
                parsed = await self.parser.parse_task_metadata(task_file)
            except (FrontmatterParseError, StorageIOError) as e:
                logger.warning("Skipping unreadable task %s: %s", task_file, e)
                continue
            tasks.append(TaskData.from_parsed(parsed))
        return tasks

    async def list_board_directories(self, boards_dir: PathLike) -> list[Path]:
        """Immediate subdirectories of the boards root; empty if the root is missing."""
        return await self.file_system.list_directories(boards_dir)
