"""
Filesystem access for the board storage engine.

``FileSystemManager`` wraps the handful of file primitives the engine
needs (existence checks, text read/write, delete, rename, listing,
copying and a writability probe) as coroutines, and owns the canonical
directory-naming scheme for projects, boards, notes, goals and agenda
days under the data directory.

Every primitive runs in a worker thread via ``asyncio.to_thread`` so the
calling event loop is never blocked.  ``OSError`` is always re-raised as
``StorageIOError`` carrying the attempted path; nothing is swallowed here.
Mutating calls create missing parent directories first.
"""

import asyncio
import fnmatch
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import StorageIOError, StorageNotFoundError, StorageValidationError
from .utils import get_safe_filename

logger = logging.getLogger("mdkanban.fs")

PathLike = Union[str, Path]
ProgressCallback = Callable[[int, int], None]

HOME_ENV = "MDKANBAN_HOME"
DATA_DIRECTORY_NAME = "mkanban"
NOTE_TYPES = ("general", "meetings", "daily")
BOARD_FILENAME = "board.md"
PROJECT_FILENAME = "project.md"


def document_directory() -> Path:
    """
    Resolve the platform document area.

    ``MDKANBAN_HOME`` wins when set; otherwise ``~/Documents``.
    """
    env = os.environ.get(HOME_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / "Documents"


@dataclass
class CopyResult:
    """Outcome of a best-effort recursive copy."""

    succeeded: bool = True
    copied_count: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "CopyResult") -> None:
        self.copied_count += other.copied_count
        self.errors.extend(other.errors)
        self.succeeded = not self.errors


# ── Blocking primitives (run in worker threads) ────────────────────

def _ensure_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"Failed to create directory ({e.strerror or e})", path) from e


def _read_text(path: Path) -> str:
    if not path.is_file():
        raise StorageNotFoundError("File does not exist", path)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise StorageIOError(f"Failed to read file ({e})", path) from e


def _write_text(path: Path, content: str) -> None:
    _ensure_directory(path.parent)
    try:
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
    except OSError as e:
        raise StorageIOError(f"Failed to write file ({e.strerror or e})", path) from e


def _delete(path: Path) -> bool:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return True
        if path.exists() or path.is_symlink():
            path.unlink()
            return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageIOError(f"Failed to delete ({e.strerror or e})", path) from e
    return False


def _rename(src: Path, dst: Path) -> bool:
    if not src.exists():
        return False
    if dst.exists():
        raise StorageIOError(f"Cannot move {src}, destination already exists", dst)
    _ensure_directory(dst.parent)
    try:
        shutil.move(str(src), str(dst))
    except OSError as e:
        raise StorageIOError(f"Failed to move {src} ({e.strerror or e})", dst) from e
    return True


def _list_entries(directory: Path) -> list[os.DirEntry]:
    if not directory.is_dir():
        return []
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        raise StorageIOError(f"Failed to list directory ({e.strerror or e})", directory) from e


def _list_files(directory: Path, pattern: Optional[str]) -> list[Path]:
    files = []
    for entry in _list_entries(directory):
        if entry.name.startswith("."):
            continue
        if pattern and not fnmatch.fnmatchcase(entry.name, pattern):
            continue
        if entry.is_file():
            files.append(Path(entry.path))
    return files


def _list_directories(directory: Path) -> list[Path]:
    return [Path(entry.path) for entry in _list_entries(directory) if entry.is_dir()]


def _copy_file(src: Path, dst: Path) -> bool:
    if not src.is_file():
        logger.error("Source file does not exist: %s", src)
        return False
    _ensure_directory(dst.parent)
    try:
        shutil.copy2(str(src), str(dst))
    except OSError as e:
        raise StorageIOError(f"Failed to copy {src} ({e.strerror or e})", dst) from e
    return True


def _probe_writable(directory: Path) -> None:
    _ensure_directory(directory)
    probe = directory / f".write-test-{int(time.time() * 1000)}"
    _write_text(probe, "test")
    _delete(probe)


class FileSystemManager:
    """
    Async facade over the local filesystem plus the data-directory layout.

    Args:
        base_directory: Platform document area.  Defaults to
                        :func:`document_directory`.
    """

    def __init__(self, base_directory: Optional[PathLike] = None):
        self._base_directory = Path(base_directory) if base_directory else document_directory()
        self._custom_data_directory: Optional[Path] = None
        self._initialized = False

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the data directory once.  Later calls are no-ops."""
        if self._initialized:
            logger.debug("File system already initialised")
            return
        await self.ensure_directory(self.get_data_directory())
        self._initialized = True
        logger.debug("Data directory ready at %s", self.get_data_directory())

    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def base_directory(self) -> Path:
        return self._base_directory

    # ── Directory-naming scheme ─────────────────────────────────

    def get_data_directory(self) -> Path:
        if self._custom_data_directory is not None:
            return self._custom_data_directory
        return self._base_directory / DATA_DIRECTORY_NAME

    def set_data_directory(self, path: PathLike) -> None:
        if not str(path).strip():
            raise StorageValidationError("Data directory path cannot be empty")
        self._custom_data_directory = Path(path)

    def get_projects_directory(self) -> Path:
        return self.get_data_directory() / "projects"

    def get_project_directory(self, project_slug: str) -> Path:
        return self.get_projects_directory() / get_safe_filename(project_slug)

    def get_project_boards_directory(self, project_slug: str) -> Path:
        return self.get_project_directory(project_slug) / "boards"

    def get_project_notes_directory(self, project_slug: str, note_type: Optional[str] = None) -> Path:
        notes_dir = self.get_project_directory(project_slug) / "notes"
        return notes_dir / _check_note_type(note_type) if note_type else notes_dir

    def get_project_time_directory(self, project_slug: str) -> Path:
        return self.get_project_directory(project_slug) / "time" / "logs"

    def get_global_directory(self) -> Path:
        return self.get_data_directory() / "global"

    def get_goals_directory(self) -> Path:
        return self.get_global_directory() / "goals"

    def get_global_notes_directory(self, note_type: Optional[str] = None) -> Path:
        notes_dir = self.get_global_directory() / "notes"
        return notes_dir / _check_note_type(note_type) if note_type else notes_dir

    def get_agenda_directory(self) -> Path:
        return self.get_data_directory() / "agenda"

    def get_agenda_year_directory(self, year: Union[str, int]) -> Path:
        return self.get_agenda_directory() / str(year)

    def get_agenda_month_directory(self, year: Union[str, int], month: Union[str, int]) -> Path:
        return self.get_agenda_year_directory(year) / str(month).zfill(2)

    def get_agenda_day_directory(
        self, year: Union[str, int], month: Union[str, int], day: Union[str, int]
    ) -> Path:
        return self.get_agenda_month_directory(year, month) / str(day).zfill(2)

    def get_agenda_day_directory_from_date(self, date: str) -> Path:
        """Agenda folder for an ISO ``YYYY-MM-DD`` date string."""
        parts = date.split("-")
        if len(parts) != 3:
            raise StorageValidationError(f"Expected a YYYY-MM-DD date, got '{date}'")
        return self.get_agenda_day_directory(*parts)

    # ── Primitives ──────────────────────────────────────────────

    async def exists(self, path: PathLike) -> bool:
        return await asyncio.to_thread(Path(path).exists)

    async def file_exists(self, path: PathLike) -> bool:
        return await asyncio.to_thread(Path(path).is_file)

    async def directory_exists(self, path: PathLike) -> bool:
        return await asyncio.to_thread(Path(path).is_dir)

    async def is_directory(self, path: PathLike) -> bool:
        return await self.directory_exists(path)

    async def ensure_directory(self, path: PathLike) -> None:
        await asyncio.to_thread(_ensure_directory, Path(path))

    async def read_text(self, path: PathLike) -> str:
        return await asyncio.to_thread(_read_text, Path(path))

    async def write_text(self, path: PathLike, content: str) -> None:
        await asyncio.to_thread(_write_text, Path(path), content)

    async def delete(self, path: PathLike) -> bool:
        """
        Remove a file or a whole directory tree.

        Returns:
            True if something was removed, False if the path did not exist.
        """
        return await asyncio.to_thread(_delete, Path(path))

    async def rename(self, src: PathLike, dst: PathLike) -> bool:
        """
        Move *src* to *dst*, creating the destination's parent first.

        Returns:
            False if *src* does not exist, True once moved.
        """
        return await asyncio.to_thread(_rename, Path(src), Path(dst))

    async def list_files(self, directory: PathLike, pattern: Optional[str] = None) -> list[Path]:
        """Non-hidden regular files in *directory*, sorted, optionally glob-filtered."""
        return await asyncio.to_thread(_list_files, Path(directory), pattern)

    async def list_directories(self, directory: PathLike) -> list[Path]:
        """Immediate subdirectories of *directory*, sorted by name."""
        return await asyncio.to_thread(_list_directories, Path(directory))

    async def is_empty_directory(self, directory: PathLike) -> bool:
        """True if *directory* holds no entries at all, hidden ones included."""
        return not await asyncio.to_thread(_list_entries, Path(directory))

    async def copy_file(self, src: PathLike, dst: PathLike) -> bool:
        return await asyncio.to_thread(_copy_file, Path(src), Path(dst))

    async def copy_directory_recursive(
        self,
        src: PathLike,
        dst: PathLike,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CopyResult:
        """
        Copy a directory tree file by file, continuing past failures.

        Existing files in the destination that are not in the source are
        left alone.  ``on_progress(current, total)`` is called after each
        entry of every directory visited.

        Returns:
            A :class:`CopyResult`; ``succeeded`` is False when any entry failed.
        """
        src_path, dst_path = Path(src), Path(dst)
        result = CopyResult()

        if not await self.directory_exists(src_path):
            result.errors.append(f"Source directory does not exist: {src_path}")
            result.succeeded = False
            return result

        try:
            await self.ensure_directory(dst_path)
            entries = await asyncio.to_thread(_list_entries, src_path)
        except StorageIOError as e:
            result.errors.append(f"Failed to copy directory: {e}")
            result.succeeded = False
            return result

        total = len(entries)
        for index, entry in enumerate(entries, start=1):
            src_item = src_path / entry.name
            dst_item = dst_path / entry.name
            try:
                if entry.is_dir():
                    result.merge(await self.copy_directory_recursive(src_item, dst_item, on_progress))
                elif await self.copy_file(src_item, dst_item):
                    result.copied_count += 1
                else:
                    result.errors.append(f"Failed to copy file: {src_item}")
            except (StorageIOError, OSError) as e:
                result.errors.append(f"Error copying {src_item}: {e}")

            if on_progress is not None:
                on_progress(index, total)

        result.succeeded = not result.errors
        return result

    async def is_writable(self, directory: PathLike) -> bool:
        """Probe *directory* by creating and deleting a throwaway file."""
        try:
            await asyncio.to_thread(_probe_writable, Path(directory))
        except StorageIOError as e:
            logger.error("Directory %s is not writable: %s", directory, e)
            return False
        return True

    # ── Layout queries ──────────────────────────────────────────

    async def _subdirs_containing(self, directory: PathLike, filename: str) -> list[str]:
        subdirs = await self.list_directories(directory)
        found = await asyncio.gather(*(self.file_exists(d / filename) for d in subdirs))
        return [d.name for d, ok in zip(subdirs, found) if ok]

    async def list_projects(self) -> list[str]:
        """Slugs of every project folder that holds a ``project.md``."""
        return await self._subdirs_containing(self.get_projects_directory(), PROJECT_FILENAME)

    async def create_project_structure(self, project_slug: str) -> None:
        for directory in (
            self.get_project_boards_directory(project_slug),
            *(self.get_project_notes_directory(project_slug, t) for t in NOTE_TYPES),
            self.get_project_time_directory(project_slug),
        ):
            await self.ensure_directory(directory)

    async def list_boards(self, boards_directory: PathLike) -> list[str]:
        """Names of board folders under *boards_directory* that hold a ``board.md``."""
        return await self._subdirs_containing(boards_directory, BOARD_FILENAME)

    async def has_boards(self, boards_directory: PathLike) -> bool:
        return bool(await self.list_boards(boards_directory))


def _check_note_type(note_type: str) -> str:
    if note_type not in NOTE_TYPES:
        raise StorageValidationError(
            f"Unknown note type '{note_type}', expected one of {', '.join(NOTE_TYPES)}"
        )
    return note_type
