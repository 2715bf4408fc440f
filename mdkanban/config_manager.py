"""
Storage configuration: where the boards root lives, and relocating it.

The active boards root is either the default (``{documents}/boards/``) or
a user-chosen override kept in ``{documents}/.mkanban/config.json``::

    {
      "version": "1.0",
      "boardsDirectory": "/home/me/Sync/boards/"
    }

The config is cached on the ``StorageConfig`` instance after the first
read; call :meth:`StorageConfig.clear_cache` to force a re-read.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol, Union
from urllib.parse import unquote, urlparse

from .errors import StorageError, StorageValidationError
from .filesystem import FileSystemManager, document_directory

logger = logging.getLogger("mdkanban.config")

PathLike = Union[str, Path]
ProgressCallback = Callable[[int, int], None]

CONFIG_VERSION = "1.0"
CONFIG_DIR_NAME = ".mkanban"
CONFIG_FILENAME = "config.json"
DEFAULT_BOARDS_SUBDIR = "boards"
LOAD_TIMEOUT_SECONDS = 10.0

_URI_SCHEME = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*)://")


class DirectoryProvider(Protocol):
    """A storage provider that exposes directories through URIs rather than paths."""

    def create_file(self, directory: str, name: str, mime_type: str) -> str:
        """Create an empty file in *directory* and return its URI."""

    def delete(self, uri: str) -> None:
        """Delete the file at *uri*."""


@dataclass
class StorageConfigData:
    version: str = CONFIG_VERSION
    boards_directory: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "StorageConfigData":
        extra = {k: v for k, v in payload.items() if k not in ("version", "boardsDirectory")}
        boards = payload.get("boardsDirectory")
        return cls(
            version=str(payload.get("version") or CONFIG_VERSION),
            boards_directory=str(boards) if boards else None,
            extra=extra,
        )

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"version": self.version, **self.extra}
        if self.boards_directory:
            payload["boardsDirectory"] = self.boards_directory
        return payload

    def copy(self) -> "StorageConfigData":
        return StorageConfigData(self.version, self.boards_directory, dict(self.extra))


@dataclass
class MigrationResult:
    success: bool
    message: str
    copied_files: Optional[int] = None
    errors: Optional[list[str]] = None


def uri_scheme(path: str) -> Optional[str]:
    """The lower-cased URI scheme of *path*, or None for a plain path."""
    match = _URI_SCHEME.match(path)
    return match.group(1).lower() if match else None


def normalize_directory(path: str) -> str:
    """
    Canonical form of a directory setting: ``file://`` URIs become plain
    paths and the result always ends with ``/``.

    Raises:
        StorageValidationError: *path* is empty.
    """
    if not path or not path.strip():
        raise StorageValidationError("Boards directory path cannot be empty")
    path = path.strip()
    if uri_scheme(path) == "file":
        path = unquote(urlparse(path).path)
    return path if path.endswith("/") else f"{path}/"


class StorageConfig:
    """
    Owns the location of the boards root.

    Args:
        base_directory: Platform document area; defaults to
                        :func:`~mdkanban.filesystem.document_directory`.
        file_system: Shared :class:`FileSystemManager`.
        providers: URI scheme -> :class:`DirectoryProvider` for
                   provider-backed directories (e.g. ``"content"``).
        load_timeout: Seconds to wait for the config read before falling
                      back to defaults.
    """

    def __init__(
        self,
        base_directory: Optional[PathLike] = None,
        file_system: Optional[FileSystemManager] = None,
        providers: Optional[Mapping[str, DirectoryProvider]] = None,
        load_timeout: float = LOAD_TIMEOUT_SECONDS,
    ):
        self.base_directory = Path(base_directory) if base_directory else document_directory()
        self.config_dir = self.base_directory / CONFIG_DIR_NAME
        self.config_file = self.config_dir / CONFIG_FILENAME
        self.file_system = file_system or FileSystemManager(self.base_directory)
        self.providers = {k.lower(): v for k, v in (providers or {}).items()}
        self.load_timeout = load_timeout
        self._cached: Optional[StorageConfigData] = None

    # ── Public API ──────────────────────────────────────────────

    async def initialize(self) -> str:
        """Load the config and make sure the active boards root exists."""
        await self.file_system.initialize()
        boards_dir = await self.get_boards_directory()
        if uri_scheme(boards_dir) is None:
            await self.file_system.ensure_directory(boards_dir)
        return boards_dir

    def get_default_boards_directory(self) -> str:
        return f"{self.base_directory / DEFAULT_BOARDS_SUBDIR}/"

    async def get_boards_directory(self) -> str:
        config = await self._load_config()
        return config.boards_directory or self.get_default_boards_directory()

    async def set_boards_directory(self, path: str) -> str:
        """
        Validate *path* and make it the active boards root.

        Returns:
            The normalised path that was stored.

        Raises:
            StorageValidationError: empty path, unknown URI scheme, or a
                directory that cannot be written to.
        """
        normalized = normalize_directory(path)
        await self._validate_directory(normalized)

        config = await self._load_config()
        config.boards_directory = normalized
        await self._save_config(config)
        logger.info("Boards directory updated to %s", normalized)
        return normalized

    async def reset_to_default(self) -> None:
        config = await self._load_config()
        config.boards_directory = None
        await self._save_config(config)
        logger.info("Boards directory reset to default")

    async def is_using_custom_directory(self) -> bool:
        return bool((await self._load_config()).boards_directory)

    async def get_full_config(self) -> StorageConfigData:
        return await self._load_config()

    def clear_cache(self) -> None:
        self._cached = None

    async def has_existing_boards(self, boards_directory: PathLike) -> bool:
        return await self.file_system.has_boards(boards_directory)

    async def list_boards(self, boards_directory: Optional[PathLike] = None) -> list[str]:
        directory = boards_directory or await self.get_boards_directory()
        return await self.file_system.list_boards(directory)

    async def migrate_boards(
        self,
        old_path: PathLike,
        new_path: PathLike,
        on_progress: Optional[ProgressCallback] = None,
    ) -> MigrationResult:
        """
        Copy every board from *old_path* into *new_path*.

        The source is never modified or removed, so a partial copy can be
        retried.  Copy failures are reported in the result, not raised.
        """
        if not str(old_path).strip() or not str(new_path).strip():
            return MigrationResult(False, "Source and destination paths are required")

        old_dir, new_dir = Path(old_path), Path(new_path)
        if old_dir == new_dir:
            return MigrationResult(False, "Source and destination paths cannot be the same")
        if uri_scheme(str(old_path)) or uri_scheme(str(new_path)):
            return MigrationResult(False, "Only local directories can be migrated")

        old_real, new_real = await asyncio.gather(
            asyncio.to_thread(old_dir.resolve), asyncio.to_thread(new_dir.resolve)
        )
        if old_real == new_real:
            return MigrationResult(False, "Source and destination paths cannot be the same")
        if old_real in new_real.parents:
            return MigrationResult(False, "Destination directory cannot be inside the source directory")

        try:
            if not await self.has_existing_boards(old_dir):
                return MigrationResult(
                    True, "No boards found in source directory, nothing to migrate", copied_files=0
                )

            if not await self.file_system.is_writable(new_dir):
                return MigrationResult(False, "Destination directory is not writable")

            logger.info("Starting board migration from %s to %s", old_dir, new_dir)
            result = await self.file_system.copy_directory_recursive(old_dir, new_dir, on_progress)
        except (StorageError, OSError) as e:
            logger.error("Board migration failed: %s", e)
            return MigrationResult(False, f"Migration error: {e}")

        if not result.succeeded:
            logger.warning(
                "Board migration copied %d files with %d errors", result.copied_count, len(result.errors)
            )
            return MigrationResult(
                False,
                f"Migration failed: {len(result.errors)} errors occurred",
                copied_files=result.copied_count,
                errors=result.errors,
            )

        logger.info("Migration completed: %d files copied", result.copied_count)
        return MigrationResult(
            True, f"Successfully migrated {result.copied_count} files", copied_files=result.copied_count
        )

    # ── Validation ──────────────────────────────────────────────

    async def _validate_directory(self, path: str) -> None:
        scheme = uri_scheme(path)
        if scheme is None:
            if not await self.file_system.is_writable(path):
                raise StorageValidationError(f"Invalid directory path: directory is not writable: {path}")
            return

        provider = self.providers.get(scheme)
        if provider is None:
            raise StorageValidationError(f"Invalid directory path: no provider for '{scheme}://' directories")

        probe_name = f".test-write-{int(time.time() * 1000)}"
        try:
            uri = await asyncio.to_thread(provider.create_file, path, probe_name, "text/plain")
            await asyncio.to_thread(provider.delete, uri)
        except Exception as e:  # noqa: BLE001
            raise StorageValidationError(f"Invalid directory path: provider directory is not writable ({e})") from e

    # ── Persistence ─────────────────────────────────────────────

    async def _load_config(self) -> StorageConfigData:
        if self._cached is not None:
            return self._cached.copy()

        try:
            config = await asyncio.wait_for(self._read_config(), timeout=self.load_timeout)
        except asyncio.TimeoutError:
            logger.warning("Loading %s timed out, using defaults", self.config_file)
            config = StorageConfigData()

        self._cached = config
        return config.copy()

    async def _read_config(self) -> StorageConfigData:
        fs = self.file_system
        try:
            await fs.ensure_directory(self.config_dir)
            if not await fs.file_exists(self.config_file):
                logger.debug("Config file %s missing, writing defaults", self.config_file)
                config = StorageConfigData()
                await self._save_config(config)
                return config

            payload = json.loads(await fs.read_text(self.config_file))
            if not isinstance(payload, dict):
                raise ValueError("config root is not an object")
            return StorageConfigData.from_json(payload)
        except (StorageError, ValueError) as e:
            logger.error("Failed to load config %s: %s", self.config_file, e)
            return StorageConfigData()

    async def _save_config(self, config: StorageConfigData) -> None:
        content = json.dumps(config.to_json(), indent=2)
        try:
            await self.file_system.write_text(self.config_file, content)
        except StorageError as e:
            logger.error("Failed to save storage config: %s", e)
            raise
        self._cached = config.copy()
        logger.debug("Storage config saved to %s", self.config_file)
