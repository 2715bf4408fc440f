"""
mdkanban - markdown-file storage for kanban boards.

Boards, columns and tasks are kept as a directory tree of markdown files
with YAML frontmatter, so the data stays human-readable and can be synced
with ordinary file-sync tools.

Modules:
    utils             - Shared helpers (logging setup, slugs, title headings)
    errors            - Exception types
    filesystem        - Async file primitives and the data-directory layout
    frontmatter       - Deterministic YAML frontmatter codec and markdown parser
    file_operations   - Collision-safe folder naming and task lookup by ID
    board_persistence - Save/move/delete/cleanup of tasks, column and board metadata
    migration         - One-time upgrade to the folder-per-task layout
    config_manager    - Boards root location and relocation between roots
"""

from .board_persistence import BoardData, BoardPersistence, ColumnData, ParentTag, TaskData
from .config_manager import MigrationResult, StorageConfig
from .filesystem import CopyResult, FileSystemManager
from .frontmatter import MarkdownParser, parse_frontmatter, serialize_frontmatter
from .migration import TaskStorageMigration

__version__ = "1.0.0"

__all__ = [
    "BoardData",
    "BoardPersistence",
    "ColumnData",
    "CopyResult",
    "FileSystemManager",
    "MarkdownParser",
    "MigrationResult",
    "ParentTag",
    "StorageConfig",
    "TaskData",
    "TaskStorageMigration",
    "parse_frontmatter",
    "serialize_frontmatter",
]
