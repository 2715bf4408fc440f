"""Shared fixtures for the storage tests."""

from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from mdkanban.board_persistence import BoardPersistence
from mdkanban.filesystem import FileSystemManager
from mdkanban.frontmatter import MarkdownParser


@pytest.fixture
def fs(tmp_path: Path) -> FileSystemManager:
    return FileSystemManager(tmp_path)


@pytest.fixture
def parser(fs: FileSystemManager) -> MarkdownParser:
    return MarkdownParser(fs)


@pytest.fixture
def persistence(fs: FileSystemManager, parser: MarkdownParser) -> BoardPersistence:
    return BoardPersistence(fs, parser)


def write_task_file(path: Path, task_id: Optional[Any], title: str, body: str = "", **extra: Any) -> Path:
    """Write a task markdown file the way another client would."""
    meta = dict(extra)
    if task_id is not None:
        meta = {"id": task_id, **meta}
    path.parent.mkdir(parents=True, exist_ok=True)
    front = yaml.safe_dump(meta, sort_keys=False) if meta else ""
    path.write_text(f"---\n{front}---\n\n# {title}\n\n{body}", encoding="utf-8")
    return path


def snapshot(root: Path) -> dict[str, bytes]:
    """Relative path -> content for every file under *root*."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }
