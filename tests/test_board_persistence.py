"""Tests for BoardPersistence against a temporary boards root."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from mdkanban.board_persistence import BoardData, BoardPersistence, ColumnData, ParentTag, TaskData
from mdkanban.errors import ColumnSaveError, TaskSaveError
from mdkanban.frontmatter import parse_frontmatter
from tests.conftest import write_task_file

BOARD = "My Board"


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "boards"


def _tasks_dir(root: Path, column: str = "todo") -> Path:
    return root / "my-board" / "columns" / column / "tasks"


def _read(path: Path):
    return parse_frontmatter(path.read_text(encoding="utf-8"))


def test_save_task_creates_folder_layout(persistence, root):
    task = TaskData(id="T-1", title="Fix Bug", description="Steps to reproduce.", extra={"priority": "high"})

    folder = asyncio.run(persistence.save_task(root, BOARD, "Todo", task))

    assert folder == _tasks_dir(root) / "fix-bug"
    doc = _read(folder / "task.md")
    assert doc.metadata["id"] == "T-1"
    assert doc.metadata["priority"] == "high"
    assert isinstance(doc.metadata["created_at"], datetime)
    assert "title" not in doc.metadata and "description" not in doc.metadata
    assert doc.body == "# Fix Bug\n\nSteps to reproduce."


def test_save_task_does_not_mutate_record(persistence, root):
    task = TaskData(id="T-1", title="Fix Bug")

    folder = asyncio.run(persistence.save_task(root, BOARD, "todo", task))

    assert task.created_at is None
    assert isinstance(_read(folder / "task.md").metadata["created_at"], datetime)


def test_save_task_keeps_given_created_at(persistence, root):
    created = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    task = TaskData(id="T-1", title="Fix Bug", created_at=created)

    folder = asyncio.run(persistence.save_task(root, BOARD, "todo", task))

    assert "created_at: 2024-05-01T08:30:00.000Z" in (folder / "task.md").read_text()


def test_resave_with_same_title_keeps_folder(persistence, root):
    task = TaskData(id="T-1", title="Fix Bug")
    first = asyncio.run(persistence.save_task(root, BOARD, "todo", task))
    task.description = "updated"
    second = asyncio.run(persistence.save_task(root, BOARD, "todo", task))

    assert first == second
    assert [p.name for p in _tasks_dir(root).iterdir()] == ["fix-bug"]
    assert _read(second / "task.md").body.endswith("updated")


def test_title_change_renames_folder_and_keeps_attachments(persistence, root):
    task = TaskData(id="T-1", title="Fix Bug")
    old = asyncio.run(persistence.save_task(root, BOARD, "todo", task))
    (old / "notes.txt").write_text("keep me")

    task.title = "Fix Login Bug"
    new = asyncio.run(persistence.save_task(root, BOARD, "todo", task))

    assert new == _tasks_dir(root) / "fix-login-bug"
    assert not old.exists()
    assert (new / "notes.txt").read_text() == "keep me"
    assert _read(new / "task.md").body.startswith("# Fix Login Bug")


def test_same_title_for_different_tasks_gets_numbered_folder(persistence, root):
    asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id="T-1", title="Fix Bug")))
    second = asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id="T-2", title="Fix Bug")))

    assert second.name == "fix-bug-2"
    assert _read(_tasks_dir(root) / "fix-bug" / "task.md").metadata["id"] == "T-1"


def test_save_task_failure_names_task_and_column(persistence, root):
    column = root / "my-board" / "columns"
    column.mkdir(parents=True)
    (column / "todo").write_text("not a directory")

    with pytest.raises(TaskSaveError) as info:
        asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id="T-1", title="Fix Bug")))
    assert 'task "Fix Bug"' in str(info.value)
    assert 'column "todo"' in str(info.value)


def test_delete_task(persistence, root):
    asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id="T-1", title="Fix Bug")))

    assert asyncio.run(persistence.delete_task(root, BOARD, "todo", "T-1")) is True
    assert not (_tasks_dir(root) / "fix-bug").exists()
    assert asyncio.run(persistence.delete_task(root, BOARD, "todo", "T-1")) is False


def test_move_task_between_columns(persistence, root):
    task = TaskData(id="T-1", title="Fix Bug")
    folder = asyncio.run(persistence.save_task(root, BOARD, "todo", task))
    (folder / "log.txt").write_text("history")

    task.moved_in_progress_at = datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert asyncio.run(persistence.move_task(root, BOARD, "todo", "doing", task)) is True

    moved = _tasks_dir(root, "doing") / "fix-bug"
    assert not folder.exists()
    assert (moved / "log.txt").read_text() == "history"
    assert _read(moved / "task.md").metadata["moved_in_progress_at"] == datetime(2025, 1, 2, tzinfo=timezone.utc)


def test_move_missing_task_returns_false(persistence, root):
    task = TaskData(id="T-404", title="Ghost")
    assert asyncio.run(persistence.move_task(root, BOARD, "todo", "done", task)) is False
    assert not _tasks_dir(root, "done").exists()


def test_move_into_column_with_same_title_gets_numbered(persistence, root):
    asyncio.run(persistence.save_task(root, BOARD, "done", TaskData(id="T-1", title="Fix Bug")))
    task = TaskData(id="T-2", title="Fix Bug")
    asyncio.run(persistence.save_task(root, BOARD, "todo", task))

    asyncio.run(persistence.move_task(root, BOARD, "todo", "done", task))

    assert sorted(p.name for p in _tasks_dir(root, "done").iterdir()) == ["fix-bug", "fix-bug-2"]


def test_save_column_metadata(persistence, root):
    asyncio.run(persistence.save_column_metadata(root, BOARD, "In Progress", ColumnData("In Progress", position=1, limit=3)))
    asyncio.run(persistence.save_column_metadata(root, BOARD, "Done", ColumnData("Done", position=2)))

    doing = (root / "my-board" / "columns" / "in-progress" / "column.md").read_text()
    doc = parse_frontmatter(doing)
    assert doc.metadata["position"] == 1
    assert doc.metadata["limit"] == 3
    assert doc.body == "# In Progress\n\nColumn metadata and configuration."

    done = parse_frontmatter((root / "my-board" / "columns" / "done" / "column.md").read_text())
    assert "limit" not in done.metadata
    assert "created_at" in done.metadata


def test_save_column_metadata_failure(persistence, root):
    root.mkdir()
    (root / "my-board").write_text("in the way")
    with pytest.raises(ColumnSaveError):
        asyncio.run(persistence.save_column_metadata(root, BOARD, "todo", ColumnData("todo")))


def test_save_board_metadata_with_parents(persistence, root, parser):
    board = BoardData(
        name=BOARD,
        id="B-1",
        project_id="proj-1",
        parents=[ParentTag(id="P-1", name="Epic", color="#ff0000")],
    )
    path = asyncio.run(persistence.save_board_metadata(root, board))

    assert path == root / "my-board" / "board.md"
    raw = path.read_text()
    front = yaml.safe_load(raw.split("---\n")[1])
    assert front["id"] == "B-1"
    assert front["parents"] == [{"id": "P-1", "name": "Epic", "color": "#ff0000"}]
    assert "description" not in front
    assert raw.endswith("# My Board\n")

    parsed = asyncio.run(parser.parse_board_metadata(path))
    assert parsed.name == BOARD


def test_cleanup_column(persistence, root):
    for task_id, title in (("T-1", "One"), ("T-2", "Two"), ("T-3", "Three")):
        asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id=task_id, title=title)))
    corrupt = _tasks_dir(root) / "zz-corrupt" / "task.md"
    corrupt.parent.mkdir()
    corrupt.write_text("---\n: [\n---\n")

    removed = asyncio.run(persistence.cleanup_column(root, BOARD, "todo", {"T-1", "T-3"}))

    assert [p.name for p in removed] == ["two"]
    assert sorted(p.name for p in _tasks_dir(root).iterdir()) == ["one", "three", "zz-corrupt"]


def test_load_column_tasks(persistence, root):
    asyncio.run(persistence.save_task(
        root, BOARD, "todo", TaskData(id="T-1", title="Write docs", description="Cover the CLI.", extra={"tags": ["docs"]})
    ))
    write_task_file(_tasks_dir(root) / "external" / "task.md", 5, "From elsewhere", "Body text")
    (_tasks_dir(root) / "empty-folder").mkdir()

    tasks = asyncio.run(persistence.load_column_tasks(root, BOARD, "todo"))

    assert [t.id for t in tasks] == ["5", "T-1"]
    external, docs = tasks
    assert external.title == "From elsewhere"
    assert external.description == "Body text"
    assert docs.description == "Cover the CLI."
    assert docs.extra == {"tags": ["docs"]}
    assert isinstance(docs.created_at, datetime)


def test_task_metadata_excludes_body_fields():
    task = TaskData(id="T-1", title="X", description="Y", parent_id="T-0", extra={"color": "red"})
    meta = task.to_metadata()
    assert meta["id"] == "T-1"
    assert meta["parent_id"] == "T-0"
    assert meta["color"] == "red"
    assert "title" not in meta and "description" not in meta


def test_list_board_directories(persistence, root):
    assert asyncio.run(persistence.list_board_directories(root)) == []
    (root / "b-board").mkdir(parents=True)
    (root / "a-board").mkdir()
    (root / "stray.md").write_text("x")
    assert [p.name for p in asyncio.run(persistence.list_board_directories(root))] == ["a-board", "b-board"]


def test_get_board_file_path(persistence, root):
    assert persistence.get_board_file_path(root, "Team Board") == root / "team-board" / "board.md"


def test_works_without_explicit_parser(fs, root):
    persistence = BoardPersistence(fs)
    folder = asyncio.run(persistence.save_task(root, BOARD, "todo", TaskData(id="T-1", title="Solo")))
    assert (folder / "task.md").is_file()
