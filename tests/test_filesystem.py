"""Tests for FileSystemManager primitives and directory layout."""

import asyncio
from pathlib import Path

import pytest

from mdkanban import filesystem
from mdkanban.errors import StorageIOError, StorageNotFoundError, StorageValidationError
from mdkanban.filesystem import FileSystemManager


def test_write_creates_parents_and_read_returns_text(fs, tmp_path):
    target = tmp_path / "a" / "b" / "note.md"
    asyncio.run(fs.write_text(target, "hello ✓"))
    assert asyncio.run(fs.read_text(target)) == "hello ✓"


def test_read_missing_file_raises_not_found(fs, tmp_path):
    with pytest.raises(StorageNotFoundError) as info:
        asyncio.run(fs.read_text(tmp_path / "missing.md"))
    assert info.value.path == str(tmp_path / "missing.md")


def test_delete_is_idempotent(fs, tmp_path):
    folder = tmp_path / "folder"
    (folder / "sub").mkdir(parents=True)
    (folder / "sub" / "f.txt").write_text("x")

    assert asyncio.run(fs.delete(folder)) is True
    assert not folder.exists()
    assert asyncio.run(fs.delete(folder)) is False


def test_rename_missing_source_returns_false(fs, tmp_path):
    assert asyncio.run(fs.rename(tmp_path / "nope", tmp_path / "dest")) is False


def test_rename_creates_destination_parent(fs, tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "task.md").write_text("x")
    dst = tmp_path / "deep" / "er" / "dst"

    assert asyncio.run(fs.rename(src, dst)) is True
    assert (dst / "task.md").read_text() == "x"
    assert not src.exists()


def test_rename_onto_existing_destination_raises(fs, tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    with pytest.raises(StorageIOError):
        asyncio.run(fs.rename(tmp_path / "a", tmp_path / "b"))


def test_list_files_skips_hidden_and_filters(fs, tmp_path):
    for name in ("b.md", "a.md", ".hidden.md", "notes.txt"):
        (tmp_path / name).write_text("x")
    (tmp_path / "dir.md").mkdir()

    assert [p.name for p in asyncio.run(fs.list_files(tmp_path))] == ["a.md", "b.md", "notes.txt"]
    assert [p.name for p in asyncio.run(fs.list_files(tmp_path, "*.md"))] == ["a.md", "b.md"]
    assert asyncio.run(fs.list_files(tmp_path / "missing")) == []


def test_list_directories_sorted(fs, tmp_path):
    for name in ("zeta", "alpha", "mid"):
        (tmp_path / name).mkdir()
    (tmp_path / "file.txt").write_text("x")
    assert [p.name for p in asyncio.run(fs.list_directories(tmp_path))] == ["alpha", "mid", "zeta"]


def test_copy_directory_recursive_counts_and_reports_progress(fs, tmp_path):
    src = tmp_path / "src"
    (src / "board" / "columns").mkdir(parents=True)
    (src / "board" / "board.md").write_text("b")
    (src / "board" / "columns" / "c.md").write_text("c")
    (src / "top.txt").write_text("t")
    calls = []

    result = asyncio.run(fs.copy_directory_recursive(src, tmp_path / "dst", lambda c, t: calls.append((c, t))))

    assert result.succeeded
    assert result.copied_count == 3
    assert result.errors == []
    assert (tmp_path / "dst" / "board" / "columns" / "c.md").read_text() == "c"
    assert calls[-1] == (2, 2)


def test_copy_directory_recursive_continues_past_failures(fs, tmp_path, monkeypatch):
    src = tmp_path / "src"
    src.mkdir()
    for name in ("a.txt", "b.txt", "c.txt"):
        (src / name).write_text(name)

    real_copy = filesystem._copy_file

    def flaky_copy(s: Path, d: Path) -> bool:
        if s.name == "b.txt":
            raise StorageIOError("disk full", d)
        return real_copy(s, d)

    monkeypatch.setattr(filesystem, "_copy_file", flaky_copy)
    result = asyncio.run(fs.copy_directory_recursive(src, tmp_path / "dst"))

    assert not result.succeeded
    assert result.copied_count == 2
    assert len(result.errors) == 1 and "b.txt" in result.errors[0]
    assert (tmp_path / "dst" / "c.txt").exists()


def test_copy_directory_missing_source(fs, tmp_path):
    result = asyncio.run(fs.copy_directory_recursive(tmp_path / "nope", tmp_path / "dst"))
    assert not result.succeeded
    assert result.copied_count == 0


def test_is_writable(fs, tmp_path):
    target = tmp_path / "new" / "dir"
    assert asyncio.run(fs.is_writable(target)) is True
    assert target.is_dir()
    assert list(target.iterdir()) == []

    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    assert asyncio.run(fs.is_writable(blocker / "child")) is False


def test_layout_paths(tmp_path):
    fs = FileSystemManager(tmp_path)
    data = tmp_path / "mkanban"
    assert fs.get_data_directory() == data
    assert fs.get_project_boards_directory("My Project") == data / "projects" / "my-project" / "boards"
    assert fs.get_project_notes_directory("p", "meetings") == data / "projects" / "p" / "notes" / "meetings"
    assert fs.get_project_time_directory("p") == data / "projects" / "p" / "time" / "logs"
    assert fs.get_goals_directory() == data / "global" / "goals"
    assert fs.get_global_notes_directory() == data / "global" / "notes"
    assert fs.get_agenda_day_directory(2025, 3, 7) == data / "agenda" / "2025" / "03" / "07"
    assert fs.get_agenda_day_directory_from_date("2025-11-02") == data / "agenda" / "2025" / "11" / "02"

    fs.set_data_directory(tmp_path / "custom")
    assert fs.get_agenda_directory() == tmp_path / "custom" / "agenda"


def test_layout_rejects_bad_input(fs):
    with pytest.raises(StorageValidationError):
        fs.get_project_notes_directory("p", "diary")
    with pytest.raises(StorageValidationError):
        fs.get_agenda_day_directory_from_date("20250101")
    with pytest.raises(StorageValidationError):
        fs.set_data_directory("  ")


def test_project_structure_and_listing(fs):
    asyncio.run(fs.create_project_structure("Side Quest"))
    project_dir = fs.get_project_directory("Side Quest")
    assert (project_dir / "notes" / "daily").is_dir()
    assert (project_dir / "time" / "logs").is_dir()
    assert asyncio.run(fs.list_projects()) == []

    (project_dir / "project.md").write_text("---\nname: Side Quest\n---\n")
    assert asyncio.run(fs.list_projects()) == ["side-quest"]


def test_list_boards_requires_board_file(fs, tmp_path):
    root = tmp_path / "boards"
    (root / "real").mkdir(parents=True)
    (root / "real" / "board.md").write_text("x")
    (root / "empty").mkdir()

    assert asyncio.run(fs.list_boards(root)) == ["real"]
    assert asyncio.run(fs.has_boards(root)) is True
    assert asyncio.run(fs.has_boards(tmp_path / "missing")) is False


def test_initialize_creates_data_directory_once(fs):
    asyncio.run(fs.initialize())
    assert fs.is_initialized()
    assert fs.get_data_directory().is_dir()
    asyncio.run(fs.initialize())


def test_is_empty_directory_counts_hidden_entries(fs, tmp_path):
    folder = tmp_path / "folder"
    folder.mkdir()
    assert asyncio.run(fs.is_empty_directory(folder)) is True

    (folder / ".hidden").write_text("x")
    assert asyncio.run(fs.is_empty_directory(folder)) is False
    assert asyncio.run(fs.list_files(folder)) == []
