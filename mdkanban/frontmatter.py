"""
YAML frontmatter codec and the markdown file parser built on it.

A document is::

    ---
    id: T-1
    title: Do X
    created_at: 2025-01-01T10:00:00.000Z
    ---

    # Do X

    body...

Keys are always written in a fixed order so two writers that hold the
same metadata produce the same bytes (file-sync tools diff these files):
priority fields, then scheduling fields, then every other key
alphabetically, then timestamps.  ``None`` values are dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .errors import FrontmatterParseError, StorageIOError
from .filesystem import FileSystemManager
from .utils import ensure_title_header, extract_title_from_content

logger = logging.getLogger("mdkanban.frontmatter")

DELIMITER = "---"

PRIORITY_FIELDS = ("id", "title", "parent_id", "project_id")
SCHEDULING_FIELDS = (
    "scheduled_date",
    "scheduled_time",
    "time_block_minutes",
    "task_type",
    "calendar_event_id",
    "recurrence",
    "meeting_data",
)
TIMESTAMP_FIELDS = ("moved_in_progress_at", "moved_in_done_at", "worked_on_for", "created_at")
RESERVED_FIELDS = frozenset(PRIORITY_FIELDS + SCHEDULING_FIELDS + TIMESTAMP_FIELDS)

Metadata = dict[str, Any]


# ── YAML dialect ───────────────────────────────────────────────────

class _FrontmatterDumper(yaml.SafeDumper):
    """SafeDumper that writes timestamps the way the mobile client does."""


def _represent_datetime(dumper: yaml.SafeDumper, value: datetime) -> yaml.Node:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return dumper.represent_scalar("tag:yaml.org,2002:timestamp", text.replace("+00:00", "Z"))


def _represent_date(dumper: yaml.SafeDumper, value: date) -> yaml.Node:
    return dumper.represent_scalar("tag:yaml.org,2002:timestamp", value.isoformat())


_FrontmatterDumper.add_representer(datetime, _represent_datetime)
_FrontmatterDumper.add_representer(date, _represent_date)


def _dump_yaml(metadata: Metadata) -> str:
    if not metadata:
        return ""
    return yaml.dump(
        metadata,
        Dumper=_FrontmatterDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


# ── Codec ──────────────────────────────────────────────────────────

@dataclass
class ParsedDocument:
    metadata: Metadata = field(default_factory=dict)
    body: str = ""


def organize_metadata(metadata: Mapping[str, Any]) -> Metadata:
    """
    Return a copy of *metadata* in canonical key order, ``None`` values removed.

    Example:
        >>> list(organize_metadata({"description": "d", "id": "T-1",
        ...                         "title": "Do X", "created_at": "2025-01-01"}))
        ['id', 'title', 'description', 'created_at']
    """
    ordered: Metadata = {}

    for key in PRIORITY_FIELDS + SCHEDULING_FIELDS:
        if metadata.get(key) is not None:
            ordered[key] = metadata[key]

    for key in sorted(k for k in metadata if k not in RESERVED_FIELDS):
        if metadata[key] is not None:
            ordered[key] = metadata[key]

    for key in TIMESTAMP_FIELDS:
        if metadata.get(key) is not None:
            ordered[key] = metadata[key]

    return ordered


def parse_frontmatter(raw: str, path: Optional[Union[str, Path]] = None) -> ParsedDocument:
    """
    Split *raw* into its metadata mapping and markdown body.

    Text without a leading ``---`` line is all body.  The single blank
    line written after the closing delimiter is not part of the body.

    Raises:
        FrontmatterParseError: unterminated block, invalid YAML, or a
            block that is not a mapping.
    """
    text = raw[1:] if raw.startswith("\ufeff") else raw
    lines = text.splitlines(keepends=True)

    if not lines or lines[0].rstrip() != DELIMITER:
        return ParsedDocument({}, text)

    for end, line in enumerate(lines[1:], start=1):
        if line.rstrip("\r\n") == DELIMITER:
            break
    else:
        raise FrontmatterParseError("Frontmatter block is not terminated", path)

    block = "".join(lines[1:end])
    try:
        loaded = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        raise FrontmatterParseError(f"Invalid YAML frontmatter: {e}", path) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise FrontmatterParseError("Frontmatter is not a key/value mapping", path)

    body = "".join(lines[end + 1:])
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]

    return ParsedDocument({str(k): v for k, v in loaded.items()}, body)


def serialize_frontmatter(
    metadata: Mapping[str, Any],
    body: str = "",
    title: Optional[str] = None,
) -> str:
    """
    Render metadata and body as a frontmatter document.

    Args:
        metadata: Key/value pairs; ``None`` values are omitted.  Datetimes
                  are written in UTC with millisecond precision, so
                  microseconds do not survive a round trip.
        body: Markdown body.
        title: Heading to enforce on the body.  Defaults to
               ``metadata["title"]``; with neither, the body is written as is.

    Returns:
        ``---\\n<yaml>---\\n\\n<body>``
    """
    heading = title if title is not None else metadata.get("title")
    if heading is not None:
        body = ensure_title_header(body, str(heading))
    return f"{DELIMITER}\n{_dump_yaml(organize_metadata(metadata))}{DELIMITER}\n\n{body}"


# ── File-level parser ──────────────────────────────────────────────

@dataclass
class ParsedTask:
    title: str
    content: str
    metadata: Metadata


@dataclass
class ParsedBoard:
    name: str
    metadata: Metadata


class MarkdownParser:
    """Reads and writes board, column and task markdown files."""

    def __init__(self, file_system: FileSystemManager):
        self.file_system = file_system

    async def read_document(self, path: Union[str, Path]) -> ParsedDocument:
        raw = await self.file_system.read_text(path)
        return parse_frontmatter(raw, path)

    async def parse_task_metadata(self, path: Union[str, Path]) -> ParsedTask:
        """
        Parse a task file.

        The title comes from the body's ``# `` heading, then the ``title``
        key, then the file name.
        """
        doc = await self.read_document(path)
        meta_title = doc.metadata.get("title")
        fallback = str(meta_title) if meta_title is not None else ""
        title = extract_title_from_content(doc.body, fallback) or Path(path).stem
        return ParsedTask(title=title, content=doc.body, metadata=doc.metadata)

    async def parse_board_metadata(self, path: Union[str, Path]) -> ParsedBoard:
        doc = await self.read_document(path)
        name = doc.metadata.get("name") or Path(path).parent.name or "unnamed"
        return ParsedBoard(name=str(name), metadata=doc.metadata)

    async def parse_column_metadata(self, path: Union[str, Path]) -> Optional[Metadata]:
        """Column metadata, or None when the file is missing or unreadable."""
        if not await self.file_system.file_exists(path):
            return None
        try:
            return (await self.read_document(path)).metadata
        except (FrontmatterParseError, StorageIOError) as e:
            logger.warning("Failed to parse column metadata from %s: %s", path, e)
            return None

    async def save_task_with_metadata(
        self, path: Union[str, Path], title: str, content: str, metadata: Mapping[str, Any]
    ) -> None:
        await self.file_system.write_text(path, serialize_frontmatter(metadata, content, title=title))

    async def save_board_metadata(
        self, path: Union[str, Path], board_name: str, metadata: Mapping[str, Any]
    ) -> None:
        await self.file_system.write_text(path, serialize_frontmatter(metadata, f"# {board_name}\n"))

    async def save_column_metadata(
        self, path: Union[str, Path], column_name: str, metadata: Mapping[str, Any]
    ) -> None:
        body = f"# {column_name}\n\nColumn metadata and configuration."
        await self.file_system.write_text(path, serialize_frontmatter(metadata, body))
