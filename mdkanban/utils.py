"""
Shared helpers: logging setup, name/ID derivation and markdown title
handling.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL_ENV = "MDKANBAN_LOG_LEVEL"

MAX_FILENAME_LENGTH = 100
UNNAMED = "unnamed"

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


# ── Logging ────────────────────────────────────────────────────────

def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the ``mdkanban`` logger hierarchy with a single stderr handler.

    Only entry points call this; library modules just obtain loggers.

    Args:
        level: Level name such as ``"DEBUG"``.  Defaults to the
               ``MDKANBAN_LOG_LEVEL`` environment variable, else ``WARNING``.
    """
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    resolved = getattr(logging, name, None)
    if not isinstance(resolved, int):
        resolved = logging.WARNING

    root = logging.getLogger("mdkanban")
    root.setLevel(resolved)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


# ── Names and IDs ──────────────────────────────────────────────────

def get_safe_filename(name: str) -> str:
    """
    Turn a human-readable title into a filesystem-safe slug.

    Path separators become dashes, everything outside ``[a-z0-9 -]`` is
    dropped, whitespace runs become a single dash and the result is
    capped at 100 characters.

    Example:
        >>> get_safe_filename("My Test Board!!")
        'my-test-board'
        >>> get_safe_filename("   ")
        'unnamed'
    """
    safe = name.replace("/", "-").replace("\\", "-")
    safe = _NON_SLUG_CHARS.sub("", safe.lower())
    safe = _WHITESPACE.sub("-", safe.strip())
    safe = _DASHES.sub("-", safe)
    safe = safe.strip("-")

    if len(safe) > MAX_FILENAME_LENGTH:
        safe = safe[:MAX_FILENAME_LENGTH].rstrip("-")

    return safe or UNNAMED


def generate_id_from_name(name: str) -> str:
    """Derive a stable identifier from a title (``"Fix Bug"`` -> ``"fix_bug"``)."""
    safe = _NON_SLUG_CHARS.sub("", name.lower())
    safe = _WHITESPACE.sub("_", safe.strip())
    return safe or UNNAMED


def now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ── Markdown titles ────────────────────────────────────────────────

def _is_title_line(line: str) -> bool:
    return line.strip().startswith("# ")


def extract_title_from_content(content: str, fallback: str = "") -> str:
    """Return the text of the first ``# `` heading in *content*, else *fallback*."""
    for line in content.strip().split("\n"):
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip()
    return fallback


def update_title_in_content(content: str, new_title: str) -> str:
    """
    Replace the first top-level heading of *content* with ``# new_title``.

    A heading is prepended when none exists.
    """
    lines = content.split("\n")
    for index, line in enumerate(lines):
        if _is_title_line(line):
            lines[index] = f"# {new_title}"
            return "\n".join(lines)

    if content:
        return f"# {new_title}\n\n{content}"
    return f"# {new_title}"


def ensure_title_header(content: str, title: str) -> str:
    """
    Make sure a markdown body carries exactly the given title heading.

    Example:
        >>> ensure_title_header("Some notes", "Do X")
        '# Do X\\n\\nSome notes'
        >>> ensure_title_header("# Old\\n\\nSome notes", "Do X")
        '# Do X\\n\\nSome notes'
    """
    if not content:
        return f"# {title}"
    return update_title_in_content(content, title)
