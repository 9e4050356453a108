"""Markdown artifact writers shared by the extraction pipelines.

Artifacts land under ``<workspace>/memory/<kind>/`` where an external
indexer picks them up. Daily files get a header on creation and entries are
separated by a horizontal rule.
"""

import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ENTRY_SEPARATOR = "\n\n---\n\n"


def memory_dir(workspace_dir: Path, kind: str) -> Path:
    """Resolve (and create) ``<workspace>/memory/<kind>``."""
    directory = Path(workspace_dir) / "memory" / kind
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def append_daily_entry(
    workspace_dir: Path,
    kind: str,
    title: str,
    description: str,
    entry: str,
    when: datetime,
) -> Path:
    """Append an entry to the day's markdown file for ``kind``.

    Args:
        workspace_dir: Workspace root
        kind: Subdirectory name under memory/ (e.g. 'episodes')
        title: Header title written when the file is created
        description: One-line description under the header
        entry: Markdown body of the entry
        when: Entry timestamp; selects the daily file

    Returns:
        Path of the daily file
    """
    date_str = when.strftime("%Y-%m-%d")
    path = memory_dir(workspace_dir, kind) / f"{date_str}.md"

    if path.exists():
        with open(path, "a", encoding="utf-8") as f:
            f.write(ENTRY_SEPARATOR + entry)
    else:
        header = f"# {title}: {date_str}\n\n{description}\n"
        path.write_text(header + ENTRY_SEPARATOR + entry, encoding="utf-8")
    return path


def write_unique_file(directory: Path, stem: str, content: str) -> Path:
    """Write ``content`` to ``<stem>.md``, adding a counter if the name is taken."""
    path = directory / f"{stem}.md"
    counter = 1
    while True:
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(content)
            return path
        except FileExistsError:
            path = directory / f"{stem}-{counter}.md"
            counter += 1
