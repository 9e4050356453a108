"""Scratch pad: recent data-producing tool results kept across compaction.

Only tools on the CAPTURE_TOOLS allow-list are captured, error results never
are, and each output is truncated to 2000 characters. The pad is a FIFO of
20 entries per session, oldest first. It is injected only after at least one
compaction, since before that the same results are still in the transcript.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from workmem.memory.types import ScratchEntry
from workmem.storage.documents import JsonDocumentStore, sanitize_owner_key

logger = logging.getLogger(__name__)

CAPTURE_TOOLS = frozenset({
    "web_search",
    "web_fetch",
    "memory_search",
    "memory_get",
    "sessions_list",
    "sessions_history",
    "session_status",
    "nodes",
    "exec",
})

MAX_ENTRIES = 20
MAX_OUTPUT_CHARS = 2000
MIN_OUTPUT_CHARS = 20
INJECTION_CHARS = 15000


class ScratchPad(JsonDocumentStore):
    """Per-session FIFO of captured tool outputs.

    Args:
        state_dir: State root directory
        workspace_dir: Workspace root for the markdown mirror (None disables it)
        max_entries: FIFO capacity (default: 20)
        clock: Callable returning epoch seconds (default: time.time)
    """

    subdir = "scratch"
    collection = "entries"

    def __init__(
        self,
        state_dir,
        workspace_dir: Optional[Path] = None,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(state_dir)
        self.workspace_dir = Path(workspace_dir) if workspace_dir else None
        self.max_entries = max_entries
        self._clock = clock

    def empty_document(self) -> dict[str, Any]:
        doc = super().empty_document()
        doc["compaction_count"] = 0
        return doc

    def _load(self, doc: dict[str, Any]) -> list[ScratchEntry]:
        return [ScratchEntry.from_dict(e) for e in doc["entries"]]

    @staticmethod
    def should_capture(tool_name: str, is_error: bool = False) -> bool:
        return not is_error and tool_name in CAPTURE_TOOLS

    def capture(
        self,
        session_key: str,
        tool_name: str,
        output: str,
        is_error: bool = False,
        context: Optional[str] = None,
    ) -> Optional[ScratchEntry]:
        """Capture one tool result.

        Args:
            session_key: Session id
            tool_name: Producing tool
            output: Tool output text
            is_error: Whether the tool reported an error
            context: Short description (e.g. the query or URL); defaults to the tool name

        Returns:
            The stored entry, or None if the result was not eligible
        """
        if not self.should_capture(tool_name, is_error):
            return None
        text = (output or "").strip()
        if len(text) < MIN_OUTPUT_CHARS:
            return None

        entry = ScratchEntry(
            tool=tool_name,
            context=(context or tool_name)[:200],
            output=text[:MAX_OUTPUT_CHARS],
            timestamp=self._clock(),
        )
        with self.transaction(session_key) as doc:
            entries = self._load(doc)
            entries.append(entry)
            if len(entries) > self.max_entries:
                entries = entries[-self.max_entries:]
            doc["entries"] = [e.to_dict() for e in entries]

        self._write_markdown(session_key, entries)
        return entry

    def get_entries(self, session_key: str) -> list[ScratchEntry]:
        """Entries oldest first."""
        return self._load(self.read(session_key))

    def record_compaction(self, session_key: str) -> int:
        """Increment the session's compaction counter.

        Returns:
            The new count
        """
        with self.transaction(session_key) as doc:
            doc["compaction_count"] = int(doc.get("compaction_count", 0)) + 1
            return doc["compaction_count"]

    def compaction_count(self, session_key: str) -> int:
        return int(self.read(session_key).get("compaction_count", 0))

    def clear_scratch(self, session_key: str) -> bool:
        """Drop the session's pad and its markdown mirror."""
        removed = self.delete_document(session_key)
        mirror = self._markdown_path(session_key)
        if mirror is not None and mirror.exists():
            mirror.unlink()
        return removed

    def _markdown_path(self, session_key: str) -> Optional[Path]:
        if self.workspace_dir is None:
            return None
        return self.workspace_dir / "memory" / "scratch" / f"{sanitize_owner_key(session_key)}.md"

    def _write_markdown(self, session_key: str, entries: list[ScratchEntry]) -> None:
        path = self._markdown_path(session_key)
        if path is None:
            return
        lines = [f"# Scratch Pad ({session_key})", ""]
        for entry in entries:
            stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(entry.timestamp))
            lines.extend([f"## {entry.tool}: {entry.context}", f"_{stamp} UTC_", "", entry.output, ""])
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to mirror scratch pad to {path}: {e}")

    def read_scratch_for_injection(
        self,
        session_key: str,
        compaction_count: Optional[int] = None,
        max_chars: int = INJECTION_CHARS,
    ) -> Optional[str]:
        """Render captured outputs, newest first.

        Args:
            session_key: Session id
            compaction_count: Compactions so far (defaults to the stored counter)
            max_chars: Character budget

        Returns:
            Markdown block, or None before the first compaction or when empty
        """
        doc = self.read(session_key)
        if compaction_count is None:
            compaction_count = int(doc.get("compaction_count", 0))
        if compaction_count <= 0:
            return None

        entries = self._load(doc)
        if not entries:
            return None

        lines = ["## Working Memory (preserved across compaction)", ""]
        used = sum(len(line) + 1 for line in lines)
        for entry in reversed(entries):
            block = f"### {entry.tool}: {entry.context}\n{entry.output}\n"
            if used + len(block) > max_chars:
                break
            lines.append(block)
            used += len(block) + 1

        if len(lines) == 2:
            return None
        return "\n".join(lines).rstrip()
