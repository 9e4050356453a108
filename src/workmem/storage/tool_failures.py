"""Tool-failure store: recurring tool errors collapsed into counted patterns.

A failure is matched against existing records by tool name and category,
then by identical normalized pattern or a shared 50-character pattern
prefix. Matches bump the count; everything else becomes a new record. When
the store reaches capacity the 10 lowest-count, least recently seen records
are evicted before inserting.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from workmem.classify.tool_errors import classify_tool_error
from workmem.errors import ValidationError
from workmem.memory.types import FailureCategory, ToolFailure, utcnow
from workmem.storage.documents import JsonDocumentStore

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100
EVICT_BATCH = 10
PATTERN_PREFIX_CHARS = 50
INJECTION_LIMIT = 15


class ToolFailureStore(JsonDocumentStore):
    """Counted, bounded store of tool failure patterns.

    Args:
        state_dir: State root directory
        max_entries: Capacity (default: 100)
        clock: Callable returning an aware UTC datetime (default: utcnow)
    """

    subdir = "tool-failures"
    collection = "failures"

    def __init__(
        self,
        state_dir,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(state_dir)
        self.max_entries = max_entries
        self._clock = clock

    def _load(self, doc: dict[str, Any]) -> list[ToolFailure]:
        return [ToolFailure.from_dict(f) for f in doc["failures"]]

    @staticmethod
    def _matches(record: ToolFailure, tool_name: str, category: FailureCategory, pattern: str) -> bool:
        if record.tool_name != tool_name or record.category != category:
            return False
        return (
            record.pattern == pattern
            or record.pattern[:PATTERN_PREFIX_CHARS] == pattern[:PATTERN_PREFIX_CHARS]
        )

    def record_tool_failure(
        self,
        owner_key: str,
        tool_name: str,
        error_text: str,
    ) -> Optional[ToolFailure]:
        """Classify an error and fold it into the store.

        Args:
            owner_key: Agent id
            tool_name: Name of the failing tool
            error_text: Raw error output

        Returns:
            The created or updated record, or None if the error was unclassifiable

        Raises:
            ValidationError: If tool_name is empty
        """
        if not tool_name:
            raise ValidationError("Tool name cannot be empty")

        classified = classify_tool_error(error_text, tool_name)
        if classified is None:
            logger.debug(f"Unclassifiable error from {tool_name}, not recorded")
            return None

        now = self._clock()
        with self.transaction(owner_key) as doc:
            failures = self._load(doc)

            for record in failures:
                if self._matches(record, tool_name, classified.category, classified.pattern):
                    record.count += 1
                    record.last_seen = now
                    if len(classified.lesson) > len(record.lesson):
                        record.lesson = classified.lesson
                    doc["failures"] = [f.to_dict() for f in failures]
                    return record

            if len(failures) >= self.max_entries:
                failures.sort(key=lambda f: (f.count, f.last_seen))
                evicted = failures[:EVICT_BATCH]
                failures = failures[EVICT_BATCH:]
                logger.debug(f"Evicted {len(evicted)} tool failure patterns for {owner_key}")

            record = ToolFailure(
                tool_name=tool_name,
                pattern=classified.pattern,
                category=classified.category,
                lesson=classified.lesson,
                first_seen=now,
                last_seen=now,
            )
            failures.append(record)
            doc["failures"] = [f.to_dict() for f in failures]

        logger.info(f"New {record.category.value} failure pattern for {tool_name}")
        return record

    def list_failures(self, owner_key: str, tool_name: Optional[str] = None) -> list[ToolFailure]:
        """Records sorted by count, then most recently seen."""
        failures = self._load(self.read(owner_key))
        if tool_name:
            failures = [f for f in failures if f.tool_name == tool_name]
        failures.sort(key=lambda f: (f.count, f.last_seen), reverse=True)
        return failures

    def clear(self, owner_key: str) -> int:
        count = len(self.read(owner_key)["failures"])
        self.delete_document(owner_key)
        return count

    def read_tool_failures_for_injection(
        self,
        owner_key: str,
        limit: int = INJECTION_LIMIT,
    ) -> Optional[str]:
        """Render the most frequent failure lessons grouped by tool.

        Returns:
            Markdown block, or None if nothing has been recorded
        """
        top = self.list_failures(owner_key)[:limit]
        if not top:
            return None

        by_tool: dict[str, list[ToolFailure]] = {}
        for failure in top:
            by_tool.setdefault(failure.tool_name, []).append(failure)

        lines = ["## Known Tool Issues (learned from past failures)", ""]
        for tool_name, failures in by_tool.items():
            lines.append(f"### {tool_name}")
            for f in failures:
                since = f.first_seen.strftime("%Y-%m-%d")
                lines.append(f"- **{f.category.value}** ({f.count}× since {since}): {f.lesson}")
            lines.append("")

        return "\n".join(lines).rstrip()
