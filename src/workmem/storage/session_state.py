"""Session key/value store for small pieces of state that must survive compaction."""

import json
import logging
from typing import Any, Callable, Optional

from workmem.errors import CapacityExceededError, NotFoundError, ValidationError
from workmem.memory.types import to_iso, utcnow
from workmem.storage.documents import JsonDocumentStore

logger = logging.getLogger(__name__)

MAX_KEYS = 20
MAX_VALUE_CHARS = 500
MAX_TOTAL_BYTES = 10 * 1024
MAX_KEY_CHARS = 100


class SessionStateStore(JsonDocumentStore):
    """Bounded key/value pairs per owner (20 keys, 500 chars per value, 10KB total)."""

    subdir = "session-state"
    collection = "entries"

    def __init__(self, state_dir, clock: Callable = utcnow):
        super().__init__(state_dir)
        self._clock = clock

    def set(self, owner_key: str, key: str, value: str) -> dict[str, str]:
        """Set a key, replacing any existing value.

        Raises:
            ValidationError: On an empty key or an oversized value
            CapacityExceededError: When the key count or total size limit is hit
        """
        if not key or not key.strip():
            raise ValidationError("Key is required")
        key = key.strip()[:MAX_KEY_CHARS]
        if value is None:
            raise ValidationError("Value is required")
        value = str(value)
        if len(value) > MAX_VALUE_CHARS:
            raise ValidationError(f"Value exceeds {MAX_VALUE_CHARS} characters ({len(value)})")

        with self.transaction(owner_key) as doc:
            entries = [e for e in doc["entries"] if e.get("key") != key]
            if len(entries) >= MAX_KEYS:
                raise CapacityExceededError(f"Session state is limited to {MAX_KEYS} keys")
            entry = {"key": key, "value": value, "updated_at": to_iso(self._clock())}
            entries.append(entry)
            size = len(json.dumps(entries, ensure_ascii=False).encode("utf-8"))
            if size > MAX_TOTAL_BYTES:
                raise CapacityExceededError(
                    f"Session state would exceed {MAX_TOTAL_BYTES} bytes ({size})"
                )
            doc["entries"] = entries
        return entry

    def get(self, owner_key: str, key: str) -> str:
        """Fetch a value.

        Raises:
            NotFoundError: If the key is not set
        """
        for entry in self.read(owner_key)["entries"]:
            if entry.get("key") == key:
                return entry["value"]
        raise NotFoundError(f"Key '{key}' not found")

    def delete(self, owner_key: str, key: str) -> None:
        with self.transaction(owner_key) as doc:
            remaining = [e for e in doc["entries"] if e.get("key") != key]
            if len(remaining) == len(doc["entries"]):
                raise NotFoundError(f"Key '{key}' not found")
            doc["entries"] = remaining

    def list(self, owner_key: str) -> dict[str, Any]:
        """All pairs as a dict, in insertion order."""
        return {e["key"]: e["value"] for e in self.read(owner_key)["entries"]}

    def read_state_for_injection(self, owner_key: str) -> Optional[str]:
        state = self.list(owner_key)
        if not state:
            return None
        lines = ["## Active Session State", ""]
        lines.extend(f"- **{key}**: {value}" for key, value in state.items())
        return "\n".join(lines)
