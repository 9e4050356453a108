"""JSON document storage shared by all bounded stores.

Each store keeps one JSON document per owner key under its own
subdirectory of the state root, e.g. ``task-ledger/<owner>.json``. A
document is loaded fully, mutated in memory and rewritten atomically.

Key principles:
- Every document carries an explicit ``version``; older versions are
  migrated on read, unknown newer versions are rejected
- Writes go to a temp file in the same directory and are renamed over the
  target, so readers never observe a half-written document
- Read-modify-write cycles for one file are serialized by an in-process
  lock; one process per owner key is a deployment requirement
- A document that is not valid JSON is treated as empty and replaced on the
  next write
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from workmem.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

MAX_OWNER_KEY_CHARS = 60
KEY_DIGEST_CHARS = 8
_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

class _PathLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


# Entries live only while some thread holds or waits on the path.
_locks: dict[str, _PathLock] = {}
_locks_guard = threading.Lock()


@contextmanager
def _locked(path: Path) -> Iterator[None]:
    key = str(path)
    with _locks_guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = _PathLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _locks[key]


def sanitize_owner_key(owner_key: str) -> str:
    """Make an owner key safe for use as a file name.

    Args:
        owner_key: Agent or session identifier

    Returns:
        Key restricted to [A-Za-z0-9_-], at most 60 characters. A key that
        had to be rewritten or shortened gets a short hash suffix of the
        original, so "a/b" and "a_b" map to different files.

    Raises:
        ValidationError: If the key is empty
    """
    if not owner_key or not owner_key.strip():
        raise ValidationError("Owner key cannot be empty")
    key = owner_key.strip()
    safe = _UNSAFE_KEY_CHARS.sub("_", key)
    if safe == key and len(key) <= MAX_OWNER_KEY_CHARS:
        return key
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:KEY_DIGEST_CHARS]
    return f"{safe[:MAX_OWNER_KEY_CHARS - KEY_DIGEST_CHARS - 1]}-{digest}"


def atomic_write_json(path: Path, data: Any, indent: Optional[int] = 2) -> None:
    """Serialize data and atomically replace the file at path.

    Raises:
        PersistenceError: If the directory or file cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e


class JsonDocumentStore:
    """Base class for stores backed by one JSON document per owner key.

    Subclasses set ``subdir`` and ``collection`` and may register
    ``migrations`` mapping an old version to a function that upgrades the
    raw document by one version. Version 0 denotes a legacy document with
    no version field.

    Args:
        state_dir: Root directory holding the per-store subdirectories

    Example:
        >>> class NotesStore(JsonDocumentStore):
        ...     subdir = "notes"
        ...     collection = "notes"
        >>> store = NotesStore(Path("/tmp/state"))
        >>> with store.transaction("agent-1") as doc:
        ...     doc["notes"].append({"text": "hello"})
    """

    subdir: str = ""
    collection: str = "entries"
    version: int = 1
    migrations: dict[int, Callable[[Any], dict[str, Any]]] = {}

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def path_for(self, owner_key: str) -> Path:
        """Resolve the backing file for an owner key."""
        return self.state_dir / self.subdir / f"{sanitize_owner_key(owner_key)}.json"

    def empty_document(self) -> dict[str, Any]:
        return {"version": self.version, self.collection: []}

    def _upgrade(self, raw: Any, path: Path) -> dict[str, Any]:
        if isinstance(raw, dict):
            doc_version = raw.get("version", 0)
        else:
            doc_version = 0

        if not isinstance(doc_version, int) or doc_version > self.version:
            raise PersistenceError(
                f"Unsupported document version {doc_version!r} in {path} "
                f"(expected <= {self.version})"
            )

        while doc_version < self.version:
            migrate = self.migrations.get(doc_version)
            if migrate is None:
                raise PersistenceError(
                    f"No migration from version {doc_version} for {path}"
                )
            raw = migrate(raw)
            doc_version = raw.get("version", doc_version + 1)
            logger.info(f"Migrated {path.name} to version {doc_version}")

        if not isinstance(raw.get(self.collection, []), list):
            raise PersistenceError(f"Malformed '{self.collection}' in {path}")
        raw.setdefault(self.collection, [])
        return raw

    def read(self, owner_key: str) -> dict[str, Any]:
        """Load the owner's document, migrating it if needed.

        Returns:
            The document dict (an empty document if none exists)

        Raises:
            PersistenceError: On I/O failure or an unsupported version
        """
        path = self.path_for(owner_key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self.empty_document()
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt document {path} ({e}); starting fresh")
            return self.empty_document()

        return self._upgrade(raw, path)

    def write(self, owner_key: str, doc: dict[str, Any]) -> None:
        """Persist the owner's document atomically."""
        doc["version"] = self.version
        atomic_write_json(self.path_for(owner_key), doc)

    @contextmanager
    def transaction(self, owner_key: str) -> Iterator[dict[str, Any]]:
        """Read-modify-write the owner's document under its lock.

        The document is written back only if the block exits without raising.
        """
        path = self.path_for(owner_key)
        with _locked(path):
            doc = self.read(owner_key)
            yield doc
            self.write(owner_key, doc)

    def delete_document(self, owner_key: str) -> bool:
        """Remove the owner's document.

        Returns:
            True if a file was removed
        """
        path = self.path_for(owner_key)
        with _locked(path):
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False
            except OSError as e:
                raise PersistenceError(f"Failed to delete {path}: {e}") from e
