"""Correction store: durable rules learned from user corrections.

Entries are kept most-recent-first in ``corrections/<owner>.json``. The
store holds at most 500 entries; when it overflows, entries are ranked by
access count (descending) then timestamp (descending) and the tail is
dropped, so corrections that keep getting served survive ahead of stale ones.

Search contract: a correction matches a query only when at least
``min_overlap`` (default 2) distinct keywords are shared between the query
and the correction's rule, text and context. Every served match has its
access count and last-accessed time updated.
"""

import logging
import re
import time
import uuid
from typing import Any, Callable, Optional

from workmem.classify.correction import detect_correction
from workmem.errors import NotFoundError, ValidationError
from workmem.memory.types import CorrectionCategory, CorrectionEntry
from workmem.storage.documents import JsonDocumentStore

logger = logging.getLogger(__name__)

MAX_ENTRIES = 500
MIN_KEYWORD_OVERLAP = 2
SEARCH_LIMIT = 5
MAX_RULE_CHARS = 200
INJECTION_LIMIT = 20
DEFAULT_INJECTION_CHARS = 3000

_WORD = re.compile(r"[a-z0-9_]+(?:'[a-z]+)?")
_LEADING_NOISE = re.compile(
    r"^(?:(?:no|nope|nah|wrong|actually|incorrect)\b[\s,.!:;-]*)+", re.IGNORECASE
)

STOPWORDS = frozenset({
    "the", "and", "for", "that", "this", "with", "you", "your", "are", "was",
    "were", "but", "not", "have", "has", "had", "its", "it's", "that's", "from",
    "they", "them", "then", "than", "what", "when", "where", "which", "who",
    "will", "would", "should", "could", "can", "just", "about", "into", "there",
    "their", "our", "out", "all", "any", "don't", "didn't", "does", "did", "also",
    "actually", "wrong", "please", "like", "use", "using",
})


def extract_keywords(text: str) -> set[str]:
    """Lowercased content words of at least 3 characters, minus stopwords."""
    return {
        w for w in _WORD.findall((text or "").lower())
        if len(w) >= 3 and w not in STOPWORDS
    }


def derive_rule(correction_text: str) -> str:
    """Turn a raw correction into a short imperative-style rule."""
    text = " ".join((correction_text or "").split())
    text = _LEADING_NOISE.sub("", text).strip()
    if not text:
        return ""
    text = text[0].upper() + text[1:]
    return text[:MAX_RULE_CHARS]


def _migrate_legacy_list(raw: Any) -> dict[str, Any]:
    """Version 0 stored a bare list of camelCase entries, oldest first."""
    entries = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict) or "id" not in item:
            continue
        timestamp = float(item.get("timestamp", 0))
        last_accessed = item.get("lastAccessed")
        # Legacy timestamps were epoch milliseconds
        if timestamp > 1e11:
            timestamp /= 1000.0
        if last_accessed and last_accessed > 1e11:
            last_accessed /= 1000.0
        entries.append({
            "id": item["id"],
            "timestamp": timestamp,
            "context": item.get("context", ""),
            "agent_said": item.get("agentSaid", ""),
            "correction_text": item.get("correctionText", ""),
            "rule": item.get("rule", ""),
            "category": item.get("category", "factual"),
            "confidence": max(0.0, min(1.0, float(item.get("confidence", 0.5)))),
            "access_count": int(item.get("accessCount", 0)),
            "last_accessed": last_accessed,
        })
    entries.sort(key=lambda e: e["timestamp"], reverse=True)
    return {"version": 1, "entries": entries}


class CorrectionStore(JsonDocumentStore):
    """Bounded, most-recent-first store of user corrections.

    Args:
        state_dir: State root directory
        max_entries: Capacity (default: 500)
        min_overlap: Keyword overlaps required for a search match (default: 2)
        clock: Callable returning epoch seconds (default: time.time)
    """

    subdir = "corrections"
    collection = "entries"
    migrations = {0: _migrate_legacy_list}

    def __init__(
        self,
        state_dir,
        max_entries: int = MAX_ENTRIES,
        min_overlap: int = MIN_KEYWORD_OVERLAP,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(state_dir)
        self.max_entries = max_entries
        self.min_overlap = min_overlap
        self._clock = clock

    def _load(self, doc: dict[str, Any]) -> list[CorrectionEntry]:
        return [CorrectionEntry.from_dict(e) for e in doc["entries"]]

    def _prune_entries(self, entries: list[CorrectionEntry], max_entries: int) -> list[CorrectionEntry]:
        """Keep the ``max_entries`` most-accessed, most recent entries in their stored order."""
        if len(entries) <= max_entries:
            return entries
        ranked = sorted(entries, key=lambda e: (e.access_count, e.timestamp), reverse=True)
        kept_ids = {e.id for e in ranked[:max_entries]}
        return [e for e in entries if e.id in kept_ids]

    def add_correction(
        self,
        owner_key: str,
        correction_text: str,
        rule: Optional[str] = None,
        category: CorrectionCategory = CorrectionCategory.FACTUAL,
        confidence: float = 0.5,
        context: str = "",
        agent_said: str = "",
    ) -> CorrectionEntry:
        """Insert a correction at the head of the store.

        Args:
            owner_key: Agent id
            correction_text: The user's correction
            rule: Derived rule (defaults to a cleaned-up correction_text)
            category: Correction category
            confidence: Detector confidence (0.0 to 1.0)
            context: Conversation context at the time
            agent_said: The corrected assistant statement

        Returns:
            The stored CorrectionEntry

        Raises:
            ValidationError: If the correction text is empty or confidence out of range
        """
        if not correction_text or not correction_text.strip():
            raise ValidationError("Correction text cannot be empty")
        try:
            entry = CorrectionEntry(
                id=str(uuid.uuid4()),
                timestamp=self._clock(),
                context=context[:500],
                agent_said=agent_said[:500],
                correction_text=correction_text[:1000],
                rule=rule or derive_rule(correction_text),
                category=category,
                confidence=confidence,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        with self.transaction(owner_key) as doc:
            entries = [entry] + self._load(doc)
            before = len(entries)
            entries = self._prune_entries(entries, self.max_entries)
            doc["entries"] = [e.to_dict() for e in entries]

        if before > len(entries):
            logger.debug(f"Pruned {before - len(entries)} corrections for {owner_key}")
        return entry

    def record_correction(
        self,
        owner_key: str,
        user_message: str,
        previous_agent_message: Optional[str] = None,
        context: str = "",
    ) -> Optional[CorrectionEntry]:
        """Run the correction detector and store the result when detected.

        Returns:
            The stored entry, or None if the message is not a correction
        """
        signal = detect_correction(user_message, previous_agent_message)
        if not signal.detected or signal.category is None:
            return None
        return self.add_correction(
            owner_key,
            correction_text=user_message,
            category=signal.category,
            confidence=signal.confidence,
            context=context,
            agent_said=previous_agent_message or "",
        )

    def get_corrections(self, owner_key: str) -> list[CorrectionEntry]:
        """All corrections, most recent first."""
        return self._load(self.read(owner_key))

    def search_corrections(
        self,
        owner_key: str,
        query: str,
        limit: int = SEARCH_LIMIT,
    ) -> list[CorrectionEntry]:
        """Find corrections sharing at least ``min_overlap`` keywords with the query.

        Results are ranked by overlap, then confidence, then recency. Served
        entries get their access count incremented and last-accessed updated.

        Args:
            owner_key: Agent id
            query: Free text to match
            limit: Maximum number of results (default: 5)

        Returns:
            Matching entries, best first
        """
        query_words = extract_keywords(query)
        if len(query_words) < self.min_overlap:
            return []

        with self.transaction(owner_key) as doc:
            entries = self._load(doc)
            scored = []
            for entry in entries:
                haystack = extract_keywords(f"{entry.rule} {entry.correction_text} {entry.context}")
                overlap = len(query_words & haystack)
                if overlap >= self.min_overlap:
                    scored.append((overlap, entry))

            scored.sort(key=lambda s: (s[0], s[1].confidence, s[1].timestamp), reverse=True)
            served = [entry for _, entry in scored[:limit]]

            now = self._clock()
            for entry in served:
                entry.access_count += 1
                entry.last_accessed = now
            doc["entries"] = [e.to_dict() for e in entries]

        return served

    def delete_correction(self, owner_key: str, correction_id: str) -> None:
        """Remove one correction.

        Raises:
            NotFoundError: If no correction has that id
        """
        with self.transaction(owner_key) as doc:
            remaining = [e for e in doc["entries"] if e.get("id") != correction_id]
            if len(remaining) == len(doc["entries"]):
                raise NotFoundError(f"Correction {correction_id} not found")
            doc["entries"] = remaining

    def prune(self, owner_key: str, max_entries: Optional[int] = None) -> int:
        """Enforce capacity explicitly.

        Args:
            owner_key: Agent id
            max_entries: Capacity to enforce (default: the store's capacity; 0 empties it)

        Returns:
            Number of entries removed
        """
        if max_entries is None:
            max_entries = self.max_entries
        if max_entries < 0:
            raise ValidationError("max_entries cannot be negative")
        with self.transaction(owner_key) as doc:
            entries = self._load(doc)
            kept = self._prune_entries(entries, max_entries)
            doc["entries"] = [e.to_dict() for e in kept]
        return len(entries) - len(kept)

    def clear(self, owner_key: str) -> int:
        """Delete every correction for the owner.

        Returns:
            Number of entries removed
        """
        count = len(self.read(owner_key)["entries"])
        self.delete_document(owner_key)
        return count

    def read_corrections_for_injection(
        self,
        owner_key: str,
        query: Optional[str] = None,
        max_chars: int = DEFAULT_INJECTION_CHARS,
    ) -> Optional[str]:
        """Render corrections as a markdown block.

        With a query, only matching corrections are rendered (and their
        access counters updated); otherwise the most-used and most recent
        ones are listed.

        Returns:
            Markdown block, or None if there is nothing to inject
        """
        if query:
            entries = self.search_corrections(owner_key, query)
        else:
            entries = sorted(
                self.get_corrections(owner_key),
                key=lambda e: (e.access_count, e.timestamp),
                reverse=True,
            )[:INJECTION_LIMIT]

        if not entries:
            return None

        lines = [
            "## Learned Corrections",
            "Rules learned from past user corrections. Follow them.",
            "",
        ]
        used = sum(len(line) + 1 for line in lines)
        added = 0
        for entry in entries:
            line = f"- [{entry.category.value}] {entry.rule} (confidence: {entry.confidence:.2f})"
            if entry.context:
                line += f" - {entry.context[:120]}"
            if used + len(line) + 1 > max_chars:
                break
            lines.append(line)
            used += len(line) + 1
            added += 1

        if added == 0:
            return None
        return "\n".join(lines)
