"""Unit tests for the correction store."""

import json

import pytest

from workmem.errors import NotFoundError, ValidationError
from workmem.memory.types import CorrectionCategory, CorrectionEntry
from workmem.storage.corrections import CorrectionStore, derive_rule, extract_keywords


class FakeClock:
    """Monotonic epoch clock advancing one second per call."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return CorrectionStore(tmp_path, clock=clock)


def make_entry(index: int, access_count: int = 0) -> dict:
    return CorrectionEntry(
        id=f"c-{index}",
        timestamp=1_600_000_000.0 + index,
        context="",
        agent_said="",
        correction_text=f"correction number {index}",
        rule=f"Rule {index}",
        category=CorrectionCategory.FACTUAL,
        confidence=0.5,
        access_count=access_count,
    ).to_dict()


class TestHelpers:
    """Tests for keyword extraction and rule derivation."""

    def test_extract_keywords_drops_stopwords_and_short_words(self):
        words = extract_keywords("Use the staging server for deploys, not prod")
        assert words == {"staging", "server", "deploys", "prod"}

    def test_derive_rule_strips_leading_noise(self):
        assert derive_rule("No, actually the port is 8443") == "The port is 8443"

    def test_derive_rule_truncates(self):
        assert len(derive_rule("x" * 500)) == 200


class TestAddCorrection:
    """Tests for add_correction and capacity pruning."""

    def test_add_inserts_at_head(self, store):
        first = store.add_correction("main", "The deploy target is staging")
        second = store.add_correction("main", "Reports go to the finance channel")

        entries = store.get_corrections("main")
        assert [e.id for e in entries] == [second.id, first.id]
        assert entries[0].rule == "Reports go to the finance channel"

    def test_add_rejects_empty_text(self, store):
        with pytest.raises(ValidationError):
            store.add_correction("main", "   ")

    def test_add_rejects_bad_confidence(self, store):
        with pytest.raises(ValidationError):
            store.add_correction("main", "Something valid", confidence=1.5)

    def test_501st_entry_prunes_to_capacity(self, store):
        """Overflow drops the least-accessed, oldest entry; frequently served ones survive."""
        entries = [make_entry(i) for i in range(500)]
        # The oldest entry has been served often
        entries[0]["access_count"] = 50
        store.write("main", {"entries": entries})

        store.add_correction("main", "The newest correction text")

        kept = store.get_corrections("main")
        kept_ids = {e.id for e in kept}
        assert len(kept) == 500
        assert "c-0" in kept_ids
        assert "c-1" not in kept_ids
        assert kept[0].correction_text == "The newest correction text"

    def test_prune_keeps_order(self, store):
        for i in range(5):
            store.add_correction("main", f"Correction text {i}")

        removed = store.prune("main", max_entries=3)

        kept = store.get_corrections("main")
        assert removed == 2
        assert [e.correction_text for e in kept] == [
            "Correction text 4", "Correction text 3", "Correction text 2",
        ]

    def test_prune_to_zero_empties(self, store):
        for i in range(3):
            store.add_correction("main", f"Correction text {i}")

        assert store.prune("main", max_entries=0) == 3
        assert store.get_corrections("main") == []

    def test_prune_default_capacity(self, store):
        store.add_correction("main", "Correction text only")

        assert store.prune("main") == 0
        assert len(store.get_corrections("main")) == 1

    def test_prune_negative_rejected(self, store):
        with pytest.raises(ValidationError):
            store.prune("main", max_entries=-1)


class TestRecordCorrection:
    """Tests for record_correction (detector + store)."""

    def test_detected_correction_is_stored(self, store):
        entry = store.record_correction(
            "main",
            "No, that's wrong, it's actually the staging server",
            previous_agent_message="Deploying to production now",
        )

        assert entry is not None
        assert entry.category == CorrectionCategory.FACTUAL
        assert entry.agent_said == "Deploying to production now"
        assert entry.rule.startswith("That's wrong")
        assert len(store.get_corrections("main")) == 1

    def test_non_correction_is_ignored(self, store):
        assert store.record_correction("main", "Great, thanks for the help") is None
        assert store.get_corrections("main") == []


class TestSearchCorrections:
    """Tests for search_corrections."""

    def test_requires_two_keyword_overlaps(self, store):
        store.add_correction("main", "Deploy the billing service to staging first")

        assert store.search_corrections("main", "billing dashboard") == []
        results = store.search_corrections("main", "how do we deploy billing")
        assert len(results) == 1

    def test_ranked_by_overlap(self, store):
        weak = store.add_correction("main", "Billing reports are monthly")
        strong = store.add_correction("main", "Billing reports go to finance monthly")

        results = store.search_corrections("main", "send the monthly billing reports to finance")

        assert [r.id for r in results] == [strong.id, weak.id]

    def test_search_updates_access_count(self, store, clock):
        entry = store.add_correction("main", "Deploy the billing service to staging first")

        store.search_corrections("main", "deploy billing")
        store.search_corrections("main", "deploy billing")

        stored = store.get_corrections("main")[0]
        assert stored.id == entry.id
        assert stored.access_count == 2
        assert stored.last_accessed == clock.now

    def test_query_with_too_few_keywords(self, store):
        store.add_correction("main", "Deploy the billing service to staging first")
        assert store.search_corrections("main", "billing") == []

    def test_limit(self, store):
        for i in range(8):
            store.add_correction("main", f"Staging deploys need approval step {i}")
        assert len(store.search_corrections("main", "staging deploys", limit=3)) == 3


class TestDeleteAndClear:
    def test_delete(self, store):
        entry = store.add_correction("main", "Use metric units in reports")
        store.delete_correction("main", entry.id)
        assert store.get_corrections("main") == []

    def test_delete_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.delete_correction("main", "missing")

    def test_clear(self, store):
        store.add_correction("main", "Use metric units in reports")
        store.add_correction("main", "Sign emails with the team name")

        assert store.clear("main") == 2
        assert store.get_corrections("main") == []

    def test_owners_are_isolated(self, store):
        store.add_correction("alpha", "Use metric units in reports")
        assert store.get_corrections("beta") == []


class TestLegacyMigration:
    """Version 0 documents were bare camelCase lists with millisecond timestamps."""

    def test_legacy_list_migrated(self, store):
        path = store.path_for("main")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps([
            {
                "id": "old-1",
                "timestamp": 1_600_000_000_000,
                "correctionText": "Use the EU region",
                "agentSaid": "Using us-east-1",
                "rule": "Use the EU region",
                "category": "preference",
                "confidence": 0.8,
                "accessCount": 3,
            },
            {
                "id": "old-2",
                "timestamp": 1_650_000_000_000,
                "correctionText": "Invoices are due on the 1st",
                "rule": "Invoices are due on the 1st",
                "category": "factual",
                "confidence": 0.6,
            },
        ]))

        entries = store.get_corrections("main")

        assert [e.id for e in entries] == ["old-2", "old-1"]
        assert entries[1].timestamp == pytest.approx(1_600_000_000.0)
        assert entries[1].agent_said == "Using us-east-1"
        assert entries[1].access_count == 3
        assert entries[1].category == CorrectionCategory.PREFERENCE


class TestInjection:
    """Tests for read_corrections_for_injection."""

    def test_empty_returns_none(self, store):
        assert store.read_corrections_for_injection("main") is None

    def test_renders_entries(self, store):
        store.add_correction(
            "main",
            "Always deploy to staging first",
            category=CorrectionCategory.PROCEDURAL,
            confidence=0.85,
            context="release checklist",
        )

        block = store.read_corrections_for_injection("main")

        assert block.startswith("## Learned Corrections")
        assert "- [procedural] Always deploy to staging first (confidence: 0.85) - release checklist" in block

    def test_query_filters(self, store):
        store.add_correction("main", "Always deploy billing to staging first")
        store.add_correction("main", "Sign emails with the team name")

        block = store.read_corrections_for_injection("main", query="deploy billing today")

        assert "staging" in block
        assert "Sign emails" not in block

    def test_char_budget(self, store):
        for i in range(10):
            store.add_correction("main", f"Rule number {i} " + "x" * 100)

        block = store.read_corrections_for_injection("main", max_chars=400)

        assert len(block) <= 400
        assert block.count("\n- ") >= 1
