"""Unit tests for the scratch pad."""

import pytest

from workmem.storage.documents import sanitize_owner_key
from workmem.storage.scratch_pad import ScratchPad


class FakeClock:
    def __init__(self):
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def pad(tmp_path):
    return ScratchPad(tmp_path / "state", workspace_dir=tmp_path / "workspace", clock=FakeClock())


def output(i: int) -> str:
    return f"Search result {i}: " + "lorem ipsum " * 5


class TestCapture:
    """Tests for capture eligibility and FIFO behavior."""

    def test_captures_allow_listed_tool(self, pad):
        entry = pad.capture("s1", "web_search", output(1), context="billing api docs")

        assert entry is not None
        assert entry.context == "billing api docs"
        assert len(pad.get_entries("s1")) == 1

    def test_context_defaults_to_tool(self, pad):
        entry = pad.capture("s1", "web_fetch", output(1))
        assert entry.context == "web_fetch"

    def test_skips_other_tools(self, pad):
        assert pad.capture("s1", "write_file", output(1)) is None
        assert pad.get_entries("s1") == []

    def test_skips_errors(self, pad):
        assert pad.capture("s1", "web_search", output(1), is_error=True) is None

    def test_skips_tiny_outputs(self, pad):
        assert pad.capture("s1", "web_search", "  no results  ") is None

    def test_truncates_output(self, pad):
        entry = pad.capture("s1", "exec", "x" * 5000)
        assert len(entry.output) == 2000

    def test_21st_entry_drops_oldest(self, pad):
        for i in range(21):
            pad.capture("s1", "web_search", output(i))

        entries = pad.get_entries("s1")
        assert len(entries) == 20
        assert entries[0].output.startswith("Search result 1:")
        assert entries[-1].output.startswith("Search result 20:")

    def test_markdown_mirror(self, pad, tmp_path):
        pad.capture("session:42", "web_fetch", output(1), context="https://example.com/docs")

        mirror = tmp_path / "workspace" / "memory" / "scratch" / f"{sanitize_owner_key('session:42')}.md"
        text = mirror.read_text()
        assert text.startswith("# Scratch Pad (session:42)")
        assert "## web_fetch: https://example.com/docs" in text


class TestCompactionAndInjection:
    """Tests for the compaction counter and injection gating."""

    def test_not_injected_before_compaction(self, pad):
        pad.capture("s1", "web_search", output(1))
        assert pad.read_scratch_for_injection("s1") is None

    def test_injected_after_compaction_newest_first(self, pad):
        pad.capture("s1", "web_search", output(1), context="first query")
        pad.capture("s1", "web_search", output(2), context="second query")
        assert pad.record_compaction("s1") == 1

        block = pad.read_scratch_for_injection("s1")

        assert block.startswith("## Working Memory (preserved across compaction)")
        assert block.index("### web_search: second query") < block.index("### web_search: first query")

    def test_explicit_compaction_count(self, pad):
        pad.capture("s1", "web_search", output(1))
        assert pad.read_scratch_for_injection("s1", compaction_count=2) is not None
        assert pad.read_scratch_for_injection("s1", compaction_count=0) is None

    def test_char_budget(self, pad):
        for i in range(5):
            pad.capture("s1", "exec", f"run {i} " + "y" * 1500)
        pad.record_compaction("s1")

        block = pad.read_scratch_for_injection("s1", max_chars=3500)

        assert block.count("### exec") == 2
        assert "run 4" in block

    def test_counter_increments(self, pad):
        pad.record_compaction("s1")
        pad.record_compaction("s1")
        assert pad.compaction_count("s1") == 2

    def test_clear_removes_document_and_mirror(self, pad, tmp_path):
        pad.capture("s1", "web_search", output(1))
        mirror = tmp_path / "workspace" / "memory" / "scratch" / "s1.md"
        assert mirror.exists()

        assert pad.clear_scratch("s1") is True
        assert pad.get_entries("s1") == []
        assert not mirror.exists()
