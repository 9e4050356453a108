"""Extraction pipelines run at terminal lifecycle events.

- compaction_facts: facts pulled from a transcript right before compaction
- episodes: a work log entry per finished run
- procedures: reusable tool-call sequences from successful runs
"""

from workmem.extraction.compaction_facts import extract_and_persist_compaction_facts, extract_facts
from workmem.extraction.episodes import build_episode, log_episode
from workmem.extraction.procedures import build_procedure, log_procedure

__all__ = [
    "build_episode",
    "build_procedure",
    "extract_and_persist_compaction_facts",
    "extract_facts",
    "log_episode",
    "log_procedure",
]
