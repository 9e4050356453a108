"""Fact extraction run right before compaction destroys messages.

Pure heuristic pattern matching, no model calls, so it can run inline with
compaction. Each batch is written to its own markdown file under
``memory/compaction-facts/`` for the external indexer.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from workmem.extraction.markdown import memory_dir, write_unique_file
from workmem.memory.messages import Message
from workmem.memory.types import ExtractedFact, FactCategory, FactExtractionResult, utcnow

logger = logging.getLogger(__name__)

MIN_MESSAGE_CHARS = 15
MIN_FACT_CHARS = 8
MAX_FACT_CHARS = 500

# =============================================================================
# Pattern families
# =============================================================================

_I = re.IGNORECASE

DECISION_PATTERNS = [
    re.compile(r"(?:let'?s|we(?:'ll| will| should)|I(?:'ll| will)|going to|decided to|decision:?)\s+(.{10,200})", _I),
    re.compile(r"(?:the plan is|approach:?|strategy:?)\s+(.{10,200})", _I),
    re.compile(r"(?:agreed|confirmed|approved|settled on)\s+(.{10,200})", _I),
]

TASK_PATTERNS = [
    re.compile(r"(?:TODO|TASK|ACTION):?\s+(.{10,200})", _I),
    re.compile(r"(?:need to|must|should|have to|going to)\s+(.{10,200})", _I),
    re.compile(r"(?:done|completed|finished|shipped|deployed|fixed|resolved):?\s+(.{10,200})", _I),
    re.compile(r"(?:created|set up|configured|installed|built|implemented)\s+(.{10,200})", _I),
]

FACT_PATTERNS = [
    re.compile(r"(?:the (?:password|key|token|secret|api.?key|credential) (?:is|for))\s+(.{5,200})", _I),
    re.compile(r"(?:IP|address|port|host|endpoint|URL|path):?\s*(\S{5,200})", _I),
    re.compile(r"(?:version|v)\s*(\d+\.\d+(?:\.\d+)?(?:[-+].+)?)", _I),
    re.compile(r"(?:account|email|username|login):?\s*(\S{5,200})", _I),
    re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(?::\d+)?)"),
]

CORRECTION_PATTERNS = [
    re.compile(r"(?:no,? (?:that'?s|it'?s)|actually|wrong|incorrect|not right|don'?t)\s+(.{10,200})", _I),
    re.compile(r"(?:I (?:meant|mean)|what I (?:said|want)|correct(?:ion)?:?)\s+(.{10,200})", _I),
    re.compile(r"(?:stop|never|always|remember to|don'?t forget)\s+(.{10,200})", _I),
]

PREFERENCE_PATTERNS = [
    re.compile(r"(?:I (?:prefer|like|want|need)|(?:please|always) (?:use|do|keep))\s+(.{10,200})", _I),
    re.compile(r"(?:from now on|going forward|in (?:the )?future)\s+(.{10,200})", _I),
]

ERROR_PATTERNS = [
    re.compile(r"(?:error|failed|failure|exception|crashed|broke|broken):?\s+(.{10,300})", _I),
    re.compile(r"(?:429|rate.?limit|quota|exceeded|timeout|timed? out)\s*(.{0,200})", _I),
    re.compile(r"(?:fixed by|solution was|workaround:?|resolved by)\s+(.{10,200})", _I),
]

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]{10,500}")

CATEGORY_HEADINGS = {
    FactCategory.DECISION: "## Decisions",
    FactCategory.CORRECTION: "## Corrections & Rules",
    FactCategory.PREFERENCE: "## Preferences",
    FactCategory.TASK: "## Tasks & Actions",
    FactCategory.FACT: "## Key Facts",
    FactCategory.ERROR_PATTERN: "## Error Patterns",
    FactCategory.URL: "## URLs Referenced",
}

# Order matters: rendering follows dict order
CATEGORY_ORDER = list(CATEGORY_HEADINGS)


# =============================================================================
# Extraction
# =============================================================================

def _match_patterns(
    text: str,
    patterns: list[re.Pattern],
    category: FactCategory,
    source: str,
    position: float,
) -> list[ExtractedFact]:
    facts = []
    seen: set[str] = set()
    for pattern in patterns:
        for match in pattern.finditer(text):
            content = (match.group(1) if pattern.groups else match.group(0)).strip()
            if not MIN_FACT_CHARS <= len(content) <= MAX_FACT_CHARS:
                continue
            key = content.lower()[:80]
            if key in seen:
                continue
            seen.add(key)
            facts.append(ExtractedFact(category, content, source, position))
    return facts


def _match_urls(text: str, source: str, position: float) -> list[ExtractedFact]:
    facts = []
    seen: set[str] = set()
    for match in URL_PATTERN.finditer(text):
        url = match.group(0)
        key = url.lower()
        if key in seen:
            continue
        seen.add(key)
        facts.append(ExtractedFact(FactCategory.URL, url, source, position))
    return facts


def extract_facts(messages: list[Message]) -> list[ExtractedFact]:
    """Extract categorized facts from a transcript.

    Decisions, corrections and preferences come only from user and assistant
    messages; error patterns only from tool and assistant messages; tasks,
    facts and URLs from any role. The batch is deduplicated by category plus
    the first 100 lowercased characters of the content.

    Args:
        messages: Typed transcript, oldest first

    Returns:
        Facts in discovery order
    """
    total = len(messages) or 1
    found: list[ExtractedFact] = []

    for index, message in enumerate(messages):
        text = message.text
        if not text or len(text) < MIN_MESSAGE_CHARS:
            continue
        source = message.role
        position = index / total

        if source in ("user", "assistant"):
            found.extend(_match_patterns(text, DECISION_PATTERNS, FactCategory.DECISION, source, position))
            found.extend(_match_patterns(text, CORRECTION_PATTERNS, FactCategory.CORRECTION, source, position))
            found.extend(_match_patterns(text, PREFERENCE_PATTERNS, FactCategory.PREFERENCE, source, position))

        found.extend(_match_patterns(text, TASK_PATTERNS, FactCategory.TASK, source, position))
        found.extend(_match_patterns(text, FACT_PATTERNS, FactCategory.FACT, source, position))
        found.extend(_match_urls(text, source, position))

        if source in ("tool", "assistant"):
            found.extend(_match_patterns(text, ERROR_PATTERNS, FactCategory.ERROR_PATTERN, source, position))

    deduped: dict[str, ExtractedFact] = {}
    for fact in found:
        key = f"{fact.category.value}:{fact.content.lower()[:100]}"
        deduped.setdefault(key, fact)
    return list(deduped.values())


def format_facts_markdown(
    facts: list[ExtractedFact],
    message_count: int,
    extracted_at: datetime,
    session_key: Optional[str] = None,
) -> str:
    """Render one extraction batch as markdown grouped by category."""
    lines = [
        f"# Compaction Facts: {extracted_at.strftime('%Y-%m-%d')}",
        "",
        f"Extracted at: {extracted_at.isoformat()}",
    ]
    if session_key:
        lines.append(f"Session: {session_key}")
    lines.extend([
        f"Messages processed: {message_count}",
        f"Facts extracted: {len(facts)}",
        "",
    ])

    for category in CATEGORY_ORDER:
        group = [f for f in facts if f.category == category]
        if not group:
            continue
        lines.append(CATEGORY_HEADINGS[category])
        lines.append("")
        lines.extend(f"- {fact.content}" for fact in group)
        lines.append("")

    return "\n".join(lines)


def _file_stem(extracted_at: datetime, session_key: Optional[str]) -> str:
    stem = extracted_at.strftime("%Y-%m-%dT%H-%M-%S")
    if session_key:
        stem += "-" + re.sub(r"[^a-zA-Z0-9-]", "_", session_key)[:30]
    return stem


def extract_and_persist_compaction_facts(
    messages: Iterable[Message],
    workspace_dir: Path,
    session_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FactExtractionResult:
    """Extract facts and write them to a new batch file.

    Never raises: failures are logged and reported as an empty result.

    Args:
        messages: The transcript about to be compacted
        workspace_dir: Workspace root (memory/compaction-facts/ is created inside)
        session_key: Session identifier, used in the file name
        now: Extraction time (default: current UTC time)

    Returns:
        FactExtractionResult with the number of facts and the file written
    """
    try:
        messages = list(messages)
        facts = extract_facts(messages)
        if not facts:
            logger.debug("No compaction facts extracted, skipping write")
            return FactExtractionResult()

        extracted_at = now or utcnow()
        markdown = format_facts_markdown(facts, len(messages), extracted_at, session_key)
        directory = memory_dir(workspace_dir, "compaction-facts")
        path = write_unique_file(directory, _file_stem(extracted_at, session_key), markdown)

        logger.info(f"Extracted {len(facts)} facts from {len(messages)} messages -> {path.name}")
        return FactExtractionResult(facts_count=len(facts), file_path=str(path), facts=facts)
    except Exception as e:
        logger.warning(f"Compaction fact extraction failed: {e}")
        return FactExtractionResult()
