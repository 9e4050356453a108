"""Context classifier: decide which context blocks a message needs.

Instead of loading every injection for every message, the incoming message
is mapped to a set of topic tags through an ordered keyword table. Every
matching rule contributes its tags. Missing context is worse than extra
context, so unknown intents fall back to a broad tag set.
"""

import re
from dataclasses import dataclass, field
from enum import Enum


class ContextTag(Enum):
    TOOLS = "tools"
    MEMORY = "memory"
    TASKS = "tasks"
    CORRECTIONS = "corrections"
    TOOL_FAILURES = "tool_failures"
    SUBAGENTS = "subagents"
    PROACTIVE = "proactive"
    EPISODES = "episodes"
    PROCEDURES = "procedures"
    CHAT = "chat"
    TECHNICAL = "technical"
    RESEARCH = "research"
    COMMUNICATION = "communication"
    FILES = "files"
    SCHEDULING = "scheduling"
    SYSTEM = "system"


T = ContextTag


def _rule(pattern: str, *tags: ContextTag) -> tuple[re.Pattern, tuple[ContextTag, ...]]:
    return re.compile(pattern, re.IGNORECASE), tags


PATTERN_RULES: list[tuple[re.Pattern, tuple[ContextTag, ...]]] = [
    # Tool-specific
    _rule(r"\b(?:camera|snapshot|motion|ptz)\b", T.TOOLS, T.TECHNICAL),
    _rule(r"\b(?:tts|voice|speak|audio)\b", T.TOOLS, T.TECHNICAL),
    _rule(r"\b(?:browser|playwright|selenium)\b", T.TOOLS, T.TECHNICAL),
    _rule(r"\b(?:google.*drive|drive.*letter|mount)\b", T.TOOLS, T.FILES),
    _rule(r"\b(?:excel|xlsx|csv|spreadsheet|pandas|openpyxl)\b", T.TOOLS, T.FILES),
    _rule(r"\b(?:pdf|docx?|word|powerpoint|pptx)\b", T.TOOLS, T.FILES),
    _rule(r"\b(?:conda|virtualenv|venv|pip install|python.*env)\b", T.TOOLS, T.TECHNICAL),
    _rule(r"\b(?:pm2|service|daemon|systemd|process.*manager)\b", T.TOOLS, T.SYSTEM),

    # Task/work
    _rule(r"\b(?:task|todo|backlog|priority|deadline|goal)\b", T.TASKS),
    _rule(r"\b(?:what.*(?:working|doing)|status|progress|update)\b", T.TASKS, T.SUBAGENTS, T.EPISODES),
    _rule(r"\b(?:remember|recall|last.*time|yesterday|earlier|before)\b", T.MEMORY, T.EPISODES),
    _rule(r"\b(?:how.*(?:did|do)|procedure|steps|workflow)\b", T.PROCEDURES, T.EPISODES),

    # Research/search
    _rule(r"\b(?:search|research|find|look.*up|google|browse)\b", T.RESEARCH, T.TOOL_FAILURES),
    _rule(r"\b(?:lead|prospect|brand|competitor|market)\b", T.RESEARCH, T.MEMORY),
    _rule(r"\b(?:web_search|web_fetch|scrape|crawl)\b", T.RESEARCH, T.TOOLS, T.TOOL_FAILURES),

    # Communication
    _rule(r"\b(?:email|gmail|draft|send|outreach|message)\b", T.COMMUNICATION, T.TOOLS),
    _rule(r"\b(?:whatsapp|telegram|discord|signal|slack)\b", T.COMMUNICATION),

    # File operations
    _rule(r"\b(?:file|folder|directory|read|write|edit|create|delete|rename)\b", T.FILES),
    _rule(r"\b(?:git|commit|push|pull|branch|merge)\b", T.FILES, T.TECHNICAL),

    # Scheduling
    _rule(r"\b(?:cron|schedule|reminder|alarm|timer|heartbeat)\b", T.SCHEDULING, T.SYSTEM),
    _rule(r"\b(?:calendar|event|meeting|appointment)\b", T.SCHEDULING, T.TOOLS),

    # System
    _rule(r"\b(?:gateway|config|restart|update|install|npm)\b", T.SYSTEM, T.TOOLS),
    _rule(r"\b(?:model|llm|claude|openrouter|ollama)\b", T.SYSTEM),
    _rule(r"\b(?:sub.*agent|spawn|worker|parallel)\b", T.SUBAGENTS),
    _rule(r"\b(?:alert|trigger|stale|stuck|overdue)\b", T.PROACTIVE, T.TASKS),

    # Technical
    _rule(r"\b(?:code|script|function|debug|error|fix|build|compile)\b", T.TECHNICAL, T.TOOL_FAILURES),
    _rule(r"\b(?:api|endpoint|request|response|json|http)\b", T.TECHNICAL, T.TOOLS),

    # Corrections/learning
    _rule(r"\b(?:wrong|incorrect|no,?\s*(?:that|it)|actually|don'?t)\b", T.CORRECTIONS),
    _rule(r"\b(?:always|never|remember|from now on|going forward)\b", T.CORRECTIONS, T.MEMORY),
]

CHAT_PATTERNS = [
    re.compile(r"^(?:hi|hey|hello|yo|sup|morning|evening|night|gm|gn)\b", re.IGNORECASE),
    re.compile(
        r"^(?:ok|okay|sure|yeah|yep|nope|no|yes|thanks|thank you|cool|nice|great|good|perfect|awesome)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^(?:how are you|what'?s up|how'?s it going)\b", re.IGNORECASE),
    re.compile("^(?:lol|haha|\U0001F602|\U0001F44D|❤️|\U0001F64C)"),
]

FALLBACK_TAGS = frozenset({T.MEMORY, T.TASKS, T.CORRECTIONS, T.TOOL_FAILURES})

# Injection block names skipped for pure chat
EXCLUDABLE_FOR_CHAT = ("TASK_LEDGER", "TOOL_FAILURES", "SUBAGENT_STATUS", "PROACTIVE_ALERTS")


@dataclass
class ClassificationResult:
    """Tags selected for a message.

    Attributes:
        tags: Union of tags from all matching rules
        chat_probability: Confidence that the message is simple chat (0.0 to 1.0)
        minimal_context: Whether heavy injections can be skipped
    """
    tags: frozenset[ContextTag] = field(default_factory=frozenset)
    chat_probability: float = 0.0
    minimal_context: bool = False

    def has(self, tag: ContextTag) -> bool:
        return tag in self.tags


def _is_chat(text: str) -> bool:
    return any(p.search(text) for p in CHAT_PATTERNS)


def classify_message(message: str) -> ClassificationResult:
    """Classify an incoming message into context tags.

    Args:
        message: The incoming user message

    Returns:
        ClassificationResult
    """
    text = (message or "").strip()

    if len(text) < 10 and _is_chat(text):
        return ClassificationResult(tags=frozenset({T.CHAT}), chat_probability=0.9, minimal_context=True)

    tags: set[ContextTag] = set()
    for pattern, rule_tags in PATTERN_RULES:
        if pattern.search(text):
            tags.update(rule_tags)

    if not tags:
        if _is_chat(text):
            return ClassificationResult(tags=frozenset({T.CHAT}), chat_probability=0.8, minimal_context=True)
        return ClassificationResult(tags=FALLBACK_TAGS, chat_probability=0.2, minimal_context=False)

    tags.add(T.CORRECTIONS)
    if T.RESEARCH in tags or T.TECHNICAL in tags:
        tags.update((T.MEMORY, T.PROCEDURES))

    return ClassificationResult(tags=frozenset(tags), chat_probability=0.1, minimal_context=False)


def resolve_context_exclusions(result: ClassificationResult) -> set[str]:
    """Injection block names that can be skipped for this classification.

    Conservative: only pure chat drops blocks. Corrections are never excluded.
    """
    if result.minimal_context:
        return set(EXCLUDABLE_FOR_CHAT)
    return set()
