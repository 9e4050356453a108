"""Adaptive auto-recall depth classifier.

Maps a prompt to a retrieval depth so the recall layer can tune result
count, minimum similarity score and context size. Rules are evaluated in
order and the first match wins.
"""

import re
from dataclasses import dataclass
from enum import Enum


class RecallDepth(Enum):
    NONE = "none"
    SHALLOW = "shallow"
    NORMAL = "normal"
    DEEP = "deep"


@dataclass(frozen=True)
class RecallParams:
    max_results: int
    min_score: float
    max_chars: int


RECALL_PARAMS: dict[RecallDepth, RecallParams] = {
    RecallDepth.NONE: RecallParams(max_results=0, min_score=0.0, max_chars=0),
    RecallDepth.SHALLOW: RecallParams(max_results=3, min_score=0.4, max_chars=2000),
    RecallDepth.NORMAL: RecallParams(max_results=5, min_score=0.3, max_chars=4000),
    RecallDepth.DEEP: RecallParams(max_results=10, min_score=0.2, max_chars=8000),
}

_GREETINGS = re.compile(
    r"^(hi|hello|hey|sup|yo|gm|good\s*(morning|afternoon|evening|night)|thanks|thank you"
    r"|ok|okay|yes|no|sure|cool|nice|\U0001F44D|❤️|\U0001F60A)\s*[!.?]*$",
    re.IGNORECASE,
)

_MEMORY_TRIGGERS = re.compile(
    r"\b(remember|recall|last\s+time|last\s+week|previously|earlier|before|history"
    r"|what\s+happened|when\s+did|did\s+(i|we|you)|how\s+did|what\s+was|decided)\b",
    re.IGNORECASE,
)

_CONTEXT_TRIGGERS = re.compile(
    r"\b(who\s+is|tell\s+me\s+about|update\s+on|status\s+of|progress"
    r"|what('s|\s+is)\s+the\s+(plan|status|update))\b",
    re.IGNORECASE,
)

_TASK_TRIGGERS = re.compile(
    r"^(do|run|check|fix|update|create|delete|send|write|read|open|close|start|stop"
    r"|restart|install|build)\b",
    re.IGNORECASE,
)

# (depth, predicate) evaluated top to bottom
_RULES = [
    (RecallDepth.NONE, lambda text, words: bool(_GREETINGS.match(text)) or words <= 2),
    (RecallDepth.DEEP, lambda text, words: bool(_MEMORY_TRIGGERS.search(text))),
    (RecallDepth.DEEP, lambda text, words: bool(_CONTEXT_TRIGGERS.search(text))),
    (RecallDepth.SHALLOW, lambda text, words: bool(_TASK_TRIGGERS.match(text)) and words < 10),
]


def classify_recall_depth(prompt: str) -> RecallDepth:
    """Classify how much memory a prompt needs.

    Args:
        prompt: The incoming user prompt

    Returns:
        RecallDepth (NONE, SHALLOW, NORMAL or DEEP)

    Example:
        >>> classify_recall_depth("hi")
        <RecallDepth.NONE: 'none'>
    """
    text = (prompt or "").strip().lower()
    words = len(text.split())
    for depth, matches in _RULES:
        if matches(text, words):
            return depth
    return RecallDepth.NORMAL
