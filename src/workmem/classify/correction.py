"""Heuristic detection of user corrections.

Two ordered rule tables drive detection. Strong signals ("that's wrong",
"from now on") weigh 0.4 each; weak signals ("no", "actually") weigh 0.15.
A message is a correction when at least one strong rule or at least two weak
rules match. Each rule counts at most once per message.
"""

import re
from dataclasses import dataclass
from typing import Optional

from workmem.memory.types import CorrectionCategory

STRONG_WEIGHT = 0.4
WEAK_WEIGHT = 0.15
MIN_MESSAGE_CHARS = 3


@dataclass(frozen=True)
class CorrectionRule:
    pattern: re.Pattern
    category: CorrectionCategory
    weight: float


def _rule(pattern: str, category: CorrectionCategory, weight: float) -> CorrectionRule:
    return CorrectionRule(re.compile(pattern, re.IGNORECASE), category, weight)


STRONG_RULES: list[CorrectionRule] = [
    _rule(r"\b(?:that'?s|that is|you'?re|you are|it'?s|this is)\s+(?:wrong|incorrect|not right|not true|not correct)\b",
          CorrectionCategory.FACTUAL, STRONG_WEIGHT),
    _rule(r"\b(?:it'?s|it is|it was|they'?re|that'?s)\s+actually\b|\bactually,?\s+(?:it'?s|it is|it was)\b",
          CorrectionCategory.FACTUAL, STRONG_WEIGHT),
    _rule(r"\b(?:i (?:already )?told you|i already said|how many times)\b",
          CorrectionCategory.BEHAVIORAL, STRONG_WEIGHT),
    _rule(r"\b(?:never|don'?t ever|do not ever|stop)\s+(?:do|doing|use|using|say|saying|send|sending|touch|touching|run|running)\b",
          CorrectionCategory.BEHAVIORAL, STRONG_WEIGHT),
    _rule(r"\b(?:from now on|going forward|in the future|next time)\b",
          CorrectionCategory.PREFERENCE, STRONG_WEIGHT),
    _rule(r"\bi (?:prefer|'d prefer|would prefer|'d rather|would rather|want you to)\b",
          CorrectionCategory.PREFERENCE, STRONG_WEIGHT),
    _rule(r"\b(?:that'?s not how|wrong (?:order|step|way|approach)|you (?:should|need to) have)\b",
          CorrectionCategory.PROCEDURAL, STRONG_WEIGHT),
]

WEAK_RULES: list[CorrectionRule] = [
    _rule(r"^\s*no\b", CorrectionCategory.FACTUAL, WEAK_WEIGHT),
    _rule(r"\bactually\b", CorrectionCategory.FACTUAL, WEAK_WEIGHT),
    _rule(r"\b(?:wrong|incorrect|mistake|mistaken)\b", CorrectionCategory.FACTUAL, WEAK_WEIGHT),
    _rule(r"\b(?:always|never)\b", CorrectionCategory.BEHAVIORAL, WEAK_WEIGHT),
    _rule(r"\b(?:don'?t|do not|stop)\b", CorrectionCategory.BEHAVIORAL, WEAK_WEIGHT),
    _rule(r"\b(?:instead|rather)\b", CorrectionCategory.PREFERENCE, WEAK_WEIGHT),
    _rule(r"\b(?:should(?:n'?t)? have|supposed to|first you|before you)\b", CorrectionCategory.PROCEDURAL, WEAK_WEIGHT),
    _rule(r"\bi (?:meant|mean)\b", CorrectionCategory.FACTUAL, WEAK_WEIGHT),
]


@dataclass
class CorrectionSignal:
    """Result of correction detection.

    Attributes:
        detected: Whether the message reads as a correction
        confidence: Sum of matched rule weights, capped at 1.0, rounded to 2 decimals
        user_message: The analysed message
        agent_message: The assistant message being corrected (if supplied)
        category: Dominant category among matched rules (None when nothing matched)
        strong_matches: Number of strong rules that matched
        weak_matches: Number of weak rules that matched
    """
    detected: bool
    confidence: float
    user_message: str
    agent_message: Optional[str] = None
    category: Optional[CorrectionCategory] = None
    strong_matches: int = 0
    weak_matches: int = 0


def detect_correction(
    user_message: str,
    previous_agent_message: Optional[str] = None,
    previous_user_message: Optional[str] = None,
) -> CorrectionSignal:
    """Detect whether the latest user message corrects the agent.

    Category selection: the category with the highest accumulated weight
    wins; ties go to the category whose first matching rule appears earliest
    in the combined table (strong rules first, then weak rules).

    Args:
        user_message: The latest user message
        previous_agent_message: The assistant message it responds to
        previous_user_message: The user message before that (unused by the rules,
            carried for callers that log context)

    Returns:
        CorrectionSignal

    Example:
        >>> signal = detect_correction("No, that's wrong, it's actually the staging server")
        >>> signal.detected, signal.category.value
        (True, 'factual')
    """
    message = user_message or ""
    if len(message.strip()) < MIN_MESSAGE_CHARS:
        return CorrectionSignal(
            detected=False,
            confidence=0.0,
            user_message=message,
            agent_message=previous_agent_message,
        )

    strong = 0
    weak = 0
    total = 0.0
    weights: dict[CorrectionCategory, float] = {}
    first_seen: dict[CorrectionCategory, int] = {}

    for order, rule in enumerate(STRONG_RULES + WEAK_RULES):
        if not rule.pattern.search(message):
            continue
        if rule.weight == STRONG_WEIGHT:
            strong += 1
        else:
            weak += 1
        total += rule.weight
        weights[rule.category] = weights.get(rule.category, 0.0) + rule.weight
        first_seen.setdefault(rule.category, order)

    category = None
    if weights:
        category = min(weights, key=lambda c: (-round(weights[c], 6), first_seen[c]))

    return CorrectionSignal(
        detected=strong >= 1 or weak >= 2,
        confidence=round(min(1.0, total), 2),
        user_message=message,
        agent_message=previous_agent_message,
        category=category,
        strong_matches=strong,
        weak_matches=weak,
    )
