"""Episode summarizer: a work log entry for every agent run that used tools.

Episodes record what was requested, which tools ran, which files were
touched and what came out of it. Pure chat is not logged.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from workmem.extraction.markdown import append_daily_entry
from workmem.memory.messages import AssistantMessage, Message, UserMessage
from workmem.memory.types import Episode, LogResult, utcnow

logger = logging.getLogger(__name__)

MAX_REQUEST_CHARS = 500
MAX_FILES = 20
MAX_OUTCOMES = 10
OUTCOME_TAIL_MESSAGES = 3
MIN_TOOLS_FOR_EPISODE = 1

FILE_INPUT_KEYS = ("file_path", "path", "filePath")

FILE_TEXT_PATTERNS = [
    re.compile(r"(?:file_path|path|file)\s*[:=]\s*[\"']?([^\s\"',\]}{]+)", re.IGNORECASE),
    re.compile(r"(?:Read|Write|Edit)\s+(?:file\s+)?[\"']?([^\s\"',\]}{]+\.\w+)", re.IGNORECASE),
]

OUTCOME_PATTERNS = [
    re.compile(
        r"(?:I(?:'ve| have)?|successfully|done|completed|created|updated|fixed|built|installed"
        r"|configured|deployed|pushed|committed|sent|wrote|saved)\s+(.{10,200})",
        re.IGNORECASE,
    ),
    re.compile(r"(?:✅|✓|done:?|ready:?|complete:?)\s+(.{5,200})", re.IGNORECASE),
    re.compile(r"(?:error|failed|couldn'?t|unable to|blocked by)\s+(.{10,200})", re.IGNORECASE),
]


def extract_request(messages: list[Message], fallback: str = "(no request found)") -> str:
    """Text of the last user message, truncated to 500 characters."""
    for message in reversed(messages):
        if isinstance(message, UserMessage) and message.text:
            return message.text[:MAX_REQUEST_CHARS]
    return fallback


def extract_tools_used(messages: list[Message]) -> list[str]:
    """Distinct tool names in first-use order."""
    tools: dict[str, None] = {}
    for message in messages:
        if isinstance(message, AssistantMessage):
            for use in message.tool_uses:
                tools.setdefault(use.name, None)
    return list(tools)


def extract_files_accessed(messages: list[Message]) -> list[str]:
    """File paths from tool inputs and free text, capped at 20."""
    files: dict[str, None] = {}
    for message in messages:
        if isinstance(message, AssistantMessage):
            for use in message.tool_uses:
                for key in FILE_INPUT_KEYS:
                    value = use.input.get(key)
                    if isinstance(value, str) and value:
                        files.setdefault(value, None)

        if isinstance(message, (UserMessage, AssistantMessage)) and message.text:
            for pattern in FILE_TEXT_PATTERNS:
                for match in pattern.finditer(message.text):
                    candidate = match.group(1)
                    if 3 < len(candidate) < 200:
                        files.setdefault(candidate, None)
    return list(files)[:MAX_FILES]


def extract_outcomes(messages: list[Message]) -> list[str]:
    """Deduplicated outcome statements from the last few assistant messages."""
    tail: list[str] = []
    for message in reversed(messages):
        if len(tail) >= OUTCOME_TAIL_MESSAGES:
            break
        if isinstance(message, AssistantMessage) and message.text:
            tail.append(message.text)
    combined = "\n".join(tail)

    outcomes: list[str] = []
    seen: set[str] = set()
    for pattern in OUTCOME_PATTERNS:
        for match in pattern.finditer(combined):
            outcome = match.group(1).strip()[:200]
            key = outcome.lower()[:60]
            if len(outcome) > 8 and key not in seen:
                seen.add(key)
                outcomes.append(outcome)
            if len(outcomes) >= MAX_OUTCOMES:
                return outcomes
    return outcomes


def build_episode(
    messages: list[Message],
    success: bool,
    error: Optional[str] = None,
    duration_ms: Optional[int] = None,
    session_key: Optional[str] = None,
    agent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Episode]:
    """Summarize a run, or return None if no tool was used."""
    tools = extract_tools_used(messages)
    if len(tools) < MIN_TOOLS_FOR_EPISODE:
        return None
    return Episode(
        request=extract_request(messages),
        tools_used=tools,
        files_accessed=extract_files_accessed(messages),
        outcomes=extract_outcomes(messages),
        success=success,
        error=error,
        duration_ms=duration_ms,
        session_key=session_key,
        agent_id=agent_id,
        timestamp=now or utcnow(),
    )


def format_episode(episode: Episode) -> str:
    lines = [f"# Episode: {episode.timestamp.strftime('%Y-%m-%d %H:%M')}", ""]
    if episode.session_key:
        lines.append(f"Session: {episode.session_key}")
    lines.append(f"Status: {'✅ Success' if episode.success else '❌ Failed'}")
    if episode.duration_ms:
        lines.append(f"Duration: {round(episode.duration_ms / 1000)}s")
    lines.extend(["", "## Request", episode.request, ""])

    for heading, items in (
        ("## Tools Used", episode.tools_used),
        ("## Files Accessed", episode.files_accessed),
        ("## Outcomes", episode.outcomes),
    ):
        if items:
            lines.append(heading)
            lines.extend(f"- {item}" for item in items)
            lines.append("")

    if episode.error:
        lines.extend(["## Error", episode.error, ""])

    return "\n".join(lines)


def log_episode(
    messages: Iterable[Message],
    success: bool,
    workspace_dir: Path,
    error: Optional[str] = None,
    duration_ms: Optional[int] = None,
    session_key: Optional[str] = None,
    agent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LogResult:
    """Summarize a finished run and append it to ``memory/episodes/<date>.md``.

    Never raises; failures are logged and reported as not logged.
    """
    try:
        episode = build_episode(
            list(messages), success, error, duration_ms, session_key, agent_id, now
        )
        if episode is None:
            return LogResult(logged=False)

        path = append_daily_entry(
            workspace_dir,
            "episodes",
            "Episodes",
            "Automatic work log. Each entry records what was requested, "
            "what tools were used, and what the outcome was.",
            format_episode(episode),
            episode.timestamp,
        )
        logger.info(
            f"Episode logged: {len(episode.tools_used)} tools, "
            f"{len(episode.outcomes)} outcomes -> {path.name}"
        )
        return LogResult(logged=True, file_path=str(path))
    except Exception as e:
        logger.warning(f"Episode logging failed: {e}")
        return LogResult(logged=False)
