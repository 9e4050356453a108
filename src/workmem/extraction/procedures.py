"""Procedure miner: reusable tool-call sequences from successful runs.

Tool calls are paired with their results by call id, in emission order.
Only successful runs with at least 3 steps are saved, appended to
``memory/procedures/<date>.md``.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from workmem.extraction.episodes import extract_request
from workmem.extraction.markdown import append_daily_entry
from workmem.memory.messages import AssistantMessage, Message, ToolResultMessage, ToolUseBlock
from workmem.memory.types import LogResult, Procedure, ProcedureStep, utcnow

logger = logging.getLogger(__name__)

MIN_STEPS = 3
MAX_NAME_CHARS = 100
MAX_PARAM_CHARS = 200

ACTION_WORDS = re.compile(
    r"\b(install|create|build|deploy|fix|update|delete|send|email|search|research|write|read"
    r"|configure|setup|push|commit|test|debug|monitor|check|analyze|scrape|crawl|filter)\b",
    re.IGNORECASE,
)
NOUN_WORDS = re.compile(
    r"\b(file|script|cron|api|database|server|website|email|git|github|pipeline|report"
    r"|template|config|memory|brain)\b",
    re.IGNORECASE,
)
_SENTENCE_BREAK = re.compile(r"[.\n!?]")


def derive_procedure_name(request: str) -> str:
    """First sentence of the request, at most 100 characters."""
    return _SENTENCE_BREAK.split(request, maxsplit=1)[0].strip()[:MAX_NAME_CHARS]


def derive_tags(request: str, tool_names: list[str]) -> list[str]:
    """Tool names, action verbs and salient nouns, lowercased and unique."""
    tags: dict[str, None] = {}
    for name in tool_names:
        tags.setdefault(name.lower(), None)
    for pattern in (ACTION_WORDS, NOUN_WORDS):
        for word in pattern.findall(request):
            tags.setdefault(word.lower(), None)
    return list(tags)


def _key_params(params: dict[str, Any]) -> dict[str, str]:
    result = {}
    for key, value in params.items():
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        elif isinstance(value, (int, float)):
            result[key] = str(value)
        elif isinstance(value, str) and len(value) < MAX_PARAM_CHARS:
            result[key] = value
    return result


def describe_action(tool_name: str, params: dict[str, str]) -> str:
    """Short action text from the most salient parameter.

    Priority: command, then file_path/path, then query, then url.
    """
    if params.get("command"):
        return f"{tool_name}: {params['command'][:100]}"
    target = params.get("file_path") or params.get("path")
    if target:
        return f"{tool_name}: {target[:100]}"
    if params.get("query"):
        return f'{tool_name}: "{params["query"][:80]}"'
    if params.get("url"):
        return f"{tool_name}: {params['url'][:100]}"
    return tool_name


def extract_steps(messages: list[Message]) -> list[ProcedureStep]:
    """Pair tool calls with their results and number the resulting steps."""
    pending: dict[str, ToolUseBlock] = {}
    steps: list[ProcedureStep] = []

    for message in messages:
        if isinstance(message, AssistantMessage):
            for use in message.tool_uses:
                pending[use.id] = use
        elif isinstance(message, ToolResultMessage):
            use = pending.pop(message.tool_call_id, None) if message.tool_call_id else None
            if use is not None:
                tool_name = use.name
                params = _key_params(use.input)
            else:
                tool_name = message.tool_name or "unknown"
                params = {}
            steps.append(ProcedureStep(
                order=len(steps) + 1,
                tool=tool_name,
                action=describe_action(tool_name, params),
                success=not message.is_error,
                key_params=params,
            ))
    return steps


def build_procedure(
    messages: list[Message],
    success: bool,
    now: Optional[datetime] = None,
) -> Optional[Procedure]:
    """Mine a procedure, or return None if the run does not qualify."""
    if not success:
        return None
    steps = extract_steps(messages)
    if len(steps) < MIN_STEPS:
        return None

    request = extract_request(messages, fallback="(unknown request)")
    tool_names = list(dict.fromkeys(step.tool for step in steps))
    return Procedure(
        name=derive_procedure_name(request),
        request=request,
        steps=steps,
        tags=derive_tags(request, tool_names),
        success=True,
        timestamp=now or utcnow(),
    )


def format_procedure(procedure: Procedure) -> str:
    lines = [
        f"# Procedure: {procedure.name}",
        "",
        f"**Status:** {'✅ Successful' if procedure.success else '❌ Failed'}",
        f"**Date:** {procedure.timestamp.strftime('%Y-%m-%d')}",
        f"**Tags:** {', '.join(procedure.tags)}",
        "",
        "## Request",
        procedure.request,
        "",
        "## Steps",
        "",
    ]
    for step in procedure.steps:
        lines.append(f"{step.order}. {'✅' if step.success else '❌'} **{step.action}**")
    lines.append("")
    return "\n".join(lines)


def log_procedure(
    messages: Iterable[Message],
    success: bool,
    workspace_dir: Path,
    now: Optional[datetime] = None,
) -> LogResult:
    """Mine and persist a procedure from a finished run.

    Never raises; failures are logged and reported as not logged.
    """
    try:
        procedure = build_procedure(list(messages), success, now)
        if procedure is None:
            return LogResult(logged=False)

        path = append_daily_entry(
            workspace_dir,
            "procedures",
            "Procedures",
            "Learned task procedures. Each entry records the step-by-step approach that worked.",
            format_procedure(procedure),
            procedure.timestamp,
        )
        logger.info(
            f"Procedure logged: '{procedure.name}' with {len(procedure.steps)} steps, "
            f"tags: [{', '.join(procedure.tags)}]"
        )
        return LogResult(logged=True, file_path=str(path))
    except Exception as e:
        logger.warning(f"Procedure logging failed: {e}")
        return LogResult(logged=False)
