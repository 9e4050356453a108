"""Typed transcript model consumed by the extraction pipelines.

Agent runtimes hand over messages in several JSON shapes (plain string
content, content-block lists, dedicated tool-result roles, transcript JSONL
entries that wrap a ``message``). This module parses all of them into one
closed set of message types so extraction code can dispatch on the type
instead of probing dict fields:

- UserMessage: text typed by the user
- AssistantMessage: ordered TextBlock / ToolUseBlock content
- ToolResultMessage: the output of one tool call, linked by call id
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class UserMessage:
    text: str

    role = "user"


@dataclass
class AssistantMessage:
    blocks: list[Union[TextBlock, ToolUseBlock]] = field(default_factory=list)

    role = "assistant"

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]


@dataclass
class ToolResultMessage:
    tool_call_id: Optional[str]
    text: str
    tool_name: Optional[str] = None
    is_error: bool = False
    meta: Optional[str] = None

    role = "tool"


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]


def _content_text(content: Any) -> str:
    """Join the text of a string or content-block list."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "\n".join(parts)
    return ""


def _tool_result_from_block(block: dict[str, Any]) -> ToolResultMessage:
    return ToolResultMessage(
        tool_call_id=block.get("tool_use_id") or block.get("toolCallId"),
        text=_content_text(block.get("content", "")),
        tool_name=block.get("name") or block.get("toolName"),
        is_error=bool(block.get("is_error") or block.get("isError")),
    )


def parse_message(raw: Any) -> list[Message]:
    """Parse one raw message dict into zero or more typed messages.

    A user message that carries ``tool_result`` blocks (Anthropic format)
    expands into one ToolResultMessage per block, followed by a UserMessage
    for any remaining text. Unrecognized shapes yield an empty list.

    Args:
        raw: A role-tagged message dict, or a transcript entry wrapping one
            under ``message``

    Returns:
        List of typed messages in emission order
    """
    if not isinstance(raw, dict):
        return []

    # Transcript JSONL entries wrap the API message
    if "role" not in raw and isinstance(raw.get("message"), dict):
        raw = raw["message"]

    role = raw.get("role")
    content = raw.get("content")

    if role == "user":
        parsed: list[Message] = []
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_result":
                    parsed.append(_tool_result_from_block(block))
        text = _content_text(content)
        if text or not parsed:
            parsed.append(UserMessage(text=text))
        return parsed

    if role == "assistant":
        blocks: list[Union[TextBlock, ToolUseBlock]] = []
        if isinstance(content, str):
            blocks.append(TextBlock(text=content))
        elif isinstance(content, list):
            for index, block in enumerate(content):
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text" and isinstance(block.get("text"), str):
                    blocks.append(TextBlock(text=block["text"]))
                elif block.get("type") in ("tool_use", "toolCall") and isinstance(block.get("name"), str):
                    tool_input = block.get("input") or block.get("arguments") or {}
                    blocks.append(ToolUseBlock(
                        id=str(block.get("id") or f"tool-{index}"),
                        name=block["name"],
                        input=tool_input if isinstance(tool_input, dict) else {},
                    ))
        return [AssistantMessage(blocks=blocks)]

    if role == "toolUse" and isinstance(raw.get("name"), str):
        params = raw.get("params") or raw.get("input") or {}
        return [AssistantMessage(blocks=[ToolUseBlock(
            id=str(raw.get("id") or raw.get("toolCallId") or raw["name"]),
            name=raw["name"],
            input=params if isinstance(params, dict) else {},
        )])]

    if role in ("toolResult", "tool"):
        text = raw.get("text") if isinstance(raw.get("text"), str) else None
        if text is None and isinstance(raw.get("output"), str):
            text = raw["output"]
        if text is None:
            text = _content_text(content)
        meta = raw.get("meta")
        return [ToolResultMessage(
            tool_call_id=raw.get("toolCallId") or raw.get("tool_call_id") or raw.get("tool_use_id"),
            text=text,
            tool_name=raw.get("toolName") or raw.get("name"),
            is_error=bool(raw.get("isError") or raw.get("is_error")),
            meta=meta if isinstance(meta, str) else None,
        )]

    return []


def parse_messages(raw_messages: Iterable[Any]) -> list[Message]:
    """Parse a sequence of raw message dicts, preserving order."""
    messages: list[Message] = []
    for raw in raw_messages:
        messages.extend(parse_message(raw))
    return messages


def load_transcript(path: Path) -> list[Message]:
    """Read a JSONL transcript file into typed messages.

    Lines that are not valid JSON are skipped.

    Args:
        path: Path to the transcript file

    Returns:
        Parsed messages (empty if the file does not exist)
    """
    path = Path(path).expanduser()
    if not path.exists():
        return []

    raw_messages = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                raw_messages.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed transcript line in {path}")
    return parse_messages(raw_messages)
