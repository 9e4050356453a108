"""Heuristic compression of tool results before they enter the context.

Search results, fetched pages and command output arrive at full size and
are mostly noise. Each tool type has a character limit and a strategy:

- web_search: keep result titles, URLs and the first line of each snippet
- web_fetch: drop boilerplate lines (cookie banners, share links, navigation)
- exec / bash: keep the first and last 20 lines plus error lines in between
- memory_search: keep the top five results with trimmed snippets
- anything else: keep the head and tail of the text

The full result goes to the scratch pad; only the compressed text is meant
for the context window. Output still over the limit is cut and marked.
"""

import re

COMPRESSED_LIMITS = {
    "web_search": 3000,
    "web_fetch": 4000,
    "exec": 3000,
    "Read": 5000,
    "memory_search": 2000,
    "memory_get": 3000,
    "sessions_list": 2000,
    "sessions_history": 3000,
}
DEFAULT_LIMIT = 6000
TRUNCATION_MARKER = "\n…(compressed)…"

EXEC_KEEP_HEAD = 20
EXEC_KEEP_TAIL = 20
EXEC_SHORT_LINES = 50
MEMORY_TOP_RESULTS = 5

_SEARCH_HEADER = re.compile(r"^(?:\d+\.|#+\s|Title:)", re.IGNORECASE)
_SEARCH_URL = re.compile(r"^(?:https?://|URL:|Link:)", re.IGNORECASE)
_MEMORY_HEADER = re.compile(r"^(?:#|\d+\.|Score:|Path:|Source:)", re.IGNORECASE)
_EXEC_PROBLEM = re.compile(r"error|warn|fail|exception|fatal", re.IGNORECASE)

_BOILERPLATE = [
    re.compile(r"^(?:cookie|privacy|terms|copyright|©|\|.*\|.*\|)", re.IGNORECASE),
    re.compile(r"^(?:sign (?:in|up)|log (?:in|out)|subscribe|newsletter)", re.IGNORECASE),
    re.compile(r"^(?:share|tweet|pin|follow us|social media)", re.IGNORECASE),
    re.compile(r"^(?:advertisement|sponsored|related articles)", re.IGNORECASE),
    re.compile(r"^\s*(?:\[.*\]\(.*\)\s*){3,}"),
    re.compile(r"^(?:menu|nav|sidebar|footer|header)\s*$", re.IGNORECASE),
    re.compile(r"^\s*(?:•\s*){3,}"),
]


def compress_web_search(text: str) -> str:
    kept = []
    in_result = False
    for line in text.split("\n"):
        stripped = line.strip()
        if _SEARCH_HEADER.match(stripped):
            kept.append(stripped)
            in_result = True
        elif _SEARCH_URL.match(stripped):
            kept.append(stripped)
        elif in_result and len(stripped) > 10 and not stripped.startswith("---"):
            kept.append(stripped[:200])
            in_result = False
        elif not stripped or stripped == "---":
            in_result = False
    return "\n".join(kept)


def compress_web_fetch(text: str) -> str:
    kept = []
    blank_run = 0
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            blank_run += 1
            if blank_run <= 1:
                kept.append("")
            continue
        blank_run = 0
        if any(p.search(stripped) for p in _BOILERPLATE):
            continue
        if len(stripped) < 5 and not stripped.startswith("#"):
            continue
        kept.append(stripped)
    return "\n".join(kept)


def compress_exec(text: str) -> str:
    lines = text.split("\n")
    if len(lines) <= EXEC_SHORT_LINES:
        return text

    middle = lines[EXEC_KEEP_HEAD:-EXEC_KEEP_TAIL]
    kept = lines[:EXEC_KEEP_HEAD]
    kept.append(f"\n... ({len(middle)} lines omitted) ...\n")
    kept.extend(line for line in middle if _EXEC_PROBLEM.search(line))
    kept.extend(lines[-EXEC_KEEP_TAIL:])
    return "\n".join(kept)


def compress_memory_search(text: str) -> str:
    kept = []
    results = 0
    for line in text.split("\n"):
        if _MEMORY_HEADER.match(line.strip()):
            results += 1
            if results <= MEMORY_TOP_RESULTS:
                kept.append(line)
            continue
        if results <= MEMORY_TOP_RESULTS and line.strip():
            kept.append(line.strip()[:300])
    return "\n".join(kept)


def _head_and_tail(text: str, limit: int) -> str:
    head = int(limit * 0.75)
    tail = int(limit * 0.2)
    omitted = len(text) - head - tail
    return f"{text[:head]}\n\n... ({omitted} chars omitted) ...\n\n{text[-tail:]}"


_STRATEGIES = {
    "web_search": compress_web_search,
    "web_fetch": compress_web_fetch,
    "exec": compress_exec,
    "bash": compress_exec,
    "memory_search": compress_memory_search,
}


def compress_tool_result(tool_name: str, text: str) -> str:
    """Shrink a tool result for the context window.

    Text already within the tool's limit is returned unchanged.

    Args:
        tool_name: The tool that produced the text
        text: Full tool output

    Returns:
        Compressed text, at most the limit plus a short truncation marker
    """
    if not text:
        return text
    limit = COMPRESSED_LIMITS.get(tool_name, DEFAULT_LIMIT)
    if len(text) <= limit:
        return text

    strategy = _STRATEGIES.get(tool_name)
    compressed = strategy(text) if strategy else _head_and_tail(text, limit)
    if len(compressed) > limit:
        compressed = compressed[:limit] + TRUNCATION_MARKER
    return compressed
