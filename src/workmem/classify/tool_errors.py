"""Tool error classification and pattern normalization.

Error text is matched against an ordered list of classifiers; the first
match wins. The raw text is then normalized (hex ids, timestamps, URLs and
long quoted strings replaced by placeholders) so recurring errors collapse
into a single failure record.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from workmem.memory.types import FailureCategory

MAX_PATTERN_LENGTH = 200
MIN_ERROR_CHARS = 5
MIN_OTHER_CHARS = 20


@dataclass(frozen=True)
class ErrorClassifier:
    test: re.Pattern
    category: FailureCategory
    lesson: Callable[[str], str]


ERROR_CLASSIFIERS: list[ErrorClassifier] = [
    ErrorClassifier(
        re.compile(r"429|rate.?limit|too many requests|quota exceeded|throttl", re.IGNORECASE),
        FailureCategory.RATE_LIMIT,
        lambda tool: f"{tool} hits rate limits. Add delays between calls or reduce batch size.",
    ),
    ErrorClassifier(
        re.compile(r"401|403|unauthorized|forbidden|invalid.*(?:key|token|credential)|auth", re.IGNORECASE),
        FailureCategory.AUTH,
        lambda tool: f"{tool} auth failure. Check the API key/token is valid and has the required permissions.",
    ),
    ErrorClassifier(
        re.compile(r"timeout|timed?\s*out|ETIMEDOUT|ECONNRESET|ECONNREFUSED", re.IGNORECASE),
        FailureCategory.TIMEOUT,
        lambda tool: f"{tool} times out. Retry with backoff or check whether the service is available.",
    ),
    ErrorClassifier(
        re.compile(r"not found|404|ENOENT|no such file|does not exist|cannot find", re.IGNORECASE),
        FailureCategory.NOT_FOUND,
        lambda tool: f"{tool} target not found. Verify the path/URL exists before calling.",
    ),
    ErrorClassifier(
        re.compile(r"encoding|unicode|utf|charmap|codec|UnicodeDecodeError|is not recognized", re.IGNORECASE),
        FailureCategory.ENCODING,
        lambda tool: f"{tool} encoding issue. Use an explicit encoding for input and output.",
    ),
    ErrorClassifier(
        re.compile(r"invalid.*param|missing.*required|unexpected.*argument|TypeError|ValidationError", re.IGNORECASE),
        FailureCategory.INVALID_PARAMS,
        lambda tool: f"{tool} parameter error. Check required params and their types.",
    ),
]

# (pattern, replacement) applied in order
_NORMALIZERS = [
    (re.compile(r"https?://\S+"), "<url>"),
    (re.compile(r"\d{10,}"), "<timestamp>"),
    (re.compile(r"[0-9a-f]{8,}", re.IGNORECASE), "<id>"),
    (re.compile(r"[\"'][^\"']{50,}[\"']"), '"<long_string>"'),
]


@dataclass
class ClassifiedError:
    """A classified tool error.

    Attributes:
        category: Failure kind
        pattern: Normalized error pattern
        lesson: Human-readable lesson for future runs
    """
    category: FailureCategory
    pattern: str
    lesson: str


def normalize_error_pattern(error_text: str) -> str:
    """Collapse high-entropy substrings so recurring errors compare equal.

    Example:
        >>> normalize_error_pattern("GET https://api.x.io/v1 failed: request 9f8e7d6c5b4a")
        'GET <url> failed: request <id>'
    """
    pattern = error_text[:MAX_PATTERN_LENGTH]
    for regex, replacement in _NORMALIZERS:
        pattern = regex.sub(replacement, pattern)
    return pattern.strip()


def classify_tool_error(error_text: str, tool_name: str) -> Optional[ClassifiedError]:
    """Classify an error string produced by a tool.

    Args:
        error_text: The raw error output
        tool_name: Name of the failing tool (used in the lesson text)

    Returns:
        ClassifiedError, or None when the text is too short to be meaningful
    """
    if not error_text or len(error_text) < MIN_ERROR_CHARS:
        return None

    for classifier in ERROR_CLASSIFIERS:
        if classifier.test.search(error_text):
            return ClassifiedError(
                category=classifier.category,
                pattern=normalize_error_pattern(error_text),
                lesson=classifier.lesson(tool_name),
            )

    if len(error_text) > MIN_OTHER_CHARS:
        return ClassifiedError(
            category=FailureCategory.OTHER,
            pattern=normalize_error_pattern(error_text),
            lesson=f"{tool_name} failed. Review the error and adjust the approach.",
        )

    return None
