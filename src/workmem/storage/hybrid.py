"""Hybrid retrieval merger fusing vector and keyword search results.

The vector and full-text indexes live elsewhere; this module only fuses
their result sets. Each hit is keyed by chunk id. Scores combine weighted
vector and text relevance with a recency boost:

    score = wv * vector_score + wt * text_score + wr * decay(updated_at)

where the three weights are normalized to sum to 1 and ``decay`` is a
piecewise function of age (see compute_recency_boost).
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from workmem.memory.types import HybridResult

logger = logging.getLogger(__name__)

DEFAULT_VECTOR_WEIGHT = 0.7
DEFAULT_TEXT_WEIGHT = 0.3
DEFAULT_RECENCY_WEIGHT = 0.15
NEUTRAL_RECENCY = 0.5
MALFORMED_RANK = 999.0

_HOUR = 3600.0
_TOKEN = re.compile(r"[A-Za-z0-9_]+")


@dataclass
class VectorHit:
    """One vector-similarity hit (score in [0, 1])."""
    id: str
    path: str
    start_line: int
    end_line: int
    snippet: str
    source: str
    vector_score: float
    updated_at: Optional[float] = None  # epoch seconds


@dataclass
class KeywordHit:
    """One full-text hit (text_score in [0, 1], see bm25_rank_to_score)."""
    id: str
    path: str
    start_line: int
    end_line: int
    snippet: str
    source: str
    text_score: float
    updated_at: Optional[float] = None


def build_fts_query(raw: str) -> Optional[str]:
    """Turn free text into a quoted, AND-joined full-text query.

    Returns:
        The query string, or None if the text has no searchable tokens

    Example:
        >>> build_fts_query("deploy the staging-server")
        '"deploy" AND "the" AND "staging" AND "server"'
    """
    tokens = _TOKEN.findall(raw or "")
    if not tokens:
        return None
    return " AND ".join(f'"{t}"' for t in tokens)


def bm25_rank_to_score(rank: float) -> float:
    """Map a BM25 rank (lower is better) to a score in (0, 1].

    Non-finite ranks are treated as 999 so malformed hits sink to the bottom.
    """
    try:
        rank = float(rank)
    except (TypeError, ValueError):
        rank = MALFORMED_RANK
    if not math.isfinite(rank):
        rank = MALFORMED_RANK
    return 1.0 / (1.0 + max(0.0, rank))


def _interpolate(hours: float, start: float, span: float, high: float, low: float) -> float:
    return low + (high - low) * (1.0 - (hours - start) / span)


def compute_recency_boost(updated_at: Optional[float], now: Optional[float] = None) -> float:
    """Piecewise recency decay for a timestamp in epoch seconds.

    - up to 24h: 1.0
    - 24h to 7d: linear from 1.0 down to 0.85
    - 7d to 30d: linear from 0.85 down to 0.6
    - 30d to 90d: linear from 0.6 down to 0.3
    - beyond 90d: exponential decay from 0.3 with a 180-day scale, floor 0.1

    Missing, non-positive or non-finite timestamps give a neutral 0.5.
    """
    if updated_at is None or not math.isfinite(updated_at) or updated_at <= 0:
        return NEUTRAL_RECENCY
    if now is None:
        now = time.time()

    hours = max(0.0, (now - updated_at) / _HOUR)
    if hours <= 24:
        return 1.0
    if hours <= 168:
        return _interpolate(hours, 24, 144, 1.0, 0.85)
    if hours <= 720:
        return _interpolate(hours, 168, 552, 0.85, 0.6)
    if hours <= 2160:
        return _interpolate(hours, 720, 1440, 0.6, 0.3)
    return max(0.1, 0.3 * math.exp(-(hours - 2160) / (24 * 180)))


def _normalize_weights(vector_weight: float, text_weight: float, recency_weight: float) -> tuple[float, float, float]:
    weights = [max(0.0, w) for w in (vector_weight, text_weight, recency_weight)]
    total = sum(weights)
    if total <= 0:
        return 0.5, 0.5, 0.0
    return weights[0] / total, weights[1] / total, weights[2] / total


def _finite_score(value: Any) -> float:
    """Coerce a hit score to a float; missing or non-finite scores count as 0."""
    try:
        score = float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0
    return score if math.isfinite(score) else 0.0


def _hit_field(hit: Union[dict[str, Any], Any], name: str, default: Any = None) -> Any:
    if isinstance(hit, dict):
        return hit.get(name, default)
    return getattr(hit, name, default)


def merge_hybrid_results(
    vector: Iterable[Union[VectorHit, dict[str, Any]]],
    keyword: Iterable[Union[KeywordHit, dict[str, Any]]],
    vector_weight: float = DEFAULT_VECTOR_WEIGHT,
    text_weight: float = DEFAULT_TEXT_WEIGHT,
    recency_weight: float = DEFAULT_RECENCY_WEIGHT,
    now: Optional[float] = None,
) -> list[HybridResult]:
    """Fuse vector and keyword hits into one ranked list.

    Hits are unioned by id. When both sides returned a chunk, the keyword
    snippet wins and the later ``updated_at`` is kept. Hits may be given as
    VectorHit/KeywordHit instances or plain dicts with the same fields.

    Args:
        vector: Vector-similarity hits with ``vector_score``
        keyword: Full-text hits with ``text_score``
        vector_weight: Relative weight of the vector score
        text_weight: Relative weight of the text score
        recency_weight: Relative weight of the recency boost
        now: Reference time in epoch seconds (default: current time)

    Returns:
        HybridResults sorted by descending score
    """
    wv, wt, wr = _normalize_weights(vector_weight, text_weight, recency_weight)
    if now is None:
        now = time.time()

    merged: dict[str, dict[str, Any]] = {}

    for hit in vector:
        hit_id = str(_hit_field(hit, "id"))
        merged[hit_id] = {
            "id": hit_id,
            "path": _hit_field(hit, "path", ""),
            "start_line": int(_hit_field(hit, "start_line", 0)),
            "end_line": int(_hit_field(hit, "end_line", 0)),
            "snippet": _hit_field(hit, "snippet", ""),
            "source": _hit_field(hit, "source", ""),
            "vector_score": _finite_score(_hit_field(hit, "vector_score")),
            "text_score": 0.0,
            "updated_at": _hit_field(hit, "updated_at"),
        }

    for hit in keyword:
        hit_id = str(_hit_field(hit, "id"))
        text_score = _finite_score(_hit_field(hit, "text_score"))
        updated_at = _hit_field(hit, "updated_at")
        existing = merged.get(hit_id)
        if existing is not None:
            existing["text_score"] = text_score
            snippet = _hit_field(hit, "snippet")
            if snippet:
                existing["snippet"] = snippet
            if updated_at is not None and (
                existing["updated_at"] is None or updated_at > existing["updated_at"]
            ):
                existing["updated_at"] = updated_at
        else:
            merged[hit_id] = {
                "id": hit_id,
                "path": _hit_field(hit, "path", ""),
                "start_line": int(_hit_field(hit, "start_line", 0)),
                "end_line": int(_hit_field(hit, "end_line", 0)),
                "snippet": _hit_field(hit, "snippet", ""),
                "source": _hit_field(hit, "source", ""),
                "vector_score": 0.0,
                "text_score": text_score,
                "updated_at": updated_at,
            }

    results = []
    for entry in merged.values():
        relevance = wv * entry["vector_score"] + wt * entry["text_score"]
        boost = wr * compute_recency_boost(entry["updated_at"], now)
        results.append(HybridResult(
            id=entry["id"],
            path=entry["path"],
            start_line=entry["start_line"],
            end_line=entry["end_line"],
            score=relevance + boost,
            snippet=entry["snippet"],
            source=entry["source"],
            updated_at=entry["updated_at"],
        ))

    results.sort(key=lambda r: r.score, reverse=True)
    logger.debug(f"Merged {len(results)} hybrid results")
    return results
