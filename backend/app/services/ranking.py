from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

MIN_TERM_LEN = 3


@dataclass
class ScoredResult(Generic[T]):
    """A payload plus a source-local confidence in [0, 1]."""

    payload: T
    confidence: float


def query_terms(text: str | None) -> list[str]:
    """Whitespace-delimited, lowercased terms; anything shorter than 3 chars is dropped."""
    return [t for t in (text or "").lower().split() if len(t) >= MIN_TERM_LEN]


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def like_pattern(value: str, *, contains: bool = True) -> str:
    """
    Escape LIKE wildcards in user text. Pair with ESCAPE '\\' in SQL.
    sqlite LIKE is case-insensitive for ASCII, so this is our ILIKE.
    """
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%" if contains else escaped


def top_ranked(results: list[ScoredResult[T]], k: int, *, min_confidence: float | None = None) -> list[ScoredResult[T]]:
    kept = results
    if min_confidence is not None:
        kept = [r for r in results if r.confidence > min_confidence]
    # sorted() is stable, so ties keep fetch order
    return sorted(kept, key=lambda r: r.confidence, reverse=True)[:k]
