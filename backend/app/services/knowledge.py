from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from app.services.db import get_conn
from app.services.ranking import ScoredResult, clamp01, like_pattern, query_terms, top_ranked

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 3
CONTENT_WEIGHT = 1


@dataclass
class KnowledgeEntry:
    id: str
    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    updated_at: Optional[str] = None


def _decode_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        val = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(val, list):
        return []
    return [str(t) for t in val if t is not None]


class KnowledgeStore:
    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def search(self, substring: str, *, limit: int = 5) -> list[KnowledgeEntry]:
        """Active entries whose title or content contains substring, newest first."""
        like = like_pattern(substring)
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, title, content, tags, updated_at
                FROM knowledge_entries
                WHERE (is_active IS NULL OR is_active = 1)
                  AND (title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')
                ORDER BY updated_at DESC, id ASC
                LIMIT ?
                """,
                (like, like, limit),
            ).fetchall()

        return [
            KnowledgeEntry(
                id=str(r["id"]),
                title=r["title"] or "",
                content=r["content"] or "",
                tags=_decode_tags(r["tags"]),
                updated_at=r["updated_at"],
            )
            for r in rows
        ]


def score_knowledge(query: str, title: str, content: str) -> float:
    """
    +3 per query term in the title, +1 per term in the content,
    normalized by terms * 4. Term order does not matter.
    """
    terms = query_terms(query)
    if not terms:
        return 0.0
    t = (title or "").lower()
    c = (content or "").lower()
    score = 0
    for term in terms:
        if term in t:
            score += TITLE_WEIGHT
        if term in c:
            score += CONTENT_WEIGHT
    return clamp01(score / (len(terms) * (TITLE_WEIGHT + CONTENT_WEIGHT)))


def search_knowledge(
    query: Optional[str],
    store: KnowledgeStore,
    *,
    fetch_limit: int = 5,
    top_k: int = 3,
) -> list[ScoredResult[KnowledgeEntry]]:
    """Top knowledge entries for query. No minimum-confidence floor here."""
    q = (query or "").strip()
    if not q:
        return []

    candidates = store.search(q, limit=fetch_limit)
    scored = [ScoredResult(payload=e, confidence=score_knowledge(q, e.title, e.content)) for e in candidates]
    out = top_ranked(scored, top_k)
    logger.info("knowledge.search candidates=%d returned=%d", len(candidates), len(out))
    return out
