from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from app.schemas.routing import SearchParams
from app.services.db import get_conn
from app.services.ranking import ScoredResult, clamp01, like_pattern, query_terms, top_ranked

logger = logging.getLogger(__name__)

SUBCATEGORY_SLOTS = 6

_FILE_COLUMNS = (
    "id, file_name, file_url, mime_type, brand, category, "
    + ", ".join(f"subcategory_{i}" for i in range(1, SUBCATEGORY_SLOTS + 1))
)


@dataclass
class FileRecord:
    id: str
    file_name: str
    mime_type: str
    file_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategories: list[str] = field(default_factory=list)

    @property
    def is_logo_image(self) -> bool:
        return (self.mime_type or "").lower().startswith("image/") and "logo" in self.file_name.lower()


def _row_to_file(r) -> FileRecord:
    subs = [r[f"subcategory_{i}"] for i in range(1, SUBCATEGORY_SLOTS + 1)]
    return FileRecord(
        id=str(r["id"]),
        file_name=r["file_name"] or "",
        mime_type=r["mime_type"] or "",
        file_url=r["file_url"],
        brand=r["brand"],
        category=r["category"],
        subcategories=[s for s in subs if s],
    )


class FileStore:
    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def by_id(self, file_id: str) -> Optional[FileRecord]:
        with get_conn(self.db_path) as conn:
            r = conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM drive_files WHERE id = ? LIMIT 1",
                (file_id,),
            ).fetchone()
        return _row_to_file(r) if r else None

    def brand_logos(self, brand: str, *, limit: int = 10) -> list[FileRecord]:
        """Files owned by exactly this brand (case-insensitive) with "logo" in the name."""
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_FILE_COLUMNS}
                FROM drive_files
                WHERE brand LIKE ? ESCAPE '\\'
                  AND file_name LIKE '%logo%'
                ORDER BY file_name ASC
                LIMIT ?
                """,
                (like_pattern(brand, contains=False), limit),
            ).fetchall()
        return [_row_to_file(r) for r in rows]

    def search(self, params: SearchParams, *, limit: int = 10) -> list[FileRecord]:
        """OR of filename/brand/category/type filters built from params."""
        clauses: list[str] = []
        args: list[object] = []

        for term in (params.query, params.brand, params.product):
            if term:
                clauses.append("file_name LIKE ? ESCAPE '\\'")
                args.append(like_pattern(term))
        if params.brand:
            clauses.append("brand LIKE ? ESCAPE '\\'")
            args.append(like_pattern(params.brand))
        if params.category:
            clauses.append("category LIKE ? ESCAPE '\\'")
            args.append(like_pattern(params.category))
        if params.file_type:
            if params.file_type.lower() == "logo":
                clauses.append("file_name LIKE '%logo%'")
            else:
                clauses.append("mime_type LIKE ? ESCAPE '\\'")
                args.append(like_pattern(params.file_type))

        if not clauses:
            return []

        sql = f"""
            SELECT {_FILE_COLUMNS}
            FROM drive_files
            WHERE {" OR ".join(clauses)}
            ORDER BY updated_at DESC, id ASC
            LIMIT ?
        """
        args.append(limit)
        with get_conn(self.db_path) as conn:
            rows = conn.execute(sql, args).fetchall()
        return [_row_to_file(r) for r in rows]


def _base_query(params: SearchParams) -> str:
    return (params.query or params.brand or params.file_type or "").strip()


def score_file(base: str, f: FileRecord) -> float:
    """
    Filename-weighted relevance, normalized by terms * 5:
      +5 whole query in filename, +3 logo/logo, +3 per term in filename,
      +2 per term in brand (+3 more for a whole-brand term longer than 4),
      +2 per term in category, +1 per term in any subcategory.
    """
    q = base.lower()
    terms = query_terms(base)
    name = f.file_name.lower()
    brand = (f.brand or "").lower()
    category = (f.category or "").lower()
    subs = [s.lower() for s in f.subcategories]

    score = 0
    if q and q in name:
        score += 5
    if "logo" in q and "logo" in name:
        score += 3
    for term in terms:
        if term in name:
            score += 3
        if brand and term in brand:
            score += 2
            if term == brand and len(term) > 4:
                score += 3
        if category and term in category:
            score += 2
        if any(term in s for s in subs):
            score += 1

    # A single sub-3-char query still has one "term" worth of weight.
    return clamp01(score / (max(len(terms), 1) * 5))


def search_files(
    params: SearchParams,
    store: FileStore,
    *,
    fetch_limit: int = 10,
    top_k: int = 3,
    min_confidence: float = 0.2,
) -> list[ScoredResult[FileRecord]]:
    if params.file_id:
        rec = store.by_id(params.file_id)
        logger.info("files.direct_id id=%s found=%s", params.file_id, rec is not None)
        return [ScoredResult(payload=rec, confidence=1.0)] if rec else []

    if params.brand:
        logos = store.brand_logos(params.brand)
        if logos:
            logger.info("files.brand_logo brand=%s n=%d", params.brand, len(logos))
            return [ScoredResult(payload=f, confidence=1.0) for f in logos[:top_k]]

    candidates = store.search(params, limit=fetch_limit)
    base = _base_query(params)
    scored = [ScoredResult(payload=f, confidence=score_file(base, f)) for f in candidates]
    out = top_ranked(scored, top_k, min_confidence=min_confidence)
    logger.info("files.search candidates=%d returned=%d", len(candidates), len(out))
    return out
