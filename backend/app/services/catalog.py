from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from app.services.db import get_conn
from app.services.ranking import like_pattern


@dataclass
class StateRef:
    id: int
    name: str


@dataclass
class BrandRef:
    id: int
    name: str


@dataclass
class AllowListRow:
    state_id: int
    state_name: str
    product_id: int
    product_name: str
    brand_id: Optional[int]
    brand_name: Optional[str]


class CatalogStore:
    """
    Read-only access to the state map: states, brands, products and the
    state_allowed_products allow-list.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def find_states(self, name: str, *, fuzzy: bool = False, limit: int = 5) -> list[StateRef]:
        if fuzzy:
            where, param = "name LIKE ? ESCAPE '\\'", like_pattern(name)
        else:
            where, param = "lower(name) = lower(?)", name
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, name FROM states WHERE {where} ORDER BY id ASC LIMIT ?",
                (param, limit),
            ).fetchall()
        return [StateRef(id=int(r["id"]), name=r["name"]) for r in rows]

    def find_brands(self, name: str, *, fuzzy: bool = False) -> list[BrandRef]:
        if fuzzy:
            where, param = "name LIKE ? ESCAPE '\\'", like_pattern(name)
        else:
            where, param = "lower(name) = lower(?)", name
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, name FROM brands WHERE {where} ORDER BY id ASC",
                (param,),
            ).fetchall()
        return [BrandRef(id=int(r["id"]), name=r["name"]) for r in rows]

    def query_allow_list(
        self,
        *,
        state_id: Optional[int] = None,
        brand_ids: Optional[Sequence[int]] = None,
        product_contains: Optional[str] = None,
    ) -> list[AllowListRow]:
        where: list[str] = ["sap.state_id IS NOT NULL", "sap.product_id IS NOT NULL"]
        params: list[object] = []

        if state_id is not None:
            where.append("sap.state_id = ?")
            params.append(state_id)
        if brand_ids:
            placeholders = ",".join("?" for _ in brand_ids)
            where.append(f"p.brand_id IN ({placeholders})")
            params.extend(brand_ids)
        if product_contains:
            where.append("p.name LIKE ? ESCAPE '\\'")
            params.append(like_pattern(product_contains))

        sql = f"""
            SELECT
                s.id AS state_id,
                s.name AS state_name,
                p.id AS product_id,
                p.name AS product_name,
                b.id AS brand_id,
                b.name AS brand_name
            FROM state_allowed_products sap
            JOIN states s ON s.id = sap.state_id
            JOIN products p ON p.id = sap.product_id
            LEFT JOIN brands b ON b.id = p.brand_id
            WHERE {" AND ".join(where)}
            ORDER BY sap.id ASC
        """
        with get_conn(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()

        return [
            AllowListRow(
                state_id=int(r["state_id"]),
                state_name=r["state_name"],
                product_id=int(r["product_id"]),
                product_name=r["product_name"],
                brand_id=int(r["brand_id"]) if r["brand_id"] is not None else None,
                brand_name=r["brand_name"],
            )
            for r in rows
        ]
