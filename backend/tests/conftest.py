from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Optional, Sequence

import pytest

from app.core.config import Settings
from app.services.db import apply_migrations, get_conn
from app.services.llm import LLMError, LLMMessage

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "db" / "migrations"


class FakeLLM:
    """
    Stands in for LLMClient.complete. Routing calls (json_mode=True) get
    `route`; answer calls get `answer`, which by default echoes the system
    prompt so tests can see exactly what the model was shown.
    """

    def __init__(
        self,
        route: Optional[str | Exception] = None,
        answer: Optional[str | Exception | Callable[[str], str]] = None,
    ) -> None:
        self.route = route
        self.answer = answer
        self.calls: list[dict] = []

    def _reply(self, value, system_prompt: str) -> str:
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(system_prompt)
        return value

    def complete(self, system_prompt: str, messages: Sequence[LLMMessage], **kw) -> str:
        kind = "route" if kw.get("json_mode") else "answer"
        self.calls.append({"kind": kind, "system": system_prompt, "messages": list(messages), **kw})
        if kind == "route":
            if self.route is None:
                raise LLMError("no routing reply scripted")
            return self._reply(self.route, system_prompt)
        if self.answer is None:
            return f"ECHO:\n{system_prompt}"
        return self._reply(self.answer, system_prompt)

    def calls_of(self, kind: str) -> list[dict]:
        return [c for c in self.calls if c["kind"] == kind]


def route_json(sources: list[str], **params) -> str:
    return json.dumps({"dataSources": sources, "searchParams": params})


@pytest.fixture
def cfg(tmp_path) -> Settings:
    return Settings(
        DB_PATH=tmp_path / "assistant.sqlite3",
        MIGRATIONS_DIR=MIGRATIONS_DIR,
        LLM_PROVIDER="mock",
        SOURCE_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def db_path(cfg) -> Path:
    with get_conn(cfg.DB_PATH) as conn:
        apply_migrations(conn, MIGRATIONS_DIR)
    return cfg.DB_PATH


# ----------------------------
# Seed helpers
# ----------------------------

def add_state(db_path: Path, name: str) -> int:
    with get_conn(db_path) as conn:
        return conn.execute("INSERT INTO states(name) VALUES(?)", (name,)).lastrowid


def add_brand(db_path: Path, name: str, logo_url: Optional[str] = None) -> int:
    with get_conn(db_path) as conn:
        return conn.execute("INSERT INTO brands(name, logo_url) VALUES(?, ?)", (name, logo_url)).lastrowid


def add_product(db_path: Path, name: str, brand_id: Optional[int]) -> int:
    with get_conn(db_path) as conn:
        return conn.execute("INSERT INTO products(name, brand_id) VALUES(?, ?)", (name, brand_id)).lastrowid


def allow(db_path: Path, state_id: int, product_id: int) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            "INSERT INTO state_allowed_products(state_id, product_id) VALUES(?, ?)",
            (state_id, product_id),
        )


def add_knowledge(
    db_path: Path,
    id: str,
    title: str,
    content: str,
    *,
    tags: Optional[list[str]] = None,
    updated_at: str = "2024-01-01 00:00:00",
    is_active: int = 1,
) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO knowledge_entries(id, title, content, tags, is_active, updated_at)
            VALUES(?, ?, ?, ?, ?, ?)
            """,
            (id, title, content, json.dumps(tags or []), is_active, updated_at),
        )


def add_file(
    db_path: Path,
    id: str,
    file_name: str,
    mime_type: str,
    *,
    brand: Optional[str] = None,
    category: Optional[str] = None,
    file_url: Optional[str] = None,
    subcategories: Sequence[str] = (),
) -> None:
    subs = list(subcategories) + [None] * (6 - len(subcategories))
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO drive_files(
                id, file_name, file_url, mime_type, brand, category,
                subcategory_1, subcategory_2, subcategory_3,
                subcategory_4, subcategory_5, subcategory_6
            ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (id, file_name, file_url, mime_type, brand, category, *subs),
        )


@pytest.fixture
def seeded_catalog(db_path):
    """Texas/Florida/New Mexico x BrandX/Galaxy Treats/Galaxy Labs."""
    ids = {
        "texas": add_state(db_path, "Texas"),
        "florida": add_state(db_path, "Florida"),
        "new_mexico": add_state(db_path, "New Mexico"),
        "brandx": add_brand(db_path, "BrandX"),
        "galaxy_treats": add_brand(db_path, "Galaxy Treats"),
        "galaxy_labs": add_brand(db_path, "Galaxy Labs"),
    }
    ids["delta8"] = add_product(db_path, "Delta-8 Gummies", ids["brandx"])
    ids["thca"] = add_product(db_path, "THCA Flower", ids["brandx"])
    ids["galaxy_gummies"] = add_product(db_path, "Galaxy Gummies", ids["galaxy_treats"])
    ids["labs_vape"] = add_product(db_path, "Labs Vape", ids["galaxy_labs"])

    allow(db_path, ids["texas"], ids["delta8"])
    allow(db_path, ids["texas"], ids["thca"])
    allow(db_path, ids["texas"], ids["galaxy_gummies"])
    allow(db_path, ids["texas"], ids["labs_vape"])
    allow(db_path, ids["florida"], ids["delta8"])
    return ids
