import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

@contextmanager
def get_conn(db_path: Optional[Path] = None):
    path = Path(db_path or settings.DB_PATH)
    _ensure_parent_dir(path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def apply_migrations(conn: sqlite3.Connection, migrations_dir: Optional[Path] = None) -> list[str]:
    """
    Apply every *.sql file in migrations_dir exactly once, in filename order.
    Returns the filenames applied by this call.
    """
    migrations_dir = Path(migrations_dir or settings.MIGRATIONS_DIR)
    conn.execute("""
    CREATE TABLE IF NOT EXISTS migrations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT NOT NULL UNIQUE,
        applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """)
    conn.commit()

    applied: list[str] = []
    for f in sorted(migrations_dir.glob("*.sql")):
        already = conn.execute("SELECT 1 FROM migrations WHERE filename = ?", (f.name,)).fetchone()
        if already:
            continue
        conn.executescript(f.read_text(encoding="utf-8"))
        conn.execute("INSERT INTO migrations(filename) VALUES(?)", (f.name,))
        conn.commit()
        logger.info("db.migration applied=%s", f.name)
        applied.append(f.name)
    return applied
