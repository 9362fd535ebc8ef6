"""Lightweight SQL migrations runner.

Applies .sql files in lexical order from a migrations directory and records
applied filenames in a `schema_migrations` table so the same migration is never
applied twice. Two migration sets ship with the package: `canonical/` for the
canonical assessment store and `drafts/` for the local draft store.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

MIGRATIONS_ROOT = Path(__file__).resolve().parent / "migrations"
CANONICAL_MIGRATIONS = MIGRATIONS_ROOT / "canonical"
DRAFT_MIGRATIONS = MIGRATIONS_ROOT / "drafts"


def _iter_sql_files(root: Path) -> Iterable[Path]:
    for p in sorted(root.glob("*.sql")):
        if "rollback" in p.name.lower():
            continue
        yield p


def _exec_script(conn: Connection, sql: str) -> None:
    """Execute a multi-statement SQL file one statement at a time.

    pysqlite rejects several statements in one execute() call. `--` comment
    lines are dropped before splitting on ';' so a semicolon inside a comment
    never ends a statement.
    """
    body = "\n".join(ln for ln in sql.splitlines() if not ln.strip().startswith("--"))
    for stmt in body.split(";"):
        s = stmt.strip()
        if not s:
            continue
        conn.exec_driver_sql(s)


def _ensure_journal(conn: Connection) -> set[str]:
    conn.exec_driver_sql(
        "CREATE TABLE IF NOT EXISTS schema_migrations ("
        " filename TEXT PRIMARY KEY,"
        " applied_at TEXT NOT NULL)"
    )
    rows = conn.execute(sql_text("SELECT filename FROM schema_migrations")).fetchall()
    return {str(r[0]) for r in rows}


def apply_migrations(engine: Engine, migrations_dir: str | os.PathLike[str] = CANONICAL_MIGRATIONS) -> list[str]:
    """Apply pending migrations from ``migrations_dir``; return the filenames applied."""
    root = Path(migrations_dir)
    if not root.exists():
        logger.warning("migrations_dir_missing path=%s", root)
        return []

    applied_now: list[str] = []
    with engine.begin() as conn:
        applied = _ensure_journal(conn)
        for sql_path in _iter_sql_files(root):
            key = f"{root.name}/{sql_path.name}"
            if key in applied:
                continue
            sql = sql_path.read_text(encoding="utf-8")
            if not sql.strip():
                continue
            _exec_script(conn, sql)
            conn.execute(
                sql_text("INSERT INTO schema_migrations (filename, applied_at) VALUES (:f, :at)"),
                {
                    "f": key,
                    # ISO-8601 UTC without fractional seconds
                    "at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
                },
            )
            applied_now.append(key)
            logger.info("migration_applied file=%s", key)
    return applied_now


__all__ = ["CANONICAL_MIGRATIONS", "DRAFT_MIGRATIONS", "apply_migrations"]
