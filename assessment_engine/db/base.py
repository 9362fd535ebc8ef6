"""SQLAlchemy engine construction.

The canonical store and the local draft store are both SQLite databases
reached through SQLAlchemy Core. No declarative models are defined here; this
module only manages engine lifecycle.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return (
        os.getenv("TEST_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or "sqlite+pysqlite:///:memory:"
    )


# Module-level cached Engine shared by the canonical repositories
_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None


def build_engine(url: str) -> Engine:
    """Create a new Engine for ``url``.

    SQLite in-memory URLs get a StaticPool so a single connection (and thus a
    single database) is shared across threads for the Engine's lifetime.
    """
    kwargs: dict = {"future": True, "pool_pre_ping": True}
    if url.startswith("sqlite") and ":memory:" in url:
        kwargs.update({
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        })
    logger.info("engine_created dialect=%s memory=%s", url.split(":", 1)[0], ":memory:" in url)
    return create_engine(url, **kwargs)


def get_engine(url: str | None = None) -> Engine:
    """Return the shared canonical-store Engine.

    With no ``url`` the current Engine is reused (or one is created from the
    environment). A different ``url`` replaces the shared Engine.
    """
    global _ENGINE, _ENGINE_URL
    resolved_url = url or _ENGINE_URL or _db_url()

    if _ENGINE is None or _ENGINE_URL != resolved_url:
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = build_engine(resolved_url)
        _ENGINE_URL = resolved_url

    return _ENGINE


def reset_engine() -> None:
    """Dispose the shared Engine so the next get_engine() builds a fresh one."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None


__all__ = ["build_engine", "get_engine", "reset_engine"]
