"""Database bootstrap utilities for the assessment engine.

This module exposes convenience imports for engine construction and the
migrations runner that applies SQL files from the packaged `migrations/`
directories. The DB layer is intentionally minimal and does not leak ORM
models into route handlers.
"""

from assessment_engine.db.base import build_engine, get_engine, reset_engine
from assessment_engine.db.migrations_runner import (
    CANONICAL_MIGRATIONS,
    DRAFT_MIGRATIONS,
    apply_migrations,
)

__all__ = [
    "build_engine",
    "get_engine",
    "reset_engine",
    "CANONICAL_MIGRATIONS",
    "DRAFT_MIGRATIONS",
    "apply_migrations",
]
