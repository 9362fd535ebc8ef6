"""Local draft store for in-progress authoring and answering.

Drafts live in a client-embedded SQLite database reached through SQLAlchemy
Core, one row per key in the `draft` table:

- ``author:<assessment_id>`` holds a full assessment snapshot.
- ``response:<assessment_id>`` holds a candidate's partial answers.

The store never raises on storage failure: when the database cannot be
reached, reads return None and writes are skipped with a WARNING. A payload
that cannot be parsed, or an author snapshot with a self, forward or dangling
conditional reference, is logged at ERROR and treated as "no draft".

Writes can be debounced through `schedule_author_draft` and
`schedule_response_draft`; the quiet period restarts on every new mutation so
only the last snapshot is written.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from assessment_engine.config import DraftsConfig
from assessment_engine.db.base import build_engine
from assessment_engine.db.migrations_runner import DRAFT_MIGRATIONS, apply_migrations
from assessment_engine.logic.assessment_validation import validate_conditionals
from assessment_engine.logic.debounce import Debouncer
from assessment_engine.models.assessment import Assessment, utcnow
from assessment_engine.models.drafts import (
    AuthorDraft,
    AuthorDraftPayload,
    DraftKind,
    ResponseDraft,
    ResponseDraftPayload,
)

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=7)


def author_key(assessment_id: str) -> str:
    return f"{DraftKind.AUTHOR}:{assessment_id}"


def response_key(assessment_id: str) -> str:
    return f"{DraftKind.RESPONSE}:{assessment_id}"


def _stamp(value: datetime) -> str:
    # Fixed-width UTC text keeps lexical and chronological order aligned
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class StorageInfo(BaseModel):
    author_drafts: int = 0
    response_drafts: int = 0
    total_entries: int = 0
    size_kb: float = 0.0


class DraftStore:
    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        dsn: Optional[str] = None,
        debouncer: Optional[Debouncer] = None,
        author_debounce_seconds: float = 2.0,
        response_debounce_seconds: float = 1.0,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine or build_engine(dsn or "sqlite+pysqlite:///:memory:")
        self._debouncer = debouncer or Debouncer()
        self.author_debounce_seconds = author_debounce_seconds
        self.response_debounce_seconds = response_debounce_seconds
        self.retention = retention
        self._clock = clock
        try:
            apply_migrations(self._engine, DRAFT_MIGRATIONS)
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.migrations_failed; store unavailable", exc_info=True)

    @classmethod
    def from_config(
        cls,
        config: DraftsConfig,
        debouncer: Optional[Debouncer] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "DraftStore":
        return cls(
            dsn=config.dsn,
            debouncer=debouncer,
            author_debounce_seconds=config.author_debounce_seconds,
            response_debounce_seconds=config.response_debounce_seconds,
            retention=timedelta(days=config.retention_days),
            clock=clock,
        )

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    # ----- low-level row access -----

    def _write(self, key: str, kind: str, assessment_id: str, payload: str, saved_at: datetime) -> bool:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    sql_text(
                        """
                        INSERT INTO draft (draft_key, kind, assessment_id, payload, saved_at)
                        VALUES (:k, :kind, :aid, :payload, :saved_at)
                        ON CONFLICT (draft_key) DO UPDATE SET
                            payload = excluded.payload,
                            saved_at = excluded.saved_at
                        """
                    ),
                    {"k": key, "kind": kind, "aid": assessment_id, "payload": payload, "saved_at": _stamp(saved_at)},
                )
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.write_skipped key=%s", key, exc_info=True)
            return False
        logger.info("draft_store.written key=%s", key)
        return True

    def _read(self, key: str) -> Optional[str]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    sql_text("SELECT payload FROM draft WHERE draft_key = :k"),
                    {"k": key},
                ).fetchone()
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.read_skipped key=%s", key, exc_info=True)
            return None
        return str(row[0]) if row else None

    def _delete(self, key: str) -> bool:
        try:
            with self._engine.begin() as conn:
                conn.execute(sql_text("DELETE FROM draft WHERE draft_key = :k"), {"k": key})
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.delete_skipped key=%s", key, exc_info=True)
            return False
        return True

    # ----- author drafts -----

    def save_author_draft(self, assessment: Assessment) -> bool:
        saved_at = self._clock()
        payload = AuthorDraftPayload(
            assessment_id=assessment.id,
            saved_at=saved_at,
            assessment=assessment.to_document(),
        )
        return self._write(
            author_key(assessment.id),
            DraftKind.AUTHOR,
            assessment.id,
            payload.model_dump_json(by_alias=True),
            saved_at,
        )

    def _parse_author(self, key: str, raw: str) -> Optional[AuthorDraft]:
        try:
            payload = AuthorDraftPayload.model_validate_json(raw)
            snapshot = Assessment.from_document(payload.assessment)
        except (PydanticValidationError, ValueError):
            logger.error("draft_store.corrupt_draft key=%s", key, exc_info=True)
            return None
        reference_errors = validate_conditionals(snapshot)
        if reference_errors:
            logger.error(
                "draft_store.corrupt_draft key=%s reason=%s question_id=%s",
                key,
                reference_errors[0].code,
                reference_errors[0].question_id,
            )
            return None
        return AuthorDraft(assessment_id=payload.assessment_id, snapshot=snapshot, saved_at=payload.saved_at)

    def load_author_draft(self, assessment_id: str) -> Optional[AuthorDraft]:
        key = author_key(assessment_id)
        raw = self._read(key)
        if raw is None:
            return None
        return self._parse_author(key, raw)

    def clear_author_draft(self, assessment_id: str) -> bool:
        return self._delete(author_key(assessment_id))

    def list_author_drafts(self) -> List[AuthorDraft]:
        """Return every readable author draft, newest first."""
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    sql_text(
                        "SELECT draft_key, payload FROM draft WHERE kind = :kind ORDER BY saved_at DESC, draft_key ASC"
                    ),
                    {"kind": DraftKind.AUTHOR},
                ).fetchall()
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.list_skipped", exc_info=True)
            return []
        drafts: List[AuthorDraft] = []
        for key, raw in rows:
            draft = self._parse_author(str(key), str(raw))
            if draft is not None:
                drafts.append(draft)
        return drafts

    # ----- response drafts -----

    def save_response_draft(self, assessment_id: str, answers: Mapping[str, object]) -> bool:
        saved_at = self._clock()
        payload = ResponseDraftPayload(assessment_id=assessment_id, saved_at=saved_at, answers=dict(answers))
        return self._write(
            response_key(assessment_id),
            DraftKind.RESPONSE,
            assessment_id,
            payload.model_dump_json(by_alias=True),
            saved_at,
        )

    def load_response_draft(self, assessment_id: str) -> Optional[ResponseDraft]:
        key = response_key(assessment_id)
        raw = self._read(key)
        if raw is None:
            return None
        try:
            payload = ResponseDraftPayload.model_validate_json(raw)
        except (PydanticValidationError, ValueError):
            logger.error("draft_store.corrupt_draft key=%s", key, exc_info=True)
            return None
        return ResponseDraft(assessment_id=payload.assessment_id, answers=payload.answers, saved_at=payload.saved_at)

    def clear_response_draft(self, assessment_id: str) -> bool:
        return self._delete(response_key(assessment_id))

    # ----- debounced writes -----

    def schedule_author_draft(self, assessment: Assessment) -> None:
        """Write ``assessment`` once the author has been quiet for the debounce period."""
        self._debouncer.schedule(
            author_key(assessment.id),
            self.author_debounce_seconds,
            lambda: self.save_author_draft(assessment),
        )

    def schedule_response_draft(self, assessment_id: str, answers: Mapping[str, object]) -> None:
        """Write ``answers`` after the quiet period; an empty answer map is never written."""
        key = response_key(assessment_id)
        if not answers:
            self._debouncer.cancel(key)
            return
        snapshot = dict(answers)
        self._debouncer.schedule(
            key,
            self.response_debounce_seconds,
            lambda: self.save_response_draft(assessment_id, snapshot),
        )

    def cancel_pending(self, key: str) -> bool:
        return self._debouncer.cancel(key)

    def flush(self, key: str) -> bool:
        return self._debouncer.flush(key)

    def close(self) -> None:
        """Cancel pending writes without firing them."""
        self._debouncer.cancel_all()

    # ----- housekeeping -----

    def cleanup(self, max_age: Optional[timedelta] = None) -> int:
        """Delete drafts older than ``max_age`` (default: retention window); return the count."""
        cutoff = self._clock() - (max_age if max_age is not None else self.retention)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    sql_text("DELETE FROM draft WHERE saved_at < :cutoff"),
                    {"cutoff": _stamp(cutoff)},
                )
                removed = int(result.rowcount or 0)
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.cleanup_skipped", exc_info=True)
            return 0
        logger.info("draft_store.cleanup removed=%s cutoff=%s", removed, _stamp(cutoff))
        return removed

    def storage_info(self) -> StorageInfo:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    sql_text(
                        "SELECT kind, COUNT(*), COALESCE(SUM(LENGTH(draft_key) + LENGTH(payload)), 0) FROM draft GROUP BY kind"
                    )
                ).fetchall()
        except (SQLAlchemyError, OSError):
            logger.warning("draft_store.storage_info_skipped", exc_info=True)
            return StorageInfo()
        counts: Dict[str, int] = {}
        size = 0
        for kind, count, chars in rows:
            counts[str(kind)] = int(count)
            size += int(chars)
        return StorageInfo(
            author_drafts=counts.get(DraftKind.AUTHOR, 0),
            response_drafts=counts.get(DraftKind.RESPONSE, 0),
            total_entries=sum(counts.values()),
            size_kb=round(size / 1024, 2),
        )

    def is_available(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(sql_text("SELECT 1 FROM draft LIMIT 1")).fetchall()
        except (SQLAlchemyError, OSError):
            return False
        return True


__all__ = [
    "DEFAULT_RETENTION",
    "author_key",
    "response_key",
    "StorageInfo",
    "DraftStore",
]
