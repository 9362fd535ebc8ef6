"""Idempotency helpers for assessment creation.

Encapsulates idempotency-key handling to keep the reconciliation service and
route logic slim.
"""

from __future__ import annotations

import uuid
from typing import Optional

MAX_KEY_LENGTH = 255


def new_idempotency_key() -> str:
    """Return a fresh key; one is minted per save and reused across its retries."""
    return str(uuid.uuid4())


def normalize_idempotency_key(raw: Optional[str]) -> Optional[str]:
    """Return the trimmed header value, None when absent or blank.

    Raises ValueError when the key exceeds MAX_KEY_LENGTH characters.
    """
    if raw is None:
        return None
    key = raw.strip()
    if not key:
        return None
    if len(key) > MAX_KEY_LENGTH:
        raise ValueError(f"Idempotency-Key must be at most {MAX_KEY_LENGTH} characters")
    return key


__all__ = ["MAX_KEY_LENGTH", "new_idempotency_key", "normalize_idempotency_key"]
