"""Domain events and user notifications.

Defines event type constants with a simple publish() callable used by the save
and submit flows, plus the `Notifier` protocol through which the engine emits
user-facing signals (success, error, info) to its host application.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol
import logging

logger = logging.getLogger(__name__)

ASSESSMENT_CREATED = "assessment.created"
ASSESSMENT_UPDATED = "assessment.updated"
RESPONSE_SUBMITTED = "response.submitted"

NOTIFY_SUCCESS = "success"
NOTIFY_ERROR = "error"
NOTIFY_INFO = "info"


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """Publish a domain event.

    Events are logged and buffered in-memory for observation.
    """
    logger.info("event_publish type=%s payload=%s", event_type, payload)
    EVENT_BUFFER.append({"type": event_type, "payload": payload})


EVENT_BUFFER: List[Dict[str, Any]] = []


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered domain events; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


class Notifier(Protocol):
    def notify(self, kind: str, message: str) -> None: ...


class LoggingNotifier:
    """Notifier that logs each notification and keeps it for later inspection."""

    def __init__(self) -> None:
        self._buffer: List[Dict[str, str]] = []

    def notify(self, kind: str, message: str) -> None:
        level = logging.WARNING if kind == NOTIFY_ERROR else logging.INFO
        logger.log(level, "notify kind=%s message=%s", kind, message)
        self._buffer.append({"kind": kind, "message": message})

    def get_buffered(self, clear: bool = False) -> List[Dict[str, str]]:
        items = list(self._buffer)
        if clear:
            self._buffer.clear()
        return items


__all__ = [
    "ASSESSMENT_CREATED",
    "ASSESSMENT_UPDATED",
    "RESPONSE_SUBMITTED",
    "NOTIFY_SUCCESS",
    "NOTIFY_ERROR",
    "NOTIFY_INFO",
    "publish",
    "get_buffered_events",
    "EVENT_BUFFER",
    "Notifier",
    "LoggingNotifier",
]
