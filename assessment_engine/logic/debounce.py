"""Keyed debouncing with explicit schedule/cancel handles.

A `Debouncer` keeps at most one pending action per key. Scheduling a key that
already has a pending action cancels and replaces it, so N mutations inside
the quiet period collapse into one action timed from the last mutation.

Timers come from an injectable `Scheduler`; the default schedules on the
running asyncio loop via `call_later`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class _Pending:
    __slots__ = ("handle", "action")

    def __init__(self, action: Callable[[], None]) -> None:
        self.action = action
        self.handle: Optional[TimerHandle] = None


class Debouncer:
    def __init__(self, scheduler: Optional[Scheduler] = None) -> None:
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._pending: Dict[str, _Pending] = {}

    def schedule(self, key: str, delay: float, action: Callable[[], None]) -> None:
        """Run ``action`` after ``delay`` seconds unless ``key`` is rescheduled first."""
        self.cancel(key)
        entry = _Pending(action)
        entry.handle = self._scheduler.call_later(delay, lambda: self._fire(key, entry))
        self._pending[key] = entry
        logger.debug("debounce_scheduled key=%s delay=%s", key, delay)

    def _fire(self, key: str, entry: _Pending) -> None:
        # A replaced entry whose timer still fires must not run.
        if self._pending.get(key) is not entry:
            return
        del self._pending[key]
        self._run(key, entry)

    def _run(self, key: str, entry: _Pending) -> None:
        try:
            entry.action()
        except Exception:
            logger.error("debounce_action_failed key=%s", key, exc_info=True)

    def cancel(self, key: str) -> bool:
        """Cancel the pending action for ``key`` without running it."""
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        logger.debug("debounce_cancelled key=%s", key)
        return True

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def flush(self, key: str) -> bool:
        """Run the pending action for ``key`` now; False when nothing was pending."""
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        self._run(key, entry)
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> List[str]:
        return sorted(self._pending)


__all__ = ["TimerHandle", "Scheduler", "AsyncioScheduler", "Debouncer"]
