"""Background session persistence.

Saving a session must never delay or fail a chat response, so the chat
route hands finished transcripts to a :class:`SessionSaver` and returns.
A single worker drains the queue in submission order, which makes the
last submitted save for a session the one that sticks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from metis.core.metrics import SESSION_SAVES_PENDING, SESSION_SAVES_TOTAL

from .sessions import SessionStore

logger = logging.getLogger(__name__)

SAVE_STATUS_OK = "ok"
SAVE_STATUS_ERROR = "error"
SAVE_STATUS_DROPPED = "dropped"


@dataclass(frozen=True)
class PendingSave:
    session_id: str
    dashboard: str
    messages: list[dict[str, Any]]


class SessionSaver:
    """Fire-and-forget upserts through a bounded queue."""

    def __init__(
        self,
        store: SessionStore,
        *,
        max_pending: int = 100,
        drain_timeout: timedelta = timedelta(seconds=5),
    ) -> None:
        self._store = store
        self._queue: asyncio.Queue[PendingSave] = asyncio.Queue(maxsize=max_pending)
        self._drain_timeout = drain_timeout
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="session-saver")

    def submit(
        self, session_id: str, dashboard: str, messages: list[dict[str, Any]]
    ) -> bool:
        """Queue a save. Returns ``False`` (and logs) when it was dropped."""
        if self._closed:
            logger.warning("Session saver closed; dropping save for %s.", session_id)
            SESSION_SAVES_TOTAL.labels(status=SAVE_STATUS_DROPPED).inc()
            return False
        try:
            self._queue.put_nowait(PendingSave(session_id, dashboard, messages))
        except asyncio.QueueFull:
            logger.warning("Session save queue full; dropping save for %s.", session_id)
            SESSION_SAVES_TOTAL.labels(status=SAVE_STATUS_DROPPED).inc()
            return False
        SESSION_SAVES_PENDING.set(self._queue.qsize())
        return True

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._store.upsert(item.session_id, item.dashboard, item.messages)
                SESSION_SAVES_TOTAL.labels(status=SAVE_STATUS_OK).inc()
            except Exception:
                SESSION_SAVES_TOTAL.labels(status=SAVE_STATUS_ERROR).inc()
                logger.warning(
                    "Background save failed for session %s.",
                    item.session_id,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
                SESSION_SAVES_PENDING.set(self._queue.qsize())

    async def aclose(self) -> None:
        """Stop accepting saves, drain what is queued, then stop the worker."""
        self._closed = True
        if self._worker is None:
            return
        try:
            async with asyncio.timeout(self._drain_timeout.total_seconds()):
                await self._queue.join()
        except TimeoutError:
            logger.warning(
                "Shutdown drain timed out; %d session saves lost.", self._queue.qsize()
            )
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
