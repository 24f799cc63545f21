"""Activity log: append-only, fire-and-forget feed entries.

``record()`` only enqueues; a background writer persists entries and fans
them out over Redis. Write failures are logged and counted, never raised to
whoever triggered the entry.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable

from prometheus_client import Counter

from peerlearn.logging_config import get_logger
from peerlearn.redis import activity_channel, get_redis
from peerlearn.schemas import ACTIVITY_TYPES, ActivityEntry, parse_document
from peerlearn.store import ACTIVITY, SERVER_TIMESTAMP, DocumentStore, Query

logger = get_logger(__name__)

ACTIVITY_WRITES = Counter(
    "peerlearn_activity_writes_total",
    "Activity entries persisted",
    ["type"],
)
ACTIVITY_WRITE_FAILURES = Counter(
    "peerlearn_activity_write_failures_total",
    "Activity entries that could not be persisted",
    ["type"],
)
ACTIVITY_DROPPED = Counter(
    "peerlearn_activity_dropped_total",
    "Activity entries dropped before reaching the writer",
)


@dataclass(frozen=True)
class PendingEntry:
    user_id: str
    text: str
    type: str


class ActivityLog:
    """Non-blocking activity sink with its own writer task."""

    def __init__(
        self,
        store: DocumentStore,
        redis_getter: Callable[[], Any] = get_redis,
        maxsize: int = 1000,
    ):
        self._store = store
        self._redis_getter = redis_getter
        self._maxsize = maxsize
        self._queue: asyncio.Queue[PendingEntry] | None = None
        self._worker: asyncio.Task | None = None

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        """Start the writer on the running event loop (idempotent)."""
        if self._worker is not None and not self._worker.done():
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name="activity-log-writer"
        )
        logger.info("activity_log_started", maxsize=self._maxsize)

    async def flush(self) -> None:
        """Wait until every entry recorded so far has been written or dropped."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then stop the writer."""
        if self._worker is None:
            return
        await self.flush()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        logger.info("activity_log_stopped")

    # -- recording --------------------------------------------------------

    def record(self, user_id: str, text: str, type: str = "info") -> None:
        """Queue one entry for ``user_id``'s feed. Never blocks, never raises."""
        if type not in ACTIVITY_TYPES:
            type = "info"
        if not user_id:
            ACTIVITY_DROPPED.inc()
            logger.warning("activity_dropped", reason="missing_user", text=text)
            return
        try:
            if self._worker is None or self._worker.done():
                self.start()
            self._queue.put_nowait(PendingEntry(user_id=user_id, text=text, type=type))
        except asyncio.QueueFull:
            ACTIVITY_DROPPED.inc()
            logger.warning("activity_dropped", reason="queue_full", user_id=user_id)
        except RuntimeError as e:
            # No running event loop to host the writer
            ACTIVITY_DROPPED.inc()
            logger.warning("activity_dropped", reason="no_event_loop", error=str(e))

    async def _run(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            entry = await queue.get()
            try:
                await self._write(entry)
            except Exception as e:
                ACTIVITY_WRITE_FAILURES.labels(type=entry.type).inc()
                logger.warning(
                    "activity_write_failed",
                    user_id=entry.user_id,
                    activity_type=entry.type,
                    error=str(e),
                )
            finally:
                queue.task_done()

    async def _write(self, entry: PendingEntry) -> str:
        doc_id = await self._store.create(
            ACTIVITY,
            {
                "user_id": entry.user_id,
                "text": entry.text,
                "type": entry.type,
                "created_at": SERVER_TIMESTAMP,
            },
        )
        ACTIVITY_WRITES.labels(type=entry.type).inc()
        logger.info(
            "activity_logged",
            user_id=entry.user_id,
            activity_type=entry.type,
            message=entry.text,
        )

        redis = self._redis_getter()
        if redis is not None:
            channel = activity_channel(entry.user_id)
            event = json.dumps({
                "id": doc_id,
                "user_id": entry.user_id,
                "type": entry.type,
                "text": entry.text,
            })
            try:
                await redis.publish(channel, event)
            except Exception as e:
                logger.warning("redis_publish_failed", channel=channel, error=str(e))
        return doc_id

    # -- reading ----------------------------------------------------------

    async def list_for_user(
        self,
        user_id: str,
        type: str | None = None,
        q: str | None = None,
        limit: int = 10,
    ) -> list[ActivityEntry]:
        """The user's feed, newest first, optionally filtered by type and text."""
        query = Query(ACTIVITY).where("user_id", "==", user_id).order("created_at", "desc")
        if type and type != "All":
            query = query.where("type", "==", type)
        rows = await self._store.query(query if q else query.take(limit))
        entries = [parse_document(ActivityEntry, r) for r in rows]
        if q and q.strip():
            needle = q.strip().lower()
            entries = [e for e in entries if needle in e.text.lower()]
        return entries[:limit]
