"""Document store interface shared by the in-memory and SQL adapters.

The workflow only needs a handful of operations from its store: create a
document with a generated id, fetch by id, merge fields into a document,
run a filtered/ordered/limited query, subscribe to a query's results, and
stage several writes as one unit. ``SERVER_TIMESTAMP`` marks fields whose
value the store assigns at write time.
"""

from __future__ import annotations

import inspect
import operator
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import TracebackType
from typing import Any, Awaitable, Callable
from uuid import uuid4

from peerlearn.errors import INVALID_ARGUMENT, StoreError
from peerlearn.logging_config import get_logger

logger = get_logger(__name__)

CHALLENGES = "challenges"
TEACHBACKS = "teachbacks"
FEEDBACK_QUEUE = "feedback_queue"
ACTIVITY = "activity"
PROFILES = "profiles"

COLLECTIONS: tuple[str, ...] = (CHALLENGES, TEACHBACKS, FEEDBACK_QUEUE, ACTIVITY, PROFILES)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_document_id() -> str:
    return uuid4().hex


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise StoreError(INVALID_ARGUMENT, f"Unsupported filter operator '{self.op}'")

    def matches(self, doc: dict[str, Any]) -> bool:
        actual = doc.get(self.field)
        if actual is None and self.op not in ("==", "!="):
            return False
        try:
            return OPERATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class Query:
    """Collection query: equality/range filters, ordering and a limit."""

    collection: str
    filters: tuple[Filter, ...] = ()
    order_by: tuple[tuple[str, str], ...] = ()
    limit: int | None = None

    def where(self, field_name: str, op: str, value: Any) -> Query:
        return replace(self, filters=(*self.filters, Filter(field_name, op, value)))

    def order(self, field_name: str, direction: str = "asc") -> Query:
        if direction not in ("asc", "desc"):
            raise StoreError(INVALID_ARGUMENT, f"Unsupported sort direction '{direction}'")
        return replace(self, order_by=(*self.order_by, (field_name, direction)))

    def take(self, limit: int) -> Query:
        return replace(self, limit=limit)


SnapshotCallback = Callable[[list[dict[str, Any]]], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


@dataclass(eq=False)
class _Subscription:
    query: Query
    callback: SnapshotCallback
    on_error: ErrorCallback | None = None
    active: bool = field(default=True)


async def _call(fn: Callable[..., Any], *args: Any) -> None:
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


class Batch(ABC):
    """Writes staged inside ``store.batch()``; applied together on exit."""

    def __init__(self, store: DocumentStore):
        self._store = store
        self._ops: list[tuple[str, str, str, dict[str, Any]]] = []

    def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = new_document_id()
        self._ops.append(("create", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._ops.append(("update", collection, doc_id, dict(fields)))

    @property
    def collections(self) -> set[str]:
        return {collection for _, collection, _, _ in self._ops}

    async def __aenter__(self) -> Batch:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self._ops.clear()
            return
        if not self._ops:
            return
        touched = self.collections
        await self.commit()
        await self._store._notify(touched)

    @abstractmethod
    async def commit(self) -> None:
        """Apply every staged operation, or none of them."""


class DocumentStore(ABC):
    """Abstract async document store."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._subscriptions: dict[str, list[_Subscription]] = defaultdict(list)

    # -- primitives -------------------------------------------------------

    @abstractmethod
    async def create(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document and return its generated id."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document (with its ``id``) or None."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document; StoreError('not-found') if absent."""

    @abstractmethod
    async def query(self, query: Query) -> list[dict[str, Any]]:
        """Run a query and return matching documents."""

    @abstractmethod
    def batch(self) -> Batch:
        """Return a batch; use as ``async with store.batch() as b:``."""

    async def close(self) -> None:
        self._subscriptions.clear()

    # -- subscriptions ----------------------------------------------------

    async def subscribe(
        self,
        query: Query,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Callable[[], None]:
        """Deliver the current results now and again after every write to the collection.

        Returns a callable that cancels the subscription.
        """
        sub = _Subscription(query=query, callback=callback, on_error=on_error)
        self._subscriptions[query.collection].append(sub)
        await self._deliver(sub)

        def unsubscribe() -> None:
            sub.active = False
            subs = self._subscriptions.get(query.collection, [])
            if sub in subs:
                subs.remove(sub)

        return unsubscribe

    async def _notify(self, collections: set[str]) -> None:
        for collection in collections:
            for sub in list(self._subscriptions.get(collection, [])):
                if sub.active:
                    await self._deliver(sub)

    async def _deliver(self, sub: _Subscription) -> None:
        try:
            rows = await self.query(sub.query)
        except Exception as e:
            if sub.on_error is None:
                logger.warning(
                    "subscription_query_failed",
                    collection=sub.query.collection,
                    error=str(e),
                )
                return
            await _call(sub.on_error, e)
            return
        # The triggering write has already committed
        try:
            await _call(sub.callback, rows)
        except Exception as e:
            if sub.on_error is None:
                logger.warning(
                    "subscription_callback_failed",
                    collection=sub.query.collection,
                    error=str(e),
                )
                return
            await _call(sub.on_error, e)

    # -- helpers ----------------------------------------------------------

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        """Replace SERVER_TIMESTAMP sentinels with the store clock."""
        now = self._clock()
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise StoreError(INVALID_ARGUMENT, f"Unknown collection '{collection}'")
