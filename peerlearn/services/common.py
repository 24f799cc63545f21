"""Shared plumbing for the lifecycle services."""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Generic, Iterator, TypeVar

from peerlearn.auth import CurrentUser
from peerlearn.config import Settings, get_settings
from peerlearn.errors import (
    DEFAULT_MESSAGE,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    from_store_error,
)
from peerlearn.logging_config import get_logger
from peerlearn.schemas import Document, parse_document
from peerlearn.services.activity_service import ActivityLog
from peerlearn.state_machine import validate_transition
from peerlearn.store import SERVER_TIMESTAMP, DocumentStore, utcnow

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Document)


@contextmanager
def store_errors(fallback: str = DEFAULT_MESSAGE) -> Iterator[None]:
    """Surface store failures as workflow errors with a short message."""
    try:
        yield
    except StoreError as e:
        logger.warning("store_call_failed", code=e.code, error=e.message)
        raise from_store_error(e, fallback) from e


def matches_search(q: str | None, *values: Any) -> bool:
    """Case-insensitive substring match of ``q`` against any non-empty value."""
    if not q or not q.strip():
        return True
    needle = q.strip().lower()
    return any(needle in str(v).lower() for v in values if v not in (None, ""))


class LifecycleService(Generic[ModelT]):
    """Load → authorize → validate transition → write → log, for one entity kind."""

    entity: str
    collection: str
    model: type[ModelT]
    actor_field: str
    activity_type: str
    not_found_message = "Not found."
    permission_message = "You don't have permission to access this data."
    view_permission_message = "You don't have permission to access this data."
    # Fields besides ``actor_field`` whose user may read the document
    viewer_fields: tuple[str, ...] = ()

    def __init__(
        self,
        store: DocumentStore,
        activity: ActivityLog,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._activity = activity
        self._settings = settings or get_settings()
        self._clock = clock

    async def _load(self, doc_id: str, fallback: str) -> ModelT:
        with store_errors(fallback):
            raw = await self._store.get(self.collection, doc_id)
            if raw is None:
                raise NotFoundError(self.not_found_message)
            return parse_document(self.model, raw)

    def _authorize(self, user: CurrentUser, doc: ModelT) -> None:
        # Advisory; the store's access rules are the real boundary
        if getattr(doc, self.actor_field) != user.uid:
            self._deny(user, doc, self.permission_message)

    def _authorize_view(self, user: CurrentUser, doc: ModelT) -> None:
        allowed = {getattr(doc, f) for f in (self.actor_field, *self.viewer_fields)}
        if user.uid not in allowed:
            self._deny(user, doc, self.view_permission_message)

    def _deny(self, user: CurrentUser, doc: ModelT, message: str) -> None:
        logger.warning(
            "permission_denied",
            entity=self.entity,
            doc_id=doc.id,
            user_id=user.uid,
        )
        raise PermissionDeniedError(message)

    async def _transition(
        self,
        user: CurrentUser,
        doc: ModelT,
        target: str,
        message: str,
        fallback: str,
        fields: dict[str, Any] | None = None,
    ) -> ModelT:
        validate_transition(self.entity, doc.status, target)
        update = {"status": target, "updated_at": SERVER_TIMESTAMP, **(fields or {})}
        with store_errors(fallback):
            await self._store.update(self.collection, doc.id, update)

        logger.info(
            f"{self.entity}_status_changed",
            doc_id=doc.id,
            from_status=doc.status,
            to_status=target,
            user_id=user.uid,
        )
        self._activity.record(user.uid, message, self.activity_type)

        return doc.model_copy(update={**update, "updated_at": self._clock()})
