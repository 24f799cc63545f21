"""SQLAlchemy-backed document store (PostgreSQL in production)."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peerlearn.errors import (
    DEADLINE_EXCEEDED,
    FAILED_PRECONDITION,
    INVALID_ARGUMENT,
    NOT_FOUND,
    UNAVAILABLE,
    StoreError,
)
from peerlearn.logging_config import get_logger
from peerlearn.models import ROW_MODELS, Base
from peerlearn.store.base import Batch, DocumentStore, Query, new_document_id, utcnow

logger = get_logger(__name__)


@contextmanager
def _translate_errors(action: str, collection: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as StoreError with a hosted-store code."""
    try:
        yield
    except StoreError:
        raise
    except sa_exc.IntegrityError as e:
        raise StoreError(FAILED_PRECONDITION, f"{action} on {collection} violated a constraint") from e
    except sa_exc.TimeoutError as e:
        raise StoreError(DEADLINE_EXCEEDED, f"{action} on {collection} timed out") from e
    except sa_exc.SQLAlchemyError as e:
        logger.warning("sql_store_error", action=action, collection=collection, error=str(e))
        raise StoreError(UNAVAILABLE, f"{action} on {collection} failed") from e
    except OSError as e:
        raise StoreError(UNAVAILABLE, f"{action} on {collection} failed: {e}") from e


def _aware(value: Any) -> Any:
    # SQLite hands back naive datetimes even for timezone=True columns
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlBatch(Batch):
    async def commit(self) -> None:
        store: SqlDocumentStore = self._store  # type: ignore[assignment]
        touched = ",".join(sorted(self.collections))
        with _translate_errors("batch", touched):
            async with store._session_factory() as session:
                async with session.begin():
                    staged: dict[tuple[str, str], Base] = {}
                    for kind, collection, doc_id, data in self._ops:
                        model = store._model(collection)
                        values = store._columns(model, store._resolve(data))
                        if kind == "create":
                            row = model(id=doc_id, **values)
                            session.add(row)
                            staged[(collection, doc_id)] = row
                            continue
                        row = staged.get((collection, doc_id)) or await session.get(model, doc_id)
                        if row is None:
                            raise StoreError(NOT_FOUND, f"{collection}/{doc_id} does not exist")
                        for key, value in values.items():
                            setattr(row, key, value)
        self._ops.clear()


class SqlDocumentStore(DocumentStore):
    """Maps each collection to its ORM table in ``peerlearn.models``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(clock=clock)
        self._session_factory = session_factory

    @staticmethod
    def _model(collection: str) -> type[Base]:
        model = ROW_MODELS.get(collection)
        if model is None:
            raise StoreError(INVALID_ARGUMENT, f"Unknown collection '{collection}'")
        return model

    @staticmethod
    def _columns(model: type[Base], data: dict[str, Any]) -> dict[str, Any]:
        known = {attr.key for attr in sa_inspect(model).column_attrs}
        unknown = set(data) - known
        if unknown:
            raise StoreError(
                INVALID_ARGUMENT,
                f"Unknown field(s) for {model.__tablename__}: {sorted(unknown)}",
            )
        return {k: v for k, v in data.items() if k != "id"}

    @staticmethod
    def _to_doc(row: Base) -> dict[str, Any]:
        return {
            attr.key: _aware(getattr(row, attr.key))
            for attr in sa_inspect(type(row)).column_attrs
        }

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        model = self._model(collection)
        doc_id = data.get("id") or new_document_id()
        values = self._columns(model, self._resolve(data))
        with _translate_errors("create", collection):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(model(id=doc_id, **values))
        await self._notify({collection})
        return doc_id

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        model = self._model(collection)
        with _translate_errors("get", collection):
            async with self._session_factory() as session:
                row = await session.get(model, doc_id)
                return self._to_doc(row) if row is not None else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        model = self._model(collection)
        values = self._columns(model, self._resolve(fields))
        with _translate_errors("update", collection):
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(model, doc_id)
                    if row is None:
                        raise StoreError(NOT_FOUND, f"{collection}/{doc_id} does not exist")
                    for key, value in values.items():
                        setattr(row, key, value)
        await self._notify({collection})

    async def query(self, query: Query) -> list[dict[str, Any]]:
        model = self._model(query.collection)
        stmt = select(model)
        for f in query.filters:
            column = getattr(model, f.field, None)
            if column is None:
                raise StoreError(INVALID_ARGUMENT, f"Unknown field '{f.field}'")
            stmt = stmt.where(_clause(column, f.op, f.value))
        for field_name, direction in query.order_by:
            column = getattr(model, field_name, None)
            if column is None:
                raise StoreError(INVALID_ARGUMENT, f"Unknown field '{field_name}'")
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        with _translate_errors("query", query.collection):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_doc(row) for row in result.scalars().all()]

    def batch(self) -> SqlBatch:
        return SqlBatch(self)


def _clause(column: Any, op: str, value: Any) -> Any:
    if op == "==":
        return column.is_(None) if value is None else column == value
    if op == "!=":
        return column.is_not(None) if value is None else column != value
    if op == "<":
        return column < value
    if op == "<=":
        return column <= value
    if op == ">":
        return column > value
    if op == ">=":
        return column >= value
    if op == "in":
        return column.in_(list(value))
    raise StoreError(INVALID_ARGUMENT, f"Unsupported filter operator '{op}'")
