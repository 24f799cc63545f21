"""Tests for the SQLAlchemy document store against in-memory SQLite."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from peerlearn.errors import INVALID_ARGUMENT, NOT_FOUND, StoreError
from peerlearn.models import Base
from peerlearn.store import (
    CHALLENGES,
    FEEDBACK_QUEUE,
    PROFILES,
    SERVER_TIMESTAMP,
    TEACHBACKS,
    Query,
)
from peerlearn.store.sql import SqlDocumentStore


@pytest_asyncio.fixture
async def sql_store(clock):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    store = SqlDocumentStore(async_sessionmaker(engine, expire_on_commit=False), clock=clock)
    yield store
    await store.close()
    await engine.dispose()


def _challenge(clock, **overrides):
    data = {
        "owner_id": "alice",
        "title": "Graphs",
        "topic": "Algorithms",
        "level": "Beginner",
        "due_ts": clock.now + timedelta(days=3),
        "prompt": "",
        "status": "open",
        "notes": "",
        "created_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
    }
    data.update(overrides)
    return data


class TestSqlPrimitives:
    @pytest.mark.asyncio
    async def test_create_get_roundtrip_keeps_utc(self, sql_store, clock):
        doc_id = await sql_store.create(CHALLENGES, _challenge(clock))
        doc = await sql_store.get(CHALLENGES, doc_id)
        assert doc["id"] == doc_id
        assert doc["status"] == "open"
        assert doc["created_at"] == clock.now
        assert doc["due_ts"].tzinfo is not None

    @pytest.mark.asyncio
    async def test_update_and_missing(self, sql_store, clock):
        doc_id = await sql_store.create(CHALLENGES, _challenge(clock))
        await sql_store.update(CHALLENGES, doc_id, {"status": "accepted"})
        assert (await sql_store.get(CHALLENGES, doc_id))["status"] == "accepted"

        with pytest.raises(StoreError) as exc_info:
            await sql_store.update(CHALLENGES, "ghost", {"status": "accepted"})
        assert exc_info.value.code == NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, sql_store):
        with pytest.raises(StoreError) as exc_info:
            await sql_store.create(PROFILES, {"id": "alice", "favourite_colour": "teal"})
        assert exc_info.value.code == INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_profile_badges_json(self, sql_store):
        await sql_store.create(PROFILES, {"id": "alice", "xp": 10, "badges": ["Reviewer"]})
        doc = await sql_store.get(PROFILES, "alice")
        assert doc["badges"] == ["Reviewer"]
        assert doc["streak"] == 0


class TestSqlQuery:
    @pytest.mark.asyncio
    async def test_filters_order_and_limit(self, sql_store, clock):
        for days, status in [(5, "open"), (1, "in_progress"), (3, "completed"), (2, "accepted")]:
            await sql_store.create(
                CHALLENGES,
                _challenge(clock, title=f"d{days}", due_ts=clock.now + timedelta(days=days), status=status),
            )
        await sql_store.create(CHALLENGES, _challenge(clock, owner_id="bob", title="bob's"))

        rows = await sql_store.query(
            Query(CHALLENGES)
            .where("owner_id", "==", "alice")
            .where("status", "in", ["open", "accepted", "in_progress"])
            .order("due_ts", "asc")
            .take(2)
        )
        assert [r["title"] for r in rows] == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_null_equality(self, sql_store):
        await sql_store.create(FEEDBACK_QUEUE, {"reviewer_id": "alice", "title": "x", "status": "pending"})
        rows = await sql_store.query(Query(FEEDBACK_QUEUE).where("rating", "==", None))
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_unknown_field_in_query(self, sql_store):
        with pytest.raises(StoreError):
            await sql_store.query(Query(PROFILES).where("karma", ">", 1))


class TestSqlBatch:
    @pytest.mark.asyncio
    async def test_batch_commits_together(self, sql_store, clock):
        async with sql_store.batch() as batch:
            challenge_id = batch.create(CHALLENGES, _challenge(clock))
            batch.create(TEACHBACKS, {
                "challenge_id": challenge_id,
                "requester_id": "alice",
                "assignee_id": "bob",
                "prompt": "Graphs",
                "due_ts": clock.now,
                "status": "pending",
            })
        assert await sql_store.get(CHALLENGES, challenge_id) is not None
        rows = await sql_store.query(Query(TEACHBACKS).where("challenge_id", "==", challenge_id))
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_failed_batch_rolls_back(self, sql_store, clock):
        with pytest.raises(StoreError):
            async with sql_store.batch() as batch:
                batch.create(CHALLENGES, _challenge(clock))
                batch.update(TEACHBACKS, "ghost", {"status": "completed"})
        assert await sql_store.query(Query(CHALLENGES)) == []


class TestSqlBackedWorkflow:
    @pytest.mark.asyncio
    async def test_create_challenge_end_to_end(self, sql_store, settings, clock, alice, bob):
        import random

        from peerlearn.schemas import CreateChallengeRequest
        from peerlearn.services.activity_service import ActivityLog
        from peerlearn.services.challenge_service import ChallengeService

        await sql_store.create(PROFILES, {"id": alice.uid})
        await sql_store.create(PROFILES, {"id": bob.uid})
        activity = ActivityLog(sql_store, redis_getter=lambda: None)
        activity.start()
        service = ChallengeService(sql_store, activity, settings, clock=clock, rng=random.Random(1))

        result = await service.create_challenge(
            alice, CreateChallengeRequest(title="Explain Recursion", topic="Algorithms", days=3)
        )
        # The fixture engine has one connection; let the writer finish before the next session
        await activity.flush()
        await service.start(alice, result.challenge.id)
        await activity.flush()
        await activity.stop()

        assert result.teachback.assignee_id == bob.uid
        assert (await sql_store.get(CHALLENGES, result.challenge.id))["status"] == "in_progress"
        feed = await ActivityLog(sql_store).list_for_user(alice.uid)
        assert len(feed) == 2


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url",
        ["sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:", "sqlite:///file:db?mode=memory&uri=true"],
    )
    def test_in_memory_sqlite_rejected(self, url):
        from peerlearn.database import validate_database_url

        with pytest.raises(ValueError):
            validate_database_url(url)

    @pytest.mark.parametrize(
        "url",
        ["sqlite+aiosqlite:///./peerlearn.db", "postgresql+asyncpg://u:p@localhost:5432/peerlearn"],
    )
    def test_other_urls_accepted(self, url):
        from peerlearn.database import validate_database_url

        assert validate_database_url(url) == url

    def test_get_engine_refuses_in_memory_sqlite(self, monkeypatch):
        from peerlearn import database
        from peerlearn.config import Settings

        monkeypatch.setattr(database, "_engine", None)
        monkeypatch.setattr(database, "get_settings", lambda: Settings(database_url="sqlite+aiosqlite://"))
        with pytest.raises(ValueError):
            database.get_engine()
        assert database._engine is None
