"""Unit tests for the fire-and-forget activity log."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from peerlearn.errors import UNAVAILABLE, StoreError
from peerlearn.store import ACTIVITY, MemoryDocumentStore, Query


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_persists_entry(self, store, activity, clock):
        activity.record("alice", 'Started "Graphs"', "challenge")
        await activity.flush()

        rows = await store.query(Query(ACTIVITY))
        assert len(rows) == 1
        assert rows[0]["user_id"] == "alice"
        assert rows[0]["text"] == 'Started "Graphs"'
        assert rows[0]["type"] == "challenge"
        assert rows[0]["created_at"] == clock.now

    @pytest.mark.asyncio
    async def test_unknown_type_falls_back_to_info(self, store, activity):
        activity.record("alice", "Something happened", "celebration")
        await activity.flush()
        rows = await store.query(Query(ACTIVITY))
        assert rows[0]["type"] == "info"

    @pytest.mark.asyncio
    async def test_missing_user_is_dropped(self, store, activity):
        activity.record("", "orphan entry")
        await activity.flush()
        assert store.count(ACTIVITY) == 0

    @pytest.mark.asyncio
    async def test_record_returns_before_write(self, store):
        from peerlearn.services.activity_service import ActivityLog

        log = ActivityLog(store, redis_getter=lambda: None)
        result = log.record("alice", "queued")
        assert result is None
        assert store.count(ACTIVITY) == 0
        await log.stop()
        assert store.count(ACTIVITY) == 1

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self):
        from peerlearn.services.activity_service import ActivityLog

        failing = MagicMock()
        failing.create = AsyncMock(side_effect=StoreError(UNAVAILABLE, "down"))
        log = ActivityLog(failing, redis_getter=lambda: None)
        log.record("alice", "first")
        log.record("alice", "second")
        await log.flush()
        await log.stop()
        assert failing.create.await_count == 2

    @pytest.mark.asyncio
    async def test_queue_full_drops_entry(self, store):
        from peerlearn.services.activity_service import ActivityLog

        log = ActivityLog(store, redis_getter=lambda: None, maxsize=1)
        log.start()
        log.record("alice", "kept")
        log.record("alice", "dropped")
        await log.stop()
        rows = await store.query(Query(ACTIVITY))
        assert [r["text"] for r in rows] == ["kept"]

    def test_record_without_event_loop_is_dropped(self):
        from peerlearn.services.activity_service import ActivityLog

        log = ActivityLog(MemoryDocumentStore(), redis_getter=lambda: None)
        log.record("alice", "no loop here")


class TestRedisFanOut:
    @pytest.mark.asyncio
    async def test_publishes_to_user_channel(self, store):
        from peerlearn.services.activity_service import ActivityLog

        redis = MagicMock()
        redis.publish = AsyncMock()
        log = ActivityLog(store, redis_getter=lambda: redis)
        log.record("alice", "Completed \"Graphs\"", "challenge")
        await log.stop()

        redis.publish.assert_awaited_once()
        channel, payload = redis.publish.await_args.args
        assert channel == "user:alice:activity"
        event = json.loads(payload)
        assert event["text"] == 'Completed "Graphs"'
        assert event["type"] == "challenge"

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_entry(self, store):
        from peerlearn.services.activity_service import ActivityLog

        redis = MagicMock()
        redis.publish = AsyncMock(side_effect=ConnectionError("redis gone"))
        log = ActivityLog(store, redis_getter=lambda: redis)
        log.record("alice", "still stored")
        await log.stop()
        assert store.count(ACTIVITY) == 1


class TestListForUser:
    @pytest.mark.asyncio
    async def test_newest_first_with_type_and_search(self, store, activity, clock):
        activity.record("alice", 'Started "Graphs"', "challenge")
        await activity.flush()
        clock.advance(minutes=1)
        activity.record("alice", 'Started teach-back "Trees"', "teachback")
        await activity.flush()
        clock.advance(minutes=1)
        activity.record("alice", 'Completed "Graphs"', "challenge")
        activity.record("bob", 'Completed "Other"', "challenge")
        await activity.flush()

        everything = await activity.list_for_user("alice")
        assert [e.text for e in everything] == [
            'Completed "Graphs"',
            'Started teach-back "Trees"',
            'Started "Graphs"',
        ]

        challenges = await activity.list_for_user("alice", type="challenge")
        assert len(challenges) == 2

        all_types = await activity.list_for_user("alice", type="All")
        assert len(all_types) == 3

        searched = await activity.list_for_user("alice", q="trees")
        assert [e.type for e in searched] == ["teachback"]

        limited = await activity.list_for_user("alice", limit=1)
        assert [e.text for e in limited] == ['Completed "Graphs"']
