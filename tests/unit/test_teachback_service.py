"""Unit tests for TeachbackService."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from peerlearn.errors import (
    UNAVAILABLE,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    UnavailableError,
)
from peerlearn.store import ACTIVITY, SERVER_TIMESTAMP, TEACHBACKS, Query


async def _seed_teachback(store, clock, assignee="bob", requester="alice", status="pending", days=2, prompt="Explain closures"):
    return await store.create(TEACHBACKS, {
        "challenge_id": None,
        "requester_id": requester,
        "assignee_id": assignee,
        "prompt": prompt,
        "due_ts": clock.now + timedelta(days=days),
        "status": status,
        "notes": "",
        "created_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
    })


class TestTeachbackLifecycle:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store, activity, clock, teachback_service, bob):
        teachback_id = await _seed_teachback(store, clock)

        started = await teachback_service.start(bob, teachback_id)
        assert started.status == "in_progress"

        saved = await teachback_service.save_progress(bob, teachback_id, "outline done")
        assert saved.notes == "outline done"

        done = await teachback_service.complete(bob, teachback_id)
        assert done.status == "completed"
        await activity.flush()

        texts = [e["text"] for e in await store.query(Query(ACTIVITY).where("user_id", "==", bob.uid))]
        assert texts == [
            'Started teach-back "Explain closures"',
            'Saved progress on teach-back "Explain closures"',
            'Completed teach-back "Explain closures"',
        ]

    @pytest.mark.asyncio
    async def test_start_in_progress_is_noop(self, store, activity, clock, teachback_service, bob):
        teachback_id = await _seed_teachback(store, clock, status="in_progress")
        result = await teachback_service.start(bob, teachback_id)
        await activity.flush()
        assert result.status == "in_progress"
        assert store.count(ACTIVITY) == 0

    @pytest.mark.asyncio
    async def test_pending_cannot_complete(self, store, clock, teachback_service, bob):
        teachback_id = await _seed_teachback(store, clock)
        with pytest.raises(InvalidTransitionError):
            await teachback_service.complete(bob, teachback_id)

    @pytest.mark.asyncio
    async def test_completed_stays_completed(self, store, clock, teachback_service, bob):
        teachback_id = await _seed_teachback(store, clock, status="completed")
        with pytest.raises(InvalidTransitionError):
            await teachback_service.start(bob, teachback_id)
        with pytest.raises(InvalidTransitionError):
            await teachback_service.save_progress(bob, teachback_id, "again")
        assert (await store.get(TEACHBACKS, teachback_id))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_only_assignee_may_act(self, store, clock, teachback_service, alice):
        teachback_id = await _seed_teachback(store, clock)
        with pytest.raises(PermissionDeniedError):
            await teachback_service.start(alice, teachback_id)
        assert (await store.get(TEACHBACKS, teachback_id))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_failed_update_leaves_status_unchanged(self, store, activity, clock, teachback_service, bob):
        teachback_id = await _seed_teachback(store, clock)

        with patch.object(store, "update", AsyncMock(side_effect=StoreError(UNAVAILABLE, "backend down"))):
            with pytest.raises(UnavailableError):
                await teachback_service.start(bob, teachback_id)
        await activity.flush()

        assert (await store.get(TEACHBACKS, teachback_id))["status"] == "pending"
        assert store.count(ACTIVITY) == 0

    @pytest.mark.asyncio
    async def test_assignee_and_requester_may_view(self, store, clock, teachback_service, alice, bob, carol):
        teachback_id = await _seed_teachback(store, clock)
        assert (await teachback_service.load_for_view(bob, teachback_id)).id == teachback_id
        assert (await teachback_service.load_for_view(alice, teachback_id)).id == teachback_id
        with pytest.raises(PermissionDeniedError):
            await teachback_service.load_for_view(carol, teachback_id)

    @pytest.mark.asyncio
    async def test_missing_teachback(self, teachback_service, bob):
        with pytest.raises(NotFoundError):
            await teachback_service.get("nope")


class TestListAssigned:
    @pytest.mark.asyncio
    async def test_sorted_by_due_and_scoped(self, store, clock, teachback_service, bob):
        await _seed_teachback(store, clock, prompt="later", days=5)
        await _seed_teachback(store, clock, prompt="sooner", days=1)
        await _seed_teachback(store, clock, assignee="carol", prompt="not bob's")

        result = await teachback_service.list_assigned(bob)
        assert [t.prompt for t in result] == ["sooner", "later"]

    @pytest.mark.asyncio
    async def test_limit(self, store, clock, teachback_service, bob):
        for days in (3, 1, 2):
            await _seed_teachback(store, clock, days=days, prompt=f"d{days}")
        result = await teachback_service.list_assigned(bob, limit=2)
        assert [t.prompt for t in result] == ["d1", "d2"]
