"""Unit tests for FeedbackService — queue, review permission and submission."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from peerlearn.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from peerlearn.store import ACTIVITY, FEEDBACK_QUEUE, Query


@pytest.fixture
def item_id():
    return "item-1"


async def _enqueue(feedback_service, reviewer="alice", learner="Bob Builder", title="Binary search", points=10):
    return await feedback_service.enqueue(reviewer, learner, title, points)


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_creates_pending_item(self, store, feedback_service):
        item = await _enqueue(feedback_service, points=15)
        assert item.status == "pending"
        assert item.points == 15
        assert item.rating is None
        assert (await store.get(FEEDBACK_QUEUE, item.id))["reviewer_id"] == "alice"

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, feedback_service):
        with pytest.raises(ValidationError):
            await _enqueue(feedback_service, title=" ")


class TestSubmitFeedback:
    @pytest.mark.asyncio
    async def test_reviewer_submits(self, store, activity, feedback_service, alice):
        """Rating 4 from the reviewer: completed with rating, comment and one entry."""
        item = await _enqueue(feedback_service)

        done = await feedback_service.submit(alice, item.id, 4, "Clear walkthrough.")
        await activity.flush()

        assert done.status == "completed"
        stored = await store.get(FEEDBACK_QUEUE, item.id)
        assert stored["status"] == "completed"
        assert stored["rating"] == 4
        assert stored["comment"] == "Clear walkthrough."

        entries = await store.query(Query(ACTIVITY).where("user_id", "==", alice.uid))
        assert [e["text"] for e in entries] == ['Gave feedback on "Binary search" for Bob Builder']
        assert entries[0]["type"] == "feedback"

    @pytest.mark.asyncio
    async def test_other_user_blocked_before_write(self, activity, settings, bob, item_id):
        """A non-reviewer is refused with no update call."""
        from peerlearn.services.feedback_service import FeedbackService

        store = MagicMock()
        store.get = AsyncMock(return_value={
            "id": item_id,
            "reviewer_id": "alice",
            "learner": "Carol",
            "title": "Graphs",
            "points": 10,
            "status": "pending",
        })
        store.update = AsyncMock()
        service = FeedbackService(store, activity, settings)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.submit(bob, item_id, 4, "Nice")

        assert exc_info.value.message == "You don't have permission to view this feedback."
        store.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_user_leaves_status_unchanged(self, store, feedback_service, bob):
        item = await _enqueue(feedback_service)
        with pytest.raises(PermissionDeniedError):
            await feedback_service.submit(bob, item.id, 5, "")
        assert (await store.get(FEEDBACK_QUEUE, item.id))["status"] == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, True, 3.5, None])
    async def test_rating_out_of_range(self, activity, settings, alice, item_id, rating):
        from peerlearn.services.feedback_service import FeedbackService

        store = MagicMock()
        store.get = AsyncMock()
        service = FeedbackService(store, activity, settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(alice, item_id, rating, "")
        assert exc_info.value.field == "rating"
        store.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_review_again_overwrites(self, store, feedback_service, alice):
        item = await _enqueue(feedback_service)
        await feedback_service.submit(alice, item.id, 2, "first pass")
        await feedback_service.submit(alice, item.id, 5, "second pass")

        stored = await store.get(FEEDBACK_QUEUE, item.id)
        assert stored["rating"] == 5
        assert stored["comment"] == "second pass"

    @pytest.mark.asyncio
    async def test_missing_item(self, feedback_service, alice):
        with pytest.raises(NotFoundError):
            await feedback_service.load_for_review(alice, "missing")

    @pytest.mark.asyncio
    async def test_loose_fields_are_normalized(self, store, feedback_service, alice):
        item_id = await store.create(FEEDBACK_QUEUE, {
            "reviewer_id": alice.uid,
            "learner": "Bob",
            "title": "Recursion",
            "points": "12",
            "status": "",
        })
        item = await feedback_service.load_for_review(alice, item_id)
        # An empty status reads as pending and numeric strings as points
        assert item.status == "pending"
        assert item.points == 12
        done = await feedback_service.submit(alice, item_id, 3, "")
        assert done.status == "completed"


class TestListForReviewer:
    @pytest.mark.asyncio
    async def test_newest_first_and_scoped(self, feedback_service, clock, alice):
        await _enqueue(feedback_service, title="Older")
        clock.advance(minutes=5)
        await _enqueue(feedback_service, title="Newer")
        await _enqueue(feedback_service, reviewer="bob", title="Someone else's")

        items = await feedback_service.list_for_reviewer(alice)
        assert [i.title for i in items] == ["Newer", "Older"]

    @pytest.mark.asyncio
    async def test_search_matches_learner(self, feedback_service, alice):
        await _enqueue(feedback_service, learner="Grace", title="Compilers")
        await _enqueue(feedback_service, learner="Alan", title="Machines")

        items = await feedback_service.list_for_reviewer(alice, q="grace")
        assert [i.title for i in items] == ["Compilers"]
