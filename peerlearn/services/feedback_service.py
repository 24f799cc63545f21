"""Peer feedback queue: reviewers rate and comment on a learner's work."""

from peerlearn.auth import CurrentUser
from peerlearn.errors import ValidationError
from peerlearn.logging_config import get_logger
from peerlearn.schemas import FeedbackQueueItem, parse_document
from peerlearn.services.common import LifecycleService, matches_search, store_errors
from peerlearn.store import FEEDBACK_QUEUE, SERVER_TIMESTAMP, Query

logger = get_logger(__name__)


class FeedbackService(LifecycleService[FeedbackQueueItem]):
    """pending → completed, with completed items open to another review."""

    entity = "feedback"
    collection = FEEDBACK_QUEUE
    model = FeedbackQueueItem
    actor_field = "reviewer_id"
    activity_type = "feedback"
    not_found_message = "Feedback item not found."
    permission_message = "You don't have permission to view this feedback."

    async def enqueue(
        self,
        reviewer_id: str,
        learner: str,
        title: str,
        points: int = 10,
    ) -> FeedbackQueueItem:
        """Put a review duty on ``reviewer_id``'s queue."""
        if not reviewer_id.strip():
            raise ValidationError("Reviewer is required.", field="reviewer_id")
        if not title.strip():
            raise ValidationError("Title is required.", field="title")
        with store_errors("Could not queue the review."):
            item_id = await self._store.create(FEEDBACK_QUEUE, {
                "reviewer_id": reviewer_id,
                "learner": learner.strip(),
                "title": title.strip(),
                "points": max(0, int(points)),
                "status": "pending",
                "created_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
            })
        logger.info("feedback_enqueued", item_id=item_id, reviewer_id=reviewer_id)
        return await self._load(item_id, "Could not queue the review.")

    async def list_for_reviewer(
        self,
        user: CurrentUser,
        q: str | None = None,
        limit: int | None = None,
    ) -> list[FeedbackQueueItem]:
        """The caller's review queue, newest first."""
        query = (
            Query(FEEDBACK_QUEUE)
            .where("reviewer_id", "==", user.uid)
            .order("created_at", "desc")
        )
        if limit is not None and not q:
            query = query.take(limit)
        with store_errors("Couldn't load your feedback queue."):
            rows = await self._store.query(query)
            items = [parse_document(FeedbackQueueItem, r) for r in rows]
        if q:
            items = [
                i for i in items
                if matches_search(q, i.title, i.learner, i.points, i.status)
            ]
        return items[:limit] if limit is not None else items

    async def load_for_review(self, user: CurrentUser, item_id: str) -> FeedbackQueueItem:
        """Load an item for its reviewer; anyone else gets a permission error."""
        item = await self._load(item_id, "Something went wrong. Please try again.")
        self._authorize(user, item)
        return item

    async def submit(
        self,
        user: CurrentUser,
        item_id: str,
        rating: int,
        comment: str = "",
    ) -> FeedbackQueueItem:
        """Record the reviewer's rating and comment and mark the item completed."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be a whole number from 1 to 5.", field="rating")

        item = await self.load_for_review(user, item_id)
        return await self._transition(
            user, item, "completed",
            message=f'Gave feedback on "{item.title}" for {item.learner}',
            fallback="Could not submit feedback.",
            fields={"rating": rating, "comment": comment or ""},
        )
