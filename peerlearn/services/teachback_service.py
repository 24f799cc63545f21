"""Teach-back lifecycle, scoped to the assignee."""

from peerlearn.auth import CurrentUser
from peerlearn.schemas import Teachback, parse_document
from peerlearn.services.common import LifecycleService, store_errors
from peerlearn.store import TEACHBACKS, Query


class TeachbackService(LifecycleService[Teachback]):
    """Moves assigned teach-backs pending → in_progress → completed."""

    entity = "teachback"
    collection = TEACHBACKS
    model = Teachback
    actor_field = "assignee_id"
    activity_type = "teachback"
    not_found_message = "Teach-back not found"
    permission_message = "This teach-back is assigned to someone else."
    view_permission_message = "You don't have permission to view this teach-back."
    viewer_fields = ("requester_id",)

    async def get(self, teachback_id: str) -> Teachback:
        return await self._load(teachback_id, "Failed to load teach-back.")

    async def load_for_view(self, user: CurrentUser, teachback_id: str) -> Teachback:
        """The assignee or the requester may read a teach-back."""
        teachback = await self.get(teachback_id)
        self._authorize_view(user, teachback)
        return teachback

    async def list_assigned(self, user: CurrentUser, limit: int | None = None) -> list[Teachback]:
        """Teach-backs assigned to the caller, soonest due first."""
        # Sorted here rather than in the store so no composite index is needed
        with store_errors("Couldn't load teach-backs."):
            rows = await self._store.query(
                Query(TEACHBACKS).where("assignee_id", "==", user.uid)
            )
            teachbacks = sorted(
                (parse_document(Teachback, r) for r in rows),
                key=lambda t: t.due_ts,
            )
        return teachbacks[:limit] if limit is not None else teachbacks

    async def start(self, user: CurrentUser, teachback_id: str) -> Teachback:
        """pending → in_progress; an in-progress teach-back is simply continued."""
        teachback = await self.get(teachback_id)
        self._authorize(user, teachback)
        if teachback.status == "in_progress":
            return teachback
        return await self._transition(
            user, teachback, "in_progress",
            message=f'Started teach-back "{teachback.prompt}"',
            fallback="Couldn't start the teach-back.",
        )

    async def save_progress(self, user: CurrentUser, teachback_id: str, notes: str) -> Teachback:
        teachback = await self.get(teachback_id)
        self._authorize(user, teachback)
        return await self._transition(
            user, teachback, "in_progress",
            message=f'Saved progress on teach-back "{teachback.prompt}"',
            fallback="Could not save progress.",
            fields={"notes": notes or ""},
        )

    async def complete(self, user: CurrentUser, teachback_id: str) -> Teachback:
        teachback = await self.get(teachback_id)
        self._authorize(user, teachback)
        return await self._transition(
            user, teachback, "completed",
            message=f'Completed teach-back "{teachback.prompt}"',
            fallback="Could not mark complete.",
        )
