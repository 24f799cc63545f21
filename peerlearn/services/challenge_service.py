"""Challenge creation with teach-back auto-assignment, and the challenge lifecycle."""

import random
from datetime import timedelta

from peerlearn.auth import CurrentUser
from peerlearn.errors import ValidationError
from peerlearn.logging_config import get_logger
from peerlearn.schemas import (
    LEVELS,
    Challenge,
    ChallengeCreatedResponse,
    CreateChallengeRequest,
    Teachback,
    parse_document,
)
from peerlearn.services.common import LifecycleService, matches_search, store_errors
from peerlearn.store import CHALLENGES, PROFILES, SERVER_TIMESTAMP, TEACHBACKS, Query

logger = get_logger(__name__)


class ChallengeService(LifecycleService[Challenge]):
    """Creates challenges and moves them open → accepted → in_progress → completed."""

    entity = "challenge"
    collection = CHALLENGES
    model = Challenge
    actor_field = "owner_id"
    activity_type = "challenge"
    not_found_message = "Challenge not found"
    permission_message = "Only the challenge owner can update this challenge."
    view_permission_message = "You don't have permission to view this challenge."

    def __init__(self, *args, rng: random.Random | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._rng = rng or random.Random()

    # -- creation ---------------------------------------------------------

    async def create_challenge(
        self,
        user: CurrentUser,
        data: CreateChallengeRequest,
    ) -> ChallengeCreatedResponse:
        """Create an open challenge and assign its teach-back to one random teammate.

        The challenge and its teach-back are written as one batch. Activity
        entries follow on the best-effort log.
        """
        title = data.title.strip()
        topic = data.topic.strip()
        if not title:
            raise ValidationError("Title is required.", field="title")
        if not topic:
            raise ValidationError("Topic is required.", field="topic")
        if data.level not in LEVELS:
            raise ValidationError(f"Level must be one of {list(LEVELS)}.", field="level")
        days = data.days if data.days is not None else self._settings.default_due_days
        if days < 1:
            raise ValidationError("Due days must be at least 1.", field="days")

        prompt = data.prompt.strip()
        now = self._clock()
        due_ts = now + timedelta(days=days)

        challenge_doc = {
            "owner_id": user.uid,
            "title": title,
            "topic": topic,
            "level": data.level,
            "due_ts": due_ts,
            "prompt": prompt,
            "status": "open",
            "notes": "",
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
        teachback_doc = None

        with store_errors("Could not create the challenge."):
            candidates = await self._candidate_pool(user.uid)
            assignee_id = self._rng.choice(candidates) if candidates else None

            async with self._store.batch() as batch:
                challenge_id = batch.create(CHALLENGES, challenge_doc)
                teachback_id = None
                if assignee_id is not None:
                    teachback_doc = {
                        "challenge_id": challenge_id,
                        "requester_id": user.uid,
                        "assignee_id": assignee_id,
                        "prompt": prompt or title,
                        "due_ts": due_ts,
                        "status": "pending",
                        "notes": "",
                        "created_at": SERVER_TIMESTAMP,
                        "updated_at": SERVER_TIMESTAMP,
                    }
                    teachback_id = batch.create(TEACHBACKS, teachback_doc)

        # Built from the staged writes; both records exist once the batch commits
        with store_errors():
            challenge = parse_document(Challenge, _staged(challenge_id, challenge_doc, now))
            teachback = None
            if teachback_doc is not None:
                teachback = parse_document(Teachback, _staged(teachback_id, teachback_doc, now))

        logger.info(
            "challenge_created",
            challenge_id=challenge_id,
            owner_id=user.uid,
            assignee_id=assignee_id,
            candidates=len(candidates),
        )

        if assignee_id is not None:
            logger.info(
                "teachback_assigned",
                teachback_id=teachback_id,
                challenge_id=challenge_id,
                assignee_id=assignee_id,
            )
            self._activity.record(user.uid, f'Created challenge "{title}"', "challenge")
            self._activity.record(assignee_id, f'New teach-back assigned: "{title}"', "teachback")
        else:
            self._activity.record(
                user.uid,
                f'Created challenge "{title}" (no teammate available for a teach-back yet)',
                "info",
            )

        return ChallengeCreatedResponse(challenge=challenge, teachback=teachback)

    async def _candidate_pool(self, creator_id: str) -> list[str]:
        """Ids from the first page of profiles, minus the creator."""
        rows = await self._store.query(
            Query(PROFILES).take(self._settings.candidate_pool_size)
        )
        seen: list[str] = []
        for row in rows:
            uid = row["id"]
            if uid != creator_id and uid not in seen:
                seen.append(uid)
        return seen

    # -- reads ------------------------------------------------------------

    async def get(self, challenge_id: str) -> Challenge:
        return await self._load(challenge_id, "Failed to load challenge.")

    async def load_for_view(self, user: CurrentUser, challenge_id: str) -> Challenge:
        challenge = await self.get(challenge_id)
        self._authorize_view(user, challenge)
        return challenge

    async def list_mine(
        self,
        user: CurrentUser,
        q: str | None = None,
        limit: int | None = None,
    ) -> list[Challenge]:
        """The caller's challenges by due date, optionally narrowed by a search string."""
        query = Query(CHALLENGES).where("owner_id", "==", user.uid).order("due_ts", "asc")
        if limit is not None and not q:
            query = query.take(limit)
        with store_errors("Couldn't load your challenges."):
            rows = await self._store.query(query)
            challenges = [parse_document(Challenge, r) for r in rows]
        if q:
            challenges = [
                c for c in challenges
                if matches_search(q, c.title, c.topic, c.level, c.status)
            ]
        return challenges[:limit] if limit is not None else challenges

    # -- lifecycle --------------------------------------------------------

    async def accept(self, user: CurrentUser, challenge_id: str) -> Challenge:
        challenge = await self.get(challenge_id)
        self._authorize(user, challenge)
        return await self._transition(
            user, challenge, "accepted",
            message=f'Accepted "{challenge.title}"',
            fallback="Couldn't update the challenge.",
        )

    async def start(self, user: CurrentUser, challenge_id: str) -> Challenge:
        """Start (accepted/open → in_progress) or continue an in-progress challenge."""
        challenge = await self.get(challenge_id)
        self._authorize(user, challenge)
        if challenge.status == "in_progress":
            return challenge
        return await self._transition(
            user, challenge, "in_progress",
            message=f'Started "{challenge.title}"',
            fallback="Couldn't update the challenge.",
        )

    async def save_progress(self, user: CurrentUser, challenge_id: str, notes: str) -> Challenge:
        challenge = await self.get(challenge_id)
        self._authorize(user, challenge)
        return await self._transition(
            user, challenge, "in_progress",
            message=f'Saved progress on "{challenge.title}"',
            fallback="Could not save progress.",
            fields={"notes": notes or ""},
        )

    async def complete(self, user: CurrentUser, challenge_id: str) -> Challenge:
        challenge = await self.get(challenge_id)
        self._authorize(user, challenge)
        return await self._transition(
            user, challenge, "completed",
            message=f'Completed "{challenge.title}"',
            fallback="Could not mark complete.",
        )


def _staged(doc_id: str, data: dict, now) -> dict:
    return {"id": doc_id, **{k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}}
