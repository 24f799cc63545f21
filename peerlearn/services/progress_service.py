"""Derived progress views: levels, dashboard, portfolio and leaderboard."""

import asyncio
import math
from datetime import datetime
from typing import Any, Awaitable, Callable

from peerlearn.auth import CurrentUser
from peerlearn.config import Settings, get_settings
from peerlearn.errors import ValidationError, WorkflowError
from peerlearn.logging_config import get_logger
from peerlearn.schemas import (
    Challenge,
    DashboardResponse,
    DashboardStats,
    FeedbackQueueItem,
    LeaderboardEntry,
    PortfolioResponse,
    Profile,
    ProfileSummary,
    Teachback,
    parse_document,
)
from peerlearn.services.activity_service import ActivityLog
from peerlearn.services.common import matches_search, store_errors
from peerlearn.store import (
    CHALLENGES,
    FEEDBACK_QUEUE,
    PROFILES,
    TEACHBACKS,
    DocumentStore,
    Query,
    utcnow,
)

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400
LEADERBOARD_SORT_KEYS = ("xp", "streak")


def level_for_xp(xp: int, xp_per_level: int = 500) -> tuple[int, int, int]:
    """Return (level, percent through the level, xp into the level)."""
    xp = max(0, int(xp))
    into = xp % xp_per_level
    return xp // xp_per_level + 1, round(into / xp_per_level * 100), into


def days_left(due: datetime, now: datetime) -> int:
    """Whole days until ``due``, rounded up, never negative."""
    diff = (due - now).total_seconds()
    return max(0, math.ceil(diff / SECONDS_PER_DAY))


def _updated_desc(item: Challenge | Teachback) -> float:
    return item.updated_at.timestamp() if item.updated_at else 0.0


class ProgressService:
    """Read-only aggregations over the workflow's collections."""

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

    # -- profile ----------------------------------------------------------

    async def get_profile(self, uid: str) -> Profile:
        """The stored profile, or an empty one for users who have none yet."""
        with store_errors("Couldn't load your profile."):
            raw = await self._store.get(PROFILES, uid)
            if raw is None:
                return Profile(id=uid)
            return parse_document(Profile, raw)

    def summarize(self, profile: Profile) -> ProfileSummary:
        per_level = self._settings.xp_per_level
        level, pct, into = level_for_xp(profile.xp, per_level)
        return ProfileSummary(
            profile=profile,
            level=level,
            level_pct=pct,
            xp_into_level=into,
            xp_per_level=per_level,
        )

    async def profile_summary(self, user: CurrentUser) -> ProfileSummary:
        return self.summarize(await self.get_profile(user.uid))

    # -- leaderboard ------------------------------------------------------

    async def leaderboard(
        self,
        sort: str = "xp",
        direction: str = "desc",
        q: str | None = None,
        limit: int | None = None,
    ) -> list[LeaderboardEntry]:
        """Profiles ranked by XP or streak; ``q`` matches name or XP."""
        if sort not in LEADERBOARD_SORT_KEYS:
            raise ValidationError(f"Sort must be one of {list(LEADERBOARD_SORT_KEYS)}.", field="sort")
        if direction not in ("asc", "desc"):
            raise ValidationError("Direction must be 'asc' or 'desc'.", field="direction")
        limit = limit or self._settings.leaderboard_limit

        query = Query(PROFILES).order(sort, direction)
        if not q:
            query = query.take(limit)
        with store_errors("Couldn't load leaderboard."):
            rows = await self._store.query(query)
            profiles = [parse_document(Profile, r) for r in rows]

        if q:
            profiles = [p for p in profiles if matches_search(q, p.display_name or p.id[:6], p.xp)]
        return [
            LeaderboardEntry(
                rank=i + 1,
                id=p.id,
                name=p.display_name or p.id[:6],
                xp=p.xp,
                streak=p.streak,
            )
            for i, p in enumerate(profiles[:limit])
        ]

    # -- dashboard --------------------------------------------------------

    async def dashboard(self, user: CurrentUser) -> DashboardResponse:
        """Everything on the dashboard; each section fails on its own."""
        errors: dict[str, str] = {}
        list_limit = self._settings.dashboard_list_limit

        async def section(key: str, load: Callable[[], Awaitable[Any]], default: Any) -> Any:
            try:
                return await load()
            except WorkflowError as e:
                errors[key] = e.message
                return default

        profile, challenges, teachbacks, feedback, activity, leaders = await asyncio.gather(
            section("profile", lambda: self.get_profile(user.uid), Profile(id=user.uid)),
            section("challenges", lambda: self._active_challenges(user.uid, list_limit), []),
            section("teachbacks", lambda: self._teachbacks_due(user.uid, list_limit), []),
            section("feedback", lambda: self._pending_feedback(user.uid, list_limit), []),
            section(
                "activity",
                lambda: self._load_activity(user.uid),
                [],
            ),
            section("leaderboard", lambda: self.leaderboard(limit=list_limit), []),
        )

        summary = self.summarize(profile)
        stats = DashboardStats(
            active=len(challenges),
            teachbacks=len(teachbacks),
            xp=profile.xp,
            streak=profile.streak,
            level=summary.level,
            level_pct=summary.level_pct,
        )
        if errors:
            logger.warning("dashboard_partial", user_id=user.uid, sections=sorted(errors))
        return DashboardResponse(
            stats=stats,
            active_challenges=challenges,
            teachbacks_due=teachbacks,
            feedback_queue=feedback,
            activity=activity,
            leaderboard=leaders,
            errors=errors,
        )

    async def _load_activity(self, uid: str):
        with store_errors("Couldn't load recent activity."):
            return await self._activity.list_for_user(uid, limit=self._settings.activity_feed_limit)

    async def _active_challenges(self, uid: str, limit: int) -> list[Challenge]:
        with store_errors("Couldn't load your challenges."):
            rows = await self._store.query(
                Query(CHALLENGES)
                .where("owner_id", "==", uid)
                .where("status", "in", ["open", "accepted", "in_progress"])
                .order("due_ts", "asc")
                .take(limit)
            )
            return [parse_document(Challenge, r) for r in rows]

    async def _teachbacks_due(self, uid: str, limit: int) -> list[Teachback]:
        with store_errors("Couldn't load teach-backs."):
            rows = await self._store.query(
                Query(TEACHBACKS)
                .where("assignee_id", "==", uid)
                .where("status", "in", ["pending", "in_progress"])
                .order("due_ts", "asc")
                .take(limit)
            )
            return [parse_document(Teachback, r) for r in rows]

    async def _pending_feedback(self, uid: str, limit: int) -> list[FeedbackQueueItem]:
        with store_errors("Couldn't load feedback queue."):
            rows = await self._store.query(
                Query(FEEDBACK_QUEUE)
                .where("reviewer_id", "==", uid)
                .where("status", "==", "pending")
                .order("created_at", "desc")
                .take(limit)
            )
            return [parse_document(FeedbackQueueItem, r) for r in rows]

    # -- portfolio --------------------------------------------------------

    async def portfolio(self, user: CurrentUser) -> PortfolioResponse:
        """Completed challenges and teach-backs, most recently finished first."""
        errors: dict[str, str] = {}

        try:
            profile = await self.get_profile(user.uid)
        except WorkflowError as e:
            errors["profile"] = e.message
            profile = Profile(id=user.uid)

        completed_challenges: list[Challenge] = []
        try:
            with store_errors("Couldn't load challenges."):
                rows = await self._store.query(Query(CHALLENGES).where("owner_id", "==", user.uid))
                completed_challenges = sorted(
                    (c for c in (parse_document(Challenge, r) for r in rows) if c.status == "completed"),
                    key=_updated_desc,
                    reverse=True,
                )
        except WorkflowError as e:
            errors["challenges"] = e.message

        completed_teachbacks: list[Teachback] = []
        try:
            with store_errors("Couldn't load teach-backs."):
                rows = await self._store.query(Query(TEACHBACKS).where("assignee_id", "==", user.uid))
                completed_teachbacks = sorted(
                    (t for t in (parse_document(Teachback, r) for r in rows) if t.status == "completed"),
                    key=_updated_desc,
                    reverse=True,
                )
        except WorkflowError as e:
            errors["teachbacks"] = e.message

        return PortfolioResponse(
            summary=self.summarize(profile),
            completed_challenges=completed_challenges,
            completed_teachbacks=completed_teachbacks,
            errors=errors,
        )
