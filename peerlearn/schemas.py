"""Pydantic v2 document models and request/response schemas."""

from datetime import datetime
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from peerlearn.errors import INVALID_ARGUMENT, StoreError

Level = Literal["Beginner", "Intermediate", "Advanced"]
ChallengeStatus = Literal["open", "accepted", "in_progress", "completed"]
TeachbackStatus = Literal["pending", "in_progress", "completed"]
FeedbackStatus = Literal["pending", "completed"]
ActivityType = Literal["challenge", "teachback", "feedback", "info"]

LEVELS: tuple[str, ...] = ("Beginner", "Intermediate", "Advanced")
ACTIVITY_TYPES: tuple[str, ...] = ("challenge", "teachback", "feedback", "info")


def _loose_int(value: Any) -> int:
    """Number(x || 0): missing, empty or non-numeric values count as zero."""
    if value in (None, ""):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


# ---------------------------------------------------------------------------
# Stored documents
# ---------------------------------------------------------------------------


class Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class Challenge(Document):
    owner_id: str
    title: str
    topic: str
    level: Level = "Beginner"
    due_ts: datetime
    prompt: str = ""
    status: ChallengeStatus = "open"
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Teachback(Document):
    challenge_id: str | None = None
    requester_id: str
    assignee_id: str
    prompt: str = ""
    due_ts: datetime
    status: TeachbackStatus = "pending"
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FeedbackQueueItem(Document):
    reviewer_id: str
    learner: str = ""
    title: str = ""
    points: int = 0
    status: FeedbackStatus = "pending"
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("points", mode="before")
    @classmethod
    def _points(cls, v: Any) -> int:
        return _loose_int(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> Any:
        return v or "pending"


class ActivityEntry(Document):
    user_id: str
    text: str
    type: ActivityType = "info"
    created_at: datetime | None = None


class Profile(Document):
    xp: int = 0
    streak: int = 0
    badges: list[str] = Field(default_factory=list)
    display_name: str | None = None
    photo_url: str | None = None

    @field_validator("xp", "streak", mode="before")
    @classmethod
    def _counters(cls, v: Any) -> int:
        return max(0, _loose_int(v))

    @field_validator("badges", mode="before")
    @classmethod
    def _badges(cls, v: Any) -> list:
        return v if isinstance(v, list) else []


DocT = TypeVar("DocT", bound=Document)


def parse_document(model: type[DocT], doc: dict[str, Any]) -> DocT:
    """Validate a raw store document into its model, failing as a store error."""
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        raise StoreError(
            INVALID_ARGUMENT,
            f"Malformed {model.__name__} document '{doc.get('id')}': "
            f"{e.error_count()} invalid field(s)",
        ) from e


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., max_length=200)
    topic: str = Field(..., max_length=100)
    level: Level = "Beginner"
    days: int | None = Field(default=None, ge=1, le=365)
    prompt: str = Field(default="", max_length=5000)


class SaveProgressRequest(BaseModel):
    notes: str = Field(default="", max_length=20000)


class SubmitFeedbackRequest(BaseModel):
    rating: int
    comment: str = Field(default="", max_length=5000)


class EnqueueFeedbackRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)
    learner: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    points: int = Field(default=10, ge=0)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ChallengeCreatedResponse(BaseModel):
    challenge: Challenge
    teachback: Teachback | None = None


class ChallengeResponse(BaseModel):
    challenge: Challenge
    next: str | None = None


class TeachbackResponse(BaseModel):
    teachback: Teachback
    next: str | None = None


class FeedbackResponse(BaseModel):
    item: FeedbackQueueItem
    next: str | None = None


class ProfileSummary(BaseModel):
    profile: Profile
    level: int
    level_pct: int
    xp_into_level: int
    xp_per_level: int


class LeaderboardEntry(BaseModel):
    rank: int
    id: str
    name: str
    xp: int
    streak: int


class DashboardStats(BaseModel):
    active: int
    teachbacks: int
    xp: int
    streak: int
    level: int
    level_pct: int


class DashboardResponse(BaseModel):
    stats: DashboardStats
    active_challenges: list[Challenge] = Field(default_factory=list)
    teachbacks_due: list[Teachback] = Field(default_factory=list)
    feedback_queue: list[FeedbackQueueItem] = Field(default_factory=list)
    activity: list[ActivityEntry] = Field(default_factory=list)
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class PortfolioResponse(BaseModel):
    summary: ProfileSummary
    completed_challenges: list[Challenge] = Field(default_factory=list)
    completed_teachbacks: list[Teachback] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
