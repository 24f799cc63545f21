"""SQLAlchemy ORM models, one table per document collection."""

from datetime import datetime

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import DateTime, Integer

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class ChallengeRow(Base):
    __tablename__ = "challenges"
    __table_args__ = (
        Index("idx_challenges_owner_due", "owner_id", "due_ts"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[str] = mapped_column(String(32), nullable=False, default="Beginner")
    due_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class TeachbackRow(Base):
    __tablename__ = "teachbacks"
    __table_args__ = (
        Index("idx_teachbacks_assignee_due", "assignee_id", "due_ts"),
        Index("idx_teachbacks_challenge", "challenge_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Unenforced back-reference; challenges are never deleted by the workflow
    challenge_id: Mapped[str | None] = mapped_column(String(64))
    requester_id: Mapped[str] = mapped_column(String(128), nullable=False)
    assignee_id: Mapped[str] = mapped_column(String(128), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class FeedbackQueueRow(Base):
    __tablename__ = "feedback_queue"
    __table_args__ = (
        Index("idx_feedback_reviewer_created", "reviewer_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reviewer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    learner: Mapped[str] = mapped_column(Text, nullable=False, default="")
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    rating: Mapped[int | None] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ActivityRow(Base):
    __tablename__ = "activity"
    __table_args__ = (
        Index("idx_activity_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="info")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ProfileRow(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        Index("idx_profiles_xp", "xp"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    display_name: Mapped[str | None] = mapped_column(Text)
    photo_url: Mapped[str | None] = mapped_column(Text)


ROW_MODELS: dict[str, type[Base]] = {
    "challenges": ChallengeRow,
    "teachbacks": TeachbackRow,
    "feedback_queue": FeedbackQueueRow,
    "activity": ActivityRow,
    "profiles": ProfileRow,
}
