"""
Adaptive Learning Models.

SQLAlchemy models backing the adaptive study loop:
- Activity catalog (read-only reference data)
- Append-only activity report log
- Per-learner skill proficiency
- Per-learner starter activity cache
- Role assignments for teacher/admin gated endpoints
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudyActivity(Base):
    """A practice activity targeting one skill at a given difficulty."""

    __tablename__ = "study_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    skill_code: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False, default="quiz")
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # 0-1 scale; NULL is read as 0.5
    difficulty: Mapped[float | None] = mapped_column(Float, default=0.5)
    estimated_time_sec: Mapped[int | None] = mapped_column(Integer)
    locale: Mapped[str | None] = mapped_column(String(8), default="ke")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    reports: Mapped[list[ActivityReport]] = relationship(back_populates="activity")

    __table_args__ = (Index("idx_activity_skill_difficulty", "skill_code", "difficulty"),)

    @property
    def effective_difficulty(self) -> float:
        return 0.5 if self.difficulty is None else float(self.difficulty)

    def __repr__(self) -> str:
        return f"<StudyActivity {self.id} skill={self.skill_code} difficulty={self.difficulty}>"


class ActivityReport(Base):
    """One graded attempt. Never updated after insert."""

    __tablename__ = "activity_reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    activity_id: Mapped[str] = mapped_column(
        ForeignKey("study_activities.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[float | None] = mapped_column(Float)
    time_spent_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    activity: Mapped[StudyActivity] = relationship(back_populates="reports")

    __table_args__ = (Index("idx_reports_user_completed", "user_id", "completed_at"),)

    def __repr__(self) -> str:
        return f"<ActivityReport user={self.user_id} activity={self.activity_id} score={self.score}>"


class LearnerSkill(Base):
    """Current proficiency estimate for one learner on one skill."""

    __tablename__ = "learner_skills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    skill_code: Mapped[str] = mapped_column(String(128), nullable=False)
    proficiency: Mapped[float | None] = mapped_column(Float, default=0.5)
    last_practiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "skill_code", name="uq_learner_skill"),
        Index("idx_learner_skills_proficiency", "user_id", "proficiency"),
    )

    def __repr__(self) -> str:
        return f"<LearnerSkill user={self.user_id} skill={self.skill_code} proficiency={self.proficiency}>"


class HydrationCacheEntry(Base):
    """Cached starter activity, one row per learner."""

    __tablename__ = "hydration_cache"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    starter_activity_id: Mapped[str | None] = mapped_column(
        ForeignKey("study_activities.id", ondelete="SET NULL")
    )
    reason: Mapped[str | None] = mapped_column(Text)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserRole(Base):
    """Role grant; learners without a row are plain students."""

    __tablename__ = "user_roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # student, teacher, admin
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)
