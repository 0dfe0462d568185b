"""
Insights Service.

Learner gap analysis and class-wide teacher insights, built on the fixed
thresholds in studybuddy.learning.gap_classifier.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studybuddy.core.errors import PermissionDenied, PersistenceError
from studybuddy.db.repository import STAFF_ROLES, LearningRepository
from studybuddy.learning.gap_classifier import (
    NOT_ASSESSED,
    class_status,
    is_weak,
    overall_mastery,
    recommendation_for,
    to_percent,
)

MAX_WEAK_TOPICS = 5
CLASS_TOPIC_LIMIT = 10
ENGAGEMENT_WINDOW_DAYS = 7
NO_DATA_MESSAGE = "No performance data yet. Complete some activities to get started!"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class InsightsService:
    """Read-only analytics over learner skills and reports."""

    def __init__(self, session: Session):
        self.repository = LearningRepository(session, locale=None)

    def ensure_staff(self, user_id: str, message: str = "Insufficient permissions") -> None:
        if not self.repository.has_any_role(user_id, STAFF_ROLES):
            logger.warning("User {} denied staff-only insight", user_id)
            raise PermissionDenied(message)

    def gap_analysis(self, caller_id: str, learner_id: str | None = None) -> dict[str, Any]:
        """
        Summarize a learner's weak topics.

        Callers may analyse themselves; teachers and admins may pass any
        ``learner_id``.
        """
        learner_id = learner_id or caller_id
        if learner_id != caller_id:
            self.ensure_staff(caller_id)

        try:
            skills = self.repository.learner_skills(learner_id)
        except SQLAlchemyError as exc:
            logger.error("Skills query failed for {}: {}", learner_id, exc)
            raise PersistenceError("Failed to fetch learner data") from exc

        if not skills:
            return {
                "learner_id": learner_id,
                "message": NO_DATA_MESSAGE,
                "low_proficiency_topics": [],
                "overall_mastery": NOT_ASSESSED,
            }

        proficiencies = [s.proficiency if s.proficiency is not None else 0.5 for s in skills]
        weak = [(s, p) for s, p in zip(skills, proficiencies) if is_weak(p)][:MAX_WEAK_TOPICS]
        titles = self.repository.skill_titles(s.skill_code for s, _ in weak)

        topics = []
        for skill, proficiency in weak:
            title = titles.get(skill.skill_code) or skill.skill_code
            score = to_percent(proficiency)
            topics.append(
                {
                    "topic": title,
                    "skill_code": skill.skill_code,
                    "score": score,
                    "last_practiced": _isoformat(skill.last_practiced_at),
                    "recommendation": recommendation_for(score, title),
                }
            )

        avg = sum(proficiencies) / len(proficiencies)
        logger.info("Gap analysis for {}: {} weak topics found", learner_id, len(topics))
        return {
            "learner_id": learner_id,
            "low_proficiency_topics": topics,
            "overall_mastery": overall_mastery(avg).value,
            "avg_proficiency_percent": to_percent(avg),
            "total_skills_tracked": len(skills),
        }

    def class_insights(self, caller_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Class-wide weakest skills and engagement (teacher/admin only)."""
        self.ensure_staff(caller_id, "Teacher access required")
        now = now or datetime.now(timezone.utc)

        try:
            summaries = self.repository.class_proficiency_summary(limit=CLASS_TOPIC_LIMIT)
            total_learners = self.repository.count_learners()
            activities_last_week = self.repository.count_reports_since(
                now - timedelta(days=ENGAGEMENT_WINDOW_DAYS)
            )
        except SQLAlchemyError as exc:
            logger.error("Class insights query failed: {}", exc)
            raise PersistenceError("Failed to fetch class data") from exc

        topics = [
            {
                "skill_code": s.skill_code,
                "skill_title": s.skill_title,
                "avg_proficiency": to_percent(s.avg_proficiency),
                "learner_count": s.learner_count,
                "min_proficiency": to_percent(s.min_proficiency),
                "max_proficiency": to_percent(s.max_proficiency),
                "status": class_status(s.avg_proficiency).value,
            }
            for s in summaries
        ]

        engagement_rate = 0
        if total_learners:
            engagement_rate = min(
                100,
                to_percent(activities_last_week / (total_learners * ENGAGEMENT_WINDOW_DAYS)),
            )

        logger.info("Teacher insights: {} topics, {} learners", len(topics), total_learners)
        return {
            "low_proficiency_topics": topics,
            "total_learners": total_learners,
            "engagement_rate": engagement_rate,
            "activities_last_week": activities_last_week,
            "last_updated": now.isoformat(),
        }
