"""
Learning data access.

All reads and writes the adaptive loop performs against the relational store
go through LearningRepository, so services and the activity selector never
build queries themselves.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studybuddy.db.models import ActivityReport, LearnerSkill, StudyActivity, UserRole
from studybuddy.db.models.learning import utcnow

STAFF_ROLES = ("teacher", "admin")


@dataclass
class SkillSummary:
    """Class-wide aggregate for one skill."""

    skill_code: str
    skill_title: str
    avg_proficiency: float
    min_proficiency: float
    max_proficiency: float
    learner_count: int


class LearningRepository:
    """Query helpers over the activity catalog, reports and learner skills."""

    def __init__(self, session: Session, locale: str | None = "ke"):
        self.session = session
        self.locale = locale

    # ------------------------------------------------------------------
    # Activity catalog
    # ------------------------------------------------------------------

    def _catalog_query(self):
        query = select(StudyActivity)
        if self.locale:
            query = query.where(StudyActivity.locale == self.locale)
        return query

    def get_activity(self, activity_id: str) -> StudyActivity | None:
        return self.session.get(StudyActivity, activity_id)

    def activities_for_skill(
        self,
        skill_code: str,
        min_difficulty: float | None = None,
        max_difficulty: float | None = None,
        limit: int = 5,
    ) -> list[StudyActivity]:
        """Activities of one skill, optionally inside a difficulty band."""
        difficulty = func.coalesce(StudyActivity.difficulty, 0.5)
        query = self._catalog_query().where(StudyActivity.skill_code == skill_code)
        if min_difficulty is not None:
            query = query.where(difficulty >= min_difficulty)
        if max_difficulty is not None:
            query = query.where(difficulty <= max_difficulty)
        query = query.order_by(StudyActivity.created_at, StudyActivity.id).limit(limit)
        return list(self.session.scalars(query))

    def easiest_for_skill(self, skill_code: str) -> StudyActivity | None:
        query = (
            self._catalog_query()
            .where(StudyActivity.skill_code == skill_code)
            .order_by(func.coalesce(StudyActivity.difficulty, 0.5), StudyActivity.id)
            .limit(1)
        )
        return self.session.scalars(query).first()

    def easy_activities(self, max_difficulty: float = 0.5, limit: int = 10) -> list[StudyActivity]:
        difficulty = func.coalesce(StudyActivity.difficulty, 0.5)
        query = (
            self._catalog_query()
            .where(difficulty <= max_difficulty)
            .order_by(difficulty, StudyActivity.id)
            .limit(limit)
        )
        return list(self.session.scalars(query))

    def catalog_sample(self, limit: int = 20) -> list[StudyActivity]:
        query = self._catalog_query().order_by(StudyActivity.created_at, StudyActivity.id).limit(limit)
        return list(self.session.scalars(query))

    def skill_titles(self, skill_codes: Iterable[str]) -> dict[str, str]:
        """First catalog title per skill code, used as a readable topic name."""
        codes = list(skill_codes)
        if not codes:
            return {}
        query = (
            select(StudyActivity.skill_code, func.min(StudyActivity.title))
            .where(StudyActivity.skill_code.in_(codes))
            .group_by(StudyActivity.skill_code)
        )
        return {code: title for code, title in self.session.execute(query)}

    # ------------------------------------------------------------------
    # Learner skills
    # ------------------------------------------------------------------

    def get_skill(self, user_id: str, skill_code: str) -> LearnerSkill | None:
        query = select(LearnerSkill).where(
            LearnerSkill.user_id == user_id, LearnerSkill.skill_code == skill_code
        )
        return self.session.scalars(query).first()

    def learner_skills(self, user_id: str, limit: int | None = None) -> list[LearnerSkill]:
        """Skills ordered weakest first."""
        query = (
            select(LearnerSkill)
            .where(LearnerSkill.user_id == user_id)
            .order_by(func.coalesce(LearnerSkill.proficiency, 0.5), LearnerSkill.skill_code)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.scalars(query))

    def weakest_skills(self, user_id: str, limit: int = 3) -> list[LearnerSkill]:
        return self.learner_skills(user_id, limit=limit)

    def save_proficiency(
        self,
        user_id: str,
        skill_code: str,
        proficiency: float,
        practiced_at: datetime | None = None,
        existing: LearnerSkill | None = None,
    ) -> LearnerSkill:
        """Insert or update the single (user, skill) row."""
        practiced_at = practiced_at or utcnow()
        skill = existing or self.get_skill(user_id, skill_code)
        if skill is None:
            skill = LearnerSkill(user_id=user_id, skill_code=skill_code)
            self.session.add(skill)
        skill.proficiency = proficiency
        skill.last_practiced_at = practiced_at
        return skill

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def add_report(
        self,
        user_id: str,
        activity_id: str,
        score: float,
        time_spent_sec: int,
        metadata: Mapping[str, Any] | None = None,
        completed_at: datetime | None = None,
    ) -> ActivityReport:
        report = ActivityReport(
            user_id=user_id,
            activity_id=activity_id,
            score=score,
            time_spent_sec=time_spent_sec,
            metadata_=dict(metadata or {}),
            completed_at=completed_at or utcnow(),
        )
        self.session.add(report)
        return report

    def last_completed_skill(self, user_id: str) -> str | None:
        """Skill code of the learner's most recently completed activity."""
        query = (
            select(StudyActivity.skill_code)
            .join(ActivityReport, ActivityReport.activity_id == StudyActivity.id)
            .where(ActivityReport.user_id == user_id)
            .order_by(ActivityReport.completed_at.desc())
            .limit(1)
        )
        return self.session.scalars(query).first()

    def count_reports_since(self, since: datetime) -> int:
        query = select(func.count(ActivityReport.id)).where(ActivityReport.completed_at >= since)
        return int(self.session.scalar(query) or 0)

    # ------------------------------------------------------------------
    # Roles & class aggregates
    # ------------------------------------------------------------------

    def has_any_role(self, user_id: str, roles: Iterable[str] = STAFF_ROLES) -> bool:
        query = (
            select(func.count(UserRole.id))
            .where(UserRole.user_id == user_id, UserRole.role.in_(list(roles)))
        )
        return bool(self.session.scalar(query))

    def grant_role(self, user_id: str, role: str) -> UserRole:
        existing = self.session.scalars(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
        ).first()
        if existing is not None:
            return existing
        grant = UserRole(user_id=user_id, role=role)
        self.session.add(grant)
        return grant

    def count_learners(self) -> int:
        query = select(func.count(func.distinct(LearnerSkill.user_id)))
        return int(self.session.scalar(query) or 0)

    def class_proficiency_summary(self, limit: int = 10) -> list[SkillSummary]:
        """Per-skill class aggregates, weakest average first."""
        proficiency = func.coalesce(LearnerSkill.proficiency, 0.5)
        avg = func.avg(proficiency).label("avg_proficiency")
        query = (
            select(
                LearnerSkill.skill_code,
                avg,
                func.min(proficiency),
                func.max(proficiency),
                func.count(func.distinct(LearnerSkill.user_id)),
            )
            .group_by(LearnerSkill.skill_code)
            .order_by(avg, LearnerSkill.skill_code)
            .limit(limit)
        )
        rows = self.session.execute(query).all()
        titles = self.skill_titles(row[0] for row in rows)
        return [
            SkillSummary(
                skill_code=code,
                skill_title=titles.get(code) or code,
                avg_proficiency=float(avg_p or 0),
                min_proficiency=float(min_p or 0),
                max_proficiency=float(max_p or 0),
                learner_count=int(count or 0),
            )
            for code, avg_p, min_p, max_p, count in rows
        ]
