"""
Report Ingestion Service.

Validates a single activity attempt, appends it to the report log, applies the
proficiency update for the activity's skill, invalidates the learner's cached
starter activity and recommends what to do next.
"""

from __future__ import annotations

import random
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studybuddy.core.errors import NotFoundError, PersistenceError, ValidationError
from studybuddy.db.models import StudyActivity
from studybuddy.db.repository import LearningRepository
from studybuddy.learning.activity_selector import ActivitySelector, Recommendation
from studybuddy.learning.hydration import HydrationCache
from studybuddy.learning.proficiency import DEFAULT_PROFICIENCY, LEARNING_RATE, update_proficiency
from studybuddy.services.presenters import activity_summary

MAX_TIME_SPENT_SEC = 7200

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Field -> client-facing message when that field fails validation
_FIELD_MESSAGES = {
    "activity_id": "Invalid activity ID format",
    "score": "Score must be a number between 0 and 1",
    "time_spent_sec": f"Time spent must be a positive integer no greater than {MAX_TIME_SPENT_SEC} seconds",
    "metadata": "Metadata must be a flat object if provided",
    "completed_at": "completed_at must be an ISO-8601 timestamp",
}


class ReportSubmission(BaseModel):
    """Body of POST /api/studybuddy/report."""

    model_config = ConfigDict(extra="ignore")

    activity_id: str = Field(..., strict=True)
    score: float = Field(..., strict=True, ge=0.0, le=1.0, allow_inf_nan=False)
    time_spent_sec: int = Field(..., strict=True, gt=0, le=MAX_TIME_SPENT_SEC)
    metadata: dict[str, Any] | None = None
    completed_at: datetime | None = None

    @field_validator("activity_id")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        if not UUID_PATTERN.match(value):
            raise ValueError("not a UUID")
        return value.lower()

    @field_validator("time_spent_sec", mode="before")
    @classmethod
    def _whole_seconds(cls, value: Any) -> Any:
        # JSON numbers like 60.0 are whole seconds; strings and bools are not
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    @field_validator("metadata")
    @classmethod
    def _check_flat(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is not None and any(isinstance(v, (dict, list)) for v in value.values()):
            raise ValueError("metadata values must be scalars")
        return value

    @field_validator("completed_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_payload(cls, payload: Any) -> ReportSubmission:
        """Parse a raw JSON body, raising ValidationError with a generic message."""
        if not isinstance(payload, Mapping):
            raise ValidationError("Request body must be a JSON object")
        if not payload.get("activity_id"):
            raise ValidationError("Activity ID is required")
        try:
            return cls.model_validate(dict(payload))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else ""
            raise ValidationError(_FIELD_MESSAGES.get(field, "Invalid request")) from exc


@dataclass
class ReportOutcome:
    """Result of a successfully ingested report."""

    skill_code: str
    old_proficiency: float
    new_proficiency: float
    next_activity: Recommendation | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "skill_code": self.skill_code,
            "old_proficiency": self.old_proficiency,
            "new_proficiency": self.new_proficiency,
            "next_activity": (
                activity_summary(self.next_activity.activity, self.next_activity.reason)
                if self.next_activity
                else None
            ),
        }


class ReportIngestionService:
    """Validate, persist and react to one activity attempt."""

    def __init__(
        self,
        session: Session,
        hydration_cache: HydrationCache,
        rng: random.Random | None = None,
        learning_rate: float = LEARNING_RATE,
        default_proficiency: float = DEFAULT_PROFICIENCY,
        locale: str | None = "ke",
    ):
        self.session = session
        self.repository = LearningRepository(session, locale=locale)
        self.hydration_cache = hydration_cache
        self.selector = ActivitySelector(self.repository, rng=rng)
        self.learning_rate = learning_rate
        self.default_proficiency = default_proficiency

    def _load_activity(self, activity_id: str) -> StudyActivity:
        activity = self.repository.get_activity(activity_id)
        if activity is None:
            raise NotFoundError("Activity not found")
        return activity

    def ingest(self, user_id: str, payload: Any) -> ReportOutcome:
        """
        Ingest one report for ``user_id``.

        Raises:
            ValidationError: Malformed payload
            NotFoundError: Unknown activity
            PersistenceError: Store write failed (transaction rolled back)
        """
        submission = ReportSubmission.from_payload(payload)
        activity = self._load_activity(submission.activity_id)
        completed_at = submission.completed_at or datetime.now(timezone.utc)

        try:
            self.repository.add_report(
                user_id=user_id,
                activity_id=activity.id,
                score=submission.score,
                time_spent_sec=submission.time_spent_sec,
                metadata=submission.metadata,
                completed_at=completed_at,
            )

            skill = self.repository.get_skill(user_id, activity.skill_code)
            if skill is not None and skill.proficiency is not None:
                old_proficiency = float(skill.proficiency)
            else:
                old_proficiency = self.default_proficiency

            new_proficiency = update_proficiency(
                old_proficiency,
                submission.score,
                activity.effective_difficulty,
                learning_rate=self.learning_rate,
            )
            self.repository.save_proficiency(
                user_id,
                activity.skill_code,
                new_proficiency,
                practiced_at=completed_at,
                existing=skill,
            )
            self.hydration_cache.invalidate(user_id)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Report insert failed for user {}: {}", user_id, exc)
            raise PersistenceError() from exc

        next_activity = self.selector.select_next(user_id)

        logger.info(
            "Report for {}: skill {} updated {:.2f} -> {:.2f}",
            user_id,
            activity.skill_code,
            old_proficiency,
            new_proficiency,
        )
        return ReportOutcome(
            skill_code=activity.skill_code,
            old_proficiency=old_proficiency,
            new_proficiency=new_proficiency,
            next_activity=next_activity,
        )
