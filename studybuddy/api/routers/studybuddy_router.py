"""
StudyBuddy API Router.

Endpoints for the learner's study loop:
- Report a completed activity and receive the next recommendation
- Get the next recommended activity
- Hydrate the starter activity for a new session
"""

from __future__ import annotations

import random
from typing import Any

from fastapi import APIRouter, Body, Depends
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from studybuddy.api.auth import CurrentUser, get_current_user
from studybuddy.api.dependencies import get_hydration_cache, get_rng
from studybuddy.core.errors import NotFoundError, PersistenceError
from studybuddy.db.database import get_session
from studybuddy.db.repository import LearningRepository
from studybuddy.learning.activity_selector import ActivitySelector
from studybuddy.learning.hydration import HydrationCache, HydrationService
from studybuddy.services.presenters import activity_detail
from studybuddy.services.report_service import ReportIngestionService

router = APIRouter()


# ========================================
# Response Models
# ========================================


class ActivitySummaryResponse(BaseModel):
    """Next activity embedded in a report response."""

    activity_id: str
    title: str
    description: str | None
    estimated_time_sec: int | None
    why: str | None


class ReportResponse(BaseModel):
    """Response model for an ingested report."""

    success: bool
    skill_code: str
    old_proficiency: float
    new_proficiency: float
    next_activity: ActivitySummaryResponse | None


class ActivityPayload(BaseModel):
    title: str
    description: str | None
    content: Any
    skill_code: str


class NextActivityResponse(BaseModel):
    """Response model for a recommended activity."""

    activity_id: str
    type: str
    payload: ActivityPayload
    estimated_time_sec: int | None
    difficulty: float | None
    why: str


class HydrateResponse(BaseModel):
    """Response model for the session starter activity."""

    activity_id: str
    type: str
    payload: ActivityPayload
    estimated_time_sec: int | None
    difficulty: float | None
    reason: str
    latency_ms: int


# ========================================
# Endpoints
# ========================================


@router.post("/report", response_model=ReportResponse)
def submit_report(
    payload: Any = Body(None),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    hydration_cache: HydrationCache = Depends(get_hydration_cache),
    rng: random.Random | None = Depends(get_rng),
) -> dict[str, Any]:
    """Record a completed activity, update proficiency and recommend what's next."""
    adaptive = get_settings().get_adaptive_config()
    service = ReportIngestionService(
        session,
        hydration_cache,
        rng=rng,
        learning_rate=adaptive["learning_rate"],
        default_proficiency=adaptive["default_proficiency"],
        locale=adaptive["locale"],
    )
    return service.ingest(user.user_id, payload).to_dict()


@router.get("/next", response_model=NextActivityResponse)
def get_next_activity(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    rng: random.Random | None = Depends(get_rng),
) -> dict[str, Any]:
    """Recommend the next activity for the caller's weakest skills."""
    repository = LearningRepository(session, locale=get_settings().activity_locale)
    try:
        recommendation = ActivitySelector(repository, rng=rng).select_next(user.user_id)
    except SQLAlchemyError as e:
        logger.error("Next activity lookup failed for {}: {}", user.user_id, e)
        raise PersistenceError("Failed to fetch activities") from e

    if recommendation is None:
        raise NotFoundError("No activities available")

    logger.info(
        "Next activity for {}: {}, reason: {}",
        user.user_id,
        recommendation.activity.id,
        recommendation.reason,
    )
    return {**activity_detail(recommendation.activity), "why": recommendation.reason}


@router.get("/hydrate", response_model=HydrateResponse)
def hydrate(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    hydration_cache: HydrationCache = Depends(get_hydration_cache),
    rng: random.Random | None = Depends(get_rng),
) -> dict[str, Any]:
    """Serve the starter activity for a new session, cached per learner."""
    repository = LearningRepository(session, locale=get_settings().activity_locale)
    service = HydrationService(repository, hydration_cache, ActivitySelector(repository, rng=rng))
    try:
        result = service.hydrate(user.user_id)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Hydration failed for {}: {}", user.user_id, e)
        raise PersistenceError("Failed to load starter activity") from e

    return {
        **activity_detail(result.activity),
        "reason": result.reason,
        "latency_ms": result.latency_ms,
    }
