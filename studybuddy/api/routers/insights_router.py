"""
Insights API Router.

- Learner gap analysis (self, or any learner for teachers/admins)
- Class-wide insights for teachers/admins
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studybuddy.api.auth import CurrentUser, get_current_user
from studybuddy.db.database import get_session
from studybuddy.services.insights_service import InsightsService

router = APIRouter()


@router.get("/gaps")
def get_learning_gaps(
    learner_id: str | None = Query(None, description="Learner to analyse (defaults to caller)"),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    """Weak topics, overall mastery band and average proficiency."""
    return InsightsService(session).gap_analysis(user.user_id, learner_id)


@router.get("/class")
def get_class_insights(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    """Weakest skills across the class and weekly engagement."""
    return InsightsService(session).class_insights(user.user_id)
