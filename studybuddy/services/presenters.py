"""JSON shapes for activities returned by the study endpoints."""

from __future__ import annotations

from typing import Any

from studybuddy.db.models import StudyActivity


def activity_summary(activity: StudyActivity, why: str | None = None) -> dict[str, Any]:
    """Compact form embedded in report responses."""
    return {
        "activity_id": activity.id,
        "title": activity.title,
        "description": activity.description,
        "estimated_time_sec": activity.estimated_time_sec,
        "why": why,
    }


def activity_detail(activity: StudyActivity) -> dict[str, Any]:
    """Full form served by the next/hydrate endpoints."""
    return {
        "activity_id": activity.id,
        "type": activity.activity_type,
        "payload": {
            "title": activity.title,
            "description": activity.description,
            "content": activity.content,
            "skill_code": activity.skill_code,
        },
        "estimated_time_sec": activity.estimated_time_sec,
        "difficulty": activity.difficulty,
    }
