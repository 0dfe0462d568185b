"""API routers for StudyBuddy."""

from studybuddy.api.routers import chat_router, insights_router, studybuddy_router

__all__ = [
    "chat_router",
    "insights_router",
    "studybuddy_router",
]
