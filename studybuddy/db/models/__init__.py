# SQLAlchemy models
from .base import Base
from .learning import (
    ActivityReport,
    HydrationCacheEntry,
    LearnerSkill,
    StudyActivity,
    UserRole,
)

__all__ = [
    "Base",
    "StudyActivity",
    "ActivityReport",
    "LearnerSkill",
    "HydrationCacheEntry",
    "UserRole",
]
