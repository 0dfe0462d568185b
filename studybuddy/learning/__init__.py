"""
Adaptive learning primitives.

- proficiency: EMA-style skill proficiency estimator
- gap_classifier: fixed-threshold mastery and class status labels
- activity_selector: next/starter activity selection with ordered fallback
- hydration: cached starter activity per learner
"""

from studybuddy.learning.activity_selector import ActivitySelector, Recommendation
from studybuddy.learning.gap_classifier import (
    ClassStatus,
    OverallMastery,
    class_status,
    overall_mastery,
)
from studybuddy.learning.proficiency import (
    DEFAULT_PROFICIENCY,
    LEARNING_RATE,
    update_proficiency,
)

__all__ = [
    "ActivitySelector",
    "Recommendation",
    "ClassStatus",
    "OverallMastery",
    "class_status",
    "overall_mastery",
    "DEFAULT_PROFICIENCY",
    "LEARNING_RATE",
    "update_proficiency",
]
