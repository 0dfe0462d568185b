"""
Gap / Mastery Classifier.

Fixed thresholds shared with the learner and teacher dashboards. Changing any
constant here changes what existing dashboards display.
"""

from __future__ import annotations

import math
from enum import Enum

MASTERY_THRESHOLD = 0.70

EXCELLENT_THRESHOLD = 0.85
GOOD_THRESHOLD = 0.70
MODERATE_THRESHOLD = 0.50

CRITICAL_THRESHOLD = 0.50
NEEDS_ATTENTION_THRESHOLD = 0.70

NOT_ASSESSED = "Not assessed"


class OverallMastery(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    MODERATE = "Moderate"
    DEVELOPING = "Developing"


class ClassStatus(str, Enum):
    CRITICAL = "critical"
    NEEDS_ATTENTION = "needs_attention"
    DEVELOPING = "developing"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (dashboard rounding)."""
    return int(math.floor(value + 0.5))


def to_percent(proficiency: float | None) -> int:
    return round_half_up((proficiency or 0.0) * 100)


def is_weak(proficiency: float) -> bool:
    return proficiency < MASTERY_THRESHOLD


def overall_mastery(avg_proficiency: float) -> OverallMastery:
    """Label a learner's average proficiency."""
    if avg_proficiency >= EXCELLENT_THRESHOLD:
        return OverallMastery.EXCELLENT
    if avg_proficiency >= GOOD_THRESHOLD:
        return OverallMastery.GOOD
    if avg_proficiency >= MODERATE_THRESHOLD:
        return OverallMastery.MODERATE
    return OverallMastery.DEVELOPING


def class_status(avg_proficiency: float) -> ClassStatus:
    """Tier a skill by its class-wide average proficiency."""
    if avg_proficiency < CRITICAL_THRESHOLD:
        return ClassStatus.CRITICAL
    if avg_proficiency < NEEDS_ATTENTION_THRESHOLD:
        return ClassStatus.NEEDS_ATTENTION
    return ClassStatus.DEVELOPING


def recommendation_for(score_percent: int, topic: str) -> str:
    """CBC-flavoured next step for a weak topic."""
    if score_percent < 40:
        return f"Foundational review needed. Start with visual aids and basic drills for {topic}."
    if score_percent < 60:
        return f"Practice core concepts using local examples. Work through guided exercises for {topic}."
    return f"Nearly there! Focus on edge cases and application problems for {topic}."
