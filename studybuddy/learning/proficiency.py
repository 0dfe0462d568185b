"""
Proficiency Estimator.

Turns one graded attempt into an updated mastery estimate for a skill using an
exponential-moving-average style step:

    signal = score - difficulty
    new    = clamp(current + alpha * signal, 0, 1)

Beating an item's difficulty raises the estimate; underperforming it lowers
the estimate. The update is order-sensitive, so callers must apply attempts
for the same skill in completion order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from studybuddy.core.errors import InvalidInput

LEARNING_RATE = 0.3
DEFAULT_PROFICIENCY = 0.5


def _check_unit_interval(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number")
    value = float(value)
    if math.isnan(value) or value < 0.0 or value > 1.0:
        raise InvalidInput(f"{name} must be between 0 and 1")
    return value


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def update_proficiency(
    current_proficiency: float | None,
    score: float,
    difficulty: float,
    learning_rate: float = LEARNING_RATE,
) -> float:
    """
    Apply one attempt to a proficiency estimate.

    Args:
        current_proficiency: Existing estimate (None seeds DEFAULT_PROFICIENCY)
        score: Attempt score (0-1)
        difficulty: Activity difficulty (0-1)
        learning_rate: Step size applied to the performance signal

    Returns:
        Updated estimate clamped to [0, 1]

    Raises:
        InvalidInput: If score or difficulty fall outside [0, 1]
    """
    score = _check_unit_interval("score", score)
    difficulty = _check_unit_interval("difficulty", difficulty)
    current = DEFAULT_PROFICIENCY if current_proficiency is None else clamp(float(current_proficiency))

    performance_signal = score - difficulty
    return clamp(current + learning_rate * performance_signal)


def replay_attempts(
    current_proficiency: float | None,
    attempts: Iterable[tuple[float, float]],
    learning_rate: float = LEARNING_RATE,
) -> float:
    """Fold (score, difficulty) attempts into an estimate, in the given order."""
    proficiency = DEFAULT_PROFICIENCY if current_proficiency is None else current_proficiency
    for score, difficulty in attempts:
        proficiency = update_proficiency(proficiency, score, difficulty, learning_rate)
    return proficiency
