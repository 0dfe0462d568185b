"""
Unit tests for mastery labels and class status tiers.
"""

import pytest

from studybuddy.learning.gap_classifier import (
    ClassStatus,
    OverallMastery,
    class_status,
    is_weak,
    overall_mastery,
    recommendation_for,
    round_half_up,
    to_percent,
)


class TestOverallMastery:
    """Boundaries are inclusive on the lower end of each band."""

    @pytest.mark.parametrize(
        "avg, expected",
        [
            (0.85, OverallMastery.EXCELLENT),
            (0.99, OverallMastery.EXCELLENT),
            (0.84, OverallMastery.GOOD),
            (0.70, OverallMastery.GOOD),
            (0.69, OverallMastery.MODERATE),
            (0.50, OverallMastery.MODERATE),
            (0.49, OverallMastery.DEVELOPING),
            (0.0, OverallMastery.DEVELOPING),
        ],
    )
    def test_bands(self, avg, expected):
        assert overall_mastery(avg) == expected

    def test_value_is_dashboard_label(self):
        assert overall_mastery(0.9).value == "Excellent"


class TestClassStatus:
    """Class-wide tiers for teacher insights."""

    @pytest.mark.parametrize(
        "avg, expected",
        [
            (0.49, ClassStatus.CRITICAL),
            (0.50, ClassStatus.NEEDS_ATTENTION),
            (0.69, ClassStatus.NEEDS_ATTENTION),
            (0.70, ClassStatus.DEVELOPING),
            (0.95, ClassStatus.DEVELOPING),
        ],
    )
    def test_tiers(self, avg, expected):
        assert class_status(avg) == expected


class TestWeakness:
    def test_below_mastery_threshold_is_weak(self):
        assert is_weak(0.69)

    def test_at_mastery_threshold_is_not_weak(self):
        assert not is_weak(0.70)


class TestRounding:
    def test_half_rounds_up(self):
        assert round_half_up(62.5) == 63
        assert round_half_up(0.5) == 1

    def test_to_percent(self):
        assert to_percent(0.625) == 63
        assert to_percent(0.444) == 44
        assert to_percent(None) == 0


class TestRecommendation:
    def test_foundational_below_40(self):
        assert recommendation_for(39, "Fractions").startswith("Foundational review needed")

    def test_guided_practice_below_60(self):
        assert "guided exercises for Fractions" in recommendation_for(40, "Fractions")

    def test_nearly_there_from_60(self):
        assert recommendation_for(60, "Fractions").startswith("Nearly there!")
