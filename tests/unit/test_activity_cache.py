"""
Unit tests for the recent activity cache.
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from studybuddy.sync.activity_cache import CACHE_FILENAME, CachedActivity, RecentActivityCache


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _activity(n):
    return CachedActivity(
        activity_id=f"activity-{n}",
        type="quiz",
        payload={"title": f"Activity {n}"},
        estimated_time_sec=120,
        why="Try something new!",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return RecentActivityCache(tmp_path, clock=clock)


class TestRecentActivityCache:
    """Newest-first, bounded, expiring cache."""

    def test_newest_first(self, cache):
        cache.cache_activity(_activity(1))
        cache.cache_activity(_activity(2))

        assert [a.activity_id for a in cache.activities()] == ["activity-2", "activity-1"]

    def test_keeps_last_twenty(self, cache):
        for n in range(25):
            cache.cache_activity(_activity(n))

        activities = cache.activities()
        assert len(activities) == 20
        assert activities[0].activity_id == "activity-24"
        assert activities[-1].activity_id == "activity-5"

    def test_expires_three_days_after_last_write(self, cache, clock, tmp_path):
        cache.cache_activity(_activity(1))

        clock.now += timedelta(days=3, seconds=1)

        assert cache.activities() == []
        assert not (tmp_path / CACHE_FILENAME).exists()

    def test_not_expired_within_window(self, cache, clock):
        cache.cache_activity(_activity(1))
        clock.now += timedelta(days=2, hours=23)
        assert len(cache) == 1

    def test_random_cached(self, cache):
        for n in range(3):
            cache.cache_activity(_activity(n))

        picked = cache.random_cached(random.Random(1))

        assert picked.activity_id in {"activity-0", "activity-1", "activity-2"}
        assert isinstance(picked, CachedActivity)

    def test_random_cached_empty(self, cache):
        assert cache.random_cached() is None

    def test_clear(self, cache):
        cache.cache_activity(_activity(1))
        cache.clear()
        assert len(cache) == 0

    def test_corrupt_file_reads_empty(self, cache, tmp_path):
        (tmp_path / CACHE_FILENAME).write_text("[]", encoding="utf-8")
        assert cache.activities() == []


def test_from_hydrate_response():
    body = {
        "activity_id": "a-1",
        "type": "quiz",
        "payload": {"title": "Addition", "description": None, "content": {}, "skill_code": "math"},
        "estimated_time_sec": 120,
        "difficulty": 0.3,
        "reason": "Quick win to get started!",
        "latency_ms": 4,
    }

    activity = CachedActivity.from_response(body)

    assert activity.activity_id == "a-1"
    assert activity.payload["title"] == "Addition"
    assert activity.reason == "Quick win to get started!"
    assert activity.why is None
