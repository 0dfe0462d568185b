"""
Starter activity hydration.

The first activity of a session is cached per learner so repeat hydrations are
answered without running selection. Report ingestion invalidates the entry so
the next hydration reflects the updated skills.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session

from studybuddy.core.errors import NotFoundError
from studybuddy.db.models import HydrationCacheEntry, StudyActivity
from studybuddy.db.models.learning import utcnow
from studybuddy.db.repository import LearningRepository
from studybuddy.learning.activity_selector import ActivitySelector

CACHED_REASON_FALLBACK = "Quick win, continue your learning!"


@dataclass
class CachedStarter:
    activity_id: str
    reason: str | None


class HydrationCache(Protocol):
    """Per-learner starter activity store."""

    def get(self, user_id: str) -> CachedStarter | None: ...

    def put(self, user_id: str, activity_id: str, reason: str) -> None: ...

    def touch(self, user_id: str) -> None: ...

    def invalidate(self, user_id: str) -> None: ...


class InMemoryHydrationCache:
    """TTL map of starter activities, scoped to one process."""

    def __init__(self, ttl_seconds: float = 24 * 60 * 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[CachedStarter, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> CachedStarter | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            starter, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[user_id]
                return None
            return starter

    def put(self, user_id: str, activity_id: str, reason: str) -> None:
        with self._lock:
            self._entries[user_id] = (
                CachedStarter(activity_id=activity_id, reason=reason),
                self.clock() + self.ttl_seconds,
            )

    def touch(self, user_id: str) -> None:
        # Last-use tracking only matters for the persistent backend.
        return None

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)


class SqlHydrationCache:
    """Cache rows in the hydration_cache table, sharing the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> CachedStarter | None:
        row = self.session.get(HydrationCacheEntry, user_id)
        if row is None or not row.starter_activity_id:
            return None
        return CachedStarter(activity_id=row.starter_activity_id, reason=row.reason)

    def put(self, user_id: str, activity_id: str, reason: str) -> None:
        now = utcnow()
        self.session.merge(
            HydrationCacheEntry(
                user_id=user_id,
                starter_activity_id=activity_id,
                reason=reason,
                cached_at=now,
                last_used_at=now,
            )
        )

    def touch(self, user_id: str) -> None:
        row = self.session.get(HydrationCacheEntry, user_id)
        if row is not None:
            row.last_used_at = utcnow()

    def invalidate(self, user_id: str) -> None:
        row = self.session.get(HydrationCacheEntry, user_id)
        if row is not None:
            self.session.delete(row)


@dataclass
class HydrationResult:
    activity: StudyActivity
    reason: str
    cache_hit: bool
    latency_ms: int


class HydrationService:
    """Serve a learner's starter activity, from cache when possible."""

    def __init__(
        self,
        repository: LearningRepository,
        cache: HydrationCache,
        selector: ActivitySelector | None = None,
    ):
        self.repository = repository
        self.cache = cache
        self.selector = selector or ActivitySelector(repository)

    def hydrate(self, user_id: str) -> HydrationResult:
        started = time.perf_counter()

        cached = self.cache.get(user_id)
        if cached is not None:
            activity = self.repository.get_activity(cached.activity_id)
            if activity is not None:
                self.cache.touch(user_id)
                latency = round((time.perf_counter() - started) * 1000)
                logger.info("Hydrate cache hit: {}ms for user {}", latency, user_id)
                return HydrationResult(
                    activity=activity,
                    reason=cached.reason or CACHED_REASON_FALLBACK,
                    cache_hit=True,
                    latency_ms=latency,
                )

        recommendation = self.selector.select_starter(user_id)
        if recommendation is None:
            raise NotFoundError("No activities available")

        self.cache.put(user_id, recommendation.activity.id, recommendation.reason)
        latency = round((time.perf_counter() - started) * 1000)
        logger.info("Hydrate generated: {}ms for user {}", latency, user_id)
        return HydrationResult(
            activity=recommendation.activity,
            reason=recommendation.reason,
            cache_hit=False,
            latency_ms=latency,
        )
