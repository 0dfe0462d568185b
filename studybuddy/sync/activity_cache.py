"""
Recent activity cache for offline practice.

Keeps the most recently served activities on the device so a learner can keep
practising without a connection. The whole cache expires a few days after it
was last written.
"""

from __future__ import annotations

import json
import os
import random
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

CACHE_FILENAME = "recent_activities.json"
DEFAULT_MAX_ITEMS = 20
DEFAULT_EXPIRY_DAYS = 3


@dataclass
class CachedActivity:
    """Activity as served by the API, stored for offline use."""

    activity_id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    estimated_time_sec: int = 0
    reason: Optional[str] = None
    difficulty: Optional[float] = None
    why: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedActivity":
        return cls(**data)

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> "CachedActivity":
        """Build from a /next or /hydrate response body, ignoring extra fields."""
        return cls(
            activity_id=str(body["activity_id"]),
            type=body.get("type") or "quiz",
            payload=dict(body.get("payload") or {}),
            estimated_time_sec=body.get("estimated_time_sec") or 0,
            reason=body.get("reason"),
            difficulty=body.get("difficulty"),
            why=body.get("why"),
        )


class RecentActivityCache:
    """JSON-file cache of the last ``max_items`` activities."""

    def __init__(
        self,
        cache_dir: Path,
        max_items: int = DEFAULT_MAX_ITEMS,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.cache_dir = Path(cache_dir)
        self.path = self.cache_dir / CACHE_FILENAME
        self.max_items = max_items
        self.expiry = timedelta(days=expiry_days)
        self._clock = clock

    def _read(self) -> list[CachedActivity]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            saved_at = datetime.fromisoformat(data["saved_at"])
            if self._clock() - saved_at > self.expiry:
                logger.debug("Activity cache expired (saved {})", saved_at.isoformat())
                self.path.unlink(missing_ok=True)
                return []
            return [CachedActivity.from_dict(item) for item in data.get("activities", [])]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to load activity cache: {}", e)
            return []

    def activities(self) -> list[CachedActivity]:
        """Cached activities, newest first. Empty when expired."""
        return self._read()

    def cache_activity(self, activity: CachedActivity) -> None:
        """Prepend an activity and keep only the newest ``max_items``."""
        updated = [activity, *self._read()][: self.max_items]
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(
                    {
                        "saved_at": self._clock().isoformat(),
                        "activities": [a.to_dict() for a in updated],
                    },
                    f,
                    indent=2,
                )
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to cache activity {}: {}", activity.activity_id, e)

    def random_cached(self, rng: random.Random | None = None) -> CachedActivity | None:
        """Pick any cached activity, or None when the cache is empty."""
        cached = self._read()
        if not cached:
            return None
        return (rng or random).choice(cached)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def __len__(self) -> int:
        return len(self._read())
