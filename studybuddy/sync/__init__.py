"""Device-side sync: the offline report queue and the recent activity cache."""

from studybuddy.sync.activity_cache import CachedActivity, RecentActivityCache
from studybuddy.sync.offline_queue import DrainResult, OfflineSyncQueue, QueuedReport, SubmitResult

__all__ = [
    "CachedActivity",
    "DrainResult",
    "OfflineSyncQueue",
    "QueuedReport",
    "RecentActivityCache",
    "SubmitResult",
]
