"""
Offline sync queue for activity reports.

Reports recorded while the device cannot reach StudyBuddy are appended to a
JSON file under ``~/.studybuddy`` and replayed, oldest first, once the API is
reachable again. Each write replaces the file atomically so a crash mid-write
never corrupts the queue.
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from studybuddy.core.errors import PersistenceError, RateLimited, StudyBuddyError, UpstreamUnavailable

QUEUE_FILENAME = "sync_queue.json"

SubmitFn = Callable[[dict[str, Any]], Awaitable[Any]]

# Failures that mean "try again later" rather than "the report is wrong"
DEFERRABLE_ERRORS = (httpx.RequestError, UpstreamUnavailable, RateLimited)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueuedReport:
    """One report waiting to be synced."""

    id: str
    activity_id: str
    score: float
    time_spent_sec: int
    enqueued_at: str  # ISO format
    completed_at: str | None = None  # ISO format
    metadata: dict[str, Any] = field(default_factory=dict)
    skill_code: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Body sent to the report endpoint."""
        payload: dict[str, Any] = {
            "activity_id": self.activity_id,
            "score": self.score,
            "time_spent_sec": self.time_spent_sec,
            "metadata": self.metadata,
        }
        if self.completed_at:
            payload["completed_at"] = self.completed_at
        return payload

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueuedReport:
        return cls(**data)


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    synced: int = 0
    failed: int = 0
    held: int = 0
    skipped: bool = False

    @property
    def remaining(self) -> int:
        return self.failed + self.held


@dataclass
class SubmitResult:
    """Outcome of submit_or_enqueue."""

    synced: bool
    response: Any = None
    queued: QueuedReport | None = None


class OfflineSyncQueue:
    """
    Durable FIFO of reports awaiting submission.

    ``drain`` submits serially in enqueue order. A second drain started while
    one is in flight returns immediately with ``skipped=True``.
    ``submit_or_enqueue`` never lets a new report overtake a pending one that
    may share its skill.
    """

    def __init__(
        self,
        sync_dir: Path,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.sync_dir = Path(sync_dir)
        self.path = self.sync_dir / QUEUE_FILENAME
        self._clock = clock
        self._draining = False
        self._items: list[QueuedReport] = self._load()

    def _load(self) -> list[QueuedReport]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [QueuedReport.from_dict(item) for item in data]
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Sync queue at {} is unreadable, starting empty: {}", self.path, e)
            return []

    def _persist(self, items: list[QueuedReport]) -> None:
        """Write the queue atomically (temp file then rename)."""
        self.sync_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([item.to_dict() for item in items], f, indent=2)
        os.replace(tmp_path, self.path)

    def items(self) -> list[QueuedReport]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def enqueue(
        self,
        report: Mapping[str, Any],
        skill_code: str | None = None,
    ) -> QueuedReport | None:
        """
        Append a report to the queue.

        Never raises: if the queue cannot be written the report is dropped
        with a warning and None is returned.
        """
        completed_at = report.get("completed_at")
        if isinstance(completed_at, datetime):
            completed_at = completed_at.isoformat()

        item = QueuedReport(
            id=str(uuid.uuid4()),
            activity_id=str(report.get("activity_id")),
            score=report.get("score"),
            time_spent_sec=report.get("time_spent_sec"),
            metadata=dict(report.get("metadata") or {}),
            completed_at=completed_at or self._clock().isoformat(),
            enqueued_at=self._clock().isoformat(),
            skill_code=skill_code or report.get("skill_code"),
        )

        updated = [*self._items, item]
        try:
            self._persist(updated)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not save report for activity {} offline: {}", item.activity_id, e)
            return None

        self._items = updated
        logger.info("Queued report {} for activity {} ({} pending)", item.id, item.activity_id, len(updated))
        return item

    async def drain(self, submit: SubmitFn) -> DrainResult:
        """
        Replay queued reports through ``submit``.

        Succeeded items are removed; failed items stay in their original
        order for the next drain. Once an item fails, later items of the same
        skill are held back so the server sees them in order. An item with no
        skill may share one with anything after it: when it fails or is held
        back, everything after it waits too. Items with no skill also wait
        once any earlier item has failed.

        Raises:
            PersistenceError: A synced report could not be removed from the
                queue file; the pass stops so it is not submitted twice
        """
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return DrainResult(skipped=True)
        if not self._items:
            return DrainResult()

        self._draining = True
        result = DrainResult()
        blocked_skills: set[str] = set()
        blocked_all = False
        try:
            for item in list(self._items):
                if blocked_all or item.skill_code in blocked_skills or (result.failed and not item.skill_code):
                    result.held += 1
                    if not item.skill_code:
                        blocked_all = True
                    continue

                try:
                    await submit(item.to_payload())
                except Exception as e:
                    result.failed += 1
                    if item.skill_code:
                        blocked_skills.add(item.skill_code)
                    else:
                        blocked_all = True
                    if isinstance(e, (StudyBuddyError, httpx.HTTPError)):
                        logger.warning("Sync failed for queued report {}: {}", item.id, e)
                    else:
                        logger.exception("Unexpected error syncing queued report {}", item.id)
                    continue

                result.synced += 1
                self._remove(item.id)
        finally:
            self._draining = False

        if result.synced:
            logger.info(
                "Synced {} activity reports ({} still pending)",
                result.synced,
                len(self._items),
            )
        return result

    def _remove(self, item_id: str) -> None:
        remaining = [item for item in self._items if item.id != item_id]
        self._items = remaining
        try:
            self._persist(remaining)
        except OSError as e:
            logger.error("Report {} synced but the queue file could not be updated: {}", item_id, e)
            raise PersistenceError("Could not update the offline queue. Sync stopped.") from e

    def has_pending(self, skill_code: str | None = None) -> bool:
        """
        True when a queued report must reach the server before a new one.

        With no skill every pending report counts; otherwise pending reports
        of that skill or of an unknown skill do.
        """
        if skill_code is None:
            return bool(self._items)
        return any(item.skill_code in (None, skill_code) for item in self._items)

    async def submit_or_enqueue(
        self,
        report: Mapping[str, Any],
        submit: SubmitFn,
        skill_code: str | None = None,
    ) -> SubmitResult:
        """
        Submit a report now, queueing it if the API is unreachable.

        A report is queued without being submitted while older reports it
        must follow are still pending; ``drain`` delivers them in order.

        Raises:
            ValidationError / AuthError: The report or credentials were rejected
        """
        skill_code = skill_code or report.get("skill_code")
        if self.has_pending(skill_code):
            logger.info("Report for activity {} queued behind pending reports", report.get("activity_id"))
            return SubmitResult(synced=False, queued=self.enqueue(report, skill_code=skill_code))

        payload = dict(report)
        if isinstance(payload.get("completed_at"), datetime):
            payload["completed_at"] = payload["completed_at"].isoformat()
        payload.pop("skill_code", None)

        try:
            response = await submit(payload)
        except DEFERRABLE_ERRORS as e:
            logger.info("Report for activity {} deferred: {}", payload.get("activity_id"), e)
            return SubmitResult(synced=False, queued=self.enqueue(report, skill_code=skill_code))
        return SubmitResult(synced=True, response=response)

    def clear(self) -> int:
        """Drop every queued report. Returns how many were removed."""
        removed = len(self._items)
        self._items = []
        self._persist([])
        logger.info("Cleared {} queued reports", removed)
        return removed
