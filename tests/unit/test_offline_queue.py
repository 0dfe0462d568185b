"""
Unit tests for the offline report queue.
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from studybuddy.core.errors import (
    AuthError,
    PersistenceError,
    RateLimited,
    UpstreamUnavailable,
    ValidationError,
)
from studybuddy.sync.offline_queue import QUEUE_FILENAME, OfflineSyncQueue


def _report(activity_id, score=0.8, **extra):
    return {"activity_id": activity_id, "score": score, "time_spent_sec": 60, **extra}


class RecordingSubmitter:
    """Async submit function that records calls and fails selected activities."""

    def __init__(self, fail_for=(), error=None):
        self.calls = []
        self.fail_for = set(fail_for)
        self.error = error or UpstreamUnavailable()

    async def __call__(self, payload):
        self.calls.append(payload["activity_id"])
        if payload["activity_id"] in self.fail_for:
            raise self.error
        return {"success": True}


@pytest.fixture
def queue(tmp_path):
    return OfflineSyncQueue(tmp_path)


class TestEnqueue:
    """Appending reports to durable storage."""

    def test_enqueue_persists_to_file(self, queue, tmp_path):
        item = queue.enqueue(_report("a", metadata={"attempt": 1}))

        data = json.loads((tmp_path / QUEUE_FILENAME).read_text(encoding="utf-8"))
        assert len(queue) == 1
        assert data[0]["id"] == item.id
        assert data[0]["activity_id"] == "a"
        assert data[0]["metadata"] == {"attempt": 1}
        assert item.enqueued_at
        assert item.completed_at

    def test_ids_are_unique(self, queue):
        first = queue.enqueue(_report("a"))
        second = queue.enqueue(_report("a"))
        assert first.id != second.id

    def test_queue_survives_restart(self, queue, tmp_path):
        queue.enqueue(_report("a"))
        queue.enqueue(_report("b"))

        reloaded = OfflineSyncQueue(tmp_path)

        assert [i.activity_id for i in reloaded.items()] == ["a", "b"]

    def test_completed_at_datetime_is_serialized(self, queue):
        done = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)
        item = queue.enqueue(_report("a", completed_at=done))
        assert item.completed_at == done.isoformat()
        assert item.to_payload()["completed_at"] == done.isoformat()

    def test_storage_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        queue = OfflineSyncQueue(blocker)

        assert queue.enqueue(_report("a")) is None
        assert len(queue) == 0

    def test_corrupt_file_starts_empty(self, tmp_path):
        (tmp_path / QUEUE_FILENAME).write_text("{not json", encoding="utf-8")
        assert len(OfflineSyncQueue(tmp_path)) == 0


class TestDrain:
    """Serial, ordered replay."""

    @pytest.mark.asyncio
    async def test_empty_queue_is_noop(self, queue):
        submit = RecordingSubmitter()

        result = await queue.drain(submit)

        assert submit.calls == []
        assert result.synced == 0
        assert result.skipped is False

    @pytest.mark.asyncio
    async def test_successful_drain_empties_queue(self, queue, tmp_path):
        queue.enqueue(_report("a"))
        queue.enqueue(_report("b"))
        submit = RecordingSubmitter()

        result = await queue.drain(submit)

        assert submit.calls == ["a", "b"]
        assert result.synced == 2
        assert len(queue) == 0
        assert json.loads((tmp_path / QUEUE_FILENAME).read_text(encoding="utf-8")) == []

    @pytest.mark.asyncio
    async def test_second_drain_submits_nothing(self, queue):
        queue.enqueue(_report("a"))
        submit = RecordingSubmitter()

        await queue.drain(submit)
        await queue.drain(submit)

        assert submit.calls == ["a"]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_failed_item(self, queue):
        queue.enqueue(_report("1"), skill_code="math")
        queue.enqueue(_report("2"), skill_code="english")
        queue.enqueue(_report("3"), skill_code="science")
        submit = RecordingSubmitter(fail_for={"2"})

        result = await queue.drain(submit)

        assert submit.calls == ["1", "2", "3"]
        assert result.synced == 2
        assert result.failed == 1
        assert [i.activity_id for i in queue.items()] == ["2"]

    @pytest.mark.asyncio
    async def test_failed_items_keep_original_order(self, queue):
        for name, skill in [("1", "math"), ("2", "english"), ("3", "science"), ("4", "social")]:
            queue.enqueue(_report(name), skill_code=skill)

        await queue.drain(RecordingSubmitter(fail_for={"1", "3"}))

        assert [i.activity_id for i in queue.items()] == ["1", "3"]

    @pytest.mark.asyncio
    async def test_rejected_report_stays_queued(self, queue):
        queue.enqueue(_report("bad"))

        result = await queue.drain(RecordingSubmitter(fail_for={"bad"}, error=ValidationError()))

        assert result.failed == 1
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_transport_error_does_not_abort(self, queue):
        queue.enqueue(_report("a"), skill_code="math")
        queue.enqueue(_report("b"), skill_code="english")

        result = await queue.drain(
            RecordingSubmitter(fail_for={"a"}, error=httpx.ConnectError("offline"))
        )

        assert result.synced == 1
        assert [i.activity_id for i in queue.items()] == ["a"]

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_abort(self, queue):
        queue.enqueue(_report("a"), skill_code="math")
        queue.enqueue(_report("b"), skill_code="english")
        queue.enqueue(_report("c"), skill_code="science")

        result = await queue.drain(
            RecordingSubmitter(fail_for={"a"}, error=json.JSONDecodeError("Expecting value", "<html>", 0))
        )

        assert result.failed == 1
        assert result.synced == 2
        assert [i.activity_id for i in queue.items()] == ["a"]

    @pytest.mark.asyncio
    async def test_same_skill_held_back_after_failure(self, queue):
        queue.enqueue(_report("a1"), skill_code="math")
        queue.enqueue(_report("b1"), skill_code="english")
        queue.enqueue(_report("a2"), skill_code="math")
        queue.enqueue(_report("x"))
        submit = RecordingSubmitter(fail_for={"a1"})

        result = await queue.drain(submit)

        assert submit.calls == ["a1", "b1"]
        assert result.held == 2
        assert result.remaining == 3
        assert [i.activity_id for i in queue.items()] == ["a1", "a2", "x"]

    @pytest.mark.asyncio
    async def test_unknown_skill_failure_holds_back_everything_after_it(self, queue):
        queue.enqueue(_report("1"))
        queue.enqueue(_report("2"))
        queue.enqueue(_report("3"), skill_code="math")
        submit = RecordingSubmitter(fail_for={"1"})

        first = await queue.drain(submit)
        submit.fail_for.clear()
        second = await queue.drain(submit)

        assert first.failed == 1
        assert first.held == 2
        assert second.synced == 3
        assert submit.calls == ["1", "1", "2", "3"]

    @pytest.mark.asyncio
    async def test_held_unknown_skill_blocks_later_skills(self, queue):
        queue.enqueue(_report("a1"), skill_code="math")
        queue.enqueue(_report("x"))
        queue.enqueue(_report("b1"), skill_code="english")
        submit = RecordingSubmitter(fail_for={"a1"})

        result = await queue.drain(submit)

        assert submit.calls == ["a1"]
        assert result.held == 2

    @pytest.mark.asyncio
    async def test_same_skill_submitted_in_completion_order(self, queue):
        queue.enqueue(_report("A", score=0.2), skill_code="math")
        queue.enqueue(_report("B", score=0.9), skill_code="math")
        submit = RecordingSubmitter()

        await queue.drain(submit)

        assert submit.calls == ["A", "B"]

    @pytest.mark.asyncio
    async def test_unsaved_removal_stops_drain(self, queue, tmp_path, monkeypatch):
        queue.enqueue(_report("a"), skill_code="math")
        queue.enqueue(_report("b"), skill_code="english")
        submit = RecordingSubmitter()

        def read_only(items):
            raise OSError("read-only file system")

        monkeypatch.setattr(queue, "_persist", read_only)

        with pytest.raises(PersistenceError):
            await queue.drain(submit)

        assert submit.calls == ["a"]
        assert [i.activity_id for i in queue.items()] == ["b"]
        assert not queue.is_draining

    @pytest.mark.asyncio
    async def test_concurrent_drain_is_skipped(self, queue):
        queue.enqueue(_report("a"))
        release = asyncio.Event()
        calls = []

        async def slow_submit(payload):
            calls.append(payload["activity_id"])
            await release.wait()

        first = asyncio.create_task(queue.drain(slow_submit))
        await asyncio.sleep(0)
        assert queue.is_draining

        second = await queue.drain(slow_submit)
        release.set()
        first_result = await first

        assert second.skipped is True
        assert first_result.synced == 1
        assert calls == ["a"]
        assert not queue.is_draining

    @pytest.mark.asyncio
    async def test_items_enqueued_during_drain_are_kept(self, queue):
        queue.enqueue(_report("a"))

        async def submit(payload):
            queue.enqueue(_report("late"))

        await queue.drain(submit)

        assert [i.activity_id for i in queue.items()] == ["late"]


class TestSubmitOrEnqueue:
    """Direct submission with offline fallback."""

    @pytest.mark.asyncio
    async def test_success_is_not_queued(self, queue):
        result = await queue.submit_or_enqueue(_report("a"), RecordingSubmitter())

        assert result.synced is True
        assert result.response == {"success": True}
        assert len(queue) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [UpstreamUnavailable(), RateLimited(), httpx.ConnectError("offline")],
    )
    async def test_deferrable_failure_is_queued(self, queue, error):
        result = await queue.submit_or_enqueue(
            _report("a"), RecordingSubmitter(fail_for={"a"}, error=error), skill_code="math"
        )

        assert result.synced is False
        assert result.queued.activity_id == "a"
        assert result.queued.skill_code == "math"
        assert len(queue) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ValidationError("Invalid activity ID format"), AuthError()])
    async def test_rejection_is_surfaced(self, queue, error):
        with pytest.raises(type(error)):
            await queue.submit_or_enqueue(_report("a"), RecordingSubmitter(fail_for={"a"}, error=error))
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_waits_behind_pending_report_of_same_skill(self, queue):
        queue.enqueue(_report("1"), skill_code="math")
        submit = RecordingSubmitter()

        result = await queue.submit_or_enqueue(_report("2"), submit, skill_code="math")
        await queue.drain(submit)

        assert result.synced is False
        assert result.queued.activity_id == "2"
        assert submit.calls == ["1", "2"]

    @pytest.mark.asyncio
    async def test_waits_behind_pending_report_of_unknown_skill(self, queue):
        queue.enqueue(_report("1"))
        submit = RecordingSubmitter()

        result = await queue.submit_or_enqueue(_report("2"), submit, skill_code="math")

        assert result.synced is False
        assert submit.calls == []

    @pytest.mark.asyncio
    async def test_other_skill_pending_does_not_block(self, queue):
        queue.enqueue(_report("1"), skill_code="english")
        submit = RecordingSubmitter()

        result = await queue.submit_or_enqueue(_report("2"), submit, skill_code="math")

        assert result.synced is True
        assert submit.calls == ["2"]
        assert [i.activity_id for i in queue.items()] == ["1"]

    @pytest.mark.asyncio
    async def test_unknown_skill_waits_behind_any_pending_report(self, queue):
        queue.enqueue(_report("1"), skill_code="english")

        result = await queue.submit_or_enqueue(_report("2"), RecordingSubmitter())

        assert result.synced is False
        assert len(queue) == 2


def test_clear_empties_queue(queue, tmp_path):
    queue.enqueue(_report("a"))
    queue.enqueue(_report("b"))

    assert queue.clear() == 2
    assert len(OfflineSyncQueue(tmp_path)) == 0
