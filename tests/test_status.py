"""Tests for the job status state machine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from job_hierarchy import (
    Hierarchy,
    HierarchyEventType,
    HierarchySettings,
    IllegalTransitionError,
    InvalidStatusError,
    JobStatus,
    VALID_TRANSITIONS,
)
from job_hierarchy.jobs.status import coerce_status
from job_hierarchy.jobs.types import STATUS_FIELD, can_transition
from tests._tree_testkit import finish, make_chain, make_job


def job_events(bus):
    return [e for e in bus.published if e.kind is HierarchyEventType.JOB_UPDATE]


class TestJobStatus:
    """Status enum and transition table."""

    def test_terminal_states(self):
        assert JobStatus.COMPLETE.is_terminal
        assert JobStatus.FAILED.is_terminal
        for status in (JobStatus.UNKNOWN, JobStatus.ENQUEUED, JobStatus.RUNNING, JobStatus.REQUEUED):
            assert not status.is_terminal

    def test_status_codes(self):
        assert [s.code for s in JobStatus] == [None, "0", "1", "2", "3", "4"]
        assert JobStatus.from_code("2") is JobStatus.COMPLETE
        assert JobStatus.from_code(None) is JobStatus.UNKNOWN
        assert JobStatus.from_code("9") is JobStatus.UNKNOWN

    def test_every_status_can_be_enqueued_again(self):
        for status in JobStatus:
            if status is not JobStatus.ENQUEUED:
                assert JobStatus.ENQUEUED in VALID_TRANSITIONS[status]

    def test_terminal_states_only_reenqueue(self):
        assert VALID_TRANSITIONS[JobStatus.COMPLETE] == {JobStatus.ENQUEUED}
        assert VALID_TRANSITIONS[JobStatus.FAILED] == {JobStatus.ENQUEUED}

    @pytest.mark.parametrize(
        "old,new,legal",
        [
            (JobStatus.UNKNOWN, JobStatus.ENQUEUED, True),
            (JobStatus.ENQUEUED, JobStatus.RUNNING, True),
            (JobStatus.RUNNING, JobStatus.COMPLETE, True),
            (JobStatus.RUNNING, JobStatus.REQUEUED, True),
            (JobStatus.RUNNING, JobStatus.FAILED, True),
            (JobStatus.REQUEUED, JobStatus.ENQUEUED, True),
            (JobStatus.REQUEUED, JobStatus.RUNNING, True),
            (JobStatus.REQUEUED, JobStatus.FAILED, True),
            (JobStatus.UNKNOWN, JobStatus.RUNNING, False),
            (JobStatus.ENQUEUED, JobStatus.COMPLETE, False),
            (JobStatus.COMPLETE, JobStatus.RUNNING, False),
            (JobStatus.FAILED, JobStatus.ENQUEUED, True),
            (JobStatus.COMPLETE, JobStatus.FAILED, False),
            (JobStatus.ENQUEUED, JobStatus.REQUEUED, False),
        ],
    )
    def test_can_transition(self, old, new, legal):
        assert can_transition(old, new) is legal

    def test_coerce_accepts_names(self):
        assert coerce_status("complete") is JobStatus.COMPLETE
        assert coerce_status("FAILED") is JobStatus.FAILED
        assert coerce_status(JobStatus.RUNNING) is JobStatus.RUNNING

    @pytest.mark.parametrize("value", ["unknown", JobStatus.UNKNOWN, "done", "", 3, None])
    def test_coerce_rejects_unsettable(self, value):
        with pytest.raises(InvalidStatusError):
            coerce_status(value)


class TestUpdateStatus:
    """StatusMachine.update_status."""

    @pytest.mark.asyncio
    async def test_normal_lifecycle(self, hierarchy):
        job = await make_job(hierarchy, "j")

        assert await job.enqueue()
        assert await job.is_enqueued()
        assert await job.run()
        assert await job.is_running()
        assert await job.complete()
        assert await job.is_complete()
        assert await job.is_finished()

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, hierarchy, bus, store, clock):
        job = await make_job(hierarchy, "j")
        await job.enqueue()
        before = await store.get_all(job.key)
        events_before = len(bus.published)
        clock.advance(60)

        changed = await job.enqueue()

        assert changed is False
        assert await store.get_all(job.key) == before
        assert len(bus.published) == events_before

    @pytest.mark.asyncio
    async def test_invalid_status_writes_nothing(self, hierarchy, bus, store):
        job = await make_job(hierarchy, "j")
        before = await store.get_all(job.key)

        with pytest.raises(InvalidStatusError):
            await job.update_status("exploded")
        with pytest.raises(InvalidStatusError):
            await job.update_status(JobStatus.UNKNOWN)

        assert await store.get_all(job.key) == before
        assert bus.published == []

    @pytest.mark.asyncio
    async def test_illegal_transition_raises_when_strict(self, hierarchy, store):
        job = await make_job(hierarchy, "j")
        await finish(job)

        with pytest.raises(IllegalTransitionError) as exc_info:
            await job.update_status("running")

        assert exc_info.value.context.job_id == "j"
        assert await job.is_complete()
        assert await store.get(job.key, STATUS_FIELD) == "2"

    @pytest.mark.asyncio
    async def test_illegal_transition_applied_when_lenient(self, store, bus, clock):
        hierarchy = Hierarchy(
            store=store,
            event_bus=bus,
            settings=HierarchySettings(strict_transitions=False),
            clock=clock,
        )
        job = await make_job(hierarchy, "j")

        assert await job.complete()

        assert await job.is_complete()
        assert await job.finished_subtree_size() == 1

    @pytest.mark.asyncio
    async def test_timestamps_come_from_clock(self, hierarchy, clock):
        job = await make_job(hierarchy, "j")
        start = clock.now

        await job.enqueue()
        clock.advance(5)
        await job.run()
        clock.advance(10)
        await job.complete()

        assert await job.enqueued_at() == datetime.fromtimestamp(start, tz=timezone.utc)
        assert await job.run_at() == datetime.fromtimestamp(start + 5, tz=timezone.utc)
        assert await job.complete_at() == datetime.fromtimestamp(start + 15, tz=timezone.utc)
        assert await job.finished_at() == await job.complete_at()
        assert await job.failed_at() is None

    @pytest.mark.asyncio
    async def test_failed_stamps_completion_field(self, hierarchy, clock):
        job = await make_job(hierarchy, "j")
        await finish(job, "failed")

        assert await job.failed_at() == datetime.fromtimestamp(clock.now, tz=timezone.utc)
        assert await job.complete_at() is None
        assert await job.finished_at() == await job.failed_at()

    @pytest.mark.asyncio
    async def test_requeue_keeps_timestamps(self, hierarchy, store, clock):
        job = await make_job(hierarchy, "j")
        await job.enqueue()
        await job.run()
        before = await store.get_all(job.key)
        clock.advance(30)

        await job.requeue()

        after = await store.get_all(job.key)
        assert after["s"] == "3"
        assert {k: v for k, v in after.items() if k not in ("s", "w", "wf")} == {
            k: v for k, v in before.items() if k not in ("s", "w", "wf")
        }

    @pytest.mark.asyncio
    async def test_retry_after_requeue_restamps_run(self, hierarchy, clock):
        job = await make_job(hierarchy, "j")
        await job.enqueue()
        await job.run()
        await job.requeue()
        clock.advance(100)

        await job.run()

        assert await job.run_at() == datetime.fromtimestamp(clock.now, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_failed_from_requeued(self, hierarchy):
        job = await make_job(hierarchy, "j")
        await job.enqueue()
        await job.run()
        await job.requeue()

        assert await job.fail()
        assert await job.is_failed()

    @pytest.mark.asyncio
    async def test_reenqueue_finished_job_drops_out_of_finished_count(self, hierarchy):
        a, b = await make_chain(hierarchy, "a", "b")
        await finish(b, "failed")
        assert await b.finished_subtree_size() == 1

        assert await b.enqueue()

        assert await b.is_enqueued()
        assert await a.finished_subtree_size() == 0
        assert await b.finished_subtree_size() == 0


class TestJobEvents:
    """job.update notifications."""

    @pytest.mark.asyncio
    async def test_one_event_per_effective_change(self, hierarchy, bus):
        a, b = await make_chain(hierarchy, "a", "b")

        await b.enqueue()
        await b.enqueue()
        await b.run()

        events = job_events(bus)
        assert [(e.job_id, e.old_status, e.new_status) for e in events] == [
            ("b", JobStatus.UNKNOWN, JobStatus.ENQUEUED),
            ("b", JobStatus.ENQUEUED, JobStatus.RUNNING),
        ]
        assert all(e.workflow_id == "a" for e in events)

    @pytest.mark.asyncio
    async def test_subscriber_receives_job_event(self, hierarchy, bus):
        job = await make_job(hierarchy, "j")
        sub = bus.subscribe(job_id="j", kinds={HierarchyEventType.JOB_UPDATE})

        await job.enqueue()
        event = await bus.wait_for_event(sub, timeout=1)

        assert event is not None
        assert event.new_status is JobStatus.ENQUEUED
        assert event.old_status is JobStatus.UNKNOWN
