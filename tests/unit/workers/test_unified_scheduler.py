import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.workers.unified_scheduler import JobStatus, UnifiedScheduler, next_minute_boundary

START = datetime(2026, 1, 5, 13, 0, 20, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def clock():
    return FakeClock(START)


@pytest.fixture()
def scheduler(clock):
    sched = UnifiedScheduler(clock=clock)
    yield sched
    drain(sched)


def drain(scheduler: UnifiedScheduler) -> None:
    """Wait for submitted jobs to finish."""
    if scheduler._executor is not None:
        scheduler._executor.shutdown(wait=True)
        scheduler._executor = None


def test_next_minute_boundary():
    assert next_minute_boundary(START) == datetime(2026, 1, 5, 13, 1, tzinfo=timezone.utc)
    on_boundary = datetime(2026, 1, 5, 13, 1, tzinfo=timezone.utc)
    assert next_minute_boundary(on_boundary) == datetime(2026, 1, 5, 13, 2, tzinfo=timezone.utc)


def test_interval_must_be_positive(scheduler):
    with pytest.raises(ValueError):
        scheduler.schedule_interval("t", 0)


def test_job_id_and_namespace_defaults(scheduler):
    job = scheduler.schedule_interval("actuation.schedule_tick", 60)

    assert job.job_id == "actuation.schedule_tick"
    assert job.namespace == "actuation"
    assert job.next_run == START + timedelta(seconds=60)


def test_aligned_job_first_runs_on_minute_boundary(scheduler, clock):
    calls = []
    scheduler.register_task("tick", lambda: calls.append(clock()))
    job = scheduler.schedule_interval("tick", 60, align_to_minute=True)

    assert job.next_run == datetime(2026, 1, 5, 13, 1, tzinfo=timezone.utc)
    assert scheduler.process_due_jobs() == 0

    clock.advance(seconds=40)
    assert scheduler.process_due_jobs() == 1
    drain(scheduler)

    assert len(calls) == 1
    assert job.next_run == datetime(2026, 1, 5, 13, 2, tzinfo=timezone.utc)


def test_fixed_rate_does_not_drift(scheduler, clock):
    scheduler.register_task("tick", lambda: None)
    job = scheduler.schedule_interval("tick", 60, start_immediately=True)

    clock.advance(seconds=5)
    scheduler.process_due_jobs()
    drain(scheduler)

    assert job.next_run == START + timedelta(seconds=60)


def test_missed_slots_are_not_replayed(scheduler, clock):
    scheduler.register_task("tick", lambda: None)
    job = scheduler.schedule_interval("tick", 60, start_immediately=True)

    clock.advance(minutes=5, seconds=10)
    assert scheduler.process_due_jobs() == 1
    drain(scheduler)

    assert job.next_run == START + timedelta(minutes=6)
    assert scheduler.process_due_jobs() == 0


def test_running_job_slot_is_skipped(scheduler, clock):
    release = threading.Event()
    started = threading.Event()

    def slow():
        started.set()
        release.wait(5)

    scheduler.register_task("slow", slow)
    job = scheduler.schedule_interval("slow", 60, start_immediately=True)

    assert scheduler.process_due_jobs() == 1
    assert started.wait(5)

    clock.advance(seconds=60)
    assert scheduler.process_due_jobs() == 0
    assert job.skip_count == 1
    assert scheduler.get_history("slow")[-1].status == JobStatus.SKIPPED

    release.set()
    drain(scheduler)
    assert job.running is False
    assert job.success_count == 1


def test_failing_job_is_recorded(scheduler):
    def boom():
        raise RuntimeError("boom")

    scheduler.register_task("boom", boom)
    job = scheduler.schedule_interval("boom", 30, start_immediately=True)

    scheduler.process_due_jobs()
    drain(scheduler)

    assert job.failure_count == 1
    assert job.last_error == "boom"
    assert scheduler.get_history("boom")[-1].status == JobStatus.FAILED


def test_disabled_and_removed_jobs_do_not_run(scheduler, clock):
    calls = []
    scheduler.register_task("t", lambda: calls.append(1))
    scheduler.schedule_interval("t", 60, job_id="a", start_immediately=True)
    scheduler.schedule_interval("t", 60, job_id="b", start_immediately=True)

    assert scheduler.enable_job("a", False)
    assert scheduler.remove_job("b")
    assert scheduler.process_due_jobs() == 0
    assert calls == []


def test_run_now_returns_result(scheduler):
    scheduler.register_task("t", lambda: {"ok": True})

    result = scheduler.run_now("t")

    assert result.success
    assert result.result == {"ok": True}
    assert scheduler.run_now("missing") is None


def test_status_lists_jobs(scheduler):
    scheduler.register_task("t", lambda: None)
    scheduler.schedule_interval("t", 60)

    status = scheduler.get_status()

    assert status["running"] is False
    assert status["job_count"] == 1
    assert status["jobs"][0]["job_id"] == "t"


def test_start_and_stop(clock):
    sched = UnifiedScheduler(check_interval_seconds=0.01, clock=clock)
    sched.start()
    assert sched.is_running()
    sched.stop()
    assert not sched.is_running()
