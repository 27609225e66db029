"""
Background job scheduler for the WaterKontrol worker.

A single loop thread pops due jobs off a heap and hands them to a bounded
thread pool. Every job in this process is a fixed-rate interval job: the
schedule tick once a minute and the liveness sweep on its own interval.

Rules:
- Intervals advance from the scheduled time, not the completion time, so
  runs do not drift.
- A job whose previous run is still executing is skipped for that slot;
  runs of the same job never overlap.
- Missed slots (process suspended, clock jump) are not replayed; the next
  run lands on the first future slot.
- ``align_to_minute`` starts a job on the next wall-clock minute boundary
  so that minute-granular work sees each minute exactly once.

All times are UTC.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Outcome of one job slot."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class JobResult:
    """Result of a job execution."""

    job_id: str
    status: JobStatus
    started_at: datetime
    completed_at: datetime
    result: Any = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class ScheduledJob:
    """An interval job bound to a registered task."""

    job_id: str
    task_name: str
    namespace: str  # e.g. "actuation", "device"
    interval_seconds: int
    enabled: bool = True

    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)

    # Execution tracking
    next_run: datetime | None = None
    last_run: datetime | None = None
    running: bool = False
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skip_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "task_name": self.task_name,
            "namespace": self.namespace,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "running": self.running,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skip_count": self.skip_count,
            "last_error": self.last_error,
        }


def next_minute_boundary(now: datetime) -> datetime:
    """First instant strictly after ``now`` whose seconds are zero."""
    return now.replace(second=0, microsecond=0) + timedelta(minutes=1)


class UnifiedScheduler:
    """
    Interval scheduler with a bounded worker pool.

    Heap entries are ``(run_at_ts, seq, job_id)``. Entries are never removed
    in place; stale ones (job removed, disabled, or rescheduled) are skipped
    when popped.
    """

    def __init__(
        self,
        check_interval_seconds: float = 1.0,
        max_history: int = 500,
        max_workers: int = 2,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            check_interval_seconds: How often the loop looks for due jobs
            max_history: Job results kept in memory
            max_workers: Concurrent job executions
            clock: Source of the current UTC time
        """
        self._check_interval = float(check_interval_seconds)
        self._max_history = int(max_history)
        self._max_workers = int(max_workers)
        self._clock = clock

        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, Callable] = {}

        self._job_heap: list[tuple[float, int, str]] = []
        self._heap_seq = 0

        self._history: list[JobResult] = []

        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._job_lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None

    # ==================== Task Registration ====================

    def register_task(self, name: str, func: Callable) -> None:
        """Register a task function under ``name``."""
        self._tasks[name] = func
        logger.debug("Registered task: %s", name)

    @property
    def task_names(self) -> list[str]:
        return sorted(self._tasks)

    def clear_jobs(self) -> None:
        with self._job_lock:
            self._jobs.clear()
            self._job_heap.clear()
            self._heap_seq = 0

    def _ensure_executor(self) -> None:
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="WaterKontrolJob",
        )

    def _push_heap(self, job: ScheduledJob) -> None:
        if not job.enabled or not job.next_run:
            return
        self._heap_seq += 1
        heapq.heappush(self._job_heap, (job.next_run.timestamp(), self._heap_seq, job.job_id))

    # ==================== Job Scheduling ====================

    def schedule_interval(
        self,
        task_name: str,
        interval_seconds: int,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
        align_to_minute: bool = False,
    ) -> ScheduledJob:
        """
        Run ``task_name`` every ``interval_seconds``.

        ``align_to_minute`` takes precedence over ``start_immediately``.
        """
        if int(interval_seconds) <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        if job_id is None:
            job_id = task_name
        if namespace is None:
            namespace = task_name.split(".")[0] if "." in task_name else "default"

        now = self._clock()
        if align_to_minute:
            next_run = next_minute_boundary(now)
        elif start_immediately:
            next_run = now
        else:
            next_run = now + timedelta(seconds=int(interval_seconds))

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=namespace,
            interval_seconds=int(interval_seconds),
            enabled=enabled,
            args=args,
            kwargs=kwargs or {},
            next_run=next_run,
        )
        with self._job_lock:
            self._jobs[job.job_id] = job
            self._push_heap(job)
        logger.info("Scheduled job %s every %ss (first run %s)", job_id, interval_seconds, next_run.isoformat())
        return job

    def run_now(self, task_name: str, *, args: tuple = (), kwargs: dict[str, Any] | None = None) -> JobResult | None:
        """Run a registered task synchronously on the calling thread."""
        func = self._tasks.get(task_name)
        if func is None:
            logger.error("Task not found: %s", task_name)
            return None

        started_at = self._clock()
        try:
            result = func(*args, **(kwargs or {}))
            job_result = JobResult(
                job_id=f"{task_name}_immediate",
                status=JobStatus.COMPLETED,
                started_at=started_at,
                completed_at=self._clock(),
                result=result,
            )
        except Exception as e:
            logger.error("Immediate task %s failed: %s", task_name, e, exc_info=True)
            job_result = JobResult(
                job_id=f"{task_name}_immediate",
                status=JobStatus.FAILED,
                started_at=started_at,
                completed_at=self._clock(),
                error=str(e),
            )
        self._record_history(job_result)
        return job_result

    # ==================== Job Management ====================

    def remove_job(self, job_id: str) -> bool:
        with self._job_lock:
            if self._jobs.pop(job_id, None) is not None:
                logger.info("Removed job: %s", job_id)
                return True
        return False

    def enable_job(self, job_id: str, enabled: bool = True) -> bool:
        with self._job_lock:
            job = self._jobs.get(job_id)
            if not job:
                return False
            job.enabled = bool(enabled)
            if job.enabled:
                if job.next_run is None or job.next_run <= self._clock():
                    job.next_run = self._clock() + timedelta(seconds=job.interval_seconds)
                self._push_heap(job)
            logger.info("Job %s %s", job_id, "enabled" if job.enabled else "disabled")
            return True

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def get_jobs(self, namespace: str | None = None) -> list[ScheduledJob]:
        jobs = list(self._jobs.values())
        if namespace:
            jobs = [j for j in jobs if j.namespace == namespace]
        return jobs

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        """Start the loop thread."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._ensure_executor()
        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="UnifiedScheduler")
        self._thread.start()
        logger.info("UnifiedScheduler started with %d job(s)", len(self._jobs))

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if wait and self._thread:
            self._thread.join(timeout=timeout)
        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("UnifiedScheduler stopped")

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop()."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        logger.debug("Scheduler loop started")
        while self._running:
            try:
                self.process_due_jobs()
            except Exception as e:
                logger.error("Error in scheduler loop: %s", e, exc_info=True)
            self._stop_event.wait(self._check_interval)
        logger.debug("Scheduler loop ended")

    # ==================== Core Scheduling Logic ====================

    def process_due_jobs(self) -> int:
        """
        Dispatch every job due at the current clock time.

        Returns:
            Number of slots dispatched (skipped slots excluded)
        """
        now = self._clock()
        now_ts = now.timestamp()
        dispatched = 0

        with self._job_lock:
            while self._job_heap:
                run_at_ts, _seq, job_id = self._job_heap[0]
                if run_at_ts > now_ts:
                    break
                heapq.heappop(self._job_heap)

                job = self._jobs.get(job_id)
                if not job or not job.enabled or not job.next_run:
                    continue
                if abs(job.next_run.timestamp() - run_at_ts) > 1e-6:
                    continue

                scheduled_for = job.next_run
                self._advance(job, scheduled_for, now)
                self._push_heap(job)

                if job.running:
                    job.skip_count += 1
                    logger.warning(
                        "Job %s slot %s skipped: previous run still in progress",
                        job.job_id,
                        scheduled_for.isoformat(),
                    )
                    self._record_history(
                        JobResult(
                            job_id=job.job_id,
                            status=JobStatus.SKIPPED,
                            started_at=now,
                            completed_at=now,
                        )
                    )
                    continue

                self._ensure_executor()
                job.running = True
                try:
                    self._executor.submit(self._execute_job, job, scheduled_for)
                    dispatched += 1
                except RuntimeError as e:
                    job.running = False
                    logger.error("Failed to submit job %s: %s", job_id, e)
        return dispatched

    def _advance(self, job: ScheduledJob, scheduled_for: datetime, now: datetime) -> None:
        interval = timedelta(seconds=job.interval_seconds)
        next_run = scheduled_for + interval
        if next_run <= now:
            behind = (now - next_run) // interval + 1
            next_run += behind * interval
        job.next_run = next_run

    def _execute_job(self, job: ScheduledJob, scheduled_for: datetime) -> None:
        started_at = self._clock()
        try:
            func = self._tasks.get(job.task_name)
            if func is None:
                raise ValueError(f"Task function not found: {job.task_name}")

            kwargs = dict(job.kwargs)
            result = func(*job.args, **kwargs)

            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.success_count += 1
                job.last_error = None
            job_result = JobResult(
                job_id=job.job_id,
                status=JobStatus.COMPLETED,
                started_at=started_at,
                completed_at=self._clock(),
                result=result,
            )
            logger.debug(
                "Job %s completed in %.2fs (scheduled_for=%s)",
                job.job_id,
                job_result.duration_seconds,
                scheduled_for.isoformat(),
            )
        except Exception as e:
            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.failure_count += 1
                job.last_error = str(e)
            job_result = JobResult(
                job_id=job.job_id,
                status=JobStatus.FAILED,
                started_at=started_at,
                completed_at=self._clock(),
                error=str(e),
            )
            logger.error("Job %s failed: %s", job.job_id, e, exc_info=True)
        finally:
            with self._job_lock:
                job.running = False

        self._record_history(job_result)

    def _record_history(self, result: JobResult) -> None:
        with self._job_lock:
            self._history.append(result)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

    # ==================== Status & History ====================

    def get_history(self, job_id: str | None = None, limit: int = 50) -> list[JobResult]:
        with self._job_lock:
            history = list(self._history)
        if job_id:
            history = [r for r in history if r.job_id == job_id]
        return history[-limit:]

    def get_status(self) -> dict[str, Any]:
        with self._job_lock:
            jobs = [job.to_dict() for job in self._jobs.values()]
        return {
            "running": self._running,
            "max_workers": self._max_workers,
            "job_count": len(jobs),
            "jobs": jobs,
            "history_size": len(self._history),
        }
