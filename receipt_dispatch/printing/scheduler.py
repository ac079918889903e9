"""
FIFO, single-concurrency print scheduler.

The printer cannot multiplex, so jobs run strictly one at a time in
submission order. submit() never blocks: it enqueues the job and returns the
job's future. When the scheduler is idle, advance() pops the head job and runs
it on a background thread; after the job resolves, the scheduler waits a
cooldown (shorter when the device never opened) before going idle and
advancing again.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Deque, Dict, Optional

from receipt_dispatch.printing.executor import JobExecutor
from receipt_dispatch.printing.models import JobResult, PrintJob

logger = logging.getLogger(__name__)

DEFAULT_OPEN_FAILURE_COOLDOWN = 0.5
DEFAULT_JOB_COOLDOWN = 1.0


class SchedulerShutdown(RuntimeError):
    """Raised by submit() once the scheduler has been shut down."""


class PrintScheduler:
    def __init__(
        self,
        executor: JobExecutor,
        *,
        open_failure_cooldown: float = DEFAULT_OPEN_FAILURE_COOLDOWN,
        job_cooldown: float = DEFAULT_JOB_COOLDOWN,
        sleep: Callable[[float], None] = time.sleep,
        thread_name: str = "receipt-dispatch-worker",
    ) -> None:
        self._executor = executor
        self.open_failure_cooldown = open_failure_cooldown
        self.job_cooldown = job_cooldown
        self._sleep = sleep
        self._thread_name = thread_name

        self._queue: Deque[PrintJob] = deque()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        # Busy iff a job is set here
        self._current: Optional[PrintJob] = None
        self._accepting = True
        self._counters = {"submitted": 0, "succeeded": 0, "failed": 0}

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._current is not None

    def submit(self, job: PrintJob) -> "Future[JobResult]":
        """
        Enqueue a job and return its completion future without blocking.
        """
        with self._lock:
            if not self._accepting:
                raise SchedulerShutdown("scheduler is shut down")
            self._queue.append(job)
            self._counters["submitted"] += 1
            size = len(self._queue)
        logger.info("Enqueued job %s queue_size=%d", job.describe(), size)
        self.advance()
        return job.future

    def advance(self) -> None:
        """
        Start the head job if idle. No-op while busy or when the queue is empty.
        """
        with self._lock:
            if self._current is not None:
                return
            job = None
            while self._queue:
                candidate = self._queue.popleft()
                # A caller may cancel a future that has not started yet
                if candidate.future.set_running_or_notify_cancel():
                    job = candidate
                    break
                logger.info("Dropping cancelled job %s", candidate.id)
            if job is None:
                self._idle.notify_all()
                return
            self._current = job
            remaining = len(self._queue)
        logger.info("Starting job %s queue_size=%d", job.describe(), remaining)
        t = threading.Thread(target=self._run, args=(job,), daemon=True, name=self._thread_name)
        t.start()

    def _run(self, job: PrintJob) -> None:
        try:
            result = self._executor.execute(job)
        except Exception as e:
            logger.exception("Job %s failed unexpectedly: %s", job.id, e)
            result = JobResult.failed(f"Unexpected error: {e}")

        with self._lock:
            self._counters["succeeded" if result.success else "failed"] += 1
        job.future.set_result(result)
        logger.info("Job %s finished success=%s", job.id, result.success)

        delay = self.job_cooldown if result.opened else self.open_failure_cooldown
        try:
            if delay > 0:
                self._sleep(delay)
        finally:
            with self._lock:
                self._current = None
                self._idle.notify_all()
            self.advance()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until nothing is running or queued. Returns False on timeout.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._current is None and not self._queue, timeout)

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """
        Stop accepting jobs and fail everything still queued. The running job,
        if any, is allowed to finish.
        """
        with self._lock:
            self._accepting = False
            pending = list(self._queue)
            self._queue.clear()
            self._idle.notify_all()
        for job in pending:
            if job.future.set_running_or_notify_cancel():
                job.future.set_result(JobResult.failed("scheduler_shutdown", opened=False))
        if pending:
            logger.info("Scheduler shut down with %d queued job(s) failed", len(pending))
        if wait:
            self.wait_idle(timeout)

    def state(self) -> Dict[str, Any]:
        with self._lock:
            current = self._current
            return {
                "state": "busy" if current is not None else "idle",
                "current_job": current.id if current is not None else None,
                "queue_size": len(self._queue),
                "accepting": self._accepting,
                **self._counters,
            }


__all__ = ["PrintScheduler", "SchedulerShutdown"]
