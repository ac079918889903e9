import errno
import threading
from typing import List

import pytest
from conftest import SessionTracker

from receipt_dispatch.printing.executor import JobExecutor
from receipt_dispatch.printing.models import PrintJob, PrintMode
from receipt_dispatch.printing.scheduler import PrintScheduler, SchedulerShutdown
from receipt_dispatch.printing.transport import SerialTarget

TIMEOUT = 5


def _job(i: int, mode: PrintMode = PrintMode.SIMPLE) -> PrintJob:
    return PrintJob(target=SerialTarget(f"/dev/ttyUSB{i}", 115200), mode=mode)


def _scheduler(factory, sleep) -> PrintScheduler:
    return PrintScheduler(JobExecutor(transport_factory=factory), sleep=sleep)


class Gate:
    """A sleep function that blocks until released, to hold the scheduler in cooldown."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.delays: List[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.entered.set()
        self.release.wait(TIMEOUT)


def test_n_jobs_resolve_exactly_once_in_fifo_order(transport_factory, sleeps):
    sched = _scheduler(transport_factory, sleeps.append)
    jobs = [_job(i) for i in range(6)]
    resolved: List[str] = []
    for job in jobs:
        job.future.add_done_callback(lambda f, jid=job.id: resolved.append(jid))

    futures = [sched.submit(job) for job in jobs]

    results = [f.result(timeout=TIMEOUT) for f in futures]
    assert sched.wait_idle(timeout=TIMEOUT)
    assert all(r.success for r in results)
    assert resolved == [j.id for j in jobs]
    assert [t.name for t in transport_factory.created] == [j.target.describe() for j in jobs]
    assert sleeps == [1.0] * 6
    state = sched.state()
    assert state["state"] == "idle"
    assert state["submitted"] == 6 and state["succeeded"] == 6 and state["failed"] == 0


def test_concurrent_submitters_never_open_two_sessions(transport_factory, sleeps):
    tracker = SessionTracker()
    transport_factory.defaults.update(tracker=tracker, write_delay=0.01)
    sched = _scheduler(transport_factory, sleeps.append)
    jobs = [_job(i) for i in range(8)]

    threads = [threading.Thread(target=sched.submit, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(TIMEOUT)

    assert all(j.future.result(timeout=TIMEOUT).success for j in jobs)
    assert sched.wait_idle(timeout=TIMEOUT)
    assert tracker.max_active == 1
    assert tracker.active == 0
    assert len(tracker.opened) == 8


def test_open_failure_uses_short_cooldown_and_queue_moves_on(transport_factory, sleeps):
    bad, good = _job(0), _job(1)
    transport_factory.per_target[bad.target] = {"fail_open": PermissionError(errno.EACCES, "Permission denied")}
    sched = _scheduler(transport_factory, sleeps.append)

    sched.submit(bad)
    sched.submit(good)

    first = bad.future.result(timeout=TIMEOUT)
    assert first.success is False
    assert "Could not open printer" in first.error
    assert good.future.result(timeout=TIMEOUT).success is True
    assert sched.wait_idle(timeout=TIMEOUT)
    assert sleeps == [0.5, 1.0]
    assert sched.is_busy is False


def test_next_job_waits_for_cooldown(transport_factory):
    gate = Gate()
    sched = _scheduler(transport_factory, gate)
    first, second = _job(0), _job(1)

    sched.submit(first)
    sched.submit(second)

    assert first.future.result(timeout=TIMEOUT).success
    assert gate.entered.wait(TIMEOUT)
    # Busy through the cooldown; the second job has not started
    assert sched.state()["state"] == "busy"
    assert sched.state()["current_job"] == first.id
    assert not second.future.running() and not second.future.done()

    gate.release.set()
    assert second.future.result(timeout=TIMEOUT).success
    assert sched.wait_idle(timeout=TIMEOUT)


def test_cancelled_queued_job_is_skipped(transport_factory):
    gate = Gate()
    sched = _scheduler(transport_factory, gate)
    jobs = [_job(i) for i in range(3)]
    for job in jobs:
        sched.submit(job)

    assert jobs[0].future.result(timeout=TIMEOUT).success
    assert jobs[1].future.cancel() is True
    gate.release.set()

    assert jobs[2].future.result(timeout=TIMEOUT).success
    assert sched.wait_idle(timeout=TIMEOUT)
    assert [t.name for t in transport_factory.created] == [jobs[0].target.describe(), jobs[2].target.describe()]


def test_shutdown_fails_queued_jobs_and_rejects_new_ones(transport_factory):
    gate = Gate()
    sched = _scheduler(transport_factory, gate)
    running, queued = _job(0), _job(1)
    sched.submit(running)
    sched.submit(queued)
    assert running.future.result(timeout=TIMEOUT).success
    assert gate.entered.wait(TIMEOUT)

    sched.shutdown()

    result = queued.future.result(timeout=TIMEOUT)
    assert result.success is False
    assert result.error == "scheduler_shutdown"
    with pytest.raises(SchedulerShutdown):
        sched.submit(_job(2))

    gate.release.set()
    assert sched.wait_idle(timeout=TIMEOUT)
    assert len(transport_factory.created) == 1


def test_executor_crash_still_resolves_and_advances(transport_factory, sleeps):
    real = JobExecutor(transport_factory=transport_factory)

    class ExplodingOnce:
        calls = 0

        def execute(self, job):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            return real.execute(job)

    sched = PrintScheduler(ExplodingOnce(), sleep=sleeps.append)
    a, b = _job(0), _job(1)
    sched.submit(a)
    sched.submit(b)

    ra = a.future.result(timeout=TIMEOUT)
    assert ra.success is False and "boom" in ra.error
    assert b.future.result(timeout=TIMEOUT).success is True
    assert sched.wait_idle(timeout=TIMEOUT)
    assert sched.state()["failed"] == 1
