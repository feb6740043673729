"""
Tests for the job orchestrator: queue, worker, run-now and schedulers
"""

import asyncio
import logging
import threading
import time
from datetime import date, timedelta
from decimal import Decimal

import pytest

from hrm_jobs.config import JobsSettings
from hrm_jobs.jobs import AccrualJob, CallableJob, JobError, JobType, RetentionJob
from hrm_jobs.models.activity import AuditEvent
from hrm_jobs.models.job_run import JOB_RUN_COMPLETED, JOB_RUN_FAILED
from hrm_jobs.models.leave import Employee, LeavePolicy
from hrm_jobs.models.payroll import (
    PERIOD_STATUS_FINALIZED, PayrollAdjustment, PayrollInput, PayrollPeriod, PayrollResult,
)
from hrm_jobs.models.retention import RetentionPolicy, RetentionRun
from hrm_jobs.queue_manager import JobOrchestrator
from hrm_jobs.services.run_ledger import JobRunFilter, RunLedger

from conftest import NOW, OTHER_TENANT, TENANT

NO_SCHEDULERS = dict(accrual_interval=0, retention_interval=0)


@pytest.fixture
def make_orchestrator(session_factory, tenants):
    def build(capacity=8, **kwargs):
        settings = JobsSettings(queue_capacity=capacity, **{**NO_SCHEDULERS, **kwargs})
        return JobOrchestrator(settings, session_factory=session_factory, clock=lambda: NOW)
    return build


def runs(orchestrator, **filters):
    return orchestrator.ledger.list_runs(TENANT, JobRunFilter(**filters))


class TestRunNow:
    """Inline execution shares the worker's ledgering."""

    @pytest.mark.asyncio
    async def test_completed_run(self, make_orchestrator):
        jobs = make_orchestrator()

        result = await jobs.run_now_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: {"employees_accrued": 4})

        assert result == {"employees_accrued": 4}
        [run] = runs(jobs)
        assert run["status"] == JOB_RUN_COMPLETED
        assert run["job_type"] == "leave_accrual"
        assert run["details"] == {"employees_accrued": 4}
        assert run["completed_at"] >= run["started_at"]

    @pytest.mark.asyncio
    async def test_failure_is_raised_and_recorded(self, make_orchestrator):
        jobs = make_orchestrator()

        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await jobs.run_now_call(JobType.GDPR_RETENTION, TENANT, boom)

        [run] = runs(jobs)
        assert run["status"] == JOB_RUN_FAILED
        assert run["details"] == {"error": "boom"}
        assert run["completed_at"] is not None

    @pytest.mark.asyncio
    async def test_partial_details_kept_on_failure(self, make_orchestrator):
        jobs = make_orchestrator()

        def partial():
            raise JobError("stopped halfway", details={"deleted_count": 7})

        with pytest.raises(JobError):
            await jobs.run_now_call(JobType.GDPR_RETENTION, TENANT, partial)

        [run] = runs(jobs)
        assert run["status"] == JOB_RUN_FAILED
        assert run["details"] == {"deleted_count": 7, "error": "stopped halfway"}

    @pytest.mark.asyncio
    async def test_unserializable_details_become_empty(self, make_orchestrator, caplog):
        jobs = make_orchestrator()

        with caplog.at_level(logging.WARNING, logger="hrm_jobs.queue_manager"):
            await jobs.run_now_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: {"handle": object()})

        [run] = runs(jobs)
        assert run["status"] == JOB_RUN_COMPLETED
        assert run["details"] == {}
        assert any(r.getMessage() == "Job details marshal failed" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_ledger_outage_does_not_stop_job(self, session_factory, tenants):
        class BrokenLedger(RunLedger):
            def open_run(self, tenant_id, job_type, started_at=None):
                raise RuntimeError("database unavailable")

        jobs = JobOrchestrator(JobsSettings(**NO_SCHEDULERS), session_factory=session_factory,
                               ledger=BrokenLedger(session_factory))
        calls = []

        result = await jobs.run_now_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: calls.append(1) or "ok")

        assert result == "ok"
        assert calls == [1]
        assert jobs.ledger.count_runs(TENANT) == 0

    def test_unknown_job_type_rejected(self):
        with pytest.raises(ValueError):
            CallableJob("payroll_run", TENANT, lambda: None)


class TestWorkQueue:
    """Bounded queue with drop-on-full backpressure."""

    @pytest.mark.asyncio
    async def test_capacity_two_three_enqueues(self, make_orchestrator, caplog):
        jobs = make_orchestrator(capacity=2)
        executed = []
        await jobs.start()
        try:
            with caplog.at_level(logging.WARNING, logger="hrm_jobs.queue_manager"):
                for i in range(3):
                    jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda i=i: executed.append(i))
            await asyncio.wait_for(jobs.queue.join(), timeout=5)
        finally:
            await jobs.stop()

        assert executed == [0, 1]
        assert jobs.ledger.count_runs(TENANT) == 2
        assert jobs.get_queue_stats()["dropped"] == 1
        drops = [r for r in caplog.records if r.getMessage() == "Job queue full, dropping job"]
        assert len(drops) == 1
        assert drops[0].job_type == "leave_accrual"
        assert drops[0].tenant_id == TENANT

    @pytest.mark.asyncio
    async def test_enqueue_never_blocks_when_full(self, make_orchestrator):
        jobs = make_orchestrator(capacity=1)
        started = time.monotonic()
        for _ in range(50):
            jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: None)
        assert time.monotonic() - started < 1
        assert jobs.get_queue_stats() == {
            "depth": 1, "max": 1, "saturation": 1.0, "dropped": 49, "running": False,
        }

    def test_capacity_floor(self, make_orchestrator):
        assert make_orchestrator(capacity=0).capacity == 1

    @pytest.mark.asyncio
    async def test_runs_in_order_and_survives_failures(self, make_orchestrator):
        jobs = make_orchestrator()
        order = []

        def fail():
            order.append("fail")
            raise RuntimeError("nope")

        await jobs.start()
        try:
            jobs.enqueue_call(JobType.GDPR_RETENTION, TENANT, fail)
            jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: order.append("ok"))
            await asyncio.wait_for(jobs.queue.join(), timeout=5)
        finally:
            await jobs.stop()

        assert order == ["fail", "ok"]
        statuses = {r["job_type"]: r["status"] for r in runs(jobs)}
        assert statuses == {"gdpr_retention": JOB_RUN_FAILED, "leave_accrual": JOB_RUN_COMPLETED}


class TestStop:

    @pytest.mark.asyncio
    async def test_idle_worker_stops_and_later_enqueues_drop(self, make_orchestrator):
        jobs = make_orchestrator()
        await jobs.start()
        assert jobs.is_running

        await asyncio.wait_for(jobs.stop(), timeout=2)
        jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: None)

        assert not jobs.is_running
        assert jobs.get_queue_stats()["depth"] == 0
        assert jobs.get_queue_stats()["dropped"] == 1

    @pytest.mark.asyncio
    async def test_in_flight_job_finishes_queued_jobs_discarded(self, make_orchestrator):
        jobs = make_orchestrator()
        picked_up = threading.Event()
        done = []

        def slow():
            picked_up.set()
            time.sleep(0.2)
            done.append("slow")

        await jobs.start()
        jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, slow)
        jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: done.append("queued"))
        await asyncio.wait_for(asyncio.to_thread(picked_up.wait), timeout=2)

        await asyncio.wait_for(jobs.stop(), timeout=5)

        assert done == ["slow"]
        assert jobs.get_queue_stats()["depth"] == 0
        [run] = runs(jobs)
        assert run["status"] == JOB_RUN_COMPLETED

    @pytest.mark.asyncio
    async def test_discarded_jobs_do_not_run_after_restart(self, make_orchestrator):
        jobs = make_orchestrator()
        ran = []
        jobs.enqueue_call(JobType.LEAVE_ACCRUAL, TENANT, lambda: ran.append("stale"))

        await jobs.start()
        await asyncio.wait_for(jobs.stop(), timeout=2)
        assert jobs.get_queue_stats()["depth"] == 0

        await jobs.start()
        await asyncio.sleep(0.3)
        await asyncio.wait_for(jobs.stop(), timeout=2)

        assert ran == []
        assert jobs.ledger.count_runs(TENANT) == 0


class TestSchedulers:

    @pytest.mark.asyncio
    async def test_accrual_tick_one_job_per_tenant(self, make_orchestrator):
        jobs = make_orchestrator()

        assert await jobs.tick_accruals() == 2

        queued = [jobs.queue.get_nowait() for _ in range(jobs.queue.qsize())]
        assert all(isinstance(job, AccrualJob) for job in queued)
        assert sorted(job.tenant_id for job in queued) == [TENANT, OTHER_TENANT]
        assert all(job.as_of == NOW for job in queued)

    @pytest.mark.asyncio
    async def test_retention_tick_skips_disabled_policies(self, make_orchestrator, seed):
        seed(
            RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=90),
            RetentionPolicy(tenant_id=TENANT, data_category="leave", retention_days=0),
            RetentionPolicy(tenant_id=OTHER_TENANT, data_category="payroll", retention_days=365),
        )
        jobs = make_orchestrator()

        assert await jobs.tick_retention() == 2

        queued = sorted(
            (jobs.queue.get_nowait() for _ in range(jobs.queue.qsize())),
            key=lambda job: job.data_category,
        )
        assert [(j.tenant_id, j.data_category) for j in queued] == [(TENANT, "audit"), (OTHER_TENANT, "payroll")]
        assert queued[0].cutoff == NOW - timedelta(days=90)

    @pytest.mark.asyncio
    async def test_tenant_lookup_failure_skips_tick(self, make_orchestrator, monkeypatch):
        def broken(session_factory=None):
            raise RuntimeError("db down")

        monkeypatch.setattr("hrm_jobs.queue_manager.list_tenant_ids", broken)
        jobs = make_orchestrator()

        assert await jobs.tick_accruals() == 0
        assert await jobs.tick_retention() == 0
        assert jobs.queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_scheduler_fires_after_interval(self, make_orchestrator, seed):
        seed(AuditEvent(tenant_id=TENANT, action="old", created_at=NOW - timedelta(days=91)))
        seed(RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=90))
        jobs = make_orchestrator(retention_interval=0.1)
        finished = threading.Event()
        run_job = jobs.runner.run

        def run_and_signal(job, raise_errors=False):
            try:
                return run_job(job, raise_errors)
            finally:
                finished.set()

        jobs.runner.run = run_and_signal
        await jobs.start()
        try:
            assert await asyncio.to_thread(finished.wait, 5)
        finally:
            await jobs.stop()

        run = runs(jobs, job_type="gdpr_retention")[-1]
        assert run["details"]["data_category"] == "audit"
        assert run["details"]["deleted_count"] == 1


class TestDomainJobs:
    """Accrual and retention through the orchestrator."""

    @pytest.mark.asyncio
    async def test_retention_now_boundary(self, make_orchestrator, seed, session_factory):
        seed(
            AuditEvent(tenant_id=TENANT, action="91", created_at=NOW - timedelta(days=91)),
            AuditEvent(tenant_id=TENANT, action="89", created_at=NOW - timedelta(days=89)),
            RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=90),
            RetentionPolicy(tenant_id=TENANT, data_category="notifications", retention_days=30),
        )
        jobs = make_orchestrator()

        results = await jobs.run_retention_now(TENANT, categories=["audit"])

        assert results == [{
            "data_category": "audit",
            "cutoff_date": NOW - timedelta(days=90),
            "status": JOB_RUN_COMPLETED,
            "deleted_count": 1,
        }]
        [run] = runs(jobs)
        assert run["details"] == {
            "data_category": "audit",
            "cutoff_date": (NOW - timedelta(days=90)).isoformat(),
            "deleted_count": 1,
        }
        with session_factory() as s:
            history = s.query(RetentionRun).all()
            assert [(h.data_category, h.deleted_count) for h in history] == [("audit", 1)]

    @pytest.mark.asyncio
    async def test_retention_failure_recorded_with_partial_count(self, make_orchestrator, engine, seed, session_factory):
        seed(
            PayrollPeriod(id="p1", tenant_id=TENANT, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31),
                          status=PERIOD_STATUS_FINALIZED),
            RetentionPolicy(tenant_id=TENANT, data_category="payroll", retention_days=365),
            RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=90),
            AuditEvent(tenant_id=TENANT, action="old", created_at=NOW - timedelta(days=100)),
        )
        seed(PayrollInput(tenant_id=TENANT, period_id="p1"), PayrollAdjustment(tenant_id=TENANT, period_id="p1"))
        PayrollResult.__table__.drop(engine)
        jobs = make_orchestrator()

        results = await jobs.run_retention_now(TENANT)

        by_category = {r["data_category"]: r for r in results}
        assert by_category["payroll"]["status"] == JOB_RUN_FAILED
        assert by_category["payroll"]["deleted_count"] == 2
        # one failing category does not stop the others
        assert by_category["audit"]["status"] == JOB_RUN_COMPLETED
        assert by_category["audit"]["deleted_count"] == 1

        [failed] = runs(jobs, status=JOB_RUN_FAILED)
        assert failed["details"]["deleted_count"] == 2
        assert failed["details"]["data_category"] == "payroll"
        assert "payroll_results" in failed["details"]["error"]
        with session_factory() as s:
            row = s.query(RetentionRun).filter_by(data_category="payroll").one()
            assert (row.status, row.deleted_count) == ("failed", 2)

    @pytest.mark.asyncio
    async def test_retention_job_error_from_run_now(self, make_orchestrator, engine, seed):
        seed(AuditEvent(tenant_id=TENANT, action="old", created_at=NOW - timedelta(days=100)))
        AuditEvent.__table__.drop(engine)
        jobs = make_orchestrator()

        with pytest.raises(JobError) as exc_info:
            await jobs.run_now(RetentionJob(TENANT, "audit", NOW - timedelta(days=90), jobs.session_factory))

        assert exc_info.value.details["deleted_count"] == 0

    @pytest.mark.asyncio
    async def test_accruals_now(self, make_orchestrator, seed):
        seed(
            Employee(id="e1", tenant_id=TENANT, start_date=date(2020, 1, 1)),
            LeavePolicy(tenant_id=TENANT, leave_type_id="annual", accrual_rate=Decimal("2"),
                        accrual_period="monthly"),
        )
        jobs = make_orchestrator()

        first = await jobs.run_accruals_now(TENANT)
        second = await jobs.run_accruals_now(TENANT)

        assert (first.policies_processed, first.employees_accrued) == (1, 1)
        assert (second.policies_processed, second.employees_accrued) == (0, 0)
        details = [r["details"] for r in runs(jobs, job_type="leave_accrual")]
        assert sorted(details, key=lambda d: d["policies_processed"]) == [
            {"policies_processed": 0, "employees_accrued": 0},
            {"policies_processed": 1, "employees_accrued": 1},
        ]
