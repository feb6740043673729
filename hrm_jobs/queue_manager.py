"""
Job orchestration for HRM Jobs
Bounded work queue with drop-on-full backpressure, a single worker, an inline
run-now path sharing the same ledgering, and the periodic schedulers
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import JobsSettings
from .db import SessionLocal
from .jobs import AccrualJob, CallableJob, Job, JobError, JobType, RetentionJob
from .models.job_run import JOB_RUN_COMPLETED, JOB_RUN_FAILED
from .services.prometheus_metrics import prometheus_metrics
from .services.retention import retention_cutoff
from .services.run_ledger import RunLedger, marshal_details
from .services.tenants import list_retention_policies, list_tenant_ids
from .utils.timeutil import utcnow

logger = logging.getLogger("hrm_jobs.queue_manager")


class JobRunner:
    """Runs one job between opening and closing its ledger row"""

    def __init__(self, ledger: RunLedger):
        self.ledger = ledger

    def run(self, job: Job, raise_errors: bool = False) -> Any:
        """
        Execute ``job`` and record the outcome.

        Ledger and marshal failures are logged and never stop the job.
        With ``raise_errors`` the job's exception is re-raised after the
        failed run is recorded; otherwise it is logged and swallowed.
        """
        job_type = JobType(job.job_type).value
        log_fields = {
            "component": "queue_manager",
            "job_type": job_type,
            "tenant_id": job.tenant_id,
        }
        started = time.monotonic()

        run_id: Optional[str] = None
        try:
            run_id = self.ledger.open_run(job.tenant_id, job_type)
        except Exception as e:
            prometheus_metrics.increment_ledger_errors("insert")
            logger.warning("Job run insert failed", extra={**log_fields, "error": str(e)})

        error: Optional[Exception] = None
        details: Any = None
        try:
            details = job.run()
        except Exception as e:
            error = e
            if isinstance(e, JobError) and e.details is not None:
                details = e.details
            else:
                details = {"error": str(e)}

        status = JOB_RUN_FAILED if error is not None else JOB_RUN_COMPLETED
        try:
            payload = marshal_details(details)
        except (TypeError, ValueError) as e:
            logger.warning("Job details marshal failed", extra={**log_fields, "error": str(e)})
            payload = {}
        if error is not None and isinstance(payload, dict):
            payload.setdefault("error", str(error))

        if run_id is not None:
            try:
                self.ledger.close_run(run_id, status, payload)
            except Exception as e:
                prometheus_metrics.increment_ledger_errors("update")
                logger.warning("Job run update failed", extra={**log_fields, "run_id": run_id, "error": str(e)})

        elapsed = time.monotonic() - started
        prometheus_metrics.increment_job_runs(job_type, status)
        prometheus_metrics.observe_job_run_seconds(job_type, elapsed)

        if error is not None:
            logger.warning("Job run failed", extra={
                **log_fields, "run_id": run_id, "error": str(error), "duration_s": round(elapsed, 3),
            })
            if raise_errors:
                raise error
        else:
            logger.info("Job run completed", extra={
                **log_fields, "run_id": run_id, "duration_s": round(elapsed, 3),
            })
        return details


class JobOrchestrator:
    """Owns the work queue, the worker and the schedulers"""

    def __init__(
        self,
        settings: Optional[JobsSettings] = None,
        session_factory=None,
        ledger: Optional[RunLedger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or JobsSettings()
        self.capacity = max(1, self.settings.queue_capacity)
        self.session_factory = session_factory or SessionLocal
        self.ledger = ledger or RunLedger(self.session_factory)
        self.runner = JobRunner(self.ledger)
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=self.capacity)
        self._clock = clock
        self._worker: Optional[asyncio.Task] = None
        self._schedulers: List[asyncio.Task] = []
        self._stopping: Optional[asyncio.Event] = None
        self._stopped = False
        self._idle = True
        self._dropped = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # -- lifecycle ----------------------------------------------------------

    async def start(self):
        """Start the worker and any enabled schedulers"""
        if self.is_running:
            logger.warning("Job orchestrator already running", extra={"component": "queue_manager"})
            return

        # Bind async primitives to the active event loop
        self._stopping = asyncio.Event()
        self._stopped = False
        self._worker = asyncio.create_task(self._worker_loop(), name="jobs-worker")

        if self.settings.accrual_interval > 0:
            self._schedulers.append(asyncio.create_task(
                self._schedule_loop("leave_accrual", self.settings.accrual_interval, self.tick_accruals),
                name="jobs-accrual-scheduler",
            ))
        if self.settings.retention_interval > 0:
            self._schedulers.append(asyncio.create_task(
                self._schedule_loop("gdpr_retention", self.settings.retention_interval, self.tick_retention),
                name="jobs-retention-scheduler",
            ))

        logger.info("Job orchestrator started", extra={
            "component": "queue_manager",
            "queue_capacity": self.capacity,
            "accrual_interval_s": self.settings.accrual_interval,
            "retention_interval_s": self.settings.retention_interval,
            "schedulers": len(self._schedulers),
        })

    async def stop(self):
        """
        Stop cooperatively: an in-flight job finishes, queued jobs are
        discarded, schedulers stop ticking, later enqueues are dropped.
        """
        self._stopped = True
        if self._stopping is not None:
            self._stopping.set()

        tasks = list(self._schedulers)
        for task in self._schedulers:
            task.cancel()
        if self._worker is not None:
            if self._idle:
                self._worker.cancel()
            tasks.append(self._worker)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        discarded = 0
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.queue.task_done()
            discarded += 1
        self._update_queue_metrics()

        self._schedulers.clear()
        self._worker = None
        logger.info("Job orchestrator stopped", extra={
            "component": "queue_manager",
            "discarded": discarded,
        })

    # -- queue --------------------------------------------------------------

    def enqueue(self, job: Job) -> None:
        """Queue a job without blocking; drops it with a warning when full or stopped"""
        job_type = JobType(job.job_type).value
        if self._stopped:
            self._drop(job_type, job.tenant_id, "stopped")
            return
        try:
            self.queue.put_nowait(job)
        except asyncio.QueueFull:
            self._drop(job_type, job.tenant_id, "queue_full")
            return
        prometheus_metrics.increment_queue_enqueues(job_type)
        self._update_queue_metrics()

    def enqueue_call(self, job_type: JobType, tenant_id: str, fn: Callable[[], Any]) -> None:
        self.enqueue(CallableJob(job_type, tenant_id, fn))

    def _drop(self, job_type: str, tenant_id: str, reason: str):
        self._dropped += 1
        prometheus_metrics.increment_queue_drops(job_type)
        if reason == "queue_full":
            message = "Job queue full, dropping job"
        else:
            message = "Job orchestrator stopped, dropping job"
        logger.warning(message, extra={
            "component": "queue_manager",
            "event": "backpressure",
            "reason": reason,
            "job_type": job_type,
            "tenant_id": tenant_id,
            "queue_depth": self.queue.qsize(),
            "max_depth": self.capacity,
            "drop_count": self._dropped,
        })

    def _update_queue_metrics(self):
        depth = self.queue.qsize()
        prometheus_metrics.set_queue_depth(depth)
        prometheus_metrics.set_queue_saturation(depth / self.capacity)

    def get_queue_stats(self) -> Dict[str, Any]:
        """Get current queue statistics"""
        depth = self.queue.qsize()
        return {
            "depth": depth,
            "max": self.capacity,
            "saturation": depth / self.capacity,
            "dropped": self._dropped,
            "running": self.is_running,
        }

    # -- worker -------------------------------------------------------------

    async def _worker_loop(self):
        """Single consumer: jobs run one at a time in enqueue order"""
        logger.info("Worker started", extra={"component": "queue_manager"})
        while not self._stopping.is_set():
            self._idle = True
            try:
                job = await self.queue.get()
            except asyncio.CancelledError:
                break
            self._idle = False
            try:
                await asyncio.to_thread(self.runner.run, job)
            except Exception as e:
                logger.error("Worker loop error", extra={
                    "component": "queue_manager",
                    "error": str(e),
                })
            finally:
                self.queue.task_done()
                self._update_queue_metrics()
        logger.info("Worker stopped", extra={"component": "queue_manager"})

    # -- run now ------------------------------------------------------------

    async def run_now(self, job: Job) -> Any:
        """Run inline with full ledgering; returns the result or raises the job's error"""
        return await asyncio.to_thread(self.runner.run, job, True)

    async def run_now_call(self, job_type: JobType, tenant_id: str, fn: Callable[[], Any]) -> Any:
        return await self.run_now(CallableJob(job_type, tenant_id, fn))

    async def run_accruals_now(self, tenant_id: str, now: Optional[datetime] = None):
        return await self.run_now(AccrualJob(tenant_id, now or self._clock(), self.session_factory))

    async def run_retention_now(
        self,
        tenant_id: str,
        categories: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run every enabled retention policy of a tenant, optionally only the
        named categories. One failing category does not stop the rest.
        """
        now = now or self._clock()
        wanted = set(categories) if categories else None
        policies = await asyncio.to_thread(list_retention_policies, tenant_id, self.session_factory)

        summaries: List[Dict[str, Any]] = []
        for policy in policies:
            if policy.retention_days <= 0:
                continue
            if wanted is not None and policy.data_category not in wanted:
                continue
            job = RetentionJob(
                tenant_id, policy.data_category,
                retention_cutoff(now, policy.retention_days), self.session_factory,
            )
            status, deleted = JOB_RUN_COMPLETED, 0
            try:
                details = await self.run_now(job)
                deleted = details["deleted_count"]
            except JobError as e:
                status = JOB_RUN_FAILED
                if isinstance(e.details, dict):
                    deleted = e.details.get("deleted_count", 0)
            except Exception:
                status = JOB_RUN_FAILED
            summaries.append({
                "data_category": job.data_category,
                "cutoff_date": job.cutoff,
                "status": status,
                "deleted_count": deleted,
            })
        return summaries

    # -- schedulers ---------------------------------------------------------

    async def _schedule_loop(self, name: str, interval: float, tick: Callable):
        while True:
            await asyncio.sleep(interval)
            try:
                enqueued = await tick()
                prometheus_metrics.increment_scheduler_ticks(name, "ok")
                logger.info("Scheduler tick", extra={
                    "component": "scheduler",
                    "scheduler": name,
                    "jobs": enqueued,
                })
            except Exception as e:
                prometheus_metrics.increment_scheduler_ticks(name, "error")
                logger.warning("Scheduler tick failed", extra={
                    "component": "scheduler",
                    "scheduler": name,
                    "error": str(e),
                })

    async def tick_accruals(self) -> int:
        """One accrual job per tenant. Returns how many were offered to the queue."""
        try:
            tenants = await asyncio.to_thread(list_tenant_ids, self.session_factory)
        except Exception as e:
            logger.warning("Accrual scheduler tenant lookup failed", extra={
                "component": "scheduler",
                "error": str(e),
            })
            return 0
        now = self._clock()
        for tenant_id in tenants:
            self.enqueue(AccrualJob(tenant_id, now, self.session_factory))
        return len(tenants)

    async def tick_retention(self) -> int:
        """One retention job per tenant and enabled policy."""
        try:
            tenants = await asyncio.to_thread(list_tenant_ids, self.session_factory)
        except Exception as e:
            logger.warning("Retention scheduler tenant lookup failed", extra={
                "component": "scheduler",
                "error": str(e),
            })
            return 0
        now = self._clock()
        offered = 0
        for tenant_id in tenants:
            try:
                policies = await asyncio.to_thread(list_retention_policies, tenant_id, self.session_factory)
            except Exception as e:
                logger.warning("Retention policies lookup failed", extra={
                    "component": "scheduler",
                    "tenant_id": tenant_id,
                    "error": str(e),
                })
                continue
            for policy in policies:
                if policy.retention_days <= 0:
                    continue
                self.enqueue(RetentionJob(
                    tenant_id, policy.data_category,
                    retention_cutoff(now, policy.retention_days), self.session_factory,
                ))
                offered += 1
        return offered
