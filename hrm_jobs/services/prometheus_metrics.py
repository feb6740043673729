"""
Prometheus metrics for HRM Jobs
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Queue
QUEUE_DEPTH = Gauge(
    'hrm_jobs_queue_depth',
    'Current number of jobs waiting in the work queue'
)

QUEUE_SATURATION = Gauge(
    'hrm_jobs_queue_saturation',
    'Work queue depth divided by capacity'
)

QUEUE_ENQUEUES_TOTAL = Counter(
    'hrm_jobs_queue_enqueues_total',
    'Total number of jobs accepted by the work queue',
    ['job_type']
)

QUEUE_DROPS_TOTAL = Counter(
    'hrm_jobs_queue_drops_total',
    'Total number of jobs dropped because the work queue was full or stopped',
    ['job_type']
)

# Runs
JOB_RUNS_TOTAL = Counter(
    'hrm_jobs_runs_total',
    'Total number of job runs by type and outcome',
    ['job_type', 'status']
)

JOB_RUN_SECONDS = Histogram(
    'hrm_jobs_run_seconds',
    'Job run duration in seconds',
    ['job_type'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0]
)

LEDGER_ERRORS_TOTAL = Counter(
    'hrm_jobs_ledger_errors_total',
    'Job run ledger writes that failed',
    ['operation']
)

# Schedulers
SCHEDULER_TICKS_TOTAL = Counter(
    'hrm_jobs_scheduler_ticks_total',
    'Scheduler ticks by scheduler and outcome',
    ['scheduler', 'outcome']
)


class PrometheusMetrics:
    """Prometheus metrics wrapper for the job orchestrator"""

    def set_queue_depth(self, depth: int):
        """Set queue depth gauge."""
        QUEUE_DEPTH.set(depth)

    def set_queue_saturation(self, saturation: float):
        """Set queue saturation gauge."""
        QUEUE_SATURATION.set(saturation)

    def increment_queue_enqueues(self, job_type: str, count: int = 1):
        QUEUE_ENQUEUES_TOTAL.labels(job_type=job_type).inc(count)

    def increment_queue_drops(self, job_type: str, count: int = 1):
        QUEUE_DROPS_TOTAL.labels(job_type=job_type).inc(count)

    def increment_job_runs(self, job_type: str, status: str, count: int = 1):
        JOB_RUNS_TOTAL.labels(job_type=job_type, status=status).inc(count)

    def observe_job_run_seconds(self, job_type: str, seconds: float):
        JOB_RUN_SECONDS.labels(job_type=job_type).observe(seconds)

    def increment_ledger_errors(self, operation: str):
        LEDGER_ERRORS_TOTAL.labels(operation=operation).inc()

    def increment_scheduler_ticks(self, scheduler: str, outcome: str):
        SCHEDULER_TICKS_TOTAL.labels(scheduler=scheduler, outcome=outcome).inc()

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST

# Global metrics instance
prometheus_metrics = PrometheusMetrics()
