import uuid

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Index
from hrm_jobs.db import Base

JOB_RUN_RUNNING = "running"
JOB_RUN_COMPLETED = "completed"
JOB_RUN_FAILED = "failed"

class JobRun(Base):
    __tablename__ = "job_runs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    job_type = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=JOB_RUN_RUNNING)  # running|completed|failed
    details = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_job_runs_tenant_started", "tenant_id", "started_at"),
    )
