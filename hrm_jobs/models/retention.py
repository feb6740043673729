import uuid

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, func
from hrm_jobs.db import Base

class RetentionPolicy(Base):
    __tablename__ = "retention_policies"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    data_category = Column(String(64), nullable=False)
    retention_days = Column(Integer, nullable=False)  # <=0 disables the policy
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "data_category", name="uq_retention_policies_tenant_category"),
    )

class RetentionRun(Base):
    __tablename__ = "retention_runs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    data_category = Column(String(64), nullable=False)
    cutoff_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(16), nullable=False, default="completed")
    deleted_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
