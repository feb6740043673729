import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, func
from hrm_jobs.db import Base

class DsarExport(Base):
    __tablename__ = "dsar_exports"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(String(16), nullable=False, default="requested")  # requested|processing|completed|failed
    file_url = Column(String(512), nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

class AnonymizationJob(Base):
    __tablename__ = "anonymization_jobs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(String(16), nullable=False, default="requested")
    requested_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
