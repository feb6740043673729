"""
Append-only activity tables: audit trail, field access logs, notifications.
"""
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, func
from hrm_jobs.db import Base

class AuditEvent(Base):
    __tablename__ = "audit_events"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    action = Column(String(128), nullable=False)
    entity_type = Column(String(64), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

class AccessLog(Base):
    __tablename__ = "access_logs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    employee_id = Column(String(36), nullable=True)
    fields = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    type = Column(String(64), nullable=False, default="")
    title = Column(String(255), nullable=False, default="")
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
