"""
Payroll tables purged by payroll retention. Every child row hangs off a
period through ``period_id``.
"""
import uuid

from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey, func
from hrm_jobs.db import Base

def _uuid() -> str:
    return str(uuid.uuid4())

PERIOD_STATUS_DRAFT = "draft"
PERIOD_STATUS_REVIEWED = "reviewed"
PERIOD_STATUS_FINALIZED = "finalized"

class PayrollPeriod(Base):
    __tablename__ = "payroll_periods"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default=PERIOD_STATUS_DRAFT)
    finalized_at = Column(DateTime(timezone=True), nullable=True)

class PayrollInput(Base):
    __tablename__ = "payroll_inputs"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    period_id = Column(String(36), ForeignKey("payroll_periods.id"), index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

class PayrollAdjustment(Base):
    __tablename__ = "payroll_adjustments"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    period_id = Column(String(36), ForeignKey("payroll_periods.id"), index=True, nullable=False)
    description = Column(String(255), nullable=False, default="")
    amount = Column(Numeric(12, 2), nullable=False, default=0)

class PayrollResult(Base):
    __tablename__ = "payroll_results"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    period_id = Column(String(36), ForeignKey("payroll_periods.id"), index=True, nullable=False)
    gross = Column(Numeric(12, 2), nullable=False, default=0)
    net = Column(Numeric(12, 2), nullable=False, default=0)

class Payslip(Base):
    __tablename__ = "payslips"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    period_id = Column(String(36), ForeignKey("payroll_periods.id"), index=True, nullable=False)
    file_url = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class JournalExport(Base):
    __tablename__ = "journal_exports"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    period_id = Column(String(36), ForeignKey("payroll_periods.id"), index=True, nullable=False)
    exported_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
