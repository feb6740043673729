"""
Leave domain tables read and written by accrual and leave retention.

Owned by the leave service; only the columns this package touches are mapped.
"""
import uuid

from sqlalchemy import (
    Column, String, Integer, Numeric, Date, DateTime, ForeignKey, UniqueConstraint, func
)
from hrm_jobs.db import Base

def _uuid() -> str:
    return str(uuid.uuid4())

class Employee(Base):
    __tablename__ = "employees"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    first_name = Column(String(128), nullable=False, default="")
    last_name = Column(String(128), nullable=False, default="")
    status = Column(String(16), nullable=False, default="active")
    start_date = Column(Date, nullable=True)

class LeavePolicy(Base):
    __tablename__ = "leave_policies"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    leave_type_id = Column(String(36), nullable=False)
    accrual_rate = Column(Numeric(10, 4), nullable=True)
    accrual_period = Column(String(16), nullable=False, default="monthly")  # weekly|monthly|yearly
    entitlement = Column(Numeric(10, 2), nullable=False, default=0)
    carry_over_limit = Column(Numeric(10, 2), nullable=False, default=0)

class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    leave_type_id = Column(String(36), nullable=False)
    balance = Column(Numeric(10, 2), nullable=False, default=0)
    pending = Column(Numeric(10, 2), nullable=False, default=0)
    used = Column(Numeric(10, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", name="uq_leave_balances_employee_type"),
    )

class LeaveAccrualRun(Base):
    __tablename__ = "leave_accrual_runs"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), nullable=False)
    policy_id = Column(String(36), ForeignKey("leave_policies.id", ondelete="CASCADE"), nullable=False)
    last_accrued_on = Column(Date, nullable=False)
    employees_accrued = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "policy_id", name="uq_leave_accrual_runs_tenant_policy"),
    )

class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class LeaveApproval(Base):
    __tablename__ = "leave_approvals"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    leave_request_id = Column(String(36), ForeignKey("leave_requests.id"), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    decided_at = Column(DateTime(timezone=True), nullable=True)
