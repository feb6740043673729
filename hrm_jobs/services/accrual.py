"""
Leave accrual application.

Accrual is idempotent per (tenant, policy, period): the
``leave_accrual_runs.last_accrued_on`` watermark records the start of the
last period applied, and a policy is skipped while the watermark is at or
past the current period start. Balance updates and the watermark move in
one transaction.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select

from ..db import SessionLocal, session_scope
from ..models.leave import Employee, LeaveAccrualRun, LeaveBalance, LeavePolicy

logger = logging.getLogger("hrm_jobs.accrual")

ACCRUAL_WEEKLY = "weekly"
ACCRUAL_MONTHLY = "monthly"
ACCRUAL_YEARLY = "yearly"

_CENT = Decimal("0.01")

# One lock per (tenant, policy) so a run-now and a scheduled run cannot interleave.
# Entries carry a holder count and are removed when the last holder leaves.
_locks_guard = threading.Lock()
_policy_locks: Dict[Tuple[str, str], List[Any]] = {}


@contextmanager
def _policy_lock(tenant_id: str, policy_id: str):
    key = (tenant_id, policy_id)
    with _locks_guard:
        entry = _policy_locks.get(key)
        if entry is None:
            entry = _policy_locks[key] = [threading.Lock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _policy_locks[key]


@dataclass
class AccrualSummary:
    policies_processed: int = 0
    employees_accrued: int = 0


class AccrualError(Exception):
    """Accrual stopped on a policy; ``summary`` covers the policies committed before it."""

    def __init__(self, summary: AccrualSummary, policy_id: str, cause: Exception):
        self.summary = summary
        self.policy_id = policy_id
        self.cause = cause
        super().__init__(f"accrual failed for policy {policy_id}: {cause}")


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def accrual_period_start(now, period: str) -> Optional[date]:
    """Start of the accrual period containing ``now``; None for unknown periods."""
    today = _as_date(now)
    if period == ACCRUAL_WEEKLY:
        return today - timedelta(days=today.weekday())
    if period == ACCRUAL_MONTHLY:
        return today.replace(day=1)
    if period == ACCRUAL_YEARLY:
        return date(today.year, 1, 1)
    return None


def accrual_period_end(period_start: date, period: str) -> date:
    if period == ACCRUAL_WEEKLY:
        return period_start + timedelta(days=7)
    if period == ACCRUAL_MONTHLY:
        if period_start.month == 12:
            return date(period_start.year + 1, 1, 1)
        return date(period_start.year, period_start.month + 1, 1)
    if period == ACCRUAL_YEARLY:
        return date(period_start.year + 1, 1, 1)
    raise ValueError(f"unknown accrual period: {period}")


def prorated_accrual(rate, start_date: date, period_start: date, period: str) -> Decimal:
    """Share of ``rate`` for an employee who started inside the period."""
    end = accrual_period_end(period_start, period)
    total = (end - period_start).days
    remaining = (end - start_date).days
    if remaining <= 0 or total <= 0:
        return Decimal("0")
    share = _dec(rate) * Decimal(remaining) / Decimal(total)
    return share.quantize(_CENT, rounding=ROUND_HALF_UP)


def _add_to_balance(session, tenant_id: str, employee_id: str, leave_type_id: str,
                    accrual: Decimal, cap: Optional[Decimal]):
    balance = session.scalars(
        select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
        )
    ).first()
    if balance is None:
        value = accrual if cap is None else min(accrual, cap)
        session.add(LeaveBalance(
            tenant_id=tenant_id,
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            balance=value,
        ))
        return
    value = _dec(balance.balance) + accrual
    if cap is not None:
        value = min(value, cap)
    balance.balance = value


def _record_watermark(session, tenant_id: str, policy_id: str, period_start: date, employees: int):
    run = session.scalars(
        select(LeaveAccrualRun).where(
            LeaveAccrualRun.tenant_id == tenant_id,
            LeaveAccrualRun.policy_id == policy_id,
        )
    ).first()
    if run is None:
        session.add(LeaveAccrualRun(
            tenant_id=tenant_id,
            policy_id=policy_id,
            last_accrued_on=period_start,
            employees_accrued=employees,
        ))
        return
    run.last_accrued_on = period_start
    run.employees_accrued = employees


def _apply_policy(factory, tenant_id: str, policy, period_start: date) -> Optional[int]:
    """Apply one policy for ``period_start``; None when already accrued."""
    with session_scope(factory) as s:
        last = s.scalar(
            select(LeaveAccrualRun.last_accrued_on).where(
                LeaveAccrualRun.tenant_id == tenant_id,
                LeaveAccrualRun.policy_id == policy.id,
            )
        )
        if last is not None and _as_date(last) >= period_start:
            return None

        employees = s.execute(
            select(Employee.id, Employee.start_date).where(
                Employee.tenant_id == tenant_id,
                Employee.status == "active",
            )
        ).all()

        rate = _dec(policy.accrual_rate)
        entitlement = _dec(policy.entitlement)
        cap = entitlement + _dec(policy.carry_over_limit) if entitlement > 0 else None

        accrued = 0
        for employee_id, start_date in employees:
            accrual = rate
            if start_date is not None and _as_date(start_date) > period_start:
                accrual = prorated_accrual(rate, _as_date(start_date), period_start, policy.accrual_period)
            if accrual <= 0:
                continue
            _add_to_balance(s, tenant_id, employee_id, policy.leave_type_id, accrual, cap)
            accrued += 1

        _record_watermark(s, tenant_id, policy.id, period_start, accrued)
        return accrued


def apply_accruals(session_factory, tenant_id: str, now) -> AccrualSummary:
    """
    Apply every due accrual policy for a tenant as of ``now``.

    Running it again inside the same period changes nothing. Raises
    AccrualError carrying the partial summary if a policy fails; policies
    committed before it stay committed.
    """
    factory = session_factory or SessionLocal
    summary = AccrualSummary()

    with factory() as s:
        policies = s.execute(
            select(
                LeavePolicy.id,
                LeavePolicy.leave_type_id,
                LeavePolicy.accrual_rate,
                LeavePolicy.accrual_period,
                LeavePolicy.entitlement,
                LeavePolicy.carry_over_limit,
            ).where(
                LeavePolicy.tenant_id == tenant_id,
                LeavePolicy.accrual_rate.is_not(None),
            )
        ).all()

    for policy in policies:
        period_start = accrual_period_start(now, policy.accrual_period)
        if period_start is None:
            continue
        try:
            with _policy_lock(tenant_id, policy.id):
                accrued = _apply_policy(factory, tenant_id, policy, period_start)
        except Exception as e:
            logger.warning("Leave accrual failed", extra={
                "component": "accrual",
                "tenant_id": tenant_id,
                "policy_id": policy.id,
                "error": str(e),
            })
            raise AccrualError(summary, policy.id, e) from e
        if accrued is None:
            continue
        summary.policies_processed += 1
        summary.employees_accrued += accrued

    logger.info("Leave accrual applied", extra={
        "component": "accrual",
        "tenant_id": tenant_id,
        "policies_processed": summary.policies_processed,
        "employees_accrued": summary.employees_accrued,
    })
    return summary
