"""
Data retention enforcement.

Each data category maps to a ``RetentionPlan``: an optional resolve phase
that pins down the parent rows expiring at the cutoff, then an ordered list
of statements run child-before-parent. Every statement commits on its own;
a failure stops the plan and reports how many rows were already affected.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import SessionLocal, session_scope
from ..models.activity import AccessLog, AuditEvent, Notification
from ..models.gdpr import AnonymizationJob, DsarExport
from ..models.leave import LeaveApproval, LeaveRequest
from ..models.payroll import (
    PERIOD_STATUS_FINALIZED, JournalExport, PayrollAdjustment, PayrollInput,
    PayrollPeriod, PayrollResult, Payslip,
)
from ..models.performance import (
    CheckIn, Feedback, Goal, GoalComment, ImprovementPlan, ReviewCycle,
    ReviewResponse, ReviewTask,
)
from ..models.retention import RetentionRun
from ..utils.timeutil import utcnow

logger = logging.getLogger("hrm_jobs.retention")

DATA_CATEGORY_AUDIT = "audit"
DATA_CATEGORY_LEAVE = "leave"
DATA_CATEGORY_PAYROLL = "payroll"
DATA_CATEGORY_PERFORMANCE = "performance"
DATA_CATEGORY_GDPR = "gdpr"
DATA_CATEGORY_ACCESS_LOGS = "access_logs"
DATA_CATEGORY_NOTIFICATIONS = "notifications"
# Configurable on tenants but not purged here yet
DATA_CATEGORY_PROFILE = "employee_profile"
DATA_CATEGORY_EMERGENCY = "emergency_contacts"

Resolved = Dict[str, List[str]]
StatementBuilder = Callable[[str, datetime, Resolved], Any]


class RetentionError(Exception):
    """A retention statement failed; ``deleted`` holds rows affected before it."""

    def __init__(self, category: str, deleted: int, cause: Exception, step: Optional[str] = None):
        self.category = category
        self.deleted = deleted
        self.cause = cause
        self.step = step
        where = f" at {step}" if step else ""
        super().__init__(f"retention {category} failed{where} after {deleted} rows: {cause}")


@dataclass(frozen=True)
class RetentionStep:
    name: str
    build: StatementBuilder


@dataclass(frozen=True)
class RetentionPlan:
    steps: Tuple[RetentionStep, ...]
    # Returns None when there is nothing to purge for this tenant
    resolve: Optional[Callable[[Session, str, datetime], Optional[Resolved]]] = None


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    return now - timedelta(days=retention_days)


def _no_sync(stmt):
    return stmt.execution_options(synchronize_session=False)


# -- audit / access logs / notifications ------------------------------------

def _delete_created_before(model):
    def build(tenant_id: str, cutoff: datetime, resolved: Resolved):
        return _no_sync(delete(model).where(model.tenant_id == tenant_id, model.created_at < cutoff))
    return build


# -- leave ------------------------------------------------------------------

def _resolve_leave(session: Session, tenant_id: str, cutoff: datetime) -> Resolved:
    ids = session.scalars(
        select(LeaveRequest.id).where(LeaveRequest.tenant_id == tenant_id, LeaveRequest.created_at < cutoff)
    ).all()
    return {"request_ids": list(ids)}


def _delete_leave_approvals(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(LeaveApproval).where(
        LeaveApproval.tenant_id == tenant_id,
        or_(
            and_(LeaveApproval.decided_at.is_not(None), LeaveApproval.decided_at < cutoff),
            LeaveApproval.leave_request_id.in_(resolved["request_ids"]),
        ),
    ))


def _delete_leave_requests(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(LeaveRequest).where(
        LeaveRequest.tenant_id == tenant_id, LeaveRequest.id.in_(resolved["request_ids"])
    ))


# -- payroll ----------------------------------------------------------------

def _resolve_payroll(session: Session, tenant_id: str, cutoff: datetime) -> Optional[Resolved]:
    ids = session.scalars(
        select(PayrollPeriod.id).where(
            PayrollPeriod.tenant_id == tenant_id,
            PayrollPeriod.status == PERIOD_STATUS_FINALIZED,
            PayrollPeriod.end_date < cutoff.date(),
        )
    ).all()
    if not ids:
        return None
    return {"period_ids": list(ids)}


def _delete_period_children(model):
    def build(tenant_id: str, cutoff: datetime, resolved: Resolved):
        return _no_sync(delete(model).where(
            model.tenant_id == tenant_id, model.period_id.in_(resolved["period_ids"])
        ))
    return build


def _delete_payroll_periods(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(PayrollPeriod).where(
        PayrollPeriod.tenant_id == tenant_id, PayrollPeriod.id.in_(resolved["period_ids"])
    ))


# -- performance ------------------------------------------------------------

def _resolve_performance(session: Session, tenant_id: str, cutoff: datetime) -> Resolved:
    goal_ids = session.scalars(
        select(Goal.id).where(Goal.tenant_id == tenant_id, Goal.updated_at < cutoff)
    ).all()
    cycle_ids = session.scalars(
        select(ReviewCycle.id).where(ReviewCycle.tenant_id == tenant_id, ReviewCycle.end_date < cutoff.date())
    ).all()
    task_ids = session.scalars(
        select(ReviewTask.id).where(
            ReviewTask.tenant_id == tenant_id,
            or_(ReviewTask.created_at < cutoff, ReviewTask.cycle_id.in_(cycle_ids)),
        )
    ).all()
    return {"goal_ids": list(goal_ids), "cycle_ids": list(cycle_ids), "task_ids": list(task_ids)}


def _detach_feedback_from_goals(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(update(Feedback).where(
        Feedback.tenant_id == tenant_id, Feedback.related_goal_id.in_(resolved["goal_ids"])
    ).values(related_goal_id=None))


def _delete_review_responses(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(ReviewResponse).where(
        ReviewResponse.tenant_id == tenant_id,
        or_(ReviewResponse.submitted_at < cutoff, ReviewResponse.task_id.in_(resolved["task_ids"])),
    ))


def _delete_review_tasks(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(ReviewTask).where(
        ReviewTask.tenant_id == tenant_id, ReviewTask.id.in_(resolved["task_ids"])
    ))


def _delete_review_cycles(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(ReviewCycle).where(
        ReviewCycle.tenant_id == tenant_id, ReviewCycle.id.in_(resolved["cycle_ids"])
    ))


def _delete_goal_comments(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(GoalComment).where(GoalComment.goal_id.in_(resolved["goal_ids"])))


def _delete_goals(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(Goal).where(Goal.tenant_id == tenant_id, Goal.id.in_(resolved["goal_ids"])))


def _delete_pips(tenant_id: str, cutoff: datetime, resolved: Resolved):
    return _no_sync(delete(ImprovementPlan).where(
        ImprovementPlan.tenant_id == tenant_id, ImprovementPlan.updated_at < cutoff
    ))


# -- gdpr -------------------------------------------------------------------

def _delete_completed_before(model):
    def build(tenant_id: str, cutoff: datetime, resolved: Resolved):
        return _no_sync(delete(model).where(
            model.tenant_id == tenant_id,
            model.completed_at.is_not(None),
            model.completed_at < cutoff,
        ))
    return build


RETENTION_PLANS: Dict[str, RetentionPlan] = {
    DATA_CATEGORY_AUDIT: RetentionPlan(
        steps=(RetentionStep("audit_events", _delete_created_before(AuditEvent)),),
    ),
    DATA_CATEGORY_LEAVE: RetentionPlan(
        resolve=_resolve_leave,
        steps=(
            RetentionStep("leave_approvals", _delete_leave_approvals),
            RetentionStep("leave_requests", _delete_leave_requests),
        ),
    ),
    DATA_CATEGORY_PAYROLL: RetentionPlan(
        resolve=_resolve_payroll,
        steps=(
            RetentionStep("payroll_inputs", _delete_period_children(PayrollInput)),
            RetentionStep("payroll_adjustments", _delete_period_children(PayrollAdjustment)),
            RetentionStep("payroll_results", _delete_period_children(PayrollResult)),
            RetentionStep("payslips", _delete_period_children(Payslip)),
            RetentionStep("journal_exports", _delete_period_children(JournalExport)),
            RetentionStep("payroll_periods", _delete_payroll_periods),
        ),
    ),
    DATA_CATEGORY_PERFORMANCE: RetentionPlan(
        resolve=_resolve_performance,
        steps=(
            RetentionStep("feedback.related_goal_id", _detach_feedback_from_goals),
            RetentionStep("review_responses", _delete_review_responses),
            RetentionStep("review_tasks", _delete_review_tasks),
            RetentionStep("review_cycles", _delete_review_cycles),
            RetentionStep("goal_comments", _delete_goal_comments),
            RetentionStep("goals", _delete_goals),
            RetentionStep("feedback", _delete_created_before(Feedback)),
            RetentionStep("checkins", _delete_created_before(CheckIn)),
            RetentionStep("pips", _delete_pips),
        ),
    ),
    DATA_CATEGORY_GDPR: RetentionPlan(
        steps=(
            RetentionStep("dsar_exports", _delete_completed_before(DsarExport)),
            RetentionStep("anonymization_jobs", _delete_completed_before(AnonymizationJob)),
        ),
    ),
    DATA_CATEGORY_ACCESS_LOGS: RetentionPlan(
        steps=(RetentionStep("access_logs", _delete_created_before(AccessLog)),),
    ),
    DATA_CATEGORY_NOTIFICATIONS: RetentionPlan(
        steps=(RetentionStep("notifications", _delete_created_before(Notification)),),
    ),
}


def supported_categories() -> List[str]:
    return list(RETENTION_PLANS)


def apply_retention(session_factory, tenant_id: str, category: str, cutoff: datetime) -> int:
    """
    Purge ``category`` rows older than ``cutoff`` for one tenant.

    Returns the number of affected rows. Categories without a plan are a
    no-op returning 0. Raises RetentionError with the partial count when a
    statement fails; statements already committed stay committed.
    """
    plan = RETENTION_PLANS.get(category)
    if plan is None:
        logger.debug("No retention plan for category", extra={
            "component": "retention",
            "tenant_id": tenant_id,
            "data_category": category,
        })
        return 0

    factory = session_factory or SessionLocal
    total = 0
    with factory() as session:
        resolved: Resolved = {}
        if plan.resolve is not None:
            try:
                resolved = plan.resolve(session, tenant_id, cutoff)
            except SQLAlchemyError as e:
                session.rollback()
                raise RetentionError(category, 0, e, step="resolve") from e
            # Nothing expiring for this tenant
            if resolved is None:
                session.rollback()
                return 0
            session.commit()

        for step in plan.steps:
            try:
                result = session.execute(step.build(tenant_id, cutoff, resolved))
                affected = max(result.rowcount or 0, 0)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.warning("Retention statement failed", extra={
                    "component": "retention",
                    "tenant_id": tenant_id,
                    "data_category": category,
                    "step": step.name,
                    "deleted_so_far": total,
                    "error": str(e),
                })
                raise RetentionError(category, total, e, step=step.name) from e
            total += affected

    logger.info("Retention applied", extra={
        "component": "retention",
        "tenant_id": tenant_id,
        "data_category": category,
        "cutoff": cutoff.isoformat(),
        "deleted": total,
    })
    return total


def record_retention_run(
    session_factory,
    tenant_id: str,
    category: str,
    cutoff: datetime,
    status: str,
    deleted: int,
    started_at: Optional[datetime] = None,
) -> Optional[str]:
    """Best-effort history row; failures are logged and return None."""
    try:
        with session_scope(session_factory) as s:
            row = RetentionRun(
                tenant_id=tenant_id,
                data_category=category,
                cutoff_date=cutoff,
                status=status,
                deleted_count=deleted,
                started_at=started_at or utcnow(),
                completed_at=utcnow(),
            )
            s.add(row)
            s.flush()
            return row.id
    except Exception as e:
        logger.warning("Retention run insert failed", extra={
            "component": "retention",
            "tenant_id": tenant_id,
            "data_category": category,
            "error": str(e),
        })
        return None
