"""
Performance-management tables purged by performance retention.
"""
import uuid

from sqlalchemy import Column, String, Text, Date, DateTime, ForeignKey, func
from hrm_jobs.db import Base

def _uuid() -> str:
    return str(uuid.uuid4())

class Goal(Base):
    __tablename__ = "goals"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False, default="")
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class GoalComment(Base):
    __tablename__ = "goal_comments"
    id = Column(String(36), primary_key=True, default=_uuid)
    goal_id = Column(String(36), ForeignKey("goals.id"), index=True, nullable=False)
    comment = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class Feedback(Base):
    __tablename__ = "feedback"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    message = Column(Text, nullable=False, default="")
    related_goal_id = Column(String(36), ForeignKey("goals.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class ReviewCycle(Base):
    __tablename__ = "review_cycles"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(255), nullable=False, default="")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

class ReviewTask(Base):
    __tablename__ = "review_tasks"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    cycle_id = Column(String(36), ForeignKey("review_cycles.id"), index=True, nullable=False)
    status = Column(String(16), nullable=False, default="assigned")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class ReviewResponse(Base):
    __tablename__ = "review_responses"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    task_id = Column(String(36), ForeignKey("review_tasks.id"), index=True, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

class CheckIn(Base):
    __tablename__ = "checkins"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

class ImprovementPlan(Base):
    __tablename__ = "pips"
    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
