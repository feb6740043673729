from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class JobRunOut(BaseModel):
    id: str
    tenant_id: str
    job_type: str
    status: str
    details: Any = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None


class QueueStatsOut(BaseModel):
    depth: int
    max: int
    saturation: float
    dropped: int
    running: bool


class AccrualSummaryOut(BaseModel):
    policies_processed: int
    employees_accrued: int


class RetentionRunRequest(BaseModel):
    categories: Optional[List[str]] = None


class RetentionCategoryOut(BaseModel):
    data_category: str
    cutoff_date: datetime
    status: str
    deleted_count: int


class RetentionRunOut(BaseModel):
    tenant_id: str
    results: List[RetentionCategoryOut]
