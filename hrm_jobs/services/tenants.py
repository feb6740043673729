from dataclasses import dataclass
from typing import List

from sqlalchemy import select

from ..db import SessionLocal
from ..models.retention import RetentionPolicy
from ..models.tenant import Tenant


@dataclass(frozen=True)
class RetentionPolicyRow:
    data_category: str
    retention_days: int


def list_tenant_ids(session_factory=None) -> List[str]:
    with (session_factory or SessionLocal)() as s:
        return list(s.scalars(select(Tenant.tenant_id).order_by(Tenant.tenant_id)).all())


def list_retention_policies(tenant_id: str, session_factory=None) -> List[RetentionPolicyRow]:
    with (session_factory or SessionLocal)() as s:
        rows = s.execute(
            select(RetentionPolicy.data_category, RetentionPolicy.retention_days)
            .where(RetentionPolicy.tenant_id == tenant_id)
            .order_by(RetentionPolicy.data_category)
        ).all()
    return [RetentionPolicyRow(data_category=c, retention_days=int(d)) for c, d in rows]
