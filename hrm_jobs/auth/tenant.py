from fastapi import HTTPException, Request

from ..config import DEFAULT_TENANT
from ..db import SessionLocal
from ..models.tenant import Tenant


def require_tenant(optional: bool = False):
    async def dep(request: Request):
        factory = getattr(request.app.state, "session_factory", None) or SessionLocal

        with factory() as db:
            # 1) Header wins if valid
            hdr = request.headers.get("x-tenant-id")
            tenant_row = None
            if hdr:
                tenant_row = db.get(Tenant, hdr)
                if not tenant_row:
                    raise HTTPException(status_code=404, detail="tenant_not_found")

            # 2) Single-tenant deployments may configure a default
            if tenant_row is None and DEFAULT_TENANT:
                tenant_row = db.get(Tenant, DEFAULT_TENANT)

            if tenant_row is None:
                if optional:
                    return None
                raise HTTPException(status_code=400, detail="tenant_required")

            # Stash for downstream
            request.state.tenant_id = tenant_row.tenant_id
            return tenant_row.tenant_id

    return dep
