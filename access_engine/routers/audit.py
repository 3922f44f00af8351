from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from access_engine.schemas.permissions import AccessLogOut
from access_engine.security.context import Principal
from access_engine.security.dependencies import get_principal, get_store, require_organization, require_permission
from access_engine.security.resource_ids import QueryParam

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get(
    "/logs",
    response_model=list[AccessLogOut],
    dependencies=[
        Depends(require_organization(QueryParam("organization_id"))),
        Depends(require_permission("audit", "read")),
    ],
)
async def list_access_logs(
    limit: int = Query(default=50, ge=1, le=500),
    organization_id: str | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    store=Depends(get_store),
) -> list[AccessLogOut]:
    # organization_id, when given, has already been checked against the principal's.
    rows = await store.recent_access_logs(principal.organization_id, limit=limit)
    return [AccessLogOut.model_validate(r) for r in rows]
