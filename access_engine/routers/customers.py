from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from access_engine.engine.attributes import decode_attributes, plain
from access_engine.schemas.permissions import CustomerOut
from access_engine.security.context import Principal
from access_engine.security.dependencies import get_principal, get_store, require_permission
from access_engine.security.resource_ids import PathParam

router = APIRouter(prefix="/customers", tags=["customers"])

CUSTOMER_RESOURCE = "customers"


@router.get(
    "/{customer_id}",
    response_model=CustomerOut,
    dependencies=[Depends(require_permission(CUSTOMER_RESOURCE, "read", resource_id=PathParam("customer_id")))],
)
async def get_customer(
    customer_id: str,
    principal: Principal = Depends(get_principal),
    store=Depends(get_store),
) -> CustomerOut:
    rows = await store.find_resource_attributes(principal.organization_id, CUSTOMER_RESOURCE, customer_id)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return CustomerOut(id=customer_id, attributes=plain(decode_attributes(rows)))
