from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Union

from fastapi import APIRouter, Body, Depends, Query, Request

from access_engine.engine import AccessDecision, AccessRequest, RequestContext, RuleEngine
from access_engine.schemas.permissions import (
    BulkCheckPermissionRequest,
    BulkCheckPermissionResponse,
    BulkCheckResult,
    CheckPermissionRequest,
    CheckPermissionResponse,
    QuickCheckResponse,
    UserPermissionsOut,
)
from access_engine.security.context import Principal
from access_engine.security.dependencies import get_principal, get_rule_engine, request_context_from

router = APIRouter(prefix="/permissions", tags=["permissions"])

# Caller-supplied context keys that may fill gaps in what the transport provides.
_CONTEXT_KEYS = {"ipAddress": "ip_address", "userAgent": "user_agent", "sessionId": "session_id"}


def _merge_context(base: RequestContext, extra: dict[str, Any] | None) -> RequestContext:
    if not extra:
        return base
    updates = {
        field: str(extra[key])
        for key, field in _CONTEXT_KEYS.items()
        if extra.get(key) is not None and getattr(base, field) is None
    }
    return replace(base, **updates) if updates else base


def _access_request(principal: Principal, check: CheckPermissionRequest, ctx: RequestContext) -> AccessRequest:
    return AccessRequest(
        user_id=principal.user_id,
        organization_id=principal.organization_id,
        resource=check.resource,
        action=check.action,
        resource_id=check.resource_id,
        request_context=_merge_context(ctx, check.context),
    )


@router.post(
    "/check",
    response_model=Union[CheckPermissionResponse, BulkCheckPermissionResponse],
    response_model_by_alias=True,
)
async def check_permission(
    request: Request,
    payload: Union[BulkCheckPermissionRequest, CheckPermissionRequest] = Body(...),
    principal: Principal = Depends(get_principal),
    engine: RuleEngine = Depends(get_rule_engine),
) -> CheckPermissionResponse | BulkCheckPermissionResponse:
    ctx = request_context_from(request)

    if isinstance(payload, BulkCheckPermissionRequest):
        decisions: list[AccessDecision] = await asyncio.gather(
            *(engine.evaluate_access(_access_request(principal, check, ctx)) for check in payload.permissions)
        )
        return BulkCheckPermissionResponse(
            results=[
                BulkCheckResult(
                    resource=check.resource,
                    action=check.action,
                    resource_id=check.resource_id,
                    permitted=decision.permitted,
                    decision=decision.decision.value,
                    reason=decision.reason,
                )
                for check, decision in zip(payload.permissions, decisions)
            ]
        )

    decision = await engine.evaluate_access(_access_request(principal, payload, ctx))
    return CheckPermissionResponse(
        permitted=decision.permitted,
        decision=decision.decision.value,
        reason=decision.reason,
        evaluation_time_ms=decision.evaluation_time_ms,
    )


@router.get("/check", response_model=QuickCheckResponse, response_model_by_alias=True)
async def quick_check(
    request: Request,
    resource: str = Query(..., min_length=1),
    action: str = Query(..., min_length=1),
    resource_id: str | None = Query(default=None, alias="resourceId"),
    principal: Principal = Depends(get_principal),
    engine: RuleEngine = Depends(get_rule_engine),
) -> QuickCheckResponse:
    decision = await engine.evaluate_access(
        AccessRequest(
            user_id=principal.user_id,
            organization_id=principal.organization_id,
            resource=resource,
            action=action,
            resource_id=resource_id,
            request_context=request_context_from(request),
        )
    )
    return QuickCheckResponse(permitted=decision.permitted, resource=resource, action=action, resource_id=resource_id)


@router.get("/{resource}", response_model=UserPermissionsOut)
async def user_permissions(
    resource: str,
    principal: Principal = Depends(get_principal),
    engine: RuleEngine = Depends(get_rule_engine),
) -> UserPermissionsOut:
    # Store failures propagate (AccessStoreError or ContextLoadError) and render as 503.
    actions = await engine.get_user_permissions(principal.user_id, principal.organization_id, resource)
    return UserPermissionsOut(resource=resource, actions=actions)
