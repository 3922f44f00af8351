from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import Depends, Request

from access_engine.engine import AccessDecision, AccessRequest, RequestContext, RuleEngine
from access_engine.security.auth import AuthenticationError, decode_principal, extract_bearer_token
from access_engine.security.context import Principal
from access_engine.security.resource_ids import PathParam, ResourceIdExtractor, no_resource_id
from access_engine.settings import Settings

logger = logging.getLogger(__name__)


class AccessDeniedError(Exception):
    """Decision was not PERMIT. Rendered as 403 with the decision's reason."""

    def __init__(self, resource: str, action: str, decision: AccessDecision) -> None:
        super().__init__(decision.reason)
        self.resource = resource
        self.action = action
        self.decision = decision

    def to_body(self) -> dict[str, str]:
        return {
            "error": "Access denied",
            "reason": self.decision.reason,
            "resource": self.resource,
            "action": self.action,
        }


class RoleRequiredError(Exception):
    """Principal holds none of the required roles. Rendered as 403."""

    def __init__(self, required: tuple[str, ...], held: tuple[str, ...]) -> None:
        super().__init__(f"requires one of {', '.join(required)}")
        self.required = required
        self.held = held

    def to_body(self) -> dict[str, object]:
        return {
            "error": "Insufficient permissions",
            "requiredRoles": list(self.required),
            "userRoles": list(self.held),
        }


class OrganizationMismatchError(Exception):
    """Request names an organization other than the principal's. Rendered as 403."""

    def __init__(self, requested: str, organization_id: str) -> None:
        super().__init__(f"organization {requested} is not {organization_id}")
        self.requested = requested
        self.organization_id = organization_id

    def to_body(self) -> dict[str, str]:
        return {"error": "Access to this organization is not allowed"}


def get_settings_dep(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("Settings not loaded. Did app startup run?")
    return settings


def get_rule_engine(request: Request) -> RuleEngine:
    engine = getattr(request.app.state, "rule_engine", None)
    if engine is None:
        raise RuntimeError("Rule engine not configured. Did app startup run?")
    return engine


def get_store(request: Request):
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Access store not configured. Did app startup run?")
    return store


def get_principal(request: Request, settings: Settings = Depends(get_settings_dep)) -> Principal:
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError()
    principal = decode_principal(token, settings)
    request.state.principal = principal
    return principal


def request_context_from(request: Request) -> RequestContext:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return RequestContext(
        ip_address=ip,
        user_agent=request.headers.get("user-agent"),
        session_id=request.headers.get("x-session-id"),
        method=request.method,
        url=str(request.url),
    )


def require_permission(
    resource: str,
    action: str,
    resource_id: ResourceIdExtractor = no_resource_id,
) -> Callable[..., Awaitable[AccessDecision]]:
    """
    Route dependency: evaluate (principal, resource, action) and allow only PERMIT.

    DENY and INDETERMINATE both end as 403; the reason is kept in the body and
    in the audit log. A missing principal fails with 401 before evaluation.
    """

    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
        engine: RuleEngine = Depends(get_rule_engine),
    ) -> AccessDecision:
        access_request = AccessRequest(
            user_id=principal.user_id,
            organization_id=principal.organization_id,
            resource=resource,
            action=action,
            resource_id=resource_id(request),
            request_context=request_context_from(request),
        )
        decision = await engine.evaluate_access(access_request)
        if not decision.permitted:
            logger.info(
                "Access %s user_id=%s %s:%s reason=%s",
                decision.decision.value,
                principal.user_id,
                resource,
                action,
                decision.reason,
            )
            raise AccessDeniedError(resource, action, decision)
        return decision

    return dependency


def require_role(*roles: str) -> Callable[..., Principal]:
    """
    Route dependency: the token must carry at least one of ``roles``.

    Checked against the token's claims only; no store lookup and no audit
    entry. Use ``require_permission`` where the decision matters.
    """
    if not roles:
        raise ValueError("require_role needs at least one role")

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not any(role in principal.roles for role in roles):
            logger.info("Role check failed user_id=%s required=%s held=%s", principal.user_id, roles, principal.roles)
            raise RoleRequiredError(tuple(roles), principal.roles)
        return principal

    return dependency


def require_organization(
    organization_id: ResourceIdExtractor = PathParam("organization_id"),
) -> Callable[..., Principal]:
    """
    Route dependency: an organization id named by the request must be the
    principal's own. Requests that name none pass.
    """

    def dependency(request: Request, principal: Principal = Depends(get_principal)) -> Principal:
        requested = organization_id(request)
        if requested is not None and requested != principal.organization_id:
            logger.info(
                "Cross-organization request user_id=%s org=%s requested=%s",
                principal.user_id,
                principal.organization_id,
                requested,
            )
            raise OrganizationMismatchError(requested, principal.organization_id)
        return principal

    return dependency
