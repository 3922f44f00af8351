"""
Role-based evaluation: role -> permission grants -> scope check.

Grants are matched on exact ``resource`` and ``action``; wildcard expansion
happens when the catalog is loaded, never here. A matching grant only permits
if its scope check passes against the loaded contexts.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .config import RuleEngineConfig
from .stores import PermissionStore
from .types import Decision, EvaluationContext, PermissionScope, RoleGrant, Verdict

logger = logging.getLogger(__name__)

RBAC_POLICY = "RBAC"
USER_RESOURCE = "users"


class RbacEvaluator:
    def __init__(self, permissions: PermissionStore, config: RuleEngineConfig) -> None:
        self._permissions = permissions
        self._config = config

    async def evaluate(self, context: EvaluationContext) -> Verdict:
        request, user = context.request, context.user

        if not user.roles:
            return _verdict(Decision.DENY, "User has no roles assigned")

        try:
            grants = await self._permissions.find_role_permissions(
                request.organization_id, user.roles, request.resource, request.action
            )
        except Exception:
            logger.exception("RBAC: permission lookup failed org=%s", request.organization_id)
            return _verdict(Decision.INDETERMINATE, "RBAC evaluation failed")

        matching = [g for g in grants if g.resource == request.resource and g.action == request.action]
        if not matching:
            return _verdict(Decision.DENY, f"No permission found for {request.resource}:{request.action}")

        # Broadest grant first, so the reason names the widest role that applies.
        for grant in sorted(matching, key=lambda g: g.scope.level):
            if self.check_scope(grant.scope, context):
                logger.debug(
                    "RBAC: permit role=%s scope=%s %s:%s",
                    grant.role_code,
                    grant.scope.value,
                    request.resource,
                    request.action,
                )
                return _verdict(Decision.PERMIT, f"RBAC permission granted via role: {grant.role_name}")

        logger.debug(
            "RBAC: scope not met roles=%s scopes=%s %s:%s",
            sorted(user.roles),
            [g.scope.value for g in matching],
            request.resource,
            request.action,
        )
        return _verdict(Decision.DENY, "RBAC scope conditions not met")

    # ---- Scope checks ---------------------------------------------------------------

    def check_scope(self, scope: PermissionScope, context: EvaluationContext) -> bool:
        user, resource = context.user, context.resource

        if scope is PermissionScope.GLOBAL:
            return any(role in self._config.global_role_codes for role in user.roles)

        if scope is PermissionScope.ORGANIZATION:
            return user.organization_id == context.request.organization_id

        if scope is PermissionScope.DEPARTMENT:
            if not user.department:
                return False
            if resource is None or not resource.department:
                # Nothing to compare against, e.g. a create.
                return True
            return resource.department == user.department

        if scope is PermissionScope.TEAM:
            if not user.teams:
                return False
            if resource is None or not resource.team:
                return True
            return resource.team in user.teams

        if scope is PermissionScope.PERSONAL:
            return self._check_personal(context)

        return False

    def _check_personal(self, context: EvaluationContext) -> bool:
        request, user, resource = context.request, context.user, context.resource

        if request.resource == USER_RESOURCE and request.resource_id == user.user_id:
            return True
        if resource is None:
            return False
        if resource.owner == user.user_id:
            return True
        if request.resource in self._config.personal_resource_types:
            owner = resource.plain_attributes.get("userId")
            return owner is not None and str(owner) == user.user_id
        return False


def grant_actions(grants: Iterable[RoleGrant]) -> list[str]:
    """Distinct actions in a list of grants, sorted."""
    return sorted({g.action for g in grants})


def _verdict(decision: Decision, reason: str) -> Verdict:
    return Verdict(decision=decision, reason=reason, policies_evaluated=(RBAC_POLICY,))
