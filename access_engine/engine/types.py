"""Data contracts shared by the loader, evaluators, combiner and audit logger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .attributes import AttributeValue, StoredAttribute, plain


class Decision(str, Enum):
    PERMIT = "PERMIT"
    DENY = "DENY"
    INDETERMINATE = "INDETERMINATE"


class PermissionScope(str, Enum):
    """Breadth of a permission grant, broadest first."""

    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORGANIZATION"
    DEPARTMENT = "DEPARTMENT"
    TEAM = "TEAM"
    PERSONAL = "PERSONAL"

    @property
    def level(self) -> int:
        """1 for GLOBAL up to 5 for PERSONAL."""
        return _SCOPE_LEVELS[self]


_SCOPE_LEVELS = {
    PermissionScope.GLOBAL: 1,
    PermissionScope.ORGANIZATION: 2,
    PermissionScope.DEPARTMENT: 3,
    PermissionScope.TEAM: 4,
    PermissionScope.PERSONAL: 5,
}


# ---- Request -------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestContext:
    """Transport metadata captured at the boundary; only used by conditions and audit."""

    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    method: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class AccessRequest:
    user_id: str
    organization_id: str
    resource: str
    action: str
    resource_id: str | None = None
    request_context: RequestContext | None = None

    def cache_key(self) -> tuple[str, str, str, str, str | None]:
        return (self.user_id, self.organization_id, self.resource, self.action, self.resource_id)


# ---- Contexts ------------------------------------------------------------------------


@dataclass(frozen=True)
class UserRecord:
    """Active user as returned by the user store, attributes still undecoded."""

    user_id: str
    organization_id: str
    email: str
    role_codes: tuple[str, ...]
    attributes: tuple[StoredAttribute, ...] = ()
    department: str | None = None
    last_login: datetime | None = None


@dataclass(frozen=True)
class UserContext:
    user_id: str
    organization_id: str
    email: str
    roles: tuple[str, ...]
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    department: str | None = None
    teams: tuple[str, ...] = ()
    last_login: datetime | None = None

    @property
    def plain_attributes(self) -> dict[str, Any]:
        return plain(self.attributes)


@dataclass(frozen=True)
class ResourceContext:
    resource_type: str
    resource_id: str
    organization_id: str
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    department: str | None = None
    team: str | None = None
    owner: str | None = None

    @property
    def plain_attributes(self) -> dict[str, Any]:
        return plain(self.attributes)


@dataclass(frozen=True)
class EnvironmentContext:
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    method: str | None = None


@dataclass(frozen=True)
class EvaluationContext:
    request: AccessRequest
    user: UserContext
    environment: EnvironmentContext
    resource: ResourceContext | None = None


# ---- Grants and policies -------------------------------------------------------------


@dataclass(frozen=True)
class RoleGrant:
    """One permission held through one active role."""

    role_code: str
    role_name: str
    resource: str
    action: str
    scope: PermissionScope


@dataclass(frozen=True)
class AbacPolicy:
    """
    Stored policy. ``rule`` is kept raw; it is validated when evaluated so a
    malformed row only affects its own evaluation.
    """

    name: str
    organization_id: str
    priority: int
    rule: Mapping[str, Any]
    is_active: bool = True


# ---- Results -------------------------------------------------------------------------


@dataclass(frozen=True)
class Verdict:
    """
    Result of a single evaluator before combination.

    ``applicable`` is False for the ABAC fail-closed default (no policy matched):
    it still reads as DENY on its own but does not veto a PERMIT from RBAC.
    """

    decision: Decision
    reason: str
    policies_evaluated: tuple[str, ...] = ()
    applicable: bool = True


@dataclass(frozen=True)
class AccessDecision:
    decision: Decision
    reason: str
    policies_evaluated: tuple[str, ...] = ()
    evaluation_time_ms: int = 0

    @property
    def permitted(self) -> bool:
        return self.decision is Decision.PERMIT


@dataclass(frozen=True)
class AuditLogEntry:
    """Write-once record of one decision and the context that produced it."""

    request: AccessRequest
    decision: AccessDecision
    roles: tuple[str, ...]
    attributes: Mapping[str, Any]
    timestamp: datetime

    def context_snapshot(self) -> dict[str, object]:
        ctx = self.request.request_context
        return {
            "userRoles": list(self.roles),
            "userAttributes": dict(self.attributes),
            "requestContext": ctx.to_dict() if ctx else {},
            "timestamp": self.timestamp.isoformat(),
        }
