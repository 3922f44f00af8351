"""
Access-control decision engine.

Combines role grants (RBAC) and prioritized attribute policies (ABAC) into a
single PERMIT / DENY / INDETERMINATE decision. This package has no FastAPI or
SQLAlchemy dependency; stores are injected through the protocols in
``stores``.
"""

from .attributes import AttributeValue, JsonValue, StoredAttribute, StringValue, parse_attribute
from .config import RuleEngineConfig
from .rule_engine import RuleEngine, RuleEngineMetrics
from .stores import AccessStoreError, ContextLoadError
from .types import (
    AbacPolicy,
    AccessDecision,
    AccessRequest,
    AuditLogEntry,
    Decision,
    PermissionScope,
    RequestContext,
    ResourceContext,
    RoleGrant,
    UserContext,
    UserRecord,
)

__all__ = [
    "AbacPolicy",
    "AccessDecision",
    "AccessRequest",
    "AccessStoreError",
    "AttributeValue",
    "AuditLogEntry",
    "ContextLoadError",
    "Decision",
    "JsonValue",
    "PermissionScope",
    "RequestContext",
    "ResourceContext",
    "RoleGrant",
    "RuleEngine",
    "RuleEngineConfig",
    "RuleEngineMetrics",
    "StoredAttribute",
    "StringValue",
    "UserContext",
    "UserRecord",
    "parse_attribute",
]
