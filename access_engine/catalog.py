"""
Role and policy catalog loader (YAML).

The catalog is the bootstrap source for an organization's roles, grants and
ABAC policies. Shorthand is expanded here, at load time:

- ``customers:read,update`` -> two grants
- ``customers:*``           -> one grant per action listed under ``resources``
- ``*:*``                   -> every action of every listed resource

so the RBAC evaluator only ever sees explicit (resource, action, scope) grants.

Expected shape (simplified):

    resources:
      customers: [create, read, update, delete]

    roles:
      sales_representative:
        name: Sales Representative
        scope: PERSONAL
        permissions: ["customers:read,update"]

    policies:
      - name: business-hours-only
        priority: 100
        rule:
          subject: {type: role, roles: [finance_manager]}
          resource: {type: payments}
          action: {name: approve}
          conditions:
            - {type: time, field: hour, operator: not_in, value: [9, 10, 11]}
          effect: DENY
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from access_engine.engine.types import PermissionScope

logger = logging.getLogger(__name__)


# ---- Data structures -----------------------------------------------------------------


@dataclass(frozen=True)
class GrantDef:
    resource: str
    action: str


@dataclass(frozen=True)
class RoleDef:
    code: str
    name: str
    scope: PermissionScope
    grants: tuple[GrantDef, ...]
    description: str | None = None


@dataclass(frozen=True)
class PolicyDef:
    name: str
    priority: int
    rule: Mapping[str, Any]
    description: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Catalog:
    resources: Mapping[str, tuple[str, ...]]
    roles: Mapping[str, RoleDef]
    policies: tuple[PolicyDef, ...]


class CatalogError(ValueError):
    """Raised when the catalog YAML is invalid."""


# ---- Loader --------------------------------------------------------------------------


def load_catalog(path: Path) -> Catalog:
    raw_text = path.read_text(encoding="utf-8")
    return parse_catalog(yaml.safe_load(raw_text) or {})


def parse_catalog(raw: Mapping[str, Any]) -> Catalog:
    resources_raw = raw.get("resources") or {}
    roles_raw = raw.get("roles") or {}
    policies_raw = raw.get("policies") or []

    if not isinstance(resources_raw, dict):
        raise CatalogError("resources must be a mapping")
    if not isinstance(roles_raw, dict):
        raise CatalogError("roles must be a mapping")
    if not isinstance(policies_raw, list):
        raise CatalogError("policies must be a list when present")

    resources: dict[str, tuple[str, ...]] = {}
    for name, actions in resources_raw.items():
        if not isinstance(actions, list) or not actions:
            raise CatalogError(f"resource {name!r} must list its actions")
        resources[str(name)] = tuple(str(a).strip() for a in actions)

    roles: dict[str, RoleDef] = {}
    for code, role_val in roles_raw.items():
        if not isinstance(role_val, dict):
            raise CatalogError(f"role {code!r} must be a mapping")
        scope_raw = str(role_val.get("scope", "")).upper()
        try:
            scope = PermissionScope(scope_raw)
        except ValueError as exc:
            raise CatalogError(f"role {code!r} has unknown scope {scope_raw!r}") from exc

        perms = role_val.get("permissions") or []
        if not isinstance(perms, list):
            raise CatalogError(f"role {code!r}.permissions must be a list when present")

        grants: list[GrantDef] = []
        for entry in perms:
            grants.extend(_expand_permission(str(code), str(entry), resources))

        roles[str(code)] = RoleDef(
            code=str(code),
            name=str(role_val.get("name") or code),
            scope=scope,
            grants=tuple(dict.fromkeys(grants)),
            description=role_val.get("description"),
        )

    policies: list[PolicyDef] = []
    seen: set[str] = set()
    for entry in policies_raw:
        if not isinstance(entry, dict):
            raise CatalogError("policies entries must be mappings")
        name = str(entry.get("name", "")).strip()
        if not name:
            raise CatalogError("policy requires a non-empty name")
        if name in seen:
            raise CatalogError(f"duplicate policy name {name!r}")
        seen.add(name)
        rule = entry.get("rule")
        if not isinstance(rule, dict):
            # Rule contents are validated at evaluation time; only the container is checked here.
            raise CatalogError(f"policy {name!r}.rule must be a mapping")
        try:
            priority = int(entry.get("priority", 0))
        except (TypeError, ValueError) as exc:
            raise CatalogError(f"policy {name!r}.priority must be an integer") from exc
        policies.append(
            PolicyDef(
                name=name,
                priority=priority,
                rule=rule,
                description=entry.get("description"),
                is_active=bool(entry.get("is_active", True)),
            )
        )

    logger.debug("Catalog parsed: %d resources, %d roles, %d policies", len(resources), len(roles), len(policies))
    return Catalog(resources=resources, roles=roles, policies=tuple(policies))


def _expand_permission(role: str, entry: str, resources: Mapping[str, tuple[str, ...]]) -> list[GrantDef]:
    resource, sep, actions = entry.partition(":")
    resource = resource.strip()
    if not sep or not resource or not actions.strip():
        raise CatalogError(f"role {role!r} permission {entry!r} must look like 'resource:action[,action]'")

    if resource == "*":
        if actions.strip() != "*":
            raise CatalogError(f"role {role!r} permission {entry!r}: a '*' resource needs '*' actions")
        return [GrantDef(res, a) for res, acts in resources.items() for a in acts]

    if actions.strip() == "*":
        known = resources.get(resource)
        if not known:
            raise CatalogError(f"role {role!r} uses {entry!r} but resource {resource!r} declares no actions")
        return [GrantDef(resource, a) for a in known]

    return [GrantDef(resource, a.strip()) for a in actions.split(",") if a.strip()]
