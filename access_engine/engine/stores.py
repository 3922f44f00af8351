"""
Read-only store interfaces consumed by the engine, plus the audit sink.

Any backend can implement these; the SQLAlchemy implementation lives in
``access_engine.stores.sql`` and the test suite uses in-memory fakes.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from .attributes import StoredAttribute
from .types import AbacPolicy, AuditLogEntry, RoleGrant, UserRecord


class AccessStoreError(RuntimeError):
    """A backing store could not answer (connection lost, query failed, ...)."""


class ContextLoadError(RuntimeError):
    """User or resource context could not be loaded because a store failed."""


class UserStore(Protocol):
    async def find_active_user(self, user_id: str, organization_id: str) -> UserRecord | None: ...


class PermissionStore(Protocol):
    async def find_role_permissions(
        self,
        organization_id: str,
        role_codes: Sequence[str],
        resource: str,
        action: str | None = None,
    ) -> Sequence[RoleGrant]:
        """Grants held through active roles; ``action=None`` returns every action on ``resource``."""
        ...


class ResourceAttributeStore(Protocol):
    async def find_resource_attributes(
        self, organization_id: str, resource_type: str, resource_id: str
    ) -> Sequence[StoredAttribute]: ...


class PolicyStore(Protocol):
    async def find_active_policies(self, organization_id: str) -> Sequence[AbacPolicy]:
        """Active policies of the organization, highest priority first."""
        ...


class AuditSink(Protocol):
    async def append(self, entry: AuditLogEntry) -> None: ...
