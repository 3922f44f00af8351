"""
SQLAlchemy (asyncio) implementation of every store the engine consumes.

One ``AsyncSession`` per call: the engine runs lookups concurrently and a
session must not be shared between coroutines. Driver and query failures are
re-raised as ``AccessStoreError`` so callers depend on the engine's error
type, not on SQLAlchemy's.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from access_engine.engine.attributes import StoredAttribute
from access_engine.engine.stores import AccessStoreError
from access_engine.engine.types import AbacPolicy, AuditLogEntry, PermissionScope, RoleGrant, UserRecord
from access_engine.models.abac import AbacPolicyRow, AccessLog, ResourceAttribute
from access_engine.models.security import Permission, Role, RolePermission, User, UserRole

logger = logging.getLogger(__name__)


class SqlAccessStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ---- Users ----------------------------------------------------------------------

    async def find_active_user(self, user_id: str, organization_id: str) -> UserRecord | None:
        stmt = (
            select(User)
            .where(User.id == user_id, User.organization_id == organization_id, User.is_active.is_(True))
            .options(
                selectinload(User.department),
                selectinload(User.attributes),
                selectinload(User.user_roles).selectinload(UserRole.role),
            )
        )
        try:
            async with self._session_factory() as session:
                user = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"user query failed: {exc}") from exc

        if user is None:
            return None

        role_codes = tuple(
            ur.role.code
            for ur in user.user_roles
            if ur.is_active and ur.role.is_active and ur.role.organization_id == organization_id
        )
        return UserRecord(
            user_id=user.id,
            organization_id=user.organization_id,
            email=user.email,
            role_codes=role_codes,
            attributes=tuple(
                StoredAttribute(a.attribute_name, a.attribute_value, a.attribute_type) for a in user.attributes
            ),
            department=user.department.code if user.department else None,
            last_login=user.last_login_at,
        )

    # ---- Role permissions -----------------------------------------------------------

    async def find_role_permissions(
        self,
        organization_id: str,
        role_codes: Sequence[str],
        resource: str,
        action: str | None = None,
    ) -> list[RoleGrant]:
        if not role_codes:
            return []

        stmt = (
            select(Role.code, Role.name, Permission.resource, Permission.action, Permission.scope)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                Role.organization_id == organization_id,
                Role.is_active.is_(True),
                Role.code.in_(list(role_codes)),
                Permission.resource == resource,
            )
            .order_by(Role.code, Permission.action)
        )
        if action is not None:
            stmt = stmt.where(Permission.action == action)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"role permission query failed: {exc}") from exc

        grants: list[RoleGrant] = []
        for code, name, res, act, scope in rows:
            try:
                parsed_scope = PermissionScope(scope)
            except ValueError:
                logger.warning("Ignoring grant with unknown scope %r role=%s %s:%s", scope, code, res, act)
                continue
            grants.append(RoleGrant(role_code=code, role_name=name, resource=res, action=act, scope=parsed_scope))
        return grants

    # ---- Resource attributes --------------------------------------------------------

    async def find_resource_attributes(
        self, organization_id: str, resource_type: str, resource_id: str
    ) -> list[StoredAttribute]:
        stmt = select(ResourceAttribute).where(
            ResourceAttribute.organization_id == organization_id,
            ResourceAttribute.resource_type == resource_type,
            ResourceAttribute.resource_id == resource_id,
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"resource attribute query failed: {exc}") from exc
        return [StoredAttribute(r.attribute_name, r.attribute_value, r.attribute_type) for r in rows]

    # ---- Policies -------------------------------------------------------------------

    async def find_active_policies(self, organization_id: str) -> list[AbacPolicy]:
        stmt = (
            select(AbacPolicyRow)
            .where(AbacPolicyRow.organization_id == organization_id, AbacPolicyRow.is_active.is_(True))
            .order_by(AbacPolicyRow.priority.desc(), AbacPolicyRow.name)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"policy query failed: {exc}") from exc
        return [
            AbacPolicy(
                name=r.name,
                organization_id=r.organization_id,
                priority=r.priority,
                rule=r.policy_rule,
                is_active=r.is_active,
            )
            for r in rows
        ]

    # ---- Audit sink -----------------------------------------------------------------

    async def append(self, entry: AuditLogEntry) -> None:
        request, decision = entry.request, entry.decision
        row = AccessLog(
            organization_id=request.organization_id,
            user_id=request.user_id,
            resource=request.resource,
            action=request.action,
            resource_id=request.resource_id,
            decision=decision.decision.value,
            reason=decision.reason,
            evaluation_time_ms=decision.evaluation_time_ms,
            policies_evaluated=list(decision.policies_evaluated),
            context=entry.context_snapshot(),
            created_at=entry.timestamp.replace(tzinfo=None),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"audit insert failed: {exc}") from exc

    async def recent_access_logs(self, organization_id: str, limit: int = 50) -> list[AccessLog]:
        stmt = (
            select(AccessLog)
            .where(AccessLog.organization_id == organization_id)
            .order_by(AccessLog.created_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                return list((await session.scalars(stmt)).all())
        except SQLAlchemyError as exc:
            raise AccessStoreError(f"access log query failed: {exc}") from exc
