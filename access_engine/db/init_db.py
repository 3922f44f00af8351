from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from access_engine.catalog import Catalog
from access_engine.db.base import Base
import access_engine.models  # noqa: F401  (register tables on Base.metadata)
from access_engine.models.abac import AbacPolicyRow
from access_engine.models.security import Organization, Permission, Role, RolePermission

logger = logging.getLogger(__name__)


async def init_db(engine: AsyncEngine) -> None:
    """Create tables. Migrations are out of scope; this is for local runs and tests."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_seeded(
    session_factory: async_sessionmaker[AsyncSession],
    organization_id: str,
    catalog: Catalog,
) -> bool:
    """Seed ``organization_id`` from the catalog unless it already exists. Returns True if seeded."""
    async with session_factory() as db:
        existing = await db.get(Organization, organization_id)
        if existing is not None:
            return False
        db.add(Organization(id=organization_id, name=organization_id))
        await seed_catalog(db, organization_id, catalog)
        await db.commit()
    logger.info("Seeded organization %s from catalog", organization_id)
    return True


async def seed_catalog(db: AsyncSession, organization_id: str, catalog: Catalog) -> None:
    """
    Write the catalog's roles, grants and policies for one organization.

    Permission rows are shared between organizations and reused when an
    identical (resource, action, scope) row exists. The caller commits.
    """

    permissions: dict[tuple[str, str, str], Permission] = {
        (p.resource, p.action, p.scope): p for p in (await db.scalars(select(Permission))).all()
    }

    for role_def in catalog.roles.values():
        role = Role(
            organization_id=organization_id,
            code=role_def.code,
            name=role_def.name,
            description=role_def.description,
            is_active=True,
        )
        db.add(role)
        for grant in role_def.grants:
            key = (grant.resource, grant.action, role_def.scope.value)
            perm = permissions.get(key)
            if perm is None:
                perm = Permission(resource=grant.resource, action=grant.action, scope=role_def.scope.value)
                db.add(perm)
                permissions[key] = perm
            role.role_permissions.append(RolePermission(permission=perm))

    for policy in catalog.policies:
        db.add(
            AbacPolicyRow(
                organization_id=organization_id,
                name=policy.name,
                description=policy.description,
                priority=policy.priority,
                is_active=policy.is_active,
                policy_rule=dict(policy.rule),
            )
        )
    await db.flush()
