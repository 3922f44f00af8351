from __future__ import annotations

import asyncio
import logging

from .attributes import decode_attributes
from .stores import ContextLoadError, ResourceAttributeStore, UserStore
from .types import AccessRequest, ResourceContext, UserContext

logger = logging.getLogger(__name__)


class ContextLoader:
    """
    Resolves identifiers into the contexts the evaluators read.

    Pure read: no decision logic lives here. A missing or inactive user is a
    normal outcome (``None``); a failing store is not, and surfaces as
    ``ContextLoadError``.
    """

    def __init__(self, users: UserStore, resources: ResourceAttributeStore) -> None:
        self._users = users
        self._resources = resources

    async def load_user_context(self, user_id: str, organization_id: str) -> UserContext | None:
        try:
            record = await self._users.find_active_user(user_id, organization_id)
        except Exception as exc:
            raise ContextLoadError(f"user lookup failed: {exc}") from exc

        if record is None:
            logger.debug("No active user user_id=%s org=%s", user_id, organization_id)
            return None

        attributes = decode_attributes(record.attributes)
        teams_attr = attributes.get("teams")
        teams: tuple[str, ...] = ()
        if teams_attr is not None and isinstance(teams_attr.value, list):
            teams = tuple(str(t) for t in teams_attr.value)

        return UserContext(
            user_id=record.user_id,
            organization_id=record.organization_id,
            email=record.email,
            roles=tuple(record.role_codes),
            attributes=attributes,
            department=record.department,
            teams=teams,
            last_login=record.last_login,
        )

    async def load_resource_context(
        self, organization_id: str, resource_type: str, resource_id: str
    ) -> ResourceContext:
        try:
            rows = await self._resources.find_resource_attributes(organization_id, resource_type, resource_id)
        except Exception as exc:
            raise ContextLoadError(f"resource attribute lookup failed: {exc}") from exc

        attributes = decode_attributes(rows)
        return ResourceContext(
            resource_type=resource_type,
            resource_id=resource_id,
            organization_id=organization_id,
            attributes=attributes,
            department=_as_str(attributes.get("department")),
            team=_as_str(attributes.get("team")),
            owner=_as_str(attributes.get("owner")),
        )

    async def load(self, request: AccessRequest) -> tuple[UserContext | None, ResourceContext | None]:
        """Load both contexts for a request; the two lookups run concurrently."""
        if request.resource_id is None:
            user = await self.load_user_context(request.user_id, request.organization_id)
            return user, None

        user, resource = await asyncio.gather(
            self.load_user_context(request.user_id, request.organization_id),
            self.load_resource_context(request.organization_id, request.resource, request.resource_id),
        )
        return user, resource


def _as_str(attr) -> str | None:
    if attr is None or attr.value is None:
        return None
    return str(attr.value)
