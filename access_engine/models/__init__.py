from access_engine.models.abac import AbacPolicyRow, AccessLog, ResourceAttribute
from access_engine.models.security import (
    Department,
    Organization,
    Permission,
    Role,
    RolePermission,
    User,
    UserAttribute,
    UserRole,
)

__all__ = [
    "AbacPolicyRow",
    "AccessLog",
    "Department",
    "Organization",
    "Permission",
    "ResourceAttribute",
    "Role",
    "RolePermission",
    "User",
    "UserAttribute",
    "UserRole",
]
