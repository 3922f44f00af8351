"""
Bearer token -> Principal.

Tokens are issued elsewhere (session/OAuth subsystem); this module only
verifies the signature and reads the claims the engine needs:

    sub     -> user id
    org_id  -> organization id (``organization_id`` also accepted)
    roles   -> role codes; only read by the require_role guard
"""

from __future__ import annotations

import logging
from typing import Any

import jwt
from fastapi import Request

from access_engine.security.context import Principal
from access_engine.settings import Settings

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer"


class AuthenticationError(Exception):
    """No principal could be established. Rendered as 401; never reaches the engine."""

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(detail)
        self.detail = detail


def extract_bearer_token(request: Request) -> str | None:
    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("Missing Authorization header path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{BEARER_PREFIX} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError(f"Invalid {AUTHORIZATION_HEADER}. Expected '{BEARER_PREFIX} <token>'.")

    token = raw[len(prefix) :].strip()
    if not token:
        raise AuthenticationError(f"Invalid {AUTHORIZATION_HEADER}. Missing token after '{BEARER_PREFIX}'.")
    return token


def decode_principal(token: str, settings: Settings) -> Principal:
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None, "require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.info("Token expired")
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Token invalid: %s", type(exc).__name__)
        raise AuthenticationError("Invalid token") from exc

    user_id = str(payload["sub"])
    organization_id = payload.get("org_id") or payload.get("organization_id")
    if not organization_id:
        raise AuthenticationError("Token has no organization")

    raw_roles = payload.get("roles")
    roles: tuple[str, ...] = ()
    if isinstance(raw_roles, list):
        roles = tuple(str(r) for r in raw_roles)
    elif isinstance(raw_roles, str):
        roles = (raw_roles,)

    return Principal(user_id=user_id, organization_id=str(organization_id), roles=roles)
