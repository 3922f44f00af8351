"""Maps boundary exceptions to the JSON error bodies clients rely on."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from access_engine.engine import AccessStoreError, ContextLoadError
from access_engine.security.auth import AuthenticationError
from access_engine.security.dependencies import AccessDeniedError, OrganizationMismatchError, RoleRequiredError

logger = logging.getLogger(__name__)


async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.info("401 path=%s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Authentication required"},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def forbidden_handler(
    request: Request, exc: AccessDeniedError | RoleRequiredError | OrganizationMismatchError
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=exc.to_body())


async def store_error_handler(request: Request, exc: AccessStoreError | ContextLoadError) -> JSONResponse:
    logger.error("Store unavailable path=%s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Permission store unavailable"},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    return [{"loc": list(err.get("loc", ())), "msg": str(err.get("msg", ""))} for err in exc.errors()]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthenticationError, authentication_error_handler)
    app.add_exception_handler(AccessDeniedError, forbidden_handler)
    app.add_exception_handler(RoleRequiredError, forbidden_handler)
    app.add_exception_handler(OrganizationMismatchError, forbidden_handler)
    app.add_exception_handler(AccessStoreError, store_error_handler)
    # The loader wraps store failures; outside evaluate_access they still mean 503.
    app.add_exception_handler(ContextLoadError, store_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
