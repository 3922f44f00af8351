from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Logging configuration for this repo.

    Notes:
    - Stdlib logging only; uvicorn installs the handlers.
    - This sets the level for the ``access_engine`` package; module loggers
      (``access_engine.engine.rbac``, ``access_engine.engine.audit`` ...) inherit it.
    - Set ``ACCESS_LOG_LEVEL=DEBUG`` to see per-request RBAC/ABAC verdicts.
    - An unknown level name raises ``ValueError`` at startup.
    """

    package_logger = logging.getLogger("access_engine")
    package_logger.setLevel(level.upper())
    package_logger.propagate = True
