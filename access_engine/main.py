from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from access_engine.catalog import load_catalog
from access_engine.db.init_db import ensure_seeded, init_db
from access_engine.db.session import build_engine, build_session_factory
from access_engine.engine import RuleEngine
from access_engine.logging_config import configure_app_logging
from access_engine.routers import audit, customers, health, metrics, permissions
from access_engine.security.handlers import register_exception_handlers
from access_engine.settings import Settings, get_settings
from access_engine.stores import SqlAccessStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    rule_engine: RuleEngine | None = None,
    store=None,
) -> FastAPI:
    """
    Build the HTTP app.

    With no arguments the lifespan opens the SQL database, creates tables,
    seeds ``ACCESS_SEED_ORGANIZATION_ID`` from the catalog (if set) and wires a
    ``RuleEngine`` over ``SqlAccessStore``. Tests pass ``rule_engine`` and
    ``store`` to skip the database entirely.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resolved = settings or get_settings()
        configure_app_logging(resolved.log_level)
        logger.info("App startup beginning")
        app.state.settings = resolved

        db_engine = None
        if rule_engine is not None:
            app.state.rule_engine = rule_engine
            app.state.store = store
        else:
            db_engine = build_engine(resolved.resolved_db_url())
            session_factory = build_session_factory(db_engine)
            await init_db(db_engine)
            logger.info("Database initialized: %s", resolved.resolved_db_url())

            if resolved.seed_organization_id:
                catalog = load_catalog(resolved.resolved_catalog_path())
                seeded = await ensure_seeded(session_factory, resolved.seed_organization_id, catalog)
                logger.info(
                    "Catalog %s for organization %s",
                    "seeded" if seeded else "already present",
                    resolved.seed_organization_id,
                )

            sql_store = SqlAccessStore(session_factory)
            app.state.store = sql_store
            app.state.rule_engine = RuleEngine(
                users=sql_store,
                permissions=sql_store,
                resources=sql_store,
                policies=sql_store,
                audit_sink=sql_store,
                config=resolved.engine_config(),
            )

        yield

        # Shutdown: let pending audit writes land before the pool goes away.
        await app.state.rule_engine.aclose()
        if db_engine is not None:
            await db_engine.dispose()

    app = FastAPI(title="Access decision engine", lifespan=lifespan)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(permissions.router)
    app.include_router(audit.router)
    app.include_router(customers.router)
    app.include_router(metrics.router)

    return app


app = create_app()
