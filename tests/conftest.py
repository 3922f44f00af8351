"""
Pytest fixtures for the test suite.

Engine tests run against ``InMemoryAccessStore`` (tests/fakes.py). Data-layer
tests use a throwaway SQLite file per test through aiosqlite; a file rather
than ``:memory:`` because the SQL store opens a new connection per query.
"""
from __future__ import annotations

import pytest

from access_engine.db.init_db import init_db
from access_engine.db.session import build_engine, build_session_factory
from access_engine.engine import PermissionScope, RuleEngine, RuleEngineConfig
from access_engine.stores import SqlAccessStore
from tests.fakes import BUSINESS_HOURS, ORG, FixedClock, InMemoryAccessStore


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(BUSINESS_HOURS)


@pytest.fixture
def store() -> InMemoryAccessStore:
    """Store seeded with a small organization: one user per scope flavour."""
    s = InMemoryAccessStore()

    s.add_user("admin", ORG, roles=["super_admin"])
    s.grant(ORG, "super_admin", "invoices", "read", PermissionScope.GLOBAL)
    s.grant(ORG, "super_admin", "payments", "approve", PermissionScope.GLOBAL)

    s.add_user("finance", ORG, roles=["finance_manager"], department="FIN")
    s.grant(ORG, "finance_manager", "invoices", "read", PermissionScope.ORGANIZATION)
    s.grant(ORG, "finance_manager", "invoices", "create", PermissionScope.ORGANIZATION)
    s.grant(ORG, "finance_manager", "payments", "approve", PermissionScope.ORGANIZATION)

    s.add_user("rep", ORG, roles=["sales_representative"], department="SALES")
    s.grant(ORG, "sales_representative", "customers", "read", PermissionScope.PERSONAL)
    s.grant(ORG, "sales_representative", "customers", "update", PermissionScope.PERSONAL)

    s.add_user("nobody", ORG, roles=[])
    return s


@pytest.fixture
def config() -> RuleEngineConfig:
    return RuleEngineConfig()


@pytest.fixture
async def rule_engine(store, config, clock):
    engine = RuleEngine(
        users=store,
        permissions=store,
        resources=store,
        policies=store,
        audit_sink=store,
        config=config,
        clock=clock,
    )
    yield engine
    await engine.aclose()


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlAccessStore:
    return SqlAccessStore(session_factory)
