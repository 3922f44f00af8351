from __future__ import annotations

import logging

import pytest

from access_engine.engine import (
    AccessRequest,
    AccessStoreError,
    ContextLoadError,
    Decision,
    PermissionScope,
    RequestContext,
    RuleEngine,
    RuleEngineConfig,
)
from tests.fakes import AFTER_HOURS, BUSINESS_HOURS, ORG

BUSINESS_HOURS_ONLY = {
    "subject": {"type": "role", "roles": ["finance_manager"]},
    "resource": {"type": "payments"},
    "action": {"name": "approve"},
    "conditions": [{"type": "time", "field": "hour", "operator": "not_in", "value": list(range(9, 18))}],
    "effect": "DENY",
}


def _request(user_id, resource, action, resource_id=None, **ctx):
    return AccessRequest(
        user_id=user_id,
        organization_id=ORG,
        resource=resource,
        action=action,
        resource_id=resource_id,
        request_context=RequestContext(**ctx) if ctx else None,
    )


def _engine(store, clock, **config):
    return RuleEngine(
        users=store,
        permissions=store,
        resources=store,
        policies=store,
        audit_sink=store,
        config=RuleEngineConfig(**config),
        clock=clock,
    )


# ---- Scenarios -----------------------------------------------------------------------


async def test_sales_rep_reads_own_customer(store, rule_engine):
    store.set_resource(ORG, "customers", "c1", owner="rep")

    decision = await rule_engine.evaluate_access(_request("rep", "customers", "read", "c1"))

    assert decision.decision is Decision.PERMIT
    assert decision.reason == "RBAC permission granted via role: Sales Representative"
    assert decision.policies_evaluated == ("RBAC",)


async def test_sales_rep_cannot_delete_customer(store, rule_engine):
    store.set_resource(ORG, "customers", "c1", owner="rep")

    decision = await rule_engine.evaluate_access(_request("rep", "customers", "delete", "c1"))

    assert decision.decision is Decision.DENY
    assert decision.reason == "No permission found for customers:delete"


async def test_organization_admin_reads_invoice_of_other_department(store, rule_engine):
    store.add_user("orgadmin", ORG, roles=["organization_admin"], department="HR")
    store.grant(ORG, "organization_admin", "invoices", "read", PermissionScope.ORGANIZATION)
    store.set_resource(ORG, "invoices", "i9", department="FIN")

    decision = await rule_engine.evaluate_access(_request("orgadmin", "invoices", "read", "i9"))

    assert decision.decision is Decision.PERMIT


async def test_business_hours_policy(store, rule_engine, clock):
    store.add_policy(ORG, "business-hours-only", BUSINESS_HOURS_ONLY, priority=100)

    clock.now = AFTER_HOURS
    after = await rule_engine.evaluate_access(_request("finance", "payments", "approve"))
    assert after.decision is Decision.DENY
    assert after.reason == "ABAC policy denied: business-hours-only"
    assert after.policies_evaluated == ("RBAC", "business-hours-only")

    rule_engine.cache.clear()
    clock.now = BUSINESS_HOURS
    during = await rule_engine.evaluate_access(_request("finance", "payments", "approve"))
    assert during.decision is Decision.PERMIT


async def test_time_conditions_use_configured_zone(store, clock):
    store.add_policy(ORG, "business-hours-only", BUSINESS_HOURS_ONLY, priority=100)
    # 20:00 UTC is 16:00 in New York during daylight saving time.
    clock.now = AFTER_HOURS

    utc = _engine(store, clock, cache_ttl_seconds=0)
    new_york = _engine(store, clock, cache_ttl_seconds=0, time_zone="America/New_York")
    in_utc = await utc.evaluate_access(_request("finance", "payments", "approve"))
    in_new_york = await new_york.evaluate_access(_request("finance", "payments", "approve"))
    await utc.aclose()
    await new_york.aclose()

    assert in_utc.decision is Decision.DENY
    assert in_new_york.decision is Decision.PERMIT


async def test_budget_cutoff_limits_policies_inspected(store, clock):
    permit = {"subject": {"type": "role", "roles": ["employee"]}, "resource": {}, "action": {"name": "read"}, "effect": "PERMIT"}
    miss = dict(permit, action={"name": "archive"})
    store.add_user("emp", ORG, roles=["employee"])
    store.add_policy(ORG, "p3", miss, priority=3)
    store.add_policy(ORG, "p2", miss, priority=2)
    store.add_policy(ORG, "p1", permit, priority=1)

    limited = _engine(store, clock, max_policy_evaluations=2)
    decision = await limited.evaluate_access(_request("emp", "reports", "read"))
    await limited.aclose()

    assert decision.decision is Decision.DENY
    assert decision.policies_evaluated == ("RBAC", "p3", "p2")


# ---- Properties ----------------------------------------------------------------------


async def test_abac_deny_overrides_rbac_permit(store, rule_engine):
    store.add_policy(
        ORG,
        "freeze-invoices",
        {"subject": {}, "resource": {"type": "invoices"}, "action": {}, "effect": "DENY"},
        priority=1,
    )
    decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
    assert decision.decision is Decision.DENY
    assert decision.reason == "ABAC policy denied: freeze-invoices"


async def test_rbac_deny_overrides_abac_permit(store, rule_engine):
    store.add_policy(
        ORG,
        "open-reports",
        {"subject": {}, "resource": {"type": "reports"}, "action": {"name": "read"}, "effect": "PERMIT"},
    )
    decision = await rule_engine.evaluate_access(_request("finance", "reports", "read"))
    assert decision.decision is Decision.DENY
    assert decision.reason == "No permission found for reports:read"


async def test_global_grant_ignores_resource_attributes(store, rule_engine):
    store.set_resource(ORG, "invoices", "i1", department="FIN", owner="someone", team="red")
    decision = await rule_engine.evaluate_access(_request("admin", "invoices", "read", "i1"))
    assert decision.decision is Decision.PERMIT


async def test_personal_grant_denies_foreign_owner(store, rule_engine):
    store.set_resource(ORG, "customers", "c2", owner="someone-else")
    decision = await rule_engine.evaluate_access(_request("rep", "customers", "read", "c2"))
    assert decision.decision is Decision.DENY
    assert decision.reason == "RBAC scope conditions not met"


async def test_unknown_user_is_denied_and_audited(store, rule_engine):
    decision = await rule_engine.evaluate_access(_request("ghost", "invoices", "read"))
    await rule_engine.aclose()

    assert decision.decision is Decision.DENY
    assert decision.reason == "User not found or inactive"
    [entry] = store.audit_entries
    assert entry.roles == ()
    assert entry.context_snapshot()["userRoles"] == []


async def test_user_without_roles_is_denied(rule_engine):
    decision = await rule_engine.evaluate_access(_request("nobody", "invoices", "read"))
    assert decision.decision is Decision.DENY
    assert decision.reason == "User has no roles assigned"


async def test_context_store_failure_is_indeterminate(store, rule_engine):
    store.fail_users = True
    decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read"))

    assert decision.decision is Decision.INDETERMINATE
    assert decision.reason.startswith("Context load failed")


async def test_resource_store_failure_is_indeterminate(store, rule_engine):
    store.fail_resources = True
    decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read", "i1"))
    assert decision.decision is Decision.INDETERMINATE


async def test_audit_failure_does_not_change_decision(store, rule_engine, clock, caplog):
    expected = await _engine(store, clock, cache_ttl_seconds=0, enable_audit_logging=False).evaluate_access(
        _request("finance", "invoices", "read")
    )
    store.fail_audit = True

    with caplog.at_level(logging.ERROR, logger="access_engine.engine.audit"):
        decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
        await rule_engine.aclose()

    assert (decision.decision, decision.reason) == (expected.decision, expected.reason)
    assert "Audit write failed" in caplog.text


async def test_slow_audit_sink_does_not_delay_decision(store, rule_engine):
    store.audit_delay = 0.05
    decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read"))

    assert decision.decision is Decision.PERMIT
    assert rule_engine.audit.pending == 1
    assert store.audit_entries == []

    await rule_engine.aclose()
    assert rule_engine.audit.pending == 0
    assert len(store.audit_entries) == 1


async def test_unexpected_error_becomes_indeterminate(store):
    def broken_clock():
        raise RuntimeError("clock exploded")

    engine = _engine(store, broken_clock, enable_audit_logging=False)
    decision = await engine.evaluate_access(_request("finance", "invoices", "read"))

    assert decision.decision is Decision.INDETERMINATE
    assert decision.reason == "Evaluation error: clock exploded"


@pytest.mark.parametrize(
    "user_id,resource,action,resource_id",
    [
        ("finance", "invoices", "read", None),
        ("rep", "customers", "update", "c1"),
        ("ghost", "payments", "approve", None),
        ("nobody", "users", "read", "nobody"),
        ("admin", "", "", ""),
    ],
)
async def test_every_request_gets_exactly_one_decision_with_reason(rule_engine, user_id, resource, action, resource_id):
    decision = await rule_engine.evaluate_access(_request(user_id, resource, action, resource_id))
    assert decision.decision in set(Decision)
    assert decision.reason


@pytest.mark.parametrize("ttl", [0, 300])
async def test_identical_requests_get_identical_decisions(store, clock, ttl):
    store.set_resource(ORG, "customers", "c1", owner="rep")
    engine = _engine(store, clock, cache_ttl_seconds=ttl)
    request = _request("rep", "customers", "read", "c1", ip_address="10.0.0.1")

    first = await engine.evaluate_access(request)
    await engine.aclose()
    second = await engine.evaluate_access(request)
    await engine.aclose()

    assert (first.decision, first.reason, first.policies_evaluated) == (
        second.decision,
        second.reason,
        second.policies_evaluated,
    )
    assert len(store.audit_entries) == 2


# ---- Cache, metrics, audit content ---------------------------------------------------


async def test_repeat_request_is_served_from_cache(store, rule_engine):
    await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
    lookups = store.user_lookups

    await rule_engine.evaluate_access(_request("finance", "invoices", "read"))

    assert store.user_lookups == lookups
    assert rule_engine.metrics.cache_hits == 1


async def test_indeterminate_is_not_cached(store, rule_engine):
    store.fail_users = True
    await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
    store.fail_users = False

    decision = await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
    assert decision.decision is Decision.PERMIT


async def test_metrics_count_outcomes(store, rule_engine):
    await rule_engine.evaluate_access(_request("finance", "invoices", "read"))
    await rule_engine.evaluate_access(_request("ghost", "invoices", "read"))
    store.fail_users = True
    await rule_engine.evaluate_access(_request("rep", "customers", "read"))

    metrics = rule_engine.metrics
    assert (metrics.total_evaluations, metrics.permitted, metrics.denied, metrics.indeterminate) == (3, 1, 1, 1)
    assert metrics.audited == 3
    assert metrics.average_evaluation_time_ms >= 0


async def test_audit_entry_snapshots_user_and_request(store, rule_engine):
    request = _request("finance", "invoices", "read", ip_address="10.1.1.1", user_agent="pytest")
    await rule_engine.evaluate_access(request)
    await rule_engine.aclose()

    [entry] = store.audit_entries
    snapshot = entry.context_snapshot()
    assert snapshot["userRoles"] == ["finance_manager"]
    assert snapshot["requestContext"] == {"ip_address": "10.1.1.1", "user_agent": "pytest"}
    assert snapshot["timestamp"] == BUSINESS_HOURS.isoformat()


async def test_audit_can_be_disabled(store, clock):
    engine = _engine(store, clock, enable_audit_logging=False)
    await engine.evaluate_access(_request("finance", "invoices", "read"))
    await engine.aclose()
    assert store.audit_entries == []
    assert engine.metrics.audited == 0
    assert engine.metrics.total_evaluations == 1


# ---- Derived queries -----------------------------------------------------------------


async def test_has_permission(rule_engine):
    assert await rule_engine.has_permission("finance", ORG, "invoices", "create") is True
    assert await rule_engine.has_permission("rep", ORG, "invoices", "create") is False


async def test_get_user_permissions(rule_engine):
    assert await rule_engine.get_user_permissions("finance", ORG, "invoices") == ["create", "read"]
    assert await rule_engine.get_user_permissions("nobody", ORG, "invoices") == []
    assert await rule_engine.get_user_permissions("ghost", ORG, "invoices") == []


async def test_get_user_permissions_propagates_store_errors(store, rule_engine):
    store.fail_permissions = True
    with pytest.raises(AccessStoreError):
        await rule_engine.get_user_permissions("finance", ORG, "invoices")


async def test_get_user_permissions_reports_user_store_failure(store, rule_engine):
    store.fail_users = True
    with pytest.raises(ContextLoadError):
        await rule_engine.get_user_permissions("finance", ORG, "invoices")
