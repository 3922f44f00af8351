"""
Rule engine: the single entry point for access decisions.

Flow per call (nothing persisted between calls):

    INIT -> CONTEXT_LOADED -> EVALUATED (RBAC || ABAC) -> COMBINED -> LOGGED -> RETURNED

``evaluate_access`` never raises. A missing user is a DENY, a failing store
while loading context is INDETERMINATE, and anything unexpected is converted
to INDETERMINATE with the error message as the reason.

Usage:
    engine = RuleEngine(users=store, permissions=store, resources=store,
                        policies=store, audit_sink=store, config=RuleEngineConfig())
    decision = await engine.evaluate_access(AccessRequest(...))
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging
import time
from typing import Callable

from .abac import AbacEvaluator
from .audit import AuditLogger
from .cache import DecisionCache
from .combiner import combine, elapsed_ms
from .config import RuleEngineConfig
from .context_loader import ContextLoader
from .rbac import RbacEvaluator, grant_actions
from .stores import AuditSink, ContextLoadError, PermissionStore, PolicyStore, ResourceAttributeStore, UserStore
from .types import (
    AccessDecision,
    AccessRequest,
    AuditLogEntry,
    Decision,
    EnvironmentContext,
    EvaluationContext,
    UserContext,
)

logger = logging.getLogger(__name__)


class EvaluationStage(str, Enum):
    INIT = "INIT"
    CONTEXT_LOADED = "CONTEXT_LOADED"
    EVALUATED = "EVALUATED"
    COMBINED = "COMBINED"
    LOGGED = "LOGGED"
    RETURNED = "RETURNED"


@dataclass
class _Evaluation:
    """Per-call progress; never shared between calls."""

    started: float
    stage: EvaluationStage = EvaluationStage.INIT
    user: UserContext | None = None


@dataclass
class RuleEngineMetrics:
    total_evaluations: int = 0
    permitted: int = 0
    denied: int = 0
    indeterminate: int = 0
    cache_hits: int = 0
    audited: int = 0
    slow_evaluations: int = 0
    total_evaluation_time_ms: int = 0

    @property
    def average_evaluation_time_ms(self) -> float:
        if not self.total_evaluations:
            return 0.0
        return self.total_evaluation_time_ms / self.total_evaluations

    def observe(self, decision: AccessDecision) -> None:
        self.total_evaluations += 1
        self.total_evaluation_time_ms += decision.evaluation_time_ms
        if decision.decision is Decision.PERMIT:
            self.permitted += 1
        elif decision.decision is Decision.DENY:
            self.denied += 1
        else:
            self.indeterminate += 1


class RuleEngine:
    def __init__(
        self,
        *,
        users: UserStore,
        permissions: PermissionStore,
        resources: ResourceAttributeStore,
        policies: PolicyStore,
        audit_sink: AuditSink,
        config: RuleEngineConfig | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._config = config or RuleEngineConfig()
        self._clock = clock
        self._zone = self._config.zone
        self._permissions = permissions
        self._loader = ContextLoader(users, resources)
        self._rbac = RbacEvaluator(permissions, self._config)
        self._abac = AbacEvaluator(policies, self._config)
        self._audit = AuditLogger(audit_sink, enabled=self._config.enable_audit_logging, clock=clock)
        self._cache = DecisionCache(self._config.cache_ttl_seconds)
        self.metrics = RuleEngineMetrics()

    @property
    def config(self) -> RuleEngineConfig:
        return self._config

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def cache(self) -> DecisionCache:
        return self._cache

    # ---- Main decision API ----------------------------------------------------------

    async def evaluate_access(self, request: AccessRequest) -> AccessDecision:
        run = _Evaluation(started=time.perf_counter())
        try:
            decision = await self._decide(request, run)
        except Exception as exc:
            logger.exception("Unexpected error evaluating access at stage %s", run.stage.value)
            decision = _decision(Decision.INDETERMINATE, f"Evaluation error: {exc}", run.started)

        try:
            if self._record(request, decision, run.user) is not None:
                self.metrics.audited += 1
                run.stage = EvaluationStage.LOGGED
        except Exception:
            logger.exception("Failed to record access decision")

        run.stage = EvaluationStage.RETURNED
        return decision

    async def _decide(self, request: AccessRequest, run: _Evaluation) -> AccessDecision:
        cached = self._cache.get(request.cache_key())
        if cached is not None:
            self.metrics.cache_hits += 1
            return AccessDecision(
                decision=cached.decision,
                reason=cached.reason,
                policies_evaluated=cached.policies_evaluated,
                evaluation_time_ms=elapsed_ms(run.started),
            )

        try:
            user, resource = await self._loader.load(request)
        except ContextLoadError as exc:
            logger.error("Context load failed user_id=%s org=%s: %s", request.user_id, request.organization_id, exc)
            return _decision(Decision.INDETERMINATE, f"Context load failed: {exc}", run.started)
        run.stage = EvaluationStage.CONTEXT_LOADED

        if user is None:
            return _decision(Decision.DENY, "User not found or inactive", run.started)
        run.user = user

        context = EvaluationContext(
            request=request,
            user=user,
            resource=resource,
            environment=self._environment(request),
        )
        rbac, abac = await asyncio.gather(self._rbac.evaluate(context), self._abac.evaluate(context))
        run.stage = EvaluationStage.EVALUATED

        decision = combine([rbac, abac], run.started, default=self._config.default_decision)
        run.stage = EvaluationStage.COMBINED
        logger.debug(
            "Decision %s for user_id=%s %s:%s (rbac=%s abac=%s)",
            decision.decision.value,
            request.user_id,
            request.resource,
            request.action,
            rbac.decision.value,
            abac.decision.value,
        )

        self._cache.put(request.cache_key(), decision)
        return decision

    def _record(
        self, request: AccessRequest, decision: AccessDecision, user: UserContext | None
    ) -> AuditLogEntry | None:
        # Scheduled, not awaited: the caller gets the decision whatever the sink does.
        entry = self._audit.record(request, decision, user)
        self.metrics.observe(decision)
        if self._config.enable_performance_monitoring and decision.evaluation_time_ms > self._config.slow_query_threshold_ms:
            self.metrics.slow_evaluations += 1
            logger.warning(
                "Slow access evaluation %dms (threshold %dms) user_id=%s %s:%s",
                decision.evaluation_time_ms,
                self._config.slow_query_threshold_ms,
                request.user_id,
                request.resource,
                request.action,
            )
        return entry

    def _environment(self, request: AccessRequest) -> EnvironmentContext:
        ctx = request.request_context
        return EnvironmentContext(
            timestamp=self._clock().astimezone(self._zone),
            ip_address=ctx.ip_address if ctx else None,
            user_agent=ctx.user_agent if ctx else None,
            session_id=ctx.session_id if ctx else None,
            method=ctx.method if ctx else None,
        )

    # ---- Derived queries ------------------------------------------------------------

    async def has_permission(
        self,
        user_id: str,
        organization_id: str,
        resource: str,
        action: str,
        resource_id: str | None = None,
    ) -> bool:
        request = AccessRequest(
            user_id=user_id,
            organization_id=organization_id,
            resource=resource,
            action=action,
            resource_id=resource_id,
        )
        decision = await self.evaluate_access(request)
        return decision.permitted

    async def get_user_permissions(self, user_id: str, organization_id: str, resource: str) -> list[str]:
        """Actions the user's roles grant on ``resource`` (scope not checked)."""
        user = await self._loader.load_user_context(user_id, organization_id)
        if user is None or not user.roles:
            return []
        grants = await self._permissions.find_role_permissions(organization_id, user.roles, resource)
        return grant_actions([g for g in grants if g.resource == resource])

    async def aclose(self) -> None:
        await self._audit.drain()


def _decision(decision: Decision, reason: str, started: float) -> AccessDecision:
    return AccessDecision(decision=decision, reason=reason, evaluation_time_ms=elapsed_ms(started))
