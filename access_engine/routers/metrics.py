from __future__ import annotations

from fastapi import APIRouter, Depends

from access_engine.engine import RuleEngine
from access_engine.schemas.permissions import EngineMetricsOut
from access_engine.security.dependencies import get_rule_engine, require_role

router = APIRouter(prefix="/engine", tags=["engine"])


@router.get(
    "/metrics",
    response_model=EngineMetricsOut,
    dependencies=[Depends(require_role("super_admin", "organization_admin"))],
)
async def engine_metrics(engine: RuleEngine = Depends(get_rule_engine)) -> EngineMetricsOut:
    m = engine.metrics
    return EngineMetricsOut(
        total_evaluations=m.total_evaluations,
        permitted=m.permitted,
        denied=m.denied,
        indeterminate=m.indeterminate,
        cache_hits=m.cache_hits,
        audited=m.audited,
        slow_evaluations=m.slow_evaluations,
        average_evaluation_time_ms=m.average_evaluation_time_ms,
        cached_decisions=len(engine.cache),
        pending_audit_writes=engine.audit.pending,
    )
