from __future__ import annotations

import time
from typing import Sequence

from .types import AccessDecision, Decision, Verdict


def elapsed_ms(started: float) -> int:
    """Whole milliseconds since ``started`` (a ``time.perf_counter()`` reading)."""
    return int((time.perf_counter() - started) * 1000)


def combine(verdicts: Sequence[Verdict], started: float, default: Decision = Decision.DENY) -> AccessDecision:
    """
    Deny-overrides combination.

    1. an applicable DENY wins over everything, PERMIT included;
    2. otherwise any PERMIT permits;
    3. otherwise any INDETERMINATE makes the result INDETERMINATE;
    4. otherwise a not-applicable (fail-closed default) DENY denies;
    5. with no verdicts at all the configured default applies.
    """

    policies = tuple(p for v in verdicts for p in v.policies_evaluated)

    def decide(decision: Decision, reason: str) -> AccessDecision:
        return AccessDecision(
            decision=decision,
            reason=reason,
            policies_evaluated=policies,
            evaluation_time_ms=elapsed_ms(started),
        )

    explicit_deny = _first(verdicts, Decision.DENY, applicable=True)
    if explicit_deny is not None:
        return decide(Decision.DENY, explicit_deny.reason)

    permit = _first(verdicts, Decision.PERMIT)
    if permit is not None:
        return decide(Decision.PERMIT, permit.reason)

    if _first(verdicts, Decision.INDETERMINATE) is not None:
        return decide(Decision.INDETERMINATE, "Evaluation inconclusive")

    default_deny = _first(verdicts, Decision.DENY, applicable=False)
    if default_deny is not None:
        return decide(Decision.DENY, default_deny.reason)

    return decide(default, "No applicable policies found")


def _first(verdicts: Sequence[Verdict], decision: Decision, applicable: bool | None = None) -> Verdict | None:
    for verdict in verdicts:
        if verdict.decision is not decision:
            continue
        if applicable is not None and verdict.applicable is not applicable:
            continue
        return verdict
    return None
