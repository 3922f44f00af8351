from __future__ import annotations

import logging

from .config import RuleEngineConfig
from .policy import (
    MalformedPolicyError,
    action_matches,
    conditions_match,
    parse_rule,
    resource_matches,
    subject_matches,
)
from .stores import PolicyStore
from .types import AbacPolicy, Decision, EvaluationContext, Verdict

logger = logging.getLogger(__name__)


class AbacEvaluator:
    """
    Walks the organization's active policies, highest priority first.

    Only the first ``max_policy_evaluations`` policies are inspected. The first
    policy whose subject, resource, action and conditions all match decides
    (its effect is returned immediately). A malformed policy is skipped. If
    nothing matches, the verdict is a fail-closed DENY marked not applicable.
    """

    def __init__(self, policies: PolicyStore, config: RuleEngineConfig) -> None:
        self._policies = policies
        self._config = config

    async def evaluate(self, context: EvaluationContext) -> Verdict:
        org = context.request.organization_id
        try:
            policies = await self._policies.find_active_policies(org)
        except Exception:
            logger.exception("ABAC: policy lookup failed org=%s", org)
            return Verdict(Decision.INDETERMINATE, "ABAC evaluation failed")

        ordered = sorted((p for p in policies if p.is_active), key=lambda p: p.priority, reverse=True)
        budget = self._config.max_policy_evaluations
        if len(ordered) > budget:
            logger.debug("ABAC: %d policies over budget of %d skipped org=%s", len(ordered) - budget, budget, org)

        evaluated: list[str] = []
        for policy in ordered[:budget]:
            evaluated.append(policy.name)
            result = self.evaluate_policy(policy, context)
            if result is Decision.PERMIT:
                return Verdict(Decision.PERMIT, f"ABAC policy granted: {policy.name}", tuple(evaluated))
            if result is Decision.DENY:
                return Verdict(Decision.DENY, f"ABAC policy denied: {policy.name}", tuple(evaluated))

        return Verdict(Decision.DENY, "No ABAC policies granted access", tuple(evaluated), applicable=False)

    def evaluate_policy(self, policy: AbacPolicy, context: EvaluationContext) -> Decision | None:
        """
        Effect of a single policy, ``None`` when its conditions do not match,
        or INDETERMINATE when the rule is malformed.
        """
        try:
            rule = parse_rule(policy.rule)
        except MalformedPolicyError as exc:
            logger.warning("ABAC: malformed policy %r skipped: %s", policy.name, exc)
            return Decision.INDETERMINATE

        if not subject_matches(rule.subject, context):
            return None
        if not resource_matches(rule.resource, context):
            return None
        if not action_matches(rule.action, context):
            return None
        if not conditions_match(rule.conditions, context.environment):
            return None

        logger.debug("ABAC: policy %r matched effect=%s", policy.name, rule.effect)
        return Decision(rule.effect)
