"""
ABAC policy rule model and matching.

Stored rules are validated with pydantic when a policy is evaluated. Matching
is flat attribute equality for subject and resource, exact name for the
action, and a deliberately small operator set for environment conditions:

    equals, not_equals, in, not_in

The wider operator vocabulary of the stored rule format (``greater_than``,
``contains``, ``starts_with``, ``exists`` ...) is recognised but not
evaluated: a rule that uses one is reported as malformed instead of being
silently ignored or half-implemented.

``time`` conditions read the evaluation timestamp in the engine's configured
zone (``RuleEngineConfig.time_zone``, UTC unless set), so ``hour`` 9 means
09:00 local to that zone. ``weekday`` is Monday=0.

Example rule::

    subject:  {type: role, roles: [finance_manager]}
    resource: {type: payments}
    action:   {name: approve}
    conditions:
      - {type: time, field: hour, operator: not_in, value: [9, 10, 11, 12, 13, 14, 15, 16, 17]}
    effect: DENY
"""

from __future__ import annotations

from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .types import EnvironmentContext, EvaluationContext

SUPPORTED_OPERATORS = frozenset({"equals", "not_equals", "in", "not_in"})
DECLARED_OPERATORS = SUPPORTED_OPERATORS | frozenset(
    {
        "greater_than",
        "less_than",
        "greater_than_or_equal",
        "less_than_or_equal",
        "contains",
        "not_contains",
        "starts_with",
        "ends_with",
        "exists",
        "not_exists",
    }
)
SUPPORTED_CONDITION_FIELDS = {
    "time": frozenset({"hour", "weekday", "date"}),
    "environment": frozenset({"ip_address", "user_agent", "session_id", "method"}),
}


class MalformedPolicyError(ValueError):
    """The stored rule cannot be evaluated."""


class PolicySubject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["user", "role", "group"] | None = None
    attributes: dict[str, Any] | None = None
    roles: list[str] | None = None

    @field_validator("roles", mode="before")
    @classmethod
    def _single_role(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v


class PolicyResource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    attributes: dict[str, Any] | None = None


class PolicyAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None


class Condition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    field: str
    operator: str
    value: Any = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, v: str) -> str:
        if v not in DECLARED_OPERATORS:
            raise ValueError(f"unknown operator {v!r}")
        if v not in SUPPORTED_OPERATORS:
            raise ValueError(f"operator {v!r} is not supported by the evaluator")
        return v

    @field_validator("field")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("condition field must be non-empty")
        return v


class PolicyRule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subject: PolicySubject
    resource: PolicyResource
    action: PolicyAction
    conditions: list[Condition] = Field(default_factory=list)
    effect: Literal["PERMIT", "DENY"]

    @field_validator("conditions")
    @classmethod
    def _supported_fields(cls, conditions: list[Condition]) -> list[Condition]:
        for cond in conditions:
            fields = SUPPORTED_CONDITION_FIELDS.get(cond.type)
            if fields is None:
                raise ValueError(f"condition type {cond.type!r} is not supported")
            if cond.field not in fields:
                raise ValueError(f"unknown {cond.type} field {cond.field!r}")
            if cond.operator in ("in", "not_in") and not isinstance(cond.value, list):
                raise ValueError(f"operator {cond.operator!r} requires a list value")
        return conditions


def parse_rule(raw: Mapping[str, Any]) -> PolicyRule:
    if not isinstance(raw, Mapping):
        raise MalformedPolicyError("policy rule must be a mapping")
    try:
        return PolicyRule.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedPolicyError(_summarize(exc)) from exc


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


# ---- Matching ------------------------------------------------------------------------


def match_attributes(required: Mapping[str, Any], actual: Mapping[str, Any]) -> bool:
    """Every required key must be present in ``actual`` with an equal value."""
    for key, value in required.items():
        if key not in actual or actual[key] != value:
            return False
    return True


def subject_matches(subject: PolicySubject, context: EvaluationContext) -> bool:
    user = context.user
    if subject.type == "user" and subject.attributes:
        return match_attributes(subject.attributes, user.plain_attributes)
    if subject.type == "role":
        return any(role in user.roles for role in subject.roles or [])
    return True


def resource_matches(resource: PolicyResource, context: EvaluationContext) -> bool:
    if resource.type and resource.type != "*" and resource.type != context.request.resource:
        return False
    if not resource.attributes or context.resource is None:
        return True
    return match_attributes(resource.attributes, context.resource.plain_attributes)


def action_matches(action: PolicyAction, context: EvaluationContext) -> bool:
    return not action.name or action.name == context.request.action


def conditions_match(conditions: list[Condition], environment: EnvironmentContext) -> bool:
    return all(_condition_holds(cond, environment) for cond in conditions)


def _environment_value(cond: Condition, environment: EnvironmentContext) -> Any:
    if cond.type == "time":
        ts = environment.timestamp
        if cond.field == "hour":
            return ts.hour
        if cond.field == "weekday":
            return ts.weekday()
        return ts.date().isoformat()
    return getattr(environment, cond.field)


def _condition_holds(cond: Condition, environment: EnvironmentContext) -> bool:
    actual = _environment_value(cond, environment)
    if cond.operator == "equals":
        return actual == cond.value
    if cond.operator == "not_equals":
        return actual != cond.value
    if cond.operator == "in":
        return actual in cond.value
    return actual not in cond.value
