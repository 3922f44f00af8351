from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .types import Decision

DEFAULT_PERSONAL_RESOURCE_TYPES = frozenset({"timesheets", "expenses", "leave_requests", "employee_records"})


@dataclass(frozen=True)
class RuleEngineConfig:
    """
    Immutable engine configuration, passed to ``RuleEngine`` at construction.

    ``max_policy_evaluations`` is a hard cutoff on how many ABAC policies are
    inspected per request. ``slow_query_threshold_ms`` only flags slow
    evaluations in logs and metrics. ``cache_ttl_seconds`` of 0 disables the
    decision cache. ``time_zone`` is the IANA zone that ``time`` conditions
    (hour, weekday, date) are read in.
    """

    cache_ttl_seconds: int = 300
    slow_query_threshold_ms: int = 100
    max_policy_evaluations: int = 50
    enable_audit_logging: bool = True
    enable_performance_monitoring: bool = True
    default_decision: Decision = Decision.DENY
    time_zone: str = "UTC"

    # Roles that satisfy GLOBAL-scoped grants.
    global_role_codes: frozenset[str] = frozenset({"super_admin"})
    # Resources whose ``userId`` attribute identifies the owning user.
    personal_resource_types: frozenset[str] = DEFAULT_PERSONAL_RESOURCE_TYPES

    def __post_init__(self) -> None:
        if self.max_policy_evaluations < 0:
            raise ValueError("max_policy_evaluations must be >= 0")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        if not isinstance(self.default_decision, Decision):
            object.__setattr__(self, "default_decision", Decision(self.default_decision))
        try:
            ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time_zone {self.time_zone!r}") from exc

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)
