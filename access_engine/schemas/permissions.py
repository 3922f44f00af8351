from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CheckPermissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    resource: str = Field(min_length=1)
    action: str = Field(min_length=1)
    resource_id: str | None = Field(default=None, alias="resourceId")
    context: dict[str, Any] | None = None


class BulkCheckPermissionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    permissions: list[CheckPermissionRequest] = Field(min_length=1, max_length=100)


class CheckPermissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    permitted: bool
    decision: str
    reason: str
    evaluation_time_ms: int = Field(alias="evaluationTimeMs")


class BulkCheckResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource: str
    action: str
    resource_id: str | None = Field(default=None, alias="resourceId")
    permitted: bool
    decision: str
    reason: str


class BulkCheckPermissionResponse(BaseModel):
    results: list[BulkCheckResult]


class QuickCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    permitted: bool
    resource: str
    action: str
    resource_id: str | None = Field(default=None, alias="resourceId")


class UserPermissionsOut(BaseModel):
    resource: str
    actions: list[str]


class AccessLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    resource: str
    action: str
    resource_id: str | None
    decision: str
    reason: str
    evaluation_time_ms: int
    policies_evaluated: list[str]
    created_at: datetime


class CustomerOut(BaseModel):
    id: str
    attributes: dict[str, Any]


class EngineMetricsOut(BaseModel):
    total_evaluations: int
    permitted: int
    denied: int
    indeterminate: int
    cache_hits: int
    audited: int
    slow_evaluations: int
    average_evaluation_time_ms: float
    cached_decisions: int
    pending_audit_writes: int
