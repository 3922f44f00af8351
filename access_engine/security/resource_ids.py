"""
Per-route resource id extraction.

Each protected route states where its resource id comes from instead of the
guard guessing among parameter names:

    require_permission("customers", "read", resource_id=PathParam("customer_id"))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import Request


class ResourceIdExtractor(Protocol):
    def __call__(self, request: Request) -> str | None: ...


@dataclass(frozen=True)
class PathParam:
    name: str

    def __call__(self, request: Request) -> str | None:
        value = request.path_params.get(self.name)
        return str(value) if value not in (None, "") else None


@dataclass(frozen=True)
class QueryParam:
    name: str

    def __call__(self, request: Request) -> str | None:
        value = request.query_params.get(self.name)
        return value or None


def no_resource_id(request: Request) -> str | None:
    return None
