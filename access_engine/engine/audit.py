"""
Fire-and-forget audit logging.

``record`` schedules the sink write as its own task and returns immediately,
so the caller never waits on the sink and cancelling the caller does not
cancel the write. A failing write is logged and dropped; it can never change
a decision that has already been returned.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Mapping

from .stores import AuditSink
from .types import AccessDecision, AccessRequest, AuditLogEntry, UserContext

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(
        self,
        sink: AuditSink,
        enabled: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._sink = sink
        self._enabled = enabled
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(
        self,
        request: AccessRequest,
        decision: AccessDecision,
        user: UserContext | None,
    ) -> AuditLogEntry | None:
        if not self._enabled:
            return None

        attributes: Mapping[str, Any] = user.plain_attributes if user is not None else {}
        entry = AuditLogEntry(
            request=request,
            decision=decision,
            roles=user.roles if user is not None else (),
            attributes=attributes,
            timestamp=self._clock(),
        )
        task = asyncio.get_running_loop().create_task(self._write(entry))
        # Hold a reference until the write finishes, otherwise the task may be collected.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return entry

    async def _write(self, entry: AuditLogEntry) -> None:
        try:
            await self._sink.append(entry)
        except Exception:
            logger.exception(
                "Audit write failed user_id=%s org=%s %s:%s decision=%s",
                entry.request.user_id,
                entry.request.organization_id,
                entry.request.resource,
                entry.request.action,
                entry.decision.decision.value,
            )

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
