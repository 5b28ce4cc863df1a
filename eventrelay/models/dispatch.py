"""Dispatch result models — per-handler outcomes of a single fan-out."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class HandlerStatus(str, Enum):
    """How a single handler finished during a dispatch."""

    COMPLETED = "completed"
    FAILED = "failed"  # handler signalled (or raised) an error
    NOT_STARTED = "not_started"  # its thread could not be started


class HandlerOutcome(BaseModel):
    """Immutable record of one handler invocation."""

    model_config = ConfigDict(frozen=True)

    handler: str
    status: HandlerStatus
    error: str | None = None
    duration_ms: float = 0.0


class DispatchReport(BaseModel):
    """Outcomes of one ``EventDispatcher.dispatch`` call.

    ``outcomes`` follows registration order, not completion order.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str | None = None
    event_name: str
    outcomes: list[HandlerOutcome] = []

    @property
    def handler_count(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> list[HandlerOutcome]:
        """Outcomes that did not complete cleanly."""
        return [o for o in self.outcomes if o.status != HandlerStatus.COMPLETED]

    @property
    def ok(self) -> bool:
        """``True`` when every invoked handler completed without error."""
        return not self.failed
