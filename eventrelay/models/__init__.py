"""Eventrelay data models — all Pydantic v2, all frozen (immutable)."""

from eventrelay.models.broker import BrokerMessage
from eventrelay.models.dispatch import DispatchReport, HandlerOutcome, HandlerStatus
from eventrelay.models.events import Event

__all__ = [
    # events
    "Event",
    # broker
    "BrokerMessage",
    # dispatch
    "HandlerStatus",
    "HandlerOutcome",
    "DispatchReport",
]
