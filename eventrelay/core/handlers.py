"""Handler adapters."""

from __future__ import annotations

import logging
from typing import Any, Callable

from eventrelay.core.interfaces import CompletionSignal, EventLike

logger = logging.getLogger(__name__)


class SyncHandler:
    """Adapts a plain ``fn(event)`` into a handler that signals completion itself.

    The completion signal fires when *fn* returns, or carries the
    exception when it raises.  Each ``SyncHandler`` is a distinct handler
    identity, so keep the instance around to ``remove`` it later.
    """

    def __init__(self, fn: Callable[[EventLike], Any], *, name: str | None = None) -> None:
        self._fn = fn
        self.handler_name = name or getattr(fn, "__qualname__", type(fn).__name__)

    def handle(self, event: EventLike, done: CompletionSignal) -> None:
        try:
            self._fn(event)
        except Exception as exc:
            logger.error("%s failed for event %s: %s", self.handler_name, event.name, exc)
            done(exc)
            return
        done()

    def __repr__(self) -> str:
        return f"SyncHandler({self.handler_name!r})"
