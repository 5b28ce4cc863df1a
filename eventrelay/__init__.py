"""Eventrelay: in-process event dispatch with concurrent fan-out.

  - EventDispatcher maps event names to ordered, identity-deduplicated handlers
  - dispatch() runs every handler on its own thread and joins them all
  - per-handler outcomes captured in a DispatchReport
  - optional broker bridge (AMQP via pika, or in-process) to relay deliveries
    into the dispatcher and publish local events outward
"""

__version__ = "0.1.0"
__description__ = "In-process event dispatcher with concurrent fan-out/join"

from eventrelay.core.dispatcher import (
    DispatchError,
    EventDispatcher,
    HandlerAlreadyExistsError,
)
from eventrelay.core.handlers import SyncHandler
from eventrelay.models.dispatch import DispatchReport
from eventrelay.models.events import Event

__all__ = [
    "DispatchError",
    "DispatchReport",
    "Event",
    "EventDispatcher",
    "HandlerAlreadyExistsError",
    "SyncHandler",
    "__version__",
]
