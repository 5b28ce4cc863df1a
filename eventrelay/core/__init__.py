"""Core dispatch machinery: protocols, completion barrier, dispatcher."""

from eventrelay.core.completion import (
    CompletionAlreadySignaledError,
    CompletionGroup,
    HandlerSignal,
)
from eventrelay.core.dispatcher import (
    DispatchError,
    EventDispatcher,
    HandlerAlreadyExistsError,
)
from eventrelay.core.handlers import SyncHandler
from eventrelay.core.interfaces import (
    CompletionSignal,
    EventDispatcherInterface,
    EventHandler,
    EventLike,
    HandlerLike,
)

__all__ = [
    "CompletionAlreadySignaledError",
    "CompletionGroup",
    "CompletionSignal",
    "DispatchError",
    "EventDispatcher",
    "EventDispatcherInterface",
    "EventHandler",
    "EventLike",
    "HandlerAlreadyExistsError",
    "HandlerLike",
    "HandlerSignal",
    "SyncHandler",
]
