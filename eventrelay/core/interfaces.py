"""Capability protocols for events, handlers, and dispatchers.

The dispatcher depends only on these protocols.  ``eventrelay.models.Event``
is the stock ``EventLike`` implementation, but any object exposing the
three attributes can be dispatched.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from eventrelay.models.dispatch import DispatchReport


@runtime_checkable
class EventLike(Protocol):
    """A named, timestamped, payload-bearing value."""

    @property
    def name(self) -> str:
        """Routing key used to look up handlers."""
        ...

    @property
    def timestamp(self) -> datetime:
        ...

    @property
    def payload(self) -> Any:
        ...


@runtime_checkable
class CompletionSignal(Protocol):
    """Single-use callback a handler invokes when its work is finished.

    Passing an exception reports the handler as failed.  Calling the
    signal a second time raises ``CompletionAlreadySignaledError``.
    """

    def __call__(self, error: BaseException | None = None) -> None:
        ...


@runtime_checkable
class EventHandler(Protocol):
    """Protocol that every registered handler object implements.

    ``handle`` is invoked once per dispatch per registration, on its own
    thread.  It must call ``done`` exactly once on every code path,
    including error paths, or the dispatch never returns.
    """

    def handle(self, event: EventLike, done: CompletionSignal) -> None:
        ...


# Handlers may also be plain callables taking ``(event, done)``.
HandlerLike = Union[EventHandler, Callable[[EventLike, CompletionSignal], None]]


@runtime_checkable
class EventDispatcherInterface(Protocol):
    """Registry + fan-out contract implemented by ``EventDispatcher``."""

    def register(self, event_name: str, handler: HandlerLike) -> None:
        ...

    def remove(self, event_name: str, handler: HandlerLike) -> None:
        ...

    def has(self, event_name: str, handler: HandlerLike) -> bool:
        ...

    def clear(self) -> None:
        ...

    def dispatch(self, event: EventLike) -> DispatchReport:
        ...
