"""EventDispatcher — routes an event to every handler registered for its name.

Handlers are fanned out onto independent threads and joined with a
``CompletionGroup`` before ``dispatch`` returns.  Handlers for the same
event may run at the same time; any shared state they touch is theirs to
synchronize.

Registration is identity-based: the same handler object cannot be
registered twice under one name, while two equal-but-distinct objects
can.
"""

from __future__ import annotations

import inspect
import itertools
import logging
import threading
import types
from concurrent.futures import Executor
from typing import Any

from eventrelay.core.completion import CompletionGroup, HandlerSignal
from eventrelay.core.interfaces import EventLike, HandlerLike
from eventrelay.models.dispatch import DispatchReport

logger = logging.getLogger(__name__)


class HandlerAlreadyExistsError(ValueError):
    """Raised when a handler is already registered for an event name."""


class DispatchError(RuntimeError):
    """Raised when handler tasks cannot be started.

    All handlers that did start have finished by the time this is raised;
    ``report`` carries their outcomes alongside the ones never started.
    """

    def __init__(self, message: str, report: DispatchReport) -> None:
        super().__init__(message)
        self.report = report


def same_handler(a: Any, b: Any) -> bool:
    """Identity comparison, treating bound methods of one object as one handler."""
    if a is b:
        return True
    if inspect.ismethod(a) and inspect.ismethod(b):
        return a.__self__ is b.__self__ and a.__func__ is b.__func__
    # C-level bound methods (``some_list.append``) have no __func__.
    if isinstance(a, types.BuiltinMethodType) and isinstance(b, types.BuiltinMethodType):
        return a.__self__ is b.__self__ and a.__name__ == b.__name__
    return False


def handler_label(handler: Any) -> str:
    """Human-readable name for logs and dispatch reports."""
    explicit = getattr(handler, "handler_name", None)
    if isinstance(explicit, str):
        return explicit
    if inspect.ismethod(handler):
        owner = type(handler.__self__).__name__
        return f"{owner}.{handler.__func__.__name__}"
    name = getattr(handler, "__qualname__", None)
    if name is None:
        name = type(handler).__name__
    return name


class EventDispatcher:
    """Registry of event handlers plus a concurrent fan-out/join dispatch.

    Parameters
    ----------
    executor:
        Optional executor that runs handlers.  When ``None`` every handler
        gets its own daemon thread.  A bounded executor can deadlock if a
        handler waits on another handler of the same dispatch.
    thread_name_prefix:
        Prefix for per-handler thread names.

    Usage
    -----
    >>> dispatcher = EventDispatcher()
    >>> dispatcher.register("order.created", send_receipt)
    >>> report = dispatcher.dispatch(Event(name="order.created", payload={"id": "42"}))
    """

    def __init__(
        self,
        *,
        executor: Executor | None = None,
        thread_name_prefix: str = "eventrelay-handler",
    ) -> None:
        self._handlers: dict[str, list[HandlerLike]] = {}
        self._lock = threading.RLock()
        self._executor = executor
        self._thread_name_prefix = thread_name_prefix
        self._thread_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, event_name: str, handler: HandlerLike) -> None:
        """Append *handler* to the list for *event_name*.

        Raises
        ------
        HandlerAlreadyExistsError
            If this exact handler is already registered for the name.
            The registry is left unchanged.
        """
        with self._lock:
            registered = self._handlers.get(event_name, [])
            if any(same_handler(h, handler) for h in registered):
                raise HandlerAlreadyExistsError(
                    f"Handler {handler_label(handler)} already registered "
                    f"for event {event_name!r}"
                )
            self._handlers[event_name] = [*registered, handler]
        logger.info(
            "Registered handler %s for event %s", handler_label(handler), event_name
        )

    def remove(self, event_name: str, handler: HandlerLike) -> None:
        """Remove *handler* from *event_name*.  Absent handlers are ignored."""
        with self._lock:
            registered = self._handlers.get(event_name)
            if not registered:
                return
            for index, existing in enumerate(registered):
                if same_handler(existing, handler):
                    break
            else:
                return
            remaining = registered[:index] + registered[index + 1:]
            if remaining:
                self._handlers[event_name] = remaining
            else:
                del self._handlers[event_name]
        logger.info(
            "Removed handler %s from event %s", handler_label(handler), event_name
        )

    def has(self, event_name: str, handler: HandlerLike) -> bool:
        """Whether this exact handler is registered for *event_name*."""
        with self._lock:
            return any(
                same_handler(h, handler) for h in self._handlers.get(event_name, ())
            )

    def clear(self) -> None:
        """Drop every registration.  The dispatcher stays usable."""
        with self._lock:
            self._handlers = {}
        logger.info("Cleared all event handlers")

    def handlers_for(self, event_name: str) -> list[HandlerLike]:
        """Return a copy of the handlers for *event_name* in registration order."""
        with self._lock:
            return list(self._handlers.get(event_name, ()))

    @property
    def event_names(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: EventLike) -> DispatchReport:
        """Invoke every handler for ``event.name`` concurrently and wait for all.

        Handler failures are captured in the returned report and never
        raised here.  There is no timeout: a handler that never signals
        completion blocks this call forever.

        Raises
        ------
        DispatchError
            If a handler task could not be started.  Raised only after
            every started handler has signalled.
        """
        event_name = event.name
        event_id = getattr(event, "event_id", None)

        # Snapshot under the lock; handlers may mutate the registry.
        handlers = self.handlers_for(event_name)
        if not handlers:
            logger.debug("No handlers registered for event %s", event_name)
            return DispatchReport(event_id=event_id, event_name=event_name)

        group = CompletionGroup()
        signals = [group.signal(handler_label(h)) for h in handlers]

        spawn_error: BaseException | None = None
        for index, (handler, signal) in enumerate(zip(handlers, signals)):
            try:
                self._spawn(handler, event, signal)
            except Exception as exc:
                spawn_error = exc
                for pending in signals[index:]:
                    pending.abandon(exc)
                break

        group.wait()

        report = DispatchReport(
            event_id=event_id,
            event_name=event_name,
            outcomes=[s.outcome() for s in signals],
        )

        if spawn_error is not None:
            raise DispatchError(
                f"Could not start handlers for event {event_name!r}: {spawn_error}",
                report,
            ) from spawn_error

        if report.failed:
            logger.warning(
                "Event %s: %d/%d handlers failed",
                event_name,
                len(report.failed),
                report.handler_count,
            )
        else:
            logger.debug(
                "Event %s delivered to %d handlers", event_name, report.handler_count
            )
        return report

    def _spawn(self, handler: HandlerLike, event: EventLike, signal: HandlerSignal) -> None:
        if self._executor is not None:
            self._executor.submit(self._invoke, handler, event, signal)
            return
        thread = threading.Thread(
            target=self._invoke,
            args=(handler, event, signal),
            name=f"{self._thread_name_prefix}-{next(self._thread_ids)}",
            daemon=True,
        )
        thread.start()

    @staticmethod
    def _invoke(handler: HandlerLike, event: EventLike, signal: HandlerSignal) -> None:
        signal.mark_started()
        try:
            handle = getattr(handler, "handle", None)
            if callable(handle):
                handle(event, signal)
            else:
                handler(event, signal)
        except BaseException as exc:
            logger.exception(
                "Handler %s raised while handling event %s",
                signal.handler_label,
                event.name,
            )
            if not signal.try_complete(exc):
                logger.warning(
                    "Handler %s raised after signalling completion; error not recorded",
                    signal.handler_label,
                )
            # SystemExit and KeyboardInterrupt propagate once the join is
            # released.
            if not isinstance(exc, Exception):
                raise

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Shut down the executor, if any, after its queued handlers finish.

        The registry is left intact.  A thread-per-handler dispatcher has
        nothing to release; dispatching through a closed executor raises
        ``DispatchError``.
        """
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            logger.info("EventDispatcher executor shut down")

    def __enter__(self) -> EventDispatcher:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        with self._lock:
            counts = {name: len(hs) for name, hs in self._handlers.items()}
        return f"EventDispatcher(handlers={counts!r})"
