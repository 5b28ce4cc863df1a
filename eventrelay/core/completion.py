"""Counted completion barrier used to join a dispatch fan-out.

``CompletionGroup`` is a wait-group: the dispatcher adds one count per
handler before starting any thread, each handler's ``HandlerSignal``
releases one count, and ``wait()`` returns once the counter hits zero.
"""

from __future__ import annotations

import threading
import time

from eventrelay.models.dispatch import HandlerOutcome, HandlerStatus


class CompletionAlreadySignaledError(RuntimeError):
    """Raised when a completion signal is invoked more than once."""


class CompletionGroup:
    """Thread-safe counter that blocks waiters until it drops to zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    @property
    def pending(self) -> int:
        """Number of signals still outstanding."""
        with self._cond:
            return self._count

    def add(self, delta: int = 1) -> None:
        with self._cond:
            if self._count + delta < 0:
                raise ValueError("CompletionGroup counter cannot go negative")
            self._count += delta
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every signal has arrived.

        Returns ``False`` only when *timeout* elapses first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)

    def signal(self, handler_label: str) -> HandlerSignal:
        """Reserve one count and return the signal that releases it."""
        self.add(1)
        return HandlerSignal(self, handler_label)


class HandlerSignal:
    """The ``done`` callback handed to one handler for one dispatch.

    Records how the handler finished so the dispatcher can build a
    ``HandlerOutcome`` after the join.
    """

    def __init__(self, group: CompletionGroup, handler_label: str) -> None:
        self._group = group
        self._label = handler_label
        self._lock = threading.Lock()
        self._status: HandlerStatus | None = None
        self._error: BaseException | None = None
        self._started_at = time.perf_counter()
        self._duration_ms = 0.0

    @property
    def handler_label(self) -> str:
        return self._label

    @property
    def is_set(self) -> bool:
        with self._lock:
            return self._status is not None

    def __call__(self, error: BaseException | None = None) -> None:
        if not self.try_complete(error):
            raise CompletionAlreadySignaledError(
                f"Handler {self._label} signalled completion more than once"
            )

    def mark_started(self) -> None:
        """Reset the duration clock when the handler actually begins."""
        self._started_at = time.perf_counter()

    def try_complete(self, error: BaseException | None = None) -> bool:
        """Complete the signal unless it already is.  Returns ``True`` on success."""
        status = HandlerStatus.COMPLETED if error is None else HandlerStatus.FAILED
        return self._settle(status, error)

    def abandon(self, error: BaseException) -> bool:
        """Release the count for a handler whose thread never started."""
        return self._settle(HandlerStatus.NOT_STARTED, error)

    def outcome(self) -> HandlerOutcome:
        with self._lock:
            status = self._status or HandlerStatus.NOT_STARTED
            error = self._error
            duration_ms = self._duration_ms
        return HandlerOutcome(
            handler=self._label,
            status=status,
            error=None if error is None else f"{type(error).__name__}: {error}",
            duration_ms=round(duration_ms, 3),
        )

    def _settle(self, status: HandlerStatus, error: BaseException | None) -> bool:
        with self._lock:
            if self._status is not None:
                return False
            self._status = status
            self._error = error
            self._duration_ms = (time.perf_counter() - self._started_at) * 1000.0
        self._group.done()
        return True

    def __repr__(self) -> str:
        return f"HandlerSignal(handler={self._label!r}, set={self.is_set})"
