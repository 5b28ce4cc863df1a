"""Shared test fixtures for eventrelay."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from eventrelay.bridge.broker import LocalChannel
from eventrelay.core.dispatcher import EventDispatcher
from eventrelay.core.interfaces import CompletionSignal, EventLike
from eventrelay.models.events import Event


class RecordingHandler:
    """Handler that records every event it sees and signals completion."""

    def __init__(self, handler_id: str = "0001", *, error: BaseException | None = None) -> None:
        self.handler_id = handler_id
        self.error = error
        self.events: list[EventLike] = []
        self.threads: list[str] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.events)

    def handle(self, event: EventLike, done: CompletionSignal) -> None:
        with self._lock:
            self.events.append(event)
            self.threads.append(threading.current_thread().name)
        done(self.error)


@pytest.fixture
def dispatcher() -> EventDispatcher:
    """Provide a fresh thread-per-handler dispatcher."""
    return EventDispatcher()


@pytest.fixture
def local_channel() -> Iterator[LocalChannel]:
    """Provide an in-process channel, closed after the test."""
    channel = LocalChannel(max_queue_depth=16)
    yield channel
    channel.close()


@pytest.fixture
def make_handler() -> Callable[..., RecordingHandler]:
    """Factory fixture: build a RecordingHandler."""

    def _factory(handler_id: str = "0001", **kwargs: Any) -> RecordingHandler:
        return RecordingHandler(handler_id, **kwargs)

    return _factory


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory fixture: build an Event with sensible defaults."""

    def _factory(name: str = "event mock 01", payload: Any = None, **overrides: Any) -> Event:
        if payload is None:
            payload = {"id": "01", "name": name}
        return Event(name=name, payload=payload, **overrides)

    return _factory
