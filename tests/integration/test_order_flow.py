"""End-to-end flow — local event → publisher → broker → relay → handlers.

Exercises EventDispatcher, EventPublisher, LocalChannel, and EventRelay
working together across two dispatchers sharing one channel.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest

from eventrelay.bridge.broker import LocalChannel
from eventrelay.bridge.relay import EventPublisher, EventRelay
from eventrelay.core.dispatcher import EventDispatcher
from eventrelay.core.handlers import SyncHandler
from eventrelay.models.events import Event


class TestOrderFlow:
    """Events cross a broker from one dispatcher to another."""

    @pytest.fixture
    def channel(self) -> Iterator[LocalChannel]:
        channel = LocalChannel()
        channel.bind("orders", "amq.direct", "order.created")
        yield channel
        channel.close()

    def test_order_created_reaches_remote_handlers(self, channel, make_handler):
        """order.created reaches local and remote handlers with its identity intact."""
        producer = EventDispatcher()
        local_audit = make_handler("audit")
        producer.register("order.created", local_audit)
        producer.register("order.created", EventPublisher(channel, "amq.direct"))

        consumer = EventDispatcher()
        a, b = make_handler("A"), make_handler("B")
        consumer.register("order.created", a)
        consumer.register("order.created", b)

        event = Event(name="order.created", payload={"id": "42"})
        sent = producer.dispatch(event)
        assert sent.ok

        reports = EventRelay(consumer, channel, "orders").run(inactivity_timeout=0.05)

        assert len(reports) == 1
        assert reports[0].ok
        assert local_audit.events[0] is event
        for handler in (a, b):
            received = handler.events[0]
            assert received.name == "order.created"
            assert received.payload["id"] == "42"
            assert received.event_id == event.event_id
        assert channel.unacked_count == 0

    def test_many_events_each_fan_out_once(self, channel):
        """Each relayed event reaches every remote handler exactly once."""
        consumer = EventDispatcher()
        counts = {"a": 0, "b": 0}
        lock = threading.Lock()

        def counter(key):
            def _count(event):
                with lock:
                    counts[key] += 1
            return SyncHandler(_count, name=f"count-{key}")

        consumer.register("order.created", counter("a"))
        consumer.register("order.created", counter("b"))

        producer = EventDispatcher()
        producer.register("order.created", EventPublisher(channel, "amq.direct"))
        for i in range(10):
            producer.dispatch(Event(name="order.created", payload={"id": str(i)}))

        reports = EventRelay(consumer, channel, "orders").run(inactivity_timeout=0.05)

        assert len(reports) == 10
        assert counts == {"a": 10, "b": 10}
