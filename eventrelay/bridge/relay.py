"""Relay between the broker bridge and the in-process dispatcher.

``EventRelay`` turns consumed deliveries into events and dispatches them;
``EventPublisher`` is a handler that externalizes local events onto an
exchange.  Events cross the wire as canonical JSON.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from typing import Any

from pydantic import ValidationError

from eventrelay.bridge.broker import BrokerChannel, Delivery, consume
from eventrelay.config import config
from eventrelay.core.dispatcher import DispatchError, EventDispatcher
from eventrelay.core.interfaces import CompletionSignal, EventLike
from eventrelay.models.dispatch import DispatchReport
from eventrelay.models.events import Event

logger = logging.getLogger(__name__)


def canonical_json_bytes(obj: Any) -> bytes:
    """Deterministic JSON — sorted keys, compact separators, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def encode_event(event: EventLike) -> bytes:
    """Serialize an event for publishing."""
    if isinstance(event, Event):
        data = event.model_dump(mode="json")
    else:
        data = {
            "name": event.name,
            "payload": event.payload,
            "timestamp": event.timestamp.isoformat(),
        }
    return canonical_json_bytes(data)


def decode_delivery(delivery: Delivery, event_name: str | None = None) -> Event:
    """Build an ``Event`` from a delivery.

    A body holding a serialized event is revalidated, keeping its id,
    timestamp and payload.  Anything else becomes the payload of a new
    event.  JSON bodies are parsed; other bodies are kept as text.

    The event is named *event_name* when one is given, even when the body
    carries its own name.  Otherwise a serialized event keeps its name and
    a wrapped body falls back to the routing key, then the queue name.

    Raises
    ------
    pydantic.ValidationError
        If no usable name can be found.
    """
    try:
        data = json.loads(delivery.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
        payload: Any = delivery.text
    else:
        payload = data

    if isinstance(data, dict) and {"name", "timestamp"} <= data.keys():
        try:
            event = Event.model_validate(data)
        except ValidationError:
            logger.debug(
                "Delivery %s looks like an event but failed validation; wrapping it.",
                delivery.delivery_tag,
            )
        else:
            if event_name and event_name != event.name:
                return Event.model_validate({**event.model_dump(), "name": event_name})
            return event

    name = event_name or delivery.routing_key or delivery.queue
    return Event(name=name, payload=payload)


class EventRelay:
    """Consumes a queue and dispatches each delivery as an event.

    A delivery is acked when every handler completes, and nacked when a
    handler fails (requeued per *requeue_on_failure*) or when the
    dispatch itself fails (always requeued).  A delivery that cannot be
    turned into an event is nacked without requeue and skipped.

    Parameters
    ----------
    dispatcher:
        The dispatcher events are routed through.
    channel:
        Broker channel to consume from.
    queue:
        Queue name.  Defaults to ``config.queue``.
    event_name:
        Name every delivery is dispatched under, overriding the name of a
        serialized event.  When ``None``, serialized events keep their own
        name and other bodies use the delivery's routing key.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        channel: BrokerChannel,
        queue: str | None = None,
        *,
        event_name: str | None = None,
        consumer_tag: str | None = None,
        requeue_on_failure: bool | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._channel = channel
        self._queue = queue or config.queue
        self._event_name = event_name
        self._consumer_tag = consumer_tag or config.consumer_tag
        self._requeue_on_failure = (
            config.requeue_on_failure if requeue_on_failure is None else requeue_on_failure
        )

    @property
    def queue(self) -> str:
        return self._queue

    def process(self, delivery: Delivery) -> DispatchReport | None:
        """Dispatch one delivery and settle it.

        Returns ``None`` when the delivery could not be decoded.
        """
        try:
            event = decode_delivery(delivery, self._event_name)
        except ValidationError as exc:
            logger.error(
                "Delivery %s from %s is not a valid event; nack (requeue=False): %s",
                delivery.delivery_tag,
                self._queue,
                exc,
            )
            delivery.nack(requeue=False)
            return None

        try:
            report = self._dispatcher.dispatch(event)
        except DispatchError:
            delivery.nack(requeue=True)
            raise

        if report.ok:
            delivery.ack()
        else:
            logger.warning(
                "Delivery %s: %d handler(s) failed for %s; nack (requeue=%s).",
                delivery.delivery_tag,
                len(report.failed),
                event.name,
                self._requeue_on_failure,
            )
            delivery.nack(requeue=self._requeue_on_failure)
        return report

    def stream(
        self,
        *,
        max_deliveries: int | None = None,
        inactivity_timeout: float | None = None,
    ) -> Iterator[DispatchReport]:
        """Yield one report per dispatched delivery as it is settled.

        Stops when the consume stream ends or after *max_deliveries*
        deliveries, undecodable ones included.
        """
        seen = 0
        logger.info("EventRelay: consuming %s.", self._queue)
        try:
            for delivery in consume(
                self._channel,
                self._queue,
                self._consumer_tag,
                inactivity_timeout=inactivity_timeout,
            ):
                seen += 1
                report = self.process(delivery)
                if report is not None:
                    yield report
                if max_deliveries is not None and seen >= max_deliveries:
                    break
        finally:
            logger.info("EventRelay: processed %d deliveries from %s.", seen, self._queue)

    def run(
        self,
        *,
        max_deliveries: int | None = None,
        inactivity_timeout: float | None = None,
    ) -> list[DispatchReport]:
        """Process deliveries until the stream ends or *max_deliveries* is reached."""
        return list(
            self.stream(max_deliveries=max_deliveries, inactivity_timeout=inactivity_timeout)
        )


class EventPublisher:
    """Handler that publishes every event it receives to an exchange.

    Register it like any other handler to externalize an event name.
    Channel access is serialized because handlers run concurrently.
    """

    def __init__(
        self,
        channel: BrokerChannel,
        exchange: str | None = None,
        routing_key: str | None = None,
    ) -> None:
        self._channel = channel
        self._exchange = config.exchange if exchange is None else exchange
        self._routing_key = routing_key
        self._lock = threading.Lock()
        self.handler_name = f"EventPublisher[{self._exchange or 'default'}]"

    def handle(self, event: EventLike, done: CompletionSignal) -> None:
        routing_key = event.name if self._routing_key is None else self._routing_key
        try:
            body = encode_event(event)
            with self._lock:
                self._channel.publish(body, self._exchange, routing_key)
        except Exception as exc:
            logger.error(
                "EventPublisher: could not publish %s to %r: %s",
                event.name,
                self._exchange,
                exc,
            )
            done(exc)
            return
        done()
