"""Broker bridge — thin publish/consume pass-through over a message broker.

Bridge boundary
---------------
The dispatcher never touches the broker.  This module only opens a
channel, publishes raw payloads to an exchange, and yields consumed
deliveries that the caller must acknowledge.

Two channel backends implement ``BrokerChannel``:

1. **AMQP** (``amqp://`` URLs): wraps a ``pika.BlockingConnection``
   channel with manual acknowledgement.  Requires the ``amqp`` extra.
2. **In-process** (``memory://``): a bounded queue per queue name,
   suitable for tests, demos, and single-process deployments.
"""

from __future__ import annotations

import collections
import itertools
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlsplit, urlunsplit

from eventrelay.config import config
from eventrelay.models.broker import BrokerMessage

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


class BrokerError(RuntimeError):
    """Raised when a channel operation fails."""


class BrokerConnectionError(ConnectionError):
    """Raised when a broker connection cannot be established."""


def redact_url(url: str) -> str:
    """Hide the password in a broker URL for logging."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port is not None:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class Delivery:
    """One consumed message.  Must be settled with ``ack`` or ``nack``."""

    def __init__(
        self,
        body: bytes,
        *,
        routing_key: str = "",
        exchange: str = "",
        queue: str = "",
        delivery_tag: int = 0,
        headers: dict[str, Any] | None = None,
        redelivered: bool = False,
        on_ack: Callable[[], None],
        on_nack: Callable[[bool], None],
    ) -> None:
        self.body = body
        self.routing_key = routing_key
        self.exchange = exchange
        self.queue = queue
        self.delivery_tag = delivery_tag
        self.headers = headers or {}
        self.redelivered = redelivered
        self._on_ack = on_ack
        self._on_nack = on_nack
        self._settled = False

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def settled(self) -> bool:
        return self._settled

    def ack(self) -> None:
        self._settle()
        self._on_ack()

    def nack(self, requeue: bool = True) -> None:
        self._settle()
        self._on_nack(requeue)

    def _settle(self) -> None:
        if self._settled:
            raise BrokerError(f"Delivery {self.delivery_tag} already acknowledged")
        self._settled = True

    def __repr__(self) -> str:
        return (
            f"Delivery(tag={self.delivery_tag}, routing_key={self.routing_key!r}, "
            f"size={len(self.body)})"
        )


# ---------------------------------------------------------------------------
# Channel protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class BrokerChannel(Protocol):
    """Protocol that every broker channel backend implements."""

    def publish(self, body: bytes, exchange: str, routing_key: str = "") -> None:
        ...

    def consume(
        self,
        queue: str,
        consumer_tag: str = "",
        *,
        inactivity_timeout: float | None = None,
    ) -> Iterator[Delivery]:
        """Yield deliveries lazily.

        Without *inactivity_timeout* the iterator is unbounded; with one,
        it stops after that many seconds without a message.
        """
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# In-process channel
# ---------------------------------------------------------------------------


class LocalChannel:
    """In-memory channel with direct-exchange routing.

    Parameters
    ----------
    max_queue_depth:
        Maximum messages per queue.  Publishing to a full queue raises
        ``BrokerError``.
    """

    def __init__(self, *, max_queue_depth: int = 1024) -> None:
        self._max_queue_depth = max_queue_depth
        self._queues: dict[str, collections.deque[BrokerMessage]] = {}
        self._bindings: dict[tuple[str, str], list[str]] = {}
        self._unacked: dict[int, tuple[str, BrokerMessage]] = {}
        self._tags = itertools.count(1)
        self._cond = threading.Condition()
        self._closed = False
        logger.info("LocalChannel: opened (max_depth=%d).", max_queue_depth)

    @property
    def is_open(self) -> bool:
        return not self._closed

    def declare_queue(self, queue: str) -> None:
        with self._cond:
            self._queues.setdefault(queue, collections.deque())

    def bind(self, queue: str, exchange: str, routing_key: str = "") -> None:
        """Route messages published to *exchange* with *routing_key* into *queue*."""
        with self._cond:
            self._queues.setdefault(queue, collections.deque())
            bound = self._bindings.setdefault((exchange, routing_key), [])
            if queue not in bound:
                bound.append(queue)

    def queue_depth(self, queue: str) -> int:
        with self._cond:
            return len(self._queues.get(queue, ()))

    @property
    def unacked_count(self) -> int:
        with self._cond:
            return len(self._unacked)

    def publish(self, body: bytes, exchange: str, routing_key: str = "") -> None:
        with self._cond:
            self._ensure_open()
            if exchange == "":
                targets = [routing_key] if routing_key in self._queues else []
            else:
                targets = list(self._bindings.get((exchange, routing_key), ()))

            if not targets:
                logger.warning(
                    "LocalChannel: unroutable message dropped (exchange=%r, routing_key=%r).",
                    exchange,
                    routing_key,
                )
                return

            for name in targets:
                if len(self._queues[name]) >= self._max_queue_depth:
                    raise BrokerError(
                        f"Queue {name!r} is full (depth={len(self._queues[name])})"
                    )

            message = BrokerMessage(body=body, exchange=exchange, routing_key=routing_key)
            for name in targets:
                self._queues[name].append(message)
            self._cond.notify_all()

        logger.debug(
            "LocalChannel: published %d bytes to %s.", len(body), ", ".join(targets)
        )

    def consume(
        self,
        queue: str,
        consumer_tag: str = "",
        *,
        inactivity_timeout: float | None = None,
    ) -> Iterator[Delivery]:
        self.declare_queue(queue)
        while True:
            with self._cond:
                ready = self._cond.wait_for(
                    lambda: self._closed or bool(self._queues[queue]),
                    timeout=inactivity_timeout,
                )
                if self._closed or not ready:
                    return
                message = self._queues[queue].popleft()
                tag = next(self._tags)
                self._unacked[tag] = (queue, message)

            yield Delivery(
                message.body,
                routing_key=message.routing_key,
                exchange=message.exchange,
                queue=queue,
                delivery_tag=tag,
                headers=dict(message.headers),
                redelivered=message.redelivered,
                on_ack=lambda tag=tag: self._ack(tag),
                on_nack=lambda requeue, tag=tag: self._nack(tag, requeue),
            )

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        logger.info("LocalChannel: closed.")

    def _ack(self, tag: int) -> None:
        with self._cond:
            self._unacked.pop(tag, None)

    def _nack(self, tag: int, requeue: bool) -> None:
        with self._cond:
            entry = self._unacked.pop(tag, None)
            if entry is None or not requeue or self._closed:
                return
            queue, message = entry
            self._queues[queue].appendleft(
                message.model_copy(update={"redelivered": True})
            )
            self._cond.notify_all()

    def _ensure_open(self) -> None:
        if self._closed:
            raise BrokerError("Channel is closed")

    def __enter__(self) -> LocalChannel:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"LocalChannel(queues={sorted(self._queues)!r}, open={self.is_open})"


# ---------------------------------------------------------------------------
# AMQP channel (pika)
# ---------------------------------------------------------------------------


class AmqpChannel:
    """``BrokerChannel`` over a ``pika.BlockingConnection``.

    pika channels are not thread-safe; share one across threads only
    behind a lock (``EventPublisher`` does this).
    """

    def __init__(self, connection: Any, channel: Any) -> None:
        self._connection = connection
        self._channel = channel

    @property
    def is_open(self) -> bool:
        return bool(getattr(self._channel, "is_open", False))

    def publish(self, body: bytes, exchange: str, routing_key: str = "") -> None:
        import pika.exceptions

        try:
            self._channel.basic_publish(
                exchange=exchange, routing_key=routing_key, body=body
            )
        except pika.exceptions.AMQPError as exc:
            raise BrokerError(f"Publish to {exchange!r} failed: {exc}") from exc
        logger.debug("AmqpChannel: published %d bytes to %s.", len(body), exchange)

    def consume(
        self,
        queue: str,
        consumer_tag: str = "",
        *,
        inactivity_timeout: float | None = None,
    ) -> Iterator[Delivery]:
        logger.info("AmqpChannel: consuming %s (consumer=%s).", queue, consumer_tag or "-")
        try:
            for method, properties, body in self._channel.consume(
                queue, auto_ack=False, inactivity_timeout=inactivity_timeout
            ):
                if method is None:
                    return
                tag = method.delivery_tag
                yield Delivery(
                    body,
                    routing_key=method.routing_key,
                    exchange=method.exchange,
                    queue=queue,
                    delivery_tag=tag,
                    headers=dict(getattr(properties, "headers", None) or {}),
                    redelivered=bool(method.redelivered),
                    on_ack=lambda tag=tag: self._channel.basic_ack(delivery_tag=tag),
                    on_nack=lambda requeue, tag=tag: self._channel.basic_nack(
                        delivery_tag=tag, requeue=requeue
                    ),
                )
        finally:
            if self.is_open:
                self._channel.cancel()

    def close(self) -> None:
        try:
            if self.is_open:
                self._channel.close()
        finally:
            if getattr(self._connection, "is_open", False):
                self._connection.close()
        logger.info("AmqpChannel: closed.")

    def __enter__(self) -> AmqpChannel:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Module-level operations
# ---------------------------------------------------------------------------


def open_channel(url: str | None = None) -> LocalChannel | AmqpChannel:
    """Open a broker channel for *url* (defaults to ``config.broker_url``).

    Raises
    ------
    BrokerConnectionError
        If the broker is unreachable or pika is not installed.
    """
    url = url or config.broker_url
    if url.startswith(MEMORY_URL):
        return LocalChannel()

    try:
        import pika
        import pika.exceptions
    except ImportError as exc:
        raise BrokerConnectionError(
            "pika is required for AMQP brokers; install eventrelay[amqp]"
        ) from exc

    try:
        connection = pika.BlockingConnection(pika.URLParameters(url))
        channel = connection.channel()
    except pika.exceptions.AMQPError as exc:
        raise BrokerConnectionError(
            f"Could not connect to broker at {redact_url(url)}: {exc}"
        ) from exc

    logger.info("Connected to broker at %s.", redact_url(url))
    return AmqpChannel(connection, channel)


def publish(
    channel: BrokerChannel,
    payload: str | bytes,
    destination: str,
    routing_key: str = "",
) -> None:
    """Publish *payload* to the *destination* exchange."""
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    channel.publish(body, destination, routing_key)


def consume(
    channel: BrokerChannel,
    queue_name: str,
    consumer_tag: str | None = None,
    *,
    inactivity_timeout: float | None = None,
) -> Iterator[Delivery]:
    """Lazily iterate deliveries from *queue_name*.  Each must be acked."""
    return channel.consume(
        queue_name,
        consumer_tag or config.consumer_tag,
        inactivity_timeout=inactivity_timeout,
    )
