"""Bridge layer between the in-process dispatcher and a message broker.

Modules
-------
broker
    Opens channels, publishes raw payloads, and yields deliveries that
    must be acknowledged.  AMQP via pika (``amqp`` extra) or an
    in-process channel for ``memory://`` URLs.
relay
    ``EventRelay`` turns deliveries into dispatched events;
    ``EventPublisher`` externalizes local events onto an exchange.

The core dispatcher never imports this package.
"""

from eventrelay.bridge.broker import (
    AmqpChannel,
    BrokerChannel,
    BrokerConnectionError,
    BrokerError,
    Delivery,
    LocalChannel,
    consume,
    open_channel,
    publish,
)
from eventrelay.bridge.relay import (
    EventPublisher,
    EventRelay,
    decode_delivery,
    encode_event,
)

__all__ = [
    "AmqpChannel",
    "BrokerChannel",
    "BrokerConnectionError",
    "BrokerError",
    "Delivery",
    "EventPublisher",
    "EventRelay",
    "LocalChannel",
    "consume",
    "decode_delivery",
    "encode_event",
    "open_channel",
    "publish",
]
