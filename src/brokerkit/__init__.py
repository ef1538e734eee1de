"""
brokerkit - a small client-side access layer for AMQP 0-9-1 brokers.

Typical flow::

    connector = RabbitConnector(ConnectionCredentials("guest", "guest", "localhost", "5672"))
    connection, channel = connector.open()
    RabbitDeclarator().declare(channel, ExchangeDescriptor.create("events"), ExchangeVariant.FANOUT)
    RabbitPublisher().publish(channel, MessageEnvelope.create("events", "", "hello"))
"""

from .config import ConnectionCredentials, ConnectionOptions
from .exceptions import (
    AcknowledgementError,
    BrokerConnectionError,
    BrokerError,
    DeclareError,
    PublishError,
    SessionError,
    SubscriptionError,
    TopologyConflictError,
)
from .models import (
    ContentType,
    ExchangeDescriptor,
    ExchangeVariant,
    MessageEnvelope,
    Payload,
    QueueDescriptor,
)
from .rabbitmq import (
    Delivery,
    RabbitConnector,
    RabbitConsumer,
    RabbitDeclarator,
    RabbitPublisher,
    Subscription,
)

__all__ = [
    "ConnectionCredentials",
    "ConnectionOptions",
    "ContentType",
    "ExchangeVariant",
    "ExchangeDescriptor",
    "QueueDescriptor",
    "Payload",
    "MessageEnvelope",
    "RabbitConnector",
    "RabbitDeclarator",
    "RabbitPublisher",
    "RabbitConsumer",
    "Subscription",
    "Delivery",
    "BrokerError",
    "BrokerConnectionError",
    "SessionError",
    "DeclareError",
    "TopologyConflictError",
    "PublishError",
    "SubscriptionError",
    "AcknowledgementError",
]
