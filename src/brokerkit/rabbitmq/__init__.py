"""
RabbitMQ implementation of the broker access roles.

Public API:
    - ConnectorInterface, DeclaratorInterface, PublisherInterface,
      ConsumerInterface: Abstract role interfaces
    - RabbitConnector: Opens a connection and a session on it
    - RabbitDeclarator: Declares direct, fanout, headers and topic exchanges
    - RabbitPublisher: Publishes message envelopes to exchanges
    - RabbitConsumer: Subscribes to queues, yielding Delivery items
"""

from .base import (
    ConnectorInterface,
    ConsumerInterface,
    DeclaratorInterface,
    PublisherInterface,
)
from .connector import RabbitConnector
from .consumer import Delivery, RabbitConsumer, Subscription
from .publisher import RabbitPublisher
from .topology import (
    RabbitDeclarator,
    declare_direct_exchange,
    declare_fanout_exchange,
    declare_headers_exchange,
    declare_topic_exchange,
    exchange_exists,
)

__all__ = [
    # Abstract role interfaces
    "ConnectorInterface",
    "DeclaratorInterface",
    "PublisherInterface",
    "ConsumerInterface",
    # Concrete implementations
    "RabbitConnector",
    "RabbitDeclarator",
    "RabbitPublisher",
    "RabbitConsumer",
    # Consumer results
    "Subscription",
    "Delivery",
    # Per-variant declaration helpers
    "declare_direct_exchange",
    "declare_fanout_exchange",
    "declare_headers_exchange",
    "declare_topic_exchange",
    "exchange_exists",
]
