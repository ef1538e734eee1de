"""
Shared pytest fixtures and utilities for testing.

## Role test doubles

`MockConnector`, `MockDeclarator`, `MockPublisher` and `MockConsumer` implement
the abstract role interfaces and record every call, so code that depends on a
single role can be tested without a broker:

```python
def test_announce(mock_publisher):
    mock_publisher.publish(session, MessageEnvelope.create("events", "", "hi"))
    assert mock_publisher.publish_call_count == 1
```

## In-memory broker

`FakeBroker` emulates the parts of a RabbitMQ broker the components talk to:
exchange declaration (including conflicts and passive checks), routing for
the four exchange variants and the default exchange, queues and bindings
(created directly on the broker, since queue creation is outside the library),
consumer registration, inbound deliveries, acknowledgements and channel
closure. `FakeChannel` mirrors the `amqpstorm.Channel` surface used by the
components; inbound items are real `amqpstorm.Message` objects.

Channel-level failures follow the broker: the channel is closed and the error
is raised from the failing RPC, or from the next operation for asynchronous
methods such as publish.
"""

import collections
from typing import Any, Iterator, List, Optional
from unittest.mock import Mock

import pytest
from amqpstorm import AMQPChannelError, Message
from pamqp.commands import Basic, Exchange

from brokerkit.models import ExchangeDescriptor, ExchangeVariant, MessageEnvelope
from brokerkit.rabbitmq.base import (
    ConnectorInterface,
    ConsumerInterface,
    DeclaratorInterface,
    PublisherInterface,
)


# Role test doubles
class MockConnector(ConnectorInterface):
    def __init__(self):
        self.connection = Mock(name="connection")
        self.sessions: List[Mock] = []
        self.open_call_count = 0

    def open(self):
        self.open_call_count += 1
        return self.connection, self.open_session(self.connection)

    def open_session(self, connection):
        session = Mock(name=f"session-{len(self.sessions) + 1}")
        self.sessions.append(session)
        return session


class MockDeclarator(DeclaratorInterface):
    def __init__(self):
        self.declared: List[tuple[ExchangeDescriptor, ExchangeVariant]] = []

    def declare(self, session, descriptor, variant) -> None:
        self.declared.append((descriptor, ExchangeVariant(variant)))

    def was_declared(self, name: str) -> bool:
        return any(descriptor.name == name for descriptor, _ in self.declared)


class MockPublisher(PublisherInterface):
    def __init__(self):
        self.published: List[MessageEnvelope] = []
        self.publish_call_count = 0

    def publish(self, session, envelope) -> None:
        self.published.append(envelope)
        self.publish_call_count += 1

    def get_last_envelope(self) -> MessageEnvelope:
        if not self.published:
            raise ValueError("No messages have been published")
        return self.published[-1]


class MockConsumer(ConsumerInterface):
    def __init__(self):
        self._queued: dict[str, List[Any]] = collections.defaultdict(list)
        self.consume_call_count = 0

    def queue_delivery(self, queue: str, delivery: Any) -> None:
        self._queued[queue].append(delivery)

    def consume(self, session, descriptor) -> Iterator[Any]:
        self.consume_call_count += 1
        deliveries = self._queued.pop(descriptor.name, [])
        return iter(deliveries)


# In-memory broker
def _topic_matches(pattern: str, routing_key: str) -> bool:
    pattern_words = pattern.split(".")
    key_words = routing_key.split(".") if routing_key else []

    def match(i: int, j: int) -> bool:
        if i == len(pattern_words):
            return j == len(key_words)
        if pattern_words[i] == "#":
            return any(match(i + 1, k) for k in range(j, len(key_words) + 1))
        if j == len(key_words):
            return False
        if pattern_words[i] in ("*", key_words[j]):
            return match(i + 1, j + 1)
        return False

    return match(0, 0)


def _headers_match(binding_arguments: dict, headers: dict) -> bool:
    match_mode = binding_arguments.get("x-match", "all")
    expected = {k: v for k, v in binding_arguments.items() if not k.startswith("x-")}
    if not expected:
        return True
    matches = [headers.get(key) == value for key, value in expected.items()]
    return any(matches) if match_mode == "any" else all(matches)


class FakeExchange:
    def __init__(self, name, exchange_type, durable, auto_delete, internal, arguments):
        self.name = name
        self.exchange_type = exchange_type
        self.durable = durable
        self.auto_delete = auto_delete
        self.internal = internal
        self.arguments = dict(arguments or {})

    def properties(self) -> tuple:
        return (
            self.exchange_type,
            self.durable,
            self.auto_delete,
            self.internal,
            self.arguments,
        )


class FakeBroker:
    def __init__(self):
        self.exchanges: dict[str, FakeExchange] = {}
        self.queues: dict[str, collections.deque] = {}
        self.bindings: List[tuple[str, str, str, dict]] = []
        self.consumers: dict[str, List[tuple["FakeChannel", str, bool]]] = (
            collections.defaultdict(list)
        )
        self.channels: List["FakeChannel"] = []
        self.declare_count = 0
        self._delivery_tag = 0

    def channel(self) -> "FakeChannel":
        channel = FakeChannel(self, channel_id=len(self.channels) + 1)
        self.channels.append(channel)
        return channel

    # broker-side setup, standing in for queue management done elsewhere
    def add_queue(self, name: str) -> None:
        self.queues.setdefault(name, collections.deque())

    def bind(self, exchange: str, queue: str, routing_key: str = "", arguments=None):
        self.bindings.append((exchange, queue, routing_key, dict(arguments or {})))

    def declare_exchange(self, frame: Exchange.Declare) -> None:
        self.declare_count += 1
        requested = FakeExchange(
            frame.exchange,
            frame.exchange_type,
            frame.durable,
            frame.auto_delete,
            frame.internal,
            frame.arguments,
        )
        existing = self.exchanges.get(frame.exchange)
        if frame.passive:
            if existing is None:
                raise AMQPChannelError(
                    f"NOT_FOUND - no exchange '{frame.exchange}'", reply_code=404
                )
            return
        if existing is None:
            self.exchanges[frame.exchange] = requested
            return
        if existing.properties() != requested.properties():
            raise AMQPChannelError(
                f"PRECONDITION_FAILED - inequivalent arg for exchange '{frame.exchange}'",
                reply_code=406,
            )

    def route(self, exchange_name: str, routing_key: str, headers: dict) -> List[str]:
        if exchange_name == "":
            return [routing_key] if routing_key in self.queues else []
        exchange = self.exchanges[exchange_name]
        queues = []
        for bound_exchange, queue, binding_key, arguments in self.bindings:
            if bound_exchange != exchange_name:
                continue
            if exchange.exchange_type == ExchangeVariant.FANOUT.value:
                matched = True
            elif exchange.exchange_type == ExchangeVariant.DIRECT.value:
                matched = binding_key == routing_key
            elif exchange.exchange_type == ExchangeVariant.TOPIC.value:
                matched = _topic_matches(binding_key, routing_key)
            else:
                matched = _headers_match(arguments, headers)
            if matched and queue not in queues:
                queues.append(queue)
        return queues

    def publish(self, body, exchange, routing_key, properties, mandatory) -> bool:
        if exchange != "" and exchange not in self.exchanges:
            raise AMQPChannelError(
                f"NOT_FOUND - no exchange '{exchange}'", reply_code=404
            )
        queues = self.route(exchange, routing_key, properties.get("headers") or {})
        for queue in queues:
            self.queues[queue].append(
                {
                    "body": body,
                    "exchange": exchange,
                    "routing_key": routing_key,
                    "properties": dict(properties),
                }
            )
            self._dispatch(queue)
        return bool(queues) or not mandatory

    def register_consumer(self, channel, queue, consumer_tag, no_ack) -> str:
        if queue not in self.queues:
            raise AMQPChannelError(f"NOT_FOUND - no queue '{queue}'", reply_code=404)
        if not consumer_tag:
            consumer_tag = f"ctag-{channel.channel_id}.{len(self.consumers[queue]) + 1}"
        self.consumers[queue].append((channel, consumer_tag, no_ack))
        self._dispatch(queue)
        return consumer_tag

    def cancel_consumer(self, consumer_tag: str) -> None:
        for queue, consumers in self.consumers.items():
            self.consumers[queue] = [c for c in consumers if c[1] != consumer_tag]

    def _dispatch(self, queue: str) -> None:
        consumers = [c for c in self.consumers.get(queue, []) if c[0].is_open]
        if not consumers:
            return
        channel, consumer_tag, _ = consumers[0]
        pending = self.queues[queue]
        while pending:
            item = pending.popleft()
            self._delivery_tag += 1
            method = {
                "consumer_tag": consumer_tag,
                "delivery_tag": self._delivery_tag,
                "redelivered": False,
                "exchange": item["exchange"],
                "routing_key": item["routing_key"],
            }
            channel.inbound.append(
                Message(
                    channel=channel,
                    body=item["body"],
                    method=method,
                    properties=item["properties"],
                    auto_decode=False,
                )
            )


class FakeExchangeOps:
    def __init__(self, channel: "FakeChannel"):
        self._channel = channel

    def declare(self, exchange="", exchange_type="direct", passive=False,
                durable=False, auto_delete=False, arguments=None):
        frame = Exchange.Declare(
            exchange=exchange,
            exchange_type=exchange_type,
            passive=passive,
            durable=durable,
            auto_delete=auto_delete,
            arguments=arguments,
        )
        return self._channel.rpc_request(frame)


class FakeBasic:
    def __init__(self, channel: "FakeChannel"):
        self._channel = channel
        self.acked: List[int] = []
        self.nacked: List[tuple[int, bool]] = []
        self.rejected: List[tuple[int, bool]] = []

    def publish(self, body, routing_key, exchange="", properties=None,
                mandatory=False, immediate=False):
        channel = self._channel
        channel.check_for_errors()
        try:
            routed = channel.broker.publish(
                body, exchange, routing_key, properties or {}, mandatory
            )
        except AMQPChannelError as e:
            channel.fail(e)
            if channel.confirming:
                raise
            # asynchronous failure, reported by the next operation
            return None
        if not channel.confirming:
            return None
        if not routed:
            raise AMQPChannelError("Message not delivered: NO_ROUTE", reply_code=312)
        return True

    def consume(self, callback=None, queue="", consumer_tag="", exclusive=False,
                no_ack=False, no_local=False, arguments=None):
        channel = self._channel
        channel.check_for_errors()
        try:
            tag = channel.broker.register_consumer(channel, queue, consumer_tag, no_ack)
        except AMQPChannelError as e:
            channel.fail(e)
            raise
        channel.add_consumer_tag(tag)
        return tag

    def cancel(self, consumer_tag=""):
        self._channel.check_for_errors()
        self._channel.broker.cancel_consumer(consumer_tag)
        self._channel.remove_consumer_tag(consumer_tag)
        return {"consumer_tag": consumer_tag}

    def ack(self, delivery_tag=0, multiple=False):
        self._channel.check_for_errors()
        self.acked.append(delivery_tag)

    def nack(self, delivery_tag=0, multiple=False, requeue=True):
        self._channel.check_for_errors()
        self.nacked.append((delivery_tag, requeue))

    def reject(self, delivery_tag=0, requeue=True):
        self._channel.check_for_errors()
        self.rejected.append((delivery_tag, requeue))


class FakeChannel:
    def __init__(self, broker: FakeBroker, channel_id: int = 1):
        self.broker = broker
        self.channel_id = channel_id
        self.inbound: collections.deque = collections.deque()
        self.confirming = False
        self.consumer_tags: List[str] = []
        self.exchange = FakeExchangeOps(self)
        self.basic = FakeBasic(self)
        self._closed = False
        self._user_closed = False
        self._error: Optional[Exception] = None

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def fail(self, error: Exception) -> None:
        """Broker-initiated channel close."""
        self._error = error
        self._closed = True
        self.inbound.clear()
        for tag in self.consumer_tags:
            self.broker.cancel_consumer(tag)

    def check_for_errors(self) -> None:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise AMQPChannelError(f"channel {self.channel_id} was closed")

    def confirm_deliveries(self):
        self.confirming = True
        return {}

    def rpc_request(self, frame):
        self.check_for_errors()
        try:
            if isinstance(frame, Exchange.Declare):
                self.broker.declare_exchange(frame)
                return {}
        except AMQPChannelError as e:
            self.fail(e)
            raise
        raise NotImplementedError(frame.name)

    def write_frame(self, frame) -> None:
        self.check_for_errors()
        try:
            if isinstance(frame, Exchange.Declare):
                self.broker.declare_exchange(frame)
            elif isinstance(frame, Basic.Consume):
                self.broker.register_consumer(
                    self, frame.queue, frame.consumer_tag, frame.no_ack
                )
            else:
                raise NotImplementedError(frame.name)
        except AMQPChannelError as e:
            # no reply was requested; the error closes the channel
            self.fail(e)

    def add_consumer_tag(self, tag: str) -> None:
        if tag not in self.consumer_tags:
            self.consumer_tags.append(tag)

    def remove_consumer_tag(self, tag: Optional[str] = None) -> None:
        if tag is None:
            self.consumer_tags = []
        elif tag in self.consumer_tags:
            self.consumer_tags.remove(tag)

    def build_inbound_messages(self, break_on_empty=False, auto_decode=True, **kwargs):
        while not self._closed:
            if not self.inbound:
                # a real channel would wait here; nothing else can arrive
                return
            yield self.inbound.popleft()
        if not self._user_closed:
            self.check_for_errors()

    def close(self, reply_code=200, reply_text="") -> None:
        self._user_closed = True
        self._closed = True
        self.inbound.clear()
        for tag in list(self.consumer_tags):
            self.broker.cancel_consumer(tag)
        self.consumer_tags = []


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def channel(broker) -> FakeChannel:
    return broker.channel()


@pytest.fixture
def mock_connector():
    return MockConnector()


@pytest.fixture
def mock_declarator():
    return MockDeclarator()


@pytest.fixture
def mock_publisher():
    return MockPublisher()


@pytest.fixture
def mock_consumer():
    return MockConsumer()
