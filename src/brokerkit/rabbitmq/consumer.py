"""
RabbitMQ consumer.

Registers a subscription on an existing queue and exposes inbound deliveries
as a lazy, single-pass iterator. Deliveries are pulled from the channel by the
caller; no background thread is started.
"""

import logging
from typing import Any, Iterator, Optional

from amqpstorm import Channel, Message
from pamqp.commands import Basic

from brokerkit.exceptions import AcknowledgementError, SubscriptionError
from brokerkit.models import ContentType, QueueDescriptor

from .base import ConsumerInterface
from .util import TRANSPORT_ERRORS

logger = logging.getLogger(__name__)


class Delivery:
    """
    One inbound message and its acknowledgement handle.

    Unless the subscription was created with auto_ack, the caller must ack,
    nack or reject each delivery.
    """

    def __init__(self, message: Message, auto_ack: bool = False) -> None:
        self._message = message
        self._auto_ack = auto_ack
        self._method: dict[str, Any] = message.method or {}
        self._properties: dict[str, Any] = message.properties or {}

    def __repr__(self) -> str:
        return (
            f"Delivery(exchange={self.exchange!r}, routing_key={self.routing_key!r}, "
            f"delivery_tag={self.delivery_tag!r})"
        )

    @property
    def body(self) -> bytes:
        body = self._message.body
        if isinstance(body, str):
            return body.encode("utf-8")
        return body if body is not None else b""

    @property
    def content_type(self) -> Optional[str]:
        return self._properties.get("content_type")

    @property
    def payload_type(self) -> Optional[ContentType]:
        return ContentType.parse(self.content_type)

    @property
    def headers(self) -> dict[str, Any]:
        return dict(self._properties.get("headers") or {})

    @property
    def properties(self) -> dict[str, Any]:
        return dict(self._properties)

    @property
    def exchange(self) -> str:
        return self._method.get("exchange", "")

    @property
    def routing_key(self) -> str:
        return self._method.get("routing_key", "")

    @property
    def consumer_tag(self) -> Optional[str]:
        return self._method.get("consumer_tag")

    @property
    def delivery_tag(self) -> Optional[int]:
        return self._message.delivery_tag

    @property
    def redelivered(self) -> bool:
        return bool(self._message.redelivered)

    def ack(self) -> None:
        self._settle("ack", self._message.ack)

    def nack(self, requeue: bool = True) -> None:
        self._settle("nack", self._message.nack, requeue=requeue)

    def reject(self, requeue: bool = True) -> None:
        self._settle("reject", self._message.reject, requeue=requeue)

    def _settle(self, operation: str, settle, **kwargs) -> None:
        resource = f"delivery {self.delivery_tag}"
        if self._auto_ack:
            raise AcknowledgementError(
                operation,
                resource,
                message=f"{operation} {resource} failed: subscription uses auto_ack",
            )
        try:
            settle(**kwargs)
        except TRANSPORT_ERRORS as e:
            raise AcknowledgementError(operation, resource, cause=e) from e
        logger.debug("Delivery %s settled with %s", self.delivery_tag, operation)


class Subscription:
    """
    Lazy, unbounded, single-pass sequence of deliveries for one consumer tag.

    Iteration blocks waiting for the next delivery. The sequence ends, without
    raising, once the channel is closed, the subscription is cancelled or the
    transport fails; it cannot be restarted.
    """

    def __init__(
        self,
        channel: Channel,
        queue: str,
        consumer_tag: str,
        auto_ack: bool = False,
    ) -> None:
        self._channel = channel
        self._queue = queue
        self._consumer_tag = consumer_tag
        self._auto_ack = auto_ack
        self._cancelled = False
        self._deliveries = self._generate()

    def __repr__(self) -> str:
        return f"Subscription(queue={self._queue!r}, consumer_tag={self._consumer_tag!r})"

    @property
    def queue(self) -> str:
        return self._queue

    @property
    def consumer_tag(self) -> str:
        return self._consumer_tag

    @property
    def is_active(self) -> bool:
        return not self._cancelled and self._channel.is_open

    def __iter__(self) -> "Subscription":
        return self

    def __next__(self) -> Delivery:
        return next(self._deliveries)

    def _generate(self) -> Iterator[Delivery]:
        try:
            while self._is_consuming():
                # returns after the inbound buffer has stayed empty for a
                # while, so cancellation and closure are re-checked
                for message in self._channel.build_inbound_messages(
                    break_on_empty=True, auto_decode=False
                ):
                    if self._cancelled:
                        break
                    delivery = Delivery(message, auto_ack=self._auto_ack)
                    logger.debug(
                        "Delivery %s received on queue %s",
                        delivery.delivery_tag,
                        self._queue,
                    )
                    yield delivery
        except TRANSPORT_ERRORS as e:
            logger.warning(
                "Subscription to queue %s ended by transport error: %s",
                self._queue,
                e,
            )
            return
        logger.info("Subscription to queue %s ended", self._queue)

    def _is_consuming(self) -> bool:
        if self._cancelled or self._channel.is_closed:
            return False
        return self._consumer_tag in self._channel.consumer_tags

    def cancel(self) -> None:
        """
        Cancel the consumer and end the sequence.

        Deliveries already buffered on the channel are not yielded afterwards;
        unless auto_ack was used the broker redelivers them.
        """
        if self._cancelled:
            return
        self._cancelled = True
        if not self._channel.is_open:
            return
        try:
            self._channel.basic.cancel(self._consumer_tag)
            logger.info(
                "Subscription %s to queue %s cancelled",
                self._consumer_tag,
                self._queue,
            )
        except TRANSPORT_ERRORS as e:
            raise SubscriptionError("cancel consumer", self._queue, cause=e) from e


class RabbitConsumer(ConsumerInterface):
    def consume(self, channel: Channel, descriptor: QueueDescriptor) -> Subscription:
        """
        Register a consumer on an already-declared queue.

        :param channel: Session to consume on. It should not be shared with
            other consumers, since deliveries are read from the whole channel.
        :param descriptor: Queue name, consumer tag and flags.
        :raises SubscriptionError: If the broker rejects the registration,
            e.g. the queue does not exist or access is refused.
        """
        try:
            if descriptor.no_wait:
                consumer_tag = self._consume_no_wait(channel, descriptor)
            else:
                consumer_tag = channel.basic.consume(
                    queue=descriptor.name,
                    consumer_tag=descriptor.consumer_tag,
                    exclusive=descriptor.exclusive,
                    no_ack=descriptor.auto_ack,
                    no_local=descriptor.no_local,
                    arguments=dict(descriptor.arguments),
                )
        except TRANSPORT_ERRORS as e:
            raise SubscriptionError("consume", descriptor.name, cause=e) from e

        logger.info(
            "Subscription %s registered on queue %s (auto_ack=%s)",
            consumer_tag,
            descriptor.name,
            descriptor.auto_ack,
        )
        return Subscription(
            channel,
            descriptor.name,
            consumer_tag,
            auto_ack=descriptor.auto_ack,
        )

    @staticmethod
    def _consume_no_wait(channel: Channel, descriptor: QueueDescriptor) -> str:
        # amqpstorm's basic.consume always waits for ConsumeOk
        frame = Basic.Consume(
            queue=descriptor.name,
            consumer_tag=descriptor.consumer_tag,
            no_local=descriptor.no_local,
            no_ack=descriptor.auto_ack,
            exclusive=descriptor.exclusive,
            nowait=True,
            arguments=dict(descriptor.arguments),
        )
        channel.write_frame(frame)
        channel.add_consumer_tag(descriptor.consumer_tag)
        return descriptor.consumer_tag
