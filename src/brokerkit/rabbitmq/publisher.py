"""
RabbitMQ publisher.

Hands messages to a named exchange. Returned-message handling and retries are
left to the caller; the publisher only sets the delivery flags and reports
transport failures.
"""

import logging

from amqpstorm import Channel

from brokerkit.exceptions import PublishError
from brokerkit.models import MessageEnvelope

from .base import PublisherInterface
from .util import TRANSPORT_ERRORS

logger = logging.getLogger(__name__)


class RabbitPublisher(PublisherInterface):
    def publish(self, channel: Channel, envelope: MessageEnvelope) -> None:
        """
        Publish a message to the envelope's exchange.

        Without publisher confirms this returns once the frames are written;
        a broker rejection, such as an undeclared exchange, closes the channel
        and is raised by the next publish. Open the session with
        ``ConnectionOptions(confirm_deliveries=True)`` to wait for the
        broker's ack or nack and have such failures raised by this call.

        :param channel: Session to publish on.
        :param envelope: Exchange, routing key, flags and payload.
        :raises PublishError: If the channel is closed, the broker rejects
            the message, or (with confirms) the broker nacks or returns it.
        """
        resource = _describe_target(envelope)
        try:
            # surface errors the broker already reported on this channel,
            # e.g. a previous publish to a missing exchange
            channel.check_for_errors()
            confirmed = channel.basic.publish(
                body=envelope.payload.body,
                routing_key=envelope.routing_key,
                exchange=envelope.exchange_name,
                properties=envelope.payload.to_properties(),
                mandatory=envelope.mandatory,
                immediate=envelope.immediate,
            )
        except TRANSPORT_ERRORS as e:
            raise PublishError("publish", resource, cause=e) from e

        if confirmed is False:
            raise PublishError(
                "publish",
                resource,
                message=f"publish {resource!r} failed: broker did not acknowledge the message",
            )

        logger.debug(
            "Message published to exchange %s with routing key %s",
            envelope.exchange_name or "(default)",
            envelope.routing_key,
        )


def _describe_target(envelope: MessageEnvelope) -> str:
    exchange = envelope.exchange_name or "(default)"
    return f"{exchange}/{envelope.routing_key}"
