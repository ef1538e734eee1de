"""
Exchange topology declaration.

Declares exchanges with one of the four routing variants. Declaration is
idempotent on the broker side: repeating a declaration with identical
properties has no effect, while a different set of properties for an existing
name is rejected and reported as a TopologyConflictError.
"""

import logging
from typing import Union

from amqpstorm import AMQPChannelError, Channel
from pamqp.commands import Exchange

from brokerkit.exceptions import (
    NOT_FOUND,
    PRECONDITION_FAILED,
    DeclareError,
    TopologyConflictError,
)
from brokerkit.models import ExchangeDescriptor, ExchangeVariant, validate_exchange_name

from .base import DeclaratorInterface
from .util import TRANSPORT_ERRORS, reply_code

logger = logging.getLogger(__name__)


def _coerce_variant(variant: Union[ExchangeVariant, str]) -> ExchangeVariant:
    if isinstance(variant, ExchangeVariant):
        return variant
    if isinstance(variant, str):
        try:
            return ExchangeVariant(variant)
        except ValueError:
            pass
    raise ValueError(
        f"Invalid exchange variant: {variant!r}. "
        f"Valid options are: {', '.join(v.value for v in ExchangeVariant)}"
    )


class RabbitDeclarator(DeclaratorInterface):
    def declare(
        self,
        channel: Channel,
        descriptor: ExchangeDescriptor,
        variant: Union[ExchangeVariant, str],
    ) -> None:
        """
        Declare an exchange.

        The declare frame is built directly so internal and no_wait are sent
        as given; amqpstorm's exchange.declare does not expose either flag.
        With no_wait the frame is written without waiting for DeclareOk and a
        broker rejection surfaces on the next operation on the channel.

        :param channel: Session to declare on.
        :param descriptor: Exchange name, flags and arguments.
        :param variant: Routing semantics of the exchange.
        :raises ValueError: If the variant is not one of ExchangeVariant.
        :raises TopologyConflictError: If the exchange exists with other properties.
        :raises DeclareError: If the broker rejects the declaration otherwise.
        """
        variant = _coerce_variant(variant)
        frame = Exchange.Declare(
            exchange=descriptor.name,
            exchange_type=variant.value,
            durable=descriptor.durable,
            auto_delete=descriptor.auto_delete,
            internal=descriptor.internal,
            nowait=descriptor.no_wait,
            arguments=dict(descriptor.arguments),
        )

        try:
            if descriptor.no_wait:
                channel.write_frame(frame)
            else:
                channel.rpc_request(frame)
        except TRANSPORT_ERRORS as e:
            if reply_code(e) == PRECONDITION_FAILED:
                raise TopologyConflictError(
                    "declare exchange", descriptor.name, cause=e
                ) from e
            raise DeclareError("declare exchange", descriptor.name, cause=e) from e

        logger.info(
            "Exchange declared: %s (%s, durable=%s, auto_delete=%s)",
            descriptor.name,
            variant.value,
            descriptor.durable,
            descriptor.auto_delete,
        )


_default_declarator = RabbitDeclarator()


def declare_direct_exchange(channel: Channel, descriptor: ExchangeDescriptor) -> None:
    _default_declarator.declare(channel, descriptor, ExchangeVariant.DIRECT)


def declare_fanout_exchange(channel: Channel, descriptor: ExchangeDescriptor) -> None:
    _default_declarator.declare(channel, descriptor, ExchangeVariant.FANOUT)


def declare_headers_exchange(channel: Channel, descriptor: ExchangeDescriptor) -> None:
    """Declare an exchange that routes on message header matching."""
    _default_declarator.declare(channel, descriptor, ExchangeVariant.HEADERS)


def declare_topic_exchange(channel: Channel, descriptor: ExchangeDescriptor) -> None:
    _default_declarator.declare(channel, descriptor, ExchangeVariant.TOPIC)


def exchange_exists(channel: Channel, name: str) -> bool:
    """
    Check for an exchange with a passive declare.

    The broker closes the channel when the exchange is missing, so use a
    session dedicated to the check.

    :raises DeclareError: On any failure other than the exchange being absent.
    """
    validate_exchange_name(name)
    try:
        channel.exchange.declare(exchange=name, passive=True)
    except AMQPChannelError as e:
        if reply_code(e) == NOT_FOUND:
            return False
        raise DeclareError("check exchange", name, cause=e) from e
    except TRANSPORT_ERRORS as e:
        raise DeclareError("check exchange", name, cause=e) from e
    return True
