"""
Abstract role interfaces for broker access.

Connecting, declaring topology, publishing and consuming are separate
capabilities so each role can be substituted independently, e.g. by a test
double, without providing the others.
"""

import abc
from typing import Any, Iterator, Union

from brokerkit.models import (
    ExchangeDescriptor,
    ExchangeVariant,
    MessageEnvelope,
    QueueDescriptor,
)


class ConnectorInterface(abc.ABC):
    @abc.abstractmethod
    def open(self) -> tuple[Any, Any]:
        """
        Open a connection and exactly one session on it.

        :return: (connection, session)
        :raises BrokerConnectionError: If the connection cannot be established.
        :raises SessionError: If the session cannot be opened. The live
                              connection is attached to the error.
        """
        pass

    @abc.abstractmethod
    def open_session(self, connection: Any) -> Any:
        """
        Open an additional session on an existing connection.

        :raises SessionError: If the session cannot be opened.
        """
        pass


class DeclaratorInterface(abc.ABC):
    @abc.abstractmethod
    def declare(
        self,
        session: Any,
        descriptor: ExchangeDescriptor,
        variant: Union[ExchangeVariant, str],
    ) -> None:
        """
        Declare an exchange with the given routing semantics.

        :raises TopologyConflictError: If the exchange exists with other properties.
        :raises DeclareError: If the broker rejects the declaration otherwise.
        """
        pass


class PublisherInterface(abc.ABC):
    @abc.abstractmethod
    def publish(self, session: Any, envelope: MessageEnvelope) -> None:
        """
        Hand a message to an exchange.

        :raises PublishError: On transport failure.
        """
        pass


class ConsumerInterface(abc.ABC):
    @abc.abstractmethod
    def consume(self, session: Any, descriptor: QueueDescriptor) -> Iterator[Any]:
        """
        Register a subscription on an existing queue.

        Registration is synchronous; the returned iterator is lazy, unbounded
        and single-pass. It ends when the session closes.

        :raises SubscriptionError: If the broker rejects the registration.
        """
        pass
