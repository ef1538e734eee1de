"""
RabbitMQ connector.

Opens one physical connection and one logical session (channel) on it. The
connector never closes what it opened; the caller owns both handles, including
after a partial failure.
"""

import logging
from typing import Optional

from amqpstorm import Channel, Connection, UriConnection

from brokerkit.config import ConnectionCredentials, ConnectionOptions
from brokerkit.exceptions import BrokerConnectionError, SessionError

from .base import ConnectorInterface
from .util import TRANSPORT_ERRORS, close_channel, close_connection

logger = logging.getLogger(__name__)


class RabbitConnector(ConnectorInterface):
    def __init__(
        self,
        credentials: ConnectionCredentials,
        options: Optional[ConnectionOptions] = None,
    ) -> None:
        """
        :param credentials: Broker address and login.
        :param options: Optional connection tuning; library defaults otherwise.
        """
        self._credentials = credentials
        self._options = options or ConnectionOptions()

    @property
    def uri(self) -> str:
        return self._credentials.format_uri(self._options.uri_suffix())

    @property
    def _masked_uri(self) -> str:
        return self._credentials.format_uri(
            self._options.uri_suffix(), mask_password=True
        )

    def open(self) -> tuple[Connection, Channel]:
        """
        Open a connection and exactly one session on it.

        :return: (connection, channel)
        :raises BrokerConnectionError: If the connection cannot be established.
            No session is opened.
        :raises SessionError: If the session cannot be opened. The open
            connection is available as ``error.connection``.
        """
        connection = self._connect()
        channel = self.open_session(connection)
        return connection, channel

    def _connect(self) -> Connection:
        logger.info("Establishing RabbitMQ connection to %s", self._masked_uri)
        try:
            connection = UriConnection(
                self.uri,
                client_properties=self._options.get_client_properties(),
            )
        except TRANSPORT_ERRORS as e:
            raise BrokerConnectionError(
                "connect", self._credentials.host, cause=e
            ) from e
        except ValueError as e:
            # address rejected by the URI parser inside amqpstorm
            raise BrokerConnectionError(
                "connect", self._credentials.host, cause=e
            ) from e

        logger.info("RabbitMQ connection established to %s", self._masked_uri)
        return connection

    def open_session(self, connection: Connection) -> Channel:
        """
        Open a session (channel) on an existing connection.

        Use this to retry after a SessionError or to give each concurrent
        actor its own session.

        :raises SessionError: If the channel cannot be opened or configured.
        """
        try:
            channel = connection.channel(rpc_timeout=self._options.rpc_timeout)
        except TRANSPORT_ERRORS as e:
            raise SessionError(
                "open session", self._credentials.host, cause=e, connection=connection
            ) from e

        if self._options.confirm_deliveries:
            try:
                channel.confirm_deliveries()
            except TRANSPORT_ERRORS as e:
                close_channel(channel)
                raise SessionError(
                    "enable publisher confirms",
                    self._credentials.host,
                    cause=e,
                    connection=connection,
                ) from e

        logger.info("Session opened on channel %s", channel.channel_id)
        return channel

    @staticmethod
    def close(connection: Connection, channel: Optional[Channel] = None) -> None:
        """
        Close a session (if given) and then its connection.

        Failures are logged; the handles are unusable afterwards either way.
        """
        close_channel(channel)
        close_connection(connection)
