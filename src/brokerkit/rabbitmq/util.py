import logging
from typing import Optional

from amqpstorm import AMQPError, Channel, Connection

logger = logging.getLogger(__name__)

# Errors that originate at the transport boundary. Socket failures can escape
# amqpstorm as plain OSError before they are mapped to AMQPConnectionError.
TRANSPORT_ERRORS = (AMQPError, OSError)


def reply_code(error: BaseException) -> Optional[int]:
    """
    AMQP reply code carried by a transport error.

    :return: The reply code, or None if the broker did not send one.
    """
    return getattr(error, "error_code", None)


def close_channel(channel: Optional[Channel]) -> None:
    """
    Close a channel, logging rather than raising on failure.

    :param channel: The channel to close. None is ignored.
    """
    if channel is None:
        return
    try:
        if channel.is_open:
            channel.close()
            logger.info("Channel %s closed", channel.channel_id)
    except TRANSPORT_ERRORS as e:
        logger.exception("Error closing channel: %s", e)


def close_connection(connection: Optional[Connection]) -> None:
    """
    Close a connection, logging rather than raising on failure.

    :param connection: The connection to close. None is ignored.
    """
    if connection is None:
        return
    try:
        if connection.is_open:
            connection.close()
            logger.info("Connection closed")
    except TRANSPORT_ERRORS as e:
        logger.exception("Error closing connection: %s", e)
