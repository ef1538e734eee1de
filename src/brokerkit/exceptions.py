"""
Custom exceptions for brokerkit.

Every error raised across the broker boundary names the operation and the
resource it targeted, and chains the underlying transport error as its cause.
"""

from typing import Optional

# AMQP reply code for a declare that conflicts with an existing entity
PRECONDITION_FAILED = 406
NOT_FOUND = 404


class BrokerError(Exception):
    """Base class for all failures reported by brokerkit components."""

    def __init__(
        self,
        operation: str,
        resource: Optional[str] = None,
        cause: Optional[BaseException] = None,
        message: str = None,
    ):
        self.operation = operation
        self.resource = resource
        self.cause = cause
        if message is None:
            target = f" {resource!r}" if resource is not None else ""
            message = f"{operation}{target} failed"
            if cause is not None:
                message = f"{message}: {describe_cause(cause)}"
        super().__init__(message)

    @property
    def reply_code(self) -> Optional[int]:
        """AMQP reply code of the underlying error, if the broker sent one."""
        return getattr(self.cause, "error_code", None)


class BrokerConnectionError(BrokerError):
    """Raised when the physical connection to the broker cannot be established."""


class SessionError(BrokerError):
    """
    Raised when a channel cannot be opened on an otherwise live connection.

    The connection is kept on the error so the caller can retry or close it.
    """

    def __init__(
        self,
        operation: str,
        resource: Optional[str] = None,
        cause: Optional[BaseException] = None,
        message: str = None,
        connection=None,
    ):
        self.connection = connection
        super().__init__(operation, resource, cause, message)


class DeclareError(BrokerError):
    """Raised when the broker rejects an exchange declaration."""


class TopologyConflictError(DeclareError):
    """Raised when an exchange already exists with different properties."""


class PublishError(BrokerError):
    """Raised when a message cannot be handed to the broker."""


class SubscriptionError(BrokerError):
    """Raised when the broker rejects a consumer registration."""


class AcknowledgementError(BrokerError):
    """Raised when a delivery cannot be acknowledged or rejected."""


def describe_cause(cause: BaseException) -> str:
    """Render an error, including the AMQP reply code and type when present."""
    error_code = getattr(cause, "error_code", None)
    error_type = getattr(cause, "error_type", None)
    text = str(cause) or cause.__class__.__name__
    if error_code is None:
        return text
    if error_type:
        return f"({error_code}) {error_type} {text}"
    return f"({error_code}) {text}"
