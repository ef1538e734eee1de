import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# AMQP 0-9-1 exchange-name domain
EXCHANGE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.:\-]+$")
MAX_EXCHANGE_NAME_LENGTH = 127
MAX_SHORTSTR_LENGTH = 255


class ExchangeVariant(Enum):
    """Routing semantics of an exchange. Values are the broker type tags."""

    DIRECT = "direct"
    FANOUT = "fanout"
    HEADERS = "headers"
    TOPIC = "topic"

    def __str__(self) -> str:
        return self.value


class ContentType(Enum):
    TEXT = "text/plain"
    JSON = "application/json"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ContentType"]:
        """Map a raw content-type property onto the enum, None if unknown."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


def validate_exchange_name(name: str) -> str:
    if len(name) > MAX_EXCHANGE_NAME_LENGTH:
        raise ValueError(
            f"Exchange name exceeds {MAX_EXCHANGE_NAME_LENGTH} characters: {name!r}"
        )
    if not EXCHANGE_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid exchange name: {name!r}")
    return name


class Descriptor(BaseModel):
    """Immutable, validated parameter set passed across the broker boundary."""

    model_config = ConfigDict(frozen=True, extra="forbid")


def freeze_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy, so table fields of frozen descriptors stay immutable."""
    return MappingProxyType(dict(value))


class ExchangeDescriptor(Descriptor):
    name: str = Field(min_length=1)
    durable: bool = False
    auto_delete: bool = False
    internal: bool = False
    no_wait: bool = False
    arguments: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, name: str) -> str:
        return validate_exchange_name(name)

    @field_validator("arguments")
    @classmethod
    def _freeze_arguments(cls, arguments: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze_mapping(arguments)

    @classmethod
    def create(
        cls,
        name: str,
        durable: bool = False,
        auto_delete: bool = False,
        internal: bool = False,
        no_wait: bool = False,
        arguments: Optional[Mapping[str, Any]] = None,
    ) -> "ExchangeDescriptor":
        return cls(
            name=name,
            durable=durable,
            auto_delete=auto_delete,
            internal=internal,
            no_wait=no_wait,
            arguments=dict(arguments or {}),
        )


class QueueDescriptor(Descriptor):
    """
    Subscription parameters for an already-declared queue.

    An empty consumer tag lets the broker assign one.
    """

    name: str = Field(min_length=1, max_length=MAX_SHORTSTR_LENGTH)
    consumer_tag: str = Field(default="", max_length=MAX_SHORTSTR_LENGTH)
    auto_ack: bool = False
    exclusive: bool = False
    no_local: bool = False
    no_wait: bool = False
    arguments: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("arguments")
    @classmethod
    def _freeze_arguments(cls, arguments: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze_mapping(arguments)

    @model_validator(mode="after")
    def _validate_no_wait_tag(self) -> "QueueDescriptor":
        # without ConsumeOk the broker never tells us which tag it assigned
        if self.no_wait and not self.consumer_tag:
            raise ValueError("no_wait subscriptions require an explicit consumer_tag")
        return self

    @classmethod
    def create(
        cls,
        name: str,
        consumer_tag: str = "",
        auto_ack: bool = False,
        exclusive: bool = False,
        no_local: bool = False,
        no_wait: bool = False,
        arguments: Optional[Mapping[str, Any]] = None,
    ) -> "QueueDescriptor":
        return cls(
            name=name,
            consumer_tag=consumer_tag,
            auto_ack=auto_ack,
            exclusive=exclusive,
            no_local=no_local,
            no_wait=no_wait,
            arguments=dict(arguments or {}),
        )


class Payload(Descriptor):
    body: bytes
    content_type: ContentType = ContentType.TEXT
    headers: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    persistent: bool = False
    message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    expiration: Optional[str] = None

    @field_validator("body", mode="before")
    @classmethod
    def _encode_text_body(cls, body: Any) -> Any:
        if isinstance(body, str):
            return body.encode("utf-8")
        return body

    @field_validator("content_type", mode="before")
    @classmethod
    def _validate_content_type(cls, content_type: Any) -> Any:
        if isinstance(content_type, str):
            try:
                return ContentType(content_type)
            except ValueError:
                raise ValueError(
                    f"Invalid content type: {content_type}. Must be a valid ContentType."
                )
        return content_type

    @field_validator("headers")
    @classmethod
    def _freeze_headers(cls, headers: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze_mapping(headers)

    def to_properties(self) -> dict[str, Any]:
        """AMQP basic properties for this payload."""
        properties: dict[str, Any] = {"content_type": self.content_type.value}
        if self.headers:
            properties["headers"] = dict(self.headers)
        if self.persistent:
            properties["delivery_mode"] = 2
        if self.message_id is not None:
            properties["message_id"] = self.message_id
        if self.correlation_id is not None:
            properties["correlation_id"] = self.correlation_id
        if self.expiration is not None:
            properties["expiration"] = self.expiration
        return properties


class MessageEnvelope(Descriptor):
    """
    A single message addressed to an exchange.

    An empty exchange name addresses the broker's default exchange, which
    routes by queue name.
    """

    exchange_name: str = ""
    routing_key: str = Field(default="", max_length=MAX_SHORTSTR_LENGTH)
    mandatory: bool = False
    immediate: bool = False
    payload: Payload

    @field_validator("exchange_name")
    @classmethod
    def _validate_exchange_name(cls, exchange_name: str) -> str:
        if exchange_name == "":
            return exchange_name
        return validate_exchange_name(exchange_name)

    @classmethod
    def create(
        cls,
        exchange_name: str,
        routing_key: str,
        body: Union[bytes, str],
        content_type: ContentType = ContentType.TEXT,
        headers: Optional[Mapping[str, Any]] = None,
        mandatory: bool = False,
        immediate: bool = False,
        **payload_properties: Any,
    ) -> "MessageEnvelope":
        """
        Build an envelope and its payload in one step.

        :param payload_properties: persistent, message_id, correlation_id, expiration
        """
        payload = Payload(
            body=body,
            content_type=content_type,
            headers=dict(headers or {}),
            **payload_properties,
        )
        return cls(
            exchange_name=exchange_name,
            routing_key=routing_key,
            mandatory=mandatory,
            immediate=immediate,
            payload=payload,
        )
