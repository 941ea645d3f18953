import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from aws_lambda_powertools import Logger
from pydantic import BaseModel, ConfigDict, Field

from chat_store.errors import MalformedUpstreamItem
from chat_store.expiry import default_expiry, parse_timestamp, to_epoch, utc_now

logger: Logger = Logger(child=True)

ASSISTANT_ROLE: str = "assistant"


def from_dynamo(value: Any) -> Any:
    """Turn the Decimals boto3 hands back into plain ints and floats."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: from_dynamo(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [from_dynamo(inner) for inner in value]
    return value


def to_dynamo(value: Any) -> Any:
    # boto3 refuses floats, numbers must go in as Decimal. NaN and the
    # infinities have no DynamoDB number form and are stored as null.
    return json.loads(
        json.dumps(value, default=str),
        parse_float=Decimal,
        parse_constant=lambda constant: None,
    )


class MessageRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    chat_id: str = Field(alias="chatId")
    timestamp: int
    message: Any = Field(default_factory=dict)
    ttl: int

    @property
    def role(self) -> Optional[str]:
        if isinstance(self.message, Mapping):
            return self.message.get("role")
        return None

    def to_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = self.model_dump(by_alias=True)
        item["message"] = to_dynamo(item["message"])
        return item

    def to_json_dict(self) -> Dict[str, Any]:
        return from_dynamo(self.model_dump(by_alias=True))


class AppendResult(BaseModel):
    record: MessageRecord
    acknowledgment: Dict[str, Any] = Field(default_factory=dict)


def is_assistant_turn(message: Any) -> bool:
    return isinstance(message, Mapping) and message.get("role") == ASSISTANT_ROLE


def normalize(item: Mapping[str, Any], now: Optional[datetime] = None) -> MessageRecord:
    """Build a message record from a loosely typed item.

    Invalid or missing ``timestamp``, ``message`` and ``ttl`` values are
    replaced with defaults instead of being rejected, so a write can always
    go through. ``chatId`` is copied as is.
    """
    now = now or utc_now()
    defaulted: List[str] = []

    timestamp = parse_timestamp(item.get("timestamp"), unit="ms")
    if timestamp is None:
        timestamp = to_epoch(now, unit="ms")
        defaulted.append("timestamp")

    message = item.get("message")
    if isinstance(message, Mapping) and message:
        message = from_dynamo(dict(message))
    elif message:
        message = from_dynamo(message)
    else:
        message = {}
        defaulted.append("message")

    ttl = parse_timestamp(item.get("ttl"), unit="s")
    if ttl is None:
        ttl = default_expiry(now)
        defaulted.append("ttl")

    if defaulted:
        logger.debug(
            "Defaulted message fields",
            extra={"chat_id": item.get("chatId"), "defaulted": defaulted},
        )

    return MessageRecord.model_construct(
        chat_id=item.get("chatId"),
        timestamp=timestamp,
        message=message,
        ttl=ttl,
    )


def record_from_item(item: Any, now: Optional[datetime] = None) -> MessageRecord:
    if not isinstance(item, Mapping):
        raise MalformedUpstreamItem(f"Stored item is not a mapping: {type(item).__name__}")

    chat_id = item.get("chatId")
    if not isinstance(chat_id, str) or not chat_id:
        raise MalformedUpstreamItem(f"Stored item has an invalid chatId: {chat_id!r}")

    return normalize(item, now=now)
