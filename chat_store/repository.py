from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from chat_store.errors import MalformedUpstreamItem, StoreUnavailable
from chat_store.expiry import MAX_TIMESTAMP_MS, parse_timestamp, to_epoch, utc_now
from chat_store.models import (
    AppendResult,
    MessageRecord,
    is_assistant_turn,
    normalize,
    record_from_item,
)

logger: Logger = Logger(child=True)


def _error_code(exc: Exception) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return type(exc).__name__


class ConversationLogStore:
    """Ordered chat log over a table keyed by ``(chatId, timestamp)``."""

    def __init__(
        self,
        table_name: str,
        dynamodb_resource: Any,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.table: Any = dynamodb_resource.Table(table_name)
        self.clock: Callable[[], datetime] = clock
        logger.info(f"ConversationLogStore initialized for table: {table_name}")

    def append(
        self,
        chat_id: str,
        message: Any,
        timestamp: Any = None,
        ttl: Any = None,
    ) -> AppendResult:
        """Write one turn and return it with the table's acknowledgment.

        A missing or unusable timestamp becomes the current time. Assistant
        turns are then moved one millisecond past that nominal timestamp so
        they sort after the user turn they answer. The put is
        unconditional: an existing item under the same key is replaced.
        """
        now: datetime = self.clock()
        sequence_key: Optional[int] = parse_timestamp(timestamp, unit="ms")
        # The last representable millisecond is left free for the reply bump.
        if sequence_key is None or sequence_key >= MAX_TIMESTAMP_MS:
            sequence_key = to_epoch(now, unit="ms")
        if is_assistant_turn(message):
            sequence_key += 1

        record: MessageRecord = normalize(
            {"chatId": chat_id, "message": message, "timestamp": sequence_key, "ttl": ttl},
            now=now,
        )

        try:
            response: Dict[str, Any] = self.table.put_item(Item=record.to_item())
        except (ClientError, BotoCoreError) as e:
            logger.exception("Failed to store message")
            raise StoreUnavailable(
                f"Could not store message for chat {chat_id}: {e}",
                error_code=_error_code(e),
            ) from e

        logger.info(
            "Stored message",
            extra={"chat_id": chat_id, "sequence_key": record.timestamp, "role": record.role},
        )
        return AppendResult(record=record, acknowledgment=response or {})

    def list_by_conversation(self, chat_id: str) -> List[MessageRecord]:
        """Return every stored turn of a chat, oldest first."""
        query: Dict[str, Any] = {
            "KeyConditionExpression": Key("chatId").eq(chat_id),
            "ScanIndexForward": True,
        }
        items: List[Any] = []

        try:
            while True:
                response: Dict[str, Any] = self.table.query(**query)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.exception("Failed to query messages")
            raise StoreUnavailable(
                f"Could not read messages for chat {chat_id}: {e}",
                error_code=_error_code(e),
            ) from e

        now: datetime = self.clock()
        records: List[MessageRecord] = []
        for item in items:
            try:
                records.append(record_from_item(item, now=now))
            except MalformedUpstreamItem as e:
                logger.warning(f"Skipping malformed item in chat {chat_id}: {e}")

        logger.info(f"Fetched {len(records)} messages for chat {chat_id}")
        return records
