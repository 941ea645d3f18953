from typing import Any, List

from aws_lambda_powertools import Logger

from chat_store.models import AppendResult, MessageRecord
from chat_store.repository import ConversationLogStore

logger: Logger = Logger(child=True)


class ChatHistoryService:
    def __init__(self, log_store: ConversationLogStore):
        self.log_store: ConversationLogStore = log_store

    def append_turn(
        self,
        chat_id: str,
        message: Any,
        timestamp: Any = None,
        ttl: Any = None,
    ) -> AppendResult:
        return self.log_store.append(chat_id, message, timestamp, ttl)

    def export_conversation(self, chat_id: str) -> List[MessageRecord]:
        logger.info(f"Exporting chat {chat_id}")
        return self.log_store.list_by_conversation(chat_id)
