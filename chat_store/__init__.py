"""Chat message persistence shared by the chat and export functions."""

from chat_store.config import Settings
from chat_store.errors import ChatStoreError, MalformedUpstreamItem, StoreUnavailable
from chat_store.expiry import DEFAULT_TTL, default_expiry, parse_timestamp
from chat_store.models import AppendResult, MessageRecord, normalize
from chat_store.repository import ConversationLogStore
from chat_store.service import ChatHistoryService

__all__ = [
    "AppendResult",
    "ChatHistoryService",
    "ChatStoreError",
    "ConversationLogStore",
    "DEFAULT_TTL",
    "MalformedUpstreamItem",
    "MessageRecord",
    "Settings",
    "StoreUnavailable",
    "default_expiry",
    "normalize",
    "parse_timestamp",
]
