import pytest

from chat_store.errors import StoreUnavailable
from chat_store.repository import ConversationLogStore
from chat_store.service import ChatHistoryService
from tests.conftest import FailingTable, FakeDynamoResource, throughput_error


def test_append_turn_and_export(log_store):
    service = ChatHistoryService(log_store)

    service.append_turn("c1", {"role": "user", "text": "hi"}, 1000000)
    service.append_turn("c1", {"role": "assistant", "text": "meow"}, 1000000)

    exported = service.export_conversation("c1")
    assert [(r.timestamp, r.message["text"]) for r in exported] == [
        (1000000, "hi"),
        (1000001, "meow"),
    ]


def test_export_of_unknown_chat_is_empty(log_store):
    assert ChatHistoryService(log_store).export_conversation("nobody") == []


def test_store_failures_pass_through(clock):
    store = ConversationLogStore(
        "cat-sim-chats", FakeDynamoResource(FailingTable(throughput_error())), clock=clock
    )
    service = ChatHistoryService(store)

    with pytest.raises(StoreUnavailable):
        service.append_turn("c1", {"role": "user"})
    with pytest.raises(StoreUnavailable):
        service.export_conversation("c1")
