"""Shared fixtures: an in-memory chat table, a fixed clock and Lambda plumbing."""
import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError

from chat_store.repository import ConversationLogStore

FIXED_NOW: datetime = datetime(2024, 9, 10, 12, 0, 0, tzinfo=timezone.utc)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _as_stored(item: Dict[str, Any]) -> Dict[str, Any]:
    # Same conversions DynamoDB applies: floats are refused, numbers come back as Decimal.
    return {
        name: _deserializer.deserialize(_serializer.serialize(value))
        for name, value in item.items()
    }


class FakeTable:
    """Just enough of a boto3 ``Table`` for ``(chatId, timestamp)`` keyed chats."""

    def __init__(self, page_size: Optional[int] = None):
        self.page_size: Optional[int] = page_size
        self.items: Dict[Tuple[Any, Any], Dict[str, Any]] = {}
        self.queries: List[Dict[str, Any]] = []

    def put_item(self, Item: Dict[str, Any]) -> Dict[str, Any]:
        stored = _as_stored(Item)
        self.items[(stored["chatId"], stored["timestamp"])] = stored
        return {"ResponseMetadata": {"HTTPStatusCode": 200}}

    def inject(self, chat_id: str, sort_key: Any, raw_item: Any) -> None:
        self.items[(chat_id, sort_key)] = raw_item

    def query(self, **kwargs: Any) -> Dict[str, Any]:
        self.queries.append(kwargs)
        key, chat_id = kwargs["KeyConditionExpression"].get_expression()["values"]
        assert key.name == "chatId"

        matching = sorted(
            [
                (sort_key, item)
                for (partition, sort_key), item in self.items.items()
                if partition == chat_id
            ],
            key=lambda entry: entry[0],
        )
        if not kwargs.get("ScanIndexForward", True):
            matching.reverse()

        start = kwargs.get("ExclusiveStartKey")
        if start:
            keys = [sort_key for sort_key, _ in matching]
            matching = matching[keys.index(start["timestamp"]) + 1:]

        page = matching[: self.page_size] if self.page_size else matching
        response: Dict[str, Any] = {
            "Items": [copy.deepcopy(item) for _, item in page],
            "Count": len(page),
        }
        if self.page_size and len(matching) > self.page_size:
            response["LastEvaluatedKey"] = {"chatId": chat_id, "timestamp": page[-1][0]}
        return response


class FailingTable:
    def __init__(self, error: Exception):
        self.error = error

    def put_item(self, **kwargs: Any) -> Dict[str, Any]:
        raise self.error

    def query(self, **kwargs: Any) -> Dict[str, Any]:
        raise self.error


class FakeDynamoResource:
    def __init__(self, table: Any):
        self.table = table
        self.requested: List[str] = []

    def Table(self, name: str) -> Any:
        self.requested.append(name)
        return self.table


def throughput_error(operation: str = "PutItem") -> ClientError:
    return ClientError(
        {
            "Error": {
                "Code": "ProvisionedThroughputExceededException",
                "Message": "The level of configured provisioned throughput for the table was exceeded.",
            }
        },
        operation,
    )


def connection_error() -> EndpointConnectionError:
    return EndpointConnectionError(endpoint_url="https://dynamodb.us-east-1.amazonaws.com")


@dataclass
class FakeLambdaContext:
    function_name: str = "cat-sim-api"
    memory_limit_in_mb: int = 128
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:cat-sim-api"
    aws_request_id: str = "52fdfc07-2182-154f-163f-5f0f9a621d72"


def make_event(
    path: str,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    raw_body: Optional[str] = None,
) -> Dict[str, Any]:
    if raw_body is None and body is not None:
        raw_body = json.dumps(body)
    return {
        "resource": path,
        "path": path,
        "httpMethod": "POST",
        "headers": headers or {},
        "multiValueHeaders": {},
        "queryStringParameters": None,
        "multiValueQueryStringParameters": None,
        "pathParameters": None,
        "stageVariables": None,
        "requestContext": {
            "requestId": "c6af9ac6-7b61-11e6-9a41-93e8deadbeef",
            "stage": "prod",
            "resourcePath": path,
            "httpMethod": "POST",
        },
        "body": raw_body,
        "isBase64Encoded": False,
    }


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def log_store(table: FakeTable, clock) -> ConversationLogStore:
    return ConversationLogStore("cat-sim-chats", FakeDynamoResource(table), clock=clock)


@pytest.fixture
def lambda_context() -> FakeLambdaContext:
    return FakeLambdaContext()
