import json
from typing import Any, Dict

from aws_lambda_powertools.event_handler import Response, content_types
from aws_lambda_powertools.utilities.data_classes.common import BaseProxyEvent

CHAT_ID_HEADER: str = "x-chat-id"


def _reject_constant(constant: str) -> Any:
    raise ValueError(f"Request body contains a non-finite number: {constant}")


def read_json_body(event: BaseProxyEvent) -> Dict[str, Any]:
    raw = event.decoded_body
    if not raw:
        return {}
    body = json.loads(raw, parse_constant=_reject_constant)
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def resolve_chat_id(event: BaseProxyEvent, body: Dict[str, Any]) -> str:
    """Chat id from the X-Chat-Id header, falling back to a chatId body field."""
    headers = event.headers or {}
    for name, value in headers.items():
        if name.lower() == CHAT_ID_HEADER and value:
            return value

    chat_id = body.get("chatId")
    if isinstance(chat_id, str) and chat_id:
        return chat_id

    raise ValueError("Missing chat id: send an X-Chat-Id header or a chatId field")


def json_response(status_code: int, payload: Any) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(payload),
    )
