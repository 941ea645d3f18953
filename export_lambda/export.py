from typing import Any, Dict, List, Optional

import boto3
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.event_handler import APIGatewayRestResolver, Response
from aws_lambda_powertools.event_handler.api_gateway import CORSConfig
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import BaseModel, Field

from chat_store.config import Settings
from chat_store.errors import StoreUnavailable
from chat_store.http import json_response, read_json_body, resolve_chat_id
from chat_store.models import MessageRecord
from chat_store.repository import ConversationLogStore
from chat_store.service import ChatHistoryService

cors_config = CORSConfig(
    allow_origin="*",
    allow_headers=["Content-Type", "Authorization", "X-Chat-Id"],
    expose_headers=["Content-Type"],
    max_age=300,
)

logger: Logger = Logger()
tracer: Tracer = Tracer()
app: APIGatewayRestResolver = APIGatewayRestResolver(cors=cors_config)


class ConversationExport(BaseModel):
    chat_id: str = Field(serialization_alias="chatId")
    messages: List[Dict[str, Any]]
    count: int


_history_service: Optional[ChatHistoryService] = None


def get_history_service() -> ChatHistoryService:
    global _history_service
    if _history_service is None:
        settings: Settings = Settings.from_env()
        _history_service = ChatHistoryService(
            ConversationLogStore(settings.chat_table_name, boto3.resource("dynamodb"))
        )
    return _history_service


@app.post("/api/chat/export")
@tracer.capture_method
def export_chat() -> Response:
    try:
        body: Dict[str, Any] = read_json_body(app.current_event)
        chat_id: str = resolve_chat_id(app.current_event, body)
    except ValueError as e:
        logger.warning(f"Rejected export request: {e}")
        return json_response(400, {"error": str(e)})

    try:
        records: List[MessageRecord] = get_history_service().export_conversation(chat_id)
    except StoreUnavailable:
        logger.exception("Chat table unavailable")
        return json_response(503, {"error": "Chat history is temporarily unavailable"})
    except Exception:
        logger.exception("Error exporting chat in route")
        return json_response(500, {"error": "Internal Server Error"})

    export = ConversationExport(
        chat_id=chat_id,
        messages=[record.to_json_dict() for record in records],
        count=len(records),
    )
    return json_response(200, export.model_dump(by_alias=True))


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_REST
)
@tracer.capture_lambda_handler
def lambda_handler(
    event: Dict[str, Any], context: LambdaContext
) -> Dict[str, Any]:
    return app.resolve(event, context)
