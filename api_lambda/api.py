from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import boto3
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.event_handler import APIGatewayRestResolver, Response
from aws_lambda_powertools.event_handler.api_gateway import CORSConfig
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import BaseModel, field_validator

from api_lambda.llm import (
    LLMInputMessage,
    LLMProvider,
    LLMProviderFactory,
    LLMProviderStrategy,
    LLMResponse,
    extract_text,
)
from chat_store.config import Settings
from chat_store.errors import StoreUnavailable
from chat_store.expiry import parse_timestamp, to_epoch, utc_now
from chat_store.http import json_response, read_json_body, resolve_chat_id
from chat_store.models import AppendResult, MessageRecord
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


class ChatTurnRequest(BaseModel):
    message: Union[str, Dict[str, Any]]
    timestamp: Any = None
    ttl: Any = None

    @field_validator("message")
    @classmethod
    def check_user_turn(cls, message: Union[str, Dict[str, Any]]) -> Union[str, Dict[str, Any]]:
        # Only the model may write assistant turns, and Bedrock needs text to answer.
        if isinstance(message, dict):
            if message.get("role", "user") != "user":
                raise ValueError("Only user turns can be sent")
            text: str = extract_text(message.get("content"))
        else:
            text = message
        if not text.strip():
            raise ValueError("Message must contain some text")
        return message

    def as_payload(self) -> Dict[str, Any]:
        if isinstance(self.message, str):
            return {"role": "user", "content": [{"text": self.message}]}
        return {**self.message, "role": "user"}


class ChatTurnResponse(BaseModel):
    message: str
    records: List[Dict[str, Any]]


class ChatService:
    def __init__(
        self,
        history_service: ChatHistoryService,
        llm_provider: LLMProvider,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.history_service: ChatHistoryService = history_service
        self.llm_provider: LLMProvider = llm_provider
        self.clock: Callable[[], datetime] = clock

    def send_message(self, chat_id: str, request: ChatTurnRequest) -> ChatTurnResponse:
        user_message: Dict[str, Any] = request.as_payload()
        timestamp: Optional[int] = parse_timestamp(request.timestamp, unit="ms")
        if timestamp is None:
            timestamp = to_epoch(self.clock(), unit="ms")

        history: List[MessageRecord] = self.history_service.export_conversation(chat_id)
        logger.info(f"Fetched {len(history)} messages from history")

        llm_messages: List[LLMInputMessage] = self.llm_provider.build_messages(
            [record.message for record in history] + [user_message]
        )
        llm_response: LLMResponse = self.llm_provider.invoke_llm(llm_messages)

        # Both turns share the nominal timestamp, the store orders the reply after.
        user_result: AppendResult = self.history_service.append_turn(
            chat_id, user_message, timestamp, request.ttl
        )
        assistant_result: AppendResult = self.history_service.append_turn(
            chat_id,
            {"role": "assistant", "content": [{"text": llm_response.content}]},
            timestamp,
            request.ttl,
        )

        logger.info(
            f"Stored turn for chat {chat_id}",
            extra={
                "input_tokens": llm_response.usage.input_tokens,
                "output_tokens": llm_response.usage.output_tokens,
            },
        )

        return ChatTurnResponse(
            message=llm_response.content,
            records=[
                user_result.record.to_json_dict(),
                assistant_result.record.to_json_dict(),
            ],
        )


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Build the service once per execution environment."""
    global _chat_service
    if _chat_service is None:
        settings: Settings = Settings.from_env()
        log_store = ConversationLogStore(
            settings.chat_table_name, boto3.resource("dynamodb")
        )
        strategy: LLMProviderStrategy = LLMProviderFactory(
            settings.bedrock_model_id, boto3.client("bedrock-runtime")
        ).get_strategy(settings.llm_provider_strategy)
        _chat_service = ChatService(ChatHistoryService(log_store), LLMProvider(strategy))
    return _chat_service


@app.post("/api/chat")
@tracer.capture_method
def post_chat_message() -> Response:
    try:
        body: Dict[str, Any] = read_json_body(app.current_event)
        request: ChatTurnRequest = ChatTurnRequest.model_validate(body)
        chat_id: str = resolve_chat_id(app.current_event, body)
    except ValueError as e:
        logger.warning(f"Rejected chat request: {e}")
        return json_response(400, {"error": str(e)})

    try:
        response_model: ChatTurnResponse = get_chat_service().send_message(chat_id, request)
        return json_response(200, response_model.model_dump())
    except StoreUnavailable:
        logger.exception("Chat table unavailable")
        return json_response(503, {"error": "Chat history is temporarily unavailable"})
    except Exception:
        logger.exception("Error processing message in route")
        return json_response(500, {"error": "Internal Server Error"})


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_REST
)
@tracer.capture_lambda_handler
def lambda_handler(
    event: Dict[str, Any], context: LambdaContext
) -> Dict[str, Any]:
    return app.resolve(event, context)
