from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Union

from aws_lambda_powertools import Logger
from botocore.client import BaseClient
from langchain_aws import ChatBedrockConverse
from langchain_core.messages import AIMessage, HumanMessage
from pydantic import BaseModel, Field

logger: Logger = Logger(child=True)


class LLMUsage(BaseModel):
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)


class LLMResponse(BaseModel):
    content: str
    usage: LLMUsage = Field(default_factory=LLMUsage)


class LLMInputMessage(BaseModel):
    role: str
    content: str


def extract_text(content: Any) -> str:
    """Join the text parts of a Bedrock or LangChain message content."""
    if isinstance(content, str):
        return content
    parts: List[str] = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, Mapping) and isinstance(block.get("text"), str):
                parts.append(block["text"])
    return "".join(parts)


class LLMProviderStrategy(ABC):
    def __init__(self, model_id: str, client: BaseClient):
        self.model_id = model_id
        self.client = client
        self.region_name = self.client.meta.region_name

    @abstractmethod
    def invoke_llm(self, messages: List[LLMInputMessage]) -> LLMResponse:
        raise NotImplementedError


class LangchainBedrockConverseStrategy(LLMProviderStrategy):
    def invoke_llm(self, messages: List[LLMInputMessage]) -> LLMResponse:
        logger.info(f"LangChain Strategy: Invoking model {self.model_id}")

        chat = ChatBedrockConverse(
            model=self.model_id,
            client=self.client,
            region_name=self.region_name,
        )

        langchain_messages: List[Union[HumanMessage, AIMessage]] = []
        for msg in messages:
            if msg.role == "user":
                langchain_messages.append(HumanMessage(content=msg.content))
            elif msg.role == "assistant":
                langchain_messages.append(AIMessage(content=msg.content))

        try:
            response: AIMessage = chat.invoke(langchain_messages)
        except Exception:
            logger.exception("Error invoking Bedrock via LangChain")
            raise

        usage_metadata: Dict[str, int] = response.usage_metadata or {}
        usage: LLMUsage = LLMUsage(
            input_tokens=usage_metadata.get("input_tokens", 0),
            output_tokens=usage_metadata.get("output_tokens", 0),
        )

        return LLMResponse(content=extract_text(response.content), usage=usage)


class LLMProviderFactory:
    def __init__(self, model_id: str, client: BaseClient):
        self.model_id: str = model_id
        self.client: BaseClient = client
        self.strategies: Dict[str, type[LLMProviderStrategy]] = {
            "LangchainBedrockConverseStrategy": LangchainBedrockConverseStrategy,
        }

    def get_strategy(self, strategy_name: str) -> LLMProviderStrategy:
        strategy_class = self.strategies.get(strategy_name)
        if not strategy_class:
            raise ValueError(f"Unknown LLM strategy: {strategy_name}")

        return strategy_class(self.model_id, self.client)


class LLMProvider:
    def __init__(self, strategy: LLMProviderStrategy):
        self.strategy: LLMProviderStrategy = strategy

    @staticmethod
    def build_messages(payloads: List[Any]) -> List[LLMInputMessage]:
        # Bedrock only accepts user/assistant turns with some text in them.
        messages: List[LLMInputMessage] = []
        for payload in payloads:
            if not isinstance(payload, Mapping):
                continue
            role = payload.get("role")
            if role not in ("user", "assistant"):
                continue
            text: str = extract_text(payload.get("content"))
            if not text:
                continue
            messages.append(LLMInputMessage(role=role, content=text))
        return messages

    def invoke_llm(self, messages: List[LLMInputMessage]) -> LLMResponse:
        return self.strategy.invoke_llm(messages)
