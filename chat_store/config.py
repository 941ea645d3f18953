import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_BEDROCK_MODEL_ID: str = "amazon.nova-lite-v1:0"
DEFAULT_LLM_PROVIDER_STRATEGY: str = "LangchainBedrockConverseStrategy"


class Settings(BaseModel):
    chat_table_name: str = Field(min_length=1)
    bedrock_model_id: str = DEFAULT_BEDROCK_MODEL_ID
    llm_provider_strategy: str = DEFAULT_LLM_PROVIDER_STRATEGY

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the Lambda environment.

        ``CHAT_TABLE_NAME`` is required; the model settings are only used by
        the chat function and fall back to defaults.
        """
        env: Mapping[str, str] = os.environ if environ is None else environ
        return cls(
            chat_table_name=env.get("CHAT_TABLE_NAME", ""),
            bedrock_model_id=env.get("BEDROCK_MODEL_ID", DEFAULT_BEDROCK_MODEL_ID),
            llm_provider_strategy=env.get(
                "LLM_PROVIDER_STRATEGY", DEFAULT_LLM_PROVIDER_STRATEGY
            ),
        )
