"""Model construction shared by the oracle agents.

Supports:
    - Remote models in PydanticAI format: 'openai:gpt-4o-mini',
      'google-gla:gemini-2.5-flash', ...
    - Local OpenAI-compatible servers: 'openai:{model_name}@{base_url}',
      e.g. 'openai:qwen2.5-7b@http://127.0.0.1:8080/v1'
"""

import logging

from openai import AsyncOpenAI
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from config import Config

logger = logging.getLogger(__name__)


def parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[len("openai:"):]
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def create_model(model_str: str):
    """Create the appropriate model based on the model string.

    Args:
        model_str: Model identifier string

    Returns:
        PydanticAI model instance (local servers) or the model string
    """
    parsed = parse_local_model(model_str)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local OpenAI-compatible model | model=%s base_url=%s", model_name, base_url)
        # Local servers don't need authentication - use placeholder
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        # Most local servers don't support response_format
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIChatModel(
            model_name=model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )
    return model_str


def model_settings(config: Config, max_tokens: int) -> ModelSettings:
    """Sampling settings for one oracle call site."""
    return ModelSettings(temperature=config.model_temperature, max_tokens=max_tokens)
