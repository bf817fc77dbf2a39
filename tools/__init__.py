"""Helpers shared by the oracle agents.

create_model / model_settings:
    Build PydanticAI models, including local OpenAI-compatible servers.

TokenBucket:
    Async rate limiter for oracle calls.
"""

from tools.llm import create_model, model_settings
from tools.ratelimit import TokenBucket

__all__ = [
    "create_model",
    "model_settings",
    "TokenBucket",
]
