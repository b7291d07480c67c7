"""
LLM factory for creating the model endpoint from settings.
"""

from ..config import Settings
from .anthropic import AnthropicLLM
from .base import BaseLLM


def create_llm(settings: Settings | None = None) -> BaseLLM:
    """Create the model endpoint configured in settings."""
    if settings is None:
        from ..config import get_settings
        settings = get_settings()

    return AnthropicLLM(
        api_key=settings.anthropic_api_key,
        model=settings.default_model,
        max_tokens=settings.max_tokens,
    )
