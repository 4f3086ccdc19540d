"""Provider registry."""

from __future__ import annotations

from .base import ProviderRegistry
from .gemini import GeminiProvider
from .openai import OpenAIProvider


def default_registry(openai_api_base: str | None = None, timeout_s: float = 90.0) -> ProviderRegistry:
    return ProviderRegistry(
        [
            GeminiProvider(),
            OpenAIProvider(api_base=openai_api_base, timeout_s=timeout_s),
        ]
    )
