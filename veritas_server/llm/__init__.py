"""
LLM Module - Provider Abstraction Layer

Supports LM Studio, OpenAI, and Azure OpenAI providers behind a
priority-ordered fallback chain.
"""

from veritas_server.llm.base_provider import (
    BaseLLMProvider,
    LLMProviderError,
    AllProvidersFailedError,
)
from veritas_server.llm.lm_studio_provider import LMStudioProvider
from veritas_server.llm.openai_provider import OpenAIProvider
from veritas_server.llm.fallback_provider import FallbackLLMProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProviderError",
    "AllProvidersFailedError",
    "LMStudioProvider",
    "OpenAIProvider",
    "FallbackLLMProvider",
    "get_provider",
]


def get_provider(settings=None) -> FallbackLLMProvider:
    """Factory: one provider per configured model, in fallback order."""
    from veritas_server.config import get_settings
    settings = settings or get_settings()

    if settings.llm.provider == "lm_studio":
        provider_cls = LMStudioProvider
    elif settings.llm.provider in ("openai", "azure"):
        provider_cls = OpenAIProvider
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm.provider}")

    providers = [provider_cls(settings, model=m) for m in settings.llm.models]
    return FallbackLLMProvider(providers, timeout=settings.llm.timeout_ms / 1000)
