"""
LLM - Base Provider

Abstract base class for LLM providers.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, AsyncIterator, Tuple


class LLMProviderError(RuntimeError):
    """Raised when a single provider call fails."""


class AllProvidersFailedError(LLMProviderError):
    """Raised when every model in the fallback order has failed."""


class BaseLLMProvider(ABC):
    """Base class for LLM provider implementations."""

    model: str = ""

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> str:
        """
        Generate chat completion.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            Assistant message content
        """
        pass

    @abstractmethod
    def stream_chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as incremental text chunks.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Yields:
            Text deltas in generation order
        """
        pass

    async def chat_with_model(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> Tuple[str, str]:
        """Chat completion plus the name of the model that answered."""
        text = await self.chat(messages, max_tokens, temperature)
        return text, self.model

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 2000,
        temperature: float = 0.1,
        stop: Optional[List[str]] = None,
    ) -> str:
        """Generate completion from a single user prompt."""
        messages = [{"role": "user", "content": prompt}]
        return await self.chat(messages, max_tokens, temperature)

    def is_available(self) -> bool:
        """Check if provider is available."""
        return True
