"""
LLM - Fallback Provider

Tries an ordered list of providers, each call bounded by a timeout.
"""

import asyncio
import logging
from typing import List, Dict, AsyncIterator, Tuple

from veritas_server.llm.base_provider import (
    BaseLLMProvider,
    LLMProviderError,
    AllProvidersFailedError,
)

logger = logging.getLogger(__name__)


class FallbackLLMProvider(BaseLLMProvider):
    """
    Priority-ordered provider chain.

    Each provider gets one attempt bounded by `timeout` seconds. The
    first success wins; if all fail, AllProvidersFailedError is raised.
    """

    def __init__(self, providers: List[BaseLLMProvider], timeout: float = 30.0):
        if not providers:
            raise ValueError("FallbackLLMProvider needs at least one provider")
        self.providers = providers
        self.timeout = timeout
        self.model = providers[0].model

    async def chat_with_model(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> Tuple[str, str]:
        """Like `chat`, but also returns the model that answered."""
        errors = []
        for provider in self.providers:
            try:
                text = await asyncio.wait_for(
                    provider.chat(messages, max_tokens, temperature),
                    timeout=self.timeout,
                )
                return text, provider.model
            except asyncio.TimeoutError:
                logger.warning(f"LLM {provider.model} timed out after {self.timeout}s")
                errors.append(f"{provider.model}: timeout")
            except LLMProviderError as e:
                logger.warning(f"LLM {provider.model} failed: {e}")
                errors.append(str(e))

        raise AllProvidersFailedError("; ".join(errors))

    async def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> str:
        text, _ = await self.chat_with_model(messages, max_tokens, temperature)
        return text

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> AsyncIterator[str]:
        """
        Stream from the first provider that produces output.

        A provider failing before its first chunk falls through to the
        next one; a failure mid-stream is raised to the caller.
        """
        errors = []
        for provider in self.providers:
            stream = provider.stream_chat(messages, max_tokens, temperature)
            started = False
            try:
                while True:
                    try:
                        chunk = await asyncio.wait_for(
                            stream.__anext__(), timeout=self.timeout
                        )
                    except StopAsyncIteration:
                        break
                    started = True
                    yield chunk
                if started:
                    return
                errors.append(f"{provider.model}: empty stream")
            except (asyncio.TimeoutError, LLMProviderError) as e:
                if started:
                    raise LLMProviderError(
                        f"{provider.model} failed mid-stream: {e!r}"
                    ) from e
                logger.warning(f"LLM stream {provider.model} failed: {e!r}")
                errors.append(f"{provider.model}: {e!r}")
            finally:
                await stream.aclose()

        raise AllProvidersFailedError("; ".join(errors))

    def is_available(self) -> bool:
        return any(p.is_available() for p in self.providers)
