"""
LLM - OpenAI Provider

OpenAI and Azure OpenAI provider implementation.
"""

import json
from typing import Optional, List, Dict, Any, AsyncIterator
import httpx

from veritas_server.llm.base_provider import BaseLLMProvider, LLMProviderError
from veritas_server.config import get_settings


class OpenAIProvider(BaseLLMProvider):
    """OpenAI-compatible chat completions provider."""

    def __init__(self, settings=None, model: Optional[str] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.llm.base_url.rstrip("/")
        self.api_key = self.settings.llm.api_key
        self.model = model or self.settings.llm.models[0]
        self.timeout = self.settings.llm.timeout_ms / 1000

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
        stream: bool = False,
    ) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> str:
        """Generate chat completion using the OpenAI API."""
        url = f"{self.base_url}/chat/completions"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    json=self._payload(messages, max_tokens, temperature),
                    headers=self._headers(),
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise LLMProviderError(f"{self.model}: {e}") from e

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMProviderError(f"{self.model}: malformed response") from e

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ) -> AsyncIterator[str]:
        """Stream chat completion deltas from server-sent events."""
        url = f"{self.base_url}/chat/completions"
        payload = self._payload(messages, max_tokens, temperature, stream=True)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", url, json=payload, headers=self._headers()
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        delta = self._parse_sse_line(line)
                        if delta:
                            yield delta
        except httpx.HTTPError as e:
            raise LLMProviderError(f"{self.model}: {e}") from e

    @staticmethod
    def _parse_sse_line(line: str) -> Optional[str]:
        """Extract the content delta from one `data: {...}` line."""
        if not line.startswith("data:"):
            return None
        body = line[len("data:"):].strip()
        if not body or body == "[DONE]":
            return None
        try:
            event = json.loads(body)
            return event["choices"][0]["delta"].get("content")
        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
            return None

    def is_available(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key)
