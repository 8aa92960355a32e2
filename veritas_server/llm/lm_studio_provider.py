"""
LLM - LM Studio Provider

Local LLM provider using LM Studio's OpenAI-compatible API.
"""

from typing import Dict
import httpx

from veritas_server.llm.openai_provider import OpenAIProvider


class LMStudioProvider(OpenAIProvider):
    """LM Studio local LLM provider (no auth)."""

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def is_available(self) -> bool:
        """Check if LM Studio is running."""
        try:
            with httpx.Client(timeout=2.0) as client:
                response = client.get(f"{self.base_url}/models")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
