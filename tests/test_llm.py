"""
Unit Tests for the LLM Fallback Chain and Structured Output Parsing
"""

import asyncio
import json
from typing import List

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from pydantic import BaseModel

from veritas_server.llm import get_provider
from veritas_server.llm.base_provider import (
    AllProvidersFailedError,
    BaseLLMProvider,
    LLMProviderError,
)
from veritas_server.llm.fallback_provider import FallbackLLMProvider
from veritas_server.llm.lm_studio_provider import LMStudioProvider
from veritas_server.schemas.result import Ok, ParseError, parse_structured
from veritas_server.services.generator import GENERATION_FAILED_MESSAGE, AugmentedGenerator


class FakeProvider(BaseLLMProvider):
    """Provider returning a fixed reply, raising, or hanging."""

    def __init__(self, model: str, reply: str = "", error: Exception = None,
                 delay: float = 0.0, chunks: List[str] = None):
        self.model = model
        self.reply = reply
        self.error = error
        self.delay = delay
        self.chunks = chunks or []

    async def chat(self, messages, max_tokens=2000, temperature=0.1):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply

    async def stream_chat(self, messages, max_tokens=2000, temperature=0.1):
        for i, chunk in enumerate(self.chunks):
            if self.error and i == len(self.chunks) - 1:
                raise self.error
            yield chunk
        if self.error and not self.chunks:
            raise self.error


MESSAGES = [{"role": "user", "content": "What is negligence?"}]


def mock_transport(transport: httpx.MockTransport):
    """Route every httpx.AsyncClient through a mock transport."""
    real_client = httpx.AsyncClient
    return patch.object(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=transport, **kwargs),
    )


class TestFallbackProvider:
    """Tests for FallbackLLMProvider."""

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        second = MagicMock(model="backup")
        second.chat = AsyncMock(return_value="unused")
        chain = FallbackLLMProvider([FakeProvider("primary", reply="answer"), second])

        assert await chain.chat_with_model(MESSAGES) == ("answer", "primary")
        second.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_through_on_error(self):
        chain = FallbackLLMProvider([
            FakeProvider("primary", error=LLMProviderError("HTTP 500")),
            FakeProvider("backup", reply="answer"),
        ])
        assert await chain.chat_with_model(MESSAGES) == ("answer", "backup")

    @pytest.mark.asyncio
    async def test_falls_through_on_timeout(self):
        chain = FallbackLLMProvider(
            [FakeProvider("slow", reply="late", delay=1.0), FakeProvider("fast", reply="ok")],
            timeout=0.01,
        )
        assert await chain.chat(MESSAGES) == "ok"

    @pytest.mark.asyncio
    async def test_all_failed(self):
        chain = FallbackLLMProvider([
            FakeProvider("a", error=LLMProviderError("a down")),
            FakeProvider("b", error=LLMProviderError("b down")),
        ])
        with pytest.raises(AllProvidersFailedError) as exc:
            await chain.chat(MESSAGES)
        assert "a down" in str(exc.value)
        assert "b down" in str(exc.value)

    def test_requires_providers(self):
        with pytest.raises(ValueError):
            FallbackLLMProvider([])

    @pytest.mark.asyncio
    async def test_stream_falls_through_before_first_chunk(self):
        chain = FallbackLLMProvider([
            FakeProvider("primary", error=LLMProviderError("refused")),
            FakeProvider("backup", chunks=["Negligence ", "is ", "carelessness."]),
        ])
        chunks = [c async for c in chain.stream_chat(MESSAGES)]
        assert "".join(chunks) == "Negligence is carelessness."

    @pytest.mark.asyncio
    async def test_stream_failure_mid_stream_raises(self):
        chain = FallbackLLMProvider([
            FakeProvider("primary", chunks=["Partial ", "answer"], error=LLMProviderError("reset")),
            FakeProvider("backup", chunks=["unused"]),
        ])
        received = []
        with pytest.raises(LLMProviderError):
            async for chunk in chain.stream_chat(MESSAGES):
                received.append(chunk)
        assert received == ["Partial "]

    def test_get_provider_builds_chain(self, settings):
        settings.llm.provider = "lm_studio"
        settings.llm.models = ["local-a", "local-b"]

        chain = get_provider(settings)
        assert isinstance(chain, FallbackLLMProvider)
        assert [p.model for p in chain.providers] == ["local-a", "local-b"]
        assert all(isinstance(p, LMStudioProvider) for p in chain.providers)


class Verdict(BaseModel):
    supported: bool
    reason: str = ""


class TestParseStructured:
    """Tests for parse_structured."""

    def test_plain_json(self):
        result = parse_structured('{"supported": true}', Verdict)
        assert isinstance(result, Ok)
        assert result.value.supported is True

    def test_fenced_json(self):
        result = parse_structured('```json\n{"supported": false, "reason": "no"}\n```', Verdict)
        assert isinstance(result, Ok)
        assert result.value.reason == "no"

    def test_json_inside_prose(self):
        result = parse_structured('Here you go: {"supported": true} Thanks!', Verdict)
        assert isinstance(result, Ok)

    def test_wrong_shape(self):
        result = parse_structured('{"reason": "missing flag"}', Verdict)
        assert isinstance(result, ParseError)
        assert result.raw == '{"reason": "missing flag"}'

    def test_empty(self):
        result = parse_structured("", Verdict)
        assert isinstance(result, ParseError)
        assert result.reason == "empty response"


class TestOpenAIProvider:
    """Tests for OpenAI-compatible response parsing."""

    def test_parse_sse_line(self):
        from veritas_server.llm.openai_provider import OpenAIProvider

        line = 'data: {"choices": [{"delta": {"content": "Negligence"}}]}'
        assert OpenAIProvider._parse_sse_line(line) == "Negligence"
        assert OpenAIProvider._parse_sse_line("data: [DONE]") is None
        assert OpenAIProvider._parse_sse_line(": keep-alive") is None
        assert OpenAIProvider._parse_sse_line("data: {not json") is None

    @pytest.mark.asyncio
    async def test_non_json_body_is_provider_error(self, settings):
        from veritas_server.llm.openai_provider import OpenAIProvider

        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>gateway</html>")
        )
        with mock_transport(transport):
            with pytest.raises(LLMProviderError):
                await OpenAIProvider(settings, model="gpt-a").chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_non_json_body_falls_through_to_next_model(
        self, settings, negligence_source, passage
    ):
        settings.llm.provider = "openai"
        settings.llm.models = ["gpt-a", "gpt-b"]

        def reply(request):
            if json.loads(request.content)["model"] == "gpt-a":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "Negligence is carelessness."}}]}
            )

        with mock_transport(httpx.MockTransport(reply)):
            result = await AugmentedGenerator(get_provider(settings), settings).generate(
                "What is negligence?", [passage(negligence_source)]
            )

        assert not result.failed
        assert result.model == "gpt-b"
        assert result.text == "Negligence is carelessness."

    @pytest.mark.asyncio
    async def test_non_json_body_from_every_model_fails_generation(
        self, settings, negligence_source, passage
    ):
        settings.llm.provider = "openai"
        settings.llm.models = ["gpt-a", "gpt-b"]
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>gateway</html>")
        )

        with mock_transport(transport):
            result = await AugmentedGenerator(get_provider(settings), settings).generate(
                "What is negligence?", [passage(negligence_source)]
            )

        assert result.failed
        assert result.text == GENERATION_FAILED_MESSAGE
