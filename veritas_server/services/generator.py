"""
Services - Augmented Generator

Builds a numbered-source prompt and asks the LLM for a cited answer.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence

from veritas_server.config import get_settings
from veritas_server.llm.base_provider import BaseLLMProvider, LLMProviderError
from veritas_server.schemas.source import RetrievedPassage

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an expert legal research assistant. Provide accurate, well-researched answers based ONLY on the provided legal sources. Always cite your sources using [Source X] format where X corresponds to the source number provided in the context.

CRITICAL INSTRUCTIONS:
1. Base your answer ONLY on the provided sources
2. Use [Source X] citations for all factual claims
3. If information is not in the sources, clearly state this limitation
4. Provide comprehensive analysis while staying grounded in the sources
5. Format your response with proper markdown for readability"""

GENERATION_FAILED_MESSAGE = (
    "I'm sorry, an answer could not be generated right now because the "
    "language model service is unavailable. Please try again later."
)


@dataclass
class GenerationResult:
    """Generated answer text and the model that produced it."""
    text: str
    model: Optional[str] = None
    failed: bool = False


def build_prompt(
    query: str,
    passages: Sequence[RetrievedPassage],
    max_passage_chars: int = 2000,
) -> str:
    """Number each passage as [Source N] and append the question."""
    blocks = []
    for p in passages:
        source = p.source
        lines = [f"[Source {p.index}] {source.title}"]
        if source.citation:
            lines.append(f"Citation: {source.citation}")
        lines.append(f"Content: {source.content[:max_passage_chars]}")
        lines.append(f"Relevance: {p.relevance * 100:.1f}%")
        blocks.append("\n".join(lines))

    context = "\n\n---\n\n".join(blocks)
    return f"""Based on the following legal sources, please answer the question.

LEGAL SOURCES:
{context}

QUESTION: {query}

Provide a comprehensive answer with proper citations using [Source X] format."""


class AugmentedGenerator:
    """Generates grounded answers from retrieved passages."""

    def __init__(self, llm: BaseLLMProvider, settings=None):
        self.settings = settings or get_settings()
        self.llm = llm

    def _messages(self, query: str, passages: Sequence[RetrievedPassage]) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_prompt(query, passages, self.settings.rag.max_passage_chars),
            },
        ]

    async def generate(
        self,
        query: str,
        passages: Sequence[RetrievedPassage],
    ) -> GenerationResult:
        """
        Generate an answer. Never raises on provider failure.

        Returns:
            GenerationResult; `failed` is True when every model failed
        """
        messages = self._messages(query, passages)
        try:
            text, model = await self.llm.chat_with_model(
                messages,
                max_tokens=self.settings.llm.max_tokens,
                temperature=self.settings.llm.temperature,
            )
        except LLMProviderError as e:
            logger.error(f"Answer generation failed: {e}")
            return GenerationResult(text=GENERATION_FAILED_MESSAGE, failed=True)

        return GenerationResult(text=text.strip(), model=model)

    async def stream(
        self,
        query: str,
        passages: Sequence[RetrievedPassage],
    ) -> AsyncIterator[str]:
        """Stream answer chunks; provider errors propagate to the caller."""
        async for chunk in self.llm.stream_chat(
            self._messages(query, passages),
            max_tokens=self.settings.llm.max_tokens,
            temperature=self.settings.llm.temperature,
        ):
            yield chunk

    async def regenerate(
        self,
        query: str,
        passages: Sequence[RetrievedPassage],
    ) -> GenerationResult:
        """Regenerate from a reduced passage set; source numbers are kept."""
        logger.info(f"Regenerating answer from {len(passages)} passages")
        return await self.generate(query, passages)
