"""
Services - Claim Alignment

Extracts factual claims from an answer, measures how well each is
supported by the retrieved passages, and links supported claims to
their best evidence.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import BaseModel

from veritas_server.schemas.result import Ok, parse_structured
from veritas_server.schemas.source import RetrievedPassage
from veritas_server.schemas.validation import EvidenceLink
from veritas_server.services.authority import source_hyperlink
from veritas_server.services.citation_extractor import split_sentences, strip_markers
from veritas_server.services.citation_validator import keyword_overlap
from veritas_server.services.integrity import source_hash
from veritas_server.services.similarity import SemanticSimilarity

logger = logging.getLogger(__name__)

EVIDENCE_THRESHOLD = 0.6

HEDGES = (
    "might", "maybe", "perhaps", "possibly",
    "i think", "i believe", "it seems",
)


class ExtractedClaims(BaseModel):
    """Shape expected from LLM claim extraction."""
    claims: List[str]


@dataclass
class AlignmentResult:
    """Per-claim alignment and the resulting evidence chain."""
    claims: List[str]
    alignment_per_claim: List[float]
    evidence_chain: List[EvidenceLink] = field(default_factory=list)

    @property
    def unsupported_claims(self) -> List[str]:
        return [
            c for c, a in zip(self.claims, self.alignment_per_claim)
            if a < EVIDENCE_THRESHOLD
        ]


class ClaimAligner:
    """Aligns answer claims with source passages."""

    def __init__(self, similarity: SemanticSimilarity, llm=None, use_llm: bool = False):
        self.similarity = similarity
        self.llm = llm
        self.use_llm = use_llm and llm is not None

    def extract_claims(self, text: str) -> List[str]:
        """Extract factual claims from text."""
        claims = []
        for sentence in split_sentences(text):
            sentence = strip_markers(sentence)
            if len(sentence) <= 20 or sentence.endswith("?"):
                continue
            # Skip hedged statements
            if any(hedge in sentence.lower() for hedge in HEDGES):
                continue
            claims.append(sentence)
        return claims

    async def extract_claims_with_llm(self, text: str) -> List[str]:
        """LLM claim extraction, falling back to the sentence heuristic."""
        prompt = f"""Extract the distinct factual legal claims made in the text below.
Respond with JSON only: {{"claims": ["claim 1", "claim 2"]}}

Text:
{strip_markers(text)[:4000]}"""

        try:
            raw = await self.llm.complete(prompt, max_tokens=500)
        except Exception as e:
            logger.warning(f"LLM claim extraction failed: {e!r}")
            return self.extract_claims(text)

        result = parse_structured(raw, ExtractedClaims)
        if isinstance(result, Ok):
            claims = [c.strip() for c in result.value.claims if c.strip()]
            if claims:
                return claims
        else:
            logger.warning(f"Unparseable claim extraction response: {result.reason}")
        return self.extract_claims(text)

    async def align(
        self,
        answer: str,
        passages: Sequence[RetrievedPassage],
    ) -> AlignmentResult:
        """
        Score every claim against every passage.

        A claim's alignment is its best similarity over all passages.
        Claims whose best support exceeds 0.6 join the evidence chain.
        """
        if self.use_llm:
            claims = await self.extract_claims_with_llm(answer)
        else:
            claims = self.extract_claims(answer)

        if not claims or not passages:
            return AlignmentResult(claims=claims, alignment_per_claim=[0.0] * len(claims))

        contents = [p.source.content for p in passages]
        alignment = []
        evidence = []
        for n, claim in enumerate(claims, start=1):
            scores = await self._score(claim, contents)
            best = max(range(len(passages)), key=lambda i: scores[i])
            alignment.append(scores[best])

            if scores[best] > EVIDENCE_THRESHOLD:
                source = passages[best].source
                evidence.append(EvidenceLink(
                    claim_id=f"claim_{n}",
                    claim=claim,
                    source_id=source.id,
                    source_title=source.title,
                    hyperlink=source_hyperlink(source, source_hash(source)),
                    relevant_passage=self.relevant_passage(claim, source.content),
                    support_strength=round(scores[best], 4),
                ))

        return AlignmentResult(
            claims=claims,
            alignment_per_claim=alignment,
            evidence_chain=evidence,
        )

    async def _score(self, claim: str, contents: List[str]) -> List[float]:
        """Embedding similarity per passage, keyword overlap if embedding fails."""
        try:
            return await self.similarity.score_many(claim, contents)
        except Exception as e:
            logger.warning(f"Similarity scoring failed, using keyword overlap: {e!r}")
            return [keyword_overlap(claim, content) for content in contents]

    @staticmethod
    def relevant_passage(claim: str, content: str, max_chars: int = 300) -> str:
        """Sentence of `content` sharing the most significant words with the claim."""
        best: Optional[str] = None
        best_overlap = -1.0
        for sentence in split_sentences(content):
            overlap = keyword_overlap(claim, sentence)
            if overlap > best_overlap:
                best, best_overlap = sentence, overlap
        return (best or content)[:max_chars]
