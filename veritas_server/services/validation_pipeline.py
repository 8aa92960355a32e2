"""
Services - Grounded Answer Pipeline

Orchestrates retrieval, generation, citation validation, confidence
scoring, flagging, correction, and human review for one query, and
writes the audit trail.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence

from veritas_server.config import get_settings
from veritas_server.llm.base_provider import LLMProviderError
from veritas_server.schemas.answer import (
    Answer,
    Chunk,
    Done,
    Error,
    FailureInfo,
    QueryOptions,
    SourcesFound,
    StreamEvent,
    ValidationComplete,
)
from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.review import ReviewDecision, ReviewTask, review_state_for
from veritas_server.schemas.source import RetrievedPassage
from veritas_server.schemas.validation import (
    CitationReport,
    ConfidenceScore,
    FlaggedContent,
    ValidationRecord,
)
from veritas_server.services.cache_service import CacheService
from veritas_server.services.citation_extractor import CitationExtractor
from veritas_server.services.citation_validator import CitationValidator
from veritas_server.services.claim_alignment import AlignmentResult, ClaimAligner
from veritas_server.services.confidence_scorer import ConfidenceScorer
from veritas_server.services.content_flagger import ContentFlagger
from veritas_server.services.correction import CitationCorrector, CorrectionPass
from veritas_server.services.generator import AugmentedGenerator
from veritas_server.services.integrity import bundle_hash, content_hash, source_hash
from veritas_server.services.record_store import RecordStore
from veritas_server.services.retriever import Retriever
from veritas_server.services.review_gate import ReviewService, ReviewTaskNotFoundError

logger = logging.getLogger(__name__)


INSUFFICIENT_INFORMATION_MESSAGE = (
    "I couldn't find relevant information in the legal database to answer your "
    "question. Please try rephrasing your query or contact a legal professional "
    "for assistance."
)


@dataclass
class Assessment:
    """Validation results for one answer text."""
    citations: List[Citation]
    validations: List[CitationValidation]
    alignment: AlignmentResult
    confidence: ConfidenceScore
    flags: List[FlaggedContent]


@dataclass
class _Options:
    top_k: int
    filter: Optional[Dict]
    strict: bool
    review: bool
    auto_correct: bool


def build_citation_report(validations: Sequence[CitationValidation]) -> CitationReport:
    """Summarize citation outcomes with recommendations."""
    total = len(validations)
    verified = sum(1 for v in validations if v.status == "verified")
    flagged = sum(1 for v in validations if v.status == "flagged")
    corrected = sum(1 for v in validations if v.status == "corrected")
    removed = sum(1 for v in validations if v.status == "removed")
    accuracy = round(verified / total * 100) if total else 0

    recommendations = []
    if total == 0:
        recommendations.append("Answer contains no citations to verify")
    elif accuracy < 70:
        recommendations.append("Consider reviewing source materials for accuracy")
    if flagged:
        recommendations.append(f"{flagged} citations require correction or removal")
    if corrected:
        recommendations.append(f"{corrected} citations have been auto-corrected")
    if removed:
        recommendations.append(f"{removed} citations were removed from the answer")

    return CitationReport(
        total_citations=total,
        verified_citations=verified,
        flagged_citations=flagged,
        corrected_citations=corrected,
        removed_citations=removed,
        overall_accuracy=accuracy,
        recommendations=recommendations,
    )


class GroundedAnswerPipeline:
    """Answers legal questions with validated, auditable citations."""

    RECORDS = "validation_records"
    AUDIT = "audit_log"

    def __init__(
        self,
        retriever: Retriever,
        generator: AugmentedGenerator,
        validator: CitationValidator,
        aligner: ClaimAligner,
        review: ReviewService,
        store: RecordStore,
        settings=None,
        extractor: Optional[CitationExtractor] = None,
        scorer: Optional[ConfidenceScorer] = None,
        flagger: Optional[ContentFlagger] = None,
        correction: Optional[CorrectionPass] = None,
        corrector: Optional[CitationCorrector] = None,
    ):
        self.settings = settings or get_settings()
        self.retriever = retriever
        self.generator = generator
        self.validator = validator
        self.aligner = aligner
        self.review = review
        self.store = store
        self.extractor = extractor or CitationExtractor()
        self.scorer = scorer or ConfidenceScorer()
        self.flagger = flagger or ContentFlagger(self.settings, self.extractor)
        self.correction = correction or CorrectionPass(generator, self.extractor)
        self.corrector = corrector or CitationCorrector(generator.llm)

    # ─────────────────────────────────────────────
    #  Public entry points
    # ─────────────────────────────────────────────

    async def process_query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
    ) -> Answer:
        """
        Answer a query with full validation.

        Args:
            query: User question
            options: Per-query overrides

        Returns:
            Answer; degraded answers carry a FailureInfo instead of raising
        """
        started = time.perf_counter()
        opts = self._resolve(options)

        passages = await self.retriever.retrieve(query, opts.top_k, opts.filter)
        if not passages:
            return self._no_sources(query, started)

        generation = await self.generator.generate(query, passages)
        if generation.failed:
            return self._generation_failed(
                query, passages, generation.text, "All language models failed", started
            )

        assessment = await self.assess(generation.text, passages, opts.strict)
        return await self._finalize(
            query, generation.text, generation.model, passages, assessment, opts, started
        )

    async def stream_query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream an answer as tagged events.

        Yields SourcesFound, then Chunk events, then ValidationComplete and
        Done; a generation failure yields Error and ends the stream.
        """
        started = time.perf_counter()
        opts = self._resolve(options)

        passages = await self.retriever.retrieve(query, opts.top_k, opts.filter)
        yield SourcesFound(sources=passages)
        if not passages:
            yield Done(answer=self._no_sources(query, started))
            return

        chunks = []
        try:
            async for chunk in self.generator.stream(query, passages):
                chunks.append(chunk)
                yield Chunk(text=chunk)
        except LLMProviderError as e:
            logger.error(f"Streaming generation failed: {e}")
            yield Error(failure=FailureInfo(kind="generation_failed", message=str(e)))
            return

        text = "".join(chunks).strip()
        assessment = await self.assess(text, passages, opts.strict)
        yield ValidationComplete(
            confidence=assessment.confidence,
            citation_validations=assessment.validations,
            flagged_content=assessment.flags,
            requires_human_review=self._needs_review(assessment, opts),
        )

        answer = await self._finalize(
            query, text, self.generator.llm.model, passages, assessment, opts, started
        )
        yield Done(answer=answer)

    async def submit_review(self, task_id: str, decision: ReviewDecision) -> ReviewTask:
        """Record a reviewer's decision on a task."""
        task = await self.review.submit_review(task_id, decision)
        self._persist(self.AUDIT, f"{task_id}:{decision.decision}:{decision.decided_at.isoformat()}", {
            "event": "review_decision",
            "task_id": task_id,
            "validation_record_id": task.validation_record_id,
            "decision": decision.decision,
            "reviewer_id": decision.reviewer_id,
            "status": task.status,
            "at": decision.decided_at.isoformat(),
        })
        return task

    # ─────────────────────────────────────────────
    #  Stages
    # ─────────────────────────────────────────────

    async def assess(
        self,
        text: str,
        passages: Sequence[RetrievedPassage],
        strict: bool = False,
    ) -> Assessment:
        """Extract, validate, align, score, and flag one answer text."""
        citations = self.extractor.extract(text)
        validations, alignment = await asyncio.gather(
            self.validator.validate_all(citations, passages),
            self.aligner.align(text, passages),
        )
        confidence = self.scorer.score(passages, validations, alignment.alignment_per_claim)
        flags = self.flagger.flag(
            confidence,
            validations,
            answer_text=text,
            citations=citations,
            publication_strict=strict,
            sources_available=bool(passages),
        )
        logger.info(
            f"Assessed answer: {len(citations)} citations, "
            f"confidence {confidence.overall}, {len(flags)} flags"
        )
        return Assessment(citations, validations, alignment, confidence, flags)

    async def _finalize(
        self,
        query: str,
        text: str,
        model: Optional[str],
        passages: List[RetrievedPassage],
        assessment: Assessment,
        opts: _Options,
        started: float,
    ) -> Answer:
        original = text
        validations = assessment.validations
        corrected = regenerated = False

        if opts.auto_correct and any(f.requires_removal for f in assessment.flags):
            corrections = await self._suggest_corrections(assessment, passages)
            result = await self.correction.correct(
                text,
                assessment.flags,
                assessment.validations,
                passages,
                corrections=corrections,
                query=query,
            )
            text = result.text
            validations = result.citation_validations
            corrected = text != original
            if result.regenerated:
                regenerated = True
                model = result.model or model
                assessment = await self.assess(text, passages, opts.strict)
                validations = assessment.validations

        record_key = bundle_hash({
            "query": content_hash(query),
            "content": content_hash(text),
            "confidence": assessment.confidence.model_dump(mode="json"),
            "validations": [
                v.model_dump(mode="json", exclude={"validated_at"}) for v in validations
            ],
            "flags": [f.model_dump(mode="json") for f in assessment.flags],
        })
        record_id = f"vr_{record_key[:16]}"
        existing = self._lookup(self.RECORDS, record_key)

        task = None
        if self._needs_review(assessment, opts):
            task = self._linked_task(existing) or await self.review.open_task(
                content=text,
                confidence=assessment.confidence,
                flags=assessment.flags,
                query=query,
                validation_record_id=record_id,
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        record = ValidationRecord(
            record_id=record_id,
            content_hash=content_hash(text),
            query_hash=content_hash(query),
            confidence=assessment.confidence,
            citation_validations=validations,
            flagged_content=assessment.flags,
            evidence_chain=assessment.alignment.evidence_chain,
            source_hashes=[source_hash(p.source) for p in passages],
            requires_human_review=task is not None,
            review_task_id=task.id if task else None,
            processing_time_ms=elapsed_ms,
            bundle_hash=record_key,
        )
        if existing is None:
            self._persist(self.RECORDS, record_key, record.model_dump(mode="json"))
            self._persist(self.AUDIT, f"{record_id}:answer", {
                "event": "answer_validated",
                "validation_record_id": record_id,
                "query_hash": record.query_hash,
                "confidence": assessment.confidence.overall,
                "flags": len(assessment.flags),
                "review_task_id": record.review_task_id,
                "at": record.created_at.isoformat(),
            })
        elif task is not None and task.id != existing.get("review_task_id"):
            # Records are write-once; a task opened for a repeat is linked by audit row
            self._persist(self.AUDIT, f"{record_id}:{task.id}", {
                "event": "review_task_linked",
                "validation_record_id": record_id,
                "review_task_id": task.id,
                "at": record.created_at.isoformat(),
            })
        else:
            logger.info(f"{self.RECORDS}/{record_key} already stored")

        return Answer(
            query=query,
            answer=text,
            original_answer=original,
            sources=passages,
            citations=assessment.citations,
            citation_validations=validations,
            confidence=assessment.confidence,
            flagged_content=assessment.flags,
            evidence_chain=assessment.alignment.evidence_chain,
            citation_report=build_citation_report(validations),
            requires_human_review=task is not None,
            review_state=review_state_for(task),
            review_task_id=task.id if task else None,
            corrected=corrected,
            regenerated=regenerated,
            validation_record_id=record_id,
            model_used=model,
            processing_time_ms=elapsed_ms,
        )

    async def _suggest_corrections(
        self,
        assessment: Assessment,
        passages: Sequence[RetrievedPassage],
    ) -> Dict[str, str]:
        by_source = {p.source.id: p for p in passages}
        by_citation = {c.id: c for c in assessment.citations}

        pending = [
            (v, by_citation[v.citation_id], by_source.get(v.source_id))
            for v in assessment.validations
            if v.status == "flagged" and v.citation_id in by_citation
        ]
        suggestions = await asyncio.gather(
            *(self.corrector.suggest(c, v, p) for v, c, p in pending)
        )
        return {
            v.citation_id: s
            for (v, _, _), s in zip(pending, suggestions)
            if s
        }

    # ─────────────────────────────────────────────
    #  Helpers
    # ─────────────────────────────────────────────

    def _resolve(self, options: Optional[QueryOptions]) -> _Options:
        options = options or QueryOptions()

        def pick(value, default):
            return default if value is None else value

        return _Options(
            top_k=pick(options.top_k, self.settings.rag.top_k),
            filter=options.filter,
            strict=pick(options.strict_mode, self.settings.validation.strict_mode),
            review=pick(options.enable_review, self.settings.review.enabled),
            auto_correct=pick(options.auto_correct, self.settings.validation.auto_correct),
        )

    def _needs_review(self, assessment: Assessment, opts: _Options) -> bool:
        return opts.review and self.review.gate.requires_review(
            assessment.confidence, assessment.flags
        )

    def _no_sources(self, query: str, started: float) -> Answer:
        logger.info(f"No sources found for query '{query[:80]}'")
        return Answer(
            query=query,
            answer=INSUFFICIENT_INFORMATION_MESSAGE,
            original_answer=INSUFFICIENT_INFORMATION_MESSAGE,
            confidence=ConfidenceScore.zero("No relevant sources were found"),
            citation_report=build_citation_report([]),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )

    def _generation_failed(
        self,
        query: str,
        passages: List[RetrievedPassage],
        text: str,
        message: str,
        started: float,
    ) -> Answer:
        return Answer(
            query=query,
            answer=text,
            original_answer=text,
            sources=passages,
            confidence=ConfidenceScore.zero("Answer generation failed"),
            citation_report=build_citation_report([]),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            failure=FailureInfo(kind="generation_failed", message=message),
        )

    def _lookup(self, collection: str, key: str) -> Optional[Dict]:
        """Best-effort read; a failing store reads as absent."""
        try:
            return self.store.get(collection, key)
        except Exception as e:
            logger.error(f"Failed to read {collection}/{key}: {e!r}")
            return None

    def _linked_task(self, record: Optional[Dict]) -> Optional[ReviewTask]:
        """Review task already attached to a stored validation record."""
        task_id = (record or {}).get("review_task_id")
        if not task_id:
            return None
        try:
            return self.review.get_task(task_id)
        except ReviewTaskNotFoundError:
            logger.warning(f"Review task {task_id} of a stored record is missing")
        except Exception as e:
            logger.error(f"Failed to load review task {task_id}: {e!r}")
        return None

    def _persist(self, collection: str, key: str, payload: Dict) -> None:
        """Best-effort write; failures are logged, never raised."""
        logger.info(f"Persisting {collection}/{key}")
        try:
            inserted = self.store.insert(collection, key, payload)
            if not inserted:
                logger.info(f"{collection}/{key} already stored")
        except Exception as e:
            logger.error(f"Failed to persist {collection}/{key}: {e!r}")


def build_pipeline(settings=None) -> GroundedAnswerPipeline:
    """Wire the production collaborators from settings."""
    from veritas_server.llm import get_provider
    from veritas_server.pipeline.embedder import Embedder
    from veritas_server.pipeline.indexer import PassageStore
    from veritas_server.services.notifier import get_notifier
    from veritas_server.services.record_store import get_record_store
    from veritas_server.services.similarity import SemanticSimilarity

    settings = settings or get_settings()
    cache = CacheService(settings)
    embedder = Embedder(settings, cache)
    llm = get_provider(settings)
    similarity = SemanticSimilarity(embedder)
    store = get_record_store(settings)

    return GroundedAnswerPipeline(
        retriever=Retriever(embedder, PassageStore(settings), settings, cache),
        generator=AugmentedGenerator(llm, settings),
        validator=CitationValidator(similarity, settings),
        aligner=ClaimAligner(similarity, llm, settings.validation.llm_claim_extraction),
        review=ReviewService(store, get_notifier(settings), settings),
        store=store,
        settings=settings,
    )
