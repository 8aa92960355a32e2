"""
Services Module - Business Logic Layer

Provides retrieval, generation, citation validation, confidence scoring,
flagging, correction, human review, persistence, and caching.
"""

from veritas_server.services.cache_service import CacheService
from veritas_server.services.authority import score_authority
from veritas_server.services.citation_extractor import CitationExtractor
from veritas_server.services.citation_validator import CitationValidator, is_publishable
from veritas_server.services.claim_alignment import ClaimAligner
from veritas_server.services.confidence_scorer import ConfidenceScorer
from veritas_server.services.content_flagger import ContentFlagger
from veritas_server.services.correction import CitationCorrector, CorrectionPass
from veritas_server.services.generator import AugmentedGenerator
from veritas_server.services.notifier import LogNotifier, WebhookNotifier
from veritas_server.services.record_store import InMemoryRecordStore, QdrantRecordStore
from veritas_server.services.retriever import Retriever
from veritas_server.services.review_gate import (
    HumanReviewGate,
    ReviewService,
    ReviewTaskNotFoundError,
    ReviewTransitionError,
)
from veritas_server.services.similarity import SemanticSimilarity
from veritas_server.services.validation_pipeline import (
    GroundedAnswerPipeline,
    build_pipeline,
)

__all__ = [
    "CacheService",
    "score_authority",
    "CitationExtractor",
    "CitationValidator",
    "is_publishable",
    "ClaimAligner",
    "ConfidenceScorer",
    "ContentFlagger",
    "CitationCorrector",
    "CorrectionPass",
    "AugmentedGenerator",
    "LogNotifier",
    "WebhookNotifier",
    "InMemoryRecordStore",
    "QdrantRecordStore",
    "Retriever",
    "HumanReviewGate",
    "ReviewService",
    "ReviewTaskNotFoundError",
    "ReviewTransitionError",
    "SemanticSimilarity",
    "GroundedAnswerPipeline",
    "build_pipeline",
]
