"""
Veritas Server - Configuration

Pydantic Settings for all configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional, Literal, List
from pathlib import Path


class QdrantSettings(BaseSettings):
    """Qdrant passage store configuration."""
    host: str = Field("localhost", alias="QDRANT_HOST")
    port: int = Field(6333, alias="QDRANT_PORT")
    collection: str = Field("legal_passages", alias="QDRANT_COLLECTION")
    api_key: Optional[str] = Field(None, alias="QDRANT_API_KEY")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    provider: Literal["lm_studio", "openai", "azure"] = Field(
        "openai", alias="LLM_PROVIDER"
    )
    base_url: str = Field("https://api.openai.com/v1", alias="LLM_BASE_URL")
    api_key: Optional[str] = Field(None, alias="LLM_API_KEY")
    # Priority order; later models are fallbacks.
    models: List[str] = Field(
        ["gpt-4o", "gpt-4o-mini"], alias="LLM_MODELS"
    )
    timeout_ms: int = Field(30000, alias="LLM_TIMEOUT_MS")
    temperature: float = Field(0.1, alias="LLM_TEMPERATURE")
    max_tokens: int = Field(2000, alias="LLM_MAX_TOKENS")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class EmbeddingSettings(BaseSettings):
    """Embedding model configuration."""
    model_dense: str = Field(
        "BAAI/bge-base-en-v1.5", alias="EMBEDDING_MODEL_DENSE"
    )
    dimensions: int = Field(768, alias="EMBEDDING_DIMENSIONS")
    batch_size: int = Field(32, alias="EMBEDDING_BATCH_SIZE")
    cache_dir: Path = Field(
        Path("./models_cache"), alias="MODELS_CACHE_DIR"
    )

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class MCPSettings(BaseSettings):
    """MCP server configuration."""
    transport: Literal["sse", "stdio"] = Field("sse", alias="MCP_TRANSPORT")
    port: int = Field(8080, alias="MCP_PORT")
    host: str = Field("0.0.0.0", alias="MCP_HOST")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class CacheSettings(BaseSettings):
    """Caching configuration."""
    enabled: bool = Field(True, alias="CACHE_ENABLED")
    ttl_query: int = Field(300, alias="CACHE_TTL_QUERY_SECONDS")
    ttl_content: int = Field(3600, alias="CACHE_TTL_CONTENT_SECONDS")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class RAGSettings(BaseSettings):
    """Retrieval and generation configuration."""
    top_k: int = Field(8, alias="RAG_TOP_K")
    max_passage_chars: int = Field(2000, alias="RAG_MAX_PASSAGE_CHARS")
    rerank: bool = Field(False, alias="RAG_RERANK")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class ValidationSettings(BaseSettings):
    """Citation validation and confidence gating thresholds."""
    # Integrity-level gate for CitationValidation.status
    min_similarity: float = Field(0.5, alias="VALIDATION_MIN_SIMILARITY")
    min_authority: int = Field(30, alias="VALIDATION_MIN_AUTHORITY")
    # Publication-level gate used by the flagger
    publish_similarity: float = Field(0.6, alias="VALIDATION_PUBLISH_SIMILARITY")
    publish_similarity_strict: float = Field(
        0.8, alias="VALIDATION_PUBLISH_SIMILARITY_STRICT"
    )
    publish_min_authority: int = Field(50, alias="VALIDATION_PUBLISH_MIN_AUTHORITY")
    strict_mode: bool = Field(False, alias="VALIDATION_STRICT_MODE")
    auto_correct: bool = Field(True, alias="VALIDATION_AUTO_CORRECT")
    llm_claim_extraction: bool = Field(False, alias="VALIDATION_LLM_CLAIMS")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class ReviewSettings(BaseSettings):
    """Human-in-the-loop review configuration."""
    enabled: bool = Field(True, alias="REVIEW_ENABLED")
    confidence_threshold: int = Field(75, alias="REVIEW_CONFIDENCE_THRESHOLD")
    sla_hours: int = Field(24, alias="REVIEW_SLA_HOURS")
    default_assignee: str = Field("default_reviewer", alias="REVIEW_DEFAULT_ASSIGNEE")
    webhook_url: Optional[str] = Field(None, alias="REVIEW_WEBHOOK_URL")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class StoreSettings(BaseSettings):
    """Structured record store configuration."""
    backend: Literal["qdrant", "memory"] = Field("qdrant", alias="RECORD_STORE_BACKEND")
    collection_prefix: str = Field("veritas_", alias="RECORD_STORE_PREFIX")

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class LogSettings(BaseSettings):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", alias="LOG_LEVEL"
    )

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rag: RAGSettings = Field(default_factory=RAGSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = {"env_prefix": "", "extra": "ignore"}


def get_settings() -> Settings:
    """Load settings from environment variables."""
    from dotenv import load_dotenv
    load_dotenv()
    return Settings()
