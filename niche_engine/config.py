"""
Configuration management for the niche clustering engine.
Supports a local sentence-transformers model or an OpenAI-compatible
embeddings endpoint, and any pydantic-ai model string for annotation.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Embeddings ──
    # "local" = sentence-transformers on this machine, "openai" = /v1/embeddings over HTTP
    embedding_provider: str = Field(default="openai", alias="EMBEDDING_PROVIDER")
    local_embedding_model: str = Field(default="all-MiniLM-L6-v2", alias="LOCAL_EMBEDDING_MODEL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_embedding_model: str = Field(default="text-embedding-3-small", alias="OPENAI_EMBEDDING_MODEL")
    # 1536 for text-embedding-3-small / ada-002. 0 = accept whatever the first vector has.
    embedding_dim: int = Field(default=1536, alias="EMBEDDING_DIM")
    embedding_timeout: float = Field(default=30.0, alias="EMBEDDING_TIMEOUT")
    # Terms embedded concurrently per batch; batches run one after another
    embedding_batch_size: int = Field(default=5, alias="EMBEDDING_BATCH_SIZE")
    embedding_batch_delay: float = Field(default=1.0, alias="EMBEDDING_BATCH_DELAY")

    # ── Retry / backoff (embedding + annotation calls) ──
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(default=1.0, alias="RETRY_BASE_DELAY")
    retry_multiplier: float = Field(default=2.0, alias="RETRY_MULTIPLIER")
    retry_max_delay: float = Field(default=30.0, alias="RETRY_MAX_DELAY")

    # ── Density clustering (HDBSCAN) ──
    # min_cluster_size = max(2, floor(fraction * N)); min_samples = max(1, floor(fraction * mcs))
    cluster_min_size_fraction: float = Field(default=0.05, alias="CLUSTER_MIN_SIZE_FRACTION")
    cluster_min_samples_fraction: float = Field(default=0.5, alias="CLUSTER_MIN_SAMPLES_FRACTION")

    # ── Temporal tracking ──
    # Historical term counts toward a cluster when cosine(term, centroid) >= threshold
    temporal_match_threshold: float = Field(default=0.7, alias="TEMPORAL_MATCH_THRESHOLD")
    temporal_trend_window: int = Field(default=3, alias="TEMPORAL_TREND_WINDOW")

    # ── Annotation (pydantic-ai) ──
    annotation_model: str = Field(default="openai:gpt-4o", alias="ANNOTATION_MODEL")
    annotation_temperature: float = Field(default=0.3, alias="ANNOTATION_TEMPERATURE")
    annotation_sample_terms: int = Field(default=25, alias="ANNOTATION_SAMPLE_TERMS")
    annotation_concurrency: int = Field(default=4, alias="ANNOTATION_CONCURRENCY")
    annotate_metadata_patterns: bool = Field(default=True, alias="ANNOTATE_METADATA_PATTERNS")
    mock_mode: bool = Field(default=False, alias="MOCK_MODE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
