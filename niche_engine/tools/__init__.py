# Tools module: external collaborators (embedding provider, LLM annotator)
from .retry import RetryPolicy
from .llm_service import LLMService
from .embeddings import (
    EmbeddingTool,
    EmbeddingProvider,
    EmbeddingBatchResult,
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
    embed_terms,
    cosine_similarity,
    cosine_similarity_matrix,
    centroid,
)
from .annotator import SemanticAnnotator, placeholder_annotation

__all__ = [
    # Retry
    "RetryPolicy",
    # LLM
    "LLMService",
    "SemanticAnnotator",
    "placeholder_annotation",
    # Embeddings
    "EmbeddingTool",
    "EmbeddingProvider",
    "EmbeddingBatchResult",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "get_embedding_provider",
    "embed_terms",
    "cosine_similarity",
    "cosine_similarity_matrix",
    "centroid",
]
