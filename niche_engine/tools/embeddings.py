"""
Embeddings tool for generating vector representations of search terms.

Supports:
1. OpenAI-compatible /embeddings endpoint over httpx (reference: 1536-dim)
2. Local Sentence Transformers (no API calls)

Terms are embedded in sequential batches of 5; terms within a batch run
concurrently and a fixed delay separates batches to respect provider rate
limits. Every call goes through a RetryPolicy (3 attempts, exponential
backoff).

A term that still fails after retries is DROPPED from clustering and reported
as a FailedTerm. No substitute vector is ever generated for it.

IMPORTANT: All vectors in one run MUST share one dimension. The first vector
locks the dimension (or the provider declares it up front); a later vector of
another length is rejected as EmbeddingUnavailable for that term.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
import numpy as np

from ..config import get_settings
from ..errors import EmbeddingUnavailable
from ..schemas.terms import FailedTerm, TermRecord
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# Singleton for local model (avoids reloading on every provider instantiation)
_local_model = None
_local_model_name = None


def _get_device() -> str:
    """Detect best available device: CUDA GPU > CPU."""
    try:
        import torch
        if torch.cuda.is_available():
            logger.info(f"GPU detected: {torch.cuda.get_device_name(0)}; using CUDA")
            return "cuda"
    except ImportError:
        pass
    return "cpu"


def _get_local_model(model_name: str):
    """Load local sentence-transformers model (singleton, lazy-loaded)."""
    global _local_model, _local_model_name
    if _local_model is not None and _local_model_name == model_name:
        return _local_model
    try:
        from sentence_transformers import SentenceTransformer
        device = _get_device()
        logger.info(f"Loading local embedding model: {model_name} on {device}...")
        _local_model = SentenceTransformer(model_name, device=device)
        _local_model_name = model_name
        logger.info(
            f"Local embedding model loaded: {model_name} "
            f"(dim={_local_model.get_sentence_embedding_dimension()}, device={device})"
        )
        return _local_model
    except Exception as e:
        logger.error(f"Failed to load local embedding model '{model_name}': {type(e).__name__}: {e}")
        raise EmbeddingUnavailable(f"Local embedding model unavailable: {e}", context=model_name) from e


# ── Vector math ─────────────────────────────────────────────────────────

def cosine_similarity(a, b) -> float:
    """Cosine similarity in [-1, 1]. 0.0 when either vector has zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


def cosine_similarity_matrix(vectors: np.ndarray) -> np.ndarray:
    """Pairwise cosine similarities of the rows of `vectors`."""
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    normalized = vectors / norms
    return np.clip(normalized @ normalized.T, -1.0, 1.0)


def centroid(vectors: Sequence) -> np.ndarray:
    """Element-wise mean of a non-empty set of vectors."""
    matrix = np.asarray(vectors, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        raise ValueError("centroid requires a non-empty 2-D set of vectors")
    return matrix.mean(axis=0)


# ── Providers ───────────────────────────────────────────────────────────

class EmbeddingProvider:
    """Maps one text to one vector. Raises EmbeddingUnavailable on failure."""

    name = "base"
    expected_dim: Optional[int] = None

    async def embed(self, text: str) -> np.ndarray:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class LocalEmbeddingProvider(EmbeddingProvider):
    """sentence-transformers model on this machine. Encoding runs in a worker
    thread so the event loop keeps serving other terms of the batch."""

    name = "local"

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or get_settings().local_embedding_model

    async def embed(self, text: str) -> np.ndarray:
        model = _get_local_model(self.model_name)
        try:
            vector = await asyncio.to_thread(model.encode, text, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingUnavailable(f"Local encode failed: {type(e).__name__}: {e}", context=text) from e
        return np.asarray(vector, dtype=np.float64)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """POST {base_url}/embeddings with {"model", "input"} (OpenAI wire format)."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        expected_dim: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.model = model or settings.openai_embedding_model
        self.timeout = timeout or settings.embedding_timeout
        dim = expected_dim if expected_dim is not None else settings.embedding_dim
        self.expected_dim = dim if dim and dim > 0 else None
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def embed(self, text: str) -> np.ndarray:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = await self.client.post(
                f"{self.base_url}/embeddings",
                headers=headers,
                json={"model": self.model, "input": text},
            )
        except httpx.HTTPError as e:
            raise EmbeddingUnavailable(f"Embedding request failed: {type(e).__name__}: {e}", context=text) from e

        if response.status_code != 200:
            raise EmbeddingUnavailable(
                f"Embedding API returned {response.status_code}: {response.text[:200]}", context=text,
            )
        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingUnavailable(f"Malformed embedding response: {e}", context=text) from e
        return np.asarray(vector, dtype=np.float64)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def get_embedding_provider(settings=None) -> EmbeddingProvider:
    """Build the provider named by EMBEDDING_PROVIDER."""
    settings = settings or get_settings()
    choice = settings.embedding_provider.strip().lower()
    if choice == "local":
        return LocalEmbeddingProvider(settings.local_embedding_model)
    if choice == "openai":
        return OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_embedding_model,
            timeout=settings.embedding_timeout,
            expected_dim=settings.embedding_dim,
        )
    raise ValueError(f"Unknown EMBEDDING_PROVIDER '{settings.embedding_provider}' (expected 'local' or 'openai')")


# ── Batch embedding ─────────────────────────────────────────────────────

@dataclass
class EmbeddingBatchResult:
    records: List[TermRecord] = field(default_factory=list)   # embedded, input order
    failed: List[FailedTerm] = field(default_factory=list)
    dim: Optional[int] = None

    @property
    def complete(self) -> bool:
        return not self.failed


class EmbeddingTool:
    """
    Embed term records through a provider with retry, batching and a
    per-run dimension lock.

    One EmbeddingTool per pipeline run: the lock is not shared across runs.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        policy: Optional[RetryPolicy] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        expected_dim: Optional[int] = None,
        sleep=asyncio.sleep,
    ) -> None:
        self.settings = get_settings()
        self.provider = provider or get_embedding_provider(self.settings)
        self.policy = policy or RetryPolicy.from_settings(self.settings)
        self.batch_size = max(1, batch_size or self.settings.embedding_batch_size)
        self.batch_delay = self.settings.embedding_batch_delay if batch_delay is None else batch_delay
        self._sleep = sleep
        self._embedding_dim: Optional[int] = expected_dim or self.provider.expected_dim
        self._dim_locked = self._embedding_dim is not None

    @property
    def embedding_dim(self) -> Optional[int]:
        return self._embedding_dim

    def _check_vector(self, vector: Any, text: str) -> np.ndarray:
        """Validate shape/finiteness and enforce the dimension lock."""
        arr = np.asarray(vector, dtype=np.float64)
        if arr.ndim != 1 or arr.size == 0:
            raise EmbeddingUnavailable(f"Invalid embedding shape {arr.shape}", context=text)
        if not np.all(np.isfinite(arr)):
            raise EmbeddingUnavailable("Embedding contains non-finite values", context=text)
        if not self._dim_locked:
            self._embedding_dim = int(arr.size)
            self._dim_locked = True
            logger.info(f"Embedding dimension locked at {self._embedding_dim} ({self.provider.name})")
        elif arr.size != self._embedding_dim:
            raise EmbeddingUnavailable(
                f"Dimension mismatch: got {arr.size}, run is locked to {self._embedding_dim}", context=text,
            )
        return arr

    async def embed(self, text: str) -> np.ndarray:
        """Embed one text with retries. Raises EmbeddingUnavailable."""
        attempts = 0

        async def call(t: str):
            nonlocal attempts
            attempts += 1
            return await self.provider.embed(t)

        try:
            vector = await self.policy.run(call, text, label=text)
            return self._check_vector(vector, text)
        except EmbeddingUnavailable as e:
            e.attempts = attempts
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"{type(e).__name__}: {e}", context=text, attempts=attempts) from e

    async def _embed_record(self, record: TermRecord) -> TermRecord:
        if record.has_embedding:
            self._check_vector(record.embedding, record.term)
            return record
        vector = await self.embed(record.term)
        return record.with_embedding(vector)

    async def embed_records(self, records: Sequence[TermRecord]) -> EmbeddingBatchResult:
        """Embed records in sequential batches with concurrency inside a batch.

        Failed terms are dropped from `records` and listed in `failed`.
        """
        slots: List[Optional[TermRecord]] = [None] * len(records)
        failed: List[FailedTerm] = []
        n_batches = (len(records) + self.batch_size - 1) // self.batch_size

        for b in range(n_batches):
            start = b * self.batch_size
            batch = records[start:start + self.batch_size]
            results = await asyncio.gather(
                *[self._embed_record(r) for r in batch],
                return_exceptions=True,
            )
            for offset, result in enumerate(results):
                record = batch[offset]
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logger.warning(f"Dropping term '{record.term}' from clustering: {result}")
                    attempts = result.attempts if isinstance(result, EmbeddingUnavailable) else 0
                    failed.append(FailedTerm(term=record.term, error=str(result), attempts=attempts))
                else:
                    slots[start + offset] = result
            if b < n_batches - 1 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        embedded = [r for r in slots if r is not None]
        logger.info(f"Embedded {len(embedded)}/{len(records)} terms ({len(failed)} failed)")
        return EmbeddingBatchResult(records=embedded, failed=failed, dim=self._embedding_dim)

    async def aclose(self) -> None:
        await self.provider.aclose()


async def embed_terms(
    records: Sequence[TermRecord],
    provider: EmbeddingProvider,
    policy: Optional[RetryPolicy] = None,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
) -> EmbeddingBatchResult:
    """One-shot helper: embed `records` with a fresh dimension lock."""
    tool = EmbeddingTool(provider=provider, policy=policy, batch_size=batch_size, batch_delay=batch_delay)
    return await tool.embed_records(records)
