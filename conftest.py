"""
Shared fakes for the test suite. No network access, no model downloads.
"""
import hashlib
from collections import defaultdict

import numpy as np
import pytest

from niche_engine.config import get_settings
from niche_engine.errors import AnnotationUnavailable, EmbeddingUnavailable
from niche_engine.schemas import ClusterAnnotation, PatternDescription, Tag, TermRecord
from niche_engine.tools.embeddings import EmbeddingProvider
from niche_engine.tools.llm_service import LLMService
from niche_engine.tools.retry import RetryPolicy


class FakeEmbeddingProvider(EmbeddingProvider):
    """Hash-seeded vectors, or explicit vectors for chosen terms."""

    name = "fake"

    def __init__(self, dim=8, vectors=None, fail_terms=(), expected_dim=None):
        self.dim = dim
        self.vectors = {k: np.asarray(v, dtype=np.float64) for k, v in (vectors or {}).items()}
        self.fail_terms = set(fail_terms)
        self.expected_dim = expected_dim
        self.calls = []
        self.closed = False

    async def embed(self, text):
        self.calls.append(text)
        if text in self.fail_terms:
            raise EmbeddingUnavailable("fake provider down", context=text)
        if text in self.vectors:
            return self.vectors[text].copy()
        seed = int(hashlib.md5(text.encode()).hexdigest()[:8], 16)
        return np.random.default_rng(seed).normal(size=self.dim)

    async def aclose(self):
        self.closed = True


class FlakyProvider(FakeEmbeddingProvider):
    """Fails the first `failures` calls for every term, then succeeds."""

    name = "flaky"

    def __init__(self, failures=1, error=None, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.error = error or RuntimeError("connection reset")
        self.attempts = defaultdict(int)

    async def embed(self, text):
        self.attempts[text] += 1
        if self.attempts[text] <= self.failures:
            raise self.error
        return await super().embed(text)


class FakeAnnotator:
    """Duck-typed SemanticAnnotator. `fail=True` makes every call unavailable."""

    def __init__(self, fail=False, pattern_confidence=0.8, insight_confidence=0.5, fail_annotate_for=()):
        self.fail = fail
        self.pattern_confidence = pattern_confidence
        self.insight_confidence = insight_confidence
        self.fail_annotate_for = set(fail_annotate_for)
        self.annotated = []

    def _check(self, label):
        if self.fail:
            raise AnnotationUnavailable("annotator offline", context=label)

    async def annotate(self, terms, metrics, tags=None):
        self._check("annotate")
        if self.fail_annotate_for.intersection(terms):
            raise AnnotationUnavailable("rate limited", context=terms[0])
        self.annotated.append(list(terms))
        return ClusterAnnotation(
            title=f"{terms[0]} niche",
            summary=f"{len(terms)} related searches",
            tags=[Tag(category="Function", value="test", confidence=0.9)],
            confidence=0.9,
        )

    async def describe_pattern(self, terms):
        self._check("pattern")
        return PatternDescription(description=f"pattern of {len(terms)}", confidence=self.pattern_confidence)

    async def describe_relationship(self, terms):
        self._check("relationship")
        return PatternDescription(description=f"relationship of {len(terms)}", confidence=self.pattern_confidence)

    async def generate_insight(self, description, kind, terms):
        self._check("insight")
        return PatternDescription(description=f"insight on {description}", confidence=self.insight_confidence)


class RecordingSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_term(term, volume=100.0, growth=0.0, competition=50.0, click_share=0.1, embedding=None, **attributes):
    return TermRecord(
        term=term, volume=volume, growth=growth, competition=competition,
        click_share=click_share, embedding=embedding, attributes=attributes,
    )


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Settings come from defaults, never from a developer's .env."""
    monkeypatch.setenv("MOCK_MODE", "false")
    monkeypatch.setenv("EMBEDDING_BATCH_DELAY", "0")
    get_settings.cache_clear()
    LLMService.clear_cache()
    yield
    get_settings.cache_clear()
    LLMService.clear_cache()


@pytest.fixture
def fast_sleep():
    return RecordingSleep()


@pytest.fixture
def fast_policy(fast_sleep):
    return RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, sleep=fast_sleep)


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_annotator():
    return FakeAnnotator()
