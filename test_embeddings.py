"""Embedding tool: batching, retries, dropped terms, dimension lock, HTTP provider."""
import asyncio
import json

import httpx
import numpy as np
import pytest

from conftest import FakeEmbeddingProvider, FlakyProvider, make_term
from niche_engine.errors import EmbeddingUnavailable
from niche_engine.tools.embeddings import (
    EmbeddingTool,
    OpenAIEmbeddingProvider,
    centroid,
    cosine_similarity,
    embed_terms,
)
from niche_engine.tools.retry import RetryPolicy


def test_cosine_similarity_handles_zero_vectors():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0


def test_centroid_of_single_vector_is_that_vector():
    np.testing.assert_allclose(centroid([[0.3, 0.4]]), [0.3, 0.4])


def test_embed_records_preserves_order_and_batches(fast_policy, fast_sleep):
    provider = FakeEmbeddingProvider(dim=4)
    records = [make_term(f"term {i}") for i in range(12)]
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_size=5, batch_delay=0.25, sleep=fast_sleep)

    result = asyncio.run(tool.embed_records(records))

    assert [r.term for r in result.records] == [r.term for r in records]
    assert all(len(r.embedding) == 4 for r in result.records)
    assert result.complete and result.dim == 4
    # 3 batches → 2 inter-batch delays, none after the last batch
    assert fast_sleep.delays == [0.25, 0.25]


def test_failed_terms_are_dropped_not_faked(fast_policy):
    provider = FakeEmbeddingProvider(dim=4, fail_terms={"broken term"})
    records = [make_term("ok one"), make_term("broken term"), make_term("ok two")]
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_delay=0)

    result = asyncio.run(tool.embed_records(records))

    assert [r.term for r in result.records] == ["ok one", "ok two"]
    assert len(result.failed) == 1
    assert result.failed[0].term == "broken term"
    assert result.failed[0].attempts == 3
    assert provider.calls.count("broken term") == 3
    assert not result.complete


def test_transient_failures_are_retried(fast_policy):
    provider = FlakyProvider(failures=2, dim=4)
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_delay=0)

    result = asyncio.run(tool.embed_records([make_term("wireless mouse")]))

    assert result.complete
    assert provider.attempts["wireless mouse"] == 3


def test_dimension_lock_rejects_mismatched_vectors(fast_policy):
    provider = FakeEmbeddingProvider(dim=4, vectors={"odd": [1.0, 2.0, 3.0]})
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_size=1, batch_delay=0)

    result = asyncio.run(tool.embed_records([make_term("first"), make_term("odd")]))

    assert tool.embedding_dim == 4
    assert [r.term for r in result.records] == ["first"]
    assert "Dimension mismatch" in result.failed[0].error
    # Rejected after one successful provider call, not retried
    assert result.failed[0].attempts == 1
    assert provider.calls.count("odd") == 1


def test_rejected_pre_embedded_record_reports_zero_attempts(fast_policy):
    provider = FakeEmbeddingProvider(dim=4)
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_size=1, batch_delay=0)
    records = [make_term("first"), make_term("cached", embedding=[0.1, 0.2])]

    result = asyncio.run(tool.embed_records(records))

    assert [f.term for f in result.failed] == ["cached"]
    assert result.failed[0].attempts == 0
    assert provider.calls == ["first"]


def test_declared_dimension_is_enforced_from_the_start(fast_policy):
    provider = FakeEmbeddingProvider(dim=8, expected_dim=1536)
    tool = EmbeddingTool(provider=provider, policy=fast_policy, batch_delay=0)

    result = asyncio.run(tool.embed_records([make_term("x")]))

    assert result.records == []
    assert result.dim == 1536


def test_non_finite_vectors_are_rejected(fast_policy):
    provider = FakeEmbeddingProvider(dim=2, vectors={"nan": [float("nan"), 1.0]})
    tool = EmbeddingTool(provider=provider, policy=RetryPolicy(max_attempts=1), batch_delay=0)
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(tool.embed("nan"))


def test_pre_embedded_records_skip_the_provider(fast_policy):
    provider = FakeEmbeddingProvider(dim=2)
    record = make_term("cached", embedding=[0.1, 0.2])
    result = asyncio.run(embed_terms([record], provider, policy=fast_policy, batch_delay=0))
    assert result.records[0].embedding == [0.1, 0.2]
    assert provider.calls == []


def _openai_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_openai_provider_posts_model_and_input():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.5, 0.25, 0.125]}]})

    provider = OpenAIEmbeddingProvider(
        api_key="sk-test", base_url="https://example.test/v1/", model="text-embedding-3-small",
        expected_dim=0, client=_openai_client(handler),
    )
    vector = asyncio.run(provider.embed("wireless mouse"))

    np.testing.assert_allclose(vector, [0.5, 0.25, 0.125])
    assert seen["url"] == "https://example.test/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": "wireless mouse"}
    assert provider.expected_dim is None


@pytest.mark.parametrize("response", [
    httpx.Response(429, text="rate limited"),
    httpx.Response(200, json={"data": []}),
    httpx.Response(200, text="not json"),
])
def test_openai_provider_failures_raise_embedding_unavailable(response):
    provider = OpenAIEmbeddingProvider(
        api_key="", base_url="https://example.test/v1", client=_openai_client(lambda request: response),
    )
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("x"))


def test_openai_provider_transport_error_raises_embedding_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenAIEmbeddingProvider(base_url="https://example.test/v1", client=_openai_client(handler))
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(provider.embed("x"))
