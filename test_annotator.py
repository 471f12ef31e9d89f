"""Semantic annotator through pydantic-ai FunctionModel (no network)."""
import asyncio

import pytest
from pydantic_ai.messages import ModelResponse, ToolCallPart
from pydantic_ai.models.function import FunctionModel

from niche_engine.errors import AnnotationUnavailable
from niche_engine.schemas import ClusterMetrics, Tag
from niche_engine.tools.annotator import (
    PLACEHOLDER_SUMMARY,
    SemanticAnnotator,
    build_annotation_prompt,
    placeholder_annotation,
)
from niche_engine.tools.llm_service import LLMService
from niche_engine.tools.retry import RetryPolicy

METRICS = ClusterMetrics(total_volume=1800, avg_growth=0.15, avg_click_share=0.2, opportunity_score=44)


def _annotator(fn, fast_sleep, attempts=3):
    return SemanticAnnotator(
        llm_service=LLMService(model=FunctionModel(fn)),
        policy=RetryPolicy(max_attempts=attempts, base_delay=0, sleep=fast_sleep),
        sample_terms=25,
        concurrency=2,
    )


def _answer(payload, calls=None):
    def fn(messages, info):
        if calls is not None:
            calls.append(messages)
        return ModelResponse(parts=[ToolCallPart(tool_name=info.output_tools[0].name, args=payload)])
    return fn


def test_prompt_samples_terms_and_reports_metrics():
    terms = [f"term {i}" for i in range(30)]
    prompt = build_annotation_prompt(terms, METRICS, [Tag(category="Format", value="Gummies")], sample_limit=25)
    assert "Total Search Volume: 1,800" in prompt
    assert "Average Growth (180d): 15.0%" in prompt
    assert "Average Click Share: 20.0%" in prompt
    assert "term 24" in prompt and "term 25" not in prompt
    assert "(... and 5 more)" in prompt
    assert "Known Tags: Format: Gummies" in prompt


def test_annotation_confidence_is_mean_of_tag_confidences(fast_sleep):
    payload = {
        "title": "Wireless Desk Peripherals",
        "description": "Shoppers upgrading to cable-free desk setups.",
        "tags": [
            {"category": "Function", "value": "Cable-free", "confidence": 0.9},
            {"category": "Format", "value": "Peripherals", "confidence": 0.7},
            {"value": "Office workers"},
        ],
    }
    annotation = asyncio.run(_annotator(_answer(payload), fast_sleep).annotate(
        ["wireless mouse", "wireless keyboard"], METRICS,
    ))

    assert annotation.title == "Wireless Desk Peripherals"
    assert annotation.summary == "Shoppers upgrading to cable-free desk setups."
    assert [t.category for t in annotation.tags] == ["Function", "Format", "Unknown"]
    assert annotation.tags[2].confidence == 0.5
    assert annotation.confidence == pytest.approx((0.9 + 0.7 + 0.5) / 3)


def test_annotation_without_tags_uses_default_confidence(fast_sleep):
    payload = {"title": " ".join(f"w{i}" for i in range(14)), "description": "", "tags": []}
    annotation = asyncio.run(_annotator(_answer(payload), fast_sleep).annotate(["a", "b"], METRICS))

    assert len(annotation.title.split()) == 10
    assert annotation.summary == "Analysis of related search terms."
    assert annotation.tags == []
    assert annotation.confidence == 0.8


def test_failures_are_retried_then_raise_annotation_unavailable(fast_sleep):
    calls = []

    def fn(messages, info):
        calls.append(1)
        raise RuntimeError("upstream 503")

    annotator = _annotator(fn, fast_sleep, attempts=3)
    with pytest.raises(AnnotationUnavailable):
        asyncio.run(annotator.annotate(["wireless mouse"], METRICS))
    assert len(calls) == 3
    assert len(fast_sleep.delays) == 2


def test_empty_cluster_gets_empty_placeholder(fast_sleep):
    calls = []
    annotation = asyncio.run(_annotator(_answer({}, calls), fast_sleep).annotate([], METRICS))
    assert annotation.title == "Empty Cluster"
    assert calls == []


def test_placeholder_annotation():
    annotation = placeholder_annotation(7)
    assert annotation.title == "Cluster (7 terms)"
    assert annotation.summary == PLACEHOLDER_SUMMARY
    assert annotation.tags == [] and annotation.confidence == 0.0


def test_pattern_and_insight_descriptions(fast_sleep):
    annotator = _annotator(_answer({"description": "Sleep-focused gummy formats", "confidence": 1.4}), fast_sleep)
    pattern = asyncio.run(annotator.describe_pattern(["sleep gummies", "melatonin gummies"]))
    relationship = asyncio.run(annotator.describe_relationship(["sleep gummies"]))
    insight = asyncio.run(annotator.generate_insight("Sleep-focused gummy formats", "format", ["sleep gummies"]))

    assert pattern.description == "Sleep-focused gummy formats"
    assert pattern.confidence == 1.0
    assert relationship.confidence == 1.0
    assert insight.description == "Sleep-focused gummy formats"


def test_mock_mode_produces_deterministic_annotation(fast_sleep):
    annotator = SemanticAnnotator(
        llm_service=LLMService(mock_mode=True),
        policy=RetryPolicy(max_attempts=1, sleep=fast_sleep),
    )
    first = asyncio.run(annotator.annotate(["wireless mouse", "wireless keyboard"], METRICS))
    second = asyncio.run(annotator.annotate(["wireless mouse", "wireless keyboard"], METRICS))

    assert first == second
    assert first.title == "Wireless Mouse Shoppers"
    assert first.confidence == pytest.approx(0.5)
