"""
Semantic annotator: title, summary and tags for a cluster via an LLM.

Best-effort enrichment. Every public call raises AnnotationUnavailable after
its retries are exhausted; the engine turns that into placeholder text so a
failed annotation never removes a cluster from the output.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from ..config import get_settings
from ..errors import AnnotationUnavailable
from ..schemas.base import PatternDescription, Tag
from ..schemas.clusters import ClusterAnnotation, ClusterMetrics
from ..schemas.llm_outputs import ClusterAnnotationLLM, InsightLLM, PatternDescriptionLLM
from .llm_service import LLMService
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ANNOTATION_SYSTEM_PROMPT = (
    "You are a helpful assistant skilled in analyzing search term data to identify "
    "user intent, behavioral patterns, and relevant product attributes. "
    "Base every answer ONLY on the terms and metrics you are given."
)

PATTERN_SYSTEM_PROMPT = (
    "You are an expert at identifying patterns in search terms. "
    "Provide clear, concise descriptions with confidence scores."
)

RELATIONSHIP_SYSTEM_PROMPT = (
    "You are an expert at identifying relationships between metadata attributes. "
    "Provide clear, concise descriptions with confidence scores."
)

INSIGHT_SYSTEM_PROMPT = (
    "You are an expert at generating business insights from patterns. "
    "Provide clear, actionable insights with confidence scores."
)

# Used when the annotator returns tags but no usable signal on confidence
_DEFAULT_CONFIDENCE = 0.8

PLACEHOLDER_SUMMARY = "Error generating AI insights for this cluster."
DEFAULT_SUMMARY = "Analysis of related search terms."


def placeholder_title(n_terms: int) -> str:
    return f"Cluster ({n_terms} terms)"


def placeholder_annotation(n_terms: int) -> ClusterAnnotation:
    """Annotation used when the annotator is unavailable."""
    if n_terms == 0:
        return ClusterAnnotation(title="Empty Cluster", summary="Empty Cluster", tags=[], confidence=0.0)
    return ClusterAnnotation(title=placeholder_title(n_terms), summary=PLACEHOLDER_SUMMARY, tags=[], confidence=0.0)


def build_annotation_prompt(
    terms: Sequence[str],
    metrics: ClusterMetrics,
    tags: Optional[Sequence[Tag]] = None,
    sample_limit: int = 25,
) -> str:
    sample = list(terms)[:sample_limit]
    more = f"\n(... and {len(terms) - sample_limit} more)" if len(terms) > sample_limit else ""
    known_tags = ""
    if tags:
        known_tags = "\nKnown Tags: " + ", ".join(t.label() for t in tags)

    return f"""Analyze the following search terms cluster representing user search behavior.
Cluster Metrics:
- Total Search Volume: {metrics.total_volume:,.0f}
- Average Growth (180d): {metrics.avg_growth * 100:.1f}%
- Average Click Share: {metrics.avg_click_share * 100:.1f}%

Search Terms (sample): {", ".join(sample)}{more}{known_tags}

Based ONLY on the provided terms and metrics, generate:
1. A concise, descriptive 'title' (max 10 words) summarizing the core user intent or theme.
2. A brief 'description' (1-2 sentences) explaining the theme and user behavior.
3. Relevant 'tags' (5-7 tags) categorized under Format, Function, Values, Audience, Behavior. Assign a confidence score (0-1) for each tag."""


def _truncate_title(title: str, max_words: int = 10) -> str:
    words = title.split()
    return " ".join(words[:max_words])


class SemanticAnnotator:
    """Cluster annotation and pattern description through LLMService."""

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        policy: Optional[RetryPolicy] = None,
        sample_terms: Optional[int] = None,
        concurrency: Optional[int] = None,
    ):
        self.settings = get_settings()
        self.llm = llm_service or LLMService()
        self.policy = policy or RetryPolicy.from_settings(self.settings)
        self.sample_terms = sample_terms or self.settings.annotation_sample_terms
        self._semaphore = asyncio.Semaphore(max(1, concurrency or self.settings.annotation_concurrency))

    async def _call(self, prompt: str, system_prompt: str, output_type, label: str):
        async def _once():
            async with self._semaphore:
                return await self.llm.run_structured(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    output_type=output_type,
                )

        try:
            return await self.policy.run(_once, label=label)
        except Exception as e:
            raise AnnotationUnavailable(f"{type(e).__name__}: {e}", context=label) from e

    async def annotate(
        self,
        terms: Sequence[str],
        metrics: ClusterMetrics,
        tags: Optional[Sequence[Tag]] = None,
    ) -> ClusterAnnotation:
        """Title, summary, tags and confidence for a cluster.

        Raises AnnotationUnavailable when the LLM cannot be reached or keeps
        returning invalid output.
        """
        if not terms:
            return placeholder_annotation(0)

        prompt = build_annotation_prompt(terms, metrics, tags, self.sample_terms)
        logger.debug(f"Annotating cluster with {len(terms)} terms. Sample: {', '.join(list(terms)[:3])}")
        result: ClusterAnnotationLLM = await self._call(
            prompt, ANNOTATION_SYSTEM_PROMPT, ClusterAnnotationLLM, label=f"annotate:{terms[0]}",
        )

        parsed_tags = [
            Tag(category=t.category, value=t.value, confidence=t.confidence)
            for t in result.tags if t.value
        ]
        if parsed_tags:
            confidence = sum(t.confidence or 0.0 for t in parsed_tags) / len(parsed_tags)
        else:
            confidence = _DEFAULT_CONFIDENCE

        return ClusterAnnotation(
            title=_truncate_title(result.title) or placeholder_title(len(terms)),
            summary=result.description or DEFAULT_SUMMARY,
            tags=parsed_tags,
            confidence=confidence,
        )

    async def describe_pattern(self, terms: Sequence[str]) -> PatternDescription:
        prompt = (
            f"Analyze these search terms and identify the common pattern: {', '.join(terms)}. "
            f"Provide a concise description of the pattern and a confidence score (0-1)."
        )
        result = await self._call(prompt, PATTERN_SYSTEM_PROMPT, PatternDescriptionLLM, label="pattern")
        return PatternDescription(description=result.description, confidence=result.confidence)

    async def describe_relationship(self, terms: Sequence[str]) -> PatternDescription:
        prompt = (
            f"Analyze these search terms and identify the relationship between their metadata "
            f"attributes: {', '.join(terms)}. "
            f"Provide a concise description of the relationship and a confidence score (0-1)."
        )
        result = await self._call(prompt, RELATIONSHIP_SYSTEM_PROMPT, PatternDescriptionLLM, label="relationship")
        return PatternDescription(description=result.description, confidence=result.confidence)

    async def generate_insight(self, description: str, kind: str, terms: Sequence[str]) -> PatternDescription:
        """Business insight for a described pattern or relationship."""
        prompt = (
            f'Based on this {kind} pattern: "{description}", generate a business insight. '
            f"Consider the following terms: {', '.join(terms)}."
        )
        result: InsightLLM = await self._call(prompt, INSIGHT_SYSTEM_PROMPT, InsightLLM, label=f"insight:{kind}")
        return PatternDescription(description=result.description, confidence=result.confidence)
