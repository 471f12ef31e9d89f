"""
Post-clustering enrichment: metrics, evidence and the serialisable view.

Deterministic, no LLM. Turns a merge-tree node plus whatever enrichment
succeeded (annotation, temporal metrics, metadata) into an EnrichedCluster.

Evidence mirrors what a reader needs to sanity-check a cluster title:
  key_terms:        top 5 terms by volume
  key_metrics:      Volume, Growth, Click Share
  supporting_tags:  "Category: value" for every tag
"""

import logging
from typing import List, Optional, Sequence

from ..schemas.base import AnnotationStatus, KeyMetric, Tag
from ..schemas.clusters import (
    Cluster, ClusterAnnotation, ClusterEvidence, ClusterMetrics, ClusterTerm, EnrichedCluster,
)
from ..schemas.metadata import MetadataAnalysis
from ..schemas.terms import TermRecord

logger = logging.getLogger(__name__)

KEY_TERM_COUNT = 5


def key_terms(terms: Sequence[TermRecord], limit: int = KEY_TERM_COUNT) -> List[str]:
    """Highest-volume terms first; equal volumes keep cluster order."""
    ranked = sorted(terms, key=lambda t: t.volume, reverse=True)
    return [t.term for t in ranked[:limit]]


def build_evidence(terms: Sequence[TermRecord], metrics: ClusterMetrics, tags: Sequence[Tag]) -> ClusterEvidence:
    return ClusterEvidence(
        key_terms=key_terms(terms),
        key_metrics=[
            KeyMetric(name="Volume", value=metrics.total_volume, significance="Total search volume"),
            KeyMetric(name="Growth", value=metrics.avg_growth, significance="Average growth rate"),
            KeyMetric(name="Click Share", value=metrics.avg_click_share, significance="Average click share"),
        ],
        supporting_tags=[t.label() for t in tags],
    )


def enrich_cluster(
    cluster: Cluster,
    metrics: ClusterMetrics,
    annotation: ClusterAnnotation,
    status: AnnotationStatus,
    metadata: Optional[MetadataAnalysis] = None,
) -> EnrichedCluster:
    """Assemble the output view of one cluster. Attaches annotation tags to
    the cluster node as well."""
    cluster.tags = list(annotation.tags)
    return EnrichedCluster(
        id=cluster.id,
        level=cluster.level,
        similarity=cluster.similarity,
        children=cluster.children,
        is_noise=cluster.is_noise,
        terms=[
            ClusterTerm(
                term=t.term, volume=t.volume, click_share=t.click_share,
                growth=t.growth, competition=t.competition,
            )
            for t in cluster.terms
        ],
        title=annotation.title,
        summary=annotation.summary,
        tags=list(annotation.tags),
        confidence=annotation.confidence,
        annotation_status=status,
        metrics=metrics,
        evidence=build_evidence(cluster.terms, metrics, annotation.tags),
        history=cluster.history,
        temporal_metrics=cluster.temporal_metrics,
        metadata=metadata,
    )
