"""
Cluster data models.

Defines the merge-tree node (Cluster), its temporal enrichment (HistoryPoint,
TemporalMetrics), the merge ledger (MergeRecord) and the serialisable output
handed to persistence/display (EnrichedCluster, ClusteringRunResult).

Hierarchy is an arena: every Cluster has an integer id and a merged node
stores its two child ids, never the child objects.

  MergeRecord(id=7, left_child_id=2, right_child_id=5)
    └─ Cluster 7 (level = max(level 2, level 5) + 1)
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field

from .base import AnnotationStatus, KeyMetric, Tag
from .metadata import MetadataAnalysis
from .terms import FailedTerm, TermRecord


# ══════════════════════════════════════════════════════════════════════════════
# TEMPORAL
# ══════════════════════════════════════════════════════════════════════════════

class HistoryPoint(BaseModel):
    """Cluster metrics matched in one historical snapshot."""
    timestamp: datetime
    volume: float = 0.0
    click_share: float = 0.0
    competition: float = 0.0
    terms: List[str] = Field(default_factory=list)


class TemporalMetrics(BaseModel):
    """Trend metrics derived from a cluster's history. Defaults describe a
    cluster with no usable history: stable and not emerging."""
    growth_rate: float = 0.0
    volume_trend: List[float] = Field(default_factory=list)
    click_share_trend: List[float] = Field(default_factory=list)
    competition_trend: List[float] = Field(default_factory=list)
    stability: float = Field(ge=0.0, le=1.0, default=1.0)
    emergence_score: float = Field(ge=0.0, le=1.0, default=0.0)

    class Config:
        frozen = True


# ══════════════════════════════════════════════════════════════════════════════
# MERGE TREE
# ══════════════════════════════════════════════════════════════════════════════

class Cluster(BaseModel):
    """A node of the merge tree.

    level 0 = leaf from density clustering, +1 per merge.
    similarity = cosine similarity that created the node (1.0 for leaves).
    """
    id: int
    terms: List[TermRecord]
    level: int = Field(ge=0, default=0)
    similarity: float = 1.0
    children: Optional[Tuple[int, int]] = None
    is_noise: bool = False

    # Enrichment, attached once each step completes
    history: Optional[List[HistoryPoint]] = None
    temporal_metrics: Optional[TemporalMetrics] = None
    tags: Optional[List[Tag]] = None

    @property
    def size(self) -> int:
        return len(self.terms)

    def term_texts(self) -> List[str]:
        return [t.term for t in self.terms]

    def embedding_matrix(self) -> np.ndarray:
        """(N, D) matrix of member embeddings."""
        return np.vstack([t.vector for t in self.terms])

    def centroid(self) -> np.ndarray:
        """Element-wise mean of member embeddings."""
        return self.embedding_matrix().mean(axis=0)


class MergeRecord(BaseModel):
    """One agglomerative merge: node `id` was built from two child nodes."""
    id: int
    left_child_id: int
    right_child_id: int
    similarity: float
    level: int

    class Config:
        frozen = True


# ══════════════════════════════════════════════════════════════════════════════
# OUTPUT
# ══════════════════════════════════════════════════════════════════════════════

class ClusterAnnotation(BaseModel):
    """Descriptive fields returned by the semantic annotator."""
    title: str
    summary: str = ""
    tags: List[Tag] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)


class ClusterMetrics(BaseModel):
    """Aggregate market metrics of a cluster."""
    total_volume: float = 0.0
    avg_growth: float = 0.0
    avg_click_share: float = 0.0
    weighted_click_share: float = 0.0
    avg_competition: float = 0.0
    opportunity_score: int = Field(ge=0, le=100, default=0)


class ClusterEvidence(BaseModel):
    """What a reader can check a cluster's title against."""
    key_terms: List[str] = Field(default_factory=list)
    key_metrics: List[KeyMetric] = Field(default_factory=list)
    supporting_tags: List[str] = Field(default_factory=list)


class ClusterTerm(BaseModel):
    """Output view of a member term (embedding omitted)."""
    term: str
    volume: float = 0.0
    click_share: float = 0.0
    growth: float = 0.0
    competition: float = 0.0


class EnrichedCluster(BaseModel):
    """A cluster ready for serialisation."""
    id: int
    level: int = 0
    similarity: float = 1.0
    children: Optional[Tuple[int, int]] = None
    is_noise: bool = False
    terms: List[ClusterTerm] = Field(default_factory=list)

    title: str = ""
    summary: str = ""
    tags: List[Tag] = Field(default_factory=list)
    confidence: float = 0.0
    annotation_status: AnnotationStatus = AnnotationStatus.PLACEHOLDER

    metrics: ClusterMetrics = Field(default_factory=ClusterMetrics)
    evidence: ClusterEvidence = Field(default_factory=ClusterEvidence)
    history: Optional[List[HistoryPoint]] = None
    temporal_metrics: Optional[TemporalMetrics] = None
    metadata: Optional[MetadataAnalysis] = None

    @property
    def opportunity_score(self) -> int:
        return self.metrics.opportunity_score


class ClusteringRunResult(BaseModel):
    """Output of one pipeline run. Partial success is the normal case:
    check enrichment_incomplete before treating descriptions as final."""
    clusters: List[EnrichedCluster] = Field(default_factory=list)
    merges: List[MergeRecord] = Field(default_factory=list)
    failed_terms: List[FailedTerm] = Field(default_factory=list)
    annotation_failures: List[int] = Field(default_factory=list)
    temporal_failures: List[int] = Field(default_factory=list)
    term_count: int = 0
    embedded_count: int = 0
    embedding_dim: Optional[int] = None
    enrichment_incomplete: bool = False
    warnings: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0

    def cluster_by_id(self) -> Dict[int, EnrichedCluster]:
        return {c.id: c for c in self.clusters}
