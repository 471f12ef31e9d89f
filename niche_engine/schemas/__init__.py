"""
Schemas package: all data models for the niche clustering engine.

Models are organized by domain in submodules:
  - base.py: Enums and value objects (Tag, KeyMetric, PatternDescription)
  - terms.py: TermRecord, HistoricalSnapshot, FailedTerm
  - metadata.py: PatternGroup, RelationshipGroup, MetadataInsight, MetadataAnalysis
  - clusters.py: Cluster, MergeRecord, HistoryPoint, TemporalMetrics, output models
  - llm_outputs.py: Structured LLM output models
"""

# base.py: enums and value objects
from niche_engine.schemas.base import (
    AttributeKey, TagCategory, RelationshipKind, AnnotationStatus, RELATIONSHIP_KEYS,
    Tag, KeyMetric, PatternDescription,
)

# terms.py: input models
from niche_engine.schemas.terms import TermRecord, HistoricalSnapshot, FailedTerm

# metadata.py: pattern models
from niche_engine.schemas.metadata import (
    PatternGroup, RelationshipGroup, MetadataInsight, MetadataAnalysis,
)

# clusters.py: merge tree and output
from niche_engine.schemas.clusters import (
    HistoryPoint, TemporalMetrics, Cluster, MergeRecord,
    ClusterAnnotation, ClusterMetrics, ClusterEvidence, ClusterTerm,
    EnrichedCluster, ClusteringRunResult,
)

__all__ = [
    # base
    "AttributeKey", "TagCategory", "RelationshipKind", "AnnotationStatus", "RELATIONSHIP_KEYS",
    "Tag", "KeyMetric", "PatternDescription",
    # terms
    "TermRecord", "HistoricalSnapshot", "FailedTerm",
    # metadata
    "PatternGroup", "RelationshipGroup", "MetadataInsight", "MetadataAnalysis",
    # clusters
    "HistoryPoint", "TemporalMetrics", "Cluster", "MergeRecord",
    "ClusterAnnotation", "ClusterMetrics", "ClusterEvidence", "ClusterTerm",
    "EnrichedCluster", "ClusteringRunResult",
]
