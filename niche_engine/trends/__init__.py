"""
Clustering and trend-analysis engine.

Pipeline (NicheClusteringEngine):
  Stage 1 (Tag):     ontology keywords → missing function/format/values attributes
  Stage 2 (Embed):   terms → vectors (batched, retried, failed terms dropped)
  Stage 3 (Cluster): HDBSCAN → level-0 clusters (+ significant noise)
  Stage 4 (Merge):   agglomerative centroid merges → arena of nodes
  Stage 5 (Enrich):  opportunity score, temporal evolution, metadata patterns,
                     LLM annotation → ranked EnrichedCluster list

Modules:
  - engine.py: NicheClusteringEngine (the pipeline)
  - clustering.py: HDBSCAN density clustering with size-scaled parameters
  - hierarchy.py: merge tree over cluster centroids
  - scoring.py: opportunity scores and niche signals
  - temporal.py: history matching and trend metrics
  - metadata.py: attribute partitions and relationship joins
  - tagging.py: keyword tagging from a tag ontology
  - enrichment.py: metrics/evidence → EnrichedCluster
"""

from niche_engine.trends.engine import NicheClusteringEngine, configure_logging
from niche_engine.trends.clustering import EmbeddingClusterer, DensityClusteringResult, compute_density_params
from niche_engine.trends.hierarchy import HierarchicalMerger, MergeHierarchy
from niche_engine.trends.scoring import (
    opportunity_score,
    enhanced_opportunity_score,
    compute_metrics,
    refined_opportunity_score,
    emergence_flag,
    seasonality_index,
)
from niche_engine.trends.temporal import TemporalEvolutionTracker, compute_temporal_metrics
from niche_engine.trends.metadata import MetadataPatternAnalyzer
from niche_engine.trends.tagging import OntologyTag, apply_tags, parse_tag_ontology, load_default_ontology
