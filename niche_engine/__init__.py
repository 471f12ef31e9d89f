"""
niche_engine: clusters e-commerce search terms into a ranked hierarchy of
niches with market metrics, opportunity scores and trend signals.

    engine = NicheClusteringEngine()
    result = await engine.run(records, history=snapshots)
"""

from niche_engine.errors import (
    NicheEngineError,
    EmbeddingUnavailable,
    AnnotationUnavailable,
    InsufficientData,
    DegenerateClustering,
)
from niche_engine.schemas import TermRecord, HistoricalSnapshot, ClusteringRunResult, EnrichedCluster
from niche_engine.trends import NicheClusteringEngine, configure_logging

__version__ = "0.1.0"
