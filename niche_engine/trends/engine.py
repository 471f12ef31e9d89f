"""
NicheClusteringEngine: search terms in, ranked enriched clusters out.

  Stage 1 (Tag):       optional ontology tagging of missing attributes
  Stage 2 (Embed):     batched, retried embeddings; failed terms dropped
  Stage 3 (Cluster):   HDBSCAN level-0 clusters (+ significant noise)
  Stage 4 (Merge):     agglomerative merge tree, every node kept
  Stage 5 (Enrich):    per node, concurrently: metrics + opportunity score,
                       temporal evolution, metadata patterns, annotation

Every failure below the run level is contained: a term that cannot be
embedded is dropped and listed, a cluster whose annotation fails gets
placeholder text, a temporal error leaves the cluster without history.
`enrichment_incomplete` on the result tells the caller when any of that
happened. Partial success is the normal case.

One run owns its state (embedding dimension lock, accumulators); nothing is
shared between runs.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..config import get_settings
from ..errors import AnnotationUnavailable, InsufficientData
from ..schemas.base import AnnotationStatus
from ..schemas.clusters import Cluster, ClusterAnnotation, ClusteringRunResult, EnrichedCluster
from ..schemas.metadata import MetadataAnalysis
from ..schemas.terms import FailedTerm, HistoricalSnapshot, TermRecord
from ..tools.annotator import DEFAULT_SUMMARY, SemanticAnnotator, placeholder_annotation, placeholder_title
from ..tools.embeddings import EmbeddingProvider, EmbeddingTool, get_embedding_provider
from ..tools.retry import RetryPolicy
from .clustering import EmbeddingClusterer
from .enrichment import enrich_cluster
from .hierarchy import HierarchicalMerger
from .metadata import MetadataPatternAnalyzer
from .scoring import compute_metrics
from .tagging import OntologyTag, tag_records
from .temporal import TemporalEvolutionTracker

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    """Console logging for scripts. Library code never installs handlers itself."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s | %(levelname)-7s | %(name)s | %(message)s', datefmt='%H:%M:%S'))
    parent = logging.getLogger("niche_engine")
    parent.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) for h in parent.handlers):
        parent.addHandler(handler)


@dataclass
class _NodeOutcome:
    cluster: EnrichedCluster
    annotation_ok: bool = True
    temporal_ok: bool = True
    metadata_ok: bool = True


@dataclass
class _RunState:
    """Per-run accumulators, passed explicitly through the stages."""
    failed_terms: List[FailedTerm] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class NicheClusteringEngine:
    """Runs the full clustering and trend-analysis pipeline."""

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        annotator: Optional[SemanticAnnotator] = None,
        policy: Optional[RetryPolicy] = None,
        clusterer: Optional[EmbeddingClusterer] = None,
        merger: Optional[HierarchicalMerger] = None,
        tracker: Optional[TemporalEvolutionTracker] = None,
        ontology: Optional[Sequence[OntologyTag]] = None,
        annotate: bool = True,
        analyze_metadata: Optional[bool] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.settings = get_settings()
        self.provider = provider or get_embedding_provider(self.settings)
        self.policy = policy or RetryPolicy.from_settings(self.settings)
        self.annotate = annotate
        self.annotator = (annotator or SemanticAnnotator(policy=self.policy)) if annotate else None
        self.clusterer = clusterer or EmbeddingClusterer()
        self.merger = merger or HierarchicalMerger()
        self.tracker = tracker or TemporalEvolutionTracker()
        self.ontology = list(ontology) if ontology else None
        if analyze_metadata is None:
            analyze_metadata = self.settings.annotate_metadata_patterns
        self.metadata_analyzer = MetadataPatternAnalyzer(self.annotator if analyze_metadata else None)
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def _embedding_tool(self) -> EmbeddingTool:
        return EmbeddingTool(
            provider=self.provider,
            policy=self.policy,
            batch_size=self.batch_size,
            batch_delay=self.batch_delay,
            sleep=self._sleep,
        )

    # ── Stage helpers ────────────────────────────────────────────────────

    async def _embed_history(
        self,
        tool: EmbeddingTool,
        history: Sequence[HistoricalSnapshot],
        state: _RunState,
    ) -> List[HistoricalSnapshot]:
        """Embed snapshot terms in timestamp order. Failed historical terms are
        dropped from their snapshot only."""
        embedded = []
        for snapshot in TemporalEvolutionTracker.order_snapshots(history):
            batch = await tool.embed_records(snapshot.terms)
            if batch.failed:
                state.warnings.append(
                    f"{len(batch.failed)} historical terms from {snapshot.timestamp.isoformat()} could not be embedded"
                )
            embedded.append(HistoricalSnapshot(timestamp=snapshot.timestamp, terms=batch.records))
        return embedded

    async def _annotate(self, cluster: Cluster, metrics) -> Tuple[ClusterAnnotation, AnnotationStatus, bool]:
        if not cluster.terms:
            return placeholder_annotation(0), AnnotationStatus.EMPTY, True
        if self.annotator is None:
            skipped = ClusterAnnotation(title=placeholder_title(cluster.size), summary=DEFAULT_SUMMARY)
            return skipped, AnnotationStatus.SKIPPED, True
        try:
            annotation = await self.annotator.annotate(cluster.term_texts(), metrics)
            return annotation, AnnotationStatus.ANNOTATED, True
        except AnnotationUnavailable as e:
            logger.warning(f"Annotation unavailable for cluster {cluster.id}: {e}")
            return placeholder_annotation(cluster.size), AnnotationStatus.PLACEHOLDER, False

    async def _enrich_node(self, cluster: Cluster, snapshots: Sequence[HistoricalSnapshot]) -> _NodeOutcome:
        metrics = compute_metrics(cluster.terms)

        temporal_ok = True
        if snapshots:
            try:
                self.tracker.track(cluster, snapshots)
            except Exception as e:
                temporal_ok = False
                logger.warning(f"Temporal analysis failed for cluster {cluster.id}: {type(e).__name__}: {e}")

        metadata: Optional[MetadataAnalysis] = None
        metadata_ok = True
        try:
            metadata = await self.metadata_analyzer.analyze(cluster)
            if self.metadata_analyzer.annotator is not None and not metadata.described:
                metadata_ok = False
        except Exception as e:
            metadata_ok = False
            logger.warning(f"Metadata analysis failed for cluster {cluster.id}: {type(e).__name__}: {e}")

        annotation, status, annotation_ok = await self._annotate(cluster, metrics)
        enriched = enrich_cluster(cluster, metrics, annotation, status, metadata)
        return _NodeOutcome(enriched, annotation_ok, temporal_ok, metadata_ok)

    async def _safe_enrich(self, cluster: Cluster, snapshots: Sequence[HistoricalSnapshot]) -> _NodeOutcome:
        """Per-cluster boundary: whatever fails, the cluster still comes out."""
        try:
            return await self._enrich_node(cluster, snapshots)
        except Exception as e:
            logger.error(f"Enrichment failed for cluster {cluster.id}: {type(e).__name__}: {e}")
            metrics = compute_metrics(cluster.terms)
            enriched = enrich_cluster(
                cluster, metrics, placeholder_annotation(cluster.size), AnnotationStatus.PLACEHOLDER,
            )
            return _NodeOutcome(enriched, annotation_ok=False, temporal_ok=not snapshots, metadata_ok=False)

    # ── Public API ───────────────────────────────────────────────────────

    async def run(
        self,
        records: Sequence[TermRecord],
        history: Optional[Sequence[HistoricalSnapshot]] = None,
    ) -> ClusteringRunResult:
        """Cluster, rank and enrich `records`.

        Raises InsufficientData only for an empty `records` list.
        """
        if not records:
            raise InsufficientData("No search terms provided for clustering")

        t_start = time.time()
        state = _RunState()
        result = ClusteringRunResult(term_count=len(records))
        records = list(records)
        logger.info(f"Starting clustering run for {len(records)} search terms")

        # Stage 1: Tag
        if self.ontology:
            records = tag_records(records, self.ontology)

        # Stage 2: Embed
        tool = self._embedding_tool()
        batch = await tool.embed_records(records)
        state.failed_terms.extend(batch.failed)
        result.embedded_count = len(batch.records)
        result.embedding_dim = batch.dim

        if not batch.records:
            state.warnings.append("No search term could be embedded; nothing to cluster")
            logger.warning(f"0/{len(records)} terms embedded; returning empty result")
            return self._finish(result, state, [], t_start)

        # Stage 3: Cluster
        density = self.clusterer.cluster(batch.records)
        if density.fallback and len(batch.records) >= 2:
            state.warnings.append("Density clustering was degenerate; all terms placed in one cluster")
        if density.discarded:
            state.warnings.append(f"{len(density.discarded)} noise terms below min cluster size were not clustered")

        # Stage 4: Merge
        hierarchy = self.merger.merge(density.clusters)
        result.merges = list(hierarchy.merges)

        # Stage 5: Enrich
        snapshots: List[HistoricalSnapshot] = []
        if history:
            snapshots = await self._embed_history(tool, history, state)

        outcomes = await asyncio.gather(*[self._safe_enrich(node, snapshots) for node in hierarchy.ranked])
        return self._finish(result, state, list(outcomes), t_start)

    def _finish(
        self,
        result: ClusteringRunResult,
        state: _RunState,
        outcomes: List[_NodeOutcome],
        t_start: float,
    ) -> ClusteringRunResult:
        result.clusters = [o.cluster for o in outcomes]
        result.failed_terms = state.failed_terms
        result.annotation_failures = [o.cluster.id for o in outcomes if not o.annotation_ok]
        result.temporal_failures = [o.cluster.id for o in outcomes if not o.temporal_ok]
        metadata_failures = [o.cluster.id for o in outcomes if not o.metadata_ok]
        if metadata_failures:
            state.warnings.append(f"Metadata descriptions incomplete for clusters {metadata_failures}")
        result.warnings = state.warnings
        result.enrichment_incomplete = bool(
            result.failed_terms
            or result.annotation_failures
            or result.temporal_failures
            or metadata_failures
            or not result.clusters
        )
        result.duration_seconds = round(time.time() - t_start, 3)
        logger.info(
            f"Run complete: {len(result.clusters)} clusters from {result.embedded_count}/{result.term_count} terms, "
            f"{len(result.failed_terms)} failed terms, {len(result.annotation_failures)} annotation failures, "
            f"incomplete={result.enrichment_incomplete} ({result.duration_seconds:.1f}s)"
        )
        return result

    def schedule(
        self,
        records: Sequence[TermRecord],
        history: Optional[Sequence[HistoricalSnapshot]] = None,
    ) -> "asyncio.Task[ClusteringRunResult]":
        """Start a run as a background task on the running loop (fire-and-forget
        after upload). The caller keeps the task to collect the result."""
        return asyncio.get_running_loop().create_task(self.run(records, history))

    async def aclose(self) -> None:
        await self.provider.aclose()
