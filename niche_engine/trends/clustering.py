"""
HDBSCAN-based clustering for search-term embeddings.

Pipeline: embeddings -> HDBSCAN (euclidean) -> level-0 clusters (+ noise)

Parameters scale with dataset size:
  min_cluster_size = max(2, floor(0.05 * N))
  min_samples      = max(1, floor(0.5 * min_cluster_size))
Small datasets get fine-grained clusters, large ones suppress noise.

Noise handling:
  - noise group larger than min_cluster_size → emitted as its own cluster
  - smaller noise group → discarded and reported in `discarded`
  - every point noise, or HDBSCAN failure → one all-terms cluster
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import DegenerateClustering
from ..schemas.clusters import Cluster
from ..schemas.terms import TermRecord

logger = logging.getLogger(__name__)

NOISE_LABEL = -1


def compute_density_params(
    n_terms: int,
    min_size_fraction: float = 0.05,
    min_samples_fraction: float = 0.5,
) -> Tuple[int, int]:
    """(min_cluster_size, min_samples) for a dataset of n_terms."""
    min_cluster_size = max(2, math.floor(min_size_fraction * n_terms))
    min_samples = max(1, math.floor(min_samples_fraction * min_cluster_size))
    return min_cluster_size, min_samples


def _embedding_matrix(records: Sequence[TermRecord]) -> np.ndarray:
    dims = {len(r.embedding or []) for r in records}
    if len(dims) != 1 or 0 in dims:
        raise ValueError(f"All terms need embeddings of one dimension, got dimensions {sorted(dims)}")
    return np.vstack([r.vector for r in records])


@dataclass
class DensityClusteringResult:
    clusters: List[Cluster] = field(default_factory=list)
    discarded: List[TermRecord] = field(default_factory=list)   # small noise group
    min_cluster_size: int = 2
    min_samples: int = 1
    fallback: bool = False
    metrics: Dict[str, Any] = field(default_factory=dict)


class EmbeddingClusterer:
    """Groups embedded terms into level-0 clusters plus an optional noise cluster."""

    def __init__(self, min_size_fraction: Optional[float] = None, min_samples_fraction: Optional[float] = None):
        if min_size_fraction is None or min_samples_fraction is None:
            from ..config import get_settings
            settings = get_settings()
            min_size_fraction = settings.cluster_min_size_fraction if min_size_fraction is None else min_size_fraction
            min_samples_fraction = (
                settings.cluster_min_samples_fraction if min_samples_fraction is None else min_samples_fraction
            )
        self.min_size_fraction = min_size_fraction
        self.min_samples_fraction = min_samples_fraction

    def _run_hdbscan(self, X: np.ndarray, min_cluster_size: int, min_samples: int) -> np.ndarray:
        from sklearn.cluster import HDBSCAN

        try:
            model = HDBSCAN(
                min_cluster_size=min_cluster_size,
                min_samples=min_samples,
                metric="euclidean",
                copy=True,
            )
            labels = model.fit_predict(X)
        except Exception as e:
            raise DegenerateClustering(f"HDBSCAN failed: {type(e).__name__}: {e}", context=f"n={len(X)}") from e

        if np.all(labels == NOISE_LABEL):
            raise DegenerateClustering("HDBSCAN labelled every term as noise", context=f"n={len(X)}")
        return labels

    def cluster(self, records: Sequence[TermRecord], start_id: int = 0) -> DensityClusteringResult:
        """Cluster embedded records. Never raises for degenerate input."""
        records = list(records)
        n = len(records)
        min_cluster_size, min_samples = compute_density_params(
            n, self.min_size_fraction, self.min_samples_fraction,
        )
        result = DensityClusteringResult(min_cluster_size=min_cluster_size, min_samples=min_samples)

        if n == 0:
            return result
        if n < 2:
            logger.info("Too few terms for density clustering, creating a single cluster")
            result.clusters = [Cluster(id=start_id, terms=records, level=0, similarity=1.0)]
            result.fallback = True
            return result

        X = _embedding_matrix(records)
        t_start = time.time()
        try:
            labels = self._run_hdbscan(X, min_cluster_size, min_samples)
        except DegenerateClustering as e:
            logger.warning(f"{e}; falling back to a single all-terms cluster")
            result.clusters = [Cluster(id=start_id, terms=records, level=0, similarity=1.0)]
            result.fallback = True
            result.metrics = {"n_clusters": 1, "noise_count": 0, "degenerate": str(e)}
            return result

        groups: Dict[int, List[TermRecord]] = {}
        for record, label in zip(records, labels):
            groups.setdefault(int(label), []).append(record)

        noise = groups.pop(NOISE_LABEL, [])
        next_id = start_id
        for label in sorted(groups):
            result.clusters.append(Cluster(id=next_id, terms=groups[label], level=0, similarity=1.0))
            next_id += 1

        if len(noise) > min_cluster_size:
            result.clusters.append(Cluster(id=next_id, terms=noise, level=0, similarity=1.0, is_noise=True))
        elif noise:
            result.discarded = noise
            logger.debug(f"Discarding {len(noise)} noise terms (<= min_cluster_size={min_cluster_size})")

        sizes = sorted((len(g) for g in groups.values()), reverse=True)
        result.metrics = {
            "n_clusters": len(groups),
            "noise_count": len(noise),
            "noise_pct": len(noise) / n,
            "noise_emitted": len(noise) > min_cluster_size,
            "cluster_sizes": sizes,
            "total_time_s": round(time.time() - t_start, 3),
        }
        logger.info(
            f"HDBSCAN: {n} terms → {len(groups)} clusters, "
            f"{len(noise)} noise ({len(noise) * 100 // n}%), "
            f"min_cluster_size={min_cluster_size}, min_samples={min_samples}, "
            f"sizes={sizes[:5]}{'...' if len(sizes) > 5 else ''}"
        )
        return result
