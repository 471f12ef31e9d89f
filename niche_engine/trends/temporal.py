"""
Temporal evolution of a cluster across historical snapshots.

Measures how a cluster's market behaves over time: is it growing, is its
term set stable, is it emerging? Snapshots are always processed in ascending
timestamp order; regression and moving averages depend on it.

MATCHING:
  For each snapshot, historical terms whose embedding has cosine similarity
  >= 0.7 with the cluster's CURRENT centroid count as the cluster's terms at
  that time. A snapshot with no match contributes no HistoryPoint.

METRICS (need >= 2 HistoryPoints, otherwise defaults):
  growth_rate:      OLS slope of volume vs history index (0, 1, 2, ...)
  *_trend:          moving average, window 3, shrinking at the start
  stability:        mean of |A ∩ B| / max(|A|, |B|) over consecutive term sets
  emergence_score:  0.4 * norm(growth_rate) + 0.4 * norm(acceleration)
                    + 0.2 * (1 - stability), norm(x) = clamp((x + 1) / 2)
                    acceleration = slope of [0, v1-v0, v2-v1, ...]

Defaults (no meaningful history): growth 0, empty trends, stability 1,
emergence 0. A cluster without history is stable and not emerging.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..errors import InsufficientData
from ..schemas.clusters import Cluster, HistoryPoint, TemporalMetrics
from ..schemas.terms import HistoricalSnapshot
from ..tools.embeddings import cosine_similarity

logger = logging.getLogger(__name__)


def linear_regression_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index.

    slope = Σ(xi - x̄)(yi - ȳ) / Σ(xi - x̄)²
    """
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2.0
    y_mean = sum(values) / n

    numerator = sum((i - x_mean) * (values[i] - y_mean) for i in range(n))
    denominator = sum((i - x_mean) ** 2 for i in range(n))

    if denominator == 0:
        return 0.0
    return numerator / denominator


def moving_average(values: Sequence[float], window: int = 3) -> List[float]:
    """Trailing moving average; window covers values[max(0, i-window+1)..i]."""
    window = max(1, window)
    result = []
    for i in range(len(values)):
        chunk = values[max(0, i - window + 1):i + 1]
        result.append(sum(chunk) / len(chunk))
    return result


def term_overlap(current: Sequence[str], previous: Sequence[str]) -> float:
    """|A ∩ B| / max(|A|, |B|). Two empty sets count as no overlap (0.0)."""
    a, b = set(current), set(previous)
    denominator = max(len(a), len(b))
    if denominator == 0:
        return 0.0
    return len(a & b) / denominator


def compute_stability(history: Sequence[HistoryPoint]) -> float:
    if len(history) < 2:
        return 1.0
    total = sum(term_overlap(history[i].terms, history[i - 1].terms) for i in range(1, len(history)))
    return total / (len(history) - 1)


def _normalize_rate(x: float) -> float:
    return min(1.0, max(0.0, (x + 1) / 2))


def compute_emergence(volumes: Sequence[float], growth_rate: float, stability: float) -> float:
    differences = [0.0] + [volumes[i] - volumes[i - 1] for i in range(1, len(volumes))]
    acceleration = linear_regression_slope(differences)
    score = (
        0.4 * _normalize_rate(growth_rate)
        + 0.4 * _normalize_rate(acceleration)
        + 0.2 * (1 - stability)
    )
    return min(1.0, max(0.0, score))


def compute_temporal_metrics(history: Sequence[HistoryPoint], window: int = 3) -> TemporalMetrics:
    """Trend metrics of a history sequence (already in timestamp order)."""
    if len(history) < 2:
        return TemporalMetrics()

    volumes = [h.volume for h in history]
    growth_rate = linear_regression_slope(volumes)
    stability = compute_stability(history)

    return TemporalMetrics(
        growth_rate=growth_rate,
        volume_trend=moving_average(volumes, window),
        click_share_trend=moving_average([h.click_share for h in history], window),
        competition_trend=moving_average([h.competition for h in history], window),
        stability=stability,
        emergence_score=compute_emergence(volumes, growth_rate, stability),
    )


class TemporalEvolutionTracker:
    """Matches a cluster against historical snapshots and derives trend metrics."""

    def __init__(self, match_threshold: Optional[float] = None, window: Optional[int] = None):
        """
        Args:
            match_threshold: Cosine similarity to the current centroid at or
                             above which a historical term belongs to the cluster.
            window: Moving-average window for the trend series.
        """
        if match_threshold is None or window is None:
            from ..config import get_settings
            settings = get_settings()
            match_threshold = settings.temporal_match_threshold if match_threshold is None else match_threshold
            window = settings.temporal_trend_window if window is None else window
        self.match_threshold = match_threshold
        self.window = window

    @staticmethod
    def order_snapshots(snapshots: Sequence[HistoricalSnapshot]) -> List[HistoricalSnapshot]:
        return sorted(snapshots, key=lambda s: s.timestamp)

    @staticmethod
    def require_history(snapshots: Sequence[HistoricalSnapshot]) -> List[HistoricalSnapshot]:
        """Snapshots holding at least one embedded term, in timestamp order.

        Raises InsufficientData when none qualify.
        """
        valid = [s for s in snapshots if any(t.has_embedding for t in s.terms)]
        if not valid:
            raise InsufficientData(
                f"No valid historical snapshots (received {len(snapshots)})", context="temporal",
            )
        return TemporalEvolutionTracker.order_snapshots(valid)

    def match_snapshot(self, center: np.ndarray, snapshot: HistoricalSnapshot) -> Optional[HistoryPoint]:
        """HistoryPoint for the terms of `snapshot` close to `center`, or None."""
        matched = []
        for record in snapshot.terms:
            if not record.has_embedding or len(record.embedding) != center.shape[0]:
                continue
            if cosine_similarity(center, record.vector) >= self.match_threshold:
                matched.append(record)
        if not matched:
            return None

        n = len(matched)
        return HistoryPoint(
            timestamp=snapshot.timestamp,
            volume=sum(r.volume for r in matched),
            click_share=sum(r.click_share for r in matched) / n,
            competition=sum(r.competition for r in matched) / n,
            terms=[r.term for r in matched],
        )

    def build_history(self, cluster: Cluster, snapshots: Sequence[HistoricalSnapshot]) -> List[HistoryPoint]:
        if not snapshots or not cluster.terms:
            return []
        center = cluster.centroid()
        history = []
        for snapshot in self.order_snapshots(snapshots):
            point = self.match_snapshot(center, snapshot)
            if point is not None:
                history.append(point)
        return history

    def track(self, cluster: Cluster, snapshots: Sequence[HistoricalSnapshot]) -> TemporalMetrics:
        """Attach history and temporal metrics to `cluster` and return the metrics.

        Only the enrichment fields are written; terms are left untouched.
        """
        history = self.build_history(cluster, snapshots)
        metrics = compute_temporal_metrics(history, self.window)
        cluster.history = history
        cluster.temporal_metrics = metrics
        logger.debug(
            f"Cluster {cluster.id}: {len(history)}/{len(snapshots)} snapshots matched, "
            f"growth={metrics.growth_rate:.2f}, stability={metrics.stability:.2f}, "
            f"emergence={metrics.emergence_score:.2f}"
        )
        return metrics
