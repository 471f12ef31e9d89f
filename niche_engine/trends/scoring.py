"""
Opportunity scoring for clusters and niches.

Weights are fixed (not configurable) so scores stay comparable across runs.

BASE SCORE (volume / growth / competition):
  normVolume      = min(1, totalVolume / 10000)
  normGrowth      = clamp((avgGrowth*100 + 100) / 200)     -1.0..1.0 → 0..1
  normCompetition = min(1, avgCompetition / 100)
  score = 100 * (0.4*normVolume + 0.3*normGrowth + 0.3*(1 - normCompetition))

ENHANCED SCORE (adds sales data, six weights summing to 1.0):
  volume 0.20, growth 0.20, competition 0.15,
  unitsSold/100000 0.20, averageUnitsSold/1000 0.15, conversionRate*10 0.10

NICHE SIGNALS (category-level exports):
  refined_opportunity_score: log-scaled volume × growth × top-clicked products
  emergence_flag:            recent growth on a not-yet-large niche
  seasonality_index:         90-day spike vs 180-day growth + volume concentration

All scores are rounded half-up and clamped to [0, 100].
"""

import logging
import math
from typing import Sequence

from ..schemas.clusters import Cluster, ClusterMetrics
from ..schemas.terms import TermRecord

logger = logging.getLogger(__name__)

VOLUME_CAP = 10000.0
COMPETITION_CAP = 100.0
UNITS_SOLD_CAP = 100000.0
AVG_UNITS_SOLD_CAP = 1000.0

EMERGING_THRESHOLD = 0.6
SEASONAL_THRESHOLD = 0.7
ESTABLISHED_VOLUME = 500000.0


def _finite(x: float) -> float:
    x = float(x)
    return x if math.isfinite(x) else 0.0


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(hi, max(lo, x))


def _to_score(raw: float) -> int:
    """Round half-up to an integer in [0, 100]."""
    return int(_clamp(math.floor(raw + 0.5), 0, 100))


def _normalize_growth(growth: float) -> float:
    return _clamp((growth * 100 + 100) / 200)


def opportunity_score(total_volume: float, avg_growth: float, avg_competition: float) -> int:
    """0-100 score. Monotone non-decreasing in volume, non-increasing in competition."""
    total_volume = _finite(total_volume)
    avg_growth = _finite(avg_growth)
    avg_competition = _finite(avg_competition)

    norm_volume = min(1.0, max(0.0, total_volume) / VOLUME_CAP)
    norm_growth = _normalize_growth(avg_growth)
    norm_competition = _clamp(avg_competition / COMPETITION_CAP)

    raw = 100 * (0.4 * norm_volume + 0.3 * norm_growth + 0.3 * (1 - norm_competition))
    return _to_score(raw)


def enhanced_opportunity_score(
    volume: float,
    growth: float,
    competition: float,
    units_sold: float,
    average_units_sold: float,
    conversion_rate: float,
) -> int:
    """Six-factor score for niches with sales data. `growth` is fractional
    like in the base score; `conversion_rate` is fractional (0.1 = 10%)."""
    norm_volume = _clamp(_finite(volume) / VOLUME_CAP)
    norm_growth = _normalize_growth(_finite(growth))
    norm_competition = _clamp(_finite(competition) / COMPETITION_CAP)
    norm_units = _clamp(_finite(units_sold) / UNITS_SOLD_CAP)
    norm_avg_units = _clamp(_finite(average_units_sold) / AVG_UNITS_SOLD_CAP)
    norm_conversion = _clamp(_finite(conversion_rate) * 10)

    raw = 100 * (
        0.20 * norm_volume
        + 0.20 * norm_growth
        + 0.15 * (1 - norm_competition)
        + 0.20 * norm_units
        + 0.15 * norm_avg_units
        + 0.10 * norm_conversion
    )
    return _to_score(raw)


# ── Cluster aggregates ──────────────────────────────────────────────────

def compute_metrics(terms: Sequence[TermRecord]) -> ClusterMetrics:
    """Aggregate metrics of a term list, including its opportunity score."""
    if not terms:
        return ClusterMetrics(opportunity_score=opportunity_score(0, 0, 0))

    n = len(terms)
    total_volume = sum(t.volume for t in terms)
    avg_growth = sum(t.growth for t in terms) / n
    avg_click_share = sum(t.click_share for t in terms) / n
    avg_competition = sum(t.competition for t in terms) / n
    if total_volume > 0:
        weighted_click_share = sum(t.click_share * t.volume for t in terms) / total_volume
    else:
        weighted_click_share = 0.0

    return ClusterMetrics(
        total_volume=total_volume,
        avg_growth=avg_growth,
        avg_click_share=avg_click_share,
        weighted_click_share=weighted_click_share,
        avg_competition=avg_competition,
        opportunity_score=opportunity_score(total_volume, avg_growth, avg_competition),
    )


def score_cluster(cluster: Cluster) -> int:
    return compute_metrics(cluster.terms).opportunity_score


# ── Niche signals ───────────────────────────────────────────────────────

def refined_opportunity_score(search_volume: float, growth_rate: float, top_clicked_products: float) -> int:
    """Volume × growth × product breadth, each normalized to 0-1.

    Volume is log10-scaled (capped at 1,000,000), growth maps -50%..100% to
    0..1, products cap at 50.
    """
    norm_volume = math.log10(max(10.0, _finite(search_volume))) / 6
    norm_growth = _clamp((_finite(growth_rate) + 0.5) / 1.5)
    norm_products = min(1.0, max(0.0, _finite(top_clicked_products)) / 50)
    return _to_score(norm_volume * norm_growth * norm_products * 100)


def emergence_flag(search_volume: float, growth_90d: float, growth_180d: float) -> float:
    """0-1 emergence strength. Established niches (> 500k volume) score 0."""
    search_volume = _finite(search_volume)
    growth_90d = _finite(growth_90d)
    growth_180d = _finite(growth_180d)
    if search_volume > ESTABLISHED_VOLUME:
        return 0.0
    volume_factor = max(0.0, 1 - search_volume / ESTABLISHED_VOLUME)
    growth_factor = _clamp(growth_90d / 2)
    acceleration_factor = 1.2 if growth_90d > growth_180d else 1.0
    return min(1.0, volume_factor * growth_factor * acceleration_factor)


def seasonality_index(growth_90d: float, growth_180d: float, volume_90d: float, total_volume: float) -> float:
    """0-1 seasonality. High when the last 90 days spike above the 180-day trend."""
    spike = max(0.0, _finite(growth_90d) - _finite(growth_180d))
    total_volume = _finite(total_volume)
    concentration = min(1.0, _finite(volume_90d) / total_volume * 4) if total_volume > 0 else 0.0
    return min(1.0, spike * 0.7 + concentration * 0.3)


def is_emerging(score: float) -> bool:
    return score > EMERGING_THRESHOLD


def is_seasonal(score: float) -> bool:
    return score > SEASONAL_THRESHOLD
