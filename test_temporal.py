"""Temporal evolution: snapshot matching, regression, trends, stability, emergence."""
from datetime import datetime, timedelta

import pytest

from conftest import make_term
from niche_engine.errors import InsufficientData
from niche_engine.schemas import Cluster, HistoricalSnapshot, HistoryPoint, TemporalMetrics
from niche_engine.trends.temporal import (
    TemporalEvolutionTracker,
    compute_stability,
    compute_temporal_metrics,
    linear_regression_slope,
    moving_average,
    term_overlap,
)

T0 = datetime(2024, 1, 1)


def _point(day, volume, terms, click_share=0.1, competition=50.0):
    return HistoryPoint(
        timestamp=T0 + timedelta(days=day), volume=volume,
        click_share=click_share, competition=competition, terms=terms,
    )


def _cluster():
    return Cluster(id=1, terms=[
        make_term("sleep gummies", embedding=[1.0, 0.0]),
        make_term("sleep gummy", embedding=[1.0, 0.0]),
    ])


def _snapshot(day, terms):
    return HistoricalSnapshot(timestamp=T0 + timedelta(days=day), terms=terms)


def test_slope_and_moving_average():
    assert linear_regression_slope([100, 200, 300]) == pytest.approx(100)
    assert linear_regression_slope([5]) == 0.0
    assert linear_regression_slope([7, 7, 7, 7]) == 0.0
    assert moving_average([1, 2, 3, 4], 3) == [1, 1.5, 2, 3]


def test_overlap_of_two_empty_sets_is_zero():
    assert term_overlap([], []) == 0.0
    assert term_overlap(["a", "b"], ["b", "c", "d"]) == pytest.approx(1 / 3)


def test_identical_consecutive_term_sets_are_fully_stable():
    history = [_point(0, 10, ["a", "b"]), _point(30, 20, ["a", "b"])]
    assert compute_stability(history) == 1.0


def test_no_history_yields_exact_defaults():
    cluster = _cluster()
    metrics = TemporalEvolutionTracker(0.7, 3).track(cluster, [])
    assert metrics == TemporalMetrics(
        growth_rate=0.0, volume_trend=[], click_share_trend=[], competition_trend=[],
        stability=1.0, emergence_score=0.0,
    )
    assert cluster.history == []


def test_single_matched_snapshot_is_stable_and_not_emergent():
    cluster = _cluster()
    snapshots = [_snapshot(0, [make_term("sleep aid gummies", volume=500, embedding=[0.9, 0.1])])]
    metrics = TemporalEvolutionTracker(0.7, 3).track(cluster, snapshots)
    assert len(cluster.history) == 1
    assert metrics.stability == 1.0
    assert metrics.emergence_score == 0.0


def test_matching_uses_threshold_on_current_centroid():
    tracker = TemporalEvolutionTracker(0.7, 3)
    snapshot = _snapshot(0, [
        make_term("close", volume=100, click_share=0.2, competition=40, embedding=[1.0, 0.1]),
        make_term("borderline", volume=50, click_share=0.4, competition=60, embedding=[0.7, 0.7]),
        make_term("unrelated", volume=999, embedding=[0.0, 1.0]),
        make_term("unembedded", volume=999),
    ])
    point = tracker.match_snapshot(_cluster().centroid(), snapshot)

    assert point.terms == ["close", "borderline"]
    assert point.volume == 150
    assert point.click_share == pytest.approx(0.3)
    assert point.competition == pytest.approx(50)


def test_snapshot_without_matches_contributes_no_point():
    tracker = TemporalEvolutionTracker(0.7, 3)
    snapshot = _snapshot(0, [make_term("unrelated", embedding=[0.0, 1.0])])
    assert tracker.match_snapshot(_cluster().centroid(), snapshot) is None


def test_snapshots_are_processed_in_timestamp_order():
    cluster = _cluster()
    snapshots = [
        _snapshot(60, [make_term("sleep gummies", volume=400, embedding=[1.0, 0.0])]),
        _snapshot(0, [make_term("sleep gummies", volume=100, embedding=[1.0, 0.0])]),
        _snapshot(30, [make_term("sleep gummies", volume=200, embedding=[1.0, 0.0])]),
    ]
    metrics = TemporalEvolutionTracker(0.7, 3).track(cluster, snapshots)

    assert [h.volume for h in cluster.history] == [100, 200, 400]
    timestamps = [h.timestamp for h in cluster.history]
    assert timestamps == sorted(timestamps)
    assert metrics.growth_rate == pytest.approx(150)
    assert metrics.volume_trend == pytest.approx([100, 150, 700 / 3])
    assert metrics.stability == 1.0
    # growth and acceleration both saturate; stability 1 adds nothing
    assert metrics.emergence_score == pytest.approx(0.8)
    # terms untouched
    assert cluster.term_texts() == ["sleep gummies", "sleep gummy"]


def test_declining_unstable_cluster():
    history = [
        _point(0, 300, ["a", "b"]),
        _point(30, 200, ["c"]),
        _point(60, 100, ["d"]),
    ]
    metrics = compute_temporal_metrics(history)
    assert metrics.growth_rate == pytest.approx(-100)
    assert metrics.stability == 0.0
    # norm(-100) = 0; acceleration of [0, -100, -100] = -50 → 0; 0.2 * (1 - 0)
    assert metrics.emergence_score == pytest.approx(0.2)
    assert len(metrics.click_share_trend) == len(history)
    assert len(metrics.competition_trend) == len(history)


def test_require_history_rejects_empty_or_unembedded_snapshots():
    with pytest.raises(InsufficientData):
        TemporalEvolutionTracker.require_history([])
    with pytest.raises(InsufficientData):
        TemporalEvolutionTracker.require_history([_snapshot(0, [make_term("x")])])

    valid = TemporalEvolutionTracker.require_history([
        _snapshot(30, [make_term("x", embedding=[1.0, 0.0])]),
        _snapshot(0, [make_term("y", embedding=[1.0, 0.0])]),
        _snapshot(10, [make_term("z")]),
    ])
    assert [s.timestamp.day for s in valid] == [1, 31]
