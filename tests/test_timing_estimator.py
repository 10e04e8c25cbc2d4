from __future__ import annotations

from typing import List, Optional

import pytest

from engine.catalog import FeatureBucketer
from engine.config import ConfidencePolicy
from engine.errors import StorageError
from engine.estimator import TimingEstimator
from schemas.catalog_ir import Catalog
from schemas.complexity_ir import TreeFeatures
from schemas.timing_ir import ConfidenceLevel, TimingSample
from stores.timing_store import TimingStore


class _FailingStore(TimingStore):
    def query_samples(
        self, tool: str, bucket: Optional[str] = None, since: Optional[float] = None
    ) -> List[TimingSample]:
        raise StorageError("disk unavailable")


def _record_many(store: TimingStore, tool: str, durations: List[int], **features: float) -> None:
    for duration in durations:
        store.record(tool, features, duration)


@pytest.mark.parametrize(
    "count,expected",
    [
        (0, ConfidenceLevel.LOW),
        (4, ConfidenceLevel.LOW),
        (5, ConfidenceLevel.MEDIUM),
        (19, ConfidenceLevel.MEDIUM),
        (20, ConfidenceLevel.HIGH),
        (250, ConfidenceLevel.HIGH),
    ],
)
def test_confidence_thresholds(estimator: TimingEstimator, count: int, expected: ConfidenceLevel) -> None:
    assert estimator.confidence_for(count) == expected


def test_confidence_follows_recorded_sample_count(
    estimator: TimingEstimator, store: TimingStore
) -> None:
    seen = []
    for _ in range(21):
        seen.append(estimator.estimate("reasoning_tree").confidence)
        store.record("reasoning_tree", {}, 9000)
    assert seen[:5] == [ConfidenceLevel.LOW] * 5
    assert seen[5:20] == [ConfidenceLevel.MEDIUM] * 15
    assert seen[20] == ConfidenceLevel.HIGH


def test_thresholds_apply_per_tool(estimator: TimingEstimator, store: TimingStore) -> None:
    _record_many(store, "reasoning_tree", [9000] * 20)
    assert estimator.estimate("reasoning_tree").confidence == ConfidenceLevel.HIGH
    assert estimator.estimate("reasoning_linear").confidence == ConfidenceLevel.LOW


def test_no_history_uses_static_baseline(estimator: TimingEstimator) -> None:
    estimate = estimator.estimate("reasoning_tree")
    assert estimate.duration_ms == 8000
    assert estimate.confidence == ConfidenceLevel.LOW
    assert estimate.sample_count == 0
    assert not estimate.degraded


def test_high_confidence_uses_sample_mean(estimator: TimingEstimator, store: TimingStore) -> None:
    _record_many(store, "reasoning_tree", [11_000] * 12 + [13_000] * 12 + [12_000])
    estimate = estimator.estimate("reasoning_tree")
    assert estimate.duration_ms == 12_000
    assert estimate.confidence == ConfidenceLevel.HIGH
    assert estimate.sample_count == 25


def test_medium_confidence_blends_with_baseline(
    estimator: TimingEstimator, store: TimingStore
) -> None:
    _record_many(store, "reasoning_tree", [10_000] * 10)
    estimate = estimator.estimate("reasoning_tree")
    # (10000 * 10 + 8000 * 10) / 20
    assert estimate.duration_ms == 9000
    assert estimate.confidence == ConfidenceLevel.MEDIUM


def test_blend_weight_follows_policy(catalog: Catalog, store: TimingStore) -> None:
    estimator = TimingEstimator(
        catalog, store=store, policy=ConfidencePolicy(high_min_samples=10, medium_min_samples=2)
    )
    _record_many(store, "reasoning_tree", [10_000] * 5)
    # (10000 * 5 + 8000 * 5) / 10
    assert estimator.estimate("reasoning_tree").duration_ms == 9000


def test_will_timeout_compares_against_budget(estimator: TimingEstimator, store: TimingStore) -> None:
    _record_many(store, "reasoning_tree", [45_000] * 20)
    estimate = estimator.estimate("reasoning_tree", timeout_budget_ms=30_000)
    assert estimate.duration_ms == 45_000
    assert estimate.will_timeout is True
    relaxed = estimator.estimate("reasoning_tree", timeout_budget_ms=60_000)
    assert relaxed.will_timeout is False


def test_estimate_equal_to_budget_does_not_time_out(estimator: TimingEstimator) -> None:
    estimate = estimator.estimate("reasoning_tree", timeout_budget_ms=8000)
    assert estimate.duration_ms == 8000
    assert estimate.will_timeout is False


def test_default_budget_comes_from_estimator(estimator: TimingEstimator) -> None:
    assert estimator.estimate("reasoning_tree").timeout_budget_ms == 30_000


def test_feature_multiplier_scales_baseline(estimator: TimingEstimator) -> None:
    # 8000 * (1 + (4 - 2) * 0.1)
    assert estimator.estimate("reasoning_tree", {"num_branches": 4}).duration_ms == 9600
    assert estimator.estimate("reasoning_tree", TreeFeatures(num_branches=4)).duration_ms == 9600


def test_multiplier_term_has_a_floor(estimator: TimingEstimator) -> None:
    # 1 + (0 - 2) * 1.0 = -1, floored at 0.1
    assert estimator.estimate("reasoning_decision", {"num_options": 0}).duration_ms == 200


def test_unknown_features_are_ignored(estimator: TimingEstimator) -> None:
    estimate = estimator.estimate("reasoning_tree", {"warp_factor": 9, "num_branches": "bad"})
    assert estimate.duration_ms == 8000


def test_unknown_tool_uses_fallback_baseline(estimator: TimingEstimator, catalog: Catalog) -> None:
    estimate = estimator.estimate("reasoning_unheard_of")
    assert estimate.duration_ms == catalog.fallback_baseline_ms
    assert estimate.confidence == ConfidenceLevel.LOW


def test_samples_only_count_in_their_bucket(estimator: TimingEstimator, store: TimingStore) -> None:
    _record_many(store, "reasoning_tree", [20_000] * 20, num_branches=4)
    assert estimator.estimate("reasoning_tree").confidence == ConfidenceLevel.LOW
    wide = estimator.estimate("reasoning_tree", {"num_branches": 4})
    assert wide.confidence == ConfidenceLevel.HIGH
    assert wide.duration_ms == 20_000


def test_continuous_features_share_nearest_bucket(catalog: Catalog) -> None:
    bucketer = FeatureBucketer(catalog)
    assert bucketer.bucket_key("reasoning_linear", {"content_length": 3900}) == bucketer.bucket_key(
        "reasoning_linear", {"content_length": 4100}
    )
    assert bucketer.bucket_key("reasoning_linear", {"content_length": 500}) != bucketer.bucket_key(
        "reasoning_linear", {"content_length": 4100}
    )


def test_omitted_feature_matches_its_default(catalog: Catalog) -> None:
    bucketer = FeatureBucketer(catalog)
    assert bucketer.bucket_key("reasoning_tree", {}) == bucketer.bucket_key(
        "reasoning_tree", {"num_branches": 2}
    )


def test_record_then_estimate_counts_one_more_sample(
    estimator: TimingEstimator, store: TimingStore
) -> None:
    _record_many(store, "reasoning_tree", [10_000] * 7)
    before = estimator.estimate("reasoning_tree")
    store.record("reasoning_tree", {}, 10_000)
    first = estimator.estimate("reasoning_tree")
    second = estimator.estimate("reasoning_tree")
    assert first.sample_count == before.sample_count + 1
    assert first == second


def test_store_failure_degrades_to_low_confidence(catalog: Catalog) -> None:
    store = _FailingStore(bucketer=FeatureBucketer(catalog).bucket_key)
    estimator = TimingEstimator(catalog, store=store)
    estimate = estimator.estimate("reasoning_tree")
    assert estimate.confidence == ConfidenceLevel.LOW
    assert estimate.duration_ms == 8000
    assert estimate.degraded is True


def test_lookback_window_excludes_old_samples(catalog: Catalog) -> None:
    now = [1_000_000.0]
    store = TimingStore(FeatureBucketer(catalog).bucket_key, clock=lambda: now[0])
    estimator = TimingEstimator(catalog, store=store, lookback_days=1, clock=lambda: now[0])
    _record_many(store, "reasoning_tree", [9000] * 20)
    assert estimator.estimate("reasoning_tree").confidence == ConfidenceLevel.HIGH
    now[0] += 2 * 86400
    assert estimator.estimate("reasoning_tree").confidence == ConfidenceLevel.LOW


def test_estimator_without_store_is_static(catalog: Catalog) -> None:
    estimate = TimingEstimator(catalog).estimate("reasoning_linear")
    assert estimate.duration_ms == 1000
    assert estimate.confidence == ConfidenceLevel.LOW
