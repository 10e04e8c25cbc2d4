from __future__ import annotations

import pytest

from engine.catalog import FeatureBucketer
from engine.estimator import TimingEstimator
from schemas.catalog_ir import Catalog, FeatureDefault, Preset, SuggestionRule, ToolDefault
from stores.timing_store import TimingStore


def small_catalog() -> Catalog:
    return Catalog(
        tool_defaults=(
            ToolDefault(
                tool="reasoning_tree",
                baseline_ms=8000,
                features={
                    "num_branches": FeatureDefault(default=2, multiplier=0.1),
                    "content_length": FeatureDefault(
                        default=500, multiplier=0.0, kind="continuous", bucket_width=2000
                    ),
                },
            ),
            ToolDefault(
                tool="reasoning_linear",
                baseline_ms=1000,
                features={"content_length": FeatureDefault(default=500, multiplier=0.0001,
                                                           kind="continuous", bucket_width=2000)},
            ),
            ToolDefault(
                tool="reasoning_decision",
                baseline_ms=2000,
                features={"num_options": FeatureDefault(default=2, multiplier=1.0)},
            ),
            ToolDefault(tool="reasoning_checkpoint", baseline_ms=100),
        ),
        rules=(
            SuggestionRule(
                source="reasoning_tree",
                tool="reasoning_decision",
                reason="Compare {num_outputs} branches",
                when=("has_branches:true",),
                order=0,
            ),
            SuggestionRule(
                source="reasoning_tree",
                tool="reasoning_checkpoint",
                reason="Save branch state",
                order=1,
            ),
            SuggestionRule(
                source="reasoning_linear",
                tool="reasoning_tree",
                reason="Branch out",
                when=("complexity_not:simple",),
                order=0,
            ),
        ),
        presets=(
            Preset(
                id="explore",
                description="Linear then tree then decision",
                tools=("reasoning_linear", "reasoning_tree", "reasoning_decision"),
            ),
            Preset(
                id="branch_and_decide",
                description="Tree then decision",
                tools=("reasoning_tree", "reasoning_decision"),
            ),
            Preset(
                id="long_haul",
                description="Four step workflow",
                tools=(
                    "reasoning_linear",
                    "reasoning_checkpoint",
                    "reasoning_tree",
                    "reasoning_checkpoint",
                ),
            ),
        ),
    )


@pytest.fixture
def catalog() -> Catalog:
    return small_catalog()


@pytest.fixture
def store(catalog: Catalog) -> TimingStore:
    return TimingStore(FeatureBucketer(catalog).bucket_key)


@pytest.fixture
def estimator(catalog: Catalog, store: TimingStore) -> TimingEstimator:
    return TimingEstimator(catalog, store=store, default_timeout_ms=30_000, lookback_days=7)
