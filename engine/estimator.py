from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Union

from engine.catalog import FeatureBucketer
from engine.config import DEFAULT_FACTORY_TIMEOUT_MS, ConfidencePolicy
from engine.errors import StorageError
from schemas.catalog_ir import Catalog
from schemas.complexity_ir import ComplexityFeatures
from schemas.timing_ir import ConfidenceLevel, TimingEstimate, TimingSample
from stores.timing_store import TimingStore

logger = logging.getLogger(__name__)

FeatureInput = Union[ComplexityFeatures, Mapping[str, float], None]

_SECONDS_PER_DAY = 86400.0


def _feature_map(features: FeatureInput) -> Dict[str, float]:
    if features is None:
        return {}
    if isinstance(features, ComplexityFeatures):
        return features.as_map()
    values: Dict[str, float] = {}
    for name, value in features.items():
        try:
            values[name] = float(value)
        except (TypeError, ValueError):
            continue
    return values


class TimingEstimator:
    """Turns stored samples, or the static cost model, into a duration estimate.

    With ``H = high_min_samples`` and ``M = medium_min_samples`` matching
    samples ``n`` in the request's bucket:

    - ``n >= H``: high confidence, mean of the samples.
    - ``M <= n < H``: medium confidence, ``(mean * n + baseline * (H - n)) / H``.
    - ``n < M``: low confidence, the static model alone.

    A failed sample lookup counts as ``n = 0`` and marks the estimate degraded.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: Optional[TimingStore] = None,
        policy: Optional[ConfidencePolicy] = None,
        default_timeout_ms: int = DEFAULT_FACTORY_TIMEOUT_MS,
        lookback_days: Optional[float] = None,
        min_factor: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.policy = policy or ConfidencePolicy()
        self.default_timeout_ms = default_timeout_ms
        self.lookback_days = lookback_days
        self.min_factor = min_factor
        self.clock = clock
        self.bucketer = FeatureBucketer(catalog)

    def confidence_for(self, sample_count: int) -> ConfidenceLevel:
        if sample_count >= self.policy.high_min_samples:
            return ConfidenceLevel.HIGH
        if sample_count >= self.policy.medium_min_samples:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def baseline_estimate(self, tool: str, features: FeatureInput = None) -> float:
        spec = self.catalog.tool_default(tool)
        if spec is None:
            return float(self.catalog.fallback_baseline_ms)
        factor = 1.0
        for name, value in _feature_map(features).items():
            feature = spec.features.get(name)
            if feature is None:
                continue
            factor *= max(self.min_factor, 1.0 + (value - feature.default) * feature.multiplier)
        return spec.baseline_ms * factor

    def default_features(self, tool: str) -> Dict[str, float]:
        spec = self.catalog.tool_default(tool)
        return spec.default_features() if spec is not None else {}

    def matching_samples(self, tool: str, features: FeatureInput = None) -> List[TimingSample]:
        if self.store is None:
            return []
        since = None
        if self.lookback_days is not None:
            since = self.clock() - self.lookback_days * _SECONDS_PER_DAY
        bucket = self.bucketer.bucket_key(tool, _feature_map(features))
        return self.store.query_samples(tool, bucket=bucket, since=since)

    def estimate(
        self,
        tool: str,
        features: FeatureInput = None,
        timeout_budget_ms: Optional[int] = None,
    ) -> TimingEstimate:
        budget = self.default_timeout_ms if timeout_budget_ms is None else timeout_budget_ms
        degraded = False
        try:
            samples = self.matching_samples(tool, features)
        except StorageError as exc:
            logger.warning("timing lookup failed for %s, using static defaults: %s", tool, exc)
            samples = []
            degraded = True

        count = len(samples)
        confidence = self.confidence_for(count)
        baseline = self.baseline_estimate(tool, features)
        if confidence == ConfidenceLevel.HIGH:
            value = sum(sample.duration_ms for sample in samples) / count
        elif confidence == ConfidenceLevel.MEDIUM:
            mean = sum(sample.duration_ms for sample in samples) / count
            weight = self.policy.high_min_samples
            value = (mean * count + baseline * (weight - count)) / weight
        else:
            value = baseline

        duration_ms = max(0, int(round(value)))
        return TimingEstimate(
            duration_ms=duration_ms,
            confidence=confidence,
            will_timeout=duration_ms > budget,
            timeout_budget_ms=budget,
            sample_count=count,
            degraded=degraded,
        )
