from __future__ import annotations

import logging
from typing import List, Optional

from engine.catalog import FeatureBucketer, load_catalog
from engine.config import DEFAULT_FACTORY_TIMEOUT_MS, EngineConfig, load_engine_config
from engine.errors import StorageError
from engine.estimator import TimingEstimator
from engine.presets import PresetMatcher
from engine.suggestions import SuggestionEngine
from schemas.catalog_ir import Catalog
from schemas.context_ir import ExecutionContext
from schemas.metadata_ir import (
    ContextMetadata,
    PresetSuggestion,
    ResponseMetadata,
    SuggestionMetadata,
    TimingMetadata,
    ToolSuggestion,
)
from schemas.timing_ir import ConfidenceLevel
from stores.session_history import SessionHistoryStore
from stores.timing_store import TimingStore

logger = logging.getLogger(__name__)


class MetadataBuilder:
    """Single entry point tool handlers call after their primary work.

    ``build`` records the observed sample, appends the tool to the session
    history, then assembles timing, suggestions and presets. It never raises:
    a failing step falls back to its default (low-confidence static estimate,
    no suggestions, no presets) and is named in ``ResponseMetadata.degraded``.
    """

    def __init__(
        self,
        estimator: TimingEstimator,
        suggestions: SuggestionEngine,
        matcher: PresetMatcher,
        store: Optional[TimingStore] = None,
        history: Optional[SessionHistoryStore] = None,
        factory_timeout_ms: int = DEFAULT_FACTORY_TIMEOUT_MS,
        history_window: int = 20,
    ) -> None:
        self.estimator = estimator
        self.suggestions = suggestions
        self.matcher = matcher
        self.store = store
        self.history = history
        self.factory_timeout_ms = factory_timeout_ms
        self.history_window = max(1, history_window)

    @classmethod
    def from_config(
        cls,
        config: Optional[EngineConfig] = None,
        catalog: Optional[Catalog] = None,
    ) -> "MetadataBuilder":
        config = config or load_engine_config()
        catalog = catalog or load_catalog(config.catalog_dir)
        bucketer = FeatureBucketer(catalog)
        store = TimingStore(bucketer.bucket_key, config.store_path)
        estimator = TimingEstimator(
            catalog,
            store=store,
            policy=config.confidence,
            default_timeout_ms=config.factory_timeout_ms,
            lookback_days=config.lookback_days,
            min_factor=config.min_factor,
        )
        return cls(
            estimator=estimator,
            suggestions=SuggestionEngine(catalog, estimator),
            matcher=PresetMatcher(
                catalog, min_score=config.min_preset_score, max_results=config.max_presets
            ),
            store=store,
            history=SessionHistoryStore(config.history_window),
            factory_timeout_ms=config.factory_timeout_ms,
            history_window=config.history_window,
        )

    def build(self, ctx: ExecutionContext) -> ResponseMetadata:
        degraded: List[str] = []
        budget = self.factory_timeout_ms if ctx.timeout_budget_ms is None else ctx.timeout_budget_ms

        self._record(ctx, degraded)
        prior = self._update_history(ctx, degraded)
        timing = self._build_timing(ctx, budget, degraded)
        next_tools = self._build_suggestions(ctx, budget, degraded)
        presets = self._build_presets(prior, ctx.tool, budget, degraded)

        return ResponseMetadata(
            timing=timing,
            suggestions=SuggestionMetadata(
                next_tools=tuple(next_tools),
                relevant_presets=tuple(presets),
            ),
            context=ContextMetadata(
                mode_used=ctx.mode or "none",
                complexity=ctx.result.complexity,
                features=ctx.features.as_map(),
                thinking_budget=ctx.thinking_budget,
                session_state=ctx.session_state,
            ),
            degraded=tuple(degraded),
        )

    def _record(self, ctx: ExecutionContext, degraded: List[str]) -> None:
        if self.store is None:
            return
        try:
            self.store.record(ctx.tool, ctx.features.as_map(), ctx.elapsed_ms, mode=ctx.mode)
        except StorageError as exc:
            logger.warning("could not record timing sample for %s: %s", ctx.tool, exc)
            degraded.append("record")
        except Exception:
            logger.exception("unexpected failure recording timing sample for %s", ctx.tool)
            degraded.append("record")

    def _update_history(self, ctx: ExecutionContext, degraded: List[str]) -> List[str]:
        """Append the current tool and return the history that preceded it."""
        keep = self.history_window - 1
        fallback = list(ctx.tool_history)[-keep:] if keep > 0 else []
        if self.history is None or not ctx.session_id:
            return fallback
        try:
            updated = self.history.append_tool(ctx.session_id, ctx.tool)
        except Exception:
            logger.exception("session history update failed for %s", ctx.session_id)
            degraded.append("history")
            return fallback
        # Snapshot taken under the history lock; its last entry is this call.
        return list(updated)[:-1]

    def _build_timing(
        self, ctx: ExecutionContext, budget: int, degraded: List[str]
    ) -> TimingMetadata:
        try:
            estimate = self.estimator.estimate(ctx.tool, ctx.features, budget)
            if estimate.degraded:
                degraded.append("timing")
            duration_ms = estimate.duration_ms
            confidence = estimate.confidence
        except Exception:
            logger.exception("timing estimate failed for %s", ctx.tool)
            degraded.append("timing")
            duration_ms = self._static_fallback(ctx)
            confidence = ConfidenceLevel.LOW
        return TimingMetadata(
            estimated_duration_ms=duration_ms,
            confidence=confidence,
            will_timeout_on_factory=duration_ms > budget,
            factory_timeout_ms=budget,
        )

    def _static_fallback(self, ctx: ExecutionContext) -> int:
        try:
            return max(0, int(round(self.estimator.baseline_estimate(ctx.tool, ctx.features))))
        except Exception:
            logger.exception("static timing model failed for %s", ctx.tool)
            return self.estimator.catalog.fallback_baseline_ms

    def _build_suggestions(
        self, ctx: ExecutionContext, budget: int, degraded: List[str]
    ) -> List[ToolSuggestion]:
        try:
            return self.suggestions.suggest(ctx.tool, ctx.result, budget)
        except Exception:
            logger.exception("suggestions failed for %s", ctx.tool)
            degraded.append("suggestions")
            return []

    def _build_presets(
        self, prior: List[str], tool: str, budget: int, degraded: List[str]
    ) -> List[PresetSuggestion]:
        try:
            return [
                PresetSuggestion(
                    preset_id=match.preset_id,
                    description=match.description,
                    estimated_duration_ms=sum(
                        self._default_duration(step, budget) for step in match.tools
                    ),
                )
                for match in self.matcher.match(prior, tool)
            ]
        except Exception:
            logger.exception("preset matching failed for %s", tool)
            degraded.append("presets")
            return []

    def _default_duration(self, tool: str, budget: int) -> int:
        features = self.estimator.default_features(tool)
        return self.estimator.estimate(tool, features, budget).duration_ms

    def apply_retention(self, max_age_days: Optional[float], max_samples: Optional[int]) -> int:
        if self.store is None:
            return 0
        removed = 0
        for tool in self.store.tools():
            removed += self.store.prune(tool, max_age_days=max_age_days, max_samples=max_samples)
        return removed
