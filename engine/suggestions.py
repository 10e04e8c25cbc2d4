from __future__ import annotations

from typing import List, Optional

from engine.estimator import TimingEstimator
from schemas.catalog_ir import Catalog, SuggestionRule
from schemas.context_ir import ResultContext
from schemas.metadata_ir import ToolSuggestion


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def evaluate_condition(condition: str, ctx: ResultContext) -> bool:
    if ":" not in condition:
        return False
    key, value = condition.split(":", 1)
    key = key.strip()
    value = value.strip()
    if key == "min_outputs":
        return ctx.num_outputs >= _parse_int(value)
    if key == "max_outputs":
        return ctx.num_outputs <= _parse_int(value)
    if key == "complexity_is":
        return ctx.complexity == value
    if key == "complexity_not":
        return ctx.complexity != value
    if key == "has_branches":
        return ctx.has_branches == _parse_bool(value)
    if key == "has_session":
        return (ctx.session_id is not None) == _parse_bool(value)
    return False


def _format_reason(rule: SuggestionRule, ctx: ResultContext) -> str:
    try:
        return rule.reason.format(num_outputs=ctx.num_outputs, complexity=ctx.complexity)
    except (KeyError, IndexError, ValueError):
        return rule.reason


class SuggestionEngine:
    """Next-tool suggestions from the curated rule table.

    Rules are emitted in declaration order; a rule whose conditions do not
    hold for the result is skipped. Each candidate is priced with its own
    default features because the caller's next parameters are unknown.
    """

    def __init__(self, catalog: Catalog, estimator: TimingEstimator) -> None:
        self.catalog = catalog
        self.estimator = estimator

    def suggest(
        self,
        tool: str,
        ctx: Optional[ResultContext] = None,
        timeout_budget_ms: Optional[int] = None,
    ) -> List[ToolSuggestion]:
        ctx = ctx or ResultContext()
        suggestions: List[ToolSuggestion] = []
        seen = set()
        for rule in self.catalog.rules_for(tool):
            if rule.tool == tool or rule.tool in seen:
                continue
            if not all(evaluate_condition(condition, ctx) for condition in rule.when):
                continue
            estimate = self.estimator.estimate(
                rule.tool,
                self.estimator.default_features(rule.tool),
                timeout_budget_ms,
            )
            suggestions.append(
                ToolSuggestion(
                    tool=rule.tool,
                    reason=_format_reason(rule, ctx),
                    estimated_duration_ms=estimate.duration_ms,
                )
            )
            seen.add(rule.tool)
        return suggestions
