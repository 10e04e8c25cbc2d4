from __future__ import annotations

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import Field, PrivateAttr, model_validator

from schemas.strict_base import FrozenModel

FeatureKind = Literal["integral", "continuous"]

# Keys understood by suggestion rule conditions ("key:value").
RULE_CONDITION_KEYS = (
    "min_outputs",
    "max_outputs",
    "complexity_is",
    "complexity_not",
    "has_branches",
    "has_session",
)


class FeatureDefault(FrozenModel):
    default: float = 0.0
    multiplier: float = 0.0
    kind: FeatureKind = "integral"
    bucket_width: float = 1.0

    @model_validator(mode="after")
    def _validate_width(self) -> "FeatureDefault":
        if self.bucket_width <= 0:
            raise ValueError("bucket_width must be > 0")
        return self


class ToolDefault(FrozenModel):
    tool: str
    baseline_ms: int = Field(..., ge=0)
    features: Dict[str, FeatureDefault] = Field(default_factory=dict)

    def default_features(self) -> Dict[str, float]:
        return {name: spec.default for name, spec in self.features.items()}


class SuggestionRule(FrozenModel):
    source: str
    tool: str
    reason: str
    when: Tuple[str, ...] = ()
    order: int = 0

    @model_validator(mode="after")
    def _validate_rule(self) -> "SuggestionRule":
        if self.tool == self.source:
            raise ValueError(f"suggestion rule for {self.source} points at itself")
        for condition in self.when:
            key = condition.split(":", 1)[0].strip()
            if ":" not in condition or key not in RULE_CONDITION_KEYS:
                raise ValueError(f"unknown rule condition: {condition!r}")
        return self


class Preset(FrozenModel):
    id: str
    name: str = ""
    description: str
    tools: Tuple[str, ...]

    @model_validator(mode="after")
    def _validate_tools(self) -> "Preset":
        if not self.tools:
            raise ValueError(f"preset {self.id} has an empty tool sequence")
        return self


class Catalog(FrozenModel):
    """Static tool defaults, suggestion rules and presets, loaded once."""

    tool_defaults: Tuple[ToolDefault, ...]
    rules: Tuple[SuggestionRule, ...] = ()
    presets: Tuple[Preset, ...] = ()
    fallback_baseline_ms: int = Field(default=15_000, ge=0)

    _defaults_by_tool: Dict[str, ToolDefault] = PrivateAttr(default_factory=dict)
    _rules_by_source: Dict[str, Tuple[SuggestionRule, ...]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _validate_references(self) -> "Catalog":
        known = [item.tool for item in self.tool_defaults]
        if len(set(known)) != len(known):
            raise ValueError("duplicate tool in tool defaults")
        known_set = set(known)
        for rule in self.rules:
            for tool in (rule.source, rule.tool):
                if tool not in known_set:
                    raise ValueError(f"suggestion rule references unknown tool {tool}")
        preset_ids = [preset.id for preset in self.presets]
        if len(set(preset_ids)) != len(preset_ids):
            raise ValueError("duplicate preset id")
        for preset in self.presets:
            missing = [tool for tool in preset.tools if tool not in known_set]
            if missing:
                raise ValueError(f"preset {preset.id} references unknown tools: {missing}")
        return self

    def model_post_init(self, __context: object) -> None:
        self._defaults_by_tool = {item.tool: item for item in self.tool_defaults}
        grouped: Dict[str, List[SuggestionRule]] = {}
        for rule in self.rules:
            grouped.setdefault(rule.source, []).append(rule)
        self._rules_by_source = {
            source: tuple(sorted(items, key=lambda rule: rule.order))
            for source, items in grouped.items()
        }

    def tool_default(self, tool: str) -> Optional[ToolDefault]:
        return self._defaults_by_tool.get(tool)

    def rules_for(self, tool: str) -> Tuple[SuggestionRule, ...]:
        return self._rules_by_source.get(tool, ())

    def known_tools(self) -> List[str]:
        return [item.tool for item in self.tool_defaults]
