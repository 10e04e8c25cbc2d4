from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import Field, model_validator

from schemas.strict_base import FrozenModel
from schemas.timing_ir import ConfidenceLevel


class TimingMetadata(FrozenModel):
    estimated_duration_ms: int = Field(..., ge=0)
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    will_timeout_on_factory: bool
    factory_timeout_ms: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _validate_timeout_flag(self) -> "TimingMetadata":
        expected = self.estimated_duration_ms > self.factory_timeout_ms
        if self.will_timeout_on_factory != expected:
            raise ValueError("will_timeout_on_factory must match estimated_duration_ms")
        return self


class ToolSuggestion(FrozenModel):
    tool: str
    reason: str
    estimated_duration_ms: int = Field(..., ge=0)


class PresetMatch(FrozenModel):
    preset_id: str
    description: str
    score: float = Field(..., ge=0.0, le=1.0)
    tools: Tuple[str, ...] = ()


class PresetSuggestion(FrozenModel):
    preset_id: str
    description: str
    # Sum of each step's estimate at its default features.
    estimated_duration_ms: int = Field(..., ge=0)


class SuggestionMetadata(FrozenModel):
    next_tools: Tuple[ToolSuggestion, ...] = ()
    relevant_presets: Tuple[PresetSuggestion, ...] = ()


class ContextMetadata(FrozenModel):
    mode_used: str = "none"
    complexity: str = "moderate"
    features: Dict[str, float] = Field(default_factory=dict)
    thinking_budget: Optional[str] = None
    session_state: Optional[str] = None


class ResponseMetadata(FrozenModel):
    timing: TimingMetadata
    suggestions: SuggestionMetadata = Field(default_factory=SuggestionMetadata)
    context: ContextMetadata = Field(default_factory=ContextMetadata)
    # Operator-facing only: names of the steps that fell back to defaults.
    degraded: Tuple[str, ...] = Field(default=(), exclude=True)

    def to_payload(self) -> Dict[str, object]:
        return self.model_dump(mode="json", exclude_none=True)
