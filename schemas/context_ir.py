from __future__ import annotations

from typing import Literal, Optional, Tuple

from pydantic import Field, SerializeAsAny, ValidationInfo, field_validator

from schemas.complexity_ir import ComplexityFeatures, GenericFeatures, features_for
from schemas.strict_base import FrozenModel

ComplexityLevel = Literal["simple", "moderate", "complex"]


class ResultContext(FrozenModel):
    num_outputs: int = Field(default=0, ge=0)
    has_branches: bool = False
    session_id: Optional[str] = None
    complexity: ComplexityLevel = "moderate"


class ExecutionContext(FrozenModel):
    """Input to one metadata build; constructed fresh per tool call."""

    tool: str
    mode: Optional[str] = None
    features: SerializeAsAny[ComplexityFeatures] = Field(default_factory=GenericFeatures)
    elapsed_ms: int = Field(default=0, ge=0)
    session_id: Optional[str] = None
    # History before this call, used when no session store is wired in.
    tool_history: Tuple[str, ...] = ()
    timeout_budget_ms: Optional[int] = Field(default=None, ge=0)
    result: ResultContext = Field(default_factory=ResultContext)
    thinking_budget: Optional[str] = None
    session_state: Optional[str] = None

    @field_validator("features", mode="before")
    @classmethod
    def _coerce_features(cls, value: object, info: ValidationInfo) -> object:
        if isinstance(value, ComplexityFeatures):
            return value
        if value is None:
            value = {}
        if isinstance(value, dict):
            return features_for(str(info.data.get("tool", "")), value)
        return value
