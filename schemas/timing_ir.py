from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import Field, model_validator

from schemas.strict_base import FrozenModel


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TimingSample(FrozenModel):
    tool: str
    features: Dict[str, float] = Field(default_factory=dict)
    bucket: str = ""
    duration_ms: int = Field(..., ge=0)
    timestamp: float
    mode: Optional[str] = None


class TimingEstimate(FrozenModel):
    duration_ms: int = Field(..., ge=0)
    confidence: ConfidenceLevel
    will_timeout: bool
    timeout_budget_ms: int = Field(..., ge=0)
    sample_count: int = 0
    # Set when the sample lookup failed and the static model was used instead.
    degraded: bool = False

    @model_validator(mode="after")
    def _validate_timeout_flag(self) -> "TimingEstimate":
        if self.will_timeout != (self.duration_ms > self.timeout_budget_ms):
            raise ValueError("will_timeout must equal duration_ms > timeout_budget_ms")
        return self
