from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class FrozenModel(StrictBaseModel):
    """Immutable value shared across requests."""

    model_config = ConfigDict(frozen=True)
