"""Pydantic schemas for the tool metadata engine."""

from schemas.strict_base import FrozenModel, StrictBaseModel

__all__ = ["FrozenModel", "StrictBaseModel"]
