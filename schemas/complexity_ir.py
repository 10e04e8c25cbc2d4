from __future__ import annotations

from typing import Dict, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ComplexityFeatures(BaseModel):
    """Named numeric dimensions that drive a tool's duration.

    Each tool family gets its own variant with a literal ``kind`` tag. Keys a
    variant does not declare are dropped on construction so older callers and
    newer handlers can exchange feature maps freely.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: str = "generic"
    content_length: Optional[int] = Field(default=None, ge=0)
    thinking_budget: Optional[int] = Field(default=None, ge=0)

    def as_map(self) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for name, value in self:
            if name == "kind" or value is None:
                continue
            values[name] = float(value)
        return values


class GenericFeatures(ComplexityFeatures):
    kind: Literal["generic"] = "generic"


class DivergentFeatures(ComplexityFeatures):
    kind: Literal["divergent"] = "divergent"
    num_perspectives: Optional[int] = Field(default=None, ge=0)


class TreeFeatures(ComplexityFeatures):
    kind: Literal["tree"] = "tree"
    num_branches: Optional[int] = Field(default=None, ge=0)


class DecisionFeatures(ComplexityFeatures):
    kind: Literal["decision"] = "decision"
    num_options: Optional[int] = Field(default=None, ge=0)


class GraphFeatures(ComplexityFeatures):
    kind: Literal["graph"] = "graph"
    num_nodes: Optional[int] = Field(default=None, ge=0)


class MctsFeatures(ComplexityFeatures):
    kind: Literal["mcts"] = "mcts"
    num_iterations: Optional[int] = Field(default=None, ge=0)


class ReflectionFeatures(ComplexityFeatures):
    kind: Literal["reflection"] = "reflection"
    max_iterations: Optional[int] = Field(default=None, ge=0)


class EvidenceFeatures(ComplexityFeatures):
    kind: Literal["evidence"] = "evidence"
    num_sources: Optional[int] = Field(default=None, ge=0)


class TimelineFeatures(ComplexityFeatures):
    kind: Literal["timeline"] = "timeline"
    num_branches: Optional[int] = Field(default=None, ge=0)


class CounterfactualFeatures(ComplexityFeatures):
    kind: Literal["counterfactual"] = "counterfactual"


class DetectFeatures(ComplexityFeatures):
    kind: Literal["detect"] = "detect"


FEATURE_MODELS: Dict[str, Type[ComplexityFeatures]] = {
    "reasoning_divergent": DivergentFeatures,
    "reasoning_tree": TreeFeatures,
    "reasoning_decision": DecisionFeatures,
    "reasoning_graph": GraphFeatures,
    "reasoning_mcts": MctsFeatures,
    "reasoning_reflection": ReflectionFeatures,
    "reasoning_evidence": EvidenceFeatures,
    "reasoning_timeline": TimelineFeatures,
    "reasoning_counterfactual": CounterfactualFeatures,
    "reasoning_detect": DetectFeatures,
}


def features_for(tool: str, raw: Optional[Mapping[str, object]] = None) -> ComplexityFeatures:
    model = FEATURE_MODELS.get(tool, GenericFeatures)
    data = {
        key: value
        for key, value in (raw or {}).items()
        if isinstance(key, str) and key != "kind"
    }
    try:
        return model(**data)
    except ValidationError as exc:
        # Malformed values are dropped, never rejected.
        bad = {err["loc"][0] for err in exc.errors() if err.get("loc")}
        return model(**{key: value for key, value in data.items() if key not in bad})
