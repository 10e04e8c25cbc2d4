"""Helpers tool handlers use to describe a finished call and attach metadata."""

from __future__ import annotations

from typing import Dict, MutableMapping, Optional, Sequence

from schemas.complexity_ir import features_for
from schemas.context_ir import ComplexityLevel, ExecutionContext, ResultContext
from schemas.metadata_ir import ResponseMetadata


def _context(
    tool: str,
    mode: Optional[str],
    features: Dict[str, object],
    elapsed_ms: int,
    result: ResultContext,
    session_id: Optional[str],
    tool_history: Sequence[str],
    thinking_budget: Optional[str] = None,
) -> ExecutionContext:
    return ExecutionContext(
        tool=tool,
        mode=mode,
        features=features_for(tool, features),
        elapsed_ms=max(0, int(elapsed_ms)),
        session_id=session_id,
        tool_history=tuple(tool_history),
        result=result,
        thinking_budget=thinking_budget,
    )


def context_for_divergent(
    content_length: int,
    num_perspectives: int,
    force_rebellion: bool,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    if force_rebellion or num_perspectives > 4:
        complexity: ComplexityLevel = "complex"
    elif num_perspectives > 2 or content_length > 3000:
        complexity = "moderate"
    else:
        complexity = "simple"
    return _context(
        "reasoning_divergent",
        "rebellion" if force_rebellion else "standard",
        {"content_length": content_length, "num_perspectives": num_perspectives},
        elapsed_ms,
        ResultContext(
            num_outputs=num_perspectives,
            has_branches=True,
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
        thinking_budget="standard",
    )


def context_for_decision(
    content_length: int,
    decision_type: str,
    num_options: int,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    if decision_type in ("topsis", "perspectives"):
        complexity: ComplexityLevel = "complex"
    elif decision_type == "pairwise" and num_options > 5:
        complexity = "complex"
    else:
        complexity = "moderate"
    return _context(
        "reasoning_decision",
        decision_type,
        {"content_length": content_length, "num_options": num_options},
        elapsed_ms,
        ResultContext(
            num_outputs=num_options,
            has_branches=decision_type == "perspectives",
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
        thinking_budget="standard",
    )


def context_for_tree(
    content_length: int,
    operation: str,
    num_branches: int,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    if num_branches > 3:
        complexity: ComplexityLevel = "complex"
    elif num_branches > 1 or content_length > 3000:
        complexity = "moderate"
    else:
        complexity = "simple"
    return _context(
        "reasoning_tree",
        operation,
        {"content_length": content_length, "num_branches": num_branches},
        elapsed_ms,
        ResultContext(
            num_outputs=num_branches,
            has_branches=num_branches > 0,
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
    )


def context_for_linear(
    content_length: int,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    if content_length > 5000:
        complexity: ComplexityLevel = "complex"
    elif content_length > 1000:
        complexity = "moderate"
    else:
        complexity = "simple"
    return _context(
        "reasoning_linear",
        "linear",
        {"content_length": content_length},
        elapsed_ms,
        ResultContext(num_outputs=1, session_id=session_id, complexity=complexity),
        session_id,
        tool_history,
    )


def context_for_graph(
    content_length: int,
    operation: str,
    num_nodes: int,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    complexity: ComplexityLevel = "complex" if num_nodes > 10 else "moderate"
    return _context(
        "reasoning_graph",
        operation,
        {"content_length": content_length, "num_nodes": num_nodes},
        elapsed_ms,
        ResultContext(
            num_outputs=num_nodes,
            has_branches=num_nodes > 1,
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
    )


def context_for_mcts(
    content_length: int,
    operation: str,
    num_iterations: int,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    complexity: ComplexityLevel = "complex" if num_iterations > 20 else "moderate"
    return _context(
        "reasoning_mcts",
        operation,
        {"content_length": content_length, "num_iterations": num_iterations},
        elapsed_ms,
        ResultContext(
            num_outputs=num_iterations,
            has_branches=True,
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
    )


def context_for_reflection(
    content_length: int,
    operation: str,
    iterations_used: int,
    quality_score: float,
    elapsed_ms: int,
    session_id: Optional[str] = None,
    tool_history: Sequence[str] = (),
) -> ExecutionContext:
    if operation == "process":
        if iterations_used > 3 or quality_score < 0.6:
            complexity: ComplexityLevel = "complex"
        else:
            complexity = "moderate"
    elif operation == "evaluate":
        complexity = "simple"
    else:
        complexity = "moderate"
    return _context(
        "reasoning_reflection",
        operation,
        {"content_length": content_length, "max_iterations": iterations_used},
        elapsed_ms,
        ResultContext(
            num_outputs=max(iterations_used, 1),
            session_id=session_id,
            complexity=complexity,
        ),
        session_id,
        tool_history,
        thinking_budget="standard",
    )


def attach_metadata(
    payload: MutableMapping[str, object], metadata: Optional[ResponseMetadata]
) -> MutableMapping[str, object]:
    """Add ``metadata`` to a response payload; the key is left out when absent."""
    if metadata is None:
        payload.pop("metadata", None)
        return payload
    payload["metadata"] = metadata.to_payload()
    return payload
