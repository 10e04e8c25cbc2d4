from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from schemas.catalog_ir import Catalog, Preset
from schemas.metadata_ir import PresetMatch


def lcs_length(left: Sequence[str], right: Sequence[str]) -> int:
    """Length of the longest common (not necessarily contiguous) subsequence."""
    if not left or not right:
        return 0
    previous = [0] * (len(right) + 1)
    for item in left:
        current = [0] * (len(right) + 1)
        for j, other in enumerate(right, start=1):
            if item == other:
                current[j] = previous[j - 1] + 1
            else:
                current[j] = max(previous[j], current[j - 1])
        previous = current
    return previous[-1]


def preset_score(observed: Sequence[str], preset: Preset) -> float:
    return lcs_length(observed, preset.tools) / len(preset.tools)


class PresetMatcher:
    """Ranks catalog presets against a session's tool sequence.

    ``score = LCS(history + [current_tool], preset.tools) / len(preset.tools)``.
    Unrelated calls in between do not break a match. Presets under
    ``min_score`` are dropped; ties keep catalog order.
    """

    def __init__(
        self,
        catalog: Catalog,
        min_score: float = 0.5,
        max_results: Optional[int] = None,
    ) -> None:
        self.catalog = catalog
        self.min_score = min_score
        self.max_results = max_results

    def match(self, history: Sequence[str], current_tool: Optional[str] = None) -> List[PresetMatch]:
        observed = list(history)
        if current_tool:
            observed.append(current_tool)
        if not observed:
            return []
        scored: List[Tuple[float, int, Preset]] = []
        for position, preset in enumerate(self.catalog.presets):
            score = preset_score(observed, preset)
            if score >= self.min_score:
                scored.append((score, position, preset))
        scored.sort(key=lambda item: (-item[0], item[1]))
        if self.max_results is not None:
            scored = scored[: self.max_results]
        return [
            PresetMatch(
                preset_id=preset.id,
                description=preset.description,
                score=score,
                tools=preset.tools,
            )
            for score, _, preset in scored
        ]
