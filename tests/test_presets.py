from __future__ import annotations

import pytest

from engine.catalog import load_catalog
from engine.config import DEFAULT_CATALOG_DIR
from engine.presets import PresetMatcher, lcs_length
from schemas.catalog_ir import Catalog


@pytest.mark.parametrize(
    "left,right,expected",
    [
        ([], ["a"], 0),
        (["a", "b", "c"], ["a", "b", "c"], 3),
        (["a", "x", "b", "y", "c"], ["a", "b", "c"], 3),
        (["c", "b", "a"], ["a", "b", "c"], 1),
        (["a", "a", "b"], ["a", "b", "b"], 2),
    ],
)
def test_lcs_length(left, right, expected) -> None:
    assert lcs_length(left, right) == expected


def test_full_sequence_scores_one_and_ranks_first(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog)

    matches = matcher.match(["reasoning_linear", "reasoning_tree"], "reasoning_decision")

    assert matches[0].preset_id == "explore"
    assert matches[0].score == 1.0
    assert matches[1].preset_id == "branch_and_decide"
    assert matches[1].score == 1.0
    # linear, tree of the four-step workflow
    assert matches[2].preset_id == "long_haul"
    assert matches[2].score == 0.5


def test_intervening_calls_do_not_break_a_match(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog)
    history = ["reasoning_tree", "reasoning_checkpoint", "reasoning_checkpoint"]

    matches = matcher.match(history, "reasoning_decision")

    assert matches[0].preset_id == "branch_and_decide"
    assert matches[0].score == 1.0


def test_presets_below_threshold_are_dropped(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog)

    matches = matcher.match([], "reasoning_decision")

    # 1/3 for explore, 1/2 for branch_and_decide, 0 for long_haul
    assert [m.preset_id for m in matches] == ["branch_and_decide"]
    assert all(m.score >= 0.5 for m in matches)


def test_empty_observation_yields_nothing(catalog: Catalog) -> None:
    assert PresetMatcher(catalog).match([], None) == []
    assert PresetMatcher(catalog).match([]) == []


def test_order_matters(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog)
    matches = {m.preset_id: m.score for m in matcher.match(["reasoning_decision"], "reasoning_tree")}
    assert matches["branch_and_decide"] == 0.5


def test_ties_keep_catalog_order(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog, min_score=0.0)
    ids = [m.preset_id for m in matcher.match(["reasoning_checkpoint"], None)]
    # explore 0, branch_and_decide 0, long_haul 1/4
    assert ids == ["long_haul", "explore", "branch_and_decide"]


def test_max_results_caps_output(catalog: Catalog) -> None:
    matcher = PresetMatcher(catalog, max_results=1)
    matches = matcher.match(["reasoning_linear", "reasoning_tree"], "reasoning_decision")
    assert [m.preset_id for m in matches] == ["explore"]


def test_packaged_decision_workflow() -> None:
    matcher = PresetMatcher(load_catalog(DEFAULT_CATALOG_DIR))

    matches = matcher.match(["reasoning_divergent"], "reasoning_decision")

    assert [m.preset_id for m in matches] == ["decision_analysis", "problem_exploration"]
    assert matches[0].score == 1.0
    assert matches[1].score == pytest.approx(2 / 3)


def test_packaged_evidence_workflow() -> None:
    matcher = PresetMatcher(load_catalog(DEFAULT_CATALOG_DIR))
    matches = matcher.match(["reasoning_linear"], "reasoning_evidence")
    assert matches[0].preset_id == "evidence_based"
