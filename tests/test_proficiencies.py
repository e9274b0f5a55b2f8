import pytest

from leaderboard.backend.tools.proficiencies import (
    ModelScores,
    aggregate_judge_scores,
    match_dimension,
    relative_proficiencies,
    rubric_scores,
    transform_scores,
)


def test_match_dimension_exact_stripped_and_fuzzy():
    assert match_dimension("adherence to instructions") == "Adherence to Instructions"
    assert match_dimension("  Elegant prose! ") == "Elegant Prose"
    assert match_dimension("Nuanced Character") == "Nuanced Characters"


def test_match_dimension_rejects_junk():
    assert match_dimension("x" * 31) is None
    assert match_dimension("random words") is None
    assert match_dimension("") is None


def test_transform_inverts_renames_and_combines():
    raw = {
        "Weak Dialogue": 5,
        "Emotionally Complex": 12,
        "Emotionally Engaging": 14,
        "Overall Impression": 15,
        "Coherent": 16,
        "Adherence to Instructions": 18,
    }
    assert transform_scores(raw) == {
        "Strong Dialogue": 15,
        "Coherent": 16,
        "Instruction Following": 18,
        "Emotional Depth": 13.0,
    }


def test_transform_combines_inverted_sources():
    out = transform_scores({"Overwrought": 4, "Purple Prose": 8})
    assert out == {"Avoids Purple Prose": 14.0}


def test_rubric_scores_from_run_results():
    results = {
        "benchmark_results": {
            "rubric_dimensions": {
                "coherent": {"mean": 14.5, "sd": 1.2},
                "Garbage dimension that is far too long to count": {"mean": 3},
                "Elegant Prose": {"sd": 1},
            }
        }
    }
    assert rubric_scores(results) == {"Coherent": 14.5}
    assert rubric_scores({"benchmark_results": {"rubric_dimensions": {}}}) is None
    assert rubric_scores({}) is None
    assert rubric_scores(None) is None


def test_aggregate_judge_scores_drops_out_of_scale():
    scores = aggregate_judge_scores(
        [{"Coherent": 10, "Elegant Prose": 25}, {"Coherent": 14, "note": "text"}, None, "garbage"]
    )
    assert scores == {"Coherent": 12.0}


def _models():
    return [
        ModelScores("m3", 1400, {}, {"x": 6, "y": 10, "z": 12}),
        ModelScores("m1", 1600, {}, {"x": 10, "y": 12, "z": 8, "w": 11}),
        ModelScores("m2", 1500, {}, {"x": 8, "y": 8, "z": 8, "w": 8}),
    ]


def test_relative_scores_against_elo_neighbours():
    result = relative_proficiencies(_models())
    assert set(result) == {"m1", "m2", "m3"}

    m2 = result["m2"]
    assert m2["relativeScores"] == {"x": 0, "y": -3, "z": -2, "w": -3}
    assert [p["criterion"] for p in m2["strengths"]] == ["x", "z", "w", "y"]
    assert [p["relativeScore"] for p in m2["strengths"]] == [1.0, pytest.approx(0.2), -1.0, -1.0]
    assert [p["criterion"] for p in m2["weaknesses"]] == ["y", "w", "z", "x"]

    m3 = result["m3"]
    assert {p["criterion"]: p["relativeScore"] for p in m3["weaknesses"]} == {"x": -1.0, "y": 0.0, "z": 1.0}
    assert m3["absoluteScores"] == {"x": 6, "y": 10, "z": 12}


def test_median_equal_to_max_splits_into_two_groups():
    m1 = relative_proficiencies(_models())["m1"]
    assert m1["relativeScores"] == {"x": 3, "y": 3, "z": -2, "w": 3}
    assert {p["criterion"]: p["relativeScore"] for p in m1["strengths"]} == {"x": 1.0, "y": 1.0, "w": 1.0, "z": -1.0}


def test_models_with_too_few_dimensions_are_left_out():
    models = [ModelScores("a", 1500, {}, {"x": 1, "y": 2}), ModelScores("b", 1400, {}, {"x": 3, "y": 1})]
    assert relative_proficiencies(models) == {}


def test_flat_profile_normalizes_to_zero():
    models = [
        ModelScores("a", 1500, {}, {"x": 11, "y": 11, "z": 11}),
        ModelScores("b", 1400, {}, {"x": 10, "y": 10, "z": 10}),
    ]
    a = relative_proficiencies(models)["a"]
    assert all(p["relativeScore"] == 0 for p in a["strengths"])
