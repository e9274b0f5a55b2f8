"""Per-model writing strengths and weaknesses from rubric scores.

Judges score each rubric dimension on a 0-20 scale. Negative criteria are
inverted, some dimensions are renamed or averaged together, and every model is
compared against its ELO neighbours so strengths read relative to similarly
ranked models.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

MAX_SCORE = 20
MAX_DIMENSION_LENGTH = 30
N_NEIGHBORS = 6
TOP_N = 5

MASTER_DIMENSIONS = [
    "Adherence to Instructions",
    "Believable Character Actions",
    "Nuanced Characters",
    "Consistent Voice/Tone of Writing",
    "Imagery and Descriptive Quality",
    "Elegant Prose",
    "Emotionally Engaging",
    "Emotionally Complex",
    "Coherent",
    "Meandering",
    "Weak Dialogue",
    "Tell-Don't-Show",
    "Unsurprising or Uncreative",
    "Amateurish",
    "Purple Prose",
    "Overwrought",
    "Incongruent Ending Positivity",
    "Unearned Transformations",
    "Well-earned Lightness or Darkness",
    "Sentences Flow Naturally",
    "Overall Reader Engagement",
    "Overall Impression",
]

# Scored so that higher is worse; shown as MAX_SCORE - score.
NEGATIVE_CRITERIA = {
    name.lower()
    for name in (
        "Unearned Transformations",
        "Incongruent Ending Positivity",
        "Overwrought",
        "Purple Prose",
        "Amateurish",
        "Unsurprising or Uncreative",
        "Tell-Don't-Show",
        "Weak Dialogue",
        "Meandering",
    )
}

IGNORE_CRITERIA = {"overall impression", "overall reader engagement"}

RENAME_MAP = {
    "Inverted_Weak Dialogue": "Strong Dialogue",
    "Inverted_Tell-Don't-Show": "Show-Don't-Tell",
    "Inverted_Unsurprising or Uncreative": "Creativity",
    "Inverted_Amateurish": "Avoids Amateurish Prose",
    "Adherence to Instructions": "Instruction Following",
    "Inverted_Meandering": "Pacing",
    "Imagery and Descriptive Quality": "Descriptive Imagery",
    "Consistent Voice/Tone of Writing": "Consistent Voice & Tone",
    "Sentences Flow Naturally": "Sentence Flow",
}

COMBINATIONS = {
    "Emotional Depth": ["Emotionally Complex", "Emotionally Engaging"],
    "Avoids Positivity Bias": [
        "Well-earned Lightness or Darkness",
        "Inverted_Unearned Transformations",
        "Inverted_Incongruent Ending Positivity",
    ],
    "Avoids Purple Prose": ["Inverted_Overwrought", "Inverted_Purple Prose"],
    "Believable Characters": ["Nuanced Characters", "Believable Character Actions"],
}

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def _build_lookup() -> Dict[str, str]:
    table: Dict[str, str] = {}
    for dim in MASTER_DIMENSIONS:
        table[dim.lower()] = dim
        table[_NON_WORD.sub("", dim.lower())] = dim
    return table


DIMENSION_LOOKUP = _build_lookup()


@dataclass
class ModelScores:
    model: str
    elo: float
    raw_scores: Dict[str, float]
    transformed_scores: Dict[str, float]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _round_half_up(value: float, places: int = 2) -> float:
    scale = 10 ** places
    return math.floor(value * scale + 0.5) / scale


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)


def match_dimension(name: str) -> Optional[str]:
    """Map a judge-reported dimension name onto MASTER_DIMENSIONS, or None for junk."""
    if len(name) > MAX_DIMENSION_LENGTH:
        return None

    normalized = name.lower().strip()
    if normalized in DIMENSION_LOOKUP:
        return DIMENSION_LOOKUP[normalized]
    stripped = _NON_WORD.sub("", normalized)
    if stripped in DIMENSION_LOOKUP:
        return DIMENSION_LOOKUP[stripped]

    words = {w for w in normalized.split() if len(w) > 2}
    best: Optional[str] = None
    best_score = 0.0
    for dim in MASTER_DIMENSIONS:
        dim_words = {w for w in dim.lower().split() if len(w) > 2}
        denominator = max(len(words), len(dim_words))
        if not denominator:
            continue
        score = len(words & dim_words) / denominator
        if score > best_score and score >= 0.5:
            best, best_score = dim, score
    return best


def normalize_raw_scores(scores: Mapping[str, Any]) -> Dict[str, float]:
    normalized: Dict[str, float] = {}
    for key, value in scores.items():
        canonical = match_dimension(key)
        if canonical and _is_number(value):
            normalized[canonical] = value
    return normalized


def rubric_scores(results: Any) -> Optional[Dict[str, float]]:
    """Precomputed rubric means from a run's ``results``; None when the run has none."""
    if not isinstance(results, Mapping):
        return None
    benchmark = results.get("benchmark_results")
    dimensions = benchmark.get("rubric_dimensions") if isinstance(benchmark, Mapping) else None
    if not isinstance(dimensions, Mapping) or not dimensions:
        return None
    means = {
        dim: data["mean"]
        for dim, data in dimensions.items()
        if isinstance(data, Mapping) and _is_number(data.get("mean"))
    }
    return normalize_raw_scores(means)


def aggregate_judge_scores(score_sets: Iterable[Any]) -> Dict[str, float]:
    """Average per-task judge scores by dimension, dropping out-of-scale values."""
    collected: Dict[str, List[float]] = {}
    for scores in score_sets:
        if not isinstance(scores, Mapping):
            continue
        for dim, value in scores.items():
            canonical = match_dimension(dim)
            if not canonical:
                continue
            if _is_number(value) and value <= MAX_SCORE:
                collected.setdefault(canonical, []).append(value)
    return {dim: _mean(values) for dim, values in collected.items() if values}


def transform_scores(raw_scores: Mapping[str, float]) -> Dict[str, float]:
    processed: Dict[str, float] = {}
    for key, value in raw_scores.items():
        if key.lower() in IGNORE_CRITERIA:
            continue
        if key.lower() in NEGATIVE_CRITERIA:
            processed[f"Inverted_{key}"] = MAX_SCORE - value
        else:
            processed[key] = value

    combined = {RENAME_MAP.get(key, key): value for key, value in processed.items()}
    consumed = set()
    for new_name, sources in COMBINATIONS.items():
        values = []
        for src in sources:
            renamed = RENAME_MAP.get(src, src)
            if renamed in combined and _is_number(combined[renamed]):
                values.append(combined[renamed])
                consumed.add(renamed)
            elif src in combined and _is_number(combined[src]):
                values.append(combined[src])
                consumed.add(src)
        if values:
            combined[new_name] = _mean(values)

    for key in consumed:
        combined.pop(key, None)
    return combined


def _normalize_relative(relative: Mapping[str, float]) -> List[Dict[str, Any]]:
    """Rescale so the minimum maps to -1, the median to 0 and the maximum to 1."""
    ordered = sorted(relative.values())
    low, high = ordered[0], ordered[-1]
    mid = len(ordered) // 2
    median = ordered[mid] if len(ordered) % 2 == 1 else (ordered[mid - 1] + ordered[mid]) / 2

    pairs = []
    for criterion, value in relative.items():
        if low == high:
            norm = 0.0
        elif low == median or median == high:
            norm = -1.0 if value == low else 1.0
        elif value <= median:
            norm = -1 + (value - low) / (median - low)
        else:
            norm = (value - median) / (high - median)
        pairs.append({"criterion": criterion, "relativeScore": _round_half_up(norm)})
    pairs.sort(key=lambda p: p["relativeScore"])
    return pairs


def relative_proficiencies(model_scores: Iterable[ModelScores]) -> Dict[str, Dict[str, Any]]:
    """
    Compare each model with up to N_NEIGHBORS models on either side of it in ELO
    order. Models with fewer than three comparable dimensions are left out.
    """
    ranked = sorted(model_scores, key=lambda m: m.elo, reverse=True)
    out: Dict[str, Dict[str, Any]] = {}

    for i, current in enumerate(ranked):
        lo = max(0, i - N_NEIGHBORS)
        hi = min(len(ranked) - 1, i + N_NEIGHBORS)
        neighbours = [ranked[j] for j in range(lo, hi + 1) if j != i]

        relative: Dict[str, float] = {}
        for dim, value in current.transformed_scores.items():
            if not _is_number(value):
                continue
            others = [n.transformed_scores[dim] for n in neighbours if _is_number(n.transformed_scores.get(dim))]
            if others:
                relative[dim] = value - _mean(others)

        if len(relative) < 3:
            continue

        pairs = _normalize_relative(relative)
        out[current.model] = {
            "absoluteScores": current.transformed_scores,
            "relativeScores": relative,
            "strengths": list(reversed(pairs[-TOP_N:])),
            "weaknesses": pairs[:TOP_N],
        }
    return out
