"""Shaping helpers for the published-results endpoints."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

LEXICAL_METRICS = (
    "slop_words_per_1k",
    "slop_trigrams_per_1k",
    "not_x_but_y_per_1k_chars",
    "slop_score",
    "vocab_level",
    "avg_sentence_length",
    "avg_paragraph_length",
    "mattr_500",
    "avg_turn_length",
    "num_turns",
    "total_words",
    "total_chars",
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def duration_minutes(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return math.floor((end - start).total_seconds() / 60 + 0.5)


def latest_runs_by_model(runs: Iterable[Any]) -> Dict[str, Any]:
    """First run per ``test_model``. Pass runs newest first."""
    latest: Dict[str, Any] = {}
    for run in runs:
        if run.test_model and run.test_model not in latest:
            latest[run.test_model] = run
    return latest


def lexical_summary(runs: Iterable[Any]) -> Dict[str, Any]:
    """
    Newest lexical analysis per model, plus min/max of each metric across models.

    A model whose newest run has no analysis falls back to its newest run that does.
    """
    per_model: Dict[str, Dict[str, Any]] = {}
    for run in runs:
        if run.test_model in per_model:
            continue
        results = run.results if isinstance(run.results, Mapping) else {}
        analysis = results.get("lexical_analysis")
        if analysis:
            per_model[run.test_model] = {"model": run.test_model, "lexical_analysis": analysis}

    ranges: Dict[str, Dict[str, float]] = {}
    for metric in LEXICAL_METRICS:
        values = [d["lexical_analysis"].get(metric) for d in per_model.values()]
        values = [v for v in values if _is_number(v)]
        if values:
            ranges[metric] = {"min": min(values), "max": max(values)}

    return {"models": list(per_model.values()), "ranges": ranges}


def matchup_detail(model_name: str, comparison: Any) -> Dict[str, Any]:
    """One comparison seen from ``model_name``'s side."""
    is_model_a = comparison.model_a == model_name
    fraction = comparison.fraction_for_a
    if not is_model_a and fraction is not None:
        fraction = 1 - fraction
    plus_a, plus_b = comparison.aggregated_plus_for_a, comparison.aggregated_plus_for_b
    return {
        "id": comparison.id,
        "item_id": comparison.item_id,
        "isModelA": is_model_a,
        "fractionForModel": fraction,
        "plusForModel": plus_a if is_model_a else plus_b,
        "plusForOpponent": plus_b if is_model_a else plus_a,
        "judgeResponses": comparison.aggregated_judge_responses,
    }


def summarize_matchups(model_name: str, comparisons: List[Any]) -> List[Dict[str, Any]]:
    """Per-opponent totals, most-played opponents first."""
    totals: Dict[str, Dict[str, float]] = {}

    def bucket(opponent: str) -> Dict[str, float]:
        return totals.setdefault(opponent, {"count": 0, "wins": 0.0, "losses": 0.0, "fraction": 0.0})

    for c in comparisons:
        if c.model_a != model_name:
            continue
        t = bucket(c.model_b)
        t["count"] += 1
        t["wins"] += c.aggregated_plus_for_a or 0
        t["losses"] += c.aggregated_plus_for_b or 0
        t["fraction"] += c.fraction_for_a or 0

    for c in comparisons:
        if c.model_b != model_name:
            continue
        t = bucket(c.model_a)
        t["count"] += 1
        t["wins"] += c.aggregated_plus_for_b or 0
        t["losses"] += c.aggregated_plus_for_a or 0
        t["fraction"] += 1 - c.fraction_for_a if c.fraction_for_a is not None else 0

    summaries = [
        {
            "opponent": opponent,
            "matchupCount": t["count"],
            "winsForModel": t["wins"],
            "winsForOpponent": t["losses"],
            "avgFractionForModel": t["fraction"] / t["count"] if t["count"] else 0,
        }
        for opponent, t in totals.items()
    ]
    summaries.sort(key=lambda s: s["matchupCount"], reverse=True)
    return summaries
