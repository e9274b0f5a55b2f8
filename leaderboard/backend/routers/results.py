import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from leaderboard.database import crud, models
from leaderboard.database.db import get_db
from leaderboard.backend.tools.proficiencies import (
    ModelScores,
    aggregate_judge_scores,
    relative_proficiencies,
    rubric_scores,
    transform_scores,
)
from leaderboard.backend.tools.results import (
    duration_minutes,
    latest_runs_by_model,
    lexical_summary,
    matchup_detail,
    summarize_matchups,
)

router = APIRouter(prefix="/api", tags=["results"])

MAX_MATCHUP_PAGE = 100


def _task_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "Invalid task ID"})


@router.get("/leaderboard")
def get_leaderboard(db: Session = Depends(get_db)) -> Dict[str, Any]:
    ratings = [
        {
            "model_name": r.model_name,
            "elo": r.elo,
            "elo_norm": r.elo_norm,
            "ci_low": r.ci_low,
            "ci_high": r.ci_high,
        }
        for r in crud.list_ratings(db)
    ]
    return {"ratings": ratings}


@router.get("/run-details/{model_name:path}")
def get_run_details(model_name: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    run = crud.latest_completed_run(db, model_name=model_name)
    if not run:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "No completed run found"})
    return {
        "runKey": run.run_key,
        "startTime": run.start_time.isoformat() if run.start_time else None,
        "endTime": run.end_time.isoformat() if run.end_time else None,
        "durationMinutes": duration_minutes(run.start_time, run.end_time),
        "runConfig": run.run_config,
    }


# Registered before the catch-all model route below so "judges/..." is not read as a model name.
@router.get("/samples/judges/{task_id}")
def get_sample_judges(task_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    judges = [
        {
            "judge_model_name": j.judge_model_name,
            "judge_order_index": j.judge_order_index,
            "judge_scores": j.judge_scores,
            "raw_judge_text": j.raw_judge_text,
        }
        for j in crud.list_judge_results(db, task_id=_task_id(task_id))
    ]
    return {"judges": judges}


@router.get("/samples/response/{task_id}")
def get_sample_response(task_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    task = crud.get_task(db, task_id=_task_id(task_id))
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "Task not found"})
    return {"model_response": task.model_response, "model_responses": task.model_responses}


@router.get("/samples/{model_name:path}")
def get_samples(model_name: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Sample list for the newest completed run. Response bodies load separately per task."""
    run = crud.latest_completed_run(db, model_name=model_name)
    if not run:
        return {"samples": []}
    samples = [
        {
            "id": t.id,
            "prompt_id": t.prompt_id,
            "iteration_index": t.iteration_index,
            "aggregated_scores": t.aggregated_scores,
        }
        for t in crud.list_completed_tasks(db, run_key=run.run_key)
    ]
    return {"samples": samples}


@router.get("/matchups/{model_name:path}")
def get_matchups(
    model_name: str,
    opponent: Optional[str] = None,
    item_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_MATCHUP_PAGE),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Per-opponent summary, or paginated head-to-head details when ``opponent`` is given."""
    if opponent:
        rows, total = crud.list_pair_comparisons(
            db, model_name=model_name, opponent=opponent, item_id=item_id, offset=(page - 1) * limit, limit=limit
        )
        return {
            "details": [matchup_detail(model_name, row) for row in rows],
            "pagination": {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit)},
        }

    comparisons = crud.list_comparisons_for_model(db, model_name=model_name, item_id=item_id)
    return {"summaries": summarize_matchups(model_name, comparisons)}


def _model_scores(db: Session) -> List[ModelScores]:
    elo_by_model = {r.model_name: r.elo for r in crud.list_ratings(db) if r.elo is not None}
    latest = latest_runs_by_model(crud.list_completed_runs(db))

    scores: List[ModelScores] = []
    fallback: Dict[str, str] = {}
    for model, run in latest.items():
        if model not in elo_by_model:
            continue
        raw = rubric_scores(run.results)
        if raw is None:
            fallback[run.run_key] = model
        elif raw:
            scores.append(ModelScores(model, elo_by_model[model], raw, transform_scores(raw)))

    by_run: Dict[str, list] = {}
    for run_key, judge_scores in crud.list_judge_scores_for_runs(db, run_keys=list(fallback)):
        by_run.setdefault(run_key, []).append(judge_scores)
    for run_key, model in fallback.items():
        raw = aggregate_judge_scores(by_run.get(run_key, []))
        if raw:
            scores.append(ModelScores(model, elo_by_model[model], raw, transform_scores(raw)))
    return scores


@router.get("/proficiencies")
def get_proficiencies(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return {"proficiencies": relative_proficiencies(_model_scores(db))}


@router.get("/lexical-analysis")
def get_lexical_analysis(db: Session = Depends(get_db)) -> Dict[str, Any]:
    runs: List[models.Run] = crud.list_completed_runs(db)
    return lexical_summary(runs)
