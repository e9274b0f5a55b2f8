from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, not_, or_, select
from sqlalchemy.orm import Session

from . import models
from .models import SubmissionStatus


def _status_values(statuses) -> List[str]:
    return [s.value for s in statuses]


def create_submission(
    db: Session,
    *,
    sub_id: str,
    user_id: str,
    created_ip: Optional[str],
    model_type: str,
    model_identifier: str,
    params: Dict[str, Any],
    max_runtime_sec: int,
    status: str = SubmissionStatus.SUBMITTED.value,
) -> models.Submission:
    submission = models.Submission(
        id=sub_id,
        user_id=user_id,
        created_ip=created_ip,
        status=status,
        model_type=model_type,
        model_identifier=model_identifier,
        params=params,
        priority_score=0,
        attempts=0,
        max_runtime_sec=max_runtime_sec,
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def get_submission(db: Session, *, sub_id: str) -> Optional[models.Submission]:
    return db.query(models.Submission).filter(models.Submission.id == sub_id).first()


def list_user_submissions(db: Session, *, user_id: str, limit: int, offset: int) -> Tuple[List[models.Submission], int]:
    query = db.query(models.Submission).filter(models.Submission.user_id == user_id)
    rows = query.order_by(models.Submission.created_at.desc()).offset(offset).limit(limit).all()
    return rows, query.count()


def update_status(db: Session, *, sub_id: str, status: str) -> Optional[models.Submission]:
    submission = get_submission(db, sub_id=sub_id)
    if not submission:
        return None
    submission.status = status
    db.commit()
    db.refresh(submission)
    return submission


# --- rate-limit counting ---


def count_user_submissions_since(db: Session, *, user_id: str, since: datetime) -> int:
    return (
        db.query(func.count(models.Submission.id))
        .filter(models.Submission.user_id == user_id, models.Submission.created_at >= since)
        .scalar()
    )


def oldest_user_submission_since(db: Session, *, user_id: str, since: datetime) -> Optional[models.Submission]:
    return (
        db.query(models.Submission)
        .filter(models.Submission.user_id == user_id, models.Submission.created_at >= since)
        .order_by(models.Submission.created_at.asc())
        .first()
    )


def count_ip_submissions_since(db: Session, *, ip_hash: str, since: datetime) -> int:
    return (
        db.query(func.count(models.Submission.id))
        .filter(models.Submission.created_ip == ip_hash, models.Submission.created_at >= since)
        .scalar()
    )


# --- deduplication ---


def find_rating_by_model_name(db: Session, *, model_name: str) -> Optional[models.EloRating]:
    return (
        db.query(models.EloRating)
        .filter(func.lower(models.EloRating.model_name) == model_name.lower())
        .first()
    )


def find_live_submission_for_model(db: Session, *, model_identifier: str) -> Optional[models.Submission]:
    return (
        db.query(models.Submission)
        .filter(
            models.Submission.model_identifier == model_identifier,
            models.Submission.status.notin_(_status_values(models.RESUBMITTABLE_STATUSES)),
        )
        .order_by(models.Submission.created_at.asc())
        .first()
    )


# --- queue / run views ---


def list_queue_submissions(db: Session) -> List[models.Submission]:
    """Active submissions, minus SUBMITTED rows the scheduler has not looked at yet."""
    unassigned = and_(
        models.Submission.status == SubmissionStatus.SUBMITTED.value,
        models.Submission.priority_score == 0,
    )
    return (
        db.query(models.Submission)
        .filter(models.Submission.status.in_(_status_values(models.ACTIVE_STATUSES)), not_(unassigned))
        .order_by(models.Submission.created_at.asc())
        .all()
    )


def list_recent_finished(db: Session, *, limit: int) -> List[models.Submission]:
    return (
        db.query(models.Submission)
        .filter(models.Submission.status.in_(_status_values(models.FINISHED_STATUSES)))
        .order_by(models.Submission.finished_at.desc())
        .limit(limit)
        .all()
    )


def get_run(db: Session, *, run_key: str) -> Optional[models.Run]:
    return db.query(models.Run).filter(models.Run.run_key == run_key).first()


def list_run_logs(db: Session, *, run_key: str, after_id: Optional[int], limit: int) -> List[models.RunLog]:
    query = db.query(models.RunLog).filter(models.RunLog.run_key == run_key)
    if after_id is not None:
        query = query.filter(models.RunLog.id > after_id)
    return query.order_by(models.RunLog.id.asc()).limit(limit).all()


# --- published results ---


def list_ratings(db: Session) -> List[models.EloRating]:
    return db.query(models.EloRating).order_by(models.EloRating.elo.desc()).all()


def get_rating(db: Session, *, model_name: str) -> Optional[models.EloRating]:
    return db.query(models.EloRating).filter(models.EloRating.model_name == model_name).first()


def list_completed_runs(db: Session, *, model_name: Optional[str] = None) -> List[models.Run]:
    """Finished runs, newest first."""
    query = db.query(models.Run).filter(models.Run.status.in_(models.RUN_COMPLETED_STATUSES))
    if model_name is not None:
        query = query.filter(models.Run.test_model == model_name)
    return query.order_by(models.Run.start_time.desc()).all()


def latest_completed_run(db: Session, *, model_name: str) -> Optional[models.Run]:
    runs = list_completed_runs(db, model_name=model_name)
    return runs[0] if runs else None


def list_completed_tasks(db: Session, *, run_key: str) -> List[models.Task]:
    return (
        db.query(models.Task)
        .filter(models.Task.run_key == run_key, models.Task.status == "completed")
        .order_by(models.Task.prompt_id.asc(), models.Task.iteration_index.asc())
        .all()
    )


def get_task(db: Session, *, task_id: int) -> Optional[models.Task]:
    return db.query(models.Task).filter(models.Task.id == task_id).first()


def list_judge_results(db: Session, *, task_id: int) -> List[models.JudgeResult]:
    return (
        db.query(models.JudgeResult)
        .filter(models.JudgeResult.task_id == task_id)
        .order_by(models.JudgeResult.judge_order_index.asc())
        .all()
    )


def list_judge_scores_for_runs(db: Session, *, run_keys: List[str]) -> List[Tuple[str, Any]]:
    """(run_key, judge_scores) for every judge result attached to a task in ``run_keys``."""
    if not run_keys:
        return []
    rows = (
        db.query(models.Task.run_key, models.JudgeResult.judge_scores)
        .join(models.JudgeResult, models.JudgeResult.task_id == models.Task.id)
        .filter(models.Task.run_key.in_(run_keys))
        .all()
    )
    return [(run_key, scores) for run_key, scores in rows]


def _item_filter(query, item_id: Optional[str]):
    if item_id:
        query = query.filter(models.EloComparison.item_id == item_id)
    return query


def list_comparisons_for_model(db: Session, *, model_name: str, item_id: Optional[str] = None) -> List[models.EloComparison]:
    query = db.query(models.EloComparison).filter(
        or_(models.EloComparison.model_a == model_name, models.EloComparison.model_b == model_name)
    )
    return _item_filter(query, item_id).all()


def list_pair_comparisons(
    db: Session, *, model_name: str, opponent: str, item_id: Optional[str], offset: int, limit: int
) -> Tuple[List[models.EloComparison], int]:
    pair = or_(
        and_(models.EloComparison.model_a == model_name, models.EloComparison.model_b == opponent),
        and_(models.EloComparison.model_a == opponent, models.EloComparison.model_b == model_name),
    )
    query = _item_filter(db.query(models.EloComparison).filter(pair), item_id)
    rows = query.order_by(models.EloComparison.item_id.asc(), models.EloComparison.id.asc()).offset(offset).limit(limit).all()
    return rows, query.count()


def delete_leaderboard_entry(db: Session, *, model_name: str, user_id: str) -> int:
    """
    Remove a model's rating with its finished runs, samples, judgements, logs and
    comparisons in one transaction. Returns the number of runs deleted.
    """
    run_keys = [
        run_key
        for (run_key,) in db.query(models.Run.run_key).filter(
            models.Run.test_model == model_name, models.Run.status.in_(models.RUN_COMPLETED_STATUSES)
        )
    ]
    try:
        if run_keys:
            task_ids = select(models.Task.id).where(models.Task.run_key.in_(run_keys))
            db.query(models.JudgeResult).filter(models.JudgeResult.task_id.in_(task_ids)).delete(synchronize_session=False)
            db.query(models.Task).filter(models.Task.run_key.in_(run_keys)).delete(synchronize_session=False)
            db.query(models.RunLog).filter(models.RunLog.run_key.in_(run_keys)).delete(synchronize_session=False)
            db.query(models.EloComparison).filter(models.EloComparison.run_key.in_(run_keys)).delete(
                synchronize_session=False
            )
            db.query(models.Run).filter(models.Run.run_key.in_(run_keys)).delete(synchronize_session=False)
        db.query(models.EloComparison).filter(
            or_(models.EloComparison.model_a == model_name, models.EloComparison.model_b == model_name)
        ).delete(synchronize_session=False)
        db.query(models.EloRating).filter(models.EloRating.model_name == model_name).delete(synchronize_session=False)
        db.add(
            models.EventLog(
                event_type="leaderboard_entry_deleted",
                user_id=user_id,
                details={"model_name": model_name, "runs_deleted": len(run_keys)},
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(run_keys)


# --- users / events ---


def get_user(db: Session, *, user_id: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def create_event(
    db: Session,
    *,
    event_type: str,
    submission_id: Optional[str] = None,
    user_id: Optional[str] = None,
    ip: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> models.EventLog:
    event = models.EventLog(
        event_type=event_type,
        submission_id=submission_id,
        user_id=user_id,
        ip=ip,
        details=details or {},
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event
