from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from leaderboard.config import Settings, get_settings
from leaderboard.database import crud, models
from leaderboard.database.db import get_db
from leaderboard.database.models import SubmissionStatus
from leaderboard.backend.intake import IntakeOutcome, IntakeRequest, SubmissionIntake, client_ip, hash_ip
from leaderboard.backend.intake.security import log_audit_event
from leaderboard.backend.tools.diagnostics import extract_errors_from_logs

log = structlog.get_logger()

router = APIRouter(prefix="/api/submissions", tags=["submissions"])

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
USER_HEADER = APIKeyHeader(name="X-User-Id", auto_error=False)

MAX_PAGE = 100
MAX_LOG_PAGE = 500
MAX_DIAGNOSTIC_LOGS = 2000

STATUS_BY_OUTCOME = {
    "forbidden": status.HTTP_403_FORBIDDEN,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "captcha_failed": status.HTTP_400_BAD_REQUEST,
    "invalid": status.HTTP_400_BAD_REQUEST,
    "duplicate": status.HTTP_409_CONFLICT,
}


class SubmitResponse(BaseModel):
    success: bool
    submissionId: str
    status: str
    message: str


def require_api_key(api_key: Optional[str] = Depends(API_KEY_HEADER), settings: Settings = Depends(get_settings)):
    if settings.api_key and api_key != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "Invalid API key"})
    return True


def current_user(user_id: Optional[str] = Depends(USER_HEADER), _: bool = Depends(require_api_key)) -> str:
    """The auth proxy in front of this service puts the signed-in user's id in ``X-User-Id``."""
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "Authentication required"})
    return user_id.strip()


def _submission_dict(row: models.Submission) -> Dict[str, Any]:
    return {
        "id": row.id,
        "status": row.status,
        "params": row.params,
        "created_at": row.created_at,
        "started_at": row.started_at,
        "finished_at": row.finished_at,
        "error_msg": row.error_msg,
        "run_key": row.run_key,
    }


def _run_dict(run: models.Run) -> Dict[str, Any]:
    return {
        "run_key": run.run_key,
        "test_model": run.test_model,
        "status": run.status,
        "start_time": run.start_time,
        "end_time": run.end_time,
        "results": run.results,
        "generation_progress": run.generation_progress,
        "judging_progress": run.judging_progress,
    }


def _rejection_detail(outcome: IntakeOutcome) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": outcome.error}
    if outcome.rate_limit is not None and outcome.rate_limit.reset_at is not None:
        detail["resetAt"] = outcome.rate_limit.reset_at.isoformat()
    if outcome.duplicate is not None and outcome.duplicate.existing_submission_id:
        detail["existingSubmissionId"] = outcome.duplicate.existing_submission_id
    if outcome.duplicate is not None:
        detail["retryable"] = outcome.duplicate.retryable
    return detail


def _get_or_404(db: Session, sub_id: str) -> models.Submission:
    record = crud.get_submission(db, sub_id=sub_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "Submission not found"})
    return record


@router.post("", response_model=SubmitResponse)
def create_submission(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SubmitResponse:
    """Submit a model for evaluation. Rejections carry ``error`` plus ``resetAt`` / ``existingSubmissionId`` when known."""
    try:
        form = IntakeRequest(**payload)
    except ValidationError as ve:
        message = "; ".join(str(err.get("msg")) for err in ve.errors())
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": message})

    try:
        outcome = SubmissionIntake(db, settings).submit(form, user_id=user_id, client_ip=client_ip(request))
    except Exception as exc:
        db.rollback()
        log.error("submission_error", user_id=user_id, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "An unexpected error occurred"}
        )

    if not outcome.ok:
        raise HTTPException(status_code=STATUS_BY_OUTCOME[outcome.kind], detail=_rejection_detail(outcome))

    return SubmitResponse(
        success=True,
        submissionId=outcome.submission.id,
        status=outcome.submission.status,
        message="Model submitted for evaluation",
    )


@router.get("")
def list_submissions(
    limit: int = Query(20),
    offset: int = Query(0),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    limit = max(1, min(limit, MAX_PAGE))
    offset = max(0, offset)
    rows, total = crud.list_user_submissions(db, user_id=user_id, limit=limit, offset=offset)
    return {
        "submissions": [_submission_dict(row) for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{sub_id}")
def get_submission(sub_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    record = _get_or_404(db, sub_id)
    run = crud.get_run(db, run_key=record.run_key) if record.run_key else None
    return {"submission": _submission_dict(record), "runInfo": _run_dict(run) if run else None}


@router.post("/{sub_id}/cancel")
def cancel_submission(
    sub_id: str,
    request: Request,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Owners may cancel only while the pipeline has not picked the submission up."""
    record = _get_or_404(db, sub_id)
    if record.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "Access denied"})
    if record.status != SubmissionStatus.SUBMITTED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Can only cancel submissions with SUBMITTED status"},
        )

    crud.update_status(db, sub_id=sub_id, status=SubmissionStatus.CANCELLED.value)
    log_audit_event(
        db,
        "submission_cancelled",
        submission_id=sub_id,
        user_id=user_id,
        ip_hash=hash_ip(client_ip(request), settings.auth_secret),
    )
    return {"success": True}


@router.get("/{sub_id}/logs")
def get_logs(
    sub_id: str,
    after: Optional[int] = Query(None),
    limit: int = Query(100),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    record = _get_or_404(db, sub_id)
    if not record.run_key:
        return {"logs": [], "hasMore": False, "status": record.status}

    limit = max(1, min(limit, MAX_LOG_PAGE))
    rows = crud.list_run_logs(db, run_key=record.run_key, after_id=after, limit=limit)
    return {
        "logs": [{"id": r.id, "ts": r.ts, "stream": r.stream, "data": r.data} for r in rows],
        "hasMore": len(rows) == limit,
        "status": record.status,
        "runKey": record.run_key,
    }


@router.get("/{sub_id}/errors")
def get_errors(sub_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Readable failure causes from the submission's error message and run logs."""
    record = _get_or_404(db, sub_id)
    entries: List[Dict[str, str]] = []
    if record.error_msg:
        entries.append({"stream": "error", "data": record.error_msg})
    if record.run_key:
        rows = crud.list_run_logs(db, run_key=record.run_key, after_id=None, limit=MAX_DIAGNOSTIC_LOGS)
        entries.extend({"stream": r.stream, "data": r.data or ""} for r in rows)

    errors = extract_errors_from_logs(entries)
    return {"status": record.status, "errors": [e.as_dict() for e in errors]}
