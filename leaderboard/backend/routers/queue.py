from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leaderboard.config import Settings, get_settings
from leaderboard.database import crud
from leaderboard.database.db import get_db
from leaderboard.backend.intake import model_display_name, queue_view

router = APIRouter(prefix="/api/queue", tags=["queue"])


@router.get("")
def get_queue(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Public queue: active submissions in display order plus the most recently finished ones."""
    queued = queue_view(crud.list_queue_submissions(db))
    recent = [
        {
            "id": row.id,
            "status": row.status,
            "modelName": model_display_name(row.params),
            "createdAt": row.created_at,
            "finishedAt": row.finished_at,
        }
        for row in crud.list_recent_finished(db, limit=settings.recent_limit)
    ]
    return {"queued": queued, "recent": recent}
