from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from leaderboard.database import crud
from leaderboard.database.db import get_db
from leaderboard.backend.routers.submissions import current_user

log = structlog.get_logger()

router = APIRouter(prefix="/api/admin", tags=["admin"])


def require_admin(user_id: str = Depends(current_user), db: Session = Depends(get_db)) -> str:
    user = crud.get_user(db, user_id=user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "User not found"})
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "Admin access required"})
    return user_id


@router.delete("/leaderboard")
def delete_leaderboard_entry(
    model: Optional[str] = None,
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Remove a model from the leaderboard together with its finished runs and comparisons."""
    model_name = (model or "").strip()
    if not model_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "Model name is required"})
    if not crud.get_rating(db, model_name=model_name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "Model not on leaderboard"})

    try:
        runs_deleted = crud.delete_leaderboard_entry(db, model_name=model_name, user_id=admin_id)
    except Exception as exc:  # noqa: BLE001
        log.error("leaderboard_delete_failed", model_name=model_name, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "Failed to delete leaderboard entry"}
        )

    log.info("leaderboard_entry_deleted", model_name=model_name, runs_deleted=runs_deleted, admin_id=admin_id)
    return {"success": True, "message": f"Deleted {model_name} and {runs_deleted} associated run(s)"}
