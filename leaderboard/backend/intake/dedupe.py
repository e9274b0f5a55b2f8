from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from leaderboard.database import crud
from leaderboard.database.models import ACTIVE_STATUSES, SubmissionStatus


@dataclass
class DuplicateCheck:
    reason: str
    retryable: bool
    existing_submission_id: Optional[str] = None


def find_duplicate(db: Session, identifier: str) -> Optional[DuplicateCheck]:
    """Run after validation. Returns None when the model may be submitted."""
    rating = crud.find_rating_by_model_name(db, model_name=identifier)
    if rating:
        return DuplicateCheck(
            reason="This model has already been evaluated and appears on the leaderboard.",
            retryable=False,
        )

    existing = crud.find_live_submission_for_model(db, model_identifier=identifier)
    if existing:
        if existing.status == SubmissionStatus.SUCCEEDED.value:
            reason = "This model has already been evaluated."
        else:
            reason = "This model is already in the evaluation queue."
        retryable = existing.status in {s.value for s in ACTIVE_STATUSES}
        return DuplicateCheck(reason=reason, retryable=retryable, existing_submission_id=existing.id)

    return None
