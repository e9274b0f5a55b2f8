"""Log-safety helpers and the audit trail written to ``event_log``."""
import json
import re
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from leaderboard.database import crud

log = structlog.get_logger()


REDACT_PATTERNS = {
    "email": r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    "ipv4": r"\b(?:\d{1,3}\.){3}\d{1,3}\b",
    "token": r"\b(?:hf|sk)_[A-Za-z0-9]{16,}\b",
}


def redact(text: str) -> str:
    redacted = text
    for kind, pattern in REDACT_PATTERNS.items():
        redacted = re.sub(pattern, f"[{kind.upper()}_REDACTED]", redacted)
    return redacted


def sanitize_for_logging(data: Any, max_length: int = 500) -> str:
    """Redact and truncate arbitrary data before it reaches a log line."""
    try:
        text = json.dumps(data, default=str) if not isinstance(data, str) else data
    except (TypeError, ValueError):
        return "[UNSERIALIZABLE]"
    redacted = redact(text)
    if len(redacted) > max_length:
        redacted = redacted[:max_length] + "... [truncated]"
    return redacted


def log_audit_event(
    db: Session,
    event_type: str,
    *,
    submission_id: Optional[str] = None,
    user_id: Optional[str] = None,
    ip_hash: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record an audit event.

    Args:
        event_type: e.g. 'submission_created', 'submission_cancelled'
        submission_id: Submission id, if any
        user_id: Acting user
        ip_hash: Hashed client IP, never the raw address
        details: Extra JSON-serializable context
    """
    try:
        crud.create_event(
            db,
            event_type=event_type,
            submission_id=submission_id,
            user_id=user_id,
            ip=ip_hash,
            details=details,
        )
        log.info("audit_logged", event_type=event_type, submission_id=submission_id)
    except Exception as exc:  # noqa: BLE001
        # The submission itself is already committed; a lost audit row must not fail the request.
        db.rollback()
        log.error("audit_log_failed", event_type=event_type, error=sanitize_for_logging(str(exc)))
