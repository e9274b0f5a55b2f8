from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from leaderboard.config import RateLimitPolicy
from leaderboard.database import crud

log = structlog.get_logger()


@dataclass
class RateLimitResult:
    allowed: bool
    reason: Optional[str] = None
    user_submissions: Optional[int] = None
    ip_submissions: Optional[int] = None
    reset_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            out["reason"] = self.reason
        if self.user_submissions is not None:
            out["userSubmissions"] = self.user_submissions
        if self.ip_submissions is not None:
            out["ipSubmissions"] = self.ip_submissions
        if self.reset_at is not None:
            out["resetAt"] = self.reset_at.isoformat()
        return out


class RateLimiter:
    """Counts a user's and an IP's submissions in a trailing window against fixed ceilings.

    Read-only: the caller persists the new submission only after every other check passes.
    Two concurrent requests can both see a pre-limit count; nothing here serializes them.
    """

    def __init__(self, db: Session, policy: RateLimitPolicy):
        self.db = db
        self.policy = policy

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.policy.window_hours)

    def check(self, user_id: str, ip_hash: str, now: Optional[datetime] = None) -> RateLimitResult:
        if not user_id:
            raise ValueError("user_id is required")
        if not ip_hash:
            raise ValueError("ip_hash is required")

        now = now or datetime.utcnow()
        window_start = now - self.window

        user_count = crud.count_user_submissions_since(self.db, user_id=user_id, since=window_start)
        if user_count >= self.policy.max_per_user:
            oldest = crud.oldest_user_submission_since(self.db, user_id=user_id, since=window_start)
            reset_at = oldest.created_at + self.window if oldest and oldest.created_at else None
            log.info("rate_limit_user_ceiling", user_id=user_id, count=user_count)
            return RateLimitResult(
                allowed=False,
                reason=(
                    f"You have reached the maximum of {self.policy.max_per_user} submissions "
                    f"per {self.policy.window_hours} hours"
                ),
                user_submissions=user_count,
                reset_at=reset_at,
            )

        ip_count = crud.count_ip_submissions_since(self.db, ip_hash=ip_hash, since=window_start)
        if ip_count >= self.policy.max_per_ip:
            log.info("rate_limit_ip_ceiling", user_id=user_id, count=ip_count)
            return RateLimitResult(
                allowed=False,
                reason="Too many submissions from this network. Please try again later.",
                ip_submissions=ip_count,
            )

        return RateLimitResult(allowed=True, user_submissions=user_count, ip_submissions=ip_count)
