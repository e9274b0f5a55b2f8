import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from leaderboard.config import Settings
from leaderboard.database import crud, models
from .captcha import verify_captcha
from .dedupe import DuplicateCheck, find_duplicate
from .engine_params import ParamSanitizer
from .ip import hash_ip
from .model_registry import validate_file_url, validate_model_id
from .rate_limit import RateLimiter, RateLimitResult
from .security import log_audit_event

log = structlog.get_logger()

MODEL_TYPES = {"huggingface", "gguf"}

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class IntakeRequest(BaseModel):
    source: str = Field(..., alias="modelType")
    repo_id: Optional[str] = Field(None, alias="modelId")
    gguf_url: Optional[str] = Field(None, alias="ggufUrl")
    vllm_params: Optional[Dict[str, Any]] = Field(None, alias="vllmParams")
    turnstile_token: Optional[str] = Field(None, alias="turnstileToken")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in MODEL_TYPES:
            raise ValueError("Invalid model type. Must be 'huggingface' or 'gguf'")
        return v


@dataclass
class IntakeOutcome:
    kind: str
    submission: Optional[models.Submission] = None
    error: Optional[str] = None
    rate_limit: Optional[RateLimitResult] = None
    duplicate: Optional[DuplicateCheck] = None

    @property
    def ok(self) -> bool:
        return self.kind == "created"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_submission_id() -> str:
    """URL-friendly id: ``sub_`` + base36 millisecond timestamp + 6 random base36 chars."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"sub_{_base36(int(time.time() * 1000))}{suffix}"


class SubmissionIntake:
    """ban check -> rate limit -> CAPTCHA -> params -> model validation -> dedupe -> persist.

    Every rejection returns before anything is written.
    """

    def __init__(self, db: Session, settings: Settings, sanitizer: Optional[ParamSanitizer] = None):
        self.db = db
        self.settings = settings
        self.sanitizer = sanitizer or ParamSanitizer()

    def submit(self, request: IntakeRequest, *, user_id: str, client_ip: str) -> IntakeOutcome:
        user = crud.get_user(self.db, user_id=user_id)
        if user and user.is_banned:
            log.warning("submission_banned_user", user_id=user_id)
            return IntakeOutcome(kind="forbidden", error="Your account has been suspended")

        ip_hash = hash_ip(client_ip, self.settings.auth_secret)
        rate = RateLimiter(self.db, self.settings.rate_limit).check(user_id, ip_hash)
        if not rate.allowed:
            log.warning("submission_rate_limited", user_id=user_id, reason=rate.reason)
            return IntakeOutcome(kind="rate_limited", error=rate.reason, rate_limit=rate)

        if not verify_captcha(request.turnstile_token, client_ip, self.settings):
            return IntakeOutcome(kind="captcha_failed", error="CAPTCHA verification failed. Please try again.")

        config = self.sanitizer.sanitize(request.vllm_params or {})
        if config.is_empty():
            config = self.sanitizer.default_configuration()
        config = self.sanitizer.merge_with_required(config)

        params: Dict[str, Any] = {
            "modelType": request.source,
            "vllmParams": config.as_dict(),
            "paramsSchema": self.sanitizer.schema.version,
            "judges": list(self.settings.judge_models),
        }
        if request.source == "huggingface":
            if not request.repo_id:
                return IntakeOutcome(kind="invalid", error="Model ID is required for HuggingFace models")
            validation = validate_model_id(request.repo_id, self.settings)
            if not validation.valid:
                return IntakeOutcome(kind="invalid", error=validation.error)
            params["modelId"] = validation.identifier
            params["modelInfo"] = validation.model_info
        else:
            if not request.gguf_url:
                return IntakeOutcome(kind="invalid", error="GGUF URL is required")
            validation = validate_file_url(request.gguf_url, self.settings)
            if not validation.valid:
                return IntakeOutcome(kind="invalid", error=validation.error)
            params["ggufUrl"] = validation.identifier

        identifier = validation.identifier
        duplicate = find_duplicate(self.db, identifier)
        if duplicate:
            log.info("submission_duplicate", user_id=user_id, model=identifier, existing=duplicate.existing_submission_id)
            return IntakeOutcome(kind="duplicate", error=duplicate.reason, duplicate=duplicate)

        submission = crud.create_submission(
            self.db,
            sub_id=generate_submission_id(),
            user_id=user_id,
            created_ip=ip_hash,
            model_type=request.source,
            model_identifier=identifier,
            params=params,
            max_runtime_sec=self.settings.max_runtime_sec,
        )
        log_audit_event(
            self.db,
            "submission_created",
            submission_id=submission.id,
            user_id=user_id,
            ip_hash=ip_hash,
            details={"modelType": request.source, "modelIdentifier": identifier},
        )
        log.info("submission_created", id=submission.id, user_id=user_id, model=identifier)
        return IntakeOutcome(kind="created", submission=submission)
