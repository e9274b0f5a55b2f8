import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text

from .db import Base


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    QUEUED = "QUEUED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.QUEUED,
    SubmissionStatus.STARTING,
    SubmissionStatus.RUNNING,
)
FINISHED_STATUSES = (
    SubmissionStatus.SUCCEEDED,
    SubmissionStatus.FAILED,
    SubmissionStatus.TIMEOUT,
    SubmissionStatus.CANCELLED,
)
# A new submission for the same model is allowed once the old one ended in one of these.
RESUBMITTABLE_STATUSES = (SubmissionStatus.FAILED, SubmissionStatus.CANCELLED)


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    auth_subject = Column(String(255), nullable=True, unique=True)
    role = Column(String(20), nullable=False, default="user")
    is_banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(40), primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    created_ip = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=SubmissionStatus.SUBMITTED.value, index=True)
    model_type = Column(String(20), nullable=False)
    model_identifier = Column(String(512), nullable=False, index=True)
    params = Column(JSON, nullable=False)
    priority_score = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=0)
    max_runtime_sec = Column(Integer, nullable=False, default=10800)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    error_msg = Column(Text, nullable=True)
    run_key = Column(String(128), nullable=True)


class EloRating(Base):
    """Published leaderboard rows. Written by the evaluation pipeline."""

    __tablename__ = "elo_ratings"

    model_name = Column(String(512), primary_key=True)
    elo = Column(Float, nullable=True)
    elo_norm = Column(Float, nullable=True)
    ci_low = Column(Float, nullable=True)
    ci_high = Column(Float, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow)


class Run(Base):
    __tablename__ = "runs"

    run_key = Column(String(128), primary_key=True)
    test_model = Column(String(512), nullable=True)
    status = Column(String(20), nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    run_config = Column(JSON, nullable=True)
    results = Column(JSON, nullable=True)
    generation_progress = Column(JSON, nullable=True)
    judging_progress = Column(JSON, nullable=True)


# Evaluator-side status strings for finished runs. Older rows use "succeeded".
RUN_COMPLETED_STATUSES = ("completed", "succeeded")


class Task(Base):
    """One generated writing sample within a run."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_key = Column(String(128), nullable=False, index=True)
    prompt_id = Column(String(128), nullable=True)
    iteration_index = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=True)
    model_response = Column(Text, nullable=True)
    model_responses = Column(JSON, nullable=True)
    aggregated_scores = Column(JSON, nullable=True)


class JudgeResult(Base):
    __tablename__ = "judge_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    judge_model_name = Column(String(255), nullable=True)
    judge_order_index = Column(Integer, nullable=False, default=0)
    judge_scores = Column(JSON, nullable=True)
    raw_judge_text = Column(Text, nullable=True)


class EloComparison(Base):
    """A pairwise judgement between two models on one prompt item."""

    __tablename__ = "elo_comparisons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_key = Column(String(128), nullable=True, index=True)
    item_id = Column(String(128), nullable=True)
    model_a = Column(String(512), nullable=False, index=True)
    model_b = Column(String(512), nullable=False, index=True)
    fraction_for_a = Column(Float, nullable=True)
    aggregated_plus_for_a = Column(Float, nullable=True)
    aggregated_plus_for_b = Column(Float, nullable=True)
    aggregated_judge_responses = Column(JSON, nullable=True)


class RunLog(Base):
    __tablename__ = "run_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_key = Column(String(128), nullable=False, index=True)
    ts = Column(DateTime, default=datetime.utcnow)
    stream = Column(String(20), nullable=False, default="stdout")
    data = Column(Text, nullable=False, default="")


class EventLog(Base):
    __tablename__ = "event_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(64), nullable=False, index=True)
    submission_id = Column(String(40), nullable=True)
    user_id = Column(String(64), nullable=True)
    ip = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


Index("idx_submissions_user_created", Submission.user_id, Submission.created_at)
Index("idx_submissions_ip_created", Submission.created_ip, Submission.created_at)
