import os
from datetime import datetime
from itertools import count

import pytest

os.environ["DB_URL"] = "sqlite:///./test_leaderboard.sqlite"
os.environ["AUTH_SECRET"] = "test-secret"
os.environ["API_KEY"] = ""
os.environ["TURNSTILE_SECRET_KEY"] = ""

from leaderboard.database import models  # noqa: E402
from leaderboard.database.db import Base, SessionLocal, engine  # noqa: E402

_ids = count(1)


@pytest.fixture(autouse=True)
def setup_db():
    """Fresh tables for every test."""
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db(setup_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_submission(db):
    """Insert a submission row directly, as the pipeline or an earlier request would have."""

    def _make(**overrides):
        n = next(_ids)
        values = {
            "id": f"sub_test{n}",
            "user_id": "user-1",
            "created_ip": "iphash-1",
            "status": models.SubmissionStatus.SUBMITTED.value,
            "model_type": "huggingface",
            "model_identifier": f"org/model-{n}",
            "priority_score": 0,
            "created_at": datetime.utcnow(),
        }
        values.update(overrides)
        values.setdefault("params", {"modelType": values["model_type"], "modelId": values["model_identifier"]})
        row = models.Submission(**values)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make
