from fastapi.testclient import TestClient

from leaderboard.backend.main import app
from leaderboard.database import models

client = TestClient(app)

ADMIN = {"X-User-Id": "admin-1"}
MODEL = "org/model-a"


def seed(db):
    db.add_all(
        [
            models.User(id="admin-1", role="admin"),
            models.User(id="user-1", role="user"),
            models.EloRating(model_name=MODEL, elo=1500.0),
            models.EloRating(model_name="org/other", elo=1400.0),
            models.Run(run_key="r-done", test_model=MODEL, status="completed"),
            models.Run(run_key="r-live", test_model=MODEL, status="running"),
            models.RunLog(run_key="r-done", data="done"),
            models.RunLog(run_key="r-live", data="still going"),
            models.EloComparison(run_key="r-done", item_id="i1", model_a="org/x", model_b="org/y"),
            models.EloComparison(item_id="i2", model_a="org/other", model_b=MODEL),
            models.EloComparison(item_id="i3", model_a="org/other", model_b="org/z"),
        ]
    )
    db.commit()
    task = models.Task(run_key="r-done", status="completed")
    db.add(task)
    db.commit()
    db.add(models.JudgeResult(task_id=task.id, judge_scores={"Coherent": 12}))
    db.commit()


def test_requires_admin_role(db):
    seed(db)
    url = f"/api/admin/leaderboard?model={MODEL}"
    assert client.delete(url).status_code == 401
    assert client.delete(url, headers={"X-User-Id": "ghost"}).status_code == 404
    assert client.delete(url, headers={"X-User-Id": "user-1"}).status_code == 403
    assert db.query(models.EloRating).count() == 2


def test_model_param_and_existence(db):
    seed(db)
    resp = client.delete("/api/admin/leaderboard", headers=ADMIN)
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "Model name is required"
    assert client.delete("/api/admin/leaderboard", params={"model": "org/none"}, headers=ADMIN).status_code == 404


def test_delete_removes_entry_and_finished_runs(db):
    seed(db)
    resp = client.delete("/api/admin/leaderboard", params={"model": MODEL}, headers=ADMIN)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"success": True, "message": f"Deleted {MODEL} and 1 associated run(s)"}

    db.expire_all()
    assert [r.model_name for r in db.query(models.EloRating).all()] == ["org/other"]
    assert [r.run_key for r in db.query(models.Run).all()] == ["r-live"]
    assert db.query(models.Task).count() == 0
    assert db.query(models.JudgeResult).count() == 0
    assert [log.run_key for log in db.query(models.RunLog).all()] == ["r-live"]
    assert [c.item_id for c in db.query(models.EloComparison).all()] == ["i3"]

    event = db.query(models.EventLog).filter_by(event_type="leaderboard_entry_deleted").one()
    assert event.user_id == "admin-1"
    assert event.details == {"model_name": MODEL, "runs_deleted": 1}
