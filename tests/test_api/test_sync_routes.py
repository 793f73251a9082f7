"""Tests for job, outbox and metric settings endpoints."""

from datetime import timedelta
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from migraineme.models import NutritionOutbox
from migraineme.workers.base import WorkResult
from migraineme.workers.phone_behavior import PHONE_BEHAVIOR_JOB


class TestJobs:
    def test_list_jobs_empty(self, client: TestClient):
        response = client.get("/api/sync/jobs")
        assert response.status_code == 200
        assert response.json() == {"jobs": []}

    def test_list_enrolled_job(self, client: TestClient):
        scheduler = client.app.state.scheduler
        scheduler.enqueue_periodic(PHONE_BEHAVIOR_JOB, PHONE_BEHAVIOR_JOB, timedelta(hours=1))

        jobs = client.get("/api/sync/jobs").json()["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["name"] == PHONE_BEHAVIOR_JOB
        assert jobs[0]["state"] == "ENQUEUED"
        assert jobs[0]["interval_seconds"] == 3600

    def test_run_unknown_job_is_404(self, client: TestClient):
        response = client.post("/api/sync/jobs/nope/run")
        assert response.status_code == 404

    def test_run_job_now(self, client: TestClient, mocker):
        scheduler = client.app.state.scheduler
        scheduler.enqueue_periodic(PHONE_BEHAVIOR_JOB, PHONE_BEHAVIOR_JOB, timedelta(hours=1))
        worker = scheduler.workers[PHONE_BEHAVIOR_JOB]
        mocker.patch.object(worker, "run", AsyncMock(return_value=WorkResult.SUCCESS))

        response = client.post(f"/api/sync/jobs/{PHONE_BEHAVIOR_JOB}/run")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "finished"
        assert data["result"] == "SUCCESS"
        assert data["next"]["state"] == "ENQUEUED"
        assert data["next"]["last_result"] == "SUCCESS"

    def test_run_cancelled_job_is_conflict(self, client: TestClient):
        scheduler = client.app.state.scheduler
        scheduler.enqueue_periodic(PHONE_BEHAVIOR_JOB, PHONE_BEHAVIOR_JOB, timedelta(hours=1))
        scheduler.cancel(PHONE_BEHAVIOR_JOB)

        response = client.post(f"/api/sync/jobs/{PHONE_BEHAVIOR_JOB}/run")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "JOB_STATE_CONFLICT"
        assert not scheduler.is_enrolled(PHONE_BEHAVIOR_JOB)

    def test_cancel_job(self, client: TestClient):
        scheduler = client.app.state.scheduler
        scheduler.enqueue_periodic(PHONE_BEHAVIOR_JOB, PHONE_BEHAVIOR_JOB, timedelta(hours=1))

        response = client.delete(f"/api/sync/jobs/{PHONE_BEHAVIOR_JOB}")
        assert response.status_code == 200
        assert response.json()["state"] == "CANCELLED"
        assert not scheduler.is_enrolled(PHONE_BEHAVIOR_JOB)


class TestNutritionOutbox:
    def test_enqueue_changes(self, client: TestClient, test_db: Session):
        response = client.post(
            "/api/sync/nutrition/outbox",
            json={
                "items": [
                    {"health_connect_id": "hc-1", "operation": "UPSERT", "created_at_ms": 1000},
                    {"health_connect_id": "hc-2", "operation": "DELETE"},
                ]
            },
        )
        assert response.status_code == 200
        assert response.json()["pending"] == 2

        row = test_db.get(NutritionOutbox, "hc-1")
        assert row.operation == "UPSERT"
        assert row.created_at_epoch_ms == 1000

    def test_latest_change_replaces_pending_one(self, client: TestClient, test_db: Session):
        client.post(
            "/api/sync/nutrition/outbox",
            json={"items": [{"health_connect_id": "hc-1", "operation": "UPSERT"}]},
        )
        response = client.post(
            "/api/sync/nutrition/outbox",
            json={"items": [{"health_connect_id": "hc-1", "operation": "DELETE"}]},
        )
        assert response.json()["pending"] == 1
        test_db.expire_all()
        assert test_db.get(NutritionOutbox, "hc-1").operation == "DELETE"

    def test_unknown_operation_rejected(self, client: TestClient):
        response = client.post(
            "/api/sync/nutrition/outbox",
            json={"items": [{"health_connect_id": "hc-1", "operation": "MERGE"}]},
        )
        assert response.status_code == 422

    def test_outbox_status(self, client: TestClient):
        data = client.get("/api/sync/nutrition/outbox").json()
        assert data == {"pending": 0, "last_push_run_at": None, "last_hourly_run_at": None}


class TestMetricSettings:
    def test_lists_remote_settings(self, client: TestClient, auth_headers: dict, mock_supabase):
        mock_supabase.select.return_value = [
            {"metric": "screen_time_daily", "enabled": True, "preferred_source": "android"},
            {"metric": "ambient_noise_samples", "enabled": False},
        ]

        response = client.get("/api/sync/metric-settings", headers=auth_headers)
        assert response.status_code == 200
        settings = response.json()["settings"]
        assert [s["metric"] for s in settings] == ["screen_time_daily", "ambient_noise_samples"]
        assert settings[0]["enabled"] is True
        assert settings[1]["enabled"] is False
        assert response.json()["by_key"] == {
            "screen_time_daily_android": True,
            "ambient_noise_samples_null": False,
        }

    def test_requires_auth(self, client: TestClient):
        response = client.get("/api/sync/metric-settings")
        assert response.status_code == 401
