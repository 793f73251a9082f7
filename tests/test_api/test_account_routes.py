"""Tests for session, preference, profile and menstruation endpoints."""

from fastapi.testclient import TestClient

from migraineme.core.exceptions import SupabaseError


class TestSession:
    def test_signed_out_by_default(self, client: TestClient):
        response = client.get("/api/session")
        assert response.status_code == 200
        assert response.json() == {"signed_in": False, "user_id": None, "auth_provider": None}

    def test_save_then_clear(self, client: TestClient, auth_token: str):
        response = client.put(
            "/api/session",
            json={"access_token": auth_token, "refresh_token": "r-1", "expires_in": 3600, "auth_provider": "google"},
        )
        assert response.status_code == 200
        assert response.json() == {"signed_in": True, "user_id": "user-1", "auth_provider": "google"}

        response = client.delete("/api/session")
        assert response.json()["signed_in"] is False

    def test_empty_token_rejected(self, client: TestClient):
        response = client.put("/api/session", json={"access_token": ""})
        assert response.status_code == 422


class TestPreferences:
    def test_set_get_and_pop(self, client: TestClient):
        response = client.put("/api/preferences", json={"preferences": {"oauth_state": "abc", "theme": "dark"}})
        assert response.json() == {"status": "updated", "count": 2}

        assert client.get("/api/preferences/oauth_state").json() == {"key": "oauth_state", "value": "abc"}
        assert client.get("/api/preferences").json() == {"oauth_state": "abc", "theme": "dark"}

        assert client.delete("/api/preferences/oauth_state").json() == {"key": "oauth_state", "value": "abc"}
        assert client.get("/api/preferences/oauth_state").status_code == 404


class TestProfile:
    def test_get_missing_profile(self, client: TestClient, auth_headers: dict):
        response = client.get("/api/account/profile", headers=auth_headers)
        assert response.status_code == 404

    def test_update_profile(self, client: TestClient, auth_headers: dict, mock_supabase):
        mock_supabase.update.return_value = [
            {"user_id": "user-1", "display_name": "Sam", "avatar_url": None, "migraine_type": "cluster"}
        ]

        response = client.put(
            "/api/account/profile",
            json={"display_name": " Sam ", "migraine_type": "cluster"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["migraine_type"] == "cluster"
        args, _ = mock_supabase.update.call_args
        assert args[3] == {"display_name": "Sam", "migraine_type": "cluster"}

    def test_backend_error_uses_error_envelope(self, client: TestClient, auth_headers: dict, mock_supabase):
        mock_supabase.select.side_effect = SupabaseError("JWT expired", http_status=401)

        response = client.get("/api/account/profile", headers=auth_headers)
        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "SUPABASE_ERROR"
        assert error["details"]["http_status"] == 401


class TestMenstruation:
    def test_defaults_when_nothing_saved(self, client: TestClient, auth_headers: dict):
        response = client.get("/api/account/menstruation", headers=auth_headers)
        assert response.json() == {
            "last_menstruation_date": None,
            "avg_cycle_length": 28,
            "auto_update_average": True,
        }

    def test_save_settings(self, client: TestClient, auth_headers: dict, mock_supabase):
        response = client.put(
            "/api/account/menstruation",
            json={"last_menstruation_date": "2026-03-01", "avg_cycle_length": 30},
            headers=auth_headers,
        )
        assert response.status_code == 200

        args, kwargs = mock_supabase.upsert.call_args
        assert args[0] == "menstruation_settings"
        assert args[2]["user_id"] == "user-1"
        assert args[2]["last_menstruation_date"] == "2026-03-01"
        assert kwargs["on_conflict"] == "user_id"

    def test_history_reads_end_date_from_notes(self, client: TestClient, auth_headers: dict, mock_supabase):
        mock_supabase.select.return_value = [
            {"start_at": "2026-02-01T08:00:00Z", "notes": "end_date=2026-02-05", "source": "manual"},
            {"start_at": "2026-03-01T08:00:00Z", "notes": None, "source": "health_connect"},
        ]

        periods = client.get("/api/account/menstruation/history", headers=auth_headers).json()["periods"]
        assert periods == [
            {"start_date": "2026-02-01", "end_date": "2026-02-05"},
            {"start_date": "2026-03-01", "end_date": None},
        ]
