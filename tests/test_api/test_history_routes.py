"""Tests for the data history API endpoints."""

import pytest
from fastapi.testclient import TestClient

from migraineme.core.exceptions import SupabaseError


@pytest.fixture
def sleep_rows(mock_supabase):
    rows = {
        "sleep_duration_daily": [
            {"date": "2026-03-04", "source": "manual", "value_hours": 7.5},
            {"date": "2026-03-04", "source": "whoop", "value_hours": 6.25},
        ],
        "sleep_score_daily": [{"date": "2026-03-04", "source": "manual", "value_pct": 80}],
    }

    async def select(table, token, params):
        return rows.get(table, [])

    mock_supabase.select.side_effect = select
    return rows


class TestGetDay:
    def test_device_value_wins_over_manual(self, client: TestClient, auth_headers: dict, sleep_rows):
        response = client.get("/api/history/sleep/2026-03-04", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()

        assert data["best"]["sleep_dur"] == {"label": "Duration", "value": "6h 15m", "source": "whoop"}
        assert data["best"]["sleep_score"]["value"] == "80%"
        assert data["best"]["sleep_score"]["source"] == "manual"
        assert data["best"]["bedtime"] == {"label": "Fell Asleep", "value": "—", "source": None}

    def test_sources_listed_manual_first(self, client: TestClient, auth_headers: dict, sleep_rows):
        data = client.get("/api/history/sleep/2026-03-04", headers=auth_headers).json()
        assert list(data["sources"]) == ["manual", "whoop"]
        manual = data["sources"]["manual"]
        assert {e["metric"] for e in manual} == {"sleep_dur", "sleep_score"}
        assert all(e["editable"] for e in manual)
        assert data["sources"]["whoop"][0]["source_label"] == "WHOOP"
        assert not data["sources"]["whoop"][0]["editable"]

    def test_failed_table_does_not_blank_the_day(self, client: TestClient, auth_headers: dict, mock_supabase):
        async def select(table, token, params):
            if table == "sleep_score_daily":
                raise SupabaseError("relation does not exist", http_status=404)
            if table == "sleep_duration_daily":
                return [{"date": "2026-03-04", "source": "health_connect", "value_hours": 8}]
            return []

        mock_supabase.select.side_effect = select

        data = client.get("/api/history/sleep/2026-03-04", headers=auth_headers).json()
        assert data["best"]["sleep_dur"]["value"] == "8h 0m"
        assert data["best"]["sleep_score"]["value"] == "—"

    def test_unknown_domain_is_404(self, client: TestClient, auth_headers: dict):
        response = client.get("/api/history/mood/2026-03-04", headers=auth_headers)
        assert response.status_code == 404

    def test_bad_date_is_422(self, client: TestClient, auth_headers: dict):
        response = client.get("/api/history/sleep/yesterday", headers=auth_headers)
        assert response.status_code == 422


class TestManualEdits:
    def test_put_upserts_manual_row(self, client: TestClient, auth_headers: dict, mock_supabase):
        response = client.put(
            "/api/history/physical/2026-03-04",
            json={"table": "steps_daily", "values": {"value_count": 9000}},
            headers=auth_headers,
        )
        assert response.status_code == 200

        args, kwargs = mock_supabase.upsert.call_args
        assert args[0] == "steps_daily"
        assert args[2] == [
            {"user_id": "user-1", "date": "2026-03-04", "source": "manual", "value_count": 9000}
        ]
        assert kwargs["on_conflict"] == "user_id,source,date"

    def test_put_rejects_columns_outside_the_table(self, client: TestClient, auth_headers: dict, mock_supabase):
        response = client.put(
            "/api/history/physical/2026-03-04",
            json={"table": "steps_daily", "values": {"value_kg": 70}},
            headers=auth_headers,
        )
        assert response.status_code == 422
        mock_supabase.upsert.assert_not_called()

    def test_put_rejects_table_outside_the_domain(self, client: TestClient, auth_headers: dict):
        response = client.put(
            "/api/history/sleep/2026-03-04",
            json={"table": "steps_daily", "values": {"value_count": 1}},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_delete_only_targets_manual_source(self, client: TestClient, auth_headers: dict, mock_supabase):
        response = client.delete(
            "/api/history/sleep/2026-03-04?table=sleep_duration_daily", headers=auth_headers
        )
        assert response.status_code == 200

        args, _ = mock_supabase.delete.call_args
        assert args[0] == "sleep_duration_daily"
        assert ("source", "eq.manual") in args[2]
        assert ("user_id", "eq.user-1") in args[2]
