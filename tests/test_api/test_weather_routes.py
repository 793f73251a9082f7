"""Tests for the city weather endpoints."""

from fastapi.testclient import TestClient

CITIES = [
    {"id": 1, "label": "London", "lat": 51.5074, "lon": -0.1278},
    {"id": 2, "label": "Paris", "lat": 48.8566, "lon": 2.3522},
]
DAYS = [
    {"day": "2026-03-01", "temp_c_mean": 6.5, "pressure_hpa_mean": 1012.0, "humidity_pct_mean": 81.0},
    {"day": "2026-03-02", "temp_c_mean": 7.0, "pressure_hpa_mean": 1009.0, "humidity_pct_mean": 77.0},
]


class TestCity:
    def test_nearest_city_without_session(self, client: TestClient, mock_supabase):
        mock_supabase.select.return_value = CITIES

        response = client.get("/api/weather/city", params={"lat": 48.9, "lon": 2.3})

        assert response.status_code == 200
        assert response.json()["label"] == "Paris"
        mock_supabase.rpc.assert_not_called()

    def test_latitude_out_of_range(self, client: TestClient):
        response = client.get("/api/weather/city", params={"lat": 123, "lon": 0})
        assert response.status_code == 422


class TestDailyWeather:
    def test_known_city_range(self, client: TestClient, mock_supabase):
        mock_supabase.select.return_value = DAYS

        response = client.get(
            "/api/weather/daily", params={"city_id": 2, "start": "2026-03-01", "end": "2026-03-02"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["city"] == {"id": 2}
        assert [d["day"] for d in data["days"]] == ["2026-03-01", "2026-03-02"]
        params = mock_supabase.select.call_args.args[2]
        assert ("day", "gte.2026-03-01") in params
        assert ("day", "lte.2026-03-02") in params

    def test_range_needs_both_ends(self, client: TestClient):
        response = client.get("/api/weather/daily", params={"city_id": 2, "start": "2026-03-01"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_inverted_range(self, client: TestClient):
        response = client.get(
            "/api/weather/daily", params={"city_id": 2, "start": "2026-03-05", "end": "2026-03-01"}
        )
        assert response.status_code == 422
