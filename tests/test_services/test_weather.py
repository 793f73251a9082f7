"""Tests for city resolution and daily city weather."""

from datetime import date

import pytest

from migraineme.core.exceptions import CityResolutionError, SupabaseError
from migraineme.services.weather import City, CityWeatherService, haversine_km, merge_unique, pick_nearest

LONDON = City(1, "London", 51.5074, -0.1278)
READING = City(2, "Reading", 51.4543, -0.9781)
PARIS = City(3, "Paris", 48.8566, 2.3522)


def city_row(city: City) -> dict:
    return {"id": city.id, "label": city.label, "lat": city.lat, "lon": city.lon, "timezone": "Europe/London"}


class TestPickNearest:
    def test_haversine_london_paris(self):
        assert 340 < haversine_km(LONDON.lat, LONDON.lon, PARIS.lat, PARIS.lon) < 345

    def test_picks_closest(self):
        assert pick_nearest(51.45, -0.95, [LONDON, READING, PARIS]) == READING

    def test_deterministic_regardless_of_repeats(self):
        cities = [PARIS, LONDON, READING]
        picks = {pick_nearest(51.5, -0.1, cities) for _ in range(10)}
        assert picks == {LONDON}

    def test_tie_keeps_earlier_candidate(self):
        twin = City(9, "Twin", LONDON.lat, LONDON.lon)
        assert pick_nearest(LONDON.lat, LONDON.lon, [LONDON, twin]) == LONDON
        assert pick_nearest(LONDON.lat, LONDON.lon, [twin, LONDON]) == twin

    def test_no_cities(self):
        with pytest.raises(CityResolutionError):
            pick_nearest(0, 0, [])

    def test_merge_unique_keeps_first_occurrence(self):
        assert merge_unique([LONDON, READING], [READING, PARIS]) == [LONDON, READING, PARIS]


class TestResolveCity:
    async def test_rpc_used_with_session(self, mock_supabase):
        mock_supabase.rpc.return_value = [city_row(PARIS)]

        city = await CityWeatherService(mock_supabase).resolve_city("token", 51.5, -0.1)

        assert city.id == PARIS.id
        mock_supabase.select.assert_not_called()

    async def test_rpc_failure_falls_back_to_nearest(self, mock_supabase):
        mock_supabase.rpc.side_effect = SupabaseError("function not found", http_status=404)
        mock_supabase.select.return_value = [city_row(c) for c in (PARIS, LONDON, READING, PARIS, LONDON)]

        city = await CityWeatherService(mock_supabase).resolve_city("token", 51.5, -0.12)
        assert city.id == LONDON.id

    async def test_empty_rpc_result_falls_back(self, mock_supabase):
        mock_supabase.rpc.return_value = []
        mock_supabase.select.return_value = [city_row(READING)] * 5

        city = await CityWeatherService(mock_supabase).resolve_city("token", 51.5, -0.1)
        assert city.id == READING.id

    async def test_no_session_widens_when_few_nearby(self, mock_supabase):
        mock_supabase.select.side_effect = [[city_row(READING)], [city_row(LONDON), city_row(PARIS)]]

        city = await CityWeatherService(mock_supabase).resolve_city(None, 51.5, -0.12)

        assert city.id == LONDON.id
        assert mock_supabase.select.call_count == 2
        mock_supabase.rpc.assert_not_called()

    async def test_backend_failure_is_resolution_error(self, mock_supabase):
        mock_supabase.select.side_effect = SupabaseError("boom", http_status=500)
        with pytest.raises(CityResolutionError):
            await CityWeatherService(mock_supabase).nearest_city(51.5, -0.1)


class TestFetchDaily:
    async def test_window_around_today(self, mock_supabase):
        mock_supabase.select.return_value = [
            {"day": "2026-03-08", "temp_c_mean": 7.5, "pressure_hpa_mean": 1012.0, "humidity_pct_mean": 80.0}
        ]

        days = await CityWeatherService(mock_supabase).fetch_daily(1, today=date(2026, 3, 10))

        assert [d.day for d in days] == [date(2026, 3, 8)]
        params = mock_supabase.select.call_args.args[2]
        assert ("day", "gte.2026-03-08") in params
        assert ("day", "lte.2026-03-16") in params

    async def test_falls_back_to_most_recent_days_oldest_first(self, mock_supabase):
        mock_supabase.select.side_effect = [
            [],
            [{"day": "2026-01-05"}, {"day": "2026-01-04"}],
        ]

        days = await CityWeatherService(mock_supabase).fetch_daily(1, today=date(2026, 3, 10))
        assert [d.day for d in days] == [date(2026, 1, 4), date(2026, 1, 5)]
