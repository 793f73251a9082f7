"""City resolution and daily city weather."""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from migraineme.config import get_settings
from migraineme.core.exceptions import CityResolutionError, SupabaseError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import SupabaseClient

settings = get_settings()
logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
NEARBY_DEGREES = 2.0
MIN_NEARBY_CITIES = 5
CITY_FETCH_LIMIT = 5000
CITY_SELECT = "id,label:name,lat,lon,timezone"
DAILY_SELECT = "day,temp_c_mean,pressure_hpa_mean,humidity_pct_mean"


@dataclass(frozen=True)
class City:
    id: int
    label: str
    lat: float
    lon: float
    timezone: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "City":
        return cls(
            id=int(row["id"]),
            label=row.get("label") or row.get("name") or "",
            lat=float(row["lat"]),
            lon=float(row["lon"]),
            timezone=row.get("timezone"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "lat": self.lat,
            "lon": self.lon,
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class CityWeatherDay:
    day: date
    temp_mean_c: Optional[float] = None
    pressure_mean_hpa: Optional[float] = None
    humidity_mean_pct: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CityWeatherDay":
        return cls(
            day=date.fromisoformat(row["day"][:10]),
            temp_mean_c=row.get("temp_c_mean"),
            pressure_mean_hpa=row.get("pressure_hpa_mean"),
            humidity_mean_pct=row.get("humidity_pct_mean"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "temp_mean_c": self.temp_mean_c,
            "pressure_mean_hpa": self.pressure_mean_hpa,
            "humidity_mean_pct": self.humidity_mean_pct,
        }


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def pick_nearest(lat: float, lon: float, cities: Iterable[City]) -> City:
    """Closest city; on equal distance the earlier candidate wins."""
    best: Optional[City] = None
    best_distance = math.inf
    for city in cities:
        distance = haversine_km(lat, lon, city.lat, city.lon)
        if distance < best_distance:
            best, best_distance = city, distance
    if best is None:
        raise CityResolutionError("No cities available")
    return best


def merge_unique(first: Iterable[City], second: Iterable[City]) -> list[City]:
    """Concatenate keeping the first occurrence of each city id."""
    seen: set[int] = set()
    merged = []
    for city in (*first, *second):
        if city.id not in seen:
            seen.add(city.id)
            merged.append(city)
    return merged


class CityWeatherService:
    """Resolves the user's city and reads its daily weather aggregates.

    The ``resolve_user_city_today`` RPC is preferred whenever there is a
    session. Without one (or when the RPC fails) the nearest city is picked
    client-side from a bounding-box query around the reference point.
    """

    def __init__(self, client: Optional[SupabaseClient] = None, tz: Optional[ZoneInfo] = None):
        self.client = client or SupabaseClient()
        self.tz = tz or settings.tz

    async def resolve_city_today(self, access_token: str) -> City:
        try:
            payload = await self.client.rpc("resolve_user_city_today", access_token, {})
        except SupabaseError as e:
            raise CityResolutionError(e.reason) from e
        if isinstance(payload, list):
            if not payload:
                raise CityResolutionError("RPC returned empty result")
            payload = payload[0]
        if not isinstance(payload, dict):
            raise CityResolutionError(f"Unexpected RPC response: {str(payload)[:140]}")
        return City.from_row(payload)

    async def fetch_all_cities(self) -> list[City]:
        rows = await self.client.select(
            "city", None, [("select", CITY_SELECT), ("limit", CITY_FETCH_LIMIT)]
        )
        return [City.from_row(r) for r in rows]

    async def fetch_cities_near(self, lat: float, lon: float, degrees: float = NEARBY_DEGREES) -> list[City]:
        rows = await self.client.select(
            "city",
            None,
            [
                ("select", CITY_SELECT),
                ("lat", f"gte.{lat - degrees}"),
                ("lat", f"lte.{lat + degrees}"),
                ("lon", f"gte.{lon - degrees}"),
                ("lon", f"lte.{lon + degrees}"),
                ("limit", CITY_FETCH_LIMIT),
            ],
        )
        return [City.from_row(r) for r in rows]

    async def nearest_city(self, lat: Optional[float] = None, lon: Optional[float] = None) -> City:
        """Client-side nearest city around ``lat``/``lon`` (London when unknown)."""
        if lat is None or lon is None:
            lat, lon = settings.default_latitude, settings.default_longitude

        try:
            nearby = await self.fetch_cities_near(lat, lon)
            if not nearby:
                candidates = await self.fetch_all_cities()
            elif len(nearby) < MIN_NEARBY_CITIES:
                # Few hits near a box edge; widen to the full table
                candidates = merge_unique(nearby, await self.fetch_all_cities())
            else:
                candidates = nearby
        except SupabaseError as e:
            raise CityResolutionError(e.reason) from e

        city = pick_nearest(lat, lon, candidates)
        logger.debug("nearest_city_picked", city_id=city.id, candidates=len(candidates))
        return city

    async def resolve_city(
        self,
        access_token: Optional[str],
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ) -> City:
        if access_token:
            try:
                return await self.resolve_city_today(access_token)
            except CityResolutionError as e:
                logger.warning("city_rpc_failed_using_nearest", error=e.reason)
        return await self.nearest_city(lat, lon)

    async def _fetch_daily(self, params: list[tuple[str, Any]]) -> list[CityWeatherDay]:
        try:
            rows = await self.client.select("city_weather_daily", None, params)
        except SupabaseError as e:
            raise CityResolutionError(e.reason) from e
        return [CityWeatherDay.from_row(r) for r in rows]

    async def fetch_daily(self, city_id: int, today: Optional[date] = None) -> list[CityWeatherDay]:
        """Days ``today-2 .. today+6``; else the 9 most recent days, oldest first."""
        today = today or datetime.now(self.tz).date()
        base = [("select", DAILY_SELECT), ("city_id", f"eq.{city_id}")]
        window = await self._fetch_daily(
            base
            + [
                ("order", "day.asc"),
                ("day", f"gte.{(today - timedelta(days=2)).isoformat()}"),
                ("day", f"lte.{(today + timedelta(days=6)).isoformat()}"),
            ]
        )
        if window:
            return window
        recent = await self._fetch_daily(base + [("order", "day.desc"), ("limit", 9)])
        return list(reversed(recent))

    async def fetch_daily_range(self, city_id: int, start: date, end: date) -> list[CityWeatherDay]:
        return await self._fetch_daily(
            [
                ("select", DAILY_SELECT),
                ("city_id", f"eq.{city_id}"),
                ("order", "day.asc"),
                ("day", f"gte.{start.isoformat()}"),
                ("day", f"lte.{end.isoformat()}"),
            ]
        )
