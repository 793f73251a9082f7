"""Writers for device-collected personal data (screen time, location, noise, phone)."""

from datetime import date, datetime
from typing import Any, Optional

from migraineme.core.logging import get_logger
from migraineme.services.supabase import PREFER_MERGE, PREFER_MINIMAL, SupabaseClient, first_row

logger = get_logger(__name__)

SCREEN_TIME_SOURCE = "android"
DEVICE_SOURCE = "device"

# metric_settings key -> (samples table, value column)
PHONE_SAMPLE_TABLES: dict[str, tuple[str, str]] = {
    "phone_brightness_daily": ("phone_brightness_samples", "value"),
    "phone_volume_daily": ("phone_volume_samples", "value_pct"),
    "phone_dark_mode_daily": ("phone_dark_mode_samples", "is_dark"),
    "phone_unlock_daily": ("phone_unlock_samples", "value_count"),
}


def _drop_none(row: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in row.items() if v is not None}


class PersonalDataService:
    """PostgREST writes (and latest-date reads) for the background workers."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def _latest_date(self, table: str, access_token: str, source: str) -> Optional[date]:
        rows = await self.client.select(
            table,
            access_token,
            [
                ("select", "date"),
                ("source", f"eq.{source}"),
                ("order", "date.desc"),
                ("limit", 1),
            ],
        )
        row = first_row(rows)
        if not row or not row.get("date"):
            return None
        return date.fromisoformat(row["date"][:10])

    # Screen time

    async def upsert_screen_time_live(
        self,
        access_token: str,
        day: date,
        total_hours: float,
        app_count: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> None:
        """Overwrite today's running total (one row per user and date)."""
        row = {
            "date": day.isoformat(),
            "value_hours": total_hours,
            "app_count": app_count,
            "source": SCREEN_TIME_SOURCE,
            "timezone": timezone,
        }
        await self.client.upsert("screen_time_live", access_token, [row], on_conflict="user_id,date")

    async def upsert_screen_time_daily(
        self,
        access_token: str,
        day: date,
        total_hours: float,
        quality_flags: Optional[dict[str, str]] = None,
    ) -> None:
        row = {
            "date": day.isoformat(),
            "total_hours": total_hours,
            "source": SCREEN_TIME_SOURCE,
            "quality_flags": quality_flags,
        }
        await self.client.upsert("screen_time_daily", access_token, [row], on_conflict="user_id,date,source")

    async def upsert_screen_time_late_night(
        self,
        access_token: str,
        day: date,
        total_hours: float,
        app_count: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> None:
        """``day`` is the evening date: 22:00 on ``day`` through 06:00 the next morning."""
        row = {
            "date": day.isoformat(),
            "value_hours": total_hours,
            "app_count": app_count,
            "source": SCREEN_TIME_SOURCE,
            "timezone": timezone,
        }
        await self.client.upsert("screen_time_late_night", access_token, [row], on_conflict="user_id,date,source")

    async def latest_screen_time_date(self, access_token: str) -> Optional[date]:
        return await self._latest_date("screen_time_daily", access_token, SCREEN_TIME_SOURCE)

    async def latest_screen_time_late_night_date(self, access_token: str) -> Optional[date]:
        return await self._latest_date("screen_time_late_night", access_token, SCREEN_TIME_SOURCE)

    # Location

    async def insert_location_hourly(
        self,
        access_token: str,
        timestamp: datetime,
        latitude: float,
        longitude: float,
        altitude_m: Optional[float] = None,
        timezone: Optional[str] = None,
    ) -> None:
        row = _drop_none(
            {
                "timestamp": timestamp.isoformat(),
                "latitude": latitude,
                "longitude": longitude,
                "altitude_m": altitude_m,
                "source": DEVICE_SOURCE,
                "timezone": timezone,
            }
        )
        await self.client.upsert("user_location_hourly", access_token, [row], on_conflict="user_id,timestamp")

    async def hourly_altitudes_for_date(self, access_token: str, day: date) -> list[float]:
        rows = await self.client.select(
            "user_location_hourly",
            access_token,
            [
                ("select", "altitude_m"),
                ("timestamp", f"gte.{day.isoformat()}T00:00:00"),
                ("timestamp", f"lte.{day.isoformat()}T23:59:59"),
                ("altitude_m", "not.is.null"),
            ],
        )
        return [float(r["altitude_m"]) for r in rows if r.get("altitude_m") is not None]

    async def upsert_location_daily(
        self,
        access_token: str,
        day: date,
        latitude: float,
        longitude: float,
        timezone: Optional[str] = None,
        altitude_m: Optional[float] = None,
        altitude_max_m: Optional[float] = None,
        altitude_min_m: Optional[float] = None,
        altitude_change_m: Optional[float] = None,
        source: str = DEVICE_SOURCE,
    ) -> None:
        row = _drop_none(
            {
                "date": day.isoformat(),
                "latitude": latitude,
                "longitude": longitude,
                "source": source,
                "timezone": timezone,
                "altitude_m": altitude_m,
                "altitude_max_m": altitude_max_m,
                "altitude_min_m": altitude_min_m,
                "altitude_change_m": altitude_change_m,
            }
        )
        await self.client.upsert(
            "user_location_daily", access_token, [row], on_conflict="user_id,source,date", prefer=PREFER_MERGE
        )

    # Ambient noise

    async def insert_ambient_noise_sample(
        self,
        access_token: str,
        user_id: str,
        start_ts: datetime,
        duration_s: int,
        l_mean: float,
        l_p90: Optional[float] = None,
        l_max: Optional[float] = None,
        quality_flags: Optional[dict[str, str]] = None,
    ) -> None:
        row = _drop_none(
            {
                "user_id": user_id,
                "start_ts": start_ts.isoformat(),
                "duration_s": duration_s,
                "l_mean": l_mean,
                "l_p90": l_p90,
                "l_max": l_max,
            }
        )
        row["quality_flags"] = quality_flags or {}
        await self.client.insert("ambient_noise_samples", access_token, row, prefer=PREFER_MINIMAL)

    # Phone behaviour

    async def insert_phone_sample(
        self,
        metric: str,
        access_token: str,
        user_id: str,
        sampled_at: datetime,
        value: Any,
    ) -> None:
        table, column = PHONE_SAMPLE_TABLES[metric]
        row = {"user_id": user_id, "sampled_at": sampled_at.isoformat(), column: value}
        await self.client.insert(table, access_token, row, prefer=PREFER_MINIMAL)
