"""Daily metric series (one value per calendar day) for the insights screens."""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from migraineme.config import get_settings
from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import SupabaseClient

settings = get_settings()
logger = get_logger(__name__)


@dataclass(frozen=True)
class DailyValue:
    date: date
    value: float

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "value": self.value}


@dataclass(frozen=True)
class MetricTable:
    """A daily table and the metric keys read from its columns."""

    table: str
    columns: dict[str, str]  # metric key -> column
    time_of_day: Optional[str] = None  # "bedtime" or "wake" for timestamp columns


# Table -> default metric key, for templates that only name a table
TABLE_TO_KEY: dict[str, str] = {
    # Sleep
    "sleep_duration_daily": "sleep_dur",
    "sleep_score_daily": "sleep_score",
    "sleep_efficiency_daily": "sleep_eff",
    "sleep_disturbances_daily": "sleep_dist",
    "sleep_stages_daily": "sleep_deep",
    "fell_asleep_time_daily": "bedtime",
    "woke_up_time_daily": "wake_time",
    # Body
    "recovery_score_daily": "recovery",
    "stress_index_daily": "stress",
    "time_in_high_hr_zones_daily": "high_hr",
    "steps_daily": "steps",
    "weight_daily": "weight",
    "body_fat_daily": "body_fat",
    "blood_pressure_daily": "bp_sys",
    "blood_glucose_daily": "glucose",
    "strain_daily": "strain",
    "hrv_daily": "hrv",
    "resting_hr_daily": "rhr",
    "spo2_daily": "spo2",
    "skin_temp_daily": "skin_temp",
    "respiratory_rate_daily": "resp_rate",
    # Environment
    "user_weather_daily": "pressure",
    "user_location_daily": "altitude",
    # Phone / mental
    "screen_time_daily": "screen_time",
    "screen_time_late_night": "late_screen",
    "ambient_noise_index_daily": "noise",
    "phone_brightness_daily": "brightness",
    "phone_volume_daily": "volume",
    "phone_unlock_daily": "unlocks",
    "phone_dark_mode_daily": "dark_mode",
    # Wellness
    "hydration_daily": "hydration",
    "mindfulness_daily": "mindfulness",
    # Diet
    "nutrition_daily": "calories",
}

# "table:column" -> metric key, for tables carrying several metrics
TABLE_COL_TO_KEY: dict[str, str] = {
    "user_weather_daily:temp_c_mean": "temp",
    "user_weather_daily:pressure_hpa_mean": "pressure",
    "user_weather_daily:humidity_pct_mean": "humidity",
    "user_weather_daily:wind_speed_mps_mean": "wind",
    "user_weather_daily:uv_index_max": "uv",
    "user_location_daily:altitude_max_m": "altitude",
    "user_location_daily:altitude_change_m": "alt_change",
    "sleep_stages_daily:value_sws_hm": "sleep_deep",
    "sleep_stages_daily:value_rem_hm": "sleep_rem",
    "sleep_stages_daily:value_light_hm": "sleep_light",
    "nutrition_daily:total_calories": "calories",
    "nutrition_daily:total_protein_g": "protein",
    "nutrition_daily:total_carbs_g": "carbs",
    "nutrition_daily:total_fat_g": "fat",
    "nutrition_daily:total_fiber_g": "fiber",
    "nutrition_daily:total_sugar_g": "sugar",
    "nutrition_daily:total_sodium_mg": "sodium",
    "nutrition_daily:total_caffeine_mg": "caffeine",
    "nutrition_daily:total_saturated_fat_g": "sat_fat",
    "nutrition_daily:total_unsaturated_fat_g": "unsat_fat",
    "nutrition_daily:total_trans_fat_g": "trans_fat",
    "nutrition_daily:total_cholesterol_mg": "cholesterol",
    "nutrition_daily:total_potassium_mg": "potassium",
    "nutrition_daily:total_calcium_mg": "calcium",
    "nutrition_daily:total_iron_mg": "iron",
    "nutrition_daily:total_magnesium_mg": "magnesium",
    "nutrition_daily:total_zinc_mg": "zinc",
    "nutrition_daily:total_selenium_mcg": "selenium",
}


def metric_key_for(table: str, column: Optional[str] = None) -> Optional[str]:
    """Resolve a template's table/column to a metric key."""
    if column:
        key = TABLE_COL_TO_KEY.get(f"{table}:{column}")
        if key:
            return key
    return TABLE_TO_KEY.get(table)


DAILY_TABLES: list[MetricTable] = [
    MetricTable(
        "user_weather_daily",
        {
            "pressure": "pressure_hpa_mean",
            "temp": "temp_c_mean",
            "humidity": "humidity_pct_mean",
            "wind": "wind_speed_mps_mean",
            "uv": "uv_index_max",
        },
    ),
    MetricTable("user_location_daily", {"altitude": "altitude_max_m", "alt_change": "altitude_change_m"}),
    MetricTable("recovery_score_daily", {"recovery": "value_pct"}),
    MetricTable("hrv_daily", {"hrv": "value_rmssd_ms"}),
    MetricTable("resting_hr_daily", {"rhr": "value_bpm"}),
    MetricTable("spo2_daily", {"spo2": "value_pct"}),
    MetricTable("skin_temp_daily", {"skin_temp": "value_celsius"}),
    MetricTable("respiratory_rate_daily", {"resp_rate": "value_bpm"}),
    MetricTable("stress_index_daily", {"stress": "value"}),
    MetricTable("time_in_high_hr_zones_daily", {"high_hr": "value_minutes"}),
    MetricTable("steps_daily", {"steps": "value_count"}),
    MetricTable("weight_daily", {"weight": "value_kg"}),
    MetricTable("body_fat_daily", {"body_fat": "value_pct"}),
    MetricTable("blood_pressure_daily", {"bp_sys": "value_systolic"}),
    MetricTable("blood_glucose_daily", {"glucose": "value_mgdl"}),
    MetricTable("strain_daily", {"strain": "value_strain"}),
    MetricTable("sleep_duration_daily", {"sleep_dur": "value_hours"}),
    MetricTable("sleep_score_daily", {"sleep_score": "value_pct"}),
    MetricTable("sleep_efficiency_daily", {"sleep_eff": "value_pct"}),
    MetricTable("sleep_disturbances_daily", {"sleep_dist": "value_count"}),
    MetricTable(
        "sleep_stages_daily",
        {"sleep_deep": "value_sws_hm", "sleep_rem": "value_rem_hm", "sleep_light": "value_light_hm"},
    ),
    MetricTable("fell_asleep_time_daily", {"bedtime": "value_at"}, time_of_day="bedtime"),
    MetricTable("woke_up_time_daily", {"wake_time": "value_at"}, time_of_day="wake"),
    MetricTable("screen_time_daily", {"screen_time": "value_minutes"}),
    MetricTable("screen_time_late_night", {"late_screen": "value_hours"}),
    MetricTable("ambient_noise_index_daily", {"noise": "day_mean_lmean"}),
    MetricTable("phone_brightness_daily", {"brightness": "value_mean"}),
    MetricTable("phone_volume_daily", {"volume": "value_mean_pct"}),
    MetricTable("phone_unlock_daily", {"unlocks": "value_count"}),
    MetricTable("phone_dark_mode_daily", {"dark_mode": "value_hours"}),
    MetricTable("hydration_daily", {"hydration": "value_ml"}),
    MetricTable("mindfulness_daily", {"mindfulness": "duration_minutes"}),
]

NUTRITION_DAILY = MetricTable(
    "nutrition_daily",
    {
        "calories": "total_calories",
        "protein": "total_protein_g",
        "carbs": "total_carbs_g",
        "fat": "total_fat_g",
        "fiber": "total_fiber_g",
        "sugar": "total_sugar_g",
        "sodium": "total_sodium_mg",
        "caffeine": "total_caffeine_mg",
    },
)

# metric key -> nutrition_records column, summed per day
NUTRIENT_COLUMNS: dict[str, str] = {
    "calories": "calories",
    "protein": "protein",
    "carbs": "total_carbohydrate",
    "fat": "total_fat",
    "fiber": "dietary_fiber",
    "sugar": "sugar",
    "sodium": "sodium",
    "caffeine": "caffeine",
    "cholesterol": "cholesterol",
    "sat_fat": "saturated_fat",
    "unsat_fat": "unsaturated_fat",
    "trans_fat": "trans_fat",
    "potassium": "potassium",
    "calcium": "calcium",
    "iron": "iron",
    "magnesium": "magnesium",
    "zinc": "zinc",
    "selenium": "selenium",
    "phosphorus": "phosphorus",
    "copper": "copper",
    "manganese": "manganese",
    "vitamin_a": "vitamin_a",
    "vitamin_c": "vitamin_c",
    "vitamin_d": "vitamin_d",
    "vitamin_e": "vitamin_e",
    "vitamin_k": "vitamin_k",
    "vitamin_b6": "vitamin_b6",
    "vitamin_b12": "vitamin_b12",
    "thiamin": "thiamin",
    "riboflavin": "riboflavin",
    "niacin": "niacin",
    "folate": "folate",
    "biotin": "biotin",
    "panto_acid": "pantothenic_acid",
}

# metric key -> nutrition_records column, max risk level per day
RISK_COLUMNS: dict[str, str] = {
    "tyramine": "tyramine_exposure",
    "alcohol": "alcohol_exposure",
    "gluten": "gluten_exposure",
}

RISK_LEVELS: dict[str, float] = {"none": 0.0, "low": 1.0, "medium": 2.0, "high": 3.0}


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_column(rows: list[dict], column: str) -> list[DailyValue]:
    values = []
    for row in rows:
        v = _number(row.get(column))
        raw_date = row.get("date")
        if v is None or not raw_date:
            continue
        values.append(DailyValue(date.fromisoformat(raw_date[:10]), v))
    return values


def parse_time_of_day(rows: list[dict], column: str, tz: ZoneInfo, shift_past_noon: bool) -> list[DailyValue]:
    """Timestamp column -> decimal local hour.

    Bedtimes before noon are pushed past 24 (00:30 -> 24.5) so a series
    spanning midnight stays continuous.
    """
    values = []
    for row in rows:
        raw_date, ts = row.get("date"), row.get(column)
        if not raw_date or not ts:
            continue
        try:
            local = datetime.fromisoformat(ts.replace("Z", "+00:00")).astimezone(tz)
        except ValueError:
            continue
        hours = local.hour + local.minute / 60.0
        if shift_past_noon and hours < 12.0:
            hours += 24.0
        values.append(DailyValue(date.fromisoformat(raw_date[:10]), hours))
    return values


def aggregate_nutrition(records: list[dict]) -> dict[str, list[DailyValue]]:
    """Sum nutrients and take the max risk level per calendar day."""
    sums: dict[date, dict[str, float]] = {}
    risks: dict[date, dict[str, float]] = {}
    for record in records:
        ts = record.get("timestamp") or ""
        if len(ts) < 10:
            continue
        day = date.fromisoformat(ts[:10])
        day_sums = sums.setdefault(day, {})
        for key, column in NUTRIENT_COLUMNS.items():
            v = _number(record.get(column))
            if v is not None and v > 0.0:
                day_sums[key] = day_sums.get(key, 0.0) + v
        day_risks = risks.setdefault(day, {})
        for key, column in RISK_COLUMNS.items():
            raw = record.get(column)
            level = RISK_LEVELS.get(raw.lower()) if isinstance(raw, str) else None
            if level is not None and level > day_risks.get(key, -1.0):
                day_risks[key] = level

    series: dict[str, list[DailyValue]] = {}
    for table in (sums, risks):
        keys = {k for per_day in table.values() for k in per_day}
        for key in keys:
            values = [DailyValue(d, v[key]) for d, v in table.items() if v.get(key, 0.0) > 0.0]
            if values:
                series[key] = sorted(values, key=lambda dv: dv.date, reverse=True)
    return series


class DailyMetricsService:
    """Loads every tracked daily metric for the signed-in user."""

    def __init__(self, client: Optional[SupabaseClient] = None, tz: Optional[ZoneInfo] = None):
        self.client = client or SupabaseClient()
        self.tz = tz or settings.tz

    async def _fetch(self, access_token: str, user_id: str, table: str, select: str, cutoff: date) -> list[dict]:
        try:
            return await self.client.select(
                table,
                access_token,
                [
                    ("user_id", f"eq.{user_id}"),
                    ("date", f"gte.{cutoff.isoformat()}"),
                    ("select", select),
                    ("order", "date.desc"),
                    ("limit", 365),
                ],
            )
        except SupabaseError as e:
            # One missing table must not blank the whole screen
            logger.warning("daily_metric_fetch_failed", table=table, error=e.reason)
            return []

    async def _load_table(
        self, access_token: str, user_id: str, spec: MetricTable, cutoff: date
    ) -> dict[str, list[DailyValue]]:
        select = "date," + ",".join(spec.columns.values())
        rows = await self._fetch(access_token, user_id, spec.table, select, cutoff)
        out = {}
        for key, column in spec.columns.items():
            if spec.time_of_day:
                out[key] = parse_time_of_day(rows, column, self.tz, spec.time_of_day == "bedtime")
            else:
                out[key] = parse_column(rows, column)
        return out

    async def _load_nutrition_records(self, access_token: str, user_id: str, cutoff: date) -> list[dict]:
        select = ",".join(["timestamp", *NUTRIENT_COLUMNS.values(), *RISK_COLUMNS.values()])
        try:
            return await self.client.select(
                "nutrition_records",
                access_token,
                [
                    ("user_id", f"eq.{user_id}"),
                    ("timestamp", f"gte.{cutoff.isoformat()}T00:00:00Z"),
                    ("select", select),
                    ("order", "timestamp.desc"),
                    ("limit", 5000),
                ],
            )
        except SupabaseError as e:
            logger.warning("nutrition_records_fetch_failed", error=e.reason)
            return []

    async def load_all(
        self,
        access_token: str,
        user_id: str,
        today: Optional[date] = None,
    ) -> dict[str, list[DailyValue]]:
        """Metric key -> series, keeping only keys with at least one value."""
        today = today or datetime.now(self.tz).date()
        cutoff = today - timedelta(days=settings.metric_history_days)

        tables = DAILY_TABLES + [NUTRITION_DAILY]
        results = await asyncio.gather(
            *(self._load_table(access_token, user_id, spec, cutoff) for spec in tables),
            self._load_nutrition_records(access_token, user_id, cutoff),
        )
        *table_series, nutrition_records = results

        series: dict[str, list[DailyValue]] = {}
        for spec, loaded in zip(tables, table_series):
            if spec is NUTRITION_DAILY:
                continue
            series.update(loaded)

        # Per-record nutrition wins; nutrition_daily only fills gaps
        series.update(aggregate_nutrition(nutrition_records))
        for key, values in table_series[-1].items():
            if not series.get(key):
                series[key] = values

        loaded = {k: v for k, v in series.items() if v}
        logger.info("daily_metrics_loaded", metrics=len(loaded), cutoff=cutoff.isoformat())
        return loaded
