"""Per-day data history with manual and automatic sources reconciled."""

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Optional

from migraineme.core.exceptions import NotFoundError, SupabaseError, ValidationError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import PREFER_MERGE, SupabaseClient

logger = get_logger(__name__)

MANUAL_SOURCE = "manual"
PLACEHOLDER = "—"

# Source order for picking one value per metric: a higher rank wins, equal
# ranks keep the row seen first. Every non-manual source (whoop,
# health_connect, device, openmeteo, ...) outranks a manual entry.
SOURCE_RANKS: dict[str, int] = {MANUAL_SOURCE: 0}
AUTOMATIC_RANK = 1


def source_rank(source: Optional[str]) -> int:
    return SOURCE_RANKS.get(source or "unknown", AUTOMATIC_RANK)


def source_label(source: str) -> str:
    return {
        "manual": "Manual",
        "whoop": "WHOOP",
        "health_connect": "Health Connect",
    }.get(source, source[:1].upper() + source[1:])


def _num(row: dict, column: str) -> Optional[float]:
    value = row.get(column)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _hm(hours: float) -> str:
    minutes = int(hours * 60)
    return f"{minutes // 60}h {minutes % 60}m"


def fmt_with(column: str, template: str, cast: Callable[[float], Any] = float) -> Callable[[dict], Optional[str]]:
    def fmt(row: dict) -> Optional[str]:
        v = _num(row, column)
        return template.format(cast(v)) if v is not None else None

    return fmt


def fmt_hours(column: str) -> Callable[[dict], Optional[str]]:
    def fmt(row: dict) -> Optional[str]:
        v = _num(row, column)
        return _hm(v) if v is not None else None

    return fmt


def fmt_clock(column: str) -> Callable[[dict], Optional[str]]:
    def fmt(row: dict) -> Optional[str]:
        value = row.get(column)
        if not value:
            return None
        return value.split("T", 1)[-1][:5]

    return fmt


def fmt_stages(row: dict) -> Optional[str]:
    deep = _num(row, "value_sws_hm")
    if deep is None:
        return None
    rem = _num(row, "value_rem_hm") or 0.0
    light = _num(row, "value_light_hm") or 0.0
    return f"Deep {_hm(deep)} · REM {_hm(rem)} · Light {_hm(light)}"


def fmt_blood_pressure(row: dict) -> Optional[str]:
    sys_, dia = _num(row, "value_systolic"), _num(row, "value_diastolic")
    if sys_ is None or dia is None:
        return None
    return f"{int(sys_)}/{int(dia)} mmHg"


def fmt_thunderstorm(row: dict) -> Optional[str]:
    value = row.get("is_thunderstorm_day")
    if value is None:
        return None
    return "Yes" if value else "No"


@dataclass(frozen=True)
class HistoryMetric:
    key: str
    table: str
    label: str
    columns: tuple[str, ...]
    format: Callable[[dict], Optional[str]]


@dataclass
class HistoryEntry:
    metric: str
    table: str
    label: str
    value: str
    source: str
    raw: dict

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "table": self.table,
            "label": self.label,
            "value": self.value,
            "source": self.source,
            "source_label": source_label(self.source),
            "editable": self.source == MANUAL_SOURCE,
        }


DOMAINS: dict[str, list[HistoryMetric]] = {
    "sleep": [
        HistoryMetric("sleep_dur", "sleep_duration_daily", "Duration", ("value_hours",), fmt_hours("value_hours")),
        HistoryMetric("bedtime", "fell_asleep_time_daily", "Fell Asleep", ("value_at",), fmt_clock("value_at")),
        HistoryMetric("wake_time", "woke_up_time_daily", "Woke Up", ("value_at",), fmt_clock("value_at")),
        HistoryMetric("sleep_score", "sleep_score_daily", "Score", ("value_pct",), fmt_with("value_pct", "{}%", int)),
        HistoryMetric(
            "sleep_eff", "sleep_efficiency_daily", "Efficiency", ("value_pct",), fmt_with("value_pct", "{}%", int)
        ),
        HistoryMetric(
            "sleep_dist",
            "sleep_disturbances_daily",
            "Disturbances",
            ("value_count",),
            fmt_with("value_count", "{}", int),
        ),
        HistoryMetric(
            "sleep_stages",
            "sleep_stages_daily",
            "Sleep Stages",
            ("value_sws_hm", "value_rem_hm", "value_light_hm"),
            fmt_stages,
        ),
    ],
    "weather": [
        HistoryMetric("temp", "user_weather_daily", "Temperature", ("temp_c_mean",), fmt_with("temp_c_mean", "{:.1f} °C")),
        HistoryMetric(
            "pressure", "user_weather_daily", "Pressure", ("pressure_hpa_mean",), fmt_with("pressure_hpa_mean", "{:.0f} hPa")
        ),
        HistoryMetric(
            "humidity", "user_weather_daily", "Humidity", ("humidity_pct_mean",), fmt_with("humidity_pct_mean", "{:.0f}%")
        ),
        HistoryMetric(
            "wind",
            "user_weather_daily",
            "Wind Speed",
            ("wind_speed_mps_mean",),
            fmt_with("wind_speed_mps_mean", "{:.1f} m/s"),
        ),
        HistoryMetric("uv", "user_weather_daily", "UV Index", ("uv_index_max",), fmt_with("uv_index_max", "{:.0f}")),
        HistoryMetric(
            "thunderstorm", "user_weather_daily", "Thunderstorm", ("is_thunderstorm_day",), fmt_thunderstorm
        ),
    ],
    "physical": [
        HistoryMetric("recovery", "recovery_score_daily", "Recovery", ("value_pct",), fmt_with("value_pct", "{}%", int)),
        HistoryMetric("hrv", "hrv_daily", "HRV", ("value_rmssd_ms",), fmt_with("value_rmssd_ms", "{} ms", int)),
        HistoryMetric("rhr", "resting_hr_daily", "Resting HR", ("value_bpm",), fmt_with("value_bpm", "{} bpm", int)),
        HistoryMetric("spo2", "spo2_daily", "SpO2", ("value_pct",), fmt_with("value_pct", "{}%", int)),
        HistoryMetric(
            "skin_temp", "skin_temp_daily", "Skin Temp", ("value_celsius",), fmt_with("value_celsius", "{:.1f}°C")
        ),
        HistoryMetric(
            "resp_rate", "respiratory_rate_daily", "Resp. Rate", ("value_bpm",), fmt_with("value_bpm", "{:.1f} bpm")
        ),
        HistoryMetric("stress", "stress_index_daily", "Stress", ("value",), fmt_with("value", "{:.0f}")),
        HistoryMetric(
            "high_hr",
            "time_in_high_hr_zones_daily",
            "High HR Zones",
            ("value_minutes",),
            fmt_with("value_minutes", "{} min", int),
        ),
        HistoryMetric("steps", "steps_daily", "Steps", ("value_count",), fmt_with("value_count", "{:,}", int)),
        HistoryMetric("weight", "weight_daily", "Weight", ("value_kg",), fmt_with("value_kg", "{:.1f} kg")),
        HistoryMetric("body_fat", "body_fat_daily", "Body Fat", ("value_pct",), fmt_with("value_pct", "{:.1f}%")),
        HistoryMetric(
            "blood_pressure",
            "blood_pressure_daily",
            "Blood Pressure",
            ("value_systolic", "value_diastolic"),
            fmt_blood_pressure,
        ),
        HistoryMetric(
            "glucose", "blood_glucose_daily", "Blood Glucose", ("value_mgdl",), fmt_with("value_mgdl", "{:.0f} mg/dL")
        ),
    ],
}


def domain_metrics(domain: str) -> list[HistoryMetric]:
    metrics = DOMAINS.get(domain)
    if metrics is None:
        raise NotFoundError("History domain", domain)
    return metrics


def pick_best(entries: Iterable[HistoryEntry]) -> dict[str, HistoryEntry]:
    """One entry per metric: highest-ranked source, earliest row on ties."""
    best: dict[str, HistoryEntry] = {}
    for entry in entries:
        current = best.get(entry.metric)
        if current is None or source_rank(entry.source) > source_rank(current.source):
            best[entry.metric] = entry
    return best


def rows_to_entries(metrics: Iterable[HistoryMetric], rows: Iterable[dict]) -> list[HistoryEntry]:
    entries = []
    metrics = list(metrics)
    for row in rows:
        source = row.get("source") or "unknown"
        for metric in metrics:
            value = metric.format(row)
            if value is None:
                continue
            entries.append(HistoryEntry(metric.key, metric.table, metric.label, value, source, row))
    return entries


@dataclass
class DayHistory:
    domain: str
    day: date
    entries: list[HistoryEntry]
    best: dict[str, Optional[HistoryEntry]]
    labels: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        by_source: dict[str, list[dict]] = {}
        for entry in self.entries:
            by_source.setdefault(entry.source, []).append(entry.to_dict())
        # Manual first, then the rest alphabetically
        order = sorted(by_source, key=lambda s: (s != MANUAL_SOURCE, s))
        return {
            "domain": self.domain,
            "date": self.day.isoformat(),
            "best": {
                key: {
                    "label": self.labels[key],
                    "value": entry.value if entry else PLACEHOLDER,
                    "source": entry.source if entry else None,
                }
                for key, entry in self.best.items()
            },
            "sources": {source: by_source[source] for source in order},
        }


class DataHistoryService:
    """Reads one day of a domain across its tables and edits the manual rows."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def _rows_for_table(
        self, access_token: str, user_id: str, table: str, columns: set[str], day: date
    ) -> list[dict]:
        try:
            return await self.client.select(
                table,
                access_token,
                [
                    ("user_id", f"eq.{user_id}"),
                    ("date", f"eq.{day.isoformat()}"),
                    ("select", ",".join(["date", "source", *sorted(columns)])),
                ],
            )
        except SupabaseError as e:
            logger.warning("history_fetch_failed", table=table, error=e.reason)
            return []

    async def entries_for_date(
        self, domain: str, access_token: str, user_id: str, day: date
    ) -> list[HistoryEntry]:
        metrics = domain_metrics(domain)
        by_table: dict[str, list[HistoryMetric]] = {}
        for metric in metrics:
            by_table.setdefault(metric.table, []).append(metric)

        tables = list(by_table)
        results = await asyncio.gather(
            *(
                self._rows_for_table(
                    access_token,
                    user_id,
                    table,
                    {c for m in by_table[table] for c in m.columns},
                    day,
                )
                for table in tables
            )
        )
        entries: list[HistoryEntry] = []
        for table, rows in zip(tables, results):
            entries.extend(rows_to_entries(by_table[table], rows))
        return entries

    async def day_history(self, domain: str, access_token: str, user_id: str, day: date) -> DayHistory:
        metrics = domain_metrics(domain)
        entries = await self.entries_for_date(domain, access_token, user_id, day)
        best = pick_best(entries)
        return DayHistory(
            domain=domain,
            day=day,
            entries=entries,
            best={m.key: best.get(m.key) for m in metrics},
            labels={m.key: m.label for m in metrics},
        )

    def _editable_columns(self, domain: str, table: str) -> set[str]:
        columns = {c for m in domain_metrics(domain) if m.table == table for c in m.columns}
        if not columns:
            raise ValidationError("table", f"{table} is not part of the {domain} history")
        return columns

    async def upsert_manual(
        self,
        domain: str,
        table: str,
        day: date,
        values: dict[str, Any],
        access_token: str,
        user_id: str,
    ) -> None:
        """Create or overwrite the manual row for ``day``."""
        allowed = self._editable_columns(domain, table)
        unknown = set(values) - allowed
        if unknown:
            raise ValidationError("values", f"unknown columns for {table}: {', '.join(sorted(unknown))}")
        if not values:
            raise ValidationError("values", "nothing to save")

        body = {"user_id": user_id, "date": day.isoformat(), "source": MANUAL_SOURCE, **values}
        await self.client.upsert(table, access_token, [body], on_conflict="user_id,source,date", prefer=PREFER_MERGE)
        logger.info("manual_history_saved", table=table, date=day.isoformat(), fields=sorted(values))

    async def delete_manual(self, domain: str, table: str, day: date, access_token: str, user_id: str) -> None:
        """Delete the manual row only; device rows for the day are untouched."""
        self._editable_columns(domain, table)
        await self.client.delete(
            table,
            access_token,
            [
                ("user_id", f"eq.{user_id}"),
                ("date", f"eq.{day.isoformat()}"),
                ("source", f"eq.{MANUAL_SOURCE}"),
            ],
        )
        logger.info("manual_history_deleted", table=table, date=day.isoformat())
