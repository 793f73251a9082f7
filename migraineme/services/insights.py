"""Insights aggregation: migraine windows, event markers and metric selection.

A selected migraine span defines a window of calendar days
``[start - before, (end or start) + after]`` in the user's timezone.
Within that window the insights screen shows:

* the window dates,
* every logged item (trigger, prodrome, medicine, relief, activity,
  location, missed activity) whose local date falls on a window date,
* the daily metrics with at least one value on a window date,
* which of those metrics are enabled: metrics linked to automated
  (``source == "system"``) events are enabled automatically, and the
  user can force any metric on or off on top of that.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from migraineme.config import get_settings
from migraineme.core.exceptions import ValidationError
from migraineme.core.logging import get_logger
from migraineme.services.metrics import DailyMetricsService, DailyValue, metric_key_for
from migraineme.services.migraines import (
    LoggedItem,
    MetricTemplate,
    MigraineDataService,
    MigraineRow,
)

settings = get_settings()
logger = get_logger(__name__)

CATEGORY_COLORS: dict[str, str] = {
    "Trigger": "#FF8A65",
    "Prodrome": "#FFD54F",
    "Medicine": "#4FC3F7",
    "Relief": "#81C784",
    "Activity": "#BA68C8",
    "Location": "#4DD0E1",
    "Missed Activity": "#EF9A9A",
    "Severity": "#FF7043",
    "Symptom": "#CE93D8",
    "Pain Location": "#FF8A80",
}

_QUALIFIER_SUFFIX = re.compile(r"\s+(low|high|short|long|late|early|many|few)\b.*")


def normalise_label(raw: str) -> str:
    """Lookup form of a trigger/prodrome label.

    "Sleep duration: short" and "Sleep duration low" both become
    "sleep duration".
    """
    label = raw.lower().replace(":", "").strip()
    return _QUALIFIER_SUFFIX.sub("", label).strip()


class LabelMetricMap:
    """Normalised trigger/prodrome label -> metric key(s), built from templates."""

    def __init__(self):
        self.labels: dict[str, str] = {}
        self.groups: dict[str, set[str]] = {}

    @classmethod
    def from_templates(cls, templates: Iterable[MetricTemplate]) -> "LabelMetricMap":
        mapping = cls()
        for template in templates:
            key = metric_key_for(template.metric_table, template.metric_column)
            if key is None:
                continue
            mapping.labels[normalise_label(template.label)] = key
            if template.display_group:
                group = normalise_label(template.display_group)
                mapping.labels[group] = key
                mapping.groups.setdefault(group, set()).add(key)
        return mapping

    def label_to_metric_key(self, label: str) -> Optional[str]:
        return self.labels.get(normalise_label(label))

    def metric_keys_for_label(self, label: str) -> set[str]:
        """All keys for a label; a display group expands to every member metric."""
        norm = normalise_label(label)
        group = self.groups.get(norm)
        if group:
            return set(group)
        single = self.labels.get(norm)
        return {single} if single else set()


@dataclass
class EventMarker:
    """A logged item placed on the insights timeline."""

    id: str
    category: str
    label: str
    at: datetime
    color: str
    end_at: Optional[datetime] = None
    source: str = "manual"
    migraine_id: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "label": self.label,
            "at": self.at.isoformat(),
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "color": self.color,
            "source": self.source,
            "migraine_id": self.migraine_id,
            "detail": self.detail,
        }


def window_bounds(span: MigraineRow, days_before: int, days_after: int) -> tuple[datetime, datetime]:
    """Window start/end instants; a span with no end uses its start."""
    if days_before < 0 or days_after < 0:
        raise ValidationError("window", "days before/after must not be negative")
    return (
        span.start_at - timedelta(days=days_before),
        span.effective_end + timedelta(days=days_after),
    )


def window_dates(window_start: datetime, window_end: datetime, tz: ZoneInfo) -> list[date]:
    """Inclusive range of local calendar days covered by the window."""
    first = window_start.astimezone(tz).date()
    last = window_end.astimezone(tz).date()
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def window_migraines(
    migraines: Iterable[MigraineRow], window_start: datetime, window_end: datetime
) -> list[MigraineRow]:
    """Spans overlapping the window."""
    return [m for m in migraines if m.start_at <= window_end and m.effective_end >= window_start]


def to_marker(item: LoggedItem) -> EventMarker:
    detail = None
    if item.category == "Medicine" and item.amount:
        detail = item.amount
    elif item.relief_scale:
        detail = item.relief_scale
    end = item.resolved_end if item.category in ("Relief", "Activity") else None
    return EventMarker(
        id=item.id,
        category=item.category,
        label=item.label or item.category,
        at=item.start_at,
        end_at=end,
        color=CATEGORY_COLORS.get(item.category, "#B0BEC5"),
        source=item.source,
        migraine_id=item.migraine_id,
        detail=detail,
    )


def window_events(items: Iterable[LoggedItem], dates: Iterable[date], tz: ZoneInfo) -> list[EventMarker]:
    """Markers for items whose local date is a window date, sorted by time.

    Items repeated across fetches (activities come from more than one
    source) are kept once per category and id.
    """
    day_set = set(dates)
    seen: set[tuple[str, str]] = set()
    markers = []
    for item in items:
        if item.start_at.astimezone(tz).date() not in day_set:
            continue
        key = (item.category, item.id)
        if key in seen:
            continue
        seen.add(key)
        markers.append(to_marker(item))
    markers.sort(key=lambda m: m.at)
    return markers


def available_metrics(series: dict[str, list[DailyValue]], dates: Iterable[date]) -> set[str]:
    """Metric keys with at least one value on a window date."""
    day_set = set(dates)
    return {key for key, values in series.items() if any(v.date in day_set for v in values)}


def auto_metrics(events: Iterable[EventMarker], label_map: LabelMetricMap) -> set[str]:
    """Metric keys linked to automated events."""
    keys: set[str] = set()
    for event in events:
        if event.source == "system":
            keys |= label_map.metric_keys_for_label(event.label)
    return keys


def enabled_metrics(auto: set[str], user_disabled: set[str], user_enabled: set[str]) -> set[str]:
    return (auto - user_disabled) | user_enabled


class TimeFrame(str, Enum):
    NONE = "none"
    ALL = "all"
    WEEK_1 = "7d"
    WEEK_2 = "14d"
    MONTH_1 = "30d"
    MONTH_3 = "90d"
    MONTH_6 = "180d"
    YEAR_1 = "365d"
    CUSTOM = "custom"

    @property
    def days(self) -> Optional[int]:
        return {
            TimeFrame.WEEK_1: 7,
            TimeFrame.WEEK_2: 14,
            TimeFrame.MONTH_1: 30,
            TimeFrame.MONTH_3: 90,
            TimeFrame.MONTH_6: 180,
            TimeFrame.YEAR_1: 365,
        }.get(self)


def filter_by_time_frame(
    migraines: Iterable[MigraineRow],
    time_frame: TimeFrame,
    now: datetime,
    tz: ZoneInfo,
    custom_from: Optional[date] = None,
    custom_to: Optional[date] = None,
) -> list[MigraineRow]:
    migraines = list(migraines)
    if time_frame == TimeFrame.NONE:
        return []
    if time_frame == TimeFrame.ALL:
        return migraines
    if time_frame == TimeFrame.CUSTOM:
        if custom_from is None or custom_to is None:
            raise ValidationError("custom_range", "from and to are required for a custom time frame")
        if custom_to < custom_from:
            raise ValidationError("custom_range", "to must not be before from")
        lower = datetime.combine(custom_from, time.min, tzinfo=tz)
        upper = datetime.combine(custom_to + timedelta(days=1), time.min, tzinfo=tz)
        return [m for m in migraines if lower <= m.start_at < upper]
    cutoff = now - timedelta(days=time_frame.days)
    return [m for m in migraines if m.start_at >= cutoff]


@dataclass(frozen=True)
class FilterTag:
    category: str
    label: str


def severity_bucket(severity: int) -> str:
    if severity <= 3:
        return "Mild (1-3)"
    if severity <= 6:
        return "Moderate (4-6)"
    return "Severe (7-10)"


def build_tag_index(
    migraines: Iterable[MigraineRow], items: Iterable[LoggedItem]
) -> tuple[dict[str, set[FilterTag]], dict[str, list[str]]]:
    """Tags per migraine id, and every available label grouped by category."""
    index: dict[str, set[FilterTag]] = {}
    all_tags: set[FilterTag] = set()

    def add(migraine_id: str, tag: FilterTag):
        index.setdefault(migraine_id, set()).add(tag)
        all_tags.add(tag)

    for m in migraines:
        index.setdefault(m.id, set())
        for symptom in (m.type or "").split(","):
            symptom = symptom.strip()
            if symptom and symptom != "Migraine":
                add(m.id, FilterTag("Symptom", symptom))
        for loc in m.pain_locations:
            add(m.id, FilterTag("Pain Location", loc))
        if m.severity is not None:
            add(m.id, FilterTag("Severity", severity_bucket(m.severity)))

    for item in items:
        if item.migraine_id and item.label and item.label.strip():
            add(item.migraine_id, FilterTag(item.category, item.label))

    available: dict[str, list[str]] = {}
    for tag in all_tags:
        available.setdefault(tag.category, []).append(tag.label)
    return index, {cat: sorted(set(labels)) for cat, labels in available.items()}


def filter_by_tags(
    migraines: Iterable[MigraineRow],
    index: dict[str, set[FilterTag]],
    active: set[FilterTag],
) -> list[MigraineRow]:
    """Migraines carrying every active tag."""
    if not active:
        return list(migraines)
    return [m for m in migraines if active <= index.get(m.id, set())]


def severity_counts(migraines: Iterable[MigraineRow]) -> dict[int, int]:
    counts: dict[int, int] = {}
    for m in migraines:
        if m.severity is not None:
            counts[m.severity] = counts.get(m.severity, 0) + 1
    return dict(sorted(counts.items()))


@dataclass
class DurationStats:
    average_hours: float
    min_hours: float
    max_hours: float
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "average_hours": round(self.average_hours, 2),
            "min_hours": round(self.min_hours, 2),
            "max_hours": round(self.max_hours, 2),
            "count": self.count,
        }


def duration_stats(migraines: Iterable[MigraineRow]) -> Optional[DurationStats]:
    """Stats over spans with an end time; None when there are none."""
    hours = [
        (m.ended_at - m.start_at).total_seconds() / 3600.0
        for m in migraines
        if m.ended_at is not None and m.ended_at >= m.start_at
    ]
    if not hours:
        return None
    return DurationStats(
        average_hours=sum(hours) / len(hours),
        min_hours=min(hours),
        max_hours=max(hours),
        count=len(hours),
    )


@dataclass
class InsightWindow:
    """Everything the detail screen renders for the selected migraine."""

    migraine: Optional[MigraineRow]
    window_start: Optional[datetime]
    window_end: Optional[datetime]
    dates: list[date] = field(default_factory=list)
    events: list[EventMarker] = field(default_factory=list)
    migraines: list[MigraineRow] = field(default_factory=list)
    available: set[str] = field(default_factory=set)
    auto: set[str] = field(default_factory=set)
    enabled: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "migraine": self.migraine.to_dict() if self.migraine else None,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "dates": [d.isoformat() for d in self.dates],
            "events": [e.to_dict() for e in self.events],
            "migraines": [m.to_dict() for m in self.migraines],
            "available_metrics": sorted(self.available),
            "auto_metrics": sorted(self.auto),
            "enabled_metrics": sorted(self.enabled),
        }


class InsightsState:
    """Selection and override state for the insights detail screen.

    Holds the loaded data for one user plus the selected migraine, the
    window size and the user's metric overrides. Selecting a migraine
    clears the overrides.
    """

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz or settings.tz
        self.user_id: Optional[str] = None
        self.migraines: list[MigraineRow] = []
        self.items: list[LoggedItem] = []
        self.series: dict[str, list[DailyValue]] = {}
        self.label_map = LabelMetricMap()
        self.selected_index: Optional[int] = None
        self.days_before = settings.insights_days_before
        self.days_after = settings.insights_days_after
        self.user_disabled: set[str] = set()
        self.user_enabled: set[str] = set()

    def set_data(
        self,
        migraines: list[MigraineRow],
        items: list[LoggedItem],
        series: dict[str, list[DailyValue]],
        label_map: LabelMetricMap,
    ) -> None:
        # Newest first, like the migraine list
        self.migraines = sorted(migraines, key=lambda m: m.start_at, reverse=True)
        self.items = items
        self.series = series
        self.label_map = label_map
        self.selected_index = 0 if self.migraines else None
        self.user_disabled.clear()
        self.user_enabled.clear()

    def select_migraine(
        self,
        index: int,
        days_before: Optional[int] = None,
        days_after: Optional[int] = None,
    ) -> None:
        if index < 0 or index >= len(self.migraines):
            raise ValidationError("index", f"no migraine at position {index}")
        if days_before is not None:
            self.days_before = days_before
        if days_after is not None:
            self.days_after = days_after
        self.selected_index = index
        self.user_disabled.clear()
        self.user_enabled.clear()

    def toggle_metric(self, key: str, currently_enabled: bool) -> None:
        if currently_enabled:
            self.user_disabled.add(key)
            self.user_enabled.discard(key)
        else:
            self.user_enabled.add(key)
            self.user_disabled.discard(key)

    @property
    def selected(self) -> Optional[MigraineRow]:
        if self.selected_index is None or not self.migraines:
            return None
        return self.migraines[self.selected_index]

    def window(self) -> InsightWindow:
        span = self.selected
        if span is None:
            return InsightWindow(migraine=None, window_start=None, window_end=None)

        start, end = window_bounds(span, self.days_before, self.days_after)
        dates = window_dates(start, end, self.tz)
        events = window_events(self.items, dates, self.tz)
        available = available_metrics(self.series, dates)
        auto = auto_metrics(events, self.label_map)
        return InsightWindow(
            migraine=span,
            window_start=start,
            window_end=end,
            dates=dates,
            events=events,
            migraines=window_migraines(self.migraines, start, end),
            available=available,
            auto=auto,
            enabled=enabled_metrics(auto, self.user_disabled, self.user_enabled),
        )


async def load_insights(
    state: InsightsState,
    access_token: str,
    user_id: str,
    data: MigraineDataService,
    metrics: DailyMetricsService,
) -> InsightsState:
    """Fetch everything the insights screens need and reset the selection."""
    # Templates first: auto-selection depends on them
    templates = await data.get_metric_templates(access_token)
    label_map = LabelMetricMap.from_templates(templates)

    migraines = await data.get_migraines(access_token, user_id)
    items = await data.get_all_items(access_token, user_id)
    series = await metrics.load_all(access_token, user_id)

    state.set_data(migraines, items, series, label_map)
    state.user_id = user_id
    logger.info(
        "insights_loaded",
        migraines=len(migraines),
        items=len(items),
        metrics=len(series),
        labels=len(label_map.labels),
    )
    return state
