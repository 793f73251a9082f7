"""Migraine journal rows and their linked items."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from migraineme.core.logging import get_logger
from migraineme.services.supabase import SupabaseClient

logger = get_logger(__name__)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a PostgREST timestamptz string into an aware datetime."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class MigraineRow:
    """One logged migraine episode."""

    id: str
    start_at: datetime
    ended_at: Optional[datetime] = None
    severity: Optional[int] = None
    type: Optional[str] = None
    notes: Optional[str] = None
    pain_locations: list[str] = field(default_factory=list)
    user_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MigraineRow":
        return cls(
            id=str(row["id"]),
            start_at=parse_timestamp(row["start_at"]),
            ended_at=parse_timestamp(row.get("ended_at")),
            severity=row.get("severity"),
            type=row.get("type"),
            notes=row.get("notes"),
            pain_locations=list(row.get("pain_locations") or []),
            user_id=row.get("user_id"),
        )

    @property
    def effective_end(self) -> datetime:
        """End of the episode, or its start when it has no end yet."""
        return self.ended_at or self.start_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_at": self.start_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "severity": self.severity,
            "type": self.type,
            "notes": self.notes,
            "pain_locations": self.pain_locations,
        }


@dataclass
class LoggedItem:
    """A trigger, prodrome, medicine, relief, activity, location or missed activity."""

    id: str
    category: str
    label: Optional[str]
    start_at: datetime
    migraine_id: Optional[str] = None
    source: str = "manual"
    notes: Optional[str] = None
    amount: Optional[str] = None
    duration_minutes: Optional[int] = None
    end_at: Optional[datetime] = None
    relief_scale: Optional[str] = None

    @property
    def resolved_end(self) -> Optional[datetime]:
        """Relief end time: explicit ``end_at``, else start plus duration."""
        if self.end_at:
            return self.end_at
        if self.duration_minutes:
            return self.start_at + timedelta(minutes=self.duration_minutes)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "label": self.label,
            "start_at": self.start_at.isoformat(),
            "migraine_id": self.migraine_id,
            "source": self.source,
            "notes": self.notes,
            "amount": self.amount,
            "duration_minutes": self.duration_minutes,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "relief_scale": self.relief_scale,
        }


@dataclass(frozen=True)
class CategoryTable:
    category: str
    table: str
    label_column: str
    columns: str


CATEGORY_TABLES: list[CategoryTable] = [
    CategoryTable("Trigger", "triggers", "type", "id,type,start_at,notes,migraine_id,source,active"),
    CategoryTable("Prodrome", "prodromes", "type", "id,type,start_at,notes,migraine_id,source"),
    CategoryTable("Medicine", "medicines", "name", "id,name,amount,start_at,notes,migraine_id,relief_scale"),
    CategoryTable(
        "Relief",
        "reliefs",
        "type",
        "id,type,duration_minutes,start_at,end_at,notes,migraine_id,relief_scale",
    ),
    CategoryTable("Activity", "activities", "type", "id,type,start_at,end_at,notes,migraine_id"),
    CategoryTable("Location", "locations", "type", "id,type,start_at,notes,migraine_id"),
    CategoryTable("Missed Activity", "missed_activities", "type", "id,type,start_at,notes,migraine_id"),
]


def _item_from_row(spec: CategoryTable, row: dict[str, Any]) -> Optional[LoggedItem]:
    start = parse_timestamp(row.get("start_at"))
    if start is None:
        return None
    return LoggedItem(
        id=str(row["id"]),
        category=spec.category,
        label=row.get(spec.label_column),
        start_at=start,
        migraine_id=row.get("migraine_id"),
        source=row.get("source") or "manual",
        notes=row.get("notes"),
        amount=row.get("amount"),
        duration_minutes=row.get("duration_minutes"),
        end_at=parse_timestamp(row.get("end_at")),
        relief_scale=row.get("relief_scale"),
    )


@dataclass
class MetricTemplate:
    """A trigger/prodrome template that is backed by a daily metric table."""

    label: str
    metric_table: str
    metric_column: Optional[str] = None
    display_group: Optional[str] = None


class MigraineDataService:
    """Reads the migraine journal and linked items for the signed-in user."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def get_migraines(self, access_token: str, user_id: str) -> list[MigraineRow]:
        rows = await self.client.select(
            "migraines",
            access_token,
            [
                ("user_id", f"eq.{user_id}"),
                ("select", "id,user_id,type,severity,start_at,ended_at,notes,pain_locations"),
                ("order", "start_at.asc"),
            ],
        )
        return [MigraineRow.from_row(r) for r in rows if r.get("start_at")]

    async def get_items(
        self,
        access_token: str,
        user_id: str,
        spec: CategoryTable,
        migraine_id: Optional[str] = None,
    ) -> list[LoggedItem]:
        params = [
            ("user_id", f"eq.{user_id}"),
            ("select", spec.columns),
            ("order", "start_at.asc"),
        ]
        if migraine_id:
            params.append(("migraine_id", f"eq.{migraine_id}"))
        rows = await self.client.select(spec.table, access_token, params)
        items = (_item_from_row(spec, r) for r in rows)
        return [i for i in items if i is not None]

    async def get_all_items(
        self,
        access_token: str,
        user_id: str,
        migraine_id: Optional[str] = None,
    ) -> list[LoggedItem]:
        """Every linked category, fetched concurrently."""
        results = await asyncio.gather(
            *(self.get_items(access_token, user_id, spec, migraine_id) for spec in CATEGORY_TABLES)
        )
        items: list[LoggedItem] = []
        for batch in results:
            items.extend(batch)
        return items

    async def linked_items(self, access_token: str, user_id: str, migraine_id: str) -> list[LoggedItem]:
        return await self.get_all_items(access_token, user_id, migraine_id)

    async def get_metric_templates(self, access_token: str) -> list[MetricTemplate]:
        """Trigger and prodrome templates that point at a metric table."""
        templates: list[MetricTemplate] = []
        for table in ("trigger_templates", "prodrome_templates"):
            rows = await self.client.select(
                table,
                access_token,
                [
                    ("select", "label,metric_table,metric_column,display_group"),
                    ("metric_table", "not.is.null"),
                ],
            )
            for row in rows:
                if not row.get("label") or not row.get("metric_table"):
                    continue
                templates.append(
                    MetricTemplate(
                        label=row["label"],
                        metric_table=row["metric_table"],
                        metric_column=row.get("metric_column"),
                        display_group=row.get("display_group"),
                    )
                )
        logger.debug("metric_templates_loaded", count=len(templates))
        return templates
