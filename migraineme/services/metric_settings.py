"""Per-user metric collection settings stored in Supabase."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import httpx

from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import SupabaseClient

logger = get_logger(__name__)


@dataclass
class MetricSetting:
    metric: str
    enabled: bool = False
    preferred_source: Optional[str] = None
    allowed_sources: list[str] = field(default_factory=list)
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MetricSetting":
        return cls(
            metric=row["metric"],
            enabled=bool(row.get("enabled", False)),
            preferred_source=row.get("preferred_source"),
            allowed_sources=list(row.get("allowed_sources") or []),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "enabled": self.enabled,
            "preferred_source": self.preferred_source,
            "allowed_sources": self.allowed_sources,
            "updated_at": self.updated_at,
        }


def settings_map(settings: Iterable[MetricSetting]) -> dict[str, MetricSetting]:
    """Index settings by ``"{metric}_{preferred_source}"``; a missing source reads ``null``."""
    return {f"{s.metric}_{s.preferred_source or 'null'}": s for s in settings}


def is_metric_enabled(settings: Iterable[MetricSetting], metric: str) -> bool:
    return any(s.metric == metric and s.enabled for s in settings)


def enabled_metric_names(settings: Iterable[MetricSetting]) -> set[str]:
    return {s.metric for s in settings if s.enabled}


class MetricSettingsService:
    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def fetch(self, access_token: str, user_id: str) -> list[MetricSetting]:
        """All settings rows for the user; any failure reads as no settings."""
        try:
            rows = await self.client.select(
                "metric_settings",
                access_token,
                [("user_id", f"eq.{user_id}"), ("select", "*")],
            )
            return [MetricSetting.from_row(r) for r in rows if r.get("metric")]
        except (SupabaseError, httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("metric_settings_fetch_failed", error=str(e))
            return []
