"""Menstruation settings and period history."""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from migraineme.core.exceptions import AuthenticationError
from migraineme.core.security import extract_user_id
from migraineme.services.supabase import SupabaseClient, first_row, in_filter

DEFAULT_CYCLE_LENGTH = 28
END_DATE_PATTERN = re.compile(r"end_date=(\d{4}-\d{2}-\d{2})")


@dataclass
class MenstruationSettings:
    last_menstruation_date: Optional[date] = None
    avg_cycle_length: int = DEFAULT_CYCLE_LENGTH
    auto_update_average: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MenstruationSettings":
        last = row.get("last_menstruation_date")
        return cls(
            last_menstruation_date=date.fromisoformat(last[:10]) if last else None,
            avg_cycle_length=row.get("avg_cycle_length") or DEFAULT_CYCLE_LENGTH,
            auto_update_average=row.get("auto_update_average", True) is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_menstruation_date": self.last_menstruation_date.isoformat() if self.last_menstruation_date else None,
            "avg_cycle_length": self.avg_cycle_length,
            "auto_update_average": self.auto_update_average,
        }


@dataclass(frozen=True)
class MenstruationPeriod:
    start_date: date
    end_date: Optional[date] = None


def parse_end_date(notes: Optional[str]) -> Optional[date]:
    if not notes:
        return None
    match = END_DATE_PATTERN.search(notes)
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return None


def _require_user(access_token: str) -> str:
    user_id = extract_user_id(access_token)
    if not user_id:
        raise AuthenticationError("Cannot read user id from access token")
    return user_id


class MenstruationService:
    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def get_settings(self, access_token: str) -> Optional[MenstruationSettings]:
        user_id = _require_user(access_token)
        rows = await self.client.select(
            "menstruation_settings", access_token, [("user_id", f"eq.{user_id}"), ("select", "*")]
        )
        row = first_row(rows)
        return MenstruationSettings.from_row(row) if row else None

    async def save_settings(self, access_token: str, settings: MenstruationSettings) -> None:
        user_id = _require_user(access_token)
        body = {"user_id": user_id, **settings.to_dict()}
        # last_menstruation_date is sent as null explicitly so clearing it sticks
        await self.client.upsert(
            "menstruation_settings",
            access_token,
            body,
            on_conflict="user_id",
            prefer="resolution=merge-duplicates",
        )

    async def history(self, access_token: str, limit_days: int = 365, today: Optional[date] = None) -> list[MenstruationPeriod]:
        """Menstruation triggers from manual or Health Connect sources since the cutoff, oldest first."""
        user_id = _require_user(access_token)
        cutoff = (today or date.today()) - timedelta(days=limit_days)
        rows = await self.client.select(
            "triggers",
            access_token,
            [
                ("user_id", f"eq.{user_id}"),
                ("type", "eq.menstruation"),
                ("source", in_filter(["manual", "health_connect"])),
                ("start_at", f"gte.{cutoff.isoformat()}T00:00:00Z"),
                ("order", "start_at.asc"),
                ("select", "start_at,notes,source"),
            ],
        )
        periods = []
        for row in rows:
            try:
                start = date.fromisoformat((row.get("start_at") or "")[:10])
            except ValueError:
                continue
            periods.append(MenstruationPeriod(start, parse_end_date(row.get("notes"))))
        return periods
