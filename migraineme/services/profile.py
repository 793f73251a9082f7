"""User profile rows in Supabase."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from migraineme.core.exceptions import SupabaseError
from migraineme.services.supabase import PREFER_REPRESENTATION, SupabaseClient, first_row

PROFILE_SELECT = "user_id,display_name,avatar_url,migraine_type"


class MigraineType(str, Enum):
    MIGRAINE = "migraine"
    MIGRAINE_WITH_AURA = "migraine_with_aura"
    CLUSTER = "cluster"
    TENSION = "tension"
    HEMIPLEGIC = "hemiplegic"
    VESTIBULAR = "vestibular"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["MigraineType"]:
        try:
            return cls(value) if value else None
        except ValueError:
            return None


@dataclass
class Profile:
    user_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    migraine_type: Optional[MigraineType] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(
            user_id=row["user_id"],
            display_name=row.get("display_name"),
            avatar_url=row.get("avatar_url"),
            migraine_type=MigraineType.parse(row.get("migraine_type")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "migraine_type": self.migraine_type.value if self.migraine_type else None,
        }


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class ProfileService:
    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def get(self, access_token: str, user_id: str) -> Optional[Profile]:
        rows = await self.client.select(
            "profiles", access_token, [("user_id", f"eq.{user_id}"), ("select", PROFILE_SELECT)]
        )
        row = first_row(rows)
        return Profile.from_row(row) if row else None

    async def ensure(
        self,
        access_token: str,
        user_id: str,
        display_name_hint: Optional[str] = None,
        avatar_url_hint: Optional[str] = None,
    ) -> Profile:
        """Create the row if missing; otherwise fill blank fields from the hints only."""
        existing = await self.get(access_token, user_id)
        if existing is None:
            payload = await self.client.insert(
                "profiles",
                access_token,
                {
                    "user_id": user_id,
                    "display_name": None if _blank(display_name_hint) else display_name_hint.strip(),
                    "avatar_url": None if _blank(avatar_url_hint) else avatar_url_hint.strip(),
                },
                prefer=PREFER_REPRESENTATION,
            )
            return self._profile_from(payload)

        changes = {}
        if _blank(existing.display_name) and not _blank(display_name_hint):
            changes["display_name"] = display_name_hint.strip()
        if _blank(existing.avatar_url) and not _blank(avatar_url_hint):
            changes["avatar_url"] = avatar_url_hint.strip()
        if not changes:
            return existing
        return await self._patch(access_token, user_id, changes)

    async def update(
        self,
        access_token: str,
        user_id: str,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        migraine_type: Optional[MigraineType] = None,
    ) -> Profile:
        """Change any combination of fields; ``None`` leaves a field alone."""
        changes: dict[str, Any] = {}
        if display_name is not None:
            changes["display_name"] = display_name.strip()
        if avatar_url is not None:
            changes["avatar_url"] = avatar_url.strip()
        if migraine_type is not None:
            changes["migraine_type"] = migraine_type.value
        if not changes:
            existing = await self.get(access_token, user_id)
            if existing is None:
                raise SupabaseError("Profile not found", http_status=404)
            return existing
        return await self._patch(access_token, user_id, changes)

    async def _patch(self, access_token: str, user_id: str, changes: dict[str, Any]) -> Profile:
        payload = await self.client.update(
            "profiles",
            access_token,
            [("user_id", f"eq.{user_id}"), ("select", PROFILE_SELECT)],
            changes,
            prefer=PREFER_REPRESENTATION,
        )
        return self._profile_from(payload)

    @staticmethod
    def _profile_from(payload: Any) -> Profile:
        row = first_row(payload)
        if not row:
            raise SupabaseError("Profile write returned no row")
        return Profile.from_row(row)
