"""Profile and menstruation settings API routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from migraineme.api.deps import get_access_token, get_supabase_client, get_user_id
from migraineme.core.exceptions import NotFoundError
from migraineme.services.menstruation import DEFAULT_CYCLE_LENGTH, MenstruationService, MenstruationSettings
from migraineme.services.profile import MigraineType, ProfileService
from migraineme.services.supabase import SupabaseClient

router = APIRouter()


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    migraine_type: Optional[MigraineType] = None


class ProfileHints(BaseModel):
    """Values from the identity provider, used only where the profile is blank."""

    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class MenstruationSettingsUpdate(BaseModel):
    last_menstruation_date: Optional[date] = None
    avg_cycle_length: int = Field(DEFAULT_CYCLE_LENGTH, ge=1, le=120)
    auto_update_average: bool = True


@router.get("/profile")
async def get_profile(
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    profile = await ProfileService(client).get(token, user_id)
    if profile is None:
        raise NotFoundError("Profile", user_id)
    return profile.to_dict()


@router.post("/profile/ensure")
async def ensure_profile(
    request: ProfileHints,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    profile = await ProfileService(client).ensure(token, user_id, request.display_name, request.avatar_url)
    return profile.to_dict()


@router.put("/profile")
async def update_profile(
    request: ProfileUpdate,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    profile = await ProfileService(client).update(
        token, user_id, request.display_name, request.avatar_url, request.migraine_type
    )
    return profile.to_dict()


@router.get("/menstruation")
async def get_menstruation_settings(
    token: str = Depends(get_access_token),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Stored settings, or the defaults when none are saved yet."""
    settings = await MenstruationService(client).get_settings(token)
    return (settings or MenstruationSettings()).to_dict()


@router.put("/menstruation")
async def save_menstruation_settings(
    request: MenstruationSettingsUpdate,
    token: str = Depends(get_access_token),
    client: SupabaseClient = Depends(get_supabase_client),
):
    settings = MenstruationSettings(
        last_menstruation_date=request.last_menstruation_date,
        avg_cycle_length=request.avg_cycle_length,
        auto_update_average=request.auto_update_average,
    )
    await MenstruationService(client).save_settings(token, settings)
    return settings.to_dict()


@router.get("/menstruation/history")
async def menstruation_history(
    limit_days: int = Query(365, ge=1, le=3650),
    token: str = Depends(get_access_token),
    client: SupabaseClient = Depends(get_supabase_client),
):
    periods = await MenstruationService(client).history(token, limit_days)
    return {
        "periods": [
            {
                "start_date": p.start_date.isoformat(),
                "end_date": p.end_date.isoformat() if p.end_date else None,
            }
            for p in periods
        ]
    }
