"""Per-day data history API routes."""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from migraineme.api.deps import get_access_token, get_supabase_client, get_user_id
from migraineme.services.history import DataHistoryService
from migraineme.services.supabase import SupabaseClient

router = APIRouter()


class ManualValueUpdate(BaseModel):
    """Columns to write on the manual row of one table."""

    table: str
    values: dict[str, Any]


@router.get("/{domain}/{day}")
async def get_day(
    domain: str,
    day: date,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Best value per metric plus every source's rows for the day."""
    history = await DataHistoryService(client).day_history(domain, token, user_id, day)
    return history.to_dict()


@router.put("/{domain}/{day}")
async def save_manual(
    domain: str,
    day: date,
    request: ManualValueUpdate,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    service = DataHistoryService(client)
    await service.upsert_manual(domain, request.table, day, request.values, token, user_id)
    return (await service.day_history(domain, token, user_id, day)).to_dict()


@router.delete("/{domain}/{day}")
async def delete_manual(
    domain: str,
    day: date,
    table: str,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Remove the manual row of ``table``; device rows stay."""
    service = DataHistoryService(client)
    await service.delete_manual(domain, table, day, token, user_id)
    return (await service.day_history(domain, token, user_id, day)).to_dict()
