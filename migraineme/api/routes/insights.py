"""Insights API routes: migraine list, window selection and filters."""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from migraineme.api.deps import get_access_token, get_insights_state, get_supabase_client, get_user_id
from migraineme.core.logging import get_logger
from migraineme.services.insights import (
    FilterTag,
    InsightsState,
    TimeFrame,
    build_tag_index,
    duration_stats,
    filter_by_tags,
    filter_by_time_frame,
    load_insights,
    severity_counts,
)
from migraineme.services.metrics import DailyMetricsService
from migraineme.services.migraines import MigraineDataService
from migraineme.services.supabase import SupabaseClient

logger = get_logger(__name__)
router = APIRouter()


class SelectRequest(BaseModel):
    """Pick a migraine by list position (0 is the newest) and size the window."""

    index: int = Field(..., ge=0)
    before: Optional[int] = Field(None, ge=0)
    after: Optional[int] = Field(None, ge=0)


class ToggleRequest(BaseModel):
    metric: str


class TagModel(BaseModel):
    category: str
    label: str


class FilterRequest(BaseModel):
    time_frame: TimeFrame = TimeFrame.ALL
    custom_from: Optional[date] = None
    custom_to: Optional[date] = None
    tags: list[TagModel] = []


async def ensure_loaded(
    state: InsightsState,
    token: str,
    user_id: str,
    client: SupabaseClient,
    refresh: bool = False,
) -> InsightsState:
    if refresh or state.user_id != user_id:
        await load_insights(
            state,
            token,
            user_id,
            MigraineDataService(client),
            DailyMetricsService(client, state.tz),
        )
    return state


@router.get("/migraines")
async def list_migraines(
    refresh: bool = False,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Migraine spans, newest first."""
    await ensure_loaded(state, token, user_id, client, refresh)
    return {
        "migraines": [m.to_dict() for m in state.migraines],
        "selected_index": state.selected_index,
    }


@router.post("/select")
async def select_migraine(
    request: SelectRequest,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    await ensure_loaded(state, token, user_id, client)
    state.select_migraine(request.index, request.before, request.after)
    return state.window().to_dict()


@router.post("/toggle")
async def toggle_metric(
    request: ToggleRequest,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Flip one metric on or off for the current window."""
    await ensure_loaded(state, token, user_id, client)
    currently_enabled = request.metric in state.window().enabled
    state.toggle_metric(request.metric, currently_enabled)
    return state.window().to_dict()


@router.get("/window")
async def get_window(
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    await ensure_loaded(state, token, user_id, client)
    window = state.window()
    dates = set(window.dates)
    body = window.to_dict()
    body["series"] = {
        key: [v.to_dict() for v in values if v.date in dates]
        for key, values in state.series.items()
        if key in window.enabled
    }
    return body


@router.get("/extras")
async def get_extras(
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Severity distribution and duration summary over all migraines."""
    await ensure_loaded(state, token, user_id, client)
    stats = duration_stats(state.migraines)
    return {
        "severity_counts": {str(k): v for k, v in severity_counts(state.migraines).items()},
        "duration": stats.to_dict() if stats else None,
    }


@router.post("/filter")
async def filter_migraines(
    request: FilterRequest,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    state: InsightsState = Depends(get_insights_state),
    client: SupabaseClient = Depends(get_supabase_client),
):
    await ensure_loaded(state, token, user_id, client)
    in_frame = filter_by_time_frame(
        state.migraines,
        request.time_frame,
        datetime.now(state.tz),
        state.tz,
        request.custom_from,
        request.custom_to,
    )
    index, available = build_tag_index(state.migraines, state.items)
    active = {FilterTag(t.category, t.label) for t in request.tags}
    matches = filter_by_tags(in_frame, index, active)
    logger.debug("insights_filtered", time_frame=request.time_frame.value, tags=len(active), matches=len(matches))
    return {
        "migraines": [m.to_dict() for m in matches],
        "available_tags": available,
    }


@router.get("/migraines/{migraine_id}/items")
async def migraine_items(
    migraine_id: str,
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Everything logged against one migraine, oldest first."""
    items = await MigraineDataService(client).linked_items(token, user_id, migraine_id)
    items.sort(key=lambda i: i.start_at)
    return {"migraine_id": migraine_id, "items": [i.to_dict() for i in items]}
