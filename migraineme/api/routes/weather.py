"""City weather API routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from migraineme.api.deps import get_optional_access_token, get_supabase_client
from migraineme.core.exceptions import ValidationError
from migraineme.services.supabase import SupabaseClient
from migraineme.services.weather import CityWeatherService

router = APIRouter()


@router.get("/city")
async def resolve_city(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    token: Optional[str] = Depends(get_optional_access_token),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """The user's city for today, or the nearest city to ``lat``/``lon``."""
    city = await CityWeatherService(client).resolve_city(token, lat, lon)
    return city.to_dict()


@router.get("/daily")
async def daily_weather(
    city_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    token: Optional[str] = Depends(get_optional_access_token),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Daily aggregates from two days ago to six days ahead, or for ``start``..``end``."""
    if (start is None) != (end is None) or (start and end and start > end):
        raise ValidationError("end", "start and end must be given together, start first")

    service = CityWeatherService(client)
    city = None
    if city_id is None:
        city = await service.resolve_city(token, lat, lon)
        city_id = city.id
    if start and end:
        days = await service.fetch_daily_range(city_id, start, end)
    else:
        days = await service.fetch_daily(city_id)
    return {
        "city": city.to_dict() if city else {"id": city_id},
        "days": [d.to_dict() for d in days],
    }
