"""Local preference API routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from migraineme.core.exceptions import NotFoundError
from migraineme.database import get_db
from migraineme.services.preferences import PreferencesService

router = APIRouter()


class PreferencesUpdate(BaseModel):
    preferences: dict[str, Optional[str]]


@router.get("")
async def get_all_preferences(db: Session = Depends(get_db)):
    return PreferencesService(db).get_all()


@router.get("/{key}")
async def get_preference(key: str, db: Session = Depends(get_db)):
    value = PreferencesService(db).get(key)
    if value is None:
        raise NotFoundError("Preference", key)
    return {"key": key, "value": value}


@router.put("")
async def update_preferences(request: PreferencesUpdate, db: Session = Depends(get_db)):
    service = PreferencesService(db)
    for key, value in request.preferences.items():
        service.set(key, value)
    return {"status": "updated", "count": len(request.preferences)}


@router.delete("/{key}")
async def pop_preference(key: str, db: Session = Depends(get_db)):
    """Remove a key, returning the value it held."""
    return {"key": key, "value": PreferencesService(db).pop(key)}
