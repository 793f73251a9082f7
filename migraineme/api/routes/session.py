"""Stored Supabase session API routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from migraineme.api.deps import get_session_store
from migraineme.core.logging import get_logger
from migraineme.services.session import SessionStore

logger = get_logger(__name__)
router = APIRouter()


class SessionSave(BaseModel):
    """Tokens handed back by the Supabase sign-in flow."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(None, gt=0)
    user_id: Optional[str] = None
    auth_provider: Optional[str] = None


def _status(store: SessionStore) -> dict:
    return {
        "signed_in": store.read_access_token() is not None,
        "user_id": store.read_user_id(),
        "auth_provider": store.read_auth_provider(),
    }


@router.get("")
async def get_session(store: SessionStore = Depends(get_session_store)):
    return _status(store)


@router.put("")
async def save_session(request: SessionSave, store: SessionStore = Depends(get_session_store)):
    store.save_session(
        request.access_token,
        refresh_token=request.refresh_token,
        expires_in=request.expires_in,
        user_id=request.user_id,
        auth_provider=request.auth_provider,
    )
    logger.info("session_saved", provider=request.auth_provider)
    return _status(store)


@router.delete("")
async def sign_out(store: SessionStore = Depends(get_session_store)):
    """Forget the stored session; background jobs stop finding a token."""
    store.clear()
    logger.info("session_cleared")
    return _status(store)
