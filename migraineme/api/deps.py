"""API dependencies for dependency injection."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from migraineme.core.exceptions import AuthenticationError
from migraineme.core.security import extract_user_id
from migraineme.services.insights import InsightsState
from migraineme.services.session import SessionStore
from migraineme.services.supabase import SupabaseClient
from migraineme.workers.scheduler import JobScheduler

# Bearer token from the Authorization header, when the caller sends one
bearer_scheme = HTTPBearer(auto_error=False)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_supabase_client(request: Request) -> SupabaseClient:
    return request.app.state.supabase


def get_insights_state(request: Request) -> InsightsState:
    return request.app.state.insights


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


async def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: SessionStore = Depends(get_session_store),
) -> str:
    """Access token for backend calls.

    Uses the header token if present, otherwise the stored session
    (refreshed when close to expiry).

    Raises:
        AuthenticationError: If neither is available.
    """
    if credentials and credentials.credentials:
        return credentials.credentials

    token = await store.get_valid_access_token()
    if not token:
        raise AuthenticationError("Not authenticated")
    return token


async def get_user_id(
    token: str = Depends(get_access_token),
    store: SessionStore = Depends(get_session_store),
) -> str:
    user_id = extract_user_id(token) or store.read_user_id()
    if not user_id:
        raise AuthenticationError("Cannot determine user from token")
    return user_id


async def get_optional_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: SessionStore = Depends(get_session_store),
) -> Optional[str]:
    """Like get_access_token, but None instead of a 401."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return await store.get_valid_access_token()
