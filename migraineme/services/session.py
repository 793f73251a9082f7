"""Local persistence of the signed-in Supabase session."""

import asyncio
import time
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session, sessionmaker

from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger
from migraineme.core.security import extract_user_id
from migraineme.models import AuthSession
from migraineme.services.auth import SupabaseAuthService

logger = get_logger(__name__)

# Refresh this many seconds before the token actually expires
EXPIRY_SKEW_SECONDS = 60


class SessionStore:
    """Holds the Supabase session in the local store and keeps it fresh.

    One instance is created per application and handed to the API layer
    and the workers; nothing reads the session through module globals.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        auth: Optional[SupabaseAuthService] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._auth = auth or SupabaseAuthService()
        self._clock = clock
        self._lock = asyncio.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load(self, db: Session) -> Optional[AuthSession]:
        return db.get(AuthSession, 1)

    def save_session(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        user_id: Optional[str] = None,
        auth_provider: Optional[str] = None,
        obtained_at_ms: Optional[int] = None,
    ) -> None:
        """Persist a new session, replacing whatever was stored."""
        db = self._session_factory()
        try:
            row = self._load(db) or AuthSession(id=1)
            row.access_token = access_token
            row.refresh_token = refresh_token
            row.expires_in = expires_in
            row.obtained_at = obtained_at_ms if obtained_at_ms is not None else self._now_ms()
            row.user_id = user_id or extract_user_id(access_token)
            if auth_provider is not None:
                row.auth_provider = auth_provider
            db.merge(row)
            db.commit()
        finally:
            db.close()

    def clear(self) -> None:
        db = self._session_factory()
        try:
            row = self._load(db)
            if row:
                db.delete(row)
                db.commit()
        finally:
            db.close()

    def read_access_token(self) -> Optional[str]:
        db = self._session_factory()
        try:
            row = self._load(db)
            return row.access_token if row else None
        finally:
            db.close()

    def read_user_id(self) -> Optional[str]:
        db = self._session_factory()
        try:
            row = self._load(db)
            if not row:
                return None
            return row.user_id or extract_user_id(row.access_token)
        finally:
            db.close()

    def read_auth_provider(self) -> Optional[str]:
        db = self._session_factory()
        try:
            row = self._load(db)
            return row.auth_provider if row else None
        finally:
            db.close()

    async def get_valid_access_token(self) -> Optional[str]:
        """Return a usable access token, refreshing it when close to expiry.

        Returns None when signed out or when the refresh is rejected.
        """
        async with self._lock:
            db = self._session_factory()
            try:
                row = self._load(db)
                if not row or not row.access_token:
                    return None

                # Sessions saved without expiry metadata are trusted as-is
                if row.expires_in is None or row.obtained_at is None:
                    return row.access_token

                expires_at_ms = row.obtained_at + row.expires_in * 1000
                if self._now_ms() < expires_at_ms - EXPIRY_SKEW_SECONDS * 1000:
                    return row.access_token

                if not row.refresh_token:
                    logger.info("session_expired_without_refresh_token")
                    return None
                refresh_token = row.refresh_token
            finally:
                db.close()

            try:
                refreshed = await self._auth.refresh_session(refresh_token)
            except SupabaseError as e:
                logger.warning("session_refresh_failed", error=e.reason, http_status=e.http_status)
                return None
            except httpx.HTTPError as e:
                logger.warning("session_refresh_unreachable", error=str(e))
                return None

            self.save_session(
                access_token=refreshed.access_token,
                refresh_token=refreshed.refresh_token or refresh_token,
                expires_in=refreshed.expires_in,
                user_id=refreshed.user_id,
            )
            logger.info("session_refreshed", expires_in=refreshed.expires_in)
            return refreshed.access_token
