"""Supabase Auth (GoTrue) token refresh."""

from dataclasses import dataclass
from typing import Optional

import httpx

from migraineme.config import get_settings
from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import parse_error_message

settings = get_settings()
logger = get_logger(__name__)


@dataclass
class RefreshedSession:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    user_id: Optional[str]


class SupabaseAuthService:
    """Exchanges a refresh token for a new session."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = httpx.Timeout(settings.http_timeout)
        self._transport = transport

    async def refresh_session(self, refresh_token: str) -> RefreshedSession:
        """Refresh the session.

        Raises:
            SupabaseError: If GoTrue rejects the refresh token.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
                headers={"apikey": self.anon_key},
            )

        if not response.is_success:
            raise SupabaseError(
                parse_error_message(response.text, response.status_code),
                http_status=response.status_code,
            )

        data = response.json()
        user = data.get("user") or {}
        return RefreshedSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            user_id=user.get("id"),
        )
