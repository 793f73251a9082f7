"""Thin async client for the Supabase REST, RPC and Edge Function endpoints."""

import json
from typing import Any, Iterable, Optional, Sequence, Union

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from migraineme.config import get_settings
from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger

settings = get_settings()
logger = get_logger(__name__)

Params = Sequence[tuple[str, Any]]

PREFER_MINIMAL = "return=minimal"
PREFER_REPRESENTATION = "return=representation"
PREFER_MERGE = "resolution=merge-duplicates,return=minimal"


def parse_error_message(body: Optional[str], status_code: Optional[int] = None) -> str:
    """Best-effort human message from a failed PostgREST/GoTrue response body."""
    if body:
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict):
            for key in ("message", "error"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
        snippet = body.strip()[:140]
        if snippet:
            return snippet
    return f"HTTP {status_code}" if status_code is not None else "Request failed"


def first_row(payload: Any) -> Optional[dict]:
    """Unwrap an RPC/function result that is either an object or a one-element array."""
    if isinstance(payload, list):
        return payload[0] if payload else None
    if isinstance(payload, dict):
        return payload
    return None


def in_filter(values: Iterable[Any]) -> str:
    """PostgREST ``in.(a,b,c)`` filter value."""
    return "in.(" + ",".join(str(v) for v in values) + ")"


def ensure_ok(response: httpx.Response) -> httpx.Response:
    """Raise SupabaseError for any non-2xx response."""
    if response.is_success:
        return response
    message = parse_error_message(response.text, response.status_code)
    logger.warning(
        "supabase_request_failed",
        path=response.request.url.path,
        status_code=response.status_code,
        error=message,
    )
    raise SupabaseError(message, http_status=response.status_code)


def _log_retry(retry_state):
    logger.warning(
        "supabase_retry",
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep,
    )


_transport_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
    before_sleep=_log_retry,
    reraise=True,
)


class SupabaseClient:
    """PostgREST-style access to the hosted database.

    A fresh ``httpx.AsyncClient`` is opened per call. Pass ``transport`` to
    route requests somewhere other than the network (tests use
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = httpx.Timeout(timeout or settings.http_timeout)
        self._transport = transport

    def rest_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def headers(self, access_token: Optional[str] = None, prefer: Optional[str] = None) -> dict:
        headers = {"apikey": self.anon_key, "Accept": "application/json"}
        headers["Authorization"] = f"Bearer {access_token or self.anon_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout) if timeout else self.timeout,
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        params: Optional[Params] = None,
        json_body: Any = None,
        prefer: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        async with self._client(timeout) as client:
            response = await client.request(
                method,
                url,
                params=list(params) if params else None,
                json=json_body,
                headers=self.headers(access_token, prefer),
            )
        return ensure_ok(response)

    @_transport_retry
    async def select(
        self,
        table: str,
        access_token: Optional[str],
        params: Params,
    ) -> list[dict]:
        """GET rows from a table. ``params`` carries select/filter/order/limit."""
        response = await self.request("GET", self.rest_url(table), access_token, params=params)
        data = response.json() if response.content else []
        return data if isinstance(data, list) else [data]

    async def insert(
        self,
        table: str,
        access_token: str,
        rows: Union[dict, list[dict]],
        prefer: str = PREFER_MINIMAL,
        on_conflict: Optional[str] = None,
    ) -> Any:
        params = [("on_conflict", on_conflict)] if on_conflict else None
        response = await self.request(
            "POST", self.rest_url(table), access_token, params=params, json_body=rows, prefer=prefer
        )
        return response.json() if response.content else None

    async def upsert(
        self,
        table: str,
        access_token: str,
        rows: Union[dict, list[dict]],
        on_conflict: Optional[str] = None,
        prefer: str = PREFER_MERGE,
    ) -> Any:
        """Insert-or-update keyed by ``on_conflict`` (merge-duplicates)."""
        return await self.insert(table, access_token, rows, prefer=prefer, on_conflict=on_conflict)

    async def update(
        self,
        table: str,
        access_token: str,
        params: Params,
        values: dict,
        prefer: str = PREFER_MINIMAL,
    ) -> Any:
        response = await self.request(
            "PATCH", self.rest_url(table), access_token, params=params, json_body=values, prefer=prefer
        )
        return response.json() if response.content else None

    async def delete(self, table: str, access_token: str, params: Params) -> None:
        if not params:
            raise ValueError("Refusing to DELETE without a filter")
        await self.request("DELETE", self.rest_url(table), access_token, params=params)

    @_transport_retry
    async def rpc(self, name: str, access_token: Optional[str], body: Optional[dict] = None) -> Any:
        response = await self.request(
            "POST", f"{self.base_url}/rest/v1/rpc/{name}", access_token, json_body=body or {}
        )
        return response.json() if response.content else None

    async def invoke_function(
        self,
        name: str,
        access_token: Optional[str],
        body: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """POST to an Edge Function."""
        response = await self.request(
            "POST",
            f"{self.base_url}/functions/v1/{name}",
            access_token,
            json_body=body or {},
            timeout=timeout,
        )
        return response.json() if response.content else None

    async def health_check(self) -> bool:
        """Check that the REST gateway answers."""
        try:
            async with self._client(5.0) as client:
                response = await client.get(f"{self.base_url}/rest/v1/", headers=self.headers())
                return response.status_code < 500
        except httpx.HTTPError as e:
            logger.debug("supabase_health_check_failed", error=str(e))
            return False
