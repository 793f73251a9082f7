"""Tests for the Supabase REST client."""

import json

import httpx
import pytest
from tenacity import wait_none

from migraineme.core.exceptions import SupabaseError
from migraineme.services.supabase import SupabaseClient, first_row, in_filter, parse_error_message


def make_client(handler) -> SupabaseClient:
    return SupabaseClient(
        base_url="https://project.supabase.co/",
        anon_key="anon",
        transport=httpx.MockTransport(handler),
    )


class TestParseErrorMessage:
    def test_prefers_message_field(self):
        assert parse_error_message('{"message": "bad jwt", "error": "x"}', 401) == "bad jwt"

    def test_falls_back_to_error_field(self):
        assert parse_error_message('{"error": "invalid_grant"}', 400) == "invalid_grant"

    def test_truncates_plain_body(self):
        body = "x" * 300
        assert parse_error_message(body, 500) == "x" * 140

    def test_empty_body_uses_status(self):
        assert parse_error_message("", 503) == "HTTP 503"


class TestHelpers:
    def test_first_row(self):
        assert first_row([{"a": 1}, {"a": 2}]) == {"a": 1}
        assert first_row({"a": 1}) == {"a": 1}
        assert first_row([]) is None
        assert first_row("nope") is None

    def test_in_filter(self):
        assert in_filter(["a", "b"]) == "in.(a,b)"


class TestSelect:
    async def test_sends_filters_and_user_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["auth"] = request.headers["Authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json=[{"id": 1}])

        client = make_client(handler)
        rows = await client.select("migraines", "user-token", [("user_id", "eq.u1"), ("order", "start_at.asc")])

        assert rows == [{"id": 1}]
        assert seen["url"].path == "/rest/v1/migraines"
        assert seen["url"].params["user_id"] == "eq.u1"
        assert seen["auth"] == "Bearer user-token"
        assert seen["apikey"] == "anon"

    async def test_anon_key_used_without_session(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer anon"
            return httpx.Response(200, json=[])

        assert await make_client(handler).select("city", None, [("select", "id")]) == []

    async def test_http_error_raises_without_retry(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401, json={"message": "JWT expired"})

        with pytest.raises(SupabaseError) as exc_info:
            await make_client(handler).select("migraines", "t", [("select", "*")])

        assert exc_info.value.reason == "JWT expired"
        assert exc_info.value.http_status == 401
        assert len(calls) == 1

    async def test_connect_errors_are_retried(self, mocker):
        mocker.patch.object(SupabaseClient.select.retry, "wait", wait_none())
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=[{"ok": True}])

        rows = await make_client(handler).select("city", None, [("select", "id")])
        assert rows == [{"ok": True}]
        assert len(calls) == 3


class TestWrites:
    async def test_upsert_sends_conflict_target_and_prefer(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["params"] = dict(request.url.params)
            seen["prefer"] = request.headers.get("Prefer")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201)

        await make_client(handler).upsert(
            "screen_time_daily", "t", [{"date": "2026-03-01"}], on_conflict="user_id,date,source"
        )

        assert seen["method"] == "POST"
        assert seen["params"] == {"on_conflict": "user_id,date,source"}
        assert "merge-duplicates" in seen["prefer"]
        assert seen["body"] == [{"date": "2026-03-01"}]

    async def test_delete_requires_filter(self):
        client = make_client(lambda request: httpx.Response(204))
        with pytest.raises(ValueError):
            await client.delete("nutrition_records", "t", [])

    async def test_invoke_function_path(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/functions/v1/classify-food-risks"
            return httpx.Response(200, json={"tyramine_exposure": "high"})

        result = await make_client(handler).invoke_function("classify-food-risks", "t", {"food_name": "cheddar"})
        assert result == {"tyramine_exposure": "high"}


class TestHealthCheck:
    async def test_healthy(self):
        assert await make_client(lambda request: httpx.Response(200)).health_check() is True

    async def test_server_error_is_unhealthy(self):
        assert await make_client(lambda request: httpx.Response(503)).health_check() is False

    async def test_transport_error_is_unhealthy(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        assert await make_client(handler).health_check() is False
