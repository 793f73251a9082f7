"""Tests for the hourly location worker."""

from datetime import date, timedelta

from migraineme.core.exceptions import SupabaseError
from migraineme.workers.base import WorkResult
from migraineme.workers.location import (
    LOCATION_JOB,
    LOCATION_METRIC,
    LocationSyncWorker,
    LocationWatchdogWorker,
)
from migraineme.workers.platform import DeviceLocation


class TestLocationSync:
    async def test_uploads_fix_and_daily_altitudes(self, ctx, enable, platform, personal):
        enable(LOCATION_METRIC)
        platform.location = DeviceLocation(52.52, 13.40, altitude_m=40.0)
        personal.hourly_altitudes_for_date.return_value = [34.0, 40.0, 52.5]

        assert await LocationSyncWorker().run(ctx) == WorkResult.SUCCESS

        args, kwargs = personal.insert_location_hourly.call_args
        assert args[2:] == (52.52, 13.40)
        assert kwargs["altitude_m"] == 40.0

        personal.hourly_altitudes_for_date.assert_awaited_once()
        assert personal.hourly_altitudes_for_date.call_args.args[1] == date(2026, 3, 10)

        _, kwargs = personal.upsert_location_daily.call_args
        assert kwargs["altitude_max_m"] == 52.5
        assert kwargs["altitude_min_m"] == 34.0
        assert kwargs["altitude_change_m"] == 18.5

    async def test_hourly_failure_still_writes_daily(self, ctx, enable, platform, personal):
        enable(LOCATION_METRIC)
        platform.location = DeviceLocation(52.52, 13.40)
        personal.insert_location_hourly.side_effect = RuntimeError("offline")
        personal.hourly_altitudes_for_date.side_effect = RuntimeError("offline")

        assert await LocationSyncWorker().run(ctx) == WorkResult.SUCCESS

        _, kwargs = personal.upsert_location_daily.call_args
        assert kwargs["altitude_max_m"] is None
        assert kwargs["altitude_change_m"] is None

    async def test_disabled_metric(self, ctx, platform, personal):
        platform.location = DeviceLocation(52.52, 13.40)

        assert await LocationSyncWorker().run(ctx) == WorkResult.SUCCESS
        personal.insert_location_hourly.assert_not_called()

    async def test_no_fix_retries(self, ctx, enable):
        enable(LOCATION_METRIC)
        assert await LocationSyncWorker().run(ctx) == WorkResult.RETRY

    async def test_signed_out_retries(self, ctx, session_store):
        session_store.clear()
        assert await LocationSyncWorker().run(ctx) == WorkResult.RETRY


class TestLocationWatchdog:
    async def test_reenrols_missing_job(self, ctx, enable):
        enable(LOCATION_METRIC)
        assert not ctx.scheduler.is_enrolled(LOCATION_JOB)

        assert await LocationWatchdogWorker(timedelta(hours=1)).run(ctx) == WorkResult.SUCCESS

        assert ctx.scheduler.is_enrolled(LOCATION_JOB)
        assert ctx.scheduler.get_job(LOCATION_JOB)["interval_seconds"] == 3600

    async def test_keeps_existing_schedule(self, ctx, enable):
        enable(LOCATION_METRIC)
        ctx.scheduler.enqueue_periodic(LOCATION_JOB, LOCATION_JOB, timedelta(minutes=30))

        await LocationWatchdogWorker(timedelta(hours=1)).run(ctx)

        assert ctx.scheduler.get_job(LOCATION_JOB)["interval_seconds"] == 1800

    async def test_leaves_disabled_metric_alone(self, ctx):
        await LocationWatchdogWorker(timedelta(hours=1)).run(ctx)
        assert not ctx.scheduler.is_enrolled(LOCATION_JOB)

    async def test_signed_out_does_nothing(self, ctx, session_store, metric_settings):
        session_store.clear()

        assert await LocationWatchdogWorker(timedelta(hours=1)).run(ctx) == WorkResult.SUCCESS
        metric_settings.fetch.assert_not_called()

    async def test_unreachable_settings_count_as_enabled(self, ctx, metric_settings):
        metric_settings.fetch.side_effect = SupabaseError("bad gateway", http_status=502)

        assert await LocationWatchdogWorker(timedelta(hours=1)).run(ctx) == WorkResult.SUCCESS
        assert ctx.scheduler.is_enrolled(LOCATION_JOB)
