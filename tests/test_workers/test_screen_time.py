"""Tests for screen time syncing and its watchdog."""

from datetime import date, datetime, timedelta, timezone

import pytest

from migraineme.workers.base import WorkResult
from migraineme.workers.platform import Permission
from migraineme.workers.screen_time import (
    MAX_CATCHUP_DAYS,
    SCREEN_TIME_JOB,
    ScreenTimeDailyWorker,
    ScreenTimeSyncWorker,
    ScreenTimeWatchdogWorker,
    finalization_plan,
    late_night_bounds,
)

TODAY = date(2026, 3, 10)


class TestFinalizationPlan:
    @pytest.mark.parametrize("gap", [-3, 0, 1, 2, 6, 7, 8, 30, 400])
    def test_never_today_and_never_more_than_a_week(self, gap):
        last_complete = TODAY - timedelta(days=1)
        plan = finalization_plan(last_complete - timedelta(days=gap), last_complete)

        assert TODAY not in plan
        assert all(d <= last_complete for d in plan)
        assert len(plan) <= MAX_CATCHUP_DAYS

    def test_fills_the_gap_oldest_first(self):
        assert finalization_plan(date(2026, 3, 6), date(2026, 3, 9)) == [
            date(2026, 3, 7),
            date(2026, 3, 8),
            date(2026, 3, 9),
        ]

    def test_nothing_uploaded_yet(self):
        assert finalization_plan(None, date(2026, 3, 9)) == [date(2026, 3, 9)]

    def test_long_gap_only_does_last_day(self):
        assert finalization_plan(date(2026, 1, 1), date(2026, 3, 9)) == [date(2026, 3, 9)]

    def test_up_to_date(self):
        assert finalization_plan(date(2026, 3, 9), date(2026, 3, 9)) == []


class TestScreenTimeSync:
    async def test_live_daily_and_late_night(self, ctx, personal, platform):
        personal.latest_screen_time_date.return_value = date(2026, 3, 7)
        personal.latest_screen_time_late_night_date.return_value = date(2026, 3, 7)

        result = await ScreenTimeSyncWorker().run(ctx)

        assert result == WorkResult.SUCCESS
        personal.upsert_screen_time_live.assert_awaited_once()
        assert personal.upsert_screen_time_live.call_args.args[1] == TODAY

        daily_days = [c.args[1] for c in personal.upsert_screen_time_daily.call_args_list]
        assert daily_days == [date(2026, 3, 8), date(2026, 3, 9)]

        late_days = [c.args[1] for c in personal.upsert_screen_time_late_night.call_args_list]
        assert late_days == [date(2026, 3, 8)]

        # live, two daily days, one late-night window
        assert len(platform.usage_calls) == 4
        assert platform.usage_calls[-1] == (
            datetime(2026, 3, 8, 22, 0, tzinfo=ctx.tz),
            datetime(2026, 3, 9, 6, 0, tzinfo=ctx.tz),
        )

    async def test_partial_failure_is_success(self, ctx, personal):
        personal.upsert_screen_time_live.side_effect = RuntimeError("offline")
        personal.latest_screen_time_date.return_value = date(2026, 3, 9)
        personal.latest_screen_time_late_night_date.return_value = date(2026, 3, 8)

        assert await ScreenTimeSyncWorker().run(ctx) == WorkResult.SUCCESS

    async def test_everything_failing_asks_for_retry(self, ctx, personal):
        personal.upsert_screen_time_live.side_effect = RuntimeError("offline")
        personal.latest_screen_time_date.side_effect = RuntimeError("offline")
        personal.latest_screen_time_late_night_date.side_effect = RuntimeError("offline")

        assert await ScreenTimeSyncWorker().run(ctx) == WorkResult.RETRY

    async def test_no_permission_does_nothing(self, ctx, personal, platform):
        platform.granted.discard(Permission.USAGE_STATS)

        assert await ScreenTimeSyncWorker().run(ctx) == WorkResult.SUCCESS
        personal.upsert_screen_time_live.assert_not_called()

    async def test_signed_out_does_nothing(self, ctx, personal, session_store):
        session_store.clear()

        assert await ScreenTimeSyncWorker().run(ctx) == WorkResult.SUCCESS
        personal.latest_screen_time_date.assert_not_called()


class TestScreenTimeDaily:
    def test_next_run_is_ten_tomorrow(self, ctx):
        finished = datetime(2026, 3, 10, 12, 5, tzinfo=timezone.utc)
        assert ScreenTimeDailyWorker().next_run_after(ctx, finished) == datetime(2026, 3, 11, 10, 0, tzinfo=ctx.tz)

    def test_late_night_window_crosses_midnight(self, ctx):
        start, end = late_night_bounds(ctx, date(2026, 3, 8))
        assert end - start == timedelta(hours=8)


class TestScreenTimeWatchdog:
    async def test_reenrols_missing_job(self, ctx, enable):
        enable("screen_time_daily")
        assert not ctx.scheduler.is_enrolled(SCREEN_TIME_JOB)

        result = await ScreenTimeWatchdogWorker(timedelta(minutes=15)).run(ctx)

        assert result == WorkResult.SUCCESS
        assert ctx.scheduler.is_enrolled(SCREEN_TIME_JOB)
        assert ctx.scheduler.get_job(SCREEN_TIME_JOB)["interval_seconds"] == 900

    async def test_leaves_disabled_metric_alone(self, ctx):
        await ScreenTimeWatchdogWorker(timedelta(minutes=15)).run(ctx)
        assert not ctx.scheduler.is_enrolled(SCREEN_TIME_JOB)

    async def test_needs_usage_permission(self, ctx, enable, platform):
        enable("screen_time_daily")
        platform.granted.discard(Permission.USAGE_STATS)

        await ScreenTimeWatchdogWorker(timedelta(minutes=15)).run(ctx)
        assert not ctx.scheduler.is_enrolled(SCREEN_TIME_JOB)
