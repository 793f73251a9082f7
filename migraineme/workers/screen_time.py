"""Screen time upload: live total, finalized days and late-night windows."""

from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, Optional

from migraineme.services.metric_settings import is_metric_enabled
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.platform import Permission, UsageTotal
from migraineme.workers.scheduler import ExistingWorkPolicy

SCREEN_TIME_JOB = "screen_time_sync"
SCREEN_TIME_DAILY_JOB = "screen_time_daily"
SCREEN_TIME_WATCHDOG_JOB = "screen_time_watchdog"

MAX_CATCHUP_DAYS = 7
LATE_NIGHT_START = time(22, 0)
LATE_NIGHT_END = time(6, 0)
DAILY_RUN_AT = time(10, 0)


def finalization_plan(latest: Optional[date], last_complete: date) -> list[date]:
    """Days still to finalize, oldest first.

    ``last_complete`` is the most recent day whose data can no longer
    change. Nothing after it is ever returned, and never more than
    ``MAX_CATCHUP_DAYS`` days.
    """
    if latest is None:
        return [last_complete]
    gap = (last_complete - latest).days
    if gap <= 0:
        return []
    if gap <= MAX_CATCHUP_DAYS:
        return [latest + timedelta(days=i) for i in range(1, gap + 1)]
    return [last_complete]


def day_bounds(ctx: WorkerContext, day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=ctx.tz)
    return start, start + timedelta(days=1)


def late_night_bounds(ctx: WorkerContext, evening: date) -> tuple[datetime, datetime]:
    """22:00 on ``evening`` to 06:00 the next morning."""
    start = datetime.combine(evening, LATE_NIGHT_START, tzinfo=ctx.tz)
    end = datetime.combine(evening + timedelta(days=1), LATE_NIGHT_END, tzinfo=ctx.tz)
    return start, end


class _Tally:
    def __init__(self):
        self.attempted = 0
        self.failed = 0

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and self.failed == self.attempted


class ScreenTimeSyncWorker(Worker):
    """Uploads today's running total and finalizes completed days."""

    name = SCREEN_TIME_JOB

    async def _attempt(
        self, tally: _Tally, step: str, action: Callable[[], Awaitable[Any]], **fields
    ) -> tuple[bool, Any]:
        tally.attempted += 1
        try:
            return True, await action()
        except Exception as e:
            tally.failed += 1
            self._logger.warning("screen_time_step_failed", step=step, error=str(e), **fields)
            return False, None

    async def _finalize(
        self,
        ctx: WorkerContext,
        tally: _Tally,
        kind: str,
        latest: Optional[date],
        last_complete: date,
        bounds: Callable[[WorkerContext, date], tuple[datetime, datetime]],
        upsert: Callable[[date, UsageTotal], Awaitable[None]],
    ) -> None:
        if latest is not None and (last_complete - latest).days > MAX_CATCHUP_DAYS:
            self._logger.warning(
                "screen_time_days_skipped",
                kind=kind,
                latest=latest.isoformat(),
                skipped=(last_complete - latest).days - 1,
            )

        for day in finalization_plan(latest, last_complete):
            start, end = bounds(ctx, day)

            async def upload(day=day, start=start, end=end):
                await upsert(day, await ctx.platform.usage_total(start, end))

            ok, _ = await self._attempt(tally, kind, upload, date=day.isoformat())
            if ok:
                self._logger.info("screen_time_finalized", kind=kind, date=day.isoformat())

    async def sync(self, ctx: WorkerContext, token: str) -> WorkResult:
        tally = _Tally()
        now = ctx.now()
        today = now.date()
        personal = ctx.personal
        tz_name = str(ctx.tz)

        async def live():
            start, _ = day_bounds(ctx, today)
            usage = await ctx.platform.usage_total(start, now)
            await personal.upsert_screen_time_live(token, today, usage.total_hours, usage.app_count, tz_name)

        await self._attempt(tally, "live", live)

        ok, latest = await self._attempt(tally, "latest_daily", lambda: personal.latest_screen_time_date(token))
        if ok:
            await self._finalize(
                ctx,
                tally,
                "daily",
                latest,
                today - timedelta(days=1),
                day_bounds,
                lambda day, usage: personal.upsert_screen_time_daily(token, day, usage.total_hours),
            )

        # Yesterday evening's window closes this morning, so today-2 is the last settled one
        ok, latest = await self._attempt(
            tally, "latest_late_night", lambda: personal.latest_screen_time_late_night_date(token)
        )
        if ok:
            await self._finalize(
                ctx,
                tally,
                "late_night",
                latest,
                today - timedelta(days=2),
                late_night_bounds,
                lambda day, usage: personal.upsert_screen_time_late_night(
                    token, day, usage.total_hours, usage.app_count, tz_name
                ),
            )

        if tally.all_failed:
            return WorkResult.RETRY
        return WorkResult.SUCCESS

    async def run(self, ctx: WorkerContext) -> WorkResult:
        if not ctx.platform.has_permission(Permission.USAGE_STATS):
            self._logger.debug("screen_time_no_permission")
            return WorkResult.SUCCESS

        token = await ctx.session_store.get_valid_access_token()
        if not token:
            self._logger.debug("screen_time_no_token")
            return WorkResult.SUCCESS

        return await self.sync(ctx, token)


class ScreenTimeDailyWorker(ScreenTimeSyncWorker):
    """Same steps once a day, pinned to 10:00 local the following morning."""

    name = SCREEN_TIME_DAILY_JOB

    def next_run_after(self, ctx: WorkerContext, finished_at: datetime) -> Optional[datetime]:
        local = finished_at.astimezone(ctx.tz)
        return datetime.combine(local.date() + timedelta(days=1), DAILY_RUN_AT, tzinfo=ctx.tz)


class ScreenTimeWatchdogWorker(Worker):
    """Re-enrols screen time syncing if it fell out of the schedule."""

    name = SCREEN_TIME_WATCHDOG_JOB

    def __init__(self, interval: timedelta):
        super().__init__()
        self.interval = interval

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        if not token or not user_id:
            return WorkResult.SUCCESS

        settings = await ctx.metric_settings.fetch(token, user_id)
        if not is_metric_enabled(settings, "screen_time_daily"):
            return WorkResult.SUCCESS
        if not ctx.platform.has_permission(Permission.USAGE_STATS):
            return WorkResult.SUCCESS

        if not ctx.scheduler.is_enrolled(SCREEN_TIME_JOB):
            self._logger.warning("screen_time_job_missing_reenrolling")
            ctx.scheduler.enqueue_periodic(SCREEN_TIME_JOB, SCREEN_TIME_JOB, self.interval, ExistingWorkPolicy.KEEP)
        return WorkResult.SUCCESS
