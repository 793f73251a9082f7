"""Hourly device location upload with a per-day summary row."""

from datetime import timedelta

import httpx

from migraineme.core.exceptions import SupabaseError
from migraineme.services.metric_settings import is_metric_enabled
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.scheduler import ExistingWorkPolicy

LOCATION_JOB = "location_daily_worker"
LOCATION_WATCHDOG_JOB = "location_watchdog"
LOCATION_METRIC = "user_location_daily"


class LocationSyncWorker(Worker):
    """Writes the current fix to ``user_location_hourly`` and refreshes today's
    ``user_location_daily`` row with altitude max/min/change over the day."""

    name = LOCATION_JOB

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        if not token:
            self._logger.warning("location_no_token")
            return WorkResult.RETRY

        settings = await ctx.metric_settings.fetch(token, user_id) if user_id else []
        if not is_metric_enabled(settings, LOCATION_METRIC):
            self._logger.debug("location_disabled")
            return WorkResult.SUCCESS

        fix = await ctx.platform.current_location()
        if fix is None:
            self._logger.warning("location_unavailable")
            return WorkResult.RETRY

        now = ctx.now()
        today = now.date()
        tz_name = str(ctx.tz)
        personal = ctx.personal

        try:
            await personal.insert_location_hourly(
                token, now, fix.latitude, fix.longitude, altitude_m=fix.altitude_m, timezone=tz_name
            )
        except Exception as e:
            self._logger.error("location_hourly_insert_failed", error=str(e))

        try:
            altitudes = await personal.hourly_altitudes_for_date(token, today)
        except Exception as e:
            self._logger.warning("location_altitude_fetch_failed", error=str(e))
            altitudes = []

        high = max(altitudes) if altitudes else None
        low = min(altitudes) if altitudes else None
        try:
            await personal.upsert_location_daily(
                token,
                today,
                fix.latitude,
                fix.longitude,
                timezone=tz_name,
                altitude_m=fix.altitude_m,
                altitude_max_m=high,
                altitude_min_m=low,
                altitude_change_m=(high - low) if altitudes else None,
            )
            self._logger.info("location_daily_upserted", date=today.isoformat(), altitude_samples=len(altitudes))
        except Exception as e:
            self._logger.error("location_daily_upsert_failed", error=str(e))

        return WorkResult.SUCCESS


class LocationWatchdogWorker(Worker):
    """Re-enrols location syncing while the metric is on.

    An unreachable settings service counts as enabled; the sync worker
    checks the setting again on its own run.
    """

    name = LOCATION_WATCHDOG_JOB

    def __init__(self, interval: timedelta):
        super().__init__()
        self.interval = interval

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        if not token or not user_id:
            return WorkResult.SUCCESS

        try:
            enabled = is_metric_enabled(await ctx.metric_settings.fetch(token, user_id), LOCATION_METRIC)
        except (SupabaseError, httpx.HTTPError) as e:
            self._logger.warning("location_watchdog_settings_unavailable", error=str(e))
            enabled = True
        if not enabled:
            self._logger.debug("location_watchdog_disabled")
            return WorkResult.SUCCESS

        if not ctx.scheduler.is_enrolled(LOCATION_JOB):
            self._logger.warning("location_job_missing_reenrolling")
            ctx.scheduler.enqueue_periodic(LOCATION_JOB, LOCATION_JOB, self.interval, ExistingWorkPolicy.KEEP)
        return WorkResult.SUCCESS
