"""Ambient loudness sampling and its watchdog."""

from datetime import timedelta

from migraineme.services.metric_settings import is_metric_enabled
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.platform import Permission
from migraineme.workers.scheduler import ExistingWorkPolicy

AMBIENT_NOISE_JOB = "ambient_noise_samples_loop"
AMBIENT_NOISE_WATCHDOG_JOB = "ambient_noise_watchdog"
AMBIENT_NOISE_METRIC = "ambient_noise_samples"


class AmbientNoiseSampleWorker(Worker):
    """Captures loudness for a minute and uploads the summary.

    Runs as a periodic job, so the next sample is always scheduled; the
    loop is only cancelled when the metric is switched off.
    """

    name = AMBIENT_NOISE_JOB

    def __init__(self, capture_seconds: int = 60):
        super().__init__()
        self.capture_seconds = capture_seconds

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        settings = await ctx.metric_settings.fetch(token, user_id) if token and user_id else []
        if not is_metric_enabled(settings, AMBIENT_NOISE_METRIC):
            self._logger.info("ambient_noise_disabled_cancelling")
            ctx.scheduler.cancel(self.name)
            return WorkResult.SUCCESS

        if not ctx.platform.has_permission(Permission.MICROPHONE):
            self._logger.debug("ambient_noise_no_permission")
            return WorkResult.SUCCESS
        if not token or not user_id:
            return WorkResult.SUCCESS

        try:
            started = ctx.now()
            capture = await ctx.platform.capture_noise(self.capture_seconds)
            if capture.frames <= 0:
                self._logger.debug("ambient_noise_no_frames")
                return WorkResult.SUCCESS
            if capture.is_silent:
                self._logger.debug("ambient_noise_silent_sample")
                return WorkResult.SUCCESS

            await ctx.personal.insert_ambient_noise_sample(
                token,
                user_id,
                started,
                self.capture_seconds,
                capture.l_mean,
                capture.l_p90,
                capture.l_max,
                quality_flags={"frames": str(capture.frames), "source": ctx.platform.name or "device"},
            )
            self._logger.info("ambient_noise_uploaded", frames=capture.frames, l_mean=capture.l_mean)
        except Exception as e:
            # A lost sample is not worth a retry; the next one is 30 minutes away
            self._logger.warning("ambient_noise_sample_failed", error=str(e))
        return WorkResult.SUCCESS


class AmbientNoiseWatchdogWorker(Worker):
    name = AMBIENT_NOISE_WATCHDOG_JOB

    def __init__(self, interval: timedelta):
        super().__init__()
        self.interval = interval

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        if not token or not user_id:
            return WorkResult.SUCCESS

        settings = await ctx.metric_settings.fetch(token, user_id)
        if not is_metric_enabled(settings, AMBIENT_NOISE_METRIC):
            return WorkResult.SUCCESS

        if not ctx.scheduler.is_enrolled(AMBIENT_NOISE_JOB):
            self._logger.warning("ambient_noise_job_missing_reenrolling")
            ctx.scheduler.enqueue_periodic(
                AMBIENT_NOISE_JOB, AMBIENT_NOISE_JOB, self.interval, ExistingWorkPolicy.KEEP
            )
        return WorkResult.SUCCESS
