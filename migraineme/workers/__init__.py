"""Background workers and their scheduler."""

from datetime import timedelta

from migraineme.config import Settings
from migraineme.workers.ambient_noise import (
    AMBIENT_NOISE_JOB,
    AMBIENT_NOISE_WATCHDOG_JOB,
    AmbientNoiseSampleWorker,
    AmbientNoiseWatchdogWorker,
)
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.location import (
    LOCATION_JOB,
    LOCATION_WATCHDOG_JOB,
    LocationSyncWorker,
    LocationWatchdogWorker,
)
from migraineme.workers.nutrition_changes import NUTRITION_CHANGES_JOB, NutritionChangesWorker
from migraineme.workers.nutrition_push import NUTRITION_PUSH_JOB, NutritionOutboxPushWorker
from migraineme.workers.phone_behavior import PHONE_BEHAVIOR_JOB, PhoneBehaviorSyncWorker
from migraineme.workers.scheduler import ExistingWorkPolicy, JobScheduler
from migraineme.workers.screen_time import (
    SCREEN_TIME_DAILY_JOB,
    SCREEN_TIME_JOB,
    SCREEN_TIME_WATCHDOG_JOB,
    ScreenTimeDailyWorker,
    ScreenTimeSyncWorker,
    ScreenTimeWatchdogWorker,
)


def build_scheduler(context: WorkerContext, settings: Settings) -> JobScheduler:
    """Scheduler with every worker registered (nothing enrolled yet)."""
    scheduler = JobScheduler(
        context.session_factory, context, tick_seconds=settings.scheduler_tick_seconds
    )
    screen_interval = timedelta(minutes=settings.screen_time_interval_minutes)
    noise_interval = timedelta(minutes=settings.ambient_noise_interval_minutes)
    location_interval = timedelta(minutes=settings.location_interval_minutes)
    for worker in (
        ScreenTimeSyncWorker(),
        ScreenTimeDailyWorker(),
        ScreenTimeWatchdogWorker(screen_interval),
        LocationSyncWorker(),
        LocationWatchdogWorker(location_interval),
        AmbientNoiseSampleWorker(settings.ambient_noise_capture_seconds),
        AmbientNoiseWatchdogWorker(noise_interval),
        NutritionChangesWorker(),
        NutritionOutboxPushWorker(),
        PhoneBehaviorSyncWorker(),
    ):
        scheduler.register(worker)
    return scheduler


def enroll_default_jobs(scheduler: JobScheduler, settings: Settings) -> None:
    """Enrol the standing jobs, leaving any that are already active alone."""
    watchdog = timedelta(hours=settings.watchdog_interval_hours)
    jobs = {
        SCREEN_TIME_JOB: timedelta(minutes=settings.screen_time_interval_minutes),
        SCREEN_TIME_DAILY_JOB: timedelta(days=1),
        SCREEN_TIME_WATCHDOG_JOB: watchdog,
        LOCATION_JOB: timedelta(minutes=settings.location_interval_minutes),
        LOCATION_WATCHDOG_JOB: watchdog,
        AMBIENT_NOISE_JOB: timedelta(minutes=settings.ambient_noise_interval_minutes),
        AMBIENT_NOISE_WATCHDOG_JOB: watchdog,
        NUTRITION_CHANGES_JOB: timedelta(minutes=settings.nutrition_changes_interval_minutes),
        NUTRITION_PUSH_JOB: timedelta(minutes=settings.nutrition_push_interval_minutes),
        PHONE_BEHAVIOR_JOB: timedelta(minutes=settings.phone_behavior_interval_minutes),
    }
    for name, interval in jobs.items():
        scheduler.enqueue_periodic(name, name, interval, ExistingWorkPolicy.KEEP)


__all__ = [
    "ExistingWorkPolicy",
    "JobScheduler",
    "Worker",
    "WorkerContext",
    "WorkResult",
    "build_scheduler",
    "enroll_default_jobs",
]
