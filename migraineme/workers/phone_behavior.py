"""Hourly phone behaviour snapshot: brightness, volume, dark mode, unlocks."""

from migraineme.services.metric_settings import enabled_metric_names
from migraineme.services.personal import PHONE_SAMPLE_TABLES
from migraineme.workers.base import Worker, WorkerContext, WorkResult

PHONE_BEHAVIOR_JOB = "phone_behavior_sync"


class PhoneBehaviorSyncWorker(Worker):
    name = PHONE_BEHAVIOR_JOB

    async def run(self, ctx: WorkerContext) -> WorkResult:
        token, user_id = await ctx.credentials()
        if not token or not user_id:
            self._logger.debug("phone_behavior_no_session")
            return WorkResult.SUCCESS

        enabled = enabled_metric_names(await ctx.metric_settings.fetch(token, user_id))
        metrics = [m for m in PHONE_SAMPLE_TABLES if m in enabled]
        if not metrics:
            self._logger.debug("phone_behavior_all_disabled")
            return WorkResult.SUCCESS

        snapshot = await ctx.platform.phone_snapshot()
        if snapshot is None:
            self._logger.warning("phone_behavior_snapshot_unavailable")
            return WorkResult.SUCCESS

        sampled_at = ctx.now()
        ok = failed = 0
        for metric in metrics:
            try:
                await ctx.personal.insert_phone_sample(
                    metric, token, user_id, sampled_at, snapshot.value_for(metric)
                )
                ok += 1
            except Exception as e:
                failed += 1
                self._logger.error("phone_sample_insert_failed", metric=metric, error=str(e))

        self._logger.info("phone_behavior_done", inserted=ok, failed=failed)
        return WorkResult.SUCCESS
