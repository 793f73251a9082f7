"""Fill the nutrition outbox from the Health Connect changes feed."""

from datetime import timedelta

from migraineme.services.outbox import OPERATION_DELETE, OPERATION_UPSERT, NutritionOutboxService, now_ms
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.platform import Permission

NUTRITION_CHANGES_JOB = "hc_nutrition_changes_hourly"

BACKFILL_DAYS = 14
MAX_PAGES = 50


class NutritionChangesWorker(Worker):
    """Queues UPSERT/DELETE rows for the push worker.

    Without a stored changes token the last ``BACKFILL_DAYS`` days are
    queued as UPSERTs and a token is taken afterwards, so the feed starts
    from now. With a token, changes are paged through and the token to
    resume from is stored with the run time.
    """

    name = NUTRITION_CHANGES_JOB

    async def _backfill(self, ctx: WorkerContext, outbox: NutritionOutboxService) -> None:
        end = ctx.now()
        ids = await ctx.platform.get_nutrition_record_ids(end - timedelta(days=BACKFILL_DAYS), end)
        queued_at = now_ms()
        for hc_id in ids:
            outbox.enqueue(hc_id, OPERATION_UPSERT, created_at_ms=queued_at)

        outbox.mark_hourly_run(await ctx.platform.get_nutrition_changes_token())
        self._logger.info("nutrition_backfill_queued", days=BACKFILL_DAYS, records=len(ids))

    async def _follow(self, ctx: WorkerContext, outbox: NutritionOutboxService, token: str) -> None:
        upserts = deletes = 0
        for _ in range(MAX_PAGES):
            page = await ctx.platform.get_nutrition_changes(token)
            if page.token_expired:
                self._logger.warning("nutrition_changes_token_expired")
                token = await ctx.platform.get_nutrition_changes_token()
                break

            token = page.next_token or token
            queued_at = now_ms()
            for change in page.changes:
                if change.deleted:
                    outbox.enqueue(change.health_connect_id, OPERATION_DELETE, created_at_ms=queued_at)
                    deletes += 1
                else:
                    outbox.enqueue(change.health_connect_id, OPERATION_UPSERT, created_at_ms=queued_at)
                    upserts += 1
            if not page.has_more:
                break

        outbox.mark_hourly_run(token)
        self._logger.info("nutrition_changes_queued", upserts=upserts, deletes=deletes)

    async def run(self, ctx: WorkerContext) -> WorkResult:
        if not ctx.platform.has_permission(Permission.NUTRITION_READ):
            self._logger.warning("nutrition_changes_no_permission")
            return WorkResult.FAILURE

        db = ctx.session_factory()
        try:
            outbox = NutritionOutboxService(db)
            token = outbox.changes_token()
            if token:
                await self._follow(ctx, outbox, token)
            else:
                await self._backfill(ctx, outbox)
            return WorkResult.SUCCESS
        finally:
            db.close()
