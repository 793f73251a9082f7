"""Push queued nutrition changes from the local outbox to Supabase."""

from migraineme.services.nutrition import NutritionRecord
from migraineme.services.outbox import OPERATION_DELETE, OPERATION_UPSERT, NutritionOutboxService
from migraineme.services.usda import needs_enrichment
from migraineme.workers.base import Worker, WorkerContext, WorkResult
from migraineme.workers.platform import Permission

NUTRITION_PUSH_JOB = "nutrition_outbox_push"


class NutritionOutboxPushWorker(Worker):
    """Uploads one outbox batch.

    UPSERTs are read back from Health Connect, enriched from USDA when
    micronutrients are missing, risk-classified and uploaded one by one.
    DELETEs go out as a single batch.
    """

    name = NUTRITION_PUSH_JOB

    async def _prepare(self, ctx: WorkerContext, token: str, health_connect_id: str) -> NutritionRecord:
        raw = await ctx.platform.read_nutrition_record(health_connect_id)
        record = NutritionRecord.from_health_connect(raw)
        if needs_enrichment(record):
            record = await ctx.usda.enrich(record)
        else:
            record.enriched = True
        risks = await ctx.food_risk.classify(token, record.food_name)
        return record.with_risks(risks.tyramine, risks.alcohol, risks.gluten)

    async def run(self, ctx: WorkerContext) -> WorkResult:
        if not ctx.platform.has_permission(Permission.NUTRITION_READ):
            self._logger.warning("nutrition_push_no_permission")
            return WorkResult.FAILURE

        token = await ctx.session_store.get_valid_access_token()
        if not token:
            return WorkResult.RETRY

        db = ctx.session_factory()
        try:
            outbox = NutritionOutboxService(db)
            batch = [(item.health_connect_id, item.operation) for item in outbox.get_batch()]
            if not batch:
                outbox.mark_push_run()
                return WorkResult.SUCCESS

            succeeded: list[str] = []
            failed: list[str] = []

            upserts = [hc_id for hc_id, op in batch if op == OPERATION_UPSERT]
            for hc_id in upserts:
                try:
                    record = await self._prepare(ctx, token, hc_id)
                    await ctx.nutrition.upload(token, record, hc_id)
                    succeeded.append(hc_id)
                except Exception as e:
                    failed.append(hc_id)
                    self._logger.error("nutrition_upsert_failed", health_connect_id=hc_id, error=str(e))

            deletes = [hc_id for hc_id, op in batch if op == OPERATION_DELETE]
            if deletes:
                try:
                    await ctx.nutrition.delete_by_health_connect_ids(token, deletes)
                    succeeded.extend(deletes)
                except Exception as e:
                    failed.extend(deletes)
                    self._logger.error("nutrition_delete_batch_failed", count=len(deletes), error=str(e))

            if succeeded:
                outbox.delete_by_ids(succeeded)
            if failed:
                outbox.increment_retry(failed)
            outbox.mark_push_run()

            self._logger.info("nutrition_push_done", succeeded=len(succeeded), failed=len(failed))
            if not succeeded and failed:
                return WorkResult.RETRY
            return WorkResult.SUCCESS
        finally:
            db.close()
