"""Background job and nutrition outbox API routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from migraineme.api.deps import get_access_token, get_scheduler, get_supabase_client, get_user_id
from migraineme.core.exceptions import JobStateConflict, NotFoundError
from migraineme.core.logging import get_logger
from migraineme.database import get_db
from migraineme.services.metric_settings import MetricSettingsService, settings_map
from migraineme.services.outbox import OPERATION_DELETE, OPERATION_UPSERT, NutritionOutboxService
from migraineme.services.supabase import SupabaseClient
from migraineme.workers.scheduler import JobScheduler, JobState

logger = get_logger(__name__)
router = APIRouter()


class OutboxItem(BaseModel):
    health_connect_id: str = Field(..., min_length=1)
    operation: str = Field(..., pattern=f"^({OPERATION_UPSERT}|{OPERATION_DELETE})$")
    created_at_ms: Optional[int] = None


class OutboxRequest(BaseModel):
    """Health Connect changes noticed on the device."""

    items: list[OutboxItem]


@router.get("/jobs")
async def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)):
    return {"jobs": scheduler.list_jobs()}


@router.get("/jobs/{name}")
async def get_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    job = scheduler.get_job(name)
    if job is None:
        raise NotFoundError("Job", name)
    return job


@router.post("/jobs/{name}/run")
async def run_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """Run an enqueued job now instead of waiting for its next slot."""
    job = scheduler.get_job(name)
    if job is None:
        raise NotFoundError("Job", name)
    if job["state"] != JobState.ENQUEUED.value:
        raise JobStateConflict(name, job["state"])
    result = await scheduler.run_job(name)
    if result is None:
        raise JobStateConflict(name, scheduler.get_job(name)["state"])
    return {"job": name, "status": "finished", "result": result.value, "next": scheduler.get_job(name)}


@router.delete("/jobs/{name}")
async def cancel_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    if scheduler.get_job(name) is None:
        raise NotFoundError("Job", name)
    scheduler.cancel(name)
    return scheduler.get_job(name)


@router.post("/nutrition/outbox")
async def enqueue_nutrition_changes(request: OutboxRequest, db: Session = Depends(get_db)):
    service = NutritionOutboxService(db)
    for item in request.items:
        service.enqueue(item.health_connect_id, item.operation, item.created_at_ms)
    logger.info("nutrition_outbox_enqueued", count=len(request.items))
    return {"status": "queued", "count": len(request.items), "pending": service.count()}


@router.get("/nutrition/outbox")
async def outbox_status(db: Session = Depends(get_db)):
    """Pending outbox size and the last push/hourly run times."""
    service = NutritionOutboxService(db)
    state = service.get_sync_state()
    return {
        "pending": service.count(),
        "last_push_run_at": state.last_push_run_at,
        "last_hourly_run_at": state.last_hourly_run_at,
    }


@router.get("/metric-settings")
async def list_metric_settings(
    token: str = Depends(get_access_token),
    user_id: str = Depends(get_user_id),
    client: SupabaseClient = Depends(get_supabase_client),
):
    """Remote settings as rows, plus enabled flags keyed by metric and preferred source."""
    settings = await MetricSettingsService(client).fetch(token, user_id)
    return {
        "settings": [s.to_dict() for s in settings],
        "by_key": {key: s.enabled for key, s in settings_map(settings).items()},
    }
