"""Persistent scheduler for uniquely named periodic and one-shot jobs."""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from migraineme.core.exceptions import NotFoundError
from migraineme.core.logging import get_logger
from migraineme.models import ScheduledJob
from migraineme.workers.base import Worker, WorkerContext, WorkResult

logger = get_logger(__name__)

BACKOFF_BASE_SECONDS = 30
MAX_BACKOFF_SECONDS = 5 * 60 * 60


class JobKind(str, Enum):
    PERIODIC = "periodic"
    ONESHOT = "oneshot"


class JobState(str, Enum):
    ENQUEUED = "ENQUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ExistingWorkPolicy(str, Enum):
    KEEP = "KEEP"
    REPLACE = "REPLACE"


ACTIVE_STATES = (JobState.ENQUEUED.value, JobState.RUNNING.value)


def backoff_delay(attempt: int) -> timedelta:
    """Exponential retry delay: 30s, 60s, 120s, ... capped at five hours."""
    seconds = BACKOFF_BASE_SECONDS * 2 ** max(attempt - 1, 0)
    return timedelta(seconds=min(seconds, MAX_BACKOFF_SECONDS))


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def job_to_dict(job: ScheduledJob) -> dict[str, Any]:
    return {
        "name": job.name,
        "worker": job.worker,
        "kind": job.kind,
        "interval_seconds": job.interval_seconds,
        "state": job.state,
        "next_run_at": job.next_run_at.isoformat() if job.next_run_at else None,
        "run_attempt": job.run_attempt,
        "last_result": job.last_result,
        "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
    }


class JobScheduler:
    """Runs registered workers from the ``scheduled_jobs`` table.

    Job rows survive restarts; a job left RUNNING by a crash is picked up
    again on start. At most one invocation per job name runs at a time.
    Times are stored as naive UTC, like the rest of the local store.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        context: WorkerContext,
        tick_seconds: float = 15,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc).replace(tzinfo=None),
    ):
        self._session_factory = session_factory
        self.context = context
        self.context.scheduler = self
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._workers: dict[str, Worker] = {}
        self._in_flight: set[str] = set()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._logger = logger.bind(component="job_scheduler")

    # Registration and enrolment

    def register(self, worker: Worker) -> None:
        self._workers[worker.name] = worker

    @property
    def workers(self) -> dict[str, Worker]:
        return dict(self._workers)

    def _enqueue(
        self,
        name: str,
        worker: str,
        kind: JobKind,
        interval_seconds: Optional[float],
        delay: timedelta,
        policy: ExistingWorkPolicy,
    ) -> bool:
        if worker not in self._workers:
            raise NotFoundError("Worker", worker)

        db: Session = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            if job is not None and policy == ExistingWorkPolicy.KEEP and job.state in ACTIVE_STATES:
                return False

            if job is None:
                job = ScheduledJob(name=name)
                db.add(job)
            job.worker = worker
            job.kind = kind.value
            job.interval_seconds = interval_seconds
            job.state = JobState.ENQUEUED.value
            job.next_run_at = self._clock() + delay
            job.run_attempt = 0
            db.commit()
            self._logger.info("job_enqueued", job=name, kind=kind.value, policy=policy.value)
            return True
        finally:
            db.close()

    def enqueue_periodic(
        self,
        name: str,
        worker: str,
        interval: timedelta,
        policy: ExistingWorkPolicy = ExistingWorkPolicy.KEEP,
        initial_delay: timedelta = timedelta(0),
    ) -> bool:
        """Enrol a repeating job. Returns False when KEEP left an active job in place."""
        return self._enqueue(name, worker, JobKind.PERIODIC, interval.total_seconds(), initial_delay, policy)

    def enqueue_oneshot(
        self,
        name: str,
        worker: str,
        delay: timedelta = timedelta(0),
        policy: ExistingWorkPolicy = ExistingWorkPolicy.REPLACE,
    ) -> bool:
        return self._enqueue(name, worker, JobKind.ONESHOT, None, delay, policy)

    def cancel(self, name: str) -> None:
        db = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            if job is not None:
                job.state = JobState.CANCELLED.value
                db.commit()
                self._logger.info("job_cancelled", job=name)
        finally:
            db.close()

    def is_enrolled(self, name: str) -> bool:
        db = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            return job is not None and job.state in ACTIVE_STATES
        finally:
            db.close()

    def get_job(self, name: str) -> Optional[dict[str, Any]]:
        db = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            return job_to_dict(job) if job else None
        finally:
            db.close()

    def list_jobs(self) -> list[dict[str, Any]]:
        db = self._session_factory()
        try:
            return [job_to_dict(j) for j in db.query(ScheduledJob).order_by(ScheduledJob.name).all()]
        finally:
            db.close()

    # Execution

    def _claim(self, name: str) -> Optional[Worker]:
        """Mark an ENQUEUED job RUNNING; None when the job is in any other state."""
        db = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            if job is None:
                raise NotFoundError("Job", name)
            worker = self._workers.get(job.worker)
            if worker is None:
                raise NotFoundError("Worker", job.worker)
            if job.state != JobState.ENQUEUED.value:
                self._logger.debug("job_not_claimable", job=name, state=job.state)
                return None
            job.state = JobState.RUNNING.value
            job.last_run_at = self._clock()
            db.commit()
            return worker
        finally:
            db.close()

    def _next_periodic_run(self, worker: Worker, job: ScheduledJob, now: datetime) -> datetime:
        pinned = worker.next_run_after(self.context, now.replace(tzinfo=timezone.utc))
        if pinned is not None:
            return to_naive_utc(pinned)
        return now + timedelta(seconds=job.interval_seconds or 0)

    def _record_result(self, name: str, worker: Worker, result: WorkResult) -> None:
        db = self._session_factory()
        try:
            job = db.get(ScheduledJob, name)
            # Replaced or cancelled while running: the newer state stands
            if job is None or job.state != JobState.RUNNING.value:
                return

            now = self._clock()
            periodic = job.kind == JobKind.PERIODIC.value
            job.last_result = result.value

            if result == WorkResult.RETRY:
                job.run_attempt = (job.run_attempt or 0) + 1
                job.state = JobState.ENQUEUED.value
                job.next_run_at = now + backoff_delay(job.run_attempt)
            elif periodic:
                job.run_attempt = 0
                job.state = JobState.ENQUEUED.value
                job.next_run_at = self._next_periodic_run(worker, job, now)
            else:
                job.run_attempt = 0
                job.state = (JobState.SUCCEEDED if result == WorkResult.SUCCESS else JobState.FAILED).value
            db.commit()
            self._logger.info(
                "job_finished",
                job=name,
                result=result.value,
                state=job.state,
                next_run_at=job.next_run_at.isoformat() if job.state == JobState.ENQUEUED.value else None,
            )
        finally:
            db.close()

    async def run_job(self, name: str) -> Optional[WorkResult]:
        """Run one invocation now. Returns None if it is already running or not enqueued."""
        if name in self._in_flight:
            self._logger.debug("job_already_running", job=name)
            return None

        worker = self._claim(name)
        if worker is None:
            return None
        self._in_flight.add(name)
        try:
            try:
                result = await worker.run(self.context)
            except Exception as e:
                self._logger.error("job_crashed", job=name, error=str(e))
                result = WorkResult.RETRY
        finally:
            self._in_flight.discard(name)

        self._record_result(name, worker, result)
        return result

    def due_jobs(self) -> list[str]:
        db = self._session_factory()
        try:
            jobs = (
                db.query(ScheduledJob)
                .filter(
                    ScheduledJob.state == JobState.ENQUEUED.value,
                    ScheduledJob.next_run_at <= self._clock(),
                )
                .order_by(ScheduledJob.next_run_at.asc())
                .all()
            )
            return [j.name for j in jobs if j.worker in self._workers]
        finally:
            db.close()

    async def run_due(self) -> dict[str, Optional[WorkResult]]:
        names = [n for n in self.due_jobs() if n not in self._in_flight]
        results = await asyncio.gather(*(self.run_job(n) for n in names))
        return dict(zip(names, results))

    def _recover_interrupted(self) -> None:
        db = self._session_factory()
        try:
            stale = db.query(ScheduledJob).filter(ScheduledJob.state == JobState.RUNNING.value).all()
            for job in stale:
                job.state = JobState.ENQUEUED.value
                job.next_run_at = self._clock()
            if stale:
                db.commit()
                self._logger.warning("jobs_recovered", jobs=[j.name for j in stale])
        finally:
            db.close()

    # Loop

    async def start(self):
        """Start the scheduling loop."""
        if self._running:
            return

        self._running = True
        self._recover_interrupted()
        self._logger.info("job_scheduler_started", interval=self._tick_seconds, workers=sorted(self._workers))
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """Stop the scheduling loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._logger.info("job_scheduler_stopped")

    async def _loop(self):
        while self._running:
            try:
                await self.run_due()
            except Exception as e:
                self._logger.error("scheduler_loop_error", error=str(e))

            await asyncio.sleep(self._tick_seconds)
