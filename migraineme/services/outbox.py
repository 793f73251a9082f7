"""Local outbox of nutrition changes waiting to be pushed."""

import time
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from migraineme.models import NutritionOutbox, SyncState

OPERATION_UPSERT = "UPSERT"
OPERATION_DELETE = "DELETE"
OPERATIONS = (OPERATION_UPSERT, OPERATION_DELETE)
BATCH_SIZE = 200


def now_ms() -> int:
    return int(time.time() * 1000)


class NutritionOutboxService:
    """Queue operations over ``nutrition_outbox`` plus the ``sync_state`` singleton."""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(self, health_connect_id: str, operation: str, created_at_ms: Optional[int] = None) -> NutritionOutbox:
        """Insert or replace the pending change for a record; the latest call wins."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown outbox operation: {operation}")
        item = self.db.get(NutritionOutbox, health_connect_id)
        if item is None:
            item = NutritionOutbox(health_connect_id=health_connect_id)
            self.db.add(item)
        item.operation = operation
        item.created_at_epoch_ms = created_at_ms if created_at_ms is not None else now_ms()
        item.retry_count = 0
        self.db.commit()
        return item

    def get_batch(self, limit: int = BATCH_SIZE) -> list[NutritionOutbox]:
        return (
            self.db.query(NutritionOutbox)
            .order_by(NutritionOutbox.created_at_epoch_ms.asc())
            .limit(limit)
            .all()
        )

    def delete_by_ids(self, ids: Iterable[str]) -> int:
        ids = list(set(ids))
        if not ids:
            return 0
        count = (
            self.db.query(NutritionOutbox)
            .filter(NutritionOutbox.health_connect_id.in_(ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count

    def increment_retry(self, ids: Iterable[str]) -> None:
        ids = list(set(ids))
        if not ids:
            return
        self.db.execute(
            update(NutritionOutbox)
            .where(NutritionOutbox.health_connect_id.in_(ids))
            .values(retry_count=NutritionOutbox.retry_count + 1)
        )
        self.db.commit()

    def count(self) -> int:
        return self.db.query(NutritionOutbox).count()

    def get_sync_state(self) -> SyncState:
        state = self.db.get(SyncState, 1)
        if state is None:
            state = SyncState(id=1)
            self.db.add(state)
            self.db.flush()
        return state

    def mark_push_run(self, at_ms: Optional[int] = None) -> None:
        state = self.get_sync_state()
        state.last_push_run_at = at_ms if at_ms is not None else now_ms()
        self.db.commit()

    def mark_hourly_run(self, changes_token: Optional[str], at_ms: Optional[int] = None) -> None:
        """Record a changes-feed pass together with the token to resume from."""
        state = self.get_sync_state()
        state.nutrition_changes_token = changes_token
        state.last_hourly_run_at = at_ms if at_ms is not None else now_ms()
        self.db.commit()

    def changes_token(self) -> Optional[str]:
        state = self.db.get(SyncState, 1)
        return state.nutrition_changes_token if state else None
