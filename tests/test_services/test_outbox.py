"""Tests for the local nutrition outbox and sync state."""

import pytest
from sqlalchemy.orm import Session

from migraineme.services.outbox import OPERATION_DELETE, OPERATION_UPSERT, NutritionOutboxService
from migraineme.services.preferences import PreferencesService


class TestNutritionOutbox:
    def test_batch_is_oldest_first_and_limited(self, test_db: Session):
        service = NutritionOutboxService(test_db)
        service.enqueue("c", OPERATION_UPSERT, created_at_ms=300)
        service.enqueue("a", OPERATION_UPSERT, created_at_ms=100)
        service.enqueue("b", OPERATION_DELETE, created_at_ms=200)

        assert [i.health_connect_id for i in service.get_batch(limit=2)] == ["a", "b"]
        assert service.count() == 3

    def test_enqueue_replaces_and_resets_retry(self, test_db: Session):
        service = NutritionOutboxService(test_db)
        service.enqueue("a", OPERATION_UPSERT, created_at_ms=100)
        service.increment_retry(["a"])
        service.increment_retry(["a"])
        test_db.expire_all()
        assert service.get_batch()[0].retry_count == 2

        item = service.enqueue("a", OPERATION_DELETE, created_at_ms=500)
        assert item.operation == OPERATION_DELETE
        assert item.retry_count == 0
        assert service.count() == 1

    def test_unknown_operation(self, test_db: Session):
        with pytest.raises(ValueError):
            NutritionOutboxService(test_db).enqueue("a", "MERGE")

    def test_delete_by_ids(self, test_db: Session):
        service = NutritionOutboxService(test_db)
        for hc_id in ("a", "b", "c"):
            service.enqueue(hc_id, OPERATION_UPSERT)

        assert service.delete_by_ids(["a", "c", "a"]) == 2
        assert [i.health_connect_id for i in service.get_batch()] == ["b"]
        assert service.delete_by_ids([]) == 0

    def test_sync_state_bookkeeping(self, test_db: Session):
        service = NutritionOutboxService(test_db)
        assert service.changes_token() is None

        service.mark_hourly_run("tok-1", at_ms=1000)
        service.mark_push_run(at_ms=2000)

        state = service.get_sync_state()
        assert service.changes_token() == "tok-1"
        assert state.last_hourly_run_at == 1000
        assert state.last_push_run_at == 2000


class TestPreferences:
    def test_flags(self, test_db: Session):
        service = PreferencesService(test_db)
        assert service.get_flag("location_enabled") is False
        assert service.get_flag("location_enabled", default=True) is True

        service.set_flag("location_enabled", True)
        assert service.get_flag("location_enabled") is True
        assert service.get("location_enabled") == "true"

    def test_pop_is_one_time(self, test_db: Session):
        service = PreferencesService(test_db)
        service.set("oauth_state", "nonce")
        assert service.pop("oauth_state") == "nonce"
        assert service.pop("oauth_state") is None
