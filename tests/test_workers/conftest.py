"""Fixtures for background worker tests."""

from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

import pytest

from migraineme.config import get_settings
from migraineme.services.food_risk import FoodRiskClassifier
from migraineme.services.metric_settings import MetricSetting, MetricSettingsService
from migraineme.services.nutrition import NutritionService
from migraineme.services.personal import PersonalDataService
from migraineme.services.usda import USDAEnrichmentService
from migraineme.workers import WorkerContext, build_scheduler
from migraineme.workers.platform import (
    DeviceLocation,
    DevicePlatform,
    NoiseCapture,
    NutritionChangesPage,
    Permission,
    PhoneSnapshot,
    UsageTotal,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakePlatform(DevicePlatform):
    """In-memory device with every permission granted by default."""

    name = "fake"

    def __init__(self):
        self.granted = set(Permission)
        self.usage_hours = 1.5
        self.usage_calls: list[tuple[datetime, datetime]] = []
        self.location: Optional[DeviceLocation] = None
        self.noise: Optional[NoiseCapture] = None
        self.records: dict[str, dict[str, Any]] = {}
        self.snapshot: Optional[PhoneSnapshot] = None
        self.record_ids: list[str] = []
        self.changes_token = "tok-0"
        self.pages: list[NutritionChangesPage] = []
        self.tokens_read: list[str] = []

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.granted

    async def usage_total(self, start: datetime, end: datetime) -> UsageTotal:
        self.usage_calls.append((start, end))
        return UsageTotal(self.usage_hours, app_count=3)

    async def current_location(self) -> Optional[DeviceLocation]:
        return self.location

    async def capture_noise(self, seconds: int) -> NoiseCapture:
        if self.noise is None:
            raise RuntimeError("recorder busy")
        return self.noise

    async def read_nutrition_record(self, health_connect_id: str) -> dict[str, Any]:
        return self.records[health_connect_id]

    async def phone_snapshot(self) -> Optional[PhoneSnapshot]:
        return self.snapshot

    async def get_nutrition_record_ids(self, start: datetime, end: datetime) -> list[str]:
        return list(self.record_ids)

    async def get_nutrition_changes_token(self) -> str:
        return self.changes_token

    async def get_nutrition_changes(self, token: str) -> NutritionChangesPage:
        self.tokens_read.append(token)
        return self.pages.pop(0) if self.pages else NutritionChangesPage(next_token=token)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def personal(mocker):
    return mocker.MagicMock(spec=PersonalDataService)


@pytest.fixture
def metric_settings(mocker):
    service = mocker.MagicMock(spec=MetricSettingsService)
    service.fetch.return_value = []
    return service


@pytest.fixture
def enable(metric_settings):
    """Switch metrics on in the remote settings double."""

    def _enable(*metrics: str):
        metric_settings.fetch.return_value = [MetricSetting(m, enabled=True) for m in metrics]

    return _enable


@pytest.fixture
def ctx(mocker, session_factory, session_store, mock_supabase, platform, personal, metric_settings, auth_token):
    session_store.save_session(auth_token)
    context = WorkerContext(
        session_store=session_store,
        session_factory=session_factory,
        client=mock_supabase,
        platform=platform,
        tz=ZoneInfo("UTC"),
        clock=lambda: NOW,
        personal=personal,
        metric_settings=metric_settings,
        nutrition=mocker.MagicMock(spec=NutritionService),
        usda=mocker.MagicMock(spec=USDAEnrichmentService),
        food_risk=mocker.MagicMock(spec=FoodRiskClassifier),
    )
    build_scheduler(context, get_settings())
    return context
