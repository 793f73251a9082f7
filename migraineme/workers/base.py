"""Worker interface and the context handed to every run."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import sessionmaker

from migraineme.config import get_settings
from migraineme.core.logging import get_logger
from migraineme.services.food_risk import FoodRiskClassifier
from migraineme.services.metric_settings import MetricSettingsService
from migraineme.services.nutrition import NutritionService
from migraineme.services.personal import PersonalDataService
from migraineme.services.session import SessionStore
from migraineme.services.supabase import SupabaseClient
from migraineme.services.usda import USDAEnrichmentService
from migraineme.workers.platform import DevicePlatform, UnavailablePlatform

if TYPE_CHECKING:
    from migraineme.workers.scheduler import JobScheduler

logger = get_logger(__name__)


class WorkResult(str, Enum):
    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    FAILURE = "FAILURE"


@dataclass
class WorkerContext:
    """Everything a worker may touch; one instance per application."""

    session_store: SessionStore
    session_factory: sessionmaker
    client: SupabaseClient
    platform: DevicePlatform = field(default_factory=UnavailablePlatform)
    tz: ZoneInfo = field(default_factory=lambda: get_settings().tz)
    clock: Optional[Callable[[], datetime]] = None
    scheduler: Optional["JobScheduler"] = None
    personal: Optional[PersonalDataService] = None
    metric_settings: Optional[MetricSettingsService] = None
    nutrition: Optional[NutritionService] = None
    usda: Optional[USDAEnrichmentService] = None
    food_risk: Optional[FoodRiskClassifier] = None

    def __post_init__(self):
        self.personal = self.personal or PersonalDataService(self.client)
        self.metric_settings = self.metric_settings or MetricSettingsService(self.client)
        self.nutrition = self.nutrition or NutritionService(self.client)
        self.usda = self.usda or USDAEnrichmentService()
        self.food_risk = self.food_risk or FoodRiskClassifier(self.client)

    def now(self) -> datetime:
        """Current local time (timezone-aware)."""
        if self.clock is not None:
            return self.clock().astimezone(self.tz)
        return datetime.now(self.tz)

    async def credentials(self) -> tuple[Optional[str], Optional[str]]:
        """Valid access token and user id, either may be None."""
        token = await self.session_store.get_valid_access_token()
        return token, self.session_store.read_user_id() if token else None


class Worker(ABC):
    """One unit of background work, run by the scheduler under a unique job name."""

    name: str = ""

    def __init__(self):
        self._logger = logger.bind(component=self.name)

    @abstractmethod
    async def run(self, ctx: WorkerContext) -> WorkResult:
        """Do the work once and report how it went."""
        pass

    def next_run_after(self, ctx: WorkerContext, finished_at: datetime) -> Optional[datetime]:
        """Override to pin the next periodic run to a wall-clock time.

        Returns:
            A timezone-aware datetime, or None to use the job's interval.
        """
        return None
