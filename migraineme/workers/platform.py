"""Device platform interface used by the background workers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from migraineme.core.exceptions import PermissionMissing


class Permission(str, Enum):
    """Platform permissions the workers check before collecting data."""

    USAGE_STATS = "usage_stats"
    MICROPHONE = "microphone"
    LOCATION = "location"
    NUTRITION_READ = "health_connect_nutrition_read"


@dataclass
class UsageTotal:
    """Foreground app usage over a time range."""

    total_hours: float
    app_count: Optional[int] = None


@dataclass
class DeviceLocation:
    latitude: float
    longitude: float
    altitude_m: Optional[float] = None


@dataclass
class NoiseCapture:
    """Loudness summary of one capture (no audio is kept)."""

    frames: int
    l_mean: float
    l_p90: Optional[float] = None
    l_max: Optional[float] = None

    @property
    def is_silent(self) -> bool:
        return self.l_mean == 0.0 and (self.l_max or 0.0) == 0.0


@dataclass
class PhoneSnapshot:
    brightness: float
    volume_pct: float
    is_dark_mode: bool
    unlock_count: int

    def value_for(self, metric: str) -> Any:
        return {
            "phone_brightness_daily": self.brightness,
            "phone_volume_daily": self.volume_pct,
            "phone_dark_mode_daily": self.is_dark_mode,
            "phone_unlock_daily": self.unlock_count,
        }[metric]


@dataclass
class NutritionChange:
    health_connect_id: str
    deleted: bool = False


@dataclass
class NutritionChangesPage:
    """One page of the Health Connect nutrition changes feed."""

    changes: list[NutritionChange] = field(default_factory=list)
    next_token: Optional[str] = None
    has_more: bool = False
    token_expired: bool = False


class DevicePlatform(ABC):
    """Abstract access to the sensors and stores of the user's device.

    Each host (a phone bridge, a desktop agent, tests) implements this
    interface. Workers only talk to the device through it.
    """

    name: str = ""

    @abstractmethod
    def has_permission(self, permission: Permission) -> bool:
        """Whether the user granted ``permission`` on the device."""
        pass

    @abstractmethod
    async def usage_total(self, start: datetime, end: datetime) -> UsageTotal:
        """Total foreground screen time between ``start`` and ``end``.

        Raises:
            PermissionMissing: If usage access is not granted.
        """
        pass

    @abstractmethod
    async def current_location(self) -> Optional[DeviceLocation]:
        """Best available location fix, or None when the device has none."""
        pass

    @abstractmethod
    async def capture_noise(self, seconds: int) -> NoiseCapture:
        """Record loudness levels for ``seconds`` seconds.

        Raises:
            PermissionMissing: If microphone access is not granted.
        """
        pass

    @abstractmethod
    async def read_nutrition_record(self, health_connect_id: str) -> dict[str, Any]:
        """Read one Health Connect nutrition record.

        Returns:
            Dict with ``start_time``, ``end_time``, ``name``, ``meal_type``,
            ``energy_kcal`` and nutrient masses in grams keyed by their
            ``nutrition_records`` column name.
        """
        pass

    @abstractmethod
    async def get_nutrition_record_ids(self, start: datetime, end: datetime) -> list[str]:
        """Ids of the nutrition records between ``start`` and ``end``."""
        pass

    @abstractmethod
    async def get_nutrition_changes_token(self) -> str:
        """A changes token positioned at now for nutrition records."""
        pass

    @abstractmethod
    async def get_nutrition_changes(self, token: str) -> NutritionChangesPage:
        """Changes since ``token``.

        When ``token_expired`` is set the page carries no changes and a new
        token has to be taken with ``get_nutrition_changes_token``.
        """
        pass

    async def phone_snapshot(self) -> Optional[PhoneSnapshot]:
        """Current brightness, volume, dark mode and unlock count.

        Default implementation returns None - override where the host can
        read these.
        """
        return None


class UnavailablePlatform(DevicePlatform):
    """Used when no device is attached: nothing is granted."""

    name = "unavailable"

    def has_permission(self, permission: Permission) -> bool:
        return False

    async def usage_total(self, start: datetime, end: datetime) -> UsageTotal:
        raise PermissionMissing(Permission.USAGE_STATS.value)

    async def current_location(self) -> Optional[DeviceLocation]:
        return None

    async def capture_noise(self, seconds: int) -> NoiseCapture:
        raise PermissionMissing(Permission.MICROPHONE.value)

    async def read_nutrition_record(self, health_connect_id: str) -> dict[str, Any]:
        raise PermissionMissing(Permission.NUTRITION_READ.value)

    async def get_nutrition_record_ids(self, start: datetime, end: datetime) -> list[str]:
        raise PermissionMissing(Permission.NUTRITION_READ.value)

    async def get_nutrition_changes_token(self) -> str:
        raise PermissionMissing(Permission.NUTRITION_READ.value)

    async def get_nutrition_changes(self, token: str) -> NutritionChangesPage:
        raise PermissionMissing(Permission.NUTRITION_READ.value)
