"""Tests for the device platform types."""

from datetime import datetime, timezone

import pytest

from migraineme.core.exceptions import AuthorizationError, PermissionMissing
from migraineme.workers.platform import NoiseCapture, Permission, PhoneSnapshot, UnavailablePlatform


class TestUnavailablePlatform:
    def test_grants_nothing(self):
        platform = UnavailablePlatform()
        assert not any(platform.has_permission(p) for p in Permission)

    async def test_usage_raises_permission_missing(self):
        now = datetime(2026, 3, 10, tzinfo=timezone.utc)
        with pytest.raises(PermissionMissing) as exc_info:
            await UnavailablePlatform().usage_total(now, now)

        assert isinstance(exc_info.value, AuthorizationError)
        assert exc_info.value.status_code == 403
        assert exc_info.value.details == {"permission": "usage_stats"}

    async def test_nutrition_feed_needs_permission(self):
        with pytest.raises(PermissionMissing) as exc_info:
            await UnavailablePlatform().get_nutrition_changes("tok-1")

        assert exc_info.value.details == {"permission": Permission.NUTRITION_READ.value}

    async def test_no_location_or_snapshot(self):
        platform = UnavailablePlatform()
        assert await platform.current_location() is None
        assert await platform.phone_snapshot() is None


class TestReadings:
    def test_silence(self):
        assert NoiseCapture(frames=10, l_mean=0.0).is_silent
        assert not NoiseCapture(frames=10, l_mean=0.0, l_max=12.0).is_silent

    def test_snapshot_values_by_metric(self):
        snapshot = PhoneSnapshot(brightness=0.4, volume_pct=50.0, is_dark_mode=False, unlock_count=9)
        assert snapshot.value_for("phone_dark_mode_daily") is False
        assert snapshot.value_for("phone_unlock_daily") == 9
