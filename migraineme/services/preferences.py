"""Key/value preferences for OAuth callback state and feature flags."""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from migraineme.core.logging import get_logger
from migraineme.models import Preference

logger = get_logger(__name__)


class PreferencesService:
    """Service for managing local preferences."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        pref = self.db.get(Preference, key)
        return pref.value if pref else None

    def set(self, key: str, value: Optional[str]) -> Preference:
        """Set a single value (upsert)."""
        pref = self.db.get(Preference, key)
        if pref:
            pref.value = value
            pref.updated_at = datetime.utcnow()
        else:
            pref = Preference(key=key, value=value)
            self.db.add(pref)
        self.db.commit()
        self.db.refresh(pref)
        return pref

    def get_flag(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    def set_flag(self, key: str, enabled: bool) -> None:
        self.set(key, "true" if enabled else "false")

    def pop(self, key: str) -> Optional[str]:
        """Read and remove a one-time value such as an OAuth state nonce."""
        pref = self.db.get(Preference, key)
        if not pref:
            return None
        value = pref.value
        self.db.delete(pref)
        self.db.commit()
        logger.debug("preference_consumed", key=key)
        return value

    def get_all(self) -> dict[str, Optional[str]]:
        return {p.key: p.value for p in self.db.query(Preference).all()}
