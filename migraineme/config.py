from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Local store (outbox, session, scheduled jobs)
    database_url: str = "sqlite:///./migraineme.db"

    # Supabase backend
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""

    # USDA FoodData Central
    usda_api_key: str = "DEMO_KEY"
    usda_base_url: str = "https://api.nal.usda.gov/fdc/v1"

    # App settings
    app_name: str = "MigraineMe"
    timezone: str = "UTC"

    @property
    def debug(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.environment == "development"

    @property
    def tz(self) -> ZoneInfo:
        """Timezone used to turn timestamps into calendar days."""
        return ZoneInfo(self.timezone)

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # HTTP timeouts (seconds)
    http_timeout: float = 30.0
    usda_timeout: float = 10.0
    food_risk_timeout: float = 15.0

    # Insights
    insights_days_before: int = 7
    insights_days_after: int = 2
    metric_history_days: int = 180

    # Nearest-city fallback reference point (London)
    default_latitude: float = 51.5074
    default_longitude: float = -0.1278

    # Background workers
    scheduler_tick_seconds: int = 15
    screen_time_interval_minutes: int = 15
    location_interval_minutes: int = 60
    ambient_noise_interval_minutes: int = 30
    ambient_noise_capture_seconds: int = 60
    watchdog_interval_hours: int = 6
    nutrition_changes_interval_minutes: int = 60
    nutrition_push_interval_minutes: int = 60
    phone_behavior_interval_minutes: int = 60
    workers_enabled: bool = True

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def validate_production_secrets(self) -> None:
        """Validate that backend credentials are configured in production."""
        if self.environment == "production":
            if not self.supabase_anon_key:
                raise ValueError("SUPABASE_ANON_KEY must be set in production")
            if self.supabase_url.startswith("http://localhost"):
                raise ValueError("SUPABASE_URL must point at the hosted project in production")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.validate_production_secrets()
    return settings
