"""Tyramine, alcohol and gluten levels for a food, via the classify-food-risks function."""

from dataclasses import dataclass
from typing import Optional

import httpx

from migraineme.config import get_settings
from migraineme.core.exceptions import SupabaseError
from migraineme.core.logging import get_logger
from migraineme.services.supabase import SupabaseClient, first_row

settings = get_settings()
logger = get_logger(__name__)

LEVELS = ("none", "low", "medium", "high")


@dataclass(frozen=True)
class FoodRiskResult:
    tyramine: str = "none"
    alcohol: str = "none"
    gluten: str = "none"
    cached: bool = False


def _level(value) -> str:
    return value if value in LEVELS else "none"


class FoodRiskClassifier:
    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def classify(self, access_token: str, food_name: Optional[str]) -> FoodRiskResult:
        if not food_name or not food_name.strip():
            return FoodRiskResult()

        try:
            payload = await self.client.invoke_function(
                "classify-food-risks",
                access_token,
                {"food_name": food_name},
                timeout=settings.food_risk_timeout,
            )
        except (SupabaseError, httpx.HTTPError, ValueError) as e:
            logger.warning("food_risk_classification_failed", food=food_name, error=str(e))
            return FoodRiskResult()

        data = first_row(payload) or {}
        result = FoodRiskResult(
            tyramine=_level(data.get("tyramine")),
            alcohol=_level(data.get("alcohol")),
            gluten=_level(data.get("gluten")),
            cached=bool(data.get("cached", False)),
        )
        logger.debug(
            "food_risk_classified",
            food=food_name,
            tyramine=result.tyramine,
            alcohol=result.alcohol,
            gluten=result.gluten,
            cached=result.cached,
        )
        return result
