"""Fill missing nutrients from USDA FoodData Central."""

from dataclasses import replace
from typing import Any, Optional

import httpx

from migraineme.config import get_settings
from migraineme.core.exceptions import USDAServiceError
from migraineme.core.logging import get_logger
from migraineme.services.nutrition import NutritionRecord

settings = get_settings()
logger = get_logger(__name__)

# nutrition_records column -> FoodData Central nutrient id
USDA_NUTRIENT_IDS: dict[str, int] = {
    "calories": 1008,
    "protein": 1003,
    "total_carbohydrate": 1005,
    "sugar": 2000,
    "dietary_fiber": 1079,
    "total_fat": 1004,
    "saturated_fat": 1258,
    "monounsaturated_fat": 1292,
    "polyunsaturated_fat": 1293,
    "trans_fat": 1257,
    "cholesterol": 1253,
    "calcium": 1087,
    "iron": 1089,
    "magnesium": 1090,
    "phosphorus": 1091,
    "potassium": 1092,
    "sodium": 1093,
    "zinc": 1095,
    "copper": 1098,
    "manganese": 1101,
    "selenium": 1103,
    "vitamin_a": 1106,
    "vitamin_c": 1162,
    "vitamin_d": 1114,
    "vitamin_e": 1109,
    "vitamin_k": 1185,
    "thiamin": 1165,
    "riboflavin": 1166,
    "niacin": 1167,
    "vitamin_b6": 1175,
    "folate": 1177,
    "vitamin_b12": 1178,
    "pantothenic_acid": 1170,
    "caffeine": 1057,
}

# FoodData Central reports selenium in mcg
USDA_SCALE: dict[str, float] = {"selenium": 1 / 1000}

MARKER_NUTRIENTS = ("vitamin_a", "vitamin_c", "calcium", "iron")


def needs_enrichment(record: NutritionRecord) -> bool:
    """True for an unenriched, named record with no vitamin A, C, calcium or iron."""
    if record.enriched:
        return False
    if not record.food_name or not record.food_name.strip():
        return False
    return all(record.get(column) is None for column in MARKER_NUTRIENTS)


def nutrient_amounts(details: dict[str, Any]) -> dict[int, float]:
    amounts: dict[int, float] = {}
    for entry in details.get("foodNutrients") or []:
        nutrient_id = (entry.get("nutrient") or {}).get("id")
        amount = entry.get("amount")
        if nutrient_id is not None and amount is not None:
            amounts[int(nutrient_id)] = float(amount)
    return amounts


def merge_nutrients(record: NutritionRecord, details: dict[str, Any]) -> NutritionRecord:
    """Fill only the missing nutrients, using positive USDA values."""
    amounts = nutrient_amounts(details)
    calories = record.calories
    nutrients = dict(record.nutrients)
    for column, nutrient_id in USDA_NUTRIENT_IDS.items():
        if record.get(column) is not None:
            continue
        value = amounts.get(nutrient_id)
        if value is None or value <= 0:
            continue
        value *= USDA_SCALE.get(column, 1.0)
        if column == "calories":
            calories = value
        else:
            nutrients[column] = value
    return replace(record, calories=calories, nutrients=nutrients)


class USDAEnrichmentService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.usda_base_url).rstrip("/")
        self.api_key = api_key or settings.usda_api_key
        self._transport = transport

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.usda_timeout), transport=self._transport
        ) as client:
            response = await client.get(f"{self.base_url}{path}", params={"api_key": self.api_key, **params})
        if not response.is_success:
            raise USDAServiceError(f"{path} returned HTTP {response.status_code}")
        return response.json()

    async def search_food(self, query: str) -> Optional[int]:
        """FDC id of the best match, or None."""
        data = await self._get("/foods/search", {"query": query, "pageSize": 1})
        foods = data.get("foods") or []
        return int(foods[0]["fdcId"]) if foods else None

    async def food_details(self, fdc_id: int) -> dict[str, Any]:
        return await self._get(f"/food/{fdc_id}", {})

    async def enrich(self, record: NutritionRecord) -> NutritionRecord:
        """Best effort: the result is marked enriched whether or not USDA helped."""
        if not record.food_name or not record.food_name.strip():
            return replace(record, enriched=True)

        try:
            fdc_id = await self.search_food(record.food_name)
            if fdc_id is None:
                logger.info("usda_no_match", food=record.food_name)
                return replace(record, enriched=True)
            details = await self.food_details(fdc_id)
            merged = merge_nutrients(record, details)
            logger.debug("usda_enriched", food=record.food_name, fdc_id=fdc_id)
            return replace(merged, enriched=True)
        except (USDAServiceError, httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("usda_enrichment_failed", food=record.food_name, error=str(e))
            return replace(record, enriched=True)
