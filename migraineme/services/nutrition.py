"""Nutrition records: Health Connect mapping and Supabase upload/delete."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from migraineme.core.exceptions import AuthenticationError
from migraineme.core.logging import get_logger
from migraineme.core.security import extract_user_id
from migraineme.services.supabase import SupabaseClient, in_filter

logger = get_logger(__name__)

HEALTH_CONNECT_SOURCE = "health_connect"

MEAL_TYPES = {1: "breakfast", 2: "lunch", 3: "dinner", 4: "snack"}

G = 1.0
MG = 1_000.0
MCG = 1_000_000.0

# nutrition_records column -> factor applied to the Health Connect gram value
NUTRIENT_UNITS: dict[str, float] = {
    "protein": G,
    "total_carbohydrate": G,
    "sugar": G,
    "dietary_fiber": G,
    "total_fat": G,
    "saturated_fat": G,
    "unsaturated_fat": G,
    "monounsaturated_fat": G,
    "polyunsaturated_fat": G,
    "trans_fat": G,
    "cholesterol": MG,
    "calcium": MG,
    "chloride": MG,
    "chromium": MCG,
    "copper": MG,
    "iodine": MCG,
    "iron": MG,
    "magnesium": MG,
    "manganese": MG,
    "molybdenum": MCG,
    "phosphorus": MG,
    "potassium": MG,
    "selenium": MCG,
    "sodium": MG,
    "zinc": MG,
    "vitamin_a": MCG,
    "vitamin_b6": MG,
    "vitamin_b12": MCG,
    "vitamin_c": MG,
    "vitamin_d": MCG,
    "vitamin_e": MG,
    "vitamin_k": MCG,
    "biotin": MCG,
    "folate": MCG,
    "folic_acid": MCG,
    "niacin": MG,
    "pantothenic_acid": MG,
    "riboflavin": MG,
    "thiamin": MG,
    "caffeine": MG,
}


def meal_type_name(value: Optional[int]) -> str:
    return MEAL_TYPES.get(value, "unknown")


def _parse_instant(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class NutritionRecord:
    """One food entry, with nutrients keyed by their ``nutrition_records`` column."""

    date: date
    timestamp: datetime
    end_timestamp: Optional[datetime] = None
    food_name: Optional[str] = None
    meal_type: str = "unknown"
    calories: Optional[float] = None
    nutrients: dict[str, float] = field(default_factory=dict)
    tyramine_exposure: Optional[str] = None
    alcohol_exposure: Optional[str] = None
    gluten_exposure: Optional[str] = None
    source: str = HEALTH_CONNECT_SOURCE
    enriched: bool = False

    @classmethod
    def from_health_connect(cls, record: dict[str, Any]) -> "NutritionRecord":
        """Map a Health Connect nutrition record (masses in grams, energy in kcal)."""
        start = _parse_instant(record["start_time"])
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        nutrients = {}
        for column, factor in NUTRIENT_UNITS.items():
            grams = record.get(column)
            if grams is not None:
                nutrients[column] = float(grams) * factor
        return cls(
            date=start.astimezone(timezone.utc).date(),
            timestamp=start,
            end_timestamp=_parse_instant(record.get("end_time")),
            food_name=record.get("name"),
            meal_type=meal_type_name(record.get("meal_type")),
            calories=record.get("energy_kcal"),
            nutrients=nutrients,
        )

    def get(self, column: str) -> Optional[float]:
        if column == "calories":
            return self.calories
        return self.nutrients.get(column)

    def with_risks(self, tyramine: str, alcohol: str, gluten: str) -> "NutritionRecord":
        return replace(self, tyramine_exposure=tyramine, alcohol_exposure=alcohol, gluten_exposure=gluten)

    def to_payload(self, user_id: str, health_connect_id: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "user_id": user_id,
            "health_connect_id": health_connect_id,
            "date": self.date.isoformat(),
            "timestamp": self.timestamp.isoformat(),
            "meal_type": self.meal_type,
            "source": self.source,
            "enriched": self.enriched,
        }
        if self.end_timestamp is not None:
            body["end_timestamp"] = self.end_timestamp.isoformat()
        if self.food_name is not None:
            body["food_name"] = self.food_name
        if self.calories is not None:
            body["calories"] = self.calories
        body.update(self.nutrients)
        for column in ("tyramine_exposure", "alcohol_exposure", "gluten_exposure"):
            value = getattr(self, column)
            if value is not None:
                body[column] = value
        return body


class NutritionService:
    def __init__(self, client: Optional[SupabaseClient] = None):
        self.client = client or SupabaseClient()

    async def upload(self, access_token: str, record: NutritionRecord, health_connect_id: str) -> None:
        # Row-level security needs user_id, read from the token itself
        user_id = extract_user_id(access_token)
        if not user_id:
            raise AuthenticationError("Cannot read user id from access token")
        await self.client.upsert(
            "nutrition_records",
            access_token,
            record.to_payload(user_id, health_connect_id),
            prefer="resolution=merge-duplicates",
        )
        logger.debug("nutrition_record_uploaded", health_connect_id=health_connect_id[:12])

    async def delete_by_health_connect_ids(self, access_token: str, ids: Iterable[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        await self.client.delete("nutrition_records", access_token, [("health_connect_id", in_filter(ids))])
        logger.info("nutrition_records_deleted", count=len(ids))
