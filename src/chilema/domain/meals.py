"""Domain models for meal records."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import StrEnum
from uuid import uuid4

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class MealType(StrEnum):
    """Closed set of meal kinds a record can be attributed to."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


_LABELS: dict[MealType, str] = {
    MealType.BREAKFAST: "早餐",
    MealType.LUNCH: "午餐",
    MealType.DINNER: "晚餐",
    MealType.SNACK: "加餐",
}


@dataclass(frozen=True)
class MealRecord:
    """A single logged meal."""

    id: str
    timestamp: int
    meal_type: MealType
    image: str | None = None
    text: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return the portable document form, omitting absent fields."""
        payload: dict[str, object] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "mealType": self.meal_type.value,
        }
        if self.image is not None:
            payload["image"] = self.image
        if self.text is not None:
            payload["text"] = self.text
        return payload


@dataclass(frozen=True)
class StorageUsage:
    """Rough footprint of the stored journal."""

    record_count: int
    image_bytes: int


def create_meal_record_id() -> str:
    """Generate a new opaque record id."""
    return str(uuid4())


def classify_meal_type(moment: datetime) -> MealType:
    """Map a local date-time to its meal type by hour of day.

    Breakfast covers [06:00, 11:00), lunch [11:00, 15:00), dinner
    [15:00, 21:00); every other hour is a snack.
    """
    hour = moment.hour
    if 6 <= hour < 11:
        return MealType.BREAKFAST
    if 11 <= hour < 15:
        return MealType.LUNCH
    if 15 <= hour < 21:
        return MealType.DINNER
    return MealType.SNACK


def meal_type_label(meal_type: MealType) -> str:
    """Return the display label for a meal type."""
    return _LABELS[meal_type]


def to_timestamp_ms(moment: datetime) -> int:
    """Convert a date-time to epoch milliseconds; naive values are local."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def from_timestamp_ms(timestamp: int, tz: tzinfo | None = None) -> datetime:
    """Convert epoch milliseconds to an aware local date-time."""
    moment = _EPOCH + timedelta(milliseconds=timestamp)
    if tz is None:
        return moment.astimezone()
    return moment.astimezone(tz)
