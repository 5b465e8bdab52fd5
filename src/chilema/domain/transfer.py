"""Models for bulk import and export documents."""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)

from chilema.domain.meals import MealRecord, MealType

EXPORT_VERSION = 1

_MIN_TIMESTAMP = -(2**63)
_MAX_TIMESTAMP = 2**63 - 1


class ImportMode(StrEnum):
    """How an import treats records already in the store."""

    MERGE = "merge"
    REPLACE = "replace"


class ImportedMeal(BaseModel):
    """One candidate record from an import document."""

    model_config = ConfigDict(strict=True, extra="ignore")

    id: StrictStr
    timestamp: StrictInt | StrictFloat
    meal_type: Literal["breakfast", "lunch", "dinner", "snack"] = Field(
        alias="mealType"
    )
    image: StrictStr | None = None
    text: StrictStr | None = None

    @field_validator("timestamp")
    @classmethod
    def _finite_timestamp(cls, value: int | float) -> int | float:
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("timestamp must be finite")
        if not _MIN_TIMESTAMP <= int(value) <= _MAX_TIMESTAMP:
            raise ValueError("timestamp is out of range")
        return value

    def to_record(self) -> MealRecord:
        """Build the domain record for this element."""
        return MealRecord(
            id=self.id,
            timestamp=int(self.timestamp),
            meal_type=MealType(self.meal_type),
            image=self.image,
            text=self.text,
        )


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a bulk import."""

    imported_count: int
    skipped_count: int = 0
