"""Shared test fixtures."""

import io
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from PIL import Image

from chilema.adapters.sqlite_meal_repository import SqliteMealRepository
from chilema.config import Settings
from chilema.domain.meals import MealRecord, MealType
from chilema.services.meals import MealRepository


@dataclass
class InMemoryMealRepository(MealRepository):
    """In-memory meal repository for tests."""

    meals: dict[str, MealRecord] = field(default_factory=dict)
    order: dict[str, int] = field(default_factory=dict)
    _sequence: int = 0

    def put(self, record: MealRecord) -> None:
        if record.id not in self.order:
            self._sequence += 1
            self.order[record.id] = self._sequence
        self.meals[record.id] = record

    def get(self, record_id: str) -> MealRecord | None:
        return self.meals.get(record_id)

    def list_descending(self, limit: int) -> list[MealRecord]:
        if limit <= 0:
            return []
        ordered = sorted(
            self.meals.values(),
            key=lambda record: (record.timestamp, self.order[record.id]),
            reverse=True,
        )
        return ordered[:limit]

    def delete(self, record_id: str) -> None:
        self.meals.pop(record_id, None)
        self.order.pop(record_id, None)

    def clear(self) -> None:
        self.meals.clear()
        self.order.clear()

    def write_batch(self, records: Iterable[MealRecord], *, clear_first: bool) -> int:
        if clear_first:
            self.clear()
        written = 0
        for record in records:
            self.put(record)
            written += 1
        return written


def make_record(
    record_id: str,
    timestamp: int,
    meal_type: MealType = MealType.LUNCH,
    text: str | None = None,
    image: str | None = None,
) -> MealRecord:
    return MealRecord(
        id=record_id,
        timestamp=timestamp,
        meal_type=meal_type,
        image=image,
        text=text,
    )


def make_image_bytes(
    width: int,
    height: int,
    mode: str = "RGB",
    image_format: str = "JPEG",
) -> bytes:
    color: tuple[int, ...] = (200, 120, 40, 128) if mode == "RGBA" else (200, 120, 40)
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    image.close()
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data", timezone="UTC")


@pytest.fixture
def sqlite_repository(settings: Settings) -> Iterator[SqliteMealRepository]:
    repository = SqliteMealRepository.create(settings)
    yield repository
    repository.close()


@pytest.fixture
def memory_repository() -> InMemoryMealRepository:
    return InMemoryMealRepository()
