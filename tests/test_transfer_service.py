"""Tests for bulk export and import."""

import asyncio
import json
from datetime import date
from pathlib import Path

import pytest

from chilema.adapters.sqlite_meal_repository import SqliteMealRepository
from chilema.domain.meals import MealType
from chilema.domain.transfer import ImportMode
from chilema.errors import FormatError
from chilema.services.transfer import TransferService, export_filename
from tests.conftest import InMemoryMealRepository, make_record


def test_export_empty_store(memory_repository: InMemoryMealRepository) -> None:
    service = TransferService(repository=memory_repository)

    document = asyncio.run(service.export_all())

    assert document["version"] == 1
    assert document["meals"] == []
    assert isinstance(document["exportedAt"], int)


def test_export_lists_newest_first(memory_repository: InMemoryMealRepository) -> None:
    memory_repository.put(make_record("a", 100, text="toast"))
    memory_repository.put(make_record("b", 200, meal_type=MealType.DINNER))
    service = TransferService(repository=memory_repository)

    document = asyncio.run(service.export_all())

    assert document["meals"] == [
        {"id": "b", "timestamp": 200, "mealType": "dinner"},
        {"id": "a", "timestamp": 100, "mealType": "lunch", "text": "toast"},
    ]


def test_export_import_round_trip(tmp_path: Path) -> None:
    source = SqliteMealRepository(db_path=tmp_path / "source.sqlite3")
    target = SqliteMealRepository(db_path=tmp_path / "target.sqlite3")
    source.put(make_record("a", 100, text="早餐 粥"))
    source.put(make_record("b", 200, image="data:image/jpeg;base64,AAAA"))
    source.put(make_record("c", 200, meal_type=MealType.SNACK))

    async def scenario() -> int:
        text = await TransferService(repository=source).export_json()
        result = await TransferService(repository=target).import_from(
            text, ImportMode.REPLACE
        )
        return result.imported_count

    imported = asyncio.run(scenario())

    assert imported == 3
    assert set(target.list_descending(100)) == set(source.list_descending(100))
    source.close()
    target.close()


def test_merge_overwrites_and_keeps_others(
    sqlite_repository: SqliteMealRepository,
) -> None:
    sqlite_repository.put(make_record("a", 100, text="old"))
    sqlite_repository.put(make_record("b", 50, text="keep"))
    service = TransferService(repository=sqlite_repository)
    document = {
        "meals": [{"id": "a", "timestamp": 120, "mealType": "lunch", "text": "new"}]
    }

    result = asyncio.run(service.import_from(document, "merge"))

    assert result.imported_count == 1
    updated = sqlite_repository.get("a")
    assert updated is not None
    assert updated.text == "new"
    assert sqlite_repository.get("b") == make_record("b", 50, text="keep")


def test_merge_is_last_write_wins_in_document_order(
    memory_repository: InMemoryMealRepository,
) -> None:
    service = TransferService(repository=memory_repository)
    document = [
        {"id": "a", "timestamp": 1, "mealType": "lunch", "text": "first"},
        {"id": "a", "timestamp": 2, "mealType": "lunch", "text": "second"},
    ]

    asyncio.run(service.import_from(document))

    record = memory_repository.get("a")
    assert record is not None
    assert record.text == "second"


def test_replace_clears_unlisted_records(
    sqlite_repository: SqliteMealRepository,
) -> None:
    sqlite_repository.put(make_record("a", 100, text="old"))
    sqlite_repository.put(make_record("b", 200))
    service = TransferService(repository=sqlite_repository)
    document = {"meals": [{"id": "a", "timestamp": 300, "mealType": "dinner"}]}

    asyncio.run(service.import_from(document, ImportMode.REPLACE))

    assert sqlite_repository.get("b") is None
    assert sqlite_repository.get("a") == make_record(
        "a", 300, meal_type=MealType.DINNER
    )


def test_invalid_elements_are_skipped(
    sqlite_repository: SqliteMealRepository,
) -> None:
    service = TransferService(repository=sqlite_repository)
    text = json.dumps(
        [
            {"id": "x", "timestamp": 100, "mealType": "lunch"},
            {"id": 123, "timestamp": "bad", "mealType": "nope"},
        ]
    )

    result = asyncio.run(service.import_from(text))

    assert result.imported_count == 1
    assert result.skipped_count == 1
    assert [record.id for record in sqlite_repository.list_descending(10)] == ["x"]


@pytest.mark.parametrize(
    "element",
    [
        {"id": "a", "timestamp": True, "mealType": "lunch"},
        {"id": "a", "timestamp": 1, "mealType": "brunch"},
        {"id": "a", "timestamp": 1, "mealType": "lunch", "image": 7},
        {"id": "a", "timestamp": 1, "mealType": "lunch", "text": ["x"]},
        {"timestamp": 1, "mealType": "lunch"},
        "not an object",
        None,
    ],
)
def test_each_invalid_field_is_skipped(
    memory_repository: InMemoryMealRepository, element: object
) -> None:
    service = TransferService(repository=memory_repository)

    result = asyncio.run(service.import_from([element]))

    assert result.imported_count == 0
    assert memory_repository.meals == {}


def test_non_finite_timestamp_is_skipped(
    memory_repository: InMemoryMealRepository,
) -> None:
    service = TransferService(repository=memory_repository)
    text = '[{"id": "a", "timestamp": NaN, "mealType": "lunch"}]'

    result = asyncio.run(service.import_from(text))

    assert result.imported_count == 0


def test_null_optionals_and_fractional_timestamp(
    memory_repository: InMemoryMealRepository,
) -> None:
    service = TransferService(repository=memory_repository)
    document = [
        {
            "id": "a",
            "timestamp": 1500.9,
            "mealType": "snack",
            "image": None,
            "text": None,
            "extra": "ignored",
        }
    ]

    asyncio.run(service.import_from(document))

    assert memory_repository.get("a") == make_record(
        "a", 1500, meal_type=MealType.SNACK
    )


@pytest.mark.parametrize(
    "document",
    ["not json", '{"foo": 1}', '{"meals": "nope"}', "42", b"\x80\x81 not json"],
)
def test_malformed_documents_are_rejected(
    sqlite_repository: SqliteMealRepository, document: str | bytes
) -> None:
    sqlite_repository.put(make_record("a", 100))
    service = TransferService(repository=sqlite_repository)

    with pytest.raises(FormatError):
        asyncio.run(service.import_from(document, ImportMode.REPLACE))

    assert [record.id for record in sqlite_repository.list_descending(10)] == ["a"]


def test_export_filename() -> None:
    assert export_filename(date(2024, 5, 3)) == "chilema-export-2024-05-03.json"


def test_timestamp_beyond_storage_range_is_skipped(
    sqlite_repository: SqliteMealRepository,
) -> None:
    service = TransferService(repository=sqlite_repository)
    document = [
        {"id": "ok", "timestamp": 5, "mealType": "lunch"},
        {"id": "big", "timestamp": 1e20, "mealType": "lunch"},
        {"id": "huge", "timestamp": 2**63, "mealType": "dinner"},
    ]

    result = asyncio.run(service.import_from(document, ImportMode.REPLACE))

    assert result.imported_count == 1
    assert result.skipped_count == 2
    assert [record.id for record in sqlite_repository.list_descending(10)] == ["ok"]
