"""Bulk export and import of the meal journal."""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime

from pydantic import ValidationError

from chilema.domain.meals import MealRecord, to_timestamp_ms
from chilema.domain.transfer import (
    EXPORT_VERSION,
    ImportedMeal,
    ImportMode,
    ImportResult,
)
from chilema.errors import FormatError
from chilema.services.meals import MealRepository

_logger = logging.getLogger(__name__)


@dataclass
class TransferService:
    """Serializes the whole store to a portable document and back."""

    repository: MealRepository
    export_limit: int = 100_000

    async def export_all(self) -> dict[str, object]:
        """Return every stored record wrapped in an export document."""
        records = await asyncio.to_thread(
            self.repository.list_descending, self.export_limit
        )
        return {
            "exportedAt": to_timestamp_ms(datetime.now(tz=UTC)),
            "version": EXPORT_VERSION,
            "meals": [record.to_dict() for record in records],
        }

    async def export_json(self) -> str:
        """Return the export document as pretty-printed JSON text."""
        document = await self.export_all()
        return json.dumps(document, ensure_ascii=False, indent=2)

    async def import_from(
        self,
        document: str | bytes | dict[str, object] | list[object],
        mode: ImportMode | str = ImportMode.MERGE,
    ) -> ImportResult:
        """Load records from a document in one atomic batch.

        Invalid elements are skipped; a document of the wrong shape is
        rejected before anything is written.
        """
        resolved_mode = ImportMode(mode)
        elements = _extract_elements(document)
        records, skipped = parse_import_elements(elements)
        written = await asyncio.to_thread(
            self.repository.write_batch,
            records,
            clear_first=resolved_mode is ImportMode.REPLACE,
        )
        _logger.info(
            "Meal import finished: mode=%s imported=%s skipped=%s",
            resolved_mode.value,
            written,
            skipped,
        )
        return ImportResult(imported_count=written, skipped_count=skipped)


def parse_import_elements(elements: list[object]) -> tuple[list[MealRecord], int]:
    """Validate candidate elements, returning valid records and a skip count."""
    records: list[MealRecord] = []
    skipped = 0
    for index, element in enumerate(elements):
        try:
            meal = ImportedMeal.model_validate(element)
        except ValidationError as exc:
            skipped += 1
            _logger.debug(
                "Skipping import element %s: %s", index, exc.errors()[0]["msg"]
            )
            continue
        records.append(meal.to_record())
    return records, skipped


def export_filename(day: date | None = None) -> str:
    """Return the suggested file name for an export taken on ``day``."""
    resolved = day or date.today()
    return f"chilema-export-{resolved.isoformat()}.json"


def _extract_elements(
    document: str | bytes | dict[str, object] | list[object],
) -> list[object]:
    parsed: object = document
    if isinstance(document, str | bytes):
        try:
            parsed = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise FormatError("Import failed: the file is not valid JSON") from exc
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("meals"), list):
        return parsed["meals"]
    raise FormatError("Import failed: expected a list of meals or a meals key")
