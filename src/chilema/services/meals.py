"""Meal journal service."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol

from chilema.domain.meals import (
    MealRecord,
    StorageUsage,
    classify_meal_type,
    create_meal_record_id,
    to_timestamp_ms,
)
from chilema.services.images import estimate_payload_bytes
from chilema.services.summary import DaySummary, summarize_day

_logger = logging.getLogger(__name__)


class MealRepository(Protocol):
    """Persistence interface for meal records."""

    def put(self, record: MealRecord) -> None:
        """Insert or overwrite a record by id."""

    def get(self, record_id: str) -> MealRecord | None:
        """Return a record by id, if present."""

    def list_descending(self, limit: int) -> list[MealRecord]:
        """Return up to ``limit`` records ordered by timestamp descending."""

    def delete(self, record_id: str) -> None:
        """Delete a record if present."""

    def clear(self) -> None:
        """Delete every record."""

    def write_batch(self, records: Iterable[MealRecord], *, clear_first: bool) -> int:
        """Upsert records atomically and return how many were written."""


@dataclass
class MealLogService:
    """Async facade over the meal store used by the presentation layer."""

    repository: MealRepository
    tz: tzinfo | None = None
    list_limit: int = 200

    async def add_record(self, record: MealRecord) -> None:
        """Persist a record, replacing any record with the same id."""
        await asyncio.to_thread(self.repository.put, record)

    async def get_record(self, record_id: str) -> MealRecord | None:
        """Return a record by id, or None when it does not exist."""
        return await asyncio.to_thread(self.repository.get, record_id)

    async def list_recent(self, limit: int | None = None) -> list[MealRecord]:
        """Return the most recent records, newest first."""
        resolved = self.list_limit if limit is None else limit
        return await asyncio.to_thread(self.repository.list_descending, resolved)

    async def delete_record(self, record_id: str) -> None:
        """Delete a record; unknown ids are ignored."""
        await asyncio.to_thread(self.repository.delete, record_id)

    async def clear_all(self) -> None:
        """Remove every record from the store."""
        await asyncio.to_thread(self.repository.clear)
        _logger.info("Meal store cleared")

    async def create_meal(
        self,
        image: str,
        text: str | None,
        selected_day: date | None = None,
        now: datetime | None = None,
    ) -> MealRecord:
        """Build a record for a freshly captured meal and persist it.

        The record time is the selected day at the current time of day; the
        meal type is derived from that time.
        """
        if not image:
            raise ValueError("A meal needs a photo")
        cleaned_text = (text or "").strip() or None
        moment = resolve_record_time(selected_day, now or datetime.now(), self.tz)
        record = MealRecord(
            id=create_meal_record_id(),
            timestamp=to_timestamp_ms(moment),
            meal_type=classify_meal_type(moment),
            image=image,
            text=cleaned_text,
        )
        await self.add_record(record)
        return record

    async def list_day(self, day: date, limit: int | None = None) -> list[MealRecord]:
        """Return recent records that fall on a local calendar day."""
        start, end = day_bounds_ms(day, self.tz)
        records = await self.list_recent(limit)
        return [record for record in records if start <= record.timestamp < end]

    async def summarize_day(self, day: date) -> DaySummary:
        """Summarize a local calendar day using the recent history."""
        records = await self.list_recent()
        start, end = day_bounds_ms(day, self.tz)
        day_records = [r for r in records if start <= r.timestamp < end]
        return summarize_day(records, day_records, self.tz)

    async def storage_usage(self, limit: int = 5000) -> StorageUsage:
        """Return the record count and approximate image bytes stored."""
        records = await self.list_recent(limit)
        image_bytes = sum(
            estimate_payload_bytes(record.image) for record in records if record.image
        )
        return StorageUsage(record_count=len(records), image_bytes=image_bytes)


def resolve_record_time(
    selected_day: date | None, now: datetime, tz: tzinfo | None = None
) -> datetime:
    """Combine a selected calendar day with the local wall-clock time of ``now``.

    The result carries the UTC offset in force on the selected day, so the
    hour of day is preserved across daylight saving changes. ``tz`` of None
    means the system local zone; naive ``now`` values are system local.
    """
    local_now = now.astimezone(tz)
    if selected_day is None:
        return local_now
    wall = datetime.combine(selected_day, local_now.time())
    if tz is None:
        return wall.astimezone()
    return wall.replace(tzinfo=tz)


def day_bounds_ms(day: date, tz: tzinfo | None = None) -> tuple[int, int]:
    """Return the [start, end) epoch-millisecond window of a local day."""
    start = datetime(day.year, day.month, day.day, tzinfo=tz)
    end_day = day + timedelta(days=1)
    end = datetime(end_day.year, end_day.month, end_day.day, tzinfo=tz)
    return to_timestamp_ms(start), to_timestamp_ms(end)
