"""Durable food log cache stored as one JSON document."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from nutrilog.domain.entries import FoodLogEntry
from nutrilog.services.reconciler import LogCache

_logger = logging.getLogger(__name__)


class FoodLogRecord(BaseModel):
    """On-disk representation of a food log entry."""

    id: UUID
    remote_id: str | None = None
    timestamp: datetime
    display_food: str = Field(min_length=1)
    carbs_text: str = Field(min_length=1)
    explanation: str | None = None
    original_query: str
    image_remote_url: str | None = None
    image_local_ref: str | None = None

    @classmethod
    def from_entry(cls, entry: FoodLogEntry) -> "FoodLogRecord":
        """Build a record from a domain entry."""
        return cls(
            id=entry.id,
            remote_id=entry.remote_id,
            timestamp=entry.timestamp,
            display_food=entry.display_food,
            carbs_text=entry.carbs_text,
            explanation=entry.explanation,
            original_query=entry.original_query,
            image_remote_url=entry.image_remote_url,
            image_local_ref=entry.image_local_ref,
        )

    def to_entry(self) -> FoodLogEntry:
        """Convert back to a domain entry."""
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        return FoodLogEntry(
            id=self.id,
            remote_id=self.remote_id,
            timestamp=timestamp,
            display_food=self.display_food,
            carbs_text=self.carbs_text,
            explanation=self.explanation,
            original_query=self.original_query,
            image_remote_url=self.image_remote_url,
            image_local_ref=self.image_local_ref,
        )


_RECORDS = TypeAdapter(list[FoodLogRecord])
_RAW_RECORDS = TypeAdapter(list[Any])


@dataclass
class JsonFileLogCache(LogCache):
    """Full-replace cache: every save rewrites the whole file atomically."""

    path: Path

    def load(self) -> list[FoodLogEntry]:
        """Return stored entries newest first; unreadable files yield []."""
        if not self.path.is_file():
            return []
        try:
            raw_records = _RAW_RECORDS.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as exc:
            _logger.warning("Food log cache at %s is unreadable: %s", self.path, exc)
            return []
        unique: dict[UUID, FoodLogEntry] = {}
        for index, raw in enumerate(raw_records):
            try:
                record = FoodLogRecord.model_validate(raw)
            except ValidationError as exc:
                _logger.warning("Skipping invalid cached entry %s: %s", index, exc)
                continue
            unique[record.id] = record.to_entry()
        return sorted(unique.values(), key=lambda entry: entry.timestamp, reverse=True)

    def save(self, entries: list[FoodLogEntry]) -> None:
        """Replace the stored collection with ``entries``."""
        records = [FoodLogRecord.from_entry(entry) for entry in entries]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_bytes(_RECORDS.dump_json(records, indent=2))
        tmp_path.replace(self.path)
