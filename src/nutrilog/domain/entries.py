"""Domain models for food log entries."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True)
class FoodLogEntry:
    """A single logged meal, pending until the backend assigns a remote id."""

    timestamp: datetime
    display_food: str
    carbs_text: str
    original_query: str
    explanation: str | None = None
    remote_id: str | None = None
    image_remote_url: str | None = None
    image_local_ref: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_pending(self) -> bool:
        """Return True while the create call has not succeeded."""
        return self.remote_id is None


@dataclass(frozen=True)
class ParsedNutrition:
    """Structured facts extracted from an estimation response."""

    foods: list[str]
    carbs_grams: float | None
    steps: str | None


@dataclass(frozen=True)
class NutritionDisplay:
    """Display fields derived from an estimation response with defaults applied."""

    display_food: str
    carbs_text: str
    explanation: str | None


@dataclass
class SyncStatus:
    """UI-visible sync flags and the last surfaced error."""

    is_loading: bool = False
    is_sending: bool = False
    error: str | None = None
