"""Pydantic models for the food log API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from nutrilog.domain.entries import FoodLogEntry, SyncStatus
from nutrilog.services.glucose_insights import MealInsights


class FoodLogCreate(BaseModel):
    """Request body for logging a meal."""

    food: str = Field(min_length=1)
    estimation_response: str | None = None
    image_base64: str | None = None


class FoodLogEdit(BaseModel):
    """Request body for editing a meal."""

    food: str = Field(min_length=1)
    timestamp: datetime


class FoodLogOut(BaseModel):
    """Food log entry as returned to clients."""

    id: UUID
    remote_id: str | None
    pending: bool
    timestamp: datetime
    food: str
    carbs_text: str
    explanation: str | None
    original_query: str
    image_remote_url: str | None
    image_local_ref: str | None

    @classmethod
    def from_entry(cls, entry: FoodLogEntry) -> "FoodLogOut":
        """Build the response model from a domain entry."""
        return cls(
            id=entry.id,
            remote_id=entry.remote_id,
            pending=entry.is_pending,
            timestamp=entry.timestamp,
            food=entry.display_food,
            carbs_text=entry.carbs_text,
            explanation=entry.explanation,
            original_query=entry.original_query,
            image_remote_url=entry.image_remote_url,
            image_local_ref=entry.image_local_ref,
        )


class SyncStatusOut(BaseModel):
    """Sync flags shown by the UI."""

    is_loading: bool
    is_sending: bool
    error: str | None

    @classmethod
    def from_status(cls, status: SyncStatus) -> "SyncStatusOut":
        """Build the response model from the reconciler status."""
        return cls(
            is_loading=status.is_loading,
            is_sending=status.is_sending,
            error=status.error,
        )


class FoodLogList(BaseModel):
    """Entries plus the current sync status."""

    logs: list[FoodLogOut]
    status: SyncStatusOut


class GlucosePointOut(BaseModel):
    """Glucose reading on the meal chart."""

    timestamp: datetime
    mgdl: float


class CarbPointOut(BaseModel):
    """Logged carbs on the meal chart."""

    timestamp: datetime
    grams: float


class MealInsightsOut(BaseModel):
    """Glucose response around one meal."""

    start: datetime
    end: datetime
    at_meal: float | None
    delta_since_meal: float | None
    daily_max: float | None
    daily_min: float | None
    glucose: list[GlucosePointOut]
    carbs: list[CarbPointOut]

    @classmethod
    def from_insights(cls, insights: MealInsights) -> "MealInsightsOut":
        """Build the response model from computed insights."""
        window = insights.window
        return cls(
            start=insights.start,
            end=insights.end,
            at_meal=window.at_meal,
            delta_since_meal=window.delta_since_meal,
            daily_max=window.daily_max,
            daily_min=window.daily_min,
            glucose=[
                GlucosePointOut(timestamp=point.timestamp, mgdl=point.mgdl)
                for point in insights.glucose
            ],
            carbs=[
                CarbPointOut(timestamp=point.timestamp, grams=point.grams)
                for point in insights.carbs
            ],
        )


class OnboardingOut(BaseModel):
    """Result of registering the user and uploading health history."""

    uploaded: int
