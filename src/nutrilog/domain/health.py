"""Domain models for biometric summaries."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class HealthMetric(str, Enum):
    """Biometric series available from the health data source."""

    STEPS = "steps"
    ACTIVE_ENERGY_KCAL = "active_energy_kcal"
    CARBS_G = "carbs_g"
    EXERCISE_MIN = "exercise_min"
    HEART_RATE_BPM = "heart_rate_bpm"
    GLUCOSE_MGDL = "glucose_mgdl"
    INSULIN_IU = "insulin_iu"


@dataclass(frozen=True)
class HealthSummary:
    """Single-day health summary uploaded to the backend."""

    day: date
    steps: int
    active_energy_kcal: int
    carbs_g: float
    exercise_min: int
    heart_rate_bpm: int
    glucose_mgdl: int
    insulin_iu: float


@dataclass(frozen=True)
class GlucosePoint:
    """One blood glucose reading."""

    timestamp: datetime
    mgdl: float


@dataclass(frozen=True)
class CarbPoint:
    """Carbohydrates logged at a point in time."""

    timestamp: datetime
    grams: float


@dataclass(frozen=True)
class GlucoseWindow:
    """Glucose metrics around a meal for a chart window."""

    at_meal: float | None
    delta_since_meal: float | None
    daily_max: float | None
    daily_min: float | None
