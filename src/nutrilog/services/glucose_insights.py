"""Glucose response around logged meals."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Protocol

from nutrilog.domain.entries import FoodLogEntry
from nutrilog.domain.health import CarbPoint, GlucosePoint, GlucoseWindow
from nutrilog.services.parsing import carbs_grams

_MIN_SPAN_SECONDS = 1e-6

_logger = logging.getLogger(__name__)


class GlucoseSeriesSource(Protocol):
    """Time-series source for blood glucose readings."""

    async def glucose_series(self, start: datetime, end: datetime) -> list[GlucosePoint]:
        """Return readings within [start, end]."""


@dataclass(frozen=True)
class MealInsights:
    """Glucose readings, logged carbs and window metrics around one meal."""

    start: datetime
    end: datetime
    window: GlucoseWindow
    glucose: list[GlucosePoint]
    carbs: list[CarbPoint]


@dataclass
class GlucoseInsightsService:
    """Loads the glucose series around a meal and summarizes it."""

    source: GlucoseSeriesSource
    window_minutes: int = 90

    async def meal_insights(
        self, meal_time: datetime, entries: list[FoodLogEntry]
    ) -> MealInsights:
        """Summarize glucose from ``window_minutes`` before to after a meal.

        Daily extremes cover the meal's local calendar day. A failing series
        query is logged and treated as having no readings.
        """
        offset = timedelta(minutes=self.window_minutes)
        start, end = meal_time - offset, meal_time + offset
        day = meal_time.astimezone().date()
        day_start = datetime.combine(day, time.min).astimezone()
        day_end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
        glucose, day_readings = await asyncio.gather(
            self._series(start, end), self._series(day_start, day_end)
        )
        daily_max, daily_min = daily_extremes(day_readings)
        return MealInsights(
            start=start,
            end=end,
            window=compute_window(glucose, meal_time, daily_max, daily_min),
            glucose=sorted(glucose, key=lambda point: point.timestamp),
            carbs=carb_points(entries, start, end),
        )

    async def _series(self, start: datetime, end: datetime) -> list[GlucosePoint]:
        try:
            return await self.source.glucose_series(start, end)
        except Exception as exc:
            _logger.warning("Glucose series query failed: %s", exc)
            return []


def interpolated_glucose(at: datetime, points: list[GlucosePoint]) -> float | None:
    """Linearly interpolate glucose at ``at``; clamps outside the series."""
    if not points:
        return None
    ordered = sorted(points, key=lambda point: point.timestamp)
    if at <= ordered[0].timestamp:
        return ordered[0].mgdl
    if at >= ordered[-1].timestamp:
        return ordered[-1].mgdl
    upper = next(i for i, point in enumerate(ordered) if point.timestamp >= at)
    before, after = ordered[upper - 1], ordered[upper]
    span = max(
        _MIN_SPAN_SECONDS, (after.timestamp - before.timestamp).total_seconds()
    )
    fraction = (at - before.timestamp).total_seconds() / span
    return before.mgdl + fraction * (after.mgdl - before.mgdl)


def compute_window(
    points: list[GlucosePoint],
    meal_time: datetime | None,
    daily_max: float | None,
    daily_min: float | None,
) -> GlucoseWindow:
    """Glucose at the meal and its rise to the later peak."""
    if not points:
        return GlucoseWindow(None, None, daily_max, daily_min)
    at_meal = interpolated_glucose(meal_time, points) if meal_time else None
    delta = None
    if meal_time is not None and at_meal is not None:
        after = [point.mgdl for point in points if point.timestamp >= meal_time]
        if after:
            delta = max(after) - at_meal
    return GlucoseWindow(at_meal, delta, daily_max, daily_min)


def daily_extremes(points: list[GlucosePoint]) -> tuple[float | None, float | None]:
    """Return (max, min) mg/dL, or (None, None) without readings."""
    if not points:
        return None, None
    values = [point.mgdl for point in points]
    return max(values), min(values)


def carb_points(
    entries: list[FoodLogEntry], start: datetime, end: datetime
) -> list[CarbPoint]:
    """Carbs of entries logged within [start, end], oldest first."""
    points = []
    for entry in entries:
        if not start <= entry.timestamp <= end:
            continue
        grams = carbs_grams(entry.carbs_text)
        if grams is not None:
            points.append(CarbPoint(timestamp=entry.timestamp, grams=grams))
    return sorted(points, key=lambda point: point.timestamp)
