"""Daily biometric summaries and their batch upload."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Protocol

from nutrilog.domain.health import HealthMetric, HealthSummary
from nutrilog.services.reconciler import UserIdProvider

_CUMULATIVE = (
    HealthMetric.STEPS,
    HealthMetric.ACTIVE_ENERGY_KCAL,
    HealthMetric.CARBS_G,
    HealthMetric.EXERCISE_MIN,
    HealthMetric.INSULIN_IU,
)
_AVERAGED = (HealthMetric.HEART_RATE_BPM, HealthMetric.GLUCOSE_MGDL)

_logger = logging.getLogger(__name__)


class HealthDataSource(Protocol):
    """Time-series source for biometric samples."""

    async def total(self, metric: HealthMetric, start: datetime, end: datetime) -> float:
        """Return the cumulative value of a metric within [start, end)."""

    async def average(
        self, metric: HealthMetric, start: datetime, end: datetime
    ) -> float:
        """Return the average value of a metric within [start, end)."""


class UserRegistrar(Protocol):
    """Backend registration of the installation user."""

    async def create_user(self, user_id: str) -> None:
        """Register a user; repeated calls for the same id are harmless."""


class HealthBatchUploader(Protocol):
    """Backend sink for daily summaries."""

    async def upload_health_batch(
        self, user_id: str, summaries: list[HealthSummary]
    ) -> None:
        """Upload a batch of daily summaries."""


@dataclass
class HealthSummaryService:
    """Builds per-day summaries, uploads history and onboards the user."""

    source: HealthDataSource
    uploader: HealthBatchUploader
    registrar: UserRegistrar
    user_ids: UserIdProvider

    async def daily_summary(self, day: date) -> HealthSummary:
        """Query every metric for one local day concurrently.

        The first failing query's error propagates.
        """
        start = datetime.combine(day, time.min).astimezone()
        end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
        metrics = [*_CUMULATIVE, *_AVERAGED]
        values = await asyncio.gather(
            *(self.source.total(metric, start, end) for metric in _CUMULATIVE),
            *(self.source.average(metric, start, end) for metric in _AVERAGED),
        )
        by_metric = dict(zip(metrics, values, strict=True))
        return HealthSummary(
            day=day,
            steps=int(by_metric[HealthMetric.STEPS]),
            active_energy_kcal=round(by_metric[HealthMetric.ACTIVE_ENERGY_KCAL]),
            carbs_g=round(by_metric[HealthMetric.CARBS_G], 1),
            exercise_min=round(by_metric[HealthMetric.EXERCISE_MIN]),
            heart_rate_bpm=round(by_metric[HealthMetric.HEART_RATE_BPM]),
            glucose_mgdl=round(by_metric[HealthMetric.GLUCOSE_MGDL]),
            insulin_iu=round(by_metric[HealthMetric.INSULIN_IU], 1),
        )

    async def upload_history(
        self, days: int = 365, chunk_size: int = 100, today: date | None = None
    ) -> int:
        """Upload summaries for the last ``days`` days, oldest first.

        Returns the number of summaries uploaded.
        """
        end_day = today or date.today()
        dates = [end_day - timedelta(days=offset) for offset in range(days, -1, -1)]
        summaries = list(
            await asyncio.gather(*(self.daily_summary(day) for day in dates))
        )
        user_id = self.user_ids.get_or_create()
        size = chunk_size if chunk_size > 0 else len(summaries)
        chunks = [summaries[i : i + size] for i in range(0, len(summaries), size)]
        for index, chunk in enumerate(chunks, start=1):
            _logger.info("Uploading health summaries %s/%s", index, len(chunks))
            await self.uploader.upload_health_batch(user_id, chunk)
        return len(summaries)

    async def onboard(self, days: int = 365) -> int:
        """Register the installation user, then upload health history.

        A failed registration is logged and does not stop the upload.
        """
        user_id = self.user_ids.get_or_create()
        try:
            await self.registrar.create_user(user_id)
        except Exception as exc:
            _logger.warning("User registration failed for %s: %s", user_id, exc)
        else:
            _logger.info("Registered user %s", user_id)
        return await self.upload_history(days=days)
