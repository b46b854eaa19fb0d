"""Shared test fixtures."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import UUID

import pytest

from nutrilog.config import Settings
from nutrilog.containers import AppContainer
from nutrilog.domain.entries import FoodLogEntry
from nutrilog.domain.events import RemoteEvent, UploadTarget
from nutrilog.domain.health import GlucosePoint, HealthMetric, HealthSummary
from nutrilog.services.glucose_insights import GlucoseInsightsService, GlucoseSeriesSource
from nutrilog.services.health import (
    HealthBatchUploader,
    HealthDataSource,
    HealthSummaryService,
    UserRegistrar,
)
from nutrilog.services.reconciler import (
    EventGateway,
    ImageStore,
    ImageUploader,
    LogCache,
    NutritionEstimator,
    SyncReconciler,
    UserIdProvider,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

TOAST_RESPONSE = (
    '{"food_items": ["toast with butter"], "total_carbs_g": 20, '
    '"calculation_steps": "2 slices x 10g = 20g"}'
)


@dataclass
class FakeEventGateway(EventGateway, HealthBatchUploader, UserRegistrar):
    """In-memory gateway that records calls and can be told to fail."""

    events: list[RemoteEvent] = field(default_factory=list)
    created: list[dict[str, object]] = field(default_factory=list)
    updated: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    health_batches: list[list[HealthSummary]] = field(default_factory=list)
    list_calls: list[int] = field(default_factory=list)
    users: list[str] = field(default_factory=list)
    fail_register: bool = False
    fail_list: bool = False
    fail_create: bool = False
    fail_update: bool = False
    fail_delete: bool = False
    next_id: int = 0

    async def create_event(
        self, user_id: str, event_type: str, details: dict[str, object]
    ) -> str:
        if self.fail_create:
            raise RuntimeError("create failed")
        self.next_id += 1
        remote_id = f"evt-{self.next_id}"
        self.created.append(
            {
                "user_id": user_id,
                "event_type": event_type,
                "details": details,
                "remote_id": remote_id,
            }
        )
        return remote_id

    async def update_event(
        self, user_id: str, remote_id: str, details: dict[str, object]
    ) -> None:
        if self.fail_update:
            raise RuntimeError("update failed")
        self.updated.append((remote_id, details))

    async def delete_event(self, user_id: str, remote_id: str) -> None:
        if self.fail_delete:
            raise RuntimeError("delete failed")
        self.deleted.append(remote_id)

    async def list_events(self, user_id: str, limit: int) -> list[RemoteEvent]:
        self.list_calls.append(limit)
        if self.fail_list:
            raise RuntimeError("network unreachable")
        return self.events[:limit]

    async def negotiate_upload(
        self, user_id: str, filename: str, content_type: str
    ) -> UploadTarget:
        return UploadTarget(
            upload_url=f"https://upload.test/{filename}",
            public_url=f"https://cdn.test/{filename}",
        )

    async def upload_health_batch(
        self, user_id: str, summaries: list[HealthSummary]
    ) -> None:
        self.health_batches.append(summaries)

    async def create_user(self, user_id: str) -> None:
        if self.fail_register:
            raise RuntimeError("register failed")
        self.users.append(user_id)


@dataclass
class InMemoryLogCache(LogCache):
    """Log cache that keeps every saved snapshot."""

    stored: list[FoodLogEntry] = field(default_factory=list)
    saves: list[list[FoodLogEntry]] = field(default_factory=list)

    def load(self) -> list[FoodLogEntry]:
        return list(self.stored)

    def save(self, entries: list[FoodLogEntry]) -> None:
        self.stored = list(entries)
        self.saves.append(list(entries))


@dataclass
class FakeNutritionEstimator(NutritionEstimator):
    """Estimator returning a fixed response and recording requests."""

    response: str = TOAST_RESPONSE
    error: Exception | None = None
    calls: list[str] = field(default_factory=list)

    async def estimate(self, food_text: str) -> str:
        self.calls.append(food_text)
        if self.error is not None:
            raise self.error
        return self.response


@dataclass
class InMemoryImageStore(ImageStore):
    """Image store backed by a dict, with canned downloads."""

    images: dict[UUID, bytes] = field(default_factory=dict)
    downloads: dict[str, bytes] = field(default_factory=dict)
    download_calls: list[str] = field(default_factory=list)

    def save(self, entry_id: UUID, image_bytes: bytes) -> str:
        self.images[entry_id] = image_bytes
        return f"{entry_id}.jpg"

    def load(self, entry_id: UUID) -> bytes | None:
        return self.images.get(entry_id)

    def exists(self, entry_id: UUID) -> bool:
        return entry_id in self.images

    async def load_or_download(
        self, entry_id: UUID, remote_url: str | None
    ) -> bytes | None:
        if entry_id in self.images:
            return self.images[entry_id]
        if remote_url is None:
            return None
        self.download_calls.append(remote_url)
        content = self.downloads.get(remote_url)
        if content is not None:
            self.images[entry_id] = content
        return content


@dataclass
class FakeImageUploader(ImageUploader):
    """Uploader returning a fixed URL or failing."""

    public_url: str = "https://cdn.test/meal.jpg"
    fail: bool = False
    uploads: list[bytes] = field(default_factory=list)

    async def upload_image(self, image_bytes: bytes, user_id: str) -> str:
        if self.fail:
            raise RuntimeError("upload failed")
        self.uploads.append(image_bytes)
        return self.public_url


@dataclass
class FixedUserIdProvider(UserIdProvider):
    """User id provider returning a constant."""

    user_id: str = "user-123"

    def get_or_create(self) -> str:
        return self.user_id


@dataclass
class FakeHealthDataSource(HealthDataSource):
    """Health source returning per-metric constants."""

    values: dict[HealthMetric, float] = field(
        default_factory=lambda: {
            HealthMetric.STEPS: 8123.7,
            HealthMetric.ACTIVE_ENERGY_KCAL: 410.6,
            HealthMetric.CARBS_G: 182.44,
            HealthMetric.EXERCISE_MIN: 31.2,
            HealthMetric.HEART_RATE_BPM: 71.5,
            HealthMetric.GLUCOSE_MGDL: 104.4,
            HealthMetric.INSULIN_IU: 22.46,
        }
    )
    failing: HealthMetric | None = None
    queries: list[tuple[str, HealthMetric]] = field(default_factory=list)

    async def total(self, metric: HealthMetric, start: datetime, end: datetime) -> float:
        return self._value("total", metric)

    async def average(
        self, metric: HealthMetric, start: datetime, end: datetime
    ) -> float:
        return self._value("average", metric)

    def _value(self, kind: str, metric: HealthMetric) -> float:
        self.queries.append((kind, metric))
        if metric == self.failing:
            raise RuntimeError(f"{metric.value} unavailable")
        return self.values[metric]


@dataclass
class FakeGlucoseSource(GlucoseSeriesSource):
    """Glucose source filtering a fixed series by time range."""

    points: list[GlucosePoint] = field(default_factory=list)
    fail: bool = False
    queries: list[tuple[datetime, datetime]] = field(default_factory=list)

    async def glucose_series(self, start: datetime, end: datetime) -> list[GlucosePoint]:
        self.queries.append((start, end))
        if self.fail:
            raise RuntimeError("glucose unavailable")
        return [point for point in self.points if start <= point.timestamp <= end]


def glucose_curve(*readings: tuple[float, float]) -> list[GlucosePoint]:
    """Build readings from (minutes after NOW, mg/dL) pairs."""
    return [
        GlucosePoint(timestamp=NOW + timedelta(minutes=minutes), mgdl=mgdl)
        for minutes, mgdl in readings
    ]


def make_entry(  # noqa: PLR0913
    food: str,
    *,
    remote_id: str | None = None,
    hours_ago: float = 0,
    carbs_text: str = "30g",
    explanation: str | None = None,
    image_remote_url: str | None = None,
) -> FoodLogEntry:
    """Build an entry timestamped relative to NOW."""
    return FoodLogEntry(
        timestamp=NOW - timedelta(hours=hours_ago),
        display_food=food,
        carbs_text=carbs_text,
        explanation=explanation,
        original_query=food,
        remote_id=remote_id,
        image_remote_url=image_remote_url,
    )


def food_event(  # noqa: PLR0913
    event_id: str,
    food: str,
    *,
    hours_ago: float = 0,
    carbs_text: str | None = "45g",
    event_type: str = "food_log",
    extra: dict[str, object] | None = None,
) -> RemoteEvent:
    """Build a backend event for a logged meal."""
    details: dict[str, object] = {
        "food": food,
        "originalQuery": food,
        "timestampISO": (NOW - timedelta(hours=hours_ago))
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
    }
    if carbs_text is not None:
        details["carbsText"] = carbs_text
    details.update(extra or {})
    return RemoteEvent(
        event_id=event_id,
        event_type=event_type,
        user_id="user-123",
        timestamp_iso=None,
        timestamp=None,
        details=details,
    )


def build_reconciler(  # noqa: PLR0913
    *,
    cached: list[FoodLogEntry] | None = None,
    cache: InMemoryLogCache | None = None,
    gateway: FakeEventGateway | None = None,
    estimator: FakeNutritionEstimator | None = None,
    image_store: InMemoryImageStore | None = None,
    image_uploader: FakeImageUploader | None = None,
) -> SyncReconciler:
    """Create a reconciler wired to in-memory fakes."""
    return SyncReconciler(
        gateway=gateway or FakeEventGateway(),
        cache=cache or InMemoryLogCache(stored=list(cached or [])),
        estimator=estimator or FakeNutritionEstimator(),
        image_store=image_store or InMemoryImageStore(),
        image_uploader=image_uploader or FakeImageUploader(),
        user_ids=FixedUserIdProvider(),
        clock=lambda: NOW,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        backend_url="https://backend.test/",
        nutrition_url="https://nutrition.test/",
        data_dir=tmp_path,
    )


@dataclass
class AppFakes:
    """A container together with the fakes wired into it."""

    container: AppContainer
    gateway: FakeEventGateway
    image_store: InMemoryImageStore
    image_uploader: FakeImageUploader
    glucose: FakeGlucoseSource


def build_app_fakes(settings: Settings) -> AppFakes:
    """Wire an app container to in-memory fakes and keep handles to them."""
    gateway = FakeEventGateway(events=[food_event("evt-9", "oatmeal", hours_ago=5)])
    image_store = InMemoryImageStore()
    image_uploader = FakeImageUploader()
    glucose = FakeGlucoseSource(
        points=glucose_curve((-310, 95), (-300, 100), (-270, 150), (-240, 120))
    )
    reconciler = build_reconciler(
        gateway=gateway, image_store=image_store, image_uploader=image_uploader
    )
    health_service = HealthSummaryService(
        source=FakeHealthDataSource(),
        uploader=gateway,
        registrar=gateway,
        user_ids=FixedUserIdProvider(),
    )

    async def close_resources() -> None:
        await reconciler.wait_idle()

    container = AppContainer(
        settings=settings,
        reconciler=reconciler,
        health_service=health_service,
        glucose_service=GlucoseInsightsService(source=glucose),
        close_resources=close_resources,
    )
    return AppFakes(container, gateway, image_store, image_uploader, glucose)


@pytest.fixture
def fakes(settings: Settings) -> AppFakes:
    return build_app_fakes(settings)


@pytest.fixture
def container(fakes: AppFakes) -> AppContainer:
    return fakes.container
