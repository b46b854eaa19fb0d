"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from nutrilog.adapters.action_gateway import HttpxActionGateway
from nutrilog.adapters.file_image_store import FileImageStore
from nutrilog.adapters.file_user_id_provider import FileUserIdProvider
from nutrilog.adapters.image_upload_client import HttpxImageUploader
from nutrilog.adapters.json_file_log_cache import JsonFileLogCache
from nutrilog.adapters.nutrition_client import HttpxNutritionEstimator
from nutrilog.config import Settings
from nutrilog.services.glucose_insights import (
    GlucoseInsightsService,
    GlucoseSeriesSource,
)
from nutrilog.services.health import HealthDataSource, HealthSummaryService
from nutrilog.services.reconciler import SyncReconciler


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    reconciler: SyncReconciler
    health_service: HealthSummaryService | None
    glucose_service: GlucoseInsightsService | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    health_source: HealthDataSource | None = None,
    glucose_source: GlucoseSeriesSource | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    gateway = HttpxActionGateway.create(
        resolved_settings.backend_url,
        timeout_seconds=resolved_settings.http_timeout_seconds,
    )
    estimator = HttpxNutritionEstimator.create(
        resolved_settings.nutrition_url,
        timeout_seconds=resolved_settings.estimate_timeout_seconds,
    )
    image_store = FileImageStore.create(
        resolved_settings.image_dir,
        timeout_seconds=resolved_settings.upload_timeout_seconds,
    )
    image_uploader = HttpxImageUploader.create(
        gateway, timeout_seconds=resolved_settings.upload_timeout_seconds
    )
    user_ids = FileUserIdProvider(resolved_settings.user_id_path)
    reconciler = SyncReconciler(
        gateway=gateway,
        cache=JsonFileLogCache(resolved_settings.log_cache_path),
        estimator=estimator,
        image_store=image_store,
        image_uploader=image_uploader,
        user_ids=user_ids,
        history_limit=resolved_settings.history_limit,
        prefetch_limit=resolved_settings.prefetch_limit,
    )
    health_service = None
    if health_source is not None:
        health_service = HealthSummaryService(
            source=health_source,
            uploader=gateway,
            registrar=gateway,
            user_ids=user_ids,
        )
    glucose_service = None
    if glucose_source is not None:
        glucose_service = GlucoseInsightsService(source=glucose_source)

    async def close_resources() -> None:
        await reconciler.wait_idle()
        await gateway.close()
        await estimator.close()
        await image_store.close()
        await image_uploader.close()

    return AppContainer(
        settings=resolved_settings,
        reconciler=reconciler,
        health_service=health_service,
        glucose_service=glucose_service,
        close_resources=close_resources,
    )
