"""Offline-first reconciliation of the local food log with the event backend."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from nutrilog.domain.entries import FoodLogEntry, NutritionDisplay, SyncStatus
from nutrilog.domain.events import RemoteEvent, UploadTarget
from nutrilog.services.event_mapping import (
    FOOD_LOG_EVENT_TYPE,
    entry_to_details,
    event_to_entry,
)
from nutrilog.services.parsing import resolve_nutrition

EDIT_TIME_EPSILON_SECONDS = 1.0

_logger = logging.getLogger(__name__)


class LogCache(Protocol):
    """Durable store holding the full entry collection."""

    def load(self) -> list[FoodLogEntry]:
        """Return every stored entry."""

    def save(self, entries: list[FoodLogEntry]) -> None:
        """Replace the stored collection with ``entries``."""


class EventGateway(Protocol):
    """Remote event store reached over the JSON action channel."""

    async def create_event(
        self, user_id: str, event_type: str, details: dict[str, object]
    ) -> str:
        """Create an event and return its backend id."""

    async def update_event(
        self, user_id: str, remote_id: str, details: dict[str, object]
    ) -> None:
        """Replace the details of an event."""

    async def delete_event(self, user_id: str, remote_id: str) -> None:
        """Delete an event."""

    async def list_events(self, user_id: str, limit: int) -> list[RemoteEvent]:
        """Return the most recent events for a user."""

    async def negotiate_upload(
        self, user_id: str, filename: str, content_type: str
    ) -> UploadTarget:
        """Return a write URL and public URL for a direct upload."""


class NutritionEstimator(Protocol):
    """Service that turns a meal description into a nutrition response."""

    async def estimate(self, food_text: str) -> str:
        """Return the raw response body for a meal description."""


class ImageStore(Protocol):
    """Local image cache keyed by entry id."""

    def save(self, entry_id: UUID, image_bytes: bytes) -> str:
        """Store image bytes and return the local reference."""

    def load(self, entry_id: UUID) -> bytes | None:
        """Return cached bytes for an entry, if present."""

    def exists(self, entry_id: UUID) -> bool:
        """Return True if the entry has a cached image."""

    async def load_or_download(
        self, entry_id: UUID, remote_url: str | None
    ) -> bytes | None:
        """Return cached bytes, downloading and caching them if missing."""


class ImageUploader(Protocol):
    """Uploads image bytes and returns their public URL."""

    async def upload_image(self, image_bytes: bytes, user_id: str) -> str:
        """Upload an image and return its public URL."""


class UserIdProvider(Protocol):
    """Source of the stable installation user id."""

    def get_or_create(self) -> str:
        """Return the stored id, creating it on first use."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SyncReconciler:
    """Owns the authoritative entry collection and syncs it with the backend.

    All mutations run on the owning event loop and replace the collection with
    a new sorted list, followed by a full rewrite of the durable cache. Network
    work for ``add_local``, ``apply_edit`` and ``delete`` runs in tracked
    background tasks; ``wait_idle`` awaits them.
    """

    gateway: EventGateway
    cache: LogCache
    estimator: NutritionEstimator
    image_store: ImageStore
    image_uploader: ImageUploader
    user_ids: UserIdProvider
    history_limit: int = 200
    prefetch_limit: int = 20
    clock: Callable[[], datetime] = _utc_now
    status: SyncStatus = field(default_factory=SyncStatus)
    _entries: list[FoodLogEntry] = field(default_factory=list, init=False)
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, init=False)
    _creating: set[UUID] = field(default_factory=set, init=False)
    _history_loaded: bool = field(default=False, init=False)

    @property
    def entries(self) -> list[FoodLogEntry]:
        """Return a snapshot of the collection, newest first."""
        return list(self._entries)

    def get(self, entry_id: UUID) -> FoodLogEntry | None:
        """Return the entry with the given local id."""
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def restore_from_cache(self) -> list[FoodLogEntry]:
        """Fill an empty collection from the durable cache."""
        if not self._entries:
            self._entries = _sorted(self.cache.load())
        return self.entries

    async def ensure_initial_history_loaded(self) -> list[FoodLogEntry]:
        """Show cached entries, then refresh from the backend once."""
        self.restore_from_cache()
        if self._history_loaded:
            return self.entries
        self._history_loaded = True
        return await self.load_history()

    async def load_history(self, limit: int | None = None) -> list[FoodLogEntry]:
        """Merge backend events with locally pending entries.

        On fetch failure the collection and durable cache are left untouched
        and ``status.error`` is set.
        """
        user_id = self.user_ids.get_or_create()
        self.status.is_loading = True
        try:
            events = await self.gateway.list_events(
                user_id, limit or self.history_limit
            )
        except Exception as exc:
            _logger.warning("History fetch failed: %s", exc)
            self.status.error = "History fetch failed."
            return self.entries
        finally:
            self.status.is_loading = False

        remote_entries = [
            entry
            for entry in (event_to_entry(event) for event in events)
            if entry is not None
        ]
        local_entries = self._entries or self.cache.load()
        self._commit(merge_history(remote_entries, local_entries))
        _logger.info(
            "History merged: remote=%s pending=%s",
            len(remote_entries),
            sum(1 for entry in self._entries if entry.is_pending),
        )
        self._spawn(self.prefetch_recent_images())
        return self.entries

    async def submit(
        self, food_text: str, image: bytes | None = None
    ) -> FoodLogEntry | None:
        """Estimate nutrition for a meal description and log it."""
        trimmed = food_text.strip()
        if not trimmed:
            return None
        self.status.is_sending = True
        self.status.error = None
        response: str | None = None
        try:
            response = await self.estimator.estimate(trimmed)
        except Exception as exc:
            _logger.warning("Nutrition estimate failed: %s", exc)
            self.status.error = str(exc) or "Nutrition estimate failed."
        finally:
            self.status.is_sending = False
        return self.add_local(trimmed, response, image)

    def add_local(
        self,
        food_text: str,
        estimation_response: str | None,
        image: bytes | None = None,
    ) -> FoodLogEntry:
        """Log an entry locally and sync it in the background.

        The entry is persisted before any network call is made. Must be called
        from the owning event loop.
        """
        asyncio.get_running_loop()
        display = resolve_nutrition(food_text, estimation_response)
        entry = FoodLogEntry(
            timestamp=self.clock(),
            display_food=display.display_food,
            carbs_text=display.carbs_text,
            explanation=display.explanation,
            original_query=food_text,
        )
        if image is not None:
            entry = replace(entry, image_local_ref=self._save_image(entry.id, image))
        self._commit([*self._entries, entry])
        self._creating.add(entry.id)
        self._spawn(self._create_remote(entry.id, image))
        return entry

    def apply_edit(
        self, target_id: UUID, new_food_text: str, new_timestamp: datetime
    ) -> None:
        """Edit an entry's meal text and/or timestamp.

        A timestamp-only edit is applied immediately; a text edit re-runs the
        nutrition estimate in the background before updating the entry.
        """
        asyncio.get_running_loop()
        trimmed = new_food_text.strip()
        if not trimmed:
            _logger.info("Ignoring edit with empty meal text for %s", target_id)
            return
        original = self.get(target_id)
        if original is None:
            _logger.warning("Edit target %s not found", target_id)
            return
        new_timestamp = _aware(new_timestamp)
        time_changed = (
            abs((original.timestamp - new_timestamp).total_seconds())
            > EDIT_TIME_EPSILON_SECONDS
        )
        food_changed = trimmed != original.original_query

        if not food_changed:
            if not time_changed:
                return
            updated = replace(original, timestamp=new_timestamp)
            self._swap(updated)
            if updated.remote_id is not None:
                self._spawn(self._push_update(updated, "Edit (time) failed."))
            return

        self._spawn(
            self._reestimate(
                original.id, trimmed, new_timestamp if time_changed else None
            )
        )

    def delete(self, target_id: UUID) -> None:
        """Remove an entry, restoring it if the backend delete fails."""
        asyncio.get_running_loop()
        index = next(
            (i for i, entry in enumerate(self._entries) if entry.id == target_id),
            None,
        )
        if index is None:
            _logger.warning("Delete target %s not found", target_id)
            return
        removed = self._entries[index]
        self._commit(self._entries[:index] + self._entries[index + 1 :])
        if removed.remote_id is None:
            return
        self._spawn(self._delete_remote(removed, index))

    async def resync_pending(self) -> int:
        """Retry the create call once for every pending entry not in flight."""
        pending = [
            entry
            for entry in self._entries
            if entry.is_pending and entry.id not in self._creating
        ]
        synced = 0
        for entry in pending:
            image = None
            if entry.image_local_ref and not entry.image_remote_url:
                image = self.image_store.load(entry.id)
            self._creating.add(entry.id)
            if await self._create_remote(entry.id, image):
                synced += 1
        return synced

    async def prefetch_recent_images(self, limit: int | None = None) -> int:
        """Download missing images for the most recent entries."""
        recent = self._entries[: limit or self.prefetch_limit]
        targets = [
            entry
            for entry in recent
            if entry.image_remote_url and not self.image_store.exists(entry.id)
        ]
        if not targets:
            return 0
        results = await asyncio.gather(
            *(
                self.image_store.load_or_download(entry.id, entry.image_remote_url)
                for entry in targets
            ),
            return_exceptions=True,
        )
        fetched = 0
        for entry, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                _logger.warning("Image prefetch failed for %s: %s", entry.id, result)
            elif result is not None:
                fetched += 1
        return fetched

    async def wait_idle(self) -> None:
        """Wait until all background sync work has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _create_remote(self, entry_id: UUID, image: bytes | None) -> bool:
        user_id = self.user_ids.get_or_create()
        try:
            image_url = None
            if image is not None:
                image_url = await self._upload_image(image, user_id)
            current = self.get(entry_id)
            if current is None:
                _logger.info("Entry %s removed before sync", entry_id)
                return False
            if image_url:
                current = replace(current, image_remote_url=image_url)
            try:
                remote_id = await self.gateway.create_event(
                    user_id, FOOD_LOG_EVENT_TYPE, entry_to_details(current)
                )
            except Exception as exc:
                _logger.warning("Create event failed for %s: %s", entry_id, exc)
                self.status.error = "Saved on this device; sync failed."
                return False
            self._mark_created(entry_id, remote_id, image_url)
            return True
        finally:
            self._creating.discard(entry_id)

    def _mark_created(
        self, entry_id: UUID, remote_id: str, image_url: str | None
    ) -> None:
        current = self.get(entry_id)
        if current is None:
            _logger.warning("Entry %s missing when applying remote id", entry_id)
            return
        updated = replace(
            current,
            remote_id=remote_id,
            image_remote_url=image_url or current.image_remote_url,
        )
        # a refresh may already have pulled the new event in under another id
        others = [
            entry
            for entry in self._entries
            if entry.id != entry_id and entry.remote_id != remote_id
        ]
        self._commit([*others, updated])

    async def _reestimate(
        self, entry_id: UUID, food_text: str, new_timestamp: datetime | None
    ) -> None:
        self.status.is_sending = True
        self.status.error = None
        response: str | None = None
        estimated = False
        try:
            response = await self.estimator.estimate(food_text)
            estimated = True
        except Exception as exc:
            _logger.warning("Nutrition estimate failed for edit: %s", exc)
            self.status.error = str(exc) or "Nutrition estimate failed."
        finally:
            self.status.is_sending = False

        current = self.get(entry_id)
        if current is None:
            _logger.warning("Entry %s removed before edit completed", entry_id)
            return
        timestamp = new_timestamp or current.timestamp
        if estimated:
            display = resolve_nutrition(
                food_text,
                response,
                fallback=NutritionDisplay(
                    food_text, current.carbs_text, current.explanation
                ),
            )
            updated = replace(
                current,
                timestamp=timestamp,
                display_food=display.display_food,
                carbs_text=display.carbs_text,
                explanation=display.explanation,
                original_query=food_text,
            )
        elif new_timestamp is not None:
            updated = replace(current, timestamp=timestamp)
        else:
            return
        self._swap(updated)
        if updated.remote_id is not None:
            await self._push_update(updated, "Edit failed.")

    async def _push_update(self, entry: FoodLogEntry, failure_message: str) -> None:
        if entry.remote_id is None:
            return
        user_id = self.user_ids.get_or_create()
        try:
            await self.gateway.update_event(
                user_id, entry.remote_id, entry_to_details(entry)
            )
        except Exception as exc:
            _logger.warning("Update event %s failed: %s", entry.remote_id, exc)
            self.status.error = failure_message

    async def _delete_remote(self, removed: FoodLogEntry, index: int) -> None:
        if removed.remote_id is None:
            return
        user_id = self.user_ids.get_or_create()
        try:
            await self.gateway.delete_event(user_id, removed.remote_id)
        except Exception as exc:
            _logger.warning("Delete event %s failed: %s", removed.remote_id, exc)
            entries = list(self._entries)
            if all(entry.id != removed.id for entry in entries):
                entries.insert(min(index, len(entries)), removed)
                self._commit(entries)
            self.status.error = "Delete failed."

    async def _upload_image(self, image: bytes, user_id: str) -> str | None:
        try:
            return await self.image_uploader.upload_image(image, user_id)
        except Exception as exc:
            _logger.warning("Image upload failed: %s", exc)
            return None

    def _save_image(self, entry_id: UUID, image: bytes) -> str | None:
        try:
            return self.image_store.save(entry_id, image)
        except OSError as exc:
            _logger.warning("Saving image for %s failed: %s", entry_id, exc)
            return None

    def _swap(self, updated: FoodLogEntry) -> None:
        if self.get(updated.id) is None:
            _logger.warning("Entry %s not found while applying update", updated.id)
            return
        self._commit(
            [updated if entry.id == updated.id else entry for entry in self._entries]
        )

    def _commit(self, entries: list[FoodLogEntry]) -> None:
        self._entries = _sorted(entries)
        try:
            self.cache.save(list(self._entries))
        except OSError:
            _logger.exception("Persisting %s entries failed", len(self._entries))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _logger.error("Background sync task failed", exc_info=task.exception())


def merge_history(
    remote_entries: list[FoodLogEntry], local_entries: list[FoodLogEntry]
) -> list[FoodLogEntry]:
    """Combine backend entries with pending local ones, newest first.

    Backend entries win for anything the server knows about; entries without
    a remote id are kept untouched. Local ids of known events are preserved.
    """
    known = {
        entry.remote_id: entry for entry in local_entries if entry.remote_id is not None
    }
    merged: list[FoodLogEntry] = []
    seen: set[UUID] = set()
    for remote in remote_entries:
        previous = known.get(remote.remote_id)
        if previous is not None:
            remote = replace(
                remote, id=previous.id, image_local_ref=previous.image_local_ref
            )
        if remote.id in seen:
            continue
        seen.add(remote.id)
        merged.append(remote)
    merged.extend(
        entry
        for entry in local_entries
        if entry.remote_id is None and entry.id not in seen
    )
    return _sorted(merged)


def _sorted(entries: list[FoodLogEntry]) -> list[FoodLogEntry]:
    return sorted(entries, key=lambda entry: entry.timestamp, reverse=True)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.astimezone()
    return value
