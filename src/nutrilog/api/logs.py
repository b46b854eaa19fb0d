"""Food log endpoints backed by the sync reconciler."""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, HTTPException, Request, status

from nutrilog.api.schemas import (
    FoodLogCreate,
    FoodLogEdit,
    FoodLogList,
    FoodLogOut,
    SyncStatusOut,
)

if TYPE_CHECKING:
    from nutrilog.services.reconciler import SyncReconciler

router = APIRouter(prefix="/logs", tags=["logs"])


def _reconciler(request: Request) -> SyncReconciler:
    return request.app.state.container.reconciler


def _listing(reconciler: SyncReconciler) -> FoodLogList:
    return FoodLogList(
        logs=[FoodLogOut.from_entry(entry) for entry in reconciler.entries],
        status=SyncStatusOut.from_status(reconciler.status),
    )


@router.get("")
async def list_logs(request: Request) -> FoodLogList:
    """Return the local collection, restoring it from cache if needed."""
    reconciler = _reconciler(request)
    reconciler.restore_from_cache()
    return _listing(reconciler)


@router.post("/refresh")
async def refresh_logs(request: Request, limit: int | None = None) -> FoodLogList:
    """Merge backend history into the local collection."""
    reconciler = _reconciler(request)
    await reconciler.load_history(limit)
    return _listing(reconciler)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_log(body: FoodLogCreate, request: Request) -> FoodLogOut:
    """Log a meal; estimates nutrition unless a response is supplied."""
    reconciler = _reconciler(request)
    image = _decode_image(body.image_base64)
    food = body.food.strip()
    if body.estimation_response is not None:
        entry = (
            reconciler.add_local(food, body.estimation_response, image)
            if food
            else None
        )
    else:
        entry = await reconciler.submit(body.food, image)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Meal text is empty",
        )
    return FoodLogOut.from_entry(entry)


@router.patch("/{entry_id}", status_code=status.HTTP_202_ACCEPTED)
async def edit_log(entry_id: UUID, body: FoodLogEdit, request: Request) -> FoodLogOut:
    """Edit a meal's text and/or time."""
    reconciler = _reconciler(request)
    if reconciler.get(entry_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    reconciler.apply_edit(entry_id, body.food, body.timestamp)
    entry = reconciler.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return FoodLogOut.from_entry(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_log(entry_id: UUID, request: Request) -> dict[str, str]:
    """Delete a meal; the backend delete runs in the background."""
    reconciler = _reconciler(request)
    if reconciler.get(entry_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    reconciler.delete(entry_id)
    return {"status": "accepted"}


@router.post("/resync")
async def resync_logs(request: Request) -> dict[str, int]:
    """Retry the create call for pending entries."""
    synced = await _reconciler(request).resync_pending()
    return {"synced": synced}


def _decode_image(image_base64: str | None) -> bytes | None:
    if not image_base64:
        return None
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="image_base64 is not valid base64",
        ) from exc
