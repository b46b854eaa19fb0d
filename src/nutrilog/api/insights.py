"""Onboarding and glucose insight endpoints."""

from __future__ import annotations

import logging
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, HTTPException, Request, status

from nutrilog.api.schemas import MealInsightsOut, OnboardingOut
from nutrilog.services.timestamps import DISTANT_PAST

router = APIRouter(tags=["insights"])

_logger = logging.getLogger(__name__)


@router.post("/onboarding")
async def onboard(request: Request, days: int = 365) -> OnboardingOut:
    """Register this installation and upload its health history."""
    health_service = request.app.state.container.health_service
    if health_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Health data is not configured",
        )
    try:
        uploaded = await health_service.onboard(days=days)
    except Exception as exc:
        _logger.exception("Health history upload failed")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Health upload failed.",
        ) from exc
    return OnboardingOut(uploaded=uploaded)


@router.get("/logs/{entry_id}/glucose")
async def meal_glucose(entry_id: UUID, request: Request) -> MealInsightsOut:
    """Return glucose readings and metrics around a logged meal."""
    container = request.app.state.container
    entry = container.reconciler.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if container.glucose_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Glucose data is not configured",
        )
    if entry.timestamp == DISTANT_PAST:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Entry has no usable timestamp",
        )
    insights = await container.glucose_service.meal_insights(
        entry.timestamp, container.reconciler.entries
    )
    return MealInsightsOut.from_insights(insights)
