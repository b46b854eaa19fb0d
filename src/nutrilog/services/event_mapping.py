"""Mapping between backend events and food log entries."""

import logging
from uuid import NAMESPACE_URL, UUID, uuid5

from nutrilog.domain.entries import FoodLogEntry
from nutrilog.domain.events import RemoteEvent
from nutrilog.services.json_values import (
    as_identifier,
    as_number,
    as_object,
    as_string,
    json_kind,
)
from nutrilog.services.parsing import carbs_grams, decimal_from_text
from nutrilog.services.timestamps import (
    DISTANT_PAST,
    format_iso_timestamp,
    parse_server_timestamp,
)

FOOD_LOG_EVENT_TYPE = "food_log"
DEFAULT_FOOD = "Food"
DEFAULT_EVENT_CARBS_TEXT = "15 g"
_ENTRY_NAMESPACE = uuid5(NAMESPACE_URL, "nutrilog:food_log")

_logger = logging.getLogger(__name__)


def decode_event(value: object) -> RemoteEvent | None:
    """Decode one element of a ``get_events`` response."""
    row = as_object(value)
    if row is None:
        _logger.warning("Skipping event with unexpected shape: %s", json_kind(value))
        return None
    event_type = as_string(row.get("event_type"))
    if event_type is None:
        _logger.warning("Skipping event without event_type")
        return None
    return RemoteEvent(
        event_id=as_identifier(row.get("event_id")),
        event_type=event_type,
        user_id=as_identifier(row.get("user_id")),
        timestamp_iso=as_string(row.get("timestampISO")),
        timestamp=as_string(row.get("timestamp")),
        details=as_object(row.get("details")) or {},
    )


def event_to_entry(event: RemoteEvent) -> FoodLogEntry | None:
    """Map a backend event to an entry; non food-log events map to None."""
    if event.event_type != FOOD_LOG_EVENT_TYPE:
        return None
    if event.event_id is None:
        _logger.warning("Skipping food_log event without event_id")
        return None
    details = event.details
    food = as_string(details.get("food")) or DEFAULT_FOOD
    explanation = as_string(details.get("calculation_steps"))
    if explanation is None:
        explanation = as_string(details.get("serverResponse"))
    timestamp = parse_server_timestamp(
        as_string(details.get("timestampISO")) or event.timestamp_iso or event.timestamp
    )
    return FoodLogEntry(
        id=entry_id_for_remote(event.event_id),
        remote_id=event.event_id,
        timestamp=timestamp or DISTANT_PAST,
        display_food=food,
        carbs_text=_carbs_text_from_details(details),
        explanation=explanation,
        original_query=as_string(details.get("originalQuery")) or food,
        image_remote_url=as_string(details.get("image_s3_url")),
    )


def entry_id_for_remote(remote_id: str) -> UUID:
    """Stable local id for an event first seen on the backend."""
    return uuid5(_ENTRY_NAMESPACE, remote_id)


def entry_to_details(entry: FoodLogEntry) -> dict[str, object]:
    """Build the outbound ``details`` payload for create and update calls."""
    grams = carbs_grams(entry.carbs_text)
    explanation = entry.explanation or ""
    details: dict[str, object] = {
        "food": entry.display_food,
        "carbsText": entry.carbs_text,
        "total_carbs_g": round(grams) if grams is not None else 0,
        "serverResponse": explanation,
        "calculation_steps": explanation,
        "originalQuery": entry.original_query,
        "timestampISO": format_iso_timestamp(entry.timestamp),
    }
    if entry.image_remote_url:
        details["image_s3_url"] = entry.image_remote_url
    return details


def _carbs_text_from_details(details: dict[str, object]) -> str:
    carbs_text = as_string(details.get("carbsText"))
    if carbs_text and carbs_text.strip():
        return carbs_text
    for key in ("carbs_g", "total_carbs_g"):
        grams = _strict_number(details.get(key))
        if grams is not None:
            return f"{grams:.0f} g"
    return DEFAULT_EVENT_CARBS_TEXT


def _strict_number(value: object) -> float | None:
    number = as_number(value)
    if number is not None:
        return number
    text = as_string(value)
    if text is None:
        return None
    return decimal_from_text(text.strip())
