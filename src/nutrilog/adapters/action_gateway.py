"""Backend event gateway speaking the JSON action protocol."""

import json
import logging
from dataclasses import dataclass

import httpx

from nutrilog.domain.events import RemoteEvent, UploadTarget
from nutrilog.domain.health import HealthSummary
from nutrilog.services.event_mapping import decode_event
from nutrilog.services.health import HealthBatchUploader, UserRegistrar
from nutrilog.services.json_values import (
    as_array,
    as_bool,
    as_identifier,
    as_object,
    as_string,
)
from nutrilog.services.reconciler import EventGateway

_logger = logging.getLogger(__name__)


@dataclass
class HttpxActionGateway(EventGateway, HealthBatchUploader, UserRegistrar):
    """Gateway that POSTs ``{"action", "payload"}`` envelopes with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15

    @classmethod
    def create(cls, base_url: str, timeout_seconds: float = 15) -> "HttpxActionGateway":
        """Create a gateway with a managed httpx session."""
        return cls(
            base_url=base_url,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    async def post_action(self, action: str, payload: dict[str, object]) -> object:
        """Send one action and return the decoded JSON body (None if empty)."""
        response = await self.http_client.post(
            self.base_url,
            json={"action": action, "payload": payload},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError:
            _logger.warning("Action %s returned a non-JSON body", action)
            return None

    async def create_user(
        self, user_id: str, name: str | None = None, email: str | None = None
    ) -> None:
        """Register the installation user with the backend."""
        await self.post_action(
            "create_user", {"user_id": user_id, "name": name, "email": email}
        )

    async def create_event(
        self, user_id: str, event_type: str, details: dict[str, object]
    ) -> str:
        """Create an event and return its id."""
        body = as_object(
            await self.post_action(
                "add_event",
                {"user_id": user_id, "event_type": event_type, "details": details},
            )
        )
        result = as_object(body.get("result")) if body else None
        event_id = as_identifier(result.get("event_id")) if result else None
        if event_id is None and body:
            event_id = as_identifier(body.get("event_id"))
        if event_id is None:
            raise RuntimeError("add_event response did not include an event_id")
        return event_id

    async def update_event(
        self, user_id: str, remote_id: str, details: dict[str, object]
    ) -> None:
        """Replace the details of an event."""
        await self.post_action(
            "update_event",
            {"user_id": user_id, "event_id": remote_id, "details": details},
        )

    async def delete_event(self, user_id: str, remote_id: str) -> None:
        """Delete an event."""
        await self.post_action(
            "delete_event", {"user_id": user_id, "event_id": remote_id}
        )

    async def list_events(self, user_id: str, limit: int) -> list[RemoteEvent]:
        """Return recent events; rows with an unexpected shape are skipped."""
        body = await self.post_action(
            "get_events", {"user_id": user_id, "limit": limit}
        )
        envelope = as_object(body)
        rows = as_array(envelope.get("events")) if envelope else as_array(body)
        events: list[RemoteEvent] = []
        for row in rows or []:
            event = decode_event(row)
            if event is not None:
                events.append(event)
        return events

    async def negotiate_upload(
        self, user_id: str, filename: str, content_type: str
    ) -> UploadTarget:
        """Ask the backend for a direct-upload URL and its public URL."""
        body = as_object(
            await self.post_action(
                "get_image_upload_url",
                {
                    "user_id": user_id,
                    "filename": filename,
                    "content_type": content_type,
                },
            )
        )
        if body is None:
            raise RuntimeError("Could not get upload URL")
        upload_url = as_string(body.get("upload_url"))
        public_url = as_string(body.get("public_url"))
        if as_bool(body.get("ok")) is not True or not upload_url or not public_url:
            raise RuntimeError(as_string(body.get("error")) or "Could not get upload URL")
        return UploadTarget(upload_url=upload_url, public_url=public_url)

    async def upload_health_batch(
        self, user_id: str, summaries: list[HealthSummary]
    ) -> None:
        """Upload daily health summaries."""
        await self.post_action(
            "upload_health_batch",
            {
                "user_id": user_id,
                "data": [_summary_payload(summary) for summary in summaries],
            },
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _summary_payload(summary: HealthSummary) -> dict[str, object]:
    return {
        "dateISO8601": summary.day.isoformat(),
        "steps": summary.steps,
        "activeEnergyKcal": summary.active_energy_kcal,
        "carbsG": summary.carbs_g,
        "exerciseMin": summary.exercise_min,
        "heartRateBPM": summary.heart_rate_bpm,
        "glucoseMgdl": summary.glucose_mgdl,
        "insulinIU": summary.insulin_iu,
    }
