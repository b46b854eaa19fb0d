"""Domain models for backend events."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteEvent:
    """Event row returned by the backend event store."""

    event_id: str | None
    event_type: str
    user_id: str | None
    timestamp_iso: str | None
    timestamp: str | None
    details: dict[str, object]


@dataclass(frozen=True)
class UploadTarget:
    """Write target and public read URL for a negotiated image upload."""

    upload_url: str
    public_url: str
