"""Two-step image upload: negotiate a URL, then PUT the bytes directly."""

from dataclasses import dataclass
from uuid import uuid4

import httpx

from nutrilog.services.reconciler import EventGateway, ImageUploader

JPEG_CONTENT_TYPE = "image/jpeg"


@dataclass
class HttpxImageUploader(ImageUploader):
    """Uploads images to the write URL handed out by the backend."""

    gateway: EventGateway
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30

    @classmethod
    def create(
        cls, gateway: EventGateway, timeout_seconds: float = 30
    ) -> "HttpxImageUploader":
        """Create an uploader with a managed httpx session."""
        return cls(
            gateway=gateway,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    async def upload_image(self, image_bytes: bytes, user_id: str) -> str:
        """Upload JPEG bytes and return their public URL."""
        target = await self.gateway.negotiate_upload(
            user_id, f"{uuid4()}.jpg", JPEG_CONTENT_TYPE
        )
        response = await self.http_client.put(
            target.upload_url,
            content=image_bytes,
            headers={"Content-Type": JPEG_CONTENT_TYPE},
            timeout=self.timeout_seconds,
        )
        if not response.is_success:
            raise RuntimeError(f"Image upload failed with {response.status_code}")
        return target.public_url

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
