"""Image cache on the local filesystem, keyed by entry id."""

import logging
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import httpx

from nutrilog.services.reconciler import ImageStore

_logger = logging.getLogger(__name__)


@dataclass
class FileImageStore(ImageStore):
    """Stores ``<entry id>.jpg`` files in one directory."""

    directory: Path
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30

    @classmethod
    def create(cls, directory: Path, timeout_seconds: float = 30) -> "FileImageStore":
        """Create an image store with a managed httpx session."""
        return cls(
            directory=directory,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    def path_for(self, entry_id: UUID) -> Path:
        """Return the deterministic file path for an entry."""
        return self.directory / f"{entry_id}.jpg"

    def save(self, entry_id: UUID, image_bytes: bytes) -> str:
        """Write image bytes and return the file name."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(entry_id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(image_bytes)
        tmp_path.replace(path)
        return path.name

    def load(self, entry_id: UUID) -> bytes | None:
        """Return cached bytes, if present."""
        path = self.path_for(entry_id)
        if not path.is_file():
            return None
        return path.read_bytes()

    def exists(self, entry_id: UUID) -> bool:
        """Return True if the entry has a cached image."""
        return self.path_for(entry_id).is_file()

    async def load_or_download(
        self, entry_id: UUID, remote_url: str | None
    ) -> bytes | None:
        """Return cached bytes or download and cache them from ``remote_url``."""
        cached = self.load(entry_id)
        if cached is not None:
            return cached
        if not remote_url:
            return None
        try:
            response = await self.http_client.get(
                remote_url, timeout=self.timeout_seconds
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            _logger.warning("Image download failed for %s: %s", entry_id, exc)
            return None
        if not response.content:
            return None
        self.save(entry_id, response.content)
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
