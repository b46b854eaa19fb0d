"""Stable installation user id persisted in a file."""

from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from nutrilog.services.reconciler import UserIdProvider


@dataclass
class FileUserIdProvider(UserIdProvider):
    """Reads the user id from ``path``, creating it on first use."""

    path: Path

    def get_or_create(self) -> str:
        """Return the stored id, generating and saving a new one if absent."""
        if self.path.is_file():
            stored = self.path.read_text(encoding="utf-8").strip()
            if stored:
                return stored
        user_id = str(uuid4()).upper()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(user_id, encoding="utf-8")
        return user_id
