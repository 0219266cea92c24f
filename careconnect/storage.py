import logging
import os
import time
from pathlib import Path
from uuid import uuid4

from .config import settings

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Stores voice message audio on disk and serves it under a public URL prefix."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def key_for(self, owner_id: int, filename: str) -> str:
        safe_name = os.path.basename(filename or "recording.webm") or "recording.webm"
        return f"{owner_id}/{int(time.time() * 1000)}-{uuid4().hex}-{safe_name}"

    def upload(self, key: str, data: bytes) -> str:
        path = self.root / key
        if path.exists():
            raise FileExistsError(f"The resource already exists: {key}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("stored %d bytes at %s", len(data), key)
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


blob_store = LocalBlobStore(settings.media_dir, settings.media_url)
