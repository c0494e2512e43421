"""
Local storage for the photographed record images.
"""

import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from errors import PersistenceError

logger = logging.getLogger(__name__)


class LocalImageStore:
    def __init__(self, base_dir: str = "medical-images"):
        self.base_dir = Path(base_dir)

    def filename_for(self, patient_id: str, timestamp_ms: Optional[int] = None) -> str:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        return f"{patient_id}_{timestamp_ms}.jpg"

    def upload(self, patient_id: str, data: bytes, timestamp_ms: Optional[int] = None) -> str:
        """Write the image and return its URL."""
        if not data:
            raise PersistenceError("Empty image upload", context={"patient_id": patient_id})
        path = self.base_dir / self.filename_for(patient_id, timestamp_ms)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError("Image upload failed", context={"path": str(path)}) from e
        logger.info("Stored record image %s", path.name)
        return path.resolve().as_uri()

    def delete(self, url: str) -> None:
        """Remove an image written by upload(); missing files are ignored."""
        path = Path(url2pathname(urlparse(url).path))
        if path.parent.resolve() != self.base_dir.resolve():
            raise PersistenceError("Image is outside the store", context={"url": url})
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError("Image delete failed", context={"path": str(path)}) from e
        logger.info("Removed record image %s", path.name)
