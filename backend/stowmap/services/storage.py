import logging
import re
import uuid
from functools import lru_cache
from pathlib import Path

from ..config import get_settings
from ..errors import NotFound, StorageError, ValidationError

logger = logging.getLogger(__name__)

BLOB_ID_RE = re.compile(r"^[0-9a-f]{32}$")
MAX_BLOB_BYTES = 10 * 1024 * 1024


class LocalBlobStore:
    """Blueprint background images as flat files under one directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, blob_id: str) -> Path:
        if not BLOB_ID_RE.match(blob_id or ""):
            raise ValidationError("Invalid blob id")
        return self.root / blob_id

    def put(self, data: bytes) -> str:
        if not data:
            raise ValidationError("Empty upload")
        if len(data) > MAX_BLOB_BYTES:
            raise ValidationError("Upload too large")
        blob_id = uuid.uuid4().hex
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path(blob_id).write_bytes(data)
        except OSError as exc:
            logger.error("blob write failed: %s", exc)
            raise StorageError("Could not store blob", retryable=True) from exc
        return blob_id

    def get(self, blob_id: str) -> bytes:
        path = self._path(blob_id)
        if not path.is_file():
            raise NotFound("Blob not found")
        return path.read_bytes()

    def delete(self, blob_id: str) -> None:
        self._path(blob_id).unlink()

    def discard(self, blob_id: str) -> bool:
        """Best-effort delete; failures are logged, never raised."""
        try:
            self.delete(blob_id)
            return True
        except (OSError, ValidationError) as exc:
            logger.warning("blob cleanup failed", extra={"blob_id": blob_id, "error": str(exc)})
            return False


@lru_cache
def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore(get_settings().blob_dir)
