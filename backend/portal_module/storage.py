import logging
import os
import re
import uuid
from collections.abc import Callable
from typing import TypeVar

from .config import settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

BUCKETS = ("registration-docs", "payment-proofs", "uploads")
_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")


class StorageError(Exception):
    pass


class LocalObjectStorage:
    """Bucketed file storage on local disk, served under a public URL prefix."""

    def __init__(self, root: str, public_base: str = "/storage"):
        self.root = root
        self.public_base = public_base.rstrip("/")

    def _path(self, bucket: str, key: str) -> str:
        if bucket not in BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}")
        segments = key.split("/")
        if not segments or any(not _SAFE_SEGMENT.match(s) or s in {".", ".."} for s in segments):
            raise StorageError("Invalid object key")
        return os.path.join(self.root, bucket, *segments)

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        if len(data) > settings.max_upload_bytes:
            raise StorageError("File exceeds the upload size limit")
        path = self._path(bucket, key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            raise StorageError(f"Upload failed: {exc}") from exc
        return self.public_url(bucket, key)

    def delete(self, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Delete failed: {exc}") from exc

    def exists(self, bucket: str, key: str) -> bool:
        return os.path.isfile(self._path(bucket, key))

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base}/{bucket}/{key}"


def build_object_key(owner_id: str, kind: str, filename: str | None) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext and not _SAFE_SEGMENT.match(ext):
        ext = ""
    return f"{owner_id}/{kind}-{uuid.uuid4().hex}{ext}"


def upload_then_record(
    storage: LocalObjectStorage,
    *,
    bucket: str,
    key: str,
    data: bytes,
    record: Callable[[str], T],
) -> T:
    """Store the file, then persist its URL via ``record``.

    The two steps are not atomic; when ``record`` fails the stored file is
    deleted before the error propagates.
    """
    url = storage.upload(bucket, key, data)
    try:
        return record(url)
    except Exception:
        try:
            storage.delete(bucket, key)
        except StorageError as cleanup_exc:
            logger.error("Orphaned upload %s/%s could not be removed: %s", bucket, key, cleanup_exc)
        raise


_storage: LocalObjectStorage | None = None


def get_storage() -> LocalObjectStorage:
    global _storage
    if _storage is None:
        _storage = LocalObjectStorage(settings.storage_dir, settings.storage_public_base)
    return _storage
