from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Optional, Protocol, Tuple

from botocore.exceptions import ClientError

from tube2mp3.logging_utils import get_logger
from tube2mp3.models import ObjectMetadata


logger = get_logger(__name__)


NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class ObjectStore(Protocol):
    """Durable storage for published MP3s."""

    def head(self, key: str) -> Optional[ObjectMetadata]:
        """Return metadata for ``key``, or None if the object does not exist.

        Any other failure is raised.
        """

    def put_file(self, key: str, path: Path) -> int:
        """Upload ``path`` to ``key``, overwriting it. Returns bytes written."""


def is_not_found(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class S3ObjectStore(ObjectStore):
    """ObjectStore backed by an S3 (or S3-compatible) bucket."""

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def head(self, key: str) -> Optional[ObjectMetadata]:
        try:
            resp = self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                logger.info("Object s3://%s/%s does not exist", self._bucket, key)
                return None
            raise

        last_modified = resp["LastModified"]
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return ObjectMetadata(
            key=key,
            last_modified=last_modified,
            size=resp.get("ContentLength"),
        )

    def put_file(self, key: str, path: Path) -> int:
        size = path.stat().st_size
        logger.info(
            "Uploading %s (%d bytes) to s3://%s/%s", path, size, self._bucket, key
        )
        self._client.upload_file(
            str(path),
            self._bucket,
            key,
            ExtraArgs={"ContentType": "audio/mpeg"},
        )
        logger.info("Successfully uploaded s3://%s/%s", self._bucket, key)
        return size


class InMemoryObjectStore(ObjectStore):
    """Simple in-memory object store for development and tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Tuple[bytes, datetime]] = {}
        self._lock = RLock()

    def head(self, key: str) -> Optional[ObjectMetadata]:
        with self._lock:
            item = self._items.get(key)
        if item is None:
            return None
        data, last_modified = item
        return ObjectMetadata(key=key, last_modified=last_modified, size=len(data))

    def put_file(self, key: str, path: Path) -> int:
        data = path.read_bytes()
        self.put_bytes(key, data)
        return len(data)

    def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        last_modified: Optional[datetime] = None,
    ) -> None:
        with self._lock:
            self._items[key] = (data, last_modified or datetime.now(timezone.utc))

    def get_bytes(self, key: str) -> Optional[bytes]:
        with self._lock:
            item = self._items.get(key)
        return item[0] if item else None


__all__ = [
    "InMemoryObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "is_not_found",
]
