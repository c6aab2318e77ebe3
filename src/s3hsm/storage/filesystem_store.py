"""s3hsm filesystem object storage backend.

Provides local filesystem storage for development and testing with:
- Buckets as top-level directories under a base directory
- Path traversal protection for buckets and keys
- Atomic object replacement via temp file + rename

Environment Variables:
    S3HSM_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / s3hsm_objects)
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO

from s3hsm.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from s3hsm.storage.object_store import ObjectStore
from s3hsm.storage.tracing import traced_backend_operation

logger = logging.getLogger(__name__)

S3HSM_BASE_DIR_ENV = "S3HSM_BASE_DIR"

COPY_CHUNK_SIZE = 1024 * 1024

_BUCKET_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,254}$")

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./:+=@,]+$")


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - ".." and "." segments, empty segments
    - Absolute paths (starting with / or ~)
    - Backslashes and null bytes
    - Characters outside the safe key set
    """
    if not key:
        return True

    if "\x00" in key or "\\" in key:
        return True

    if key.startswith("/") or key.startswith("~"):
        return True

    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return True

    return not bool(_SAFE_KEY_PATTERN.match(key))


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    Objects are stored as plain files:
        {base_dir}/{bucket}/{key}

    A bucket must exist (as a directory) before objects can be stored in it,
    mirroring object-store semantics where buckets are provisioned upfront.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                S3HSM_BASE_DIR env var or OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(S3HSM_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "s3hsm_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _bucket_dir(self, bucket: str) -> Path:
        if not _BUCKET_PATTERN.match(bucket) or bucket in (".", ".."):
            raise PathTraversalError(
                message="Invalid bucket name",
                bucket=bucket,
            )
        return self._base_dir / bucket

    def _object_path(self, bucket: str, key: str) -> Path:
        """Resolve the file for an object, validating inputs."""
        bucket_dir = self._bucket_dir(bucket)
        if _is_path_traversal(key):
            raise PathTraversalError(
                message="Invalid key: path traversal or unsafe characters detected",
                bucket=bucket,
                key=key,
            )

        path = bucket_dir / key
        try:
            path.resolve().relative_to(bucket_dir.resolve())
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside bucket directory",
                bucket=bucket,
                key=key,
            ) from e
        return path

    def _require_bucket(self, bucket: str, key: str) -> None:
        if not self._bucket_dir(bucket).is_dir():
            raise ObjectNotFoundError(
                message="Bucket not found",
                bucket=bucket,
                key=key,
            )

    @traced_backend_operation("upload")
    def upload(self, bucket: str, key: str, stream: BinaryIO) -> None:
        """Store an object by streaming it into a temp file and renaming."""
        path = self._object_path(bucket, key)
        self._require_bucket(bucket, key)

        tmp_file = path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"
        size = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_file.open("wb") as out:
                while True:
                    chunk = stream.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    size += len(chunk)
            tmp_file.replace(path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        logger.debug("Stored object: bucket=%s key=%s size=%d", bucket, key, size)

    @traced_backend_operation("download")
    def download(self, bucket: str, key: str) -> BinaryIO:
        """Open an object file for reading."""
        path = self._object_path(bucket, key)
        self._require_bucket(bucket, key)

        if not path.is_file():
            raise ObjectNotFoundError(
                message="Object not found",
                bucket=bucket,
                key=key,
            )
        try:
            return path.open("rb")
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    @traced_backend_operation("delete")
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object file."""
        path = self._object_path(bucket, key)
        self._require_bucket(bucket, key)

        if not path.is_file():
            raise ObjectNotFoundError(
                message="Object not found",
                bucket=bucket,
                key=key,
            )
        try:
            path.unlink()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        logger.debug("Deleted object: bucket=%s key=%s", bucket, key)
