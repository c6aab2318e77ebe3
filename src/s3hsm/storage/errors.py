"""s3hsm object storage error types.

Backend failures are fatal from the connector's point of view: they are
reported with the backend's error detail and the process exits non-zero.
"""

from __future__ import annotations

from s3hsm.errors import HsmConnectorError


class StorageBackendError(HsmConnectorError):
    """Raised when the storage backend cannot complete an operation.

    Attributes:
        message: Human-readable error message.
        bucket: Bucket associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
        cause: The underlying exception raised by the backend client.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.bucket = bucket
        self.key = key
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(StorageBackendError):
    """Raised when the object or its bucket does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key, cause=cause)


class PathTraversalError(StorageBackendError):
    """Raised when a bucket or key would escape the storage sandbox.

    Only the filesystem backend raises this; keys like "../x" or "/abs"
    are rejected before touching disk.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
