"""s3hsm object storage interface definition.

Provides the ObjectStore interface that every backend adapter implements.
The transfer orchestrator only ever talks to this interface, so S3 signing
variants, the local filesystem backend and test doubles are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Implementations:
    - S3V4ObjectStore: S3-compatible endpoint, SigV4 request signing
    - S3V2ObjectStore: S3-compatible endpoint, legacy SigV2 request signing
    - FilesystemObjectStore: Local filesystem (dev/test)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability.

        Returns:
            Backend name string (e.g., "filesystem", "s3v4").
        """
        ...

    @abstractmethod
    def upload(self, bucket: str, key: str, stream: BinaryIO) -> None:
        """Store an object by reading ``stream`` until EOF.

        The stream is read sequentially and is never rewound, so it may be
        a non-seekable transform such as an encrypting reader. The caller
        owns the stream; implementations must not close it.

        Args:
            bucket: Bucket (container) name.
            key: Object key within the bucket.
            stream: Readable binary stream providing the object content.

        Raises:
            PathTraversalError: If bucket or key escape the backend namespace.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def download(self, bucket: str, key: str) -> BinaryIO:
        """Open an object for sequential reading.

        The caller owns the returned stream and must close it.

        Args:
            bucket: Bucket (container) name.
            key: Object key within the bucket.

        Returns:
            Readable binary stream over the object content.

        Raises:
            ObjectNotFoundError: If the object or bucket does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object.

        Args:
            bucket: Bucket (container) name.
            key: Object key within the bucket.

        Raises:
            ObjectNotFoundError: If the backend reports the object missing.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...
