"""s3hsm object storage abstraction.

Backends:
- S3V4ObjectStore / S3V2ObjectStore: S3-compatible endpoints (boto3)
- FilesystemObjectStore: Local filesystem (dev/test)

Use ``connect(params)`` to obtain the backend selected by configuration.
"""

from s3hsm.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from s3hsm.storage.factory import connect, register_backend
from s3hsm.storage.object_store import ObjectStore

__all__ = [
    "ObjectStore",
    "ObjectNotFoundError",
    "PathTraversalError",
    "StorageBackendError",
    "connect",
    "register_backend",
]
