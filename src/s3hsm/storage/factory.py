"""Backend client factory.

Maps (backend, signature version) pairs from ConnectionParams to adapter
builders. This is the only place that knows which adapters exist; the
transfer orchestrator receives a connected ObjectStore and nothing else.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from botocore.exceptions import BotoCoreError

from s3hsm.config import ConnectionParams
from s3hsm.errors import ConfigError
from s3hsm.logging_config import TRACE_LOGGER_NAME
from s3hsm.storage.filesystem_store import FilesystemObjectStore
from s3hsm.storage.object_store import ObjectStore
from s3hsm.storage.s3_store import S3ObjectStore, S3V2ObjectStore, S3V4ObjectStore

logger = logging.getLogger(__name__)

BackendBuilder = Callable[[ConnectionParams, logging.Logger | None], ObjectStore]

# (backend, signature_version); a None version matches any requested version
_REGISTRY: dict[tuple[str, str | None], BackendBuilder] = {}


def register_backend(
    backend: str, signature_version: str | None, builder: BackendBuilder
) -> None:
    """Register an adapter builder for a backend/signature combination."""
    _REGISTRY[(backend, signature_version)] = builder


def supported_backends() -> list[tuple[str, str | None]]:
    """Return the registered (backend, signature_version) pairs."""
    return sorted(_REGISTRY, key=lambda item: (item[0], item[1] or ""))


def _s3_builder(store_cls: type[S3ObjectStore]) -> BackendBuilder:
    def build(params: ConnectionParams, trace_logger: logging.Logger | None) -> ObjectStore:
        if params.endpoint is None:
            raise ConfigError(f"endpoint is required for the {params.backend} backend")
        secret = params.secret_key.get_secret_value() if params.secret_key else None
        return store_cls(
            endpoint=params.endpoint,
            access_key=params.access_key,
            secret_key=secret,
            region=params.region,
            use_ssl=params.use_ssl,
            trace_logger=trace_logger,
        )

    return build


def _filesystem_builder(
    params: ConnectionParams, trace_logger: logging.Logger | None
) -> ObjectStore:
    return FilesystemObjectStore(base_dir=params.base_dir)


register_backend("s3", "v4", _s3_builder(S3V4ObjectStore))
register_backend("s3", "v2", _s3_builder(S3V2ObjectStore))
register_backend("filesystem", None, _filesystem_builder)


def connect(params: ConnectionParams, trace_logger: logging.Logger | None = None) -> ObjectStore:
    """Build a connected ObjectStore for ``params``.

    Args:
        params: Connection parameters.
        trace_logger: Logger receiving request/response traces when
            ``params.trace`` is set (default: the "s3hsm.trace" logger).

    Raises:
        ConfigError: If the backend/signature combination is unsupported or
            the client cannot be constructed from the parameters.
    """
    builder = _REGISTRY.get((params.backend, params.signature_version))
    if builder is None:
        builder = _REGISTRY.get((params.backend, None))
    if builder is None:
        supported = ", ".join(
            f"{backend}/{version or '*'}" for backend, version in supported_backends()
        )
        raise ConfigError(
            f"Unsupported backend {params.backend!r} with signature version "
            f"{params.signature_version!r} (supported: {supported})"
        )

    if params.trace:
        trace_logger = trace_logger or logging.getLogger(TRACE_LOGGER_NAME)
    else:
        trace_logger = None

    try:
        store = builder(params, trace_logger)
    except (BotoCoreError, ValueError) as e:
        raise ConfigError(f"Cannot create {params.backend} client: {e}") from e

    logger.debug(
        "Connected backend=%s signature_version=%s trace=%s",
        store.backend_name,
        params.signature_version,
        params.trace,
    )
    return store
