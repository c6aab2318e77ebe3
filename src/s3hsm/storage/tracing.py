"""s3hsm object storage OpenTelemetry tracing integration.

Provides a tracing decorator for backend operations.

Security:
    - Object keys are exported only as SHA-256 digests
    - Key material, locations and credentials never appear in span attributes
"""

from __future__ import annotations

import functools
import hashlib
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

F = TypeVar("F", bound=Callable[..., Any])

S3HSM_OTEL_ENABLED_ENV = "S3HSM_OTEL_ENABLED"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(S3HSM_OTEL_ENABLED_ENV, False)


def traced_backend_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace backend operations with OpenTelemetry.

    Emits spans with safe attributes (bucket, key digest, backend name).
    Tracing is a no-op unless S3HSM_OTEL_ENABLED is set and the
    opentelemetry API is installed.

    Args:
        operation: Operation name ("upload", "download", "delete").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, bucket: str, key: str, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, bucket, key, *args, **kwargs)

            try:
                from opentelemetry import trace
            except ImportError:
                return func(self, bucket, key, *args, **kwargs)

            tracer = trace.get_tracer("s3hsm.object_store")
            with tracer.start_as_current_span(f"s3hsm.object_store.{operation}") as span:
                span.set_attribute("s3hsm.bucket", bucket)
                key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                span.set_attribute("s3hsm.object_key_sha256", key_sha256)
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                try:
                    return func(self, bucket, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

        return cast(F, wrapper)

    return decorator
