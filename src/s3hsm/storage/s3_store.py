"""s3hsm S3-compatible object storage backends.

One adapter per request-signing protocol:
- S3V4ObjectStore: AWS Signature Version 4 ("s3v4")
- S3V2ObjectStore: legacy Signature Version 2 ("s3"), still required by
  some older S3-compatible appliances

Both use path-style addressing unconditionally, since virtual-host style
requires DNS wildcards most non-AWS endpoints do not provide. Transfers are
single-threaded and the botocore retry loop is disabled: retrying is the
calling HSM's job.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3hsm.storage.errors import ObjectNotFoundError, StorageBackendError
from s3hsm.storage.object_store import ObjectStore
from s3hsm.storage.tracing import traced_backend_operation

logger = logging.getLogger(__name__)

DATA_CONTENT_TYPE = "binary/octet-stream"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NotFound", "404"})

_REDACTED_HEADERS = frozenset({"authorization", "x-amz-security-token"})


def _classify_error(error: Exception, operation: str, bucket: str, key: str) -> StorageBackendError:
    """Map a boto3/botocore exception to a StorageBackendError subclass."""
    client_error: ClientError | None = None
    if isinstance(error, ClientError):
        client_error = error
    elif isinstance(error, S3UploadFailedError) and isinstance(error.__cause__, ClientError):
        client_error = error.__cause__

    if client_error is not None:
        code = str(client_error.response.get("Error", {}).get("Code", ""))
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(
                message=f"{operation} failed: {code}",
                bucket=bucket,
                key=key,
                cause=error,
            )

    return StorageBackendError(
        message=f"{operation} failed: {error}",
        bucket=bucket,
        key=key,
        cause=error,
    )


class _BorrowedStream:
    """Read-only view of a caller-owned stream for the managed transfer.

    s3transfer closes the file object it uploads from; this view keeps the
    underlying handle open. Reads are filled until EOF so multipart parts
    never come out short, and the view is not seekable so s3transfer only
    reads it sequentially.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self.closed = False

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._stream.read()
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        self.closed = True


class _S3ObjectStream:
    """Readable view over a GetObject body that reports backend errors typed."""

    def __init__(self, body: Any, bucket: str, key: str) -> None:
        self._body = body
        self._bucket = bucket
        self._key = key

    def read(self, size: int = -1) -> bytes:
        try:
            if size is None or size < 0:
                return self._body.read()
            return self._body.read(size)
        except BotoCoreError as e:
            raise _classify_error(e, "download", self._bucket, self._key) from e

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self._body.close()

    def __enter__(self) -> _S3ObjectStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class _RequestTracer:
    """Logs every request and response of one client to a trace logger.

    Attached through the client's own event system, so enabling tracing for
    one client never changes botocore's process-wide logging.
    """

    def __init__(self, trace_logger: logging.Logger) -> None:
        self._logger = trace_logger

    def attach(self, client: Any) -> None:
        events = client.meta.events
        events.register("before-send.s3", self.on_request)
        events.register("after-call.s3", self.on_response)

    def on_request(self, request: Any, **kwargs: Any) -> None:
        headers = {
            name: ("<redacted>" if name.lower() in _REDACTED_HEADERS else value)
            for name, value in request.headers.items()
        }
        self._logger.debug("request: %s %s headers=%s", request.method, request.url, headers)

    def on_response(self, http_response: Any, model: Any = None, **kwargs: Any) -> None:
        operation = getattr(model, "name", "unknown")
        self._logger.debug(
            "response: %s status=%s headers=%s",
            operation,
            http_response.status_code,
            dict(http_response.headers),
        )


class S3ObjectStore(ObjectStore):
    """boto3-backed object store for S3-compatible endpoints.

    Subclasses select the request signing protocol through
    ``SIGNATURE_VERSION``.
    """

    SIGNATURE_VERSION: str = "s3v4"
    BACKEND_NAME: str = "s3v4"

    def __init__(
        self,
        *,
        endpoint: str,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        use_ssl: bool = False,
        trace_logger: logging.Logger | None = None,
    ) -> None:
        """Create a client for ``endpoint``.

        Args:
            endpoint: Host and optional port of the object store (no scheme).
            access_key: Access key id; None uses the default credential chain.
            secret_key: Secret access key.
            region: Signing region.
            use_ssl: Whether to talk HTTPS. Never derived from the endpoint.
            trace_logger: When given, every request/response is logged to it.
        """
        scheme = "https" if use_ssl else "http"
        self._endpoint_url = f"{scheme}://{endpoint}"

        config = BotoConfig(
            signature_version=self.SIGNATURE_VERSION,
            s3={"addressing_style": "path"},
            retries={"total_max_attempts": 1, "mode": "standard"},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            use_ssl=use_ssl,
            config=config,
        )
        self._transfer_config = TransferConfig(use_threads=False)

        if trace_logger is not None:
            _RequestTracer(trace_logger).attach(self._client)

        logger.debug(
            "%s initialized with endpoint=%s",
            type(self).__name__,
            self._endpoint_url,
        )

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return self.BACKEND_NAME

    @property
    def client(self) -> Any:
        """Return the underlying boto3 client."""
        return self._client

    @property
    def endpoint_url(self) -> str:
        """Return the endpoint URL the client talks to."""
        return self._endpoint_url

    @traced_backend_operation("upload")
    def upload(self, bucket: str, key: str, stream: BinaryIO) -> None:
        """Upload ``stream`` to ``bucket/key``. The stream is left open."""
        try:
            self._client.upload_fileobj(
                _BorrowedStream(stream),
                bucket,
                key,
                ExtraArgs={"ContentType": DATA_CONTENT_TYPE},
                Config=self._transfer_config,
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise _classify_error(e, "upload", bucket, key) from e

        logger.debug("Uploaded object: bucket=%s key=%s", bucket, key)

    @traced_backend_operation("download")
    def download(self, bucket: str, key: str) -> BinaryIO:
        """Open ``bucket/key`` for streaming."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _classify_error(e, "download", bucket, key) from e

        return _S3ObjectStream(response["Body"], bucket, key)  # type: ignore[return-value]

    @traced_backend_operation("delete")
    def delete(self, bucket: str, key: str) -> None:
        """Delete ``bucket/key``."""
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _classify_error(e, "delete", bucket, key) from e

        logger.debug("Deleted object: bucket=%s key=%s", bucket, key)


class S3V4ObjectStore(S3ObjectStore):
    """S3-compatible store signing requests with Signature Version 4."""

    SIGNATURE_VERSION = "s3v4"
    BACKEND_NAME = "s3v4"


class S3V2ObjectStore(S3ObjectStore):
    """S3-compatible store signing requests with legacy Signature Version 2."""

    SIGNATURE_VERSION = "s3"
    BACKEND_NAME = "s3v2"
