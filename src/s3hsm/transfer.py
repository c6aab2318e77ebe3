"""Transfer orchestration: store, retrieve and purge one object.

Each operation is a short state machine:

    IDLE -> CONNECTING -> TRANSFERRING -> DONE | FAILED

Start and elapsed time are logged to the diagnostic logger handed to the
orchestrator; stdout is left to the CLI, which prints the location.
No cleanup of partial objects or files is attempted on failure.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from s3hsm.config import ConnectionParams, ConnectorSettings
from s3hsm.crypto.keys import generate_key
from s3hsm.crypto.stream import get_cipher, wrap_for_decrypt, wrap_for_encrypt
from s3hsm.errors import ConfigError, SourceUnavailableError
from s3hsm.location import LocationCipher, ObjectLocation
from s3hsm.storage.factory import connect
from s3hsm.storage.object_store import ObjectStore

COPY_CHUNK_SIZE = 1024 * 1024

DESTINATION_MODE = 0o600

ConnectFn = Callable[[ConnectionParams, logging.Logger | None], ObjectStore]


class TransferState(str, Enum):
    """Lifecycle of a single transfer operation."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    TRANSFERRING = "TRANSFERRING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class TransferReport:
    """Outcome of one operation.

    Attributes:
        operation: "store", "retrieve" or "purge".
        state: Final (or current) state of the operation.
        bytes_transferred: Plaintext bytes moved (0 for purge).
        elapsed_seconds: Wall time from start to DONE/FAILED.
        error: Error message when the operation failed.
    """

    operation: str
    state: TransferState = TransferState.IDLE
    bytes_transferred: int = 0
    elapsed_seconds: float | None = None
    error: str | None = None


def _open_source(path: str | Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as e:
        raise SourceUnavailableError(
            f"Cannot open source file: {e.strerror or e}", path=str(path)
        ) from e


def _source_size(source: BinaryIO, path: str | Path) -> int:
    try:
        return os.fstat(source.fileno()).st_size
    except OSError as e:
        raise SourceUnavailableError(
            f"Cannot stat source file: {e.strerror or e}", path=str(path)
        ) from e


def _open_destination(path: str | Path) -> BinaryIO:
    """Open ``path`` for writing, truncating it; new files get mode 0600."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DESTINATION_MODE)
    except OSError as e:
        raise SourceUnavailableError(
            f"Cannot open destination file: {e.strerror or e}", path=str(path)
        ) from e
    return os.fdopen(fd, "wb")


class TransferOrchestrator:
    """Composes key generation, stream encryption and a backend client."""

    def __init__(
        self,
        settings: ConnectorSettings,
        *,
        connect_fn: ConnectFn = connect,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            settings: Validated connector settings.
            connect_fn: Builds the backend client from connection params.
            logger: Diagnostic logger; request traces go to its "trace" child.
            clock: Monotonic clock used for elapsed-time reporting.
        """
        self._settings = settings
        self._connect = connect_fn
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self.last_report: TransferReport | None = None

    @contextmanager
    def _transfer(self, operation: str, target: str) -> Iterator[TransferReport]:
        report = TransferReport(operation=operation)
        self.last_report = report
        started = self._clock()
        self._logger.info("%s started: %s", operation, target)
        try:
            yield report
        except Exception as e:
            report.state = TransferState.FAILED
            report.error = str(e)
            report.elapsed_seconds = self._clock() - started
            self._logger.error(
                "%s failed after %.3fs: %s", operation, report.elapsed_seconds, e
            )
            raise
        report.state = TransferState.DONE
        report.elapsed_seconds = self._clock() - started
        self._logger.info(
            "%s done in %.3fs (%d bytes)",
            operation,
            report.elapsed_seconds,
            report.bytes_transferred,
        )

    def _open_store(self, report: TransferReport) -> ObjectStore:
        report.state = TransferState.CONNECTING
        store = self._connect(self._settings.connection, self._logger.getChild("trace"))
        report.state = TransferState.TRANSFERRING
        return store

    def _location_for(
        self, bucket: str, key: str, cipher: LocationCipher | None = None
    ) -> ObjectLocation:
        return ObjectLocation.for_object(
            self._settings.scheme,
            bucket,
            key,
            naming=self._settings.naming,
            instance=self._settings.instance,
            cipher=cipher,
        )

    def _resolve(self, location: str | ObjectLocation) -> tuple[ObjectLocation, str, str]:
        if not isinstance(location, ObjectLocation):
            location = ObjectLocation.decode(location)
        bucket, key = location.bucket_and_key(self._settings.naming)
        return location, bucket, key

    def store(
        self,
        object_key: str,
        local_path: str | Path,
        bucket: str | None = None,
        encrypt: bool | None = None,
    ) -> ObjectLocation:
        """Upload ``local_path`` as ``bucket/object_key``.

        Args:
            object_key: Key of the object in the bucket.
            local_path: File to upload.
            bucket: Target bucket; defaults to the configured bucket.
            encrypt: Encrypt with a fresh key; defaults to the configured flag.

        Returns:
            The location of the stored object, carrying the key if encrypted.

        Raises:
            ConfigError: If no bucket is given or configured.
            SourceUnavailableError: If ``local_path`` cannot be opened.
            StorageBackendError: If the upload fails.
        """
        bucket = bucket or self._settings.bucket
        if not bucket:
            raise ConfigError("No bucket given and no default bucket configured")
        if encrypt is None:
            encrypt = self._settings.encrypt
        cipher = get_cipher(self._settings.cipher)

        plain_location = self._location_for(bucket, object_key)
        with self._transfer("store", plain_location.redacted()) as report:
            with _open_source(local_path) as source:
                size = _source_size(source, local_path)
                key = generate_key(cipher.key_size) if encrypt else None
                store = self._open_store(report)
                reader = wrap_for_encrypt(source, key, cipher)
                try:
                    store.upload(bucket, object_key, reader)
                finally:
                    if reader is not source:
                        reader.close()
                report.bytes_transferred = size

        if key is None:
            return plain_location
        return self._location_for(bucket, object_key, LocationCipher(cipher.tag, key))

    def retrieve(self, location: str | ObjectLocation, local_path: str | Path) -> None:
        """Download the object at ``location`` into ``local_path``.

        The object is decrypted on the fly when the location carries a key.
        Existing content of ``local_path`` is replaced.

        Raises:
            LocationError: If the location cannot be decoded.
            InvalidKeyLengthError: If the embedded key does not fit its cipher.
            ObjectNotFoundError: If the backend has no such object.
            StorageBackendError: If the download fails.
            SourceUnavailableError: If ``local_path`` cannot be opened.
        """
        location, bucket, key = self._resolve(location)
        cipher = None
        raw_key = None
        if location.cipher is not None:
            cipher = get_cipher(location.cipher.etype)
            raw_key = location.cipher.key
            cipher.check_key(raw_key)

        with self._transfer("retrieve", location.redacted()) as report:
            store = self._open_store(report)
            body = store.download(bucket, key)
            with closing(body), _open_destination(local_path) as out:
                if cipher is None:
                    writer = out
                else:
                    writer = wrap_for_decrypt(out, raw_key, cipher)
                try:
                    while True:
                        chunk = body.read(COPY_CHUNK_SIZE)
                        if not chunk:
                            break
                        writer.write(chunk)
                        report.bytes_transferred += len(chunk)
                finally:
                    if writer is not out:
                        writer.close()

    def purge(self, location: str | ObjectLocation) -> None:
        """Delete the object at ``location``.

        Raises:
            LocationError: If the location cannot be decoded.
            StorageBackendError: If the backend reports an error, including
                a missing object.
        """
        location, bucket, key = self._resolve(location)
        with self._transfer("purge", location.redacted()) as report:
            store = self._open_store(report)
            store.delete(bucket, key)
