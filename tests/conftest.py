"""Pytest configuration and fixtures for s3hsm tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import pytest

from s3hsm.config import ConnectionParams, ConnectorSettings
from s3hsm.storage.errors import ObjectNotFoundError
from s3hsm.storage.object_store import ObjectStore


class InMemoryObjectStore(ObjectStore):
    """ObjectStore double keeping objects in a dict.

    Records every call so tests can assert what reached the backend. With
    ``close_after_upload`` set it closes the upload stream once drained, the
    way boto3's managed transfer closes the file object it is given.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.upload_read_sizes: list[int] = []
        self.close_after_upload = False

    @property
    def backend_name(self) -> str:
        return "memory"

    def upload(self, bucket: str, key: str, stream: BinaryIO) -> None:
        self.calls.append(("upload", bucket, key))
        buf = bytearray()
        while True:
            chunk = stream.read(7919)
            if not chunk:
                break
            self.upload_read_sizes.append(len(chunk))
            buf.extend(chunk)
        self.objects[(bucket, key)] = bytes(buf)
        if self.close_after_upload:
            stream.close()

    def download(self, bucket: str, key: str) -> BinaryIO:
        self.calls.append(("download", bucket, key))
        try:
            return io.BytesIO(self.objects[(bucket, key)])
        except KeyError:
            raise ObjectNotFoundError(bucket=bucket, key=key) from None

    def delete(self, bucket: str, key: str) -> None:
        self.calls.append(("delete", bucket, key))
        if self.objects.pop((bucket, key), None) is None:
            raise ObjectNotFoundError(bucket=bucket, key=key)


class FakeConnector:
    """Stand-in for storage.factory.connect handing out one shared store."""

    def __init__(self, store: ObjectStore | None = None) -> None:
        self.store = store or InMemoryObjectStore()
        self.connections: list[ConnectionParams] = []
        self.trace_loggers: list[logging.Logger | None] = []

    def __call__(
        self, params: ConnectionParams, trace_logger: logging.Logger | None = None
    ) -> ObjectStore:
        self.connections.append(params)
        self.trace_loggers.append(trace_logger)
        return self.store


@pytest.fixture(autouse=True)
def clean_s3hsm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep S3HSM_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("S3HSM_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo configure_logging() so caplog keeps seeing s3hsm records."""
    yield
    for name in ("s3hsm", "s3hsm.trace"):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            if getattr(handler, "_s3hsm_handler", False):
                log.removeHandler(handler)
                handler.close()
        log.setLevel(logging.NOTSET)
        log.propagate = True


@pytest.fixture
def memory_store() -> InMemoryObjectStore:
    """Return an empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def fake_connect(memory_store: InMemoryObjectStore) -> FakeConnector:
    """Return a connect function handing out ``memory_store``."""
    return FakeConnector(memory_store)


@pytest.fixture
def settings() -> ConnectorSettings:
    """Return settings for an S3 endpoint with a default bucket."""
    return ConnectorSettings(
        connection=ConnectionParams(endpoint="minio.local:9000", access_key="ak", secret_key="sk"),
        bucket="hsm-archive",
    )


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """Write a 3 MiB + 17 byte file with non-repeating content."""
    path = tmp_path / "source.bin"
    block = bytes(range(256))
    data = bytearray()
    for i in range(3 * 4096 + 1):
        data.extend(block[i % 256 :] + block[: i % 256])
    path.write_bytes(bytes(data[: 3 * 1024 * 1024 + 17]))
    return path
