"""Round trips through the real boto3 managed transfer.

A local moto server stands in for the object store, so uploads and
downloads run the same s3transfer code paths as production.

Tests cover:
1. store then retrieve, plain and encrypted, for both signature versions
2. Empty, small and multipart-sized files
3. The CLI printing the location of a plain store
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

moto_server = pytest.importorskip("moto.server")

from s3hsm.cli import main  # noqa: E402
from s3hsm.config import ConnectionParams, ConnectorSettings  # noqa: E402
from s3hsm.storage.factory import connect  # noqa: E402
from s3hsm.transfer import TransferOrchestrator, TransferState  # noqa: E402

BUCKET = "hsm-archive"

# Above boto3's default 8 MiB multipart threshold; the last part is short
MULTIPART_SIZE = 9 * 1024 * 1024 + 3


@pytest.fixture(scope="module")
def endpoint() -> Iterator[str]:
    """Run a moto S3 server on a free local port."""
    server = moto_server.ThreadedMotoServer(ip_address="127.0.0.1", port=0, verbose=False)
    server.start()
    host, port = server.get_host_and_port()
    try:
        yield f"{host}:{port}"
    finally:
        server.stop()


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep proxy settings from the environment away from the local server."""
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")


def _params(endpoint: str, signature_version: str) -> ConnectionParams:
    return ConnectionParams(
        endpoint=endpoint,
        access_key="testing",
        secret_key="testing",
        signature_version=signature_version,
    )


@pytest.fixture
def bucket(endpoint: str) -> str:
    """Create the archive bucket if it does not exist yet."""
    client = connect(_params(endpoint, "v4")).client
    existing = {b["Name"] for b in client.list_buckets().get("Buckets", [])}
    if BUCKET not in existing:
        client.create_bucket(Bucket=BUCKET)
    return BUCKET


def _write_source(path: Path, size: int) -> Path:
    block = bytes(range(251))
    data = block * (size // len(block) + 1)
    path.write_bytes(data[:size])
    return path


class TestStoreRetrieve:
    """Bytes survive a store/retrieve cycle unchanged."""

    @pytest.mark.parametrize("signature_version", ["v4", "v2"])
    @pytest.mark.parametrize("encrypt", [False, True])
    @pytest.mark.parametrize("size", [0, 17, MULTIPART_SIZE])
    def test_round_trip(
        self,
        endpoint: str,
        bucket: str,
        tmp_path: Path,
        signature_version: str,
        encrypt: bool,
        size: int,
    ) -> None:
        source = _write_source(tmp_path / "source.bin", size)
        settings = ConnectorSettings(
            connection=_params(endpoint, signature_version), bucket=bucket
        )
        orchestrator = TransferOrchestrator(settings)
        object_key = f"{signature_version}-{int(encrypt)}-{size}"

        location = orchestrator.store(object_key, source, encrypt=encrypt)

        report = orchestrator.last_report
        assert report is not None
        assert report.state is TransferState.DONE
        assert report.bytes_transferred == size
        assert (location.cipher is not None) is encrypt

        restored = tmp_path / "restored.bin"
        orchestrator.retrieve(location.encode(), restored)

        assert restored.read_bytes() == source.read_bytes()

    def test_encrypted_object_differs_from_source(
        self, endpoint: str, bucket: str, tmp_path: Path
    ) -> None:
        source = _write_source(tmp_path / "source.bin", 4096)
        settings = ConnectorSettings(connection=_params(endpoint, "v4"), bucket=bucket)
        orchestrator = TransferOrchestrator(settings)

        orchestrator.store("ciphertext", source, encrypt=True)

        client = connect(settings.connection).client
        stored = client.get_object(Bucket=bucket, Key="ciphertext")["Body"].read()
        assert len(stored) == 4096
        assert stored != source.read_bytes()


class TestCli:
    """The console entry point against a real endpoint."""

    @pytest.mark.parametrize("signature_version", ["v4", "v2"])
    def test_plain_store_prints_location(
        self,
        endpoint: str,
        bucket: str,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
        signature_version: str,
    ) -> None:
        source = _write_source(tmp_path / "source.bin", 17)
        restored = tmp_path / "restored.bin"
        conn_args = [
            "--endpoint",
            endpoint,
            "--access-key",
            "testing",
            "--secret-key",
            "testing",
            "--signature-version",
            signature_version,
        ]

        exit_code = main(
            ["store", f"cli-{signature_version}", str(source), bucket, "--no-encrypt", *conn_args]
        )

        captured = capsys.readouterr()
        assert exit_code == 0, captured.err
        location = captured.out.strip()
        assert location == f"s3://{bucket}/cli-{signature_version}"

        assert main(["retrieve", str(restored), location, *conn_args]) == 0
        assert restored.read_bytes() == source.read_bytes()
