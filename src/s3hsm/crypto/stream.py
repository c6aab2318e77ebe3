"""Streaming AES-OFB encryption for object transfers.

Wraps a readable source (upload path) or a writable sink (download path)
so bytes are transformed as they flow through, without ever holding the
whole object in memory. The keystream is AES in output-feedback mode with
an all-zero IV, which is only safe because every object gets its own key
(see s3hsm.crypto.keys).

Cipher state carries across calls: reading or writing in 17-byte pieces
produces exactly the same bytes as one large call.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, BinaryIO

from cryptography.hazmat.decrepit.ciphers.modes import OFB
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from s3hsm.errors import InvalidKeyLengthError, UnsupportedCipherError

AES_BLOCK_SIZE = 16

_ZERO_IV = bytes(AES_BLOCK_SIZE)


@dataclass(frozen=True)
class CipherSpec:
    """A supported stream cipher.

    Attributes:
        tag: Identifier carried in object locations as ``etype``.
        key_size: Required raw key length in bytes.
    """

    tag: str
    key_size: int

    def check_key(self, key: bytes) -> None:
        """Raise InvalidKeyLengthError unless ``key`` fits this cipher."""
        if len(key) != self.key_size:
            raise InvalidKeyLengthError(
                f"{self.tag} requires a {self.key_size}-byte key, got {len(key)} bytes",
                expected=self.key_size,
                actual=len(key),
            )


AES_256_OFB = CipherSpec(tag="aes-256-ofb", key_size=32)
AES_192_OFB = CipherSpec(tag="aes-192-ofb", key_size=24)

SUPPORTED_CIPHERS: dict[str, CipherSpec] = {
    AES_256_OFB.tag: AES_256_OFB,
    AES_192_OFB.tag: AES_192_OFB,
}

DEFAULT_CIPHER = AES_256_OFB


def get_cipher(tag: str) -> CipherSpec:
    """Look up a supported cipher by its tag.

    Raises:
        UnsupportedCipherError: If ``tag`` is not a supported cipher.
    """
    try:
        return SUPPORTED_CIPHERS[tag]
    except KeyError:
        raise UnsupportedCipherError(
            f"Unsupported cipher type: {tag!r} (supported: {sorted(SUPPORTED_CIPHERS)})",
            etype=tag,
        ) from None


class CipherSession:
    """Live keystream state for one transfer. Never serialized."""

    def __init__(self, key: bytes, cipher: CipherSpec = DEFAULT_CIPHER, *, decrypt: bool = False):
        cipher.check_key(key)
        self.cipher = cipher
        engine = Cipher(algorithms.AES(key), OFB(_ZERO_IV))
        self._ctx: Any = engine.decryptor() if decrypt else engine.encryptor()
        self.bytes_processed = 0

    def update(self, data: bytes) -> bytes:
        out = self._ctx.update(data)
        self.bytes_processed += len(data)
        return out

    def finalize(self) -> None:
        if self._ctx is not None:
            self._ctx.finalize()
            self._ctx = None


class EncryptingReader(io.RawIOBase):
    """Read-through stream that encrypts everything read from ``source``.

    Each read returns as many bytes as requested until the source is
    exhausted. The wrapped source is not closed.
    """

    def __init__(self, source: BinaryIO, session: CipherSession) -> None:
        super().__init__()
        self._source = source
        self._session = session

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        view = memoryview(buffer).cast("B")
        filled = 0
        while filled < len(view):
            chunk = self._source.read(len(view) - filled)
            if not chunk:
                break
            view[filled : filled + len(chunk)] = self._session.update(chunk)
            filled += len(chunk)
        return filled

    def close(self) -> None:
        if not self.closed:
            self._session.finalize()
        super().close()


class DecryptingWriter(io.RawIOBase):
    """Write-through stream that decrypts everything written into ``sink``.

    The wrapped sink is not closed.
    """

    def __init__(self, sink: BinaryIO, session: CipherSession) -> None:
        super().__init__()
        self._sink = sink
        self._session = session

    def writable(self) -> bool:
        return True

    def write(self, data: Any) -> int:
        chunk = bytes(data)
        self._sink.write(self._session.update(chunk))
        return len(chunk)

    def flush(self) -> None:
        if not self.closed and not getattr(self._sink, "closed", False):
            self._sink.flush()

    def close(self) -> None:
        if not self.closed:
            self._session.finalize()
        super().close()


def wrap_for_encrypt(
    source: BinaryIO, key: bytes | None, cipher: CipherSpec = DEFAULT_CIPHER
) -> BinaryIO:
    """Return a reader yielding the ciphertext of ``source``.

    Without a key the source is returned unchanged.

    Raises:
        InvalidKeyLengthError: If the key does not match the cipher.
    """
    if key is None:
        return source
    return EncryptingReader(source, CipherSession(key, cipher))  # type: ignore[return-value]


def wrap_for_decrypt(
    sink: BinaryIO, key: bytes | None, cipher: CipherSpec = DEFAULT_CIPHER
) -> BinaryIO:
    """Return a writer that stores the plaintext of what is written into ``sink``.

    Without a key the sink is returned unchanged.

    Raises:
        InvalidKeyLengthError: If the key does not match the cipher.
    """
    if key is None:
        return sink
    return DecryptingWriter(sink, CipherSession(key, cipher, decrypt=True))  # type: ignore[return-value]
