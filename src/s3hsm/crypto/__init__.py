"""Per-object key generation and streaming encryption."""

from s3hsm.crypto.keys import KEY_SIZE, LEGACY_KEY_SIZE, generate_key
from s3hsm.crypto.stream import (
    AES_192_OFB,
    AES_256_OFB,
    DEFAULT_CIPHER,
    SUPPORTED_CIPHERS,
    CipherSession,
    CipherSpec,
    get_cipher,
    wrap_for_decrypt,
    wrap_for_encrypt,
)

__all__ = [
    "AES_192_OFB",
    "AES_256_OFB",
    "CipherSession",
    "CipherSpec",
    "DEFAULT_CIPHER",
    "KEY_SIZE",
    "LEGACY_KEY_SIZE",
    "SUPPORTED_CIPHERS",
    "generate_key",
    "get_cipher",
    "wrap_for_decrypt",
    "wrap_for_encrypt",
]
