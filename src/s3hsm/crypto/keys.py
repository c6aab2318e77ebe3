"""Per-object key generation.

Keys come straight from the OS CSPRNG. A key is used for exactly one
object: the OFB keystream starts from a zero IV, so two objects sharing a
key would reveal the XOR of their plaintexts.
"""

from __future__ import annotations

import secrets

from s3hsm.errors import InvalidKeyLengthError

LEGACY_KEY_SIZE = 24
KEY_SIZE = 32

SUPPORTED_KEY_SIZES = frozenset({LEGACY_KEY_SIZE, KEY_SIZE})


def generate_key(length: int = KEY_SIZE) -> bytes:
    """Generate a fresh random key of ``length`` bytes.

    Raises:
        InvalidKeyLengthError: If ``length`` is not a supported key size.
    """
    if length not in SUPPORTED_KEY_SIZES:
        raise InvalidKeyLengthError(
            f"Unsupported key length {length} (supported: {sorted(SUPPORTED_KEY_SIZES)})",
            actual=length,
        )
    return secrets.token_bytes(length)
