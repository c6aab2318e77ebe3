"""Self-describing object locations.

A location is the only state kept for a stored object. It names the
object and, for encrypted objects, carries the cipher tag and raw key:

    <scheme>://<authority>/<path>[?etype=<cipher>&ekey=<hex key>]

Anyone holding a location can read the object, so locations are
secret-equivalent: log ``ObjectLocation.redacted()``, never ``encode()``.

Two bucket/key naming conventions exist:
- host: the authority is the bucket, the whole path is the object key
- path: the authority is the HSM instance, the last path segment is the
  object key and the segments before it are the bucket
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from s3hsm.crypto.stream import AES_192_OFB, AES_256_OFB, get_cipher
from s3hsm.errors import BadKeyEncodingError, MalformedLocationError

ETYPE_PARAM = "etype"
EKEY_PARAM = "ekey"
LEGACY_KEY_PARAM = "enc"

_SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.\-]*$")
_AUTHORITY_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]*$")
_HEX_PATTERN = re.compile(r"^(?:[0-9a-fA-F]{2})+$")

_LEGACY_CIPHERS = {
    AES_192_OFB.key_size: AES_192_OFB,
    AES_256_OFB.key_size: AES_256_OFB,
}


class NamingConvention(str, Enum):
    """How bucket and object key map onto a location's authority and path."""

    HOST = "host"
    PATH = "path"


@dataclass(frozen=True)
class LocationCipher:
    """Encryption metadata embedded in a location.

    Attributes:
        etype: Cipher tag (see s3hsm.crypto.stream.SUPPORTED_CIPHERS).
        key: Raw symmetric key.
    """

    etype: str
    key: bytes = field(repr=False)


@dataclass(frozen=True)
class ObjectLocation:
    """Decoded form of an object location.

    Attributes:
        scheme: Backend/tier identifier.
        authority: Bucket (host naming) or HSM instance (path naming).
        path: Object path without the leading separator.
        cipher: Encryption metadata, None for unencrypted objects.
    """

    scheme: str
    authority: str
    path: str
    cipher: LocationCipher | None = None

    def __post_init__(self) -> None:
        if not _SCHEME_PATTERN.match(self.scheme):
            raise MalformedLocationError(f"Invalid location scheme: {self.scheme!r}")
        if not _AUTHORITY_PATTERN.match(self.authority):
            raise MalformedLocationError(f"Invalid location authority: {self.authority!r}")
        if not self.path or self.path.startswith("/"):
            raise MalformedLocationError("Location path must be non-empty and relative")
        if self.cipher is not None:
            get_cipher(self.cipher.etype)

    @property
    def encrypted(self) -> bool:
        return self.cipher is not None

    @classmethod
    def for_object(
        cls,
        scheme: str,
        bucket: str,
        key: str,
        *,
        naming: NamingConvention = NamingConvention.HOST,
        instance: str | None = None,
        cipher: LocationCipher | None = None,
    ) -> ObjectLocation:
        """Build the location of ``bucket/key`` under a naming convention.

        Raises:
            MalformedLocationError: If bucket/key cannot be represented
                under the convention.
        """
        if naming is NamingConvention.HOST:
            return cls(scheme=scheme, authority=bucket, path=key, cipher=cipher)

        if not instance:
            raise MalformedLocationError("Path naming requires an instance name")
        if not bucket or bucket.startswith("/") or bucket.endswith("/"):
            raise MalformedLocationError(f"Invalid bucket for path naming: {bucket!r}")
        if not key or "/" in key:
            raise MalformedLocationError(
                f"Object key must be a single path segment under path naming: {key!r}"
            )
        return cls(scheme=scheme, authority=instance, path=f"{bucket}/{key}", cipher=cipher)

    def bucket_and_key(
        self, naming: NamingConvention = NamingConvention.HOST
    ) -> tuple[str, str]:
        """Resolve the backend bucket and object key.

        Raises:
            MalformedLocationError: If the path has no bucket segment under
                path naming.
        """
        if naming is NamingConvention.HOST:
            return self.authority, self.path

        bucket, sep, key = self.path.rpartition("/")
        if not sep or not bucket or not key:
            raise MalformedLocationError(
                "Location path must be <bucket>/<key> under path naming"
            )
        return bucket, key

    def encode(self) -> str:
        """Render the location URI, including key material if present."""
        uri = self.redacted()
        if self.cipher is not None:
            query = urlencode(
                [(ETYPE_PARAM, self.cipher.etype), (EKEY_PARAM, self.cipher.key.hex())]
            )
            uri = f"{uri}?{query}"
        return uri

    def redacted(self) -> str:
        """Render the location without encryption metadata, safe for logs."""
        return f"{self.scheme}://{self.authority}/{quote(self.path, safe='/')}"

    def __str__(self) -> str:
        return self.redacted()

    @classmethod
    def decode(cls, uri: str) -> ObjectLocation:
        """Parse a location URI.

        Raises:
            MalformedLocationError: If ``uri`` is not a valid location.
            UnsupportedCipherError: If ``etype`` names an unknown cipher.
            BadKeyEncodingError: If the embedded key is not valid hex.
        """
        if not uri or any(ch.isspace() for ch in uri):
            raise MalformedLocationError("Not a valid location URI")

        try:
            parts = urlsplit(uri)
        except ValueError as e:
            raise MalformedLocationError("Not a valid location URI") from e

        if not parts.scheme or not parts.netloc or parts.fragment:
            raise MalformedLocationError("Not a valid location URI")
        if not parts.path.startswith("/") or len(parts.path) < 2:
            raise MalformedLocationError("Location has no object path")

        try:
            path = unquote(parts.path[1:], errors="strict")
        except UnicodeDecodeError as e:
            raise MalformedLocationError(f"Location path is not valid UTF-8: {e}") from e

        cipher = _decode_cipher(parts.query)
        return cls(scheme=parts.scheme, authority=parts.netloc, path=path, cipher=cipher)


def _query_params(query: str) -> dict[str, str]:
    if not query:
        return {}
    try:
        pairs = parse_qsl(query, keep_blank_values=True, strict_parsing=True)
    except ValueError as e:
        raise MalformedLocationError("Invalid location query") from e

    params: dict[str, str] = {}
    for name, value in pairs:
        if name in params:
            raise MalformedLocationError(f"Duplicate location parameter: {name!r}")
        params[name] = value
    return params


def _decode_cipher(query: str) -> LocationCipher | None:
    params = _query_params(query)
    etype = params.get(ETYPE_PARAM)
    ekey = params.get(EKEY_PARAM)
    legacy_key = params.get(LEGACY_KEY_PARAM)

    if legacy_key is not None:
        if etype is not None or ekey is not None:
            raise MalformedLocationError("Legacy 'enc' key cannot be combined with etype/ekey")
        return _decode_legacy_key(legacy_key)

    if etype is None and ekey is None:
        return None

    if etype is not None:
        get_cipher(etype)
    if etype is None or ekey is None:
        raise MalformedLocationError("Location must carry both etype and ekey, or neither")

    if not _HEX_PATTERN.match(ekey):
        raise BadKeyEncodingError("Location key is not valid hex")
    return LocationCipher(etype=etype, key=bytes.fromhex(ekey))


def _decode_legacy_key(value: str) -> LocationCipher:
    """Decode a first-generation ``enc`` key: raw ASCII, AES-OFB, zero IV."""
    try:
        key = value.encode("ascii")
    except UnicodeEncodeError as e:
        raise BadKeyEncodingError("Legacy location key is not ASCII") from e

    cipher = _LEGACY_CIPHERS.get(len(key))
    if cipher is None:
        raise BadKeyEncodingError(f"Legacy location key has unsupported length {len(key)}")
    return LocationCipher(etype=cipher.tag, key=key)


def encode_location(
    scheme: str,
    authority: str,
    path: str,
    cipher: LocationCipher | None = None,
) -> str:
    """Render a location URI from its parts."""
    return ObjectLocation(scheme=scheme, authority=authority, path=path, cipher=cipher).encode()


def decode_location(uri: str) -> ObjectLocation:
    """Parse a location URI. See ObjectLocation.decode."""
    return ObjectLocation.decode(uri)
