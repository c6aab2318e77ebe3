"""s3hsm error types.

Every failure the connector can report is an HsmConnectorError. The CLI maps
each error to a process exit code and a one-line message; nothing is retried
here, retries belong to the calling HSM.
"""

from __future__ import annotations

EXIT_FAILURE = 1
EXIT_CONFIG = 2


class HsmConnectorError(Exception):
    """Base exception for connector operations.

    Attributes:
        message: Human-readable error message.
        exit_code: Process exit code the CLI reports for this error.
    """

    exit_code: int = EXIT_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(HsmConnectorError):
    """Raised for bad or missing connection parameters or settings."""

    exit_code = EXIT_CONFIG


class SourceUnavailableError(HsmConnectorError):
    """Raised when a local file cannot be opened for the transfer."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} path={self.path}"
        return self.message


class LocationError(HsmConnectorError):
    """Base class for object location decoding failures."""


class MalformedLocationError(LocationError):
    """Raised when a location string is not a valid location URI."""


class UnsupportedCipherError(LocationError):
    """Raised when a location names a cipher type that is not supported."""

    def __init__(self, message: str, *, etype: str | None = None) -> None:
        super().__init__(message)
        self.etype = etype


class BadKeyEncodingError(LocationError):
    """Raised when the key embedded in a location is not valid hex."""


class InvalidKeyLengthError(HsmConnectorError):
    """Raised when key material does not match the cipher's key size."""

    def __init__(self, message: str, *, expected: int | None = None, actual: int | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InjectedFailureError(HsmConnectorError):
    """Raised by fault injection to simulate a backend failure.

    The exit code is the one configured for the injection.
    """

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Injected failure (exit code {exit_code})")
        self.exit_code = exit_code
