"""s3hsm configuration.

Settings are layered, later layers winning:
1. YAML file (``--config`` or S3HSM_CONFIG)
2. Environment variables
3. Command-line overrides

Environment Variables:
    S3HSM_CONFIG: Path to the YAML configuration file
    S3HSM_BACKEND: "s3" or "filesystem" (default: "s3")
    S3HSM_ENDPOINT: Object store host[:port], without scheme
    S3HSM_REGION: Signing region (default: "us-east-1")
    S3HSM_ACCESS_KEY / S3HSM_SECRET_KEY: Credentials
    S3HSM_USE_SSL: Talk HTTPS to the endpoint (default: false)
    S3HSM_SIGNATURE_VERSION: "v2" or "v4" (default: "v4")
    S3HSM_TRACE: Log every backend request/response (default: false)
    S3HSM_BASE_DIR: Base directory of the filesystem backend
    S3HSM_BUCKET: Default bucket for store
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from s3hsm.crypto.stream import DEFAULT_CIPHER, SUPPORTED_CIPHERS
from s3hsm.errors import ConfigError
from s3hsm.faults import FaultInjection
from s3hsm.location import NamingConvention

S3HSM_CONFIG_ENV = "S3HSM_CONFIG"

# env var -> (section, field); section None means top level
ENV_FIELDS: dict[str, tuple[str | None, str]] = {
    "S3HSM_BACKEND": ("connection", "backend"),
    "S3HSM_ENDPOINT": ("connection", "endpoint"),
    "S3HSM_REGION": ("connection", "region"),
    "S3HSM_ACCESS_KEY": ("connection", "access_key"),
    "S3HSM_SECRET_KEY": ("connection", "secret_key"),
    "S3HSM_USE_SSL": ("connection", "use_ssl"),
    "S3HSM_SIGNATURE_VERSION": ("connection", "signature_version"),
    "S3HSM_TRACE": ("connection", "trace"),
    "S3HSM_BASE_DIR": ("connection", "base_dir"),
    "S3HSM_BUCKET": (None, "bucket"),
}


class ConnectionParams(BaseModel):
    """Parameters for connecting to one object store.

    Backend and signature version are plain strings: the client factory
    owns the list of supported combinations and rejects the rest.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: str = Field(default="s3", min_length=1)
    endpoint: str | None = None
    region: str = Field(default="us-east-1", min_length=1)
    access_key: str | None = None
    secret_key: SecretStr | None = None
    use_ssl: bool = False
    signature_version: str = Field(default="v4", min_length=1)
    trace: bool = False
    base_dir: Path | None = None

    @field_validator("endpoint")
    @classmethod
    def endpoint_without_scheme(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.strip():
            raise ValueError("endpoint cannot be empty")
        if "://" in v:
            raise ValueError("endpoint must be host[:port]; TLS is selected with use_ssl")
        return v.strip()

    @model_validator(mode="after")
    def s3_requires_endpoint(self) -> ConnectionParams:
        if self.backend == "s3" and self.endpoint is None:
            raise ValueError("endpoint is required for the s3 backend")
        return self


class ConnectorSettings(BaseModel):
    """Complete settings for one connector invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connection: ConnectionParams
    scheme: str = Field(default="s3", pattern=r"^[a-z][a-z0-9+.\-]*$")
    naming: NamingConvention = NamingConvention.HOST
    instance: str | None = Field(default=None, pattern=r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]*$")
    bucket: str | None = None
    encrypt: bool = False
    cipher: str = DEFAULT_CIPHER.tag
    faults: FaultInjection = Field(default_factory=FaultInjection)

    @field_validator("cipher")
    @classmethod
    def supported_cipher(cls, v: str) -> str:
        if v not in SUPPORTED_CIPHERS:
            raise ValueError(f"unsupported cipher {v!r}; supported: {sorted(SUPPORTED_CIPHERS)}")
        return v

    @model_validator(mode="after")
    def path_naming_requires_instance(self) -> ConnectorSettings:
        if self.naming is NamingConvention.PATH and not self.instance:
            raise ValueError("naming 'path' requires an instance name")
        return self


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "settings"
        messages.append(f"{loc}: {item['msg']}")
    return "; ".join(messages)


def _merge(base: dict[str, Any], update: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``update`` into ``base``, skipping None values."""
    merged = dict(base)
    for key, value in update.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        elif isinstance(value, Mapping):
            merged[key] = _merge({}, value)
        else:
            merged[key] = value
    return merged


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a YAML settings file.

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect settings from S3HSM_* environment variables."""
    data: dict[str, Any] = {}
    for env_name, (section, field_name) in ENV_FIELDS.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        if section is None:
            data[field_name] = value
        else:
            data.setdefault(section, {})[field_name] = value
    return data


def _layered_data(
    config_path: str | Path | None,
    overrides: Mapping[str, Any] | None,
    environ: Mapping[str, str],
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    path = config_path or environ.get(S3HSM_CONFIG_ENV)
    if path:
        data = _merge(data, load_config_file(path))
    data = _merge(data, settings_from_env(environ))
    if overrides:
        data = _merge(data, overrides)
    return data


def load_faults(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> FaultInjection:
    """Read only the fault injection block of the layered settings.

    The connection block is not validated, so injected faults fire even
    when no endpoint is configured.

    Raises:
        ConfigError: If any layer is unreadable or the faults block is invalid.
    """
    if environ is None:
        environ = os.environ

    data = _layered_data(config_path, overrides, environ)
    try:
        return FaultInjection.model_validate(data.get("faults") or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: faults: {_format_validation_error(e)}") from e


def load_settings(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConnectorSettings:
    """Build validated settings from file, environment and overrides.

    Args:
        config_path: YAML file; falls back to S3HSM_CONFIG when None.
        overrides: Nested mapping of explicit values (None entries ignored).
        environ: Environment to read; defaults to os.environ.

    Raises:
        ConfigError: If any layer is unreadable or the result is invalid.
    """
    if environ is None:
        environ = os.environ

    data = _layered_data(config_path, overrides, environ)
    data.setdefault("connection", {})

    try:
        return ConnectorSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_format_validation_error(e)}") from e
