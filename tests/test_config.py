"""Tests for s3hsm configuration loading.

Tests cover:
1. Defaults and model validation
2. Layering: YAML file < environment < explicit overrides
3. Config errors: unreadable files, bad YAML, invalid values
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from s3hsm.config import (
    ConnectionParams,
    ConnectorSettings,
    load_faults,
    load_settings,
    settings_from_env,
)
from s3hsm.errors import ConfigError
from s3hsm.location import NamingConvention


def _write_config(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "s3hsm.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestConnectionParams:
    """ConnectionParams validation."""

    def test_defaults(self) -> None:
        params = ConnectionParams(endpoint="minio.local:9000")

        assert params.backend == "s3"
        assert params.region == "us-east-1"
        assert params.use_ssl is False
        assert params.signature_version == "v4"
        assert params.trace is False

    def test_endpoint_required_for_s3(self) -> None:
        with pytest.raises(ValidationError, match="endpoint is required"):
            ConnectionParams()

    def test_endpoint_not_required_for_filesystem(self) -> None:
        assert ConnectionParams(backend="filesystem").endpoint is None

    def test_endpoint_with_scheme_rejected(self) -> None:
        """TLS comes from use_ssl, never from the endpoint string."""
        with pytest.raises(ValidationError, match="use_ssl"):
            ConnectionParams(endpoint="https://minio.local:9000")

    def test_secret_key_hidden(self) -> None:
        params = ConnectionParams(endpoint="e", secret_key="topsecret")

        assert "topsecret" not in repr(params)
        assert params.secret_key is not None
        assert params.secret_key.get_secret_value() == "topsecret"

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConnectionParams(endpoint="e", bucket_lookup="dns")  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        params = ConnectionParams(endpoint="e")

        with pytest.raises(ValidationError):
            params.endpoint = "other"  # type: ignore[misc]


class TestConnectorSettings:
    """ConnectorSettings validation."""

    def test_path_naming_requires_instance(self) -> None:
        with pytest.raises(ValidationError, match="instance"):
            ConnectorSettings(connection=ConnectionParams(endpoint="e"), naming="path")

    def test_path_naming_with_instance(self) -> None:
        settings = ConnectorSettings(
            connection=ConnectionParams(endpoint="e"), naming="path", instance="hsm01"
        )

        assert settings.naming is NamingConvention.PATH

    def test_unsupported_cipher(self) -> None:
        with pytest.raises(ValidationError, match="unsupported cipher"):
            ConnectorSettings(connection=ConnectionParams(endpoint="e"), cipher="rot13")

    def test_fault_exit_code_range(self) -> None:
        with pytest.raises(ValidationError):
            ConnectorSettings(connection=ConnectionParams(endpoint="e"), faults={"fail": 0})


class TestLoadSettings:
    """Layered loading."""

    def test_from_file(self, tmp_path: Path) -> None:
        path = _write_config(
            tmp_path,
            {
                "connection": {"endpoint": "minio.local:9000", "signature_version": "v2"},
                "bucket": "hsm-archive",
                "encrypt": True,
            },
        )

        settings = load_settings(path, environ={})

        assert settings.connection.endpoint == "minio.local:9000"
        assert settings.connection.signature_version == "v2"
        assert settings.bucket == "hsm-archive"
        assert settings.encrypt is True

    def test_config_path_from_env(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path, {"connection": {"endpoint": "from-file"}})

        settings = load_settings(environ={"S3HSM_CONFIG": str(path)})

        assert settings.connection.endpoint == "from-file"

    def test_env_overrides_file(self, tmp_path: Path) -> None:
        path = _write_config(
            tmp_path, {"connection": {"endpoint": "from-file", "region": "eu-west-1"}}
        )

        settings = load_settings(
            path, environ={"S3HSM_ENDPOINT": "from-env", "S3HSM_USE_SSL": "true"}
        )

        assert settings.connection.endpoint == "from-env"
        assert settings.connection.region == "eu-west-1"
        assert settings.connection.use_ssl is True

    def test_overrides_win(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path, {"connection": {"endpoint": "from-file"}})

        settings = load_settings(
            path,
            overrides={"connection": {"endpoint": "from-cli", "region": None}},
            environ={"S3HSM_ENDPOINT": "from-env", "S3HSM_REGION": "ap-south-1"},
        )

        assert settings.connection.endpoint == "from-cli"
        assert settings.connection.region == "ap-south-1"

    def test_env_only(self) -> None:
        settings = load_settings(
            environ={
                "S3HSM_ENDPOINT": "minio.local:9000",
                "S3HSM_ACCESS_KEY": "ak",
                "S3HSM_SECRET_KEY": "sk",
                "S3HSM_BUCKET": "hsm-archive",
                "S3HSM_TRACE": "1",
            }
        )

        assert settings.connection.access_key == "ak"
        assert settings.bucket == "hsm-archive"
        assert settings.connection.trace is True

    def test_empty_env_values_ignored(self) -> None:
        assert settings_from_env({"S3HSM_ENDPOINT": "", "OTHER": "x"}) == {}

    def test_filesystem_without_file(self) -> None:
        settings = load_settings(overrides={"connection": {"backend": "filesystem"}}, environ={})

        assert settings.connection.backend == "filesystem"


class TestLoadFaults:
    """The faults block is read without validating the connection."""

    def test_without_connection(self) -> None:
        faults = load_faults(overrides={"faults": {"fail": 42}}, environ={})

        assert faults.fail == 42
        assert faults.sleep == 0.0

    def test_from_file_with_overrides(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path, {"faults": {"sleep": 1.5, "fail": 3}})

        faults = load_faults(path, overrides={"faults": {"fail": 9, "sleep": None}}, environ={})

        assert faults.sleep == 1.5
        assert faults.fail == 9

    def test_absent(self) -> None:
        assert not load_faults(environ={}).active

    def test_invalid(self) -> None:
        with pytest.raises(ConfigError, match="faults") as exc_info:
            load_faults(overrides={"faults": {"fail": 0}}, environ={})

        assert exc_info.value.exit_code == 2


class TestConfigErrors:
    """Every failure surfaces as ConfigError."""

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read config file"):
            load_settings(tmp_path / "missing.yaml", environ={})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("connection: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_settings(path, environ={})

    def test_missing_endpoint(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_settings(environ={})

        assert "connection" in str(exc_info.value)
        assert "endpoint is required" in str(exc_info.value)
        assert exc_info.value.exit_code == 2

    def test_bad_boolean(self) -> None:
        with pytest.raises(ConfigError, match="use_ssl"):
            load_settings(environ={"S3HSM_ENDPOINT": "e", "S3HSM_USE_SSL": "maybe"})
