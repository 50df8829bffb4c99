"""Tests for configuration loading."""

import os
from unittest.mock import patch

import pytest

from clusterscope.config import (
    AZURE_CHINA_CLOUD,
    AZURE_PUBLIC_CLOUD,
    ConfigurationError,
    ScopeConfig,
    get_cloud_environment,
)


class TestCloudEnvironment:
    """Tests for cloud environment lookup."""

    def test_lookup_is_case_insensitive(self) -> None:
        """Test that environment names match regardless of case."""
        assert get_cloud_environment("azurechinacloud") is AZURE_CHINA_CLOUD
        assert get_cloud_environment("AzurePublicCloud") is AZURE_PUBLIC_CLOUD

    def test_unknown_environment(self) -> None:
        """Test that unknown names raise ConfigurationError listing valid ones."""
        with pytest.raises(ConfigurationError) as exc_info:
            get_cloud_environment("AzureMoonCloud")

        assert "AzurePublicCloud" in str(exc_info.value)

    def test_public_cloud_endpoints(self) -> None:
        """Test the public cloud endpoint and DNS suffix."""
        assert AZURE_PUBLIC_CLOUD.resource_manager_endpoint == "https://management.azure.com/"
        assert AZURE_PUBLIC_CLOUD.resource_manager_vm_dns_suffix == "cloudapp.azure.com"


class TestScopeConfig:
    """Tests for ScopeConfig class."""

    def test_defaults(self) -> None:
        """Test that the default configuration is valid."""
        config = ScopeConfig()

        assert config.environment is AZURE_PUBLIC_CLOUD
        assert config.client_id is None
        assert config.credential_timeout_seconds == 30
        assert config.patch_timeout_seconds == 60
        assert config.verify_credentials is True

    def test_invalid_credential_timeout(self) -> None:
        """Test that out-of-range credential timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ScopeConfig(credential_timeout_seconds=0)

        assert "CREDENTIAL_TIMEOUT" in str(exc_info.value)

    def test_invalid_patch_timeout(self) -> None:
        """Test that out-of-range patch timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ScopeConfig(patch_timeout_seconds=601)

        assert "PATCH_TIMEOUT" in str(exc_info.value)

    def test_blank_client_id(self) -> None:
        """Test that a whitespace client ID is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            ScopeConfig(client_id="  ")

        assert "AZURE_CLIENT_ID" in str(exc_info.value)

    def test_errors_collected(self) -> None:
        """Test that every violation is reported at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            ScopeConfig(credential_timeout_seconds=0, patch_timeout_seconds=0)

        message = str(exc_info.value)
        assert "CREDENTIAL_TIMEOUT" in message
        assert "PATCH_TIMEOUT" in message

    def test_from_env(self) -> None:
        """Test loading configuration from environment."""
        env = {
            "AZURE_ENVIRONMENT": "AzureChinaCloud",
            "AZURE_CLIENT_ID": "client-123",
            "CREDENTIAL_TIMEOUT": "10",
            "PATCH_TIMEOUT": "120",
            "VERIFY_CREDENTIALS": "false",
        }

        with patch.dict(os.environ, env, clear=True):
            config = ScopeConfig.from_env()

        assert config.environment is AZURE_CHINA_CLOUD
        assert config.client_id == "client-123"
        assert config.credential_timeout_seconds == 10
        assert config.patch_timeout_seconds == 120
        assert config.verify_credentials is False

    def test_from_env_defaults(self) -> None:
        """Test that an empty environment yields the defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = ScopeConfig.from_env()

        assert config == ScopeConfig()

    def test_from_env_invalid_integer(self) -> None:
        """Test that non-integer timeouts raise ConfigurationError."""
        with patch.dict(os.environ, {"PATCH_TIMEOUT": "soon"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                ScopeConfig.from_env()

        assert "PATCH_TIMEOUT" in str(exc_info.value)
