"""Tests for secretless credential enforcement."""

from __future__ import annotations

import os
from unittest import mock

import pytest

from clusterscope.config import AZURE_CHINA_CLOUD, ScopeConfig
from clusterscope.security import (
    FORBIDDEN_CREDENTIAL_ENV_VARS,
    SecretlessViolationError,
    create_scope_credential,
    enforce_secretless_architecture,
    find_credential_env_vars,
)


class TestSecretlessEnforcement:
    """Tests for secretless architecture enforcement."""

    def test_clean_environment_passes(self) -> None:
        """Test that enforcement passes with no credential env vars."""
        with mock.patch.dict(os.environ, {}, clear=True):
            enforce_secretless_architecture()

    @pytest.mark.parametrize("env_var", FORBIDDEN_CREDENTIAL_ENV_VARS)
    def test_forbidden_env_var_raises(self, env_var: str) -> None:
        """Test that each forbidden env var raises SecretlessViolationError."""
        with mock.patch.dict(os.environ, {env_var: "some-secret-value"}, clear=True):
            with pytest.raises(SecretlessViolationError) as exc_info:
                enforce_secretless_architecture()

        assert env_var in str(exc_info.value)
        assert "SECURITY VIOLATION" in str(exc_info.value)
        assert exc_info.value.env_vars == [env_var]

    def test_all_offending_vars_reported(self) -> None:
        """Test that every offending variable is named in one error."""
        environ = {"AZURE_PASSWORD": "p", "AZURE_CLIENT_SECRET": "s"}

        with pytest.raises(SecretlessViolationError) as exc_info:
            enforce_secretless_architecture(environ)

        assert exc_info.value.env_vars == ["AZURE_CLIENT_SECRET", "AZURE_PASSWORD"]
        assert "AZURE_CLIENT_SECRET, AZURE_PASSWORD" in str(exc_info.value)

    def test_empty_value_ignored(self) -> None:
        """Test that a set-but-empty variable is not a violation."""
        with mock.patch.dict(os.environ, {"AZURE_CLIENT_SECRET": ""}, clear=True):
            enforce_secretless_architecture()

    def test_client_id_allowed(self) -> None:
        """Test that a managed identity client ID is not treated as a secret."""
        assert find_credential_env_vars({"AZURE_CLIENT_ID": "client-123"}) == []

    def test_reads_process_environment_by_default(self) -> None:
        """Test that find_credential_env_vars falls back to os.environ."""
        with mock.patch.dict(os.environ, {"AZURE_USERNAME": "admin"}, clear=True):
            assert find_credential_env_vars() == ["AZURE_USERNAME"]

    def test_forbidden_list_is_tuple(self) -> None:
        """Test that the list is immutable (tuple, not list)."""
        assert isinstance(FORBIDDEN_CREDENTIAL_ENV_VARS, tuple)


class TestCreateScopeCredential:
    """Tests for the managed identity credential factory."""

    def test_rejects_secret_env_var(self) -> None:
        """Test that no credential is built while secrets are present."""
        with mock.patch.dict(os.environ, {"AZURE_CLIENT_SECRET": "secret"}):
            with mock.patch("clusterscope.security.ManagedIdentityCredential") as credential_class:
                with pytest.raises(SecretlessViolationError):
                    create_scope_credential(ScopeConfig())

        credential_class.assert_not_called()

    @mock.patch("clusterscope.security.ManagedIdentityCredential")
    def test_system_assigned_by_default(self, mock_credential_class: mock.Mock) -> None:
        """Test that the system-assigned identity is used without a client ID."""
        with mock.patch.dict(os.environ, {}, clear=True):
            result = create_scope_credential(ScopeConfig())

        mock_credential_class.assert_called_once_with()
        assert result is mock_credential_class.return_value

    @mock.patch("clusterscope.security.ManagedIdentityCredential")
    def test_user_assigned_from_config(self, mock_credential_class: mock.Mock) -> None:
        """Test that the configured client ID selects a user-assigned identity."""
        config = ScopeConfig(environment=AZURE_CHINA_CLOUD, client_id="test-client-id-12345")

        with mock.patch.dict(os.environ, {}, clear=True):
            result = create_scope_credential(config)

        mock_credential_class.assert_called_once_with(client_id="test-client-id-12345")
        assert result is mock_credential_class.return_value
