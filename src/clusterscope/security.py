"""Secretless credential acquisition for cluster scopes.

Scopes authenticate to Azure Resource Manager exclusively through managed
identities. Service principal secrets, certificates and user passwords are
rejected before any credential object is created:

1. AZURE_CLIENT_SECRET and friends must never be present in the environment
2. ManagedIdentityCredential is the ONLY credential type handed to a scope
3. Token lifecycle stays with Entra ID; nothing is cached on disk
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from azure.identity import ManagedIdentityCredential

from .config import ScopeConfig

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_vars} set. Cluster scopes authenticate with a "
    "managed identity only; remove secret-bearing credential variables and "
    "assign a managed identity with access to the cluster's subscription."
)


class SecretlessViolationError(Exception):
    """Raised when a secret-bearing credential is found in the environment."""

    def __init__(self, env_vars: list[str]) -> None:
        self.env_vars = env_vars
        super().__init__(SECRETLESS_VIOLATION_MESSAGE.format(env_vars=", ".join(env_vars)))


def find_credential_env_vars(environ: Mapping[str, str] | None = None) -> list[str]:
    """Return the forbidden credential variables set (non-empty) in ``environ``."""
    environ = os.environ if environ is None else environ
    return [name for name in FORBIDDEN_CREDENTIAL_ENV_VARS if environ.get(name)]


def enforce_secretless_architecture(environ: Mapping[str, str] | None = None) -> None:
    """Refuse to continue when credential secrets are present in the environment.

    Every offending variable is reported at once so a misconfigured pod can
    be fixed in one go.

    Raises:
        SecretlessViolationError: If any credential environment variable is set.
    """
    found = find_credential_env_vars(environ)
    if found:
        logger.critical(
            "Secretless architecture violation",
            extra={
                "security_event": "credential_detected",
                "env_vars": found,
                "action": "credential_refused",
            },
        )
        raise SecretlessViolationError(found)


def create_scope_credential(config: ScopeConfig) -> ManagedIdentityCredential:
    """Build the managed identity credential scopes authenticate with.

    This is the ONLY way credentials are created in this package. A
    user-assigned identity is used when ``config.client_id`` is set,
    otherwise the system-assigned one.

    Raises:
        SecretlessViolationError: If credential environment variables are detected.
    """
    enforce_secretless_architecture()

    client_id = config.client_id
    identity = "user-assigned" if client_id else "system-assigned"
    logger.info(
        "Creating managed identity credential",
        extra={
            "identity": identity,
            "client_id": f"{client_id[:8]}..." if client_id and len(client_id) > 8 else client_id,
            "environment": config.environment.name,
        },
    )
    if client_id:
        return ManagedIdentityCredential(client_id=client_id)
    return ManagedIdentityCredential()
