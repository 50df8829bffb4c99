"""Azure credential resolution for cluster scopes.

A scope resolves its credentials exactly once, from the subscription ID
recorded on the AzureCluster. Resolution produces a CredentialBundle: the
token credential every Azure client is built from, plus the Resource
Manager endpoint and DNS suffix of the configured cloud.

A resolver is long-lived: it builds its managed identity credential once and
hands the same credential to every scope, so the SDK token cache carries over
between reconcile passes. The secretless checks still run on every resolution.

SECURITY: Credentials always come from security.create_scope_credential().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import ManagedIdentityCredential
from azure.mgmt.resource import ResourceManagementClient

from .config import ScopeConfig
from .security import (
    SecretlessViolationError,
    create_scope_credential,
    enforce_secretless_architecture,
)

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when credentials for a subscription cannot be resolved."""

    pass


@dataclass(frozen=True)
class CredentialBundle:
    """Read-only credentials for one subscription."""

    subscription_id: str
    authorizer: TokenCredential
    resource_manager_endpoint: str
    resource_manager_vm_dns_suffix: str

    @property
    def credential_scope(self) -> str:
        """Token scope for the Resource Manager endpoint."""
        return f"{self.resource_manager_endpoint.rstrip('/')}/.default"

    def resource_client(self) -> ResourceManagementClient:
        """Build a Resource Manager client bound to this bundle's cloud."""
        return ResourceManagementClient(
            credential=self.authorizer,
            subscription_id=self.subscription_id,
            base_url=self.resource_manager_endpoint,
            credential_scopes=[self.credential_scope],
        )


class CredentialResolver(Protocol):
    """Anything that can turn a subscription ID into a CredentialBundle."""

    async def resolve(self, subscription_id: str) -> CredentialBundle: ...


class AzureCredentialResolver:
    """Resolve managed identity credentials for the configured Azure cloud."""

    def __init__(self, config: ScopeConfig | None = None) -> None:
        self._config = config or ScopeConfig()
        self._credential: ManagedIdentityCredential | None = None

    def _get_credential(self) -> ManagedIdentityCredential:
        if self._credential is None:
            self._credential = create_scope_credential(self._config)
        else:
            # Secrets may have been injected since the credential was built
            enforce_secretless_architecture()
        return self._credential

    def close(self) -> None:
        """Release the cached credential and its HTTP transport."""
        if self._credential is not None:
            self._credential.close()
            self._credential = None

    async def resolve(self, subscription_id: str) -> CredentialBundle:
        """Resolve credentials for ``subscription_id``.

        When ``verify_credentials`` is enabled a Resource Manager token is
        fetched (off the event loop, bounded by ``credential_timeout_seconds``)
        so that a missing or unauthorized identity fails here rather than in
        the first infrastructure call.

        Raises:
            AuthenticationError: If the subscription ID is empty, the
                environment holds secrets, token acquisition fails or times out.
        """
        if not subscription_id:
            raise AuthenticationError("subscription ID is required to resolve credentials")

        env = self._config.environment

        try:
            credential = self._get_credential()
        except SecretlessViolationError as e:
            raise AuthenticationError(str(e)) from e

        bundle = CredentialBundle(
            subscription_id=subscription_id,
            authorizer=credential,
            resource_manager_endpoint=env.resource_manager_endpoint,
            resource_manager_vm_dns_suffix=env.resource_manager_vm_dns_suffix,
        )

        if self._config.verify_credentials:
            await self._verify(bundle)

        logger.info(
            "Resolved Azure credentials",
            extra={"subscription_id": subscription_id, "environment": env.name},
        )
        return bundle

    async def _verify(self, bundle: CredentialBundle) -> None:
        timeout = self._config.credential_timeout_seconds
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(
                    None, bundle.authorizer.get_token, bundle.credential_scope
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise AuthenticationError(
                f"timed out after {timeout}s acquiring a token for {bundle.credential_scope}"
            ) from e
        except AzureError as e:
            logger.error(
                f"Token acquisition failed for subscription {bundle.subscription_id}: {e}",
                extra={"subscription_id": bundle.subscription_id, "error_type": type(e).__name__},
            )
            raise AuthenticationError(f"failed to acquire token: {e}") from e
