"""One reconcile pass over an AzureCluster.

The reconciler owns the scope lifecycle: it opens a scope, runs each
infrastructure service against it in order, records readiness on the
AzureCluster, and lets the scope persist the result on the way out.

Retries are not handled here. A failed pass raises; the caller decides
when to run a fresh pass, which re-reads state and builds a new scope.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from .config import ScopeConfig
from .credentials import AzureCredentialResolver, CredentialResolver
from .models import AzureCluster, Cluster
from .scope import ClusterScope, ClusterScopeParams, PatchHelperFactory, cluster_scope

logger = logging.getLogger(__name__)

RECONCILE_FAILED_REASON = "ReconcileFailed"


class InfraService(Protocol):
    """An actuator that ensures part of the cluster's Azure infrastructure."""

    name: str

    async def reconcile(self, scope: ClusterScope) -> None: ...


@dataclass
class ReconcileResult:
    """Result of a single reconcile pass."""

    cluster: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    services_completed: list[str] = field(default_factory=list)
    ready: bool = False
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        return self.error is None


class AzureClusterReconciler:
    """Drive one AzureCluster towards its desired infrastructure."""

    def __init__(
        self,
        client: Any,
        services: Sequence[InfraService],
        *,
        credential_resolver: CredentialResolver | None = None,
        config: ScopeConfig | None = None,
        patch_helper_factory: PatchHelperFactory | None = None,
    ) -> None:
        self._client = client
        self._services = list(services)
        # One resolver for the reconciler's lifetime so its credential is reused
        self._owned_resolver: AzureCredentialResolver | None = None
        if credential_resolver is None:
            credential_resolver = self._owned_resolver = AzureCredentialResolver(config)
        self._credential_resolver = credential_resolver
        self._config = config
        self._patch_helper_factory = patch_helper_factory

    def close(self) -> None:
        """Release the credential this reconciler created, if any."""
        if self._owned_resolver is not None:
            self._owned_resolver.close()

    async def reconcile(self, cluster: Cluster, azure_cluster: AzureCluster) -> ReconcileResult:
        """Run every service once and persist the outcome.

        Raises:
            InvalidArgumentError, InitializationError: If the scope cannot be built.
            CommitError: If the services succeeded but persistence failed.
            Exception: Whatever a service raised; the AzureCluster is still
                persisted with ``ready=False`` and the failure message.
        """
        result = ReconcileResult(cluster=cluster.metadata.name if cluster else "")
        params = ClusterScopeParams(
            client=self._client,
            cluster=cluster,
            azure_cluster=azure_cluster,
            credential_resolver=self._credential_resolver,
            config=self._config,
            patch_helper_factory=self._patch_helper_factory,
        )

        try:
            async with cluster_scope(params) as scope:
                await self._reconcile_normal(scope, result)
        except Exception as e:
            result.error = e
            logger.error(
                f"Reconcile failed for cluster {result.cluster}: {e}",
                extra={"cluster": result.cluster, "error_type": type(e).__name__},
            )
            raise
        finally:
            result.end_time = datetime.now(UTC)

        logger.info(
            "Reconcile completed",
            extra={
                "cluster": result.cluster,
                "services": result.services_completed,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    async def _reconcile_normal(self, scope: ClusterScope, result: ReconcileResult) -> None:
        status = scope.azure_cluster.status
        try:
            for service in self._services:
                scope.logger.debug("Reconciling service", extra={"service": service.name})
                await service.reconcile(scope)
                result.services_completed.append(service.name)
        except Exception as e:
            status.ready = False
            status.failure_reason = RECONCILE_FAILED_REASON
            status.failure_message = f"{type(e).__name__}: {e}"
            raise

        endpoint = scope.azure_cluster.spec.control_plane_endpoint
        if not endpoint.host and scope.network().api_server_ip.name:
            endpoint.host = scope.generate_fqdn()
            endpoint.port = scope.api_server_port()

        status.ready = True
        status.failure_reason = None
        status.failure_message = None
        result.ready = True
