"""Per-reconcile view of an Azure cluster's infrastructure.

A ClusterScope is built at the start of one reconcile pass and closed at
its end. In between, infrastructure services read the cluster through the
scope's accessors, ask it for the public IPs and load balancers they must
ensure, and record what they observed directly on ``scope.azure_cluster``.
Closing the scope persists the AzureCluster (spec and status) once, through
the patch helper bound at construction.

Typical use from a reconciler:

    async with cluster_scope(params) as scope:
        for service in services:
            await service.reconcile(scope)

The ``async with`` block guarantees the commit runs on every exit path.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import AsyncIterator, Callable, MutableMapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from azure.core.credentials import TokenCredential

from .config import ScopeConfig
from .credentials import AzureCredentialResolver, CredentialBundle, CredentialResolver
from .models import (
    AzureCluster,
    Cluster,
    FailureDomainSpec,
    LBRole,
    LBSpec,
    Network,
    PublicIPSpec,
    SubnetSpec,
    VnetSpec,
)
from .names import (
    CLUSTER_LABEL_NAME,
    DEFAULT_API_SERVER_PORT,
    generate_fqdn,
    generate_internal_lb_name,
    generate_node_outbound_ip_name,
    generate_public_lb_name,
)
from .patch import PatchHelper

logger = logging.getLogger(__name__)


class ScopeError(Exception):
    """Base class for scope lifecycle errors."""

    pass


class InvalidArgumentError(ScopeError, ValueError):
    """Raised when a required scope input is missing."""

    pass


class InitializationError(ScopeError):
    """Raised when credentials or the patch helper cannot be set up."""

    pass


class CommitError(ScopeError):
    """Raised when the AzureCluster cannot be persisted at scope close."""

    pass


class ScopeClosedError(ScopeError):
    """Raised when a closed scope is asked to persist again."""

    pass


PatchHelperFactory = Callable[[AzureCluster, Any], PatchHelper]


class _ScopeLoggerAdapter(logging.LoggerAdapter):
    """Stamp cluster identity on every record, keeping per-call extras."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


@dataclass
class ClusterScopeParams:
    """Inputs for building a ClusterScope.

    ``client`` is handed to the patch helper factory untouched; with the
    default factory it must be a kubernetes ``CustomObjectsApi``.
    """

    client: Any
    cluster: Cluster | None
    azure_cluster: AzureCluster | None
    logger: logging.Logger | logging.LoggerAdapter | None = None
    credential_resolver: CredentialResolver | None = None
    config: ScopeConfig | None = None
    patch_helper_factory: PatchHelperFactory | None = None


class ClusterScope:
    """Cluster state, credentials and deferred persistence for one reconcile pass.

    Not safe for concurrent use: one scope belongs to one reconcile call.
    Build it with ``ClusterScope.create`` (or ``cluster_scope``), never by
    calling the constructor directly.
    """

    def __init__(
        self,
        *,
        client: Any,
        cluster: Cluster,
        azure_cluster: AzureCluster,
        credentials: CredentialBundle,
        patch_helper: PatchHelper,
        logger: logging.Logger | logging.LoggerAdapter,
        owned_resolver: AzureCredentialResolver | None = None,
    ) -> None:
        self.client = client
        self.cluster = cluster
        self.azure_cluster = azure_cluster
        self.credentials = credentials
        self.logger = logger
        self._patch_helper = patch_helper
        self._owned_resolver = owned_resolver
        self._closed = False

    @classmethod
    async def create(cls, params: ClusterScopeParams) -> ClusterScope:
        """Validate inputs, resolve credentials and bind the patch helper.

        The passed Cluster and AzureCluster are not modified.

        Raises:
            InvalidArgumentError: If the Cluster or AzureCluster is missing.
            InitializationError: If credential resolution or patch helper
                binding fails. The cause is chained.
        """
        if params.cluster is None:
            raise InvalidArgumentError("failed to generate new scope from nil Cluster")
        if params.azure_cluster is None:
            raise InvalidArgumentError("failed to generate new scope from nil AzureCluster")

        cluster = params.cluster
        azure_cluster = params.azure_cluster
        config = params.config or ScopeConfig()

        scope_logger = params.logger
        if scope_logger is None:
            scope_logger = _ScopeLoggerAdapter(
                logger,
                {"cluster": cluster.metadata.name, "namespace": cluster.metadata.namespace},
            )

        # Without an injected resolver the scope owns one and releases it on close
        owned_resolver = None
        resolver = params.credential_resolver
        if resolver is None:
            resolver = owned_resolver = AzureCredentialResolver(config)
        try:
            credentials = await resolver.resolve(azure_cluster.spec.subscription_id)
        except Exception as e:
            if owned_resolver is not None:
                owned_resolver.close()
            raise InitializationError(f"failed to create Azure session: {e}") from e

        factory = params.patch_helper_factory or (
            lambda obj, client: PatchHelper.bind(obj, client, config.patch_timeout_seconds)
        )
        try:
            helper = factory(azure_cluster, params.client)
        except Exception as e:
            if owned_resolver is not None:
                owned_resolver.close()
            raise InitializationError(f"failed to init patch helper: {e}") from e

        scope_logger.debug(
            "Created cluster scope",
            extra={"subscription_id": credentials.subscription_id},
        )
        return cls(
            client=params.client,
            cluster=cluster,
            azure_cluster=azure_cluster,
            credentials=credentials,
            patch_helper=helper,
            logger=scope_logger,
            owned_resolver=owned_resolver,
        )

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def subscription_id(self) -> str:
        return self.credentials.subscription_id

    def base_uri(self) -> str:
        """Resource Manager endpoint of the cluster's cloud."""
        return self.credentials.resource_manager_endpoint

    def authorizer(self) -> TokenCredential:
        return self.credentials.authorizer

    # -------------------------------------------------------------------------
    # Cluster state
    # -------------------------------------------------------------------------

    def network(self) -> Network:
        """Observed network status. Mutations land on the AzureCluster."""
        return self.azure_cluster.status.network

    def vnet(self) -> VnetSpec:
        return self.azure_cluster.spec.network_spec.vnet

    def subnets(self) -> list[SubnetSpec]:
        return self.azure_cluster.spec.network_spec.subnets

    def control_plane_subnet(self) -> SubnetSpec:
        return self.azure_cluster.spec.network_spec.control_plane_subnet()

    def node_subnet(self) -> SubnetSpec:
        return self.azure_cluster.spec.network_spec.node_subnet()

    def resource_group(self) -> str:
        return self.azure_cluster.spec.resource_group

    def cluster_name(self) -> str:
        return self.cluster.metadata.name

    def namespace(self) -> str:
        return self.cluster.metadata.namespace

    def location(self) -> str:
        return self.azure_cluster.spec.location

    def api_server_port(self) -> int:
        """API server port from the Cluster network, else 6443."""
        cluster_network = self.cluster.spec.cluster_network
        if cluster_network is not None and cluster_network.api_server_port is not None:
            return cluster_network.api_server_port
        return DEFAULT_API_SERVER_PORT

    def generate_fqdn(self) -> str:
        """FQDN of the API server public IP: ``{ip name}.{location}.{dns suffix}``."""
        return generate_fqdn(
            self.network().api_server_ip.name,
            self.location(),
            self.credentials.resource_manager_vm_dns_suffix,
        )

    def list_options_label_selector(self) -> dict[str, str]:
        """Labels matching every object owned by this cluster."""
        return {CLUSTER_LABEL_NAME: self.cluster.metadata.name}

    def label_selector(self) -> str:
        """``list_options_label_selector`` in kubernetes ``label_selector`` form."""
        return ",".join(f"{k}={v}" for k, v in self.list_options_label_selector().items())

    def additional_tags(self) -> dict[str, str]:
        """Independent copy of the AzureCluster's additional tags."""
        return copy.deepcopy(self.azure_cluster.spec.additional_tags or {})

    # -------------------------------------------------------------------------
    # Derived specs
    # -------------------------------------------------------------------------

    def public_ip_specs(self) -> list[PublicIPSpec]:
        """Public IPs the cluster needs: node outbound, then API server."""
        api_server_ip = self.network().api_server_ip
        return [
            PublicIPSpec(name=generate_node_outbound_ip_name(self.cluster_name())),
            PublicIPSpec(name=api_server_ip.name, dns_name=api_server_ip.dns_name),
        ]

    def lb_specs(self) -> list[LBSpec]:
        """Load balancers the cluster needs, in the order services rely on."""
        cluster_name = self.cluster_name()
        control_plane_subnet = self.control_plane_subnet()
        return [
            # Internal control plane LB
            LBSpec(
                name=generate_internal_lb_name(cluster_name),
                role=LBRole.INTERNAL,
                subnet_name=control_plane_subnet.name,
                subnet_cidr=control_plane_subnet.cidr_block,
                private_ip_address=control_plane_subnet.internal_lb_ip_address or "",
                api_server_port=self.api_server_port(),
            ),
            # Public API server LB
            LBSpec(
                name=generate_public_lb_name(cluster_name),
                role=LBRole.API_SERVER,
                public_ip_name=self.network().api_server_ip.name,
                api_server_port=self.api_server_port(),
            ),
            # Public node outbound LB
            LBSpec(
                name=cluster_name,
                role=LBRole.NODE_OUTBOUND,
                public_ip_name=generate_node_outbound_ip_name(cluster_name),
            ),
        ]

    # -------------------------------------------------------------------------
    # Mutation and persistence
    # -------------------------------------------------------------------------

    def set_failure_domain(self, failure_domain_id: str, spec: FailureDomainSpec) -> None:
        """Record ``spec`` under ``failure_domain_id``; last write wins."""
        status = self.azure_cluster.status
        if status.failure_domains is None:
            status.failure_domains = {}
        status.failure_domains[failure_domain_id] = spec

    @property
    def closed(self) -> bool:
        return self._closed

    async def patch_object(self) -> None:
        """Persist the AzureCluster now, keeping the scope open.

        Raises:
            ScopeClosedError: If the scope was already closed.
            CommitError: If persistence fails.
        """
        if self._closed:
            raise ScopeClosedError("cannot patch through a closed scope")
        await self._commit()

    async def close(self) -> None:
        """Persist the AzureCluster and close the scope.

        Only the first call commits; later calls raise. A credential the
        scope created for itself is released here; an injected resolver is
        left to its owner.

        Raises:
            ScopeClosedError: If the scope was already closed.
            CommitError: If persistence fails. The scope is closed regardless.
        """
        if self._closed:
            raise ScopeClosedError("scope already closed")
        self._closed = True
        try:
            await self._commit()
        finally:
            if self._owned_resolver is not None:
                self._owned_resolver.close()

    async def _commit(self) -> None:
        try:
            await self._patch_helper.patch(self.azure_cluster)
        except Exception as e:
            self.logger.error(
                f"Failed to persist AzureCluster: {e}",
                extra={"error_type": type(e).__name__},
            )
            raise CommitError(
                f"failed to patch AzureCluster "
                f"{self.azure_cluster.metadata.namespace}/{self.azure_cluster.metadata.name}: {e}"
            ) from e

    async def __aenter__(self) -> ClusterScope:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._closed:
            return
        try:
            await self.close()
        except CommitError:
            if exc is None:
                raise
            # The reconcile error takes precedence; the commit failure is logged above
            self.logger.warning(
                "AzureCluster not persisted after reconcile error",
                extra={"reconcile_error": str(exc)},
            )


async def new_cluster_scope(params: ClusterScopeParams) -> ClusterScope:
    """Build a ClusterScope; see ``ClusterScope.create``."""
    return await ClusterScope.create(params)


@asynccontextmanager
async def cluster_scope(params: ClusterScopeParams) -> AsyncIterator[ClusterScope]:
    """Build a scope and close it when the block exits, however it exits."""
    scope = await ClusterScope.create(params)
    async with scope:
        yield scope
