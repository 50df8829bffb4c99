"""Pydantic models for the cluster objects a scope reads and writes.

Only the fields the scope touches are modelled. Unknown fields are kept as
they were read, so ``to_k8s()`` writes back the whole object in its
Kubernetes (camelCase) form and a commit never drops server-side fields.

The derived specs at the bottom of this module (PublicIPSpec, LBSpec) are
plain frozen dataclasses: they are computed on demand and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field

CLUSTER_API_VERSION = "cluster.x-k8s.io/v1alpha3"
INFRASTRUCTURE_API_VERSION = "infrastructure.cluster.x-k8s.io/v1alpha3"


class SubnetRole(str, Enum):
    """Role a subnet plays in the cluster network."""

    CONTROL_PLANE = "control-plane"
    NODE = "node"


class LBRole(str, Enum):
    """Role tag carried by each load balancer spec."""

    INTERNAL = "Internal"
    API_SERVER = "APIServer"
    NODE_OUTBOUND = "NodeOutbound"


# =============================================================================
# Shared Kubernetes types
# =============================================================================


class K8sModel(BaseModel):
    """Base for Kubernetes object fragments."""

    # Extra fields survive the round trip; merge patches replace lists wholesale
    model_config = {"extra": "allow", "populate_by_name": True}

    def to_k8s(self) -> dict[str, Any]:
        """Serialize to the Kubernetes wire form (camelCase, no unset nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObjectMeta(K8sModel):
    """Subset of Kubernetes object metadata."""

    name: str = ""
    namespace: str = ""
    resource_version: str | None = Field(None, alias="resourceVersion")
    uid: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Cluster (owned externally, read-only for the scope)
# =============================================================================


class ClusterNetwork(K8sModel):
    """Cluster-wide network settings."""

    api_server_port: Annotated[int, Field(ge=1, le=65535)] | None = Field(
        None, alias="apiServerPort"
    )


class ClusterSpec(K8sModel):
    cluster_network: ClusterNetwork | None = Field(None, alias="clusterNetwork")


class Cluster(K8sModel):
    """Cluster API ``Cluster`` object."""

    api_version: str = Field(CLUSTER_API_VERSION, alias="apiVersion")
    kind: str = "Cluster"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: ClusterSpec = Field(default_factory=ClusterSpec)


# =============================================================================
# AzureCluster (mutable aggregate under reconciliation)
# =============================================================================


class VnetSpec(K8sModel):
    """Virtual network the cluster lives in."""

    id: str | None = None
    name: str = ""
    cidr_block: str | None = Field(None, alias="cidrBlock")
    resource_group: str | None = Field(None, alias="resourceGroup")
    tags: dict[str, str] = Field(default_factory=dict)


class SubnetSpec(K8sModel):
    """Subnet inside the cluster vnet."""

    role: SubnetRole | None = None
    id: str | None = None
    name: str = ""
    cidr_block: str = Field("", alias="cidrBlock")
    internal_lb_ip_address: str | None = Field(None, alias="internalLBIPAddress")


class NetworkSpec(K8sModel):
    vnet: VnetSpec = Field(default_factory=VnetSpec)
    subnets: list[SubnetSpec] = Field(default_factory=list)

    def _subnet_with_role(self, role: SubnetRole) -> SubnetSpec:
        for subnet in self.subnets:
            if subnet.role == role:
                return subnet
        return SubnetSpec()

    def control_plane_subnet(self) -> SubnetSpec:
        """Return the control plane subnet, or an empty spec if none is declared."""
        return self._subnet_with_role(SubnetRole.CONTROL_PLANE)

    def node_subnet(self) -> SubnetSpec:
        """Return the node subnet, or an empty spec if none is declared."""
        return self._subnet_with_role(SubnetRole.NODE)


class APIEndpoint(K8sModel):
    host: str = ""
    port: int = 0


class AzureClusterSpec(K8sModel):
    subscription_id: str = Field("", alias="subscriptionID")
    resource_group: str = Field("", alias="resourceGroup")
    location: str = ""
    additional_tags: dict[str, str] | None = Field(None, alias="additionalTags")
    network_spec: NetworkSpec = Field(default_factory=NetworkSpec, alias="networkSpec")
    control_plane_endpoint: APIEndpoint = Field(
        default_factory=APIEndpoint, alias="controlPlaneEndpoint"
    )


class PublicIP(K8sModel):
    """Public IP recorded in status once provisioned."""

    id: str | None = None
    name: str = ""
    ip_address: str | None = Field(None, alias="ipAddress")
    dns_name: str = Field("", alias="dnsName")


class Network(K8sModel):
    """Observed network state."""

    api_server_ip: PublicIP = Field(default_factory=PublicIP, alias="apiServerIp")


class FailureDomainSpec(K8sModel):
    """Fault zone a machine may be placed in."""

    control_plane: bool = Field(False, alias="controlPlane")
    attributes: dict[str, str] = Field(default_factory=dict)


class AzureClusterStatus(K8sModel):
    ready: bool = False
    network: Network = Field(default_factory=Network)
    failure_domains: dict[str, FailureDomainSpec] | None = Field(None, alias="failureDomains")
    failure_reason: str | None = Field(None, alias="failureReason")
    failure_message: str | None = Field(None, alias="failureMessage")


class AzureCluster(K8sModel):
    """Infrastructure provider ``AzureCluster`` object."""

    api_version: str = Field(INFRASTRUCTURE_API_VERSION, alias="apiVersion")
    kind: str = "AzureCluster"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: AzureClusterSpec = Field(default_factory=AzureClusterSpec)
    status: AzureClusterStatus = Field(default_factory=AzureClusterStatus)


# =============================================================================
# Derived specs consumed by infrastructure services
# =============================================================================


@dataclass(frozen=True)
class PublicIPSpec:
    """Public IP an infrastructure service should ensure exists."""

    name: str
    dns_name: str = ""


@dataclass(frozen=True)
class LBSpec:
    """Load balancer an infrastructure service should ensure exists."""

    name: str
    role: LBRole
    subnet_name: str = ""
    subnet_cidr: str = ""
    private_ip_address: str = ""
    api_server_port: int | None = None
    public_ip_name: str = ""
