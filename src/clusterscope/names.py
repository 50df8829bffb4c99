"""Deterministic names for cluster infrastructure.

Load balancers and public IPs are named from the cluster name alone so that
every reconcile pass addresses the same Azure resources.
"""

from __future__ import annotations

# Label carried by every object owned by a cluster
CLUSTER_LABEL_NAME = "cluster.x-k8s.io/cluster-name"

# Used when the Cluster does not override the API server port
DEFAULT_API_SERVER_PORT = 6443


def generate_node_outbound_ip_name(cluster_name: str) -> str:
    """Name of the public IP used for node egress."""
    return f"pip-{cluster_name}-node-outbound"


def generate_internal_lb_name(cluster_name: str) -> str:
    """Name of the internal control plane load balancer."""
    return f"{cluster_name}-internal-lb"


def generate_public_lb_name(cluster_name: str) -> str:
    """Name of the public API server load balancer."""
    return f"{cluster_name}-public-lb"


def generate_fqdn(ip_name: str, location: str, dns_suffix: str) -> str:
    """Compose ``{ip_name}.{location}.{dns_suffix}``.

    Components are joined verbatim; callers pass well-formed DNS labels.
    """
    return f"{ip_name}.{location}.{dns_suffix}"
