"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for k8s_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from clusterscope.models import AzureCluster, Cluster  # noqa: E402
from k8s_mock import MockCustomObjectsApi, StaticCredentialResolver  # noqa: E402


@pytest.fixture
def cluster() -> Cluster:
    """A Cluster named c1 with no API server port override."""
    return Cluster.model_validate({"metadata": {"name": "c1", "namespace": "default"}})


@pytest.fixture
def azure_cluster() -> AzureCluster:
    """An AzureCluster with one control plane and one node subnet."""
    return AzureCluster.model_validate(
        {
            "metadata": {"name": "c1", "namespace": "default"},
            "spec": {
                "subscriptionID": "s",
                "resourceGroup": "rg1",
                "location": "eastus",
                "additionalTags": {"env": "test"},
                "networkSpec": {
                    "vnet": {"name": "c1-vnet", "cidrBlock": "10.0.0.0/8"},
                    "subnets": [
                        {
                            "name": "c1-controlplane-subnet",
                            "role": "control-plane",
                            "cidrBlock": "10.0.0.0/16",
                            "internalLBIPAddress": "10.0.0.100",
                        },
                        {"name": "c1-node-subnet", "role": "node", "cidrBlock": "10.1.0.0/16"},
                    ],
                },
            },
            "status": {"network": {"apiServerIp": {"name": "api", "dnsName": "api.eastus.cloudapp.azure.com"}}},
        }
    )


@pytest.fixture
def custom_objects(azure_cluster: AzureCluster) -> MockCustomObjectsApi:
    """Mock API server already holding the azure_cluster fixture."""
    api = MockCustomObjectsApi()
    api.put(azure_cluster.to_k8s())
    return api


@pytest.fixture
def resolver() -> StaticCredentialResolver:
    return StaticCredentialResolver()
