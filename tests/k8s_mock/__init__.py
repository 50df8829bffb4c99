"""In-memory fakes for testing cluster scopes without a cluster or Azure.

Usage:
    from k8s_mock import MockCustomObjectsApi, StaticCredentialResolver

    api = MockCustomObjectsApi()
    api.put(azure_cluster.to_k8s())
    params = ClusterScopeParams(
        client=api,
        cluster=cluster,
        azure_cluster=azure_cluster,
        credential_resolver=StaticCredentialResolver(),
    )
"""

from .credential import MockTokenCredential, create_mock_credential
from .custom_objects import MockCustomObjectsApi, PatchCall
from .resolver import FailingCredentialResolver, StaticCredentialResolver

__all__ = [
    "FailingCredentialResolver",
    "MockCustomObjectsApi",
    "MockTokenCredential",
    "PatchCall",
    "StaticCredentialResolver",
    "create_mock_credential",
]
