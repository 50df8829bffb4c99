"""Configuration management with validation.

Cloud environment and timeout settings are validated at load time so a
misconfigured process fails before the first reconcile pass.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_CREDENTIAL_TIMEOUT_SECONDS = 30
MIN_CREDENTIAL_TIMEOUT_SECONDS = 1
MAX_CREDENTIAL_TIMEOUT_SECONDS = 300

DEFAULT_PATCH_TIMEOUT_SECONDS = 60
MIN_PATCH_TIMEOUT_SECONDS = 1
MAX_PATCH_TIMEOUT_SECONDS = 600

DEFAULT_ENVIRONMENT_NAME = "AzurePublicCloud"

# Manifest files larger than this are rejected before parsing
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024


@dataclass(frozen=True)
class CloudEnvironment:
    """Endpoints of one Azure cloud.

    Only the fields consumed by the scope are modelled: the Resource Manager
    endpoint used as the API base URI, the DNS suffix public IPs are published
    under, and the Entra ID authority host used to acquire tokens.
    """

    name: str
    resource_manager_endpoint: str
    resource_manager_vm_dns_suffix: str
    authority_host: str


AZURE_PUBLIC_CLOUD = CloudEnvironment(
    name="AzurePublicCloud",
    resource_manager_endpoint="https://management.azure.com/",
    resource_manager_vm_dns_suffix="cloudapp.azure.com",
    authority_host="login.microsoftonline.com",
)

AZURE_CHINA_CLOUD = CloudEnvironment(
    name="AzureChinaCloud",
    resource_manager_endpoint="https://management.chinacloudapi.cn/",
    resource_manager_vm_dns_suffix="cloudapp.chinacloudapi.cn",
    authority_host="login.chinacloudapi.cn",
)

AZURE_US_GOVERNMENT_CLOUD = CloudEnvironment(
    name="AzureUSGovernmentCloud",
    resource_manager_endpoint="https://management.usgovcloudapi.net/",
    resource_manager_vm_dns_suffix="cloudapp.usgovcloudapi.net",
    authority_host="login.microsoftonline.us",
)

AZURE_GERMAN_CLOUD = CloudEnvironment(
    name="AzureGermanCloud",
    resource_manager_endpoint="https://management.microsoftazure.de/",
    resource_manager_vm_dns_suffix="cloudapp.microsoftazure.de",
    authority_host="login.microsoftonline.de",
)

CLOUD_ENVIRONMENTS: dict[str, CloudEnvironment] = {
    env.name.lower(): env
    for env in (
        AZURE_PUBLIC_CLOUD,
        AZURE_CHINA_CLOUD,
        AZURE_US_GOVERNMENT_CLOUD,
        AZURE_GERMAN_CLOUD,
    )
}


def get_cloud_environment(name: str) -> CloudEnvironment:
    """Look up a cloud environment by name (case-insensitive).

    Raises:
        ConfigurationError: If the name is not a known Azure cloud.
    """
    env = CLOUD_ENVIRONMENTS.get(name.strip().lower())
    if env is None:
        valid = sorted(e.name for e in CLOUD_ENVIRONMENTS.values())
        raise ConfigurationError(f"AZURE_ENVIRONMENT must be one of {valid}: {name}")
    return env


@dataclass(frozen=True)
class ScopeConfig:
    """Settings shared by every scope built in this process.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    environment: CloudEnvironment = field(default_factory=lambda: AZURE_PUBLIC_CLOUD)

    # User-assigned managed identity; system-assigned when unset
    client_id: str | None = None

    # Timing
    credential_timeout_seconds: int = DEFAULT_CREDENTIAL_TIMEOUT_SECONDS
    patch_timeout_seconds: int = DEFAULT_PATCH_TIMEOUT_SECONDS

    # Acquire a token while resolving credentials so bad identities fail early
    verify_credentials: bool = True

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not (
            MIN_CREDENTIAL_TIMEOUT_SECONDS
            <= self.credential_timeout_seconds
            <= MAX_CREDENTIAL_TIMEOUT_SECONDS
        ):
            errors.append(
                f"CREDENTIAL_TIMEOUT must be between {MIN_CREDENTIAL_TIMEOUT_SECONDS} "
                f"and {MAX_CREDENTIAL_TIMEOUT_SECONDS} seconds"
            )

        if not (
            MIN_PATCH_TIMEOUT_SECONDS <= self.patch_timeout_seconds <= MAX_PATCH_TIMEOUT_SECONDS
        ):
            errors.append(
                f"PATCH_TIMEOUT must be between {MIN_PATCH_TIMEOUT_SECONDS} "
                f"and {MAX_PATCH_TIMEOUT_SECONDS} seconds"
            )

        if self.client_id is not None and not self.client_id.strip():
            errors.append("AZURE_CLIENT_ID must not be blank when set")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> ScopeConfig:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_ENVIRONMENT: Cloud name (default: AzurePublicCloud)
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity
            CREDENTIAL_TIMEOUT: Seconds allowed for credential resolution (default: 30)
            PATCH_TIMEOUT: Seconds allowed for persisting the AzureCluster (default: 60)
            VERIFY_CREDENTIALS: If "false", skip the token probe (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            environment=get_cloud_environment(
                os.environ.get("AZURE_ENVIRONMENT") or DEFAULT_ENVIRONMENT_NAME
            ),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            credential_timeout_seconds=get_int(
                "CREDENTIAL_TIMEOUT", DEFAULT_CREDENTIAL_TIMEOUT_SECONDS
            ),
            patch_timeout_seconds=get_int("PATCH_TIMEOUT", DEFAULT_PATCH_TIMEOUT_SECONDS),
            verify_credentials=get_bool("VERIFY_CREDENTIALS", True),
        )
