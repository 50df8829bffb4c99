"""Load Cluster and AzureCluster objects from YAML manifests.

Manifests may hold several documents; each one is matched on ``kind`` and
validated into its model. Documents of other kinds are skipped.

SECURITY: File size is checked before reading to bound memory use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .models import AzureCluster, Cluster, K8sModel

logger = logging.getLogger(__name__)


class ManifestError(Exception):
    """Raised when a manifest cannot be read or fails validation."""

    pass


KIND_REGISTRY: dict[str, type[K8sModel]] = {
    "Cluster": Cluster,
    "AzureCluster": AzureCluster,
}


@dataclass
class Manifests:
    """Objects found in a manifest, grouped by kind."""

    clusters: list[Cluster] = field(default_factory=list)
    azure_clusters: list[AzureCluster] = field(default_factory=list)

    def cluster(self, name: str) -> Cluster | None:
        return next((c for c in self.clusters if c.metadata.name == name), None)

    def azure_cluster(self, name: str) -> AzureCluster | None:
        return next((c for c in self.azure_clusters if c.metadata.name == name), None)


def _format_validation_error(source: str, index: int, kind: str, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    error_list = "\n".join(errors)
    return f"Validation failed for {kind} (document {index}) in {source}:\n{error_list}"


def parse_manifests(content: str, source: str = "<string>") -> Manifests:
    """Parse multi-document YAML into Cluster/AzureCluster models.

    Raises:
        ManifestError: If the YAML is invalid or a known kind fails validation.
    """
    try:
        documents: list[Any] = list(yaml.safe_load_all(content))
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {source}: {e}") from e

    result = Manifests()
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ManifestError(f"Document {index} in {source} must be a YAML mapping")

        kind = document.get("kind", "")
        model_class = KIND_REGISTRY.get(kind)
        if model_class is None:
            logger.debug("Skipping document of kind '%s' in %s", kind, source)
            continue

        try:
            obj = model_class.model_validate(document)
        except ValidationError as e:
            raise ManifestError(_format_validation_error(source, index, kind, e)) from e

        if isinstance(obj, Cluster):
            result.clusters.append(obj)
        elif isinstance(obj, AzureCluster):
            result.azure_clusters.append(obj)

    return result


def load_manifests(path: Path) -> Manifests:
    """Read and parse a manifest file.

    Raises:
        ManifestError: If the file is missing, too large, unreadable or invalid.
    """
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise ManifestError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Failed to read manifest file {path}: {e}") from e

    manifests = parse_manifests(content, str(path))
    logger.info(
        "Loaded %d Cluster and %d AzureCluster objects from %s",
        len(manifests.clusters),
        len(manifests.azure_clusters),
        path,
    )
    return manifests
