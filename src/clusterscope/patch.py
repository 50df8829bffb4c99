"""Persist changes to a custom resource as JSON merge patches.

A PatchHelper is bound to one object at the start of a reconcile pass and
remembers how that object looked. ``patch()`` later diffs the object's
current state against that snapshot and sends only the delta:

- metadata labels/annotations and ``spec`` through the main resource
- ``status`` through the ``/status`` subresource

Each part is sent only when it actually changed. Requests run in an
executor under a timeout since the kubernetes client is synchronous.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from kubernetes.client import ApiException

from .config import DEFAULT_PATCH_TIMEOUT_SECONDS
from .models import K8sModel

logger = logging.getLogger(__name__)

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"

# Metadata fields a patch may carry; identity and versioning are server-owned
PATCHABLE_METADATA_FIELDS: tuple[str, ...] = ("labels", "annotations")


class PatchError(Exception):
    """Raised when a patch helper cannot be bound or a patch fails."""

    pass


def compute_merge_patch(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """Compute an RFC 7386 merge patch turning ``before`` into ``after``.

    Keys missing from ``after`` map to ``None`` (delete). Nested mappings are
    diffed recursively; lists and scalars are replaced wholesale.
    """
    patch: dict[str, Any] = {}

    for key in before:
        if key not in after:
            patch[key] = None

    for key, value in after.items():
        if key not in before:
            patch[key] = copy.deepcopy(value)
            continue
        old = before[key]
        if isinstance(old, dict) and isinstance(value, dict):
            nested = compute_merge_patch(old, value)
            if nested:
                patch[key] = nested
        elif old != value:
            patch[key] = copy.deepcopy(value)

    return patch


def _split(document: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a serialized object into its main-resource and status parts."""
    metadata = document.get("metadata", {})
    main: dict[str, Any] = {
        "metadata": {k: metadata[k] for k in PATCHABLE_METADATA_FIELDS if k in metadata},
        "spec": document.get("spec", {}),
    }
    return main, document.get("status", {})


def _resource_coordinates(document: dict[str, Any]) -> tuple[str, str, str]:
    api_version = document.get("apiVersion", "")
    kind = document.get("kind", "")
    if "/" not in api_version or not kind:
        raise PatchError(
            f"object must carry a group/version apiVersion and a kind: "
            f"apiVersion={api_version!r} kind={kind!r}"
        )
    group, version = api_version.split("/", 1)
    return group, version, f"{kind.lower()}s"


class PatchHelper:
    """Diff-and-apply persistence for one custom resource.

    Use ``PatchHelper.bind(obj, client)`` (or ``new_helper``) rather than the
    constructor; ``bind`` validates the object and takes the snapshot.
    """

    def __init__(
        self,
        client: Any,
        *,
        name: str,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        snapshot: dict[str, Any],
        timeout_seconds: int = DEFAULT_PATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._name = name
        self._namespace = namespace
        self._group = group
        self._version = version
        self._plural = plural
        self._before = snapshot
        self._timeout_seconds = timeout_seconds

    @classmethod
    def bind(
        cls,
        obj: K8sModel | None,
        client: Any,
        timeout_seconds: int = DEFAULT_PATCH_TIMEOUT_SECONDS,
    ) -> PatchHelper:
        """Bind a helper to ``obj``, persisting through ``client``.

        Args:
            obj: The object to track. Its current state becomes the baseline.
            client: A kubernetes ``CustomObjectsApi`` (or compatible) instance.
            timeout_seconds: Upper bound on each patch request.

        Raises:
            PatchError: If the client is missing or the object cannot be addressed.
        """
        if client is None:
            raise PatchError("expected non-nil client")
        if obj is None:
            raise PatchError("expected non-nil object")

        document = obj.to_k8s()
        metadata = document.get("metadata", {})
        name = metadata.get("name")
        namespace = metadata.get("namespace")
        if not name or not namespace:
            raise PatchError(
                f"object must have a name and namespace: name={name!r} namespace={namespace!r}"
            )

        group, version, plural = _resource_coordinates(document)
        return cls(
            client,
            name=name,
            namespace=namespace,
            group=group,
            version=version,
            plural=plural,
            snapshot=copy.deepcopy(document),
            timeout_seconds=timeout_seconds,
        )

    @property
    def resource(self) -> str:
        """``plural.group/namespace/name`` for log lines."""
        return f"{self._plural}.{self._group}/{self._namespace}/{self._name}"

    async def patch(self, obj: K8sModel) -> None:
        """Send whatever changed on ``obj`` since the snapshot.

        On success the snapshot moves to the persisted state, so a second
        call with no further changes sends nothing.

        Raises:
            PatchError: If the API rejects a patch or a request times out.
        """
        after = obj.to_k8s()
        main_before, status_before = _split(self._before)
        main_after, status_after = _split(after)

        main_patch = compute_merge_patch(main_before, main_after)
        status_patch = compute_merge_patch(status_before, status_after)

        if not main_patch and not status_patch:
            logger.debug("No changes to persist", extra={"resource": self.resource})
            return

        if main_patch:
            await self._send(self._client.patch_namespaced_custom_object, main_patch, "spec")
        if status_patch:
            await self._send(
                self._client.patch_namespaced_custom_object_status,
                {"status": status_patch},
                "status",
            )

        self._before = copy.deepcopy(after)
        logger.info(
            "Patched object",
            extra={
                "resource": self.resource,
                "spec_changed": bool(main_patch),
                "status_changed": bool(status_patch),
            },
        )

    async def _send(self, method: Any, body: dict[str, Any], part: str) -> None:
        loop = asyncio.get_running_loop()

        def call() -> Any:
            return method(
                group=self._group,
                version=self._version,
                namespace=self._namespace,
                plural=self._plural,
                name=self._name,
                body=body,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )

        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, call),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as e:
            raise PatchError(
                f"timed out after {self._timeout_seconds}s patching {part} of {self.resource}"
            ) from e
        except ApiException as e:
            logger.error(
                f"Kubernetes API error patching {part} of {self.resource}: {e.reason}",
                extra={"resource": self.resource, "status_code": e.status},
            )
            raise PatchError(
                f"failed to patch {part} of {self.resource} ({e.status}): {e.reason}"
            ) from e


def new_helper(
    obj: K8sModel | None,
    client: Any,
    timeout_seconds: int = DEFAULT_PATCH_TIMEOUT_SECONDS,
) -> PatchHelper:
    """Shorthand for ``PatchHelper.bind``."""
    return PatchHelper.bind(obj, client, timeout_seconds)
