"""Generic object store over the dynamic client.

The reconcile core reads and writes every kind (core objects and operator
custom resources alike) through :class:`ObjectStore`, keyed by
``(kind, namespace, name)``. Failures surface as translated
``KubernetesError`` subclasses; a missing object is always
``KubernetesNotFoundError``.
"""

from __future__ import annotations

from typing import Any, Protocol

from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.services.kubernetes.base import K8sBaseManager

MERGE_PATCH = "application/merge-patch+json"
FIELD_MANAGER = "manager-operator"


class ObjectStore(Protocol):
    """Kind-agnostic read/write access to cluster objects."""

    def get(self, ref: ObjectRef) -> dict[str, Any]:
        """Return the live object or raise ``KubernetesNotFoundError``."""
        ...

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create an object and return the stored version."""
        ...

    def replace(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an object (carrying its resourceVersion) and return it."""
        ...

    def delete(self, ref: ObjectRef) -> None:
        """Delete an object; raises ``KubernetesNotFoundError`` if absent."""
        ...

    def patch_status(self, ref: ObjectRef, status: dict[str, Any]) -> dict[str, Any]:
        """Merge-patch the status subresource."""
        ...


class ClusterObjectStore(K8sBaseManager):
    """:class:`ObjectStore` backed by ``kubernetes.dynamic.DynamicClient``."""

    _entity_name = "object_store"

    def _resource(self, api_version: str, kind: str) -> Any:
        return self._client.dynamic.resources.get(api_version=api_version, kind=kind)

    def get(self, ref: ObjectRef) -> dict[str, Any]:
        """Read one object."""
        self._log.debug("getting_object", ref=str(ref))
        try:
            resource = self._resource(ref.api_version, ref.kind)
            result = resource.get(name=ref.name, namespace=ref.namespace)
            obj: dict[str, Any] = result.to_dict()
            return obj
        except Exception as e:
            self._handle_api_error(e, ref.kind, ref.name, ref.namespace)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create one object."""
        ref = ObjectRef.from_object(obj)
        try:
            resource = self._resource(ref.api_version, ref.kind)
            result = resource.create(
                body=obj, namespace=ref.namespace, field_manager=FIELD_MANAGER
            )
            self._log.info("created_object", ref=str(ref))
            created: dict[str, Any] = result.to_dict()
            return created
        except Exception as e:
            self._handle_api_error(e, ref.kind, ref.name, ref.namespace)

    def replace(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace one object; a stale resourceVersion raises a conflict."""
        ref = ObjectRef.from_object(obj)
        try:
            resource = self._resource(ref.api_version, ref.kind)
            result = resource.replace(
                body=obj,
                name=ref.name,
                namespace=ref.namespace,
                field_manager=FIELD_MANAGER,
            )
            self._log.info("replaced_object", ref=str(ref))
            replaced: dict[str, Any] = result.to_dict()
            return replaced
        except Exception as e:
            self._handle_api_error(e, ref.kind, ref.name, ref.namespace)

    def delete(self, ref: ObjectRef) -> None:
        """Delete one object."""
        try:
            resource = self._resource(ref.api_version, ref.kind)
            resource.delete(name=ref.name, namespace=ref.namespace)
            self._log.info("deleted_object", ref=str(ref))
        except Exception as e:
            self._handle_api_error(e, ref.kind, ref.name, ref.namespace)

    def patch_status(self, ref: ObjectRef, status: dict[str, Any]) -> dict[str, Any]:
        """Merge-patch ``status`` on the status subresource."""
        try:
            resource = self._resource(ref.api_version, ref.kind)
            result = resource.status.patch(
                body={"status": status},
                name=ref.name,
                namespace=ref.namespace,
                content_type=MERGE_PATCH,
            )
            self._log.info("patched_status", ref=str(ref))
            patched: dict[str, Any] = result.to_dict()
            return patched
        except Exception as e:
            self._handle_api_error(e, ref.kind, ref.name, ref.namespace)
