"""Base models for Kubernetes objects read by the operator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True, order=True)
class ObjectRef:
    """Identity of one object in the cluster.

    Objects are keyed by ``(kind, namespace, name)``; ``api_version`` is
    carried so the dynamic client can find the serving endpoint.
    """

    api_version: str
    kind: str
    name: str
    namespace: str | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ObjectRef:
        """Build a reference from a manifest dict."""
        metadata = obj.get("metadata") or {}
        return cls(
            api_version=obj.get("apiVersion", ""),
            kind=obj.get("kind", ""),
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or None,
        )

    @property
    def key(self) -> tuple[str, str, str]:
        """Store key ``(kind, namespace, name)``; cluster-scoped objects use ''."""
        return (self.kind, self.namespace or "", self.name)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class K8sEntityBase(BaseModel):
    """Base class for models built from cluster objects."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    name: str = Field(description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    labels: dict[str, str] | None = Field(default=None, description="Resource labels")
    annotations: dict[str, str] | None = Field(default=None, description="Resource annotations")


def metadata_fields(obj: dict[str, Any]) -> dict[str, Any]:
    """Extract the common metadata fields of a manifest dict."""
    metadata = obj.get("metadata") or {}
    return {
        "name": metadata.get("name", ""),
        "namespace": metadata.get("namespace"),
        "uid": metadata.get("uid"),
        "labels": dict(metadata["labels"]) if metadata.get("labels") else None,
        "annotations": dict(metadata["annotations"]) if metadata.get("annotations") else None,
    }


def status_state(obj: dict[str, Any]) -> str:
    """Return ``status.state`` of an operator resource, or ''."""
    status = obj.get("status") or {}
    return str(status.get("state") or "")
