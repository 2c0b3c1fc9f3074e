"""Components and the idempotent apply engine.

A component is an ordered bundle of target objects plus the objects it
wants removed. :class:`ComponentHandler` converges live state toward one
component at a time: it creates what is missing, replaces what differs
after a merge that keeps fields this controller does not own, leaves
converged objects alone, and deletes what the component marks for removal.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import structlog

from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
)
from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.services.manager.errors import ApplyError

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.models.operator import SecretData
    from manager_operator.services.kubernetes.object_store import ObjectStore
    from manager_operator.services.manager.status import StatusManager

logger = structlog.get_logger()

APPLY_ERROR_REASON = "Error creating / updating resource"

# Metadata the API server owns; never part of a desired object.
SERVER_METADATA_FIELDS = (
    "resourceVersion",
    "uid",
    "creationTimestamp",
    "generation",
    "managedFields",
    "selfLink",
)


# =============================================================================
# Components
# =============================================================================


class Component(ABC):
    """A unit of desired state applied as a whole."""

    name: str

    @abstractmethod
    def objects(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Return ``(objects_to_create_or_update, objects_to_delete)``."""


@dataclass(frozen=True)
class PassthroughComponent(Component):
    """Re-applies an existing secret so it carries this controller's ownership."""

    secret: SecretData
    name: str = "passthrough"

    def objects(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        return [self.secret.to_manifest()], []


@dataclass(frozen=True)
class RenderedComponent(Component):
    """Objects produced by a renderer."""

    name: str
    objects_to_apply: tuple[dict[str, Any], ...] = ()
    objects_to_delete: tuple[dict[str, Any], ...] = ()

    def objects(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        return (
            [copy.deepcopy(o) for o in self.objects_to_apply],
            [copy.deepcopy(o) for o in self.objects_to_delete],
        )

    def with_objects(self, objects_to_apply: list[dict[str, Any]]) -> RenderedComponent:
        """Copy of the component with its apply list swapped."""
        return replace(self, objects_to_apply=tuple(objects_to_apply))


# =============================================================================
# Merge
# =============================================================================


def _is_named_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(item, dict) and "name" in item for item in value)
    )


def merge_object(live: Any, desired: Any) -> Any:
    """Merge ``desired`` onto ``live``.

    Dicts merge key by key, keeping keys only ``live`` has. Lists whose
    items are all named dicts merge item by item on ``name`` and follow the
    desired order; live items the desired list drops are removed. Any other
    value is taken from ``desired``.
    """
    if isinstance(live, dict) and isinstance(desired, dict):
        merged = copy.deepcopy(live)
        for key, value in desired.items():
            merged[key] = merge_object(live[key], value) if key in live else copy.deepcopy(value)
        return merged
    if _is_named_list(live) and _is_named_list(desired):
        live_by_name = {item["name"]: item for item in live}
        return [
            merge_object(live_by_name[item["name"]], item)
            if item["name"] in live_by_name
            else copy.deepcopy(item)
            for item in desired
        ]
    return copy.deepcopy(desired)


def comparable(obj: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``obj`` without server-owned metadata and status."""
    result = copy.deepcopy(obj)
    result.pop("status", None)
    metadata = result.get("metadata") or {}
    for name in SERVER_METADATA_FIELDS:
        metadata.pop(name, None)
    return result


def owner_reference(owner: dict[str, Any]) -> dict[str, Any]:
    """Controller owner reference pointing at ``owner``."""
    metadata = owner.get("metadata") or {}
    return {
        "apiVersion": owner["apiVersion"],
        "kind": owner["kind"],
        "name": metadata["name"],
        "uid": metadata.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }


# =============================================================================
# Apply engine
# =============================================================================


@dataclass
class ApplyReport:
    """What one component's apply did."""

    component: str
    created: list[ObjectRef] = field(default_factory=list)
    updated: list[ObjectRef] = field(default_factory=list)
    unchanged: list[ObjectRef] = field(default_factory=list)
    deleted: list[ObjectRef] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        """Number of create, update and delete calls issued."""
        return len(self.created) + len(self.updated) + len(self.deleted)


class ComponentHandler:
    """Applies components against an object store.

    Args:
        store: Object store to converge.
        owner: The primary resource; applied objects get an owner reference to it.
        status: Receives the deployments each component applies.
        log: Logger bound to the pass.
    """

    def __init__(
        self,
        store: ObjectStore,
        owner: dict[str, Any] | None = None,
        status: StatusManager | None = None,
        log: Any = None,
    ) -> None:
        self._store = store
        self._owner_ref = owner_reference(owner) if owner is not None else None
        self._status = status
        self._log = log or logger

    def _with_owner(self, obj: dict[str, Any]) -> dict[str, Any]:
        if self._owner_ref is None:
            return obj
        metadata = obj.setdefault("metadata", {})
        refs = [r for r in metadata.get("ownerReferences") or [] if not r.get("controller")]
        metadata["ownerReferences"] = [dict(self._owner_ref), *refs]
        return obj

    def _create_or_update(self, desired: dict[str, Any], report: ApplyReport) -> None:
        ref = ObjectRef.from_object(desired)
        desired = self._with_owner(desired)
        try:
            live = self._store.get(ref)
        except KubernetesNotFoundError:
            self._store.create(desired)
            report.created.append(ref)
            self._log.debug("object_created", ref=str(ref))
            return

        merged = merge_object(live, desired)
        if comparable(merged) == comparable(live):
            report.unchanged.append(ref)
            return
        self._store.replace(merged)
        report.updated.append(ref)
        self._log.debug("object_updated", ref=str(ref))

    def _delete(self, obj: dict[str, Any], report: ApplyReport) -> None:
        ref = ObjectRef.from_object(obj)
        try:
            self._store.delete(ref)
        except KubernetesNotFoundError:
            return
        report.deleted.append(ref)
        self._log.debug("object_deleted", ref=str(ref))

    def apply(self, component: Component) -> ApplyReport:
        """Converge live state toward one component.

        Stops at the first object that fails; objects already written stay.

        Raises:
            ApplyError: If a read or write against the store fails.
        """
        report = ApplyReport(component=component.name)
        to_apply, to_delete = component.objects()
        current: dict[str, Any] | None = None
        try:
            for current in to_apply:
                self._create_or_update(current, report)
            for current in to_delete:
                self._delete(current, report)
        except KubernetesError as e:
            ref = ObjectRef.from_object(current or {})
            raise ApplyError(APPLY_ERROR_REASON, f"{ref}: {e}") from e

        if self._status is not None:
            self._status.add_deployments(
                ObjectRef.from_object(o) for o in to_apply if o.get("kind") == "Deployment"
            )
        self._log.info(
            "component_applied",
            component=component.name,
            created=len(report.created),
            updated=len(report.updated),
            unchanged=len(report.unchanged),
            deleted=len(report.deleted),
        )
        return report
