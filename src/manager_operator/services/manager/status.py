"""Status aggregation for one reconcile pass.

The aggregator tracks the pass's :class:`ReconcileStatus` and mirrors it
onto the ``TigeraStatus`` named ``manager`` as Available, Progressing and
Degraded conditions. Conditions are only written when they changed.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
)
from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.integrations.kubernetes.models.operator import OPERATOR_API_VERSION
from manager_operator.services.manager.constants import (
    TIGERA_STATUS_KIND,
    TIGERA_STATUS_NAME,
)

if TYPE_CHECKING:
    from manager_operator.services.kubernetes.object_store import ObjectStore

logger = structlog.get_logger()

CONDITION_AVAILABLE = "Available"
CONDITION_PROGRESSING = "Progressing"
CONDITION_DEGRADED = "Degraded"


class ReconcileStatus(StrEnum):
    """Where a pass ended up."""

    UNKNOWN = "Unknown"
    CR_NOT_FOUND = "CRNotFound"
    DEGRADED = "Degraded"
    PROGRESSING = "Progressing"
    AVAILABLE = "Available"
    READY = "Ready"


def _condition(type_: str, status: bool, reason: str = "", message: str = "") -> dict[str, str]:
    return {
        "type": type_,
        "status": "True" if status else "False",
        "reason": reason,
        "message": message,
    }


def _condition_key(condition: dict[str, Any]) -> tuple[str, str, str, str]:
    return (
        condition.get("type", ""),
        condition.get("status", ""),
        condition.get("reason", ""),
        condition.get("message", ""),
    )


def deployment_available(obj: dict[str, Any]) -> bool:
    """Whether every desired replica of a deployment is available."""
    desired = (obj.get("spec") or {}).get("replicas", 1)
    available = (obj.get("status") or {}).get("availableReplicas") or 0
    return available >= desired


class StatusManager:
    """Tracks and persists the status of the Manager controller.

    Args:
        store: Object store holding the TigeraStatus.
        log: Logger bound to the pass.
        clock: Current time source for condition transitions.
    """

    def __init__(
        self,
        store: ObjectStore,
        log: Any = None,
        clock: Any = None,
    ) -> None:
        self._store = store
        self._log = log or logger
        self._clock = clock or (lambda: datetime.datetime.now(datetime.UTC))
        self._state = ReconcileStatus.UNKNOWN
        self._degraded: tuple[str, str] | None = None
        self._deployments: set[ObjectRef] = set()
        self._ref = ObjectRef(OPERATOR_API_VERSION, TIGERA_STATUS_KIND, TIGERA_STATUS_NAME)

    @property
    def state(self) -> ReconcileStatus:
        return self._state

    @property
    def degraded_reason(self) -> str | None:
        return self._degraded[0] if self._degraded else None

    @property
    def degraded_message(self) -> str | None:
        return self._degraded[1] if self._degraded else None

    @property
    def deployments(self) -> list[ObjectRef]:
        return sorted(self._deployments)

    # =========================================================================
    # Transitions
    # =========================================================================

    def on_cr_found(self) -> None:
        """The primary resource exists; the pass may proceed."""
        if self._state is ReconcileStatus.CR_NOT_FOUND:
            self._state = ReconcileStatus.UNKNOWN

    def on_cr_not_found(self) -> None:
        """The primary resource is gone; remove the TigeraStatus."""
        self._state = ReconcileStatus.CR_NOT_FOUND
        self._degraded = None
        self._deployments.clear()
        try:
            self._store.delete(self._ref)
            self._log.info("tigera_status_removed")
        except KubernetesNotFoundError:
            pass
        except KubernetesError as e:
            self._log.warning("tigera_status_remove_failed", error=str(e))

    def set_degraded(self, reason: str, message: str = "") -> None:
        """Record why the pass stopped and persist it."""
        self._state = ReconcileStatus.DEGRADED
        self._degraded = (reason, message)
        self._write_conditions(
            [
                _condition(CONDITION_AVAILABLE, False),
                _condition(CONDITION_PROGRESSING, False),
                _condition(CONDITION_DEGRADED, True, reason, message),
            ]
        )

    def clear_degraded(self) -> None:
        """Mark the pass successful; Available or Progressing depending on deployments."""
        self._degraded = None
        if self.is_available():
            self._state = ReconcileStatus.AVAILABLE
            conditions = [
                _condition(CONDITION_AVAILABLE, True, "AllObjectsAvailable"),
                _condition(CONDITION_PROGRESSING, False),
                _condition(CONDITION_DEGRADED, False),
            ]
        else:
            self._state = ReconcileStatus.PROGRESSING
            conditions = [
                _condition(CONDITION_AVAILABLE, False),
                _condition(
                    CONDITION_PROGRESSING,
                    True,
                    "ResourceNotReady",
                    "Waiting for deployments to become available",
                ),
                _condition(CONDITION_DEGRADED, False),
            ]
        self._write_conditions(conditions)

    def mark_ready(self) -> None:
        """The primary resource's status was persisted as Ready."""
        self._state = ReconcileStatus.READY

    def add_deployments(self, refs: Iterable[ObjectRef]) -> None:
        """Track deployments whose availability gates Available."""
        self._deployments.update(refs)

    def is_available(self) -> bool:
        """Not degraded and every tracked deployment is available."""
        if self._degraded is not None or self._state is ReconcileStatus.CR_NOT_FOUND:
            return False
        for ref in self._deployments:
            try:
                obj = self._store.get(ref)
            except KubernetesError as e:
                self._log.debug("deployment_not_readable", ref=str(ref), error=str(e))
                return False
            if not deployment_available(obj):
                return False
        return True

    # =========================================================================
    # Persistence
    # =========================================================================

    def _write_conditions(self, conditions: list[dict[str, str]]) -> None:
        """Write conditions to the TigeraStatus if they differ from the live ones.

        Status is a best-effort mirror of the pass result; write failures are
        logged and never change the pass outcome.
        """
        try:
            try:
                live = self._store.get(self._ref)
            except KubernetesNotFoundError:
                live = self._store.create(
                    {
                        "apiVersion": OPERATOR_API_VERSION,
                        "kind": TIGERA_STATUS_KIND,
                        "metadata": {"name": TIGERA_STATUS_NAME},
                        "spec": {},
                    }
                )
            current = (live.get("status") or {}).get("conditions") or []
            if sorted(map(_condition_key, current)) == sorted(map(_condition_key, conditions)):
                return

            now = self._clock().strftime("%Y-%m-%dT%H:%M:%SZ")
            previous = {c.get("type"): c for c in current}
            stamped = []
            for condition in conditions:
                old = previous.get(condition["type"])
                unchanged = old is not None and old.get("status") == condition["status"]
                transition = old.get("lastTransitionTime") if unchanged and old else now
                stamped.append({**condition, "lastTransitionTime": transition or now})
            self._store.patch_status(self._ref, {"conditions": stamped})
            self._log.debug("tigera_status_updated", state=str(self._state))
        except KubernetesError as e:
            self._log.warning("tigera_status_update_failed", error=str(e))
