"""Per-pass reconcile context."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from manager_operator.services.manager.errors import ReconcileCancelledError

if TYPE_CHECKING:
    import structlog

    from manager_operator.integrations.kubernetes.config import OperatorConfig
    from manager_operator.services.kubernetes.object_store import ObjectStore
    from manager_operator.services.manager.readiness import ReadyFlag
    from manager_operator.services.manager.status import StatusManager


@dataclass(frozen=True, order=True)
class ReconcileKey:
    """Identity of one convergence target."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class ReconcileContext:
    """Everything one pass needs, passed explicitly instead of held globally."""

    key: ReconcileKey
    store: ObjectStore
    config: OperatorConfig
    status: StatusManager
    license_api_ready: ReadyFlag
    log: structlog.BoundLogger
    stop_event: threading.Event | None = None

    @property
    def operator_namespace(self) -> str:
        return self.config.operator_namespace

    def check_cancelled(self) -> None:
        """Raise if process shutdown was requested.

        Raises:
            ReconcileCancelledError: If the stop event is set.
        """
        if self.stop_event is not None and self.stop_event.is_set():
            raise ReconcileCancelledError()
