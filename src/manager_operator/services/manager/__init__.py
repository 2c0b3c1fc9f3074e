"""Reconciliation of the Manager resource."""

from manager_operator.services.manager.certificates import (
    CertificateBundle,
    CertificateLifecycleManager,
    CertificateProvenance,
)
from manager_operator.services.manager.components import (
    ApplyReport,
    Component,
    ComponentHandler,
    PassthroughComponent,
    RenderedComponent,
)
from manager_operator.services.manager.configuration import (
    ManagerConfiguration,
    assemble_configuration,
)
from manager_operator.services.manager.context import ReconcileContext, ReconcileKey
from manager_operator.services.manager.errors import (
    ApplyError,
    DependencyNotFoundError,
    ImageOverrideError,
    InvalidConfigurationError,
    ManagerOperatorError,
    ReconcileCancelledError,
    TopologyConflictError,
    TransientError,
)
from manager_operator.services.manager.gates import (
    DependencyGateResolver,
    Gate,
    GateOutcome,
    GateResult,
)
from manager_operator.services.manager.readiness import LicenseAPIWatcher, ReadyFlag
from manager_operator.services.manager.reconciler import (
    DEFAULT_KEY,
    ManagerReconciler,
    ReconcileResult,
)
from manager_operator.services.manager.render import Renderer, render_manager
from manager_operator.services.manager.snapshot import DependencySnapshot
from manager_operator.services.manager.status import ReconcileStatus, StatusManager

__all__ = [
    "DEFAULT_KEY",
    "ApplyError",
    "ApplyReport",
    "CertificateBundle",
    "CertificateLifecycleManager",
    "CertificateProvenance",
    "Component",
    "ComponentHandler",
    "DependencyGateResolver",
    "DependencyNotFoundError",
    "DependencySnapshot",
    "Gate",
    "GateOutcome",
    "GateResult",
    "ImageOverrideError",
    "InvalidConfigurationError",
    "LicenseAPIWatcher",
    "ManagerConfiguration",
    "ManagerOperatorError",
    "ManagerReconciler",
    "PassthroughComponent",
    "ReadyFlag",
    "ReconcileCancelledError",
    "ReconcileContext",
    "ReconcileKey",
    "ReconcileResult",
    "ReconcileStatus",
    "RenderedComponent",
    "Renderer",
    "StatusManager",
    "TopologyConflictError",
    "TransientError",
    "assemble_configuration",
    "render_manager",
]
