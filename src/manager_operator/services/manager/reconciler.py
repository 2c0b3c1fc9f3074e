"""The Manager reconcile pass.

One pass resolves every dependency gate, settles the TLS bundle, assembles
the configuration, renders and pins images, then applies the components in
order. The first stop (a gate that did not pass, an invalid certificate, a
failed image override or apply) is written to the status and ends the pass.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from manager_operator.integrations.kubernetes.exceptions import KubernetesError
from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.integrations.kubernetes.models.operator import (
    OPERATOR_API_VERSION,
    TIGERA_STATUS_READY,
)
from manager_operator.services.manager import constants as c
from manager_operator.services.manager.certificates import (
    LOCALHOST,
    CertificateBundle,
    CertificateLifecycleManager,
    service_dns_names,
)
from manager_operator.services.manager.components import (
    ApplyReport,
    Component,
    ComponentHandler,
    PassthroughComponent,
)
from manager_operator.services.manager.configuration import assemble_configuration
from manager_operator.services.manager.context import ReconcileContext, ReconcileKey
from manager_operator.services.manager.errors import (
    ManagerOperatorError,
    ReconcileCancelledError,
    TransientError,
)
from manager_operator.services.manager.gates import (
    DependencyGateResolver,
    GateOutcome,
    GateResult,
)
from manager_operator.services.manager.imageset import IMAGESET_ERROR_REASON, apply_image_set
from manager_operator.services.manager.readiness import ReadyFlag
from manager_operator.services.manager.render import Renderer, render_manager
from manager_operator.services.manager.status import ReconcileStatus, StatusManager

if TYPE_CHECKING:
    import datetime

    from manager_operator.integrations.kubernetes.config import OperatorConfig
    from manager_operator.services.kubernetes.object_store import ObjectStore
    from manager_operator.services.manager.snapshot import DependencySnapshot

logger = structlog.get_logger()

DEFAULT_KEY = ReconcileKey(namespace="", name=c.DEFAULT_INSTANCE_NAME)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one pass.

    ``requeue_after`` asks for a timed re-run; ``error`` asks the
    scheduler to retry with backoff.
    """

    status: ReconcileStatus
    requeue_after: float | None = None
    error: ManagerOperatorError | None = None
    reports: tuple[ApplyReport, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def mutations(self) -> int:
        """Number of create, update and delete calls the apply engine issued."""
        return sum(report.mutations for report in self.reports)


def manager_dns_names(cluster_domain: str) -> list[str]:
    """Names the manager's TLS certificate must cover."""
    return [
        *service_dns_names(c.MANAGER_SERVICE_NAME, c.MANAGER_NAMESPACE, [cluster_domain]),
        LOCALHOST,
    ]


class ManagerReconciler:
    """Drives the cluster toward the state the Manager resource describes.

    Args:
        store: Object store every read and write goes through.
        config: Operator configuration.
        license_api_ready: Latch set once the LicenseKey API is served.
        resolver: Dependency gates to evaluate.
        renderer: Builds the manager's objects from the configuration.
        clock: Current time source for certificate issuance.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: OperatorConfig,
        *,
        license_api_ready: ReadyFlag | None = None,
        resolver: DependencyGateResolver | None = None,
        renderer: Renderer = render_manager,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self.license_api_ready = license_api_ready or ReadyFlag()
        self._resolver = resolver or DependencyGateResolver()
        self._renderer = renderer
        self._clock = clock

    def reconcile(
        self,
        key: ReconcileKey = DEFAULT_KEY,
        stop_event: threading.Event | None = None,
    ) -> ReconcileResult:
        """Run one pass for ``key``.

        Never raises for dependency or apply failures; they are reported
        through the returned result and the status.
        """
        log = logger.bind(request_namespace=key.namespace, request_name=key.name)
        log.info("reconciling_manager")
        status = StatusManager(self._store, log=log)
        ctx = ReconcileContext(
            key=key,
            store=self._store,
            config=self._config,
            status=status,
            license_api_ready=self.license_api_ready,
            log=log,
            stop_event=stop_event,
        )
        try:
            return self._run(ctx)
        except ReconcileCancelledError as e:
            log.info("reconcile_cancelled")
            return ReconcileResult(status=status.state, error=e)

    def _run(self, ctx: ReconcileContext) -> ReconcileResult:
        status = ctx.status
        resolution = self._resolver.resolve(ctx)
        snapshot = resolution.snapshot
        if snapshot is None:
            return self._stopped(ctx, resolution.result)

        try:
            bundle = self._resolve_certificate(ctx, snapshot)
            components = self._build_components(ctx, snapshot, bundle)
        except ManagerOperatorError as e:
            return self._degraded(ctx, e)

        handler = ComponentHandler(
            self._store, owner=self._owner(snapshot), status=status, log=ctx.log
        )
        reports: list[ApplyReport] = []
        for component in components:
            ctx.check_cancelled()
            try:
                reports.append(handler.apply(component))
            except ManagerOperatorError as e:
                return self._degraded(ctx, e, reports)

        status.clear_degraded()
        if status.is_available():
            try:
                self._mark_manager_ready(snapshot)
            except KubernetesError as e:
                error = TransientError("Error updating Manager status", str(e))
                ctx.log.error("manager_status_update_failed", error=str(e))
                return ReconcileResult(status=status.state, error=error, reports=tuple(reports))
            status.mark_ready()
            ctx.log.info("manager_status_ready")
        ctx.log.info("reconcile_complete", state=str(status.state))
        return ReconcileResult(status=status.state, reports=tuple(reports))

    def _stopped(self, ctx: ReconcileContext, result: GateResult) -> ReconcileResult:
        """Result of a pass ended by a gate that did not pass."""
        if result.outcome is GateOutcome.ABSENT:
            return ReconcileResult(status=ReconcileStatus.CR_NOT_FOUND)
        if result.outcome is GateOutcome.WAIT:
            return ReconcileResult(status=ctx.status.state, requeue_after=result.requeue_after)
        return ReconcileResult(status=ctx.status.state, error=result.error)

    def _resolve_certificate(
        self, ctx: ReconcileContext, snapshot: DependencySnapshot
    ) -> CertificateBundle | None:
        lifecycle = CertificateLifecycleManager(
            c.MANAGER_TLS_SECRET_NAME,
            self._config.operator_namespace,
            manager_dns_names(self._config.cluster_domain),
            log=ctx.log,
            clock=self._clock,
        )
        return lifecycle.resolve(
            snapshot.tls_secret, snapshot.installation.certificate_management
        )

    def _build_components(
        self,
        ctx: ReconcileContext,
        snapshot: DependencySnapshot,
        bundle: CertificateBundle | None,
    ) -> list[Component]:
        """Render, pin images, and prepend the TLS passthrough when it applies."""
        config = assemble_configuration(
            snapshot,
            bundle,
            cluster_domain=self._config.cluster_domain,
            openshift=self._config.openshift,
            release_version=self._config.release_version,
        )
        try:
            component = self._renderer(config)
        except ValueError as e:
            raise ManagerOperatorError("Error rendering Manager", str(e)) from e
        try:
            component = apply_image_set(
                self._store,
                snapshot.installation,
                self._config.release_version,
                component,
                log=ctx.log,
            )
        except KubernetesError as e:
            raise TransientError(IMAGESET_ERROR_REASON, str(e)) from e

        components: list[Component] = []
        if bundle is not None and bundle.managed:
            components.append(PassthroughComponent(bundle.to_secret()))
        components.append(component)
        ctx.log.debug("components_built", components=[comp.name for comp in components])
        return components

    def _degraded(
        self,
        ctx: ReconcileContext,
        error: ManagerOperatorError,
        reports: list[ApplyReport] | None = None,
    ) -> ReconcileResult:
        ctx.log.error("reconcile_failed", reason=error.reason, error=error.message)
        ctx.status.set_degraded(error.reason, error.message)
        return ReconcileResult(
            status=ctx.status.state, error=error, reports=tuple(reports or ())
        )

    def _owner(self, snapshot: DependencySnapshot) -> dict[str, Any]:
        manager = snapshot.manager
        return {
            "apiVersion": OPERATOR_API_VERSION,
            "kind": c.MANAGER_KIND,
            "metadata": {"name": manager.name, "uid": manager.uid or ""},
        }

    def _mark_manager_ready(self, snapshot: DependencySnapshot) -> None:
        if snapshot.manager.state == TIGERA_STATUS_READY:
            return
        ref = ObjectRef(OPERATOR_API_VERSION, c.MANAGER_KIND, snapshot.manager.name)
        self._store.patch_status(ref, {"state": TIGERA_STATUS_READY})
