"""kopf host for the Manager controller.

Every watched object funnels into the single Manager key. Passes run one
at a time under a lock. Whatever triggered it, a pass that fails is re-run
with exponential backoff, and a pass that asks for a timed re-check gets one.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

import kopf
import structlog

from manager_operator.services.kubernetes import ClusterObjectStore
from manager_operator.services.manager import constants as c
from manager_operator.services.manager.readiness import (
    LicenseAPIWatcher,
    ReadyFlag,
    license_api_served,
)
from manager_operator.services.manager.reconciler import (
    DEFAULT_KEY,
    ManagerReconciler,
    ReconcileResult,
)

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.client import KubernetesClient
    from manager_operator.integrations.kubernetes.config import OperatorConfig

logger = structlog.get_logger()

OPERATOR_GROUP = "operator.tigera.io"
OPERATOR_VERSION = "v1"
BACKOFF_BASE = 5.0
BACKOFF_MAX = 300.0

# Operator resources whose changes trigger a pass.
WATCHED_OPERATOR_PLURALS = (
    "installations",
    "apiservers",
    "compliances",
    "managementclusters",
    "managementclusterconnections",
    "authentications",
    "imagesets",
)


def backoff_delay(retry: int) -> float:
    """Exponential backoff for the ``retry``-th retry of a failed pass."""
    return min(BACKOFF_BASE * (2 ** max(retry, 0)), BACKOFF_MAX)


def watched_secrets(operator_namespace: str) -> frozenset[tuple[str, str]]:
    """``(namespace, name)`` of every secret whose changes trigger a pass."""
    return frozenset(
        (namespace, name)
        for namespace in (operator_namespace, c.MANAGER_NAMESPACE)
        for name in c.WATCHED_SECRETS
    )


def watched_config_maps(operator_namespace: str) -> frozenset[tuple[str, str]]:
    """``(namespace, name)`` of every config map whose changes trigger a pass."""
    return frozenset(
        {
            (operator_namespace, c.ES_CLUSTER_CONFIG_MAP),
            (operator_namespace, c.STATIC_WELL_KNOWN_JWKS_CONFIG_MAP),
            (c.ECK_OPERATOR_NAMESPACE, c.ECK_LICENSE_CONFIG_MAP),
        }
    )


class ManagerOperator:
    """Runs the Manager reconciler under kopf.

    Args:
        client: Kubernetes client wrapper.
        config: Operator configuration.
        stop_event: Set on shutdown; stops kopf, the license watcher and
            any in-flight pass.
        reconciler: Reconciler to run (built from ``client`` by default).
    """

    def __init__(
        self,
        client: KubernetesClient,
        config: OperatorConfig,
        stop_event: threading.Event | None = None,
        reconciler: ManagerReconciler | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self.stop_event = stop_event or threading.Event()
        self.reconciler = reconciler or ManagerReconciler(
            ClusterObjectStore(client), config, license_api_ready=ReadyFlag()
        )
        self._lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._requeue_timer: threading.Timer | None = None
        self._failures = 0
        self._log = logger.bind(operator="manager")

    # =========================================================================
    # Passes
    # =========================================================================

    def reconcile(self, trigger: str) -> ReconcileResult:
        """Run one pass, single flight, and schedule its follow-up."""
        with self._lock:
            self._log.debug("pass_triggered", trigger=trigger)
            result = self.reconciler.reconcile(DEFAULT_KEY, stop_event=self.stop_event)
            self._schedule_requeue(self._next_delay(trigger, result))
        return result

    def _next_delay(self, trigger: str, result: ReconcileResult) -> float | None:
        """Backoff after a failed pass, the pass's own re-check delay otherwise."""
        if result.error is None:
            self._failures = 0
            return result.requeue_after
        delay = backoff_delay(self._failures)
        self._failures += 1
        self._log.warning(
            "pass_failed",
            trigger=trigger,
            error=str(result.error),
            failures=self._failures,
            retry_in=delay,
        )
        return delay

    def _schedule_requeue(self, delay: float | None) -> None:
        """Replace any pending re-run with one after ``delay`` seconds."""
        with self._timer_lock:
            if self._requeue_timer is not None:
                self._requeue_timer.cancel()
                self._requeue_timer = None
            if delay is None or self.stop_event.is_set():
                return
            timer = threading.Timer(delay, self.reconcile, args=("requeue",))
            timer.daemon = True
            self._requeue_timer = timer
            timer.start()
        self._log.debug("requeue_scheduled", delay=delay)

    def start_license_watcher(self) -> threading.Thread:
        """Start polling discovery for the LicenseKey API in the background."""
        watcher = LicenseAPIWatcher(
            lambda: license_api_served(self._client),
            self.reconciler.license_api_ready,
            poll_interval=self._config.license_poll_interval,
            stop_event=self.stop_event,
            on_ready=lambda: self.reconcile("license_api_ready"),
            log=self._log,
        )
        return watcher.start()

    # =========================================================================
    # kopf wiring
    # =========================================================================

    def build_registry(self) -> kopf.OperatorRegistry:
        """Register every handler on a fresh registry."""
        registry = kopf.OperatorRegistry()
        operator_ns = self._config.operator_namespace
        secrets = watched_secrets(operator_ns)
        config_maps = watched_config_maps(operator_ns)

        def is_manager(name: str, **_: Any) -> bool:
            return name == c.DEFAULT_INSTANCE_NAME

        def is_watched_secret(name: str, namespace: str, **_: Any) -> bool:
            return (namespace, name) in secrets

        def is_watched_config_map(name: str, namespace: str, **_: Any) -> bool:
            return (namespace, name) in config_maps

        def is_prometheus_namespace(name: str, **_: Any) -> bool:
            return name == c.PROMETHEUS_NAMESPACE

        @kopf.on.startup(registry=registry)
        def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
            settings.posting.enabled = False
            settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
                prefix=OPERATOR_GROUP
            )
            settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
                prefix=OPERATOR_GROUP
            )
            self.start_license_watcher()

        manager = (OPERATOR_GROUP, OPERATOR_VERSION, "managers")
        manager_filter: dict[str, Any] = {"when": is_manager, "registry": registry}

        @kopf.on.resume(*manager, **manager_filter)
        @kopf.on.create(*manager, **manager_filter)
        @kopf.on.update(*manager, **manager_filter)
        def on_manager(**_: Any) -> None:
            self.reconcile("manager")

        @kopf.on.delete(*manager, optional=True, **manager_filter)
        def on_manager_deleted(**_: Any) -> None:
            self.reconcile("manager_deleted")

        @kopf.timer(*manager, interval=self._config.resync_interval, **manager_filter)
        def resync(**_: Any) -> None:
            self.reconcile("resync")

        watches: list[tuple[tuple[str, ...], str, Any]] = [
            ((OPERATOR_GROUP, OPERATOR_VERSION, plural), plural, None)
            for plural in WATCHED_OPERATOR_PLURALS
        ]
        watches += [
            (("v1", "secrets"), "secret", is_watched_secret),
            (("v1", "configmaps"), "configmap", is_watched_config_map),
            (("v1", "namespaces"), "namespace", is_prometheus_namespace),
        ]
        for resource, trigger, when in watches:
            kopf.on.event(*resource, id=f"{trigger}_event", when=when, registry=registry)(
                self._event_handler(trigger)
            )
        return registry

    def _event_handler(self, trigger: str) -> Any:
        def handler(name: str, type: str | None = None, **_: Any) -> None:
            self._log.debug("watch_event", kind=trigger, name=name, event=type)
            self.reconcile(trigger)

        return handler

    def run(self) -> None:
        """Run kopf until the stop event is set."""
        self._log.info(
            "operator_starting",
            operator_namespace=self._config.operator_namespace,
            release=self._config.release_version,
        )
        try:
            kopf.run(
                registry=self.build_registry(),
                clusterwide=True,
                stop_flag=self.stop_event,
                standalone=True,
            )
        finally:
            self.stop_event.set()
            self._schedule_requeue(None)
            self._log.info("operator_stopped")
