"""Dependency gates and the resolver that evaluates them in order.

Each gate inspects one precondition, records what it fetched into the
pass's snapshot draft, and returns a :class:`GateResult`. The resolver stops
at the first result that is not a pass, so a gate may rely on every earlier
gate having passed. Whatever stopped the pass is written to the status
before the resolver returns.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
)
from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.integrations.kubernetes.models.operator import (
    OPERATOR_API_VERSION,
    PROJECTCALICO_API_VERSION,
    AuthenticationResource,
    ComponentStatus,
    InstallationResource,
    LicenseKeyResource,
    ManagementClusterConnectionResource,
    ManagementClusterResource,
    ManagerResource,
)
from manager_operator.services.manager import constants as c
from manager_operator.services.manager.dependencies import (
    get_elastic_license_type,
    get_key_validator_config,
    read_config_map,
    read_optional,
    read_secret,
    validate_cert_pair,
)
from manager_operator.services.manager.errors import (
    DependencyNotFoundError,
    InvalidConfigurationError,
    ManagerOperatorError,
    TopologyConflictError,
    TransientError,
)
from manager_operator.services.manager.snapshot import (
    DependencySnapshot,
    ElasticsearchClusterConfig,
)

if TYPE_CHECKING:
    from manager_operator.services.manager.context import ReconcileContext

UNSUPPORTED_AUTH_MESSAGE = (
    "auth types other than 'Token' can no longer be configured using the Manager CR, "
    "please use the Authentication CR instead"
)
TOPOLOGY_CONFLICT_MESSAGE = (
    "having both a ManagementCluster and a ManagementClusterConnection is not supported"
)


class GateOutcome(StrEnum):
    """How a gate ended."""

    PASS = "pass"
    WAIT = "wait"
    FAIL = "fail"
    ABSENT = "absent"  # the primary resource itself does not exist


@dataclass(frozen=True)
class GateResult:
    """Result of one gate.

    ``WAIT`` ends the pass without an error, re-checking after
    ``requeue_after`` seconds when set. ``FAIL`` ends it with ``error`` so
    the scheduler retries with backoff.
    """

    outcome: GateOutcome
    reason: str = ""
    message: str = ""
    requeue_after: float | None = None
    error: ManagerOperatorError | None = None

    @classmethod
    def passed(cls) -> GateResult:
        return cls(GateOutcome.PASS)

    @classmethod
    def wait(cls, reason: str, message: str = "", requeue_after: float | None = None) -> GateResult:
        return cls(GateOutcome.WAIT, reason, message, requeue_after)

    @classmethod
    def fail(cls, error: ManagerOperatorError) -> GateResult:
        return cls(GateOutcome.FAIL, error.reason, error.message, error=error)

    @classmethod
    def absent(cls, message: str = "") -> GateResult:
        return cls(GateOutcome.ABSENT, "Manager object not found", message)

    @property
    def is_pass(self) -> bool:
        return self.outcome is GateOutcome.PASS


GateCheck = Callable[["ReconcileContext", dict[str, Any]], GateResult]


@dataclass(frozen=True)
class Gate:
    """A named precondition."""

    name: str
    check: GateCheck


@dataclass(frozen=True)
class Resolution:
    """What the resolver ended with.

    ``snapshot`` is set only when every gate passed; ``gate`` names the gate
    that stopped the pass otherwise.
    """

    result: GateResult
    gate: str | None = None
    snapshot: DependencySnapshot | None = None


def _fail_from_api(reason: str, e: KubernetesError) -> GateResult:
    return GateResult.fail(TransientError(reason, str(e)))


def _operator_ref(kind: str, name: str = c.DEFAULT_INSTANCE_NAME) -> ObjectRef:
    return ObjectRef(OPERATOR_API_VERSION, kind, name)


# =============================================================================
# Gates
# =============================================================================


def check_manager(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The Manager singleton exists and uses a supported auth type."""
    try:
        obj = ctx.store.get(_operator_ref(c.MANAGER_KIND))
    except KubernetesNotFoundError as e:
        return GateResult.absent(str(e))
    except KubernetesError as e:
        return _fail_from_api("Error querying Manager", e)

    manager = ManagerResource.from_k8s_object(obj)
    if manager.auth is not None and not manager.has_supported_auth:
        return GateResult.fail(
            InvalidConfigurationError(
                "Error querying Manager",
                f"unsupported auth type {manager.auth.type!r}: {UNSUPPORTED_AUTH_MESSAGE}",
            )
        )
    draft["manager"] = manager
    ctx.status.on_cr_found()
    return GateResult.passed()


def check_api_server(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The API server extension reports Ready."""
    reason = "Waiting for Tigera API server to be ready"
    try:
        obj = ctx.store.get(_operator_ref(c.APISERVER_KIND))
    except KubernetesError as e:
        ctx.log.info("apiserver_not_readable", error=str(e))
        return GateResult.wait(reason)
    if not ComponentStatus.from_k8s_object(obj).ready:
        return GateResult.wait(reason)
    return GateResult.passed()


def check_license_api(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The LicenseKey API bootstrap has finished."""
    if not ctx.license_api_ready.is_ready():
        return GateResult.wait(
            "Waiting for LicenseKeyAPI to be ready", requeue_after=ctx.config.requeue_delay
        )
    return GateResult.passed()


def check_license(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The license exists and can be parsed."""
    ref = ObjectRef(PROJECTCALICO_API_VERSION, c.LICENSE_KEY_KIND, c.LICENSE_KEY_NAME)
    try:
        obj = ctx.store.get(ref)
    except KubernetesNotFoundError as e:
        return GateResult.wait("License not found", str(e), ctx.config.requeue_delay)
    except KubernetesError as e:
        return _fail_from_api("Error querying license", e)
    try:
        draft["license"] = LicenseKeyResource.from_k8s_object(obj)
    except ValueError as e:
        return GateResult.fail(InvalidConfigurationError("Error querying license", str(e)))
    return GateResult.passed()


def check_installation(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The Installation exists and is readable."""
    try:
        obj = ctx.store.get(_operator_ref(c.INSTALLATION_KIND, c.INSTALLATION_NAME))
    except KubernetesNotFoundError as e:
        return GateResult.wait("Installation not found", str(e))
    except KubernetesError as e:
        return _fail_from_api("Error querying installation", e)
    try:
        draft["installation"] = InstallationResource.from_k8s_object(obj)
    except ValueError as e:
        return GateResult.fail(InvalidConfigurationError("Error querying installation", str(e)))
    return GateResult.passed()


def check_manager_tls(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The manager TLS secret, if present, holds a key and a certificate."""
    try:
        draft["tls_secret"] = validate_cert_pair(
            ctx.store,
            c.MANAGER_TLS_SECRET_NAME,
            ctx.operator_namespace,
            c.MANAGER_SECRET_KEY_NAME,
            c.MANAGER_SECRET_CERT_NAME,
        )
    except InvalidConfigurationError as e:
        return GateResult.fail(
            InvalidConfigurationError("Error validating manager TLS certificate", str(e))
        )
    return GateResult.passed()


def check_compliance(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """When compliance is licensed, it is Ready and its server cert exists."""
    license_key: LicenseKeyResource = draft["license"]
    if not license_key.is_feature_active(c.COMPLIANCE_FEATURE):
        return GateResult.passed()

    try:
        obj = ctx.store.get(_operator_ref(c.COMPLIANCE_KIND))
    except KubernetesNotFoundError as e:
        return GateResult.wait("Compliance not found", str(e))
    except KubernetesError as e:
        return _fail_from_api("Error querying compliance", e)
    compliance = ComponentStatus.from_k8s_object(obj)
    if not compliance.ready:
        return GateResult.wait(
            "Compliance is not ready", f"compliance status: {compliance.state}"
        )

    secret_name = c.COMPLIANCE_SERVER_CERT_SECRET
    try:
        cert = validate_cert_pair(
            ctx.store, secret_name, ctx.operator_namespace, "", c.TLS_CERT_KEY
        )
    except InvalidConfigurationError as e:
        return GateResult.fail(
            InvalidConfigurationError(f"Failed to retrieve {secret_name}", str(e))
        )
    if cert is None:
        return GateResult.wait(f"Waiting for secret '{secret_name}' to become available")
    draft["compliance_server_cert"] = cert
    return GateResult.passed()


def check_prometheus_namespace(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The prometheus namespace exists."""
    try:
        ctx.store.get(ObjectRef("v1", "Namespace", c.PROMETHEUS_NAMESPACE))
    except KubernetesNotFoundError:
        return GateResult.wait(
            f"{c.PROMETHEUS_NAMESPACE} namespace does not exist",
            f"Dependency on {c.PROMETHEUS_NAMESPACE} not satisfied",
        )
    except KubernetesError as e:
        return _fail_from_api("Error querying prometheus", e)
    return GateResult.passed()


def check_log_storage(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """Pull secrets, the search index config and its credentials resolve."""
    installation: InstallationResource = draft["installation"]
    ns = ctx.operator_namespace

    pull_secrets = []
    for name in installation.image_pull_secrets:
        secret = read_secret(ctx.store, name, ns)
        if secret is None:
            return GateResult.wait(f"Waiting for pull secret '{name}' to become available")
        pull_secrets.append(secret)
    draft["pull_secrets"] = tuple(pull_secrets)

    config_map = read_config_map(ctx.store, c.ES_CLUSTER_CONFIG_MAP, ns)
    if config_map is None:
        return GateResult.wait(
            "Elasticsearch cluster configuration is not available, "
            "waiting for it to become available",
            f"ConfigMap {ns}/{c.ES_CLUSTER_CONFIG_MAP} not found",
        )
    draft["es_cluster_config"] = ElasticsearchClusterConfig.from_config_map(config_map)

    es_secrets = []
    for name, required_keys in (
        (c.ELASTICSEARCH_MANAGER_USER_SECRET, ("username", "password")),
        (c.ELASTICSEARCH_PUBLIC_CERT_SECRET, (c.TLS_CERT_KEY,)),
    ):
        secret = read_secret(ctx.store, name, ns)
        if secret is None:
            return GateResult.wait(
                "Elasticsearch secrets are not available yet, waiting until they become available",
                f"Secret {ns}/{name} not found",
            )
        missing = [key for key in required_keys if not secret.data.get(key)]
        if missing:
            return GateResult.fail(
                InvalidConfigurationError(
                    "Failed to get Elasticsearch credentials",
                    f"Secret {ns}/{name} is missing {', '.join(missing)}",
                )
            )
        es_secrets.append(secret)
    draft["es_secrets"] = tuple(es_secrets)
    return GateResult.passed()


def check_kibana_cert(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The Kibana public certificate exists."""
    name = c.KIBANA_PUBLIC_CERT_SECRET
    secret = read_secret(ctx.store, name, ctx.operator_namespace)
    if secret is None:
        return GateResult.wait(f"Waiting for secret '{name}' to become available")
    draft["kibana_public_cert"] = secret
    return GateResult.passed()


def check_topology(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """Hub and spoke declarations are read and not both present."""
    try:
        hub = read_optional(ctx.store, _operator_ref(c.MANAGEMENT_CLUSTER_KIND))
    except KubernetesError as e:
        return _fail_from_api("Error reading ManagementCluster", e)
    try:
        spoke = read_optional(ctx.store, _operator_ref(c.MANAGEMENT_CLUSTER_CONNECTION_KIND))
    except KubernetesError as e:
        return _fail_from_api("Error reading ManagementClusterConnection", e)

    if hub is not None and spoke is not None:
        return GateResult.fail(TopologyConflictError(TOPOLOGY_CONFLICT_MESSAGE))
    if hub is not None:
        draft["management_cluster"] = ManagementClusterResource.from_k8s_object(hub)
    if spoke is not None:
        draft["management_cluster_connection"] = (
            ManagementClusterConnectionResource.from_k8s_object(spoke)
        )
    return GateResult.passed()


def check_hub_secrets(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """A hub has its tunnel and internal traffic secrets."""
    if draft.get("management_cluster") is None:
        return GateResult.passed()
    ns = ctx.operator_namespace

    tunnel = read_secret(ctx.store, c.TUNNEL_SECRET_NAME, ns)
    if tunnel is None:
        return GateResult.wait(
            f"Waiting for secret {c.TUNNEL_SECRET_NAME} in namespace {ns} to be available",
            requeue_after=ctx.config.requeue_delay,
        )
    draft["tunnel_secret"] = tunnel

    internal = read_secret(ctx.store, c.MANAGER_INTERNAL_TLS_SECRET_NAME, ns)
    if internal is None:
        return GateResult.wait(
            f"Waiting for secret {c.MANAGER_INTERNAL_TLS_SECRET_NAME} in namespace {ns} "
            "to be available",
            requeue_after=ctx.config.requeue_delay,
        )
    draft["internal_traffic_secret"] = internal
    return GateResult.passed()


def check_authentication(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The Authentication resource, if present, reports Ready."""
    try:
        obj = read_optional(ctx.store, _operator_ref(c.AUTHENTICATION_KIND))
    except KubernetesError as e:
        return _fail_from_api("Error while fetching Authentication", e)
    if obj is None:
        return GateResult.passed()
    authentication = AuthenticationResource.from_k8s_object(obj)
    if not authentication.ready:
        return GateResult.wait(
            "Authentication is not ready", f"authenticationCR status: {authentication.state}"
        )
    draft["authentication"] = authentication
    return GateResult.passed()


def check_key_validator(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """Token validation settings can be derived from the Authentication."""
    draft["key_validator_config"] = get_key_validator_config(
        ctx.store,
        draft.get("authentication"),
        cluster_domain=ctx.config.cluster_domain,
        operator_namespace=ctx.operator_namespace,
    )
    return GateResult.passed()


def check_es_license(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """The Elasticsearch license tier resolves, except on spokes."""
    if draft.get("management_cluster_connection") is not None:
        return GateResult.passed()
    draft["es_license_type"] = get_elastic_license_type(ctx.store)
    return GateResult.passed()


def check_service_certs(ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
    """Packet capture cert is required; the prometheus cert is optional."""
    ns = ctx.operator_namespace
    for secret_name, field, required in (
        (c.PACKET_CAPTURE_CERT_SECRET, "packet_capture_cert", True),
        (c.PROMETHEUS_TLS_SECRET_NAME, "prometheus_cert", False),
    ):
        try:
            cert = validate_cert_pair(ctx.store, secret_name, ns, "", c.TLS_CERT_KEY)
        except InvalidConfigurationError as e:
            return GateResult.fail(
                InvalidConfigurationError(f"Failed to retrieve {secret_name}", str(e))
            )
        if cert is None and required:
            return GateResult.wait(f"Waiting for secret '{secret_name}' to become available")
        draft[field] = cert
    return GateResult.passed()


DEFAULT_GATES: tuple[Gate, ...] = (
    Gate("manager", check_manager),
    Gate("api_server", check_api_server),
    Gate("license_api", check_license_api),
    Gate("license", check_license),
    Gate("installation", check_installation),
    Gate("manager_tls", check_manager_tls),
    Gate("compliance", check_compliance),
    Gate("prometheus_namespace", check_prometheus_namespace),
    Gate("log_storage", check_log_storage),
    Gate("kibana_cert", check_kibana_cert),
    Gate("topology", check_topology),
    Gate("hub_secrets", check_hub_secrets),
    Gate("authentication", check_authentication),
    Gate("key_validator", check_key_validator),
    Gate("es_license", check_es_license),
    Gate("service_certs", check_service_certs),
)


# =============================================================================
# Resolver
# =============================================================================


class DependencyGateResolver:
    """Evaluates gates strictly in order and stops at the first non-pass."""

    def __init__(self, gates: tuple[Gate, ...] = DEFAULT_GATES) -> None:
        self._gates = gates

    @property
    def gate_names(self) -> list[str]:
        return [gate.name for gate in self._gates]

    def _evaluate(self, gate: Gate, ctx: ReconcileContext, draft: dict[str, Any]) -> GateResult:
        """Run one gate, mapping reader exceptions to results."""
        try:
            return gate.check(ctx, draft)
        except DependencyNotFoundError as e:
            return GateResult.wait(e.reason, e.message)
        except ManagerOperatorError as e:
            return GateResult.fail(e)
        except KubernetesError as e:
            return _fail_from_api(f"Error evaluating {gate.name} dependencies", e)
        except ValueError as e:
            return GateResult.fail(
                InvalidConfigurationError(f"Error parsing {gate.name} dependencies", str(e))
            )

    def resolve(self, ctx: ReconcileContext) -> Resolution:
        """Evaluate every gate; record the stopping condition on the status."""
        draft: dict[str, Any] = {}
        for gate in self._gates:
            ctx.check_cancelled()
            result = self._evaluate(gate, ctx, draft)
            if result.is_pass:
                ctx.log.debug("gate_passed", gate=gate.name)
                continue

            if result.outcome is GateOutcome.ABSENT:
                ctx.log.info("manager_not_found")
                ctx.status.on_cr_not_found()
            elif result.outcome is GateOutcome.WAIT:
                ctx.log.info(
                    "gate_waiting",
                    gate=gate.name,
                    reason=result.reason,
                    requeue_after=result.requeue_after,
                )
                ctx.status.set_degraded(result.reason, result.message)
            else:
                ctx.log.error(
                    "gate_failed", gate=gate.name, reason=result.reason, error=result.message
                )
                ctx.status.set_degraded(result.reason, result.message)
            return Resolution(result=result, gate=gate.name)

        return Resolution(result=GateResult.passed(), snapshot=DependencySnapshot.from_draft(draft))
