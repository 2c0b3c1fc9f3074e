"""Unit tests for the dependency gates and their resolver."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from manager_operator.integrations.kubernetes.exceptions import KubernetesError
from manager_operator.services.manager.errors import (
    InvalidConfigurationError,
    ReconcileCancelledError,
    TopologyConflictError,
    TransientError,
)
from manager_operator.services.manager.gates import (
    DEFAULT_GATES,
    DependencyGateResolver,
    Gate,
    GateOutcome,
    GateResult,
)
from manager_operator.services.manager.readiness import ReadyFlag
from manager_operator.services.manager.snapshot import ElasticsearchLicenseType
from manager_operator.services.manager.status import ReconcileStatus

OPERATOR_NS = "tigera-operator"


def _license(features: list[str]) -> dict[str, Any]:
    return {
        "apiVersion": "projectcalico.org/v3",
        "kind": "LicenseKey",
        "metadata": {"name": "default"},
        "spec": {"token": "license-token"},
        "status": {"features": features},
    }


@pytest.fixture
def resolve(make_context: Callable[..., Any]) -> Callable[..., Any]:
    """Run the default resolver over a store and return (resolution, ctx)."""

    def _resolve(store: Any, **kwargs: Any) -> Any:
        ctx = make_context(store, **kwargs)
        return DependencyGateResolver().resolve(ctx), ctx

    return _resolve


@pytest.mark.unit
class TestGateResult:
    """Tests for GateResult constructors."""

    def test_passed(self) -> None:
        """passed() should be a pass with no reason."""
        result = GateResult.passed()
        assert result.is_pass
        assert result.reason == ""

    def test_wait_carries_delay(self) -> None:
        """wait() should keep reason, message and delay."""
        result = GateResult.wait("Waiting", "detail", 10.0)
        assert result.outcome is GateOutcome.WAIT
        assert result.requeue_after == 10.0
        assert not result.is_pass

    def test_fail_takes_reason_from_error(self) -> None:
        """fail() should copy reason and message from the error."""
        error = InvalidConfigurationError("Bad secret", "missing key")
        result = GateResult.fail(error)
        assert result.outcome is GateOutcome.FAIL
        assert result.reason == "Bad secret"
        assert result.message == "missing key"
        assert result.error is error


@pytest.mark.unit
class TestResolverOrdering:
    """Tests for strict in-order evaluation."""

    def test_default_gate_order(self) -> None:
        """Default gates should run in dependency order."""
        assert DependencyGateResolver().gate_names == [
            "manager",
            "api_server",
            "license_api",
            "license",
            "installation",
            "manager_tls",
            "compliance",
            "prometheus_namespace",
            "log_storage",
            "kibana_cert",
            "topology",
            "hub_secrets",
            "authentication",
            "key_validator",
            "es_license",
            "service_certs",
        ]
        assert len(DEFAULT_GATES) == 16

    def test_stops_at_first_non_pass(
        self, store: Any, make_context: Callable[..., Any]
    ) -> None:
        """Gates after the first non-pass should never run."""
        ran: list[str] = []

        def gate(name: str, result: GateResult) -> Gate:
            def check(ctx: Any, draft: dict[str, Any]) -> GateResult:
                ran.append(name)
                return result

            return Gate(name, check)

        resolver = DependencyGateResolver(
            (
                gate("first", GateResult.passed()),
                gate("second", GateResult.wait("Not yet")),
                gate("third", GateResult.passed()),
            )
        )
        resolution = resolver.resolve(make_context(store))

        assert ran == ["first", "second"]
        assert resolution.gate == "second"
        assert resolution.snapshot is None

    def test_cancelled_before_first_gate(
        self, ready_cluster: Any, make_context: Callable[..., Any]
    ) -> None:
        """A set stop event should end the resolution."""
        stop = threading.Event()
        stop.set()
        with pytest.raises(ReconcileCancelledError):
            DependencyGateResolver().resolve(make_context(ready_cluster, stop_event=stop))

    def test_unexpected_api_error_becomes_transient_failure(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """A non-404 API error should fail the pass for backoff retry."""
        ready_cluster.fail_on[("get", "Namespace")] = KubernetesError("etcd timeout", 500)

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
        assert resolution.gate == "prometheus_namespace"
        assert isinstance(resolution.result.error, TransientError)


@pytest.mark.unit
class TestManagerGates:
    """Tests for the primary resource, API server and license gates."""

    def test_all_gates_pass(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A fully provisioned cluster should yield a snapshot."""
        resolution, ctx = resolve(ready_cluster)

        assert resolution.result.is_pass
        snapshot = resolution.snapshot
        assert snapshot is not None
        assert snapshot.manager.name == "tigera-secure"
        assert snapshot.installation.control_plane_replicas == 2
        assert snapshot.tls_secret is None
        assert snapshot.es_license_type is ElasticsearchLicenseType.ENTERPRISE
        assert snapshot.es_cluster_config.cluster_name == "cluster"
        assert snapshot.prometheus_cert is None
        assert ctx.status.degraded_reason is None

    def test_manager_absent(self, store: Any, resolve: Callable[..., Any]) -> None:
        """Missing Manager should end as CR not found."""
        resolution, ctx = resolve(store)

        assert resolution.result.outcome is GateOutcome.ABSENT
        assert ctx.status.state is ReconcileStatus.CR_NOT_FOUND

    def test_unsupported_auth_type_fails_first(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A non-Token auth type should fail before the API server is read."""
        ready_cluster.add(resource_factory("Manager", spec={"auth": {"type": "OIDC"}}))

        resolution, ctx = resolve(ready_cluster)

        assert resolution.gate == "manager"
        assert resolution.result.outcome is GateOutcome.FAIL
        assert isinstance(resolution.result.error, InvalidConfigurationError)
        assert "'OIDC'" in resolution.result.message
        assert "Authentication CR" in resolution.result.message
        assert not any(ref.kind == "APIServer" for ref in ready_cluster.reads)
        assert ctx.status.state is ReconcileStatus.DEGRADED

    def test_token_auth_type_allowed(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """The Token auth type should still be accepted."""
        ready_cluster.add(resource_factory("Manager", spec={"auth": {"type": "Token"}}))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass

    def test_malformed_auth_fails(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """An auth block that is not a mapping should fail the manager gate."""
        ready_cluster.add(resource_factory("Manager", spec={"auth": "Token"}))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "manager"
        assert resolution.result.outcome is GateOutcome.FAIL
        assert resolution.result.error.reason == "Error parsing manager dependencies"

    def test_api_server_not_ready(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """An APIServer that is not Ready should wait without delay."""
        ready_cluster.add(resource_factory("APIServer", state="Progressing"))

        resolution, ctx = resolve(ready_cluster)

        assert resolution.gate == "api_server"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.requeue_after is None
        assert ctx.status.degraded_reason == "Waiting for Tigera API server to be ready"

    def test_license_api_not_ready(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """An unset license latch should wait ten seconds."""
        resolution, ctx = resolve(ready_cluster, flag=ReadyFlag())

        assert resolution.gate == "license_api"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.requeue_after == 10.0
        assert ctx.status.degraded_reason == "Waiting for LicenseKeyAPI to be ready"

    def test_license_missing(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A missing license should wait."""
        ready_cluster.remove("LicenseKey", "default")

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "license"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.reason == "License not found"

    def test_license_without_token(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A license with no token should fail."""
        bad = _license([])
        bad["spec"] = {}
        ready_cluster.add(bad)

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "license"
        assert resolution.result.outcome is GateOutcome.FAIL

    def test_license_read_error(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A non-404 license read error should fail as transient."""
        ready_cluster.fail_on[("get", "LicenseKey")] = KubernetesError("forbidden", 403)

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
        assert isinstance(resolution.result.error, TransientError)
        assert resolution.result.reason == "Error querying license"

    def test_installation_missing(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A missing Installation should wait."""
        ready_cluster.remove("Installation", "default")

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "installation"
        assert resolution.result.outcome is GateOutcome.WAIT

    def test_malformed_manager_tls(
        self, ready_cluster: Any, secret_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A TLS secret whose cert is not PEM should fail."""
        ready_cluster.add(secret_factory("manager-tls", key="not a key", cert="not a cert"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "manager_tls"
        assert resolution.result.outcome is GateOutcome.FAIL
        assert resolution.result.reason == "Error validating manager TLS certificate"

    def test_manager_tls_missing_key(
        self,
        ready_cluster: Any,
        secret_factory: Callable[..., Any],
        server_cert: tuple[bytes, bytes],
        resolve: Callable[..., Any],
    ) -> None:
        """A TLS secret without a key should fail."""
        ready_cluster.add(secret_factory("manager-tls", cert=server_cert[0]))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
        assert "'key'" in resolution.result.message


@pytest.mark.unit
class TestComplianceGate:
    """Tests for the licensed compliance dependency."""

    def test_unlicensed_compliance_is_skipped(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """Without the feature, compliance is not required."""
        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        assert resolution.snapshot.compliance_server_cert is None

    def test_compliance_not_ready(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A licensed but unready Compliance should wait."""
        ready_cluster.add(_license(["compliance-reports"]))
        ready_cluster.add(resource_factory("Compliance", state="Progressing"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "compliance"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.reason == "Compliance is not ready"

    def test_compliance_cert_missing(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A ready Compliance without its server cert should wait."""
        ready_cluster.add(_license(["compliance-reports"]))
        ready_cluster.add(resource_factory("Compliance", state="Ready"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.WAIT
        assert "tigera-compliance-server-tls" in resolution.result.reason

    def test_compliance_ready(
        self,
        ready_cluster: Any,
        resource_factory: Callable[..., Any],
        secret_factory: Callable[..., Any],
        server_cert: tuple[bytes, bytes],
        resolve: Callable[..., Any],
    ) -> None:
        """A ready Compliance with its cert should pass and be captured."""
        ready_cluster.add(_license(["compliance-reports"]))
        ready_cluster.add(resource_factory("Compliance", state="Ready"))
        ready_cluster.add(secret_factory("tigera-compliance-server-tls", tls_crt=server_cert[0]))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        assert resolution.snapshot.compliance_server_cert.name == "tigera-compliance-server-tls"


@pytest.mark.unit
class TestLogStorageGates:
    """Tests for the namespace, pull secret and Elasticsearch gates."""

    def test_prometheus_namespace_missing(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """A missing tigera-prometheus namespace should wait."""
        ready_cluster.remove("Namespace", "tigera-prometheus")

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "prometheus_namespace"
        assert resolution.result.outcome is GateOutcome.WAIT

    def test_pull_secret_missing(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A pull secret named by the Installation must exist."""
        ready_cluster.add(
            resource_factory(
                "Installation", name="default", spec={"imagePullSecrets": [{"name": "pull"}]}
            )
        )

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "log_storage"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert "pull" in resolution.result.reason

    def test_es_config_map_missing(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A missing cluster config map should wait."""
        ready_cluster.remove("ConfigMap", "tigera-secure-elasticsearch", OPERATOR_NS)

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "log_storage"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.error is None

    def test_es_config_map_malformed(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """Non-integer shard counts should fail."""
        ready_cluster.add(
            {
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": {"name": "tigera-secure-elasticsearch", "namespace": OPERATOR_NS},
                "data": {"clusterName": "c", "replicas": "one", "shards": "1", "flowShards": "1"},
            }
        )

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
        assert isinstance(resolution.result.error, InvalidConfigurationError)

    def test_es_credentials_missing(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """Missing Elasticsearch credentials should wait."""
        ready_cluster.remove("Secret", "tigera-ee-manager-elasticsearch-access", OPERATOR_NS)

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.reason.startswith("Elasticsearch secrets are not available")

    def test_es_credentials_incomplete(
        self, ready_cluster: Any, secret_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """Credentials without a password should fail."""
        ready_cluster.add(secret_factory("tigera-ee-manager-elasticsearch-access", username="m"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
        assert "password" in resolution.result.message

    def test_kibana_cert_missing(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A missing Kibana public cert should stop the pass."""
        ready_cluster.remove("Secret", "tigera-secure-kb-http-certs-public", OPERATOR_NS)

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "kibana_cert"
        assert not resolution.result.is_pass


@pytest.mark.unit
class TestTopologyGates:
    """Tests for hub/spoke resolution and hub secrets."""

    def test_hub_and_spoke_conflict(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """Both topology resources at once should fail with a conflict."""
        ready_cluster.add(resource_factory("ManagementCluster"))
        ready_cluster.add(resource_factory("ManagementClusterConnection"))

        resolution, ctx = resolve(ready_cluster)

        assert resolution.gate == "topology"
        assert resolution.result.outcome is GateOutcome.FAIL
        assert isinstance(resolution.result.error, TopologyConflictError)
        assert ctx.status.state is ReconcileStatus.DEGRADED

    def test_hub_without_tunnel_secret(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A hub without its tunnel secret should wait with a delay."""
        ready_cluster.add(resource_factory("ManagementCluster"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "hub_secrets"
        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.requeue_after == 10.0
        assert "tigera-management-cluster-connection" in resolution.result.reason

    def test_hub_without_internal_secret(
        self,
        ready_cluster: Any,
        resource_factory: Callable[..., Any],
        secret_factory: Callable[..., Any],
        resolve: Callable[..., Any],
    ) -> None:
        """A hub without its internal traffic secret should wait with a delay."""
        ready_cluster.add(resource_factory("ManagementCluster"))
        ready_cluster.add(secret_factory("tigera-management-cluster-connection", cert="c"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.WAIT
        assert resolution.result.requeue_after == 10.0
        assert "internal-manager-tls" in resolution.result.reason

    def test_hub_with_secrets(
        self,
        ready_cluster: Any,
        resource_factory: Callable[..., Any],
        secret_factory: Callable[..., Any],
        resolve: Callable[..., Any],
    ) -> None:
        """A hub with both secrets should pass."""
        ready_cluster.add(resource_factory("ManagementCluster"))
        ready_cluster.add(secret_factory("tigera-management-cluster-connection", cert="c"))
        ready_cluster.add(secret_factory("internal-manager-tls", cert="c"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        assert resolution.snapshot.is_management_cluster
        assert resolution.snapshot.tunnel_secret is not None

    def test_spoke_skips_es_license(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A spoke does not need the Elasticsearch license."""
        ready_cluster.remove("ConfigMap", "elastic-licensing", "tigera-eck-operator")
        ready_cluster.add(resource_factory("ManagementClusterConnection"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        assert resolution.snapshot.is_managed_cluster
        assert resolution.snapshot.es_license_type is ElasticsearchLicenseType.UNKNOWN

    def test_es_license_missing(self, ready_cluster: Any, resolve: Callable[..., Any]) -> None:
        """A standalone cluster without the ECK license should wait."""
        ready_cluster.remove("ConfigMap", "elastic-licensing", "tigera-eck-operator")

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "es_license"
        assert resolution.result.outcome is GateOutcome.WAIT


@pytest.mark.unit
class TestAuthenticationGates:
    """Tests for the Authentication and key validator gates."""

    def test_authentication_not_ready(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """An Authentication that is not Ready should wait."""
        ready_cluster.add(resource_factory("Authentication", state="Progressing"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "authentication"
        assert resolution.result.outcome is GateOutcome.WAIT

    def test_dex_authentication(
        self,
        ready_cluster: Any,
        resource_factory: Callable[..., Any],
        secret_factory: Callable[..., Any],
        resolve: Callable[..., Any],
    ) -> None:
        """A Dex-backed Authentication should derive the dex issuer."""
        ready_cluster.add(
            resource_factory(
                "Authentication", spec={"managerDomain": "https://manager.example/"}, state="Ready"
            )
        )
        ready_cluster.add(secret_factory("tigera-dex-tls", tls_crt="c"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        validator = resolution.snapshot.key_validator_config
        assert validator.issuer == "https://manager.example/dex"
        assert validator.dex_tls_secret is not None

    def test_dex_secret_missing(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """Dex mode without the Dex TLS secret should wait."""
        ready_cluster.add(
            resource_factory(
                "Authentication", spec={"managerDomain": "https://manager.example"}, state="Ready"
            )
        )

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "key_validator"
        assert resolution.result.outcome is GateOutcome.WAIT

    def test_malformed_oidc_fails(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """An Authentication that does not parse should fail the pass, not raise."""
        ready_cluster.add(
            resource_factory("Authentication", spec={"oidc": {"issuerURL": ["x"]}}, state="Ready")
        )

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "authentication"
        assert resolution.result.outcome is GateOutcome.FAIL
        assert isinstance(resolution.result.error, InvalidConfigurationError)
        assert resolution.result.error.reason == "Error parsing authentication dependencies"

    def test_missing_manager_domain(
        self, ready_cluster: Any, resource_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """Dex mode without a manager domain should fail."""
        ready_cluster.add(resource_factory("Authentication", state="Ready"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "key_validator"
        assert resolution.result.outcome is GateOutcome.FAIL


@pytest.mark.unit
class TestServiceCertGates:
    """Tests for the packet capture and prometheus certificates."""

    def test_packet_capture_cert_required(
        self, ready_cluster: Any, resolve: Callable[..., Any]
    ) -> None:
        """A missing packet capture cert should wait."""
        ready_cluster.remove("Secret", "tigera-packetcapture-server-tls", OPERATOR_NS)

        resolution, _ = resolve(ready_cluster)

        assert resolution.gate == "service_certs"
        assert resolution.result.outcome is GateOutcome.WAIT

    def test_prometheus_cert_optional(
        self,
        ready_cluster: Any,
        secret_factory: Callable[..., Any],
        server_cert: tuple[bytes, bytes],
        resolve: Callable[..., Any],
    ) -> None:
        """A present prometheus cert should be captured."""
        ready_cluster.add(secret_factory("calico-node-prometheus-tls", tls_crt=server_cert[0]))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.is_pass
        assert resolution.snapshot.prometheus_cert is not None

    def test_malformed_prometheus_cert_fails(
        self, ready_cluster: Any, secret_factory: Callable[..., Any], resolve: Callable[..., Any]
    ) -> None:
        """A present but malformed optional cert should still fail."""
        ready_cluster.add(secret_factory("calico-node-prometheus-tls", tls_crt="garbage"))

        resolution, _ = resolve(ready_cluster)

        assert resolution.result.outcome is GateOutcome.FAIL
