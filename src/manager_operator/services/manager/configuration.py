"""Assembly of the immutable configuration the renderer consumes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.models.operator import (
        InstallationResource,
        ManagementClusterResource,
        SecretData,
    )
    from manager_operator.services.manager.certificates import CertificateBundle
    from manager_operator.services.manager.snapshot import (
        DependencySnapshot,
        ElasticsearchClusterConfig,
        ElasticsearchLicenseType,
        KeyValidatorConfig,
    )

# Multi-cluster setups run a single manager until it supports HA there.
MULTI_CLUSTER_REPLICAS = 1


@dataclass(frozen=True)
class ManagerConfiguration:
    """Everything the renderer needs, and nothing it has to look up."""

    installation: InstallationResource
    es_cluster_config: ElasticsearchClusterConfig
    es_license_type: ElasticsearchLicenseType
    cluster_domain: str
    openshift: bool
    replicas: int | None
    release_version: str = ""
    tls_key_pair: CertificateBundle | None = None
    key_validator_config: KeyValidatorConfig | None = None
    pull_secrets: tuple[SecretData, ...] = ()
    es_secrets: tuple[SecretData, ...] = ()
    kibana_secrets: tuple[SecretData, ...] = ()
    compliance_server_cert: SecretData | None = None
    packet_capture_cert: SecretData | None = None
    prometheus_cert: SecretData | None = None
    management_cluster: ManagementClusterResource | None = None
    tunnel_secret: SecretData | None = None
    internal_traffic_secret: SecretData | None = None

    @property
    def is_management_cluster(self) -> bool:
        return self.management_cluster is not None


def desired_replicas(snapshot: DependencySnapshot) -> int | None:
    """Replica count of the manager deployment.

    Forced to one whenever the cluster is a hub or a spoke; otherwise the
    installation's control plane replica count (None leaves the default).
    """
    if snapshot.is_management_cluster or snapshot.is_managed_cluster:
        return MULTI_CLUSTER_REPLICAS
    return snapshot.installation.control_plane_replicas


def assemble_configuration(
    snapshot: DependencySnapshot,
    bundle: CertificateBundle | None,
    *,
    cluster_domain: str,
    openshift: bool = False,
    release_version: str = "",
) -> ManagerConfiguration:
    """Combine the dependency snapshot and the TLS bundle. Performs no I/O."""
    return ManagerConfiguration(
        installation=snapshot.installation,
        es_cluster_config=snapshot.es_cluster_config,
        es_license_type=snapshot.es_license_type,
        cluster_domain=cluster_domain,
        openshift=openshift,
        replicas=desired_replicas(snapshot),
        release_version=release_version,
        tls_key_pair=bundle,
        key_validator_config=snapshot.key_validator_config,
        pull_secrets=snapshot.pull_secrets,
        es_secrets=snapshot.es_secrets,
        kibana_secrets=(snapshot.kibana_public_cert,),
        compliance_server_cert=snapshot.compliance_server_cert,
        packet_capture_cert=snapshot.packet_capture_cert,
        prometheus_cert=snapshot.prometheus_cert,
        management_cluster=snapshot.management_cluster,
        tunnel_secret=snapshot.tunnel_secret,
        internal_traffic_secret=snapshot.internal_traffic_secret,
    )
