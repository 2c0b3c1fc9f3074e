"""Read-only aggregate of the dependency state fetched during one pass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from manager_operator.integrations.kubernetes.models.operator import (
    AuthenticationResource,
    ConfigMapData,
    InstallationResource,
    LicenseKeyResource,
    ManagementClusterConnectionResource,
    ManagementClusterResource,
    ManagerResource,
    SecretData,
)
from manager_operator.services.manager.errors import InvalidConfigurationError


class ElasticsearchLicenseType(StrEnum):
    """License tier of the Elasticsearch cluster."""

    BASIC = "basic"
    ENTERPRISE_TRIAL = "enterprise_trial"
    ENTERPRISE = "enterprise"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> ElasticsearchLicenseType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ElasticsearchClusterConfig:
    """Cluster-wide search index settings published by the log storage controller."""

    cluster_name: str
    replicas: int
    shards: int
    flow_shards: int

    @classmethod
    def from_config_map(cls, config_map: ConfigMapData) -> ElasticsearchClusterConfig:
        """Parse the config map.

        Raises:
            InvalidConfigurationError: If a key is missing or not an integer.
        """
        data = config_map.data
        reason = "Failed to get the elasticsearch cluster configuration"
        if not data.get("clusterName"):
            raise InvalidConfigurationError(reason, f"{config_map.name} has no clusterName")
        numbers: dict[str, int] = {}
        for key in ("replicas", "shards", "flowShards"):
            try:
                numbers[key] = int(data[key])
            except KeyError as e:
                raise InvalidConfigurationError(reason, f"{config_map.name} has no {key}") from e
            except ValueError as e:
                raise InvalidConfigurationError(
                    reason, f"{config_map.name} {key} is not an integer: {data[key]!r}"
                ) from e
        return cls(
            cluster_name=data["clusterName"],
            replicas=numbers["replicas"],
            shards=numbers["shards"],
            flow_shards=numbers["flowShards"],
        )


@dataclass(frozen=True)
class KeyValidatorConfig:
    """How the manager validates bearer tokens issued by the identity provider."""

    issuer: str
    client_id: str
    username_claim: str
    groups_claim: str
    username_prefix: str = ""
    groups_prefix: str = ""
    jwks_url: str | None = None
    static_jwks: str | None = None
    dex_tls_secret: SecretData | None = None

    def env(self) -> list[dict[str, str]]:
        """Container environment describing the validator."""
        env = [
            {"name": "CNX_WEB_OIDC_AUTHORITY", "value": self.issuer},
            {"name": "CNX_WEB_OIDC_CLIENT_ID", "value": self.client_id},
            {"name": "VOLTRON_OIDC_USERNAME_CLAIM", "value": self.username_claim},
            {"name": "VOLTRON_OIDC_GROUPS_CLAIM", "value": self.groups_claim},
            {"name": "VOLTRON_OIDC_USERNAME_PREFIX", "value": self.username_prefix},
            {"name": "VOLTRON_OIDC_GROUPS_PREFIX", "value": self.groups_prefix},
        ]
        if self.jwks_url:
            env.append({"name": "VOLTRON_OIDC_JWKS_URL", "value": self.jwks_url})
        return env


@dataclass(frozen=True)
class DependencySnapshot:
    """Everything the gates fetched, frozen once all of them passed.

    Built from scratch every pass and never cached across passes.
    """

    manager: ManagerResource
    installation: InstallationResource
    license: LicenseKeyResource
    es_cluster_config: ElasticsearchClusterConfig
    kibana_public_cert: SecretData
    packet_capture_cert: SecretData
    es_license_type: ElasticsearchLicenseType = ElasticsearchLicenseType.UNKNOWN
    tls_secret: SecretData | None = None
    compliance_server_cert: SecretData | None = None
    pull_secrets: tuple[SecretData, ...] = ()
    es_secrets: tuple[SecretData, ...] = ()
    management_cluster: ManagementClusterResource | None = None
    management_cluster_connection: ManagementClusterConnectionResource | None = None
    tunnel_secret: SecretData | None = None
    internal_traffic_secret: SecretData | None = None
    authentication: AuthenticationResource | None = None
    key_validator_config: KeyValidatorConfig | None = None
    prometheus_cert: SecretData | None = None

    @classmethod
    def from_draft(cls, draft: dict[str, Any]) -> DependencySnapshot:
        """Freeze the values the gates collected."""
        return cls(**draft)

    @property
    def is_management_cluster(self) -> bool:
        return self.management_cluster is not None

    @property
    def is_managed_cluster(self) -> bool:
        return self.management_cluster_connection is not None
