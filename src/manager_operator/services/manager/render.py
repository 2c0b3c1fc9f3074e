"""Default renderer: turns a ManagerConfiguration into the manager's objects.

Renderers are plain callables so tests and alternative layouts can swap
them in. The default one renders the manager namespace, its service
account, service and deployment, and copies of every secret the manager
mounts into the manager namespace.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from manager_operator.services.manager import constants as c
from manager_operator.services.manager.components import RenderedComponent

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.models.operator import SecretData
    from manager_operator.services.manager.configuration import ManagerConfiguration

DEFAULT_REGISTRY = "quay.io/"
DEFAULT_IMAGE_TAG = "latest"
MANAGER_IMAGE = "tigera/cnx-manager"
VOLTRON_IMAGE = "tigera/voltron"
ES_PROXY_IMAGE = "tigera/es-proxy"
VOLTRON_TUNNEL_PORT = 9449
APP_LABEL = {"k8s-app": c.MANAGER_DEPLOYMENT_NAME}

PROMETHEUS_API_URL = (
    f"/api/v1/namespaces/{c.PROMETHEUS_NAMESPACE}/services/calico-node-prometheus:9090/proxy/api/v1"
)
QUERY_API_URL = "/api/v1/namespaces/tigera-system/services/https:tigera-api:8080/proxy"
COMPLIANCE_ENDPOINT = "https://compliance.tigera-compliance.svc.{cluster_domain}"
ELASTIC_HOST = "tigera-secure-es-http.tigera-elasticsearch.svc.{cluster_domain}"

ES_USERNAME_KEY = "username"
ES_PASSWORD_KEY = "password"


class Renderer(Protocol):
    """Maps a configuration to the component holding the manager's objects."""

    def __call__(self, config: ManagerConfiguration) -> RenderedComponent: ...


def image_reference(config: ManagerConfiguration, image: str) -> str:
    """``<registry><image>:<tag>``, honoring the installation's registry and image path."""
    installation = config.installation
    registry = installation.registry or DEFAULT_REGISTRY
    if not registry.endswith("/"):
        registry += "/"
    if installation.image_path:
        image = f"{installation.image_path.strip('/')}/{image.rsplit('/', 1)[-1]}"
    return f"{registry}{image}:{config.release_version or DEFAULT_IMAGE_TAG}"


def _metadata(name: str, namespace: str | None = None, **extra: Any) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    metadata.update(extra)
    return metadata


def _copy_secret(secret: SecretData) -> dict[str, Any]:
    return secret.to_manifest(namespace=c.MANAGER_NAMESPACE)


def _secret_stub(name: str) -> dict[str, Any]:
    return {"apiVersion": "v1", "kind": "Secret", "metadata": _metadata(name, c.MANAGER_NAMESPACE)}


def _env(name: str, value: Any) -> dict[str, str]:
    return {"name": name, "value": str(value)}


def _secret_env(name: str, secret: str, key: str) -> dict[str, Any]:
    return {"name": name, "valueFrom": {"secretKeyRef": {"name": secret, "key": key}}}


def _secret_volume(name: str) -> dict[str, Any]:
    return {"name": name, "secret": {"secretName": name}}


# =============================================================================
# Objects
# =============================================================================


def render_namespace(config: ManagerConfiguration) -> dict[str, Any]:
    annotations = {"openshift.io/node-selector": ""} if config.openshift else None
    metadata = _metadata(c.MANAGER_NAMESPACE, labels={"name": c.MANAGER_NAMESPACE})
    if annotations:
        metadata["annotations"] = annotations
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": metadata}


def render_service_account() -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": _metadata(c.MANAGER_SERVICE_ACCOUNT, c.MANAGER_NAMESPACE),
    }


def render_service() -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(c.MANAGER_SERVICE_NAME, c.MANAGER_NAMESPACE, labels=APP_LABEL),
        "spec": {
            "selector": dict(APP_LABEL),
            "ports": [
                {
                    "name": "https",
                    "port": c.MANAGER_PORT,
                    "targetPort": c.MANAGER_PORT,
                    "protocol": "TCP",
                }
            ],
        },
    }


def _manager_container(config: ManagerConfiguration) -> dict[str, Any]:
    env = [
        _env("CNX_PROMETHEUS_API_URL", PROMETHEUS_API_URL),
        _env("CNX_COMPLIANCE_REPORTS_API_URL", "/compliance/reports"),
        _env("CNX_QUERY_API_URL", QUERY_API_URL),
        _env("CNX_ELASTICSEARCH_API_URL", "/tigera-elasticsearch"),
        _env("CNX_ELASTICSEARCH_KIBANA_URL", "/tigera-kibana"),
        _env("CNX_CLUSTER_NAME", config.es_cluster_config.cluster_name),
        _env("ENABLE_MULTI_CLUSTER_MANAGEMENT", str(config.is_management_cluster).lower()),
    ]
    if config.key_validator_config is not None:
        env.extend(config.key_validator_config.env())
    return {
        "name": "tigera-manager",
        "image": image_reference(config, MANAGER_IMAGE),
        "env": env,
    }


def _voltron_container(config: ManagerConfiguration) -> dict[str, Any]:
    compliance_enabled = config.compliance_server_cert is not None
    env = [
        _env("VOLTRON_PORT", c.MANAGER_PORT),
        _env(
            "VOLTRON_COMPLIANCE_ENDPOINT",
            COMPLIANCE_ENDPOINT.format(cluster_domain=config.cluster_domain),
        ),
        _env("VOLTRON_ENABLE_COMPLIANCE", str(compliance_enabled).lower()),
        _env("VOLTRON_ENABLE_MULTI_CLUSTER_MANAGEMENT", str(config.is_management_cluster).lower()),
        _env("VOLTRON_TUNNEL_PORT", VOLTRON_TUNNEL_PORT),
    ]
    if config.key_validator_config is not None:
        env.extend(config.key_validator_config.env())

    mounts = [{"name": c.MANAGER_TLS_SECRET_NAME, "mountPath": "/certs/https", "readOnly": True}]
    if config.is_management_cluster:
        mounts.extend(
            [
                {"name": c.TUNNEL_SECRET_NAME, "mountPath": "/certs/tunnel", "readOnly": True},
                {
                    "name": c.MANAGER_INTERNAL_TLS_SECRET_NAME,
                    "mountPath": "/certs/internal",
                    "readOnly": True,
                },
            ]
        )
    return {
        "name": "tigera-voltron",
        "image": image_reference(config, VOLTRON_IMAGE),
        "env": env,
        "volumeMounts": mounts,
    }


def _es_proxy_container(config: ManagerConfiguration) -> dict[str, Any]:
    es = config.es_cluster_config
    return {
        "name": "tigera-es-proxy",
        "image": image_reference(config, ES_PROXY_IMAGE),
        "env": [
            _env("ELASTIC_LICENSE_TYPE", config.es_license_type),
            _env("ELASTIC_HOST", ELASTIC_HOST.format(cluster_domain=config.cluster_domain)),
            _env("ELASTIC_PORT", 9200),
            _env("ELASTIC_INDEX_SUFFIX", es.cluster_name),
            _env("ELASTIC_REPLICAS", es.replicas),
            _env("ELASTIC_SHARDS", es.shards),
            _secret_env("ELASTIC_USERNAME", c.ELASTICSEARCH_MANAGER_USER_SECRET, ES_USERNAME_KEY),
            _secret_env("ELASTIC_PASSWORD", c.ELASTICSEARCH_MANAGER_USER_SECRET, ES_PASSWORD_KEY),
        ],
        "volumeMounts": [
            {
                "name": c.ELASTICSEARCH_PUBLIC_CERT_SECRET,
                "mountPath": "/etc/ssl/elastic/",
                "readOnly": True,
            }
        ],
    }


def render_deployment(config: ManagerConfiguration) -> dict[str, Any]:
    volumes = [
        _secret_volume(c.MANAGER_TLS_SECRET_NAME),
        _secret_volume(c.ELASTICSEARCH_PUBLIC_CERT_SECRET),
    ]
    if config.is_management_cluster:
        volumes.extend(
            [
                _secret_volume(c.TUNNEL_SECRET_NAME),
                _secret_volume(c.MANAGER_INTERNAL_TLS_SECRET_NAME),
            ]
        )

    pod_spec: dict[str, Any] = {
        "serviceAccountName": c.MANAGER_SERVICE_ACCOUNT,
        "containers": [
            _manager_container(config),
            _voltron_container(config),
            _es_proxy_container(config),
        ],
        "volumes": volumes,
    }
    if config.pull_secrets:
        pod_spec["imagePullSecrets"] = [{"name": s.name} for s in config.pull_secrets]
    if not config.openshift:
        pod_spec["securityContext"] = {"runAsNonRoot": True}

    spec: dict[str, Any] = {
        "selector": {"matchLabels": dict(APP_LABEL)},
        "template": {
            "metadata": {"labels": dict(APP_LABEL)},
            "spec": pod_spec,
        },
    }
    if config.replicas is not None:
        spec["replicas"] = config.replicas
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(c.MANAGER_DEPLOYMENT_NAME, c.MANAGER_NAMESPACE, labels=APP_LABEL),
        "spec": spec,
    }


def _secrets(config: ManagerConfiguration) -> list[SecretData]:
    secrets: list[SecretData] = [*config.pull_secrets, *config.es_secrets, *config.kibana_secrets]
    for optional in (
        config.compliance_server_cert,
        config.packet_capture_cert,
        config.prometheus_cert,
    ):
        if optional is not None:
            secrets.append(optional)
    if config.key_validator_config is not None and config.key_validator_config.dex_tls_secret:
        secrets.append(config.key_validator_config.dex_tls_secret)
    if config.is_management_cluster:
        for hub_secret in (config.tunnel_secret, config.internal_traffic_secret):
            if hub_secret is not None:
                secrets.append(hub_secret)
    return secrets


def render_manager(config: ManagerConfiguration) -> RenderedComponent:
    """Render every object of the manager."""
    objects: list[dict[str, Any]] = [render_namespace(config), render_service_account()]
    if config.tls_key_pair is not None:
        objects.append(_copy_secret(config.tls_key_pair.to_secret()))
    objects.extend(_copy_secret(s) for s in _secrets(config))
    objects.extend([render_service(), render_deployment(config)])

    to_delete: list[dict[str, Any]] = []
    if not config.is_management_cluster:
        to_delete.extend(
            _secret_stub(name)
            for name in (c.TUNNEL_SECRET_NAME, c.MANAGER_INTERNAL_TLS_SECRET_NAME)
        )
    return RenderedComponent(
        name="manager",
        objects_to_apply=tuple(objects),
        objects_to_delete=tuple(to_delete),
    )
