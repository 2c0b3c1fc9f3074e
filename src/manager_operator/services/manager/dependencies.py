"""Readers for the objects the dependency gates inspect.

Readers return ``None`` for an absent optional object, raise
``DependencyNotFoundError`` for an absent required one, and raise
``InvalidConfigurationError`` for malformed content. Any other API error
propagates as a ``KubernetesError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from manager_operator.integrations.kubernetes.exceptions import KubernetesNotFoundError
from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.integrations.kubernetes.models.operator import (
    ConfigMapData,
    SecretData,
)
from manager_operator.services.manager.constants import (
    DEX_TLS_SECRET_NAME,
    ECK_LICENSE_CONFIG_MAP,
    ECK_LICENSE_LEVEL_KEY,
    ECK_OPERATOR_NAMESPACE,
    MANAGER_OIDC_CLIENT_ID,
    OIDC_TYPE_TIGERA,
    STATIC_WELL_KNOWN_JWKS_CONFIG_MAP,
)
from manager_operator.services.manager.errors import (
    DependencyNotFoundError,
    InvalidConfigurationError,
)
from manager_operator.services.manager.snapshot import (
    ElasticsearchLicenseType,
    KeyValidatorConfig,
)

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.models.operator import (
        AuthenticationResource,
    )
    from manager_operator.services.kubernetes.object_store import ObjectStore

DEX_SERVICE_URL = "https://tigera-dex.tigera-dex.svc.{cluster_domain}:5556"


def secret_ref(name: str, namespace: str) -> ObjectRef:
    return ObjectRef("v1", "Secret", name, namespace)


def config_map_ref(name: str, namespace: str) -> ObjectRef:
    return ObjectRef("v1", "ConfigMap", name, namespace)


def read_optional(store: ObjectStore, ref: ObjectRef) -> dict[str, Any] | None:
    """Read an object, mapping not-found to None."""
    try:
        return store.get(ref)
    except KubernetesNotFoundError:
        return None


def read_secret(store: ObjectStore, name: str, namespace: str) -> SecretData | None:
    """Read and decode a secret; None if absent.

    Raises:
        InvalidConfigurationError: If the secret data is not valid base64.
    """
    obj = read_optional(store, secret_ref(name, namespace))
    if obj is None:
        return None
    try:
        return SecretData.from_k8s_object(obj)
    except ValueError as e:
        raise InvalidConfigurationError(
            f"Secret {namespace}/{name} is malformed", str(e)
        ) from e


def read_config_map(store: ObjectStore, name: str, namespace: str) -> ConfigMapData | None:
    """Read a config map; None if absent."""
    obj = read_optional(store, config_map_ref(name, namespace))
    return ConfigMapData.from_k8s_object(obj) if obj is not None else None


def validate_cert_pair(
    store: ObjectStore,
    name: str,
    namespace: str,
    key_name: str,
    cert_name: str,
) -> SecretData | None:
    """Read a TLS secret and check it holds a PEM certificate (and key).

    An empty ``key_name`` means only the certificate is required.

    Returns:
        The secret, or None when it does not exist.

    Raises:
        InvalidConfigurationError: If a required field is missing or not PEM.
    """
    from cryptography import x509
    from cryptography.hazmat.primitives import serialization

    secret = read_secret(store, name, namespace)
    if secret is None:
        return None

    reason = f"Secret {namespace}/{name} is not a valid certificate pair"
    cert_pem = secret.data.get(cert_name)
    if not cert_pem:
        raise InvalidConfigurationError(reason, f"missing field {cert_name!r}")
    try:
        x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise InvalidConfigurationError(reason, f"{cert_name!r} is not a PEM certificate") from e

    if key_name:
        key_pem = secret.data.get(key_name)
        if not key_pem:
            raise InvalidConfigurationError(reason, f"missing field {key_name!r}")
        try:
            serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError) as e:
            raise InvalidConfigurationError(
                reason, f"{key_name!r} is not an unencrypted PEM private key"
            ) from e
    return secret


def get_key_validator_config(
    store: ObjectStore,
    authentication: AuthenticationResource | None,
    *,
    cluster_domain: str,
    operator_namespace: str,
) -> KeyValidatorConfig | None:
    """Derive token validation settings from the Authentication resource.

    Tigera-type OIDC validates tokens of the upstream issuer directly;
    everything else goes through Dex, whose TLS secret must exist.

    Raises:
        InvalidConfigurationError: If the resource lacks a domain or issuer.
        DependencyNotFoundError: If the Dex TLS secret is not there yet.
    """
    if authentication is None:
        return None

    reason = "Failed to process the authentication CR."
    oidc = authentication.oidc
    if oidc is not None and oidc.type == OIDC_TYPE_TIGERA:
        if not oidc.issuer_url:
            raise InvalidConfigurationError(reason, "spec.oidc.issuerURL is required")
        jwks = read_config_map(store, STATIC_WELL_KNOWN_JWKS_CONFIG_MAP, operator_namespace)
        return KeyValidatorConfig(
            issuer=oidc.issuer_url.rstrip("/"),
            client_id=MANAGER_OIDC_CLIENT_ID,
            username_claim=oidc.username_claim,
            groups_claim=oidc.groups_claim,
            username_prefix=authentication.username_prefix,
            groups_prefix=authentication.groups_prefix,
            static_jwks=jwks.data.get("jwks") if jwks is not None else None,
        )

    if not authentication.manager_domain:
        raise InvalidConfigurationError(reason, "spec.managerDomain is required")
    dex_secret = read_secret(store, DEX_TLS_SECRET_NAME, operator_namespace)
    if dex_secret is None:
        raise DependencyNotFoundError(
            f"Waiting for secret '{DEX_TLS_SECRET_NAME}' to become available"
        )
    dex_url = DEX_SERVICE_URL.format(cluster_domain=cluster_domain)
    return KeyValidatorConfig(
        issuer=f"{authentication.manager_domain}/dex",
        client_id=MANAGER_OIDC_CLIENT_ID,
        username_claim=oidc.username_claim if oidc else "email",
        groups_claim=oidc.groups_claim if oidc else "groups",
        username_prefix=authentication.username_prefix,
        groups_prefix=authentication.groups_prefix,
        jwks_url=f"{dex_url}/dex/keys",
        dex_tls_secret=dex_secret,
    )


def get_elastic_license_type(store: ObjectStore) -> ElasticsearchLicenseType:
    """Read the license tier published by the ECK operator.

    Raises:
        DependencyNotFoundError: If the licensing config map does not exist.
        InvalidConfigurationError: If it has no license level.
    """
    config_map = read_config_map(store, ECK_LICENSE_CONFIG_MAP, ECK_OPERATOR_NAMESPACE)
    if config_map is None:
        raise DependencyNotFoundError(
            "Waiting for Elasticsearch license to become available",
            f"ConfigMap {ECK_OPERATOR_NAMESPACE}/{ECK_LICENSE_CONFIG_MAP} not found",
        )
    level = config_map.data.get(ECK_LICENSE_LEVEL_KEY)
    if not level:
        raise InvalidConfigurationError(
            "Failed to get Elasticsearch license",
            f"{ECK_LICENSE_CONFIG_MAP} has no {ECK_LICENSE_LEVEL_KEY}",
        )
    return ElasticsearchLicenseType.parse(level)
