"""Models for the operator resources and core objects the Manager depends on.

Every model is built from the plain dict returned by the object store via
``from_k8s_object``. Parsing is strict where the reconcile gates rely on a
field and lenient everywhere else.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from manager_operator.integrations.kubernetes.models.base import (
    K8sEntityBase,
    metadata_fields,
    status_state,
)

OPERATOR_API_VERSION = "operator.tigera.io/v1"
PROJECTCALICO_API_VERSION = "projectcalico.org/v3"
TIGERA_STATUS_READY = "Ready"
AUTH_TYPE_TOKEN = "Token"


# =============================================================================
# Core objects
# =============================================================================


class SecretData(K8sEntityBase):
    """A Secret with its data base64-decoded."""

    type: str = "Opaque"
    data: dict[str, bytes] = Field(default_factory=dict)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> SecretData:
        """Create from a Secret dict.

        Raises:
            ValueError: If a data value is not valid base64.
        """
        decoded: dict[str, bytes] = {}
        for key, value in (obj.get("data") or {}).items():
            try:
                decoded[key] = base64.b64decode(value or "", validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"secret key {key!r} is not valid base64") from e
        for key, value in (obj.get("stringData") or {}).items():
            decoded[key] = str(value).encode()
        return cls(**metadata_fields(obj), type=obj.get("type") or "Opaque", data=decoded)

    def to_manifest(self, namespace: str | None = None) -> dict[str, Any]:
        """Render the secret as a manifest, optionally copied to another namespace."""
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": self.name, "namespace": namespace or self.namespace},
            "type": self.type,
            "data": {k: base64.b64encode(v).decode() for k, v in sorted(self.data.items())},
        }


class ConfigMapData(K8sEntityBase):
    """A ConfigMap's string data."""

    data: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ConfigMapData:
        """Create from a ConfigMap dict."""
        data = {k: str(v) for k, v in (obj.get("data") or {}).items()}
        return cls(**metadata_fields(obj), data=data)


# =============================================================================
# Operator resources
# =============================================================================


class ManagerAuth(BaseModel):
    """Deprecated in-CR authentication settings of the Manager."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    type: str = ""
    authority: str | None = None
    client_id: str | None = Field(default=None, alias="clientID")


class ManagerResource(K8sEntityBase):
    """The primary Manager resource."""

    auth: ManagerAuth | None = None
    state: str = ""

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ManagerResource:
        """Create from a Manager dict."""
        spec = obj.get("spec") or {}
        auth = ManagerAuth.model_validate(spec["auth"]) if spec.get("auth") is not None else None
        return cls(**metadata_fields(obj), auth=auth, state=status_state(obj))

    @property
    def has_supported_auth(self) -> bool:
        """Only the Token auth type may still be set on the Manager itself."""
        return self.auth is None or self.auth.type == AUTH_TYPE_TOKEN


class CertificateManagement(BaseModel):
    """Installation settings delegating certificate issuance to an external signer."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    ca_cert: bytes = Field(default=b"", alias="caCert")
    signer_name: str = Field(default="", alias="signerName")


class InstallationResource(K8sEntityBase):
    """The foundational Installation resource."""

    variant: str = "TigeraSecureEnterprise"
    registry: str = ""
    image_path: str = ""
    image_pull_secrets: tuple[str, ...] = ()
    control_plane_replicas: int | None = None
    certificate_management: CertificateManagement | None = None

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> InstallationResource:
        """Create from an Installation dict, preferring the computed status spec."""
        status = obj.get("status") or {}
        spec = status.get("computed") or obj.get("spec") or {}
        cert_mgmt = None
        if spec.get("certificateManagement"):
            raw = dict(spec["certificateManagement"])
            ca = raw.get("caCert") or ""
            raw["caCert"] = base64.b64decode(ca) if ca else b""
            cert_mgmt = CertificateManagement.model_validate(raw)
        return cls(
            **metadata_fields(obj),
            variant=status.get("variant") or spec.get("variant") or "TigeraSecureEnterprise",
            registry=spec.get("registry") or "",
            image_path=spec.get("imagePath") or "",
            image_pull_secrets=tuple(
                s["name"] for s in spec.get("imagePullSecrets") or [] if s.get("name")
            ),
            control_plane_replicas=spec.get("controlPlaneReplicas"),
            certificate_management=cert_mgmt,
        )


class ComponentStatus(K8sEntityBase):
    """Any operator resource whose readiness is reported in ``status.state``."""

    state: str = ""

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ComponentStatus:
        """Create from a resource dict."""
        return cls(**metadata_fields(obj), state=status_state(obj))

    @property
    def ready(self) -> bool:
        """Whether the component reports Ready."""
        return self.state == TIGERA_STATUS_READY


class OIDCSpec(BaseModel):
    """OIDC settings of the Authentication resource."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    type: str = "Dex"
    issuer_url: str = Field(default="", alias="issuerURL")
    username_claim: str = Field(default="email", alias="usernameClaim")
    groups_claim: str = Field(default="groups", alias="groupsClaim")
    username_prefix: str = Field(default="", alias="usernamePrefix")
    groups_prefix: str = Field(default="", alias="groupsPrefix")


class AuthenticationResource(ComponentStatus):
    """The optional Authentication resource."""

    manager_domain: str = ""
    oidc: OIDCSpec | None = None
    username_prefix: str = ""
    groups_prefix: str = ""

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> AuthenticationResource:
        """Create from an Authentication dict."""
        spec = obj.get("spec") or {}
        return cls(
            **metadata_fields(obj),
            state=status_state(obj),
            manager_domain=(spec.get("managerDomain") or "").rstrip("/"),
            oidc=OIDCSpec.model_validate(spec["oidc"]) if spec.get("oidc") else None,
            username_prefix=spec.get("usernamePrefix") or "",
            groups_prefix=spec.get("groupsPrefix") or "",
        )


class LicenseKeyResource(K8sEntityBase):
    """The cluster LicenseKey."""

    features: tuple[str, ...] = ()
    expiry: str | None = None

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> LicenseKeyResource:
        """Create from a LicenseKey dict.

        Raises:
            ValueError: If the license carries no token.
        """
        spec = obj.get("spec") or {}
        if not spec.get("token"):
            raise ValueError("license key has no token")
        status = obj.get("status") or {}
        return cls(
            **metadata_fields(obj),
            features=tuple(status.get("features") or ()),
            expiry=status.get("expiry"),
        )

    def is_feature_active(self, feature: str) -> bool:
        """Whether the license grants a feature."""
        return feature in self.features


class ManagementClusterResource(K8sEntityBase):
    """Declares this cluster a hub for managed clusters."""

    address: str = ""

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ManagementClusterResource:
        """Create from a ManagementCluster dict."""
        spec = obj.get("spec") or {}
        return cls(**metadata_fields(obj), address=spec.get("address") or "")


class ManagementClusterConnectionResource(K8sEntityBase):
    """Declares this cluster a spoke connected to a hub."""

    management_cluster_address: str = ""

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ManagementClusterConnectionResource:
        """Create from a ManagementClusterConnection dict."""
        spec = obj.get("spec") or {}
        return cls(
            **metadata_fields(obj),
            management_cluster_address=spec.get("managementClusterAddr") or "",
        )


class ImageDigest(BaseModel):
    """One pinned image of an ImageSet."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    image: str
    digest: str


class ImageSetResource(K8sEntityBase):
    """Pins component images to digests for one release."""

    images: tuple[ImageDigest, ...] = ()

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ImageSetResource:
        """Create from an ImageSet dict."""
        spec = obj.get("spec") or {}
        images = tuple(ImageDigest.model_validate(i) for i in spec.get("images") or [])
        return cls(**metadata_fields(obj), images=images)
