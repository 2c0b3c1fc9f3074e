"""Models for cluster objects read and written by the operator."""

from manager_operator.integrations.kubernetes.models.base import K8sEntityBase, ObjectRef
from manager_operator.integrations.kubernetes.models.operator import (
    AuthenticationResource,
    CertificateManagement,
    ComponentStatus,
    ConfigMapData,
    ImageDigest,
    ImageSetResource,
    InstallationResource,
    LicenseKeyResource,
    ManagementClusterConnectionResource,
    ManagementClusterResource,
    ManagerResource,
    OIDCSpec,
    SecretData,
)

__all__ = [
    "AuthenticationResource",
    "CertificateManagement",
    "ComponentStatus",
    "ConfigMapData",
    "ImageDigest",
    "ImageSetResource",
    "InstallationResource",
    "K8sEntityBase",
    "LicenseKeyResource",
    "ManagementClusterConnectionResource",
    "ManagementClusterResource",
    "ManagerResource",
    "OIDCSpec",
    "ObjectRef",
    "SecretData",
]
