"""Kubernetes integration - API client, configuration, and resource models."""

from manager_operator.integrations.kubernetes.client import KubernetesClient
from manager_operator.integrations.kubernetes.config import (
    ConfigFileError,
    ConnectionConfig,
    OperatorConfig,
)
from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

__all__ = [
    "ConfigFileError",
    "ConnectionConfig",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
    "OperatorConfig",
]
