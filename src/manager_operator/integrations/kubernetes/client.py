"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client with kubeconfig / in-cluster
loading, lazy API object construction, and consistent error translation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import ApiClient, VersionApi
    from kubernetes.dynamic import DynamicClient

    from manager_operator.integrations.kubernetes.config import OperatorConfig

logger = structlog.get_logger()


class KubernetesClient:
    """Kubernetes API client used by the operator.

    Example:
        ```python
        from manager_operator.integrations.kubernetes import KubernetesClient
        from manager_operator.integrations.kubernetes.config import OperatorConfig

        with KubernetesClient(OperatorConfig.from_env()) as client:
            print(client.get_cluster_version())
        ```
    """

    def __init__(self, config: OperatorConfig) -> None:
        """Initialize the client and load connection settings.

        Args:
            config: Operator configuration.
        """
        self._config = config
        self._current_context: str | None = None

        self._api_client: ApiClient | None = None
        self._dynamic: DynamicClient | None = None
        self._version_api: VersionApi | None = None

        self._load_config()

        logger.info(
            "kubernetes_client_initialized",
            context=self._current_context,
            operator_namespace=config.operator_namespace,
        )

    def _load_config(self) -> None:
        """Load Kubernetes configuration from kubeconfig or in-cluster."""
        from kubernetes import config
        from kubernetes.config import ConfigException

        connection = self._config.connection
        try:
            config.load_kube_config(
                config_file=connection.kubeconfig,
                context=connection.context,
            )
            self._current_context = connection.context or "default"
            logger.debug(
                "loaded_kubeconfig",
                context=connection.context,
                kubeconfig=connection.kubeconfig,
            )
        except ConfigException:
            try:
                config.load_incluster_config()
                self._current_context = "in-cluster"
                logger.debug("loaded_incluster_config")
            except ConfigException as e:
                raise KubernetesConnectionError(
                    message="Cannot load Kubernetes configuration. "
                    "Ensure kubeconfig exists or running inside a cluster.",
                    original_error=e,
                ) from e

        self._invalidate_api_cache()

    def _invalidate_api_cache(self) -> None:
        """Clear cached API instances."""
        self._api_client = None
        self._dynamic = None
        self._version_api = None

    # =========================================================================
    # Lazy API Accessors
    # =========================================================================

    @property
    def api_client(self) -> ApiClient:
        """Get the shared ApiClient instance."""
        if self._api_client is None:
            from kubernetes.client import ApiClient

            self._api_client = ApiClient()
        return self._api_client

    @property
    def dynamic(self) -> DynamicClient:
        """Get a DynamicClient for kind-agnostic access (built-in and custom kinds)."""
        if self._dynamic is None:
            from kubernetes.dynamic import DynamicClient

            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    @property
    def version_api(self) -> VersionApi:
        """Get VersionApi instance for cluster version info."""
        if self._version_api is None:
            from kubernetes.client import VersionApi

            self._version_api = VersionApi(self.api_client)
        return self._version_api

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes client exception to a custom exception.

        Dynamic-client errors subclass ``ApiException`` and are handled the
        same way. A kind the server does not serve is reported as not found.

        Args:
            e: The original exception.
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from kubernetes.dynamic.exceptions import ResourceNotFoundError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, ResourceNotFoundError):
            return KubernetesNotFoundError(
                message=f"Kind {resource_type} is not served by the API server",
            )

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Connection Check
    # =========================================================================

    def get_cluster_version(self) -> str:
        """Get the Kubernetes cluster version string.

        Raises:
            KubernetesConnectionError: If the cluster is unreachable.
        """
        try:
            version_info = self.version_api.get_code()
            return f"v{version_info.major}.{version_info.minor}"
        except Exception as e:
            raise KubernetesConnectionError(
                message="Failed to get cluster version",
                original_error=e,
            ) from e

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def operator_namespace(self) -> str:
        """Namespace the operator runs in and reads its secrets from."""
        return self._config.operator_namespace

    @property
    def current_context(self) -> str:
        """The loaded context name, or 'in-cluster'."""
        return self._current_context or "unknown"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the client and release resources."""
        if self._api_client is not None:
            self._api_client.close()
        self._invalidate_api_cache()
        logger.debug("kubernetes_client_closed")

    def __enter__(self) -> KubernetesClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
