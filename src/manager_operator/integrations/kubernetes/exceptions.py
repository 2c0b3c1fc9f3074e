"""Errors raised by the object store and the API client.

The reconcile gates only distinguish a missing object
(:class:`KubernetesNotFoundError`) from everything else, which they treat
as transient. The remaining subclasses exist so the CLI and the logs can
say what went wrong.
"""

from __future__ import annotations


def _describe(kind: str | None, name: str | None, namespace: str | None) -> str:
    """``Kind 'name' in namespace 'ns'``, or an empty string without a kind and name."""
    if not (kind and name):
        return ""
    where = f"{kind} '{name}'"
    if namespace:
        where += f" in namespace '{namespace}'"
    return where


class KubernetesError(Exception):
    """An API server call failed.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status of the failed call, if there was one.
        resource_type: Kind of the object involved.
        resource_name: Name of the object involved.
        namespace: Namespace of the object, empty for cluster-scoped kinds.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        text = self.message
        if self.status_code:
            text += f" (status: {self.status_code})"
        if self.resource_type and self.resource_name:
            text += f" [{self.resource_type}/{self.resource_name}"
            text += f" in {self.namespace}]" if self.namespace else "]"
        return text


class KubernetesConnectionError(KubernetesError):
    """No usable kubeconfig, or the API server could not be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """The operator's service account was refused (401/403)."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int = 401,
    ) -> None:
        super().__init__(message=message, status_code=status_code)


class KubernetesNotFoundError(KubernetesError):
    """The object does not exist, or its kind is not served by the cluster (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        where = _describe(resource_type, resource_name, namespace)
        super().__init__(
            message=f"{where} not found" if where else message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """The API server rejected a rendered object (400/422)."""

    def __init__(
        self, message: str = "Invalid resource specification", status_code: int = 422
    ) -> None:
        super().__init__(message=message, status_code=status_code)


class KubernetesConflictError(KubernetesError):
    """A create hit an existing object, or a replace lost a race (409).

    The next pass re-reads the object and tries again.
    """

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        where = _describe(resource_type, resource_name, namespace)
        super().__init__(
            message=f"{where} was modified concurrently" if where else message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
