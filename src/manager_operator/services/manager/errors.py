"""Manager controller error taxonomy.

Every error carries a short ``reason`` which becomes the reason of the
Degraded status condition, and a ``message`` with the detail.
"""

from __future__ import annotations


class ManagerOperatorError(Exception):
    """Base exception for the Manager controller.

    Attributes:
        reason: Short reason code persisted on the Degraded condition.
        message: Human-readable detail.
    """

    def __init__(self, reason: str, message: str = "") -> None:
        super().__init__(message or reason)
        self.reason = reason
        self.message = message

    def __str__(self) -> str:
        if self.message and self.message != self.reason:
            return f"{self.reason}: {self.message}"
        return self.reason


class DependencyNotFoundError(ManagerOperatorError):
    """A dependency the pass needs does not exist (yet)."""


class InvalidConfigurationError(ManagerOperatorError):
    """A secret, config map, certificate or resource is malformed or unsupported."""


class TopologyConflictError(ManagerOperatorError):
    """Mutually exclusive multi-cluster resources exist at the same time.

    Retrying does not help until a user removes one of them.
    """


class TransientError(ManagerOperatorError):
    """A read or write against the API server failed; expected to clear on retry."""


class ImageOverrideError(InvalidConfigurationError):
    """The ImageSet for this release cannot be applied to the rendered objects."""


class ApplyError(ManagerOperatorError):
    """Creating, updating or deleting a rendered object failed."""


class ReconcileCancelledError(ManagerOperatorError):
    """The pass was interrupted by process shutdown."""

    def __init__(self, message: str = "reconcile interrupted by shutdown") -> None:
        super().__init__("Reconcile cancelled", message)
