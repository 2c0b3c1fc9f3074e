"""Kubernetes-backed services shared by controllers."""

from manager_operator.services.kubernetes.base import K8sBaseManager
from manager_operator.services.kubernetes.object_store import ClusterObjectStore, ObjectStore

__all__ = ["ClusterObjectStore", "K8sBaseManager", "ObjectStore"]
