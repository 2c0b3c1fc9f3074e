"""Operator configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

ENV_PREFIX = "MANAGER_OPERATOR_"


class ConfigFileError(ValueError):
    """A configuration file cannot be read or does not validate."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.message}: {self.details}" if self.details else self.message


class ConnectionConfig(BaseModel):
    """How to reach the API server.

    An empty kubeconfig means "try the default kubeconfig, then the
    in-cluster service account".
    """

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str | None = None
    context: str | None = None

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser()) if v else None


class OperatorConfig(BaseModel):
    """Complete operator configuration."""

    model_config = ConfigDict(extra="forbid")

    connection: ConnectionConfig = ConnectionConfig()
    operator_namespace: str = "tigera-operator"
    cluster_domain: str = "cluster.local"
    provider: Literal["", "openshift", "eks", "gke", "aks"] = ""
    release_version: str = "v3.11.0"
    requeue_delay: float = 10.0
    license_poll_interval: float = 10.0
    resync_interval: float = 300.0

    @field_validator("cluster_domain", "operator_namespace")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Reject empty names."""
        v = v.strip()
        if not v:
            raise ValueError("value must not be empty")
        return v

    @field_validator("requeue_delay", "license_poll_interval", "resync_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate delays are positive."""
        if v <= 0:
            raise ValueError("delay must be positive")
        return v

    @property
    def openshift(self) -> bool:
        """Whether rendering should target OpenShift."""
        return self.provider == "openshift"

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> OperatorConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            MANAGER_OPERATOR_KUBECONFIG: Kubeconfig path
            MANAGER_OPERATOR_CONTEXT: Kubeconfig context
            MANAGER_OPERATOR_OPERATOR_NAMESPACE: Namespace the operator runs in
            MANAGER_OPERATOR_CLUSTER_DOMAIN: DNS suffix of the cluster
            MANAGER_OPERATOR_PROVIDER: Detected platform provider
            MANAGER_OPERATOR_RELEASE_VERSION: Release used to look up the ImageSet
            MANAGER_OPERATOR_REQUEUE_DELAY: Delay in seconds for timed re-checks
            MANAGER_OPERATOR_LICENSE_POLL_INTERVAL: License API discovery poll interval
            MANAGER_OPERATOR_RESYNC_INTERVAL: Periodic resync interval
        """
        config_dict = base_config.copy() if base_config else {}
        connection = dict(config_dict.get("connection", {}))

        if kubeconfig := os.environ.get(f"{ENV_PREFIX}KUBECONFIG"):
            connection["kubeconfig"] = kubeconfig
        if context := os.environ.get(f"{ENV_PREFIX}CONTEXT"):
            connection["context"] = context
        config_dict["connection"] = connection

        for key in ("operator_namespace", "cluster_domain", "provider", "release_version"):
            if value := os.environ.get(f"{ENV_PREFIX}{key.upper()}"):
                config_dict[key] = value

        for key in ("requeue_delay", "license_poll_interval", "resync_interval"):
            if value := os.environ.get(f"{ENV_PREFIX}{key.upper()}"):
                config_dict[key] = float(value)

        return cls.model_validate(config_dict)

    @classmethod
    def load(cls, path: Path | None = None) -> OperatorConfig:
        """Load configuration from an optional YAML file plus the environment.

        Priority:
        1. Environment variables (MANAGER_OPERATOR_*)
        2. Config file, when given
        3. Defaults

        Raises:
            ConfigFileError: If the file is missing, not YAML, or invalid.
        """
        base: dict[str, Any] = {}
        if path is not None:
            if not path.exists():
                raise ConfigFileError("Config file not found", str(path))
            try:
                with path.open() as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigFileError("Invalid config file format", str(e)) from e
            if data is not None and not isinstance(data, dict):
                raise ConfigFileError("Invalid config file format", "expected a mapping")
            base = data or {}
        try:
            return cls.from_env(base)
        except ValueError as e:
            raise ConfigFileError("Invalid configuration", str(e)) from e

    def to_yaml(self) -> str:
        """Serialize the configuration as YAML."""
        return yaml.safe_dump(self.model_dump(mode="json"), default_flow_style=False)
