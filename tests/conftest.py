"""Shared pytest fixtures for manager_operator tests."""

from __future__ import annotations

import base64
import copy
import datetime
import os
from collections.abc import Callable
from typing import Any

import pytest
import typer
from typer.testing import CliRunner

from manager_operator.cli.main import app
from manager_operator.integrations.kubernetes.config import OperatorConfig
from manager_operator.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
)
from manager_operator.integrations.kubernetes.models.base import ObjectRef

FIXED_NOW = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)
OPERATOR_NS = "tigera-operator"

CertFactory = Callable[..., tuple[bytes, bytes]]


class InMemoryObjectStore:
    """ObjectStore double keyed by ``(kind, namespace, name)``.

    Successful mutating calls are recorded in ``calls`` as
    ``(verb, kind, namespace, name)``. ``fail_on`` maps ``(verb, kind)`` to
    an exception raised instead of performing the call.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str, str]] = []
        self.reads: list[ObjectRef] = []
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _check(self, verb: str, kind: str) -> None:
        error = self.fail_on.get((verb, kind))
        if error is not None:
            raise error

    def _record(self, verb: str, ref: ObjectRef) -> None:
        kind, namespace, name = ref.key
        self.calls.append((verb, kind, namespace, name))

    def add(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Seed an object without recording a call."""
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault("metadata", {})
        metadata.setdefault("uid", f"uid-{metadata.get('name', '')}")
        metadata["resourceVersion"] = self._next_version()
        self.objects[ObjectRef.from_object(stored).key] = stored
        return copy.deepcopy(stored)

    def remove(self, kind: str, name: str, namespace: str = "") -> None:
        self.objects.pop((kind, namespace, name), None)

    def find(self, kind: str, name: str, namespace: str = "") -> dict[str, Any] | None:
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def mutations(self, exclude_kinds: tuple[str, ...] = ("TigeraStatus",)) -> list[Any]:
        """Recorded calls, ignoring status bookkeeping by default."""
        return [call for call in self.calls if call[1] not in exclude_kinds]

    def get(self, ref: ObjectRef) -> dict[str, Any]:
        self.reads.append(ref)
        self._check("get", ref.kind)
        obj = self.objects.get(ref.key)
        if obj is None:
            raise KubernetesNotFoundError(
                resource_type=ref.kind, resource_name=ref.name, namespace=ref.namespace
            )
        return copy.deepcopy(obj)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        ref = ObjectRef.from_object(obj)
        self._check("create", ref.kind)
        if ref.key in self.objects:
            raise KubernetesConflictError(
                resource_type=ref.kind, resource_name=ref.name, namespace=ref.namespace
            )
        stored = self.add(obj)
        self._record("create", ref)
        return stored

    def replace(self, obj: dict[str, Any]) -> dict[str, Any]:
        ref = ObjectRef.from_object(obj)
        self._check("replace", ref.kind)
        if ref.key not in self.objects:
            raise KubernetesNotFoundError(resource_type=ref.kind, resource_name=ref.name)
        stored = self.add(obj)
        self._record("replace", ref)
        return stored

    def delete(self, ref: ObjectRef) -> None:
        self._check("delete", ref.kind)
        if ref.key not in self.objects:
            raise KubernetesNotFoundError(resource_type=ref.kind, resource_name=ref.name)
        del self.objects[ref.key]
        self._record("delete", ref)

    def patch_status(self, ref: ObjectRef, status: dict[str, Any]) -> dict[str, Any]:
        self._check("patch_status", ref.kind)
        obj = self.objects.get(ref.key)
        if obj is None:
            raise KubernetesNotFoundError(resource_type=ref.kind, resource_name=ref.name)
        obj["status"] = {**(obj.get("status") or {}), **copy.deepcopy(status)}
        self._record("patch_status", ref)
        return copy.deepcopy(obj)


def make_certificate(
    common_name: str = "user-provided-ca",
    dns_names: tuple[str, ...] = ("example.com",),
    issuer: tuple[Any, Any] | None = None,
    ca: bool = False,
) -> tuple[bytes, bytes]:
    """Build a certificate with an arbitrary issuer.

    Args:
        common_name: Subject CN.
        dns_names: Subject Alternative Names.
        issuer: ``(issuer_name, issuer_private_key)`` to sign with; self-signed if None.
        ca: Mark the certificate as a CA.

    Returns:
        Tuple of (certificate_pem, private_key_pem).
    """
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer_name, issuer_key = issuer if issuer is not None else (subject, key)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(FIXED_NOW)
        .not_valid_after(FIXED_NOW + datetime.timedelta(days=30))
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]), critical=False
        )
    if ca:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), True)
    cert = builder.sign(issuer_key, hashes.SHA256())
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


def b64(value: bytes | str) -> str:
    raw = value.encode() if isinstance(value, str) else value
    return base64.b64encode(raw).decode()


def secret(name: str, namespace: str = OPERATOR_NS, **data: bytes | str) -> dict[str, Any]:
    """Secret manifest with base64-encoded data."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "type": "Opaque",
        "data": {k.replace("_", "."): b64(v) for k, v in data.items()},
    }


def operator_resource(
    kind: str,
    name: str = "tigera-secure",
    spec: dict[str, Any] | None = None,
    state: str | None = None,
    api_version: str = "operator.tigera.io/v1",
) -> dict[str, Any]:
    """Cluster-scoped operator resource manifest."""
    obj: dict[str, Any] = {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name},
        "spec": spec or {},
    }
    if state is not None:
        obj["status"] = {"state": state}
    return obj


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear MANAGER_OPERATOR_ prefixed environment variables for each test."""
    for key in list(os.environ.keys()):
        if key.startswith("MANAGER_OPERATOR_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def operator_config() -> OperatorConfig:
    """Default operator configuration."""
    return OperatorConfig()


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime.datetime]:
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def cert_factory() -> CertFactory:
    """Factory building PEM certificates with arbitrary issuers."""
    return make_certificate


@pytest.fixture(scope="session")
def server_cert() -> tuple[bytes, bytes]:
    """A user-issued PEM certificate and key for dependent service secrets."""
    return make_certificate(common_name="tigera-ca", dns_names=("svc.example",))


@pytest.fixture
def secret_factory() -> Callable[..., dict[str, Any]]:
    """Factory for Secret manifests; ``tls_crt=`` becomes the ``tls.crt`` key."""
    return secret


@pytest.fixture
def resource_factory() -> Callable[..., dict[str, Any]]:
    """Factory for operator resource manifests."""
    return operator_resource


@pytest.fixture
def ready_cluster(
    store: InMemoryObjectStore, server_cert: tuple[bytes, bytes]
) -> InMemoryObjectStore:
    """A store holding every dependency the Manager needs, with no TLS secret yet."""
    cert_pem, _ = server_cert
    store.add(operator_resource("Manager"))
    store.add(operator_resource("APIServer", state="Ready"))
    store.add(
        operator_resource(
            "LicenseKey",
            name="default",
            spec={"token": "license-token"},
            api_version="projectcalico.org/v3",
        )
    )
    store.add(
        operator_resource(
            "Installation",
            name="default",
            spec={"variant": "TigeraSecureEnterprise", "controlPlaneReplicas": 2},
        )
    )
    store.add({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "tigera-prometheus"}})
    store.add(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "tigera-secure-elasticsearch", "namespace": OPERATOR_NS},
            "data": {"clusterName": "cluster", "replicas": "1", "shards": "5", "flowShards": "5"},
        }
    )
    store.add(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "elastic-licensing", "namespace": "tigera-eck-operator"},
            "data": {"eck_license_level": "enterprise"},
        }
    )
    store.add(
        secret("tigera-ee-manager-elasticsearch-access", username="manager", password="secret")
    )
    store.add(secret("tigera-secure-es-http-certs-public", tls_crt=cert_pem))
    store.add(secret("tigera-secure-kb-http-certs-public", tls_crt=cert_pem))
    store.add(secret("tigera-packetcapture-server-tls", tls_crt=cert_pem))
    return store
