"""Manager TLS certificate lifecycle.

Decides which key pair the manager serves with:

* Without certificate management, a missing or stale operator-issued
  secret is (re)generated as a self-signed certificate; a user-provided
  secret is kept as-is.
* With certificate management delegated to an external signer, the
  secret is optional, but if present it must have been issued by the
  operator or by the configured signer. User-provided certificates are
  rejected in that mode.
"""

from __future__ import annotations

import datetime
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from manager_operator.integrations.kubernetes.models.operator import SecretData
from manager_operator.services.manager.constants import (
    MANAGER_SECRET_CERT_NAME,
    MANAGER_SECRET_KEY_NAME,
    OPERATOR_SIGNER_NAME,
    SELF_SIGNED_CERT_DAYS,
)
from manager_operator.services.manager.errors import InvalidConfigurationError

if TYPE_CHECKING:
    import structlog
    from cryptography.x509 import Certificate

    from manager_operator.integrations.kubernetes.models.operator import (
        CertificateManagement,
    )

SELF_SIGNED_VALIDITY = datetime.timedelta(days=SELF_SIGNED_CERT_DAYS)
LOCALHOST = "localhost"


class CertificateProvenance(StrEnum):
    """Who issued a certificate bundle."""

    OPERATOR_MANAGED = "OperatorManaged"
    USER_PROVIDED = "UserProvided"
    EXTERNALLY_ISSUED = "ExternallyIssued"


@dataclass(frozen=True)
class CertificateBundle:
    """Key and certificate the manager serves with."""

    key_pem: bytes
    cert_pem: bytes
    provenance: CertificateProvenance
    secret_name: str
    namespace: str

    @property
    def managed(self) -> bool:
        """Whether the operator (or its delegate) owns issuance and rotation."""
        return self.provenance is not CertificateProvenance.USER_PROVIDED

    def to_secret(self) -> SecretData:
        return SecretData(
            name=self.secret_name,
            namespace=self.namespace,
            type="kubernetes.io/tls",
            data={
                MANAGER_SECRET_KEY_NAME: self.key_pem,
                MANAGER_SECRET_CERT_NAME: self.cert_pem,
            },
        )


def service_dns_names(service: str, namespace: str, cluster_domains: Sequence[str]) -> list[str]:
    """All DNS names a service answers to, shortest first."""
    names = [service, f"{service}.{namespace}", f"{service}.{namespace}.svc"]
    names.extend(f"{service}.{namespace}.svc.{domain}" for domain in cluster_domains)
    return names


def generate_self_signed(
    dns_names: Sequence[str],
    validity: datetime.timedelta,
    now: datetime.datetime,
) -> tuple[bytes, bytes]:
    """Generate a self-signed certificate valid for ``dns_names``.

    Args:
        dns_names: Subject Alternative Names.
        validity: Lifetime starting at ``now``.
        now: Issuance time (truncated to whole seconds).

    Returns:
        Tuple of (certificate_pem, private_key_pem).
    """
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.x509.oid import NameOID

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    not_before = now.replace(microsecond=0)
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(
                NameOID.COMMON_NAME, f"{OPERATOR_SIGNER_NAME}@{int(not_before.timestamp())}"
            ),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + validity)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )
        .add_extension(
            x509.ExtendedKeyUsage([x509.oid.ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def load_certificate(cert_pem: bytes) -> Certificate:
    from cryptography import x509

    return x509.load_pem_x509_certificate(cert_pem)


def certificate_dns_names(cert: Certificate) -> list[str]:
    """DNS Subject Alternative Names of a certificate."""
    from cryptography import x509

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return list(san.value.get_values_for_type(x509.DNSName))


def issuer_common_name(cert: Certificate) -> str:
    from cryptography.x509.oid import NameOID

    attrs = cert.issuer.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else ""


def is_operator_issued(cert: Certificate) -> bool:
    """Whether the operator's own signer issued the certificate."""
    return issuer_common_name(cert).startswith(OPERATOR_SIGNER_NAME)


class CertificateLifecycleManager:
    """Resolves the manager's TLS bundle for one pass.

    Args:
        secret_name: Name of the TLS secret.
        secret_namespace: Namespace holding the TLS secret.
        dns_names: Names the certificate must cover.
        validity: Lifetime of generated certificates.
        log: Logger bound to the pass.
        clock: Current time source.
    """

    def __init__(
        self,
        secret_name: str,
        secret_namespace: str,
        dns_names: Sequence[str],
        *,
        log: structlog.BoundLogger,
        validity: datetime.timedelta = SELF_SIGNED_VALIDITY,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._secret_name = secret_name
        self._secret_namespace = secret_namespace
        self._dns_names = list(dns_names)
        self._validity = validity
        self._clock = clock or (lambda: datetime.datetime.now(datetime.UTC))
        self._log = log.bind(secret=f"{secret_namespace}/{secret_name}")

    @property
    def dns_names(self) -> list[str]:
        return list(self._dns_names)

    def resolve(
        self,
        existing: SecretData | None,
        certificate_management: CertificateManagement | None,
    ) -> CertificateBundle | None:
        """Return the bundle to serve with.

        Args:
            existing: The validated TLS secret, if it exists.
            certificate_management: Delegation settings of the Installation.

        Returns:
            The bundle, or None when issuance is delegated and no secret
            exists yet.

        Raises:
            InvalidConfigurationError: If the secret cannot be used.
        """
        if certificate_management is None:
            return self._ensure_self_managed(existing)
        return self._check_delegated(existing, certificate_management)

    def _bundle(
        self, key_pem: bytes, cert_pem: bytes, provenance: CertificateProvenance
    ) -> CertificateBundle:
        return CertificateBundle(
            key_pem=key_pem,
            cert_pem=cert_pem,
            provenance=provenance,
            secret_name=self._secret_name,
            namespace=self._secret_namespace,
        )

    def _generate(self) -> CertificateBundle:
        try:
            cert_pem, key_pem = generate_self_signed(self._dns_names, self._validity, self._clock())
        except (ValueError, TypeError) as e:
            raise InvalidConfigurationError(
                f'Error ensuring manager TLS certificate "{self._secret_name}" exists and has '
                "valid DNS names",
                str(e),
            ) from e
        self._log.info("generated_self_signed_certificate", dns_names=self._dns_names)
        return self._bundle(key_pem, cert_pem, CertificateProvenance.OPERATOR_MANAGED)

    def _ensure_self_managed(self, existing: SecretData | None) -> CertificateBundle:
        if existing is None:
            return self._generate()

        key_pem = existing.data[MANAGER_SECRET_KEY_NAME]
        cert_pem = existing.data[MANAGER_SECRET_CERT_NAME]
        cert = load_certificate(cert_pem)
        if not is_operator_issued(cert):
            self._log.debug("keeping_user_provided_certificate")
            return self._bundle(key_pem, cert_pem, CertificateProvenance.USER_PROVIDED)

        missing = sorted(set(self._dns_names) - set(certificate_dns_names(cert)))
        if missing:
            self._log.info("regenerating_stale_certificate", missing_dns_names=missing)
            return self._generate()
        return self._bundle(key_pem, cert_pem, CertificateProvenance.OPERATOR_MANAGED)

    def _check_delegated(
        self,
        existing: SecretData | None,
        certificate_management: CertificateManagement,
    ) -> CertificateBundle | None:
        if existing is None:
            return None

        key_pem = existing.data[MANAGER_SECRET_KEY_NAME]
        cert_pem = existing.data[MANAGER_SECRET_CERT_NAME]
        try:
            cert = load_certificate(cert_pem)
            signer = _signer_subject(certificate_management)
        except ValueError as e:
            raise InvalidConfigurationError(
                "Error checking if manager TLS certificate is operator managed", str(e)
            ) from e

        if is_operator_issued(cert):
            return self._bundle(key_pem, cert_pem, CertificateProvenance.OPERATOR_MANAGED)
        if signer is not None and cert.issuer == signer:
            return self._bundle(key_pem, cert_pem, CertificateProvenance.EXTERNALLY_ISSUED)
        raise InvalidConfigurationError(
            "Invalid certificate configuration",
            f"user provided secret {self._secret_namespace}/{self._secret_name} is not "
            "supported when certificate management is enabled",
        )


def _signer_subject(certificate_management: CertificateManagement) -> Any:
    """Subject of the delegated signer's CA certificate, if one is configured."""
    if not certificate_management.ca_cert:
        return None
    return load_certificate(certificate_management.ca_cert).subject
