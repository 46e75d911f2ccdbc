"""
Domain models — immutable data structures for requests, issuances and extensions.

These are value objects with no I/O. State changes on a CertificateRequest
produce a new instance (dataclasses.replace); the Request Store decides
whether the new instance may replace the stored one.

All models are frozen dataclasses. Enumerations are StrEnums whose values
are the tags used in storage and by callers ("server", "pending", ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from uuid import uuid4


class CertType(StrEnum):
    """Certificate profile requested by the operator."""

    SERVER = "server"
    CLIENT = "client"
    CODE_SIGNING = "code_signing"


class KeyOrigin(StrEnum):
    """
    Where the request's key pair came from.

    RSA and ECDSA are the key types this system can generate;
    IMPORTED marks a signing request produced by the submitter.
    """

    RSA = "rsa"
    ECDSA = "ecdsa"
    IMPORTED = "imported"

    @property
    def is_generated(self) -> bool:
        return self is not KeyOrigin.IMPORTED


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING

    def can_transition_to(self, target: RequestStatus) -> bool:
        """Only pending → approved and pending → rejected are legal."""
        return self is RequestStatus.PENDING and target.is_terminal


class KeyUsageFlag(StrEnum):
    DIGITAL_SIGNATURE = "digitalSignature"
    NON_REPUDIATION = "nonRepudiation"
    KEY_ENCIPHERMENT = "keyEncipherment"


class ExtendedKeyUsagePurpose(StrEnum):
    SERVER_AUTH = "serverAuth"
    CLIENT_AUTH = "clientAuth"
    EMAIL_PROTECTION = "emailProtection"
    CODE_SIGNING = "codeSigning"


class AltNameKind(StrEnum):
    DNS = "DNS"
    IP = "IP"


class ArtifactKind(StrEnum):
    """Downloadable outputs of an issued certificate."""

    CERT = "cert"
    CHAIN = "chain"
    BUNDLE = "bundle"
    KEY = "key"


class AuthorityArtifactKind(StrEnum):
    """Downloadable issuing-authority material."""

    ROOT = "root-ca"
    INTERMEDIATE = "intermediate-ca"
    CHAIN = "ca-chain"


# ─────────────────────── Subject & Extensions ───────────────────────


@dataclass(frozen=True, slots=True)
class SubjectFields:
    """Distinguished-name attributes of a request subject."""

    common_name: str
    organization: str
    country: str
    state: str
    locality: str
    email: str
    organizational_unit: str | None = None


@dataclass(frozen=True, slots=True)
class AltName:
    """One classified subjectAltName entry, e.g. DNS.2 = www.example.com."""

    kind: AltNameKind
    index: int
    value: str

    @property
    def label(self) -> str:
        return f"{self.kind}.{self.index}"


@dataclass(frozen=True, slots=True)
class ExtensionSet:
    """
    The X.509v3 extensions to attach to a signing request or certificate.

    Library-neutral: the crypto adapter translates this into concrete
    extension objects. basicConstraints is always CA:FALSE and keyUsage is
    always critical for end-entity profiles.
    """

    key_usage: tuple[KeyUsageFlag, ...]
    extended_key_usage: tuple[ExtendedKeyUsagePurpose, ...]
    extended_key_usage_critical: bool = False
    alt_names: tuple[AltName, ...] = ()
    key_usage_critical: bool = True
    basic_constraints_ca: bool = False
    subject_key_identifier: bool = False
    authority_key_identifier: bool = False

    @property
    def includes_subject_alt_name(self) -> bool:
        return bool(self.alt_names)

    def dns_names(self) -> list[str]:
        return [a.value for a in self.alt_names if a.kind is AltNameKind.DNS]

    def ip_addresses(self) -> list[str]:
        return [a.value for a in self.alt_names if a.kind is AltNameKind.IP]


# ─────────────────────── Capability values ───────────────────────


@dataclass(frozen=True, slots=True)
class KeyPair:
    """PEM-encoded key pair (PKCS#8 private key, SubjectPublicKeyInfo public key)."""

    private_key_pem: bytes = field(repr=False)
    public_key_pem: bytes


@dataclass(frozen=True, slots=True)
class ParsedSigningRequest:
    """Subject and SAN entries read from a signing request."""

    subject: SubjectFields
    alt_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SignedCertificate:
    certificate_pem: bytes
    serial: str


@dataclass(frozen=True, slots=True)
class ParsedCertificate:
    not_before: datetime
    not_after: datetime
    subject_common_name: str | None
    serial: str


@dataclass(frozen=True, slots=True)
class IssuerMaterial:
    """
    Issuing authority material.

    `chain_pem` is the published chain above the issued certificates
    (intermediate followed by root), appended to every issued certificate.
    """

    private_key_pem: bytes = field(repr=False)
    certificate_pem: bytes
    chain_pem: bytes
    root_certificate_pem: bytes | None = None
    private_key_password: bytes | None = field(default=None, repr=False)


# ─────────────────────── Entities ───────────────────────


def new_request_id() -> str:
    """Opaque, globally unique request identifier."""
    return f"req_{uuid4().hex}"


@dataclass(frozen=True, slots=True)
class CertificateRequest:
    """
    A certificate request and its lifecycle state.

    `alt_names` holds the raw comma-separated list as submitted; it is
    classified by the extension profile builder each time extensions are
    built. `private_key` is present only for generated keys.
    """

    id: str
    cert_type: CertType
    subject: SubjectFields
    key_origin: KeyOrigin
    submitted_at: datetime
    alt_names: str = ""
    status: RequestStatus = RequestStatus.PENDING
    signing_request: str | None = field(default=None, repr=False)
    private_key: bytes | None = field(default=None, repr=False)
    serial: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None

    @property
    def common_name(self) -> str:
        return self.subject.common_name

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING

    def approve(self, serial: str, at: datetime) -> CertificateRequest:
        return replace(self, status=RequestStatus.APPROVED, serial=serial, approved_at=at)

    def reject(self, at: datetime) -> CertificateRequest:
        return replace(self, status=RequestStatus.REJECTED, rejected_at=at)


@dataclass(frozen=True, slots=True)
class IssuedCertificate:
    """
    A signed certificate, keyed by serial.

    `chain` is the certificate followed by the issuer's published chain.
    `private_key` is absent for imported signing requests.
    """

    serial: str
    request_id: str
    cert_type: CertType
    common_name: str
    certificate: bytes = field(repr=False)
    chain: bytes = field(repr=False)
    not_before: datetime
    not_after: datetime
    created_at: datetime
    private_key: bytes | None = field(default=None, repr=False)

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def summary(self) -> IssuedCertificateSummary:
        return IssuedCertificateSummary(
            serial=self.serial,
            request_id=self.request_id,
            common_name=self.common_name,
            cert_type=self.cert_type,
            valid_from=self.not_before,
            valid_to=self.not_after,
            has_private_key=self.has_private_key,
        )


@dataclass(frozen=True, slots=True)
class IssuedCertificateSummary:
    serial: str
    request_id: str
    common_name: str
    cert_type: CertType
    valid_from: datetime
    valid_to: datetime
    has_private_key: bool


@dataclass(frozen=True, slots=True)
class Artifact:
    """A downloadable file: name, MIME type and bytes."""

    filename: str
    content_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True, slots=True)
class SubmissionOutcome:
    """
    Result of a submission through the auto-approval entry points.

    The request id is always present once submission succeeded. `serial`
    is set when the request was approved, `approval_error` when approval
    was attempted and failed; both are None when it was only queued.
    """

    request_id: str
    serial: str | None = None
    approval_error: str | None = None

    @property
    def auto_approved(self) -> bool:
        return self.serial is not None
