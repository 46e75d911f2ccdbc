"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the issuance engine needs (contracts) without specifying
HOW it's done (implementation). Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy the
contract simply by implementing the methods — no inheritance.

Two ports:
  1. CryptoBackend → key generation, CSR assembly, signing, parsing
  2. RequestStore  → durable, status-guarded record of requests and issuances
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from railway.result import Result

from cert_issuer.domain.models import (
    CertificateRequest,
    ExtensionSet,
    IssuedCertificate,
    IssuerMaterial,
    KeyOrigin,
    KeyPair,
    ParsedCertificate,
    ParsedSigningRequest,
    RequestStatus,
    SignedCertificate,
    SubjectFields,
)


@runtime_checkable
class CryptoBackend(Protocol):
    """
    Port: the cryptographic capability consumed by the lifecycle.

    Subject fields and SAN entries are passed as structured values; no
    implementation may interpolate them into a command line.
    """

    def generate_key_pair(self, key_type: KeyOrigin) -> Result[KeyPair]:
        """Generate a fresh key pair. Fails with VALIDATION_ERROR for IMPORTED."""
        ...

    def create_signing_request(
        self,
        private_key_pem: bytes,
        subject: SubjectFields,
        extensions: ExtensionSet,
    ) -> Result[str]:
        """Build and self-sign a PEM signing request."""
        ...

    def parse_signing_request(self, pem: str) -> Result[ParsedSigningRequest]:
        """Read subject fields and SAN entries. Fails on malformed PEM."""
        ...

    def sign_certificate(
        self,
        signing_request_pem: str,
        extensions: ExtensionSet,
        validity_days: int,
        issuer: IssuerMaterial,
    ) -> Result[SignedCertificate]:
        """Sign the request with the issuer's key, minting a serial."""
        ...

    def parse_certificate(self, certificate_pem: bytes) -> Result[ParsedCertificate]:
        """Read the validity window, subject common name and serial."""
        ...


@runtime_checkable
class RequestStore(Protocol):
    """
    Port: the single owner of CertificateRequest and IssuedCertificate records.

    Status changes are COMPARE-AND-SET: the stored record must still be
    pending and the new status a legal successor, checked and written as one
    atomic step. Listing order is stable but unspecified.
    """

    def create(self, request: CertificateRequest) -> Result[CertificateRequest]:
        """Persist a new request. CONFLICT if the id is taken."""
        ...

    def get_by_id(self, request_id: str) -> Result[CertificateRequest]:
        """NOT_FOUND for unknown ids."""
        ...

    def list_by_status(self, status: RequestStatus) -> Result[list[CertificateRequest]]: ...

    def update(self, request: CertificateRequest) -> Result[CertificateRequest]:
        """
        Replace a pending request with its successor state.

        NOT_FOUND for unknown ids; INVALID_STATE when the stored record is no
        longer pending or the transition is illegal. The stored record is
        unchanged on failure.
        """
        ...

    def record_issuance(
        self,
        request: CertificateRequest,
        issued: IssuedCertificate,
    ) -> Result[IssuedCertificate]:
        """
        Atomically promote the request to approved and store the issuance.

        Fails without side effects: INVALID_STATE if the request is no longer
        pending, SERIAL_COLLISION if the serial is already issued.
        """
        ...

    def get_issued_by_serial(self, serial: str) -> Result[IssuedCertificate]:
        """NOT_FOUND for unknown serials."""
        ...

    def list_issued(self) -> Result[list[IssuedCertificate]]: ...
