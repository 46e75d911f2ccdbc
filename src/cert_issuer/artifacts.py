"""
Issuance artifacts — materialize downloadable files from an issued certificate.

Pure functions over stored bytes; nothing is re-signed and key material is
never synthesized.

  kind     content                                  filename
  cert     certificate                              <serial>.crt
  chain    certificate + issuer chain               <serial>-chain.pem
  bundle   certificate + key + chain (key held)     <serial>-bundle.pem
           certificate only (no key held)           <serial>-cert-only.pem
  key      private key (NOT_FOUND when absent)      <serial>.key
"""

from __future__ import annotations

from railway import ErrorCode
from railway.result import Result
from railway.result_failures import ResultFailures

from cert_issuer.domain.models import (
    Artifact,
    ArtifactKind,
    AuthorityArtifactKind,
    IssuedCertificate,
    IssuerMaterial,
)
from cert_issuer.pem import join_pem, split_certificates

X509_CERT = "application/x-x509-cert"
X509_CA_CERT = "application/x-x509-ca-cert"
PEM_FILE = "application/x-pem-file"


def assemble_chain(certificate_pem: bytes, issuer_chain_pem: bytes) -> bytes:
    """The certificate followed by the issuer's published chain."""
    return join_pem(certificate_pem, issuer_chain_pem)


def assemble_artifact(issued: IssuedCertificate, kind: ArtifactKind | str) -> Result[Artifact]:
    try:
        kind = ArtifactKind(kind)
    except ValueError:
        return ResultFailures.validation_error(f"Unknown artifact kind: {kind!r}")

    serial = issued.serial
    match kind:
        case ArtifactKind.CERT:
            return Result.success(Artifact(f"{serial}.crt", X509_CERT, issued.certificate))
        case ArtifactKind.CHAIN:
            return Result.success(Artifact(f"{serial}-chain.pem", PEM_FILE, issued.chain))
        case ArtifactKind.BUNDLE:
            if issued.private_key is None:
                return Result.success(
                    Artifact(f"{serial}-cert-only.pem", PEM_FILE, join_pem(issued.certificate))
                )
            content = join_pem(issued.certificate, issued.private_key, issued.chain)
            return Result.success(Artifact(f"{serial}-bundle.pem", PEM_FILE, content))
        case ArtifactKind.KEY:
            if issued.private_key is None:
                return ResultFailures.not_found("Private key", serial)
            return Result.success(Artifact(f"{serial}.key", PEM_FILE, issued.private_key))
    return ResultFailures.validation_error(f"Unknown artifact kind: {kind!r}")  # pragma: no cover


def _root_certificate(issuer: IssuerMaterial) -> Result[bytes]:
    """Configured root certificate, else the last certificate of the published chain."""
    if issuer.root_certificate_pem:
        return Result.success(issuer.root_certificate_pem)
    return (
        Result.from_computation(
            lambda: split_certificates(issuer.chain_pem),
            ErrorCode.CONFIGURATION_ERROR,
            "Issuer chain is not valid PEM",
        )
        .ensure(
            lambda certs: len(certs) > 0,
            ErrorCode.NOT_FOUND,
            "Root certificate not available",
        )
        .map(lambda certs: certs[-1])
    )


def assemble_authority_artifact(
    issuer: IssuerMaterial,
    kind: AuthorityArtifactKind | str,
) -> Result[Artifact]:
    """Issuing-authority material for distribution to relying parties."""
    try:
        kind = AuthorityArtifactKind(kind)
    except ValueError:
        return ResultFailures.validation_error(f"Unknown authority artifact kind: {kind!r}")

    match kind:
        case AuthorityArtifactKind.ROOT:
            return _root_certificate(issuer).map(
                lambda pem: Artifact("root-ca.crt", X509_CA_CERT, pem)
            )
        case AuthorityArtifactKind.INTERMEDIATE:
            return Result.success(
                Artifact("intermediate-ca.crt", X509_CA_CERT, issuer.certificate_pem)
            )
        case AuthorityArtifactKind.CHAIN:
            if not issuer.chain_pem.strip():
                return ResultFailures.not_found("Authority artifact", str(kind))
            return Result.success(Artifact("ca-chain.pem", PEM_FILE, issuer.chain_pem))
    return ResultFailures.not_found("Authority artifact", str(kind))  # pragma: no cover
