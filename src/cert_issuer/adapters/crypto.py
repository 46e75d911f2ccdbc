"""
Crypto adapter — key generation, CSR assembly, signing and parsing.

Adapter layer — implements the CryptoBackend port with cryptography (PyCA).
Every call works on in-memory PEM values handed over as structured fields;
no subprocess, no temporary files, no string-built command lines.

Parameters:
  - RSA keys: 2048 bits, e = 65537
  - ECDSA keys: NIST P-384
  - Signing requests: SHA-256
  - Certificates: SHA-384, serial from x509.random_serial_number()

Serials are rendered as uppercase hex with an even number of digits, the
way `openssl x509 -serial` prints them.
"""

from __future__ import annotations

import ipaddress
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from cryptography.x509.extensions import ExtensionNotFound
from cryptography.x509.oid import NameOID
from railway import ErrorCode
from railway.result import Result

from cert_issuer.domain.models import (
    AltNameKind,
    ExtendedKeyUsagePurpose,
    ExtensionSet,
    IssuerMaterial,
    KeyOrigin,
    KeyPair,
    KeyUsageFlag,
    ParsedCertificate,
    ParsedSigningRequest,
    SignedCertificate,
    SubjectFields,
)

log = structlog.get_logger()

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
EC_CURVE = ec.SECP384R1

_EKU_OIDS = {
    ExtendedKeyUsagePurpose.SERVER_AUTH: x509.oid.ExtendedKeyUsageOID.SERVER_AUTH,
    ExtendedKeyUsagePurpose.CLIENT_AUTH: x509.oid.ExtendedKeyUsageOID.CLIENT_AUTH,
    ExtendedKeyUsagePurpose.EMAIL_PROTECTION: x509.oid.ExtendedKeyUsageOID.EMAIL_PROTECTION,
    ExtendedKeyUsagePurpose.CODE_SIGNING: x509.oid.ExtendedKeyUsageOID.CODE_SIGNING,
}


def format_serial(serial_number: int) -> str:
    """Uppercase hex, left-padded to an even number of digits."""
    digits = f"{serial_number:X}"
    return digits if len(digits) % 2 == 0 else f"0{digits}"


# ─────────────────────── Name & Extension Translation ───────────────────────


def _to_x509_name(subject: SubjectFields) -> x509.Name:
    """C, ST, L, O, [OU], CN, emailAddress — in that order."""
    attributes = [
        x509.NameAttribute(NameOID.COUNTRY_NAME, subject.country),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, subject.state),
        x509.NameAttribute(NameOID.LOCALITY_NAME, subject.locality),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, subject.organization),
    ]
    if subject.organizational_unit:
        attributes.append(
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, subject.organizational_unit)
        )
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, subject.common_name))
    attributes.append(x509.NameAttribute(NameOID.EMAIL_ADDRESS, subject.email))
    return x509.Name(attributes)


def _first_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str | None:
    values = name.get_attributes_for_oid(oid)
    if not values:
        return None
    value = values[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def _from_x509_name(name: x509.Name) -> SubjectFields:
    return SubjectFields(
        common_name=_first_attribute(name, NameOID.COMMON_NAME) or "",
        organization=_first_attribute(name, NameOID.ORGANIZATION_NAME) or "",
        organizational_unit=_first_attribute(name, NameOID.ORGANIZATIONAL_UNIT_NAME),
        country=_first_attribute(name, NameOID.COUNTRY_NAME) or "",
        state=_first_attribute(name, NameOID.STATE_OR_PROVINCE_NAME) or "",
        locality=_first_attribute(name, NameOID.LOCALITY_NAME) or "",
        email=_first_attribute(name, NameOID.EMAIL_ADDRESS) or "",
    )


def _key_usage(flags: tuple[KeyUsageFlag, ...]) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=KeyUsageFlag.DIGITAL_SIGNATURE in flags,
        content_commitment=KeyUsageFlag.NON_REPUDIATION in flags,
        key_encipherment=KeyUsageFlag.KEY_ENCIPHERMENT in flags,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def _general_names(extensions: ExtensionSet) -> list[x509.GeneralName]:
    names: list[x509.GeneralName] = []
    for alt in extensions.alt_names:
        if alt.kind is AltNameKind.IP:
            names.append(x509.IPAddress(ipaddress.ip_address(alt.value)))
        else:
            names.append(x509.DNSName(alt.value))
    return names


def _profile_extensions(extensions: ExtensionSet) -> list[tuple[x509.ExtensionType, bool]]:
    """basicConstraints, keyUsage, extendedKeyUsage and subjectAltName."""
    result: list[tuple[x509.ExtensionType, bool]] = [
        (x509.BasicConstraints(ca=extensions.basic_constraints_ca, path_length=None), True),
        (_key_usage(extensions.key_usage), extensions.key_usage_critical),
        (
            x509.ExtendedKeyUsage([_EKU_OIDS[p] for p in extensions.extended_key_usage]),
            extensions.extended_key_usage_critical,
        ),
    ]
    if extensions.includes_subject_alt_name:
        result.append((x509.SubjectAlternativeName(_general_names(extensions)), False))
    return result


def _authority_key_identifier(issuer_cert: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    """keyid from the issuer's SKI (or its public key) plus issuer name and serial."""
    try:
        ski = issuer_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
        key_identifier = ski.value.digest
    except ExtensionNotFound:
        key_identifier = x509.SubjectKeyIdentifier.from_public_key(
            issuer_cert.public_key()  # type: ignore[arg-type]
        ).digest
    return x509.AuthorityKeyIdentifier(
        key_identifier=key_identifier,
        authority_cert_issuer=[x509.DirectoryName(issuer_cert.issuer)],
        authority_cert_serial_number=issuer_cert.serial_number,
    )


def _require_valid_signature(
    csr: x509.CertificateSigningRequest, message: str
) -> Result[x509.CertificateSigningRequest]:
    """Unverifiable signatures (e.g. unsupported algorithms) count as invalid."""
    return (
        Result.from_computation(lambda: csr.is_signature_valid, ErrorCode.VALIDATION_ERROR, message)
        .ensure(lambda valid: valid, ErrorCode.VALIDATION_ERROR, message)
        .map(lambda _: csr)
    )


def _signature_hash(private_key: object) -> hashes.HashAlgorithm | None:
    """EdDSA keys sign without a separate digest."""
    if isinstance(private_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return None
    return hashes.SHA384()


# ─────────────────────── Issuer Material ───────────────────────


def load_issuer_material(
    certificate_path: Path,
    private_key_path: Path,
    chain_path: Path,
    root_certificate_path: Path | None = None,
    private_key_password: bytes | None = None,
) -> Result[IssuerMaterial]:
    """
    Read issuing-authority files into an IssuerMaterial.

    Returns CONFIGURATION_ERROR naming the first missing or unreadable file.
    """

    def _read(path: Path) -> Result[bytes]:
        return Result.from_computation(
            path.read_bytes,
            ErrorCode.CONFIGURATION_ERROR,
            f"Issuer material not readable: {path}",
        )

    root_result: Result[bytes | None] = (
        _read(root_certificate_path) if root_certificate_path else Result.success(b"")
    )
    return (
        _read(private_key_path)
        .flat_map(
            lambda key: _read(certificate_path).flat_map(
                lambda cert: Result.combine(
                    _read(chain_path),
                    root_result,
                    lambda chain, root: IssuerMaterial(
                        private_key_pem=key,
                        certificate_pem=cert,
                        chain_pem=chain,
                        root_certificate_pem=root or None,
                        private_key_password=private_key_password,
                    ),
                )
            )
        )
        .peek(lambda _: log.info("issuer.material_loaded", certificate=str(certificate_path)))
    )


# ─────────────────────── Adapter ───────────────────────


class CryptographyBackend:
    """
    CryptoBackend implemented with cryptography.

    Stateless; safe to share between threads. All library exceptions are
    caught at this boundary and returned as failures:
      - malformed input → VALIDATION_ERROR
      - unusable issuer material → CONFIGURATION_ERROR
      - anything else in key/CSR/certificate operations → CRYPTO_ERROR
    """

    def generate_key_pair(self, key_type: KeyOrigin) -> Result[KeyPair]:
        generators = {
            KeyOrigin.RSA: lambda: rsa.generate_private_key(
                public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE
            ),
            KeyOrigin.ECDSA: lambda: ec.generate_private_key(EC_CURVE()),
        }
        generate = generators.get(key_type)
        if generate is None:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR,
                f"Unsupported key type for generation: {key_type!r}",
            )

        return Result.from_computation(
            lambda: self._to_key_pair(generate()),
            ErrorCode.CRYPTO_ERROR,
            f"Failed to generate {key_type} private key",
        ).peek(lambda _: log.debug("crypto.key_generated", key_type=str(key_type)))

    @staticmethod
    def _to_key_pair(private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> KeyPair:
        return KeyPair(
            private_key_pem=private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ),
            public_key_pem=private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ),
        )

    def create_signing_request(
        self,
        private_key_pem: bytes,
        subject: SubjectFields,
        extensions: ExtensionSet,
    ) -> Result[str]:
        def _build() -> str:
            private_key = serialization.load_pem_private_key(private_key_pem, password=None)
            builder = x509.CertificateSigningRequestBuilder().subject_name(_to_x509_name(subject))
            for extension, critical in _profile_extensions(extensions):
                builder = builder.add_extension(extension, critical=critical)
            csr = builder.sign(private_key, hashes.SHA256())  # type: ignore[arg-type]
            return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")

        return Result.from_computation(
            _build,
            ErrorCode.CRYPTO_ERROR,
            "Failed to generate CSR",
        )

    def parse_signing_request(self, pem: str) -> Result[ParsedSigningRequest]:
        return (
            Result.from_computation(
                lambda: x509.load_pem_x509_csr(pem.encode("ascii")),
                ErrorCode.VALIDATION_ERROR,
                "Invalid CSR: could not be decoded",
            )
            .flat_map(
                lambda csr: _require_valid_signature(csr, "Invalid CSR: signature does not verify")
            )
            .flat_map(
                lambda csr: Result.from_computation(
                    lambda: ParsedSigningRequest(
                        subject=_from_x509_name(csr.subject),
                        alt_names=self._requested_alt_names(csr),
                    ),
                    ErrorCode.CRYPTO_ERROR,
                    "Failed to read CSR subject",
                )
            )
        )

    @staticmethod
    def _requested_alt_names(csr: x509.CertificateSigningRequest) -> tuple[str, ...]:
        try:
            san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        except ExtensionNotFound:
            return ()
        return tuple(
            str(name.value) for name in san if isinstance(name, (x509.DNSName, x509.IPAddress))
        )

    def sign_certificate(
        self,
        signing_request_pem: str,
        extensions: ExtensionSet,
        validity_days: int,
        issuer: IssuerMaterial,
    ) -> Result[SignedCertificate]:
        issuer_result = Result.from_computation(
            lambda: (
                serialization.load_pem_private_key(
                    issuer.private_key_pem, password=issuer.private_key_password
                ),
                x509.load_pem_x509_certificate(issuer.certificate_pem),
            ),
            ErrorCode.CONFIGURATION_ERROR,
            "Issuer material unavailable",
        )
        csr_result = Result.from_computation(
            lambda: x509.load_pem_x509_csr(signing_request_pem.encode("ascii")),
            ErrorCode.VALIDATION_ERROR,
            "Stored signing request is malformed",
        ).flat_map(
            lambda csr: _require_valid_signature(
                csr, "Stored signing request signature does not verify"
            )
        )

        return Result.combine(issuer_result, csr_result, lambda i, c: (i, c)).flat_map(
            lambda pair: Result.from_computation(
                lambda: self._sign(pair[1], pair[0][0], pair[0][1], extensions, validity_days),
                ErrorCode.CRYPTO_ERROR,
                "Failed to sign certificate",
            )
        )

    @staticmethod
    def _sign(
        csr: x509.CertificateSigningRequest,
        issuer_key: object,
        issuer_cert: x509.Certificate,
        extensions: ExtensionSet,
        validity_days: int,
    ) -> SignedCertificate:
        not_before = datetime.now(UTC).replace(microsecond=0)
        serial_number = x509.random_serial_number()
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(csr.public_key())
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_before + timedelta(days=validity_days))
        )
        for extension, critical in _profile_extensions(extensions):
            builder = builder.add_extension(extension, critical=critical)
        if extensions.subject_key_identifier:
            builder = builder.add_extension(
                x509.SubjectKeyIdentifier.from_public_key(csr.public_key()),  # type: ignore[arg-type]
                critical=False,
            )
        if extensions.authority_key_identifier:
            builder = builder.add_extension(_authority_key_identifier(issuer_cert), critical=False)

        certificate = builder.sign(
            private_key=issuer_key,  # type: ignore[arg-type]
            algorithm=_signature_hash(issuer_key),
        )
        serial = format_serial(serial_number)
        log.info(
            "crypto.certificate_signed",
            serial=serial,
            subject=csr.subject.rfc4514_string(),
            validity_days=validity_days,
        )
        return SignedCertificate(
            certificate_pem=certificate.public_bytes(serialization.Encoding.PEM),
            serial=serial,
        )

    def parse_certificate(self, certificate_pem: bytes) -> Result[ParsedCertificate]:
        return Result.from_computation(
            lambda: x509.load_pem_x509_certificate(certificate_pem),
            ErrorCode.CRYPTO_ERROR,
            "Failed to parse certificate",
        ).map(
            lambda cert: ParsedCertificate(
                not_before=cert.not_valid_before_utc,
                not_after=cert.not_valid_after_utc,
                subject_common_name=_first_attribute(cert.subject, NameOID.COMMON_NAME),
                serial=format_serial(cert.serial_number),
            )
        )

    def verify_issuer_material(self, issuer: IssuerMaterial) -> Result[IssuerMaterial]:
        """Check that the issuer key loads and matches the issuer certificate."""

        def _matches() -> bool:
            key = serialization.load_pem_private_key(
                issuer.private_key_pem, password=issuer.private_key_password
            )
            cert = x509.load_pem_x509_certificate(issuer.certificate_pem)
            spki = serialization.PublicFormat.SubjectPublicKeyInfo
            return key.public_key().public_bytes(
                serialization.Encoding.DER, spki
            ) == cert.public_key().public_bytes(serialization.Encoding.DER, spki)

        return Result.from_computation(
            _matches,
            ErrorCode.CONFIGURATION_ERROR,
            "Issuer key or certificate could not be loaded",
        ).flat_map(
            lambda matches: Result.success(issuer)
            if matches
            else Result.failure(
                ErrorCode.CONFIGURATION_ERROR,
                "Issuer private key does not match the issuer certificate",
            )
        )
