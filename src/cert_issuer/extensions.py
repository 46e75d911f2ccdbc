"""
Extension profiles — derive X.509v3 extension sets from certificate-type policy.

Domain layer — pure functions, no I/O. Given a certificate type, the subject
common name and the raw comma-separated alternative names, produce the
ExtensionSet for the signing request or for the final certificate.

Policy:

  cert type     keyUsage (critical)                                   extendedKeyUsage
  server        digitalSignature, keyEncipherment                     serverAuth
  client        nonRepudiation, digitalSignature, keyEncipherment     clientAuth, emailProtection
  code_signing  digitalSignature                                      codeSigning (critical)

Server profiles always carry the common name as DNS.1.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from railway import ErrorCode
from railway.result import Result

from cert_issuer.domain.models import (
    AltName,
    AltNameKind,
    CertType,
    ExtendedKeyUsagePurpose,
    ExtensionSet,
    KeyUsageFlag,
)


@dataclass(frozen=True, slots=True)
class _UsageProfile:
    key_usage: tuple[KeyUsageFlag, ...]
    extended_key_usage: tuple[ExtendedKeyUsagePurpose, ...]
    extended_key_usage_critical: bool = False


_PROFILES: dict[CertType, _UsageProfile] = {
    CertType.SERVER: _UsageProfile(
        key_usage=(KeyUsageFlag.DIGITAL_SIGNATURE, KeyUsageFlag.KEY_ENCIPHERMENT),
        extended_key_usage=(ExtendedKeyUsagePurpose.SERVER_AUTH,),
    ),
    CertType.CLIENT: _UsageProfile(
        key_usage=(
            KeyUsageFlag.NON_REPUDIATION,
            KeyUsageFlag.DIGITAL_SIGNATURE,
            KeyUsageFlag.KEY_ENCIPHERMENT,
        ),
        extended_key_usage=(
            ExtendedKeyUsagePurpose.CLIENT_AUTH,
            ExtendedKeyUsagePurpose.EMAIL_PROTECTION,
        ),
    ),
    CertType.CODE_SIGNING: _UsageProfile(
        key_usage=(KeyUsageFlag.DIGITAL_SIGNATURE,),
        extended_key_usage=(ExtendedKeyUsagePurpose.CODE_SIGNING,),
        extended_key_usage_critical=True,
    ),
}


def _is_ip_literal(token: str) -> bool:
    try:
        ipaddress.ip_address(token)
    except ValueError:
        return False
    return True


def split_alt_names(alt_names_raw: str | None) -> list[str]:
    """Split on commas, trim each entry and drop the empty ones."""
    if not alt_names_raw:
        return []
    return [token.strip() for token in alt_names_raw.split(",") if token.strip()]


def classify_alt_names(
    alt_names_raw: str | None,
    prepend: str | None = None,
) -> tuple[AltName, ...]:
    """
    Classify raw SAN tokens into numbered DNS and IP entries.

    DNS and IP entries are numbered independently from 1 in encounter order.
    `prepend`, when given, becomes DNS.1 regardless of the raw list and of
    its own syntax.

        >>> [a.label + "=" + a.value for a in classify_alt_names("10.0.0.5, www.example.com, ::1")]
        ['IP.1=10.0.0.5', 'DNS.1=www.example.com', 'IP.2=::1']
    """
    counters = {AltNameKind.DNS: 0, AltNameKind.IP: 0}
    classified: list[AltName] = []
    if prepend:
        counters[AltNameKind.DNS] = 1
        classified.append(AltName(kind=AltNameKind.DNS, index=1, value=prepend))

    for token in split_alt_names(alt_names_raw):
        kind = AltNameKind.IP if _is_ip_literal(token) else AltNameKind.DNS
        counters[kind] += 1
        classified.append(AltName(kind=kind, index=counters[kind], value=token))
    return tuple(classified)


def _resolve_profile(cert_type: CertType | str) -> Result[tuple[CertType, _UsageProfile]]:
    try:
        resolved = CertType(cert_type)
    except ValueError:
        return Result.failure(
            ErrorCode.CONFIGURATION_ERROR,
            f"Unknown certificate type: {cert_type!r}",
        )
    return Result.success((resolved, _PROFILES[resolved]))


def _build(
    cert_type: CertType | str,
    common_name: str,
    alt_names_raw: str | None,
    *,
    with_key_identifiers: bool,
) -> Result[ExtensionSet]:
    def to_extension_set(resolved: tuple[CertType, _UsageProfile]) -> ExtensionSet:
        kind, profile = resolved
        prepend = common_name if kind is CertType.SERVER else None
        return ExtensionSet(
            key_usage=profile.key_usage,
            extended_key_usage=profile.extended_key_usage,
            extended_key_usage_critical=profile.extended_key_usage_critical,
            alt_names=classify_alt_names(alt_names_raw, prepend=prepend),
            subject_key_identifier=with_key_identifiers,
            authority_key_identifier=with_key_identifiers,
        )

    return _resolve_profile(cert_type).map(to_extension_set)


def build_request_extensions(
    cert_type: CertType | str,
    common_name: str,
    alt_names_raw: str | None,
) -> Result[ExtensionSet]:
    """Extension set embedded in a freshly generated signing request."""
    return _build(cert_type, common_name, alt_names_raw, with_key_identifiers=False)


def build_certificate_extensions(
    cert_type: CertType | str,
    common_name: str,
    alt_names_raw: str | None,
) -> Result[ExtensionSet]:
    """
    Extension set for the signed certificate.

    Same policy as the request set, plus subjectKeyIdentifier (hash of the
    subject key) and authorityKeyIdentifier (issuer key id and name).
    """
    return _build(cert_type, common_name, alt_names_raw, with_key_identifiers=True)
