"""
Unit tests for the extension profile builder.

Pure functions — no crypto, no I/O. Covers:
  - Policy table: keyUsage / extendedKeyUsage per certificate type
  - Criticality: keyUsage always critical, EKU critical only for code signing
  - SAN classification: DNS vs IP literals, independent numbering
  - Server profiles: common name is always DNS.1
  - Request vs certificate sets: key identifiers only on the certificate
  - Unknown cert-type tags fail with CONFIGURATION_ERROR
"""

from __future__ import annotations

import pytest
from railway import ErrorCode, ResultAssertions

from cert_issuer.domain.models import (
    AltName,
    AltNameKind,
    CertType,
    ExtendedKeyUsagePurpose,
    KeyUsageFlag,
)
from cert_issuer.extensions import (
    build_certificate_extensions,
    build_request_extensions,
    classify_alt_names,
    split_alt_names,
)

# ─────────────────────── Policy Table ───────────────────────


class TestUsagePolicy:
    """
    GIVEN each certificate type
    WHEN the certificate extension set is built
    THEN keyUsage and extendedKeyUsage match the issuance policy.
    """

    @pytest.mark.parametrize(
        ("cert_type", "key_usage", "extended_key_usage"),
        [
            (
                CertType.SERVER,
                {KeyUsageFlag.DIGITAL_SIGNATURE, KeyUsageFlag.KEY_ENCIPHERMENT},
                {ExtendedKeyUsagePurpose.SERVER_AUTH},
            ),
            (
                CertType.CLIENT,
                {
                    KeyUsageFlag.NON_REPUDIATION,
                    KeyUsageFlag.DIGITAL_SIGNATURE,
                    KeyUsageFlag.KEY_ENCIPHERMENT,
                },
                {ExtendedKeyUsagePurpose.CLIENT_AUTH, ExtendedKeyUsagePurpose.EMAIL_PROTECTION},
            ),
            (
                CertType.CODE_SIGNING,
                {KeyUsageFlag.DIGITAL_SIGNATURE},
                {ExtendedKeyUsagePurpose.CODE_SIGNING},
            ),
        ],
    )
    def test_usage_matches_policy(
        self,
        cert_type: CertType,
        key_usage: set[KeyUsageFlag],
        extended_key_usage: set[ExtendedKeyUsagePurpose],
    ) -> None:
        extensions = ResultAssertions.assert_success(
            build_certificate_extensions(cert_type, "host.example.com", "")
        )

        assert set(extensions.key_usage) == key_usage
        assert set(extensions.extended_key_usage) == extended_key_usage

    def test_key_usage_always_critical(self) -> None:
        """
        GIVEN every certificate type
        WHEN extensions are built
        THEN keyUsage is critical and basicConstraints is CA:FALSE.
        """
        for cert_type in CertType:
            extensions = build_certificate_extensions(cert_type, "cn", "").value()
            assert extensions.key_usage_critical is True
            assert extensions.basic_constraints_ca is False

    def test_only_code_signing_eku_is_critical(self) -> None:
        criticality = {
            cert_type: build_certificate_extensions(cert_type, "cn", "")
            .value()
            .extended_key_usage_critical
            for cert_type in CertType
        }

        assert criticality == {
            CertType.SERVER: False,
            CertType.CLIENT: False,
            CertType.CODE_SIGNING: True,
        }

    def test_accepts_plain_string_tag(self) -> None:
        """
        GIVEN the storage tag "client" instead of the enum member
        WHEN extensions are built
        THEN the client profile is used.
        """
        extensions = ResultAssertions.assert_success(
            build_certificate_extensions("client", "alice", "")
        )
        assert ExtendedKeyUsagePurpose.CLIENT_AUTH in extensions.extended_key_usage


class TestUnknownCertType:
    """
    GIVEN a certificate type tag outside the policy table
    WHEN either builder is called
    THEN it fails with CONFIGURATION_ERROR instead of defaulting.
    """

    def test_certificate_builder_rejects_unknown_tag(self) -> None:
        result = build_certificate_extensions("email", "cn", "")
        ResultAssertions.assert_failure(result, ErrorCode.CONFIGURATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "Unknown certificate type")

    def test_request_builder_rejects_unknown_tag(self) -> None:
        result = build_request_extensions("", "cn", "")
        ResultAssertions.assert_failure(result, ErrorCode.CONFIGURATION_ERROR)


# ─────────────────────── Subject Alternative Names ───────────────────────


class TestSplitAltNames:
    def test_trims_and_drops_empty_entries(self) -> None:
        assert split_alt_names(" a.example.com, ,b.example.com ,, ") == [
            "a.example.com",
            "b.example.com",
        ]

    def test_none_and_empty_yield_nothing(self) -> None:
        assert split_alt_names(None) == []
        assert split_alt_names("") == []


class TestClassifyAltNames:
    """
    GIVEN a raw comma-separated SAN list
    WHEN it is classified
    THEN IP literals and DNS names are numbered independently in encounter order.
    """

    def test_mixed_list_numbers_kinds_independently(self) -> None:
        """
        GIVEN "10.0.0.5, www.example.com, ::1"
        WHEN classified without a prepended name
        THEN DNS.1=www.example.com, IP.1=10.0.0.5, IP.2=::1.
        """
        classified = classify_alt_names("10.0.0.5, www.example.com, ::1")

        assert {a.label: a.value for a in classified} == {
            "IP.1": "10.0.0.5",
            "DNS.1": "www.example.com",
            "IP.2": "::1",
        }

    def test_prepended_name_is_dns_1(self) -> None:
        classified = classify_alt_names("api.example.com, 192.168.1.10", prepend="www.example.com")

        assert classified == (
            AltName(AltNameKind.DNS, 1, "www.example.com"),
            AltName(AltNameKind.DNS, 2, "api.example.com"),
            AltName(AltNameKind.IP, 1, "192.168.1.10"),
        )

    def test_prepended_ip_literal_still_counts_as_dns(self) -> None:
        """
        GIVEN a common name that happens to be an IP literal
        WHEN it is prepended
        THEN it is DNS.1 and does not consume an IP slot.
        """
        classified = classify_alt_names("10.0.0.1", prepend="10.0.0.9")

        assert [a.label for a in classified] == ["DNS.1", "IP.1"]

    def test_non_ip_lookalikes_are_dns(self) -> None:
        classified = classify_alt_names("300.1.1.1, 10.0.0, host-10.0.0.1")
        assert all(a.kind is AltNameKind.DNS for a in classified)


class TestServerCommonNameSan:
    """
    GIVEN a server certificate
    WHEN extensions are built
    THEN the common name is DNS.1 whatever the raw list contains.
    """

    @pytest.mark.parametrize("raw", ["", "   ", "other.example.com", "www.example.com"])
    def test_common_name_is_first_dns_entry(self, raw: str) -> None:
        extensions = build_certificate_extensions(CertType.SERVER, "www.example.com", raw).value()

        first = extensions.alt_names[0]
        assert (first.label, first.value) == ("DNS.1", "www.example.com")
        assert extensions.includes_subject_alt_name

    def test_duplicate_common_name_is_kept(self) -> None:
        extensions = build_certificate_extensions(
            CertType.SERVER, "www.example.com", "www.example.com"
        ).value()

        assert extensions.dns_names() == ["www.example.com", "www.example.com"]

    def test_client_without_alt_names_has_no_san(self) -> None:
        extensions = build_certificate_extensions(CertType.CLIENT, "alice", "").value()

        assert extensions.alt_names == ()
        assert not extensions.includes_subject_alt_name

    def test_client_does_not_prepend_common_name(self) -> None:
        extensions = build_certificate_extensions(
            CertType.CLIENT, "alice", "10.0.0.5, www.example.com, ::1"
        ).value()

        assert extensions.dns_names() == ["www.example.com"]
        assert extensions.ip_addresses() == ["10.0.0.5", "::1"]


# ─────────────────────── Request vs Certificate ───────────────────────


class TestKeyIdentifiers:
    def test_request_set_has_no_key_identifiers(self) -> None:
        extensions = build_request_extensions(CertType.SERVER, "cn", "").value()

        assert extensions.subject_key_identifier is False
        assert extensions.authority_key_identifier is False

    def test_certificate_set_has_key_identifiers(self) -> None:
        extensions = build_certificate_extensions(CertType.SERVER, "cn", "").value()

        assert extensions.subject_key_identifier is True
        assert extensions.authority_key_identifier is True

    def test_both_sets_share_usage_and_san(self) -> None:
        request = build_request_extensions(CertType.CLIENT, "alice", "a.example.com").value()
        certificate = build_certificate_extensions(
            CertType.CLIENT, "alice", "a.example.com"
        ).value()

        assert request.key_usage == certificate.key_usage
        assert request.extended_key_usage == certificate.extended_key_usage
        assert request.alt_names == certificate.alt_names
