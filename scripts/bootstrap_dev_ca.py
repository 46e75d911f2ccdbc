"""
Bootstrap a development certificate authority.

Infrastructure script — writes a two-level CA (root → intermediate) that the
issuance engine can sign with locally. NOT for production: keys are written
unencrypted and the root key is kept on disk next to everything else.

Output structure (under the target directory, default ./dev-ca):
  root/ca.key.pem                    root private key
  root/ca.cert.pem                   self-signed root certificate (10 years)
  intermediate/intermediate.key.pem  signing key
  intermediate/intermediate.cert.pem intermediate certificate (5 years, pathlen 0)
  intermediate/ca-chain.cert.pem     intermediate + root

Usage:
  python scripts/bootstrap_dev_ca.py [target-dir]

Then export the printed ISSUER__* variables (or put them in .env).
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

DEFAULT_TARGET = Path("dev-ca")
ROOT_VALIDITY_DAYS = 3650
INTERMEDIATE_VALIDITY_DAYS = 1825


@dataclass(frozen=True)
class DevCa:
    root_key_pem: bytes
    root_cert_pem: bytes
    intermediate_key_pem: bytes
    intermediate_cert_pem: bytes

    @property
    def chain_pem(self) -> bytes:
        return self.intermediate_cert_pem + self.root_cert_pem


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Development CA"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _ca_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=True,
        encipher_only=False,
        decipher_only=False,
    )


def _key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def build_dev_ca(
    root_common_name: str = "Development Root CA",
    intermediate_common_name: str = "Development Intermediate CA",
) -> DevCa:
    """Generate root and intermediate keys and certificates in memory."""
    now = datetime.now(UTC).replace(microsecond=0)

    root_key = ec.generate_private_key(ec.SECP384R1())
    root_name = _name(root_common_name)
    root_ski = x509.SubjectKeyIdentifier.from_public_key(root_key.public_key())
    root_cert = (
        x509.CertificateBuilder()
        .subject_name(root_name)
        .issuer_name(root_name)
        .public_key(root_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=ROOT_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
        .add_extension(_ca_key_usage(), critical=True)
        .add_extension(root_ski, critical=False)
        .sign(root_key, hashes.SHA384())
    )

    intermediate_key = ec.generate_private_key(ec.SECP384R1())
    intermediate_cert = (
        x509.CertificateBuilder()
        .subject_name(_name(intermediate_common_name))
        .issuer_name(root_name)
        .public_key(intermediate_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=INTERMEDIATE_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(_ca_key_usage(), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(intermediate_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(root_ski),
            critical=False,
        )
        .sign(root_key, hashes.SHA384())
    )

    return DevCa(
        root_key_pem=_key_pem(root_key),
        root_cert_pem=root_cert.public_bytes(serialization.Encoding.PEM),
        intermediate_key_pem=_key_pem(intermediate_key),
        intermediate_cert_pem=intermediate_cert.public_bytes(serialization.Encoding.PEM),
    )


def write_dev_ca(ca: DevCa, target: Path) -> dict[str, Path]:
    """Write the CA files under `target` and return the paths by role."""
    paths = {
        "root_key": target / "root" / "ca.key.pem",
        "root_certificate": target / "root" / "ca.cert.pem",
        "private_key": target / "intermediate" / "intermediate.key.pem",
        "certificate": target / "intermediate" / "intermediate.cert.pem",
        "chain": target / "intermediate" / "ca-chain.cert.pem",
    }
    contents = {
        "root_key": ca.root_key_pem,
        "root_certificate": ca.root_cert_pem,
        "private_key": ca.intermediate_key_pem,
        "certificate": ca.intermediate_cert_pem,
        "chain": ca.chain_pem,
    }
    for role, path in paths.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(contents[role])
        if role in ("root_key", "private_key"):
            path.chmod(0o600)
    return paths


def main() -> None:
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_TARGET
    if (target / "intermediate" / "intermediate.key.pem").exists():
        print(f"⚠ {target} already holds a CA, refusing to overwrite")
        sys.exit(1)

    paths = write_dev_ca(build_dev_ca(), target)
    for role, path in paths.items():
        print(f"  ✓ {role:18s} {path}")

    print("\nEnvironment:")
    print(f"  ISSUER__CERTIFICATE_PATH={paths['certificate'].resolve()}")
    print(f"  ISSUER__PRIVATE_KEY_PATH={paths['private_key'].resolve()}")
    print(f"  ISSUER__CHAIN_PATH={paths['chain'].resolve()}")
    print(f"  ISSUER__ROOT_CERTIFICATE_PATH={paths['root_certificate'].resolve()}")


if __name__ == "__main__":
    main()
