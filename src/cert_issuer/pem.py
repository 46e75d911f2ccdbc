"""
PEM armor helpers — structural checks before anything is parsed.

Uses asn1crypto's PEM codec: it validates the BEGIN/END armor and the
base64 body without interpreting the DER inside, which is what the import
path needs to fail fast on pasted garbage. Content-level parsing stays with
the crypto capability.
"""

from __future__ import annotations

from asn1crypto import pem as asn1_pem
from railway import ErrorCode
from railway.result import Result

SIGNING_REQUEST_TYPES = frozenset({"CERTIFICATE REQUEST", "NEW CERTIFICATE REQUEST"})


def require_signing_request_armor(text: str | bytes | None) -> Result[str]:
    """
    Check that `text` is exactly one PEM-armored signing request.

    Returns the block re-armored as CERTIFICATE REQUEST, without any text
    around it, or VALIDATION_ERROR describing what is wrong with it.
    """
    if not text:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "Signing request PEM is required")

    data = text.encode("ascii", errors="replace") if isinstance(text, str) else text
    data = data.strip()
    if not asn1_pem.detect(data):
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "Invalid CSR format. Must be in PEM format.",
        )

    try:
        object_type, _headers, der_bytes = asn1_pem.unarmor(data)
    except ValueError as e:
        return Result.failure(ErrorCode.VALIDATION_ERROR, f"Malformed PEM armor: {e}", e)

    if object_type not in SIGNING_REQUEST_TYPES:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Expected a CERTIFICATE REQUEST block, got {object_type!r}",
        )
    if not der_bytes:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "Signing request PEM body is empty")

    return Result.success(asn1_pem.armor("CERTIFICATE REQUEST", der_bytes).decode("ascii"))


def split_certificates(pem_bundle: bytes) -> list[bytes]:
    """Split a concatenated PEM bundle into individually armored CERTIFICATE blocks."""
    if not pem_bundle or not asn1_pem.detect(pem_bundle):
        return []
    return [
        asn1_pem.armor(object_type, der_bytes)
        for object_type, _headers, der_bytes in asn1_pem.unarmor(pem_bundle, multiple=True)
        if object_type == "CERTIFICATE"
    ]


def join_pem(*blocks: bytes) -> bytes:
    """Concatenate PEM blocks, one newline between them and one at the end."""
    parts = [block.strip() for block in blocks if block and block.strip()]
    if not parts:
        return b""
    return b"\n".join(parts) + b"\n"
