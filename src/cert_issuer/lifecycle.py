"""
Request lifecycle — the issuance engine's use cases.

Domain layer — orchestration only. All I/O is injected through the ports
(RequestStore, CryptoBackend); every stage returns Result[T] and the stages
are connected with flat_map, so the first failure short-circuits the rest:

  submit_generated:
    validate → generate key → request extensions → CSR → store.create

  submit_imported:
    validate armor → parse CSR → require CN → store.create

  approve:
    load → require pending → certificate extensions → sign → parse
      → serial pre-check → store.record_issuance (CAS + insert, atomic)

Nothing is persisted by a submission unless every stage succeeded, and a
failed approval leaves the request pending.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import fields, replace
from datetime import UTC, datetime

import structlog
from railway import ErrorCode, ExecutionContext, FailureDescription, LoggingExecutionContext
from railway.result import Result
from railway.result_failures import ResultFailures

from cert_issuer.artifacts import (
    assemble_artifact,
    assemble_authority_artifact,
    assemble_chain,
)
from cert_issuer.domain.models import (
    Artifact,
    ArtifactKind,
    AuthorityArtifactKind,
    CertificateRequest,
    CertType,
    IssuedCertificate,
    IssuedCertificateSummary,
    IssuerMaterial,
    KeyOrigin,
    ParsedCertificate,
    RequestStatus,
    SignedCertificate,
    SubjectFields,
    SubmissionOutcome,
    new_request_id,
)
from cert_issuer.domain.ports import CryptoBackend, RequestStore
from cert_issuer.extensions import build_certificate_extensions, build_request_extensions
from cert_issuer.pem import require_signing_request_armor

log = structlog.get_logger()

DEFAULT_VALIDITY_DAYS = 365

REQUIRED_SUBJECT_FIELDS = ("common_name", "organization", "country", "state", "locality", "email")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _default_context(operation: str) -> ExecutionContext:
    return LoggingExecutionContext(operation=operation)


# ─────────────────────── Input validation ───────────────────────


def validate_subject(subject: SubjectFields) -> Result[SubjectFields]:
    """
    Trim every field and check the required ones.

    Common name, organization, country, state, locality and email must be
    non-empty; country must be a two-letter code. An empty organizational
    unit is normalized to None.
    """
    trimmed = replace(
        subject,
        **{
            f.name: (getattr(subject, f.name) or "").strip()
            for f in fields(subject)
            if f.name != "organizational_unit"
        },
        organizational_unit=(subject.organizational_unit or "").strip() or None,
    )
    for name in REQUIRED_SUBJECT_FIELDS:
        if not getattr(trimmed, name):
            return ResultFailures.validation_error(f"Missing required field: {name}")
    if len(trimmed.country) != 2 or not trimmed.country.isalpha():
        return ResultFailures.validation_error(
            f"Country must be a two-letter code, got {trimmed.country!r}"
        )
    return Result.success(trimmed)


def parse_cert_type(cert_type: CertType | str) -> Result[CertType]:
    try:
        return Result.success(CertType(cert_type))
    except ValueError:
        return ResultFailures.validation_error(f"Invalid certificate type: {cert_type!r}")


def parse_key_type(key_type: KeyOrigin | str) -> Result[KeyOrigin]:
    """Only generatable key types are accepted on the generated path."""
    try:
        resolved = KeyOrigin(key_type)
    except ValueError:
        return ResultFailures.validation_error(f"Invalid key type: {key_type!r}")
    if not resolved.is_generated:
        return ResultFailures.validation_error(f"Key type {resolved} cannot be generated")
    return Result.success(resolved)


# ─────────────────────── Service ───────────────────────


class IssuanceService:
    """
    Certificate request lifecycle: submit, approve, reject, inspect, download.

    Every public operation runs inside an execution context (timing and
    outcome logs by default) and returns a Result; nothing here raises.

        service = IssuanceService(store, backend, issuer)
        request_id = service.submit_generated(subject).value()
        serial = service.approve(request_id).value()
    """

    def __init__(
        self,
        store: RequestStore,
        backend: CryptoBackend,
        issuer: IssuerMaterial,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        context_factory: Callable[[str], ExecutionContext] = _default_context,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = new_request_id,
        auto_approve: bool = False,
    ) -> None:
        self._store = store
        self._backend = backend
        self._issuer = issuer
        self._validity_days = validity_days
        self._context_factory = context_factory
        self._clock = clock
        self._id_factory = id_factory
        self._auto_approve = auto_approve

    @property
    def validity_days(self) -> int:
        return self._validity_days

    @property
    def auto_approve(self) -> bool:
        return self._auto_approve

    def _run(self, operation: str, computation: Callable[[], Result]) -> Result:
        return self._context_factory(operation).execute(computation)

    # ─────────────────────── Submission ───────────────────────

    def submit_generated(
        self,
        subject: SubjectFields,
        cert_type: CertType | str = CertType.SERVER,
        key_type: KeyOrigin | str = KeyOrigin.ECDSA,
        alt_names_raw: str = "",
    ) -> Result[str]:
        """Generate a key pair and signing request, store a pending request."""
        return self._run(
            "SubmitGeneratedRequest",
            lambda: self._submit_generated(subject, cert_type, key_type, alt_names_raw),
        )

    def _submit_generated(
        self,
        subject: SubjectFields,
        cert_type: CertType | str,
        key_type: KeyOrigin | str,
        alt_names_raw: str,
    ) -> Result[str]:
        alt_names = (alt_names_raw or "").strip()

        def _generate(
            inputs: tuple[SubjectFields, CertType, KeyOrigin],
        ) -> Result[CertificateRequest]:
            valid_subject, kind, key_origin = inputs
            return self._backend.generate_key_pair(key_origin).flat_map(
                lambda key_pair: build_request_extensions(
                    kind, valid_subject.common_name, alt_names
                )
                .flat_map(
                    lambda extensions: self._backend.create_signing_request(
                        key_pair.private_key_pem, valid_subject, extensions
                    )
                )
                .map(
                    lambda csr_pem: CertificateRequest(
                        id=self._id_factory(),
                        cert_type=kind,
                        subject=valid_subject,
                        alt_names=alt_names,
                        key_origin=key_origin,
                        submitted_at=self._clock(),
                        signing_request=csr_pem,
                        private_key=key_pair.private_key_pem,
                    )
                )
            )

        return (
            validate_subject(subject)
            .flat_map(
                lambda valid_subject: Result.combine(
                    parse_cert_type(cert_type),
                    parse_key_type(key_type),
                    lambda kind, key_origin: (valid_subject, kind, key_origin),
                )
            )
            .flat_map(_generate)
            .flat_map(self._store.create)
            .peek(
                lambda request: log.info(
                    "lifecycle.submitted",
                    request_id=request.id,
                    cert_type=str(request.cert_type),
                    key_origin=str(request.key_origin),
                    common_name=request.common_name,
                )
            )
            .map(lambda request: request.id)
        )

    def submit_imported(
        self,
        signing_request_pem: str,
        cert_type: CertType | str = CertType.SERVER,
    ) -> Result[str]:
        """
        Store a pending request for an externally generated signing request.

        Subject and SAN entries come from the CSR itself; the cert type is
        the operator's choice. No private key is ever held for these.
        """
        return self._run(
            "SubmitImportedRequest",
            lambda: self._submit_imported(signing_request_pem, cert_type),
        )

    def _submit_imported(
        self,
        signing_request_pem: str,
        cert_type: CertType | str,
    ) -> Result[str]:
        def _to_request(kind: CertType, pem: str) -> Result[CertificateRequest]:
            return (
                self._backend.parse_signing_request(pem)
                .ensure(
                    lambda parsed: bool(parsed.subject.common_name.strip()),
                    ErrorCode.VALIDATION_ERROR,
                    "Signing request has no common name",
                )
                .map(
                    lambda parsed: CertificateRequest(
                        id=self._id_factory(),
                        cert_type=kind,
                        subject=parsed.subject,
                        alt_names=", ".join(parsed.alt_names),
                        key_origin=KeyOrigin.IMPORTED,
                        submitted_at=self._clock(),
                        signing_request=pem,
                    )
                )
            )

        return (
            parse_cert_type(cert_type)
            .flat_map(
                lambda kind: require_signing_request_armor(signing_request_pem).flat_map(
                    lambda pem: _to_request(kind, pem)
                )
            )
            .flat_map(self._store.create)
            .peek(
                lambda request: log.info(
                    "lifecycle.imported",
                    request_id=request.id,
                    cert_type=str(request.cert_type),
                    common_name=request.common_name,
                )
            )
            .map(lambda request: request.id)
        )

    # ─────────────────────── Decisions ───────────────────────

    def approve(self, request_id: str) -> Result[str]:
        """Sign the pending request and record the issuance. Returns the serial."""
        return self._run("ApproveRequest", lambda: self._approve(request_id))

    def _approve(self, request_id: str) -> Result[str]:
        return (
            self._load_pending(request_id)
            .flat_map(self._issue)
            .peek(
                lambda issued: log.info(
                    "lifecycle.approved",
                    request_id=issued.request_id,
                    serial=issued.serial,
                    not_after=issued.not_after.isoformat(),
                )
            )
            .peek_failure(lambda err: self._log_approval_failure(request_id, err))
            .map(lambda issued: issued.serial)
        )

    def _issue(self, request: CertificateRequest) -> Result[IssuedCertificate]:
        def _sign() -> Result[SignedCertificate]:
            if not request.signing_request:
                return ResultFailures.validation_error(
                    f"Request {request.id} has no signing request"
                )
            return build_certificate_extensions(
                request.cert_type, request.common_name, request.alt_names
            ).flat_map(
                lambda extensions: self._backend.sign_certificate(
                    request.signing_request, extensions, self._validity_days, self._issuer
                )
            )

        def _record(
            signed: SignedCertificate, parsed: ParsedCertificate
        ) -> Result[IssuedCertificate]:
            now = self._clock()
            issued = IssuedCertificate(
                serial=signed.serial,
                request_id=request.id,
                cert_type=request.cert_type,
                common_name=request.common_name,
                certificate=signed.certificate_pem,
                chain=assemble_chain(signed.certificate_pem, self._issuer.chain_pem),
                private_key=request.private_key,
                not_before=parsed.not_before,
                not_after=parsed.not_after,
                created_at=now,
            )
            return self._store.record_issuance(request.approve(signed.serial, now), issued)

        return _sign().flat_map(
            lambda signed: self._backend.parse_certificate(signed.certificate_pem)
            .flat_map(
                lambda parsed: self._require_unused_serial(signed.serial).map(lambda _: parsed)
            )
            .flat_map(lambda parsed: _record(signed, parsed))
        )

    def _require_unused_serial(self, serial: str) -> Result[str]:
        """Serial pre-check; the store enforces uniqueness again at commit."""
        existing = self._store.get_issued_by_serial(serial)
        if existing.is_success():
            return ResultFailures.serial_collision(serial)
        if existing.error().code is ErrorCode.NOT_FOUND:
            return Result.success(serial)
        return Result.failure_from(existing.error())

    @staticmethod
    def _log_approval_failure(request_id: str, err: FailureDescription) -> None:
        if err.code is ErrorCode.SERIAL_COLLISION:
            log.error("lifecycle.serial_collision", request_id=request_id, message=err.message)
        else:
            log.warning(
                "lifecycle.approval_failed",
                request_id=request_id,
                code=err.code.value,
                message=err.message,
            )

    def reject(self, request_id: str) -> Result[CertificateRequest]:
        """Move a pending request to rejected. Nothing else changes."""
        return self._run(
            "RejectRequest",
            lambda: self._load_pending(request_id)
            .flat_map(lambda request: self._store.update(request.reject(self._clock())))
            .peek(lambda request: log.info("lifecycle.rejected", request_id=request.id)),
        )

    def _load_pending(self, request_id: str) -> Result[CertificateRequest]:
        return self._store.get_by_id(request_id).flat_map(
            lambda request: Result.success(request)
            if request.is_pending
            else ResultFailures.invalid_state("Request", request.id, str(request.status))
        )

    # ─────────────────────── Auto-approval ───────────────────────

    def submit(
        self,
        subject: SubjectFields,
        cert_type: CertType | str = CertType.SERVER,
        key_type: KeyOrigin | str = KeyOrigin.ECDSA,
        alt_names_raw: str = "",
    ) -> Result[SubmissionOutcome]:
        """
        Submit a generated request, approving it at once when auto-approval
        is enabled. Front ends call this instead of choosing themselves.
        """
        if self._auto_approve:
            return self.submit_and_approve(subject, cert_type, key_type, alt_names_raw)
        return self.submit_generated(subject, cert_type, key_type, alt_names_raw).map(
            lambda request_id: SubmissionOutcome(request_id=request_id)
        )

    def submit_csr(
        self,
        signing_request_pem: str,
        cert_type: CertType | str = CertType.SERVER,
    ) -> Result[SubmissionOutcome]:
        """submit() for an imported signing request."""
        if self._auto_approve:
            return self.import_and_approve(signing_request_pem, cert_type)
        return self.submit_imported(signing_request_pem, cert_type).map(
            lambda request_id: SubmissionOutcome(request_id=request_id)
        )

    def submit_and_approve(
        self,
        subject: SubjectFields,
        cert_type: CertType | str = CertType.SERVER,
        key_type: KeyOrigin | str = KeyOrigin.ECDSA,
        alt_names_raw: str = "",
    ) -> Result[SubmissionOutcome]:
        """
        Submit a generated request and approve it immediately.

        Fails only when the submission fails. An approval failure is reported
        inside the outcome; the request then stays pending.
        """
        return self.submit_generated(subject, cert_type, key_type, alt_names_raw).map(
            self._approve_submitted
        )

    def import_and_approve(
        self,
        signing_request_pem: str,
        cert_type: CertType | str = CertType.SERVER,
    ) -> Result[SubmissionOutcome]:
        """submit_and_approve for an imported signing request."""
        return self.submit_imported(signing_request_pem, cert_type).map(self._approve_submitted)

    def _approve_submitted(self, request_id: str) -> SubmissionOutcome:
        return self.approve(request_id).either(
            on_success=lambda serial: SubmissionOutcome(request_id=request_id, serial=serial),
            on_failure=lambda err: SubmissionOutcome(
                request_id=request_id, approval_error=err.message
            ),
        )

    # ─────────────────────── Queries ───────────────────────

    def get_request(self, request_id: str) -> Result[CertificateRequest]:
        return self._run("GetRequest", lambda: self._store.get_by_id(request_id))

    def list_pending(self) -> Result[list[CertificateRequest]]:
        """Pending requests, oldest first."""
        return self._run(
            "ListPendingRequests",
            lambda: self._store.list_by_status(RequestStatus.PENDING).map(
                lambda requests: sorted(requests, key=lambda r: (r.submitted_at, r.id))
            ),
        )

    def list_issued(self) -> Result[list[IssuedCertificateSummary]]:
        """Issued certificates, most recent first."""
        return self._run(
            "ListIssuedCertificates",
            lambda: self._store.list_issued().map(
                lambda issued: [
                    i.summary()
                    for i in sorted(issued, key=lambda i: (i.created_at, i.serial), reverse=True)
                ]
            ),
        )

    def get_artifact(self, serial: str, kind: ArtifactKind | str) -> Result[Artifact]:
        return self._run(
            "GetArtifact",
            lambda: self._store.get_issued_by_serial(serial).flat_map(
                lambda issued: assemble_artifact(issued, kind)
            ),
        )

    def get_authority_artifact(self, kind: AuthorityArtifactKind | str) -> Result[Artifact]:
        return self._run(
            "GetAuthorityArtifact",
            lambda: assemble_authority_artifact(self._issuer, kind),
        )
