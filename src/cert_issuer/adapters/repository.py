"""
PostgreSQL request store — durable RequestStore adapter.

Adapter layer — implements the RequestStore port using psycopg (v3) with
raw parameterized SQL.

Status changes use a guarded UPDATE as the compare-and-set:

  UPDATE certificate_requests SET status = ... WHERE id = %s AND status = 'pending'

Zero affected rows means the request is unknown or already terminal; a
follow-up SELECT tells the two apart. Approval runs the guarded UPDATE and
the issued_certificates INSERT in ONE transaction, so either both land or
neither does. The primary key on issued_certificates.serial enforces serial
uniqueness at commit time.

Table mapping:
  CertificateRequest → certificate_requests
  IssuedCertificate  → issued_certificates (request_id UNIQUE, FK)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import psycopg
import structlog
from psycopg.rows import dict_row
from railway import ErrorCode
from railway.result import Result
from railway.result_failures import ResultFailures

from cert_issuer.domain.models import (
    CertificateRequest,
    CertType,
    IssuedCertificate,
    KeyOrigin,
    RequestStatus,
    SubjectFields,
)

log = structlog.get_logger()

T = TypeVar("T")

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS certificate_requests (
    id                  TEXT PRIMARY KEY,
    cert_type           TEXT NOT NULL,
    common_name         TEXT NOT NULL,
    organization        TEXT NOT NULL,
    organizational_unit TEXT,
    country             TEXT NOT NULL,
    state               TEXT NOT NULL,
    locality            TEXT NOT NULL,
    email               TEXT NOT NULL,
    alt_names           TEXT NOT NULL DEFAULT '',
    key_origin          TEXT NOT NULL,
    status              TEXT NOT NULL
                        CHECK (status IN ('pending', 'approved', 'rejected')),
    signing_request     TEXT,
    private_key         BYTEA,
    serial              TEXT,
    submitted_at        TIMESTAMPTZ NOT NULL,
    approved_at         TIMESTAMPTZ,
    rejected_at         TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS certificate_requests_status_idx
    ON certificate_requests (status);

CREATE TABLE IF NOT EXISTS issued_certificates (
    serial      TEXT PRIMARY KEY,
    request_id  TEXT NOT NULL UNIQUE REFERENCES certificate_requests (id),
    cert_type   TEXT NOT NULL,
    common_name TEXT NOT NULL,
    certificate BYTEA NOT NULL,
    chain       BYTEA NOT NULL,
    private_key BYTEA,
    not_before  TIMESTAMPTZ NOT NULL,
    not_after   TIMESTAMPTZ NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL
);
"""

_SERIAL_CONSTRAINT = "issued_certificates_pkey"

_INSERT_REQUEST = """
INSERT INTO certificate_requests (
    id, cert_type, common_name, organization, organizational_unit, country,
    state, locality, email, alt_names, key_origin, status, signing_request,
    private_key, serial, submitted_at, approved_at, rejected_at
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_SELECT_REQUEST = "SELECT * FROM certificate_requests WHERE id = %s"

_SELECT_REQUESTS_BY_STATUS = """
SELECT * FROM certificate_requests WHERE status = %s ORDER BY submitted_at, id
"""

_TRANSITION_REQUEST = """
UPDATE certificate_requests
   SET status = %s, serial = %s, approved_at = %s, rejected_at = %s
 WHERE id = %s AND status = 'pending'
"""

_INSERT_ISSUED = """
INSERT INTO issued_certificates (
    serial, request_id, cert_type, common_name, certificate, chain,
    private_key, not_before, not_after, created_at
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_SELECT_ISSUED = "SELECT * FROM issued_certificates WHERE serial = %s"

_SELECT_ALL_ISSUED = "SELECT * FROM issued_certificates ORDER BY created_at, serial"


class _Rejected(Exception):
    """Aborts the surrounding transaction and carries the failure to report."""

    def __init__(self, result: Result[Any]) -> None:
        super().__init__(result.error().message)
        self.result = result


def _row_to_request(row: dict[str, Any]) -> CertificateRequest:
    return CertificateRequest(
        id=row["id"],
        cert_type=CertType(row["cert_type"]),
        subject=SubjectFields(
            common_name=row["common_name"],
            organization=row["organization"],
            organizational_unit=row["organizational_unit"],
            country=row["country"],
            state=row["state"],
            locality=row["locality"],
            email=row["email"],
        ),
        alt_names=row["alt_names"],
        key_origin=KeyOrigin(row["key_origin"]),
        status=RequestStatus(row["status"]),
        signing_request=row["signing_request"],
        private_key=bytes(row["private_key"]) if row["private_key"] is not None else None,
        serial=row["serial"],
        submitted_at=row["submitted_at"],
        approved_at=row["approved_at"],
        rejected_at=row["rejected_at"],
    )


def _row_to_issued(row: dict[str, Any]) -> IssuedCertificate:
    return IssuedCertificate(
        serial=row["serial"],
        request_id=row["request_id"],
        cert_type=CertType(row["cert_type"]),
        common_name=row["common_name"],
        certificate=bytes(row["certificate"]),
        chain=bytes(row["chain"]),
        private_key=bytes(row["private_key"]) if row["private_key"] is not None else None,
        not_before=row["not_before"],
        not_after=row["not_after"],
        created_at=row["created_at"],
    )


class PsycopgRequestStore:
    """
    Persist requests and issuances to PostgreSQL.

    Implements the RequestStore port. One short-lived connection per call;
    psycopg rolls the transaction back on any exception leaving the block.
    Database exceptions are mapped at this adapter boundary:
      - duplicate request id → CONFLICT
      - duplicate serial     → SERIAL_COLLISION
      - anything else        → DATABASE_ERROR
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def ensure_schema(self) -> Result[bool]:
        """Create tables and indexes if they do not exist yet. Idempotent."""

        def _create() -> bool:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                cur.execute(SCHEMA_DDL)
            log.info("repository.schema_ready")
            return True

        return Result.from_computation(
            _create,
            ErrorCode.DATABASE_ERROR,
            "Failed to create database schema",
        )

    # ─────────────────────── Requests ───────────────────────

    def create(self, request: CertificateRequest) -> Result[CertificateRequest]:
        def _insert() -> CertificateRequest:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                cur.execute(_INSERT_REQUEST, self._request_params(request))
            log.debug("repository.request_created", request_id=request.id)
            return request

        return self._execute(
            _insert,
            "Failed to store certificate request",
            on_unique_violation=lambda _: ResultFailures.conflict("Request", request.id),
        )

    def get_by_id(self, request_id: str) -> Result[CertificateRequest]:
        def _select() -> CertificateRequest:
            with psycopg.connect(self._dsn) as conn, conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_SELECT_REQUEST, (request_id,))
                row = cur.fetchone()
            if row is None:
                raise _Rejected(ResultFailures.not_found("Request", request_id))
            return _row_to_request(row)

        return self._execute(_select, f"Failed to load request {request_id}")

    def list_by_status(self, status: RequestStatus) -> Result[list[CertificateRequest]]:
        def _select() -> list[CertificateRequest]:
            with psycopg.connect(self._dsn) as conn, conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_SELECT_REQUESTS_BY_STATUS, (str(status),))
                return [_row_to_request(row) for row in cur.fetchall()]

        return self._execute(_select, f"Failed to list {status} requests")

    def update(self, request: CertificateRequest) -> Result[CertificateRequest]:
        def _transition() -> CertificateRequest:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                self._compare_and_set(cur, request)
            log.debug(
                "repository.request_updated",
                request_id=request.id,
                status=str(request.status),
            )
            return request

        return self._execute(_transition, f"Failed to update request {request.id}")

    # ─────────────────────── Issuances ───────────────────────

    def record_issuance(
        self,
        request: CertificateRequest,
        issued: IssuedCertificate,
    ) -> Result[IssuedCertificate]:
        """Guarded UPDATE + INSERT in a single ACID transaction."""

        def _record() -> IssuedCertificate:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                self._compare_and_set(cur, request)
                cur.execute(
                    _INSERT_ISSUED,
                    (
                        issued.serial,
                        issued.request_id,
                        str(issued.cert_type),
                        issued.common_name,
                        issued.certificate,
                        issued.chain,
                        issued.private_key,
                        issued.not_before,
                        issued.not_after,
                        issued.created_at,
                    ),
                )
            log.info("repository.issuance_stored", request_id=request.id, serial=issued.serial)
            return issued

        def _on_unique_violation(e: psycopg.errors.UniqueViolation) -> Result[IssuedCertificate]:
            if e.diag.constraint_name == _SERIAL_CONSTRAINT:
                return ResultFailures.serial_collision(issued.serial)
            return ResultFailures.invalid_state("Request", request.id, "already issued")

        return self._execute(
            _record,
            f"Failed to record issuance for request {request.id}",
            on_unique_violation=_on_unique_violation,
        )

    def get_issued_by_serial(self, serial: str) -> Result[IssuedCertificate]:
        def _select() -> IssuedCertificate:
            with psycopg.connect(self._dsn) as conn, conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_SELECT_ISSUED, (serial,))
                row = cur.fetchone()
            if row is None:
                raise _Rejected(ResultFailures.not_found("Certificate", serial))
            return _row_to_issued(row)

        return self._execute(_select, f"Failed to load certificate {serial}")

    def list_issued(self) -> Result[list[IssuedCertificate]]:
        def _select() -> list[IssuedCertificate]:
            with psycopg.connect(self._dsn) as conn, conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_SELECT_ALL_ISSUED)
                return [_row_to_issued(row) for row in cur.fetchall()]

        return self._execute(_select, "Failed to list issued certificates")

    # ─────────────────────── Helpers ───────────────────────

    def _compare_and_set(self, cur: psycopg.Cursor[Any], request: CertificateRequest) -> None:
        """
        Apply the request's new status only if the stored one is still pending.

        Raises _Rejected with NOT_FOUND or INVALID_STATE otherwise, which
        rolls back the enclosing transaction.
        """
        if not RequestStatus.PENDING.can_transition_to(request.status):
            raise _Rejected(
                ResultFailures.invalid_state(
                    "Request", request.id, f"not movable to {request.status}"
                )
            )
        cur.execute(
            _TRANSITION_REQUEST,
            (
                str(request.status),
                request.serial,
                request.approved_at,
                request.rejected_at,
                request.id,
            ),
        )
        if cur.rowcount == 1:
            return

        cur.execute("SELECT status FROM certificate_requests WHERE id = %s", (request.id,))
        row = cur.fetchone()
        if row is None:
            raise _Rejected(ResultFailures.not_found("Request", request.id))
        raise _Rejected(ResultFailures.invalid_state("Request", request.id, row[0]))

    @staticmethod
    def _request_params(request: CertificateRequest) -> tuple[Any, ...]:
        subject = request.subject
        return (
            request.id,
            str(request.cert_type),
            subject.common_name,
            subject.organization,
            subject.organizational_unit,
            subject.country,
            subject.state,
            subject.locality,
            subject.email,
            request.alt_names,
            str(request.key_origin),
            str(request.status),
            request.signing_request,
            request.private_key,
            request.serial,
            request.submitted_at,
            request.approved_at,
            request.rejected_at,
        )

    @staticmethod
    def _execute(
        work: Callable[[], T],
        error_message: str,
        on_unique_violation: Callable[[psycopg.errors.UniqueViolation], Result[T]] | None = None,
    ) -> Result[T]:
        try:
            return Result.success(work())
        except _Rejected as rejected:
            return rejected.result
        except psycopg.errors.UniqueViolation as e:
            if on_unique_violation is not None:
                return on_unique_violation(e)
            return ResultFailures.database_error(error_message, e)
        except psycopg.Error as e:
            log.error("repository.database_error", message=error_message, cause=str(e))
            return ResultFailures.database_error(error_message, e)
