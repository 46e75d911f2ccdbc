"""
In-memory request store — process-local RequestStore adapter.

Two dicts (requests by id, issuances by serial) guarded by one
threading.Lock. Every check-then-write runs under the lock, which gives the
same compare-and-set and unique-serial guarantees the PostgreSQL adapter
gets from its transaction and primary key.

Used for development, tests and single-process deployments.
"""

from __future__ import annotations

import threading

import structlog
from railway.result import Result
from railway.result_failures import ResultFailures

from cert_issuer.domain.models import (
    CertificateRequest,
    IssuedCertificate,
    RequestStatus,
)

log = structlog.get_logger()


class InMemoryRequestStore:
    """Implements the RequestStore port with dicts and a lock."""

    def __init__(self) -> None:
        self._requests: dict[str, CertificateRequest] = {}
        self._issued: dict[str, IssuedCertificate] = {}
        self._lock = threading.Lock()

    def create(self, request: CertificateRequest) -> Result[CertificateRequest]:
        with self._lock:
            if request.id in self._requests:
                return ResultFailures.conflict("Request", request.id)
            self._requests[request.id] = request
        log.debug("store.created", request_id=request.id, status=str(request.status))
        return Result.success(request)

    def get_by_id(self, request_id: str) -> Result[CertificateRequest]:
        with self._lock:
            request = self._requests.get(request_id)
        if request is None:
            return ResultFailures.not_found("Request", request_id)
        return Result.success(request)

    def list_by_status(self, status: RequestStatus) -> Result[list[CertificateRequest]]:
        with self._lock:
            return Result.success([r for r in self._requests.values() if r.status == status])

    def update(self, request: CertificateRequest) -> Result[CertificateRequest]:
        with self._lock:
            guard = self._check_transition(request)
            if guard.is_failure():
                return guard
            self._requests[request.id] = request
        log.debug("store.updated", request_id=request.id, status=str(request.status))
        return Result.success(request)

    def record_issuance(
        self,
        request: CertificateRequest,
        issued: IssuedCertificate,
    ) -> Result[IssuedCertificate]:
        with self._lock:
            guard = self._check_transition(request)
            if guard.is_failure():
                return guard
            if issued.serial in self._issued:
                return ResultFailures.serial_collision(issued.serial)
            self._requests[request.id] = request
            self._issued[issued.serial] = issued
        log.debug("store.issuance_recorded", request_id=request.id, serial=issued.serial)
        return Result.success(issued)

    def get_issued_by_serial(self, serial: str) -> Result[IssuedCertificate]:
        with self._lock:
            issued = self._issued.get(serial)
        if issued is None:
            return ResultFailures.not_found("Certificate", serial)
        return Result.success(issued)

    def list_issued(self) -> Result[list[IssuedCertificate]]:
        with self._lock:
            return Result.success(list(self._issued.values()))

    def _check_transition(self, request: CertificateRequest) -> Result[CertificateRequest]:
        """Caller holds the lock."""
        stored = self._requests.get(request.id)
        if stored is None:
            return ResultFailures.not_found("Request", request.id)
        if not stored.status.can_transition_to(request.status):
            return ResultFailures.invalid_state("Request", request.id, str(stored.status))
        return Result.success(stored)
