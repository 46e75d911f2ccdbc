"""
Unit tests for the in-memory request store.

Covers the RequestStore contract that the PostgreSQL adapter also honors
(see tests/integration/test_repository.py):
  - create / get / list
  - compare-and-set status updates
  - atomic issuance recording with unique serials
  - concurrent approvals: exactly one wins
"""

from __future__ import annotations

import threading
from datetime import timedelta

from railway import ErrorCode, ResultAssertions

from cert_issuer.adapters.memory_store import InMemoryRequestStore
from cert_issuer.domain.models import RequestStatus
from cert_issuer.domain.ports import RequestStore
from tests.conftest import FIXED_NOW, make_issued, make_request


class TestPortConformance:
    def test_satisfies_request_store_protocol(self) -> None:
        assert isinstance(InMemoryRequestStore(), RequestStore)


# ─────────────────────── Create / Read ───────────────────────


class TestCreateAndRead:
    def test_create_then_get(self) -> None:
        store = InMemoryRequestStore()
        request = make_request("req_a")

        ResultAssertions.assert_success_value(store.create(request), request)
        ResultAssertions.assert_success_value(store.get_by_id("req_a"), request)

    def test_duplicate_id_is_conflict(self) -> None:
        """
        GIVEN a stored request
        WHEN another request with the same id is created
        THEN CONFLICT is returned and the first record is kept.
        """
        store = InMemoryRequestStore()
        original = make_request("req_a")
        store.create(original)

        result = store.create(make_request("req_a", alt_names="other.example.com"))

        ResultAssertions.assert_failure(result, ErrorCode.CONFLICT)
        assert store.get_by_id("req_a").value() == original

    def test_unknown_id_is_not_found(self) -> None:
        result = InMemoryRequestStore().get_by_id("req_missing")

        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)
        ResultAssertions.assert_failure_message_contains(result, "req_missing")

    def test_list_by_status_filters(self) -> None:
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        store.create(make_request("req_b"))
        store.update(make_request("req_b").reject(FIXED_NOW))

        pending = store.list_by_status(RequestStatus.PENDING).value()
        rejected = store.list_by_status(RequestStatus.REJECTED).value()

        assert [r.id for r in pending] == ["req_a"]
        assert [r.id for r in rejected] == ["req_b"]


# ─────────────────────── Compare-and-set ───────────────────────


class TestUpdate:
    def test_pending_to_rejected(self) -> None:
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))

        result = store.update(make_request("req_a").reject(FIXED_NOW))

        assert ResultAssertions.assert_success(result).status is RequestStatus.REJECTED
        assert store.get_by_id("req_a").value().status is RequestStatus.REJECTED

    def test_terminal_record_is_not_overwritten(self) -> None:
        """
        GIVEN a rejected request
        WHEN an update tries to approve it
        THEN INVALID_STATE is returned and the stored record is unchanged.
        """
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        rejected = store.update(make_request("req_a").reject(FIXED_NOW)).value()

        result = store.update(make_request("req_a").approve("0A", FIXED_NOW))

        ResultAssertions.assert_failure(result, ErrorCode.INVALID_STATE)
        assert store.get_by_id("req_a").value() == rejected

    def test_update_back_to_pending_is_invalid(self) -> None:
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))

        result = store.update(make_request("req_a", alt_names="changed"))

        ResultAssertions.assert_failure(result, ErrorCode.INVALID_STATE)

    def test_unknown_request(self) -> None:
        result = InMemoryRequestStore().update(make_request("req_x").reject(FIXED_NOW))

        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)


# ─────────────────────── Issuance ───────────────────────


class TestRecordIssuance:
    def test_promotes_request_and_stores_issuance(self) -> None:
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        issued = make_issued(serial="0A", request_id="req_a")

        result = store.record_issuance(make_request("req_a").approve("0A", FIXED_NOW), issued)

        ResultAssertions.assert_success_value(result, issued)
        assert store.get_by_id("req_a").value().status is RequestStatus.APPROVED
        assert store.get_issued_by_serial("0A").value() == issued
        assert store.list_issued().value() == [issued]

    def test_serial_collision_has_no_side_effects(self) -> None:
        """
        GIVEN serial 0A already issued for req_a
        WHEN req_b is approved with the same serial
        THEN SERIAL_COLLISION is returned, req_b stays pending
        AND the existing issuance is untouched.
        """
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        store.create(make_request("req_b"))
        first = make_issued(serial="0A", request_id="req_a")
        store.record_issuance(make_request("req_a").approve("0A", FIXED_NOW), first)

        result = store.record_issuance(
            make_request("req_b").approve("0A", FIXED_NOW),
            make_issued(serial="0A", request_id="req_b"),
        )

        ResultAssertions.assert_failure(result, ErrorCode.SERIAL_COLLISION)
        assert store.get_by_id("req_b").value().is_pending
        assert store.get_issued_by_serial("0A").value() == first

    def test_already_approved_request(self) -> None:
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        store.record_issuance(
            make_request("req_a").approve("0A", FIXED_NOW), make_issued("0A", "req_a")
        )

        result = store.record_issuance(
            make_request("req_a").approve("0B", FIXED_NOW + timedelta(seconds=1)),
            make_issued("0B", "req_a"),
        )

        ResultAssertions.assert_failure(result, ErrorCode.INVALID_STATE)
        ResultAssertions.assert_failure(store.get_issued_by_serial("0B"), ErrorCode.NOT_FOUND)

    def test_unknown_serial(self) -> None:
        ResultAssertions.assert_failure(
            InMemoryRequestStore().get_issued_by_serial("FF"), ErrorCode.NOT_FOUND
        )


class TestConcurrentApproval:
    def test_exactly_one_racing_approval_wins(self) -> None:
        """
        GIVEN one pending request
        WHEN 8 threads record an issuance for it at once, each with its own serial
        THEN exactly one succeeds, the rest get INVALID_STATE
        AND exactly one IssuedCertificate exists.
        """
        store = InMemoryRequestStore()
        store.create(make_request("req_a"))
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def approve(n: int) -> None:
            serial = f"{n:02X}"
            barrier.wait()
            result = store.record_issuance(
                make_request("req_a").approve(serial, FIXED_NOW), make_issued(serial, "req_a")
            )
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=approve, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        successes = [r for r in results if r.is_success()]
        failures = [r for r in results if r.is_failure()]
        assert len(successes) == 1
        assert all(f.error().code is ErrorCode.INVALID_STATE for f in failures)
        assert len(store.list_issued().value()) == 1
        assert store.get_by_id("req_a").value().serial == successes[0].value().serial
