"""Unit tests for the verification engine."""

from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from verification_service.errors import ConflictError, NotFoundError, ValidationError
from verification_service.models.records import Company, Policy, Verification
from verification_service.models.schema import VerificationRequest, VerificationStatus
from verification_service.persistence import session_scope
from verification_service.services.verification import VerificationEngine, decide
from verification_service.utils.error_codes import ErrorCode


@pytest.fixture
def engine(session_factory, audit_sink, broadcaster, today, now):
    ticks = iter([10.0, 10.25] * 50)
    return VerificationEngine(
        session_factory,
        audit_sink=audit_sink,
        broadcaster=broadcaster,
        today=lambda: today,
        now=lambda: now,
        timer=lambda: next(ticks),
    )


@pytest.fixture
def policy_id(companies, add_policy):
    return add_policy(companies["approved"], "ATL-AUTO-2025-001", "John Doe", date(2026, 1, 1))


def _request(**fields):
    fields.setdefault("policy_number", "ATL-AUTO-2025-001")
    return VerificationRequest(**fields)


class TestDecisionTable:
    def test_no_candidates(self):
        decision = decide([], "John Doe", None, date(2025, 6, 15))
        assert decision.status == VerificationStatus.NOT_FOUND
        assert decision.confidence == 0.0
        assert decision.policy is None

    def test_prefers_fully_matching_candidate(self):
        company = Company(id=1, name="Atlantic", status="approved")
        other = Policy(holder_name="Jane Doe", expiry_date=date(2026, 1, 1), company=company)
        match = Policy(holder_name="John Doe", expiry_date=date(2026, 1, 1), company=company)

        decision = decide([other, match], "John Doe", None, date(2025, 6, 15))

        assert decision.policy is match
        assert decision.status == VerificationStatus.VALID


class TestOfficerPath:
    def test_valid(self, engine, policy_id, now):
        result = engine.verify(_request(holder_name="  john DOE ", officer_id=7))

        assert result.status == VerificationStatus.VALID
        assert result.confidence_score == 100.0
        assert result.verification_id is not None
        assert result.verified_at == now
        assert result.response_time_ms == 250
        assert result.matched_policy.id == policy_id
        assert result.matched_policy.company.name == "Atlantic Life & General"

    def test_expiry_today_is_still_valid(self, engine, companies, add_policy, today):
        add_policy(companies["approved"], "ATL-AUTO-2025-002", "Ama Kollie", today)

        result = engine.verify(_request(policy_number="ATL-AUTO-2025-002", holder_name="Ama Kollie"))

        assert result.status == VerificationStatus.VALID

    def test_expired(self, engine, companies, add_policy):
        add_policy(companies["approved"], "ATL-AUTO-2024-010", "Ama Kollie", date(2025, 6, 14))

        result = engine.verify(_request(policy_number="ATL-AUTO-2024-010", holder_name="Ama Kollie"))

        assert result.status == VerificationStatus.EXPIRED
        assert result.confidence_score == 95.0

    def test_not_found(self, engine, companies):
        result = engine.verify(_request(policy_number="ATL-AUTO-2025-404", holder_name="John Doe"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.confidence_score == 0.0
        assert result.matched_policy is None
        assert result.verification_id is not None

    def test_unrelated_holder_is_not_found(self, engine, policy_id):
        result = engine.verify(_request(holder_name="Zzz Qqq"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.confidence_score == 0.0
        assert result.matched_policy is None

    def test_partial_holder_name_is_fake(self, engine, policy_id):
        result = engine.verify(_request(holder_name="John"))

        assert result.status == VerificationStatus.FAKE
        assert result.confidence_score == 85.0
        assert result.matched_policy.id == policy_id

    def test_wildcard_holder_name_matches_nothing(self, engine, policy_id):
        result = engine.verify(_request(holder_name="%"))

        assert result.status == VerificationStatus.NOT_FOUND

    def test_expiry_mismatch_is_not_found(self, engine, policy_id):
        result = engine.verify(_request(holder_name="John Doe", expiry_date=date(2027, 1, 1)))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.confidence_score == 0.0

    def test_matching_expiry_is_valid(self, engine, policy_id):
        result = engine.verify(_request(holder_name="John Doe", expiry_date=date(2026, 1, 1)))

        assert result.status == VerificationStatus.VALID

    @pytest.mark.parametrize("role", ["suspended", "pending"])
    def test_unapproved_company_is_never_valid(self, engine, companies, add_policy, role):
        add_policy(companies[role], "XYZ-AUTO-2025-001", "John Doe", date(2026, 1, 1))

        result = engine.verify(_request(policy_number="XYZ-AUTO-2025-001", holder_name="John Doe"))

        assert result.status == VerificationStatus.FAKE
        assert result.confidence_score == 90.0
        assert result.reason == "Insurance company not approved"

    def test_holder_required(self, engine, policy_id):
        with pytest.raises(ValidationError):
            engine.verify(_request(holder_name="   "))

    def test_record_is_persisted(self, engine, session_factory, policy_id, companies):
        result = engine.verify(
            _request(holder_name="John Doe", officer_id=7, location="Broad Street", latitude=6.3, longitude=-10.8)
        )

        with session_scope(session_factory) as session:
            record = session.get(Verification, result.verification_id)
            assert record.status == "valid"
            assert record.policy_id == policy_id
            assert record.company_id == companies["approved"]
            assert record.officer_id == 7
            assert record.location == "Broad Street"
            assert record.confidence_score == 100.0
            assert record.response_time_ms == 250


class TestCompanyScopedPath:
    def test_valid_without_holder(self, engine, companies, policy_id):
        result = engine.verify(_request(company_id=companies["approved"]))

        assert result.status == VerificationStatus.VALID
        assert result.matched_policy.id == policy_id

    def test_number_owned_by_other_company_is_not_found(self, engine, companies, policy_id):
        result = engine.verify(_request(company_id=companies["hourly"], holder_name="John Doe"))

        assert result.status == VerificationStatus.NOT_FOUND

    def test_unknown_company(self, engine, companies):
        with pytest.raises(NotFoundError):
            engine.verify(_request(company_id=9999))

    def test_unapproved_company(self, engine, companies):
        with pytest.raises(ValidationError) as exc_info:
            engine.verify(_request(company_id=companies["suspended"]))
        assert exc_info.value.code == ErrorCode.COMPANY_NOT_APPROVED

    def test_duplicate_submission_returns_result_without_record(self, engine, companies, policy_id):
        request = _request(company_id=companies["approved"], idempotency_key="scan-123")

        first = engine.verify(request)
        second = engine.verify(request)

        assert first.verification_id is not None
        assert second.verification_id is None
        assert second.status == first.status

    def test_other_constraint_failure_is_raised(self, engine, companies, policy_id):
        def reject(mapper, connection, target):
            raise IntegrityError("INSERT INTO verifications", {}, Exception("CHECK constraint failed"))

        event.listen(Verification, "before_insert", reject)
        try:
            with pytest.raises(ConflictError):
                engine.verify(_request(company_id=companies["approved"]))
            with pytest.raises(ConflictError):
                engine.verify(_request(company_id=companies["approved"], idempotency_key="scan-456"))
        finally:
            event.remove(Verification, "before_insert", reject)


class TestSideEffects:
    def test_broadcast_channels(self, engine, broadcaster, companies, policy_id):
        engine.verify(_request(holder_name="John Doe", officer_id=7))

        assert broadcaster.channels("new_verification") == [
            "admin",
            "insurer",
            f"company:{companies['approved']}",
            "user:7",
        ]
        assert broadcaster.channels("fake_detected") == []

    def test_fake_raises_alert(self, engine, broadcaster, audit_sink, policy_id):
        engine.verify(_request(holder_name="John", officer_id=7))

        assert broadcaster.channels("fake_detected") == ["admin", "insurer"]
        assert audit_sink.events[0].action == "DOCUMENT_VERIFY"
        assert audit_sink.events[0].severity == "high"

    def test_public_audit_action(self, engine, audit_sink, companies, policy_id):
        engine.verify(_request(company_id=companies["approved"]))

        event = audit_sink.events[0]
        assert event.action == "DOCUMENT_VERIFY_PUBLIC"
        assert event.severity == "medium"
        assert event.details["is_public"] is True

    def test_collaborator_failures_do_not_abort(self, session_factory, policy_id, today):
        class BrokenSink:
            def record(self, event):
                raise RuntimeError("audit store down")

        class BrokenBroadcaster:
            def publish(self, channel, payload):
                raise ConnectionError("socket closed")

        engine = VerificationEngine(
            session_factory,
            audit_sink=BrokenSink(),
            broadcaster=BrokenBroadcaster(),
            today=lambda: today,
        )

        result = engine.verify(_request(holder_name="John Doe"))

        assert result.status == VerificationStatus.VALID
        assert result.verification_id is not None
