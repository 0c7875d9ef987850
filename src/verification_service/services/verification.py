"""
Verification engine: matches a claimed policy against the store, scores it with
a fixed decision table and records the attempt.

Decision table for the selected candidate:

    holder + expiry match, company approved, not yet expired  -> valid    100
    holder + expiry match, company approved, past expiry      -> expired   95
    company approved, holder or expiry mismatch               -> fake      85
    company not approved (any field match)                    -> fake      90

No candidate at all is ``not_found`` with confidence 0.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from verification_service.config import settings
from verification_service.errors import ConflictError, NotFoundError, ValidationError
from verification_service.models.records import Company, Policy, Verification
from verification_service.models.schema import (
    CompanyStatus,
    CompanySummary,
    MatchedPolicy,
    VerificationRequest,
    VerificationResult,
    VerificationStatus,
)
from verification_service.observability import metrics
from verification_service.persistence import session_scope
from verification_service.services.collaborators import (
    AuditEvent,
    AuditSink,
    EventBroadcaster,
    LoggingAuditSink,
    NullBroadcaster,
    company_channel,
    safe_publish,
    safe_record,
    user_channel,
)
from verification_service.services.policy_store import PolicyLookup, find_candidates
from verification_service.utils.error_codes import ErrorCode
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)

REASON_NOT_FOUND = "No matching policy found"
REASON_VALID = "Policy verified successfully"
REASON_EXPIRED = "Policy has expired"
REASON_MISMATCH = "Policy details do not match"
REASON_COMPANY_NOT_APPROVED = "Insurance company not approved"


@dataclass
class MatchDecision:
    status: VerificationStatus
    reason: str
    confidence: float
    policy: Optional[Policy] = None


def holder_matches(policy: Policy, claimed_holder: Optional[str]) -> bool:
    """Case-insensitive exact comparison; an unclaimed holder is not checked."""
    if claimed_holder is None:
        return True
    return policy.holder_name.strip().lower() == claimed_holder.strip().lower()


def expiry_matches(policy: Policy, claimed_expiry: Optional[date]) -> bool:
    return claimed_expiry is None or policy.expiry_date == claimed_expiry


def select_best_match(
    candidates: Sequence[Policy], claimed_holder: Optional[str], claimed_expiry: Optional[date]
) -> Policy:
    for policy in candidates:
        if holder_matches(policy, claimed_holder) and expiry_matches(policy, claimed_expiry):
            return policy
    return candidates[0]


def decide(
    candidates: Sequence[Policy],
    claimed_holder: Optional[str],
    claimed_expiry: Optional[date],
    today: date,
) -> MatchDecision:
    if not candidates:
        return MatchDecision(VerificationStatus.NOT_FOUND, REASON_NOT_FOUND, 0.0)

    policy = select_best_match(candidates, claimed_holder, claimed_expiry)
    if policy.company.status != CompanyStatus.APPROVED.value:
        return MatchDecision(VerificationStatus.FAKE, REASON_COMPANY_NOT_APPROVED, 90.0, policy)
    if not (holder_matches(policy, claimed_holder) and expiry_matches(policy, claimed_expiry)):
        return MatchDecision(VerificationStatus.FAKE, REASON_MISMATCH, 85.0, policy)
    if today > policy.expiry_date:
        return MatchDecision(VerificationStatus.EXPIRED, REASON_EXPIRED, 95.0, policy)
    return MatchDecision(VerificationStatus.VALID, REASON_VALID, 100.0, policy)


class VerificationEngine:
    """Runs one verification attempt end to end."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        audit_sink: Optional[AuditSink] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
        timer: Callable[[], float] = time.perf_counter,
        candidate_limit: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.broadcaster = broadcaster or NullBroadcaster()
        self._today = today
        self._now = now
        self._timer = timer
        self.candidate_limit = candidate_limit or settings.verification_candidate_limit

    def verify(self, request: VerificationRequest) -> VerificationResult:
        """Verify a claimed policy.

        Args:
            request: claimed fields; ``company_id`` selects the company-scoped path

        Returns:
            The computed result, including ``not_found`` outcomes.

        Raises:
            ValidationError: officer path without ``holder_name``, or the
                scoped company is not approved.
            NotFoundError: the scoped company does not exist.
            ConflictError: the record violates a constraint other than a repeated
                idempotency key.
        """
        started = self._timer()
        if request.company_id is None and request.holder_name is None:
            raise ValidationError("holder_name is required when no company is specified")

        with session_scope(self._session_factory) as session:
            if request.company_id is not None:
                self._require_approved_company(session, request.company_id)
            candidates = self._lookup(session, request)
            decision = decide(candidates, request.holder_name, request.expiry_date, self._today())
            matched = self._summarize(decision.policy)

        elapsed = self._timer() - started
        verified_at = self._now()
        response_time_ms = max(int(elapsed * 1000), 0)
        verification_id = self._persist(request, decision, verified_at, response_time_ms)

        result = VerificationResult(
            verification_id=verification_id,
            status=decision.status,
            reason=decision.reason,
            confidence_score=decision.confidence,
            verified_at=verified_at,
            response_time_ms=response_time_ms,
            matched_policy=matched,
        )
        metrics.record_verification(decision.status.value, request.method.value, elapsed)
        logger.info(
            "Verification %s policy_number=%s status=%s confidence=%s",
            verification_id, request.policy_number, decision.status.value, decision.confidence,
        )

        self._audit(request, result)
        self._notify(request, result)
        return result

    def _require_approved_company(self, session: Session, company_id: int) -> Company:
        company = session.get(Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found", code=ErrorCode.COMPANY_NOT_FOUND)
        if company.status != CompanyStatus.APPROVED.value:
            raise ValidationError("Company is not approved", code=ErrorCode.COMPANY_NOT_APPROVED)
        return company

    def _lookup(self, session: Session, request: VerificationRequest) -> List[Policy]:
        """Candidates sharing the number, narrowed by every claimed holder and expiry field."""
        lookup = PolicyLookup(
            policy_number=request.policy_number,
            company_id=request.company_id,
            holder_name_contains=request.holder_name,
            expiry_date=request.expiry_date,
            limit=self.candidate_limit,
        )
        return find_candidates(session, lookup)

    @staticmethod
    def _summarize(policy: Optional[Policy]) -> Optional[MatchedPolicy]:
        if policy is None:
            return None
        return MatchedPolicy(
            id=policy.id,
            policy_number=policy.policy_number,
            holder_name=policy.holder_name,
            expiry_date=policy.expiry_date,
            company=CompanySummary(
                id=policy.company.id,
                name=policy.company.name,
                status=policy.company.status,
            ),
        )

    def _persist(
        self,
        request: VerificationRequest,
        decision: MatchDecision,
        verified_at: datetime,
        response_time_ms: int,
    ) -> Optional[int]:
        """Store the attempt; a duplicate submission keeps the computed result."""
        record = Verification(
            policy_number=request.policy_number,
            holder_name=request.holder_name,
            holder_id_number=request.holder_id_number,
            expiry_date=request.expiry_date,
            officer_id=request.officer_id,
            company_id=decision.policy.company_id if decision.policy else request.company_id,
            policy_id=decision.policy.id if decision.policy else None,
            status=decision.status.value,
            reason=decision.reason,
            confidence_score=decision.confidence,
            verification_method=request.method.value,
            location=request.location,
            latitude=request.latitude,
            longitude=request.longitude,
            additional_notes=request.additional_notes,
            idempotency_key=request.idempotency_key,
            verified_at=verified_at,
            response_time_ms=response_time_ms,
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(record)
                session.flush()
                return record.id
        except IntegrityError as exc:
            if request.idempotency_key and self._already_recorded(request.idempotency_key):
                logger.warning(
                    "Verification for %s already recorded (idempotency_key=%s); returning computed result",
                    request.policy_number, request.idempotency_key,
                )
                return None
            logger.error("Could not store verification for %s: %s", request.policy_number, exc.orig)
            raise ConflictError(
                f"Verification for {request.policy_number} violates a storage constraint"
            ) from exc

    def _already_recorded(self, idempotency_key: str) -> bool:
        with session_scope(self._session_factory) as session:
            return session.scalar(
                select(Verification.id).where(Verification.idempotency_key == idempotency_key)
            ) is not None

    def _audit(self, request: VerificationRequest, result: VerificationResult) -> None:
        is_public = request.officer_id is None
        safe_record(
            self.audit_sink,
            AuditEvent(
                action="DOCUMENT_VERIFY_PUBLIC" if is_public else "DOCUMENT_VERIFY",
                entity_type="VERIFICATION",
                entity_id=result.verification_id,
                user_id=request.officer_id,
                severity="high" if result.status == VerificationStatus.FAKE else "medium",
                details={
                    "policy_number": request.policy_number,
                    "holder_name": request.holder_name,
                    "status": result.status.value,
                    "confidence_score": result.confidence_score,
                    "response_time_ms": result.response_time_ms,
                    "location": request.location,
                    "is_public": is_public,
                },
            ),
        )

    def _notify(self, request: VerificationRequest, result: VerificationResult) -> None:
        payload: Dict[str, Any] = {
            "event": "new_verification",
            "verification_id": result.verification_id,
            "policy_number": request.policy_number,
            "holder_name": request.holder_name,
            "status": result.status.value,
            "location": request.location,
            "latitude": request.latitude,
            "longitude": request.longitude,
            "timestamp": result.verified_at.isoformat(),
            "is_public": request.officer_id is None,
        }
        channels = ["admin", "insurer"]
        if result.matched_policy is not None:
            channels.append(company_channel(result.matched_policy.company.id))
        if request.officer_id is not None:
            channels.append(user_channel(request.officer_id))
        for channel in channels:
            safe_publish(self.broadcaster, channel, payload)

        if result.status == VerificationStatus.FAKE:
            alert = {**payload, "event": "fake_detected", "priority": "high"}
            for channel in ("admin", "insurer"):
                safe_publish(self.broadcaster, channel, alert)
