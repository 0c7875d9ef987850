"""Reads and writes against the policies table shared by all components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Literal, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from verification_service.errors import ConflictError, NotFoundError, RetryExhaustedError
from verification_service.models.records import Company, Policy
from verification_service.models.schema import PolicyCreate, PolicyPayload, PolicyStatus, PolicyType
from verification_service.persistence import session_scope
from verification_service.services.numbering import NumberingService
from verification_service.utils.error_codes import ErrorCode
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)

# Optional fields the feed may omit; an omitted value keeps what is stored.
_FEED_OPTIONAL_FIELDS = (
    "holder_id_number",
    "holder_phone",
    "holder_email",
    "coverage_amount",
    "premium_amount",
    "details_json",
    "vehicle_info",
    "additional_beneficiaries",
)


@dataclass
class PolicyLookup:
    """Typed filter for candidate lookups."""

    policy_number: str
    company_id: Optional[int] = None
    holder_name_contains: Optional[str] = None
    expiry_date: Optional[date] = None
    limit: int = 5


def find_candidates(session: Session, lookup: PolicyLookup) -> List[Policy]:
    """Policies matching the filter, with their owning company loaded."""
    query = (
        select(Policy)
        .options(joinedload(Policy.company))
        .where(Policy.policy_number == lookup.policy_number)
    )
    if lookup.company_id is not None:
        query = query.where(Policy.company_id == lookup.company_id)
    if lookup.holder_name_contains:
        query = query.where(Policy.holder_name.icontains(lookup.holder_name_contains, autoescape=True))
    if lookup.expiry_date is not None:
        query = query.where(Policy.expiry_date == lookup.expiry_date)
    query = query.order_by(Policy.id).limit(lookup.limit)
    return list(session.scalars(query).unique())


def get_by_company_number(session: Session, company_id: int, policy_number: str) -> Optional[Policy]:
    return session.scalar(
        select(Policy).where(Policy.company_id == company_id, Policy.policy_number == policy_number)
    )


class PolicyStore:
    """Policy creation, feed upserts and the expiry sweep."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        self._session_factory = session_factory
        self.numbering = numbering or NumberingService(session_factory)

    def create_policy(self, request: PolicyCreate) -> Policy:
        """Insert a new policy under a freshly allocated number.

        A number taken between allocation and insert is treated like any other
        collision: a new number is allocated, within the numbering attempt budget.

        Raises:
            NotFoundError: unknown company.
            RetryExhaustedError: no number could be allocated.
        """
        for attempt in range(1, self.numbering.max_attempts + 1):
            allocated = self.numbering.allocate(request.company_id, request.policy_type, request.year)
            policy = Policy(
                policy_number=allocated.policy_number,
                holder_name=request.holder_name,
                holder_id_number=request.holder_id_number,
                holder_phone=request.holder_phone,
                holder_email=request.holder_email,
                policy_type=request.policy_type.value,
                coverage_amount=request.coverage_amount,
                premium_amount=request.premium_amount,
                start_date=request.start_date,
                expiry_date=request.expiry_date,
                details_json=request.details_json,
                vehicle_info=request.vehicle_info,
                additional_beneficiaries=request.additional_beneficiaries,
                company_id=request.company_id,
                status=PolicyStatus.ACTIVE.value,
                approval_status="pending",
                policy_year=allocated.year,
                policy_counter=allocated.sequence_number,
            )
            policy.refresh_hash()
            try:
                with session_scope(self._session_factory) as session:
                    session.add(policy)
            except IntegrityError:
                logger.warning(
                    "Policy number %s claimed before insert, attempt=%s", allocated.policy_number, attempt
                )
                continue
            logger.info("Created policy %s for company_id=%s", policy.policy_number, policy.company_id)
            return policy

        raise RetryExhaustedError(
            f"Failed to store policy under a unique number after {self.numbering.max_attempts} attempts",
            details={"company_id": request.company_id},
        )

    def upsert_from_feed(
        self, company_id: int, payload: PolicyPayload, synced_at: Optional[datetime] = None
    ) -> Literal["created", "updated"]:
        """Create or refresh one feed entry for the owning company.

        Raises:
            NotFoundError: unknown company.
            ConflictError: the number or fingerprint belongs to another company's policy.
        """
        synced_at = synced_at or datetime.utcnow()
        try:
            with session_scope(self._session_factory) as session:
                if session.get(Company, company_id) is None:
                    raise NotFoundError(f"Company {company_id} not found", code=ErrorCode.COMPANY_NOT_FOUND)
                existing = get_by_company_number(session, company_id, payload.policy_number)
                if existing is not None:
                    self._apply_payload(existing, payload)
                    existing.last_synced = synced_at
                    existing.refresh_hash()
                    return "updated"

                policy = Policy(
                    policy_number=payload.policy_number,
                    holder_name=payload.holder_name,
                    policy_type=(payload.policy_type or PolicyType.AUTO).value,
                    start_date=payload.start_date,
                    expiry_date=payload.expiry_date,
                    company_id=company_id,
                    last_synced=synced_at,
                    **{name: getattr(payload, name) for name in _FEED_OPTIONAL_FIELDS},
                )
                policy.refresh_hash()
                session.add(policy)
                session.flush()
                return "created"
        except IntegrityError as exc:
            raise ConflictError(
                f"Policy {payload.policy_number} conflicts with an existing record",
                code=ErrorCode.DUPLICATE_KEY,
            ) from exc

    def expire_stale(self, today: Optional[date] = None) -> int:
        """Mark active policies whose expiry date has passed as expired."""
        today = today or date.today()
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(Policy)
                .where(Policy.status == PolicyStatus.ACTIVE.value, Policy.expiry_date < today)
                .values(status=PolicyStatus.EXPIRED.value, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)

    @staticmethod
    def _apply_payload(policy: Policy, payload: PolicyPayload) -> None:
        policy.holder_name = payload.holder_name
        policy.start_date = payload.start_date
        policy.expiry_date = payload.expiry_date
        if payload.policy_type is not None:
            policy.policy_type = payload.policy_type.value
        for name in _FEED_OPTIONAL_FIELDS:
            value = getattr(payload, name)
            if value is not None:
                setattr(policy, name, value)
