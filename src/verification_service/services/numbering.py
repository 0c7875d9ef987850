"""
Structured policy numbers: ``{PREFIX}-{TYPE}-{YEAR}-{SEQ}``, e.g. ``ATL-AUTO-2025-001``.

Sequence values come from an atomic increment on the ``policy_sequences`` row
for (company, policy type, year), so concurrent allocations across threads or
service instances never observe the same value. The row is seeded from the
highest ``policy_counter`` already stored the first time a key is used; two
callers racing to seed it collide on the primary key and the loser retries.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Callable, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from verification_service.config import settings
from verification_service.errors import (
    ConcurrencyConflict,
    NotFoundError,
    RetryExhaustedError,
    ValidationError,
)
from verification_service.models.records import Company, Policy, PolicySequence
from verification_service.models.schema import (
    AllocatedNumber,
    NextNumber,
    NextNumbers,
    NumberingStats,
    ParsedPolicyNumber,
    PolicyType,
    TypeStats,
)
from verification_service.observability import metrics
from verification_service.persistence import session_scope
from verification_service.utils.error_codes import ErrorCode
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)

POLICY_NUMBER_PATTERN = re.compile(r"^[A-Z0-9]+-[A-Z]+-\d{4}-\d{3,}$")
MIN_YEAR = 2000
MAX_YEARS_AHEAD = 10
FALLBACK_PREFIX = "POL"

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_NON_ALPHA = re.compile(r"[^A-Z]")


def company_prefix(company: Company) -> str:
    """Derive the number prefix from the license number, else the company name."""
    license_number = (company.license_number or "").strip()
    if license_number:
        token = _NON_ALNUM.sub("", license_number.split("-")[0].upper())
        if token:
            return token

    name = (company.name or "").strip()
    words = name.split()
    if len(words) >= 2:
        initials = _NON_ALNUM.sub("", "".join(word[0] for word in words).upper())
        if initials:
            return initials

    return _NON_ALNUM.sub("", name.upper())[:3] or FALLBACK_PREFIX


def type_code(policy_type: Union[str, PolicyType]) -> str:
    value = policy_type.value if isinstance(policy_type, PolicyType) else str(policy_type)
    code = _NON_ALPHA.sub("", value.upper())
    if not code:
        raise ValidationError(f"Policy type {policy_type!r} has no letters", code=ErrorCode.VALIDATION_ERROR)
    return code


def format_policy_number(prefix: str, code: str, year: int, sequence: int) -> str:
    return f"{prefix}-{code}-{year}-{sequence:03d}"


def parse_policy_number(policy_number: str, current_year: Optional[int] = None) -> ParsedPolicyNumber:
    """Split a policy number into its components.

    Raises:
        ValidationError: wrong segment count, non-numeric year or sequence,
            a year outside [2000, current year + 10] or a sequence below 1.
    """
    current_year = current_year or date.today().year
    parts = (policy_number or "").strip().split("-")
    if len(parts) != 4 or not all(parts):
        raise ValidationError(
            f"Invalid policy number format: {policy_number!r}", code=ErrorCode.INVALID_POLICY_NUMBER
        )

    prefix, code, year_part, sequence_part = parts
    if not year_part.isdigit() or not sequence_part.isdigit():
        raise ValidationError(
            f"Year and sequence must be numeric in {policy_number!r}", code=ErrorCode.INVALID_POLICY_NUMBER
        )

    year = int(year_part)
    sequence = int(sequence_part)
    if year < MIN_YEAR or year > current_year + MAX_YEARS_AHEAD:
        raise ValidationError(
            f"Year {year} outside accepted range", code=ErrorCode.INVALID_POLICY_NUMBER
        )
    if sequence <= 0:
        raise ValidationError("Sequence number must be positive", code=ErrorCode.INVALID_POLICY_NUMBER)

    return ParsedPolicyNumber(
        company_prefix=prefix,
        policy_type=code,
        year=year,
        sequence_number=sequence,
    )


class NumberingService:
    """Allocates, previews and parses structured policy numbers."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        max_attempts: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._session_factory = session_factory
        self.max_attempts = max_attempts or settings.numbering_max_attempts
        self._today = today

    def allocate(
        self,
        company_id: int,
        policy_type: Union[str, PolicyType],
        year: Optional[int] = None,
    ) -> AllocatedNumber:
        """Reserve the next free number for (company, type, year).

        Raises:
            NotFoundError: unknown company.
            ValidationError: unknown policy type or out-of-range year.
            RetryExhaustedError: no free number within ``max_attempts``.
        """
        normalized_type = self._normalize_type(policy_type)
        year = self._resolve_year(year)
        code = type_code(normalized_type)
        prefix = self._load_prefix(company_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                sequence = self._reserve_next(company_id, normalized_type, year)
            except ConcurrencyConflict:
                metrics.record_allocation_attempt("race")
                logger.warning(
                    "Sequence seed race company_id=%s type=%s year=%s attempt=%s",
                    company_id, normalized_type, year, attempt,
                )
                continue

            policy_number = format_policy_number(prefix, code, year, sequence)
            if self._number_taken(policy_number):
                metrics.record_allocation_attempt("collision")
                logger.warning("Policy number %s already in use, attempt=%s", policy_number, attempt)
                continue

            metrics.record_allocation_attempt("allocated")
            return AllocatedNumber(
                policy_number=policy_number,
                company_prefix=prefix,
                policy_type=code,
                year=year,
                sequence_number=sequence,
            )

        metrics.record_allocation_attempt("exhausted")
        logger.error(
            "Could not allocate a policy number company_id=%s type=%s year=%s after %s attempts",
            company_id, normalized_type, year, self.max_attempts,
        )
        raise RetryExhaustedError(
            f"Failed to generate unique policy number after {self.max_attempts} attempts",
            details={"company_id": company_id, "policy_type": normalized_type, "year": year},
        )

    def parse(self, policy_number: str) -> ParsedPolicyNumber:
        return parse_policy_number(policy_number, current_year=self._today().year)

    def validate(self, policy_number: str) -> bool:
        try:
            self.parse(policy_number)
        except ValidationError:
            return False
        return True

    def next_for_all_types(self, company_id: int, year: Optional[int] = None) -> NextNumbers:
        """Preview the next number for each configured type without reserving anything."""
        year = self._resolve_year(year)
        result = NextNumbers(year=year)
        with session_scope(self._session_factory) as session:
            company = self._get_company(session, company_id)
            prefix = company_prefix(company)
            for policy_type in settings.numbering_preview_types:
                try:
                    normalized_type = self._normalize_type(policy_type)
                    sequence = self._peek_next(session, company_id, normalized_type, year)
                    result.next_numbers[policy_type] = NextNumber(
                        policy_number=format_policy_number(prefix, type_code(normalized_type), year, sequence),
                        sequence_number=sequence,
                    )
                except ValidationError as exc:
                    result.next_numbers[policy_type] = NextNumber(error=exc.message)
        return result

    def stats(self, company_id: int, year: Optional[int] = None) -> NumberingStats:
        """Count and highest sequence per policy type among stored policies."""
        year = self._resolve_year(year)
        result = NumberingStats(year=year)
        with session_scope(self._session_factory) as session:
            self._get_company(session, company_id)
            rows = session.execute(
                select(
                    Policy.policy_type,
                    func.count(Policy.id),
                    func.max(Policy.policy_counter),
                )
                .where(Policy.company_id == company_id, Policy.policy_year == year)
                .group_by(Policy.policy_type)
            ).all()
        for policy_type, count, max_counter in rows:
            last = int(max_counter or 0)
            result.total_policies += int(count)
            result.by_type[policy_type] = TypeStats(
                count=int(count),
                last_sequence_number=last,
                next_sequence_number=last + 1,
            )
        return result

    def _reserve_next(self, company_id: int, policy_type: str, year: int) -> int:
        """Atomically move the counter forward and return the new value."""
        with session_scope(self._session_factory) as session:
            bumped = session.execute(
                update(PolicySequence)
                .where(
                    PolicySequence.company_id == company_id,
                    PolicySequence.policy_type == policy_type,
                    PolicySequence.year == year,
                )
                .values(last_value=PolicySequence.last_value + 1, updated_at=datetime.utcnow())
                .returning(PolicySequence.last_value)
                .execution_options(synchronize_session=False)
            ).scalar_one_or_none()
            if bumped is not None:
                return int(bumped)

            seeded = self._max_counter(session, company_id, policy_type, year) + 1
            session.add(
                PolicySequence(company_id=company_id, policy_type=policy_type, year=year, last_value=seeded)
            )
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConcurrencyConflict("Sequence row created concurrently") from exc
            return seeded

    def _peek_next(self, session: Session, company_id: int, policy_type: str, year: int) -> int:
        reserved = session.scalar(
            select(PolicySequence.last_value).where(
                PolicySequence.company_id == company_id,
                PolicySequence.policy_type == policy_type,
                PolicySequence.year == year,
            )
        )
        return max(int(reserved or 0), self._max_counter(session, company_id, policy_type, year)) + 1

    @staticmethod
    def _max_counter(session: Session, company_id: int, policy_type: str, year: int) -> int:
        value = session.scalar(
            select(func.max(Policy.policy_counter)).where(
                Policy.company_id == company_id,
                Policy.policy_type == policy_type,
                Policy.policy_year == year,
            )
        )
        return int(value or 0)

    def _number_taken(self, policy_number: str) -> bool:
        with session_scope(self._session_factory) as session:
            return session.scalar(
                select(Policy.id).where(Policy.policy_number == policy_number)
            ) is not None

    def _load_prefix(self, company_id: int) -> str:
        with session_scope(self._session_factory) as session:
            return company_prefix(self._get_company(session, company_id))

    @staticmethod
    def _get_company(session: Session, company_id: int) -> Company:
        company = session.get(Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found", code=ErrorCode.COMPANY_NOT_FOUND)
        return company

    @staticmethod
    def _normalize_type(policy_type: Union[str, PolicyType]) -> str:
        try:
            return PolicyType(str(getattr(policy_type, "value", policy_type)).lower()).value
        except ValueError as exc:
            raise ValidationError(f"Unknown policy type {policy_type!r}") from exc

    def _resolve_year(self, year: Optional[int]) -> int:
        current = self._today().year
        year = year or current
        if year < MIN_YEAR or year > current + MAX_YEARS_AHEAD:
            raise ValidationError(f"Year {year} outside accepted range")
        return year
