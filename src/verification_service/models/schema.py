"""Typed request/response schemas and enumerations."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PolicyType(str, Enum):
    """Lines of business a policy can belong to."""
    AUTO = "auto"
    MOTOR_THIRD_PARTY = "motor_third_party"
    MOTOR_COMPREHENSIVE = "motor_comprehensive"
    GUARANTEED_BOND = "guaranteed_bond"
    INDEMNITY_BOND = "indemnity_bond"
    FIRE = "fire"
    MARINE = "marine"
    LIFE = "life"
    MEDICAL = "medical"
    TRAVEL = "travel"
    REAL_PROPERTY = "real_property"
    HEALTH = "health"
    PROPERTY = "property"
    BUSINESS = "business"
    OTHER = "other"


class PolicyStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class PolicyApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class CompanyStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class SyncFrequency(str, Enum):
    REALTIME = "realtime"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class VerificationStatus(str, Enum):
    """Outcome of one verification attempt."""
    VALID = "valid"
    FAKE = "fake"
    PENDING = "pending"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class VerificationMethod(str, Enum):
    SCAN = "scan"
    MANUAL = "manual"
    API = "api"


class AllocatedNumber(BaseModel):
    """A policy number reserved by the numbering service."""

    policy_number: str
    company_prefix: str
    policy_type: str = Field(description="Type segment as rendered in the number")
    year: int
    sequence_number: int = Field(ge=1)


class ParsedPolicyNumber(BaseModel):
    """Components recovered from a structured policy number."""

    company_prefix: str
    policy_type: str
    year: int
    sequence_number: int


class TypeStats(BaseModel):
    count: int
    last_sequence_number: int
    next_sequence_number: int


class NumberingStats(BaseModel):
    year: int
    total_policies: int = 0
    by_type: dict[str, TypeStats] = Field(default_factory=dict)


class NextNumber(BaseModel):
    policy_number: Optional[str] = None
    sequence_number: Optional[int] = None
    error: Optional[str] = None


class NextNumbers(BaseModel):
    year: int
    next_numbers: dict[str, NextNumber] = Field(default_factory=dict)


class PolicyCreate(BaseModel):
    """Insurer-side request to register a new policy under a generated number."""

    company_id: int
    holder_name: str = Field(min_length=1, max_length=100)
    policy_type: PolicyType = PolicyType.AUTO
    start_date: date
    expiry_date: date
    year: Optional[int] = None
    holder_id_number: Optional[str] = None
    holder_phone: Optional[str] = None
    holder_email: Optional[str] = None
    coverage_amount: Optional[float] = None
    premium_amount: Optional[float] = None
    details_json: Optional[dict[str, Any]] = None
    vehicle_info: Optional[dict[str, Any]] = None
    additional_beneficiaries: Optional[list[Any]] = None

    @field_validator("expiry_date")
    @classmethod
    def validate_window(cls, v: date, info) -> date:
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("expiry_date must not precede start_date")
        return v


class PolicyPayload(BaseModel):
    """One policy entry as delivered by an insurer feed."""

    model_config = ConfigDict(extra="ignore")

    policy_number: str = Field(min_length=1, max_length=100)
    holder_name: str = Field(min_length=1, max_length=100)
    start_date: date
    expiry_date: date
    policy_type: Optional[PolicyType] = None
    holder_id_number: Optional[str] = None
    holder_phone: Optional[str] = None
    holder_email: Optional[str] = None
    coverage_amount: Optional[float] = None
    premium_amount: Optional[float] = None
    details_json: Optional[dict[str, Any]] = None
    vehicle_info: Optional[dict[str, Any]] = None
    additional_beneficiaries: Optional[list[Any]] = None

    @field_validator("policy_number", "holder_name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class VerificationRequest(BaseModel):
    """A single claim to check against the policy store.

    ``company_id`` selects the company-scoped (public) path; without it the
    officer path searches across all companies and requires ``holder_name``.
    """

    policy_number: str = Field(min_length=1, max_length=100)
    holder_name: Optional[str] = Field(default=None, max_length=100)
    holder_id_number: Optional[str] = None
    expiry_date: Optional[date] = None
    company_id: Optional[int] = None
    officer_id: Optional[int] = None
    method: VerificationMethod = VerificationMethod.MANUAL
    location: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    additional_notes: Optional[str] = Field(default=None, max_length=1000)
    idempotency_key: Optional[str] = Field(default=None, max_length=100)

    @field_validator("policy_number")
    @classmethod
    def strip_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("policy_number is required")
        return v

    @field_validator("holder_name")
    @classmethod
    def blank_name_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class CompanySummary(BaseModel):
    id: int
    name: str
    status: CompanyStatus


class MatchedPolicy(BaseModel):
    id: int
    policy_number: str
    holder_name: str
    expiry_date: date
    company: CompanySummary


class VerificationResult(BaseModel):
    """What a caller receives for every verification attempt."""

    verification_id: Optional[int] = None
    status: VerificationStatus
    reason: str
    confidence_score: float = Field(ge=0.0, le=100.0)
    verified_at: datetime
    response_time_ms: int = Field(ge=0)
    matched_policy: Optional[MatchedPolicy] = None


class SyncEntryError(BaseModel):
    policy_number: str = "unknown"
    error: str


class SyncResult(BaseModel):
    """Summary of one synchronization run for one company."""

    company_id: int
    success: bool = False
    skipped: bool = False
    policies_created: int = 0
    policies_updated: int = 0
    errors: list[SyncEntryError] = Field(default_factory=list)
    transport_error: Optional[str] = None
    duration_ms: int = 0
