"""Data models for the verification service."""

from verification_service.models.schema import (
    AllocatedNumber,
    CompanyStatus,
    ParsedPolicyNumber,
    PolicyCreate,
    PolicyPayload,
    PolicyStatus,
    PolicyType,
    SyncFrequency,
    SyncResult,
    VerificationMethod,
    VerificationRequest,
    VerificationResult,
    VerificationStatus,
)
from verification_service.models.records import (
    Base,
    Company,
    Policy,
    PolicySequence,
    Verification,
    compute_policy_hash,
)

__all__ = [
    "AllocatedNumber",
    "CompanyStatus",
    "ParsedPolicyNumber",
    "PolicyCreate",
    "PolicyPayload",
    "PolicyStatus",
    "PolicyType",
    "SyncFrequency",
    "SyncResult",
    "VerificationMethod",
    "VerificationRequest",
    "VerificationResult",
    "VerificationStatus",
    "Base",
    "Company",
    "Policy",
    "PolicySequence",
    "Verification",
    "compute_policy_hash",
]
