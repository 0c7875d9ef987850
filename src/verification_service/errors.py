"""Exception taxonomy for the verification service core."""

from __future__ import annotations

from typing import Any, Dict, Optional

from verification_service.utils.error_codes import ErrorCode


class VerificationServiceError(Exception):
    """Base class; every error carries a stable ``code`` for callers."""

    default_code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(VerificationServiceError):
    """Malformed input. Raised before any storage write."""

    default_code = ErrorCode.VALIDATION_ERROR


class ConfigurationError(ValidationError):
    """A company is missing the endpoint or credential needed to sync."""

    default_code = ErrorCode.SYNC_NOT_CONFIGURED


class NotFoundError(VerificationServiceError):
    """Unknown company or policy reference."""

    default_code = ErrorCode.COMPANY_NOT_FOUND


class ConflictError(VerificationServiceError):
    """Duplicate unique key."""

    default_code = ErrorCode.DUPLICATE_KEY


class ConcurrencyConflict(ConflictError):
    """Lost race on sequence allocation; retried internally."""

    default_code = ErrorCode.SEQUENCE_RACE


class RetryExhaustedError(VerificationServiceError):
    """Numbering could not find a free number within the attempt budget."""

    default_code = ErrorCode.ALLOCATION_EXHAUSTED


class ExternalFetchError(VerificationServiceError):
    """Insurer feed timed out, answered with a bad status or a malformed payload."""

    default_code = ErrorCode.FEED_TRANSPORT
