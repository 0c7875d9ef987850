"""Canonical error codes shared by the numbering, verification and sync components."""


class ErrorCode:
    """String constants describing known failure situations."""

    VALIDATION_ERROR = "validation_error"
    INVALID_POLICY_NUMBER = "invalid_policy_number"
    COMPANY_NOT_FOUND = "company_not_found"
    COMPANY_NOT_APPROVED = "company_not_approved"
    DUPLICATE_KEY = "duplicate_key"
    SEQUENCE_RACE = "sequence_race"
    ALLOCATION_EXHAUSTED = "allocation_exhausted"
    SYNC_NOT_CONFIGURED = "sync_not_configured"
    FEED_TIMEOUT = "feed_timeout"
    FEED_BAD_STATUS = "feed_bad_status"
    FEED_MALFORMED = "feed_malformed"
    FEED_TRANSPORT = "feed_transport"
