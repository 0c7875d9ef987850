"""Service layer for business logic."""

from verification_service.services.numbering import NumberingService
from verification_service.services.policy_store import PolicyLookup, PolicyStore
from verification_service.services.verification import VerificationEngine
from verification_service.services.feed_client import FeedClient
from verification_service.services.sync import SyncService

__all__ = [
    "NumberingService",
    "PolicyLookup",
    "PolicyStore",
    "VerificationEngine",
    "FeedClient",
    "SyncService",
]
