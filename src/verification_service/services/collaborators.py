"""
Seams to the collaborators that live outside the core: the audit sink and the
event broadcaster. Both are best-effort; a failure is logged and swallowed so
the primary operation still completes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from verification_service.utils.logging import get_logger, log_event

logger = get_logger(__name__)


@dataclass
class AuditEvent:
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    severity: str = "low"
    status: str = "success"
    user_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        ...


class EventBroadcaster(Protocol):
    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingAuditSink:
    """Default sink: writes audit events to the service log."""

    def record(self, event: AuditEvent) -> None:
        log_event(
            logger,
            "audit",
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            severity=event.severity,
            status=event.status,
            error_message=event.error_message,
        )


class NullBroadcaster:
    """Used when no real-time transport is wired in."""

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        logger.debug("broadcast dropped channel=%s event=%s", channel, payload.get("event"))


def company_channel(company_id: int) -> str:
    return f"company:{company_id}"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def safe_record(sink: AuditSink, event: AuditEvent) -> None:
    try:
        sink.record(event)
    except Exception:  # noqa: BLE001
        logger.exception("Audit sink failed for action=%s", event.action)


def safe_publish(broadcaster: EventBroadcaster, channel: str, payload: Dict[str, Any]) -> None:
    try:
        broadcaster.publish(channel, payload)
    except Exception:  # noqa: BLE001
        logger.exception("Broadcast failed on channel=%s", channel)
