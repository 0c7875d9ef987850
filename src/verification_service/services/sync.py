"""
Per-company reconciliation against insurer feeds, plus the daily expiry sweep.

Every approved, active company with a non-manual frequency gets one recurring
job in the injected ``Scheduler``. At most one run per company is in flight in
this process; a tick that arrives while a run is going is skipped, not queued.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import date, datetime
from functools import partial
from typing import Any, Callable, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from verification_service.config import settings
from verification_service.errors import (
    ConfigurationError,
    ExternalFetchError,
    NotFoundError,
    ValidationError,
)
from verification_service.models.records import Company
from verification_service.models.schema import (
    CompanyStatus,
    PolicyPayload,
    SyncEntryError,
    SyncFrequency,
    SyncResult,
    SyncStatus,
)
from verification_service.observability import metrics
from verification_service.persistence import session_scope
from verification_service.scheduling import CronScheduler, Scheduler
from verification_service.services.collaborators import AuditEvent, AuditSink, LoggingAuditSink, safe_record
from verification_service.services.feed_client import FeedClient
from verification_service.services.policy_store import PolicyStore
from verification_service.utils.error_codes import ErrorCode
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)

SWEEP_JOB_KEY = "sweep:expired-policies"


def company_job_key(company_id: int) -> str:
    return f"company-sync:{company_id}"


def cron_for_frequency(frequency: str) -> Optional[str]:
    """Cron expression for a sync frequency; ``None`` means no timer."""
    hour = settings.sync_daily_hour
    schedules = {
        SyncFrequency.REALTIME.value: f"*/{settings.sync_realtime_minutes} * * * *",
        SyncFrequency.HOURLY.value: "0 * * * *",
        SyncFrequency.DAILY.value: f"0 {hour} * * *",
        SyncFrequency.WEEKLY.value: f"0 {hour} * * {settings.sync_weekly_day}",
    }
    return schedules.get(frequency)


def is_sync_eligible(company: Company) -> bool:
    return company.status == CompanyStatus.APPROVED.value and bool(company.is_active)


class SyncService:
    """Owns the per-company sync jobs and the expiry sweep."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        scheduler: Optional[Scheduler] = None,
        feed_client: Optional[FeedClient] = None,
        policy_store: Optional[PolicyStore] = None,
        audit_sink: Optional[AuditSink] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.scheduler = scheduler or CronScheduler()
        self.feed_client = feed_client or FeedClient()
        self.policy_store = policy_store or PolicyStore(session_factory)
        self.audit_sink = audit_sink or LoggingAuditSink()
        self._today = today
        self._now = now
        self._in_flight: Set[int] = set()
        self._in_flight_lock = threading.Lock()

    def start(self) -> None:
        """Register jobs for every eligible company and the sweep, then start firing."""
        with session_scope(self._session_factory) as session:
            companies = list(
                session.scalars(
                    select(Company).where(
                        Company.status == CompanyStatus.APPROVED.value,
                        Company.is_active.is_(True),
                        Company.sync_frequency != SyncFrequency.MANUAL.value,
                    )
                )
            )
        for company in companies:
            self.schedule_company(company)
        self.scheduler.register_recurring(SWEEP_JOB_KEY, settings.sweep_cron, self.sweep_expired)
        self.scheduler.start()
        logger.info("Sync service started with %s company job(s)", len(companies))

    def stop(self) -> None:
        self.scheduler.shutdown()
        logger.info("Sync service stopped")

    def schedule_company(self, company: Company) -> bool:
        """(Re)register the company's job; returns False when no timer applies."""
        key = company_job_key(company.id)
        self.scheduler.cancel(key)
        cron = cron_for_frequency(company.sync_frequency)
        if cron is None or not is_sync_eligible(company):
            return False
        self.scheduler.register_recurring(key, cron, partial(self.sync_company, company.id))
        logger.info("Scheduled sync for company %s (%s)", company.name, company.sync_frequency)
        return True

    def cancel_company(self, company_id: int) -> bool:
        return self.scheduler.cancel(company_job_key(company_id))

    def reschedule(self, company_id: int) -> bool:
        """Re-derive the company's timer after a frequency or status change."""
        with session_scope(self._session_factory) as session:
            company = self._get_company(session, company_id)
        return self.schedule_company(company)

    def trigger_manual_sync(self, company_id: int) -> SyncResult:
        """Run a sync now, whatever the configured frequency.

        Raises:
            NotFoundError: unknown company.
            ValidationError: company is not approved and active.
        """
        with session_scope(self._session_factory) as session:
            company = self._get_company(session, company_id)
            if not is_sync_eligible(company):
                raise ValidationError(
                    "Company is not approved or active", code=ErrorCode.COMPANY_NOT_APPROVED
                )
        return self.sync_company(company_id)

    def sync_company(self, company_id: int) -> SyncResult:
        """One synchronization run; transport failures are recorded, never raised."""
        with self._in_flight_lock:
            if company_id in self._in_flight:
                logger.info("Sync already running for company_id=%s, skipping tick", company_id)
                metrics.record_sync_run("skipped")
                return SyncResult(company_id=company_id, skipped=True)
            self._in_flight.add(company_id)
        try:
            return self._run(company_id)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(company_id)

    def sweep_expired(self) -> int:
        """Expire every active policy whose expiry date is before today."""
        today = self._today()
        count = self.policy_store.expire_stale(today)
        logger.info("Marked %s policies as expired", count)
        metrics.record_expired(count)
        safe_record(
            self.audit_sink,
            AuditEvent(
                action="CLEANUP_EXPIRED_POLICIES",
                entity_type="POLICY",
                details={"expired_count": count, "as_of": today.isoformat()},
            ),
        )
        return count

    def _run(self, company_id: int) -> SyncResult:
        started = time.perf_counter()
        with session_scope(self._session_factory) as session:
            company = self._get_company(session, company_id)
            name, frequency = company.name, company.sync_frequency
            endpoint, api_key = company.api_endpoint, company.api_key

        logger.info("Starting sync for company: %s", name)
        result = SyncResult(company_id=company_id)
        try:
            if not endpoint or not api_key:
                raise ConfigurationError("API endpoint or API key not configured")
            entries = self.feed_client.fetch(endpoint, api_key)
        except (ConfigurationError, ExternalFetchError) as exc:
            result.transport_error = exc.message
            logger.error("Sync failed for company %s: %s", name, exc.message)
        else:
            synced_at = self._now()
            for entry in entries:
                self._process_entry(company_id, entry, synced_at, result)
            result.success = True
            logger.info(
                "Sync completed for %s: %s created, %s updated, %s failed",
                name, result.policies_created, result.policies_updated, len(result.errors),
            )

        result.duration_ms = int((time.perf_counter() - started) * 1000)
        self._record_outcome(company_id, result)
        self._audit(company_id, name, frequency, result)
        metrics.record_sync_run(
            "success" if result.success else "failed",
            created=result.policies_created,
            updated=result.policies_updated,
            failed=len(result.errors),
            duration_seconds=result.duration_ms / 1000,
        )
        return result

    def _process_entry(self, company_id: int, entry: Any, synced_at: datetime, result: SyncResult) -> None:
        policy_number = "unknown"
        if isinstance(entry, dict) and entry.get("policy_number"):
            policy_number = str(entry["policy_number"])
        try:
            payload = PolicyPayload.model_validate(entry)
            outcome = self.policy_store.upsert_from_feed(company_id, payload, synced_at)
        except Exception as exc:  # noqa: BLE001
            message = getattr(exc, "message", None) or str(exc)
            logger.warning("Skipping feed entry %s for company_id=%s: %s", policy_number, company_id, message)
            result.errors.append(SyncEntryError(policy_number=policy_number, error=message))
            return
        if outcome == "created":
            result.policies_created += 1
        else:
            result.policies_updated += 1

    def _record_outcome(self, company_id: int, result: SyncResult) -> None:
        if result.success:
            sync_error = (
                json.dumps([error.model_dump() for error in result.errors]) if result.errors else None
            )
        else:
            sync_error = result.transport_error
        with session_scope(self._session_factory) as session:
            company = self._get_company(session, company_id)
            company.last_sync = self._now()
            company.sync_status = SyncStatus.SUCCESS.value if result.success else SyncStatus.FAILED.value
            company.sync_error = sync_error

    def _audit(self, company_id: int, name: str, frequency: str, result: SyncResult) -> None:
        errors = [error.model_dump() for error in result.errors]
        if result.transport_error:
            errors.append({"error": result.transport_error})
        safe_record(
            self.audit_sink,
            AuditEvent(
                action="DATA_SYNC",
                entity_type="COMPANY",
                entity_id=company_id,
                severity="low" if result.success else "high",
                status="success" if result.success else "failed",
                details={
                    "company_name": name,
                    "sync_frequency": frequency,
                    "duration_ms": result.duration_ms,
                    "policies_created": result.policies_created,
                    "policies_updated": result.policies_updated,
                    "error_count": len(errors),
                },
                error_message=json.dumps(errors) if errors else None,
            ),
        )

    @staticmethod
    def _get_company(session, company_id: int) -> Company:
        company = session.get(Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found", code=ErrorCode.COMPANY_NOT_FOUND)
        return company
