"""Pytest configuration and fixtures."""

from datetime import date, datetime
from typing import Any, Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient

from verification_service.api.app import create_app
from verification_service.models.records import Company, Policy
from verification_service.persistence import create_session_factory, init_db, session_scope
from verification_service.scheduling import Scheduler
from verification_service.services.collaborators import AuditEvent

TODAY = date(2025, 6, 15)
NOW = datetime(2025, 6, 15, 9, 30, 0)


class RecordingAuditSink:
    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [event.action for event in self.events]


class RecordingBroadcaster:
    def __init__(self):
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        self.messages.append((channel, payload))

    def channels(self, event: str) -> List[str]:
        return [channel for channel, payload in self.messages if payload["event"] == event]


class ManualScheduler(Scheduler):
    """Scheduler driven by the test: jobs run only when ``fire`` is called."""

    def __init__(self):
        self.jobs: Dict[str, Tuple[str, Any]] = {}
        self.started = False
        self.stopped = False

    def register_recurring(self, key, cron, fn):
        self.jobs[key] = (cron, fn)

    def cancel(self, key):
        return self.jobs.pop(key, None) is not None

    def is_registered(self, key):
        return key in self.jobs

    def keys(self):
        return sorted(self.jobs)

    def start(self):
        self.started = True

    def shutdown(self, wait=False):
        self.stopped = True
        self.jobs.clear()

    def cron(self, key):
        return self.jobs[key][0]

    def fire(self, key):
        return self.jobs[key][1]()


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite policy store per test."""
    factory = create_session_factory(f"sqlite:///{tmp_path / 'verification.db'}")
    init_db(factory)
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def companies(session_factory):
    """Seeded insurers keyed by role in the tests."""
    seeded = {
        "approved": Company(
            name="Atlantic Life & General",
            license_number="ATL-001-2023",
            status="approved",
            sync_frequency="daily",
            api_endpoint="https://feeds.atlantic.example/policies",
            api_key="atl-secret",
        ),
        "hourly": Company(
            name="Star Insurance",
            license_number="STAR-77",
            status="approved",
            sync_frequency="hourly",
        ),
        "manual": Company(
            name="Monrovia Mutual",
            status="approved",
            sync_frequency="manual",
        ),
        "suspended": Company(
            name="Old Harbor Assurance",
            license_number="OHA-5",
            status="suspended",
            sync_frequency="daily",
            api_endpoint="https://feeds.oldharbor.example/policies",
            api_key="oha-secret",
        ),
        "pending": Company(
            name="New Dawn Insurance",
            status="pending",
            sync_frequency="weekly",
        ),
    }
    with session_scope(session_factory) as session:
        session.add_all(seeded.values())
        session.flush()
        ids = {role: company.id for role, company in seeded.items()}
    return ids


@pytest.fixture
def add_policy(session_factory):
    """Insert a policy directly, bypassing numbering."""

    def _add(company_id, policy_number, holder_name="John Doe", expiry_date=date(2026, 1, 1), **fields):
        fields.setdefault("start_date", date(2025, 1, 1))
        fields.setdefault("policy_type", "auto")
        policy = Policy(
            policy_number=policy_number,
            holder_name=holder_name,
            expiry_date=expiry_date,
            company_id=company_id,
            **fields,
        )
        policy.refresh_hash()
        with session_scope(session_factory) as session:
            session.add(policy)
            session.flush()
            return policy.id

    return _add


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def app(session_factory):
    """Create FastAPI app for testing."""
    return create_app(session_factory=session_factory, start_scheduler=False)


@pytest.fixture
def client(app):
    """Create test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def now():
    return NOW
