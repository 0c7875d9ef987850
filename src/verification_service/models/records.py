"""Database models for the policy store."""

import hashlib
import json
from datetime import date, datetime
from typing import Any, Optional
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def compute_policy_hash(policy_number: str, holder_name: str, expiry_date: date, company_id: int) -> str:
    """Fingerprint used for tamper and duplicate detection."""
    material = json.dumps(
        {
            "company_id": company_id,
            "expiry_date": expiry_date.isoformat(),
            "holder_name": holder_name,
            "policy_number": policy_number,
        },
        sort_keys=True,
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class Company(Base):
    """Approved (or pending) insurer and its feed configuration."""

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    license_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    registration_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    api_endpoint: Mapped[Optional[str]] = mapped_column(String(255))
    api_key: Mapped[Optional[str]] = mapped_column(String(255))
    sync_frequency: Mapped[str] = mapped_column(String(20), default="daily", nullable=False)
    last_sync: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sync_status: Mapped[Optional[str]] = mapped_column(String(20))
    sync_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    policies: Mapped[list["Policy"]] = relationship(back_populates="company")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'suspended', 'rejected')",
            name="ck_company_status"
        ),
        CheckConstraint(
            "sync_frequency IN ('realtime', 'hourly', 'daily', 'weekly', 'manual')",
            name="ck_company_sync_frequency"
        ),
        CheckConstraint(
            "sync_status IS NULL OR sync_status IN ('success', 'failed', 'pending')",
            name="ck_company_sync_status"
        ),
    )


class Policy(Base):
    """An insurance contract held on behalf of an insurer."""

    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    holder_name: Mapped[str] = mapped_column(String(100), nullable=False)
    holder_id_number: Mapped[Optional[str]] = mapped_column(String(50))
    holder_phone: Mapped[Optional[str]] = mapped_column(String(20))
    holder_email: Mapped[Optional[str]] = mapped_column(String(100))
    policy_type: Mapped[str] = mapped_column(String(50), default="auto", nullable=False)
    coverage_amount: Mapped[Optional[float]] = mapped_column(Numeric(15, 2, asdecimal=False))
    premium_amount: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    details_json: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    vehicle_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    additional_beneficiaries: Mapped[Optional[list[Any]]] = mapped_column(JSON)
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    policy_year: Mapped[Optional[int]] = mapped_column(Integer)
    policy_counter: Mapped[Optional[int]] = mapped_column(Integer)
    last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    company: Mapped[Company] = relationship(back_populates="policies")

    __table_args__ = (
        UniqueConstraint("company_id", "policy_number", name="uq_policies_company_number"),
        CheckConstraint(
            "status IN ('active', 'expired', 'cancelled', 'suspended')",
            name="ck_policy_status"
        ),
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'declined')",
            name="ck_policy_approval_status"
        ),
        Index("ix_policies_sequence", "company_id", "policy_type", "policy_year"),
        Index("ix_policies_status_expiry", "status", "expiry_date"),
    )

    def refresh_hash(self) -> None:
        self.hash = compute_policy_hash(
            self.policy_number, self.holder_name, self.expiry_date, self.company_id
        )


class PolicySequence(Base):
    """Last issued sequence value per (company, policy type, year).

    Rows only ever move forward so a value is never handed out twice, even
    after the policy that consumed it is gone.
    """

    __tablename__ = "policy_sequences"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), primary_key=True)
    policy_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("last_value >= 1", name="ck_policy_sequence_positive"),
    )


class Verification(Base):
    """Immutable record of one verification attempt."""

    __tablename__ = "verifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_number: Mapped[str] = mapped_column(String(100), nullable=False)
    holder_name: Mapped[Optional[str]] = mapped_column(String(100))
    holder_id_number: Mapped[Optional[str]] = mapped_column(String(100))
    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    officer_id: Mapped[Optional[int]] = mapped_column(Integer)
    company_id: Mapped[Optional[int]] = mapped_column(ForeignKey("companies.id"))
    policy_id: Mapped[Optional[int]] = mapped_column(ForeignKey("policies.id"))
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    confidence_score: Mapped[Optional[float]] = mapped_column(Numeric(5, 2, asdecimal=False))
    verification_method: Mapped[str] = mapped_column(String(10), default="manual", nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    latitude: Mapped[Optional[float]] = mapped_column(Numeric(10, 8, asdecimal=False))
    longitude: Mapped[Optional[float]] = mapped_column(Numeric(11, 8, asdecimal=False))
    additional_notes: Mapped[Optional[str]] = mapped_column(Text)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('valid', 'fake', 'pending', 'expired', 'not_found')",
            name="ck_verification_status"
        ),
        CheckConstraint(
            "verification_method IN ('scan', 'manual', 'api')",
            name="ck_verification_method"
        ),
        CheckConstraint(
            "confidence_score IS NULL OR (confidence_score >= 0 AND confidence_score <= 100)",
            name="ck_verification_confidence"
        ),
        Index("ix_verifications_policy_number", "policy_number"),
        Index("ix_verifications_company", "company_id", "created_at"),
    )
