from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from pms.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaseType(str, Enum):
    DEMARCATION = "DEMARCATION"
    DPC = "DPC"
    OCCUPANCY = "OCCUPANCY"
    COMPLETION = "COMPLETION"
    WATER_CONNECTION = "WATER_CONNECTION"
    SEWERAGE_CONNECTION = "SEWERAGE_CONNECTION"
    TRANSFER = "TRANSFER"
    MORTGAGE = "MORTGAGE"
    REGISTRATION = "REGISTRATION"


class PropertyStatus(str, Enum):
    AVAILABLE = "available"
    ALLOTTED = "allotted"
    TRANSFERRED = "transferred"
    MORTGAGED = "mortgaged"


class InspectionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UserRole(str, Enum):
    ADMIN = "admin"
    OFFICER = "officer"
    INSPECTOR = "inspector"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.OFFICER,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Party(db.Model):
    # Owners, applicants, transferees
    __tablename__ = "party"

    id: Mapped[int] = mapped_column(primary_key=True)
    party_type: Mapped[str] = mapped_column(db.String(20), nullable=False, default="individual")
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Property(db.Model):
    __tablename__ = "property"

    id: Mapped[int] = mapped_column(primary_key=True)
    parcel_no: Mapped[str] = mapped_column(db.String(60), unique=True, nullable=False)
    address: Mapped[str] = mapped_column(db.String(255), nullable=False)
    area: Mapped[Decimal] = mapped_column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    land_use: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("party.id"), nullable=True)
    status: Mapped[PropertyStatus] = mapped_column(
        SAEnum(PropertyStatus, name="property_status"),
        nullable=False,
        default=PropertyStatus.AVAILABLE,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    owner = relationship("Party")

    @validates("area")
    def validate_area(self, _key, value):
        if value is not None and Decimal(value) < 0:
            raise ValueError("Property area cannot be negative")
        return value


class SequenceCounter(db.Model):
    __tablename__ = "sequence_counter"
    __table_args__ = (UniqueConstraint("prefix", "year", name="uq_sequence_counter_prefix_year"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    prefix: Mapped[str] = mapped_column(db.String(30), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    current_value: Mapped[int] = mapped_column(db.BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class WorkflowCase(db.Model):
    __tablename__ = "workflow_case"
    __table_args__ = (
        UniqueConstraint("case_number", name="uq_workflow_case_number"),
        UniqueConstraint("certificate_number", name="uq_workflow_case_certificate_number"),
        CheckConstraint(
            "(certificate_number IS NULL AND pdf_path IS NULL AND hash_sha256 IS NULL "
            "AND qr_code IS NULL AND issued_at IS NULL) OR "
            "(certificate_number IS NOT NULL AND pdf_path IS NOT NULL AND hash_sha256 IS NOT NULL "
            "AND qr_code IS NOT NULL AND issued_at IS NOT NULL)",
            name="ck_workflow_case_issuance_all_or_nothing",
        ),
        Index("ix_workflow_case_type_status", "case_type", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    case_type: Mapped[CaseType] = mapped_column(SAEnum(CaseType, name="case_type"), nullable=False)
    case_number: Mapped[str] = mapped_column(db.String(40), nullable=False)
    certificate_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    status: Mapped[str] = mapped_column(db.String(40), nullable=False)
    # Bumped on every workflow write; guards actions that keep the status
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    subject_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)
    party_id: Mapped[int] = mapped_column(ForeignKey("party.id"), nullable=False, index=True)
    counterparty_id: Mapped[int | None] = mapped_column(ForeignKey("party.id"), nullable=True)
    details: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    checklist: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    inspection_id: Mapped[int | None] = mapped_column(
        ForeignKey("inspection.id", use_alter=True, name="fk_workflow_case_inspection"),
        nullable=True,
    )
    fee: Mapped[Decimal | None] = mapped_column(db.Numeric(15, 2), nullable=True)
    sla_due: Mapped[datetime | None] = mapped_column(nullable=True)
    pdf_path: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    hash_sha256: Mapped[str | None] = mapped_column(db.String(64), nullable=True, index=True)
    qr_code: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    issued_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejection_reason: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    closure_reason: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    subject = relationship("Property")
    party = relationship("Party", foreign_keys=[party_id])
    counterparty = relationship("Party", foreign_keys=[counterparty_id])
    inspection = relationship("Inspection", foreign_keys=[inspection_id], post_update=True)
    inspections = relationship(
        "Inspection",
        foreign_keys="Inspection.case_id",
        back_populates="case",
        order_by="Inspection.id",
    )
    events = relationship("CaseEvent", back_populates="case", order_by="CaseEvent.id")
    issuer = relationship("User", foreign_keys=[issued_by])

    @property
    def is_issued(self) -> bool:
        return self.certificate_number is not None


class Inspection(db.Model):
    __tablename__ = "inspection"

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("workflow_case.id"), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False)
    inspection_type: Mapped[str] = mapped_column(db.String(40), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    inspected_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    status: Mapped[InspectionStatus] = mapped_column(
        SAEnum(InspectionStatus, name="inspection_status"),
        nullable=False,
        default=InspectionStatus.SCHEDULED,
    )
    result: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    photos: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    remarks: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    inspected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("WorkflowCase", foreign_keys=[case_id], back_populates="inspections")
    inspector = relationship("User")


class CaseEvent(db.Model):
    # Audit trail: one row per successful workflow action
    __tablename__ = "case_event"

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("workflow_case.id"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    from_status: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    to_status: Mapped[str] = mapped_column(db.String(40), nullable=False)
    details: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    event_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("WorkflowCase", back_populates="events")
    user = relationship("User")


def seed_demo_data(session) -> None:
    admin = User(
        email="admin@pms.local",
        full_name="Admin PMS",
        password_hash=generate_password_hash("admin123"),
        role=UserRole.ADMIN,
    )
    officer = User(
        email="officer@pms.local",
        full_name="Case Officer",
        password_hash=generate_password_hash("officer123"),
        role=UserRole.OFFICER,
    )
    inspector = User(
        email="inspector@pms.local",
        full_name="Field Inspector",
        password_hash=generate_password_hash("inspector123"),
        role=UserRole.INSPECTOR,
    )
    session.add_all([admin, officer, inspector])

    parties = [
        Party(name="Asha Verma", address="12 Civil Lines", phone="9810000001", email="asha@example.com"),
        Party(name="Rohit Mehra", address="44 Model Town", phone="9810000002"),
        Party(name="Sunrise Builders Pvt Ltd", party_type="company", address="Plot 9, Sector 18", phone="9810000003"),
    ]
    session.add_all(parties)

    properties = [
        Property(parcel_no="PRC-0001", address="Plot 1, Sector 21", area=Decimal("250.00"), land_use="residential"),
        Property(
            parcel_no="PRC-0002",
            address="Plot 2, Sector 21",
            area=Decimal("640.00"),
            land_use="commercial",
            status=PropertyStatus.ALLOTTED,
            owner=parties[2],
        ),
        Property(
            parcel_no="PRC-0003",
            address="Plot 7, Sector 4",
            area=Decimal("300.00"),
            land_use="residential",
            status=PropertyStatus.ALLOTTED,
            owner=parties[0],
        ),
    ]
    session.add_all(properties)
    session.commit()
