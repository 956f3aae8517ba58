"""
Organization profile table
One row per claimant (user_id unique). Resubmission overwrites every
mutable column and puts kyb_status back to pending.
"""
from datetime import UTC, date, datetime
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Integer, Numeric, String, Text, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint(
            "kyb_status IN ('pending', 'in_review', 'approved', 'rejected')",
            name="ck_organizations_kyb_status",
        ),
        CheckConstraint(
            "risk_rating IS NULL OR risk_rating IN ('low', 'medium', 'high')",
            name="ck_organizations_risk_rating",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True,
        comment="Claimant identity from the auth provider",
    )

    # ── Identity ──────────────────────────────────────────────
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    legal_name: Mapped[str | None] = mapped_column(String(255))
    trading_name: Mapped[str | None] = mapped_column(String(255))
    registration_number: Mapped[str | None] = mapped_column(String(100))
    tax_identification_number: Mapped[str | None] = mapped_column(String(100))
    vat_number: Mapped[str | None] = mapped_column(String(100))
    legal_structure: Mapped[str | None] = mapped_column(String(50))
    incorporation_date: Mapped[date | None] = mapped_column(Date)
    incorporation_country: Mapped[str | None] = mapped_column(String(100))
    incorporation_state: Mapped[str | None] = mapped_column(String(100))

    # ── Registered address ───────────────────────────────────
    registered_address_line1: Mapped[str | None] = mapped_column(String(255))
    registered_address_line2: Mapped[str | None] = mapped_column(String(255))
    registered_city: Mapped[str | None] = mapped_column(String(100))
    registered_state: Mapped[str | None] = mapped_column(String(100))
    registered_postal_code: Mapped[str | None] = mapped_column(String(20))
    registered_country: Mapped[str | None] = mapped_column(String(100))

    # ── Operating address ────────────────────────────────────
    operating_address_line1: Mapped[str | None] = mapped_column(String(255))
    operating_address_line2: Mapped[str | None] = mapped_column(String(255))
    operating_city: Mapped[str | None] = mapped_column(String(100))
    operating_state: Mapped[str | None] = mapped_column(String(100))
    operating_postal_code: Mapped[str | None] = mapped_column(String(20))
    operating_country: Mapped[str | None] = mapped_column(String(100))

    # ── Contact ──────────────────────────────────────────────
    phone_number: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(255))
    website: Mapped[str | None] = mapped_column(String(255))

    # ── Business classification / scale ──────────────────────
    industry_sector: Mapped[str | None] = mapped_column(String(50))
    business_description: Mapped[str | None] = mapped_column(Text)
    naics_code: Mapped[str | None] = mapped_column(String(10))
    sic_code: Mapped[str | None] = mapped_column(String(10))
    annual_revenue: Mapped[float | None] = mapped_column(Numeric(18, 2))
    number_of_employees: Mapped[int | None] = mapped_column(Integer)

    # ── Banking ──────────────────────────────────────────────
    bank_name: Mapped[str | None] = mapped_column(String(255))
    bank_account_number: Mapped[str | None] = mapped_column(String(100))
    bank_routing_number: Mapped[str | None] = mapped_column(String(100))
    iban: Mapped[str | None] = mapped_column(String(64))
    swift_code: Mapped[str | None] = mapped_column(String(20))

    # ── Risk flags ───────────────────────────────────────────
    politically_exposed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    high_risk_jurisdiction: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    logo_url: Mapped[str | None] = mapped_column(Text)

    # ── Verification queue ───────────────────────────────────
    kyb_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
        comment="pending | in_review | approved | rejected",
    )
    risk_rating: Mapped[str | None] = mapped_column(
        String(10), comment="low | medium | high (set by reviewers)",
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    ubos: Mapped[list["UltimateBeneficialOwner"]] = relationship(  # noqa: F821
        "UltimateBeneficialOwner",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    documents: Mapped[list["KYBDocument"]] = relationship(  # noqa: F821
        "KYBDocument",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
