"""
Ultimate beneficial owners
Child rows of an organization; the set sent with a submission replaces the
previous set for that organization.
"""
from datetime import UTC, datetime
import uuid

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class UltimateBeneficialOwner(Base):
    __tablename__ = "ultimate_beneficial_owners"
    __table_args__ = (
        CheckConstraint(
            "ownership_percentage >= 0 AND ownership_percentage <= 100",
            name="ck_ubo_ownership_percentage",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    position_title: Mapped[str | None] = mapped_column(String(100))
    ownership_percentage: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    organization: Mapped["Organization"] = relationship(  # noqa: F821
        "Organization", back_populates="ubos",
    )
