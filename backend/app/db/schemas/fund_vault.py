"""
Fund vaults (read-only here)
Disaster-relief funds that approved organizations can petition.
"""
from datetime import UTC, datetime
import uuid

from sqlalchemy import DateTime, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class FundVault(Base):
    __tablename__ = "fund_vaults"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vault_name: Mapped[str] = mapped_column(String(255), nullable=False)
    disaster_type: Mapped[str | None] = mapped_column(String(100))
    location: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    total_amount: Mapped[float | None] = mapped_column(Numeric(18, 2))
    remaining_amount: Mapped[float | None] = mapped_column(Numeric(18, 2))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", comment="active | closed")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
