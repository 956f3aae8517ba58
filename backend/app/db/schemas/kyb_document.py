"""
KYB document metadata
Append-only: every submission adds rows, nothing is deduplicated by type.
"""
from datetime import UTC, datetime
import uuid

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class KYBDocument(Base):
    __tablename__ = "kyb_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    document_name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Original filename")
    file_path: Mapped[str] = mapped_column(Text, nullable=False, comment="Path inside the kyb-documents bucket")
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    organization: Mapped["Organization"] = relationship(  # noqa: F821
        "Organization", back_populates="documents",
    )
