"""KYB intake schema

Initial tables:
  - organizations (one profile per claimant, verification queue)
  - ultimate_beneficial_owners (replaced on every submission)
  - kyb_documents (append-only document metadata)
  - fund_vaults (read-only here, shown on the dashboard)

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade() -> None:
    # ── 1. organizations ──────────────────────────────────────────────────
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True,
                  comment="Claimant identity from the auth provider"),
        # identity
        sa.Column("organization_name", sa.String(255), nullable=False),
        sa.Column("legal_name", sa.String(255)),
        sa.Column("trading_name", sa.String(255)),
        sa.Column("registration_number", sa.String(100)),
        sa.Column("tax_identification_number", sa.String(100)),
        sa.Column("vat_number", sa.String(100)),
        sa.Column("legal_structure", sa.String(50)),
        sa.Column("incorporation_date", sa.Date),
        sa.Column("incorporation_country", sa.String(100)),
        sa.Column("incorporation_state", sa.String(100)),
        # registered address
        sa.Column("registered_address_line1", sa.String(255)),
        sa.Column("registered_address_line2", sa.String(255)),
        sa.Column("registered_city", sa.String(100)),
        sa.Column("registered_state", sa.String(100)),
        sa.Column("registered_postal_code", sa.String(20)),
        sa.Column("registered_country", sa.String(100)),
        # operating address
        sa.Column("operating_address_line1", sa.String(255)),
        sa.Column("operating_address_line2", sa.String(255)),
        sa.Column("operating_city", sa.String(100)),
        sa.Column("operating_state", sa.String(100)),
        sa.Column("operating_postal_code", sa.String(20)),
        sa.Column("operating_country", sa.String(100)),
        # contact
        sa.Column("phone_number", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("website", sa.String(255)),
        # business
        sa.Column("industry_sector", sa.String(50)),
        sa.Column("business_description", sa.Text),
        sa.Column("naics_code", sa.String(10)),
        sa.Column("sic_code", sa.String(10)),
        sa.Column("annual_revenue", sa.Numeric(18, 2)),
        sa.Column("number_of_employees", sa.Integer),
        # banking
        sa.Column("bank_name", sa.String(255)),
        sa.Column("bank_account_number", sa.String(100)),
        sa.Column("bank_routing_number", sa.String(100)),
        sa.Column("iban", sa.String(64)),
        sa.Column("swift_code", sa.String(20)),
        # risk flags
        sa.Column("politically_exposed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("high_risk_jurisdiction", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("logo_url", sa.Text),
        # verification queue
        sa.Column("kyb_status", sa.String(20), nullable=False, server_default="pending",
                  comment="pending | in_review | approved | rejected"),
        sa.Column("risk_rating", sa.String(10), comment="low | medium | high (set by reviewers)"),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "kyb_status IN ('pending', 'in_review', 'approved', 'rejected')",
            name="ck_organizations_kyb_status",
        ),
        sa.CheckConstraint(
            "risk_rating IS NULL OR risk_rating IN ('low', 'medium', 'high')",
            name="ck_organizations_risk_rating",
        ),
    )
    op.create_index("ix_organizations_user_id", "organizations", ["user_id"])
    op.create_index("ix_organizations_kyb_status", "organizations", ["kyb_status"])

    # ── 2. ultimate_beneficial_owners ─────────────────────────────────────
    op.create_table(
        "ultimate_beneficial_owners",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("organization_id", sa.Uuid(as_uuid=True),
                  sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("position_title", sa.String(100)),
        sa.Column("ownership_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "ownership_percentage >= 0 AND ownership_percentage <= 100",
            name="ck_ubo_ownership_percentage",
        ),
    )
    op.create_index(
        "ix_ultimate_beneficial_owners_organization_id",
        "ultimate_beneficial_owners", ["organization_id"],
    )

    # ── 3. kyb_documents ──────────────────────────────────────────────────
    op.create_table(
        "kyb_documents",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("organization_id", sa.Uuid(as_uuid=True),
                  sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("document_name", sa.String(255), nullable=False, comment="Original filename"),
        sa.Column("file_path", sa.Text, nullable=False, comment="Path inside the kyb-documents bucket"),
        sa.Column("file_size", sa.BigInteger, nullable=False),
        sa.Column("mime_type", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_kyb_documents_organization_id", "kyb_documents", ["organization_id"])
    op.create_index("ix_kyb_documents_created_at", "kyb_documents", ["created_at"])

    # ── 4. fund_vaults ────────────────────────────────────────────────────
    op.create_table(
        "fund_vaults",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("vault_name", sa.String(255), nullable=False),
        sa.Column("disaster_type", sa.String(100)),
        sa.Column("location", sa.String(255)),
        sa.Column("description", sa.Text),
        sa.Column("total_amount", sa.Numeric(18, 2)),
        sa.Column("remaining_amount", sa.Numeric(18, 2)),
        sa.Column("status", sa.String(20), nullable=False, server_default="active",
                  comment="active | closed"),
        *_timestamps(),
    )
    op.create_index("ix_fund_vaults_created_at", "fund_vaults", ["created_at"])


def downgrade() -> None:
    # children first
    op.drop_table("kyb_documents")
    op.drop_table("ultimate_beneficial_owners")
    op.drop_table("organizations")
    op.drop_table("fund_vaults")
